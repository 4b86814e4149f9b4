from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from ..platform.database import Base


class DocumentType(Base):
    """A generatable document template. Soft-deactivated, never deleted."""

    __tablename__ = "document_types"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    name_bn = Column(String, nullable=True)
    category = Column(String, index=True, nullable=False)
    description = Column(Text, nullable=True)
    description_bn = Column(Text, nullable=True)
    credits_required = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)
    is_popular = Column(Boolean, nullable=False, default=False)
    usage_count = Column(Integer, nullable=False, default=0)
    last_used = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
