import enum

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..platform.database import Base


class PermissionScope(str, enum.Enum):
    USER = "user"
    SCHOOL = "school"


class DocumentPermission(Base):
    __tablename__ = "document_permissions"
    __table_args__ = (
        UniqueConstraint("scope_type", "scope_id", "document_type_id", name="uq_document_permission_scope"),
    )

    id = Column(Integer, primary_key=True, index=True)
    scope_type = Column(Enum(PermissionScope), nullable=False)
    # School id, user id (as text), or the default school id.
    scope_id = Column(String, nullable=False, index=True)
    document_type_id = Column(Integer, ForeignKey("document_types.id"), index=True, nullable=False)
    is_allowed = Column(Boolean, nullable=False, default=True)
    credits_per_use = Column(Integer, nullable=True)
    granted_at = Column(DateTime(timezone=True), nullable=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    granted_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    document_type = relationship("DocumentType")
