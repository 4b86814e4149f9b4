from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String
from sqlalchemy.orm import relationship

from ..platform.database import Base


class UsageLog(Base):
    """One row per successful generation. Append-only."""

    __tablename__ = "generated_documents"

    id = Column(Integer, primary_key=True, index=True)
    document_type_id = Column(Integer, ForeignKey("document_types.id"), index=True, nullable=False)
    school_id = Column(String, index=True, nullable=False)
    user_id = Column(Integer, nullable=True, index=True)
    credits_charged = Column(Integer, nullable=False, default=0)
    transaction_id = Column(Integer, ForeignKey("credit_transactions.id"), nullable=True)
    document_data = Column(JSON, nullable=True)
    status = Column(String, nullable=False, default="generated")
    generated_at = Column(DateTime(timezone=True), nullable=False, index=True)

    document_type = relationship("DocumentType")
