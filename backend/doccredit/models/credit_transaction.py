import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, JSON, Numeric, String, Text
from sqlalchemy.sql import func

from ..platform.database import Base


class TransactionType(str, enum.Enum):
    PURCHASE = "purchase"
    USAGE = "usage"
    REFUND = "refund"
    BONUS = "bonus"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {TransactionStatus.COMPLETED, TransactionStatus.FAILED, TransactionStatus.CANCELLED}
)


class CreditTransaction(Base):
    """Ledger entry. Immutable once its status is terminal."""

    __tablename__ = "credit_transactions"

    id = Column(Integer, primary_key=True, index=True)
    owner_type = Column(String, nullable=False)
    owner_id = Column(String, nullable=False, index=True)
    type = Column(Enum(TransactionType), nullable=False)
    # Magnitude; the sign is implied by the type (usage debits, the rest credit).
    credits = Column(Integer, nullable=False)
    amount = Column(Numeric(10, 2), nullable=True)
    status = Column(Enum(TransactionStatus), nullable=False, default=TransactionStatus.PENDING)
    reference = Column(String, nullable=True, unique=True, index=True)
    description = Column(Text, nullable=True)
    payment_method = Column(String, nullable=True)
    package_id = Column(Integer, ForeignKey("credit_packages.id"), nullable=True)
    document_type_id = Column(Integer, ForeignKey("document_types.id"), nullable=True)
    related_transaction_id = Column(Integer, ForeignKey("credit_transactions.id"), nullable=True)
    entry_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)
