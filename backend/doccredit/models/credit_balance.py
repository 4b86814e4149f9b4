from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from ..platform.database import Base


class CreditBalance(Base):
    """Running balance per principal. Written only by the credit ledger service."""

    __tablename__ = "credit_balances"
    __table_args__ = (
        UniqueConstraint("owner_type", "owner_id", name="uq_credit_balance_owner"),
        CheckConstraint("current_credits >= 0", name="ck_credit_balance_current_nonneg"),
        CheckConstraint("bonus_credits >= 0", name="ck_credit_balance_bonus_nonneg"),
        CheckConstraint("used_credits >= 0", name="ck_credit_balance_used_nonneg"),
    )

    id = Column(Integer, primary_key=True, index=True)
    owner_type = Column(String, nullable=False)
    owner_id = Column(String, nullable=False, index=True)
    current_credits = Column(Integer, nullable=False, default=0)
    bonus_credits = Column(Integer, nullable=False, default=0)
    used_credits = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
