from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import Field

from ..models.credit_transaction import TransactionStatus, TransactionType
from .common import CamelModel


class BalanceResponse(CamelModel):
    owner_type: str
    owner_id: str
    current_credits: int
    bonus_credits: int
    used_credits: int
    status: str
    updated_at: Optional[datetime] = None


class TransactionResponse(CamelModel):
    id: int
    owner_type: str
    owner_id: str
    type: TransactionType
    credits: int
    amount: Optional[Decimal] = None
    status: TransactionStatus
    reference: Optional[str] = None
    description: Optional[str] = None
    payment_method: Optional[str] = None
    package_id: Optional[int] = None
    document_type_id: Optional[int] = None
    related_transaction_id: Optional[int] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class TransactionListResponse(CamelModel):
    items: List[TransactionResponse]
    total: int
    limit: int
    offset: int


class PackageResponse(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    credits: int
    price: Decimal
    currency: str
    is_active: bool


class PurchaseRequest(CamelModel):
    package_id: int = Field(gt=0)
    payment_method: Optional[str] = Field(default=None, max_length=50)


class PurchaseResponse(CamelModel):
    transaction_id: int
    status: TransactionStatus
    checkout_url: Optional[str] = None


class CreditSummaryResponse(CamelModel):
    current_credits: int
    total_purchased: int
    total_used: int
    this_month_usage: int
    efficiency: int


class TransactionStatusUpdate(CamelModel):
    status: Literal["completed", "failed", "cancelled"]


class TransactionTransitionResponse(CamelModel):
    transaction: TransactionResponse
    changed: bool


class BonusGrantRequest(CamelModel):
    owner_type: Literal["school", "user"]
    owner_id: str = Field(min_length=1)
    credits: int = Field(gt=0)
    reason: str = Field(default="Admin bonus", max_length=200)
    reference: Optional[str] = Field(default=None, max_length=200)
