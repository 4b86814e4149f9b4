"""Credit balance, history, packages and purchases; super-admin settlement."""

import logging
from typing import List, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...components.integrations.lemon.service import LemonService
from ...deps import get_current_principal, require_super_admin
from ...models.credit_transaction import TransactionStatus, TransactionType
from ...platform.config import settings
from ...platform.database import get_db
from ...schemas.credits import (
    BalanceResponse,
    BonusGrantRequest,
    CreditSummaryResponse,
    PackageResponse,
    PurchaseRequest,
    PurchaseResponse,
    TransactionListResponse,
    TransactionResponse,
    TransactionStatusUpdate,
    TransactionTransitionResponse,
)
from ...services import credit_ledger_service as ledger
from ...shared.principal import BalanceOwner, Principal, billing_owner

logger = logging.getLogger("doccredit.billing")

router = APIRouter(prefix="/credits", tags=["Credits"])
admin_router = APIRouter(
    prefix="/admin/credits",
    tags=["Credits Admin"],
    dependencies=[Depends(require_super_admin)],
)


def _lemon_enabled() -> bool:
    return not settings.MVP_DISABLE_LEMON and bool(settings.LEMON_API_KEY) and bool(settings.LEMON_STORE_ID)


@router.get("/balance", response_model=BalanceResponse)
def get_balance(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return ledger.get_balance(db, billing_owner(principal))


@router.get("/transactions", response_model=TransactionListResponse)
def list_transactions(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    type: Optional[TransactionType] = Query(default=None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    items, total = ledger.list_transactions(
        db, billing_owner(principal), limit=limit, offset=offset, transaction_type=type
    )
    return TransactionListResponse(items=items, total=total, limit=limit, offset=offset)


@router.get("/packages", response_model=List[PackageResponse])
def list_packages(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return ledger.list_packages(db)


@router.get("/summary", response_model=CreditSummaryResponse)
def credit_summary(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return ledger.credit_summary(db, billing_owner(principal))


@router.post("/purchase", response_model=PurchaseResponse)
def purchase(
    body: PurchaseRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Start a purchase. Paid packages stay pending until payment is confirmed."""
    package = ledger.get_package(db, body.package_id)
    txn = ledger.create_purchase(db, billing_owner(principal), package, payment_method=body.payment_method)

    checkout_url = None
    if txn.status == TransactionStatus.PENDING and package.variant_id and _lemon_enabled():
        lemon = LemonService(api_key=settings.LEMON_API_KEY, store_id=settings.LEMON_STORE_ID)
        try:
            checkout_url = lemon.create_checkout(
                variant_id=package.variant_id,
                transaction_id=txn.id,
                redirect_url=f"{settings.FRONTEND_URL.rstrip('/')}/credits?purchase={txn.id}",
                custom={"school_id": principal.school_id},
                test_mode=settings.LEMON_TEST_MODE,
            )
        except (httpx.HTTPError, ValueError):
            logger.exception("Lemon checkout error for transaction %s", txn.id)
            ledger.mark_transaction(db, txn.id, TransactionStatus.FAILED)
            raise HTTPException(status_code=502, detail="Payment service error. Please try again.")

    return PurchaseResponse(transaction_id=txn.id, status=txn.status, checkout_url=checkout_url)


@admin_router.get("/pending", response_model=List[TransactionResponse])
def list_pending(
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Purchases awaiting payment confirmation (manual cash / mobile payments)."""
    return ledger.list_pending_purchases(db, limit=limit)


@admin_router.patch("/transactions/{transaction_id}/status", response_model=TransactionTransitionResponse)
def update_transaction_status(
    transaction_id: int,
    body: TransactionStatusUpdate,
    db: Session = Depends(get_db),
):
    transition = ledger.mark_transaction(db, transaction_id, body.status)
    return TransactionTransitionResponse(transaction=transition.transaction, changed=transition.changed)


@admin_router.post("/bonus", response_model=TransactionResponse)
def grant_bonus(body: BonusGrantRequest, db: Session = Depends(get_db)):
    owner = BalanceOwner(owner_type=body.owner_type, owner_id=body.owner_id)
    return ledger.credit(
        db,
        owner,
        body.credits,
        kind=TransactionType.BONUS,
        reason=body.reason,
        reference=body.reference,
    )
