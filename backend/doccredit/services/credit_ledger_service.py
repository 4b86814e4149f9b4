from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy import case, func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.credit_balance import CreditBalance
from ..models.credit_package import CreditPackage
from ..models.credit_transaction import (
    TERMINAL_STATUSES,
    CreditTransaction,
    TransactionStatus,
    TransactionType,
)
from ..platform.config import settings
from ..platform.errors import ConflictError, NotFoundError, StorageError, ValidationError
from ..shared.principal import BalanceOwner
from ..shared.utils import month_start, utcnow
from .storage import insert_ignore, write_transaction

logger = logging.getLogger("doccredit.ledger")

_CREDIT_KINDS = {TransactionType.PURCHASE, TransactionType.REFUND, TransactionType.BONUS}


@dataclass(frozen=True)
class DebitResult:
    """Outcome of ``reserve_and_debit``. ``ok`` is False on insufficient credits."""

    ok: bool
    required: int
    available: int
    transaction_id: int | None = None
    balance_after: int | None = None


@dataclass(frozen=True)
class TransactionTransition:
    transaction: CreditTransaction
    changed: bool


def _owner_filter(owner: BalanceOwner) -> tuple:
    return (
        CreditBalance.owner_type == owner.owner_type,
        CreditBalance.owner_id == owner.owner_id,
    )


def _ensure_balance(db: Session, owner: BalanceOwner) -> bool:
    """Create the balance row on first touch, seeding any starting credits."""
    starting = int(settings.NEW_BALANCE_STARTING_CREDITS or 0)
    created = insert_ignore(
        db,
        CreditBalance,
        {
            "owner_type": owner.owner_type,
            "owner_id": owner.owner_id,
            "current_credits": starting,
            "bonus_credits": starting,
            "used_credits": 0,
            "status": "active",
        },
        index_elements=["owner_type", "owner_id"],
    )
    if created and starting > 0:
        db.add(
            CreditTransaction(
                owner_type=owner.owner_type,
                owner_id=owner.owner_id,
                type=TransactionType.BONUS,
                credits=starting,
                status=TransactionStatus.COMPLETED,
                description="Starting credits",
                completed_at=utcnow(),
            )
        )
    return created


def _current_credits(db: Session, owner: BalanceOwner) -> int:
    value = db.query(CreditBalance.current_credits).filter(*_owner_filter(owner)).scalar()
    return int(value or 0)


def _apply_credit(db: Session, owner: BalanceOwner, credits: int, kind: TransactionType) -> None:
    values: dict[str, Any] = {
        "current_credits": CreditBalance.current_credits + credits,
        "updated_at": utcnow(),
    }
    if kind == TransactionType.BONUS:
        values["bonus_credits"] = CreditBalance.bonus_credits + credits
    elif kind == TransactionType.REFUND:
        values["used_credits"] = case(
            (CreditBalance.used_credits >= credits, CreditBalance.used_credits - credits),
            else_=0,
        )
    db.execute(
        update(CreditBalance)
        .where(*_owner_filter(owner))
        .values(**values)
        .execution_options(synchronize_session=False)
    )


def get_balance(db: Session, owner: BalanceOwner) -> CreditBalance:
    with write_transaction(db, "balance lookup"):
        _ensure_balance(db, owner)
    return (
        db.query(CreditBalance)
        .filter(*_owner_filter(owner))
        .populate_existing()
        .one()
    )


def reserve_and_debit(
    db: Session,
    owner: BalanceOwner,
    credits: int,
    *,
    reason: str,
    document_type_id: int | None = None,
) -> DebitResult:
    """Consume ``credits`` from ``owner`` in one conditional UPDATE.

    The balance check and the decrement are a single statement, so two
    concurrent debits can never both pass against a balance that covers one.
    When the balance is short nothing is written and ``ok`` is False.
    """
    credits = int(credits)
    if credits < 0:
        raise ValidationError("Debit amount must not be negative")

    try:
        _ensure_balance(db, owner)
        result = db.execute(
            update(CreditBalance)
            .where(*_owner_filter(owner), CreditBalance.current_credits >= credits)
            .values(
                current_credits=CreditBalance.current_credits - credits,
                used_credits=CreditBalance.used_credits + credits,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            available = _current_credits(db, owner)
            db.rollback()
            logger.info(
                "Debit refused owner=%s:%s required=%d available=%d",
                owner.owner_type,
                owner.owner_id,
                credits,
                available,
            )
            return DebitResult(ok=False, required=credits, available=available)

        txn = CreditTransaction(
            owner_type=owner.owner_type,
            owner_id=owner.owner_id,
            type=TransactionType.USAGE,
            credits=credits,
            status=TransactionStatus.COMPLETED,
            description=reason,
            document_type_id=document_type_id,
            completed_at=utcnow(),
        )
        db.add(txn)
        db.flush()
        balance_after = _current_credits(db, owner)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Debit failed owner=%s:%s", owner.owner_type, owner.owner_id)
        raise StorageError("Storage is unavailable (credit debit)") from exc

    return DebitResult(
        ok=True,
        required=credits,
        available=balance_after + credits,
        transaction_id=txn.id,
        balance_after=balance_after,
    )


def _replayed_credit(db: Session, owner: BalanceOwner, reference: str) -> CreditTransaction | None:
    existing = (
        db.query(CreditTransaction)
        .filter(CreditTransaction.reference == reference)
        .first()
    )
    if existing is None:
        return None
    if (existing.owner_type, existing.owner_id) != (owner.owner_type, owner.owner_id):
        db.rollback()
        raise ConflictError(
            f"Reference {reference} is already used by another balance",
            details={"reference": reference},
        )
    return existing


def credit(
    db: Session,
    owner: BalanceOwner,
    credits: int,
    *,
    kind: TransactionType = TransactionType.BONUS,
    reason: str,
    reference: str | None = None,
    related_transaction_id: int | None = None,
    metadata: dict[str, Any] | None = None,
) -> CreditTransaction:
    """Add credits to ``owner`` and record a completed transaction.

    With a ``reference`` the call is idempotent: a second call with the same
    reference returns the first transaction and leaves the balance alone.
    A reference already used for another owner raises ``ConflictError``.
    """
    credits = int(credits)
    if credits <= 0:
        raise ValidationError("Credit amount must be positive")
    kind = TransactionType(kind)
    if kind not in _CREDIT_KINDS:
        raise ValidationError(f"Cannot credit with transaction type {kind.value}")

    try:
        _ensure_balance(db, owner)
        if reference:
            existing = _replayed_credit(db, owner, reference)
            if existing:
                db.commit()
                return existing
        txn = CreditTransaction(
            owner_type=owner.owner_type,
            owner_id=owner.owner_id,
            type=kind,
            credits=credits,
            status=TransactionStatus.COMPLETED,
            reference=reference,
            description=reason,
            related_transaction_id=related_transaction_id,
            entry_metadata=metadata or {},
            completed_at=utcnow(),
        )
        db.add(txn)
        db.flush()
        _apply_credit(db, owner, credits, kind)
        db.commit()
    except IntegrityError:
        # A concurrent call with the same reference won the insert.
        db.rollback()
        if reference:
            existing = _replayed_credit(db, owner, reference)
            if existing:
                return existing
        logger.exception("Credit failed owner=%s:%s", owner.owner_type, owner.owner_id)
        raise StorageError("Storage is unavailable (credit)")
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Credit failed owner=%s:%s", owner.owner_type, owner.owner_id)
        raise StorageError("Storage is unavailable (credit)") from exc

    logger.info(
        "Credited owner=%s:%s credits=%d kind=%s txn=%s",
        owner.owner_type,
        owner.owner_id,
        credits,
        kind.value,
        txn.id,
    )
    return txn


def refund_usage(db: Session, usage_txn_id: int, *, reason: str) -> CreditTransaction | None:
    """Compensate a usage debit. Safe to call more than once per debit."""
    usage = db.query(CreditTransaction).filter(CreditTransaction.id == usage_txn_id).first()
    if usage is None or usage.type != TransactionType.USAGE:
        raise NotFoundError(f"Usage transaction {usage_txn_id} not found")
    if not usage.credits:
        return None
    owner = BalanceOwner(owner_type=usage.owner_type, owner_id=usage.owner_id)
    return credit(
        db,
        owner,
        usage.credits,
        kind=TransactionType.REFUND,
        reason=reason,
        reference=f"refund:{usage.id}",
        related_transaction_id=usage.id,
    )


def mark_transaction(db: Session, transaction_id: int, status: TransactionStatus | str) -> TransactionTransition:
    """Move a pending transaction to a terminal status exactly once.

    Repeating the transition that already happened is a no-op; any other
    transition out of a terminal status raises ``ConflictError``. Completing
    a purchase credits the balance in the same database transaction.
    """
    try:
        target = TransactionStatus(status)
    except ValueError as exc:
        raise ValidationError(f"Unknown transaction status {status!r}") from exc
    if target not in TERMINAL_STATUSES:
        raise ValidationError("Transactions can only move to completed, failed or cancelled")

    with write_transaction(db, "transaction status change"):
        result = db.execute(
            update(CreditTransaction)
            .where(
                CreditTransaction.id == transaction_id,
                CreditTransaction.status == TransactionStatus.PENDING,
            )
            .values(status=target, completed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        txn = (
            db.query(CreditTransaction)
            .filter(CreditTransaction.id == transaction_id)
            .populate_existing()
            .first()
        )
        if txn is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        if result.rowcount == 0:
            if txn.status == target:
                return TransactionTransition(transaction=txn, changed=False)
            logger.warning(
                "Transaction transition rejected id=%s current=%s requested=%s",
                transaction_id,
                txn.status.value,
                target.value,
            )
            raise ConflictError(
                f"Transaction {transaction_id} is already {txn.status.value}",
                details={"currentStatus": txn.status.value},
            )
        if target == TransactionStatus.COMPLETED and txn.type == TransactionType.PURCHASE:
            owner = BalanceOwner(owner_type=txn.owner_type, owner_id=txn.owner_id)
            _ensure_balance(db, owner)
            _apply_credit(db, owner, txn.credits, TransactionType.PURCHASE)

    logger.info("Transaction %s moved to %s", transaction_id, target.value)
    return TransactionTransition(transaction=txn, changed=True)


def create_purchase(
    db: Session,
    owner: BalanceOwner,
    package: CreditPackage,
    *,
    payment_method: str | None = None,
) -> CreditTransaction:
    """Open a purchase for ``package``.

    Paid packages stay pending until the payment collaborator confirms them.
    A free package completes immediately, once per owner per calendar month.
    """
    if not package.is_active:
        raise NotFoundError(f"Credit package {package.id} is not available")

    price = Decimal(package.price or 0)
    is_free = price <= 0
    reference = None
    if is_free:
        period = month_start().strftime("%Y-%m")
        reference = f"free:{owner.owner_type}:{owner.owner_id}:{package.id}:{period}"

    try:
        _ensure_balance(db, owner)
        if reference and (
            db.query(CreditTransaction.id).filter(CreditTransaction.reference == reference).first()
        ):
            raise ConflictError("The free package can be claimed once per month")
        txn = CreditTransaction(
            owner_type=owner.owner_type,
            owner_id=owner.owner_id,
            type=TransactionType.PURCHASE,
            credits=int(package.credits),
            amount=price,
            status=TransactionStatus.PENDING,
            reference=reference,
            description=f"Purchase: {package.name}",
            payment_method=payment_method or ("free" if is_free else None),
            package_id=package.id,
        )
        db.add(txn)
        db.flush()
        db.commit()
    except ConflictError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("The free package can be claimed once per month") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Purchase failed owner=%s:%s", owner.owner_type, owner.owner_id)
        raise StorageError("Storage is unavailable (purchase)") from exc

    if is_free:
        return mark_transaction(db, txn.id, TransactionStatus.COMPLETED).transaction
    return txn


def list_transactions(
    db: Session,
    owner: BalanceOwner,
    *,
    limit: int = 50,
    offset: int = 0,
    transaction_type: TransactionType | None = None,
) -> tuple[list[CreditTransaction], int]:
    query = db.query(CreditTransaction).filter(
        CreditTransaction.owner_type == owner.owner_type,
        CreditTransaction.owner_id == owner.owner_id,
    )
    if transaction_type is not None:
        query = query.filter(CreditTransaction.type == transaction_type)
    total = query.count()
    items = (
        query.order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return items, total


def list_pending_purchases(db: Session, *, limit: int = 100) -> list[CreditTransaction]:
    return (
        db.query(CreditTransaction)
        .filter(
            CreditTransaction.type == TransactionType.PURCHASE,
            CreditTransaction.status == TransactionStatus.PENDING,
        )
        .order_by(CreditTransaction.created_at.asc(), CreditTransaction.id.asc())
        .limit(limit)
        .all()
    )


def credit_summary(db: Session, owner: BalanceOwner) -> dict[str, Any]:
    balance = get_balance(db, owner)

    def _sum(*conditions) -> int:
        value = (
            db.query(func.coalesce(func.sum(CreditTransaction.credits), 0))
            .filter(
                CreditTransaction.owner_type == owner.owner_type,
                CreditTransaction.owner_id == owner.owner_id,
                CreditTransaction.status == TransactionStatus.COMPLETED,
                *conditions,
            )
            .scalar()
        )
        return int(value or 0)

    total_purchased = _sum(CreditTransaction.type == TransactionType.PURCHASE)
    this_month_usage = _sum(
        CreditTransaction.type == TransactionType.USAGE,
        CreditTransaction.created_at >= month_start(),
    )
    total_used = int(balance.used_credits or 0)
    efficiency = round(total_used / total_purchased * 100) if total_purchased else 0
    return {
        "current_credits": int(balance.current_credits or 0),
        "total_purchased": total_purchased,
        "total_used": total_used,
        "this_month_usage": this_month_usage,
        "efficiency": efficiency,
    }


def list_packages(db: Session, *, include_inactive: bool = False) -> list[CreditPackage]:
    query = db.query(CreditPackage)
    if not include_inactive:
        query = query.filter(CreditPackage.is_active.is_(True))
    return query.order_by(CreditPackage.price.asc(), CreditPackage.id.asc()).all()


def get_package(db: Session, package_id: int) -> CreditPackage:
    package = db.query(CreditPackage).filter(CreditPackage.id == package_id).first()
    if package is None:
        raise NotFoundError(f"Credit package {package_id} not found")
    return package
