"""Document generation: permission check, credit debit and usage metering.

Steps run in order and a failing step stops the ones after it. A debit
that is not followed by a recorded generation is refunded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models.usage_log import UsageLog
from ...platform.errors import (
    DocCreditError,
    InsufficientCredits,
    PermissionDenied,
    StorageError,
    TemplateNotFound,
)
from ...services.credit_ledger_service import DebitResult, refund_usage, reserve_and_debit
from ...shared.principal import Principal, billing_owner
from ..catalog.service import get_document_type
from ..permissions.resolver import PermissionStatus, resolve_permission
from ..usage.service import record_usage

logger = logging.getLogger("doccredit.documents")


@dataclass(frozen=True)
class GenerationOutcome:
    document: UsageLog
    credits_used: int
    balance_after: int


def _compensate(db: Session, debit: DebitResult, reason: str) -> None:
    if debit.transaction_id is None or not debit.required:
        return
    try:
        refund_usage(db, debit.transaction_id, reason=reason)
    except DocCreditError:
        # The refund reference is idempotent, so reconciliation can retry it.
        logger.exception("Compensating refund failed for usage transaction %s", debit.transaction_id)
        return
    logger.warning(
        "Refunded %d credits for usage transaction %s: %s",
        debit.required,
        debit.transaction_id,
        reason,
    )


def generate_document(
    db: Session,
    principal: Principal,
    document_type_id: int,
    document_data: dict[str, Any] | None = None,
) -> GenerationOutcome:
    decision = resolve_permission(db, principal, document_type_id)
    if decision.status == PermissionStatus.TEMPLATE_NOT_FOUND:
        raise TemplateNotFound(f"Document type {document_type_id} not found or inactive")
    if not decision.is_enabled:
        logger.info(
            "Generation denied school=%s user=%s document_type=%s tier=%s",
            principal.school_id,
            principal.user_id,
            document_type_id,
            decision.tier.value if decision.tier else None,
        )
        raise PermissionDenied(
            "Document generation is not enabled for this account",
            details={"documentTypeId": document_type_id},
        )

    debit = reserve_and_debit(
        db,
        billing_owner(principal),
        decision.credits_required,
        reason=f"Document generation (type {document_type_id})",
        document_type_id=document_type_id,
    )
    if not debit.ok:
        raise InsufficientCredits(
            "Not enough credits to generate this document",
            required=debit.required,
            available=debit.available,
        )

    try:
        document_type = get_document_type(db, document_type_id)
        if document_type is None or not document_type.is_active:
            raise TemplateNotFound(f"Document type {document_type_id} not found or inactive")
        log = record_usage(
            db,
            principal,
            document_type_id,
            decision.credits_required,
            transaction_id=debit.transaction_id,
            document_data=document_data,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(
            "Generation failed after debit school=%s document_type=%s",
            principal.school_id,
            document_type_id,
        )
        _compensate(db, debit, "storage failed after debit")
        raise StorageError("Storage is unavailable (document generation)") from exc
    except Exception as exc:
        db.rollback()
        _compensate(db, debit, f"generation did not complete ({type(exc).__name__})")
        raise

    return GenerationOutcome(
        document=log,
        credits_used=decision.credits_required,
        balance_after=int(debit.balance_after or 0),
    )
