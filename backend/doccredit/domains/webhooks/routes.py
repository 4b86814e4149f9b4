# Payment gateway webhooks: settle pending purchases.
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ...components.integrations.lemon.service import LemonService
from ...models.credit_transaction import TransactionStatus
from ...platform.config import settings
from ...platform.database import get_db
from ...platform.errors import ConflictError, NotFoundError
from ...services.credit_ledger_service import mark_transaction

logger = logging.getLogger("doccredit.billing")

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/payments")
async def payment_webhook(request: Request, db: Session = Depends(get_db)):
    """Handle Lemon Squeezy order webhooks for credit purchases."""
    if settings.MVP_DISABLE_LEMON:
        raise HTTPException(status_code=503, detail="Lemon integration is disabled for MVP")
    if not settings.LEMON_WEBHOOK_SECRET:
        raise HTTPException(status_code=503, detail="Lemon webhook secret is not configured")

    payload_raw = await request.body()
    signature = request.headers.get("X-Signature", "")
    if not LemonService.verify_signature(payload=payload_raw, signature=signature, secret=settings.LEMON_WEBHOOK_SECRET):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    event = LemonService.parse_order_event(await request.json())
    if event.is_paid:
        target = TransactionStatus.COMPLETED
    elif event.is_failed:
        target = TransactionStatus.FAILED
    else:
        return {"status": "ignored", "eventName": event.event_name}
    if event.transaction_id is None:
        raise HTTPException(status_code=400, detail="transaction_id missing in webhook payload")

    try:
        transition = mark_transaction(db, event.transaction_id, target)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Transaction not found")
    except ConflictError as exc:
        # Settled by someone else first (admin or an earlier event); acknowledge so it is not retried.
        logger.warning(
            "Webhook for transaction %s lost the settlement race: %s (order=%s)",
            event.transaction_id,
            exc.message,
            event.order_id,
        )
        return {"status": "conflict", "transactionId": event.transaction_id}

    return {
        "status": "received",
        "transactionId": event.transaction_id,
        "transactionStatus": transition.transaction.status.value,
        "changed": transition.changed,
    }
