from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Any

import httpx


logger = logging.getLogger("doccredit.billing")

PAID_EVENTS = {"order_created", "order_paid"}
FAILED_EVENTS = {"order_refunded", "order_failed", "subscription_payment_failed"}


@dataclass(frozen=True)
class OrderEvent:
    """The parts of a Lemon Squeezy order webhook the ledger cares about."""

    event_name: str | None
    status: str
    order_id: str | None
    transaction_id: int | None

    @property
    def is_paid(self) -> bool:
        return self.status == "paid" and self.event_name in PAID_EVENTS | {None}

    @property
    def is_failed(self) -> bool:
        return self.event_name in FAILED_EVENTS or self.status in {"failed", "refunded"}


def _nested_get(payload: dict[str, Any], *path: str) -> Any:
    current: Any = payload
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


class LemonService:
    def __init__(self, *, api_key: str, store_id: str):
        self.api_key = api_key
        self.store_id = store_id
        self.base_url = "https://api.lemonsqueezy.com/v1"
        self.headers = {
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/vnd.api+json",
            "Content-Type": "application/vnd.api+json",
        }

    def create_checkout(
        self,
        *,
        variant_id: str,
        transaction_id: int,
        redirect_url: str,
        custom: dict[str, Any] | None = None,
        test_mode: bool = False,
    ) -> str:
        """Open a hosted checkout for a pending purchase and return its URL."""
        payload = {
            "data": {
                "type": "checkouts",
                "attributes": {
                    "checkout_data": {
                        "custom": {"transaction_id": str(transaction_id), **(custom or {})},
                    },
                    "product_options": {
                        "redirect_url": redirect_url,
                    },
                    "expires_at": None,
                    "preview": False,
                    "test_mode": bool(test_mode),
                },
                "relationships": {
                    "store": {"data": {"type": "stores", "id": str(self.store_id)}},
                    "variant": {"data": {"type": "variants", "id": str(variant_id)}},
                },
            }
        }
        with httpx.Client(timeout=20.0) as client:
            response = client.post(f"{self.base_url}/checkouts", json=payload, headers=self.headers)
        if response.status_code >= 400:
            logger.error("Lemon checkout create failed: %s", response.text)
            response.raise_for_status()
        body = response.json() or {}
        checkout_url = _nested_get(body, "data", "attributes", "url")
        if not checkout_url:
            raise ValueError("Lemon checkout URL missing")
        return checkout_url

    @staticmethod
    def verify_signature(*, payload: bytes, signature: str, secret: str) -> bool:
        if not signature or not secret:
            return False
        expected = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
        return hmac.compare_digest(signature, expected)

    @staticmethod
    def parse_order_event(payload: dict[str, Any]) -> OrderEvent:
        data = payload.get("data") or {}
        attributes = data.get("attributes") or {}
        custom = (
            _nested_get(payload, "meta", "custom_data")
            or attributes.get("custom_data")
            or _nested_get(attributes, "checkout_data", "custom")
            or {}
        )
        raw_txn = custom.get("transaction_id") if isinstance(custom, dict) else None
        try:
            transaction_id = int(raw_txn) if raw_txn is not None else None
        except (TypeError, ValueError):
            transaction_id = None
        return OrderEvent(
            event_name=_nested_get(payload, "meta", "event_name") or payload.get("event_name"),
            status=str(attributes.get("status") or "").lower(),
            order_id=str(data.get("id")) if data.get("id") is not None else None,
            transaction_id=transaction_id,
        )
