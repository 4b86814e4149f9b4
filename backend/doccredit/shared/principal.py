"""Caller identity as seen by the permission and credit services."""

from __future__ import annotations

from dataclasses import dataclass

from ..platform.config import settings


@dataclass(frozen=True)
class Principal:
    """An authenticated caller: always a school, optionally a user within it."""

    school_id: str
    user_id: int | None = None


@dataclass(frozen=True)
class BalanceOwner:
    """The principal a credit balance belongs to."""

    owner_type: str  # "school" | "user"
    owner_id: str

    @classmethod
    def school(cls, school_id: str) -> "BalanceOwner":
        return cls(owner_type="school", owner_id=str(school_id))

    @classmethod
    def user(cls, user_id: int) -> "BalanceOwner":
        return cls(owner_type="user", owner_id=str(user_id))


def billing_owner(principal: Principal, scope: str | None = None) -> BalanceOwner:
    """Balance debited when ``principal`` generates a document."""
    scope = scope or settings.billing_scope
    if scope == "user" and principal.user_id is not None:
        return BalanceOwner.user(principal.user_id)
    return BalanceOwner.school(principal.school_id)
