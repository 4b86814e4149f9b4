"""Decide whether a caller may generate a document type, and at what cost.

Permission rows are consulted in a fixed order and the first match wins:

1. the calling user's own row,
2. the calling school's row,
3. the row of the shared "default" school.

With no row at any tier the document type is allowed at its base cost.
A matching row with no ``credits_per_use`` also charges the base cost.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ...models.document_type import DocumentType
from ...models.permission import DocumentPermission, PermissionScope
from ...platform.config import settings
from ...shared.principal import Principal

logger = logging.getLogger("doccredit.permissions")


class PermissionStatus(str, enum.Enum):
    ALLOWED = "allowed"
    DENIED = "denied"
    TEMPLATE_NOT_FOUND = "template_not_found"


class PermissionTier(str, enum.Enum):
    USER = "user"
    SCHOOL = "school"
    DEFAULT = "default"
    CATALOG = "catalog"


@dataclass(frozen=True)
class PermissionDecision:
    status: PermissionStatus
    document_type_id: int
    credits_required: int
    tier: PermissionTier | None = None

    @property
    def is_enabled(self) -> bool:
        return self.status == PermissionStatus.ALLOWED


def _candidate_scopes(principal: Principal) -> list[tuple[PermissionTier, PermissionScope, str]]:
    scopes: list[tuple[PermissionTier, PermissionScope, str]] = []
    if principal.user_id is not None:
        scopes.append((PermissionTier.USER, PermissionScope.USER, str(principal.user_id)))
    scopes.append((PermissionTier.SCHOOL, PermissionScope.SCHOOL, str(principal.school_id)))
    default_id = settings.DEFAULT_SCHOOL_ID
    if str(principal.school_id) != default_id:
        scopes.append((PermissionTier.DEFAULT, PermissionScope.SCHOOL, default_id))
    return scopes


def _load_records(
    db: Session,
    scopes: list[tuple[PermissionTier, PermissionScope, str]],
    document_type_ids: list[int],
) -> dict[tuple[int, PermissionScope, str], DocumentPermission]:
    if not document_type_ids:
        return {}
    scope_filter = or_(
        *(
            and_(DocumentPermission.scope_type == scope_type, DocumentPermission.scope_id == scope_id)
            for _, scope_type, scope_id in scopes
        )
    )
    rows = (
        db.query(DocumentPermission)
        .filter(DocumentPermission.document_type_id.in_(document_type_ids), scope_filter)
        .all()
    )
    return {(row.document_type_id, row.scope_type, row.scope_id): row for row in rows}


def _decide(
    document_type: DocumentType,
    scopes: list[tuple[PermissionTier, PermissionScope, str]],
    records: dict[tuple[int, PermissionScope, str], DocumentPermission],
) -> PermissionDecision:
    base_cost = int(document_type.credits_required or 0)
    for tier, scope_type, scope_id in scopes:
        record = records.get((document_type.id, scope_type, scope_id))
        if record is None:
            continue
        cost = base_cost if record.credits_per_use is None else int(record.credits_per_use)
        status = PermissionStatus.ALLOWED if record.is_allowed else PermissionStatus.DENIED
        return PermissionDecision(
            status=status,
            document_type_id=document_type.id,
            credits_required=cost,
            tier=tier,
        )
    return PermissionDecision(
        status=PermissionStatus.ALLOWED,
        document_type_id=document_type.id,
        credits_required=base_cost,
        tier=PermissionTier.CATALOG,
    )


def resolve_permission(db: Session, principal: Principal, document_type_id: int) -> PermissionDecision:
    document_type = db.query(DocumentType).filter(DocumentType.id == document_type_id).first()
    if document_type is None or not document_type.is_active:
        return PermissionDecision(
            status=PermissionStatus.TEMPLATE_NOT_FOUND,
            document_type_id=document_type_id,
            credits_required=0,
        )
    scopes = _candidate_scopes(principal)
    records = _load_records(db, scopes, [document_type.id])
    decision = _decide(document_type, scopes, records)
    logger.debug(
        "Resolved school=%s user=%s document_type=%s status=%s tier=%s cost=%d",
        principal.school_id,
        principal.user_id,
        document_type_id,
        decision.status.value,
        decision.tier.value if decision.tier else None,
        decision.credits_required,
    )
    return decision


def resolve_catalog(
    db: Session,
    principal: Principal,
    document_types: Iterable[DocumentType],
) -> list[tuple[DocumentType, PermissionDecision]]:
    """Resolve many document types for one caller with a single permission query."""
    items = [dt for dt in document_types if dt.is_active]
    scopes = _candidate_scopes(principal)
    records = _load_records(db, scopes, [dt.id for dt in items])
    return [(dt, _decide(dt, scopes, records)) for dt in items]
