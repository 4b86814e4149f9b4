"""Administrative grant/revoke of permission rows, one or many at a time.

Every write is an upsert keyed by (scope, document type), so a row is never
duplicated and repeating a call leaves the rows exactly as they were. A
batch commits as one database transaction.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from ...models.document_type import DocumentType
from ...models.permission import DocumentPermission, PermissionScope
from ...platform.config import settings
from ...platform.errors import TemplateNotFound, ValidationError
from ...services.storage import upsert, write_transaction
from ...shared.utils import utcnow

logger = logging.getLogger("doccredit.permissions")

_KEY = ["scope_type", "scope_id", "document_type_id"]


class BulkMode(str, enum.Enum):
    ATOMIC = "atomic"
    PARTIAL = "partial"


@dataclass(frozen=True)
class PermissionTarget:
    scope_type: PermissionScope
    scope_id: str

    @classmethod
    def for_user(cls, user_id: int) -> "PermissionTarget":
        return cls(scope_type=PermissionScope.USER, scope_id=str(user_id))

    @classmethod
    def for_school(cls, school_id: str) -> "PermissionTarget":
        return cls(scope_type=PermissionScope.SCHOOL, scope_id=str(school_id))

    @classmethod
    def default(cls) -> "PermissionTarget":
        return cls.for_school(settings.DEFAULT_SCHOOL_ID)

    @classmethod
    def parse(cls, scope: str, target: str | None) -> "PermissionTarget":
        scope = (scope or "").strip().lower()
        if scope == "default":
            return cls.default()
        if not target or not str(target).strip():
            raise ValidationError(f"A target id is required for scope '{scope}'")
        if scope == "school":
            return cls.for_school(str(target).strip())
        if scope == "user":
            try:
                return cls.for_user(int(str(target).strip()))
            except ValueError as exc:
                raise ValidationError("User targets must be numeric ids") from exc
        raise ValidationError("scope must be one of: user, school, default")


@dataclass(frozen=True)
class BulkItemResult:
    document_type_id: int
    ok: bool
    error: str | None = None


@dataclass(frozen=True)
class BulkResult:
    updated: int
    items: list[BulkItemResult] = field(default_factory=list)

    @property
    def failed(self) -> list[BulkItemResult]:
        return [item for item in self.items if not item.ok]


def _validate_credits(credits_per_use: int | None) -> None:
    if credits_per_use is not None and int(credits_per_use) < 0:
        raise ValidationError("credits_per_use must not be negative")


def _write_grant(
    db: Session,
    target: PermissionTarget,
    document_type_id: int,
    *,
    now,
    credits_per_use: int | None,
    replace_credits: bool,
    actor: str | None,
) -> None:
    def _set(excluded) -> dict[str, Any]:
        was_allowed = DocumentPermission.is_allowed.is_(True)
        clause: dict[str, Any] = {
            "is_allowed": True,
            "granted_at": case((was_allowed, DocumentPermission.granted_at), else_=excluded.granted_at),
            "granted_by": case((was_allowed, DocumentPermission.granted_by), else_=excluded.granted_by),
            "revoked_at": None,
        }
        if replace_credits or credits_per_use is not None:
            clause["credits_per_use"] = excluded.credits_per_use
        return clause

    upsert(
        db,
        DocumentPermission,
        {
            "scope_type": target.scope_type,
            "scope_id": target.scope_id,
            "document_type_id": document_type_id,
            "is_allowed": True,
            "credits_per_use": credits_per_use,
            "granted_at": now,
            "revoked_at": None,
            "granted_by": actor,
        },
        index_elements=_KEY,
        set_=_set,
    )


def _write_revoke(
    db: Session,
    target: PermissionTarget,
    document_type_id: int,
    *,
    now,
    actor: str | None,
) -> None:
    def _set(excluded) -> dict[str, Any]:
        return {
            "is_allowed": False,
            "revoked_at": case(
                (
                    DocumentPermission.is_allowed.is_(False),
                    func.coalesce(DocumentPermission.revoked_at, excluded.revoked_at),
                ),
                else_=excluded.revoked_at,
            ),
        }

    upsert(
        db,
        DocumentPermission,
        {
            "scope_type": target.scope_type,
            "scope_id": target.scope_id,
            "document_type_id": document_type_id,
            "is_allowed": False,
            "credits_per_use": None,
            "granted_at": None,
            "revoked_at": now,
            "granted_by": actor,
        },
        index_elements=_KEY,
        set_=_set,
    )


def _normalize_ids(document_type_ids: list[int]) -> list[int]:
    ids = list(dict.fromkeys(int(i) for i in document_type_ids))
    if not ids:
        raise ValidationError("document_type_ids must not be empty")
    limit = settings.BULK_PERMISSION_MAX_ITEMS
    if len(ids) > limit:
        raise ValidationError(f"At most {limit} document types per batch")
    return ids


def _apply_batch(
    db: Session,
    target: PermissionTarget,
    document_type_ids: list[int],
    *,
    mode: BulkMode,
    what: str,
    write,
) -> BulkResult:
    ids = _normalize_ids(document_type_ids)
    known = {row[0] for row in db.query(DocumentType.id).filter(DocumentType.id.in_(ids)).all()}
    missing = [i for i in ids if i not in known]
    if missing and BulkMode(mode) == BulkMode.ATOMIC:
        raise ValidationError(
            "Unknown document types in batch; nothing was changed",
            details={"invalidIds": missing},
        )

    items: list[BulkItemResult] = []
    now = utcnow()
    with write_transaction(db, what):
        for document_type_id in ids:
            if document_type_id not in known:
                items.append(BulkItemResult(document_type_id, ok=False, error=TemplateNotFound.code))
                continue
            write(db, target, document_type_id, now=now)
            items.append(BulkItemResult(document_type_id, ok=True))

    result = BulkResult(updated=sum(1 for item in items if item.ok), items=items)
    logger.info(
        "%s scope=%s:%s updated=%d failed=%d",
        what,
        target.scope_type.value,
        target.scope_id,
        result.updated,
        len(result.failed),
    )
    return result


def grant_permissions(
    db: Session,
    target: PermissionTarget,
    document_type_ids: list[int],
    *,
    credits_per_use: int | None = None,
    mode: BulkMode = BulkMode.ATOMIC,
    actor: str | None = None,
) -> BulkResult:
    """Allow ``target`` to generate each document type.

    ``credits_per_use`` overrides the price when given; when omitted an
    existing override on the row is kept.
    """
    _validate_credits(credits_per_use)

    def _write(db, target, document_type_id, *, now):
        _write_grant(
            db,
            target,
            document_type_id,
            now=now,
            credits_per_use=credits_per_use,
            replace_credits=False,
            actor=actor,
        )

    return _apply_batch(db, target, document_type_ids, mode=mode, what="Permission grant", write=_write)


def revoke_permissions(
    db: Session,
    target: PermissionTarget,
    document_type_ids: list[int],
    *,
    mode: BulkMode = BulkMode.ATOMIC,
    actor: str | None = None,
) -> BulkResult:
    def _write(db, target, document_type_id, *, now):
        _write_revoke(db, target, document_type_id, now=now, actor=actor)

    return _apply_batch(db, target, document_type_ids, mode=mode, what="Permission revoke", write=_write)


def set_category_permissions(
    db: Session,
    target: PermissionTarget,
    category: str,
    *,
    is_allowed: bool,
    credits_per_use: int | None = None,
    actor: str | None = None,
) -> BulkResult:
    """Grant or revoke every active document type in ``category``."""
    ids = [
        row[0]
        for row in db.query(DocumentType.id)
        .filter(DocumentType.category == category, DocumentType.is_active.is_(True))
        .order_by(DocumentType.id.asc())
        .all()
    ]
    if not ids:
        return BulkResult(updated=0, items=[])
    if is_allowed:
        return grant_permissions(db, target, ids, credits_per_use=credits_per_use, actor=actor)
    return revoke_permissions(db, target, ids, actor=actor)


def set_permission(
    db: Session,
    target: PermissionTarget,
    document_type_id: int,
    *,
    is_allowed: bool,
    credits_per_use: int | None = None,
    actor: str | None = None,
) -> DocumentPermission:
    """Grant or revoke a single pair. A grant writes ``credits_per_use`` as given."""
    _validate_credits(credits_per_use)
    if db.query(DocumentType.id).filter(DocumentType.id == document_type_id).first() is None:
        raise TemplateNotFound(f"Document type {document_type_id} not found")

    now = utcnow()
    with write_transaction(db, "Permission update"):
        if is_allowed:
            _write_grant(
                db,
                target,
                document_type_id,
                now=now,
                credits_per_use=credits_per_use,
                replace_credits=True,
                actor=actor,
            )
        else:
            _write_revoke(db, target, document_type_id, now=now, actor=actor)
    return (
        db.query(DocumentPermission)
        .filter(
            DocumentPermission.scope_type == target.scope_type,
            DocumentPermission.scope_id == target.scope_id,
            DocumentPermission.document_type_id == document_type_id,
        )
        .populate_existing()
        .one()
    )


def list_permissions(
    db: Session,
    target: PermissionTarget | None = None,
    *,
    document_type_id: int | None = None,
) -> list[DocumentPermission]:
    query = db.query(DocumentPermission)
    if target is not None:
        query = query.filter(
            DocumentPermission.scope_type == target.scope_type,
            DocumentPermission.scope_id == target.scope_id,
        )
    if document_type_id is not None:
        query = query.filter(DocumentPermission.document_type_id == document_type_id)
    return query.order_by(DocumentPermission.document_type_id.asc(), DocumentPermission.id.asc()).all()


def permission_summary(db: Session) -> list[dict[str, Any]]:
    """Allowed/revoked row counts per document type."""
    allowed = func.sum(case((DocumentPermission.is_allowed.is_(True), 1), else_=0))
    revoked = func.sum(case((DocumentPermission.is_allowed.is_(False), 1), else_=0))
    rows = (
        db.query(DocumentType.id, DocumentType.name, DocumentType.category, allowed, revoked)
        .outerjoin(DocumentPermission, DocumentPermission.document_type_id == DocumentType.id)
        .group_by(DocumentType.id, DocumentType.name, DocumentType.category)
        .order_by(DocumentType.id.asc())
        .all()
    )
    return [
        {
            "document_type_id": type_id,
            "name": name,
            "category": category,
            "allowed": int(allowed_count or 0),
            "revoked": int(revoked_count or 0),
        }
        for type_id, name, category, allowed_count, revoked_count in rows
    ]
