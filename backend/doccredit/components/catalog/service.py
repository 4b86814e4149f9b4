"""Document type registry: listing, admin toggles and catalog rollups."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import case, func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models.document_type import DocumentType
from ...platform.errors import ConflictError, NotFoundError, ValidationError
from ...services.storage import write_transaction
from ...shared.utils import escape_like, utcnow

logger = logging.getLogger("doccredit.catalog")

ALL_CATEGORIES = "all"


def list_document_types(
    db: Session,
    *,
    category: str | None = None,
    search: str | None = None,
    include_inactive: bool = False,
) -> list[DocumentType]:
    query = db.query(DocumentType)
    if not include_inactive:
        query = query.filter(DocumentType.is_active.is_(True))
    if category and category != ALL_CATEGORIES:
        query = query.filter(DocumentType.category == category)
    term = (search or "").strip()
    if term:
        pattern = f"%{escape_like(term.lower())}%"
        query = query.filter(
            or_(
                func.lower(DocumentType.name).like(pattern, escape="\\"),
                func.lower(func.coalesce(DocumentType.description, "")).like(pattern, escape="\\"),
            )
        )
    return query.order_by(DocumentType.is_popular.desc(), DocumentType.name.asc()).all()


def get_document_type(db: Session, document_type_id: int) -> DocumentType | None:
    return db.query(DocumentType).filter(DocumentType.id == document_type_id).first()


def require_document_type(db: Session, document_type_id: int) -> DocumentType:
    document_type = get_document_type(db, document_type_id)
    if document_type is None:
        raise NotFoundError(f"Document type {document_type_id} not found")
    return document_type


def create_document_type(
    db: Session,
    *,
    slug: str,
    name: str,
    category: str,
    credits_required: int = 1,
    name_bn: str | None = None,
    description: str | None = None,
    description_bn: str | None = None,
    is_active: bool = True,
    is_popular: bool = False,
) -> DocumentType:
    if credits_required < 0:
        raise ValidationError("credits_required must not be negative")
    document_type = DocumentType(
        slug=slug.strip(),
        name=name.strip(),
        name_bn=name_bn,
        category=category.strip(),
        description=description,
        description_bn=description_bn,
        credits_required=credits_required,
        is_active=is_active,
        is_popular=is_popular,
        usage_count=0,
    )
    db.add(document_type)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(f"Document type slug '{slug}' already exists") from exc
    db.refresh(document_type)
    logger.info("Created document type id=%s slug=%s", document_type.id, document_type.slug)
    return document_type


def _set_flag(db: Session, document_type_id: int, **values: Any) -> DocumentType:
    with write_transaction(db, "document type update"):
        result = db.execute(
            update(DocumentType)
            .where(DocumentType.id == document_type_id)
            .values(updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError(f"Document type {document_type_id} not found")
    return (
        db.query(DocumentType)
        .filter(DocumentType.id == document_type_id)
        .populate_existing()
        .one()
    )


def set_active(db: Session, document_type_id: int, is_active: bool) -> DocumentType:
    return _set_flag(db, document_type_id, is_active=bool(is_active))


def set_popular(db: Session, document_type_id: int, is_popular: bool) -> DocumentType:
    return _set_flag(db, document_type_id, is_popular=bool(is_popular))


def bulk_set_active(db: Session, category: str, is_active: bool) -> int:
    """Toggle every document type in ``category`` (or ``"all"``) in one statement."""
    stmt = update(DocumentType).values(is_active=bool(is_active), updated_at=utcnow())
    if category != ALL_CATEGORIES:
        stmt = stmt.where(DocumentType.category == category)
    with write_transaction(db, "bulk document type toggle"):
        result = db.execute(stmt.execution_options(synchronize_session=False))
    logger.info("Bulk toggled category=%s is_active=%s rows=%d", category, is_active, result.rowcount)
    return int(result.rowcount or 0)


def batch_update(
    db: Session,
    document_type_ids: list[int],
    *,
    is_active: bool | None = None,
    is_popular: bool | None = None,
) -> int:
    values: dict[str, Any] = {}
    if is_active is not None:
        values["is_active"] = bool(is_active)
    if is_popular is not None:
        values["is_popular"] = bool(is_popular)
    if not values:
        raise ValidationError("Nothing to update: set is_active and/or is_popular")
    ids = sorted({int(i) for i in document_type_ids})
    if not ids:
        raise ValidationError("document_type_ids must not be empty")
    with write_transaction(db, "document type batch update"):
        result = db.execute(
            update(DocumentType)
            .where(DocumentType.id.in_(ids))
            .values(updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
    return int(result.rowcount or 0)


def list_categories(db: Session) -> list[dict[str, Any]]:
    rows = (
        db.query(DocumentType.category, func.count(DocumentType.id))
        .filter(DocumentType.is_active.is_(True))
        .group_by(DocumentType.category)
        .order_by(DocumentType.category.asc())
        .all()
    )
    return [{"category": category, "count": int(count)} for category, count in rows]


def catalog_stats(db: Session) -> dict[str, Any]:
    active = func.sum(case((DocumentType.is_active.is_(True), 1), else_=0))
    popular = func.sum(case((DocumentType.is_popular.is_(True), 1), else_=0))
    rows = (
        db.query(DocumentType.category, func.count(DocumentType.id), active, popular)
        .group_by(DocumentType.category)
        .order_by(DocumentType.category.asc())
        .all()
    )
    categories = [
        {
            "category": category,
            "total": int(total or 0),
            "active": int(active_count or 0),
            "popular": int(popular_count or 0),
        }
        for category, total, active_count, popular_count in rows
    ]
    return {
        "categories": categories,
        "overall": {
            "total": sum(row["total"] for row in categories),
            "active": sum(row["active"] for row in categories),
            "popular": sum(row["popular"] for row in categories),
        },
    }
