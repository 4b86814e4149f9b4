"""Usage metering and the statistics derived from generated_documents."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import case, distinct, func, or_, update
from sqlalchemy.orm import Session

from ...models.document_stats import DocumentStats
from ...models.document_type import DocumentType
from ...models.usage_log import UsageLog
from ...platform.errors import TemplateNotFound
from ...services.storage import upsert, write_transaction
from ...shared.principal import Principal
from ...shared.utils import utcnow

logger = logging.getLogger("doccredit.usage")


def _latest(column, candidate):
    """Keep whichever of the stored and proposed timestamps is later."""
    return case(
        (or_(column.is_(None), column < candidate), candidate),
        else_=column,
    )


def _bump_usage_counter(db: Session, document_type_id: int, now: datetime, *, active_only: bool) -> int:
    stmt = update(DocumentType).where(DocumentType.id == document_type_id)
    if active_only:
        stmt = stmt.where(DocumentType.is_active.is_(True))
    result = db.execute(
        stmt.values(
            usage_count=DocumentType.usage_count + 1,
            last_used=_latest(DocumentType.last_used, now),
        ).execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)


def record_usage(
    db: Session,
    principal: Principal,
    document_type_id: int,
    credits_charged: int,
    *,
    transaction_id: int | None = None,
    document_data: dict[str, Any] | None = None,
) -> UsageLog:
    """Meter one successful generation.

    Increments the catalog counter in place, appends the usage log row and
    bumps the (type, school) rollup, all in one database transaction.
    """
    now = utcnow()
    with write_transaction(db, "usage record"):
        if not _bump_usage_counter(db, document_type_id, now, active_only=False):
            raise TemplateNotFound(f"Document type {document_type_id} not found")
        log = UsageLog(
            document_type_id=document_type_id,
            school_id=str(principal.school_id),
            user_id=principal.user_id,
            credits_charged=int(credits_charged),
            transaction_id=transaction_id,
            document_data=document_data or {},
            status="generated",
            generated_at=now,
        )
        db.add(log)
        db.flush()
        upsert(
            db,
            DocumentStats,
            {
                "document_type_id": document_type_id,
                "school_id": str(principal.school_id),
                "total_generated": 1,
                "last_generated": now,
            },
            index_elements=["document_type_id", "school_id"],
            set_=lambda excluded: {
                "total_generated": DocumentStats.total_generated + 1,
                "last_generated": _latest(DocumentStats.last_generated, excluded.last_generated),
            },
        )
    logger.info(
        "Usage recorded school=%s user=%s document_type=%s credits=%d log=%s",
        principal.school_id,
        principal.user_id,
        document_type_id,
        credits_charged,
        log.id,
    )
    return log


def track_usage(db: Session, document_type_id: int) -> DocumentType:
    """Count a usage event that did not go through generation (e.g. a print)."""
    with write_transaction(db, "usage tracking"):
        if not _bump_usage_counter(db, document_type_id, utcnow(), active_only=True):
            raise TemplateNotFound(f"Document type {document_type_id} not found")
    return (
        db.query(DocumentType)
        .filter(DocumentType.id == document_type_id)
        .populate_existing()
        .one()
    )


def rebuild_document_stats(db: Session) -> int:
    """Recompute every document_stats row from generated_documents."""
    with write_transaction(db, "stats rebuild"):
        db.query(DocumentStats).delete(synchronize_session=False)
        rows = (
            db.query(
                UsageLog.document_type_id,
                UsageLog.school_id,
                func.count(UsageLog.id),
                func.max(UsageLog.generated_at),
            )
            .group_by(UsageLog.document_type_id, UsageLog.school_id)
            .all()
        )
        db.add_all(
            DocumentStats(
                document_type_id=document_type_id,
                school_id=school_id,
                total_generated=int(total),
                last_generated=last_generated,
            )
            for document_type_id, school_id, total, last_generated in rows
        )
    logger.info("Rebuilt document stats rows=%d", len(rows))
    return len(rows)


def document_stats_for_school(db: Session, school_id: str) -> list[dict[str, Any]]:
    rows = (
        db.query(DocumentStats, DocumentType)
        .join(DocumentType, DocumentType.id == DocumentStats.document_type_id)
        .filter(DocumentStats.school_id == str(school_id))
        .order_by(DocumentStats.total_generated.desc(), DocumentType.name.asc())
        .all()
    )
    return [
        {
            "document_type_id": document_type.id,
            "name": document_type.name,
            "name_bn": document_type.name_bn,
            "category": document_type.category,
            "total_generated": int(stats.total_generated or 0),
            "last_generated": stats.last_generated,
        }
        for stats, document_type in rows
    ]


def stats_by_category(db: Session, *, school_id: str | None = None) -> list[dict[str, Any]]:
    generated = (
        db.query(
            DocumentStats.document_type_id.label("document_type_id"),
            func.sum(DocumentStats.total_generated).label("total_generated"),
            func.max(DocumentStats.last_generated).label("last_generated"),
        )
    )
    if school_id is not None:
        generated = generated.filter(DocumentStats.school_id == str(school_id))
    generated = generated.group_by(DocumentStats.document_type_id).subquery()

    rows = (
        db.query(
            DocumentType.category,
            func.count(DocumentType.id),
            func.sum(case((DocumentType.is_active.is_(True), 1), else_=0)),
            func.sum(DocumentType.usage_count),
            func.sum(func.coalesce(generated.c.total_generated, 0)),
            func.max(generated.c.last_generated),
        )
        .outerjoin(generated, generated.c.document_type_id == DocumentType.id)
        .group_by(DocumentType.category)
        .order_by(DocumentType.category.asc())
        .all()
    )
    return [
        {
            "category": category,
            "document_types": int(types or 0),
            "active_document_types": int(active or 0),
            "usage_count": int(usage or 0),
            "total_generated": int(total or 0),
            "last_generated": last_generated,
        }
        for category, types, active, usage, total, last_generated in rows
    ]


def stats_overall(db: Session) -> dict[str, Any]:
    types_total, types_active, usage_total = (
        db.query(
            func.count(DocumentType.id),
            func.sum(case((DocumentType.is_active.is_(True), 1), else_=0)),
            func.sum(DocumentType.usage_count),
        ).one()
    )
    generated, credits_charged, schools, last_generated = (
        db.query(
            func.count(UsageLog.id),
            func.sum(UsageLog.credits_charged),
            func.count(distinct(UsageLog.school_id)),
            func.max(UsageLog.generated_at),
        ).one()
    )
    return {
        "document_types": int(types_total or 0),
        "active_document_types": int(types_active or 0),
        "usage_count": int(usage_total or 0),
        "total_generated": int(generated or 0),
        "credits_charged": int(credits_charged or 0),
        "schools": int(schools or 0),
        "last_generated": last_generated,
    }


def stats_by_school(db: Session) -> list[dict[str, Any]]:
    rows = (
        db.query(
            UsageLog.school_id,
            func.count(UsageLog.id),
            func.sum(UsageLog.credits_charged),
            func.max(UsageLog.generated_at),
        )
        .group_by(UsageLog.school_id)
        .order_by(func.count(UsageLog.id).desc(), UsageLog.school_id.asc())
        .all()
    )
    return [
        {
            "school_id": school_id,
            "total_generated": int(total or 0),
            "credits_charged": int(credits or 0),
            "last_generated": last_generated,
        }
        for school_id, total, credits, last_generated in rows
    ]


def stats_by_window(db: Session, *, days: int, school_id: str | None = None) -> list[dict[str, Any]]:
    """Daily generation counts over the trailing ``days`` days."""
    since = utcnow() - timedelta(days=days)
    day = func.date(UsageLog.generated_at)
    query = db.query(day, func.count(UsageLog.id), func.sum(UsageLog.credits_charged)).filter(
        UsageLog.generated_at >= since
    )
    if school_id is not None:
        query = query.filter(UsageLog.school_id == str(school_id))
    rows = query.group_by(day).order_by(day.asc()).all()
    return [
        {"date": str(bucket), "total_generated": int(total or 0), "credits_charged": int(credits or 0)}
        for bucket, total, credits in rows
    ]


def list_generated_documents(
    db: Session,
    school_id: str,
    *,
    page: int = 1,
    limit: int = 20,
    user_id: int | None = None,
) -> tuple[list[UsageLog], int]:
    query = db.query(UsageLog).filter(UsageLog.school_id == str(school_id))
    if user_id is not None:
        query = query.filter(UsageLog.user_id == user_id)
    total = query.count()
    items = (
        query.order_by(UsageLog.generated_at.desc(), UsageLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total
