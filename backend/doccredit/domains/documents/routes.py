"""Document generation, usage tracking, history and usage statistics."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ...components.documents.service import generate_document
from ...components.permissions.resolver import PermissionStatus, resolve_permission
from ...components.usage import service as usage
from ...deps import get_current_principal, require_super_admin
from ...platform.config import settings
from ...platform.database import get_db
from ...platform.errors import PermissionDenied, TemplateNotFound
from ...schemas.documents import (
    CategoryUsage,
    GenerateRequest,
    GenerateResponse,
    HistoryResponse,
    OverallStats,
    RebuildResponse,
    SchoolStatsResponse,
    SchoolUsage,
    TrackUsageResponse,
    WindowStatsResponse,
)
from ...shared.principal import Principal

router = APIRouter(prefix="/documents", tags=["Documents"])
admin_router = APIRouter(
    prefix="/admin/documents",
    tags=["Documents Admin"],
    dependencies=[Depends(require_super_admin)],
)


@router.post("/generate", response_model=GenerateResponse, status_code=status.HTTP_201_CREATED)
def generate(
    body: GenerateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Generate a document, charging the caller's effective price."""
    outcome = generate_document(db, principal, body.document_type_id, body.document_data)
    return GenerateResponse(
        document=outcome.document,
        credits_used=outcome.credits_used,
        balance_after=outcome.balance_after,
    )


@router.post("/{document_type_id}/track-usage", response_model=TrackUsageResponse)
def track_usage(
    document_type_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    decision = resolve_permission(db, principal, document_type_id)
    if decision.status == PermissionStatus.TEMPLATE_NOT_FOUND:
        raise TemplateNotFound(f"Document type {document_type_id} not found or inactive")
    if not decision.is_enabled:
        raise PermissionDenied(
            "Document generation is not enabled for this account",
            details={"documentTypeId": document_type_id},
        )
    document_type = usage.track_usage(db, document_type_id)
    return TrackUsageResponse(
        document_type_id=document_type.id,
        usage_count=document_type.usage_count,
        last_used=document_type.last_used,
    )


@router.get("/stats", response_model=SchoolStatsResponse)
def school_stats(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Generation totals for the caller's school, by category and by type."""
    return SchoolStatsResponse(
        by_category=usage.stats_by_category(db, school_id=principal.school_id),
        by_document_type=usage.document_stats_for_school(db, principal.school_id),
    )


@router.get("/history", response_model=HistoryResponse)
def history(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    mine: bool = Query(default=False),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    user_id = principal.user_id if mine else None
    items, total = usage.list_generated_documents(
        db, principal.school_id, page=page, limit=limit, user_id=user_id
    )
    return HistoryResponse(items=items, total=total, page=page, limit=limit)


@admin_router.get("/stats", response_model=OverallStats)
def overall_stats(db: Session = Depends(get_db)):
    return usage.stats_overall(db)


@admin_router.get("/stats/categories", response_model=List[CategoryUsage])
def category_stats(db: Session = Depends(get_db)):
    return usage.stats_by_category(db)


@admin_router.get("/stats/schools", response_model=List[SchoolUsage])
def school_usage(db: Session = Depends(get_db)):
    return usage.stats_by_school(db)


@admin_router.get("/stats/window", response_model=WindowStatsResponse)
def window_stats(
    days: Optional[int] = Query(default=None, ge=1, le=366),
    school_id: Optional[str] = Query(default=None, alias="schoolId"),
    db: Session = Depends(get_db),
):
    window = days or settings.STATS_DEFAULT_WINDOW_DAYS
    return WindowStatsResponse(days=window, buckets=usage.stats_by_window(db, days=window, school_id=school_id))


@admin_router.post("/stats/rebuild", response_model=RebuildResponse)
def rebuild_stats(db: Session = Depends(get_db)):
    """Recompute per-school document stats from the generation log."""
    return RebuildResponse(rows=usage.rebuild_document_stats(db))
