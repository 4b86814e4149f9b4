"""Permission endpoints: caller checks and super-admin grant/revoke."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...components.catalog.service import list_document_types
from ...components.permissions import bulk
from ...components.permissions.resolver import (
    PermissionDecision,
    PermissionStatus,
    resolve_catalog,
    resolve_permission,
)
from ...deps import get_current_principal, require_super_admin
from ...platform.database import get_db
from ...platform.errors import TemplateNotFound
from ...schemas.permissions import (
    BulkPermissionRequest,
    BulkPermissionResponse,
    CatalogEntryResponse,
    PermissionCheckResponse,
    PermissionResponse,
    PermissionSummaryRow,
    PermissionUpsert,
)
from ...shared.principal import Principal

router = APIRouter(prefix="/permissions", tags=["Permissions"])


def _check_response(decision: PermissionDecision) -> PermissionCheckResponse:
    return PermissionCheckResponse(
        document_type_id=decision.document_type_id,
        is_enabled=decision.is_enabled,
        credits_required=decision.credits_required,
        tier=decision.tier.value if decision.tier else None,
    )


@router.get("", response_model=List[PermissionResponse])
def list_permissions(
    scope: Optional[str] = Query(default=None),
    target: Optional[str] = Query(default=None),
    document_type_id: Optional[int] = Query(default=None, alias="documentTypeId"),
    db: Session = Depends(get_db),
    _admin: str = Depends(require_super_admin),
):
    """Permission rows, optionally narrowed to one scope and/or document type."""
    scope_target = bulk.PermissionTarget.parse(scope, target) if scope else None
    return bulk.list_permissions(db, scope_target, document_type_id=document_type_id)


@router.post("", response_model=PermissionResponse)
def set_permission(
    body: PermissionUpsert,
    db: Session = Depends(get_db),
    actor: str = Depends(require_super_admin),
):
    return bulk.set_permission(
        db,
        bulk.PermissionTarget.parse(body.scope, body.target),
        body.document_type_id,
        is_allowed=body.is_allowed,
        credits_per_use=body.credits_per_use,
        actor=actor,
    )


@router.post("/bulk", response_model=BulkPermissionResponse)
def bulk_permissions(
    body: BulkPermissionRequest,
    db: Session = Depends(get_db),
    actor: str = Depends(require_super_admin),
):
    """Grant or revoke by category or by explicit id list."""
    target = bulk.PermissionTarget.parse(body.scope, body.target)
    if body.category is not None:
        result = bulk.set_category_permissions(
            db,
            target,
            body.category,
            is_allowed=body.is_allowed,
            credits_per_use=body.credits_per_use,
            actor=actor,
        )
    elif body.is_allowed:
        result = bulk.grant_permissions(
            db,
            target,
            body.document_type_ids,
            credits_per_use=body.credits_per_use,
            mode=body.mode,
            actor=actor,
        )
    else:
        result = bulk.revoke_permissions(db, target, body.document_type_ids, mode=body.mode, actor=actor)
    return BulkPermissionResponse(
        updated=result.updated,
        items=[
            {"document_type_id": item.document_type_id, "ok": item.ok, "error": item.error}
            for item in result.items
        ],
    )


@router.get("/summary", response_model=List[PermissionSummaryRow])
def permission_summary(db: Session = Depends(get_db), _admin: str = Depends(require_super_admin)):
    return bulk.permission_summary(db)


@router.get("/check", response_model=List[CatalogEntryResponse])
def check_catalog(
    category: Optional[str] = Query(default=None, max_length=100),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """The active catalog as the caller sees it: enabled flag and effective price."""
    document_types = list_document_types(db, category=category)
    return [
        CatalogEntryResponse(
            **_check_response(decision).model_dump(),
            name=document_type.name,
            name_bn=document_type.name_bn,
            category=document_type.category,
            is_popular=document_type.is_popular,
            base_credits=document_type.credits_required,
        )
        for document_type, decision in resolve_catalog(db, principal, document_types)
    ]


@router.get("/check/{document_type_id}", response_model=PermissionCheckResponse)
def check_permission(
    document_type_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    decision = resolve_permission(db, principal, document_type_id)
    if decision.status == PermissionStatus.TEMPLATE_NOT_FOUND:
        raise TemplateNotFound(f"Document type {document_type_id} not found or inactive")
    return _check_response(decision)
