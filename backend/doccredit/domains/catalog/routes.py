"""Document catalog endpoints: caller listing plus super-admin management."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ...components.catalog import service as catalog
from ...deps import get_current_principal, require_super_admin
from ...platform.database import get_db
from ...platform.errors import TemplateNotFound
from ...schemas.catalog import (
    ActiveUpdate,
    BatchUpdateRequest,
    BulkActiveRequest,
    CatalogStatsResponse,
    CategoryCount,
    DocumentTypeCreate,
    DocumentTypeResponse,
    PopularUpdate,
)
from ...schemas.common import UpdatedCount
from ...shared.principal import Principal

router = APIRouter(prefix="/document-types", tags=["Document Catalog"])
admin_router = APIRouter(
    prefix="/admin/document-types",
    tags=["Document Catalog Admin"],
    dependencies=[Depends(require_super_admin)],
)


@router.get("", response_model=List[DocumentTypeResponse])
def list_document_types(
    category: Optional[str] = Query(default=None, max_length=100),
    search: Optional[str] = Query(default=None, max_length=200),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Active document types, popular first."""
    return catalog.list_document_types(db, category=category, search=search)


@router.get("/categories", response_model=List[CategoryCount])
def list_categories(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return catalog.list_categories(db)


@router.get("/{document_type_id}", response_model=DocumentTypeResponse)
def get_document_type(
    document_type_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    document_type = catalog.get_document_type(db, document_type_id)
    if document_type is None or not document_type.is_active:
        raise TemplateNotFound(f"Document type {document_type_id} not found or inactive")
    return document_type


@admin_router.get("", response_model=List[DocumentTypeResponse])
def admin_list_document_types(
    category: Optional[str] = Query(default=None, max_length=100),
    search: Optional[str] = Query(default=None, max_length=200),
    db: Session = Depends(get_db),
):
    """Every document type, including deactivated ones."""
    return catalog.list_document_types(db, category=category, search=search, include_inactive=True)


@admin_router.post("", response_model=DocumentTypeResponse, status_code=status.HTTP_201_CREATED)
def create_document_type(body: DocumentTypeCreate, db: Session = Depends(get_db)):
    return catalog.create_document_type(db, **body.model_dump())


@admin_router.patch("/{document_type_id}/active", response_model=DocumentTypeResponse)
def set_active(document_type_id: int, body: ActiveUpdate, db: Session = Depends(get_db)):
    return catalog.set_active(db, document_type_id, body.is_active)


@admin_router.patch("/{document_type_id}/popular", response_model=DocumentTypeResponse)
def set_popular(document_type_id: int, body: PopularUpdate, db: Session = Depends(get_db)):
    return catalog.set_popular(db, document_type_id, body.is_popular)


@admin_router.post("/bulk-active", response_model=UpdatedCount)
def bulk_set_active(body: BulkActiveRequest, db: Session = Depends(get_db)):
    return UpdatedCount(updated=catalog.bulk_set_active(db, body.category, body.is_active))


@admin_router.post("/batch-update", response_model=UpdatedCount)
def batch_update(body: BatchUpdateRequest, db: Session = Depends(get_db)):
    updated = catalog.batch_update(
        db,
        body.document_type_ids,
        is_active=body.is_active,
        is_popular=body.is_popular,
    )
    return UpdatedCount(updated=updated)


@admin_router.get("/stats", response_model=CatalogStatsResponse)
def catalog_stats(db: Session = Depends(get_db)):
    return catalog.catalog_stats(db)
