from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field, model_validator

from ..components.permissions.bulk import BulkMode
from ..models.permission import PermissionScope
from .common import CamelModel

ScopeName = Literal["user", "school", "default"]


class PermissionResponse(CamelModel):
    id: int
    scope_type: PermissionScope
    scope_id: str
    document_type_id: int
    is_allowed: bool
    credits_per_use: Optional[int] = None
    granted_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    granted_by: Optional[str] = None
    created_at: Optional[datetime] = None


class PermissionUpsert(CamelModel):
    scope: ScopeName
    target: Optional[str] = None
    document_type_id: int = Field(gt=0)
    is_allowed: bool
    credits_per_use: Optional[int] = Field(default=None, ge=0)


class BulkPermissionRequest(CamelModel):
    scope: ScopeName
    target: Optional[str] = None
    document_type_ids: Optional[List[int]] = None
    category: Optional[str] = None
    is_allowed: bool
    credits_per_use: Optional[int] = Field(default=None, ge=0)
    mode: BulkMode = BulkMode.ATOMIC

    @model_validator(mode="after")
    def _one_selector(self):
        if (self.document_type_ids is None) == (self.category is None):
            raise ValueError("Provide exactly one of documentTypeIds or category")
        if self.document_type_ids is not None and not self.document_type_ids:
            raise ValueError("documentTypeIds must not be empty")
        return self


class BulkItem(CamelModel):
    document_type_id: int
    ok: bool
    error: Optional[str] = None


class BulkPermissionResponse(CamelModel):
    updated: int
    items: List[BulkItem] = []


class PermissionCheckResponse(CamelModel):
    document_type_id: int
    is_enabled: bool
    credits_required: int
    tier: Optional[str] = None


class CatalogEntryResponse(PermissionCheckResponse):
    name: str
    name_bn: Optional[str] = None
    category: str
    is_popular: bool
    base_credits: int


class PermissionSummaryRow(CamelModel):
    document_type_id: int
    name: str
    category: str
    allowed: int
    revoked: int
