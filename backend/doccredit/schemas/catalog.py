from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .common import CamelModel


class DocumentTypeCreate(CamelModel):
    slug: str = Field(min_length=1, max_length=100, pattern=r"^[a-z0-9][a-z0-9_-]*$")
    name: str = Field(min_length=1, max_length=200)
    name_bn: Optional[str] = Field(default=None, max_length=200)
    category: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    description_bn: Optional[str] = None
    credits_required: int = Field(default=1, ge=0)
    is_active: bool = True
    is_popular: bool = False


class DocumentTypeResponse(CamelModel):
    id: int
    slug: str
    name: str
    name_bn: Optional[str] = None
    category: str
    description: Optional[str] = None
    description_bn: Optional[str] = None
    credits_required: int
    is_active: bool
    is_popular: bool
    usage_count: int
    last_used: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ActiveUpdate(CamelModel):
    is_active: bool


class PopularUpdate(CamelModel):
    is_popular: bool


class BulkActiveRequest(CamelModel):
    category: str = Field(default="all", min_length=1)
    is_active: bool


class BatchUpdateRequest(CamelModel):
    document_type_ids: List[int] = Field(min_length=1)
    is_active: Optional[bool] = None
    is_popular: Optional[bool] = None


class CategoryCount(CamelModel):
    category: str
    count: int


class CategoryTotals(CamelModel):
    total: int
    active: int
    popular: int


class CategoryStats(CategoryTotals):
    category: str


class CatalogStatsResponse(CamelModel):
    categories: List[CategoryStats]
    overall: CategoryTotals
