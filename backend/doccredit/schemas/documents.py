from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from .common import CamelModel


class GenerateRequest(CamelModel):
    document_type_id: int = Field(gt=0)
    document_data: Dict[str, Any] = Field(default_factory=dict)


class GeneratedDocumentResponse(CamelModel):
    id: int
    document_type_id: int
    school_id: str
    user_id: Optional[int] = None
    credits_charged: int
    transaction_id: Optional[int] = None
    document_data: Optional[Dict[str, Any]] = None
    status: str
    generated_at: datetime


class GenerateResponse(CamelModel):
    document: GeneratedDocumentResponse
    credits_used: int
    balance_after: int


class TrackUsageResponse(CamelModel):
    document_type_id: int
    usage_count: int
    last_used: Optional[datetime] = None


class HistoryResponse(CamelModel):
    items: List[GeneratedDocumentResponse]
    total: int
    page: int
    limit: int


class CategoryUsage(CamelModel):
    category: str
    document_types: int
    active_document_types: int
    usage_count: int
    total_generated: int
    last_generated: Optional[datetime] = None


class DocumentTypeUsage(CamelModel):
    document_type_id: int
    name: str
    name_bn: Optional[str] = None
    category: str
    total_generated: int
    last_generated: Optional[datetime] = None


class SchoolStatsResponse(CamelModel):
    by_category: List[CategoryUsage]
    by_document_type: List[DocumentTypeUsage]


class OverallStats(CamelModel):
    document_types: int
    active_document_types: int
    usage_count: int
    total_generated: int
    credits_charged: int
    schools: int
    last_generated: Optional[datetime] = None


class SchoolUsage(CamelModel):
    school_id: str
    total_generated: int
    credits_charged: int
    last_generated: Optional[datetime] = None


class WindowBucket(CamelModel):
    date: str
    total_generated: int
    credits_charged: int


class WindowStatsResponse(CamelModel):
    days: int
    buckets: List[WindowBucket]


class RebuildResponse(CamelModel):
    rows: int
