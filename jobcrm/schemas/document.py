# document.py
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class IngestFile(BaseModel):
    path: Optional[str] = None
    name: Optional[str] = None


class IngestMetadata(BaseModel):
    tags: Optional[list[str]] = None
    memo: Optional[str] = None
    type: Optional[str] = None


class IngestRequest(BaseModel):
    files: list[IngestFile] = Field(default_factory=list)
    jobId: Optional[int] = None
    metadata: Optional[IngestMetadata] = None


class IngestedDocument(BaseModel):
    id: int
    title: str
    file: str
    snippet: str
    success: Optional[bool] = None
    warning: Optional[str] = None


class IngestError(BaseModel):
    file: str
    error: str


class IngestSummary(BaseModel):
    total: int
    successful: int
    warnings: int
    failed: int


class IngestResponse(BaseModel):
    jobId: int
    inserted: list[IngestedDocument]
    errors: list[IngestError]
    summary: IngestSummary


class KnowledgeSearchRequest(BaseModel):
    query: str = Field(min_length=1)
    k: int = Field(default=5, ge=1, le=50)
    threshold: float = Field(default=0.3, ge=0, le=1)
    entity_id: Optional[int] = None


class KnowledgeMatch(BaseModel):
    id: int
    entity_type: str
    entity_id: int
    source_type: str
    chunk_idx: int
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    document_type: Optional[str] = None
    similarity: float
