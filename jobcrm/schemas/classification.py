# classification.py
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class ClassificationRequest(BaseModel):
    content: str = Field(min_length=1)
    sourceHint: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class ClassificationAlternative(BaseModel):
    type: str
    confidence: float = Field(ge=0, le=1)


class ClassificationResult(BaseModel):
    model_config = {"protected_namespaces": ()}

    documentType: str = Field(pattern=r"^[a-z-]+(?:/[a-z-]+)*$")
    confidence: float = Field(ge=0, le=1)
    alternatives: Optional[list[ClassificationAlternative]] = None
    model: str
    timestamp: str


class BatchDocument(BaseModel):
    id: str
    content: str = Field(min_length=1)
    sourceHint: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class BatchClassificationRequest(BaseModel):
    documents: list[BatchDocument] = Field(min_length=1, max_length=100)


class BatchClassificationItem(BaseModel):
    id: str
    classification: Optional[ClassificationResult] = None
    error: Optional[str] = None


class BatchClassificationResponse(BaseModel):
    results: list[BatchClassificationItem]
    processed: int
    failed: int


class JobClassificationRequest(BaseModel):
    job_id: int

    @field_validator("job_id")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("job_id must be positive")
        return v
