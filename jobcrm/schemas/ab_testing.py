# ab_testing.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


ExperimentMetric = Literal[
    "fit_score_accuracy",
    "extraction_completeness",
    "response_time",
    "token_usage",
    "error_rate",
    "validation_success_rate",
    "user_satisfaction",
]


class VariantConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    model: str | None = None
    temperature: float | None = Field(default=None, ge=0, le=2)
    maxTokens: int | None = Field(default=None, gt=0)
    systemPrompt: str | None = None
    promptTemplate: str | None = None
    responseFormat: Literal["json_object", "text"] | None = None


class TestVariant(BaseModel):
    id: str
    name: str
    description: str
    config: VariantConfig
    weight: float = Field(ge=0, le=1)
    enabled: bool = True


class TargetAudience(BaseModel):
    jobSources: list[str] | None = None
    jobTypes: list[str] | None = None
    companies: list[str] | None = None


class ABTestConfig(BaseModel):
    id: str
    name: str
    description: str
    startDate: datetime
    endDate: datetime | None = None
    variants: list[TestVariant] = Field(min_length=2)
    metrics: list[ExperimentMetric]
    targetAudience: TargetAudience | None = None
    status: Literal["draft", "active", "paused", "completed"] = "draft"


class ResultMetrics(BaseModel):
    fitScore: float | None = Field(default=None, ge=0, le=100)
    extractedFieldsCount: int | None = None
    responseTimeMs: float | None = None
    promptTokens: int | None = None
    completionTokens: int | None = None
    totalTokens: int | None = None
    validationPassed: bool | None = None
    errorOccurred: bool | None = None
    errorMessage: str | None = None


class TestResult(BaseModel):
    testId: str
    variantId: str
    jobId: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metrics: ResultMetrics
    metadata: dict[str, Any] | None = None


class VariantReport(BaseModel):
    id: str
    name: str
    metrics: dict[str, float]
    sampleSize: int


class ExperimentWinner(BaseModel):
    variantId: str
    confidence: float
    improvement: float


class ExperimentReport(BaseModel):
    testId: str
    testName: str
    status: str
    startDate: datetime
    endDate: datetime | None = None
    variants: list[VariantReport] = Field(default_factory=list)
    winner: ExperimentWinner | None = None
