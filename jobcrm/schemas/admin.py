# admin.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel


class MigrationAction(BaseModel):
    action: Literal["start", "pause", "resume"] = "start"
    migrationId: Optional[str] = None


class TimeWindow(BaseModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None


class MetricQuery(BaseModel):
    metric: Optional[str] = None
    timeWindow: Optional[TimeWindow] = None


class ExperimentSummary(BaseModel):
    id: str
    name: str
    description: str
    status: str
    startDate: datetime
    endDate: Optional[datetime] = None
    variants: list[dict[str, Any]]
    resultCount: int
