# interview.py
from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


InterviewStage = Literal[
    "not_started",
    "phone_screen",
    "technical_1",
    "technical_2",
    "behavioral",
    "onsite",
    "system_design",
    "final",
    "offer",
    "completed",
]
RoundStatus = Literal["scheduled", "completed", "cancelled", "rescheduled", "no_show"]
InterviewFormat = Literal["video", "phone", "onsite", "take_home", "panel", "casual"]
InterviewOutcome = Literal["passed", "failed", "pending", "strong_yes", "yes", "no", "strong_no", "mixed"]
TemplateName = Literal["FAANG", "Startup", "Enterprise"]


class InterviewRoundBase(BaseModel):
    status: Optional[RoundStatus] = None
    scheduled_date: Optional[datetime] = None
    interview_format: Optional[InterviewFormat] = None
    interviewer_names: Optional[list[str]] = None
    next_steps: Optional[str] = None
    next_step_date: Optional[datetime] = None
    outcome: Optional[InterviewOutcome] = None
    duration_minutes: Optional[int] = Field(default=None, ge=0)
    feedback_summary: Optional[str] = None


class InterviewRoundCreate(InterviewRoundBase):
    round_number: int = Field(ge=1, le=8)
    stage: InterviewStage


class InterviewRoundUpdate(InterviewRoundBase):
    stage: Optional[InterviewStage] = None


class InterviewRoundRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    job_id: int
    round_number: int
    stage: str
    status: str
    scheduled_date: Optional[datetime] = None
    interview_format: Optional[str] = None
    interviewer_names: Optional[list[str]] = None
    next_steps: Optional[str] = None
    next_step_date: Optional[datetime] = None
    outcome: Optional[str] = None
    duration_minutes: Optional[int] = None
    feedback_summary: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BulkRoundsRequest(BaseModel):
    rounds: list[InterviewRoundCreate] = Field(default_factory=list)
    template: Optional[TemplateName] = None


class BulkRoundsUpdate(BaseModel):
    roundIds: list[int]
    updates: InterviewRoundUpdate


class BulkRoundsDelete(BaseModel):
    roundIds: list[int] = Field(min_length=1)
