# job.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


JobStatus = Literal["new", "interested", "applied", "interviewing", "offer", "rejected", "archived"]


class JobStatusUpdate(BaseModel):
    id: int
    status: JobStatus


class JobUpdate(BaseModel):
    title: Optional[str] = None
    company: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    employment_type: Optional[str] = None
    experience_level: Optional[str] = None
    salary: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            raise ValueError("Title must be a non-empty string")
        return v.strip()


class JobListResponse(BaseModel):
    jobs: list[dict[str, Any]]
    total: int
    page: int
    perPage: int


class JobNoteCreate(BaseModel):
    content: str = Field(min_length=1)
    note_type: str = "general"


class JobNoteRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    job_id: int
    note_type: str
    content: str
    created_at: Optional[datetime] = None
