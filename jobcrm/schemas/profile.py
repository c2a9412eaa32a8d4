# profile.py
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator


class UserProfile(BaseModel):
    """Preference record used to personalise enrichment prompts, risk scanning and chat."""

    name: str | None = None
    current_title: str | None = None
    seniority: str | None = None
    location: str | None = None
    min_base_comp: int | None = None
    remote_pref: str | None = None
    interview_style: str | None = None
    strengths: list[str] = Field(default_factory=list)
    red_flags: list[str] = Field(default_factory=list)
    dealbreakers: list[str] = Field(default_factory=list)
    # company_size, industries (list or {"preferred": [...], "undesired": [...]}), ...
    preferences: dict[str, Any] = Field(default_factory=dict)

    @field_validator("strengths", "red_flags", "dealbreakers", mode="before")
    @classmethod
    def _coerce_string_lists(cls, v):
        if v is None:
            return []
        # "a, b; c" is accepted as a convenience for form posts.
        if isinstance(v, str):
            return [part.strip() for part in v.replace(";", ",").split(",") if part.strip()]
        return v

    @field_validator("preferences", mode="before")
    @classmethod
    def _coerce_preferences(cls, v):
        return v or {}


class UserProfileUpdate(UserProfile):
    pass


class UserProfileResponse(BaseModel):
    profile: UserProfile
    metadata: dict[str, Any] = Field(default_factory=dict)
