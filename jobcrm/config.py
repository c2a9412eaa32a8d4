from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# The repo-root .env is the source of truth for local runs, never for tests.
_ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
_IN_TEST = (os.getenv("ENVIRONMENT") or "").lower() == "test" or bool(os.getenv("PYTEST_CURRENT_TEST"))
if _ENV_PATH.exists() and not _IN_TEST:
    load_dotenv(dotenv_path=_ENV_PATH, override=True)


def _normalize_email(value: str) -> str:
    return (value or "").strip().lower()


def parse_email_list(raw: Any) -> list[str]:
    """Accept a list, a JSON array string or a comma-separated string."""
    if raw is None:
        return []
    if isinstance(raw, str):
        text = raw.strip()
        if text.startswith("["):
            try:
                raw = json.loads(text)
            except ValueError:
                raw = text.split(",")
        else:
            raw = text.split(",")
    if not isinstance(raw, (list, tuple, set)):
        raw = [raw]
    normalized = (_normalize_email(str(item)) for item in raw if item is not None)
    return [email for email in normalized if email]


class Settings(BaseSettings):
    app_name: str = Field(default="JobHunt CRM")
    api_prefix: str = Field(default="/api")
    version: str = Field(default="0.1.0")
    environment: str = Field(default="development")
    debug: bool = Field(default=True)

    # Database configuration
    db_url: str | None = Field(default=None, validation_alias="DB_URL")
    orm_db_url: str | None = Field(default=None, validation_alias="ORM_DB_URL")
    orm_use_mysql: bool = Field(default=False, validation_alias="ORM_USE_MYSQL")
    db_host: str = Field(default="localhost", validation_alias="DB_HOST")
    db_port: int = Field(default=3306, validation_alias="DB_PORT")
    db_name: str = Field(default="jobcrm", validation_alias="DB_NAME")
    db_user: str = Field(default="root", validation_alias="DB_USER")
    db_password: str = Field(default="password", validation_alias="DB_PASSWORD")
    db_charset: str = Field(default="utf8mb4", validation_alias="DB_CHARSET")

    jwt_secret: str = Field(default="change-me")
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=60)
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"],
        validation_alias="CORS_ORIGINS",
    )

    # - JSON array string: ADMIN_EMAILS=["admin@example.com","ops@example.com"]
    # - Comma-separated:   ADMIN_EMAILS=admin@example.com,ops@example.com
    admin_emails: list[str] = Field(default_factory=list, validation_alias="ADMIN_EMAILS")
    admin_email: str | None = Field(default=None, validation_alias="ADMIN_EMAIL")
    admin_emails_reload: bool = Field(default=False, validation_alias="ADMIN_EMAILS_RELOAD")

    # OpenAI
    openai_api_key: str | None = Field(default=None, validation_alias="OPENAI_API_KEY")
    jd_analysis_model: str = Field(default="gpt-4o-mini", validation_alias="JD_ANALYSIS_MODEL")
    chat_model: str = Field(default="gpt-4o-mini", validation_alias="CHAT_MODEL")
    embed_model: str = Field(default="text-embedding-3-small", validation_alias="EMBED_MODEL")

    # Shared secrets for the browser extension and internal jobs
    extension_api_key: str | None = Field(default=None, validation_alias="EXTENSION_API_KEY")
    internal_api_secret: str | None = Field(default=None, validation_alias="INTERNAL_API_SECRET")
    extension_profile_email: str | None = Field(default=None, validation_alias="EXTENSION_PROFILE_EMAIL")

    tracing_enabled: bool = Field(default=False, validation_alias="TRACING_ENABLED")

    # Enrichment rollout
    enrichment_prompt_version: str = Field(default="1.0", validation_alias="ENRICHMENT_PROMPT_VERSION")
    use_v2_enrichment: str | None = Field(default=None, validation_alias="USE_V2_ENRICHMENT")
    v2_rollout_percentage: int | None = Field(default=None, validation_alias="V2_ROLLOUT_PERCENTAGE")
    enable_enrichment_audit_ui: bool = Field(default=False, validation_alias="ENABLE_ENRICHMENT_AUDIT_UI")

    # Chat quotas (per user)
    chat_hourly_limit: int = Field(default=10, validation_alias="CHAT_HOURLY_LIMIT")
    chat_daily_limit: int = Field(default=50, validation_alias="CHAT_DAILY_LIMIT")

    # Documents
    docs_storage_dir: str = Field(default="./storage/docs", validation_alias="DOCS_STORAGE_DIR")
    resume_path: str = Field(default="./storage/resume.pdf", validation_alias="RESUME_PATH")
    candidate_name: str = Field(default="Candidate", validation_alias="CANDIDATE_NAME")
    candidate_email: str | None = Field(default=None, validation_alias="CANDIDATE_EMAIL")
    candidate_phone: str | None = Field(default=None, validation_alias="CANDIDATE_PHONE")
    candidate_linkedin: str | None = Field(default=None, validation_alias="CANDIDATE_LINKEDIN")

    @field_validator("admin_emails", mode="before")
    @classmethod
    def _validate_admin_emails(cls, v: Any) -> list[str]:
        return parse_email_list(v)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()


def build_sqlalchemy_db_url(settings: Settings) -> str:
    if settings.orm_db_url:
        return settings.orm_db_url

    # DB_URL alone must not silently fall back to sqlite.
    if settings.db_url:
        return settings.db_url

    if settings.environment.lower() == "development" and not settings.orm_use_mysql:
        return "sqlite:///./dev.db"

    return (
        f"mysql+pymysql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
        f"?charset={settings.db_charset}"
    )


def get_admin_allowlist(*, reload: bool | None = None) -> set[str]:
    do_reload = settings.admin_emails_reload if reload is None else reload
    if do_reload:
        emails: set[str] = set(parse_email_list(os.environ.get("ADMIN_EMAILS")))
        emails.update(parse_email_list(os.environ.get("ADMIN_EMAIL")))
        return emails

    emails = set(_normalize_email(e) for e in (settings.admin_emails or []))
    emails.update(parse_email_list(settings.admin_email))
    return emails


def is_admin_email(email: str) -> bool:
    return _normalize_email(email) in get_admin_allowlist()
