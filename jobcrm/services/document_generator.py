# document_generator.py
from __future__ import annotations

import html
import re
from datetime import date
from pathlib import Path

from jobcrm.config import Settings, settings as default_settings
from jobcrm.models.job import Job


TEMPLATE_DIR = Path(__file__).resolve().parents[1] / "resources"
COVER_LETTER_TEMPLATE = TEMPLATE_DIR / "cover_letter.html"


class ResumeNotFoundError(FileNotFoundError):
    pass


def safe_company_name(company: str | None) -> str:
    cleaned = re.sub(r"[^\w\s-]", "", company or "")
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned or "Company"


def format_letter_date(day: date) -> str:
    # "June 27, 2025"
    return f"{day.strftime('%B')} {day.day}, {day.year}"


def contact_line(cfg: Settings) -> str:
    parts: list[str] = []
    if cfg.candidate_phone:
        parts.append(html.escape(cfg.candidate_phone))
    if cfg.candidate_email:
        email = html.escape(cfg.candidate_email)
        parts.append(f'<a href="mailto:{email}">{email}</a>')
    if cfg.candidate_linkedin:
        link = html.escape(cfg.candidate_linkedin)
        label = re.sub(r"^https?://(www\.)?", "", link)
        parts.append(f'<a href="{link}">{label}</a>')
    return " | ".join(parts)


def render_cover_letter(job: Job, *, cfg: Settings | None = None, today: date | None = None) -> str:
    cfg = cfg or default_settings
    replacements = {
        "{{candidateName}}": html.escape(cfg.candidate_name),
        "{{contactLine}}": contact_line(cfg),
        "{{companyName}}": html.escape(job.company or ""),
        "{{jobTitle}}": html.escape(job.title or ""),
        "{{date}}": format_letter_date(today or date.today()),
    }
    rendered = COVER_LETTER_TEMPLATE.read_text(encoding="utf-8")
    for key, value in replacements.items():
        rendered = rendered.replace(key, value)
    return rendered


def cover_letter_filename(job: Job, cfg: Settings | None = None) -> str:
    cfg = cfg or default_settings
    return f"Cover Letter of {cfg.candidate_name} - {safe_company_name(job.company)}.html"


def resume_file(cfg: Settings | None = None) -> Path:
    cfg = cfg or default_settings
    path = Path(cfg.resume_path)
    if not path.is_file():
        raise ResumeNotFoundError("Resume file not found")
    return path


def resume_filename(job: Job, cfg: Settings | None = None) -> str:
    cfg = cfg or default_settings
    return f"Resume of {cfg.candidate_name} - {safe_company_name(job.company)}.PDF"
