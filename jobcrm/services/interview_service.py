# interview_service.py
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from sqlalchemy.orm import Session

from jobcrm.models.interview_round import InterviewRound
from jobcrm.models.job import Job
from jobcrm.models.job_note import JobNote
from jobcrm.schemas.interview import InterviewRoundRead


logger = logging.getLogger(__name__)

STAGE_ORDER = (
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
)
STAGE_LABELS = {
    "not_started": "Not Started",
    "phone_screen": "Phone Screen",
    "technical_1": "Technical Round 1",
    "technical_2": "Technical Round 2",
    "behavioral": "Behavioral",
    "onsite": "Onsite",
    "system_design": "System Design",
    "final": "Final Round",
    "offer": "Offer Stage",
    "completed": "Completed",
}
STATUS_COLORS = {
    "scheduled": "blue",
    "completed": "green",
    "cancelled": "red",
    "rescheduled": "yellow",
    "no_show": "red",
}
OUTCOME_COLORS = {
    "strong_yes": "green",
    "yes": "green",
    "passed": "green",
    "pending": "yellow",
    "mixed": "yellow",
    "no": "red",
    "strong_no": "red",
    "failed": "red",
}
POSITIVE_OUTCOMES = ("passed", "yes", "strong_yes")
MAX_ROUND_NUMBER = 8


@dataclass(frozen=True)
class RoundTemplate:
    round_number: int
    stage: str
    interview_format: str
    typical_duration_minutes: int
    typical_days_after_previous: int | None = None


@dataclass(frozen=True)
class InterviewTemplate:
    name: str
    description: str
    rounds: tuple[RoundTemplate, ...]


INTERVIEW_TEMPLATES: dict[str, InterviewTemplate] = {
    "FAANG": InterviewTemplate(
        "FAANG",
        "Typical FAANG interview process (7 rounds)",
        (
            RoundTemplate(1, "phone_screen", "phone", 30),
            RoundTemplate(2, "technical_1", "video", 60, 7),
            RoundTemplate(3, "technical_2", "video", 60, 3),
            RoundTemplate(4, "behavioral", "video", 45, 3),
            RoundTemplate(5, "system_design", "video", 60, 3),
            RoundTemplate(6, "onsite", "onsite", 240, 7),
            RoundTemplate(7, "final", "video", 30, 5),
        ),
    ),
    "Startup": InterviewTemplate(
        "Startup",
        "Typical startup interview process (3 rounds)",
        (
            RoundTemplate(1, "phone_screen", "phone", 30),
            RoundTemplate(2, "technical_1", "video", 90, 5),
            RoundTemplate(3, "final", "video", 60, 3),
        ),
    ),
    "Enterprise": InterviewTemplate(
        "Enterprise",
        "Typical enterprise interview process (5 rounds)",
        (
            RoundTemplate(1, "phone_screen", "phone", 30),
            RoundTemplate(2, "technical_1", "video", 60, 7),
            RoundTemplate(3, "behavioral", "video", 45, 5),
            RoundTemplate(4, "onsite", "onsite", 180, 10),
            RoundTemplate(5, "final", "video", 30, 5),
        ),
    ),
}


class DuplicateRoundError(ValueError):
    def __init__(self, round_number: int):
        super().__init__(f"Round {round_number} already exists for this job")
        self.round_number = round_number


def get_next_interview_stage(current: str) -> str:
    if current not in STAGE_ORDER or current == STAGE_ORDER[-1]:
        return current
    return STAGE_ORDER[STAGE_ORDER.index(current) + 1]


def get_stage_label(stage: str) -> str:
    return STAGE_LABELS.get(stage, stage)


def get_status_color(status: str) -> str:
    return STATUS_COLORS.get(status, "gray")


def get_outcome_color(outcome: str | None) -> str:
    if not outcome:
        return "gray"
    return OUTCOME_COLORS.get(outcome, "gray")


def note_type_for_round(round_id: int) -> str:
    return f"interview_round_{round_id}"


def round_to_dict(round_: InterviewRound, notes: Iterable[JobNote] = ()) -> dict[str, Any]:
    data = InterviewRoundRead.model_validate(round_).model_dump(mode="json")
    data["stage_label"] = get_stage_label(round_.stage)
    data["notes"] = [
        {
            "id": n.id,
            "note_type": n.note_type,
            "content": n.content,
            "created_at": n.created_at.isoformat() if n.created_at else None,
        }
        for n in notes
    ]
    return data


def _notes_by_round(db: Session, job_id: int, round_ids: list[int]) -> dict[str, list[JobNote]]:
    if not round_ids:
        return {}
    wanted = [note_type_for_round(rid) for rid in round_ids]
    notes = (
        db.query(JobNote)
        .filter(JobNote.job_id == job_id, JobNote.note_type.in_(wanted))
        .order_by(JobNote.created_at.desc(), JobNote.id.desc())
        .all()
    )
    grouped: dict[str, list[JobNote]] = {}
    for note in notes:
        grouped.setdefault(note.note_type, []).append(note)
    return grouped


def list_rounds(db: Session, job_id: int) -> list[dict[str, Any]]:
    rounds = (
        db.query(InterviewRound)
        .filter(InterviewRound.job_id == job_id)
        .order_by(InterviewRound.round_number.asc())
        .all()
    )
    notes = _notes_by_round(db, job_id, [r.id for r in rounds])
    return [round_to_dict(r, notes.get(note_type_for_round(r.id), [])) for r in rounds]


def get_round(db: Session, job_id: int, round_id: int) -> InterviewRound | None:
    return (
        db.query(InterviewRound)
        .filter(InterviewRound.id == round_id, InterviewRound.job_id == job_id)
        .first()
    )


def get_round_with_notes(db: Session, job_id: int, round_id: int) -> dict[str, Any] | None:
    round_ = get_round(db, job_id, round_id)
    if round_ is None:
        return None
    notes = _notes_by_round(db, job_id, [round_id])
    return round_to_dict(round_, notes.get(note_type_for_round(round_id), []))


def sync_job_interview_stage(db: Session, job: Job) -> None:
    """Point the job's stage at its highest round; reset it when no rounds remain."""
    latest = (
        db.query(InterviewRound)
        .filter(InterviewRound.job_id == job.id)
        .order_by(InterviewRound.round_number.desc())
        .first()
    )
    if latest is None:
        job.interview_status = "applied"
        job.current_interview_stage = "not_started"
    else:
        job.interview_status = "interviewing"
        job.current_interview_stage = latest.stage


def _round_exists(db: Session, job_id: int, round_number: int) -> bool:
    return (
        db.query(InterviewRound.id)
        .filter(InterviewRound.job_id == job_id, InterviewRound.round_number == round_number)
        .first()
        is not None
    )


def create_round(db: Session, job: Job, user_id: int | None, data: dict[str, Any]) -> InterviewRound:
    if _round_exists(db, job.id, data["round_number"]):
        raise DuplicateRoundError(data["round_number"])
    values = {k: v for k, v in data.items() if v is not None}
    values.setdefault("status", "scheduled")
    round_ = InterviewRound(job_id=job.id, user_id=user_id, **values)
    db.add(round_)
    db.flush()
    sync_job_interview_stage(db, job)
    db.commit()
    db.refresh(round_)
    return round_


def update_round(
    db: Session,
    job: Job,
    round_id: int,
    user_id: int | None,
    changes: dict[str, Any],
) -> InterviewRound | None:
    round_ = get_round(db, job.id, round_id)
    if round_ is None:
        return None
    for name, value in changes.items():
        setattr(round_, name, value)
    db.flush()

    if (
        changes.get("status") == "completed"
        and changes.get("outcome") in POSITIVE_OUTCOMES
        and round_.round_number < MAX_ROUND_NUMBER
    ):
        next_stage = get_next_interview_stage(round_.stage)
        if next_stage not in (round_.stage, "completed") and not _round_exists(db, job.id, round_.round_number + 1):
            db.add(
                InterviewRound(
                    job_id=job.id,
                    user_id=user_id,
                    round_number=round_.round_number + 1,
                    stage=next_stage,
                    status="scheduled",
                )
            )
            db.flush()
            logger.info("auto-created round %s (%s) for job %s", round_.round_number + 1, next_stage, job.id)

    sync_job_interview_stage(db, job)
    db.commit()
    db.refresh(round_)
    return round_


def delete_round(db: Session, job: Job, round_id: int) -> bool:
    round_ = get_round(db, job.id, round_id)
    if round_ is None:
        return False
    db.delete(round_)
    db.query(JobNote).filter(
        JobNote.job_id == job.id, JobNote.note_type == note_type_for_round(round_id)
    ).delete(synchronize_session=False)
    db.flush()
    sync_job_interview_stage(db, job)
    db.commit()
    return True


def template_rounds(name: str) -> list[dict[str, Any]]:
    template = INTERVIEW_TEMPLATES[name]
    return [
        {
            "round_number": r.round_number,
            "stage": r.stage,
            "interview_format": r.interview_format,
            "status": "scheduled",
            "duration_minutes": r.typical_duration_minutes,
        }
        for r in template.rounds
    ]


def bulk_upsert_rounds(
    db: Session,
    job: Job,
    user_id: int | None,
    rounds: list[dict[str, Any]],
    template: str | None = None,
) -> list[InterviewRound]:
    """Insert or overwrite rounds keyed by round number; a template replaces ``rounds``."""
    if template:
        rounds = template_rounds(template)

    saved: list[InterviewRound] = []
    for data in rounds:
        values = {k: v for k, v in data.items() if v is not None}
        existing = (
            db.query(InterviewRound)
            .filter(InterviewRound.job_id == job.id, InterviewRound.round_number == values["round_number"])
            .first()
        )
        if existing is None:
            values.setdefault("status", "scheduled")
            existing = InterviewRound(job_id=job.id, user_id=user_id, **values)
            db.add(existing)
        else:
            for name, value in values.items():
                setattr(existing, name, value)
        saved.append(existing)
    db.flush()
    if saved:
        sync_job_interview_stage(db, job)
    db.commit()
    for round_ in saved:
        db.refresh(round_)
    return sorted(saved, key=lambda r: r.round_number)


def bulk_update_rounds(db: Session, job: Job, round_ids: list[int], updates: dict[str, Any]) -> list[InterviewRound]:
    rounds = (
        db.query(InterviewRound)
        .filter(InterviewRound.job_id == job.id, InterviewRound.id.in_(round_ids))
        .order_by(InterviewRound.round_number.asc())
        .all()
    )
    for round_ in rounds:
        for name, value in updates.items():
            setattr(round_, name, value)
    db.flush()
    sync_job_interview_stage(db, job)
    db.commit()
    for round_ in rounds:
        db.refresh(round_)
    return rounds


def bulk_delete_rounds(db: Session, job: Job, round_ids: list[int]) -> int:
    removed = (
        db.query(InterviewRound)
        .filter(InterviewRound.job_id == job.id, InterviewRound.id.in_(round_ids))
        .delete(synchronize_session=False)
    )
    db.query(JobNote).filter(
        JobNote.job_id == job.id,
        JobNote.note_type.in_([note_type_for_round(rid) for rid in round_ids]),
    ).delete(synchronize_session=False)
    db.flush()
    db.expire(job, ["interview_rounds"])
    sync_job_interview_stage(db, job)
    db.commit()
    return removed


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def build_timeline(
    db: Session,
    *,
    days: int = 30,
    status: str = "scheduled",
    now: datetime | None = None,
) -> dict[str, Any]:
    """Rounds scheduled in the next ``days`` days across all jobs, grouped per calendar day."""
    start = now or datetime.now(timezone.utc)
    end = start + timedelta(days=days)

    query = (
        db.query(InterviewRound, Job)
        .join(Job, Job.id == InterviewRound.job_id)
        .filter(InterviewRound.scheduled_date.isnot(None))
        .order_by(InterviewRound.scheduled_date.asc())
    )
    if status and status != "all":
        query = query.filter(InterviewRound.status == status)

    interviews: list[dict[str, Any]] = []
    for round_, job in query.all():
        # sqlite hands back naive datetimes; compare in UTC.
        scheduled = _as_utc(round_.scheduled_date)
        if scheduled < start or scheduled > end:
            continue
        item = round_to_dict(round_)
        item["job"] = {
            "id": job.id,
            "title": job.title,
            "company": job.company,
            "location": job.location,
            "current_interview_stage": job.current_interview_stage,
            "interview_status": job.interview_status,
        }
        item["_day"] = scheduled.date().isoformat()
        interviews.append(item)

    grouped: dict[str, dict[str, Any]] = {}
    for item in interviews:
        day = item.pop("_day")
        grouped.setdefault(day, {"date": day, "interviews": []})["interviews"].append(item)

    return {
        "success": True,
        "timeline": [grouped[day] for day in sorted(grouped)],
        "stats": {
            "total": len(interviews),
            "byStatus": dict(Counter(i["status"] for i in interviews)),
            "byStage": dict(Counter(i["stage"] for i in interviews)),
            "nextInterview": interviews[0] if interviews else None,
        },
        "dateRange": {"start": start.isoformat(), "end": end.isoformat(), "days": days},
    }
