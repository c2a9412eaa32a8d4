# migration_service.py
"""Backfill enrichments for jobs that were stored without one.

Progress lives in process memory only; a restart loses running migrations.
"""
from __future__ import annotations

import hashlib
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy.orm import Session

from jobcrm.database import SessionLocal
from jobcrm.models.enrichment import JobEnrichment
from jobcrm.models.job import Job
from jobcrm.services.enrichment_service import enrich_existing_job
from jobcrm.services.llm_client import LLMClient
from jobcrm.services.tracing import ServiceNames, log_trace_event


logger = logging.getLogger(__name__)

BATCH_SIZE = 10
MAX_CONCURRENT = 3
CHECKPOINT_INTERVAL = 50


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class MigrationNotFound(LookupError):
    pass


@dataclass
class MigrationState:
    id: str
    totalJobs: int
    lastProcessedId: int | None = None
    processedJobs: int = 0
    successCount: int = 0
    errorCount: int = 0
    startedAt: str = field(default_factory=_now_iso)
    updatedAt: str = field(default_factory=_now_iso)
    checkpoints: list[str] = field(default_factory=list)
    status: str = "running"  # running | paused | completed | failed | cancelled
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def jobs_missing_enrichment(db: Session):
    return (
        db.query(Job)
        .outerjoin(JobEnrichment, JobEnrichment.job_id == Job.id)
        .filter(JobEnrichment.id.is_(None))
    )


class MigrationManager:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self.session_factory = session_factory
        self.run_in_background = True
        self._states: dict[str, MigrationState] = {}
        self._workers: dict[str, threading.Thread] = {}
        self._lock = threading.Lock()

    def list_all(self) -> list[MigrationState]:
        with self._lock:
            return list(self._states.values())

    def get(self, migration_id: str) -> MigrationState:
        with self._lock:
            state = self._states.get(migration_id)
        if state is None:
            raise MigrationNotFound("Migration not found")
        return state

    def delete(self, migration_id: str) -> None:
        """Forget a migration; a worker still running it stops after its current chunk."""
        with self._lock:
            state = self._states.pop(migration_id, None)
            if state is None:
                raise MigrationNotFound("Migration not found")
            if state.status in ("running", "paused"):
                state.status = "cancelled"
                state.updatedAt = _now_iso()

    def reset(self) -> None:
        with self._lock:
            for state in self._states.values():
                if state.status in ("running", "paused"):
                    state.status = "cancelled"
            self._states.clear()

    def join(self, migration_id: str, timeout: float | None = None) -> bool:
        """Wait for the background worker of ``migration_id``; True once none is alive."""
        with self._lock:
            worker = self._workers.get(migration_id)
        if worker is None:
            return True
        worker.join(timeout)
        return not worker.is_alive()

    def start(self, llm: LLMClient) -> MigrationState:
        with self.session_factory() as db:
            total = jobs_missing_enrichment(db).count()
        migration_id = hashlib.md5(str(time.time_ns()).encode()).hexdigest()
        state = MigrationState(id=migration_id, totalJobs=total)
        with self._lock:
            self._states[migration_id] = state
        logger.info("migration %s started for %s jobs", migration_id, total)
        self._schedule(migration_id, llm)
        return state

    def pause(self, migration_id: str) -> MigrationState:
        state = self.get(migration_id)
        with self._lock:
            state.status = "paused"
            state.updatedAt = _now_iso()
        return state

    def resume(self, migration_id: str, llm: LLMClient) -> MigrationState | None:
        """Resume a paused migration; returns None when it was not paused."""
        state = self.get(migration_id)
        with self._lock:
            if state.status != "paused":
                return None
            state.status = "running"
            state.updatedAt = _now_iso()
            # A worker still finishing its chunk picks the running status back up.
            if migration_id in self._workers:
                return state
        self._schedule(migration_id, llm)
        return state

    def _schedule(self, migration_id: str, llm: LLMClient) -> None:
        if not self.run_in_background:
            self.run(migration_id, llm)
            return
        worker = threading.Thread(
            target=self.run, args=(migration_id, llm), name=f"migration-{migration_id[:8]}", daemon=True
        )
        with self._lock:
            self._workers[migration_id] = worker
        worker.start()

    def _current(self, migration_id: str) -> MigrationState | None:
        """The state when it is still registered and running; otherwise drop the worker entry."""
        with self._lock:
            state = self._states.get(migration_id)
            if state is None or state.status != "running":
                self._workers.pop(migration_id, None)
                return None
            return state

    def run(self, migration_id: str, llm: LLMClient) -> None:
        while True:
            state = self._current(migration_id)
            if state is None:
                return
            try:
                job_ids = self._next_batch(state)
            except Exception as exc:
                logger.exception("migration %s failed to load a batch", migration_id)
                with self._lock:
                    state.status = "failed"
                    state.errors.append({"jobId": "batch", "error": str(exc), "timestamp": _now_iso()})
                    self._workers.pop(migration_id, None)
                return
            if not job_ids:
                with self._lock:
                    if state.status == "running":
                        state.status = "completed"
                        state.updatedAt = _now_iso()
                    self._workers.pop(migration_id, None)
                logger.info("migration %s completed: %s ok, %s failed", migration_id, state.successCount, state.errorCount)
                return
            for start in range(0, len(job_ids), MAX_CONCURRENT):
                state = self._current(migration_id)
                if state is None:
                    logger.info("migration %s stopped before job %s", migration_id, job_ids[start])
                    return
                chunk = job_ids[start:start + MAX_CONCURRENT]
                with ThreadPoolExecutor(max_workers=MAX_CONCURRENT) as pool:
                    list(pool.map(lambda job_id: self._migrate_job(state, llm, job_id), chunk))

    def _next_batch(self, state: MigrationState) -> list[int]:
        with self.session_factory() as db:
            query = jobs_missing_enrichment(db)
            if state.lastProcessedId is not None:
                query = query.filter(Job.id > state.lastProcessedId)
            rows = query.order_by(Job.id.asc()).limit(BATCH_SIZE).with_entities(Job.id).all()
        return [row[0] for row in rows]

    def _migrate_job(self, state: MigrationState, llm: LLMClient, job_id: int) -> None:
        error: str | None = None
        with self.session_factory() as db:
            try:
                job = db.get(Job, job_id)
                if job is None:
                    raise LookupError(f"Job {job_id} not found")
                enrich_existing_job(db, llm, job, f"migration-{state.id}-{job_id}")
            except Exception as exc:
                error = str(exc) or "Unknown error"
                logger.warning("migration %s: job %s failed: %s", state.id, job_id, error)

        with self._lock:
            if error is None:
                state.successCount += 1
            else:
                state.errorCount += 1
                state.errors.append({"jobId": job_id, "error": error, "timestamp": _now_iso()})
            state.processedJobs += 1
            state.lastProcessedId = max(job_id, state.lastProcessedId or 0)
            state.updatedAt = _now_iso()
            checkpoint = state.processedJobs % CHECKPOINT_INTERVAL == 0
            if checkpoint:
                state.checkpoints.append(f"Processed {state.processedJobs}/{state.totalJobs} at {state.updatedAt}")
        if checkpoint:
            log_trace_event(
                correlation_id=f"migration-{state.id}",
                service_name=ServiceNames.ENRICH,
                event_name="MIGRATION_CHECKPOINT",
                status="in_progress",
                metadata={"processed": state.processedJobs, "total": state.totalJobs},
            )


migrations = MigrationManager()
