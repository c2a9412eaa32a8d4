from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

from conftest import EXTENSION_HEADERS, INTERNAL_HEADERS, FakeLLM, auth_headers_for
from jobcrm.schemas import ab_testing as ab_schemas
from jobcrm.services.ab_testing import experiments
from jobcrm.services.benchmarks import benchmark
from jobcrm.services.migration_service import migrations


MIGRATE = "/admin/migrate-enrichments"


def _admin(client) -> dict[str, str]:
    return auth_headers_for(client, "admin@example.com")


def test_migration_requires_internal_key(client) -> None:
    assert client.get(MIGRATE).status_code == 401
    r = client.post(MIGRATE, json={}, headers={"x-internal-api-key": "wrong"})
    assert r.status_code == 401
    assert r.json() == {"error": "Unauthorized"}


def test_migration_enriches_jobs_without_enrichment(client, profile_headers, make_job) -> None:
    job_id = make_job()

    r = client.post(MIGRATE, json={"action": "start"}, headers=INTERNAL_HEADERS)
    assert r.status_code == 200
    body = r.json()
    assert body["message"] == "Started migration for 1 jobs"
    migration = body["migration"]
    assert migration["status"] == "completed"
    assert migration["totalJobs"] == 1
    assert migration["processedJobs"] == 1
    assert migration["successCount"] == 1
    assert migration["lastProcessedId"] == job_id

    r = client.get(f"/api/jobs/{job_id}", headers=profile_headers)
    assert r.json()["job"]["ai_fit_score"] == 82

    migration_id = migration["id"]
    r = client.get(MIGRATE, params={"id": migration_id}, headers=INTERNAL_HEADERS)
    assert r.json()["migration"]["id"] == migration_id
    r = client.get(MIGRATE, headers=INTERNAL_HEADERS)
    assert [m["id"] for m in r.json()["migrations"]] == [migration_id]

    # Nothing is left to migrate.
    r = client.post(MIGRATE, json={}, headers=INTERNAL_HEADERS)
    assert r.json()["migration"]["totalJobs"] == 0


def test_migration_records_job_failures(client, profile_headers, make_job, fake_llm) -> None:
    job_id = make_job()
    fake_llm.replies.append("no json here")

    migration = client.post(MIGRATE, json={}, headers=INTERNAL_HEADERS).json()["migration"]
    assert migration["status"] == "completed"
    assert migration["errorCount"] == 1
    assert migration["errors"][0]["jobId"] == job_id
    assert "Failed to parse" in migration["errors"][0]["error"]


def test_migration_pause_resume_and_delete(client, profile_headers) -> None:
    migration_id = client.post(MIGRATE, json={}, headers=INTERNAL_HEADERS).json()["migration"]["id"]

    r = client.post(MIGRATE, json={"action": "pause"}, headers=INTERNAL_HEADERS)
    assert r.status_code == 400
    assert r.json() == {"error": "Migration ID required"}

    r = client.post(MIGRATE, json={"action": "pause", "migrationId": "nope"}, headers=INTERNAL_HEADERS)
    assert r.status_code == 404

    r = client.post(MIGRATE, json={"action": "pause", "migrationId": migration_id}, headers=INTERNAL_HEADERS)
    assert r.json()["migration"]["status"] == "paused"

    r = client.post(MIGRATE, json={"action": "resume", "migrationId": migration_id}, headers=INTERNAL_HEADERS)
    assert r.json()["migration"]["status"] == "completed"

    r = client.post(MIGRATE, json={"action": "resume", "migrationId": migration_id}, headers=INTERNAL_HEADERS)
    assert r.status_code == 409
    assert r.json() == {"error": "Migration is not paused"}

    assert client.delete(MIGRATE, headers=INTERNAL_HEADERS).status_code == 400
    r = client.delete(MIGRATE, params={"id": migration_id}, headers=INTERNAL_HEADERS)
    assert r.json() == {"message": "Migration deleted"}
    assert client.get(MIGRATE, params={"id": migration_id}, headers=INTERNAL_HEADERS).status_code == 404
    assert client.delete(MIGRATE, params={"id": migration_id}, headers=INTERNAL_HEADERS).status_code == 404


class GatedLLM(FakeLLM):
    """Holds every chat call until ``gate`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = threading.Event()

    def chat(self, messages, **kwargs):
        self.gate.wait(5)
        return super().chat(messages, **kwargs)


def test_deleted_background_migration_stops(client, profile_headers, make_job, monkeypatch) -> None:
    for i in range(6):
        make_job(url=f"https://jobs.example.com/bg/{i}")
    monkeypatch.setattr(migrations, "run_in_background", True)
    llm = GatedLLM()

    state = migrations.start(llm)
    migrations.delete(state.id)
    llm.gate.set()

    assert migrations.join(state.id, timeout=10)
    assert state.status == "cancelled"
    # At most the chunk already in flight was processed.
    assert state.processedJobs <= 3
    assert len(llm.chat_calls) <= 3


def test_resumed_background_migration_runs_one_worker(client, profile_headers, make_job, monkeypatch) -> None:
    for i in range(6):
        make_job(url=f"https://jobs.example.com/bg/{i}")
    monkeypatch.setattr(migrations, "run_in_background", True)
    llm = GatedLLM()

    state = migrations.start(llm)
    migrations.pause(state.id)
    assert migrations.resume(state.id, llm) is state
    llm.gate.set()

    assert migrations.join(state.id, timeout=10)
    assert state.status == "completed"
    assert state.processedJobs == 6
    assert state.successCount == 6
    assert len(llm.chat_calls) == 6


def test_admin_routes_require_an_admin(client, auth_headers) -> None:
    assert client.get("/admin/experiments", headers=auth_headers).status_code == 403
    assert client.get("/admin/performance", headers=auth_headers).status_code == 403
    assert client.get("/admin/experiments").status_code == 401


def test_experiments_are_listed_for_admins(client) -> None:
    headers = _admin(client)
    r = client.get("/admin/experiments", headers=headers)
    assert r.status_code == 200
    assert r.json() == []

    r = client.get("/admin/experiments/missing/report", headers=headers)
    assert r.status_code == 404


def test_active_experiment_changes_the_enrichment_call(client, profile_headers, fake_llm) -> None:
    experiments.initialize(
        [
            ab_schemas.ABTestConfig.model_validate(
                {
                    "id": "temp-test",
                    "name": "Temperature check",
                    "description": "Single variant",
                    "startDate": datetime.now(timezone.utc) - timedelta(days=1),
                    "variants": [
                        {
                            "id": "warm",
                            "name": "Warm",
                            "description": "Higher temperature",
                            "config": {"temperature": 0.55},
                            "weight": 1,
                        }
                    ],
                    "metrics": ["fit_score_accuracy"],
                    "status": "active",
                }
            )
        ]
    )
    r = client.post(
        "/api/jobs/enrich/v2",
        json={
            "title": "Solutions Engineer",
            "company": "Acme Analytics",
            "description": "Run technical demos and partner with account executives on enterprise deals.",
            "url": "https://jobs.example.com/acme/777",
            "location": "Remote",
            "source": "linkedin",
            "scrapedAt": "2025-06-01T12:00:00Z",
        },
        headers=EXTENSION_HEADERS,
    )
    assert r.status_code == 200
    assert fake_llm.chat_calls[-1]["temperature"] == 0.55

    headers = _admin(client)
    [summary] = client.get("/admin/experiments", headers=headers).json()
    assert summary["id"] == "temp-test"
    assert summary["resultCount"] == 1

    report = client.get("/admin/experiments/temp-test/report", headers=headers).json()
    assert report["testId"] == "temp-test"
    assert report["variants"][0]["sampleSize"] == 1
    assert report["winner"] is None


def test_performance_report_and_metric_lookup(client) -> None:
    headers = _admin(client)
    benchmark.record_api_performance("/api/jobs", "GET", 12.0, 200)

    r = client.get("/admin/performance", params={"range": "1h"}, headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert body["timeRange"] == "1h"
    assert body["systemStatus"] in ("healthy", "warning", "critical")
    assert body["summary"]["totalRequests"] >= 1

    r = client.post("/admin/performance", json={"metric": "api.GET./api/jobs"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["iterations"] >= 1

    r = client.post("/admin/performance", json={}, headers=headers)
    assert r.status_code == 400
    assert r.json() == {"error": "Metric name is required"}

    r = client.post("/admin/performance", json={"metric": "api.GET./nowhere"}, headers=headers)
    assert r.status_code == 404
