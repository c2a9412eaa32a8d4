from __future__ import annotations

from datetime import date

from jobcrm.config import settings
from jobcrm.models.job import Job
from jobcrm.services.document_generator import (
    contact_line,
    cover_letter_filename,
    format_letter_date,
    render_cover_letter,
    safe_company_name,
)


def test_health(client) -> None:
    r = client.get("/api/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "healthy"
    assert body["database"] == "connected"
    assert body["version"] == settings.version


def test_metrics_summarise_the_pipeline(client, make_job) -> None:
    make_job(url="https://jobs.example.com/1", ai_fit_score=80)
    make_job(url="https://jobs.example.com/2", status="applied", ai_fit_score=90)

    r = client.get("/api/metrics")
    assert r.status_code == 200
    jobs = r.json()["jobs"]
    assert jobs["total_jobs"] == 2
    assert jobs["enriched_jobs"] == 0
    assert jobs["enrichment_coverage"] == 0
    assert jobs["by_status"] == {"new": 1, "applied": 1}
    assert jobs["average_fit_score"] == 85.0
    assert r.json()["interviews"] == {"total_rounds": 0}
    assert r.json()["system"]["environment"] == "test"


def test_cover_letter_helpers() -> None:
    assert safe_company_name("Acme, Inc.") == "Acme Inc"
    assert safe_company_name("!!!") == "Company"
    assert format_letter_date(date(2025, 6, 7)) == "June 7, 2025"

    cfg = settings.model_copy(
        update={
            "candidate_name": "Jordan Lee",
            "candidate_phone": "555-0100",
            "candidate_email": "jordan@example.com",
            "candidate_linkedin": "https://www.linkedin.com/in/jlee",
        }
    )
    assert contact_line(cfg) == (
        '555-0100 | <a href="mailto:jordan@example.com">jordan@example.com</a> | '
        '<a href="https://www.linkedin.com/in/jlee">linkedin.com/in/jlee</a>'
    )

    job = Job(title="Solutions <Engineer>", company="Acme & Co")
    html = render_cover_letter(job, cfg=cfg, today=date(2025, 6, 27))
    assert "Jordan Lee" in html
    assert "Acme &amp; Co" in html
    assert "Solutions &lt;Engineer&gt;" in html
    assert "June 27, 2025" in html
    assert "{{" not in html
    assert cover_letter_filename(job, cfg) == "Cover Letter of Jordan Lee - Acme Co.html"


def test_cover_letter_endpoint(client, make_job) -> None:
    job_id = make_job()
    r = client.get("/api/jobs/generate-cover-letter", params={"jobId": job_id})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/html")
    assert "Acme Analytics" in r.text
    assert 'filename="Cover Letter of' in r.headers["content-disposition"]

    r = client.get("/api/jobs/generate-cover-letter")
    assert r.status_code == 400
    assert r.text == "Missing jobId"
    assert client.get("/api/jobs/generate-cover-letter", params={"jobId": "999"}).status_code == 404
    assert client.get("/api/jobs/generate-cover-letter", params={"jobId": "abc"}).status_code == 404


def test_resume_endpoint(client, make_job, tmp_path, monkeypatch) -> None:
    job_id = make_job()
    resume = tmp_path / "resume.pdf"
    resume.write_bytes(b"%PDF-1.4 fake")
    monkeypatch.setattr(settings, "resume_path", str(resume))

    r = client.get("/api/jobs/generate-resume", params={"jobId": job_id})
    assert r.status_code == 200
    assert r.content == b"%PDF-1.4 fake"
    assert r.headers["content-type"] == "application/pdf"
    assert "Analytics.PDF" in r.headers["content-disposition"]

    assert client.get("/api/jobs/generate-resume").text == "Missing jobId parameter"

    monkeypatch.setattr(settings, "resume_path", str(tmp_path / "missing.pdf"))
    r = client.get("/api/jobs/generate-resume", params={"jobId": job_id})
    assert r.status_code == 500
    assert r.text == "Resume file not found"
