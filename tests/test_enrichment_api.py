from __future__ import annotations

import json

from conftest import ENRICHMENT_REPLY, EXTENSION_HEADERS


DESCRIPTION = (
    "We are hiring a Solutions Engineer to run technical demos and partner with account "
    "executives across North America. The role is fully remote."
)


def _posting(**overrides) -> dict:
    payload = {
        "title": "Solutions Engineer",
        "company": "Acme Analytics",
        "description": DESCRIPTION,
        "url": "https://jobs.example.com/acme/123",
        "location": "Remote",
        "source": "linkedin",
        "scrapedAt": "2025-06-01T12:00:00Z",
    }
    payload.update(overrides)
    return payload


def test_v2_rejects_missing_api_key(client) -> None:
    r = client.post("/api/jobs/enrich/v2", json=_posting())
    assert r.status_code == 401
    body = r.json()
    assert body["success"] is False
    assert body["error"] == "Invalid or missing API key"
    assert body["correlation_id"] == r.headers["x-correlation-id"]


def test_v2_invalid_json_and_validation_errors(client) -> None:
    r = client.post(
        "/api/jobs/enrich/v2",
        content=b"{not json",
        headers={**EXTENSION_HEADERS, "content-type": "application/json"},
    )
    assert r.status_code == 400
    assert r.json()["error"] == "Request body must be valid JSON"

    r = client.post("/api/jobs/enrich/v2", json=_posting(description="too short", url="not-a-url"), headers=EXTENSION_HEADERS)
    assert r.status_code == 400
    body = r.json()
    assert body["error"] == "Invalid request data"
    paths = {d["path"] for d in body["details"]}
    assert {"description", "url"} <= paths

    # url is required; company_url is not.
    posting = _posting()
    del posting["url"]
    r = client.post("/api/jobs/enrich/v2", json=posting, headers=EXTENSION_HEADERS)
    assert r.status_code == 400
    assert {d["path"] for d in r.json()["details"]} == {"url"}


def test_v2_preflight_allows_extension_headers(client) -> None:
    r = client.options("/api/jobs/enrich/v2")
    assert r.status_code == 200
    assert "x-api-key" in r.headers["Access-Control-Allow-Headers"]


def test_v2_without_profile_fails_cleanly(client) -> None:
    r = client.post("/api/jobs/enrich/v2", json=_posting(), headers=EXTENSION_HEADERS)
    assert r.status_code == 500
    body = r.json()
    assert body["error"] == "Failed to enrich job posting"
    assert "profile" in body["details"].lower()


def test_v2_enriches_and_deduplicates(client, profile_headers, fake_llm) -> None:
    r = client.post(
        "/api/jobs/enrich/v2",
        json=_posting(),
        headers={**EXTENSION_HEADERS, "x-correlation-id": "corr-123"},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["correlation_id"] == "corr-123"
    data = body["data"]
    job_id = data["jobId"]
    enrichment = data["enrichment"]
    assert enrichment["ai_fit_score"] == 82
    assert enrichment["dealbreaker_hit"] is False
    assert set(enrichment["dimensional_scores"]) == {
        "culture_fit_score",
        "growth_potential_score",
        "work_life_balance_score",
        "compensation_competitiveness_score",
        "overall_recommendation_score",
    }
    assert any("Missing enhanced enrichment fields" in w for w in enrichment["validation_warnings"])

    # The enhanced prompt asks for JSON output at a low temperature.
    call = fake_llm.chat_calls[-1]
    assert call["response_format"] == {"type": "json_object"}
    assert call["temperature"] == 0.3
    assert "Acme Analytics" in call["messages"][1]["content"]

    job = client.get(f"/api/jobs/{job_id}", headers=profile_headers).json()["job"]
    assert job["ai_fit_score"] == 82
    assert job["enrichment_status"] == "completed"
    assert job["enrichment"]["comp_range"] == "150000-190000 USD"
    assert job["enrichment"]["prompt_version"] == "3.0"

    again = client.post("/api/jobs/enrich/v2", json=_posting(), headers=EXTENSION_HEADERS).json()
    assert again["data"] == {"jobId": job_id, "duplicate": True, "message": "Job already exists in database"}


def test_v2_accepts_risks_listed_as_plain_strings(client, profile_headers, fake_llm) -> None:
    fake_llm.replies.append(json.dumps({**ENRICHMENT_REPLY, "risks": ["Long hours expected"]}))
    r = client.post("/api/jobs/enrich/v2", json=_posting(url="https://jobs.example.com/acme/789"), headers=EXTENSION_HEADERS)
    assert r.status_code == 200
    enrichment = r.json()["data"]["enrichment"]
    assert "Long hours expected" in [risk["reason"] for risk in enrichment["implicit_risks"]]

    job = client.get(f"/api/jobs/{r.json()['data']['jobId']}", headers=profile_headers).json()["job"]
    assert job["enrichment_status"] == "completed"


def test_v2_flags_dealbreakers_from_profile(client, profile_headers) -> None:
    posting = _posting(
        url="https://jobs.example.com/acme/456",
        description=DESCRIPTION + " Relocation required to our Austin office within 90 days.",
    )
    r = client.post("/api/jobs/enrich/v2", json=posting, headers=EXTENSION_HEADERS)
    assert r.status_code == 200
    enrichment = r.json()["data"]["enrichment"]
    assert enrichment["dealbreaker_hit"] is True
    dealbreakers = [risk for risk in enrichment["implicit_risks"] if risk["is_dealbreaker"]]
    assert dealbreakers[0]["reason"] == "Dealbreaker violation: relocation required"


def test_v1_enriches_and_stores_embeddings(client, profile_headers, fake_llm) -> None:
    r = client.post("/api/jobs/enrich", json=_posting(), headers=EXTENSION_HEADERS)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["enrichment"]["ai_fit_score"] == 82
    assert data["enrichment"]["extracted_fields"]["tech_stack"] == ["Python", "AWS"]

    # Raw description plus the description with analysis appended.
    assert len(fake_llm.embed_calls[0]) == 2
    assert "ENRICHED ANALYSIS" in fake_llm.embed_calls[0][1]

    r = client.post(
        "/api/knowledge/search",
        json={"query": DESCRIPTION, "k": 5, "threshold": 0.5},
        headers=profile_headers,
    )
    assert r.status_code == 200
    matches = r.json()
    assert matches[0]["entity_id"] == data["jobId"]
    assert matches[0]["chunk_idx"] == 0
    assert matches[0]["similarity"] > 0.99


def test_v1_saves_job_when_model_reply_is_unusable(client, profile_headers, fake_llm) -> None:
    fake_llm.replies.append("Sorry, I can't help with that.")
    r = client.post("/api/jobs/enrich", json=_posting(), headers=EXTENSION_HEADERS)
    assert r.status_code == 500
    body = r.json()
    assert body["error"] == "Enrichment failed but job was saved"
    job_id = body["data"]["jobId"]

    job = client.get(f"/api/jobs/{job_id}", headers=profile_headers).json()["job"]
    assert job["enrichment_status"] == "failed"
    assert "Failed to parse" in job["enrichment_error"]


def test_v1_requires_api_key(client) -> None:
    r = client.post("/api/jobs/enrich", json=_posting())
    assert r.status_code == 401
    assert r.json() == {"error": "Unauthorized"}


def test_rerun_enrichment_for_stored_job(client, profile_headers, make_job) -> None:
    job_id = make_job()
    r = client.post("/api/jobs/enrich/rerun", json={"job_id": job_id}, headers=profile_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["data"]["jobId"] == job_id
    assert body["data"]["enrichment"]["fit_score"] == 82

    assert client.post("/api/jobs/enrich/rerun", json={"job_id": 9999}, headers=profile_headers).status_code == 404


def test_rerun_reports_model_failure(client, profile_headers, make_job, fake_llm) -> None:
    job_id = make_job()
    fake_llm.replies.append("no json here")
    r = client.post("/api/jobs/enrich/rerun", json={"job_id": job_id}, headers=profile_headers)
    assert r.status_code == 502
    assert r.json()["detail"].startswith("Enrichment failed:")


def test_enrichment_config_defaults_to_v1(client, auth_headers) -> None:
    r = client.get("/api/jobs/enrich/config", headers=auth_headers)
    assert r.json() == {"endpoint": "/api/jobs/enrich", "auditUiEnabled": False}


def test_unconfigured_model_answers_503(client, profile_headers, fake_llm) -> None:
    from jobcrm.services.llm_client import LLMClient

    client.app.state.llm = LLMClient(None, embed_model="text-embedding-3-small", default_model="gpt-4o-mini")
    r = client.post("/api/jobs/enrich/v2", json=_posting(), headers=EXTENSION_HEADERS)
    assert r.status_code == 503
    assert "OPENAI_API_KEY" in r.json()["error"]
