from __future__ import annotations

import json

import pytest

from conftest import FakeLLM
from jobcrm.services.classification import (
    ALL_DOCUMENT_TYPES,
    ClassificationError,
    build_classification_prompt,
    classify_document,
    classify_with_rules,
    get_document_type_hierarchy,
    get_subcategories,
    is_valid_document_type,
)


def _reply(document_type: str, confidence: float) -> str:
    return json.dumps({"documentType": document_type, "confidence": confidence, "reasoning": "test"})


@pytest.mark.parametrize(
    "content, hint, expected, confidence",
    [
        ("Subject: Follow up on our call\nThanks for your time", None, "communication/email", 0.95),
        ("anything at all", "email", "communication/email", 0.95),
        ("Calendar: demo review moved to 3pm", None, "communication/calendar-update", 0.90),
        ("Job: Solutions Engineer\nRequirements: 5 years of SaaS", None, "job-related/job-description", 0.85),
        ("# Billing API\n## Overview\nEndpoints for invoices", None, "reference/technical-doc", 0.88),
    ],
)
def test_rules_classify_obvious_documents(content, hint, expected, confidence) -> None:
    result = classify_with_rules(content, hint)
    assert result.documentType == expected
    assert result.confidence == pytest.approx(confidence)
    assert result.model == "rule-based"


def test_rules_fall_through_on_plain_text() -> None:
    assert classify_with_rules("Buy milk and call the recruiter back") is None


def test_model_is_used_when_no_rule_fires() -> None:
    llm = FakeLLM()
    llm.replies.append(_reply("personal/task", 0.9))
    result = classify_document(llm, "Buy milk and call the recruiter back")
    assert result.documentType == "personal/task"
    assert result.model == "gpt-4o-mini"
    call = llm.chat_calls[0]
    assert call["temperature"] == 0.1
    assert call["max_tokens"] == 200
    assert call["response_format"] == {"type": "json_object"}


def test_rules_skip_the_model() -> None:
    llm = FakeLLM()
    classify_document(llm, "Subject: hello")
    assert llm.chat_calls == []


@pytest.mark.parametrize(
    "reply, message",
    [
        (_reply("personal/diary", 0.9), "Invalid document type: personal/diary"),
        (_reply("personal/task", 1.5), "Invalid confidence score"),
        (json.dumps({"confidence": 0.5}), "Invalid documentType in response"),
        ("not json", "Failed to parse OpenAI response as JSON"),
    ],
)
def test_bad_model_replies_raise(reply, message) -> None:
    llm = FakeLLM()
    llm.replies.append(reply)
    with pytest.raises(ClassificationError, match=message):
        classify_document(llm, "Buy milk and call the recruiter back")


def test_prompt_truncates_long_content() -> None:
    prompt = build_classification_prompt("x" * 5000, "slack")
    assert "x" * 4000 + "..." in prompt
    assert "x" * 4001 not in prompt
    assert "Source Hint: slack" in prompt


def test_taxonomy_helpers() -> None:
    assert len(ALL_DOCUMENT_TYPES) == 25
    assert is_valid_document_type("job-related/salary-info")
    assert not is_valid_document_type("job-related")
    assert get_document_type_hierarchy("job-related/resume") == ["job-related", "job-related/resume"]
    assert get_subcategories("personal") == [
        "personal/note",
        "personal/task",
        "personal/idea",
        "personal/reminder",
        "personal/reflection",
    ]
    assert get_subcategories("personal/note") == []


def test_classify_endpoint(client, auth_headers, fake_llm) -> None:
    r = client.post("/api/classify", json={"content": "Subject: offer details"}, headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["documentType"] == "communication/email"

    fake_llm.replies.append(_reply("personal/diary", 0.9))
    r = client.post("/api/classify", json={"content": "Buy milk"}, headers=auth_headers)
    assert r.status_code == 502

    r = client.post("/api/classify", json={"content": ""}, headers=auth_headers)
    assert r.status_code == 422

    r = client.post("/api/classify", json={"content": "Subject: hi"})
    assert r.status_code == 401


def test_batch_endpoint_reports_failures_per_item(client, auth_headers, fake_llm) -> None:
    fake_llm.replies.append("not json")
    r = client.post(
        "/api/classify/batch",
        json={
            "documents": [
                {"id": "a", "content": "Subject: hello"},
                {"id": "b", "content": "Buy milk"},
            ]
        },
        headers=auth_headers,
    )
    assert r.status_code == 200
    body = r.json()
    assert body["processed"] == 1
    assert body["failed"] == 1
    by_id = {item["id"]: item for item in body["results"]}
    assert by_id["a"]["classification"]["documentType"] == "communication/email"
    assert by_id["b"]["error"].startswith("Classification failed")


def test_job_endpoint_labels_unclassified_chunks(client, auth_headers, fake_llm, make_job) -> None:
    from jobcrm.database import SessionLocal
    from jobcrm.models.knowledge_chunk import KnowledgeChunk

    job_id = make_job()
    with SessionLocal() as db:
        for idx, content in enumerate(["Subject: next steps", "Remember to send thanks", "Random scribbles"]):
            db.add(
                KnowledgeChunk(
                    entity_type="job",
                    entity_id=job_id,
                    source_type="note",
                    chunk_idx=idx,
                    content=content,
                    embedding=[0.1, 0.2],
                )
            )
        db.commit()

    fake_llm.replies.extend([_reply("personal/reminder", 0.4), "not json"])
    r = client.post("/api/classify/job", json={"job_id": job_id}, headers=auth_headers)
    assert r.status_code == 200
    body = r.json()
    assert (body["classified"], body["skipped"], body["failed"]) == (1, 1, 1)

    with SessionLocal() as db:
        labels = [c.document_type for c in db.query(KnowledgeChunk).order_by(KnowledgeChunk.chunk_idx).all()]
    assert labels == ["communication/email", None, None]

    assert client.post("/api/classify/job", json={"job_id": 999}, headers=auth_headers).status_code == 404
    assert client.post("/api/classify/job", json={"job_id": 0}, headers=auth_headers).status_code == 422
