from __future__ import annotations

from conftest import letter_vector
from jobcrm.schemas.chat import ChatMessage
from jobcrm.schemas.profile import UserProfile
from jobcrm.services.chat_service import build_system_prompt, format_profile_context, latest_user_message


def _ask(client, headers, text: str = "Which job pays the most?"):
    return client.post("/api/chat", json={"messages": [{"role": "user", "content": text}]}, headers=headers)


def test_profile_context_formatting() -> None:
    profile = UserProfile(name="Jordan", min_base_comp=140000, strengths=["Python"])
    context = format_profile_context(profile)
    assert "Name: Jordan" in context
    assert "Minimum Base Compensation: $140,000" in context
    assert 'Key Strengths: ["Python"]' in context
    assert "Dealbreakers: None specified" in context

    assert "No specific job data found" in build_system_prompt(profile, "")
    assert "RELEVANT JOB DATA:\n---\nAcme pays well\n---" in build_system_prompt(profile, "Acme pays well")


def test_latest_user_message() -> None:
    messages = [
        ChatMessage(role="user", content="first"),
        ChatMessage(role="assistant", content="reply"),
        ChatMessage(role="user", content="second"),
        ChatMessage(role="assistant", content="reply again"),
    ]
    assert latest_user_message(messages) == "second"
    assert latest_user_message([]) == ""


def test_chat_requires_a_profile(client, auth_headers) -> None:
    r = _ask(client, auth_headers)
    assert r.status_code == 403
    assert r.json() == {"error": "User profile not found"}


def test_chat_answers_with_job_context(client, profile_headers, fake_llm, make_job) -> None:
    from jobcrm.database import SessionLocal
    from jobcrm.models.chat_usage import ChatUsage
    from jobcrm.models.knowledge_chunk import KnowledgeChunk

    job_id = make_job()
    content = "Acme Analytics pays 180k base for solutions engineers"
    with SessionLocal() as db:
        db.add(
            KnowledgeChunk(
                entity_type="job",
                entity_id=job_id,
                source_type="jd",
                chunk_idx=0,
                content=content,
                embedding=letter_vector(content),
            )
        )
        db.commit()

    fake_llm.replies.append("Acme Analytics looks like the best paying option.")
    r = _ask(client, profile_headers, "Which solutions engineer job pays 180k base?")
    assert r.status_code == 200
    body = r.json()
    assert body["message"] == {"role": "assistant", "content": "Acme Analytics looks like the best paying option."}
    assert body["usage"] == {"prompt_tokens": 120, "completion_tokens": 80, "total_tokens": 200}
    assert body["context_chunks"] == 1

    call = fake_llm.chat_calls[-1]
    assert call["temperature"] == 0.7
    assert call["max_tokens"] == 500
    system = call["messages"][0]
    assert system["role"] == "system"
    assert content in system["content"]
    assert "Name: Jordan Lee" in system["content"]
    assert call["messages"][1]["role"] == "user"

    with SessionLocal() as db:
        usage = db.query(ChatUsage).one()
        assert usage.request_count == 1
        assert usage.tokens_used == 200


def test_chat_validates_messages_and_enforces_hourly_quota(client, profile_headers) -> None:
    r = client.post("/api/chat", json={"messages": []}, headers=profile_headers)
    assert r.status_code == 400
    assert r.json() == {"error": "Messages are required"}

    # CHAT_HOURLY_LIMIT is 3 in tests; the rejected request above does not count.
    for _ in range(3):
        assert _ask(client, profile_headers).status_code == 200

    r = _ask(client, profile_headers)
    assert r.status_code == 429
    body = r.json()
    assert body["error"] == "Rate limit exceeded"
    assert body["type"] == "hourly"
    assert "reset" in body


def test_daily_rejection_leaves_hourly_quota_untouched(client, profile_headers, monkeypatch) -> None:
    from jobcrm.services.rate_limiter import RateLimiterMemory, rate_limiters

    monkeypatch.setattr(rate_limiters, "chat_daily", RateLimiterMemory(points=1, duration=86400))
    assert _ask(client, profile_headers).status_code == 200

    for _ in range(3):
        r = _ask(client, profile_headers)
        assert r.status_code == 429
        assert r.json()["type"] == "daily"
        assert r.json()["error"] == "Daily rate limit exceeded"

    # Only the accepted request was counted against the hourly window.
    user_id = client.get("/users/me", headers=profile_headers).json()["id"]
    assert rate_limiters.chat_hourly.consume(str(user_id)) == 1
