from __future__ import annotations

import json
import os
import string
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient


def pytest_configure() -> None:
    # Ensure the SQLAlchemy engine is created against sqlite for tests.
    os.environ.setdefault("DB_URL", "sqlite:///./test.db")
    os.environ["ORM_DB_URL"] = "sqlite:///./test.db"
    os.environ["ORM_USE_MYSQL"] = "false"
    os.environ.setdefault("ADMIN_EMAILS", '["admin@example.com"]')

    # Ensure local .env cannot leak secrets or a real API key into tests.
    os.environ["ENVIRONMENT"] = "test"
    os.environ["OPENAI_API_KEY"] = ""
    os.environ["EXTENSION_API_KEY"] = "test-extension-key"
    os.environ["INTERNAL_API_SECRET"] = "test-internal-secret"
    os.environ["CHAT_HOURLY_LIMIT"] = "3"
    os.environ["TRACING_ENABLED"] = "false"


EXTENSION_HEADERS = {"x-api-key": "test-extension-key"}
INTERNAL_HEADERS = {"x-internal-api-key": "test-internal-secret"}

ENRICHMENT_REPLY: dict[str, Any] = {
    "facts": {
        "comp_min": 150000,
        "comp_max": 190000,
        "comp_currency": "USD",
        "tech_stack": ["Python", "AWS"],
        "skills_sought": [
            {"skill": "Python", "type": "programming_language", "level": "advanced", "importance": "required"}
        ],
        "remote_policy": "remote",
        "industry": "SaaS",
    },
    "analysis": {
        "ai_fit_score": 82,
        "fit_reasoning": "Strong overlap with the candidate's solutions engineering background.",
        "dealbreaker_hit": False,
        "skills_matched": ["Python", "Demos"],
        "skills_gap": ["Kubernetes"],
        "key_strengths": ["Customer facing"],
        "concerns": ["Travel expectations unclear"],
        "ai_tailored_summary": "A strong fit for a technical seller.",
        "resume_bullet": "Built demo environments for 40 enterprise prospects",
        "confidence_score": 75,
    },
    "insights": ["Remote-first team"],
    "risks": [],
}


def letter_vector(text: str) -> list[float]:
    """26-dim letter histogram; similar wording gives a high cosine score."""
    lower = (text or "").lower()
    return [float(lower.count(ch)) + 0.01 for ch in string.ascii_lowercase]


class FakeLLM:
    """Stands in for LLMClient; replies are queued, then ``default_reply`` is used."""

    def __init__(self) -> None:
        self.configured = True
        self.replies: list[str] = []
        self.default_reply = json.dumps(ENRICHMENT_REPLY)
        self.model = "fake-model"
        self.chat_calls: list[dict[str, Any]] = []
        self.embed_calls: list[list[str]] = []

    def chat(self, messages, *, model=None, temperature=0.3, max_tokens=None, response_format=None):
        from jobcrm.services.llm_client import ChatResult

        self.chat_calls.append(
            {
                "messages": list(messages),
                "model": model,
                "temperature": temperature,
                "max_tokens": max_tokens,
                "response_format": response_format,
            }
        )
        content = self.replies.pop(0) if self.replies else self.default_reply
        return ChatResult(content=content, model=model or self.model, prompt_tokens=120, completion_tokens=80)

    def embed(self, texts):
        self.embed_calls.append(list(texts))
        return [letter_vector(t) for t in texts]


@pytest.fixture()
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture()
def client(monkeypatch: pytest.MonkeyPatch, fake_llm: FakeLLM) -> Any:
    # Ensure admin check can be exercised in tests.
    monkeypatch.setenv("ADMIN_EMAILS", '["admin@example.com"]')

    from jobcrm.database import Base, engine
    from jobcrm.main import create_app
    from jobcrm.services.ab_testing import experiments
    from jobcrm.services.benchmarks import benchmark
    from jobcrm.services.migration_service import migrations
    from jobcrm.services.rate_limiter import rate_limiters

    # Module-level singletons carry state between tests.
    rate_limiters.reset_all()
    benchmark.reset()
    experiments.reset()
    migrations.reset()
    monkeypatch.setattr(migrations, "run_in_background", False)

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    app = create_app()
    with TestClient(app) as c:
        app.state.llm = fake_llm
        yield c


def register(client, *, email: str, password: str = "SecretPass123") -> None:
    r = client.post("/auth/register", json={"email": email, "password": password})
    assert r.status_code == 201


def login(client, *, email: str, password: str = "SecretPass123") -> str:
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200
    return r.json()["access_token"]


def auth_headers_for(client, email: str) -> dict[str, str]:
    register(client, email=email)
    return {"Authorization": f"Bearer {login(client, email=email)}"}


@pytest.fixture()
def auth_headers(client) -> dict[str, str]:
    return auth_headers_for(client, "seeker@example.com")


@pytest.fixture()
def profile_headers(client, auth_headers) -> dict[str, str]:
    """A logged-in user whose profile exists, so enrichment and chat can run."""
    r = client.put(
        "/users/me/profile",
        json={
            "name": "Jordan Lee",
            "current_title": "Solutions Engineer",
            "seniority": "senior",
            "min_base_comp": 140000,
            "remote_pref": "remote",
            "strengths": ["Python", "Demos"],
            "red_flags": ["on-call"],
            "dealbreakers": ["relocation required"],
            "preferences": {"company_size": "startup"},
        },
        headers=auth_headers,
    )
    assert r.status_code == 200
    return auth_headers


@pytest.fixture()
def make_job() -> Callable[..., int]:
    from jobcrm.database import SessionLocal
    from jobcrm.models.job import Job

    def _make(**fields: Any) -> int:
        data = {
            "title": "Solutions Engineer",
            "company": "Acme Analytics",
            "location": "Remote",
            "description": "Own technical demos and proofs of concept for enterprise prospects.",
            "status": "new",
        }
        data.update(fields)
        with SessionLocal() as db:
            job = Job(**data)
            db.add(job)
            db.commit()
            db.refresh(job)
            return job.id

    return _make
