from __future__ import annotations

from conftest import login, register


def test_register_login_and_me(client) -> None:
    register(client, email="Someone@Example.com")
    token = login(client, email="someone@example.com")

    r = client.get("/users/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    body = r.json()
    assert body["email"] == "someone@example.com"
    assert body["is_admin"] is False


def test_duplicate_registration_is_rejected(client) -> None:
    register(client, email="dup@example.com")
    r = client.post("/auth/register", json={"email": "dup@example.com", "password": "SecretPass123"})
    assert r.status_code == 400


def test_login_with_wrong_password(client) -> None:
    register(client, email="user@example.com")
    r = client.post("/auth/login", json={"email": "user@example.com", "password": "WrongPass999"})
    assert r.status_code == 401


def test_admin_flag_follows_allowlist(client) -> None:
    register(client, email="admin@example.com")
    token = login(client, email="admin@example.com")
    r = client.get("/users/me", headers={"Authorization": f"Bearer {token}"})
    assert r.json()["is_admin"] is True


def test_profile_defaults_when_missing(client, auth_headers) -> None:
    r = client.get("/users/me/profile", headers=auth_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["metadata"] == {"exists": False}
    assert body["profile"]["strengths"] == []


def test_profile_update_merges_fields(client, auth_headers) -> None:
    r = client.put(
        "/users/me/profile",
        json={"name": "Jordan", "strengths": "Python, demos; discovery", "min_base_comp": 150000},
        headers=auth_headers,
    )
    assert r.status_code == 200
    assert r.json()["profile"]["strengths"] == ["Python", "demos", "discovery"]

    r = client.put("/users/me/profile", json={"remote_pref": "hybrid"}, headers=auth_headers)
    profile = r.json()["profile"]
    assert profile["name"] == "Jordan"
    assert profile["min_base_comp"] == 150000
    assert profile["remote_pref"] == "hybrid"

    r = client.get("/users/me/profile", headers=auth_headers)
    assert r.json()["metadata"] == {"exists": True}


def test_routes_require_a_token(client) -> None:
    assert client.get("/users/me").status_code == 401
    assert client.get("/api/jobs").status_code == 401
