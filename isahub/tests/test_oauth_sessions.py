from pathlib import Path

import pytest
from isahub.auth.session import create_session
from isahub.config import get_settings
from isahub.db import Base, dispose_engine
from isahub.db.database import get_engine
from isahub.db.models import OAuthSession, User
from isahub.main import create_app
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

pytestmark = pytest.mark.security


def _setup_db(tmp_path: Path, monkeypatch):
    db_path = tmp_path / "oauth_sessions_test.db"
    db_url = f"sqlite:///{db_path.as_posix()}"
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("DATABASE_URL_POSTGRES", "")
    monkeypatch.setenv("BOOTSTRAP_ADMIN_ENABLED", "false")
    get_settings.cache_clear()
    dispose_engine()
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    return engine


def _get_session(engine):
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return SessionLocal()


def _seed(engine):
    """Two users; alice has two OAuth sessions, bob has one."""
    db = _get_session(engine)
    try:
        alice = User(email="alice@example.com", username="alice", hashed_password="x", is_active=True)
        bob = User(email="bob@example.com", username="bob", hashed_password="x", is_active=True)
        db.add_all([alice, bob])
        db.flush()
        db.add_all(
            [
                OAuthSession(user_id=alice.id, provider="orcid", access_token_hash="h1"),
                OAuthSession(user_id=alice.id, provider="elixir", access_token_hash="h2"),
                OAuthSession(user_id=bob.id, provider="orcid", access_token_hash="h3"),
            ]
        )
        db.commit()
        alice_token = create_session(db, alice)
        bob_token = create_session(db, bob)
        return {
            "alice_id": alice.id,
            "bob_id": bob.id,
            "alice_token": alice_token,
            "bob_token": bob_token,
        }
    finally:
        db.close()


def _login(client, tokens):
    session_token, csrf_token = tokens
    settings = get_settings()
    client.cookies.set(settings.session_cookie_name, session_token)
    client.cookies.set(settings.csrf_cookie_name, csrf_token)
    client.headers[settings.csrf_header_name] = csrf_token


def test_owner_lists_own_sessions(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        res = client.get(f"/api/users/{seed['alice_id']}/oauth-sessions")
        assert res.status_code == 200
        body = res.json()
        assert sorted(s["provider"] for s in body) == ["elixir", "orcid"]
        assert all("access_token_hash" not in s for s in body)

    dispose_engine()


def test_other_user_cannot_list_sessions(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        _login(client, seed["bob_token"])
        res = client.get(f"/api/users/{seed['alice_id']}/oauth-sessions")
        assert res.status_code == 401
        body = res.json()
        assert body["error"]["code"] == "E2002"
        assert body["error"]["message"] == "User not found (id not authorized)"

    dispose_engine()


def test_other_user_cannot_revoke_session(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    db = _get_session(engine)
    try:
        target = db.query(OAuthSession).filter(OAuthSession.user_id == seed["alice_id"]).first()
        target_id = target.id
    finally:
        db.close()

    with TestClient(create_app()) as client:
        _login(client, seed["bob_token"])
        res = client.delete(f"/api/users/{seed['alice_id']}/oauth-sessions/{target_id}")
        assert res.status_code == 401

    db = _get_session(engine)
    try:
        assert db.query(OAuthSession).filter(OAuthSession.id == target_id).count() == 1
    finally:
        db.close()
        dispose_engine()


def test_owner_revokes_session_and_account_survives(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    db = _get_session(engine)
    try:
        target = (
            db.query(OAuthSession)
            .filter(OAuthSession.user_id == seed["alice_id"], OAuthSession.provider == "orcid")
            .first()
        )
        target_id = target.id
    finally:
        db.close()

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        res = client.delete(f"/api/users/{seed['alice_id']}/oauth-sessions/{target_id}")
        assert res.status_code == 200
        assert res.json()["redirect"] == f"/api/users/{seed['alice_id']}/oauth-sessions"

        remaining = client.get(f"/api/users/{seed['alice_id']}/oauth-sessions").json()
        assert [s["provider"] for s in remaining] == ["elixir"]

    db = _get_session(engine)
    try:
        assert db.query(User).filter(User.id == seed["alice_id"]).count() == 1
        # Bob's sessions are untouched.
        assert db.query(OAuthSession).filter(OAuthSession.user_id == seed["bob_id"]).count() == 1
    finally:
        db.close()
        dispose_engine()


def test_revoking_unknown_session_is_a_no_op(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        res = client.delete(f"/api/users/{seed['alice_id']}/oauth-sessions/does-not-exist")
        assert res.status_code == 200

        res = client.get(f"/api/users/{seed['alice_id']}/oauth-sessions")
        assert len(res.json()) == 2

    dispose_engine()


def test_owner_cannot_revoke_another_users_session_by_id(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    db = _get_session(engine)
    try:
        bobs = db.query(OAuthSession).filter(OAuthSession.user_id == seed["bob_id"]).first()
        bobs_id = bobs.id
    finally:
        db.close()

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        res = client.delete(f"/api/users/{seed['alice_id']}/oauth-sessions/{bobs_id}")
        assert res.status_code == 200

    db = _get_session(engine)
    try:
        assert db.query(OAuthSession).filter(OAuthSession.id == bobs_id).count() == 1
    finally:
        db.close()
        dispose_engine()


def test_unknown_account_is_not_found(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        _login(client, seed["alice_token"])
        res = client.get("/api/users/nobody/oauth-sessions")
        assert res.status_code == 404
        assert res.json()["error"]["code"] == "E4040"

    dispose_engine()


def test_anonymous_request_requires_login(monkeypatch, tmp_path):
    engine = _setup_db(tmp_path, monkeypatch)
    seed = _seed(engine)

    with TestClient(create_app()) as client:
        res = client.get(f"/api/users/{seed['alice_id']}/oauth-sessions")
        assert res.status_code == 401
        assert res.json()["error"]["code"] == "E4010"

    dispose_engine()
