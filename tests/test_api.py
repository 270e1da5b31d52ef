"""Tests for the FastAPI REST endpoints."""
from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

from app import create_app
from auth import generate_session_token
from contract import (
    MSG_EMAIL_TAKEN,
    MSG_FIELDS_REQUIRED,
    MSG_INTERNAL_ERROR,
    MSG_INVALID_CREDENTIALS,
    MSG_INVALID_TEXT,
    MSG_LOGGED_OUT,
    MSG_SESSION_EXPIRED,
    MSG_UNAUTHORIZED,
    MSG_USER_NOT_FOUND,
)
from middleware import require_caller
from models import Caller, _utcnow
from store import CredentialStore

VALID_PASSWORD = "secret1"


@pytest.fixture
def app(test_settings):
    return create_app(settings=test_settings, store=CredentialStore(":memory:"))


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def _register_user(client, username="alice", email="alice@example.com",
                   password=VALID_PASSWORD) -> dict:
    resp = client.post("/api/auth/register", json={
        "username": username,
        "email": email,
        "password": password,
    })
    assert resp.status_code == 201, resp.json()
    return resp.json()


def _login_user(client, email="alice@example.com", password=VALID_PASSWORD):
    resp = client.post(
        "/api/auth/login",
        json={"email": email, "password": password},
    )
    assert resp.status_code == 200, resp.json()
    return resp


def _session_token(resp) -> str:
    for header in resp.headers.get_list("set-cookie"):
        if header.startswith("sessionToken="):
            return header.split(";", 1)[0].split("=", 1)[1]
    raise AssertionError("no session cookie")


def _cookie_header(token: str) -> dict:
    return {"Cookie": f"sessionToken={token}"}


# ---------------------------------------------------------------------------
# POST /api/auth/register
# ---------------------------------------------------------------------------

class TestRegisterEndpoint:

    def test_register_returns_201(self, client):
        data = _register_user(client)
        assert data["success"] is True
        assert isinstance(data["userId"], int)
        assert "password" not in data

    def test_register_missing_fields(self, client):
        resp = client.post("/api/auth/register", json={"username": "alice"})
        assert resp.status_code == 400
        assert resp.json() == {"error": MSG_FIELDS_REQUIRED}

    def test_register_null_fields(self, client):
        resp = client.post("/api/auth/register", json={
            "username": None, "email": None, "password": None,
        })
        assert resp.status_code == 400
        assert resp.json() == {"error": MSG_FIELDS_REQUIRED}

    def test_register_short_password(self, client):
        resp = client.post("/api/auth/register", json={
            "username": "alice", "email": "alice@example.com", "password": "12345",
        })
        assert resp.status_code == 400
        assert "password" in resp.json()["error"].lower()

    def test_register_duplicate_email(self, client):
        _register_user(client)
        resp = client.post("/api/auth/register", json={
            "username": "alice2", "email": "alice@example.com",
            "password": VALID_PASSWORD,
        })
        assert resp.status_code == 400
        assert resp.json() == {"error": MSG_EMAIL_TAKEN}

    def test_register_unencodable_email(self, client):
        resp = client.post(
            "/api/auth/register",
            content=b'{"username": "bob", "email": "\\ud800@x.com", "password": "secret1"}',
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": MSG_INVALID_TEXT}

    def test_register_malformed_body(self, client):
        resp = client.post(
            "/api/auth/register",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert "error" in resp.json()


# ---------------------------------------------------------------------------
# POST /api/auth/login
# ---------------------------------------------------------------------------

class TestLoginEndpoint:

    def test_login_sets_cookie(self, client):
        _register_user(client)
        resp = _login_user(client)
        data = resp.json()
        assert data["success"] is True
        assert data["user"]["username"] == "alice"
        assert "password_hash" not in data["user"]
        assert "sessionToken" not in data
        cookie = [
            c for c in resp.headers.get_list("set-cookie")
            if c.startswith("sessionToken=")
        ][0].lower()
        assert "httponly" in cookie
        assert "secure" in cookie
        assert "max-age=604800" in cookie

    def test_login_wrong_password(self, client):
        _register_user(client)
        resp = client.post("/api/auth/login", json={
            "email": "alice@example.com", "password": "wrongpass",
        })
        assert resp.status_code == 401
        assert resp.json() == {"error": MSG_INVALID_CREDENTIALS}
        assert "set-cookie" not in resp.headers

    def test_login_unknown_email_same_error(self, client):
        resp = client.post("/api/auth/login", json={
            "email": "ghost@example.com", "password": "wrongpass",
        })
        assert resp.status_code == 401
        assert resp.json() == {"error": MSG_INVALID_CREDENTIALS}

    def test_login_unencodable_email(self, client):
        _register_user(client)
        resp = client.post(
            "/api/auth/login",
            content=b'{"email": "\\ud800", "password": "secret1"}',
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 401
        assert resp.json() == {"error": MSG_INVALID_CREDENTIALS}


# ---------------------------------------------------------------------------
# GET /api/auth/me and POST /api/auth/logout
# ---------------------------------------------------------------------------

class TestSessionEndpoints:

    def test_me_without_cookie(self, client):
        resp = client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.json() == {"error": MSG_UNAUTHORIZED}

    def test_me_with_bogus_cookie(self, client):
        resp = client.get("/api/auth/me", headers=_cookie_header("f" * 64))
        assert resp.status_code == 401
        assert resp.json() == {"error": MSG_SESSION_EXPIRED}

    def test_me_with_dangling_user(self, client, app, monkeypatch):
        _register_user(client)
        token = _session_token(_login_user(client))

        async def missing_user(user_id):
            return None

        monkeypatch.setattr(app.state.auth_service, "get_user_by_id", missing_user)
        resp = client.get("/api/auth/me", headers=_cookie_header(token))
        assert resp.status_code == 404
        assert resp.json() == {"error": MSG_USER_NOT_FOUND}

    def test_require_caller_guards_routes(self, client, app):
        @app.get("/api/private")
        async def private(caller: Caller = Depends(require_caller)) -> dict:
            return {"userId": caller.user_id}

        registered = _register_user(client)
        token = _session_token(_login_user(client))
        anonymous = client.get("/api/private")
        assert anonymous.status_code == 401
        assert anonymous.json() == {"error": MSG_UNAUTHORIZED}
        known = client.get("/api/private", headers=_cookie_header(token))
        assert known.json() == {"userId": registered["userId"]}

    def test_logout_without_cookie(self, client):
        resp = client.post("/api/auth/logout")
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": MSG_LOGGED_OUT}
        cleared = [
            c for c in resp.headers.get_list("set-cookie")
            if c.startswith("sessionToken=")
        ]
        assert cleared and "max-age=0" in cleared[0].lower()


class TestEndToEnd:

    def test_register_login_me_logout(self, client, app):
        registered = _register_user(client)
        user_id = registered["userId"]

        login = _login_user(client)
        token = _session_token(login)
        assert len(token) == 64

        me = client.get(
            "/api/auth/me",
            headers={"Cookie": f"userId=1; sessionToken={token}; theme=dark"},
        )
        assert me.status_code == 200
        assert me.json()["user"]["id"] == user_id
        assert me.json()["user"]["email"] == "alice@example.com"

        logout = client.post("/api/auth/logout", headers=_cookie_header(token))
        assert logout.status_code == 200

        service = app.state.auth_service
        check = client.portal.call(service.verify_session, token)
        assert check.valid is False
        assert client.get("/api/auth/me", headers=_cookie_header(token)).status_code == 401

    def test_concurrent_duplicate_registration(self, client, app):
        service = app.state.auth_service

        async def race():
            return await asyncio.gather(*[
                service.register(f"user{i}", "same@example.com", VALID_PASSWORD)
                for i in range(5)
            ])

        results = client.portal.call(race)
        assert sum(r.success for r in results) == 1
        assert {r.message for r in results if not r.success} == {MSG_EMAIL_TAKEN}
        assert client.portal.call(service.store.count_users) == 1


class TestErrorHandling:

    def test_unhandled_error_is_generic_500(self, test_settings):
        app = create_app(settings=test_settings, store=CredentialStore(":memory:"))

        @app.get("/boom")
        async def boom():
            raise RuntimeError("secret internals")

        with TestClient(app, raise_server_exceptions=False) as client:
            resp = client.get("/boom")
        assert resp.status_code == 500
        assert resp.json() == {"error": MSG_INTERNAL_ERROR}
        assert "secret internals" not in resp.text


class TestLifespan:

    def test_store_opened_and_closed(self, app):
        store = app.state.auth_service.store
        assert not store.is_open
        with TestClient(app):
            assert store.is_open
        assert not store.is_open

    def test_reaper_sweeps_expired_sessions(self, test_settings):
        settings = test_settings.model_copy(update={"sweep_interval_seconds": 0.01})
        app = create_app(settings=settings, store=CredentialStore(":memory:"))
        store = app.state.auth_service.store

        async def seed_expired():
            user_id = await store.create_user(
                "alice", "alice@example.com",
                "pbkdf2_sha256$1$00$00",
            )
            now = _utcnow()
            await store.create_session(
                user_id, generate_session_token(),
                now - timedelta(seconds=1), created_at=now - timedelta(days=1),
            )

        async def wait_for_sweep():
            for _ in range(200):
                if await store.count_sessions() == 0:
                    return True
                await asyncio.sleep(0.01)
            return False

        with TestClient(app) as client:
            client.portal.call(seed_expired)
            assert client.portal.call(wait_for_sweep)
