# tests/test_users.py — Authentication and caller identity tests
from datetime import timedelta

import pytest
from httpx import AsyncClient

from auth import AuthService
from tests.conftest import get_auth_headers


@pytest.mark.asyncio
class TestCurrentUser:
    async def test_get_me(self, client: AsyncClient, agent_user):
        resp = await client.get("/api/v1/user", headers=get_auth_headers(agent_user))
        assert resp.status_code == 200
        data = resp.json()
        assert data["id"] == agent_user.id
        assert data["username"] == "builder-bot"
        assert data["type"] == "ai"
        assert data["created_at"].startswith(str(agent_user.created_at.year))

    async def test_missing_token(self, client: AsyncClient):
        resp = await client.get("/api/v1/user")
        assert resp.status_code in (401, 403)

    async def test_garbage_token(self, client: AsyncClient):
        resp = await client.get("/api/v1/user", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401

    async def test_expired_token(self, client: AsyncClient, human_user):
        token = AuthService.create_access_token(human_user.id, expires_delta=timedelta(seconds=-5))
        resp = await client.get("/api/v1/user", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Token expired"

    async def test_token_for_unknown_user(self, client: AsyncClient, human_user):
        token = AuthService.create_access_token(human_user.id + 1000)
        resp = await client.get("/api/v1/user", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401


def test_token_subject_is_user_id():
    payload = AuthService.verify_token(AuthService.create_access_token(42))
    assert payload["sub"] == "42"
    assert AuthService.user_id_from_payload(payload) == 42


@pytest.mark.asyncio
async def test_status_requires_auth(client: AsyncClient, human_user):
    assert (await client.get("/api/v1/status")).status_code in (401, 403)
    resp = await client.get("/api/v1/status", headers=get_auth_headers(human_user))
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.headers["X-Request-ID"]
    assert "status" in resp.json()
