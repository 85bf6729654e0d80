"""
Tests for token validation, storage and the auth service
"""

import asyncio
import base64
import json
import os
import time
from unittest.mock import AsyncMock

import httpx
import pytest

from orbitport.auth import AuthService
from orbitport.errors import ErrorCode, OrbitportError
from orbitport.settings import Settings
from orbitport.storage import (
    CustomTokenStorage,
    FileTokenStorage,
    MemoryTokenStorage,
    create_default_storage,
)
from orbitport.validation import (
    decode_jwt_payload,
    is_token_expired,
    is_valid_jwt,
    sanitize_config,
    validate_config,
)

AUTH_URL = "https://auth.test"


def make_jwt(exp_offset=3600, **claims):
    def segment(obj):
        return base64.urlsafe_b64encode(json.dumps(obj).encode()).decode().rstrip("=")

    payload = {"exp": int(time.time()) + exp_offset, **claims}
    return f"{segment({'alg': 'RS256', 'typ': 'JWT'})}.{segment(payload)}.signature"


# Validation

def test_jwt_helpers():
    token = make_jwt(sub="client")

    assert is_valid_jwt(token)
    assert decode_jwt_payload(token)["sub"] == "client"
    assert not is_token_expired(token)
    assert is_token_expired(make_jwt(exp_offset=30))
    assert is_token_expired(make_jwt(exp_offset=-10))
    assert not is_valid_jwt("not.a.jwt")
    assert not is_valid_jwt("only-one-part")
    assert is_token_expired("garbage")


def test_validate_config():
    assert validate_config(Settings()).valid

    result = validate_config(Settings(api_url="ftp://nope", timeout_ms=0, retry_delay_ms=0),
                             require_credentials=True)

    assert not result.valid
    assert "client_id is required" in result.errors
    assert "api_url must be a valid URL" in result.errors
    assert "timeout_ms must be a positive number" in result.errors
    assert "retry_delay_ms must be a positive number" in result.errors


def test_sanitize_config():
    settings = sanitize_config(Settings(client_id="  id  ", client_secret=" secret "))
    assert settings.client_id == "id"
    assert settings.client_secret == "secret"

    with pytest.raises(OrbitportError) as exc_info:
        sanitize_config(Settings(auth_url="not-a-url"))
    assert exc_info.value.code == ErrorCode.INVALID_CONFIG


# Storage

@pytest.mark.asyncio
async def test_memory_storage_expiry():
    storage = MemoryTokenStorage()

    await storage.set("token", time.time() + 60)
    assert await storage.get() == "token"

    await storage.set("old", time.time() - 1)
    assert await storage.get() is None


@pytest.mark.asyncio
async def test_file_storage_roundtrip(tmp_path):
    path = tmp_path / "tokens" / "token.json"
    storage = FileTokenStorage(str(path))

    await storage.set("token", time.time() + 60)

    assert await storage.get() == "token"
    assert oct(os.stat(path).st_mode & 0o777) == "0o600"

    await storage.clear()
    assert not path.exists()
    assert await storage.get() is None


@pytest.mark.asyncio
async def test_file_storage_expired_and_corrupt(tmp_path):
    path = tmp_path / "token.json"
    storage = FileTokenStorage(str(path))

    await storage.set("token", time.time() - 5)
    assert await storage.get() is None
    assert not path.exists()

    path.write_text("{broken")
    assert await storage.get() is None


@pytest.mark.asyncio
async def test_custom_storage_delegates():
    getter = AsyncMock(return_value="abc")
    setter = AsyncMock()
    clearer = AsyncMock()
    storage = CustomTokenStorage(getter, setter, clearer)

    assert await storage.get() == "abc"
    await storage.set("t", 1.0)
    await storage.clear()

    setter.assert_awaited_once_with("t", 1.0)
    clearer.assert_awaited_once()


def test_create_default_storage(tmp_path):
    assert isinstance(create_default_storage(Settings()), MemoryTokenStorage)
    assert isinstance(create_default_storage(Settings(token_file=str(tmp_path / "t"))), FileTokenStorage)


# Auth service

class FakeAuthServer:
    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)

    def client(self):
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def auth_service(server, storage=None, events=None, **overrides):
    values = dict(client_id="client-id", client_secret="client-secret", auth_url=AUTH_URL,
                  api_url="https://op.test")
    values.update(overrides)
    return AuthService(Settings(**values), storage or MemoryTokenStorage(),
                       events.append if events is not None else None, server.client())


@pytest.mark.asyncio
async def test_requests_and_caches_token():
    """Test that a fresh token is requested once and then served from storage"""
    token = make_jwt()
    server = FakeAuthServer([httpx.Response(200, json={"access_token": token, "expires_in": 3600})])
    events = []
    auth = auth_service(server, events=events)

    assert await auth.get_valid_token() == token
    assert await auth.get_valid_token() == token

    assert len(server.requests) == 1
    body = json.loads(server.requests[0].content)
    assert str(server.requests[0].url) == f"{AUTH_URL}/oauth/token"
    assert body == {
        "client_id": "client-id",
        "client_secret": "client-secret",
        "audience": "https://op.test/api",
        "grant_type": "client_credentials",
    }
    assert [e.type for e in events] == ["token_refresh"]
    assert await auth.is_token_valid()
    assert (await auth.get_token_info())["valid"] is True


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_refresh():
    token = make_jwt()
    server = FakeAuthServer([httpx.Response(200, json={"access_token": token})])
    auth = auth_service(server)

    tokens = await asyncio.gather(*(auth.get_valid_token() for _ in range(5)))

    assert set(tokens) == {token}
    assert len(server.requests) == 1


@pytest.mark.asyncio
async def test_rejected_credentials_clear_storage():
    storage = MemoryTokenStorage()
    server = FakeAuthServer([httpx.Response(401, json={"error": "access_denied",
                                                       "error_description": "Unauthorized"})])
    auth = auth_service(server, storage=storage)

    with pytest.raises(OrbitportError) as exc_info:
        await auth.get_valid_token()

    assert exc_info.value.code == ErrorCode.AUTH_FAILED
    assert exc_info.value.message == "Unauthorized"
    assert await storage.get() is None


@pytest.mark.asyncio
async def test_missing_access_token():
    server = FakeAuthServer([httpx.Response(200, json={"token_type": "Bearer"})])
    auth = auth_service(server)

    with pytest.raises(OrbitportError) as exc_info:
        await auth.get_valid_token()

    assert exc_info.value.code == ErrorCode.INVALID_RESPONSE


@pytest.mark.asyncio
async def test_missing_credentials():
    server = FakeAuthServer([])
    auth = auth_service(server, client_id=None, client_secret=None)

    with pytest.raises(OrbitportError) as exc_info:
        await auth.get_valid_token()

    assert exc_info.value.code == ErrorCode.INVALID_CREDENTIALS
    assert server.requests == []


@pytest.mark.asyncio
async def test_clear_token():
    storage = MemoryTokenStorage()
    await storage.set(make_jwt(), time.time() + 600)
    auth = auth_service(FakeAuthServer([]), storage=storage)

    assert await auth.is_token_valid()
    await auth.clear_token()
    assert not await auth.is_token_valid()
    assert await auth.get_token_info() == {"valid": False}
