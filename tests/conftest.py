import json
import os
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

# Settings are read at import time of gltf_viewer.main; provide a valid configuration.
_TEST_ENV = {
    "API_URL": "https://cad.example.com/api",
    "OAUTH_URL": "https://oauth.example.com",
    "OAUTH_CLIENT_ID": "client-id",
    "OAUTH_CLIENT_SECRET": "client-secret",
    "OAUTH_CALLBACK_URL": "https://viewer.example.com/oauthRedirect",
    "SESSION_SECRET": "test-session-secret",
    "SESSION_HTTPS_ONLY": "false",
    "WEBHOOK_CALLBACK_ROOT_URL": "https://viewer.example.com",
    "REDIS_ENABLED": "false",
    "CORRELATION_BACKEND": "memory",
}
os.environ.update(_TEST_ENV)

# List of environment variables that may be modified by tests
_ENV_VARS_TO_ISOLATE = list(_TEST_ENV) + [
    "REDISTOGO_URL",
    "REDIS_HOST",
    "REDIS_PORT",
    "CORRELATION_TTL_SECONDS",
]

API_BASE = "https://cad.example.com/api"


@pytest.fixture(autouse=True)
def env_isolation():
    """Isolate environment variables between tests."""
    backup = {k: os.environ.get(k) for k in _ENV_VARS_TO_ISOLATE}
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


@pytest.fixture(autouse=True)
def config_cache_isolation():
    """Reset config settings cache and the shared correlation store between tests."""
    from gltf_viewer.api.dependencies import reset_correlation_store
    from gltf_viewer.core.config import reset_settings_cache

    reset_settings_cache()
    reset_correlation_store()
    yield
    reset_settings_cache()
    reset_correlation_store()


class FakeOnshape:
    """In-process stand-in for the Onshape REST API, served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.translation_start: Dict[str, Any] = {"status": 200, "json": {"id": "T1", "requestState": "ACTIVE"}}
        self.translations: Dict[str, Dict[str, Any]] = {}
        self.external_data: Dict[str, Tuple[bytes, str]] = {}
        self.webhook_create: Dict[str, Any] = {"status": 200, "json": {"id": "W9"}}
        self.webhook_delete_status = 204
        self.session_info: Dict[str, Any] = {"status": 200, "json": {"id": "U1", "name": "Test User"}}
        self.unreachable: List[str] = []
        self.listing_status = 200

    @staticmethod
    def _respond(reply: Dict[str, Any]) -> httpx.Response:
        if "json" in reply:
            return httpx.Response(reply["status"], json=reply["json"])
        return httpx.Response(
            reply["status"],
            content=reply.get("text", "").encode("utf-8"),
            headers={"Content-Type": reply.get("content_type", "text/plain")},
        )

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path[len("/api"):]
        for prefix in self.unreachable:
            if path.startswith(prefix):
                raise httpx.ConnectError("connection refused", request=request)

        if request.method == "POST" and path.endswith("/translations"):
            return self._respond(self.translation_start)
        if request.method == "GET" and path.startswith("/translations/"):
            tid = path.rsplit("/", 1)[1]
            if tid not in self.translations:
                return httpx.Response(404, json={"message": "Not found"})
            return httpx.Response(200, json=self.translations[tid])
        if request.method == "GET" and "/externaldata/" in path:
            fid = path.rsplit("/", 1)[1]
            if fid not in self.external_data:
                return httpx.Response(404, json={"message": "Not found"})
            content, content_type = self.external_data[fid]
            return httpx.Response(200, content=content, headers={"Content-Type": content_type})
        if request.method == "POST" and path == "/webhooks":
            return self._respond(self.webhook_create)
        if request.method == "DELETE" and path.startswith("/webhooks/"):
            if self.webhook_delete_status >= 400:
                return httpx.Response(self.webhook_delete_status, text="webhook not found")
            return httpx.Response(self.webhook_delete_status)
        if request.method == "GET" and path == "/users/sessioninfo":
            return self._respond(self.session_info)
        if request.method == "GET" and path.endswith("/elements"):
            return httpx.Response(self.listing_status, json=[{"id": "E42", "name": "Assembly 1", "type": "Assembly"}])
        if request.method == "GET" and path.startswith("/parts/"):
            return httpx.Response(self.listing_status, json=[{"partId": "JHD", "name": "Part 1"}])
        return httpx.Response(404, json={"message": f"unexpected {request.method} {path}"})

    def calls(self, method: str, path_prefix: str) -> List[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.method == method and r.url.path[len("/api"):].startswith(path_prefix)
        ]

    @staticmethod
    def body(request: httpx.Request) -> Any:
        return json.loads(request.content)


@pytest.fixture
def fake_onshape() -> FakeOnshape:
    return FakeOnshape()


@pytest.fixture
def onshape_client(fake_onshape):
    from gltf_viewer.core.onshape import OnshapeClient, OnshapeConfig

    return OnshapeClient(
        OnshapeConfig(base_url=API_BASE, timeout_seconds=5.0),
        transport=httpx.MockTransport(fake_onshape.handle),
    )


@pytest.fixture
def memory_store():
    from gltf_viewer.core.correlation import InMemoryCorrelationStore

    return InMemoryCorrelationStore(ttl_seconds=3600)


@pytest.fixture
def api_client(onshape_client, memory_store):
    """TestClient with a signed-in user, the fake Onshape API and an in-memory store."""
    from fastapi.testclient import TestClient

    from gltf_viewer.api.dependencies import (
        AuthenticatedUser,
        get_authenticated_user,
        get_correlation_store,
        get_onshape_client,
    )
    from gltf_viewer.main import app

    app.dependency_overrides[get_onshape_client] = lambda: onshape_client
    app.dependency_overrides[get_correlation_store] = lambda: memory_store
    app.dependency_overrides[get_authenticated_user] = lambda: AuthenticatedUser(
        access_token="token-abc", user_id="U1"
    )
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _translation_status(
    state: str = "DONE",
    *,
    document_id: str = "D1",
    result_ids: Optional[List[str]] = None,
    failure_reason: Optional[str] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "requestState": state,
        "documentId": document_id,
        "resultExternalDataIds": result_ids if result_ids is not None else ["X1"],
    }
    if failure_reason is not None:
        payload["failureReason"] = failure_reason
    return payload


@pytest.fixture
def translation_status():
    """Factory for `GET /translations/{id}` payloads."""
    return _translation_status
