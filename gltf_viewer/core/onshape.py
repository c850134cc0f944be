"""Client for the Onshape REST API.

A small async httpx wrapper used by the translation, webhook and document
routes. Every call authenticates with the signed-in user's OAuth bearer token.
Failures are never retried: transport errors and non-2xx answers raise
`OnshapeRequestError` carrying the remote body.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from gltf_viewer.core.config import Settings, get_settings
from gltf_viewer.core.errors import OnshapeRequestError

ONSHAPE_JSON = "application/vnd.onshape.v1+json"


@dataclass(frozen=True)
class OnshapeConfig:
    base_url: str
    timeout_seconds: float = 30.0

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "OnshapeConfig":
        settings = settings or get_settings()
        return cls(
            base_url=settings.API_URL.rstrip("/"),
            timeout_seconds=float(settings.ONSHAPE_TIMEOUT_SECONDS),
        )


@dataclass(frozen=True)
class OnshapeResponse:
    status_code: int
    content_type: str
    content: bytes

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    @property
    def is_json(self) -> bool:
        return "json" in self.content_type.lower()


class OnshapeClient:
    def __init__(
        self,
        config: OnshapeConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=httpx.Timeout(self.config.timeout_seconds),
            transport=self._transport,
        )

    async def request(
        self,
        method: str,
        path: str,
        access_token: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        accept: Optional[str] = None,
        raise_for_status: bool = True,
    ) -> OnshapeResponse:
        headers = {"Authorization": f"Bearer {access_token}"}
        if accept:
            headers["Accept"] = accept
        try:
            async with self._client() as client:
                resp = await client.request(method, path, json=json, headers=headers)
        except httpx.RequestError as e:
            raise OnshapeRequestError(f"{method} {path} failed: {e}") from e

        result = OnshapeResponse(
            status_code=resp.status_code,
            content_type=resp.headers.get("Content-Type", "application/octet-stream"),
            content=resp.content,
        )
        if raise_for_status and not resp.is_success:
            raise OnshapeRequestError(
                f"{method} {path} returned {resp.status_code}",
                status_code=resp.status_code,
                body=result.text,
            )
        return result

    async def _request_json(self, method: str, path: str, access_token: str, **kwargs: Any) -> Any:
        resp = await self.request(method, path, access_token, **kwargs)
        try:
            return json.loads(resp.content)
        except ValueError as e:
            raise OnshapeRequestError(
                f"{method} {path} returned a non-JSON body",
                status_code=resp.status_code,
                body=resp.text,
            ) from e

    async def start_translation(
        self, access_token: str, path: str, body: Dict[str, Any]
    ) -> OnshapeResponse:
        return await self.request("POST", path, access_token, json=body, accept="application/json")

    async def get_translation(self, access_token: str, translation_id: str) -> Dict[str, Any]:
        return await self._request_json("GET", f"/translations/{translation_id}", access_token)

    async def get_external_data(
        self, access_token: str, document_id: str, external_data_id: str
    ) -> OnshapeResponse:
        return await self.request(
            "GET", f"/documents/d/{document_id}/externaldata/{external_data_id}", access_token
        )

    async def create_webhook(self, access_token: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request_json(
            "POST", "/webhooks", access_token, json=body, accept=ONSHAPE_JSON
        )

    async def delete_webhook(self, access_token: str, webhook_id: str) -> None:
        await self.request("DELETE", f"/webhooks/{webhook_id}", access_token)

    async def get_session_info(self, access_token: str) -> Dict[str, Any]:
        return await self._request_json(
            "GET", "/users/sessioninfo", access_token, accept=ONSHAPE_JSON
        )

    async def forward(self, access_token: str, path: str) -> OnshapeResponse:
        """GET `path` and hand back whatever Onshape answered, status included."""
        return await self.request("GET", path, access_token, raise_for_status=False)


__all__ = ["ONSHAPE_JSON", "OnshapeClient", "OnshapeConfig", "OnshapeResponse"]
