"""Onshape OAuth2 authorization-code flow."""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

import httpx

from gltf_viewer.core.config import Settings
from gltf_viewer.core.errors import OnshapeRequestError


@dataclass(frozen=True)
class OAuthTokens:
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None


class OnshapeOAuth:
    def __init__(
        self,
        settings: Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.authorize_url = f"{settings.OAUTH_URL}/oauth/authorize"
        self.token_url = f"{settings.OAUTH_URL}/oauth/token"
        self.client_id = settings.OAUTH_CLIENT_ID
        self.client_secret = settings.OAUTH_CLIENT_SECRET
        self.callback_url = settings.OAUTH_CALLBACK_URL
        self.timeout_seconds = float(settings.ONSHAPE_TIMEOUT_SECONDS)
        self._transport = transport

    @staticmethod
    def new_state() -> str:
        return secrets.token_urlsafe(24)

    def authorization_url(self, state: str) -> str:
        query = urlencode(
            {
                "response_type": "code",
                "client_id": self.client_id,
                "redirect_uri": self.callback_url,
                "state": state,
            }
        )
        return f"{self.authorize_url}?{query}"

    async def exchange_code(self, code: str) -> OAuthTokens:
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": self.callback_url,
        }
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds), transport=self._transport
            ) as client:
                resp = await client.post(self.token_url, data=data)
        except httpx.RequestError as e:
            raise OnshapeRequestError(f"token exchange failed: {e}") from e
        if not resp.is_success:
            raise OnshapeRequestError(
                f"token exchange returned {resp.status_code}",
                status_code=resp.status_code,
                body=resp.text,
            )
        try:
            payload = resp.json()
        except ValueError as e:
            raise OnshapeRequestError(
                "token exchange returned a non-JSON body", status_code=resp.status_code, body=resp.text
            ) from e
        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            raise OnshapeRequestError(
                "token exchange response missing access_token",
                status_code=resp.status_code,
                body=resp.text,
            )
        expires_in = payload.get("expires_in")
        return OAuthTokens(
            access_token=str(access_token),
            refresh_token=payload.get("refresh_token"),
            expires_in=int(expires_in) if expires_in is not None else None,
        )


__all__ = ["OAuthTokens", "OnshapeOAuth"]
