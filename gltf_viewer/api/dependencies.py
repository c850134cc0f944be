"""FastAPI dependencies: the signed-in user and the translation components."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request

from gltf_viewer.core.config import Settings, get_settings
from gltf_viewer.core.correlation import CorrelationStore, create_correlation_store
from gltf_viewer.core.correlator import CompletionCorrelator
from gltf_viewer.core.oauth import OnshapeOAuth
from gltf_viewer.core.onshape import OnshapeClient, OnshapeConfig
from gltf_viewer.core.translation import TranslationTrigger
from gltf_viewer.core.webhooks import WebhookCoordinator
from gltf_viewer.utils.cache import get_client

SESSION_ACCESS_TOKEN = "access_token"
SESSION_REFRESH_TOKEN = "refresh_token"
SESSION_USER_ID = "user_id"
SESSION_OAUTH_STATE = "oauth_state"
SESSION_DOCUMENT = "document"


@dataclass(frozen=True)
class AuthenticatedUser:
    access_token: str
    user_id: Optional[str] = None


async def get_authenticated_user(request: Request) -> AuthenticatedUser:
    token = request.session.get(SESSION_ACCESS_TOKEN)
    if not token:
        raise HTTPException(status_code=401, detail="Not signed in")
    return AuthenticatedUser(access_token=token, user_id=request.session.get(SESSION_USER_ID))


def get_onshape_client(settings: Settings = Depends(get_settings)) -> OnshapeClient:
    return OnshapeClient(OnshapeConfig.from_settings(settings))


def get_oauth(settings: Settings = Depends(get_settings)) -> OnshapeOAuth:
    return OnshapeOAuth(settings)


_correlation_store: Optional[CorrelationStore] = None


def get_correlation_store() -> CorrelationStore:
    global _correlation_store
    if _correlation_store is None:
        _correlation_store = create_correlation_store(get_settings(), get_client())
    return _correlation_store


def reset_correlation_store() -> None:
    global _correlation_store
    _correlation_store = None


def get_translation_trigger(
    client: OnshapeClient = Depends(get_onshape_client),
) -> TranslationTrigger:
    return TranslationTrigger(client)


def get_webhook_coordinator(
    client: OnshapeClient = Depends(get_onshape_client),
    settings: Settings = Depends(get_settings),
) -> WebhookCoordinator:
    return WebhookCoordinator(client, settings.webhook_callback_url)


def get_completion_correlator(
    store: CorrelationStore = Depends(get_correlation_store),
    client: OnshapeClient = Depends(get_onshape_client),
    webhooks: WebhookCoordinator = Depends(get_webhook_coordinator),
) -> CompletionCorrelator:
    return CompletionCorrelator(store, client, webhooks)
