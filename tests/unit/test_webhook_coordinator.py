from __future__ import annotations

import pytest

from gltf_viewer.core.errors import WebhookRegistrationError
from gltf_viewer.core.webhooks import (
    TRANSLATION_COMPLETE_EVENT,
    WebhookCoordinator,
    build_filter,
    build_webhook_body,
)

CALLBACK = "https://viewer.example.com/api/event"


def test_filter_scopes_user_and_document():
    assert build_filter("U1", "D1") == "{$UserId} = 'U1' && {$DocumentId} = 'D1'"


def test_webhook_body():
    body = build_webhook_body("U1", "D1", CALLBACK)
    assert body == {
        "events": [TRANSLATION_COMPLETE_EVENT],
        "filter": "{$UserId} = 'U1' && {$DocumentId} = 'D1'",
        "options": {"collapseEvents": False},
        "url": CALLBACK,
    }


@pytest.mark.asyncio
async def test_register_posts_subscription(fake_onshape, onshape_client):
    coordinator = WebhookCoordinator(onshape_client, CALLBACK)

    subscription = await coordinator.register_webhook("token-abc", "U1", "D1")

    assert subscription.webhook_id == "W9"
    assert subscription.callback_url == CALLBACK
    (request,) = fake_onshape.calls("POST", "/webhooks")
    assert request.headers["Accept"] == "application/vnd.onshape.v1+json"
    assert fake_onshape.body(request)["filter"] == build_filter("U1", "D1")


@pytest.mark.asyncio
async def test_register_without_user_makes_no_remote_call(fake_onshape, onshape_client):
    coordinator = WebhookCoordinator(onshape_client, CALLBACK)

    with pytest.raises(WebhookRegistrationError):
        await coordinator.register_webhook("token-abc", None, "D1")

    assert fake_onshape.requests == []


@pytest.mark.asyncio
async def test_register_remote_error(fake_onshape, onshape_client):
    fake_onshape.webhook_create = {"status": 403, "text": "no webhook permission"}

    with pytest.raises(WebhookRegistrationError, match="no webhook permission"):
        await WebhookCoordinator(onshape_client, CALLBACK).register_webhook("token-abc", "U1", "D1")


@pytest.mark.asyncio
async def test_register_response_without_id(fake_onshape, onshape_client):
    fake_onshape.webhook_create = {"status": 200, "json": {"url": CALLBACK}}

    with pytest.raises(WebhookRegistrationError, match="Unexpected remote response"):
        await WebhookCoordinator(onshape_client, CALLBACK).register_webhook("token-abc", "U1", "D1")


@pytest.mark.asyncio
async def test_unregister_success(fake_onshape, onshape_client):
    ok = await WebhookCoordinator(onshape_client, CALLBACK).unregister_webhook("W9", "token-abc")

    assert ok is True
    assert len(fake_onshape.calls("DELETE", "/webhooks/W9")) == 1


@pytest.mark.asyncio
async def test_unregister_failure_is_swallowed(fake_onshape, onshape_client, caplog):
    fake_onshape.webhook_delete_status = 404

    ok = await WebhookCoordinator(onshape_client, CALLBACK).unregister_webhook("W9", "token-abc")

    assert ok is False
    assert any(r.getMessage() == "webhook_unregister_failed" for r in caplog.records)


@pytest.mark.asyncio
async def test_unregister_network_failure_is_swallowed(fake_onshape, onshape_client):
    fake_onshape.unreachable.append("/webhooks")

    assert await WebhookCoordinator(onshape_client, CALLBACK).unregister_webhook("W9", "t") is False
