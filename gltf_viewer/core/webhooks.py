"""Onshape webhook subscriptions for translation completion.

A subscription is scoped to one user and one document, delivers the single
`onshape.model.translation.complete` event with collapsing disabled, and calls
back into this service's `/api/event` endpoint. It lives for exactly one
translation and is removed once the result has been read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from gltf_viewer.core.errors import OnshapeRequestError, WebhookRegistrationError
from gltf_viewer.core.onshape import OnshapeClient
from gltf_viewer.utils.metrics import webhook_registrations_total, webhook_unregistrations_total

logger = logging.getLogger(__name__)

TRANSLATION_COMPLETE_EVENT = "onshape.model.translation.complete"


@dataclass(frozen=True)
class WebhookSubscription:
    webhook_id: str
    user_id: str
    document_id: str
    callback_url: str


def build_filter(user_id: str, document_id: str) -> str:
    return f"{{$UserId}} = '{user_id}' && {{$DocumentId}} = '{document_id}'"


def build_webhook_body(user_id: str, document_id: str, callback_url: str) -> Dict[str, Any]:
    return {
        "events": [TRANSLATION_COMPLETE_EVENT],
        "filter": build_filter(user_id, document_id),
        "options": {"collapseEvents": False},
        "url": callback_url,
    }


class WebhookCoordinator:
    def __init__(self, client: OnshapeClient, callback_url: str) -> None:
        self._client = client
        self.callback_url = callback_url

    async def register_webhook(
        self,
        access_token: str,
        user_id: Optional[str],
        document_id: str,
    ) -> WebhookSubscription:
        """Create the completion webhook for `document_id`.

        Raises:
            WebhookRegistrationError: no user id is known for the session, or
                Onshape rejected the request. Registration is not retried.
        """
        if not user_id:
            webhook_registrations_total.labels(result="no_user").inc()
            raise WebhookRegistrationError("No user id in session; cannot scope webhook")
        body = build_webhook_body(user_id, document_id, self.callback_url)
        try:
            payload = await self._client.create_webhook(access_token, body)
        except OnshapeRequestError as e:
            webhook_registrations_total.labels(result="error").inc()
            raise WebhookRegistrationError(f"Failed to create webhook: {e.body}") from e

        webhook_id = str(payload.get("id") or "") if isinstance(payload, dict) else ""
        if not webhook_id:
            webhook_registrations_total.labels(result="error").inc()
            raise WebhookRegistrationError(f"Unexpected remote response: {payload!r}")

        webhook_registrations_total.labels(result="ok").inc()
        logger.info(
            "webhook_registered",
            extra={"webhook_id": webhook_id, "document_id": document_id},
        )
        return WebhookSubscription(
            webhook_id=webhook_id,
            user_id=user_id,
            document_id=document_id,
            callback_url=self.callback_url,
        )

    async def unregister_webhook(self, webhook_id: str, access_token: str) -> bool:
        """Best-effort DELETE of a webhook. Never raises; returns whether it succeeded.

        An orphaned subscription is tolerated: Onshape expires webhooks on its
        own schedule, and unregistering one twice is expected when a finished
        translation is polled again.
        """
        try:
            await self._client.delete_webhook(access_token, webhook_id)
        except OnshapeRequestError as e:
            webhook_unregistrations_total.labels(result="error").inc()
            logger.warning(
                "webhook_unregister_failed",
                extra={
                    "webhook_id": webhook_id,
                    "status_code": e.status_code,
                    "error": str(e.body),
                },
            )
            return False
        webhook_unregistrations_total.labels(result="ok").inc()
        logger.info("webhook_unregistered", extra={"webhook_id": webhook_id})
        return True


__all__ = [
    "TRANSLATION_COMPLETE_EVENT",
    "WebhookCoordinator",
    "WebhookSubscription",
    "build_filter",
    "build_webhook_body",
]
