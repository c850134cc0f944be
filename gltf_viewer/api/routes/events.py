"""Inbound Onshape webhook events."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from redis.exceptions import RedisError

from gltf_viewer.api.dependencies import get_completion_correlator
from gltf_viewer.core.correlator import CompletionCorrelator, TranslationEvent
from gltf_viewer.core.errors import CorrelationConflictError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/event")
async def receive_event(
    request: Request,
    correlator: CompletionCorrelator = Depends(get_completion_correlator),
) -> Response:
    """Receive a webhook event. Always answers 200 so Onshape keeps the subscription."""
    try:
        payload = await request.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}

    event = TranslationEvent.from_payload(payload)
    try:
        await correlator.handle_event(event)
    except (CorrelationConflictError, RedisError) as e:
        logger.error(
            "webhook_event_not_recorded",
            extra={"translation_id": event.translation_id, "error": str(e)},
        )
    return Response(status_code=200)
