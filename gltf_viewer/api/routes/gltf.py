"""GLTF translation endpoints.

`GET /api/gltf` starts a translation (and its completion webhook);
`GET /api/gltf/{tid}` is polled by the viewer until the artifact is ready.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, Response

from gltf_viewer.api.dependencies import (
    AuthenticatedUser,
    get_authenticated_user,
    get_completion_correlator,
    get_translation_trigger,
    get_webhook_coordinator,
)
from gltf_viewer.core.config import Settings, get_settings
from gltf_viewer.core.correlator import CompletionCorrelator, PollStatus
from gltf_viewer.core.errors import WebhookRegistrationError
from gltf_viewer.core.translation import TranslationParams, TranslationTrigger
from gltf_viewer.core.webhooks import WebhookCoordinator, WebhookSubscription

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/gltf")
async def start_gltf_translation(
    document_id: str = Query(..., alias="documentId"),
    workspace_id: str = Query(..., alias="workspaceId"),
    element_id: str = Query(..., alias="gltfElementId"),
    part_id: Optional[str] = Query(default=None, alias="partId"),
    resolution: Optional[str] = Query(default=None),
    distance_tolerance: Optional[float] = Query(default=None, alias="distanceTolerance", gt=0),
    angular_tolerance: Optional[float] = Query(default=None, alias="angularTolerance", gt=0),
    maximum_chord_length: Optional[float] = Query(default=None, alias="maximumChordLength", gt=0),
    user: AuthenticatedUser = Depends(get_authenticated_user),
    trigger: TranslationTrigger = Depends(get_translation_trigger),
    webhooks: WebhookCoordinator = Depends(get_webhook_coordinator),
    correlator: CompletionCorrelator = Depends(get_completion_correlator),
    settings: Settings = Depends(get_settings),
):
    """Trigger translation of an element (or one of its parts) to GLTF.

    The webhook registration and the translation POST run concurrently; the
    completion event is matched by translation id, so their order does not
    matter. A failed registration only means the result never becomes ready.
    Quality parameters default to the configured values.
    """
    params = TranslationParams(
        document_id=document_id,
        workspace_id=workspace_id,
        element_id=element_id,
        part_id=part_id or None,
        resolution=resolution or settings.TRANSLATION_RESOLUTION,
        distance_tolerance=distance_tolerance or settings.TRANSLATION_DISTANCE_TOLERANCE,
        angular_tolerance=angular_tolerance or settings.TRANSLATION_ANGULAR_TOLERANCE,
        maximum_chord_length=maximum_chord_length or settings.TRANSLATION_MAXIMUM_CHORD_LENGTH,
    )
    registration, started = await asyncio.gather(
        webhooks.register_webhook(user.access_token, user.user_id, document_id),
        trigger.start_translation(user.access_token, params.target, params),
        return_exceptions=True,
    )

    subscription: Optional[WebhookSubscription] = None
    if isinstance(registration, WebhookRegistrationError):
        logger.warning(
            "webhook_register_failed",
            extra={"document_id": document_id, "error": registration.message},
        )
    elif isinstance(registration, Exception):
        # The translation may already be running; carry on without completion tracking.
        logger.error(
            "webhook_register_error",
            extra={"document_id": document_id, "error": repr(registration)},
        )
    elif isinstance(registration, BaseException):
        raise registration
    else:
        subscription = registration

    if isinstance(started, BaseException):
        if subscription is not None:
            await webhooks.unregister_webhook(subscription.webhook_id, user.access_token)
        raise started

    translation_id = started.translation_id
    if translation_id:
        await correlator.record_submission(translation_id)
    elif subscription is not None:
        # Nothing to poll for, so no poll would ever remove the webhook.
        logger.warning(
            "translation_id_missing",
            extra={"document_id": document_id, "webhook_id": subscription.webhook_id},
        )
        await webhooks.unregister_webhook(subscription.webhook_id, user.access_token)

    if started.is_json:
        try:
            return JSONResponse(started.json(), status_code=200)
        except ValueError:
            pass
    return Response(content=started.data, status_code=200, media_type=started.content_type)


@router.get("/gltf/{tid}")
async def get_gltf_result(
    tid: str,
    user: AuthenticatedUser = Depends(get_authenticated_user),
    correlator: CompletionCorrelator = Depends(get_completion_correlator),
):
    """Return the translated GLTF: 200 data, 202 still processing, 404 unknown, 500 failed."""
    result = await correlator.poll(tid, user.access_token)
    if result.status is PollStatus.READY:
        return Response(content=result.content, status_code=200, media_type=result.content_type)
    if result.status in (PollStatus.IN_PROGRESS, PollStatus.NOT_FOUND):
        return Response(status_code=result.http_status)
    return JSONResponse({"error": result.error}, status_code=result.http_status)
