"""Completion tracking for GLTF translations.

Two independent signals drive a translation to completion: the Onshape
webhook pushes `onshape.model.translation.complete` to `/api/event`, and the
viewer pulls `/api/gltf/{tid}` every few seconds. This module joins them
through the correlation store:

    unknown --submit--> pending --event--> ready(webhook_id) --poll--> failed(reason)

- Only the webhook moves a record to `ready`.
- A poll on `pending` always answers "in progress" without touching Onshape.
- A poll on `ready` queries the remote job and fetches the artifact, then
  unregisters the webhook. Only a remote `FAILED` state is stored; a job
  without result data yet is reported as an error and re-checked on the next
  poll. Unregistering is best effort and never changes the poll result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from gltf_viewer.core.correlation import CorrelationRecord, CorrelationState, CorrelationStore
from gltf_viewer.core.errors import (
    CorrelationConflictError,
    OnshapeRequestError,
    TranslationFailedError,
)
from gltf_viewer.core.onshape import OnshapeClient
from gltf_viewer.core.webhooks import TRANSLATION_COMPLETE_EVENT, WebhookCoordinator
from gltf_viewer.utils.metrics import translation_polls_total, webhook_events_total

logger = logging.getLogger(__name__)

_MAX_CAS_ATTEMPTS = 3


class PollStatus(str, Enum):
    NOT_FOUND = "not_found"
    IN_PROGRESS = "in_progress"
    READY = "ready"
    FAILED = "failed"
    ERROR = "error"


@dataclass(frozen=True)
class PollResult:
    status: PollStatus
    content: bytes = b""
    content_type: Optional[str] = None
    error: Any = None

    @property
    def http_status(self) -> int:
        return {
            PollStatus.NOT_FOUND: 404,
            PollStatus.IN_PROGRESS: 202,
            PollStatus.READY: 200,
            PollStatus.FAILED: 500,
            PollStatus.ERROR: 500,
        }[self.status]


@dataclass(frozen=True)
class TranslationEvent:
    event: str
    translation_id: Optional[str] = None
    webhook_id: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "TranslationEvent":
        tid = payload.get("translationId")
        wid = payload.get("webhookId")
        return cls(
            event=str(payload.get("event") or ""),
            translation_id=str(tid) if tid else None,
            webhook_id=str(wid) if wid else None,
        )

    @property
    def is_translation_complete(self) -> bool:
        return self.event == TRANSLATION_COMPLETE_EVENT


class CompletionCorrelator:
    def __init__(
        self,
        store: CorrelationStore,
        client: OnshapeClient,
        webhooks: WebhookCoordinator,
    ) -> None:
        self._store = store
        self._client = client
        self._webhooks = webhooks

    async def record_submission(self, translation_id: str) -> CorrelationRecord:
        """Mark a freshly submitted translation as pending.

        Uses set-if-absent: when the completion webhook raced ahead of us the
        `ready` record it wrote is kept.
        """
        pending = CorrelationRecord.pending()
        if await self._store.create(translation_id, pending):
            logger.info("translation_pending", extra={"translation_id": translation_id})
            return pending
        current = await self._store.get(translation_id)
        logger.info(
            "translation_already_recorded",
            extra={
                "translation_id": translation_id,
                "state": current.state.value if current else None,
            },
        )
        return current or pending

    async def handle_event(self, event: TranslationEvent) -> Optional[CorrelationRecord]:
        """Apply an inbound webhook event. Returns the resulting record, if any.

        Unrecognised events are ignored. A completion event for an id this
        service never recorded is still stored (no validation that the id was
        submitted here); it is logged so the gap stays visible.
        """
        webhook_events_total.labels(event=event.event or "unknown").inc()
        if not event.is_translation_complete:
            logger.debug("webhook_event_ignored", extra={"event": event.event})
            return None
        if not event.translation_id or not event.webhook_id:
            logger.warning(
                "webhook_event_incomplete",
                extra={
                    "event": event.event,
                    "translation_id": event.translation_id,
                    "webhook_id": event.webhook_id,
                },
            )
            return None

        tid = event.translation_id
        ready = CorrelationRecord.ready(event.webhook_id)
        for _ in range(_MAX_CAS_ATTEMPTS):
            current = await self._store.get(tid)
            if current is None:
                logger.warning(
                    "webhook_event_unknown_translation",
                    extra={"translation_id": tid, "webhook_id": event.webhook_id},
                )
                written = await self._store.create(tid, ready)
            elif current.can_become(ready):
                written = await self._store.compare_and_set(tid, current, ready)
            else:
                # Replayed or late event; the first terminal write wins.
                logger.info(
                    "webhook_event_duplicate",
                    extra={
                        "translation_id": tid,
                        "webhook_id": event.webhook_id,
                        "state": current.state.value,
                    },
                )
                return current
            if written:
                logger.info(
                    "translation_ready",
                    extra={"translation_id": tid, "webhook_id": event.webhook_id},
                )
                return ready
        raise CorrelationConflictError(tid, _MAX_CAS_ATTEMPTS)

    async def poll(self, translation_id: str, access_token: str) -> PollResult:
        record = await self._store.get(translation_id)
        if record is None:
            result = PollResult(PollStatus.NOT_FOUND)
        elif record.state is CorrelationState.PENDING:
            result = PollResult(PollStatus.IN_PROGRESS)
        elif record.state is CorrelationState.FAILED:
            result = PollResult(PollStatus.FAILED, error=record.reason)
        else:
            try:
                result = await self._fetch_result(translation_id, record, access_token)
            finally:
                if record.webhook_id:
                    await self._webhooks.unregister_webhook(record.webhook_id, access_token)
        translation_polls_total.labels(outcome=result.status.value).inc()
        return result

    async def _fetch_result(
        self, translation_id: str, record: CorrelationRecord, access_token: str
    ) -> PollResult:
        try:
            status = await self._client.get_translation(access_token, translation_id)
            if status.get("requestState") == "FAILED":
                raise TranslationFailedError(str(status.get("failureReason") or "Translation failed"))
            document_id = status.get("documentId")
            data_ids = status.get("resultExternalDataIds") or []
            if not document_id or not data_ids:
                # Not terminal yet (or an early event); the next poll re-checks.
                state = status.get("requestState") or "UNKNOWN"
                logger.warning(
                    "translation_result_unavailable",
                    extra={"translation_id": translation_id, "state": state},
                )
                return PollResult(
                    PollStatus.ERROR,
                    error=f"Translation result not available (requestState {state})",
                )
            artifact = await self._client.get_external_data(
                access_token, str(document_id), str(data_ids[0])
            )
        except TranslationFailedError as e:
            await self._remember_failure(translation_id, record, e.reason)
            logger.warning(
                "translation_failed",
                extra={"translation_id": translation_id, "error": e.reason},
            )
            return PollResult(PollStatus.FAILED, error=e.reason)
        except OnshapeRequestError as e:
            logger.warning(
                "translation_fetch_failed",
                extra={
                    "translation_id": translation_id,
                    "status_code": e.status_code,
                    "error": str(e.body),
                },
            )
            return PollResult(PollStatus.ERROR, error=e.body)
        return PollResult(
            PollStatus.READY,
            content=artifact.content,
            content_type=artifact.content_type,
        )

    async def _remember_failure(
        self, translation_id: str, record: CorrelationRecord, reason: str
    ) -> None:
        written = await self._store.compare_and_set(translation_id, record, record.failed(reason))
        if not written:
            logger.debug("translation_failure_not_recorded", extra={"translation_id": translation_id})


__all__ = [
    "CompletionCorrelator",
    "PollResult",
    "PollStatus",
    "TranslationEvent",
]
