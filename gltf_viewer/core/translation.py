"""Submission of GLTF translation jobs to Onshape.

A translation request body is the fixed baseline below merged with the
per-request overrides (workspace, element or part, resolution, tolerances).
The caller records the returned translation id in the correlation store; see
`gltf_viewer.core.correlator`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from gltf_viewer.core.errors import OnshapeRequestError
from gltf_viewer.core.onshape import OnshapeClient
from gltf_viewer.utils.metrics import translation_start_errors_total, translations_started_total

logger = logging.getLogger(__name__)

BASELINE_BODY: Mapping[str, Any] = MappingProxyType(
    {
        "includeExportIds": False,
        "formatName": "GLTF",
        "flattenAssemblies": False,
        "yAxisIsUp": False,
        "triggerAutoDownload": False,
        "storeInDocument": False,
        "connectionId": "",
        "versionString": "",
        "grouping": True,
        "destinationName": "",
        "configuration": "default",
        "cloudStorageAccountId": None,
        "emailLink": False,
        "emailTo": None,
        "emailSubject": None,
        "emailMessage": None,
        "sendCopyToMe": None,
        "passwordRequired": None,
        "password": None,
        "validForDays": None,
        "fromUserId": None,
    }
)


class TranslationTarget(str, Enum):
    """Which Onshape sub-resource performs the translation."""

    ELEMENT = "assemblies"
    PART = "partstudios"


@dataclass(frozen=True)
class TranslationParams:
    document_id: str
    workspace_id: str
    element_id: str
    resolution: str
    distance_tolerance: float
    angular_tolerance: float
    maximum_chord_length: float
    part_id: Optional[str] = None

    @property
    def target(self) -> TranslationTarget:
        return TranslationTarget.PART if self.part_id else TranslationTarget.ELEMENT


@dataclass(frozen=True)
class TranslationStartResult:
    content_type: str
    data: str

    @property
    def is_json(self) -> bool:
        return "json" in (self.content_type or "").lower()

    def json(self) -> Any:
        return json.loads(self.data)

    @property
    def translation_id(self) -> Optional[str]:
        """The Onshape-assigned translation id, if the body is a JSON job descriptor."""
        if not self.is_json:
            return None
        try:
            payload = self.json()
        except ValueError:
            return None
        if not isinstance(payload, dict):
            return None
        tid = payload.get("id")
        return str(tid) if tid else None


def translation_path(target: TranslationTarget, params: TranslationParams) -> str:
    return (
        f"/{target.value}/d/{params.document_id}/w/{params.workspace_id}"
        f"/e/{params.element_id}/translations"
    )


def build_translation_body(target: TranslationTarget, params: TranslationParams) -> Dict[str, Any]:
    body = dict(BASELINE_BODY)
    body["linkDocumentWorkspaceId"] = params.workspace_id
    if target is TranslationTarget.PART:
        body["partIds"] = params.part_id
    else:
        body["elementId"] = params.element_id
    body.update(
        {
            "resolution": params.resolution,
            "distanceTolerance": params.distance_tolerance,
            "angularTolerance": params.angular_tolerance,
            "maximumChordLength": params.maximum_chord_length,
        }
    )
    return body


class TranslationTrigger:
    """Builds and submits GLTF translation requests."""

    def __init__(self, client: OnshapeClient) -> None:
        self._client = client

    async def start_translation(
        self,
        access_token: str,
        target: TranslationTarget,
        params: TranslationParams,
    ) -> TranslationStartResult:
        """Submit one translation job.

        Raises:
            OnshapeRequestError: the POST failed or Onshape answered non-2xx.
                Not retried; the caller maps it to a 500.
        """
        if target is TranslationTarget.PART and not params.part_id:
            raise ValueError("part_id is required for part translations")
        path = translation_path(target, params)
        body = build_translation_body(target, params)
        try:
            resp = await self._client.start_translation(access_token, path, body)
        except OnshapeRequestError as e:
            translation_start_errors_total.labels(target=target.name.lower()).inc()
            logger.warning(
                "translation_start_failed",
                extra={
                    "document_id": params.document_id,
                    "status_code": e.status_code,
                    "error": str(e.body),
                },
            )
            raise
        translations_started_total.labels(target=target.name.lower()).inc()
        result = TranslationStartResult(content_type=resp.content_type, data=resp.text)
        logger.info(
            "translation_started",
            extra={"document_id": params.document_id, "translation_id": result.translation_id},
        )
        return result

    async def translate_element(
        self, access_token: str, params: TranslationParams
    ) -> TranslationStartResult:
        return await self.start_translation(access_token, TranslationTarget.ELEMENT, params)

    async def translate_part(
        self, access_token: str, params: TranslationParams
    ) -> TranslationStartResult:
        return await self.start_translation(access_token, TranslationTarget.PART, params)


__all__ = [
    "BASELINE_BODY",
    "TranslationParams",
    "TranslationStartResult",
    "TranslationTarget",
    "TranslationTrigger",
    "build_translation_body",
    "translation_path",
]
