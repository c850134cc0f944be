"""Shared error codes and exceptions.

Every failure is scoped to a single request; nothing here is fatal to the
process. Route handlers translate these into HTTP responses.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    REMOTE_ERROR = "REMOTE_ERROR"  # Onshape answered with a non-2xx status
    NETWORK_ERROR = "NETWORK_ERROR"  # Onshape could not be reached
    TRANSLATION_FAILED = "TRANSLATION_FAILED"
    WEBHOOK_ERROR = "WEBHOOK_ERROR"
    STORE_ERROR = "STORE_ERROR"
    CONFLICT = "CONFLICT"


class GltfViewerError(Exception):
    code: ErrorCode = ErrorCode.REMOTE_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class OnshapeRequestError(GltfViewerError):
    """A call to the Onshape API failed (transport error or non-2xx status).

    `body` holds the raw remote response text when there was one, otherwise
    the transport error message.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body if body is not None else message
        self.code = ErrorCode.NETWORK_ERROR if status_code is None else ErrorCode.REMOTE_ERROR


class TranslationFailedError(GltfViewerError):
    code = ErrorCode.TRANSLATION_FAILED

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class WebhookRegistrationError(GltfViewerError):
    code = ErrorCode.WEBHOOK_ERROR


class CorrelationConflictError(GltfViewerError):
    """A compare-and-set on a correlation record kept losing to concurrent writers."""

    code = ErrorCode.CONFLICT

    def __init__(self, translation_id: str, attempts: int) -> None:
        super().__init__(
            f"correlation record for {translation_id} changed concurrently "
            f"({attempts} attempts)"
        )
        self.translation_id = translation_id
        self.attempts = attempts


__all__ = [
    "CorrelationConflictError",
    "ErrorCode",
    "GltfViewerError",
    "OnshapeRequestError",
    "TranslationFailedError",
    "WebhookRegistrationError",
]
