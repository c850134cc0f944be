"""Correlation table between Onshape translation ids and their completion state.

Each translation id maps to one `CorrelationRecord`, a tagged value:

- `pending`: the job was submitted and no completion event has arrived yet
- `ready`: the completion webhook fired; `webhook_id` is kept for cleanup
- `failed`: a poll found the remote job FAILED; `reason` is kept

Records only move forward (pending -> ready -> failed). Writes are either
set-if-absent or compare-and-set against the serialized record previously
read, so concurrent writers cannot overwrite a newer state with an older one.
Every write refreshes the record's TTL; stale records simply expire.

Backends:
- In-memory (tests, or when Redis is unavailable)
- Redis (production)
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from gltf_viewer.core.config import Settings

logger = logging.getLogger(__name__)


class CorrelationState(str, Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


_ORDER = {
    CorrelationState.PENDING: 0,
    CorrelationState.READY: 1,
    CorrelationState.FAILED: 2,
}


@dataclass(frozen=True)
class CorrelationRecord:
    state: CorrelationState
    webhook_id: Optional[str] = None
    reason: Optional[str] = None
    updated_at: float = field(default_factory=time.time)

    @classmethod
    def pending(cls) -> "CorrelationRecord":
        return cls(state=CorrelationState.PENDING)

    @classmethod
    def ready(cls, webhook_id: str) -> "CorrelationRecord":
        return cls(state=CorrelationState.READY, webhook_id=webhook_id)

    def failed(self, reason: str) -> "CorrelationRecord":
        return replace(self, state=CorrelationState.FAILED, reason=reason, updated_at=time.time())

    def can_become(self, other: "CorrelationRecord") -> bool:
        return _ORDER[other.state] > _ORDER[self.state]

    def dumps(self) -> str:
        return json.dumps(
            {
                "state": self.state.value,
                "webhook_id": self.webhook_id,
                "reason": self.reason,
                "updated_at": self.updated_at,
            },
            sort_keys=True,
            separators=(",", ":"),
        )

    @classmethod
    def loads(cls, raw: str) -> "CorrelationRecord":
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("correlation record must be a JSON object")
        return cls(
            state=CorrelationState(data["state"]),
            webhook_id=data.get("webhook_id"),
            reason=data.get("reason"),
            updated_at=float(data.get("updated_at") or 0.0),
        )


def _decode(translation_id: str, raw: Optional[str]) -> Optional[CorrelationRecord]:
    if raw is None:
        return None
    try:
        return CorrelationRecord.loads(raw)
    except (ValueError, KeyError, TypeError):
        logger.warning(
            "correlation_record_invalid",
            extra={"translation_id": translation_id, "error": raw[:200]},
        )
        return None


class CorrelationStore(ABC):
    @abstractmethod
    async def get(self, translation_id: str) -> Optional[CorrelationRecord]:
        """Current record, or None if the id is unknown (or expired)."""

    @abstractmethod
    async def create(self, translation_id: str, record: CorrelationRecord) -> bool:
        """Store `record` only if no record exists. Returns whether it was written."""

    @abstractmethod
    async def compare_and_set(
        self,
        translation_id: str,
        expected: CorrelationRecord,
        record: CorrelationRecord,
    ) -> bool:
        """Replace `expected` with `record` only if `expected` is still current."""


class InMemoryCorrelationStore(CorrelationStore):
    """Process-local store; only suitable for a single worker."""

    def __init__(self, ttl_seconds: int = 3600) -> None:
        self._ttl_seconds = ttl_seconds
        self._records: Dict[str, Tuple[str, float]] = {}
        self._lock: Optional[asyncio.Lock] = None

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def _current_raw(self, translation_id: str) -> Optional[str]:
        entry = self._records.get(translation_id)
        if entry is None:
            return None
        raw, expires_at = entry
        if time.monotonic() >= expires_at:
            del self._records[translation_id]
            return None
        return raw

    def _write(self, translation_id: str, record: CorrelationRecord) -> None:
        self._records[translation_id] = (record.dumps(), time.monotonic() + self._ttl_seconds)

    async def get(self, translation_id: str) -> Optional[CorrelationRecord]:
        async with self._get_lock():
            return _decode(translation_id, self._current_raw(translation_id))

    async def create(self, translation_id: str, record: CorrelationRecord) -> bool:
        async with self._get_lock():
            if self._current_raw(translation_id) is not None:
                return False
            self._write(translation_id, record)
            return True

    async def compare_and_set(
        self,
        translation_id: str,
        expected: CorrelationRecord,
        record: CorrelationRecord,
    ) -> bool:
        async with self._get_lock():
            if self._current_raw(translation_id) != expected.dumps():
                return False
            self._write(translation_id, record)
            return True

    def __len__(self) -> int:
        return len(self._records)


class RedisCorrelationStore(CorrelationStore):
    """Redis-backed store. Keys are `{prefix}:{translation_id}` with a TTL."""

    # Atomic compare-and-set on the serialized record
    CAS_SCRIPT = """
    local current = redis.call('GET', KEYS[1])
    if current ~= ARGV[1] then
        return 0
    end
    redis.call('SET', KEYS[1], ARGV[2], 'EX', tonumber(ARGV[3]))
    return 1
    """

    def __init__(self, redis_client: Any, *, key_prefix: str, ttl_seconds: int) -> None:
        self._redis = redis_client
        self._key_prefix = key_prefix
        self._ttl_seconds = ttl_seconds

    def _make_key(self, translation_id: str) -> str:
        return f"{self._key_prefix}:{translation_id}"

    async def get(self, translation_id: str) -> Optional[CorrelationRecord]:
        raw = await self._redis.get(self._make_key(translation_id))
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        return _decode(translation_id, raw)

    async def create(self, translation_id: str, record: CorrelationRecord) -> bool:
        written = await self._redis.set(
            self._make_key(translation_id),
            record.dumps(),
            nx=True,
            ex=self._ttl_seconds,
        )
        return bool(written)

    async def compare_and_set(
        self,
        translation_id: str,
        expected: CorrelationRecord,
        record: CorrelationRecord,
    ) -> bool:
        result = await self._redis.eval(
            self.CAS_SCRIPT,
            1,
            self._make_key(translation_id),
            expected.dumps(),
            record.dumps(),
            str(self._ttl_seconds),
        )
        return int(result or 0) == 1


def create_correlation_store(settings: Settings, redis_client: Any = None) -> CorrelationStore:
    if settings.CORRELATION_BACKEND == "redis":
        if redis_client is not None:
            return RedisCorrelationStore(
                redis_client,
                key_prefix=settings.CORRELATION_KEY_PREFIX,
                ttl_seconds=settings.CORRELATION_TTL_SECONDS,
            )
        logger.warning("correlation_store_redis_unavailable_using_memory")
    return InMemoryCorrelationStore(ttl_seconds=settings.CORRELATION_TTL_SECONDS)


__all__ = [
    "CorrelationRecord",
    "CorrelationState",
    "CorrelationStore",
    "InMemoryCorrelationStore",
    "RedisCorrelationStore",
    "create_correlation_store",
]
