"""
Idempotency Cache
Request de-duplication keyed by a client-supplied Idempotency-Key.
"""
from __future__ import annotations

import base64
import json
from typing import Optional
from uuid import UUID

from src.platform.domain.value_objects import CachedResponse, IdempotencyResult
from src.shared.exceptions import InvalidRequestError, StoreUnavailableError
from src.shared.infrastructure.cache.cache_protocol import CounterStore
from src.shared.logging import get_logger

logger = get_logger(__name__)

STATE_IN_PROGRESS = "in_progress"
STATE_COMPLETE = "complete"


def validate_idempotency_key(key: Optional[str]) -> Optional[str]:
    """Return the canonical form of a UUID key, None when absent."""
    if key is None or key == "":
        return None
    try:
        return str(UUID(key))
    except (ValueError, AttributeError, TypeError):
        raise InvalidRequestError(
            "Idempotency-Key must be a UUID",
            details={"header": "Idempotency-Key"},
        )


class IdempotencyCache:
    """
    Claim / complete / release protocol over the counter store.

    begin() claims the key with SET NX and an in_progress marker. The claim has
    a short TTL so a crashed handler cannot block the key forever. complete()
    overwrites the marker with the response and the full TTL.
    """

    def __init__(
        self,
        store: CounterStore,
        *,
        ttl_seconds: int = 86400,
        claim_ttl_seconds: int = 60,
    ) -> None:
        self._store = store
        self._ttl = ttl_seconds
        self._claim_ttl = claim_ttl_seconds

    @staticmethod
    def record_key(tenant_id: str, key: str) -> str:
        return f"idem:{tenant_id}:{key}"

    async def begin(self, tenant_id: str, key: str) -> IdempotencyResult:
        """
        Claim a key or report the existing record.

        Returns:
            IdempotencyResult; is_duplicate with cached_response for a completed
            record, is_duplicate with in_progress for a concurrent retry.
        """
        rkey = self.record_key(tenant_id, key)
        marker = json.dumps({"state": STATE_IN_PROGRESS}, separators=(",", ":"))
        try:
            claimed = await self._store.set(rkey, marker, ttl_seconds=self._claim_ttl, nx=True)
            if claimed:
                return IdempotencyResult(is_duplicate=False)
            raw = await self._store.get(rkey)
        except StoreUnavailableError as e:
            logger.warning("Idempotency store unavailable; executing", tenant_id=tenant_id, error=str(e))
            return IdempotencyResult(is_duplicate=False)

        if raw is None:
            # expired between SET NX and GET; claim again on the next call
            return await self.begin(tenant_id, key)

        record = json.loads(raw)
        if record.get("state") != STATE_COMPLETE:
            logger.info("Idempotent request still in progress", tenant_id=tenant_id)
            return IdempotencyResult(is_duplicate=True, in_progress=True)

        cached = CachedResponse(
            status=int(record["status"]),
            body=base64.b64decode(record["body"]),
            media_type=record.get("media_type") or "application/json",
        )
        logger.info("Replaying idempotent response", tenant_id=tenant_id, status=cached.status)
        return IdempotencyResult(is_duplicate=True, cached_response=cached)

    async def complete(
        self,
        tenant_id: str,
        key: str,
        status: int,
        body: bytes,
        media_type: str = "application/json",
    ) -> None:
        record = {
            "state": STATE_COMPLETE,
            "status": status,
            "body": base64.b64encode(body).decode("ascii"),
            "media_type": media_type,
        }
        try:
            await self._store.set(
                self.record_key(tenant_id, key),
                json.dumps(record, separators=(",", ":")),
                ttl_seconds=self._ttl,
            )
        except StoreUnavailableError as e:
            logger.warning("Failed to store idempotent response", tenant_id=tenant_id, error=str(e))

    async def release(self, tenant_id: str, key: str) -> None:
        try:
            await self._store.delete(self.record_key(tenant_id, key))
        except StoreUnavailableError as e:
            logger.warning("Failed to release idempotency claim", tenant_id=tenant_id, error=str(e))
