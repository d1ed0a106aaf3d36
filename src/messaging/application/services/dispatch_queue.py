"""
Dispatch Queue
Asynchronous outbound delivery with bounded exponential-backoff retry.

The message store is the durable queue: a message is persisted as `pending`
before its id is handed to the in-process worker pool, and anything still
pending when the workers start is picked up again by recover_pending().
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Set
from uuid import UUID

from src.messaging.domain.entities.message import Message
from src.messaging.domain.events.partner_events import MESSAGE_FAILED, PartnerEvent
from src.messaging.domain.exceptions import PermanentProviderError, ProviderError
from src.messaging.domain.protocols import ChannelProvider, EventPublisher, MessageStore
from src.messaging.domain.value_objects.message_status import MessageState
from src.shared.exceptions import ConflictError, NotFoundError
from src.shared.logging import get_logger, mask_phone
from src.shared.utils.retry import backoff_delay

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class DispatchAck:
    message_id: UUID
    state: MessageState

    def to_dict(self) -> dict:
        return {"message_id": str(self.message_id), "state": self.state.value}


class DispatchQueue:
    """
    Worker pool over an asyncio.Queue of message ids.

    Each message gets up to `max_attempts` provider calls, each bounded by
    `provider_timeout_seconds`; the delay after failed attempt n is
    base * 2**(n-1). A PermanentProviderError stops retrying at once.
    """

    def __init__(
        self,
        store: MessageStore,
        provider: ChannelProvider,
        publisher: Optional[EventPublisher] = None,
        *,
        max_attempts: int = 5,
        backoff_base_seconds: float = 2.0,
        workers: int = 4,
        provider_timeout_seconds: float = 15.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._store = store
        self._provider = provider
        self._publisher = publisher
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base_seconds
        self._worker_count = max(1, workers)
        self._timeout = provider_timeout_seconds
        self._sleep = sleep
        self._queue: asyncio.Queue[UUID] = asyncio.Queue()
        self._queued: Set[UUID] = set()
        self._workers: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    @property
    def depth(self) -> int:
        return self._queue.qsize()

    # ---------- producer side ----------

    def _hand_off(self, message_id: UUID) -> None:
        if message_id in self._queued:
            return
        self._queued.add(message_id)
        self._queue.put_nowait(message_id)

    async def enqueue(self, message: Message) -> DispatchAck:
        """Persist the message as pending and queue it; returns immediately."""
        message.state = MessageState.PENDING
        await self._store.insert(message)
        self._hand_off(message.id)
        logger.info(
            "Message queued",
            message_id=str(message.id),
            tenant_id=message.tenant_id,
            to=mask_phone(message.to),
            type=message.message_type.value if message.message_type else None,
        )
        return DispatchAck(message_id=message.id, state=MessageState.PENDING)

    async def resend(
        self,
        tenant_id: str,
        message_id: UUID,
        *,
        before_enqueue: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> DispatchAck:
        """
        Queue a fresh copy of a failed message; the original stays failed.

        `before_enqueue` runs once the original is known to be resendable
        (admission checks such as quotas go there).
        """
        original = await self._store.get(message_id, tenant_id=tenant_id)
        if original is None:
            raise NotFoundError("Message not found", details={"message_id": str(message_id)})
        if original.state != MessageState.FAILED:
            raise ConflictError(
                "Only failed messages can be resent",
                details={"message_id": str(message_id), "state": original.state.value},
            )
        if before_enqueue is not None:
            await before_enqueue()
        copy = Message.outbound(
            tenant_id=tenant_id,
            to=original.to or "",
            message_type=original.message_type,
            payload=dict(original.payload),
            metadata={**original.metadata, "resend_of": str(original.id)},
        )
        return await self.enqueue(copy)

    async def recover_pending(self) -> int:
        pending = await self._store.list_pending()
        for message in pending:
            self._hand_off(message.id)
        if pending:
            logger.info("Recovered pending messages", count=len(pending))
        return len(pending)

    # ---------- worker side ----------

    async def start(self) -> None:
        if self._workers:
            return
        loop = asyncio.get_running_loop()
        self._workers = [
            loop.create_task(self._run_worker(i), name=f"dispatch-worker-{i}")
            for i in range(self._worker_count)
        ]
        await self.recover_pending()
        logger.info("Dispatch workers started", workers=self._worker_count)

    async def stop(self) -> None:
        """Cancel workers; unfinished messages stay pending for the next start."""
        workers, self._workers = self._workers, []
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        logger.info("Dispatch workers stopped", queued=self._queue.qsize())

    async def join(self) -> None:
        """Wait until every queued message has been processed."""
        await self._queue.join()

    async def _run_worker(self, index: int) -> None:
        while True:
            message_id = await self._queue.get()
            try:
                await self.process(message_id)
            except Exception as e:
                logger.error(
                    "Dispatch worker error",
                    worker=index,
                    message_id=str(message_id),
                    error=str(e),
                    exc_info=True,
                )
            finally:
                self._queued.discard(message_id)
                self._queue.task_done()

    async def process(self, message_id: UUID) -> Optional[MessageState]:
        """
        Drive one pending message to `sent` or `failed`.

        Returns:
            The final state, or None if the message was missing or no longer pending
        """
        message = await self._store.get(message_id)
        if message is None or message.state != MessageState.PENDING:
            logger.info("Skipping dispatch", message_id=str(message_id), state=getattr(message, "state", None))
            return None

        last_error: Optional[str] = None
        attempt = 0
        while attempt < self._max_attempts:
            attempt += 1
            try:
                provider_id = await asyncio.wait_for(self._provider.send(message), timeout=self._timeout)
            except PermanentProviderError as e:
                last_error = str(e)
                logger.warning(
                    "Provider rejected message",
                    message_id=str(message.id),
                    attempt=attempt,
                    status_code=e.status_code,
                    error=last_error,
                )
                break
            except asyncio.TimeoutError:
                last_error = f"provider timed out after {self._timeout}s"
            except ProviderError as e:
                last_error = str(e)
            except Exception as e:
                last_error = f"{e.__class__.__name__}: {e}"
                logger.error("Unexpected provider error", message_id=str(message.id), exc_info=True)
            else:
                applied = await self._store.transition(
                    message.id, MessageState.SENT, provider_id=provider_id, attempts=attempt
                )
                logger.info(
                    "Message sent",
                    message_id=str(message.id),
                    tenant_id=message.tenant_id,
                    provider_id=provider_id,
                    attempts=attempt,
                    applied=applied,
                )
                return MessageState.SENT

            logger.warning(
                "Dispatch attempt failed",
                message_id=str(message.id),
                attempt=attempt,
                max_attempts=self._max_attempts,
                error=last_error,
            )
            if attempt < self._max_attempts:
                await self._store.record_attempt(message.id, attempt, last_error)
                await self._sleep(backoff_delay(attempt, self._backoff_base))

        await self._store.transition(message.id, MessageState.FAILED, error=last_error, attempts=attempt)
        logger.error(
            "Message failed",
            message_id=str(message.id),
            tenant_id=message.tenant_id,
            attempts=attempt,
            error=last_error,
        )
        if self._publisher is not None:
            self._publisher.publish(
                PartnerEvent(
                    tenant_id=message.tenant_id,
                    name=MESSAGE_FAILED,
                    data={
                        "message_id": str(message.id),
                        "status": MessageState.FAILED.value,
                        "error": last_error,
                        "attempts": attempt,
                    },
                )
            )
        return MessageState.FAILED
