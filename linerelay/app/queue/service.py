from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Awaitable, Callable, Sequence
from uuid import uuid4

from linerelay.app.queue.contracts import QueueMessage, WorkItem
from linerelay.app.relay.contracts import RelayBatchError

LOGGER = logging.getLogger(__name__)

BatchHandler = Callable[[Sequence[QueueMessage]], Awaitable[object]]

_SHUTDOWN = "__shutdown__"


def build_queue_message(item: WorkItem) -> QueueMessage:
    return QueueMessage(
        id=f"msg-{uuid4().hex[:12]}",
        timestamp=datetime.now(timezone.utc).isoformat(),
        body=item.to_body(),
    )


class RelayQueue:
    """In-process queue transport that hands batches of messages to a handler.

    Batches are delivered one at a time. A handler that raises makes the
    transport redeliver the affected messages until ``max_attempts`` is
    reached; messages past that limit are kept in ``dead_letters``.
    """

    def __init__(
        self,
        *,
        handler: BatchHandler,
        max_batch_size: int = 10,
        max_attempts: int = 3,
    ) -> None:
        self._handler = handler
        self._max_batch_size = max(1, max_batch_size)
        self._max_attempts = max(1, max_attempts)
        self._queue: asyncio.Queue[QueueMessage | str] | None = None
        self._task: asyncio.Task[None] | None = None
        self._shutdown = asyncio.Event()
        self.dead_letters: list[QueueMessage] = []

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self._task is None or self._task.done():
            self._shutdown.clear()
            self._queue = asyncio.Queue()
            self._task = asyncio.create_task(self._run(), name="relay-queue")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._shutdown.set()
        if self._queue is not None:
            await self._queue.put(_SHUTDOWN)
        await self._task
        if self._queue is not None and not self._queue.empty():
            LOGGER.warning(
                "relay queue stopped with %d undelivered message(s)",
                self._queue.qsize(),
            )
        self._task = None
        self._queue = None

    async def send(self, item: WorkItem) -> QueueMessage:
        if self._queue is None:
            raise RuntimeError("Relay queue is not started")
        message = build_queue_message(item)
        await self._queue.put(message)
        return message

    async def join(self) -> None:
        if self._queue is not None:
            await self._queue.join()

    async def _run(self) -> None:
        if self._queue is None:
            return
        queue = self._queue
        while True:
            first = await queue.get()
            if first == _SHUTDOWN and self._shutdown.is_set():
                queue.task_done()
                return

            batch: list[QueueMessage] = []
            if isinstance(first, QueueMessage):
                batch.append(first)
            stop_after_batch = False
            while len(batch) < self._max_batch_size and not queue.empty():
                queued = queue.get_nowait()
                if isinstance(queued, QueueMessage):
                    batch.append(queued)
                    continue
                stop_after_batch = self._shutdown.is_set()
                queue.task_done()
                if stop_after_batch:
                    break

            try:
                if batch:
                    await self._deliver(batch)
            finally:
                for _ in batch:
                    queue.task_done()
                if not isinstance(first, QueueMessage):
                    queue.task_done()
            if stop_after_batch:
                return

    async def _deliver(self, batch: list[QueueMessage]) -> None:
        try:
            await self._handler(batch)
        except RelayBatchError as exc:
            self._redeliver(exc.failed_messages)
        except Exception:
            LOGGER.exception(
                "relay batch handler failed for %d message(s)", len(batch)
            )
            self._redeliver(batch)

    def _redeliver(self, messages: Sequence[QueueMessage]) -> None:
        if self._queue is None:
            return
        for message in messages:
            if message.attempts >= self._max_attempts:
                LOGGER.error(
                    "relay message %s moved to dead letters after %d attempt(s)",
                    message.id,
                    message.attempts,
                )
                self.dead_letters.append(message)
                continue
            self._queue.put_nowait(replace(message, attempts=message.attempts + 1))
