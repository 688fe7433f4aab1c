"""
Notification Queue

One-way channel from the core to the chat sink. Publishing never blocks and
never raises, so no state transition depends on delivery.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional, Protocol

from .models import Notification, NotificationType

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    async def send(self, notification: Notification) -> None:
        ...


class NotificationQueue:
    """Bounded outbound buffer. When full, the oldest notification is dropped."""

    def __init__(self, maxsize: int = 1000):
        self._queue: asyncio.Queue[Notification] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def publish(
        self,
        type: NotificationType,
        message: Optional[str] = None,
        **data: Any,
    ) -> Notification:
        notification = Notification(type=type, message=message, data=data)
        self.put(notification)
        return notification

    def put(self, notification: Notification) -> None:
        if self._queue.full():
            try:
                self._queue.get_nowait()
                self._queue.task_done()
                self.dropped += 1
                logger.warning("Notification queue full, dropped oldest notification")
            except asyncio.QueueEmpty:
                pass
        self._queue.put_nowait(notification)

    async def get(self) -> Notification:
        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    def pending(self) -> List[Notification]:
        """Drain without delivering. Used by tests and on shutdown."""
        items = []
        while not self._queue.empty():
            items.append(self._queue.get_nowait())
            self._queue.task_done()
        return items

    def qsize(self) -> int:
        return self._queue.qsize()

    async def join(self) -> None:
        await self._queue.join()


class NotificationDispatcher:
    """Drains the queue into a sink. Delivery failures are logged and skipped."""

    def __init__(self, queue: NotificationQueue, sink: NotificationSink):
        self.queue = queue
        self.sink = sink
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="notification-dispatcher")

    async def stop(self, drain_timeout: float = 5.0) -> None:
        if not self._task:
            return
        try:
            await asyncio.wait_for(self.queue.join(), timeout=drain_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Dropping {self.queue.qsize()} undelivered notifications on shutdown")
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            notification = await self.queue.get()
            try:
                await self.sink.send(notification)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Failed to deliver {notification.type.value} notification: {e}")
            finally:
                self.queue.task_done()
