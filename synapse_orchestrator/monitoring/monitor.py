"""
Synapse Execution Monitor

Fans execution lifecycle events and periodic status snapshots out to
subscribers. Publishing never blocks the engine: each subscriber has its
own bounded queue, and a full queue drops its oldest message.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Union

import structlog

from synapse_orchestrator.types import MonitorEvent

logger = structlog.get_logger(__name__)

SnapshotProvider = Callable[[], Union[Dict[str, Any], Awaitable[Dict[str, Any]]]]

_CLOSED = object()


class Subscription:
    """
    One observer's view of the monitor.

    Carries two channels into a single queue: lifecycle events
    (``execution_event``) and, once started, periodic snapshots
    (``workflow_status_update``).
    """

    def __init__(
        self,
        monitor: "ExecutionMonitor",
        queue_size: int = 256,
    ):
        self.id = str(uuid.uuid4())
        self.created_at = datetime.now()
        self.dropped = 0
        self.delivered = 0

        self._monitor = monitor
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._snapshot_task: Optional[asyncio.Task] = None
        self._snapshot_interval_ms: Optional[float] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def snapshot_interval_ms(self) -> Optional[float]:
        return self._snapshot_interval_ms if self._snapshot_task else None

    def offer(self, message: Any) -> None:
        """Enqueue without blocking, dropping the oldest message when full."""
        if self._closed and message is not _CLOSED:
            return

        while True:
            try:
                self._queue.put_nowait(message)
                return
            except asyncio.QueueFull:
                try:
                    self._queue.get_nowait()
                    self.dropped += 1
                except asyncio.QueueEmpty:
                    pass

    async def get(self, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """Next message, or ``None`` on timeout or once closed."""
        if self._closed and self._queue.empty():
            return None
        try:
            message = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
        if message is _CLOSED:
            return None
        self.delivered += 1
        return message

    async def events(self) -> AsyncIterator[Dict[str, Any]]:
        """Iterate messages until the subscription is closed."""
        while True:
            message = await self._queue.get()
            if message is _CLOSED:
                return
            self.delivered += 1
            yield message

    def start_snapshots(self, interval_ms: Optional[float] = None) -> None:
        """
        Start (or restart) periodic snapshots.

        Raises:
            ValueError: the interval is not a positive number
        """
        interval_ms = interval_ms or self._monitor.snapshot_interval_ms
        if not isinstance(interval_ms, (int, float)) or interval_ms <= 0:
            raise ValueError(f"Invalid snapshot interval: {interval_ms!r}")
        self.stop_snapshots()
        self._snapshot_interval_ms = interval_ms
        self._snapshot_task = asyncio.create_task(self._snapshot_loop(interval_ms))

    def stop_snapshots(self) -> bool:
        """Stop periodic snapshots. Returns whether they were running."""
        task, self._snapshot_task = self._snapshot_task, None
        if task is None:
            return False
        task.cancel()
        return True

    async def _snapshot_loop(self, interval_ms: float) -> None:
        while not self._closed:
            try:
                snapshot = await self._monitor.take_snapshot()
            except Exception as e:
                logger.error("snapshot_failed", subscription_id=self.id, error=str(e))
                snapshot = None
            if snapshot is not None:
                self.offer({"type": "workflow_status_update", "data": snapshot})
            await asyncio.sleep(interval_ms / 1000)

    def close(self) -> None:
        """Stop both channels and end ``events()``."""
        if self._closed:
            return
        self.stop_snapshots()
        self._closed = True
        self.offer(_CLOSED)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "queued": self._queue.qsize(),
            "delivered": self.delivered,
            "dropped": self.dropped,
            "snapshot_interval_ms": self.snapshot_interval_ms,
        }


class ExecutionMonitor:
    """
    Publish/subscribe hub for execution progress.

    Features:
    - Non-blocking fan-out of lifecycle events
    - Per-subscriber bounded queues with drop-oldest overflow
    - Periodic status snapshots per subscriber
    """

    def __init__(
        self,
        snapshot_provider: Optional[SnapshotProvider] = None,
        snapshot_interval_ms: float = 3000,
        queue_size: int = 256,
    ):
        self.snapshot_provider = snapshot_provider
        self.snapshot_interval_ms = snapshot_interval_ms
        self.queue_size = queue_size

        self._subscriptions: Dict[str, Subscription] = {}
        self._published = 0

    def publish(self, event: MonitorEvent) -> None:
        """Deliver an event to every subscriber without blocking."""
        self._published += 1
        if not self._subscriptions:
            return

        message = {"type": "execution_event", "data": event.to_dict()}
        for subscription in list(self._subscriptions.values()):
            subscription.offer(message)

    def subscribe(self, interval_ms: Optional[float] = None) -> Subscription:
        """
        Subscribe to lifecycle events.

        With ``interval_ms``, periodic snapshots start right away.
        """
        subscription = Subscription(self, self.queue_size)
        self._subscriptions[subscription.id] = subscription
        if interval_ms:
            subscription.start_snapshots(interval_ms)

        logger.debug("monitor_subscribed", subscription_id=subscription.id)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscriber and stop both of its channels."""
        self._subscriptions.pop(subscription.id, None)
        subscription.close()
        logger.debug(
            "monitor_unsubscribed",
            subscription_id=subscription.id,
            dropped=subscription.dropped,
        )

    async def take_snapshot(self) -> Optional[Dict[str, Any]]:
        """Current status from the snapshot provider, if one is set."""
        if self.snapshot_provider is None:
            return None
        snapshot = self.snapshot_provider()
        if asyncio.iscoroutine(snapshot):
            snapshot = await snapshot
        return snapshot

    async def shutdown(self) -> None:
        """Close every subscription."""
        for subscription in list(self._subscriptions.values()):
            self.unsubscribe(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "subscribers": len(self._subscriptions),
            "published": self._published,
            "dropped": sum(s.dropped for s in self._subscriptions.values()),
        }
