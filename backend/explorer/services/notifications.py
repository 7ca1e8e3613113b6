"""Fan tree-change and sync events out to live subscribers."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Dict, Optional
import uuid

from ..models.events import EventType, TreeEvent

logger = logging.getLogger(__name__)

_STOP = object()


class Subscription:
    """One live subscriber with its own bounded outbox."""

    def __init__(self, outbox_size: int = 256) -> None:
        self.id = uuid.uuid4().hex
        self._outbox: "queue.Queue[TreeEvent]" = queue.Queue(maxsize=outbox_size)
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def offer(self, event: TreeEvent) -> bool:
        """Queue an event without blocking; False when closed or full."""
        if self.closed:
            return False
        try:
            self._outbox.put_nowait(event)
        except queue.Full:
            return False
        return True

    def get(self, timeout: Optional[float] = None) -> Optional[TreeEvent]:
        """Next queued event, or None when none arrives within `timeout`."""
        try:
            return self._outbox.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        self._closed.set()


class NotificationBus:
    """Bounded event queue drained by one consumer thread.

    Producers block while the queue is full. The consumer delivers each
    event to a snapshot of the subscriber set; a subscriber whose outbox is
    full or closed is removed and closed.
    """

    def __init__(self, queue_size: int = 100, outbox_size: int = 256) -> None:
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=queue_size)
        self._outbox_size = outbox_size
        self._subscribers: Dict[str, Subscription] = {}
        self._lock = threading.Lock()
        self._running = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._running.is_set()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def start(self) -> None:
        if self.running:
            return
        self._running.set()
        self._thread = threading.Thread(
            target=self._consume, name="notification-bus", daemon=True
        )
        self._thread.start()
        logger.info("Notification bus started")

    def stop(self, timeout: float = 5.0) -> None:
        if not self.running:
            return
        self._running.clear()
        self._queue.put(_STOP)
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        with self._lock:
            subscribers = list(self._subscribers.values())
            self._subscribers.clear()
        for subscriber in subscribers:
            subscriber.close()
        logger.info("Notification bus stopped")

    def publish(self, event_type: EventType, data: Any = None) -> bool:
        """Enqueue an event, blocking while the queue is full."""
        if not self.running:
            logger.debug("Dropping %s event: bus is not running", event_type)
            return False
        self._queue.put(TreeEvent(type=event_type, data=data))
        return True

    def publish_update(self, state: Any) -> bool:
        return self.publish("update", state)

    def publish_progress(self, progress: Any) -> bool:
        return self.publish("progress", progress)

    def publish_error(self, message: str) -> bool:
        return self.publish("error", {"message": message})

    def subscribe(self, initial_state: Any = None) -> Subscription:
        """Register a subscriber; `initial_state` is sent to it alone as `init`."""
        subscription = Subscription(self._outbox_size)
        if initial_state is not None:
            subscription.offer(TreeEvent(type="init", data=initial_state))
        with self._lock:
            self._subscribers[subscription.id] = subscription
        logger.info("Subscriber connected", extra={"subscriber_id": subscription.id})
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            removed = self._subscribers.pop(subscription.id, None)
        subscription.close()
        if removed is not None:
            logger.info("Subscriber disconnected", extra={"subscriber_id": subscription.id})

    def _consume(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            self._dispatch(item)

    def _dispatch(self, event: TreeEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers.values())
        for subscriber in subscribers:
            if not subscriber.offer(event):
                logger.warning(
                    "Dropping subscriber %s (outbox full or closed)", subscriber.id
                )
                self.unsubscribe(subscriber)


__all__ = ["NotificationBus", "Subscription"]
