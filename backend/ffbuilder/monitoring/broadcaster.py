"""
Live event fan-out to connected observers.

Design rules:
- No backlog: an observer sees only events published after it subscribes
- Best-effort per observer: one failing observer never blocks the others
- A failed delivery unsubscribes that observer automatically
- Publication and membership changes share one lock, so every observer
  receives events in the same relative order

Observers must accept events without blocking; both concrete observers
below only enqueue.
"""

import asyncio
import logging
import queue
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .errors import DeliveryError, ObserverClosedError
from .events import JobEvent

logger = logging.getLogger(__name__)

DEFAULT_BACKLOG = 1000

# Wakes an asyncio consumer when its observer is closed
_CLOSED = object()


class Observer(ABC):
    """
    Abstract event observer.

    deliver() is called with the broadcaster lock held and must not
    block. Raising any exception marks the observer as failed.
    """

    def __init__(self):
        self.observer_id = str(uuid.uuid4())
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    def deliver(self, event: JobEvent) -> None:
        """
        Hand one event to the observer.

        Raises:
            DeliveryError: If the observer cannot accept the event
        """
        pass

    def close(self) -> None:
        self._closed = True


class QueueObserver(Observer):
    """
    Thread-safe observer backed by a bounded queue.

    Used by synchronous consumers and tests.
    """

    def __init__(self, maxsize: int = DEFAULT_BACKLOG):
        super().__init__()
        self._queue: "queue.Queue[JobEvent]" = queue.Queue(maxsize=maxsize)

    def deliver(self, event: JobEvent) -> None:
        if self.closed:
            raise ObserverClosedError(self.observer_id)
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            raise DeliveryError(self.observer_id, "backlog full") from None

    def get(self, timeout: Optional[float] = None) -> JobEvent:
        """
        Wait for the next event.

        Raises:
            queue.Empty: If no event arrives within timeout
        """
        return self._queue.get(timeout=timeout)

    def drain(self) -> List[JobEvent]:
        """Return all events currently queued without waiting."""
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events


class LoopObserver(Observer):
    """
    Observer feeding an asyncio event loop.

    Events are published from worker threads; they are handed to the
    loop with call_soon_threadsafe and consumed with `await get()`.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, maxsize: int = DEFAULT_BACKLOG):
        super().__init__()
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    def deliver(self, event: JobEvent) -> None:
        if self.closed:
            raise ObserverClosedError(self.observer_id)
        if self._loop.is_closed():
            self._closed = True
            raise DeliveryError(self.observer_id, "event loop closed")
        try:
            self._loop.call_soon_threadsafe(self._enqueue, event)
        except RuntimeError as e:
            self._closed = True
            raise DeliveryError(self.observer_id, str(e)) from e

    def _enqueue(self, event: JobEvent) -> None:
        # Runs on the loop thread
        if self.closed:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(f"[Broadcast] Observer {self.observer_id} fell behind, closing")
            self._closed = True
            self._push_sentinel()

    def _push_sentinel(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
        self._queue.put_nowait(_CLOSED)

    def close(self) -> None:
        if self.closed:
            return
        self._closed = True
        if not self._loop.is_closed():
            try:
                self._loop.call_soon_threadsafe(self._push_sentinel)
            except RuntimeError:
                logger.debug(f"[Broadcast] Loop gone while closing observer {self.observer_id}")

    async def get(self) -> JobEvent:
        """
        Wait for the next event.

        Raises:
            ObserverClosedError: If the observer was closed
        """
        item = await self._queue.get()
        if item is _CLOSED:
            raise ObserverClosedError(self.observer_id)
        return item


class EventBroadcaster:
    """
    Set of currently subscribed observers plus fan-out.

    Constructed once per process and shared by reference.
    """

    def __init__(self, backlog: int = DEFAULT_BACKLOG):
        """
        Initialize broadcaster.

        Args:
            backlog: Queue size for observers created by subscribe()
        """
        self._backlog = backlog
        # observer_id -> Observer (dict preserves subscription order)
        self._observers: Dict[str, Observer] = {}
        self._lock = threading.Lock()

    @property
    def observer_count(self) -> int:
        with self._lock:
            return len(self._observers)

    def subscribe(self, observer: Optional[Observer] = None) -> Observer:
        """
        Register an observer.

        Args:
            observer: Observer to register; a QueueObserver is created if omitted

        Returns:
            The registered observer (its handle for unsubscribe)
        """
        if observer is None:
            observer = QueueObserver(maxsize=self._backlog)

        with self._lock:
            self._observers[observer.observer_id] = observer

        logger.info(f"[Broadcast] Observer {observer.observer_id} subscribed")
        return observer

    def unsubscribe(self, observer: Observer) -> bool:
        """
        Remove an observer. Idempotent.

        Returns:
            True if the observer was subscribed
        """
        with self._lock:
            removed = self._observers.pop(observer.observer_id, None)

        if removed is None:
            return False

        removed.close()
        logger.info(f"[Broadcast] Observer {observer.observer_id} unsubscribed")
        return True

    def publish(self, event: JobEvent) -> int:
        """
        Deliver an event to every subscribed observer.

        Observers that fail are dropped; the rest still receive the event.

        Returns:
            Number of observers the event was delivered to
        """
        delivered = 0
        failed: List[Observer] = []

        with self._lock:
            for observer in self._observers.values():
                try:
                    observer.deliver(event)
                except Exception as e:
                    logger.warning(
                        f"[Broadcast] Dropping observer {observer.observer_id}: {e}",
                        exc_info=not isinstance(e, DeliveryError),
                    )
                    failed.append(observer)
                else:
                    delivered += 1

            for observer in failed:
                self._observers.pop(observer.observer_id, None)

        for observer in failed:
            observer.close()

        return delivered

    def close(self) -> None:
        """Close and drop every observer."""
        with self._lock:
            observers = list(self._observers.values())
            self._observers.clear()

        for observer in observers:
            observer.close()

        logger.info(f"[Broadcast] Closed {len(observers)} observer(s)")
