"""
gitlabbulk.bulk.publisher
~~~~~~~~~~~~~~~~~~~~~~~~~

Publish/subscribe fan-out of :class:`~gitlabbulk.bulk.events.ProgressEvent`
objects, keyed by operation id.

Each subscriber owns a bounded queue. Publishing never blocks: when a
subscriber's queue is full its oldest pending event is dropped. Because
every event carries the full run progress, a slow subscriber loses
intermediate detail but never ends up with a stale view.

Usage::

    publisher = ProgressPublisher()
    sub = publisher.subscribe(op_id)
    for event in sub:            # stops after run-completed
        print(event.kind, event.percent)

:copyright: (C) 2024-2026 by gitlabbulk contributors.
:license: AGPL 3, see LICENSE for more details.
"""

from __future__ import annotations

import dataclasses
import logging
import queue
import threading
from typing import Callable, Iterator

from gitlabbulk.bulk.events import ProgressEvent

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    """One subscriber's view of one operation's event stream.

    :param publisher: The owning publisher.
    :param operation_id: The topic this subscription listens on.
    :param maxsize: Queue bound; the oldest event is dropped on overflow.
    """

    def __init__(self, publisher: ProgressPublisher, operation_id: str, maxsize: int):
        self.operation_id = operation_id
        self.dropped = 0
        self._publisher = publisher
        self._queue: queue.Queue = queue.Queue(maxsize=max(1, maxsize))
        self._lock = threading.Lock()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def _offer(self, event) -> None:
        """Enqueue without blocking, evicting the oldest entry if full."""
        with self._lock:
            while True:
                try:
                    self._queue.put_nowait(event)
                    return
                except queue.Full:
                    try:
                        self._queue.get_nowait()
                    except queue.Empty:
                        continue
                    self.dropped += 1
                    logger.debug(
                        "subscriber queue for %s full, dropped oldest event",
                        self.operation_id,
                    )

    def get(self, timeout: float | None = None) -> ProgressEvent | None:
        """Return the next event, or ``None`` on timeout or close."""
        if self.closed and self._queue.empty():
            return None
        try:
            event = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if event is _CLOSED:
            return None
        return event

    def __iter__(self) -> Iterator[ProgressEvent]:
        """Yield events until ``run-completed`` or until closed.

        The subscription is closed once ``run-completed`` was consumed.
        """
        while True:
            event = self.get()
            if event is None:
                return
            yield event
            if event.is_final:
                self.close()
                return

    def listen(self, handler: Callable[[ProgressEvent], None]) -> threading.Thread:
        """Deliver events to *handler* on a dedicated daemon thread.

        Exceptions raised by *handler* are logged and do not stop
        delivery.
        """
        def _pump() -> None:
            for event in self:
                try:
                    handler(event)
                except Exception:
                    logger.debug("progress handler raised an exception", exc_info=True)

        thread = threading.Thread(
            target=_pump,
            name=f"progress-{self.operation_id[:8]}",
            daemon=True,
        )
        thread.start()
        return thread

    def close(self) -> None:
        self._publisher.unsubscribe(self)

    def _close(self) -> None:
        if not self._closed.is_set():
            self._closed.set()
            self._offer(_CLOSED)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class ProgressPublisher:
    """Fan out progress events to per-operation subscribers.

    :param queue_size: Default bound of each subscriber's queue.
    """

    def __init__(self, queue_size: int = 1000) -> None:
        self.queue_size = queue_size
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Subscription]] = {}
        self._latest: dict[str, ProgressEvent] = {}
        self._seq: dict[str, int] = {}

    def subscribe(self, operation_id: str, maxsize: int | None = None) -> Subscription:
        """Join *operation_id*'s topic.

        The latest event already published for the run, if any, is
        delivered first so late joiners start from the current state.
        """
        sub = Subscription(self, operation_id, maxsize or self.queue_size)
        with self._lock:
            self._subscribers.setdefault(operation_id, []).append(sub)
            latest = self._latest.get(operation_id)
            if latest is not None:
                sub._offer(latest)
        return sub

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get(subscription.operation_id, [])
            if subscription in subs:
                subs.remove(subscription)
            if not subs:
                self._subscribers.pop(subscription.operation_id, None)
        subscription._close()

    def subscriber_count(self, operation_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(operation_id, []))

    def latest(self, operation_id: str) -> ProgressEvent | None:
        with self._lock:
            return self._latest.get(operation_id)

    def publish(self, operation_id: str, event: ProgressEvent) -> ProgressEvent | None:
        """Stamp *event* with the next sequence number and fan it out.

        Never raises and never blocks on a subscriber.

        :returns: The stamped event, or ``None`` if publishing failed.
        """
        try:
            with self._lock:
                seq = self._seq.get(operation_id, 0) + 1
                self._seq[operation_id] = seq
                stamped = dataclasses.replace(event, seq=seq)
                self._latest[operation_id] = stamped
                for sub in self._subscribers.get(operation_id, ()):
                    sub._offer(stamped)
            return stamped
        except Exception:
            logger.warning("failed to publish %s for %s", event.kind, operation_id,
                           exc_info=True)
            return None

    def forget(self, operation_id: str) -> None:
        """Drop all state for an evicted operation and close its subscribers."""
        with self._lock:
            subs = self._subscribers.pop(operation_id, [])
            self._latest.pop(operation_id, None)
            self._seq.pop(operation_id, None)
        for sub in subs:
            sub._close()
