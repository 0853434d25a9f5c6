"""
gitlabbulk.bulk.ui
~~~~~~~~~~~~~~~~~~

Console handlers for bulk operation progress events.

Handlers consume :class:`~gitlabbulk.bulk.events.ProgressEvent` objects,
usually through :meth:`Subscription.listen
<gitlabbulk.bulk.publisher.Subscription.listen>`. ``PlainUI`` writes
timestamped lines to stderr, ``ProgressBarUI`` draws a tqdm bar.

:copyright: (C) 2024-2026 by gitlabbulk contributors.
:license: AGPL 3, see LICENSE for more details.
"""

from __future__ import annotations

import sys
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from gitlabbulk.bulk.events import EventKind, ProgressEvent


class UIHandler(ABC):
    """Abstract base class for progress event handlers."""

    @abstractmethod
    def handle(self, event: ProgressEvent) -> None:
        """Handle a single progress event.

        :param event: The event to handle.
        """
        ...

    def __call__(self, event: ProgressEvent) -> None:
        self.handle(event)

    def close(self) -> None:
        """Release any terminal resources."""


class NullUI(UIHandler):
    """UI handler that silently discards all events."""

    def handle(self, event: ProgressEvent) -> None:
        """Discard the event.

        :param event: The event to discard.
        """


def _item_label(event: ProgressEvent) -> str:
    item = event.item or {}
    name = item.get('name') or item.get('id') or ''
    if item.get('id') and item.get('id') != name:
        return f"{name} ({item['id']})"
    return name


class PlainUI(UIHandler):
    """Timestamped plain-text UI handler writing to stderr.

    Output format::

        [03:12:01] delete 3f2a...: started, 3 items
        [03:12:01] [1/3] team-a (group:42): started
        [03:12:02] [1/3] team-a (group:42): succeeded
        [03:12:02] [2/3] team-b (group:43): failed: Permission: 403 Forbidden
        [03:12:03] delete 3f2a...: completed (1 succeeded, 1 failed, 1 skipped)
    """

    def __init__(self, file=None):
        self._file = file or sys.stderr

    def _ts(self) -> str:
        return datetime.now(timezone.utc).strftime("%H:%M:%S")

    def _prefix(self, event: ProgressEvent) -> str:
        ts = self._ts()
        if event.item_index and event.total:
            return f"[{ts}] [{event.item_index}/{event.total}]"
        return f"[{ts}]"

    def handle(self, event: ProgressEvent) -> None:
        """Handle a progress event by printing to stderr.

        :param event: The event to handle.
        """
        prefix = self._prefix(event)
        run = f"{event.operation_type} {event.operation_id[:8]}"
        kind = event.kind

        if kind is EventKind.RUN_STARTED:
            msg = f"{prefix} {run}: started, {event.total} items"
        elif kind is EventKind.ITEM_STARTED:
            msg = f"{prefix} {_item_label(event)}: started"
        elif kind is EventKind.ITEM_COMPLETED:
            item = event.item or {}
            status = item.get("status", "")
            error = item.get("error") or {}
            if error:
                msg = f"{prefix} {_item_label(event)}: {status}: {error.get('reason')}"
            else:
                msg = f"{prefix} {_item_label(event)}: {status}"
        elif kind is EventKind.RUN_PAUSED:
            msg = f"{prefix} {run}: paused at {event.processed}/{event.total}"
        elif kind is EventKind.RUN_RESUMED:
            msg = f"{prefix} {run}: resumed"
        elif kind is EventKind.RUN_COMPLETED:
            msg = (
                f"{prefix} {run}: {event.status} "
                f"({event.succeeded} succeeded, {event.failed} failed, "
                f"{event.skipped} skipped)"
            )
        else:
            msg = f"{prefix} {run}: {kind.value}"

        print(msg, file=self._file)


class ProgressBarUI(UIHandler):
    """Single progress bar for one bulk operation using tqdm.

    The bar position is set from each event's counters rather than
    incremented, so dropped events never leave it behind.

    :param total: Total number of items. If ``0``, the bar total is set
        lazily from the first event's ``.total``.
    :param file: Writable stream for the progress bar
        (default: ``sys.stderr``).
    """

    def __init__(self, total: int = 0, file=None):
        from tqdm import tqdm  # noqa: PLC0415

        self._file = file or sys.stderr
        self._tqdm = tqdm
        self._total = total
        # tqdm-stubs is incomplete, use Any for bar types.
        self._bar: Any = None
        self._lock = threading.Lock()

    def _ensure_bar(self, event: ProgressEvent) -> Any:
        if self._bar is None:
            self._bar = self._tqdm(  # type: ignore[call-arg]
                total=self._total or event.total,
                desc=event.operation_type,
                unit="item",
                file=self._file,
                dynamic_ncols=True,
            )
        return self._bar

    def handle(self, event: ProgressEvent) -> None:
        """Handle a progress event by updating the bar.

        :param event: The event to handle.
        """
        with self._lock:
            self._handle(event)

    def _handle(self, event: ProgressEvent) -> None:
        bar = self._ensure_bar(event)
        bar.n = event.succeeded + event.failed + event.skipped
        postfix = {"ok": event.succeeded}
        if event.failed:
            postfix["fail"] = event.failed
        if event.skipped:
            postfix["skip"] = event.skipped
        bar.set_postfix(**postfix, refresh=False)

        if event.kind is EventKind.RUN_PAUSED:
            bar.set_description(f"{event.operation_type} (paused)")
        elif event.kind is EventKind.RUN_RESUMED:
            bar.set_description(event.operation_type)
        bar.refresh()

        if event.is_final:
            self.close()

    def close(self) -> None:
        """Close the tqdm bar."""
        if self._bar is not None:
            self._bar.close()
            self._bar = None
