#
# The gitlabbulk module is a Python/CLI bulk operations engine for GitLab.
#
# Copyright (C) 2024-2026 gitlabbulk contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as
# published by the Free Software Foundation, either version 3 of the
# License, or (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <http://www.gnu.org/licenses/>.

"""
gitlabbulk.bulk.engine
~~~~~~~~~~~~~~~~~~~~~~

Sequential worker loop that drives one bulk operation to completion.

The :class:`BulkEngine` walks a run's items in submission order. Before
each item it honours cooperative pause and cancel requests, then paces
the call through the shared rate limiter, applies the operation through
a :class:`~gitlabbulk.bulk.worker.BaseWorker` and records the outcome.
Every transition is published as a
:class:`~gitlabbulk.bulk.events.ProgressEvent`.

Item failures are data: they are recorded and the loop moves on. Only an
exception raised by the loop itself (a driver fault) ends the run as
``FAILED``.

:copyright: (C) 2024-2026 by gitlabbulk contributors.
:license: AGPL 3, see LICENSE for more details.
"""
from __future__ import annotations

import logging
import time

from gitlabbulk.bulk.events import EventKind, ProgressEvent
from gitlabbulk.bulk.publisher import ProgressPublisher
from gitlabbulk.bulk.summary import RunSummary, summarize
from gitlabbulk.bulk.worker import BaseWorker, WorkerResult
from gitlabbulk.models import (
    BulkOperation,
    ErrorKind,
    Item,
    ItemError,
    ItemStatus,
    OperationStatus,
)
from gitlabbulk.ratelimit import RateLimiter

logger = logging.getLogger(__name__)


class BulkEngine:
    """Applies one operation to every item of a :class:`BulkOperation`.

    One engine can drive many runs, each from its own thread; it keeps
    no per-run state of its own.

    Args:
        worker: The worker that performs the remote call per item.
        rate_limiter: Shared limiter, keyed by the run's credential.
            ``None`` disables pacing.
        publisher: Destination for progress events. ``None`` disables
            publishing.
        max_attempts: Attempts per item for transient failures
            (rate limited, network). ``2`` means one retry.
        backoff: Initial wait before a retry, doubled per attempt.
        max_backoff: Cap for any single wait, including
            ``Retry-After`` hints.
    """

    def __init__(
        self,
        worker: BaseWorker,
        rate_limiter: RateLimiter | None = None,
        publisher: ProgressPublisher | None = None,
        max_attempts: int = 2,
        backoff: float = 1.0,
        max_backoff: float = 30.0,
    ) -> None:
        self._worker = worker
        self._rate_limiter = rate_limiter
        self._publisher = publisher
        self._max_attempts = max(1, max_attempts)
        self._backoff = max(0.0, backoff)
        self._max_backoff = max(0.0, max_backoff)

    # -- Public API ------------------------------------------------

    def run(self, operation: BulkOperation) -> RunSummary:
        """Execute *operation* and return its summary.

        Never raises for item failures or driver faults; the outcome is
        recorded on the operation and in the returned summary.
        """
        try:
            operation.transition(OperationStatus.RUNNING)
            logger.info(
                "bulk %s %s started: %d items",
                operation.operation_type.value, operation.id, operation.total,
            )
            self._emit(EventKind.RUN_STARTED, operation)

            for index, item in enumerate(operation.items, start=1):
                if not self._checkpoint(operation):
                    self._cancel_remaining(operation)
                    break
                self._process_item(operation, item, index)
            else:
                operation.transition(OperationStatus.COMPLETED)
        except Exception as exc:
            self._fault(operation, exc)

        summary = summarize(operation)
        logger.info(
            "bulk %s %s %s: %d succeeded, %d failed, %d skipped",
            operation.operation_type.value, operation.id, operation.status.value,
            summary.success_count, summary.failed_count, summary.skipped_count,
        )
        self._emit(EventKind.RUN_COMPLETED, operation, summary=summary.to_dict())
        return summary

    # -- Control checkpoints ---------------------------------------

    def _checkpoint(self, operation: BulkOperation) -> bool:
        """Honour pause and cancel requests at an item boundary.

        Blocks while paused. Returns ``False`` if the run was cancelled.
        """
        while True:
            with operation.condition:
                if operation.cancel_requested:
                    return False
                if not operation.pause_requested:
                    return True
                operation.transition(OperationStatus.PAUSED)
            logger.info("bulk %s paused", operation.id)
            self._emit(EventKind.RUN_PAUSED, operation)

            with operation.condition:
                while operation.pause_requested and not operation.cancel_requested:
                    operation.condition.wait()
                if operation.cancel_requested:
                    return False
                operation.transition(OperationStatus.RUNNING)
            logger.info("bulk %s resumed", operation.id)
            self._emit(EventKind.RUN_RESUMED, operation)

    def _cancel_remaining(self, operation: BulkOperation) -> None:
        """Skip every item that has not started and end the run."""
        for index, item in enumerate(operation.items, start=1):
            if item.status is not ItemStatus.PENDING:
                continue
            operation.skip_item(item)
            self._emit(EventKind.ITEM_COMPLETED, operation, item, index)
        operation.transition(OperationStatus.CANCELLED)
        logger.info("bulk %s cancelled", operation.id)

    # -- Item processing -------------------------------------------

    def _process_item(self, operation: BulkOperation, item: Item, index: int) -> None:
        operation.start_item(item)
        self._emit(EventKind.ITEM_STARTED, operation, item, index)

        result = self._attempt(operation, item)
        if result is None:
            operation.cancel_item(item)
        elif result.success:
            operation.succeed_item(item, result.extra)
        else:
            error = result.to_item_error()
            operation.fail_item(item, error)
            logger.warning(
                "bulk %s item %s failed: %s",
                operation.id, item.id, error.reason,
            )

        self._emit(EventKind.ITEM_COMPLETED, operation, item, index)

    def _attempt(self, operation: BulkOperation, item: Item) -> WorkerResult | None:
        """Call the worker, retrying transient failures.

        Returns ``None`` if the run was cancelled during a backoff wait.
        """
        attempt = 0
        while True:
            attempt += 1
            with operation.condition:
                item.attempts = attempt
            if self._rate_limiter is not None:
                self._rate_limiter.acquire(operation.credential_key)
            result = self._call_worker(operation, item)

            if result.success or not result.transient or attempt >= self._max_attempts:
                return result

            delay = self._delay_for(result, attempt)
            logger.info(
                "bulk %s item %s: %s, retrying in %.1fs (attempt %d/%d)",
                operation.id, item.id, result.error_kind.value, delay,
                attempt + 1, self._max_attempts,
            )
            if self._wait_or_cancel(operation, delay):
                return None

    def _call_worker(self, operation: BulkOperation, item: Item) -> WorkerResult:
        try:
            return self._worker.apply(operation.operation_type, item, operation.params)
        except Exception as exc:
            logger.warning(
                "worker raised while applying %s to %s",
                operation.operation_type.value, item.id, exc_info=True,
            )
            return WorkerResult(
                success=False,
                identifier=item.id,
                error_kind=ErrorKind.UNKNOWN,
                error=str(exc) or exc.__class__.__name__,
            )

    def _delay_for(self, result: WorkerResult, attempt: int) -> float:
        if result.retry_after is not None:
            return min(max(0.0, result.retry_after), self._max_backoff)
        return min(self._backoff * (2 ** (attempt - 1)), self._max_backoff)

    @staticmethod
    def _wait_or_cancel(operation: BulkOperation, delay: float) -> bool:
        """Sleep for *delay* unless cancelled first. Returns cancelled."""
        deadline = time.monotonic() + delay
        with operation.condition:
            while not operation.cancel_requested:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                operation.condition.wait(remaining)
            return operation.cancel_requested

    # -- Faults and events -----------------------------------------

    def _fault(self, operation: BulkOperation, exc: Exception) -> None:
        """Record a driver fault and end the run as ``FAILED``."""
        logger.exception("bulk %s aborted by driver fault", operation.id)
        fault = f"{exc.__class__.__name__}: {exc}"
        with operation.condition:
            operation.fault = fault
            for item in operation.items:
                if item.status is ItemStatus.IN_PROGRESS:
                    operation.fail_item(item, ItemError(
                        kind=ErrorKind.UNKNOWN,
                        message=f"run aborted ({fault})",
                    ))
                elif item.status is ItemStatus.PENDING:
                    operation.skip_item(item)
            if not operation.is_terminal:
                operation.transition(OperationStatus.FAILED)

    def _emit(
        self,
        kind: EventKind,
        operation: BulkOperation,
        item: Item | None = None,
        index: int | None = None,
        summary: dict | None = None,
    ) -> None:
        """Publish a progress event, if a publisher is configured."""
        if self._publisher is None:
            return
        try:
            event = ProgressEvent.from_operation(
                kind, operation, item=item, item_index=index, summary=summary,
            )
        except Exception:
            logger.debug("could not build %s event", kind.value, exc_info=True)
            return
        self._publisher.publish(operation.id, event)
