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
gitlabbulk.bulk.registry
~~~~~~~~~~~~~~~~~~~~~~~~

Store of bulk operations and the thread pool that runs them.

Live runs sit in the *active* bucket. When the worker loop returns the
run moves to a *history* bucket, which is bounded both by size and by a
retention period. Expired entries are evicted on every registry access.

:copyright: (C) 2024-2026 by gitlabbulk contributors.
:license: AGPL 3, see LICENSE for more details.
"""
from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Iterable, Mapping

from gitlabbulk.bulk.engine import BulkEngine
from gitlabbulk.bulk.publisher import ProgressPublisher
from gitlabbulk.bulk.summary import RunSummary, summarize
from gitlabbulk.exceptions import GitLabBulkError, OperationNotFound
from gitlabbulk.models import BulkOperation, Item, OperationType
from gitlabbulk.params import validate_submission

logger = logging.getLogger(__name__)


class OperationRegistry:
    """Owns every bulk operation of a process.

    Args:
        engine: The worker loop each run is handed to.
        max_operations: Runs executing at the same time. Further
            submissions wait in the pool queue as ``PENDING``.
        history_size: Terminal runs kept for status queries.
        retention: Seconds a terminal run is kept after completion.
        publisher: When given, a run's topic is forgotten on eviction.
        clock: Wall clock used for operation timestamps and retention.
    """

    def __init__(
        self,
        engine: BulkEngine,
        max_operations: int = 4,
        history_size: int = 100,
        retention: float = 3600.0,
        publisher: ProgressPublisher | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_operations < 1:
            raise ValueError("max_operations must be at least 1")
        self.engine = engine
        self.max_operations = max_operations
        self.history_size = max(0, history_size)
        self.retention = retention
        self.publisher = publisher
        self._clock = clock
        self._lock = threading.RLock()
        self._active: dict[str, BulkOperation] = {}
        self._history: OrderedDict[str, BulkOperation] = OrderedDict()
        self._futures: dict[str, Future] = {}
        self._closed = False
        self._executor = ThreadPoolExecutor(
            max_workers=max_operations,
            thread_name_prefix="gitlabbulk",
        )

    def __len__(self) -> int:
        with self._lock:
            self._evict_locked()
            return len(self._active) + len(self._history)

    def __contains__(self, operation_id: str) -> bool:
        with self._lock:
            self._evict_locked()
            return operation_id in self._active or operation_id in self._history

    # -- Submission ------------------------------------------------

    def submit(
        self,
        operation_type: OperationType | str,
        items: Iterable[Mapping | Item],
        params: Mapping | None = None,
        credential_key: str = "default",
    ) -> str:
        """Validate a submission, schedule it and return its id.

        :raises InvalidSubmission: If the operation type, items or params
            are malformed. Nothing is created in that case.
        """
        op_type, built, validated = validate_submission(operation_type, items, params)
        operation = BulkOperation(
            op_type, built, validated,
            credential_key=credential_key,
            clock=self._clock,
        )
        return self.add(operation)

    def add(self, operation: BulkOperation) -> str:
        """Insert an already built ``PENDING`` operation and schedule it."""
        with self._lock:
            if self._closed:
                raise GitLabBulkError("registry has been shut down")
            self._evict_locked()
            if operation.id in self._active or operation.id in self._history:
                raise GitLabBulkError(f"duplicate operation id {operation.id!r}")
            self._active[operation.id] = operation
            self._futures[operation.id] = self._executor.submit(self._run, operation)
        logger.info(
            "submitted bulk %s %s with %d items",
            operation.operation_type.value, operation.id, operation.total,
        )
        return operation.id

    def _run(self, operation: BulkOperation) -> RunSummary:
        try:
            return self.engine.run(operation)
        finally:
            self._retire(operation)

    def _retire(self, operation: BulkOperation) -> None:
        with self._lock:
            self._active.pop(operation.id, None)
            self._futures.pop(operation.id, None)
            self._history[operation.id] = operation
            self._history.move_to_end(operation.id)
            self._evict_locked()

    # -- Lookup ----------------------------------------------------

    def get(self, operation_id: str) -> BulkOperation:
        """Return the operation with *operation_id*.

        :raises OperationNotFound: If the id is unknown or evicted.
        """
        with self._lock:
            self._evict_locked()
            operation = self._active.get(operation_id) or self._history.get(operation_id)
        if operation is None:
            raise OperationNotFound(operation_id)
        return operation

    def active(self) -> list[BulkOperation]:
        with self._lock:
            self._evict_locked()
            return list(self._active.values())

    def history(self) -> list[BulkOperation]:
        """Terminal runs, oldest completion first."""
        with self._lock:
            self._evict_locked()
            return list(self._history.values())

    def wait(self, operation_id: str, timeout: float | None = None) -> RunSummary:
        """Block until the run is terminal and return its summary.

        :raises OperationNotFound: If the id is unknown.
        :raises concurrent.futures.TimeoutError: If *timeout* expires.
        """
        operation = self.get(operation_id)
        with self._lock:
            future = self._futures.get(operation_id)
        if future is not None:
            return future.result(timeout=timeout)
        return summarize(operation)

    # -- Eviction and lifecycle ------------------------------------

    def evict_expired(self) -> list[str]:
        """Drop history entries past retention or over the size bound."""
        with self._lock:
            return self._evict_locked()

    def _evict_locked(self) -> list[str]:
        evicted = []
        if self.retention is not None:
            now = self._clock()
            for operation_id, operation in list(self._history.items()):
                completed_at = operation.completed_at or operation.created_at
                if now - completed_at >= self.retention:
                    del self._history[operation_id]
                    evicted.append(operation_id)
        while len(self._history) > self.history_size:
            operation_id, _ = self._history.popitem(last=False)
            evicted.append(operation_id)
        for operation_id in evicted:
            logger.debug("evicted bulk %s from history", operation_id)
            if self.publisher is not None:
                self.publisher.forget(operation_id)
        return evicted

    def shutdown(self, wait: bool = True) -> None:
        """Cancel every active run and stop the pool.

        Queued runs are still picked up by the pool and finish as
        ``CANCELLED`` straight away.
        """
        with self._lock:
            self._closed = True
            active = list(self._active.values())
        for operation in active:
            with operation.condition:
                if not operation.is_terminal:
                    operation.cancel_requested = True
                    operation.condition.notify_all()
        logger.info("registry shutting down, cancelled %d active runs", len(active))
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> OperationRegistry:
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown(wait=True)
