"""
gitlabbulk.bulk.worker
~~~~~~~~~~~~~~~~~~~~~~

Base worker interface for bulk operations.

:copyright: (C) 2024-2026 by gitlabbulk contributors.
:license: AGPL 3, see LICENSE for more details.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from gitlabbulk.models import ErrorKind, Item, ItemError, OperationType


@dataclass
class WorkerResult:
    """Result returned by a worker after applying an operation to one item.

    :param success: Whether the remote call succeeded.
    :param identifier: The item id that was processed.
    :param error_kind: Classification of the failure.
    :param error: Human-readable error message if the call failed.
    :param status_code: HTTP status of the failed response, if any.
    :param retry_after: Seconds the remote asked us to wait before
        trying again (rate limiting).
    :param extra: Opaque dict stored as the item's result
        (e.g. the id of a created group).
    """

    success: bool
    identifier: str
    error_kind: ErrorKind | None = None
    error: str | None = None
    status_code: int | None = None
    retry_after: float | None = None
    extra: dict | None = field(default_factory=dict)

    @property
    def transient(self) -> bool:
        return not self.success and self.error_kind is not None and self.error_kind.transient

    def to_item_error(self) -> ItemError:
        return ItemError(
            kind=self.error_kind or ErrorKind.UNKNOWN,
            message=self.error or "",
            status_code=self.status_code,
        )


class BaseWorker(ABC):
    """Abstract base class for bulk operation workers.

    Workers implement ``apply()`` to perform one operation on one item.
    The engine calls it from the run's pool thread, after the rate
    limiter has granted a slot, and records the result on the item.
    Implementations must bound every remote call with a timeout so
    pause and cancel checkpoints are never starved.
    """

    @abstractmethod
    def apply(
        self,
        operation_type: OperationType,
        item: Item,
        params: dict,
    ) -> WorkerResult:
        """Apply *operation_type* to a single item.

        :param operation_type: The run's operation type.
        :param item: The item being processed. Workers must not
            mutate its status; the engine owns state transitions.
        :param params: The run's validated operation params, passed
            through opaquely.
        :returns: A ``WorkerResult`` describing the outcome. Classified
            failures are returned, not raised.
        """
        ...
