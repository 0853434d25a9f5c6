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
gitlabbulk.models
~~~~~~~~~~~~~~~~~

Items, bulk operations and the state machines that govern them.

An :class:`Item` moves ``PENDING -> IN_PROGRESS -> SUCCEEDED | FAILED |
CANCELLED`` or ``PENDING -> SKIPPED``. A :class:`BulkOperation` owns an
ordered, immutable tuple of items plus run-level status, cached counters
and the cooperative ``pause_requested``/``cancel_requested`` flags.

All mutation of a run goes through its :attr:`BulkOperation.condition`,
which the worker loop also waits on while paused.

:copyright: (C) 2024-2026 by gitlabbulk contributors.
:license: AGPL 3, see LICENSE for more details.
"""
from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable

from gitlabbulk.exceptions import InvalidTransition


class ItemKind(str, Enum):
    GROUP = 'group'
    PROJECT = 'project'


class ItemStatus(str, Enum):
    PENDING = 'pending'
    IN_PROGRESS = 'in_progress'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'
    SKIPPED = 'skipped'
    CANCELLED = 'cancelled'

    @property
    def is_final(self) -> bool:
        return self not in (ItemStatus.PENDING, ItemStatus.IN_PROGRESS)


class OperationStatus(str, Enum):
    PENDING = 'pending'
    RUNNING = 'running'
    PAUSED = 'paused'
    COMPLETED = 'completed'
    FAILED = 'failed'
    CANCELLED = 'cancelled'

    @property
    def is_terminal(self) -> bool:
        return self in (OperationStatus.COMPLETED,
                        OperationStatus.FAILED,
                        OperationStatus.CANCELLED)


class OperationType(str, Enum):
    DELETE = 'delete'
    TRANSFER = 'transfer'
    ARCHIVE = 'archive'
    UNARCHIVE = 'unarchive'
    CLONE = 'clone'
    CREATE_SUBGROUPS = 'create_subgroups'
    CREATE_PROJECTS = 'create_projects'
    SET_VISIBILITY = 'set_visibility'
    SET_ACCESS_LEVELS = 'set_access_levels'
    SET_PROTECTED_BRANCHES = 'set_protected_branches'
    SET_PUSH_RULES = 'set_push_rules'

    @classmethod
    def parse(cls, value: str | OperationType) -> OperationType:
        """Accept ``"create-subgroups"``, ``"CREATE_SUBGROUPS"`` etc."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace('-', '_')
        return cls(normalized)


class ErrorKind(str, Enum):
    VALIDATION = 'Validation'
    PERMISSION = 'Permission'
    NOT_FOUND = 'NotFound'
    CONFLICT = 'Conflict'
    RATE_LIMITED = 'RateLimited'
    NETWORK = 'Network'
    UNKNOWN = 'Unknown'

    @property
    def transient(self) -> bool:
        """Whether a failure of this kind is worth one more attempt."""
        return self in (ErrorKind.RATE_LIMITED, ErrorKind.NETWORK)


@dataclass(frozen=True)
class ItemError:
    """A classified error recorded on a failed item."""

    kind: ErrorKind
    message: str = ''
    status_code: int | None = None

    @property
    def reason(self) -> str:
        if self.message:
            return f'{self.kind.value}: {self.message}'
        return self.kind.value

    def to_dict(self) -> dict:
        return {
            'kind': self.kind.value,
            'message': self.message,
            'status_code': self.status_code,
            'reason': self.reason,
        }


_ITEM_TRANSITIONS = {
    ItemStatus.PENDING: {ItemStatus.IN_PROGRESS, ItemStatus.SKIPPED},
    ItemStatus.IN_PROGRESS: {ItemStatus.SUCCEEDED, ItemStatus.FAILED, ItemStatus.CANCELLED},
}

_RUN_TRANSITIONS = {
    OperationStatus.PENDING: {OperationStatus.RUNNING,
                              OperationStatus.CANCELLED,
                              OperationStatus.FAILED},
    OperationStatus.RUNNING: {OperationStatus.PAUSED,
                              OperationStatus.COMPLETED,
                              OperationStatus.CANCELLED,
                              OperationStatus.FAILED},
    OperationStatus.PAUSED: {OperationStatus.RUNNING,
                             OperationStatus.CANCELLED,
                             OperationStatus.FAILED},
}


def _iso(ts: float | None) -> str | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, timezone.utc).isoformat()


@dataclass
class Item:
    """One target group or project within a bulk operation.

    :param id: Stable identifier, e.g. ``"group:42"``.
    :param name: Display label.
    :param kind: :class:`ItemKind`.
    :param attrs: Operation-specific item payload (validated per
                  operation type, see :mod:`gitlabbulk.params`).
    """

    id: str
    name: str
    kind: ItemKind
    attrs: dict = field(default_factory=dict)
    status: ItemStatus = ItemStatus.PENDING
    error: ItemError | None = None
    result: dict | None = None
    attempts: int = 0
    started_at: float | None = None
    completed_at: float | None = None

    def _move(self, target: ItemStatus) -> None:
        if target not in _ITEM_TRANSITIONS.get(self.status, ()):
            raise InvalidTransition(
                f'item {self.id!r} cannot move from {self.status.value} to {target.value}'
            )
        self.status = target

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'kind': self.kind.value,
            'status': self.status.value,
            'error': self.error.to_dict() if self.error else None,
            'result': self.result,
            'attempts': self.attempts,
            'started_at': _iso(self.started_at),
            'completed_at': _iso(self.completed_at),
        }


class BulkOperation:
    """One run of a single operation type over an ordered list of items.

    Counters are maintained incrementally so progress reads are O(1).
    ``skipped`` counts both ``SKIPPED`` and ``CANCELLED`` items.
    """

    def __init__(self,
                 operation_type: OperationType,
                 items: Iterable[Item],
                 params: dict | None = None,
                 credential_key: str = 'default',
                 operation_id: str | None = None,
                 clock: Callable[[], float] = time.time):
        self.id: str = operation_id or uuid.uuid4().hex
        self.operation_type = OperationType.parse(operation_type)
        self.items: tuple[Item, ...] = tuple(items)
        self.params: dict = dict(params or {})
        self.credential_key = credential_key
        self.status = OperationStatus.PENDING
        self.fault: str | None = None
        self.cancel_requested = False
        self.pause_requested = False
        self.condition = threading.Condition()

        self._clock = clock
        self.created_at: float = clock()
        self.started_at: float | None = None
        self.completed_at: float | None = None

        self._succeeded = 0
        self._failed = 0
        self._skipped = 0

    def __repr__(self) -> str:
        return (f'BulkOperation(id={self.id!r}, type={self.operation_type.value}, '
                f'status={self.status.value}, total={self.total})')

    # -- Counters ----------------------------------------------------------

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def succeeded(self) -> int:
        return self._succeeded

    @property
    def failed(self) -> int:
        return self._failed

    @property
    def skipped(self) -> int:
        return self._skipped

    @property
    def processed(self) -> int:
        """Items that were actually attempted and resolved."""
        return self._succeeded + self._failed

    @property
    def finished(self) -> int:
        return self._succeeded + self._failed + self._skipped

    @property
    def percent(self) -> float:
        if not self.items:
            return 100.0
        return round(100.0 * self.finished / self.total, 1)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def duration(self) -> float | None:
        if self.started_at is None:
            return None
        end = self.completed_at if self.completed_at is not None else self._clock()
        return max(0.0, end - self.started_at)

    def now(self) -> float:
        return self._clock()

    # -- Run transitions ---------------------------------------------------

    def transition(self, target: OperationStatus) -> None:
        with self.condition:
            if target not in _RUN_TRANSITIONS.get(self.status, ()):
                raise InvalidTransition(
                    f'operation {self.id!r} cannot move from '
                    f'{self.status.value} to {target.value}'
                )
            self.status = target
            if target is OperationStatus.RUNNING and self.started_at is None:
                self.started_at = self._clock()
            if target.is_terminal:
                if self.started_at is None:
                    self.started_at = self._clock()
                self.completed_at = self._clock()
            self.condition.notify_all()

    # -- Item transitions --------------------------------------------------

    def start_item(self, item: Item) -> None:
        with self.condition:
            item._move(ItemStatus.IN_PROGRESS)
            item.started_at = self._clock()

    def succeed_item(self, item: Item, result: dict | None = None) -> None:
        with self.condition:
            item._move(ItemStatus.SUCCEEDED)
            item.result = result or None
            item.completed_at = self._clock()
            self._succeeded += 1

    def fail_item(self, item: Item, error: ItemError) -> None:
        with self.condition:
            item._move(ItemStatus.FAILED)
            item.error = error
            item.completed_at = self._clock()
            self._failed += 1

    def cancel_item(self, item: Item) -> None:
        with self.condition:
            item._move(ItemStatus.CANCELLED)
            item.completed_at = self._clock()
            self._skipped += 1

    def skip_item(self, item: Item) -> None:
        with self.condition:
            item._move(ItemStatus.SKIPPED)
            item.completed_at = self._clock()
            self._skipped += 1

    def pending_items(self) -> list[Item]:
        with self.condition:
            return [i for i in self.items if i.status is ItemStatus.PENDING]

    # -- Views -------------------------------------------------------------

    def progress(self) -> dict:
        with self.condition:
            return {
                'status': self.status.value,
                'total': self.total,
                'processed': self.processed,
                'succeeded': self._succeeded,
                'failed': self._failed,
                'skipped': self._skipped,
                'percent': self.percent,
            }

    def snapshot(self, include_items: bool = True) -> dict:
        """Return a JSON-safe view of the run."""
        with self.condition:
            data = {
                'id': self.id,
                'operation_type': self.operation_type.value,
                'credential_key': self.credential_key,
                'params': self.params,
                'cancel_requested': self.cancel_requested,
                'pause_requested': self.pause_requested,
                'fault': self.fault,
                'created_at': _iso(self.created_at),
                'started_at': _iso(self.started_at),
                'completed_at': _iso(self.completed_at),
            }
            data.update(self.progress())
            if include_items:
                data['items'] = [i.to_dict() for i in self.items]
            return data
