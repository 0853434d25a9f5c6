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
gitlabbulk.bulk.events
~~~~~~~~~~~~~~~~~~~~~~

Progress event types published by the bulk engine.

:copyright: (C) 2024-2026 by gitlabbulk contributors.
:license: AGPL 3, see LICENSE for more details.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gitlabbulk.models import BulkOperation, Item


class EventKind(str, Enum):
    RUN_STARTED = 'run-started'
    ITEM_STARTED = 'item-started'
    ITEM_COMPLETED = 'item-completed'
    RUN_PAUSED = 'run-paused'
    RUN_RESUMED = 'run-resumed'
    RUN_COMPLETED = 'run-completed'


@dataclass(frozen=True)
class ProgressEvent:
    """A state change of one bulk operation.

    Each event carries the whole run progress so a subscriber can
    rebuild its view without querying the registry.

    Attributes:
        kind: The :class:`EventKind`.
        operation_id: The run this event belongs to.
        operation_type: The run's operation type value.
        status: Run status after the transition.
        total: Number of items in the run.
        processed: Items attempted and resolved (succeeded + failed).
        succeeded: Items that succeeded so far.
        failed: Items that failed so far.
        skipped: Items skipped or cancelled so far.
        percent: Share of items in a final state, 0-100.
        item: Snapshot of the affected item, for item events.
        item_index: 1-based position of the affected item.
        summary: The run summary, for ``run-completed``.
        seq: Per-operation sequence number stamped by the publisher.
        ts: Wall-clock time the event was built.
    """

    kind: EventKind
    operation_id: str
    operation_type: str
    status: str
    total: int
    processed: int
    succeeded: int
    failed: int
    skipped: int
    percent: float
    item: dict | None = None
    item_index: int | None = None
    summary: dict | None = None
    seq: int = 0
    ts: float = 0.0

    @classmethod
    def from_operation(
        cls,
        kind: EventKind,
        operation: BulkOperation,
        item: Item | None = None,
        item_index: int | None = None,
        summary: dict | None = None,
    ) -> ProgressEvent:
        with operation.condition:
            progress = operation.progress()
            item_data = item.to_dict() if item is not None else None
        return cls(
            kind=kind,
            operation_id=operation.id,
            operation_type=operation.operation_type.value,
            status=progress['status'],
            total=progress['total'],
            processed=progress['processed'],
            succeeded=progress['succeeded'],
            failed=progress['failed'],
            skipped=progress['skipped'],
            percent=progress['percent'],
            item=item_data,
            item_index=item_index,
            summary=summary,
            ts=time.time(),
        )

    @property
    def is_final(self) -> bool:
        return self.kind is EventKind.RUN_COMPLETED

    def to_dict(self) -> dict:
        return {
            'event': self.kind.value,
            'operation_id': self.operation_id,
            'operation_type': self.operation_type,
            'seq': self.seq,
            'status': self.status,
            'total': self.total,
            'processed': self.processed,
            'succeeded': self.succeeded,
            'failed': self.failed,
            'skipped': self.skipped,
            'percent': self.percent,
            'item': self.item,
            'item_index': self.item_index,
            'summary': self.summary,
            'ts': self.ts,
        }
