"""
gitlabbulk.bulk.summary
~~~~~~~~~~~~~~~~~~~~~~~

Partition a run's items into succeeded, failed and skipped.

:copyright: (C) 2024-2026 by gitlabbulk contributors.
:license: AGPL 3, see LICENSE for more details.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from gitlabbulk.models import BulkOperation, ItemStatus


@dataclass
class RunSummary:
    """Final (or current) outcome of a bulk operation.

    ``skipped`` holds items that never ran (``SKIPPED``) and items whose
    transient retry was abandoned on cancel (``CANCELLED``).
    """

    operation_id: str
    operation_type: str
    status: str
    total: int
    succeeded: list[dict] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)
    skipped: list[dict] = field(default_factory=list)
    duration_ms: int = 0
    fault: str | None = None

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "operation_type": self.operation_type,
            "status": self.status,
            "total": self.total,
            "success_count": self.success_count,
            "failed_count": self.failed_count,
            "skipped_count": self.skipped_count,
            "duration_ms": self.duration_ms,
            "fault": self.fault,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
        }


def summarize(operation: BulkOperation) -> RunSummary:
    """Build a :class:`RunSummary` from the items of *operation*.

    Items still ``PENDING`` or ``IN_PROGRESS`` (only possible while the
    run is live) are left out of all three partitions.
    """
    with operation.condition:
        summary = RunSummary(
            operation_id=operation.id,
            operation_type=operation.operation_type.value,
            status=operation.status.value,
            total=operation.total,
            fault=operation.fault,
        )
        for item in operation.items:
            entry = {"id": item.id, "name": item.name, "kind": item.kind.value}
            if item.status is ItemStatus.SUCCEEDED:
                if item.result:
                    entry["result"] = item.result
                summary.succeeded.append(entry)
            elif item.status is ItemStatus.FAILED:
                error = item.error
                entry["error"] = error.kind.value if error else "Unknown"
                entry["reason"] = error.reason if error else "Unknown"
                summary.failed.append(entry)
            elif item.status in (ItemStatus.SKIPPED, ItemStatus.CANCELLED):
                entry["status"] = item.status.value
                summary.skipped.append(entry)
        duration = operation.duration
        summary.duration_ms = int(round(duration * 1000)) if duration else 0
    return summary
