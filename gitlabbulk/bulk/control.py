"""
gitlabbulk.bulk.control
~~~~~~~~~~~~~~~~~~~~~~~

Pause, resume and cancel for running bulk operations.

Commands only flip flags on the operation. The worker loop reads them
at item boundaries, performs the status transition and publishes the
matching event, so a command never races with an item in flight.

:copyright: (C) 2024-2026 by gitlabbulk contributors.
:license: AGPL 3, see LICENSE for more details.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from gitlabbulk.models import OperationStatus

if TYPE_CHECKING:
    from gitlabbulk.bulk.registry import OperationRegistry

logger = logging.getLogger(__name__)


class ControlPlane:
    """Accepts control commands for operations held by a registry.

    Every command raises :class:`~gitlabbulk.exceptions.OperationNotFound`
    for an unknown id and returns ``True`` only when it changed state.
    Repeating a command is a no-op.
    """

    def __init__(self, registry: OperationRegistry) -> None:
        self.registry = registry

    def pause(self, operation_id: str) -> bool:
        operation = self.registry.get(operation_id)
        with operation.condition:
            if (operation.is_terminal
                    or operation.pause_requested
                    or operation.status is OperationStatus.PAUSED):
                return False
            operation.pause_requested = True
            operation.condition.notify_all()
        logger.info("pause requested for bulk %s", operation_id)
        return True

    def resume(self, operation_id: str) -> bool:
        operation = self.registry.get(operation_id)
        with operation.condition:
            if operation.status is not OperationStatus.PAUSED:
                return False
            operation.pause_requested = False
            operation.condition.notify_all()
        logger.info("resume requested for bulk %s", operation_id)
        return True

    def cancel(self, operation_id: str) -> bool:
        operation = self.registry.get(operation_id)
        with operation.condition:
            if operation.is_terminal or operation.cancel_requested:
                return False
            operation.cancel_requested = True
            operation.condition.notify_all()
        logger.info("cancel requested for bulk %s", operation_id)
        return True

    def status(self, operation_id: str, include_items: bool = True) -> dict:
        """Return a JSON-safe snapshot of the operation."""
        return self.registry.get(operation_id).snapshot(include_items=include_items)
