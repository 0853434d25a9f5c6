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
gitlabbulk.exceptions
~~~~~~~~~~~~~~~~~~~~~

:copyright: (C) 2024-2026 by gitlabbulk contributors.
:license: AGPL 3, see LICENSE for more details.
"""
from __future__ import annotations


class GitLabBulkError(Exception):
    """Base class for gitlabbulk errors."""


class OperationNotFound(GitLabBulkError):
    def __init__(self, operation_id: str = "", *args):
        self.operation_id = operation_id
        if args:
            super().__init__(*args)
        else:
            super().__init__(f"No bulk operation with id {operation_id!r}.")


class InvalidSubmission(GitLabBulkError):
    """The submitted operation type, items or params are malformed."""


class InvalidTransition(GitLabBulkError):
    """An item or run was moved along an edge the state machine forbids."""


class RemoteError(GitLabBulkError):
    """A GitLab API call failed.

    :param kind: The :class:`~gitlabbulk.models.ErrorKind` of the failure.
    :param message: Human-readable reason.
    :param status_code: HTTP status, if a response was received.
    :param retry_after: Seconds the server asked us to wait, if given.
    """

    def __init__(self, kind, message: str, status_code: int | None = None,
                 retry_after: float | None = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code
        self.retry_after = retry_after
