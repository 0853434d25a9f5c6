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
gitlabbulk Library
~~~~~~~~~~~~~~~~~~

gitlabbulk applies one operation to many GitLab groups and projects,
with rate limiting, live progress, pause/resume/cancel and a
partial-failure tolerant summary.

Usage::

    >>> from gitlabbulk import get_service
    >>> service = get_service({'gitlab': {'url': 'https://gitlab.example.com',
    ...                                   'token': 'glpat-xxx'}})
    >>> op_id = service.submit('set_visibility',
    ...                        [{'id': 'project:42'}, {'id': 'group:7'}],
    ...                        {'visibility': 'private'})
    >>> service.wait(op_id).success_count
    2

:copyright: (C) 2024-2026 by gitlabbulk contributors.
:license: AGPL 3, see LICENSE for more details.
"""

__title__ = 'gitlabbulk'
__version__ = '1.0.0'
__license__ = 'AGPL 3'
__copyright__ = 'Copyright (C) 2024-2026 gitlabbulk contributors'

from gitlabbulk.api import BulkService, get_service, get_session
from gitlabbulk.exceptions import (
    GitLabBulkError,
    InvalidSubmission,
    InvalidTransition,
    OperationNotFound,
    RemoteError,
)
from gitlabbulk.models import (
    BulkOperation,
    ErrorKind,
    Item,
    ItemKind,
    ItemStatus,
    OperationStatus,
    OperationType,
)
from gitlabbulk.session import GitLabSession

__all__ = [
    '__version__',

    # Classes.
    'BulkService',
    'GitLabSession',
    'BulkOperation',
    'Item',

    # Enums.
    'ErrorKind',
    'ItemKind',
    'ItemStatus',
    'OperationStatus',
    'OperationType',

    # Exceptions.
    'GitLabBulkError',
    'InvalidSubmission',
    'InvalidTransition',
    'OperationNotFound',
    'RemoteError',

    # API.
    'get_service',
    'get_session',
]
