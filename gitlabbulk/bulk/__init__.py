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
gitlabbulk.bulk
~~~~~~~~~~~~~~~

Worker loop, control plane, registry and progress publishing for bulk
operations.

:copyright: (C) 2024-2026 by gitlabbulk contributors.
:license: AGPL 3, see LICENSE for more details.
"""

__all__ = [
    "BaseWorker",
    "BulkEngine",
    "ControlPlane",
    "OperationRegistry",
    "ProgressPublisher",
    "WorkerResult",
]


def __getattr__(name):
    if name == "BulkEngine":
        from gitlabbulk.bulk.engine import BulkEngine  # noqa: PLC0415
        return BulkEngine
    if name == "ControlPlane":
        from gitlabbulk.bulk.control import ControlPlane  # noqa: PLC0415
        return ControlPlane
    if name == "OperationRegistry":
        from gitlabbulk.bulk.registry import OperationRegistry  # noqa: PLC0415
        return OperationRegistry
    if name == "ProgressPublisher":
        from gitlabbulk.bulk.publisher import ProgressPublisher  # noqa: PLC0415
        return ProgressPublisher
    if name in ("BaseWorker", "WorkerResult"):
        from gitlabbulk.bulk import worker  # noqa: PLC0415
        return getattr(worker, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
