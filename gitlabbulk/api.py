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
gitlabbulk.api
~~~~~~~~~~~~~~

This module implements the gitlabbulk API: a :class:`BulkService` that
accepts bulk submissions, answers status queries, forwards control
commands and hands out progress subscriptions.

:copyright: (C) 2024-2026 by gitlabbulk contributors.
:license: AGPL 3, see LICENSE for more details.
"""
from __future__ import annotations

import logging
from typing import Iterable, Mapping, MutableMapping

from gitlabbulk.bulk.control import ControlPlane
from gitlabbulk.bulk.engine import BulkEngine
from gitlabbulk.bulk.publisher import ProgressPublisher, Subscription
from gitlabbulk.bulk.registry import OperationRegistry
from gitlabbulk.bulk.summary import RunSummary, summarize
from gitlabbulk.bulk.worker import BaseWorker
from gitlabbulk.config import BulkSettings
from gitlabbulk.models import Item, OperationType
from gitlabbulk.ratelimit import RateLimiter
from gitlabbulk.session import GitLabSession
from gitlabbulk.workers.gitlab import GitLabWorker

logger = logging.getLogger(__name__)


class BulkService:
    """Caller-facing facade over the registry, control plane and publisher.

    Usage::

        >>> from gitlabbulk import get_service
        >>> service = get_service()
        >>> op_id = service.submit('archive', [{'id': 'project:42'}])
        >>> for event in service.subscribe(op_id):
        ...     print(event.kind.value, event.percent)
        >>> service.status(op_id)['status']
        'completed'

    :param registry: Store that owns and schedules the runs.
    :param publisher: The publisher the registry's engine publishes to.
    :param credential_key: Rate limiter key stamped on every submission.
    :param session: The :class:`GitLabSession` the worker uses, if any.
    """

    def __init__(self,
                 registry: OperationRegistry,
                 publisher: ProgressPublisher,
                 credential_key: str = 'default',
                 session: GitLabSession | None = None):
        self.registry = registry
        self.publisher = publisher
        self.control = ControlPlane(registry)
        self.credential_key = credential_key
        self.session = session

    def submit(self,
               operation_type: OperationType | str,
               items: Iterable[Mapping | Item],
               params: Mapping | None = None) -> str:
        """Validate and schedule a bulk operation.

        :param operation_type: An :class:`OperationType` or its name,
                               e.g. ``'set-visibility'``.

        :param items: Item dicts (``id``, ``name``, ``kind``, ``attrs``)
                      in the order they must be processed.

        :param params: Operation payload, validated per operation type.

        :raises InvalidSubmission: If the submission is malformed.

        :returns: The new operation id.
        """
        return self.registry.submit(operation_type, items, params,
                                    credential_key=self.credential_key)

    def status(self, operation_id: str, include_items: bool = True) -> dict:
        """Return a JSON-safe snapshot of the run.

        :raises OperationNotFound: If the id is unknown or evicted.
        """
        return self.control.status(operation_id, include_items=include_items)

    def summary(self, operation_id: str) -> RunSummary:
        return summarize(self.registry.get(operation_id))

    def pause(self, operation_id: str) -> bool:
        return self.control.pause(operation_id)

    def resume(self, operation_id: str) -> bool:
        return self.control.resume(operation_id)

    def cancel(self, operation_id: str) -> bool:
        return self.control.cancel(operation_id)

    def subscribe(self, operation_id: str, maxsize: int | None = None) -> Subscription:
        """Open a progress subscription for a known run.

        The latest event already published is delivered first.

        :raises OperationNotFound: If the id is unknown or evicted.
        """
        self.registry.get(operation_id)
        return self.publisher.subscribe(operation_id, maxsize=maxsize)

    def wait(self, operation_id: str, timeout: float | None = None) -> RunSummary:
        """Block until the run is terminal and return its summary."""
        return self.registry.wait(operation_id, timeout=timeout)

    def list_operations(self) -> list[dict]:
        """Snapshots of active runs followed by retained history."""
        operations = self.registry.active() + self.registry.history()
        return [op.snapshot(include_items=False) for op in operations]

    def shutdown(self, wait: bool = True) -> None:
        self.registry.shutdown(wait=wait)
        if self.session is not None:
            self.session.close()

    def __enter__(self) -> BulkService:
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown(wait=True)


def get_session(
    config: Mapping | None = None,
    config_file: str | None = None,
    debug: bool = False,
    http_adapter_kwargs: MutableMapping | None = None,
) -> GitLabSession:
    """Return a new :class:`GitLabSession` object.

    :param config: A dictionary used to configure your session.

    :param config_file: A path to a config file used to configure your session.

    :param debug: Also log urllib3 activity when file logging is enabled.

    :param http_adapter_kwargs: Keyword arguments that
                                :py:class:`requests.adapters.HTTPAdapter` takes.

    Usage:

        >>> from gitlabbulk import get_session
        >>> config = {'gitlab': {'url': 'https://gitlab.example.com', 'token': 'x'}}
        >>> s = get_session(config)
        >>> s.api_url
        'https://gitlab.example.com/api/v4'
    """
    return GitLabSession(config, config_file or "", debug, http_adapter_kwargs)


def get_service(
    config: Mapping | None = None,
    config_file: str | None = None,
    session: GitLabSession | None = None,
    worker: BaseWorker | None = None,
    debug: bool = False,
    http_adapter_kwargs: MutableMapping | None = None,
) -> BulkService:
    """Build a complete :class:`BulkService` from configuration.

    Wires the session, rate limiter, publisher, engine and registry
    together using the ``[gitlab]`` and ``[bulk]`` config sections.

    :param config: A dictionary used to configure the service.

    :param config_file: A path to a config file.

    :param session: An existing :class:`GitLabSession` to reuse.

    :param worker: A worker to use instead of :class:`GitLabWorker`.

    :returns: A ready :class:`BulkService`. Call
              :meth:`BulkService.shutdown` when done.
    """
    if session is None:
        session = get_session(config, config_file, debug, http_adapter_kwargs)
    settings = BulkSettings.from_config(session.config)

    publisher = ProgressPublisher(queue_size=settings.queue_size)
    engine = BulkEngine(
        worker or GitLabWorker(session),
        rate_limiter=RateLimiter(settings.rate, settings.burst),
        publisher=publisher,
        max_attempts=settings.max_attempts,
        backoff=settings.backoff,
        max_backoff=settings.max_backoff,
    )
    registry = OperationRegistry(
        engine,
        max_operations=settings.max_operations,
        history_size=settings.history_size,
        retention=settings.retention,
        publisher=publisher,
    )
    logger.debug('bulk service ready for %s (%s)', session.url, settings)
    return BulkService(registry, publisher,
                       credential_key=session.credential_key,
                       session=session)
