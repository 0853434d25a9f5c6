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
gitlabbulk.config
~~~~~~~~~~~~~~~~~

:copyright: (C) 2024-2026 by gitlabbulk contributors.
:license: AGPL 3, see LICENSE for more details.
"""
from __future__ import annotations

import os
from collections import defaultdict
from configparser import RawConfigParser
from dataclasses import dataclass
from typing import Mapping

from gitlabbulk.utils import deep_update

DEFAULT_GITLAB_URL = 'https://gitlab.com'


@dataclass(frozen=True)
class BulkSettings:
    """Typed view of the ``[bulk]`` config section.

    :param rate: Outbound calls per second allowed per credential.
    :param burst: Token bucket capacity.
    :param max_attempts: Attempts per item for transient failures
                         (``2`` means one retry).
    :param backoff: Initial retry backoff in seconds, doubled per attempt.
    :param max_backoff: Upper bound for any single backoff wait.
    :param max_operations: Bulk operations allowed to run at once.
    :param history_size: Finished runs kept for late status queries.
    :param retention: Seconds a finished run stays queryable.
    :param queue_size: Per-subscriber event queue bound.
    """

    rate: float = 5.0
    burst: int = 5
    max_attempts: int = 2
    backoff: float = 1.0
    max_backoff: float = 30.0
    max_operations: int = 4
    history_size: int = 100
    retention: float = 3600.0
    queue_size: int = 1000

    @classmethod
    def from_config(cls, config: Mapping | None) -> BulkSettings:
        section = (config or {}).get('bulk', {})
        kwargs: dict = {}
        for name, cast in (('rate', float), ('burst', int), ('max_attempts', int),
                           ('backoff', float), ('max_backoff', float),
                           ('max_operations', int), ('history_size', int),
                           ('retention', float), ('queue_size', int)):
            if section.get(name) not in (None, ''):
                kwargs[name] = cast(section[name])
        settings = cls(**kwargs)
        if settings.max_attempts < 1:
            raise ValueError('bulk.max_attempts must be at least 1')
        if settings.max_operations < 1:
            raise ValueError('bulk.max_operations must be at least 1')
        return settings


def parse_config_file(config_file=None):
    config = RawConfigParser()

    if not config_file:
        candidates = []
        if os.environ.get('GITLABBULK_CONFIG_FILE'):
            candidates.append(os.environ['GITLABBULK_CONFIG_FILE'])
        xdg_config_home = os.environ.get('XDG_CONFIG_HOME')
        if not xdg_config_home or not os.path.isabs(xdg_config_home):
            xdg_config_home = os.path.join(os.path.expanduser('~'), '.config')
        xdg_config_file = os.path.join(xdg_config_home, 'gitlabbulk', 'gitlabbulk.ini')
        candidates.append(xdg_config_file)
        candidates.append(os.path.join(os.path.expanduser('~'), '.gitlabbulk'))
        for candidate in candidates:
            if os.path.isfile(candidate):
                config_file = candidate
                break
        else:
            config_file = os.environ.get('GITLABBULK_CONFIG_FILE', xdg_config_file)
    config.read(config_file)

    if not config.has_section('gitlab'):
        config.add_section('gitlab')
        config.set('gitlab', 'url', None)
        config.set('gitlab', 'token', None)

    return (config_file, config)


def get_config(config=None, config_file=None) -> dict:
    """Merge the config file, ``GITLAB_URL``/``GITLAB_TOKEN`` and *config*.

    Precedence, lowest first: config file, environment, explicit dict.
    """
    _config = config or {}
    config_file, parsed = parse_config_file(config_file)

    config_dict: dict = defaultdict(dict)
    if os.path.isfile(config_file):
        for sec in parsed.sections():
            for k, v in parsed.items(sec):
                if k is None or v is None:
                    continue
                config_dict[sec][k] = v

    if os.environ.get('GITLAB_URL'):
        config_dict['gitlab']['url'] = os.environ['GITLAB_URL']
    if os.environ.get('GITLAB_TOKEN'):
        config_dict['gitlab']['token'] = os.environ['GITLAB_TOKEN']

    # Recursive/deep update.
    deep_update(config_dict, _config)

    return {k: v for k, v in config_dict.items() if v}
