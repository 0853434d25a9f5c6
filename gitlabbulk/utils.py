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
gitlabbulk.utils
~~~~~~~~~~~~~~~~

This module provides utility functions for the gitlabbulk library.

:copyright: (C) 2024-2026 by gitlabbulk contributors.
:license: AGPL 3, see LICENSE for more details.
"""
from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Iterable

_ITEM_ID_RE = re.compile(r'^(?:(group|project)(?::|-(?=\d+$)))?(.+)$')


def deep_update(d: dict, u: Mapping) -> dict:
    for k, v in u.items():
        if isinstance(v, Mapping):
            r = deep_update(d.get(k, {}), v)
            d[k] = r
        else:
            d[k] = u[k]
    return d


def parse_item_id(item_id: str | int) -> tuple[str | None, int | None]:
    """Split an item id into its kind prefix and numeric GitLab id.

    Accepts ``42``, ``"42"``, ``"group:42"``, ``"project-42"`` and path
    ids such as ``"group:acme/new-team"``. The dash form is only a prefix
    when a number follows, so ``"group-tools"`` stays unprefixed.

    :returns: A ``(kind, number)`` tuple. ``kind`` is ``None`` when the
              id carries no prefix, ``number`` is ``None`` when the id is
              not numeric (e.g. ``"group:new-team"`` for a group that
              does not exist yet).
    """
    if isinstance(item_id, bool):
        return None, None
    if isinstance(item_id, int):
        return None, item_id
    m = _ITEM_ID_RE.match(str(item_id).strip())
    if not m:
        return None, None
    rest = m.group(2)
    return m.group(1), int(rest) if rest.isdecimal() else None


def slugify_path(text: str) -> str:
    """Turn a display name into a GitLab-safe path segment."""
    slug = re.sub(r'[^a-z0-9_.-]+', '-', text.strip().lower())
    return slug.strip('-.') or 'group'


def path_suffix(suffix: str) -> str:
    """Return the path-safe form of a clone name suffix."""
    return re.sub(r'[^a-z0-9-]', '', suffix.lower())


def flatten_hierarchy(nodes: Iterable[Mapping], parent_path: str | None = None) -> list[dict]:
    """Flatten a nested subgroup tree into ``CREATE_SUBGROUPS`` items.

    Nodes are ``{"name": ..., "path": ..., "description": ...,
    "settings": {...}, "subgroups": [...]}``. Output order is a pre-order
    walk so every parent appears before its children.
    """
    items: list[dict] = []
    for node in nodes:
        name = node['name']
        path = node.get('path') or slugify_path(name)
        full_path = f'{parent_path}/{path}' if parent_path else path
        attrs: dict = {'path': path}
        if parent_path:
            attrs['parent_path'] = parent_path
        if node.get('description'):
            attrs['description'] = node['description']
        if node.get('settings'):
            attrs['settings'] = dict(node['settings'])
        items.append({
            'id': f'group:{full_path}',
            'name': name,
            'kind': 'group',
            'attrs': attrs,
        })
        items.extend(flatten_hierarchy(node.get('subgroups') or [], full_path))
    return items
