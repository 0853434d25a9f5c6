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
gitlabbulk.params
~~~~~~~~~~~~~~~~~

Per-operation schemas for submitted params and items.

Every :class:`~gitlabbulk.models.OperationType` has one params schema and
one item ``attrs`` schema. Submissions that do not match are rejected with
:class:`~gitlabbulk.exceptions.InvalidSubmission` before any run exists.

:copyright: (C) 2024-2026 by gitlabbulk contributors.
:license: AGPL 3, see LICENSE for more details.
"""
from __future__ import annotations

from typing import Iterable, Mapping

from schema import And, Optional, Or, Schema, SchemaError, Use

from gitlabbulk.exceptions import InvalidSubmission
from gitlabbulk.models import Item, ItemKind, ItemStatus, OperationType
from gitlabbulk.utils import parse_item_id

VISIBILITY_LEVELS = ('private', 'internal', 'public')
# GitLab protected branch access levels: no one, developer, maintainer, admin.
BRANCH_ACCESS_LEVELS = (0, 30, 40, 60)
FEATURE_ACCESS_LEVELS = ('disabled', 'private', 'enabled')

_positive_id = And(int, lambda n: not isinstance(n, bool), lambda n: n > 0,
                   error='must be a positive integer')
_non_empty = And(str, len, error='must be a non-empty string')
_non_empty_dict = And(dict, len, error='must not be empty')

_EMPTY = Schema({})


def _parse_kind(value) -> ItemKind:
    if isinstance(value, ItemKind):
        return value
    return ItemKind(str(value).strip().lower())


PARAMS_SCHEMAS: dict[OperationType, Schema] = {
    OperationType.DELETE: _EMPTY,
    OperationType.ARCHIVE: _EMPTY,
    OperationType.UNARCHIVE: _EMPTY,
    OperationType.TRANSFER: Schema({
        'target_namespace_id': Or(_positive_id, _non_empty),
    }),
    OperationType.CLONE: Schema({
        Optional('suffix', default='_copy'): _non_empty,
    }),
    OperationType.SET_VISIBILITY: Schema({
        'visibility': Or(*VISIBILITY_LEVELS),
    }),
    OperationType.SET_ACCESS_LEVELS: Schema(And({
        Optional('project_creation_level'): Or('noone', 'owner', 'maintainer',
                                               'developer', 'administrator'),
        Optional('subgroup_creation_level'): Or('owner', 'maintainer'),
        Optional('request_access_enabled'): bool,
        Optional('issues_access_level'): Or(*FEATURE_ACCESS_LEVELS),
        Optional('merge_requests_access_level'): Or(*FEATURE_ACCESS_LEVELS),
        Optional('wiki_access_level'): Or(*FEATURE_ACCESS_LEVELS),
        Optional('snippets_access_level'): Or(*FEATURE_ACCESS_LEVELS),
    }, len, error='at least one access level setting is required')),
    OperationType.SET_PROTECTED_BRANCHES: Schema({
        'branches': And([{
            'name': _non_empty,
            Optional('push_access_level', default=40): Or(*BRANCH_ACCESS_LEVELS),
            Optional('merge_access_level', default=40): Or(*BRANCH_ACCESS_LEVELS),
            Optional('allow_force_push', default=False): bool,
        }], len, error='at least one branch is required'),
        Optional('replace_existing', default=False): bool,
    }),
    OperationType.SET_PUSH_RULES: Schema({
        'rules': And({
            Optional('deny_delete_tag'): bool,
            Optional('member_check'): bool,
            Optional('prevent_secrets'): bool,
            Optional('commit_message_regex'): str,
            Optional('commit_message_negative_regex'): str,
            Optional('branch_name_regex'): str,
            Optional('author_email_regex'): str,
            Optional('file_name_regex'): str,
            Optional('max_file_size'): And(int, lambda n: n >= 0),
            Optional('commit_committer_check'): bool,
            Optional('reject_unsigned_commits'): bool,
        }, len, error='at least one push rule is required'),
    }),
    OperationType.CREATE_SUBGROUPS: Schema({
        Optional('parent_id'): _positive_id,
        Optional('defaults'): dict,
        Optional('skip_existing', default=True): bool,
    }),
    OperationType.CREATE_PROJECTS: Schema({
        Optional('namespace_id'): _positive_id,
        Optional('defaults'): dict,
        Optional('protect_default_branch', default=False): bool,
    }),
}

ATTRS_SCHEMAS: dict[OperationType, Schema] = {
    OperationType.CREATE_SUBGROUPS: Schema({
        'path': _non_empty,
        Optional('parent_path'): _non_empty,
        Optional('parent_id'): _positive_id,
        Optional('description'): str,
        Optional('settings'): dict,
    }),
    OperationType.CREATE_PROJECTS: Schema({
        Optional('path'): _non_empty,
        Optional('namespace_id'): _positive_id,
        Optional('namespace_path'): _non_empty,
        Optional('description'): str,
        Optional('topics'): [str],
        Optional('settings'): dict,
    }),
}

# Operations that create resources only accept items of one kind.
REQUIRED_KIND: dict[OperationType, ItemKind] = {
    OperationType.CREATE_SUBGROUPS: ItemKind.GROUP,
    OperationType.CREATE_PROJECTS: ItemKind.PROJECT,
}

ITEM_SCHEMA = Schema({
    'id': And(Or(str, int), Use(str), len, error='id must be a non-empty string or integer'),
    Optional('name'): str,
    Optional('kind'): And(Use(_parse_kind), error="kind must be 'group' or 'project'"),
    Optional('attrs'): dict,
})


def validate_params(operation_type: OperationType | str, params: Mapping | None) -> dict:
    """Validate *params* against the schema for *operation_type*.

    :returns: The validated params with defaults filled in.
    :raises InvalidSubmission: If the params do not match.
    """
    op = _parse_operation_type(operation_type)
    try:
        return PARAMS_SCHEMAS[op].validate(dict(params or {}))
    except SchemaError as exc:
        raise InvalidSubmission(f'invalid params for {op.value}: {exc.code}')


def build_items(operation_type: OperationType | str,
                raw_items: Iterable[Mapping | Item]) -> list[Item]:
    """Validate raw item dicts and turn them into fresh ``PENDING`` items.

    ``kind`` may be omitted when the id carries a ``group:``/``project:``
    prefix. Order is preserved and duplicates are kept.
    """
    op = _parse_operation_type(operation_type)
    if raw_items is None or isinstance(raw_items, (str, bytes, Mapping)):
        raise InvalidSubmission('items must be a list')

    items = []
    for idx, raw in enumerate(raw_items):
        if isinstance(raw, Item):
            if raw.status is not ItemStatus.PENDING:
                raise InvalidSubmission(f'item {idx} ({raw.id}) is not pending')
            raw = {'id': raw.id, 'name': raw.name, 'kind': raw.kind, 'attrs': raw.attrs}
        if not isinstance(raw, Mapping):
            raise InvalidSubmission(f'item {idx} must be an object')
        try:
            data = ITEM_SCHEMA.validate(dict(raw))
        except SchemaError as exc:
            raise InvalidSubmission(f'item {idx}: {exc.code}')

        kind = data.get('kind')
        if kind is None:
            prefix, _ = parse_item_id(data['id'])
            if prefix is None:
                raise InvalidSubmission(f'item {idx} ({data["id"]}): kind is required')
            kind = ItemKind(prefix)

        required = REQUIRED_KIND.get(op)
        if required is not None and kind is not required:
            raise InvalidSubmission(
                f'item {idx} ({data["id"]}): {op.value} only accepts {required.value} items'
            )

        attrs = data.get('attrs') or {}
        try:
            attrs = ATTRS_SCHEMAS.get(op, _EMPTY).validate(dict(attrs))
        except SchemaError as exc:
            raise InvalidSubmission(f'item {idx} ({data["id"]}) attrs: {exc.code}')

        items.append(Item(
            id=data['id'],
            name=data.get('name') or data['id'],
            kind=kind,
            attrs=attrs,
        ))
    return items


def validate_submission(operation_type: OperationType | str,
                        raw_items: Iterable[Mapping | Item],
                        params: Mapping | None = None,
                        ) -> tuple[OperationType, list[Item], dict]:
    """Validate a complete submission.

    :returns: ``(operation_type, items, params)`` ready for a
              :class:`~gitlabbulk.models.BulkOperation`.
    """
    op = _parse_operation_type(operation_type)
    return op, build_items(op, raw_items), validate_params(op, params)


def _parse_operation_type(operation_type: OperationType | str) -> OperationType:
    try:
        return OperationType.parse(operation_type)
    except ValueError:
        raise InvalidSubmission(f'unknown operation type: {operation_type!r}')
