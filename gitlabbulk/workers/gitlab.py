"""
gitlabbulk.workers.gitlab
~~~~~~~~~~~~~~~~~~~~~~~~~

GitLab REST worker for the bulk operations engine.

Translates one ``(operation_type, item, params)`` triple into the GitLab
API calls it needs. API failures come back from the session as
:class:`~gitlabbulk.exceptions.RemoteError` and are returned to the
engine as classified :class:`~gitlabbulk.bulk.worker.WorkerResult`
failures.

:copyright: (C) 2024-2026 by gitlabbulk contributors.
:license: AGPL 3, see LICENSE for more details.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import quote

from gitlabbulk.bulk.worker import BaseWorker, WorkerResult
from gitlabbulk.exceptions import RemoteError
from gitlabbulk.models import ErrorKind, Item, ItemKind, OperationType
from gitlabbulk.utils import parse_item_id, path_suffix, slugify_path

if TYPE_CHECKING:
    from gitlabbulk.session import GitLabSession

logger = logging.getLogger(__name__)

SUBGROUP_DEFAULTS = {
    'visibility': 'private',
    'request_access_enabled': True,
    'project_creation_level': 'developer',
    'subgroup_creation_level': 'maintainer',
}

PROJECT_DEFAULTS = {
    'visibility': 'private',
    'default_branch': 'main',
    'initialize_with_readme': True,
}

GROUP_ACCESS_KEYS = (
    'project_creation_level',
    'subgroup_creation_level',
    'request_access_enabled',
)

PROJECT_ACCESS_KEYS = (
    'issues_access_level',
    'merge_requests_access_level',
    'wiki_access_level',
    'snippets_access_level',
)


def _encode(path: str) -> str:
    """URL-encode a full path for use as a GitLab ``:id``."""
    return quote(path, safe='')


class GitLabWorker(BaseWorker):
    """Worker that applies bulk operations through the GitLab REST API.

    :param session: A :class:`~gitlabbulk.session.GitLabSession`. Its
        per-request timeout bounds every call.
    """

    def __init__(self, session: GitLabSession):
        self._session = session
        self._handlers = {
            OperationType.DELETE: self._delete,
            OperationType.TRANSFER: self._transfer,
            OperationType.ARCHIVE: self._archive,
            OperationType.UNARCHIVE: self._unarchive,
            OperationType.CLONE: self._clone,
            OperationType.CREATE_SUBGROUPS: self._create_subgroup,
            OperationType.CREATE_PROJECTS: self._create_project,
            OperationType.SET_VISIBILITY: self._set_visibility,
            OperationType.SET_ACCESS_LEVELS: self._set_access_levels,
            OperationType.SET_PROTECTED_BRANCHES: self._set_protected_branches,
            OperationType.SET_PUSH_RULES: self._set_push_rules,
        }

    def apply(
        self,
        operation_type: OperationType,
        item: Item,
        params: dict,
    ) -> WorkerResult:
        handler = self._handlers.get(OperationType.parse(operation_type))
        if handler is None:
            return WorkerResult(
                success=False,
                identifier=item.id,
                error_kind=ErrorKind.VALIDATION,
                error=f'unsupported operation {operation_type}',
            )
        try:
            extra = handler(item, params or {})
        except RemoteError as exc:
            logger.debug('%s on %s failed: %s', operation_type, item.id, exc.message)
            return WorkerResult(
                success=False,
                identifier=item.id,
                error_kind=ErrorKind(exc.kind),
                error=exc.message,
                status_code=exc.status_code,
                retry_after=exc.retry_after,
            )
        return WorkerResult(success=True, identifier=item.id, extra=extra or {})

    # -- Helpers ---------------------------------------------------

    def _call(self, method: str, path: str, **kwargs):
        return self._session.api_request(method, path, **kwargs)

    @staticmethod
    def _numeric_id(item: Item) -> int:
        _, number = parse_item_id(item.id)
        if number is None:
            raise RemoteError(ErrorKind.VALIDATION,
                              f'{item.id!r} is not a numeric GitLab id')
        return number

    def _resource(self, item: Item) -> str:
        """Return ``groups/<id>`` or ``projects/<id>`` for *item*."""
        collection = 'groups' if item.kind is ItemKind.GROUP else 'projects'
        return f'{collection}/{self._numeric_id(item)}'

    @staticmethod
    def _require_project(item: Item, message: str) -> None:
        if item.kind is not ItemKind.PROJECT:
            raise RemoteError(ErrorKind.VALIDATION, message)

    def _find_group(self, full_path: str) -> dict | None:
        try:
            return self._call('GET', f'groups/{_encode(full_path)}')
        except RemoteError as exc:
            if exc.kind is ErrorKind.NOT_FOUND:
                return None
            raise

    def _parent_group(self, item: Item, params: dict) -> dict:
        attrs = item.attrs
        if attrs.get('parent_id'):
            return self._call('GET', f'groups/{attrs["parent_id"]}')
        if attrs.get('parent_path'):
            group = self._find_group(attrs['parent_path'])
            if group is None:
                raise RemoteError(ErrorKind.NOT_FOUND,
                                  f'parent group {attrs["parent_path"]!r} not found')
            return group
        if params.get('parent_id'):
            return self._call('GET', f'groups/{params["parent_id"]}')
        raise RemoteError(ErrorKind.VALIDATION, 'no parent group given')

    def _namespace_id(self, item: Item, params: dict) -> int:
        attrs = item.attrs
        if attrs.get('namespace_id'):
            return attrs['namespace_id']
        if attrs.get('namespace_path'):
            namespace = self._call('GET', f'namespaces/{_encode(attrs["namespace_path"])}')
            return namespace['id']
        if params.get('namespace_id'):
            return params['namespace_id']
        raise RemoteError(ErrorKind.VALIDATION, 'no target namespace given')

    @staticmethod
    def _display_name(item: Item, fallback: str) -> str:
        return item.name if item.name and item.name != item.id else fallback

    # -- Operations ------------------------------------------------

    def _delete(self, item: Item, params: dict) -> dict:
        self._call('DELETE', self._resource(item))
        return {}

    def _transfer(self, item: Item, params: dict) -> dict:
        target = params['target_namespace_id']
        if item.kind is ItemKind.GROUP:
            self._call('POST', f'{self._resource(item)}/transfer', json={'group_id': target})
        else:
            self._call('PUT', f'{self._resource(item)}/transfer', json={'namespace': target})
        return {'namespace': target}

    def _archive(self, item: Item, params: dict) -> dict:
        self._require_project(item, 'Only projects can be archived')
        self._call('POST', f'{self._resource(item)}/archive')
        return {'archived': True}

    def _unarchive(self, item: Item, params: dict) -> dict:
        self._require_project(item, 'Only projects can be unarchived')
        self._call('POST', f'{self._resource(item)}/unarchive')
        return {'archived': False}

    def _clone(self, item: Item, params: dict) -> dict:
        suffix = params.get('suffix', '_copy')
        source = self._call('GET', self._resource(item))
        payload = {
            'name': source['name'] + suffix,
            'path': source['path'] + path_suffix(suffix),
            'visibility': source.get('visibility'),
            'description': source.get('description'),
        }
        if item.kind is ItemKind.GROUP:
            payload['parent_id'] = source.get('parent_id')
            created = self._call('POST', 'groups', json=payload)
            full_path = created.get('full_path')
        else:
            payload['namespace_id'] = source['namespace']['id']
            created = self._call('POST', 'projects', json=payload)
            full_path = created.get('path_with_namespace')
        return {'id': created['id'], 'full_path': full_path, 'source_id': source['id']}

    def _create_subgroup(self, item: Item, params: dict) -> dict:
        attrs = item.attrs
        parent = self._parent_group(item, params)
        full_path = f'{parent["full_path"]}/{attrs["path"]}'

        if params.get('skip_existing', True):
            existing = self._find_group(full_path)
            if existing is not None:
                logger.info('group %s already exists, skipping', full_path)
                return {'id': existing['id'], 'full_path': full_path, 'existing': True}

        payload = dict(SUBGROUP_DEFAULTS)
        payload.update(params.get('defaults') or {})
        payload.update(attrs.get('settings') or {})
        payload.update({
            'name': self._display_name(item, attrs['path']),
            'path': attrs['path'],
            'parent_id': parent['id'],
        })
        if attrs.get('description'):
            payload['description'] = attrs['description']
        created = self._call('POST', 'groups', json=payload)
        return {
            'id': created['id'],
            'full_path': created.get('full_path', full_path),
            'web_url': created.get('web_url'),
        }

    def _create_project(self, item: Item, params: dict) -> dict:
        attrs = item.attrs
        name = self._display_name(item, attrs.get('path', ''))
        if not name:
            raise RemoteError(ErrorKind.VALIDATION, 'project name or path is required')

        payload = dict(PROJECT_DEFAULTS)
        payload.update(params.get('defaults') or {})
        payload.update(attrs.get('settings') or {})
        payload.update({
            'name': name,
            'path': attrs.get('path') or slugify_path(name),
            'namespace_id': self._namespace_id(item, params),
        })
        if attrs.get('description'):
            payload['description'] = attrs['description']
        if attrs.get('topics'):
            payload['topics'] = attrs['topics']
        created = self._call('POST', 'projects', json=payload)

        if params.get('protect_default_branch'):
            self._call('POST', f'projects/{created["id"]}/protected_branches', json={
                'name': payload['default_branch'],
                'push_access_level': 40,
                'merge_access_level': 40,
            })
        return {
            'id': created['id'],
            'full_path': created.get('path_with_namespace'),
            'web_url': created.get('web_url'),
        }

    def _set_visibility(self, item: Item, params: dict) -> dict:
        self._call('PUT', self._resource(item), json={'visibility': params['visibility']})
        return {'visibility': params['visibility']}

    def _set_access_levels(self, item: Item, params: dict) -> dict:
        keys = GROUP_ACCESS_KEYS if item.kind is ItemKind.GROUP else PROJECT_ACCESS_KEYS
        payload = {k: params[k] for k in keys if k in params}
        if not payload:
            raise RemoteError(ErrorKind.VALIDATION,
                              f'no access level settings apply to {item.kind.value}s')
        self._call('PUT', self._resource(item), json=payload)
        return {'updated': sorted(payload)}

    def _set_protected_branches(self, item: Item, params: dict) -> dict:
        self._require_project(item, 'Protected branches can only be set on projects')
        base = f'{self._resource(item)}/protected_branches'
        if params.get('replace_existing'):
            for branch in self._call('GET', base) or []:
                self._call('DELETE', f'{base}/{_encode(branch["name"])}')
        protected = []
        for branch in params['branches']:
            self._call('POST', base, json={
                'name': branch['name'],
                'push_access_level': branch.get('push_access_level', 40),
                'merge_access_level': branch.get('merge_access_level', 40),
                'allow_force_push': branch.get('allow_force_push', False),
            })
            protected.append(branch['name'])
        return {'branches': protected}

    def _set_push_rules(self, item: Item, params: dict) -> dict:
        self._require_project(item, 'Push rules can only be set on projects')
        path = f'{self._resource(item)}/push_rule'
        try:
            self._call('PUT', path, json=params['rules'])
        except RemoteError as exc:
            if exc.kind is not ErrorKind.NOT_FOUND:
                raise
            # No push rule yet.
            self._call('POST', path, json=params['rules'])
        return {'rules': sorted(params['rules'])}
