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
gitlabbulk.session
~~~~~~~~~~~~~~~~~~

This module provides a GitLabSession object that holds the GitLab URL,
the access token and HTTP settings, and turns failed API responses into
classified :class:`~gitlabbulk.exceptions.RemoteError` exceptions.

:copyright: (C) 2024-2026 by gitlabbulk contributors.
:license: AGPL 3, see LICENSE for more details.
"""
from __future__ import annotations

import hashlib
import logging
import platform
import sys
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Mapping, MutableMapping

import requests.sessions
from requests import Response
from requests.adapters import HTTPAdapter
from requests.utils import default_headers
from urllib3 import Retry

from gitlabbulk import __version__
from gitlabbulk.config import DEFAULT_GITLAB_URL, get_config
from gitlabbulk.exceptions import RemoteError
from gitlabbulk.models import ErrorKind

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class GitLabSession(requests.sessions.Session):
    """A :class:`requests.Session <requests.Session>` bound to one GitLab
    instance and one access token.

    Relative URLs are resolved against ``<url>/api/v4`` and every request
    gets the configured timeout unless the caller passes one.

    Usage::

        >>> from gitlabbulk.session import GitLabSession
        >>> s = GitLabSession({'gitlab': {'url': 'https://gitlab.example.com',
        ...                               'token': 'glpat-xxx'}})
        >>> s.api_request('GET', 'groups/42')['full_path']
        'platform/team'
    """

    def __init__(self,
                 config: Mapping | None = None,
                 config_file: str = "",
                 debug: bool = False,
                 http_adapter_kwargs: MutableMapping | None = None):
        """Initialize :class:`GitLabSession <GitLabSession>` object with config.

        :param config: A config dict, deep-merged over the config file.

        :param config_file: Path to config file.

        :param http_adapter_kwargs: Keyword arguments used to initialize the
                                    :class:`requests.adapters.HTTPAdapter <HTTPAdapter>`
                                    object.
        """
        super().__init__()
        debug = bool(debug)

        self.config = get_config(config, config_file)
        self.config_file = config_file

        gitlab_config = self.config.get('gitlab', {})
        self.url: str = (gitlab_config.get('url') or DEFAULT_GITLAB_URL).rstrip('/')
        self.token: str | None = gitlab_config.get('token') or None
        self.timeout: float = float(gitlab_config.get('timeout') or DEFAULT_TIMEOUT)
        self.api_url = f'{self.url}/api/v4'
        self.http_adapter_kwargs: MutableMapping = http_adapter_kwargs or {}

        self.headers = default_headers()  # type: ignore[assignment]
        self.headers.update({'User-Agent': self._get_user_agent_string()})
        if self.token:
            self.headers.update({'PRIVATE-TOKEN': self.token})

        self.mount_http_adapter()

        logging_config = self.config.get('logging', {})
        if logging_config.get('level'):
            self.set_file_logger(logging_config.get('level', 'NOTSET'),
                                 logging_config.get('file', 'gitlabbulk.log'))
            if debug or (logger.level <= 10):
                self.set_file_logger(logging_config.get('level', 'NOTSET'),
                                     logging_config.get('file', 'gitlabbulk.log'),
                                     'urllib3')

    def _get_user_agent_string(self) -> str:
        """Generate a User-Agent string to be sent with every request."""
        uname = platform.uname()
        py_version = '{}.{}.{}'.format(*sys.version_info)
        return (f'gitlabbulk/{__version__} '
                f'({uname[0]} {uname[-1]}) '
                f'Python/{py_version}')

    @property
    def credential_key(self) -> str:
        """Rate limiter bucket key: GitLab URL plus a token fingerprint."""
        token = (self.token or '').encode('utf-8')
        return f'{self.url}|{hashlib.sha256(token).hexdigest()[:12]}'

    def mount_http_adapter(self, max_retries: int | None = None,
                           status_forcelist: list | None = None) -> None:
        """Mount an HTTP adapter for the GitLab base URL.

        Transport retries default to ``0``: the bulk engine owns retries
        so every attempt is paced by the rate limiter.

        :param max_retries: The number of times to retry a failed request.
                            This can also be an `urllib3.Retry` object.

        :param status_forcelist: A list of status codes (as int's) to retry on.
        """
        if max_retries is None:
            max_retries = self.http_adapter_kwargs.get('max_retries', 0)

        status_forcelist = status_forcelist or [500, 502, 503, 504]
        if max_retries and isinstance(max_retries, (int, float)):
            self.http_adapter_kwargs['max_retries'] = Retry(total=max_retries,
                                connect=max_retries,
                                read=max_retries,
                                redirect=False,
                                allowed_methods=Retry.DEFAULT_ALLOWED_METHODS,
                                status_forcelist=status_forcelist,
                                backoff_factor=1,
                                raise_on_status=False)
        elif not max_retries:
            self.http_adapter_kwargs['max_retries'] = Retry(total=0, redirect=False,
                                                            raise_on_status=False)
        else:
            self.http_adapter_kwargs['max_retries'] = max_retries

        adapter = HTTPAdapter(**self.http_adapter_kwargs)
        self.mount(f'{self.url}/', adapter)

    def set_file_logger(
        self,
        log_level: str,
        path: str,
        logger_name: str = 'gitlabbulk'
    ) -> None:
        """Convenience function to quickly configure any level of
        logging to a file.

        :param log_level: A log level as specified in the `logging` module.

        :param path: Path to the log file. The file will be created if it doesn't already
                     exist.

        :param logger_name: The name of the logger.
        """
        _log_level = {
            'CRITICAL': 50,
            'ERROR': 40,
            'WARNING': 30,
            'INFO': 20,
            'DEBUG': 10,
            'NOTSET': 0,
        }

        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

        _log = logging.getLogger(logger_name)
        _log.setLevel(logging.DEBUG)

        fh = logging.FileHandler(path, encoding='utf-8')
        fh.setLevel(_log_level[str(log_level).upper()])

        formatter = logging.Formatter(log_format)
        fh.setFormatter(formatter)

        _log.addHandler(fh)

    def request(self, method, url, *args, **kwargs) -> Response:  # type: ignore[override]
        if not url.startswith(('http://', 'https://')):
            url = f'{self.api_url}/{url.lstrip("/")}'
        kwargs.setdefault('timeout', self.timeout)
        return super().request(method, url, *args, **kwargs)

    def api_request(self, method: str, path: str, **request_kwargs):
        """Call the GitLab API and return the decoded JSON body.

        :returns: The parsed JSON body, or ``None`` for an empty body.
        :raises RemoteError: For transport errors and non-2xx responses,
                             classified by :func:`error_from_response`.
        """
        try:
            r = self.request(method, path, **request_kwargs)
        except requests.exceptions.Timeout as exc:
            raise RemoteError(ErrorKind.NETWORK, f'request timed out: {exc}')
        except requests.exceptions.ConnectionError as exc:
            raise RemoteError(ErrorKind.NETWORK, f'connection error: {exc}')
        except requests.exceptions.RequestException as exc:
            raise RemoteError(ErrorKind.UNKNOWN, str(exc))

        logger.debug('%s %s -> %s', method, r.url, r.status_code)
        if not r.ok:
            raise error_from_response(r)
        if not r.content:
            return None
        try:
            return r.json()
        except ValueError:
            return None


def _error_detail(r: Response) -> str:
    """Pull a human-readable message out of a GitLab error body."""
    try:
        body = r.json()
    except ValueError:
        return r.text.strip()[:200]
    if not isinstance(body, dict):
        return str(body)
    message = body.get('message', body.get('error', ''))
    if isinstance(message, dict):
        parts = []
        for field, errors in message.items():
            if isinstance(errors, list):
                errors = ', '.join(str(e) for e in errors)
            parts.append(f'{field} {errors}')
        return '; '.join(parts)
    if isinstance(message, list):
        return ', '.join(str(m) for m in message)
    return str(message)


def parse_retry_after(value: str | None) -> float | None:
    """Parse a ``Retry-After`` header given in seconds or as an HTTP date."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def error_from_response(r: Response) -> RemoteError:
    """Classify a failed GitLab response.

    ====================  ============
    Status                Kind
    ====================  ============
    400, 422              Validation (Conflict if a name is already taken)
    401, 403              Permission
    404                   NotFound
    409                   Conflict
    429                   RateLimited
    5xx                   Network
    anything else         Unknown
    ====================  ============
    """
    status = r.status_code
    detail = _error_detail(r)
    message = f'{status} {r.reason}' if r.reason else str(status)
    if detail:
        message = f'{message}: {detail}'

    retry_after = None
    if status in (400, 422):
        if 'has already been taken' in detail:
            kind = ErrorKind.CONFLICT
        else:
            kind = ErrorKind.VALIDATION
    elif status in (401, 403):
        kind = ErrorKind.PERMISSION
    elif status == 404:
        kind = ErrorKind.NOT_FOUND
    elif status == 409:
        kind = ErrorKind.CONFLICT
    elif status == 429:
        kind = ErrorKind.RATE_LIMITED
        retry_after = parse_retry_after(r.headers.get('Retry-After'))
    elif 500 <= status < 600:
        kind = ErrorKind.NETWORK
    else:
        kind = ErrorKind.UNKNOWN
    return RemoteError(kind, message, status_code=status, retry_after=retry_after)
