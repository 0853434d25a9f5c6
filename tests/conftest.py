from __future__ import annotations

import threading
import time
from typing import Callable

import pytest

from gitlabbulk.bulk.engine import BulkEngine
from gitlabbulk.bulk.publisher import ProgressPublisher
from gitlabbulk.bulk.registry import OperationRegistry
from gitlabbulk.bulk.worker import BaseWorker, WorkerResult
from gitlabbulk.cli import gitlabbulk as cli_main
from gitlabbulk.models import BulkOperation, ErrorKind, Item, OperationType
from gitlabbulk.params import validate_submission

GITLAB_URL = 'https://gitlab.example.com'
API_URL = f'{GITLAB_URL}/api/v4'

TEST_CONFIG = {
    'gitlab': {'url': GITLAB_URL, 'token': 'test-token', 'timeout': '5'},
    'bulk': {'rate': '0', 'backoff': '0', 'max_backoff': '0'},
}


class FakeClock:
    """Manually advanced clock with a sleep that just moves time."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def ok(item_id: str, **extra) -> WorkerResult:
    return WorkerResult(success=True, identifier=item_id, extra=extra)


def fail(item_id: str, kind: ErrorKind, error: str = '', **kwargs) -> WorkerResult:
    return WorkerResult(success=False, identifier=item_id, error_kind=kind,
                        error=error, **kwargs)


class ScriptedWorker(BaseWorker):
    """Worker whose outcome per item id is scripted by the test.

    ``script`` maps an item id to a list of outcomes consumed one per
    attempt. An outcome is a ``WorkerResult``, an exception instance to
    raise, or a callable taking the item and returning either. Unscripted
    items succeed.

    ``before_call`` runs at the start of every call, which lets tests
    issue control commands at a precise point of the run.
    """

    def __init__(self, script: dict | None = None,
                 before_call: Callable[[Item], None] | None = None):
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.before_call = before_call
        self.calls: list[tuple[OperationType, str]] = []
        self._lock = threading.Lock()

    def apply(self, operation_type, item, params):
        if self.before_call is not None:
            self.before_call(item)
        with self._lock:
            self.calls.append((operation_type, item.id))
            outcomes = self.script.get(item.id)
            outcome = outcomes.pop(0) if outcomes else None
        if callable(outcome) and not isinstance(outcome, WorkerResult):
            outcome = outcome(item)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome or ok(item.id)

    @property
    def called_ids(self) -> list[str]:
        return [item_id for _, item_id in self.calls]


def make_items(count: int, kind: str = 'group', start: int = 1) -> list[dict]:
    return [{'id': f'{kind}:{n}', 'name': f'{kind}-{n}'} for n in range(start, start + count)]


def build_operation(operation_type, raw_items, params=None, **kwargs) -> BulkOperation:
    op_type, items, validated = validate_submission(operation_type, raw_items, params)
    return BulkOperation(op_type, items, validated, **kwargs)


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.005)


def drain(subscription, timeout: float = 2.0) -> list:
    """Collect events until run-completed or until the queue stays empty."""
    events = []
    while True:
        event = subscription.get(timeout=timeout)
        if event is None:
            return events
        events.append(event)
        if event.is_final:
            return events


def gitlabbulk_call(argv, expected_exit_code=0, config_file=None):
    if config_file:
        argv = ['--config-file', config_file] + list(argv)
    try:
        cli_main.main(argv)
    except SystemExit as exc:
        exit_code = exc.code if exc.code else 0
        assert exit_code == expected_exit_code
    else:
        assert expected_exit_code == 0


@pytest.fixture
def tmpdir_ch(tmpdir):
    tmpdir.chdir()
    return tmpdir


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep the user's real config and environment out of every test."""
    monkeypatch.setenv('XDG_CONFIG_HOME', str(tmp_path / 'xdg'))
    monkeypatch.setenv('HOME', str(tmp_path / 'home'))
    for name in ('GITLAB_URL', 'GITLAB_TOKEN', 'GITLABBULK_CONFIG_FILE'):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / 'gitlabbulk.ini'
    lines = []
    for section, values in TEST_CONFIG.items():
        lines.append(f'[{section}]')
        lines.extend(f'{k} = {v}' for k, v in values.items())
    path.write_text('\n'.join(lines) + '\n')
    return str(path)


@pytest.fixture
def publisher():
    return ProgressPublisher(queue_size=1000)


@pytest.fixture
def make_engine(publisher):
    def _make(worker: BaseWorker, **kwargs) -> BulkEngine:
        kwargs.setdefault('publisher', publisher)
        kwargs.setdefault('backoff', 0.0)
        return BulkEngine(worker, **kwargs)
    return _make


@pytest.fixture
def make_registry(make_engine, publisher):
    registries = []

    def _make(worker: BaseWorker, engine_kwargs: dict | None = None, **kwargs):
        engine = make_engine(worker, **(engine_kwargs or {}))
        kwargs.setdefault('publisher', publisher)
        registry = OperationRegistry(engine, **kwargs)
        registries.append(registry)
        return registry

    yield _make
    for registry in registries:
        registry.shutdown(wait=True)
