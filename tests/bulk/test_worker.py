from __future__ import annotations

import pytest

from gitlabbulk.bulk.worker import BaseWorker, WorkerResult
from gitlabbulk.models import ErrorKind, ItemError


class TestWorkerResult:
    """Tests for WorkerResult."""

    def test_success_defaults(self):
        result = WorkerResult(success=True, identifier="group:1")
        assert result.error_kind is None
        assert result.extra == {}
        assert not result.transient

    @pytest.mark.parametrize("kind, transient", [
        (ErrorKind.RATE_LIMITED, True),
        (ErrorKind.NETWORK, True),
        (ErrorKind.PERMISSION, False),
        (ErrorKind.CONFLICT, False),
        (None, False),
    ])
    def test_transient(self, kind, transient):
        result = WorkerResult(success=False, identifier="group:1", error_kind=kind)
        assert result.transient is transient

    def test_to_item_error(self):
        result = WorkerResult(success=False, identifier="project:7",
                              error_kind=ErrorKind.NOT_FOUND, error="404 Not Found",
                              status_code=404)
        assert result.to_item_error() == ItemError(ErrorKind.NOT_FOUND, "404 Not Found", 404)

    def test_to_item_error_unclassified(self):
        error = WorkerResult(success=False, identifier="x").to_item_error()
        assert error.kind is ErrorKind.UNKNOWN
        assert error.message == ""


def test_base_worker_is_abstract():
    with pytest.raises(TypeError):
        BaseWorker()
