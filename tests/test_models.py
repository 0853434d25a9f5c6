from __future__ import annotations

import pytest

from gitlabbulk.exceptions import InvalidTransition
from gitlabbulk.models import (
    BulkOperation,
    ErrorKind,
    Item,
    ItemError,
    ItemKind,
    ItemStatus,
    OperationStatus,
    OperationType,
)
from tests.conftest import FakeClock


def make_op(count=3, clock=None):
    items = [Item(id=f'group:{n}', name=f'g{n}', kind=ItemKind.GROUP)
             for n in range(1, count + 1)]
    return BulkOperation(OperationType.DELETE, items, clock=clock or FakeClock())


class TestOperationType:

    @pytest.mark.parametrize('raw', ['create_subgroups', 'create-subgroups',
                                     'CREATE_SUBGROUPS', ' Create-Subgroups '])
    def test_parse_spellings(self, raw):
        assert OperationType.parse(raw) is OperationType.CREATE_SUBGROUPS

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            OperationType.parse('explode')


def test_transient_error_kinds():
    transient = {k for k in ErrorKind if k.transient}
    assert transient == {ErrorKind.RATE_LIMITED, ErrorKind.NETWORK}


def test_item_error_reason():
    assert ItemError(ErrorKind.NOT_FOUND, '404 Not Found').reason == 'NotFound: 404 Not Found'
    assert ItemError(ErrorKind.UNKNOWN).reason == 'Unknown'


class TestItemTransitions:

    def test_happy_path(self):
        op = make_op(1)
        item = op.items[0]
        op.start_item(item)
        assert item.status is ItemStatus.IN_PROGRESS
        op.succeed_item(item, {'id': 7})
        assert item.status is ItemStatus.SUCCEEDED
        assert item.result == {'id': 7}

    def test_final_states_are_final(self):
        op = make_op(1)
        item = op.items[0]
        op.start_item(item)
        op.fail_item(item, ItemError(ErrorKind.CONFLICT, 'taken'))
        with pytest.raises(InvalidTransition):
            op.succeed_item(item)
        with pytest.raises(InvalidTransition):
            op.start_item(item)
        assert op.failed == 1
        assert op.succeeded == 0

    def test_pending_cannot_finish_directly(self):
        op = make_op(1)
        with pytest.raises(InvalidTransition):
            op.succeed_item(op.items[0])
        with pytest.raises(InvalidTransition):
            op.cancel_item(op.items[0])

    def test_only_pending_can_be_skipped(self):
        op = make_op(1)
        op.start_item(op.items[0])
        with pytest.raises(InvalidTransition):
            op.skip_item(op.items[0])


class TestRunTransitions:

    @pytest.mark.parametrize('terminal', [OperationStatus.COMPLETED,
                                          OperationStatus.FAILED,
                                          OperationStatus.CANCELLED])
    def test_terminal_states_are_final(self, terminal):
        op = make_op()
        op.transition(OperationStatus.RUNNING)
        op.transition(terminal)
        assert op.is_terminal
        for target in OperationStatus:
            with pytest.raises(InvalidTransition):
                op.transition(target)

    def test_pending_cannot_pause_or_complete(self):
        op = make_op()
        for target in (OperationStatus.PAUSED, OperationStatus.COMPLETED):
            with pytest.raises(InvalidTransition):
                op.transition(target)

    def test_pause_and_resume(self):
        op = make_op()
        op.transition(OperationStatus.RUNNING)
        op.transition(OperationStatus.PAUSED)
        op.transition(OperationStatus.RUNNING)
        assert op.status is OperationStatus.RUNNING

    def test_timestamps(self):
        clock = FakeClock(start=100.0)
        op = make_op(clock=clock)
        assert op.duration is None
        clock.advance(5)
        op.transition(OperationStatus.RUNNING)
        clock.advance(3)
        assert op.duration == 3
        op.transition(OperationStatus.COMPLETED)
        clock.advance(10)
        assert op.created_at == 100.0
        assert op.started_at == 105.0
        assert op.completed_at == 108.0
        assert op.duration == 3


def test_counters_and_percent():
    op = make_op(4)
    op.transition(OperationStatus.RUNNING)
    a, b, c, d = op.items
    op.start_item(a)
    op.succeed_item(a)
    op.start_item(b)
    op.fail_item(b, ItemError(ErrorKind.PERMISSION))
    op.start_item(c)
    op.cancel_item(c)
    assert (op.succeeded, op.failed, op.skipped) == (1, 1, 1)
    assert op.processed == 2
    assert op.finished == 3
    assert op.percent == 75.0
    assert op.pending_items() == [d]


def test_empty_run_is_complete():
    op = make_op(0)
    assert op.percent == 100.0
    assert op.total == 0


def test_snapshot():
    op = make_op(2)
    op.transition(OperationStatus.RUNNING)
    op.start_item(op.items[0])
    op.fail_item(op.items[0], ItemError(ErrorKind.NOT_FOUND, 'gone', 404))
    snap = op.snapshot()
    assert snap['id'] == op.id
    assert snap['status'] == 'running'
    assert snap['operation_type'] == 'delete'
    assert snap['failed'] == 1
    assert snap['percent'] == 50.0
    assert snap['items'][0]['error'] == {
        'kind': 'NotFound', 'message': 'gone', 'status_code': 404,
        'reason': 'NotFound: gone',
    }
    assert snap['items'][1]['status'] == 'pending'
    assert snap['started_at'].endswith('+00:00')
    assert 'items' not in op.snapshot(include_items=False)


def test_operation_ids_are_unique():
    assert make_op().id != make_op().id
    assert BulkOperation('delete', [], operation_id='fixed').id == 'fixed'
