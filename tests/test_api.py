import pytest
import responses

import gitlabbulk
from gitlabbulk import get_service, get_session
from gitlabbulk.bulk.events import EventKind
from gitlabbulk.exceptions import GitLabBulkError, InvalidSubmission, OperationNotFound
from gitlabbulk.models import ErrorKind
from gitlabbulk.workers.gitlab import GitLabWorker
from tests.conftest import (
    API_URL,
    GITLAB_URL,
    TEST_CONFIG,
    ScriptedWorker,
    drain,
    fail,
    make_items,
    wait_for,
)


@pytest.fixture
def service_factory():
    services = []

    def _make(**kwargs):
        kwargs.setdefault('config', TEST_CONFIG)
        service = get_service(**kwargs)
        services.append(service)
        return service

    yield _make
    for service in services:
        service.shutdown()


def test_get_session():
    s = get_session({'gitlab': {'url': GITLAB_URL, 'token': 'abc'}})
    assert isinstance(s, gitlabbulk.GitLabSession)
    assert s.api_url == API_URL


def test_get_service_wires_settings(service_factory):
    service = service_factory(config={
        'gitlab': {'url': GITLAB_URL, 'token': 'abc'},
        'bulk': {'max_operations': '3', 'max_attempts': '4', 'rate': '7',
                 'history_size': '9', 'retention': '30', 'queue_size': '50'},
    })
    engine = service.registry.engine
    assert isinstance(engine._worker, GitLabWorker)
    assert engine._max_attempts == 4
    assert engine._rate_limiter.rate == 7.0
    assert service.registry.max_operations == 3
    assert service.registry.history_size == 9
    assert service.registry.retention == 30.0
    assert service.publisher.queue_size == 50
    assert service.credential_key == service.session.credential_key


def test_get_service_reuses_session(service_factory):
    session = get_session(TEST_CONFIG)
    service = service_factory(session=session)
    assert service.session is session


class TestBulkService:

    def test_submit_wait_status(self, service_factory):
        worker = ScriptedWorker({'group:2': [fail('group:2', ErrorKind.NOT_FOUND, '404')]})
        service = service_factory(worker=worker)
        op_id = service.submit('delete', make_items(3))

        summary = service.wait(op_id, timeout=5)
        assert summary.success_count == 2
        assert summary.failed_count == 1

        status = service.status(op_id)
        assert status['status'] == 'completed'
        assert status['credential_key'] == service.credential_key
        assert [i['status'] for i in status['items']] == ['succeeded', 'failed', 'succeeded']
        assert 'items' not in service.status(op_id, include_items=False)
        assert service.summary(op_id).to_dict() == summary.to_dict()

    def test_invalid_submission(self, service_factory):
        service = service_factory(worker=ScriptedWorker())
        with pytest.raises(InvalidSubmission):
            service.submit('set_visibility', make_items(1), {'visibility': 'secret'})
        assert service.list_operations() == []

    def test_unknown_operation_id(self, service_factory):
        service = service_factory(worker=ScriptedWorker())
        for call in (service.status, service.summary, service.pause,
                     service.resume, service.cancel, service.subscribe):
            with pytest.raises(OperationNotFound):
                call('missing')

    def test_subscribe_receives_run_completed(self, service_factory):
        service = service_factory(worker=ScriptedWorker())
        op_id = service.submit('delete', make_items(2))
        sub = service.subscribe(op_id)
        events = drain(sub, timeout=5)
        assert events[-1].kind is EventKind.RUN_COMPLETED
        assert events[-1].summary['success_count'] == 2

    def test_pause_resume_cancel(self, service_factory):
        service = None

        def before_call(item):
            if item.id == 'group:2':
                service.pause(service.registry.active()[0].id)

        worker = ScriptedWorker(before_call=before_call)
        service = service_factory(worker=worker)
        op_id = service.submit('delete', make_items(4))

        wait_for(lambda: service.status(op_id, include_items=False)['status'] == 'paused')
        assert service.pause(op_id) is False
        assert service.resume(op_id) is True
        assert service.resume(op_id) is False
        summary = service.wait(op_id, timeout=5)
        assert summary.success_count == 4
        assert service.cancel(op_id) is False

    def test_list_operations(self, service_factory):
        service = service_factory(worker=ScriptedWorker())
        first = service.submit('delete', make_items(1))
        service.wait(first, timeout=5)
        second = service.submit('archive', make_items(1, kind='project'))
        service.wait(second, timeout=5)
        wait_for(lambda: len(service.registry.history()) == 2)
        listed = service.list_operations()
        assert [o['id'] for o in listed] == [first, second]
        assert all('items' not in o for o in listed)

    @responses.activate
    def test_end_to_end_with_gitlab_worker(self, service_factory):
        responses.add(responses.PUT, f'{API_URL}/projects/7', json={'id': 7})
        responses.add(responses.PUT, f'{API_URL}/projects/8', status=503,
                      json={'message': 'maintenance'})
        service = service_factory()
        op_id = service.submit('set-visibility',
                               [{'id': 'project:7'}, {'id': 'project:8'}],
                               {'visibility': 'internal'})
        summary = service.wait(op_id, timeout=5)

        assert summary.success_count == 1
        assert summary.failed[0]['error'] == 'Network'
        # 503 is transient: two attempts with the default max_attempts.
        assert len([c for c in responses.calls if c.request.url.endswith('/8')]) == 2
        item = service.status(op_id)['items'][1]
        assert item['attempts'] == 2
        assert item['error']['status_code'] == 503


def test_context_manager_shuts_down():
    with get_service(config=TEST_CONFIG, worker=ScriptedWorker()) as service:
        op_id = service.submit('delete', make_items(1))
        service.wait(op_id, timeout=5)
    with pytest.raises(GitLabBulkError):
        service.submit('delete', make_items(1))
