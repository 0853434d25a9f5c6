import json

import pytest
import responses

from gitlabbulk import __version__
from tests.conftest import API_URL, gitlabbulk_call


@pytest.fixture
def itemlist(tmp_path):
    def _write(*lines):
        path = tmp_path / 'items.jsonl'
        path.write_text('\n'.join(lines) + '\n')
        return str(path)
    return _write


def test_gitlabbulk(capsys):
    gitlabbulk_call(['--help'])
    out, err = capsys.readouterr()
    assert 'Bulk operations for GitLab groups and projects.' in out

    gitlabbulk_call(['--version'])
    out, err = capsys.readouterr()
    assert __version__ in out

    gitlabbulk_call(['nocmd'], expected_exit_code=2)
    out, err = capsys.readouterr()
    assert "invalid choice: 'nocmd'" in err


def test_no_command_prints_help(capsys):
    gitlabbulk_call([], expected_exit_code=1)
    out, err = capsys.readouterr()
    assert 'commands:' in err


def test_missing_config_file(tmp_path):
    gitlabbulk_call(['--config-file', str(tmp_path / 'nope.ini'), 'run', 'delete',
                     '-i', '-'], expected_exit_code=2)


class TestRun:

    @responses.activate
    def test_partial_failure_exits_nonzero(self, capsys, config_file, itemlist):
        responses.add(responses.POST, f'{API_URL}/projects/7/archive', status=201, json={})
        responses.add(responses.POST, f'{API_URL}/projects/8/archive', status=403,
                      json={'message': '403 Forbidden'})
        path = itemlist('project:7', '{"id": "project:8", "name": "legacy"}')

        gitlabbulk_call(['run', 'archive', '-i', path, '-q'],
                        expected_exit_code=1, config_file=config_file)

        out, err = capsys.readouterr()
        summary = json.loads(out)
        assert summary['status'] == 'completed'
        assert summary['success_count'] == 1
        assert summary['failed_count'] == 1
        assert summary['failed'][0]['id'] == 'project:8'
        assert summary['failed'][0]['error'] == 'Permission'
        assert responses.calls[0].request.headers['PRIVATE-TOKEN'] == 'test-token'

    @responses.activate
    def test_params_and_plain_output(self, capsys, config_file, itemlist):
        responses.add(responses.PUT, f'{API_URL}/groups/42', json={'id': 42})
        path = itemlist('group:42')

        gitlabbulk_call(['run', 'set-visibility', '-i', path,
                         '--params-json', '{"visibility": "public"}',
                         '-p', 'visibility:private'],
                        config_file=config_file)

        out, err = capsys.readouterr()
        assert json.loads(responses.calls[0].request.body) == {'visibility': 'private'}
        assert json.loads(out)['success_count'] == 1
        assert 'set_visibility' in err
        assert 'completed (1 succeeded, 0 failed, 0 skipped)' in err

    def test_invalid_params(self, capsys, config_file, itemlist):
        path = itemlist('group:42')
        gitlabbulk_call(['run', 'transfer', '-i', path],
                        expected_exit_code=2, config_file=config_file)
        out, err = capsys.readouterr()
        assert 'invalid params for transfer' in err

    def test_unknown_operation(self, capsys, config_file, itemlist):
        gitlabbulk_call(['run', 'explode', '-i', itemlist('group:1')],
                        expected_exit_code=2, config_file=config_file)
        out, err = capsys.readouterr()
        assert "unknown operation 'explode'" in err

    def test_bad_itemlist(self, capsys, config_file, itemlist):
        gitlabbulk_call(['run', 'delete', '-i', itemlist('not an id')],
                        expected_exit_code=2, config_file=config_file)
        out, err = capsys.readouterr()
        assert '--itemlist: line 1' in err

    def test_ui_flags_are_exclusive(self, capsys, config_file, itemlist):
        gitlabbulk_call(['run', 'delete', '-i', itemlist('group:1'), '-q', '-P'],
                        expected_exit_code=2, config_file=config_file)
        out, err = capsys.readouterr()
        assert 'not allowed with argument' in err


class TestHierarchy:

    TREE = [
        {'name': 'Backend', 'subgroups': [{'name': 'Payments'}]},
        {'name': 'Frontend', 'path': 'web'},
    ]

    def test_flattens_tree(self, capsys, tmp_path):
        path = tmp_path / 'tree.json'
        path.write_text(json.dumps(self.TREE))
        gitlabbulk_call(['hierarchy', str(path), '-P', '/acme/'])
        out, err = capsys.readouterr()
        items = [json.loads(line) for line in out.splitlines()]
        assert [i['id'] for i in items] == [
            'group:acme/backend', 'group:acme/backend/payments', 'group:acme/web',
        ]
        assert items[1]['attrs']['parent_path'] == 'acme/backend'

    def test_subgroups_wrapper_and_output_file(self, tmp_path):
        path = tmp_path / 'tree.json'
        path.write_text(json.dumps({'subgroups': self.TREE}))
        output = tmp_path / 'items.jsonl'
        gitlabbulk_call(['hierarchy', str(path), '-P', 'acme', '-o', str(output)])
        assert len(output.read_text().splitlines()) == 3

    def test_invalid_json(self, capsys, tmp_path):
        path = tmp_path / 'tree.json'
        path.write_text('{not json')
        gitlabbulk_call(['hierarchy', str(path), '-P', 'acme'], expected_exit_code=2)
        out, err = capsys.readouterr()
        assert 'invalid JSON' in err

    def test_malformed_node(self, capsys, tmp_path):
        path = tmp_path / 'tree.json'
        path.write_text(json.dumps([{'path': 'nameless'}]))
        gitlabbulk_call(['hierarchy', str(path), '-P', 'acme'], expected_exit_code=2)
        out, err = capsys.readouterr()
        assert 'malformed subgroup node' in err
