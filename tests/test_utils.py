import pytest

import gitlabbulk.utils
from gitlabbulk.utils import flatten_hierarchy, parse_item_id


@pytest.mark.parametrize('item_id, expected', [
    (42, (None, 42)),
    ('42', (None, 42)),
    ('group:42', ('group', 42)),
    ('project-7', ('project', 7)),
    (' project:7 ', ('project', 7)),
    ('group:platform/new-team', ('group', None)),
    ('project:new', ('project', None)),
    ('group-tools', (None, None)),
    ('acme/backend', (None, None)),
    ('user:3', (None, None)),
    (True, (None, None)),
])
def test_parse_item_id(item_id, expected):
    assert parse_item_id(item_id) == expected


def test_deep_update():
    d = {'gitlab': {'url': 'a', 'token': 'b'}, 'bulk': {'rate': '1'}}
    gitlabbulk.utils.deep_update(d, {'gitlab': {'token': 'c'}, 'logging': {'level': 'INFO'}})
    assert d == {
        'gitlab': {'url': 'a', 'token': 'c'},
        'bulk': {'rate': '1'},
        'logging': {'level': 'INFO'},
    }


def test_slugify_path():
    assert gitlabbulk.utils.slugify_path('Platform Team') == 'platform-team'
    assert gitlabbulk.utils.slugify_path('  Ops & SRE!  ') == 'ops-sre'
    assert gitlabbulk.utils.slugify_path('***') == 'group'


def test_path_suffix():
    assert gitlabbulk.utils.path_suffix('_copy') == 'copy'
    assert gitlabbulk.utils.path_suffix('-Backup 2') == '-backup2'


def test_flatten_hierarchy_preorder():
    tree = [
        {'name': 'Backend', 'description': 'APIs', 'subgroups': [
            {'name': 'Payments', 'path': 'pay', 'settings': {'visibility': 'private'}},
            {'name': 'Search'},
        ]},
        {'name': 'Frontend'},
    ]
    items = flatten_hierarchy(tree, 'acme')
    assert [i['id'] for i in items] == [
        'group:acme/backend',
        'group:acme/backend/pay',
        'group:acme/backend/search',
        'group:acme/frontend',
    ]
    assert items[0] == {
        'id': 'group:acme/backend',
        'name': 'Backend',
        'kind': 'group',
        'attrs': {'path': 'backend', 'parent_path': 'acme', 'description': 'APIs'},
    }
    assert items[1]['attrs'] == {'path': 'pay', 'parent_path': 'acme/backend',
                                 'settings': {'visibility': 'private'}}


def test_flatten_hierarchy_without_parent():
    items = flatten_hierarchy([{'name': 'Root'}])
    assert items == [{'id': 'group:root', 'name': 'Root', 'kind': 'group',
                      'attrs': {'path': 'root'}}]


def test_flatten_hierarchy_missing_name():
    with pytest.raises(KeyError):
        flatten_hierarchy([{'path': 'nameless'}], 'acme')
