import copy

import pytest

IDENTITY_EXPORT = {
    'realm': 'demo',
    'enabled': True,
    'roles': {
        'realm': [
            {'name': 'app-admin', 'description': 'Administrateurs'},
            {'name': 'app-user'},
        ],
        'client': {
            'portal': [{'name': 'viewer'}],
        },
    },
    'groups': [
        {
            'name': 'staff',
            'path': '/staff',
            'realmRoles': ['app-user'],
            'subGroups': [
                {'name': 'admins', 'path': '/staff/admins', 'realmRoles': ['app-admin']},
            ],
        },
    ],
    'users': [
        {
            'username': 'alice',
            'email': 'alice@example.com',
            'enabled': True,
            'groups': ['/staff/admins'],
            'realmRoles': ['app-admin'],
            'clientRoles': {'portal': ['viewer']},
        },
        {'username': 'bob', 'enabled': False},
    ],
    'clients': [
        {
            'clientId': 'portal',
            'name': 'Portail',
            'publicClient': False,
            'redirectUris': ['https://portal.example.com/*'],
            'attributes': {'post.logout.redirect.uris': 'https://portal.example.com/##https://example.com/'},
        },
    ],
}


@pytest.fixture
def minimal_export():
    return {'realm': 'demo'}


@pytest.fixture
def identity_export():
    return copy.deepcopy(IDENTITY_EXPORT)


def paths(files):
    return [generated.file_path for generated in files]


def content_of(files, path):
    for generated in files:
        if generated.file_path == path:
            return generated.content
    raise AssertionError(f'{path} absent de {paths(files)}')
