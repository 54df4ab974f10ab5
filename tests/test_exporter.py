from unittest import mock

import pytest
import requests

from kc2tg.exporter import ExportError, KeycloakExporter, collect_client_secrets, describe_auth_failure


def response(status_code, payload=None, text=''):
    return mock.Mock(status_code=status_code, text=text, **{'json.return_value': payload})


def exporter_with(session, **kwargs):
    return KeycloakExporter('https://sso.example.com/', 'admin', 'secret', 'demo', session=session, **kwargs)


class TestLayout:
    def test_modern(self):
        session = mock.Mock()
        session.get.return_value = response(200)
        exporter = exporter_with(session)
        assert exporter.detect_layout() == 'modern'
        assert exporter.admin_base == 'https://sso.example.com/admin/realms/demo'
        session.get.assert_called_once_with('https://sso.example.com/realms/master', timeout=30)

    def test_legacy(self):
        session = mock.Mock()
        session.get.side_effect = [response(404), response(200)]
        exporter = exporter_with(session)
        assert exporter.admin_base == 'https://sso.example.com/auth/admin/realms/demo'

    def test_unreachable_defaults_to_legacy(self):
        session = mock.Mock()
        session.get.side_effect = requests.ConnectionError('refused')
        assert exporter_with(session).detect_layout() == 'legacy'

    def test_insecure_disables_warnings(self):
        with mock.patch('kc2tg.exporter.urllib3.disable_warnings') as disable_warnings:
            exporter = exporter_with(mock.Mock(), verify=False)
        assert exporter.session.verify is False
        disable_warnings.assert_called_once()


class TestToken:
    def test_password_grant(self):
        session = mock.Mock()
        session.post.return_value = response(200, {'access_token': 'tok'})
        exporter = exporter_with(session)
        exporter.layout = 'modern'
        assert exporter.get_token() == 'tok'
        url = session.post.call_args[0][0]
        assert url == 'https://sso.example.com/realms/master/protocol/openid-connect/token'
        assert session.post.call_args[1]['data']['grant_type'] == 'password'

    def test_unauthorized(self):
        session = mock.Mock()
        session.post.return_value = response(401, text='invalid_grant')
        exporter = exporter_with(session)
        exporter.layout = 'modern'
        with pytest.raises(ExportError) as error:
            exporter.get_token()
        assert error.value.status_code == 401
        assert 'Causes possibles' in str(error.value)

    def test_missing_token(self):
        session = mock.Mock()
        session.post.return_value = response(200, {})
        exporter = exporter_with(session)
        exporter.layout = 'modern'
        with pytest.raises(ExportError):
            exporter.get_token()

    def test_network_error(self):
        session = mock.Mock()
        session.post.side_effect = requests.Timeout('slow')
        exporter = exporter_with(session)
        exporter.layout = 'modern'
        with pytest.raises(ExportError):
            exporter.get_token()

    def test_describe_auth_failure(self):
        assert describe_auth_failure(500) == "Erreur d'authentification: 500"


class TestExport:
    def prepared(self, session):
        exporter = exporter_with(session)
        exporter.layout = 'modern'
        exporter.token = 'tok'
        return exporter

    def test_partial_export_falls_back_to_get(self):
        session = mock.Mock()
        session.request.side_effect = [
            response(405),
            response(200, {'realm': 'demo', 'clients': [
                {'id': '1', 'clientId': 'portal'},
                {'id': '2', 'clientId': 'spa', 'publicClient': True},
            ]}),
            response(200, {'value': 's3cr3t'}),
        ]
        document = self.prepared(session).export_realm()

        assert [call[0][0] for call in session.request.call_args_list] == ['POST', 'GET', 'GET']
        assert session.request.call_args_list[2][0][1] == \
            'https://sso.example.com/admin/realms/demo/clients/1/client-secret'
        assert session.request.call_args_list[0][1]['headers']['Authorization'] == 'Bearer tok'
        assert document['clients'][0]['secret'] == 's3cr3t'
        assert 'secret' not in document['clients'][1]
        assert collect_client_secrets(document) == {'portal': 's3cr3t'}

    def test_export_failure(self):
        session = mock.Mock()
        session.request.return_value = response(403, text='forbidden')
        with pytest.raises(ExportError) as error:
            self.prepared(session).export_realm()
        assert error.value.status_code == 403

    def test_unreadable_secret_is_skipped(self):
        session = mock.Mock()
        session.request.side_effect = [
            response(200, {'realm': 'demo', 'clients': [{'id': '1', 'clientId': 'portal'}]}),
            response(403),
        ]
        document = self.prepared(session).export_realm()
        assert 'secret' not in document['clients'][0]

    def test_users(self):
        session = mock.Mock()
        session.request.side_effect = [
            response(200, {'realm': 'demo'}),
            response(200, [{'id': 'u1', 'username': 'alice', 'enabled': True, 'createdTimestamp': 1}]),
            response(200, [{'name': 'admins', 'path': '/staff/admins'}]),
            response(200, [{'name': 'app-admin'}]),
        ]
        document = self.prepared(session).export_realm(include_users=True)
        assert document['users'] == [{'username': 'alice', 'enabled': True, 'groups': ['/staff/admins'],
                                      'realmRoles': ['app-admin']}]
        assert session.request.call_args_list[1][1]['params'] == {'first': 0, 'max': 100}


class TestCollectClientSecrets:
    def test_ignores_incomplete_clients(self):
        document = {'clients': [{'clientId': 'a', 'secret': 'x'}, {'clientId': 'b'}, {'secret': 'y'},
                                {'clientId': 'c', 'secret': '**********'}, 'junk']}
        assert collect_client_secrets(document) == {'a': 'x'}
