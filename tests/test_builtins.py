import pytest

from kc2tg.builtins import is_builtin, strip_builtin


class TestIsBuiltin:
    @pytest.mark.parametrize('name, object_type', [
        ('account', 'client'),
        ('Realm-Management', 'client'),
        ('demo-realm', 'client'),
        ('offline_access', 'role'),
        ('default-roles-demo', 'role'),
        ('profile', 'scope'),
        ('role_list', 'scope'),
        ('browser', 'flow'),
        ('Browser - Conditional OTP', 'flow'),
        ('review profile config', 'authenticator_config'),
        ('Client ID', 'mapper'),
        ('service-account-portal', 'user'),
    ])
    def test_builtin(self, name, object_type):
        assert is_builtin(name, object_type, 'demo')

    @pytest.mark.parametrize('name, object_type', [
        ('portal', 'client'),
        ('other-realm', 'client'),
        ('default-roles-other', 'role'),
        ('api', 'scope'),
        ('custom browser', 'flow'),
        ('alice', 'user'),
        ('', 'client'),
        ('account', 'unknown'),
    ])
    def test_custom(self, name, object_type):
        assert not is_builtin(name, object_type, 'demo')


class TestStripBuiltin:
    def test_strip(self):
        export = {
            'realm': 'demo',
            'clients': [
                {'clientId': 'account'},
                {'clientId': 'portal', 'protocolMappers': [{'name': 'Client ID'}, {'name': 'email'}]},
            ],
            'roles': {
                'realm': [{'name': 'default-roles-demo'}, {'name': 'app-user'}],
                'client': {'broker': [{'name': 'read-token'}], 'portal': [{'name': 'viewer'}]},
            },
            'clientScopes': [{'name': 'profile'}, {'name': 'api'}],
            'authenticationFlows': [{'alias': 'mine', 'builtIn': True}, {'alias': 'browser'},
                                    {'alias': 'custom browser'}],
            'authenticatorConfig': [{'alias': 'review profile config'}, {'alias': 'otp-config'}],
            'users': [{'username': 'service-account-portal'}, {'username': 'alice'}],
            'scopeMappings': [{'client': 'admin-cli', 'roles': ['x']}, {'client': 'portal', 'roles': ['y']}],
            'clientScopeMappings': {'account': [{'client': 'portal'}], 'portal': [{'client': 'other'}]},
        }
        stripped = strip_builtin(export, 'demo')

        assert stripped['clients'] == [{'clientId': 'portal', 'protocolMappers': [{'name': 'email'}]}]
        assert stripped['roles']['realm'] == [{'name': 'app-user'}]
        assert list(stripped['roles']['client']) == ['portal']
        assert stripped['clientScopes'] == [{'name': 'api'}]
        assert stripped['authenticationFlows'] == [{'alias': 'custom browser'}]
        assert stripped['authenticatorConfig'] == [{'alias': 'otp-config'}]
        assert stripped['users'] == [{'username': 'alice'}]
        assert stripped['scopeMappings'] == [{'client': 'portal', 'roles': ['y']}]
        assert list(stripped['clientScopeMappings']) == ['portal']

        assert len(export['clients']) == 2
        assert export['clients'][1]['protocolMappers'] == [{'name': 'Client ID'}, {'name': 'email'}]

    def test_absent_sections_are_not_added(self):
        assert strip_builtin({'realm': 'demo'}, 'demo') == {'realm': 'demo'}
