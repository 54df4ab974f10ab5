import pytest

from kc2tg import detection, features


class TestDetection:
    @pytest.mark.parametrize('predicate, export', [
        (detection.has_roles, {'roles': {'realm': [{'name': 'r'}]}}),
        (detection.has_roles, {'roles': {'client': {'app': []}}}),
        (detection.has_groups, {'groups': [{'name': 'g'}]}),
        (detection.has_users, {'users': [{'username': 'u'}]}),
        (detection.has_clients, {'clients': [{'clientId': 'app'}]}),
        (detection.has_client_scopes, {'clientScopes': [{'name': 's'}]}),
        (detection.has_protocol_mappers, {'clients': [{'clientId': 'app', 'protocolMappers': [{'name': 'm'}]}]}),
        (detection.has_protocol_mappers, {'clientScopes': [{'name': 's', 'protocolMappers': [{'name': 'm'}]}]}),
        (detection.has_scope_mappings, {'scopeMappings': [{'client': 'app'}]}),
        (detection.has_identity_providers, {'identityProviders': [{'alias': 'google'}]}),
        (detection.has_identity_provider_mappers,
         {'identityProviders': [{'alias': 'google', 'identityProviderMappers': [{'name': 'm'}]}]}),
        (detection.has_authentication_flows, {'authenticationFlows': [{'alias': 'custom'}]}),
        (detection.has_user_federation,
         {'components': {'org.keycloak.storage.UserStorageProvider': [{'name': 'corp', 'providerId': 'ldap'}]}}),
        (detection.has_user_federation, {'components': [{'name': 'krb', 'providerId': 'kerberos'}]}),
        (detection.has_user_federation, {'userFederationProviders': [{'providerName': 'ldap'}]}),
        (detection.has_required_actions, {'requiredActions': [{'alias': 'CONFIGURE_TOTP'}]}),
        (detection.has_realm_events, {'adminEventsEnabled': True}),
        (detection.has_client_policies, {'clientPolicies': {'policies': [{'name': 'p'}]}}),
        (detection.has_client_policies, {'clientProfiles': [{'name': 'p'}]}),
    ])
    def test_present(self, predicate, export):
        assert predicate(export) is True

    @pytest.mark.parametrize('predicate, export', [
        (detection.has_roles, {'roles': {'realm': [], 'client': {}}}),
        (detection.has_roles, {'roles': []}),
        (detection.has_groups, {'groups': []}),
        (detection.has_users, {'users': {'alice': {}}}),
        (detection.has_clients, {'clients': None}),
        (detection.has_protocol_mappers, {'clients': [{'clientId': 'app'}]}),
        (detection.has_user_federation, {'components': {'org.keycloak.keys.KeyProvider': [{'providerId': 'rsa'}]}}),
        (detection.has_realm_events, {'eventsEnabled': 'true'}),
        (detection.has_realm_events, {'eventsEnabled': False, 'adminEventsEnabled': False}),
        (detection.has_client_policies, {'clientPolicies': {'policies': []}}),
        (detection.has_client_policies, {'clientProfiles': {'profiles': []}}),
        (detection.has_client_scopes, {'clientScopes': []}),
        (detection.has_protocol_mappers, {'protocolMappers': []}),
        (detection.has_scope_mappings, {'scopeMappings': []}),
        (detection.has_identity_providers, {'identityProviders': []}),
        (detection.has_identity_provider_mappers, {'identityProviderMappers': []}),
        (detection.has_identity_provider_mappers, {'identityProviders': [{'alias': 'google'}]}),
        (detection.has_authentication_flows, {'authenticationFlows': []}),
        (detection.has_user_federation, {'userFederationProviders': []}),
        (detection.has_required_actions, {'requiredActions': []}),
    ])
    def test_absent(self, predicate, export):
        assert predicate(export) is False

    @pytest.mark.parametrize('export', [None, [], 'realm', 42, {}])
    def test_predicates_never_raise(self, export):
        for feature in features.FEATURES:
            assert feature.detector(export) is False


class TestFeatureTable:
    def test_order(self):
        assert [feature.key for feature in features.FEATURES] == [
            'roles', 'groups', 'users', 'clients', 'client-scopes', 'protocol-mappers', 'scope-mappings',
            'identity-providers', 'identity-provider-mappers', 'authentication-flows', 'user-federation',
            'required-actions', 'realm-events', 'client-policies',
        ]

    def test_dependencies_are_limited_to_present_modules(self):
        assert features.dependencies_of('users', ['roles', 'groups', 'users']) == ['roles', 'groups']
        assert features.dependencies_of('users', ['groups', 'users']) == ['groups']
        assert features.dependencies_of('users', ['users']) == []
        assert features.dependencies_of('clients', ['roles', 'clients']) == []

    def test_detect_keeps_table_order(self):
        export = {'users': [{'username': 'u'}], 'roles': {'realm': [{'name': 'r'}]}}
        assert [feature.key for feature in features.detect(export)] == ['roles', 'users']
