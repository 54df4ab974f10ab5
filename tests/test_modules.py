import re

from kc2tg.modules import authentication, brokering, clients, federation, identity, realm_settings
from kc2tg.modules.base import ResourceNamer, clean_resource_name

PARENT = 'keycloak/realms/demo'


def block_of(content, header):
    """Bloc de premier niveau commençant par header (les blocs sont séparés par une ligne vide)"""
    for chunk in content.split('\n\n'):
        if chunk.startswith(header):
            return chunk
    raise AssertionError(f'{header} absent')


class TestBase:
    def test_clean_resource_name(self):
        assert clean_resource_name('custom browser') == 'custom_browser'
        assert clean_resource_name('staff/admins') == 'staff_admins'
        assert clean_resource_name('2fa') == 'r_2fa'
        assert clean_resource_name('') == 'r_'

    def test_namer_suffixes_collisions(self):
        namer = ResourceNamer()
        assert [namer.name(raw) for raw in ('a-b', 'a_b', 'a.b')] == ['a_b', 'a_b_2', 'a_b_3']

    def test_namer_skips_reserved_names(self):
        namer = ResourceNamer(reserved=['additional'])
        assert namer.name('additional') == 'additional_2'
        assert namer.name('staff') == 'staff'


class TestRoles:
    def test_collect_roles_drops_unnamed_and_duplicates(self):
        roles = identity.collect_roles([{'name': 'admin'}, {'name': ' '}, {'description': 'x'},
                                        {'name': 'admin', 'description': 'second'}])
        assert roles == [{'name': 'admin', 'description': '', 'composite': False, 'attributes': {}}]

    def test_emit_roles(self):
        files = identity.emit_roles({'realm': [{'name': 'app-admin', 'attributes': {'level': ['1']}}],
                                     'client': {'portal': [{'name': 'viewer'}], 'legacy': 'oops'}},
                                    'demo', PARENT)
        assert [generated.file_path for generated in files] == [
            f'{PARENT}/roles/main.tf', f'{PARENT}/roles/variables.tf', f'{PARENT}/roles/outputs.tf']
        main = files[0].content
        assert main.startswith('# Roles for realm: demo\n')
        assert '"app-admin"' in main
        assert 'portal = [' in main
        assert 'legacy' not in main
        assert re.search(r'realm_roles\s+= concat\(local\.exported_realm_roles, var\.realm_roles\)', main)
        assert re.search(r'client_roles\s+= merge\(local\.exported_client_roles, var\.client_roles\)', main)
        assert 'contains(keys(var.client_ids), client_id)' in main
        assert 'output "role_ids"' in files[2].content


class TestGroups:
    def test_flatten_derives_missing_paths(self):
        flat = identity.flatten_groups([{'name': 'a', 'subGroups': [{'name': 'b'}, 'junk']}, {'name': 'c'}])
        assert [(group['path'], group['parent_path']) for group in flat] == [
            ('/a', ''), ('/a/b', '/a'), ('/c', '')]

    def test_flatten_collects_client_roles(self):
        flat = identity.flatten_groups([{'name': 'a', 'realmRoles': ['r'], 'clientRoles': {'portal': ['viewer']}}])
        assert flat[0]['roles'] == ['r', 'portal.viewer']

    def test_flatten_deep_hierarchy(self):
        root = {'name': 'level0'}
        current = root
        for depth in range(1, 2000):
            child = {'name': f'level{depth}'}
            current['subGroups'] = [child]
            current = child
        flat = identity.flatten_groups([root])
        assert len(flat) == 2000
        assert flat[-1]['path'].count('/') == 2000

    def test_flatten_ignores_cycles(self):
        group = {'name': 'loop'}
        group['subGroups'] = [group]
        assert len(identity.flatten_groups([group])) == 1

    def test_emit_groups_keeps_hierarchy(self):
        groups = [{'name': 'staff', 'path': '/staff', 'realmRoles': ['app-user'],
                   'attributes': {'site': ['paris', 'lyon']},
                   'subGroups': [{'name': 'admins', 'path': '/staff/admins'}]}]
        main = identity.emit_groups(groups, 'demo', PARENT)[0].content

        staff = block_of(main, 'resource "keycloak_group" "staff" {')
        assert 'parent_id' not in staff
        assert '"paris##lyon"' in staff

        admins = block_of(main, 'resource "keycloak_group" "staff_admins" {')
        assert 'parent_id = keycloak_group.staff.id' in admins

        roles = block_of(main, 'resource "keycloak_group_roles" "staff" {')
        assert 'group_id = keycloak_group.staff.id' in roles
        assert '"app-user"' in roles
        assert 'var.role_ids[role] if contains(keys(var.role_ids), role)' in roles
        assert 'keycloak_group_roles" "staff_admins"' not in main

        assert '"/staff/admins" = {' in main


class TestUsers:
    def test_normalize_user_defaults(self):
        user = identity.normalize_user({'username': 'bob', 'enabled': False, 'emailVerified': 'yes',
                                        'groups': ['/staff', 3], 'attributes': {'badge': 42}})
        assert user['enabled'] is False
        assert user['email_verified'] is False
        assert user['email'] == ''
        assert user['groups'] == ['/staff']
        assert user['attributes'] == {'badge': ['42']}

    def test_emit_users(self):
        main = identity.emit_users([{'username': 'alice', 'enabled': False}, {'email': 'nobody@example.com'}],
                                   'demo', PARENT)[0].content
        assert re.search(r'username\s+= "alice"', main)
        assert re.search(r'enabled\s+= false', main)
        assert 'nobody@example.com' not in main
        assert re.search(r'users\s+= concat\(local\.exported_users, var\.users\)', main)

    def test_emit_users_with_wrong_shape(self):
        main = identity.emit_users({'alice': {}}, 'demo', PARENT)[0].content
        assert 'exported_users = []' in main


class TestClients:
    def test_access_type(self):
        assert clients.determine_access_type({'bearerOnly': True, 'publicClient': True}) == 'BEARER-ONLY'
        assert clients.determine_access_type({'publicClient': True}) == 'PUBLIC'
        assert clients.determine_access_type({'publicClient': 'true'}) == 'CONFIDENTIAL'

    def test_normalize_client(self):
        client = clients.normalize_client({
            'clientId': 'portal',
            'standardFlowEnabled': False,
            'attributes': {'post.logout.redirect.uris': 'https://a/##https://b/', 'pkce.code.challenge.method': 'S256'},
            'defaultClientScopes': ['profile', 'email'],
        })
        assert client['name'] == 'portal'
        assert client['standard_flow_enabled'] is False
        assert client['valid_post_logout_redirect_uris'] == ['https://a/', 'https://b/']
        assert client['default_scopes'] == ['profile', 'email']
        assert client['protocol'] == 'openid-connect'

    def test_emit_clients_secret_lookup(self):
        main = clients.emit_clients([{'clientId': 'portal'}, {'clientId': ''}], 'demo', PARENT)[0].content
        assert 'lookup(var.client_secrets, each.key, "")' in main
        assert len(re.findall(r'client_id\s+= "portal"', main)) == 1

    def test_normalize_client_scope(self):
        scope = clients.normalize_client_scope({'name': 'api', 'attributes': {
            'include.in.token.scope': 'false', 'gui.order': 'first', 'consent.screen.text': 'API'}})
        assert scope == {'name': 'api', 'description': '', 'protocol': 'openid-connect',
                         'include_in_token_scope': False, 'consent_screen_text': 'API', 'gui_order': 0}

    def test_collect_protocol_mappers(self):
        export = {
            'clients': [{'clientId': 'portal', 'protocol': 'saml', 'protocolMappers': [
                {'name': 'email', 'protocolMapper': 'saml-user-property-mapper', 'config': {'user.attribute': 'email'}},
                {'name': 'incomplete'},
            ]}],
            'clientScopes': [{'name': 'api', 'protocolMappers': [{'name': 'aud', 'protocolMapper': 'oidc-audience-mapper'}]}],
            'protocolMappers': [
                {'name': 'floating', 'protocolMapper': 'oidc-hardcoded-claim-mapper'},
                {'name': 'extra', 'protocolMapper': 'oidc-hardcoded-claim-mapper', 'clientScope': 'api'},
            ],
        }
        mappers = clients.collect_protocol_mappers(export)
        assert [mapper['key'] for mapper in mappers] == ['client/portal/email', 'scope/api/aud', 'scope/api/extra']
        assert mappers[0]['protocol'] == 'saml'
        assert mappers[0]['config'] == {'user.attribute': 'email'}

    def test_collect_scope_mappings(self):
        export = {
            'scopeMappings': [{'client': 'portal', 'roles': ['app-user']},
                              {'clientScope': 'api', 'roles': ['offline_access']},
                              {'roles': ['orphan']}],
            'clientScopeMappings': {'account': [{'client': 'portal', 'roles': ['view-profile']}]},
        }
        mappings = clients.collect_scope_mappings(export)
        assert [mapping['key'] for mapping in mappings] == [
            'portal.app-user', 'scope:api.offline_access', 'portal.account.view-profile']
        assert mappings[2]['role'] == 'account.view-profile'


class TestBrokering:
    def test_normalize_identity_provider(self):
        idp = brokering.normalize_identity_provider({'alias': 'corp', 'providerId': 'saml', 'config': {
            'syncMode': 'FORCE',
            'nameIDPolicyFormat': 'urn:oasis:names:tc:SAML:1.1:nameid-format:emailAddress',
            'singleSignOnServiceUrl': 'https://idp.example.com/sso',
        }})
        assert idp['sync_mode'] == 'FORCE'
        assert idp['name_id_policy_format'] == 'Email'
        assert 'syncMode' not in idp['config']
        assert idp['first_broker_login_flow_alias'] == 'first broker login'

    def test_emit_identity_providers(self):
        files = brokering.emit_identity_providers([{'alias': 'google', 'providerId': 'oidc'}], 'demo', PARENT)
        assert 'var.identity_provider_secrets' in files[0].content
        assert 'sensitive' in files[1].content

    def test_nested_mappers_inherit_alias(self):
        export = {
            'identityProviders': [{'alias': 'google', 'identityProviderMappers': [
                {'name': 'email', 'identityProviderMapper': 'oidc-user-attribute-idp-mapper'}]}],
            'identityProviderMappers': [
                {'name': 'role', 'identityProviderAlias': 'corp', 'identityProviderMapper': 'saml-role-idp-mapper'},
                {'name': 'nowhere', 'identityProviderMapper': 'saml-role-idp-mapper'},
            ],
        }
        mappers = brokering.collect_identity_provider_mappers(export)
        assert [mapper['key'] for mapper in mappers] == ['corp/role', 'google/email']


AUTH_EXPORT = {
    'browserFlow': 'custom browser',
    'directGrantFlow': 'direct grant',
    'authenticationFlows': [
        {'alias': 'browser', 'builtIn': True, 'topLevel': True},
        {'alias': 'custom browser', 'topLevel': True, 'authenticationExecutions': [
            {'authenticator': 'auth-cookie', 'requirement': 'ALTERNATIVE', 'priority': 10},
            {'authenticatorFlow': True, 'flowAlias': 'custom forms', 'requirement': 'ALTERNATIVE'},
            {'authenticator': 'auth-otp-form', 'requirement': 'REQUIRED', 'authenticatorConfig': 'otp-config'},
        ]},
        {'alias': 'custom forms', 'topLevel': False, 'authenticationExecutions': [
            {'authenticator': 'auth-username-password-form', 'requirement': 'REQUIRED'},
        ]},
        {'alias': 'orphan', 'topLevel': False, 'authenticationExecutions': [
            {'authenticator': 'auth-cookie', 'requirement': 'REQUIRED'},
        ]},
    ],
    'authenticatorConfig': [{'alias': 'otp-config', 'config': {'otp.length': '6'}}],
}


class TestAuthentication:
    def render(self):
        return authentication.emit_authentication_flows(AUTH_EXPORT, 'demo', PARENT)[0].content

    def test_builtin_and_orphan_flows_are_skipped(self):
        main = self.render()
        assert 'resource "keycloak_authentication_flow" "browser"' not in main
        assert '"orphan"' not in main

    def test_subflow_references_parent(self):
        subflow = block_of(self.render(), 'resource "keycloak_authentication_subflow" "custom_forms" {')
        assert 'parent_flow_alias = keycloak_authentication_flow.custom_browser.alias' in subflow
        assert re.search(r'requirement\s+= "ALTERNATIVE"', subflow)

    def test_executions_are_chained(self):
        main = self.render()
        cookie = block_of(main, 'resource "keycloak_authentication_execution" "custom_browser_auth_cookie" {')
        assert 'depends_on' not in cookie
        assert re.search(r'priority\s+= 10', cookie)

        otp = block_of(main, 'resource "keycloak_authentication_execution" "custom_browser_auth_otp_form" {')
        assert 'keycloak_authentication_subflow.custom_forms,' in otp
        assert re.search(r'priority\s+= 30', otp)

        form = block_of(main, 'resource "keycloak_authentication_execution" '
                              '"custom_forms_auth_username_password_form" {')
        assert 'keycloak_authentication_subflow.custom_forms.alias' in form

    def test_execution_config(self):
        config = block_of(self.render(),
                          'resource "keycloak_authentication_execution_config" "custom_browser_auth_otp_form" {')
        assert 'keycloak_authentication_execution.custom_browser_auth_otp_form.id' in config
        assert '"otp.length" = "6"' in config

    def test_bindings_only_target_managed_flows(self):
        bindings = block_of(self.render(), 'resource "keycloak_authentication_bindings" "bindings" {')
        assert 'browser_flow = keycloak_authentication_flow.custom_browser.alias' in bindings
        assert 'direct_grant_flow' not in bindings

    def test_flow_ids(self):
        main = self.render()
        assert '"custom browser" = keycloak_authentication_flow.custom_browser.id' in main
        assert 'custom_forms.id' not in main

    def test_required_actions(self):
        main = authentication.emit_required_actions(
            [{'alias': 'CONFIGURE_TOTP', 'enabled': False, 'priority': 10}, {'name': 'no alias'}],
            'demo', PARENT)[0].content
        assert re.search(r'alias\s+= "CONFIGURE_TOTP"', main)
        assert re.search(r'name\s+= "CONFIGURE_TOTP"', main)
        assert re.search(r'enabled\s+= false', main)
        assert 'no alias' not in main


class TestFederation:
    def test_ldap_component(self):
        export = {'components': {'org.keycloak.storage.UserStorageProvider': [{
            'name': 'corp', 'providerId': 'ldap', 'config': {
                'vendor': ['ad'],
                'searchScope': ['2'],
                'userObjectClasses': ['person, organizationalPerson, user'],
                'connectionUrl': ['ldaps://ldap.example.com'],
                'useTruststoreSpi': ['always'],
                'priority': ['first'],
                'importEnabled': ['false'],
            }}]}}
        ldap = federation.collect_providers(export)['ldap'][0]
        assert ldap['vendor'] == 'AD'
        assert ldap['search_scope'] == 'SUBTREE'
        assert ldap['user_object_classes'] == ['person', 'organizationalPerson', 'user']
        assert ldap['use_truststore_spi'] == 'ALWAYS'
        assert ldap['priority'] == 0
        assert ldap['import_enabled'] is False
        assert ldap['enabled'] is True
        assert ldap['edit_mode'] == 'READ_ONLY'

    def test_kerberos_component(self):
        export = {'components': [{'name': 'krb', 'providerId': 'kerberos', 'config': {
            'kerberosRealm': ['EXAMPLE.COM'], 'enabled': ['false'], 'priority': ['5']}}]}
        providers = federation.collect_providers(export)
        assert providers['ldap'] == []
        assert providers['kerberos'] == [{'name': 'krb', 'enabled': False, 'priority': 5,
                                          'config': {'kerberosRealm': 'EXAMPLE.COM'}}]

    def test_kerberos_priority_that_is_not_a_number(self):
        for priority in ('--5', '²', 'high'):
            assert federation.normalize_kerberos('krb', {'priority': [priority]})['priority'] == 0
        assert federation.normalize_kerberos('krb', {'priority': ['-3']})['priority'] == -3

    def test_legacy_providers(self):
        export = {'userFederationProviders': [{'providerName': 'ldap', 'displayName': 'legacy',
                                               'config': {'connectionUrl': 'ldap://old'}}]}
        ldap = federation.collect_providers(export)['ldap']
        assert [(provider['name'], provider['connection_url']) for provider in ldap] == [('legacy', 'ldap://old')]

    def test_bind_credential_is_a_variable(self):
        main = federation.emit_user_federation({'components': [{'name': 'corp', 'providerId': 'ldap'}]},
                                               'demo', PARENT)[0].content
        assert 'lookup(var.ldap_bind_credentials, each.key, "")' in main


class TestRealmSettings:
    def test_events_keep_falsy_values(self):
        main = realm_settings.emit_realm_events({'eventsEnabled': True, 'eventsExpiration': 0,
                                                 'eventsListeners': []}, 'demo', PARENT)[0].content
        assert re.search(r'events_expiration\s+= 0', main)
        assert re.search(r'events_listeners\s+= \[\]', main)
        assert re.search(r'events\s+= merge\(local\.exported_events, var\.events\)', main)

    def test_events_default_listener(self):
        main = realm_settings.emit_realm_events({'adminEventsEnabled': True}, 'demo', PARENT)[0].content
        assert '"jboss-logging"' in main

    def test_client_policies(self):
        export = {
            'clientProfiles': {'profiles': [{'name': 'fapi', 'executors': [
                {'executor': 'secure-client-authenticator', 'configuration': {'auto-configure': True}},
                {'configuration': {}},
            ]}]},
            'clientPolicies': [{'name': 'strict', 'enabled': False, 'profiles': ['fapi'],
                                'conditions': [{'condition': 'client-roles', 'configuration': {'roles': ['x']}}]}],
        }
        profile = realm_settings.normalize_profile(realm_settings._entries(export, 'clientProfiles', 'profiles')[0])
        assert profile['executors'] == [{'name': 'secure-client-authenticator',
                                         'configuration': {'auto-configure': 'true'}}]
        policy = realm_settings.normalize_policy(realm_settings._entries(export, 'clientPolicies', 'policies')[0])
        assert policy['enabled'] is False
        assert policy['conditions'] == [{'name': 'client-roles', 'configuration': {'roles': '["x"]'}}]
