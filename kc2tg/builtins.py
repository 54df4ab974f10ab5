"""
Objets créés automatiquement par Keycloak

Recréer ces objets avec Terraform provoque des erreurs 409 : strip_builtin()
les retire d'un export avant conversion.
"""

import logging
from typing import Any, Dict, List

from kc2tg.document import read_dict, read_records, read_str

logger = logging.getLogger(__name__)

DEFAULT_CLIENTS = [
    'account', 'account-console', 'admin-cli', 'broker',
    'realm-management', 'security-admin-console',
]

DEFAULT_ROLES = ['create-realm', 'uma_authorization', 'offline_access', 'admin']

DEFAULT_OIDC_SCOPES = [
    'roles', 'acr', 'offline_access', 'email', 'microprofile-jwt', 'address',
    'service_account', 'phone', 'web-origins', 'organization', 'profile', 'basic',
]

DEFAULT_SAML_SCOPES = ['saml_organization', 'role_list']

# Flows principaux puis sous-flows fournis par Keycloak
DEFAULT_FLOWS = [
    'browser', 'clients', 'direct grant', 'docker auth', 'first broker login',
    'registration', 'reset credentials', 'saml ecp',
    'Account verification options', 'Browser - Conditional 2FA', 'Browser - Conditional OTP',
    'Direct Grant - Conditional OTP', 'First broker login - Conditional 2FA',
    'First broker login - Conditional OTP', 'Handle Existing Account', 'Reset - Conditional OTP',
    'User creation or linking', 'Verify Existing Account by Re-authentication',
    'forms', 'registration form',
]

DEFAULT_AUTHENTICATOR_CONFIGS = [
    'browser-conditional-credential', 'create unique user config',
    'first-broker-login-conditional-credential', 'review profile config',
]

DEFAULT_MAPPERS = ['Client ID', 'Client IP Address', 'Client Host']

SERVICE_ACCOUNT_PREFIX = 'service-account-'


def _lowered(names: List[str]) -> set:
    return {name.lower() for name in names}


def is_builtin(name: str, object_type: str, realm: str = '') -> bool:
    """Vérifie si un objet est créé automatiquement par Keycloak"""
    if not name:
        return False
    clean_name = name.lower().strip()

    if object_type == 'client':
        return clean_name in _lowered(DEFAULT_CLIENTS) or clean_name == f'{realm.lower()}-realm'
    if object_type == 'role':
        return clean_name in _lowered(DEFAULT_ROLES) or clean_name == f'default-roles-{realm.lower()}'
    if object_type == 'scope':
        return clean_name in _lowered(DEFAULT_OIDC_SCOPES + DEFAULT_SAML_SCOPES)
    if object_type == 'flow':
        return clean_name in _lowered(DEFAULT_FLOWS)
    if object_type == 'authenticator_config':
        return clean_name in _lowered(DEFAULT_AUTHENTICATOR_CONFIGS)
    if object_type == 'mapper':
        return clean_name in _lowered(DEFAULT_MAPPERS)
    if object_type == 'user':
        return clean_name.startswith(SERVICE_ACCOUNT_PREFIX)
    return False


def _keep(records: List[Dict[str, Any]], field: str, object_type: str, realm: str) -> List[Dict[str, Any]]:
    kept = []
    for record in records:
        name = read_str(record, field)
        if is_builtin(name, object_type, realm):
            logger.debug(f"{object_type} '{name}' ignoré (créé automatiquement par Keycloak)")
            continue
        kept.append(record)
    return kept


def _without_default_mappers(client: Dict[str, Any]) -> Dict[str, Any]:
    mappers = read_records(client, 'protocolMappers')
    if not mappers:
        return client
    copy = dict(client)
    copy['protocolMappers'] = _keep(mappers, 'name', 'mapper', '')
    return copy


def strip_builtin(document: Dict[str, Any], realm: str) -> Dict[str, Any]:
    """Copie superficielle de l'export sans les objets gérés par Keycloak"""
    result = dict(document)

    if 'clients' in document:
        clients = _keep(read_records(document, 'clients'), 'clientId', 'client', realm)
        result['clients'] = [_without_default_mappers(client) for client in clients]

    roles = read_dict(document, 'roles')
    if roles:
        filtered_roles = dict(roles)
        if 'realm' in roles:
            filtered_roles['realm'] = _keep(read_records(roles, 'realm'), 'name', 'role', realm)
        if 'client' in roles:
            filtered_roles['client'] = {
                client_id: client_roles for client_id, client_roles in read_dict(roles, 'client').items()
                if not is_builtin(client_id, 'client', realm)
            }
        result['roles'] = filtered_roles

    if 'clientScopes' in document:
        result['clientScopes'] = _keep(read_records(document, 'clientScopes'), 'name', 'scope', realm)

    if 'authenticationFlows' in document:
        flows = [flow for flow in read_records(document, 'authenticationFlows')
                 if flow.get('builtIn') is not True]
        result['authenticationFlows'] = _keep(flows, 'alias', 'flow', realm)

    if 'authenticatorConfig' in document:
        result['authenticatorConfig'] = _keep(read_records(document, 'authenticatorConfig'), 'alias',
                                              'authenticator_config', realm)

    if 'users' in document:
        result['users'] = _keep(read_records(document, 'users'), 'username', 'user', realm)

    if 'scopeMappings' in document:
        result['scopeMappings'] = [mapping for mapping in read_records(document, 'scopeMappings')
                                   if not is_builtin(read_str(mapping, 'client'), 'client', realm)
                                   and not is_builtin(read_str(mapping, 'clientScope'), 'scope', realm)]

    if 'clientScopeMappings' in document:
        result['clientScopeMappings'] = {
            owner: mappings for owner, mappings in read_dict(document, 'clientScopeMappings').items()
            if not is_builtin(owner, 'client', realm)
        }

    return result
