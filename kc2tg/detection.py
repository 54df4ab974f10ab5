"""
Détection des fonctionnalités présentes dans un export de realm

Un prédicat par module: il ne lève jamais d'exception et considère toute
valeur de forme inattendue comme absente.
"""

from typing import Any, Dict, Iterator

from kc2tg.document import non_empty_dict, non_empty_list, read, read_bool, read_dict, read_records

FEDERATION_PROVIDERS = ('ldap', 'kerberos')


def has_roles(document: Any) -> bool:
    return non_empty_list(document, ('roles', 'realm')) or non_empty_dict(document, ('roles', 'client'))


def has_groups(document: Any) -> bool:
    return non_empty_list(document, 'groups')


def has_users(document: Any) -> bool:
    return non_empty_list(document, 'users')


def has_clients(document: Any) -> bool:
    return non_empty_list(document, 'clients')


def has_client_scopes(document: Any) -> bool:
    return non_empty_list(document, 'clientScopes')


def has_protocol_mappers(document: Any) -> bool:
    # Les mappers peuvent être portés par le realm, les clients ou les scopes
    if non_empty_list(document, 'protocolMappers'):
        return True
    if any(non_empty_list(client, 'protocolMappers') for client in read_records(document, 'clients')):
        return True
    return any(non_empty_list(scope, 'protocolMappers') for scope in read_records(document, 'clientScopes'))


def has_scope_mappings(document: Any) -> bool:
    return non_empty_list(document, 'scopeMappings')


def has_identity_providers(document: Any) -> bool:
    return non_empty_list(document, 'identityProviders')


def has_identity_provider_mappers(document: Any) -> bool:
    if non_empty_list(document, 'identityProviderMappers'):
        return True
    return any(non_empty_list(idp, 'identityProviderMappers')
               for idp in read_records(document, 'identityProviders'))


def has_authentication_flows(document: Any) -> bool:
    return non_empty_list(document, 'authenticationFlows')


def iter_components(document: Any) -> Iterator[Dict[str, Any]]:
    """Composants de l'export: liste simple ou map type de fournisseur → liste"""
    components = read(document, 'components', (list, dict), [])
    if isinstance(components, list):
        groups = [components]
    else:
        groups = [value for value in components.values() if isinstance(value, list)]
    for group in groups:
        for component in group:
            if isinstance(component, dict):
                yield component


def is_federation_component(component: Dict[str, Any]) -> bool:
    provider_id = read(component, 'providerId', str, '')
    if provider_id in FEDERATION_PROVIDERS:
        return True
    return read(component, 'subType', str, '') == 'ldap'


def has_user_federation(document: Any) -> bool:
    if any(is_federation_component(component) for component in iter_components(document)):
        return True
    return any(read(provider, 'providerName', str, '') in FEDERATION_PROVIDERS
               for provider in read_records(document, 'userFederationProviders'))


def has_required_actions(document: Any) -> bool:
    return non_empty_list(document, 'requiredActions')


def has_realm_events(document: Any) -> bool:
    return read_bool(document, 'eventsEnabled', False) or read_bool(document, 'adminEventsEnabled', False)


def has_client_policies(document: Any) -> bool:
    for key, nested in (('clientPolicies', 'policies'), ('clientProfiles', 'profiles')):
        if non_empty_list(document, key) or non_empty_list(read_dict(document, key), nested):
            return True
    return False
