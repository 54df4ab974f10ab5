"""
Table des fonctionnalités : détection, extraction, génération et câblage

L'ordre de FEATURES est l'ordre des trios dans le résultat.
"""

from typing import Any, Callable, Dict, List, NamedTuple, Tuple

from kc2tg import detection
from kc2tg.document import read, read_list
from kc2tg.models import GeneratedFile
from kc2tg.modules import authentication, brokering, clients, federation, identity, realm_settings


class Feature(NamedTuple):
    key: str
    detector: Callable[[Any], bool]
    select: Callable[[Any], Any]
    emitter: Callable[[Any, str, str], List[GeneratedFile]]
    # (variable du module, fonctionnalité source, sortie du module source)
    inputs: Tuple[Tuple[str, str, str], ...] = ()
    # variables sensibles du realm transmises telles quelles
    secrets: Tuple[str, ...] = ()
    # sorties du module ré-exposées par le realm
    outputs: Tuple[str, ...] = ()


def _whole(document: Any) -> Any:
    return document


FEATURES: List[Feature] = [
    Feature('roles', detection.has_roles, lambda document: read(document, 'roles', dict, {}),
            identity.emit_roles,
            inputs=(('client_ids', 'clients', 'client_ids'),),
            outputs=('roles', 'role_ids')),
    Feature('groups', detection.has_groups, lambda document: read_list(document, 'groups'),
            identity.emit_groups,
            inputs=(('role_ids', 'roles', 'role_ids'),),
            outputs=('groups', 'group_ids')),
    Feature('users', detection.has_users, lambda document: read_list(document, 'users'),
            identity.emit_users,
            inputs=(('group_ids', 'groups', 'group_ids'), ('role_ids', 'roles', 'role_ids')),
            outputs=('users', 'user_ids')),
    Feature('clients', detection.has_clients, lambda document: read_list(document, 'clients'),
            clients.emit_clients,
            secrets=('client_secrets',),
            outputs=('clients', 'client_ids')),
    Feature('client-scopes', detection.has_client_scopes, lambda document: read_list(document, 'clientScopes'),
            clients.emit_client_scopes,
            outputs=('client_scopes', 'client_scope_ids')),
    Feature('protocol-mappers', detection.has_protocol_mappers, _whole,
            clients.emit_protocol_mappers,
            inputs=(('client_ids', 'clients', 'client_ids'), ('client_scope_ids', 'client-scopes', 'client_scope_ids')),
            outputs=('protocol_mapper_ids',)),
    Feature('scope-mappings', detection.has_scope_mappings, _whole,
            clients.emit_scope_mappings,
            inputs=(('role_ids', 'roles', 'role_ids'), ('client_ids', 'clients', 'client_ids'),
                    ('client_scope_ids', 'client-scopes', 'client_scope_ids')),
            outputs=('scope_mapping_ids',)),
    Feature('identity-providers', detection.has_identity_providers,
            lambda document: read_list(document, 'identityProviders'),
            brokering.emit_identity_providers,
            secrets=('identity_provider_secrets',),
            outputs=('identity_providers', 'identity_provider_aliases')),
    Feature('identity-provider-mappers', detection.has_identity_provider_mappers, _whole,
            brokering.emit_identity_provider_mappers,
            inputs=(('identity_provider_aliases', 'identity-providers', 'identity_provider_aliases'),),
            outputs=('identity_provider_mapper_ids',)),
    Feature('authentication-flows', detection.has_authentication_flows, _whole,
            authentication.emit_authentication_flows,
            outputs=('flow_ids',)),
    Feature('user-federation', detection.has_user_federation, _whole,
            federation.emit_user_federation,
            secrets=('ldap_bind_credentials',),
            outputs=('user_federation_ids',)),
    Feature('required-actions', detection.has_required_actions,
            lambda document: read_list(document, 'requiredActions'),
            authentication.emit_required_actions,
            outputs=('required_actions',)),
    Feature('realm-events', detection.has_realm_events, _whole,
            realm_settings.emit_realm_events,
            outputs=('events_enabled', 'admin_events_enabled')),
    Feature('client-policies', detection.has_client_policies, _whole,
            realm_settings.emit_client_policies,
            outputs=('client_profiles', 'client_policies')),
]

# Ordre de création entre modules (depends_on)
DEPENDENCIES: Dict[str, Tuple[str, ...]] = {
    'users': ('roles', 'groups'),
    'protocol-mappers': ('clients', 'client-scopes'),
    'scope-mappings': ('roles', 'clients'),
    'identity-provider-mappers': ('identity-providers',),
}

FEATURES_BY_KEY: Dict[str, Feature] = {feature.key: feature for feature in FEATURES}


def detect(document: Any) -> List[Feature]:
    """Fonctionnalités présentes, dans l'ordre de la table"""
    return [feature for feature in FEATURES if feature.detector(document)]


def dependencies_of(key: str, present: List[str]) -> List[str]:
    """Dépendances d'un module, limitées aux modules effectivement générés"""
    return [dependency for dependency in DEPENDENCIES.get(key, ()) if dependency in present]
