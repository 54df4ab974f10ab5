"""
Modules clients, client scopes, protocol mappers et scope mappings
"""

import logging
from typing import Any, Dict, List

from kc2tg.document import (read_bool, read_dict, read_records, read_str, read_string_map,
                            read_strings)
from kc2tg.models import GeneratedFile
from kc2tg.modules.base import REALM_ID_VARIABLE, ModuleTemplate, merged_local, unique_by

logger = logging.getLogger(__name__)

CLIENT_DEFAULTS = {
    'description': '',
    'enabled': True,
    'protocol': 'openid-connect',
    'rootUrl': '',
    'baseUrl': '',
    'adminUrl': '',
    'standardFlowEnabled': True,
    'implicitFlowEnabled': False,
    'directAccessGrantsEnabled': True,
    'serviceAccountsEnabled': False,
    'consentRequired': False,
    'fullScopeAllowed': True,
    'frontchannelLogout': False,
    'clientAuthenticatorType': 'client-secret',
}

CLIENT_SCOPE_DEFAULTS = {
    'description': '',
    'protocol': 'openid-connect',
    'include.in.token.scope': 'true',
    'consent.screen.text': '',
    'gui.order': 0,
}

# Les URIs multiples sont stockées dans les attributs séparées par "##"
POST_LOGOUT_ATTRIBUTE = 'post.logout.redirect.uris'


def determine_access_type(client: Dict[str, Any]) -> str:
    """Type d'accès Terraform à partir des drapeaux Keycloak"""
    if read_bool(client, 'bearerOnly', False):
        return 'BEARER-ONLY'
    if read_bool(client, 'publicClient', False):
        return 'PUBLIC'
    return 'CONFIDENTIAL'


CLIENTS = ModuleTemplate(
    directory='clients',
    title='Clients',
    resources='''resource "keycloak_openid_client" "clients" {
  for_each = { for client in local.clients : client.client_id => client if client.protocol == "openid-connect" }

  realm_id                        = var.realm_id
  client_id                       = each.value.client_id
  name                            = each.value.name
  description                     = each.value.description
  enabled                         = each.value.enabled
  access_type                     = each.value.access_type
  client_secret                   = each.value.access_type == "CONFIDENTIAL" ? lookup(var.client_secrets, each.key, "") : ""
  client_authenticator_type       = each.value.client_authenticator_type
  root_url                        = each.value.root_url
  base_url                        = each.value.base_url
  admin_url                       = each.value.admin_url
  valid_redirect_uris             = each.value.valid_redirect_uris
  valid_post_logout_redirect_uris = each.value.valid_post_logout_redirect_uris
  web_origins                     = each.value.web_origins
  standard_flow_enabled           = each.value.access_type == "BEARER-ONLY" ? false : each.value.standard_flow_enabled
  implicit_flow_enabled           = each.value.access_type == "BEARER-ONLY" ? false : each.value.implicit_flow_enabled
  direct_access_grants_enabled    = each.value.access_type == "BEARER-ONLY" ? false : each.value.direct_access_grants_enabled
  service_accounts_enabled        = each.value.access_type == "CONFIDENTIAL" ? each.value.service_accounts_enabled : false
  consent_required                = each.value.consent_required
  full_scope_allowed              = each.value.full_scope_allowed
  frontchannel_logout_enabled     = each.value.frontchannel_logout_enabled
}

resource "keycloak_saml_client" "saml_clients" {
  for_each = { for client in local.clients : client.client_id => client if client.protocol == "saml" }

  realm_id                  = var.realm_id
  client_id                 = each.value.client_id
  name                      = each.value.name
  description               = each.value.description
  enabled                   = each.value.enabled
  root_url                  = each.value.root_url
  base_url                  = each.value.base_url
  valid_redirect_uris       = each.value.valid_redirect_uris
  full_scope_allowed        = each.value.full_scope_allowed
  frontchannel_logout       = each.value.frontchannel_logout_enabled
  sign_documents            = lookup(each.value.attributes, "saml.server.signature", "true") == "true"
  sign_assertions           = lookup(each.value.attributes, "saml.assertion.signature", "false") == "true"
  client_signature_required = lookup(each.value.attributes, "saml.client.signature", "true") == "true"
  force_post_binding        = lookup(each.value.attributes, "saml.force.post.binding", "true") == "true"
  name_id_format            = lookup(each.value.attributes, "saml_name_id_format", "username")
}

resource "keycloak_openid_client_default_scopes" "default_scopes" {
  for_each = {
    for client in local.clients : client.client_id => client
    if client.protocol == "openid-connect" && length(client.default_scopes) > 0
  }

  realm_id       = var.realm_id
  client_id      = keycloak_openid_client.clients[each.key].id
  default_scopes = each.value.default_scopes
}

resource "keycloak_openid_client_optional_scopes" "optional_scopes" {
  for_each = {
    for client in local.clients : client.client_id => client
    if client.protocol == "openid-connect" && length(client.optional_scopes) > 0
  }

  realm_id        = var.realm_id
  client_id       = keycloak_openid_client.clients[each.key].id
  optional_scopes = each.value.optional_scopes
}
''',
    variables=REALM_ID_VARIABLE + '''
variable "clients" {
  description = "Additional clients, merged with the exported ones"
  type = list(object({
    client_id                       = string
    name                            = optional(string, "")
    description                     = optional(string, "")
    enabled                         = optional(bool, true)
    protocol                        = optional(string, "openid-connect")
    access_type                     = optional(string, "CONFIDENTIAL")
    client_authenticator_type       = optional(string, "client-secret")
    root_url                        = optional(string, "")
    base_url                        = optional(string, "")
    admin_url                       = optional(string, "")
    valid_redirect_uris             = optional(list(string), [])
    valid_post_logout_redirect_uris = optional(list(string), [])
    web_origins                     = optional(list(string), [])
    standard_flow_enabled           = optional(bool, true)
    implicit_flow_enabled           = optional(bool, false)
    direct_access_grants_enabled    = optional(bool, true)
    service_accounts_enabled        = optional(bool, false)
    consent_required                = optional(bool, false)
    full_scope_allowed              = optional(bool, true)
    frontchannel_logout_enabled     = optional(bool, false)
    default_scopes                  = optional(list(string), [])
    optional_scopes                 = optional(list(string), [])
    attributes                      = optional(map(string), {})
  }))
  default = []
}

variable "client_secrets" {
  description = "Client secrets keyed by client ID"
  type        = map(string)
  default     = {}
  sensitive   = true
}
''',
    outputs='''output "clients" {
  description = "Created clients keyed by client ID"
  value = merge(
    {
      for client_id, client in keycloak_openid_client.clients : client_id => {
        id        = client.id
        client_id = client.client_id
        name      = client.name
        protocol  = "openid-connect"
      }
    },
    {
      for client_id, client in keycloak_saml_client.saml_clients : client_id => {
        id        = client.id
        client_id = client.client_id
        name      = client.name
        protocol  = "saml"
      }
    },
  )
}

output "client_ids" {
  description = "Client internal IDs keyed by client ID"
  value = merge(
    { for client_id, client in keycloak_openid_client.clients : client_id => client.id },
    { for client_id, client in keycloak_saml_client.saml_clients : client_id => client.id },
  )
}
''',
)


def normalize_client(client: Dict[str, Any]) -> Dict[str, Any]:
    client_id = read_str(client, 'clientId')
    attributes = read_string_map(client, 'attributes')
    post_logout = [uri for uri in attributes.get(POST_LOGOUT_ATTRIBUTE, '').split('##') if uri]
    return {
        'client_id': client_id,
        'name': read_str(client, 'name', client_id) or client_id,
        'description': read_str(client, 'description', CLIENT_DEFAULTS['description']),
        'enabled': read_bool(client, 'enabled', CLIENT_DEFAULTS['enabled']),
        'protocol': read_str(client, 'protocol', CLIENT_DEFAULTS['protocol']),
        'access_type': determine_access_type(client),
        'client_authenticator_type': read_str(client, 'clientAuthenticatorType',
                                              CLIENT_DEFAULTS['clientAuthenticatorType']),
        'root_url': read_str(client, 'rootUrl', CLIENT_DEFAULTS['rootUrl']),
        'base_url': read_str(client, 'baseUrl', CLIENT_DEFAULTS['baseUrl']),
        'admin_url': read_str(client, 'adminUrl', CLIENT_DEFAULTS['adminUrl']),
        'valid_redirect_uris': read_strings(client, 'redirectUris'),
        'valid_post_logout_redirect_uris': post_logout,
        'web_origins': read_strings(client, 'webOrigins'),
        'standard_flow_enabled': read_bool(client, 'standardFlowEnabled', CLIENT_DEFAULTS['standardFlowEnabled']),
        'implicit_flow_enabled': read_bool(client, 'implicitFlowEnabled', CLIENT_DEFAULTS['implicitFlowEnabled']),
        'direct_access_grants_enabled': read_bool(client, 'directAccessGrantsEnabled',
                                                  CLIENT_DEFAULTS['directAccessGrantsEnabled']),
        'service_accounts_enabled': read_bool(client, 'serviceAccountsEnabled',
                                              CLIENT_DEFAULTS['serviceAccountsEnabled']),
        'consent_required': read_bool(client, 'consentRequired', CLIENT_DEFAULTS['consentRequired']),
        'full_scope_allowed': read_bool(client, 'fullScopeAllowed', CLIENT_DEFAULTS['fullScopeAllowed']),
        'frontchannel_logout_enabled': read_bool(client, 'frontchannelLogout', CLIENT_DEFAULTS['frontchannelLogout']),
        'default_scopes': read_strings(client, 'defaultClientScopes'),
        'optional_scopes': read_strings(client, 'optionalClientScopes'),
        'attributes': attributes,
    }


def emit_clients(clients: Any, realm: str, parent: str) -> List[GeneratedFile]:
    """Génère le module des clients OpenID Connect et SAML"""
    records = [normalize_client(client) for client in clients if isinstance(client, dict)] \
        if isinstance(clients, list) else []
    exported = unique_by((client for client in records if client['client_id'].strip()),
                         lambda client: client['client_id'])
    local_values = [
        ('exported_clients', exported),
        merged_local('clients', 'clients'),
    ]
    return CLIENTS.emit(realm, parent, local_values)


CLIENT_SCOPES = ModuleTemplate(
    directory='client-scopes',
    title='Client scopes',
    resources='''resource "keycloak_openid_client_scope" "openid_scopes" {
  for_each = { for scope in local.client_scopes : scope.name => scope if scope.protocol == "openid-connect" }

  realm_id               = var.realm_id
  name                   = each.value.name
  description            = each.value.description
  include_in_token_scope = each.value.include_in_token_scope
  consent_screen_text    = each.value.consent_screen_text
  gui_order              = each.value.gui_order
}

resource "keycloak_saml_client_scope" "saml_scopes" {
  for_each = { for scope in local.client_scopes : scope.name => scope if scope.protocol == "saml" }

  realm_id            = var.realm_id
  name                = each.value.name
  description         = each.value.description
  consent_screen_text = each.value.consent_screen_text
  gui_order           = each.value.gui_order
}
''',
    variables=REALM_ID_VARIABLE + '''
variable "client_scopes" {
  description = "Additional client scopes, merged with the exported ones"
  type = list(object({
    name                   = string
    description            = optional(string, "")
    protocol               = optional(string, "openid-connect")
    include_in_token_scope = optional(bool, true)
    consent_screen_text    = optional(string, "")
    gui_order              = optional(number, 0)
  }))
  default = []
}
''',
    outputs='''output "client_scopes" {
  description = "Created client scopes keyed by name"
  value = merge(
    { for name, scope in keycloak_openid_client_scope.openid_scopes : name => { id = scope.id, protocol = "openid-connect" } },
    { for name, scope in keycloak_saml_client_scope.saml_scopes : name => { id = scope.id, protocol = "saml" } },
  )
}

output "client_scope_ids" {
  description = "Client scope IDs keyed by name"
  value = merge(
    { for name, scope in keycloak_openid_client_scope.openid_scopes : name => scope.id },
    { for name, scope in keycloak_saml_client_scope.saml_scopes : name => scope.id },
  )
}
''',
)


def normalize_client_scope(scope: Dict[str, Any]) -> Dict[str, Any]:
    attributes = read_string_map(scope, 'attributes')
    try:
        gui_order = int(attributes.get('gui.order', CLIENT_SCOPE_DEFAULTS['gui.order']))
    except ValueError:
        gui_order = CLIENT_SCOPE_DEFAULTS['gui.order']
    return {
        'name': read_str(scope, 'name'),
        'description': read_str(scope, 'description', CLIENT_SCOPE_DEFAULTS['description']),
        'protocol': read_str(scope, 'protocol', CLIENT_SCOPE_DEFAULTS['protocol']),
        'include_in_token_scope': attributes.get('include.in.token.scope',
                                                 CLIENT_SCOPE_DEFAULTS['include.in.token.scope']) == 'true',
        'consent_screen_text': attributes.get('consent.screen.text', CLIENT_SCOPE_DEFAULTS['consent.screen.text']),
        'gui_order': gui_order,
    }


def emit_client_scopes(scopes: Any, realm: str, parent: str) -> List[GeneratedFile]:
    records = [normalize_client_scope(scope) for scope in scopes if isinstance(scope, dict)] \
        if isinstance(scopes, list) else []
    exported = unique_by((scope for scope in records if scope['name'].strip()), lambda scope: scope['name'])
    local_values = [
        ('exported_client_scopes', exported),
        merged_local('client_scopes', 'client_scopes'),
    ]
    return CLIENT_SCOPES.emit(realm, parent, local_values)


PROTOCOL_MAPPERS = ModuleTemplate(
    directory='protocol-mappers',
    title='Protocol mappers',
    resources='''resource "keycloak_generic_protocol_mapper" "client_mappers" {
  for_each = {
    for mapper in local.protocol_mappers : mapper.key => mapper
    if mapper.client_id != "" && contains(keys(var.client_ids), mapper.client_id)
  }

  realm_id        = var.realm_id
  client_id       = var.client_ids[each.value.client_id]
  name            = each.value.name
  protocol        = each.value.protocol
  protocol_mapper = each.value.protocol_mapper
  config          = each.value.config
}

resource "keycloak_generic_protocol_mapper" "client_scope_mappers" {
  for_each = {
    for mapper in local.protocol_mappers : mapper.key => mapper
    if mapper.client_scope != "" && contains(keys(var.client_scope_ids), mapper.client_scope)
  }

  realm_id        = var.realm_id
  client_scope_id = var.client_scope_ids[each.value.client_scope]
  name            = each.value.name
  protocol        = each.value.protocol
  protocol_mapper = each.value.protocol_mapper
  config          = each.value.config
}
''',
    variables=REALM_ID_VARIABLE + '''
variable "protocol_mappers" {
  description = "Additional protocol mappers, attached to a client or a client scope"
  type = list(object({
    key             = string
    name            = string
    protocol        = optional(string, "openid-connect")
    protocol_mapper = string
    config          = optional(map(string), {})
    client_id       = optional(string, "")
    client_scope    = optional(string, "")
  }))
  default = []
}

variable "client_ids" {
  description = "Client internal IDs keyed by client ID (clients module output)"
  type        = map(string)
  default     = {}
}

variable "client_scope_ids" {
  description = "Client scope IDs keyed by name (client-scopes module output)"
  type        = map(string)
  default     = {}
}
''',
    outputs='''output "protocol_mapper_ids" {
  description = "Protocol mapper IDs keyed by owner and mapper name"
  value = merge(
    { for key, mapper in keycloak_generic_protocol_mapper.client_mappers : key => mapper.id },
    { for key, mapper in keycloak_generic_protocol_mapper.client_scope_mappers : key => mapper.id },
  )
}
''',
)


def normalize_mapper(mapper: Dict[str, Any], client_id: str, client_scope: str, protocol: str) -> Dict[str, Any]:
    name = read_str(mapper, 'name')
    owner = f'client/{client_id}' if client_id else f'scope/{client_scope}'
    return {
        'key': f'{owner}/{name}',
        'name': name,
        'protocol': read_str(mapper, 'protocol', protocol) or protocol,
        'protocol_mapper': read_str(mapper, 'protocolMapper'),
        'config': read_string_map(mapper, 'config'),
        'client_id': client_id,
        'client_scope': client_scope,
    }


def collect_protocol_mappers(document: Any) -> List[Dict[str, Any]]:
    """Rassemble les mappers des clients, des client scopes et du niveau realm"""
    mappers = []
    for client in read_records(document, 'clients'):
        client_id = read_str(client, 'clientId')
        protocol = read_str(client, 'protocol', CLIENT_DEFAULTS['protocol'])
        if client_id:
            mappers.extend(normalize_mapper(mapper, client_id, '', protocol)
                           for mapper in read_records(client, 'protocolMappers'))
    for scope in read_records(document, 'clientScopes'):
        name = read_str(scope, 'name')
        protocol = read_str(scope, 'protocol', CLIENT_SCOPE_DEFAULTS['protocol'])
        if name:
            mappers.extend(normalize_mapper(mapper, '', name, protocol)
                           for mapper in read_records(scope, 'protocolMappers'))
    for mapper in read_records(document, 'protocolMappers'):
        client_id = read_str(mapper, 'client')
        client_scope = read_str(mapper, 'clientScope')
        if not client_id and not client_scope:
            logger.debug(f"Protocol mapper '{read_str(mapper, 'name')}' sans client ni scope, ignoré")
            continue
        mappers.append(normalize_mapper(mapper, client_id, '' if client_id else client_scope,
                                        CLIENT_DEFAULTS['protocol']))

    valid = [mapper for mapper in mappers if mapper['name'].strip() and mapper['protocol_mapper']]
    return unique_by(valid, lambda mapper: mapper['key'])


def emit_protocol_mappers(document: Any, realm: str, parent: str) -> List[GeneratedFile]:
    local_values = [
        ('exported_protocol_mappers', collect_protocol_mappers(document)),
        merged_local('protocol_mappers', 'protocol_mappers'),
    ]
    return PROTOCOL_MAPPERS.emit(realm, parent, local_values)


SCOPE_MAPPINGS = ModuleTemplate(
    directory='scope-mappings',
    title='Scope mappings',
    resources='''resource "keycloak_generic_role_mapper" "client_scope_mappings" {
  for_each = {
    for mapping in local.scope_mappings : mapping.key => mapping
    if mapping.client_id != "" && contains(keys(var.client_ids), mapping.client_id) && contains(keys(var.role_ids), mapping.role)
  }

  realm_id  = var.realm_id
  client_id = var.client_ids[each.value.client_id]
  role_id   = var.role_ids[each.value.role]
}

resource "keycloak_generic_role_mapper" "client_scope_role_mappings" {
  for_each = {
    for mapping in local.scope_mappings : mapping.key => mapping
    if mapping.client_scope != "" && contains(keys(var.client_scope_ids), mapping.client_scope) && contains(keys(var.role_ids), mapping.role)
  }

  realm_id        = var.realm_id
  client_scope_id = var.client_scope_ids[each.value.client_scope]
  role_id         = var.role_ids[each.value.role]
}
''',
    variables=REALM_ID_VARIABLE + '''
variable "scope_mappings" {
  description = "Additional scope mappings (role granted to a client or a client scope)"
  type = list(object({
    key          = string
    role         = string
    client_id    = optional(string, "")
    client_scope = optional(string, "")
  }))
  default = []
}

variable "role_ids" {
  description = "Role IDs keyed by role name or client_id.role_name (roles module output)"
  type        = map(string)
  default     = {}
}

variable "client_ids" {
  description = "Client internal IDs keyed by client ID (clients module output)"
  type        = map(string)
  default     = {}
}

variable "client_scope_ids" {
  description = "Client scope IDs keyed by name (client-scopes module output)"
  type        = map(string)
  default     = {}
}
''',
    outputs='''output "scope_mapping_ids" {
  description = "Scope mapping IDs keyed by target and role"
  value = merge(
    { for key, mapping in keycloak_generic_role_mapper.client_scope_mappings : key => mapping.id },
    { for key, mapping in keycloak_generic_role_mapper.client_scope_role_mappings : key => mapping.id },
  )
}
''',
)


def _mapping(client_id: str, client_scope: str, role: str) -> Dict[str, str]:
    target = client_id or f'scope:{client_scope}'
    return {'key': f'{target}.{role}', 'role': role, 'client_id': client_id, 'client_scope': client_scope}


def collect_scope_mappings(document: Any) -> List[Dict[str, str]]:
    """Paires (cible, rôle) des scopeMappings (rôles de realm) et clientScopeMappings (rôles de clients)"""
    mappings = []
    for entry in read_records(document, 'scopeMappings'):
        client_id = read_str(entry, 'client')
        client_scope = '' if client_id else read_str(entry, 'clientScope')
        if not client_id and not client_scope:
            continue
        mappings.extend(_mapping(client_id, client_scope, role) for role in read_strings(entry, 'roles'))

    for owner, entries in read_dict(document, 'clientScopeMappings').items():
        if not isinstance(entries, list):
            continue
        for entry in entries:
            client_id = read_str(entry, 'client')
            client_scope = '' if client_id else read_str(entry, 'clientScope')
            if not client_id and not client_scope:
                continue
            mappings.extend(_mapping(client_id, client_scope, f'{owner}.{role}')
                            for role in read_strings(entry, 'roles'))
    return unique_by(mappings, lambda mapping: mapping['key'])


def emit_scope_mappings(document: Any, realm: str, parent: str) -> List[GeneratedFile]:
    local_values = [
        ('exported_scope_mappings', collect_scope_mappings(document)),
        merged_local('scope_mappings', 'scope_mappings'),
    ]
    return SCOPE_MAPPINGS.emit(realm, parent, local_values)

