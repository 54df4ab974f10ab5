"""
Modules fournisseurs d'identité et mappers de fournisseurs d'identité
"""

import logging
from typing import Any, Dict, List

from kc2tg.document import read_bool, read_records, read_str, read_string_map
from kc2tg.models import GeneratedFile
from kc2tg.modules.base import REALM_ID_VARIABLE, ModuleTemplate, merged_local, unique_by

logger = logging.getLogger(__name__)

IDENTITY_PROVIDER_DEFAULTS = {
    'displayName': '',
    'providerId': 'oidc',
    'enabled': True,
    'trustEmail': False,
    'storeToken': False,
    'linkOnly': False,
    'firstBrokerLoginFlowAlias': 'first broker login',
    'postBrokerLoginFlowAlias': '',
    'syncMode': 'IMPORT',
}

OIDC_PROVIDERS = ('oidc', 'keycloak-oidc')

# Formats NameID SAML: URN Keycloak → valeur attendue par le provider Terraform
NAME_ID_FORMATS = {
    'urn:oasis:names:tc:SAML:2.0:nameid-format:persistent': 'Persistent',
    'urn:oasis:names:tc:SAML:2.0:nameid-format:transient': 'Transient',
    'urn:oasis:names:tc:SAML:1.1:nameid-format:emailAddress': 'Email',
    'urn:oasis:names:tc:SAML:2.0:nameid-format:kerberos': 'Kerberos',
    'urn:oasis:names:tc:SAML:1.1:nameid-format:X509SubjectName': 'X.509 Subject Name',
    'urn:oasis:names:tc:SAML:1.1:nameid-format:WindowsDomainQualifiedName': 'Windows Domain Qualified Name',
    'urn:oasis:names:tc:SAML:1.1:nameid-format:unspecified': 'Unspecified',
}

IDENTITY_PROVIDERS = ModuleTemplate(
    directory='identity-providers',
    title='Identity providers',
    resources='''resource "keycloak_oidc_identity_provider" "oidc" {
  for_each = { for idp in local.identity_providers : idp.alias => idp if contains(["oidc", "keycloak-oidc"], idp.provider_id) }

  realm                         = var.realm_id
  alias                         = each.value.alias
  display_name                  = each.value.display_name
  provider_id                   = each.value.provider_id
  enabled                       = each.value.enabled
  trust_email                   = each.value.trust_email
  store_token                   = each.value.store_token
  link_only                     = each.value.link_only
  first_broker_login_flow_alias = each.value.first_broker_login_flow_alias
  post_broker_login_flow_alias  = each.value.post_broker_login_flow_alias
  sync_mode                     = each.value.sync_mode
  authorization_url             = lookup(each.value.config, "authorizationUrl", "")
  token_url                     = lookup(each.value.config, "tokenUrl", "")
  user_info_url                 = lookup(each.value.config, "userInfoUrl", "")
  jwks_url                      = lookup(each.value.config, "jwksUrl", "")
  logout_url                    = lookup(each.value.config, "logoutUrl", "")
  issuer                        = lookup(each.value.config, "issuer", "")
  client_id                     = lookup(each.value.config, "clientId", "")
  client_secret                 = lookup(var.identity_provider_secrets, each.key, "")
  default_scopes                = lookup(each.value.config, "defaultScope", "openid")
  validate_signature            = lookup(each.value.config, "validateSignature", "false") == "true"
}

resource "keycloak_saml_identity_provider" "saml" {
  for_each = { for idp in local.identity_providers : idp.alias => idp if idp.provider_id == "saml" }

  realm                         = var.realm_id
  alias                         = each.value.alias
  display_name                  = each.value.display_name
  enabled                       = each.value.enabled
  trust_email                   = each.value.trust_email
  store_token                   = each.value.store_token
  link_only                     = each.value.link_only
  first_broker_login_flow_alias = each.value.first_broker_login_flow_alias
  post_broker_login_flow_alias  = each.value.post_broker_login_flow_alias
  sync_mode                     = each.value.sync_mode
  entity_id                     = lookup(each.value.config, "entityId", "")
  single_sign_on_service_url    = lookup(each.value.config, "singleSignOnServiceUrl", "")
  single_logout_service_url     = lookup(each.value.config, "singleLogoutServiceUrl", "")
  name_id_policy_format         = each.value.name_id_policy_format
  validate_signature            = lookup(each.value.config, "validateSignature", "false") == "true"
  want_assertions_signed        = lookup(each.value.config, "wantAssertionsSigned", "false") == "true"
  want_assertions_encrypted     = lookup(each.value.config, "wantAssertionsEncrypted", "false") == "true"
  post_binding_authn_request    = lookup(each.value.config, "postBindingAuthnRequest", "false") == "true"
  post_binding_response         = lookup(each.value.config, "postBindingResponse", "false") == "true"
}
''',
    variables=REALM_ID_VARIABLE + '''
variable "identity_providers" {
  description = "Additional identity providers, merged with the exported ones"
  type = list(object({
    alias                         = string
    display_name                  = optional(string, "")
    provider_id                   = optional(string, "oidc")
    enabled                       = optional(bool, true)
    trust_email                   = optional(bool, false)
    store_token                   = optional(bool, false)
    link_only                     = optional(bool, false)
    first_broker_login_flow_alias = optional(string, "first broker login")
    post_broker_login_flow_alias  = optional(string, "")
    sync_mode                     = optional(string, "IMPORT")
    name_id_policy_format         = optional(string, "Persistent")
    config                        = optional(map(string), {})
  }))
  default = []
}

variable "identity_provider_secrets" {
  description = "OIDC client secrets keyed by identity provider alias"
  type        = map(string)
  default     = {}
  sensitive   = true
}
''',
    outputs='''output "identity_providers" {
  description = "Created identity providers keyed by alias"
  value = merge(
    { for alias, idp in keycloak_oidc_identity_provider.oidc : alias => { alias = idp.alias, provider_id = idp.provider_id } },
    { for alias, idp in keycloak_saml_identity_provider.saml : alias => { alias = idp.alias, provider_id = "saml" } },
  )
}

output "identity_provider_aliases" {
  description = "Identity provider aliases, usable as a dependency by the mappers module"
  value = merge(
    { for alias, idp in keycloak_oidc_identity_provider.oidc : alias => idp.alias },
    { for alias, idp in keycloak_saml_identity_provider.saml : alias => idp.alias },
  )
}
''',
)


def normalize_identity_provider(idp: Dict[str, Any]) -> Dict[str, Any]:
    config = read_string_map(idp, 'config')
    defaults = IDENTITY_PROVIDER_DEFAULTS
    name_id_format = config.get('nameIDPolicyFormat', '')
    return {
        'alias': read_str(idp, 'alias'),
        'display_name': read_str(idp, 'displayName', defaults['displayName']),
        'provider_id': read_str(idp, 'providerId', defaults['providerId']),
        'enabled': read_bool(idp, 'enabled', defaults['enabled']),
        'trust_email': read_bool(idp, 'trustEmail', defaults['trustEmail']),
        'store_token': read_bool(idp, 'storeToken', defaults['storeToken']),
        'link_only': read_bool(idp, 'linkOnly', defaults['linkOnly']),
        'first_broker_login_flow_alias': read_str(idp, 'firstBrokerLoginFlowAlias',
                                                  defaults['firstBrokerLoginFlowAlias']),
        'post_broker_login_flow_alias': read_str(idp, 'postBrokerLoginFlowAlias',
                                                 defaults['postBrokerLoginFlowAlias']),
        'sync_mode': config.pop('syncMode', defaults['syncMode']),
        'name_id_policy_format': NAME_ID_FORMATS.get(name_id_format, 'Persistent'),
        'config': config,
    }


def emit_identity_providers(providers: Any, realm: str, parent: str) -> List[GeneratedFile]:
    """Génère le module des fournisseurs d'identité OIDC et SAML"""
    records = [normalize_identity_provider(idp) for idp in providers if isinstance(idp, dict)] \
        if isinstance(providers, list) else []
    exported = unique_by((idp for idp in records if idp['alias'].strip()), lambda idp: idp['alias'])
    for idp in exported:
        if idp['provider_id'] not in OIDC_PROVIDERS + ('saml',):
            logger.debug(f"Fournisseur '{idp['alias']}' de type {idp['provider_id']} non pris en charge")
    local_values = [
        ('exported_identity_providers', exported),
        merged_local('identity_providers', 'identity_providers'),
    ]
    return IDENTITY_PROVIDERS.emit(realm, parent, local_values)


IDENTITY_PROVIDER_MAPPERS = ModuleTemplate(
    directory='identity-provider-mappers',
    title='Identity provider mappers',
    resources='''resource "keycloak_custom_identity_provider_mapper" "mappers" {
  for_each = {
    for mapper in local.identity_provider_mappers : mapper.key => mapper
    if contains(keys(var.identity_provider_aliases), mapper.identity_provider_alias)
  }

  realm                    = var.realm_id
  name                     = each.value.name
  identity_provider_alias  = var.identity_provider_aliases[each.value.identity_provider_alias]
  identity_provider_mapper = each.value.identity_provider_mapper
  extra_config             = each.value.config
}
''',
    variables=REALM_ID_VARIABLE + '''
variable "identity_provider_mappers" {
  description = "Additional identity provider mappers, merged with the exported ones"
  type = list(object({
    key                      = string
    name                     = string
    identity_provider_alias  = string
    identity_provider_mapper = string
    config                   = optional(map(string), {})
  }))
  default = []
}

variable "identity_provider_aliases" {
  description = "Identity provider aliases (identity-providers module output)"
  type        = map(string)
  default     = {}
}
''',
    outputs='''output "identity_provider_mapper_ids" {
  description = "Identity provider mapper IDs keyed by alias/name"
  value       = { for key, mapper in keycloak_custom_identity_provider_mapper.mappers : key => mapper.id }
}
''',
)


def normalize_identity_provider_mapper(mapper: Dict[str, Any], alias: str) -> Dict[str, Any]:
    name = read_str(mapper, 'name')
    return {
        'key': f'{alias}/{name}',
        'name': name,
        'identity_provider_alias': alias,
        'identity_provider_mapper': read_str(mapper, 'identityProviderMapper'),
        'config': read_string_map(mapper, 'config'),
    }


def collect_identity_provider_mappers(document: Any) -> List[Dict[str, Any]]:
    """Mappers déclarés au niveau du realm ou à l'intérieur de chaque fournisseur"""
    mappers = []
    for mapper in read_records(document, 'identityProviderMappers'):
        mappers.append(normalize_identity_provider_mapper(mapper, read_str(mapper, 'identityProviderAlias')))
    for idp in read_records(document, 'identityProviders'):
        alias = read_str(idp, 'alias')
        for mapper in read_records(idp, 'identityProviderMappers'):
            mappers.append(normalize_identity_provider_mapper(
                mapper, read_str(mapper, 'identityProviderAlias', alias) or alias))
    valid = [mapper for mapper in mappers
             if mapper['name'].strip() and mapper['identity_provider_alias'] and mapper['identity_provider_mapper']]
    return unique_by(valid, lambda mapper: mapper['key'])


def emit_identity_provider_mappers(document: Any, realm: str, parent: str) -> List[GeneratedFile]:
    local_values = [
        ('exported_identity_provider_mappers', collect_identity_provider_mappers(document)),
        merged_local('identity_provider_mappers', 'identity_provider_mappers'),
    ]
    return IDENTITY_PROVIDER_MAPPERS.emit(realm, parent, local_values)
