"""
Module fédération d'utilisateurs (LDAP et Kerberos)

Les fournisseurs viennent des composants UserStorageProvider de l'export,
ou de l'ancien tableau userFederationProviders.
"""

import logging
from typing import Any, Dict, List

from kc2tg.detection import FEDERATION_PROVIDERS, is_federation_component, iter_components
from kc2tg.document import read_config_value, read_dict, read_records, read_str
from kc2tg.models import GeneratedFile
from kc2tg.modules.base import REALM_ID_VARIABLE, ModuleTemplate, merged_local, unique_by

logger = logging.getLogger(__name__)

LDAP_DEFAULTS = {
    'enabled': 'true',
    'priority': '0',
    'vendor': 'other',
    'usernameLDAPAttribute': 'uid',
    'rdnLDAPAttribute': 'uid',
    'uuidLDAPAttribute': 'entryUUID',
    'userObjectClasses': 'inetOrgPerson, organizationalPerson',
    'connectionUrl': '',
    'usersDn': '',
    'bindDn': '',
    'searchScope': '1',
    'editMode': 'READ_ONLY',
    'importEnabled': 'true',
    'syncRegistrations': 'false',
    'trustEmail': 'false',
    'startTls': 'false',
    'useTruststoreSpi': 'ldapsOnly',
    'pagination': 'true',
    'batchSizeForSync': '1000',
    'fullSyncPeriod': '-1',
    'changedSyncPeriod': '-1',
}

SEARCH_SCOPES = {'1': 'ONE_LEVEL', '2': 'SUBTREE'}
TRUSTSTORE_MODES = {'always': 'ALWAYS', 'never': 'NEVER', 'ldapsOnly': 'ONLY_FOR_LDAPS'}
VENDORS = {'ad': 'AD', 'rhds': 'RHDS', 'tivoli': 'TIVOLI', 'edirectory': 'EDIRECTORY', 'other': 'OTHER'}

USER_FEDERATION = ModuleTemplate(
    directory='user-federation',
    title='User federation',
    resources='''resource "keycloak_ldap_user_federation" "ldap" {
  for_each = { for provider in local.ldap_providers : provider.name => provider }

  realm_id                = var.realm_id
  name                    = each.value.name
  enabled                 = each.value.enabled
  priority                = each.value.priority
  vendor                  = each.value.vendor
  username_ldap_attribute = each.value.username_ldap_attribute
  rdn_ldap_attribute      = each.value.rdn_ldap_attribute
  uuid_ldap_attribute     = each.value.uuid_ldap_attribute
  user_object_classes     = each.value.user_object_classes
  connection_url          = each.value.connection_url
  users_dn                = each.value.users_dn
  bind_dn                 = each.value.bind_dn
  bind_credential         = lookup(var.ldap_bind_credentials, each.key, "")
  search_scope            = each.value.search_scope
  edit_mode               = each.value.edit_mode
  import_enabled          = each.value.import_enabled
  sync_registrations      = each.value.sync_registrations
  trust_email             = each.value.trust_email
  start_tls               = each.value.start_tls
  use_truststore_spi      = each.value.use_truststore_spi
  pagination              = each.value.pagination
  batch_size_for_sync     = each.value.batch_size_for_sync
  full_sync_period        = each.value.full_sync_period
  changed_sync_period     = each.value.changed_sync_period
}

resource "keycloak_custom_user_federation" "kerberos" {
  for_each = { for provider in local.kerberos_providers : provider.name => provider }

  realm_id    = var.realm_id
  name        = each.value.name
  provider_id = "kerberos"
  enabled     = each.value.enabled
  priority    = each.value.priority
  config      = each.value.config
}
''',
    variables=REALM_ID_VARIABLE + '''
variable "ldap_providers" {
  description = "Additional LDAP providers, merged with the exported ones"
  type = list(object({
    name                    = string
    enabled                 = optional(bool, true)
    priority                = optional(number, 0)
    vendor                  = optional(string, "OTHER")
    username_ldap_attribute = optional(string, "uid")
    rdn_ldap_attribute      = optional(string, "uid")
    uuid_ldap_attribute     = optional(string, "entryUUID")
    user_object_classes     = optional(list(string), ["inetOrgPerson", "organizationalPerson"])
    connection_url          = string
    users_dn                = string
    bind_dn                 = optional(string, "")
    search_scope            = optional(string, "ONE_LEVEL")
    edit_mode               = optional(string, "READ_ONLY")
    import_enabled          = optional(bool, true)
    sync_registrations      = optional(bool, false)
    trust_email             = optional(bool, false)
    start_tls               = optional(bool, false)
    use_truststore_spi      = optional(string, "ONLY_FOR_LDAPS")
    pagination              = optional(bool, true)
    batch_size_for_sync     = optional(number, 1000)
    full_sync_period        = optional(number, -1)
    changed_sync_period     = optional(number, -1)
  }))
  default = []
}

variable "kerberos_providers" {
  description = "Additional Kerberos providers, merged with the exported ones"
  type = list(object({
    name     = string
    enabled  = optional(bool, true)
    priority = optional(number, 0)
    config   = optional(map(string), {})
  }))
  default = []
}

variable "ldap_bind_credentials" {
  description = "LDAP bind credentials keyed by provider name"
  type        = map(string)
  default     = {}
  sensitive   = true
}
''',
    outputs='''output "user_federation_ids" {
  description = "User federation provider IDs keyed by name"
  value = merge(
    { for name, provider in keycloak_ldap_user_federation.ldap : name => provider.id },
    { for name, provider in keycloak_custom_user_federation.kerberos : name => provider.id },
  )
}
''',
)


def _flag(config: Any, key: str) -> bool:
    return read_config_value(config, key, LDAP_DEFAULTS.get(key, 'false')).lower() == 'true'


def _number(config: Any, key: str) -> int:
    value = read_config_value(config, key, LDAP_DEFAULTS[key])
    try:
        return int(value)
    except ValueError:
        return int(LDAP_DEFAULTS[key])


def normalize_ldap(name: str, config: Any) -> Dict[str, Any]:
    object_classes = read_config_value(config, 'userObjectClasses', LDAP_DEFAULTS['userObjectClasses'])
    vendor = read_config_value(config, 'vendor', LDAP_DEFAULTS['vendor'])
    return {
        'name': name,
        'enabled': _flag(config, 'enabled'),
        'priority': _number(config, 'priority'),
        'vendor': VENDORS.get(vendor.lower(), 'OTHER'),
        'username_ldap_attribute': read_config_value(config, 'usernameLDAPAttribute',
                                                     LDAP_DEFAULTS['usernameLDAPAttribute']),
        'rdn_ldap_attribute': read_config_value(config, 'rdnLDAPAttribute', LDAP_DEFAULTS['rdnLDAPAttribute']),
        'uuid_ldap_attribute': read_config_value(config, 'uuidLDAPAttribute', LDAP_DEFAULTS['uuidLDAPAttribute']),
        'user_object_classes': [item.strip() for item in object_classes.split(',') if item.strip()],
        'connection_url': read_config_value(config, 'connectionUrl', LDAP_DEFAULTS['connectionUrl']),
        'users_dn': read_config_value(config, 'usersDn', LDAP_DEFAULTS['usersDn']),
        'bind_dn': read_config_value(config, 'bindDn', LDAP_DEFAULTS['bindDn']),
        'search_scope': SEARCH_SCOPES.get(read_config_value(config, 'searchScope', LDAP_DEFAULTS['searchScope']),
                                          'ONE_LEVEL'),
        'edit_mode': read_config_value(config, 'editMode', LDAP_DEFAULTS['editMode']) or 'READ_ONLY',
        'import_enabled': _flag(config, 'importEnabled'),
        'sync_registrations': _flag(config, 'syncRegistrations'),
        'trust_email': _flag(config, 'trustEmail'),
        'start_tls': _flag(config, 'startTls'),
        'use_truststore_spi': TRUSTSTORE_MODES.get(
            read_config_value(config, 'useTruststoreSpi', LDAP_DEFAULTS['useTruststoreSpi']), 'ONLY_FOR_LDAPS'),
        'pagination': _flag(config, 'pagination'),
        'batch_size_for_sync': _number(config, 'batchSizeForSync'),
        'full_sync_period': _number(config, 'fullSyncPeriod'),
        'changed_sync_period': _number(config, 'changedSyncPeriod'),
    }


def normalize_kerberos(name: str, config: Any) -> Dict[str, Any]:
    flat = {str(key): read_config_value(config, key) for key in (config if isinstance(config, dict) else {})}
    enabled = flat.pop('enabled', 'true')
    try:
        priority = int(flat.pop('priority', '0'))
    except ValueError:
        priority = 0
    return {
        'name': name,
        'enabled': enabled.lower() == 'true',
        'priority': priority,
        'config': flat,
    }


def collect_providers(document: Any) -> Dict[str, List[Dict[str, Any]]]:
    """Fournisseurs LDAP et Kerberos, composants modernes puis format historique"""
    found = []
    for component in iter_components(document):
        if not is_federation_component(component):
            continue
        provider_id = read_str(component, 'providerId', 'ldap') or 'ldap'
        found.append((provider_id, read_str(component, 'name'), read_dict(component, 'config')))
    for provider in read_records(document, 'userFederationProviders'):
        provider_id = read_str(provider, 'providerName')
        if provider_id in FEDERATION_PROVIDERS:
            name = read_str(provider, 'displayName') or read_str(provider, 'id')
            found.append((provider_id, name, read_dict(provider, 'config')))

    providers = {'ldap': [], 'kerberos': []}
    for provider_id, name, config in found:
        if not name.strip():
            logger.debug(f"Fournisseur {provider_id} sans nom, ignoré")
            continue
        if provider_id == 'kerberos':
            providers['kerberos'].append(normalize_kerberos(name, config))
        else:
            providers['ldap'].append(normalize_ldap(name, config))
    return {kind: unique_by(records, lambda record: record['name']) for kind, records in providers.items()}


def emit_user_federation(document: Any, realm: str, parent: str) -> List[GeneratedFile]:
    """Génère le module de fédération d'utilisateurs"""
    providers = collect_providers(document)
    local_values = [
        ('exported_ldap_providers', providers['ldap']),
        ('exported_kerberos_providers', providers['kerberos']),
        merged_local('ldap_providers', 'ldap_providers'),
        merged_local('kerberos_providers', 'kerberos_providers'),
    ]
    return USER_FEDERATION.emit(realm, parent, local_values)
