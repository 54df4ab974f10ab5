"""
Modules événements du realm et politiques de clients
"""

from typing import Any, Dict, List

from kc2tg.document import (read, read_bool, read_dict, read_int, read_records, read_str, read_string_map,
                            read_strings)
from kc2tg.models import GeneratedFile
from kc2tg.modules.base import REALM_ID_VARIABLE, ModuleTemplate, merged_local, unique_by

EVENTS_DEFAULTS = {
    'eventsEnabled': False,
    'eventsExpiration': 0,
    'eventsListeners': ['jboss-logging'],
    'adminEventsEnabled': False,
    'adminEventsDetailsEnabled': False,
}

REALM_EVENTS = ModuleTemplate(
    directory='realm-events',
    title='Realm events',
    resources='''resource "keycloak_realm_events" "events" {
  realm_id = var.realm_id

  events_enabled               = local.events.events_enabled
  events_expiration            = local.events.events_expiration
  events_listeners             = local.events.events_listeners
  enabled_event_types          = local.events.enabled_event_types
  admin_events_enabled         = local.events.admin_events_enabled
  admin_events_details_enabled = local.events.admin_events_details_enabled
}
''',
    variables=REALM_ID_VARIABLE + '''
variable "events" {
  description = "Overrides applied on top of the exported event settings"
  type        = any
  default     = {}
}
''',
    outputs='''output "events_enabled" {
  description = "Whether user events are recorded"
  value       = keycloak_realm_events.events.events_enabled
}

output "admin_events_enabled" {
  description = "Whether admin events are recorded"
  value       = keycloak_realm_events.events.admin_events_enabled
}
''',
)


def emit_realm_events(document: Any, realm: str, parent: str) -> List[GeneratedFile]:
    """Génère le module de configuration des événements"""
    listeners = read(document, 'eventsListeners', list, EVENTS_DEFAULTS['eventsListeners'])
    events = {
        'events_enabled': read_bool(document, 'eventsEnabled', EVENTS_DEFAULTS['eventsEnabled']),
        'events_expiration': read_int(document, 'eventsExpiration', EVENTS_DEFAULTS['eventsExpiration']),
        'events_listeners': [item for item in listeners if isinstance(item, str)],
        'enabled_event_types': read_strings(document, 'enabledEventTypes'),
        'admin_events_enabled': read_bool(document, 'adminEventsEnabled', EVENTS_DEFAULTS['adminEventsEnabled']),
        'admin_events_details_enabled': read_bool(document, 'adminEventsDetailsEnabled',
                                                  EVENTS_DEFAULTS['adminEventsDetailsEnabled']),
    }
    local_values = [
        ('exported_events', events),
        merged_local('events', 'events', 'merge'),
    ]
    return REALM_EVENTS.emit(realm, parent, local_values)


CLIENT_POLICIES = ModuleTemplate(
    directory='client-policies',
    title='Client policies',
    resources='''resource "keycloak_realm_client_policy_profile" "profiles" {
  for_each = { for profile in local.client_profiles : profile.name => profile }

  realm_id    = var.realm_id
  name        = each.value.name
  description = each.value.description

  dynamic "executor" {
    for_each = each.value.executors
    content {
      name          = executor.value.name
      configuration = executor.value.configuration
    }
  }
}

resource "keycloak_realm_client_policy_profile_policy" "policies" {
  for_each = { for policy in local.client_policies : policy.name => policy }

  realm_id    = var.realm_id
  name        = each.value.name
  description = each.value.description
  enabled     = each.value.enabled
  profiles    = each.value.profiles

  dynamic "condition" {
    for_each = each.value.conditions
    content {
      name          = condition.value.name
      configuration = condition.value.configuration
    }
  }

  depends_on = [keycloak_realm_client_policy_profile.profiles]
}
''',
    variables=REALM_ID_VARIABLE + '''
variable "client_profiles" {
  description = "Additional client profiles, merged with the exported ones"
  type = list(object({
    name        = string
    description = optional(string, "")
    executors = optional(list(object({
      name          = string
      configuration = optional(map(string), {})
    })), [])
  }))
  default = []
}

variable "client_policies" {
  description = "Additional client policies, merged with the exported ones"
  type = list(object({
    name        = string
    description = optional(string, "")
    enabled     = optional(bool, true)
    profiles    = optional(list(string), [])
    conditions = optional(list(object({
      name          = string
      configuration = optional(map(string), {})
    })), [])
  }))
  default = []
}
''',
    outputs='''output "client_profiles" {
  description = "Client profile names"
  value       = keys(keycloak_realm_client_policy_profile.profiles)
}

output "client_policies" {
  description = "Client policy names"
  value       = keys(keycloak_realm_client_policy_profile_policy.policies)
}
''',
)


def _entries(document: Any, key: str, nested: str) -> List[Dict[str, Any]]:
    """clientPolicies / clientProfiles : liste directe ou objet {policies|profiles: [...]}"""
    return read_records(document, key) or read_records(read_dict(document, key), nested)


def normalize_profile(profile: Dict[str, Any]) -> Dict[str, Any]:
    executors = [executor for executor in read_records(profile, 'executors') if read_str(executor, 'executor')]
    return {
        'name': read_str(profile, 'name'),
        'description': read_str(profile, 'description'),
        'executors': [{'name': read_str(executor, 'executor'),
                       'configuration': read_string_map(executor, 'configuration')} for executor in executors],
    }


def normalize_policy(policy: Dict[str, Any]) -> Dict[str, Any]:
    conditions = [condition for condition in read_records(policy, 'conditions') if read_str(condition, 'condition')]
    return {
        'name': read_str(policy, 'name'),
        'description': read_str(policy, 'description'),
        'enabled': read_bool(policy, 'enabled', True),
        'profiles': read_strings(policy, 'profiles'),
        'conditions': [{'name': read_str(condition, 'condition'),
                        'configuration': read_string_map(condition, 'configuration')} for condition in conditions],
    }


def emit_client_policies(document: Any, realm: str, parent: str) -> List[GeneratedFile]:
    profiles = [normalize_profile(profile) for profile in _entries(document, 'clientProfiles', 'profiles')]
    policies = [normalize_policy(policy) for policy in _entries(document, 'clientPolicies', 'policies')]
    local_values = [
        ('exported_client_profiles', unique_by((p for p in profiles if p['name'].strip()), lambda p: p['name'])),
        ('exported_client_policies', unique_by((p for p in policies if p['name'].strip()), lambda p: p['name'])),
        merged_local('client_profiles', 'client_profiles'),
        merged_local('client_policies', 'client_policies'),
    ]
    return CLIENT_POLICIES.emit(realm, parent, local_values)
