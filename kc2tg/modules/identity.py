"""
Modules rôles, groupes et utilisateurs
"""

import logging
from typing import Any, Dict, List

from kc2tg import hcl
from kc2tg.document import (read_bool, read_dict, read_multi_map, read_records, read_str,
                            read_strings)
from kc2tg.models import GeneratedFile
from kc2tg.modules.base import REALM_ID_VARIABLE, ModuleTemplate, ResourceNamer, merged_local, unique_by

logger = logging.getLogger(__name__)

# Valeurs par défaut des champs optionnels
ROLE_DEFAULTS = {'description': '', 'composite': False}
GROUP_DEFAULTS = {'path': ''}
USER_DEFAULTS = {
    'email': '',
    'firstName': '',
    'lastName': '',
    'enabled': True,
    'emailVerified': False,
}

ROLES = ModuleTemplate(
    directory='roles',
    title='Roles',
    resources='''resource "keycloak_role" "realm_roles" {
  for_each = { for role in local.realm_roles : role.name => role }

  realm_id    = var.realm_id
  name        = each.value.name
  description = each.value.description
  attributes  = { for key, values in each.value.attributes : key => join("##", values) }
}

resource "keycloak_role" "client_roles" {
  # Only roles of clients managed by the clients module can be created
  for_each = merge([
    for client_id, roles in local.client_roles : {
      for role in roles : "${client_id}.${role.name}" => merge(role, { client_id = client_id })
    } if contains(keys(var.client_ids), client_id)
  ]...)

  realm_id    = var.realm_id
  client_id   = var.client_ids[each.value.client_id]
  name        = each.value.name
  description = each.value.description
  attributes  = { for key, values in each.value.attributes : key => join("##", values) }
}
''',
    variables=REALM_ID_VARIABLE + '''
variable "realm_roles" {
  description = "Additional realm roles, merged with the exported ones"
  type = list(object({
    name        = string
    description = optional(string, "")
    composite   = optional(bool, false)
    attributes  = optional(map(list(string)), {})
  }))
  default = []
}

variable "client_roles" {
  description = "Additional client roles keyed by client ID, merged with the exported ones"
  type = map(list(object({
    name        = string
    description = optional(string, "")
    composite   = optional(bool, false)
    attributes  = optional(map(list(string)), {})
  })))
  default = {}
}

variable "client_ids" {
  description = "Client internal IDs keyed by client ID (clients module output)"
  type        = map(string)
  default     = {}
}
''',
    outputs='''output "roles" {
  description = "Created roles"
  value = {
    realm_roles = {
      for name, role in keycloak_role.realm_roles : name => {
        id          = role.id
        name        = role.name
        description = role.description
      }
    }
    client_roles = {
      for key, role in keycloak_role.client_roles : key => {
        id          = role.id
        name        = role.name
        client_id   = role.client_id
        description = role.description
      }
    }
  }
}

output "role_ids" {
  description = "Role IDs keyed by role name (realm roles) or client_id.role_name (client roles)"
  value = merge(
    { for name, role in keycloak_role.realm_roles : name => role.id },
    { for key, role in keycloak_role.client_roles : key => role.id },
  )
}
''',
)


def normalize_role(role: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'name': read_str(role, 'name'),
        'description': read_str(role, 'description', ROLE_DEFAULTS['description']),
        'composite': read_bool(role, 'composite', ROLE_DEFAULTS['composite']),
        'attributes': read_multi_map(role, 'attributes'),
    }


def collect_roles(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    roles = [normalize_role(role) for role in records]
    return unique_by((role for role in roles if role['name'].strip()), lambda role: role['name'])


def emit_roles(roles: Any, realm: str, parent: str) -> List[GeneratedFile]:
    """Génère le module des rôles de realm et de clients"""
    realm_roles = collect_roles(read_records(roles, 'realm'))
    client_roles = {}
    for client_id, records in read_dict(roles, 'client').items():
        if isinstance(records, list):
            client_roles[str(client_id)] = collect_roles([item for item in records if isinstance(item, dict)])

    local_values = [
        ('exported_realm_roles', realm_roles),
        ('exported_client_roles', client_roles),
        merged_local('realm_roles', 'realm_roles'),
        merged_local('client_roles', 'client_roles', 'merge'),
    ]
    return ROLES.emit(realm, parent, local_values)


GROUPS = ModuleTemplate(
    directory='groups',
    title='Groups',
    resources='''resource "keycloak_group" "additional" {
  for_each = { for group in var.groups : group.name => group }

  realm_id   = var.realm_id
  name       = each.value.name
  attributes = { for key, values in each.value.attributes : key => join("##", values) }
}
''',
    variables=REALM_ID_VARIABLE + '''
variable "groups" {
  description = "Additional top-level groups, created next to the exported hierarchy"
  type = list(object({
    name       = string
    attributes = optional(map(list(string)), {})
  }))
  default = []
}

variable "role_ids" {
  description = "Role IDs keyed by role name (roles module output)"
  type        = map(string)
  default     = {}
}
''',
    outputs='''output "groups" {
  description = "Created groups keyed by group path"
  value       = local.groups
}

output "group_ids" {
  description = "Group IDs keyed by group path"
  value       = { for path, group in local.groups : path => group.id }
}
''',
)


def flatten_groups(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Aplatit la hiérarchie des groupes (parcours préfixe, sans récursion)"""
    flat = []
    seen = set()
    stack = [(group, '') for group in reversed(records)]
    while stack:
        group, parent_path = stack.pop()
        if id(group) in seen:
            continue
        seen.add(id(group))
        name = read_str(group, 'name')
        if not name.strip():
            continue
        path = read_str(group, 'path', GROUP_DEFAULTS['path']) or f'{parent_path}/{name}'
        client_roles = read_multi_map(group, 'clientRoles')
        flat.append({
            'name': name,
            'path': path,
            'parent_path': parent_path,
            'attributes': read_multi_map(group, 'attributes'),
            'roles': read_strings(group, 'realmRoles') + [
                f'{client_id}.{role}' for client_id, roles in client_roles.items() for role in roles
            ],
        })
        children = read_records(group, 'subGroups')
        stack.extend((child, path) for child in reversed(children))
    return unique_by(flat, lambda group: group['path'])


def emit_groups(groups: Any, realm: str, parent: str) -> List[GeneratedFile]:
    """Génère le module des groupes, une ressource par groupe pour conserver la hiérarchie"""
    records = groups if isinstance(groups, list) else []
    flat = flatten_groups([group for group in records if isinstance(group, dict)])

    namer = ResourceNamer(reserved=['additional'])
    resource_names = {}
    blocks = []
    exported = {}
    for group in flat:
        resource = namer.name(group['path'].lstrip('/') or group['name'])
        resource_names[group['path']] = resource
        block = hcl.Block('resource', ['keycloak_group', resource])
        block.add('realm_id', hcl.Expression('var.realm_id'))
        block.add('name', group['name'])
        parent_resource = resource_names.get(group['parent_path'])
        if parent_resource:
            block.add('parent_id', hcl.Expression(f'keycloak_group.{parent_resource}.id'))
        elif group['parent_path']:
            logger.debug(f"Groupe parent '{group['parent_path']}' introuvable pour '{group['path']}'")
        if group['attributes']:
            block.add('attributes', {key: '##'.join(values) for key, values in group['attributes'].items()})
        blocks.append(block)

        if group['roles']:
            role_ids = hcl.render_value(group['roles'], 1)
            roles_block = hcl.Block('resource', ['keycloak_group_roles', resource])
            roles_block.add('realm_id', hcl.Expression('var.realm_id'))
            roles_block.add('group_id', hcl.Expression(f'keycloak_group.{resource}.id'))
            roles_block.add('role_ids', hcl.Expression(
                f'[for role in {role_ids} : var.role_ids[role] if contains(keys(var.role_ids), role)]'))
            blocks.append(roles_block)

        exported[group['path']] = {
            'id': hcl.Expression(f'keycloak_group.{resource}.id'),
            'name': group['name'],
            'path': group['path'],
        }

    local_values = [
        ('exported_groups', exported),
        ('groups', hcl.Expression(
            'merge(local.exported_groups, { for name, group in keycloak_group.additional : '
            '"/${name}" => { id = group.id, name = group.name, path = "/${name}" } })')),
    ]
    return GROUPS.emit(realm, parent, local_values, blocks)


USERS = ModuleTemplate(
    directory='users',
    title='Users',
    resources='''resource "keycloak_user" "users" {
  for_each = { for user in local.users : user.username => user }

  realm_id         = var.realm_id
  username         = each.value.username
  email            = each.value.email
  first_name       = each.value.first_name
  last_name        = each.value.last_name
  enabled          = each.value.enabled
  email_verified   = each.value.email_verified
  required_actions = each.value.required_actions
  attributes       = { for key, values in each.value.attributes : key => join("##", values) }
}

# Group memberships resolve against the groups module output (group_ids)
resource "keycloak_user_groups" "user_groups" {
  for_each = { for user in local.users : user.username => user if length(user.groups) > 0 }

  realm_id  = var.realm_id
  user_id   = keycloak_user.users[each.key].id
  group_ids = [for path in each.value.groups : var.group_ids[path] if contains(keys(var.group_ids), path)]
}

# Role mappings resolve against the roles module output (role_ids)
resource "keycloak_user_roles" "user_roles" {
  for_each = {
    for user in local.users : user.username => user
    if length(user.realm_roles) + length(user.client_roles) > 0
  }

  realm_id = var.realm_id
  user_id  = keycloak_user.users[each.key].id
  role_ids = [
    for role in concat(
      each.value.realm_roles,
      flatten([for client_id, roles in each.value.client_roles : [for role in roles : "${client_id}.${role}"]]),
    ) : var.role_ids[role] if contains(keys(var.role_ids), role)
  ]
}
''',
    variables=REALM_ID_VARIABLE + '''
variable "users" {
  description = "Additional users, merged with the exported ones"
  type = list(object({
    username         = string
    email            = optional(string, "")
    first_name       = optional(string, "")
    last_name        = optional(string, "")
    enabled          = optional(bool, true)
    email_verified   = optional(bool, false)
    required_actions = optional(list(string), [])
    attributes       = optional(map(list(string)), {})
    groups           = optional(list(string), [])
    realm_roles      = optional(list(string), [])
    client_roles     = optional(map(list(string)), {})
  }))
  default = []
}

variable "group_ids" {
  description = "Group IDs keyed by group path (groups module output)"
  type        = map(string)
  default     = {}
}

variable "role_ids" {
  description = "Role IDs keyed by role name or client_id.role_name (roles module output)"
  type        = map(string)
  default     = {}
}
''',
    outputs='''output "users" {
  description = "Created users keyed by username"
  value = {
    for username, user in keycloak_user.users : username => {
      id       = user.id
      username = user.username
      email    = user.email
    }
  }
}

output "user_ids" {
  description = "User IDs keyed by username"
  value       = { for username, user in keycloak_user.users : username => user.id }
}
''',
)


def normalize_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'username': read_str(user, 'username'),
        'email': read_str(user, 'email', USER_DEFAULTS['email']),
        'first_name': read_str(user, 'firstName', USER_DEFAULTS['firstName']),
        'last_name': read_str(user, 'lastName', USER_DEFAULTS['lastName']),
        'enabled': read_bool(user, 'enabled', USER_DEFAULTS['enabled']),
        'email_verified': read_bool(user, 'emailVerified', USER_DEFAULTS['emailVerified']),
        'required_actions': read_strings(user, 'requiredActions'),
        'attributes': read_multi_map(user, 'attributes'),
        'groups': read_strings(user, 'groups'),
        'realm_roles': read_strings(user, 'realmRoles'),
        'client_roles': read_multi_map(user, 'clientRoles'),
    }


def emit_users(users: Any, realm: str, parent: str) -> List[GeneratedFile]:
    """Génère le module des utilisateurs, de leurs groupes et de leurs rôles"""
    records = [normalize_user(user) for user in users if isinstance(user, dict)] if isinstance(users, list) else []
    exported = unique_by((user for user in records if user['username'].strip()), lambda user: user['username'])
    local_values = [
        ('exported_users', exported),
        merged_local('users', 'users'),
    ]
    return USERS.emit(realm, parent, local_values)
