"""
Modules flows d'authentification et actions requises

Les flows se référencent entre eux (sous-flows, exécutions, configurations) :
chaque entité devient une ressource nommée, comme les groupes.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from kc2tg import hcl
from kc2tg.builtins import is_builtin
from kc2tg.document import read_bool, read_int, read_records, read_str, read_string_map
from kc2tg.models import GeneratedFile
from kc2tg.modules.base import REALM_ID_VARIABLE, ModuleTemplate, ResourceNamer, merged_local, unique_by

logger = logging.getLogger(__name__)

FLOW_DEFAULTS = {
    'description': '',
    'providerId': 'basic-flow',
    'topLevel': True,
    'builtIn': False,
    'requirement': 'DISABLED',
}

# Liaisons du realm vers ses flows (attribut export → attribut Terraform)
FLOW_BINDINGS = (
    ('browserFlow', 'browser_flow'),
    ('registrationFlow', 'registration_flow'),
    ('directGrantFlow', 'direct_grant_flow'),
    ('resetCredentialsFlow', 'reset_credentials_flow'),
    ('clientAuthenticationFlow', 'client_authentication_flow'),
    ('dockerAuthenticationFlow', 'docker_authentication_flow'),
)

REQUIRED_ACTION_DEFAULTS = {'enabled': True, 'defaultAction': False, 'priority': 0}

AUTHENTICATION_FLOWS = ModuleTemplate(
    directory='authentication-flows',
    title='Authentication flows',
    resources='''resource "keycloak_authentication_flow" "additional" {
  for_each = { for flow in var.flows : flow.alias => flow }

  realm_id    = var.realm_id
  alias       = each.value.alias
  description = each.value.description
  provider_id = each.value.provider_id
}
''',
    variables=REALM_ID_VARIABLE + '''
variable "flows" {
  description = "Additional empty top-level flows, created next to the exported ones"
  type = list(object({
    alias       = string
    description = optional(string, "")
    provider_id = optional(string, "basic-flow")
  }))
  default = []
}
''',
    outputs='''output "flow_ids" {
  description = "Authentication flow IDs keyed by alias"
  value       = local.flow_ids
}

output "flow_aliases" {
  description = "Aliases of the managed top-level flows"
  value       = keys(local.flow_ids)
}
''',
)


def is_builtin_flow(flow: Dict[str, Any]) -> bool:
    return read_bool(flow, 'builtIn', FLOW_DEFAULTS['builtIn']) or is_builtin(read_str(flow, 'alias'), 'flow')


def find_parent(alias: str, flows: List[Dict[str, Any]]) -> Tuple[Optional[str], str]:
    """Flow parent d'un sous-flow et exigence de l'exécution qui l'appelle"""
    for flow in flows:
        for execution in read_records(flow, 'authenticationExecutions'):
            if read_bool(execution, 'authenticatorFlow', False) and read_str(execution, 'flowAlias') == alias:
                return read_str(flow, 'alias'), read_str(execution, 'requirement', FLOW_DEFAULTS['requirement'])
    return None, FLOW_DEFAULTS['requirement']


class FlowBuilder:
    """Construit les blocs des flows, sous-flows, exécutions et configurations"""

    def __init__(self, document: Any):
        self.document = document
        self.namer = ResourceNamer(reserved=['additional'])
        self.flows = [flow for flow in read_records(document, 'authenticationFlows')
                      if read_str(flow, 'alias').strip()]
        self.configs = {read_str(config, 'alias'): read_string_map(config, 'config')
                        for config in read_records(document, 'authenticatorConfig')}
        self.references: Dict[str, str] = {}
        self.blocks: List[hcl.Block] = []

    def managed_flows(self) -> List[Dict[str, Any]]:
        managed = []
        for flow in unique_by(self.flows, lambda flow: read_str(flow, 'alias')):
            if is_builtin_flow(flow):
                logger.debug(f"Flow '{read_str(flow, 'alias')}' ignoré (créé automatiquement par Keycloak)")
                continue
            managed.append(flow)
        return managed

    def build(self) -> List[hcl.Block]:
        managed = self.managed_flows()
        for flow in managed:
            alias = read_str(flow, 'alias')
            kind = 'keycloak_authentication_flow' if read_bool(flow, 'topLevel', True) \
                else 'keycloak_authentication_subflow'
            self.references[alias] = f'{kind}.{self.namer.name(alias)}'

        self.prune_orphans(managed)
        for flow in managed:
            if read_str(flow, 'alias') in self.references:
                self.add_flow(flow)
        for flow in managed:
            self.add_executions(flow)
        return self.blocks

    def prune_orphans(self, managed: List[Dict[str, Any]]):
        """Retire les sous-flows dont la chaîne de parents n'est pas gérée"""
        self.parents = {}
        changed = True
        while changed:
            changed = False
            for flow in managed:
                alias = read_str(flow, 'alias')
                reference = self.references.get(alias, '')
                if not reference.startswith('keycloak_authentication_subflow.'):
                    continue
                parent, requirement = find_parent(alias, self.flows)
                if parent not in self.references:
                    logger.debug(f"Subflow '{alias}' ignoré (aucun flow parent géré trouvé)")
                    del self.references[alias]
                    changed = True
                else:
                    self.parents[alias] = (parent, requirement)

    def add_flow(self, flow: Dict[str, Any]):
        alias = read_str(flow, 'alias')
        kind, resource = self.references[alias].split('.')
        block = hcl.Block('resource', [kind, resource])
        block.add('realm_id', hcl.Expression('var.realm_id'))
        block.add('alias', alias)
        block.add('description', read_str(flow, 'description', FLOW_DEFAULTS['description']))
        block.add('provider_id', read_str(flow, 'providerId', FLOW_DEFAULTS['providerId']))

        if kind == 'keycloak_authentication_subflow':
            parent, requirement = self.parents[alias]
            block.add('parent_flow_alias', hcl.Expression(f'{self.references[parent]}.alias'))
            block.add('requirement', requirement)
        self.blocks.append(block)

    def add_executions(self, flow: Dict[str, Any]):
        alias = read_str(flow, 'alias')
        parent = self.references.get(alias)
        if not parent:
            return
        previous = None
        for index, execution in enumerate(read_records(flow, 'authenticationExecutions')):
            if read_bool(execution, 'authenticatorFlow', False):
                # le sous-flow occupe sa place dans l'ordre du parent
                previous = self.references.get(read_str(execution, 'flowAlias'), previous)
                continue
            authenticator = read_str(execution, 'authenticator')
            if not authenticator:
                continue

            resource = self.namer.name(f'{alias}_{authenticator}')
            block = hcl.Block('resource', ['keycloak_authentication_execution', resource])
            block.add('realm_id', hcl.Expression('var.realm_id'))
            block.add('parent_flow_alias', hcl.Expression(f'{parent}.alias'))
            block.add('authenticator', authenticator)
            block.add('requirement', read_str(execution, 'requirement', FLOW_DEFAULTS['requirement']))
            block.add('priority', read_int(execution, 'priority', (index + 1) * 10))
            if previous:
                block.add('depends_on', [hcl.Expression(previous)])
            self.blocks.append(block)
            previous = f'keycloak_authentication_execution.{resource}'

            config_alias = read_str(execution, 'authenticatorConfig')
            if config_alias and config_alias in self.configs:
                config_block = hcl.Block('resource', ['keycloak_authentication_execution_config', resource])
                config_block.add('realm_id', hcl.Expression('var.realm_id'))
                config_block.add('execution_id', hcl.Expression(f'keycloak_authentication_execution.{resource}.id'))
                config_block.add('alias', config_alias)
                config_block.add('config', self.configs[config_alias])
                self.blocks.append(config_block)

    def bindings(self) -> Optional[hcl.Block]:
        """Liaisons du realm vers les flows gérés par ce module"""
        block = hcl.Block('resource', ['keycloak_authentication_bindings', 'bindings'])
        block.add('realm_id', hcl.Expression('var.realm_id'))
        bound = False
        for source, target in FLOW_BINDINGS:
            alias = read_str(self.document, source)
            reference = self.references.get(alias, '')
            if reference.startswith('keycloak_authentication_flow.'):
                block.add(target, hcl.Expression(f'{reference}.alias'))
                bound = True
        return block if bound else None

    def flow_ids(self) -> Dict[str, hcl.Expression]:
        return {alias: hcl.Expression(f'{reference}.id') for alias, reference in self.references.items()
                if reference.startswith('keycloak_authentication_flow.')}


def emit_authentication_flows(document: Any, realm: str, parent: str) -> List[GeneratedFile]:
    """Génère le module des flows d'authentification personnalisés"""
    builder = FlowBuilder(document)
    blocks = builder.build()
    bindings = builder.bindings()
    if bindings:
        blocks.append(bindings)
    local_values = [
        ('exported_flow_ids', builder.flow_ids()),
        ('flow_ids', hcl.Expression(
            'merge(local.exported_flow_ids, { for alias, flow in keycloak_authentication_flow.additional : alias => flow.id })')),
    ]
    return AUTHENTICATION_FLOWS.emit(realm, parent, local_values, blocks)


REQUIRED_ACTIONS = ModuleTemplate(
    directory='required-actions',
    title='Required actions',
    resources='''resource "keycloak_required_action" "required_actions" {
  for_each = { for action in local.required_actions : action.alias => action }

  realm_id       = var.realm_id
  alias          = each.value.alias
  name           = each.value.name
  enabled        = each.value.enabled
  default_action = each.value.default_action
  priority       = each.value.priority
}
''',
    variables=REALM_ID_VARIABLE + '''
variable "required_actions" {
  description = "Additional required actions, merged with the exported ones"
  type = list(object({
    alias          = string
    name           = string
    enabled        = optional(bool, true)
    default_action = optional(bool, false)
    priority       = optional(number, 0)
  }))
  default = []
}
''',
    outputs='''output "required_actions" {
  description = "Configured required actions keyed by alias"
  value = {
    for alias, action in keycloak_required_action.required_actions : alias => {
      name    = action.name
      enabled = action.enabled
    }
  }
}
''',
)


def normalize_required_action(action: Dict[str, Any]) -> Dict[str, Any]:
    alias = read_str(action, 'alias')
    return {
        'alias': alias,
        'name': read_str(action, 'name', alias) or alias,
        'enabled': read_bool(action, 'enabled', REQUIRED_ACTION_DEFAULTS['enabled']),
        'default_action': read_bool(action, 'defaultAction', REQUIRED_ACTION_DEFAULTS['defaultAction']),
        'priority': read_int(action, 'priority', REQUIRED_ACTION_DEFAULTS['priority']),
    }


def emit_required_actions(actions: Any, realm: str, parent: str) -> List[GeneratedFile]:
    records = [normalize_required_action(action) for action in actions if isinstance(action, dict)] \
        if isinstance(actions, list) else []
    exported = unique_by((action for action in records if action['alias'].strip()), lambda action: action['alias'])
    local_values = [
        ('exported_required_actions', exported),
        merged_local('required_actions', 'required_actions'),
    ]
    return REQUIRED_ACTIONS.emit(realm, parent, local_values)
