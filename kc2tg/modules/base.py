"""
Gabarit commun des modules Terraform générés (main / variables / outputs)
"""

import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from kc2tg import hcl
from kc2tg.models import TF_EXTENSION, GeneratedFile

REALM_ID_VARIABLE = '''variable "realm_id" {
  description = "ID of the Keycloak realm"
  type        = string
}
'''


def module_name(key: str) -> str:
    """Nom du bloc module Terraform pour un répertoire de fonctionnalité"""
    return key.replace('-', '_')


def clean_resource_name(name: str) -> str:
    """Nettoie un nom pour qu'il soit valide comme nom de ressource Terraform"""
    cleaned = re.sub(r'[^a-zA-Z0-9_]', '_', name)
    if not cleaned or not cleaned[0].isalpha():
        cleaned = 'r_' + cleaned
    return cleaned


class ResourceNamer:
    """Attribue des noms de ressources uniques au sein d'un fichier"""

    def __init__(self, reserved: Iterable[str] = ()):
        self.used = set(reserved)

    def name(self, raw: str) -> str:
        base = clean_resource_name(raw)
        candidate = base
        index = 2
        while candidate in self.used:
            candidate = f'{base}_{index}'
            index += 1
        self.used.add(candidate)
        return candidate


def unique_by(records: Iterable[Dict[str, Any]], key: Callable[[Dict[str, Any]], str]) -> List[Dict[str, Any]]:
    """Garde le premier enregistrement pour chaque clé (les clés for_each doivent être uniques)"""
    seen = set()
    result = []
    for record in records:
        identifier = key(record)
        if identifier in seen:
            continue
        seen.add(identifier)
        result.append(record)
    return result


def merged_local(name: str, collection: str, function: str = 'concat') -> Tuple[str, hcl.Expression]:
    """local.<name> = concat(local.exported_<name>, var.<collection>)"""
    return name, hcl.Expression(f'{function}(local.exported_{name}, var.{collection})')


class ModuleTemplate:
    """Trio de fichiers d'une fonctionnalité: définition, paramètres, sorties"""

    def __init__(self, directory: str, title: str, resources: str, variables: str, outputs: str):
        self.directory = directory
        self.title = title
        self.resources = resources
        self.variables = variables
        self.outputs = outputs

    def render_main(self, realm: str, local_values: Sequence[Tuple[str, Any]],
                    blocks: Sequence[hcl.Block] = ()) -> str:
        items: List[Any] = [hcl.Comment(f'{self.title} for realm: {realm}')]
        items.append(hcl.Block('locals', body=local_values))
        items.extend(blocks)
        if self.resources:
            items.append(self.resources)
        return hcl.render(items)

    def emit(self, realm: str, parent: str, local_values: Sequence[Tuple[str, Any]],
             blocks: Sequence[hcl.Block] = (), outputs: Optional[str] = None) -> List[GeneratedFile]:
        base = f'{parent}/{self.directory}'
        return [
            GeneratedFile(f'{base}/main.{TF_EXTENSION}', self.render_main(realm, local_values, blocks)),
            GeneratedFile(f'{base}/variables.{TF_EXTENSION}', self.variables),
            GeneratedFile(f'{base}/outputs.{TF_EXTENSION}', outputs if outputs is not None else self.outputs),
        ]
