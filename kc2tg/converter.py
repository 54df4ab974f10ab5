"""
Conversion d'un export de realm Keycloak en arborescence de modules Terraform

convert() est totale et déterministe : un export invalide donne un unique
fichier de diagnostic, jamais une exception.
"""

import logging
import re
from typing import Any, List, Optional

from kc2tg import features
from kc2tg.builtins import strip_builtin
from kc2tg.document import realm_name
from kc2tg.models import TF_EXTENSION, ConversionOptions, GeneratedFile
from kc2tg.modules.realm import emit_infrastructure, emit_realm

logger = logging.getLogger(__name__)

MISSING_REALM = '# Could not parse realm file: missing "realm" property'
NOT_AN_OBJECT = '# Could not parse realm file: not a JSON object (missing "realm" property)'
INTERNAL_ERROR = '# Could not convert realm file: internal error while converting'
DEFAULT_STEM = 'realm'


def path_segment(name: str) -> str:
    """Rend un nom utilisable comme segment de chemin"""
    segment = name.replace('/', '-').replace('\\', '-')
    if segment in ('.', '..'):
        segment = segment.replace('.', '_')
    return segment


def source_stem(source_file_name: str) -> str:
    """Nom du fichier source sans répertoire ni extension"""
    base = re.split(r'[\\/]', source_file_name or '')[-1]
    stem = re.sub(r'\.[^.]+$', '', base)
    return path_segment(stem) or DEFAULT_STEM


class RealmConverter:
    """Assemble les fichiers du realm, des fonctionnalités détectées et de l'infrastructure"""

    def __init__(self, options: Optional[ConversionOptions] = None):
        self.options = options or ConversionOptions()

    def diagnostic(self, source_file_name: str, message: str = MISSING_REALM) -> List[GeneratedFile]:
        path = f'{self.options.root_namespace}/realms/{source_stem(source_file_name)}/main.{TF_EXTENSION}'
        return [GeneratedFile(path, message)]

    def convert(self, document: Any, source_file_name: str) -> List[GeneratedFile]:
        if not isinstance(document, dict):
            logger.debug(f"{source_file_name}: l'export n'est pas un objet JSON")
            return self.diagnostic(source_file_name, NOT_AN_OBJECT)
        realm = realm_name(document)
        if realm is None:
            logger.debug(f"{source_file_name}: propriété 'realm' absente")
            return self.diagnostic(source_file_name)

        if self.options.skip_builtin:
            document = strip_builtin(document, realm)

        namespace = self.options.root_namespace
        realm_dir = path_segment(realm)
        parent = f'{namespace}/realms/{realm_dir}'
        present = features.detect(document)

        files = emit_realm(document, realm, parent, present, self.options.provider_version)
        for feature in present:
            logger.debug(f"Génération du module {feature.key}")
            files.extend(feature.emitter(feature.select(document), realm, parent))
        files.extend(emit_infrastructure(realm, realm_dir, namespace, self.options.provider_version))
        return files


def convert(document: Any, source_file_name: str, options: Optional[ConversionOptions] = None) -> List[GeneratedFile]:
    """Convertit un export de realm en liste ordonnée de fichiers générés"""
    converter = RealmConverter(options)
    try:
        return converter.convert(document, source_file_name)
    except Exception:
        logger.exception(f"Erreur inattendue lors de la conversion de {source_file_name}")
        return converter.diagnostic(source_file_name, INTERNAL_ERROR)
