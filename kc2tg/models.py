"""
Types partagés par le convertisseur Keycloak vers Terragrunt
"""

from typing import Dict, NamedTuple

TF_EXTENSION = 'tf'
DEFAULT_NAMESPACE = 'keycloak'
DEFAULT_PROVIDER_VERSION = '~> 5.0'


class GeneratedFile(NamedTuple):
    """Un fichier généré: chemin relatif (séparateur '/') et contenu complet"""

    file_path: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {'filePath': self.file_path, 'content': self.content}


class ConversionOptions:
    """Options de conversion (espace de noms racine, filtrage des objets Keycloak)"""

    def __init__(self, root_namespace: str = DEFAULT_NAMESPACE, skip_builtin: bool = False,
                 provider_version: str = DEFAULT_PROVIDER_VERSION):
        self.root_namespace = root_namespace.strip('/') or DEFAULT_NAMESPACE
        self.skip_builtin = skip_builtin
        self.provider_version = provider_version

    def __repr__(self):
        return (f'ConversionOptions(root_namespace={self.root_namespace!r}, '
                f'skip_builtin={self.skip_builtin!r}, provider_version={self.provider_version!r})')
