"""
kc2tg : conversion d'exports de realm Keycloak en modules Terraform pour Terragrunt
"""

from kc2tg.converter import convert
from kc2tg.document import is_plausible_realm_document
from kc2tg.models import ConversionOptions, GeneratedFile

__version__ = '1.0.0'

__all__ = ['convert', 'is_plausible_realm_document', 'ConversionOptions', 'GeneratedFile']
