#!/usr/bin/env python3
"""
Convertisseur d'export Keycloak vers une arborescence de modules Terragrunt

Usage:
    keycloak_to_terragrunt.py convert realm-export.json --output-dir terragrunt_output
    keycloak_to_terragrunt.py export --url https://sso.example.com --realm demo --username admin --password ...
"""

import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from kc2tg import ConversionOptions, convert, is_plausible_realm_document
from kc2tg.exporter import ExportError, KeycloakExporter, collect_client_secrets
from kc2tg.logging_config import setup_logging
from kc2tg.models import DEFAULT_NAMESPACE, DEFAULT_PROVIDER_VERSION, GeneratedFile
from kc2tg.writer import write_files

logger = logging.getLogger('kc2tg.cli')

DEFAULT_OUTPUT_DIR = 'terragrunt_output'


def load_realm_export(file_path: str) -> Dict[str, Any]:
    """Charge l'export Keycloak depuis un fichier JSON"""
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            document = json.load(f)
    except FileNotFoundError:
        logger.error(f"Fichier {file_path} non trouvé")
        sys.exit(1)
    except json.JSONDecodeError as e:
        logger.error(f"Erreur lors du parsing JSON: {e}")
        sys.exit(1)
    except OSError as e:
        logger.error(f"Lecture impossible de {file_path}: {e}")
        sys.exit(1)

    if not is_plausible_realm_document(document):
        logger.warning(f"{file_path} ne ressemble pas à un export de realm (propriété 'realm' absente)")
    return document


def say(args: argparse.Namespace, message: str):
    """Messages de progression, muets avec --json pour garder une sortie exploitable"""
    if not args.json:
        print(message)


def options_from_args(args: argparse.Namespace) -> ConversionOptions:
    return ConversionOptions(root_namespace=args.namespace, skip_builtin=args.skip_builtin,
                             provider_version=args.provider_version)


def emit(files: List[GeneratedFile], args: argparse.Namespace) -> int:
    """Écrit les fichiers générés, ou les affiche en JSON avec --json"""
    if args.json:
        print(json.dumps([generated.to_dict() for generated in files], ensure_ascii=False, indent=2))
        return 0
    try:
        written = write_files(files, args.output_dir)
    except (OSError, ValueError) as e:
        logger.error(f"Écriture impossible: {e}")
        return 1

    print(f"🎉 {len(written)} fichiers générés dans {args.output_dir}")
    print("\n📝 Prochaines étapes:")
    print(f"1. Renseignez les secrets (client_secrets, smtp_password, ...) pour {args.namespace}/variables.tf")
    print(f"2. Exécutez 'terraform init' puis 'terraform plan' dans {os.path.join(args.output_dir, args.namespace)}")
    return 0


def run_convert(args: argparse.Namespace) -> int:
    say(args, f"📥 Chargement de l'export Keycloak depuis {args.export_file}...")
    document = load_realm_export(args.export_file)

    say(args, "🔄 Génération des modules Terraform...")
    files = convert(document, os.path.basename(args.export_file), options_from_args(args))
    return emit(files, args)


def run_export(args: argparse.Namespace) -> int:
    missing = [name for name in ('url', 'realm', 'username', 'password') if not getattr(args, name)]
    if missing:
        logger.error(f"Paramètres manquants: {', '.join('--' + name for name in missing)}")
        return 1

    exporter = KeycloakExporter(args.url, args.username, args.password, args.realm,
                                client_id=args.client_id, auth_realm=args.auth_realm,
                                verify=not args.insecure)
    say(args, f"📡 Export du realm {args.realm} depuis {args.url}...")
    try:
        document = exporter.export_realm(include_users=args.include_users)
    except ExportError as e:
        logger.error(str(e))
        return 1

    try:
        if args.save_export:
            with open(args.save_export, 'w', encoding='utf-8') as f:
                json.dump(document, f, ensure_ascii=False, indent=4)
            say(args, f"💾 Export sauvegardé dans {args.save_export}")

        if args.secrets_file:
            with open(args.secrets_file, 'w', encoding='utf-8') as f:
                json.dump({'client_secrets': collect_client_secrets(document)}, f, indent=2)
            say(args, f"🔑 Secrets des clients sauvegardés dans {args.secrets_file}")
    except OSError as e:
        logger.error(f"Écriture impossible: {e}")
        return 1

    files = convert(document, f'{args.realm}.json', options_from_args(args))
    return emit(files, args)


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--output-dir", default=DEFAULT_OUTPUT_DIR, help="Répertoire de sortie")
    common.add_argument("--namespace", default=DEFAULT_NAMESPACE, help="Répertoire racine des modules générés")
    common.add_argument("--skip-builtin", action="store_true",
                        help="Exclure les objets créés automatiquement par Keycloak")
    common.add_argument("--provider-version", default=DEFAULT_PROVIDER_VERSION,
                        help="Contrainte de version du provider keycloak/keycloak")
    common.add_argument("--json", action="store_true", help="Afficher les fichiers en JSON au lieu de les écrire")
    common.add_argument("--debug", action="store_true", help="Mode debug")

    parser = argparse.ArgumentParser(description="Convertir un export Keycloak en modules Terraform/Terragrunt")
    subparsers = parser.add_subparsers(dest="command", required=True)

    convert_parser = subparsers.add_parser("convert", parents=[common], help="Convertir un fichier d'export")
    convert_parser.add_argument("export_file", help="Fichier d'export Keycloak (JSON)")
    convert_parser.set_defaults(handler=run_convert)

    export_parser = subparsers.add_parser("export", parents=[common],
                                          help="Exporter un realm depuis Keycloak puis le convertir")
    export_parser.add_argument("--url", default=os.environ.get('KEYCLOAK_URL'), help="URL de Keycloak")
    export_parser.add_argument("--realm", default=os.environ.get('KEYCLOAK_REALM'), help="Realm à exporter")
    export_parser.add_argument("--username", default=os.environ.get('KEYCLOAK_USERNAME'), help="Administrateur")
    export_parser.add_argument("--password", default=os.environ.get('KEYCLOAK_PASSWORD'), help="Mot de passe")
    export_parser.add_argument("--client-id", default=os.environ.get('KEYCLOAK_CLIENT_ID', 'admin-cli'),
                               help="Client utilisé pour l'authentification")
    export_parser.add_argument("--auth-realm", default="master", help="Realm d'authentification")
    export_parser.add_argument("--insecure", action="store_true", help="Ne pas vérifier le certificat TLS")
    export_parser.add_argument("--include-users", action="store_true", help="Exporter aussi les utilisateurs")
    export_parser.add_argument("--save-export", help="Sauvegarder l'export JSON brut dans ce fichier")
    export_parser.add_argument("--secrets-file", help="Écrire les secrets des clients (tfvars JSON) dans ce fichier")
    export_parser.set_defaults(handler=run_export)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Fonction principale"""
    args = build_parser().parse_args(argv)
    setup_logging(args.debug)
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
