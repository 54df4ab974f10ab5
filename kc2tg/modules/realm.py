"""
Module racine du realm et infrastructure Keycloak

Le trio du realm (keycloak_realm.this + appels des sous-modules) et les deux
fichiers d'infrastructure sont toujours générés, quelles que soient les
fonctionnalités détectées.
"""

import logging
from typing import Any, List, Sequence

from kc2tg import hcl
from kc2tg.document import read, read_bool, read_dict, read_int, read_str
from kc2tg.features import Feature, dependencies_of
from kc2tg.models import DEFAULT_PROVIDER_VERSION, TF_EXTENSION, GeneratedFile
from kc2tg.modules.base import clean_resource_name, module_name

logger = logging.getLogger(__name__)

REALM_DEFAULTS = {
    'enabled': True,
    'userManagedAccessAllowed': False,
    'registrationAllowed': False,
    'registrationEmailAsUsername': False,
    'editUsernameAllowed': False,
    'resetPasswordAllowed': False,
    'rememberMe': False,
    'verifyEmail': False,
    'loginWithEmailAllowed': True,
    'duplicateEmailsAllowed': False,
    'sslRequired': 'external',
    'revokeRefreshToken': False,
    'refreshTokenMaxReuse': 0,
    'offlineSessionMaxLifespanEnabled': False,
}

# Durées en secondes, rendues sous la forme "300s"
LIFESPAN_DEFAULTS = (
    ('accessTokenLifespan', 'access_token_lifespan', 300),
    ('accessTokenLifespanForImplicitFlow', 'access_token_lifespan_for_implicit_flow', 900),
    ('ssoSessionIdleTimeout', 'sso_session_idle_timeout', 1800),
    ('ssoSessionMaxLifespan', 'sso_session_max_lifespan', 36000),
    ('offlineSessionIdleTimeout', 'offline_session_idle_timeout', 2592000),
    ('offlineSessionMaxLifespan', 'offline_session_max_lifespan', 5184000),
    ('accessCodeLifespan', 'access_code_lifespan', 60),
    ('accessCodeLifespanUserAction', 'access_code_lifespan_user_action', 300),
    ('accessCodeLifespanLogin', 'access_code_lifespan_login', 1800),
    ('actionTokenGeneratedByAdminLifespan', 'action_token_generated_by_admin_lifespan', 43200),
    ('actionTokenGeneratedByUserLifespan', 'action_token_generated_by_user_lifespan', 300),
)

FLAGS = (
    ('userManagedAccessAllowed', 'user_managed_access'),
    ('registrationAllowed', 'registration_allowed'),
    ('registrationEmailAsUsername', 'registration_email_as_username'),
    ('editUsernameAllowed', 'edit_username_allowed'),
    ('resetPasswordAllowed', 'reset_password_allowed'),
    ('rememberMe', 'remember_me'),
    ('verifyEmail', 'verify_email'),
    ('loginWithEmailAllowed', 'login_with_email_allowed'),
    ('duplicateEmailsAllowed', 'duplicate_emails_allowed'),
)

THEMES = (
    ('loginTheme', 'login_theme'),
    ('accountTheme', 'account_theme'),
    ('adminTheme', 'admin_theme'),
    ('emailTheme', 'email_theme'),
)

OTP_DEFAULTS = {
    'otpPolicyAlgorithm': 'HmacSHA1',
    'otpPolicyDigits': 6,
    'otpPolicyInitialCounter': 0,
    'otpPolicyLookAheadWindow': 1,
    'otpPolicyPeriod': 30,
}

SECURITY_HEADERS = (
    ('xFrameOptions', 'x_frame_options'),
    ('contentSecurityPolicy', 'content_security_policy'),
    ('contentSecurityPolicyReportOnly', 'content_security_policy_report_only'),
    ('xContentTypeOptions', 'x_content_type_options'),
    ('xRobotsTag', 'x_robots_tag'),
    ('xXSSProtection', 'x_xss_protection'),
    ('strictTransportSecurity', 'strict_transport_security'),
    ('referrerPolicy', 'referrer_policy'),
)

BRUTE_FORCE_DEFAULTS = (
    ('permanentLockout', 'permanent_lockout', False),
    ('failureFactor', 'max_login_failures', 30),
    ('waitIncrementSeconds', 'wait_increment_seconds', 60),
    ('quickLoginCheckMilliSeconds', 'quick_login_check_milli_seconds', 1000),
    ('minimumQuickLoginWaitSeconds', 'minimum_quick_login_wait_seconds', 60),
    ('maxFailureWaitSeconds', 'max_failure_wait_seconds', 900),
    ('maxDeltaTimeSeconds', 'failure_reset_time_seconds', 43200),
)

SECRET_VARIABLES = '''variable "client_secrets" {
  description = "Client secrets keyed by client ID (masked in realm exports)"
  type        = map(string)
  default     = {}
  sensitive   = true
}

variable "identity_provider_secrets" {
  description = "Identity provider client secrets keyed by alias"
  type        = map(string)
  default     = {}
  sensitive   = true
}

variable "ldap_bind_credentials" {
  description = "LDAP bind credentials keyed by provider name"
  type        = map(string)
  default     = {}
  sensitive   = true
}

variable "smtp_password" {
  description = "Password of the SMTP server account"
  type        = string
  default     = ""
  sensitive   = true
}
'''

SECRET_NAMES = ('client_secrets', 'identity_provider_secrets', 'ldap_bind_credentials', 'smtp_password')

INFRASTRUCTURE_VARIABLES = '''variable "keycloak_url" {
  description = "Keycloak server URL"
  type        = string
  default     = "http://localhost:8080"
}

variable "keycloak_base_path" {
  description = "Context path of the Keycloak server (\\"/auth\\" on legacy distributions)"
  type        = string
  default     = ""
}

variable "keycloak_auth_realm" {
  description = "Realm used to authenticate the provider"
  type        = string
  default     = "master"
}

variable "keycloak_client_id" {
  description = "Keycloak admin client ID"
  type        = string
  default     = "admin-cli"
}

variable "keycloak_client_secret" {
  description = "Keycloak admin client secret (client credentials grant)"
  type        = string
  default     = ""
  sensitive   = true
}

variable "keycloak_username" {
  description = "Keycloak admin username (password grant)"
  type        = string
  default     = ""
}

variable "keycloak_password" {
  description = "Keycloak admin password (password grant)"
  type        = string
  default     = ""
  sensitive   = true
}

''' + SECRET_VARIABLES


def required_providers(provider_version: str) -> hcl.Block:
    providers = hcl.Block('required_providers')
    providers.add('keycloak', {'source': 'keycloak/keycloak', 'version': provider_version})
    return hcl.Block('terraform', body=[providers])


def _seconds(document: Any, key: str, default: int) -> str:
    return f'{read_int(document, key, default)}s'


def realm_resource(document: Any, realm: str) -> hcl.Block:
    """Ressource keycloak_realm avec les réglages de l'export"""
    block = hcl.Block('resource', ['keycloak_realm', 'this'])
    block.add('realm', realm)
    block.add('enabled', read_bool(document, 'enabled', REALM_DEFAULTS['enabled']))
    block.add('display_name', read_str(document, 'displayName', realm))
    display_name_html = read_str(document, 'displayNameHtml')
    if display_name_html:
        block.add('display_name_html', display_name_html)

    for source, target in FLAGS:
        block.add(target, read_bool(document, source, REALM_DEFAULTS[source]))
    block.add('ssl_required', read_str(document, 'sslRequired', REALM_DEFAULTS['sslRequired']))

    for source, target in THEMES:
        theme = read_str(document, source)
        if theme:
            block.add(target, theme)

    password_policy = read_str(document, 'passwordPolicy')
    if password_policy:
        block.add('password_policy', password_policy)

    for source, target, default in LIFESPAN_DEFAULTS:
        block.add(target, _seconds(document, source, default))
    block.add('offline_session_max_lifespan_enabled',
              read_bool(document, 'offlineSessionMaxLifespanEnabled',
                        REALM_DEFAULTS['offlineSessionMaxLifespanEnabled']))
    block.add('revoke_refresh_token', read_bool(document, 'revokeRefreshToken', REALM_DEFAULTS['revokeRefreshToken']))
    block.add('refresh_token_max_reuse', read_int(document, 'refreshTokenMaxReuse',
                                                  REALM_DEFAULTS['refreshTokenMaxReuse']))

    for nested in (internationalization_block(document), otp_policy_block(document),
                   security_defenses_block(document), smtp_server_block(document)):
        if nested is not None:
            block.nest(nested)
    return block


def internationalization_block(document: Any):
    if not read_bool(document, 'internationalizationEnabled', False):
        return None
    locales = [locale for locale in read(document, 'supportedLocales', list, []) if isinstance(locale, str)]
    default_locale = read_str(document, 'defaultLocale') or (locales[0] if locales else 'en')
    if default_locale not in locales:
        locales.append(default_locale)
    block = hcl.Block('internationalization')
    block.add('supported_locales', locales)
    block.add('default_locale', default_locale)
    return block


def otp_policy_block(document: Any):
    policy_type = read_str(document, 'otpPolicyType')
    if not policy_type:
        return None
    block = hcl.Block('otp_policy')
    block.add('type', policy_type)
    block.add('algorithm', read_str(document, 'otpPolicyAlgorithm', OTP_DEFAULTS['otpPolicyAlgorithm']))
    block.add('digits', read_int(document, 'otpPolicyDigits', OTP_DEFAULTS['otpPolicyDigits']))
    block.add('initial_counter', read_int(document, 'otpPolicyInitialCounter', OTP_DEFAULTS['otpPolicyInitialCounter']))
    block.add('look_ahead_window', read_int(document, 'otpPolicyLookAheadWindow',
                                            OTP_DEFAULTS['otpPolicyLookAheadWindow']))
    block.add('period', read_int(document, 'otpPolicyPeriod', OTP_DEFAULTS['otpPolicyPeriod']))
    return block


def security_defenses_block(document: Any):
    headers = read_dict(document, 'browserSecurityHeaders')
    brute_force = read_bool(document, 'bruteForceProtected', False)
    if not headers and not brute_force:
        return None

    block = hcl.Block('security_defenses')
    if headers:
        headers_block = hcl.Block('headers')
        for source, target in SECURITY_HEADERS:
            if isinstance(headers.get(source), str):
                headers_block.add(target, headers[source])
        block.nest(headers_block)
    if brute_force:
        brute_force_block = hcl.Block('brute_force_detection')
        for source, target, default in BRUTE_FORCE_DEFAULTS:
            if isinstance(default, bool):
                brute_force_block.add(target, read_bool(document, source, default))
            else:
                brute_force_block.add(target, read_int(document, source, default))
        block.nest(brute_force_block)
    return block


def smtp_server_block(document: Any):
    smtp = read_dict(document, 'smtpServer')
    host = read_str(smtp, 'host')
    if not host:
        return None

    block = hcl.Block('smtp_server')
    block.add('host', host)
    for source, target in (('port', 'port'), ('from', 'from'), ('fromDisplayName', 'from_display_name'),
                           ('replyTo', 'reply_to'), ('replyToDisplayName', 'reply_to_display_name'),
                           ('envelopeFrom', 'envelope_from')):
        value = smtp.get(source)
        if isinstance(value, (str, int)) and not isinstance(value, bool) and str(value):
            block.add(target, str(value))
    # les drapeaux SMTP sont des chaînes "true"/"false" dans les exports
    block.add('starttls', str(smtp.get('starttls', 'false')).lower() == 'true')
    block.add('ssl', str(smtp.get('ssl', 'false')).lower() == 'true')
    if str(smtp.get('auth', 'false')).lower() == 'true':
        auth = hcl.Block('auth')
        auth.add('username', read_str(smtp, 'user'))
        auth.add('password', hcl.Expression('var.smtp_password'))
        block.nest(auth)
    return block


def module_block(feature: Feature, present: List[str]) -> hcl.Block:
    """Appel d'un sous-module avec ses entrées et ses dépendances"""
    block = hcl.Block('module', [module_name(feature.key)])
    block.add('source', f'./{feature.key}')
    block.add('realm_id', hcl.Expression('keycloak_realm.this.id'))
    for variable, source, output in feature.inputs:
        if source in present:
            block.add(variable, hcl.Expression(f'module.{module_name(source)}.{output}'))
    for secret in feature.secrets:
        block.add(secret, hcl.Expression(f'var.{secret}'))
    dependencies = dependencies_of(feature.key, present)
    if dependencies:
        block.add('depends_on', [hcl.Expression(f'module.{module_name(key)}') for key in dependencies])
    return block


def emit_realm(document: Any, realm: str, parent: str, features: Sequence[Feature],
               provider_version: str = DEFAULT_PROVIDER_VERSION) -> List[GeneratedFile]:
    """Génère le trio racine du realm"""
    present = [feature.key for feature in features]
    logger.debug(f"Modules du realm '{realm}': {', '.join(present) or 'aucun'}")

    items: List[Any] = [hcl.Comment(f'Keycloak realm: {realm}'), required_providers(provider_version),
                        realm_resource(document, realm)]
    items.extend(module_block(feature, present) for feature in features)

    outputs = [
        hcl.Block('output', ['realm_id'], [('description', 'ID of the realm'),
                                           ('value', hcl.Expression('keycloak_realm.this.id'))]),
        hcl.Block('output', ['realm_name'], [('description', 'Name of the realm'),
                                             ('value', hcl.Expression('keycloak_realm.this.realm'))]),
    ]
    for feature in features:
        for output in feature.outputs:
            value = hcl.Expression(f'module.{module_name(feature.key)}.{output}')
            outputs.append(hcl.Block('output', [output], [('value', value)]))

    return [
        GeneratedFile(f'{parent}/main.{TF_EXTENSION}', hcl.render(items)),
        GeneratedFile(f'{parent}/variables.{TF_EXTENSION}', SECRET_VARIABLES),
        GeneratedFile(f'{parent}/outputs.{TF_EXTENSION}', hcl.render(outputs)),
    ]


def emit_infrastructure(realm: str, realm_dir: str, namespace: str,
                        provider_version: str = DEFAULT_PROVIDER_VERSION) -> List[GeneratedFile]:
    """Génère les deux fichiers racine: connexion du provider et appel du module realm"""
    provider = hcl.Block('provider', ['keycloak'])
    provider.add('url', hcl.Expression('var.keycloak_url'))
    provider.add('base_path', hcl.Expression('var.keycloak_base_path'))
    provider.add('realm', hcl.Expression('var.keycloak_auth_realm'))
    provider.add('client_id', hcl.Expression('var.keycloak_client_id'))
    provider.add('client_secret', hcl.Expression('var.keycloak_client_secret'))
    provider.add('username', hcl.Expression('var.keycloak_username'))
    provider.add('password', hcl.Expression('var.keycloak_password'))

    module = f'realm_{clean_resource_name(realm_dir)}'
    realm_module = hcl.Block('module', [module])
    realm_module.add('source', f'./realms/{realm_dir}')
    for secret in SECRET_NAMES:
        realm_module.add(secret, hcl.Expression(f'var.{secret}'))

    items: List[Any] = [
        hcl.Comment(f'Keycloak infrastructure for realm: {realm}'),
        required_providers(provider_version),
        provider,
        realm_module,
        hcl.Block('output', ['keycloak_url'], [('value', hcl.Expression('var.keycloak_url'))]),
        hcl.Block('output', ['realm_id'], [('value', hcl.Expression(f'module.{module}.realm_id'))]),
    ]
    return [
        GeneratedFile(f'{namespace}/main.{TF_EXTENSION}', hcl.render(items)),
        GeneratedFile(f'{namespace}/variables.{TF_EXTENSION}', INFRASTRUCTURE_VARIABLES),
    ]

