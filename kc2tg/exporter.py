"""
Export d'un realm depuis l'API d'administration Keycloak (lecture seule)

Gère les deux arborescences d'URL : Keycloak 17+ ("modern") et les versions
plus anciennes servies sous /auth ("legacy").
"""

import logging
import time
from typing import Any, Dict, List, Optional

import requests
import urllib3

logger = logging.getLogger(__name__)

LAYOUT_PREFIXES = {'modern': '', 'legacy': '/auth'}
USERS_PAGE_SIZE = 100

# Causes probables des échecs d'authentification, par code HTTP
AUTH_DIAGNOSTICS = {
    400: ["Format de requête incorrect", "Paramètres manquants ou invalides", "Grant type non supporté"],
    401: ["Nom d'utilisateur ou mot de passe incorrect", "Compte désactivé ou verrouillé",
          "Client ID incorrect (par défaut: admin-cli)", "Realm d'authentification inexistant"],
    403: ["Compte sans permissions suffisantes", "Client ID sans autorisation",
          "Realm avec restrictions d'accès"],
    404: ["URL Keycloak incorrecte", "Realm inexistant", "Endpoint d'authentification incorrect"],
}


class ExportError(Exception):
    """Échec d'un appel à l'API d'administration"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def describe_auth_failure(status_code: int) -> str:
    causes = AUTH_DIAGNOSTICS.get(status_code)
    if not causes:
        return f"Erreur d'authentification: {status_code}"
    return f"Erreur d'authentification: {status_code}. Causes possibles: " + '; '.join(causes)


def collect_client_secrets(document: Dict[str, Any]) -> Dict[str, str]:
    """Secrets récupérés pendant l'export, par client ID"""
    secrets = {}
    for client in document.get('clients') or []:
        if not isinstance(client, dict) or not client.get('clientId'):
            continue
        secret = client.get('secret')
        # les exports partiels masquent les secrets par des astérisques
        if isinstance(secret, str) and secret.strip('*'):
            secrets[client['clientId']] = secret
    return secrets


class KeycloakExporter:
    """Client de l'API d'administration Keycloak, authentifié par mot de passe"""

    def __init__(self, base_url: str, username: str, password: str, realm: str,
                 client_id: str = 'admin-cli', auth_realm: str = 'master', verify: bool = True,
                 timeout: int = 30, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.username = username
        self.password = password
        self.realm = realm
        self.client_id = client_id
        self.auth_realm = auth_realm
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.verify = verify
        if not verify:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
        self.layout: Optional[str] = None
        self.token: Optional[str] = None

    def detect_layout(self) -> str:
        """Détecte la version de Keycloak à partir de l'URL publique du realm d'authentification"""
        for layout, prefix in LAYOUT_PREFIXES.items():
            url = f'{self.base_url}{prefix}/realms/{self.auth_realm}'
            try:
                response = self.session.get(url, timeout=self.timeout)
            except requests.RequestException as e:
                logger.debug(f"Sonde {layout} en échec ({url}): {e}")
                continue
            if response.status_code == 200:
                logger.debug(f"Détection Keycloak {layout}")
                self.layout = layout
                return layout
        logger.debug("Impossible de détecter la version, utilisation du mode legacy par défaut")
        self.layout = 'legacy'
        return self.layout

    @property
    def prefix(self) -> str:
        if self.layout is None:
            self.detect_layout()
        return f'{self.base_url}{LAYOUT_PREFIXES[self.layout]}'

    @property
    def admin_base(self) -> str:
        return f'{self.prefix}/admin/realms/{self.realm}'

    def get_token(self) -> str:
        """Obtient un jeton d'accès (grant password)"""
        auth_url = f'{self.prefix}/realms/{self.auth_realm}/protocol/openid-connect/token'
        payload = {
            'grant_type': 'password',
            'client_id': self.client_id,
            'username': self.username,
            'password': self.password,
        }
        logger.debug(f"URL d'authentification: {auth_url} (client {self.client_id}, utilisateur {self.username})")
        try:
            response = self.session.post(auth_url, data=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise ExportError(f"Keycloak injoignable ({auth_url}): {e}") from e

        if response.status_code != 200:
            logger.debug(f"Réponse d'authentification: {response.text}")
            raise ExportError(describe_auth_failure(response.status_code), response.status_code)

        token = response.json().get('access_token')
        if not token:
            raise ExportError("Token d'accès non trouvé dans la réponse")
        self.token = token
        return token

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        if self.token is None:
            self.get_token()
        headers = {'Authorization': f'Bearer {self.token}', 'Content-Type': 'application/json'}
        url = f'{self.admin_base}{path}'
        try:
            return self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise ExportError(f"Erreur réseau sur {url}: {e}") from e

    def _get_json(self, path: str, **kwargs) -> Any:
        response = self._request('GET', path, **kwargs)
        if response.status_code != 200:
            raise ExportError(f"Erreur {response.status_code} sur {path}: {response.text}", response.status_code)
        return response.json()

    def export_realm(self, include_users: bool = False) -> Dict[str, Any]:
        """Export partiel du realm (clients, groupes et rôles), secrets des clients inclus"""
        start = time.time()
        params = {'exportClients': 'true', 'exportGroupsAndRoles': 'true'}
        response = self._request('POST', '/partial-export', params=params)
        if response.status_code == 405:
            logger.info("Erreur 405: méthode non autorisée, tentative avec GET")
            response = self._request('GET', '/partial-export', params=params)
        if response.status_code not in (200, 201):
            raise ExportError(f"Erreur lors de l'export: {response.status_code} {response.text}",
                              response.status_code)

        document = response.json()
        for client in document.get('clients') or []:
            self.fill_client_secret(client)
        if include_users:
            document['users'] = self.export_users()

        logger.info(f"Realm '{self.realm}' exporté en {time.time() - start:.1f}s")
        return document

    def fill_client_secret(self, client: Dict[str, Any]):
        """Les exports masquent les secrets: ils sont relus un par un"""
        if not isinstance(client, dict) or not client.get('id'):
            return
        if client.get('publicClient') or client.get('bearerOnly'):
            return
        response = self._request('GET', f"/clients/{client['id']}/client-secret")
        if response.status_code == 200:
            value = response.json().get('value')
            if value:
                client['secret'] = value
        else:
            logger.debug(f"Secret du client '{client.get('clientId')}' non lisible ({response.status_code})")

    def export_users(self) -> List[Dict[str, Any]]:
        """Utilisateurs du realm avec chemins de groupes et rôles de realm"""
        users = []
        first = 0
        while True:
            page = self._get_json('/users', params={'first': first, 'max': USERS_PAGE_SIZE})
            for user in page:
                users.append(self.describe_user(user))
            if len(page) < USERS_PAGE_SIZE:
                break
            first += USERS_PAGE_SIZE
        logger.info(f"{len(users)} utilisateurs exportés")
        return users

    def describe_user(self, user: Dict[str, Any]) -> Dict[str, Any]:
        user_id = user['id']
        groups = self._get_json(f'/users/{user_id}/groups')
        roles = self._get_json(f'/users/{user_id}/role-mappings/realm')
        described = {key: user[key] for key in ('username', 'email', 'firstName', 'lastName', 'enabled',
                                                'emailVerified', 'attributes', 'requiredActions') if key in user}
        described['groups'] = [group['path'] for group in groups if group.get('path')]
        described['realmRoles'] = [role['name'] for role in roles if role.get('name')]
        return described
