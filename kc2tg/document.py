"""
Accès aux champs optionnels d'un export de realm Keycloak

L'export est un arbre JSON sans schéma garanti. Chaque lecture passe par
read() avec une forme attendue et une valeur par défaut: une valeur absente
ou de mauvaise forme donne la valeur par défaut, une valeur présente mais
"fausse" (False, 0, "") est conservée telle quelle.
"""

import json
from typing import Any, Dict, List, Optional, Sequence, Union

Path = Union[str, Sequence[str]]


def _keys(path: Path) -> Sequence[str]:
    return (path,) if isinstance(path, str) else path


def _matches(value: Any, shape: type) -> bool:
    if shape is bool:
        return isinstance(value, bool)
    if shape is int:
        if isinstance(value, float):
            return value.is_integer()
        return isinstance(value, int) and not isinstance(value, bool)
    return isinstance(value, shape)


def read(data: Any, path: Path, shape: type, default: Any) -> Any:
    """Lit data[path] si la valeur a la forme attendue, sinon retourne default"""
    current = data
    for key in _keys(path):
        if not isinstance(current, dict) or key not in current:
            return default
        current = current[key]
    if not _matches(current, shape):
        return default
    if shape is int:
        return int(current)
    return current


def read_str(data: Any, path: Path, default: str = '') -> str:
    return read(data, path, str, default)


def read_bool(data: Any, path: Path, default: bool) -> bool:
    return read(data, path, bool, default)


def read_int(data: Any, path: Path, default: int) -> int:
    return read(data, path, int, default)


def read_list(data: Any, path: Path) -> List[Any]:
    return read(data, path, list, [])


def read_dict(data: Any, path: Path) -> Dict[str, Any]:
    return read(data, path, dict, {})


def read_records(data: Any, path: Path) -> List[Dict[str, Any]]:
    """Liste d'objets: les éléments qui ne sont pas des objets sont ignorés"""
    return [item for item in read_list(data, path) if isinstance(item, dict)]


def read_strings(data: Any, path: Path) -> List[str]:
    return [item for item in read_list(data, path) if isinstance(item, str)]


def stringify(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, sort_keys=True)


def read_string_map(data: Any, path: Path) -> Dict[str, str]:
    """Map chaîne → chaîne (config des mappers, attributs de clients)"""
    result = {}
    for key, value in read_dict(data, path).items():
        text = stringify(value)
        if text is not None:
            result[str(key)] = text
    return result


def read_multi_map(data: Any, path: Path) -> Dict[str, List[str]]:
    """Attributs multi-valués Keycloak: {"clé": ["v1", "v2"]}"""
    result = {}
    for key, value in read_dict(data, path).items():
        if isinstance(value, list):
            result[str(key)] = [text for text in map(stringify, value) if text is not None]
        else:
            text = stringify(value)
            if text is not None:
                result[str(key)] = [text]
    return result


def read_config_value(config: Any, key: str, default: str = '') -> str:
    """Valeur d'un composant: les configs de composants sont des listes de chaînes"""
    if not isinstance(config, dict) or key not in config:
        return default
    value = config[key]
    if isinstance(value, list):
        value = value[0] if value else None
    text = stringify(value)
    return default if text is None else text


def non_empty_list(data: Any, path: Path) -> bool:
    return len(read_list(data, path)) > 0


def non_empty_dict(data: Any, path: Path) -> bool:
    return len(read_dict(data, path)) > 0


def realm_name(document: Any) -> Optional[str]:
    """Nom du realm, ou None si l'export n'en a pas"""
    name = read_str(document, 'realm', '')
    return name if name.strip() else None


def is_plausible_realm_document(document: Any) -> bool:
    """Vérification minimale d'un export Keycloak (présence du nom du realm)"""
    return realm_name(document) is not None
