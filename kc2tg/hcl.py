"""
Représentation intermédiaire HCL et rendu centralisé

Toutes les valeurs issues de l'export passent par quote() : c'est le seul
endroit où les guillemets, retours à la ligne et interpolations Terraform
sont échappés.
"""

import math
import re
from typing import Any, Iterable, List, Sequence, Tuple, Union

INDENT = '  '
IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_-]*$')
RESERVED_KEYS = {'for', 'if', 'in', 'true', 'false', 'null'}


class Expression:
    """Expression HCL brute, rendue telle quelle (var.realm_id, concat(...))"""

    def __init__(self, text: str):
        self.text = text

    def __eq__(self, other):
        return isinstance(other, Expression) and other.text == self.text

    def __repr__(self):
        return f'Expression({self.text!r})'


class Comment:
    def __init__(self, text: str):
        self.text = text


class Block:
    """Bloc HCL: type, labels et corps ordonné (attributs et sous-blocs)"""

    def __init__(self, kind: str, labels: Sequence[str] = (), body: Iterable = ()):
        self.kind = kind
        self.labels = tuple(labels)
        self.body: List[Union[Tuple[str, Any], 'Block']] = list(body)

    def add(self, name: str, value: Any) -> 'Block':
        self.body.append((name, value))
        return self

    def nest(self, block: 'Block') -> 'Block':
        self.body.append(block)
        return self


def quote(value: str) -> str:
    """Produit une chaîne HCL entre guillemets"""
    out = []
    for char in value:
        if char == '\\':
            out.append('\\\\')
        elif char == '"':
            out.append('\\"')
        elif char == '\n':
            out.append('\\n')
        elif char == '\r':
            out.append('\\r')
        elif char == '\t':
            out.append('\\t')
        elif ord(char) < 0x20:
            out.append('\\u%04x' % ord(char))
        else:
            out.append(char)
    escaped = ''.join(out).replace('${', '$${').replace('%{', '%%{')
    return f'"{escaped}"'


def render_key(key: Any) -> str:
    key = str(key)
    if IDENTIFIER.match(key) and key not in RESERVED_KEYS:
        return key
    return quote(key)


def render_value(value: Any, indent: int = 0) -> str:
    if isinstance(value, Expression):
        return value.text
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return '0'
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, str):
        return quote(value)
    if isinstance(value, (list, tuple)):
        if not value:
            return '[]'
        pad = INDENT * (indent + 1)
        items = ''.join(f'{pad}{render_value(item, indent + 1)},\n' for item in value)
        return f'[\n{items}{INDENT * indent}]'
    if isinstance(value, dict):
        if not value:
            return '{}'
        pairs = [(render_key(key), item) for key, item in value.items()]
        return '{\n' + _render_attributes(pairs, indent + 1) + INDENT * indent + '}'
    return quote(str(value))


def _render_attributes(pairs: List[Tuple[str, Any]], indent: int) -> str:
    # alignement des '=' comme terraform fmt
    width = max(len(name) for name, _ in pairs)
    pad = INDENT * indent
    return ''.join(f'{pad}{name.ljust(width)} = {render_value(value, indent)}\n' for name, value in pairs)


def render_block(block: Block, indent: int = 0) -> str:
    pad = INDENT * indent
    header = ' '.join([block.kind] + [quote(label) for label in block.labels])
    if not block.body:
        return f'{pad}{header} {{\n{pad}}}\n'

    chunks = []
    run: List[Tuple[str, Any]] = []
    for item in block.body:
        if isinstance(item, Block):
            if run:
                chunks.append(_render_attributes(run, indent + 1))
                run = []
            chunks.append(render_block(item, indent + 1))
        else:
            run.append(item)
    if run:
        chunks.append(_render_attributes(run, indent + 1))

    return f'{pad}{header} {{\n' + '\n'.join(chunks) + f'{pad}}}\n'


def render_comment(comment: Comment) -> str:
    text = ' '.join(comment.text.splitlines())
    return f'# {text}\n'


def render(items: Iterable[Union[Block, Comment, str]]) -> str:
    """Rend un fichier complet: blocs séparés par une ligne vide"""
    parts = []
    for item in items:
        if isinstance(item, Block):
            parts.append(render_block(item))
        elif isinstance(item, Comment):
            parts.append(render_comment(item))
        else:
            parts.append(item if item.endswith('\n') else item + '\n')
    return '\n'.join(parts)
