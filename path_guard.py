"""
Санитайзер и ограничение путей.
Всё, что попадает в аргумент команды или в путь к файлу, проходит через этот модуль.
"""

import ipaddress
import posixpath
import re
from pathlib import Path
from typing import Optional, Union

from panel_errors import PathEscape, ValidationError

_UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9._-]')
_EMAIL_RE = re.compile(r'^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$')
_HOSTNAME_RE = re.compile(r'^(?=.{1,253}$)[A-Za-z0-9_](?:[A-Za-z0-9_-]{0,62})(?:\.[A-Za-z0-9_-]{1,63})*\.?$')

MIN_PASSWORD_LENGTH = 8


def sanitize(raw: Optional[str]) -> str:
    """Strip every character outside [A-Za-z0-9._-]. Never raises."""
    if not raw:
        return ''
    return _UNSAFE_CHARS.sub('', str(raw))


def require_token(raw: Optional[str], what: str = 'value') -> str:
    """Sanitize and reject the empty result and the '.'/'..' names."""
    token = sanitize(raw)
    if not token or token in {'.', '..'}:
        raise ValidationError(f'Invalid {what}')
    return token


def require_name(raw: Optional[str], what: str = 'name') -> str:
    """require_token for account/package names: a leading '-' would be read as an option."""
    name = require_token(raw, what)
    if name.startswith('-'):
        raise ValidationError(f'Invalid {what}')
    return name


def confine(root: Union[str, Path], requested: Optional[str]) -> str:
    """
    Resolve `requested` under `root` lexically and refuse anything outside it.

    Empty input means the root itself. A leading slash is relative to the root.
    The path is cleaned after joining, so `..` segments that climb above the
    root are rejected instead of being absorbed.
    """
    root_str = posixpath.normpath(str(root))
    requested = requested or ''
    if '\x00' in requested:
        raise ValidationError('Invalid path')

    relative = requested.lstrip('/')
    candidate = posixpath.normpath(posixpath.join(root_str, relative)) if relative else root_str

    prefix = root_str if root_str.endswith('/') else root_str + '/'
    if candidate != root_str and not candidate.startswith(prefix):
        raise PathEscape()
    return candidate


def resolve_under(root: Union[str, Path], requested: Optional[str]) -> str:
    """Like confine, but an absolute path that already starts with root is taken as is."""
    root_str = posixpath.normpath(str(root))
    requested = (requested or '').strip()
    if root_str != '/' and (requested == root_str or requested.startswith(root_str + '/')):
        requested = requested[len(root_str):]
    return confine(root_str, requested)


def is_root(root: Union[str, Path], path: Union[str, Path]) -> bool:
    return posixpath.normpath(str(path)) == posixpath.normpath(str(root))


def relative_to_root(root: Union[str, Path], path: Union[str, Path]) -> str:
    """Путь для ответа клиенту: без префикса корня."""
    root_str = posixpath.normpath(str(root))
    rel = posixpath.normpath(str(path))[len(root_str):]
    return rel or '/'


def validate_entry_name(name: Optional[str]) -> str:
    """Validate a single file/folder name (no separators, no traversal)."""
    name = (name or '').strip()
    if not name:
        raise ValidationError('Name is required')
    if '/' in name or '\\' in name or '\x00' in name:
        raise ValidationError('Invalid name')
    if name in {'.', '..'}:
        raise ValidationError('Invalid name')
    return name


def is_valid_email(value: Optional[str]) -> bool:
    return bool(value) and bool(_EMAIL_RE.match(value))


def is_valid_hostname(value: Optional[str]) -> bool:
    return bool(value) and bool(_HOSTNAME_RE.match(value))


def check_password(password: Optional[str], what: str = 'password') -> str:
    """Пароль идёт через stdin команд, поэтому переводы строк запрещены."""
    password = password or ''
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f'{what} must be at least {MIN_PASSWORD_LENGTH} characters')
    if '\n' in password or '\r' in password or '\x00' in password:
        raise ValidationError(f'{what} contains disallowed characters')
    return password


def parse_ip(value: Optional[str], version: Optional[int] = None) -> str:
    try:
        address = ipaddress.ip_address((value or '').strip())
    except ValueError:
        raise ValidationError('Invalid IP address')
    if version and address.version != version:
        raise ValidationError(f'IPv{version} address required')
    return str(address)
