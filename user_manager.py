"""
Системные пользователи Linux (UID >= 1000).
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from command_runner import CommandRunner
from panel_config import PanelConfig
from panel_errors import ForbiddenOperation, ValidationError
from path_guard import check_password, require_name
from rollback import Rollback

logger = logging.getLogger(__name__)

MIN_UID = 1000
MAX_USERNAME_LENGTH = 32
DEFAULT_SHELL = '/bin/bash'
ALLOWED_SHELLS = ('/bin/bash', '/bin/sh', '/usr/sbin/nologin')
PROTECTED_USERS = frozenset({'root'})


def read_passwd(path: Union[str, Path]) -> List[Dict[str, str]]:
    """All entries of a passwd-format file. Unreadable file gives []."""
    try:
        text = Path(path).read_text(encoding='utf-8')
    except OSError as e:
        logger.warning(f"Cannot read {path}: {e}")
        return []
    entries = []
    for line in text.split('\n'):
        parts = line.split(':')
        if len(parts) < 7:
            continue
        entries.append({
            'username': parts[0],
            'uid': parts[2],
            'gid': parts[3],
            'home': parts[5],
            'shell': parts[6],
        })
    return entries


def read_locked(path: Union[str, Path]) -> set:
    # shadow без root не читается
    try:
        text = Path(path).read_text(encoding='utf-8')
    except OSError:
        return set()
    locked = set()
    for line in text.split('\n'):
        parts = line.split(':')
        if len(parts) >= 2 and parts[1].startswith('!'):
            locked.add(parts[0])
    return locked


class UserManager:

    def __init__(self, config: PanelConfig, runner: CommandRunner):
        self.config = config
        self.runner = runner

    def _username(self, raw: Optional[str]) -> str:
        username = require_name(raw, 'username')
        if len(username) > MAX_USERNAME_LENGTH:
            raise ValidationError('Invalid username')
        return username

    def _protect(self, username: str) -> None:
        if username in PROTECTED_USERS:
            raise ForbiddenOperation(f'User {username} is protected')

    def _shell(self, shell: Optional[str]) -> str:
        shell = shell or DEFAULT_SHELL
        if shell not in ALLOWED_SHELLS:
            raise ValidationError('Invalid shell')
        return shell

    def list_users(self) -> List[Dict[str, object]]:
        locked = read_locked(self.config.shadow_file)
        users = []
        for entry in read_passwd(self.config.passwd_file):
            if not entry['uid'].isdigit() or int(entry['uid']) < MIN_UID:
                continue
            users.append(dict(entry, locked=entry['username'] in locked))
        return users

    def create_user(self, username: str, password: str, shell: Optional[str] = None,
                    groups: Optional[str] = None) -> Dict[str, str]:
        username = self._username(username)
        self._protect(username)
        password = check_password(password)
        shell = self._shell(shell)

        args = ['-m', '-s', shell, '--', username]
        if groups:
            names = [require_name(g.strip(), 'group') for g in str(groups).split(',') if g.strip()]
            if names:
                args = ['-G', ','.join(names)] + args

        with Rollback(f'create user {username}') as rb:
            self.runner.run('useradd', args)
            rb.add('system user', lambda: self.runner.run('userdel', ['-r', '--', username]))
            self.runner.run('chpasswd', [], input=f'{username}:{password}\n')

        logger.info(f"User {username} created")
        return {'username': username, 'status': 'created'}

    def delete_user(self, username: str) -> Dict[str, str]:
        username = self._username(username)
        self._protect(username)
        self.runner.run('userdel', ['-r', '--', username])
        logger.info(f"User {username} deleted")
        return {'status': 'deleted', 'username': username}

    def update_user(self, username: str, password: Optional[str] = None,
                    shell: Optional[str] = None) -> Dict[str, str]:
        username = self._username(username)
        if password:
            password = check_password(password)
        if shell:
            shell = self._shell(shell)
        if password:
            self.runner.run('chpasswd', [], input=f'{username}:{password}\n')
        if shell:
            self.runner.run('usermod', ['-s', shell, '--', username])
        logger.info(f"User {username} updated")
        return {'status': 'updated'}

    def suspend_user(self, username: str) -> Dict[str, str]:
        username = self._username(username)
        self._protect(username)
        self.runner.run('usermod', ['-L', '--', username])
        logger.info(f"User {username} suspended")
        return {'status': 'suspended'}

    def activate_user(self, username: str) -> Dict[str, str]:
        username = self._username(username)
        self.runner.run('usermod', ['-U', '--', username])
        logger.info(f"User {username} activated")
        return {'status': 'active'}
