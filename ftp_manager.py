"""
FTP пользователи vsftpd: системный пользователь без shell + строка в vsftpd.userlist.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import line_store
from command_runner import CommandRunner
from panel_config import PanelConfig
from panel_errors import ForbiddenOperation, NotFound, ValidationError
from path_guard import check_password, is_root, require_name, resolve_under
from rollback import Rollback
from service_manager import reload_service
from user_manager import read_passwd

logger = logging.getLogger(__name__)

FTP_SHELL = '/usr/sbin/nologin'


def _is_user_line(line: str) -> bool:
    stripped = line.strip()
    return bool(stripped) and not stripped.startswith('#')


class FtpManager:

    def __init__(self, config: PanelConfig, runner: CommandRunner):
        self.config = config
        self.runner = runner

    @property
    def userlist(self) -> Path:
        return Path(self.config.vsftpd_userlist)

    def _usernames(self) -> List[str]:
        return [line.strip() for line in line_store.read_records(self.userlist, _is_user_line)]

    def _reload(self) -> None:
        reload_service(self.runner, 'vsftpd')

    def resolve_home(self, username: str, home_dir: Optional[str] = None) -> str:
        """Home directory confined under the web root. Defaults to <web_root>/<username>."""
        web_root = self.config.web_root
        home = resolve_under(web_root, (home_dir or '').strip() or username)
        if is_root(web_root, home):
            raise ForbiddenOperation('Home directory cannot be the web root itself')
        return home

    def list_users(self) -> List[Dict[str, object]]:
        homes = {entry['username']: entry['home'] for entry in read_passwd(self.config.passwd_file)}
        users = []
        for username in self._usernames():
            home = homes.get(username) or str(Path(self.config.web_root) / username)
            users.append({'username': username, 'home_dir': home, 'active': True})
        return users

    def create_user(self, username: str, password: str, home_dir: Optional[str] = None) -> Dict[str, str]:
        username = require_name(username, 'username')
        password = check_password(password)
        if username in self._usernames():
            raise ValidationError(f'FTP user {username} already exists')
        home = self.resolve_home(username, home_dir)

        with Rollback(f'create FTP user {username}') as rb:
            self.runner.run('useradd', ['-m', '-d', home, '-s', FTP_SHELL, '--', username])
            rb.add('system user', lambda: self.runner.run('userdel', ['--', username]))
            self.runner.run('chpasswd', [], input=f'{username}:{password}\n')
            self.runner.run('chown', [f'{username}:{username}', home])
            line_store.append_line(self.userlist, username)

        logger.info(f"FTP user {username} created with home {home}")
        self._reload()
        return {'status': 'created', 'username': username, 'home_dir': home}

    def delete_user(self, username: str) -> Dict[str, str]:
        """Files in the home directory are kept."""
        username = require_name(username, 'username')
        removed = line_store.remove_matching(self.userlist, lambda l: l.strip() == username)
        if not removed:
            raise NotFound(f'FTP user not found: {username}')
        with Rollback(f'delete FTP user {username}') as rb:
            rb.add('vsftpd.userlist entry', lambda: line_store.append_line(self.userlist, username))
            self.runner.run('userdel', ['--', username])

        logger.info(f"FTP user {username} deleted")
        self._reload()
        return {'status': 'deleted'}

    def update_password(self, username: str, password: str) -> Dict[str, str]:
        username = require_name(username, 'username')
        password = check_password(password)
        if username not in self._usernames():
            raise NotFound(f'FTP user not found: {username}')
        self.runner.run('chpasswd', [], input=f'{username}:{password}\n')
        logger.info(f"FTP password updated for {username}")
        return {'status': 'updated'}
