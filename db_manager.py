"""
MySQL / MariaDB базы через клиент mysql.
SQL всегда уходит через stdin, пароль администратора через временный defaults-файл.
"""

import logging
import os
import tempfile
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from command_runner import CommandRunner, check_value
from panel_config import PanelConfig
from panel_errors import ForbiddenOperation, InvalidArgument
from path_guard import check_password, require_name, require_token
from rollback import Rollback

logger = logging.getLogger(__name__)

SYSTEM_DATABASES = frozenset({'information_schema', 'performance_schema', 'mysql', 'sys'})
DEFAULT_HOST = 'localhost'

SIZES_QUERY = (
    "SELECT table_schema, COUNT(*), ROUND(SUM(data_length + index_length) / 1024 / 1024, 1) "
    "FROM information_schema.tables GROUP BY table_schema;"
)


def _option_value(value: str) -> str:
    return '"' + value.replace('\\', '\\\\').replace('"', '\\"') + '"'


class DatabaseManager:

    def __init__(self, config: PanelConfig, runner: CommandRunner):
        self.config = config
        self.runner = runner

    @contextmanager
    def _client_args(self) -> Iterator[List[str]]:
        """Аргументы подключения. Пароль не попадает в argv."""
        if not self.config.mysql_password:
            yield ['-u', self.config.mysql_user]
            return
        fd, path = tempfile.mkstemp(prefix='hostpanel-my-', suffix='.cnf')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write('[client]\n')
                f.write(f'user={_option_value(self.config.mysql_user)}\n')
                f.write(f'password={_option_value(self.config.mysql_password)}\n')
            yield [f'--defaults-extra-file={path}']
        finally:
            os.unlink(path)

    def _query(self, sql: str, database: Optional[str] = None) -> str:
        with self._client_args() as args:
            args = args + ['--skip-column-names', '-s', '--batch']
            if database:
                args.append(database)
            return self.runner.run('mysql', args, input=sql)

    def _name(self, raw: Optional[str]) -> str:
        return require_name(raw, 'database name')

    def list_databases(self) -> List[Dict[str, object]]:
        names = [n.strip() for n in self._query('SHOW DATABASES;').split('\n') if n.strip()]
        stats = {}
        for row in self._query(SIZES_QUERY).split('\n'):
            parts = row.split('\t')
            if len(parts) >= 3:
                size = parts[2] if parts[2] not in ('', 'NULL') else '0'
                stats[parts[0]] = (int(parts[1]) if parts[1].isdigit() else 0, size)

        databases = []
        for name in names:
            if name in SYSTEM_DATABASES:
                continue
            tables, size = stats.get(name, (0, '0'))
            databases.append({'name': name, 'size': f'{size} MB', 'tables': tables})
        return databases

    def create_database(self, name: str, db_user: Optional[str] = None, password: Optional[str] = None,
                        host: Optional[str] = None) -> Dict[str, object]:
        name = self._name(name)
        if name in SYSTEM_DATABASES:
            raise ForbiddenOperation('Cannot create a system database')
        user = require_name(db_user, 'database user') if db_user else ''
        host = require_token(host or DEFAULT_HOST, 'host')

        if user:
            password = check_password(password)
            if "'" in password or '\\' in password:
                raise InvalidArgument('Password contains disallowed character')
            check_value(password, 'password')

        user_created = False
        with Rollback(f'create database {name}') as rb:
            self._query(f"CREATE DATABASE `{name}` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci;")
            rb.add('database', lambda: self._query(f"DROP DATABASE IF EXISTS `{name}`;"))
            if user:
                # Существующий пользователь переиспользуется, пароль у него не меняется
                user_created = not self.user_exists(user, host)
                self._query(
                    f"CREATE USER IF NOT EXISTS '{user}'@'{host}' IDENTIFIED BY '{password}';\n"
                    f"GRANT ALL PRIVILEGES ON `{name}`.* TO '{user}'@'{host}';\n"
                    "FLUSH PRIVILEGES;\n"
                )

        logger.info(f"Database {name} created" + (f" with user {user}@{host}" if user else ''))
        return {'status': 'created', 'database': name, 'user': user, 'user_created': user_created}

    def user_exists(self, db_user: str, host: Optional[str] = None) -> bool:
        user = require_name(db_user, 'database user')
        host = require_token(host or DEFAULT_HOST, 'host')
        out = self._query(f"SELECT COUNT(*) FROM mysql.user WHERE User='{user}' AND Host='{host}';")
        return out.strip() not in ('', '0')

    def drop_database(self, name: str) -> Dict[str, str]:
        name = self._name(name)
        if name in SYSTEM_DATABASES:
            raise ForbiddenOperation('Cannot drop system database')
        self._query(f"DROP DATABASE `{name}`;")
        logger.info(f"Database {name} dropped")
        return {'status': 'dropped', 'database': name}

    def drop_user(self, db_user: str, host: Optional[str] = None) -> None:
        user = require_name(db_user, 'database user')
        if user in ('root', 'mysql', 'mariadb.sys'):
            raise ForbiddenOperation('Cannot drop a system account')
        host = require_token(host or DEFAULT_HOST, 'host')
        self._query(f"DROP USER IF EXISTS '{user}'@'{host}';")
        logger.info(f"Database user {user}@{host} dropped")

    def list_tables(self, name: str) -> Dict[str, object]:
        name = self._name(name)
        out = self._query('SHOW TABLES;', database=name)
        return {'database': name, 'tables': [t.strip() for t in out.split('\n') if t.strip()]}

    def database_exists(self, name: str) -> bool:
        name = self._name(name)
        return name in [n.strip() for n in self._query('SHOW DATABASES;').split('\n')]
