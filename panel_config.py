"""
Конфигурация панели.
Читается один раз из окружения при старте процесса и передаётся явно
во все менеджеры и в create_app.
"""

import logging
import os
import secrets
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional

from werkzeug.security import generate_password_hash

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_PASSWORD = 'changeme'


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = (env.get(key) or '').strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {key}={raw!r}, using {default}")
        return default


@dataclass
class PanelConfig:
    admin_username: str = 'admin'
    admin_password_hash: str = ''
    secret_key: str = ''
    session_dir: Path = Path('/var/lib/hostpanel/sessions')
    port: int = 8080

    # Gatekeeper
    elevation: List[str] = field(default_factory=lambda: ['sudo', '-n'])
    command_timeout: int = 20
    long_command_timeout: int = 300

    # Cron
    cron_dir: Path = Path('/var/spool/cron/crontabs')
    system_crontab: Path = Path('/etc/crontab')

    # BIND
    bind_zones_dir: Path = Path('/etc/bind/zones')
    bind_named_local: Path = Path('/etc/bind/named.conf.local')
    bind_service: str = 'named'
    dns_serial_policy: str = 'clock'

    # Mail
    postfix_virtual_domains: Path = Path('/etc/postfix/virtual_mailbox_domains')
    postfix_virtual_maps: Path = Path('/etc/postfix/virtual_mailbox_maps')
    dovecot_passwd: Path = Path('/etc/dovecot/users')
    mail_storage_base: Path = Path('/var/mail/vhosts')

    # FTP
    vsftpd_userlist: Path = Path('/etc/vsftpd.userlist')

    # Web
    nginx_sites_available: Path = Path('/etc/nginx/sites-available')
    nginx_sites_enabled: Path = Path('/etc/nginx/sites-enabled')
    web_root: Path = Path('/var/www')
    php_version: str = '8.2'

    # System
    passwd_file: Path = Path('/etc/passwd')
    shadow_file: Path = Path('/etc/shadow')
    os_release_file: Path = Path('/etc/os-release')
    proc_dir: Path = Path('/proc')

    # MySQL
    mysql_user: str = 'root'
    mysql_password: str = ''

    # Limits
    max_read_bytes: int = 2 * 1024 * 1024
    max_upload_bytes: int = 100 * 1024 * 1024

    monitored_services: List[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.monitored_services:
            self.monitored_services = [
                'nginx', 'mariadb', 'ssh', 'postfix', 'dovecot',
                self.bind_service, 'vsftpd', 'fail2ban', 'cron',
            ]
        if not self.admin_password_hash:
            self.admin_password_hash = generate_password_hash(DEFAULT_ADMIN_PASSWORD)
        if not self.secret_key:
            self.secret_key = secrets.token_hex(32)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'PanelConfig':
        """Build the config from environment variables (os.environ by default)."""
        env = os.environ if environ is None else environ

        password_hash = (env.get('ADMIN_PASSWORD_HASH') or '').strip()
        if not password_hash:
            password = env.get('ADMIN_PASSWORD') or ''
            if not password:
                logger.warning("ADMIN_PASSWORD is not set, using the default password. Change it!")
                password = DEFAULT_ADMIN_PASSWORD
            password_hash = generate_password_hash(password)

        serial_policy = (env.get('DNS_SERIAL_POLICY') or 'clock').strip().lower()
        if serial_policy not in ('clock', 'monotonic'):
            logger.warning(f"Unknown DNS_SERIAL_POLICY={serial_policy!r}, falling back to 'clock'")
            serial_policy = 'clock'

        def path(key: str, default: str) -> Path:
            return Path(env.get(key) or default)

        return cls(
            admin_username=(env.get('ADMIN_USER') or 'admin').strip(),
            admin_password_hash=password_hash,
            secret_key=env.get('SECRET_KEY') or secrets.token_hex(32),
            session_dir=path('SESSION_DIR', '/var/lib/hostpanel/sessions'),
            port=_env_int(env, 'PORT', 8080),
            elevation=shlex.split(env.get('PANEL_ELEVATION', 'sudo -n')),
            command_timeout=_env_int(env, 'COMMAND_TIMEOUT', 20),
            long_command_timeout=_env_int(env, 'LONG_COMMAND_TIMEOUT', 300),
            cron_dir=path('CRON_DIR', '/var/spool/cron/crontabs'),
            system_crontab=path('SYSTEM_CRONTAB', '/etc/crontab'),
            bind_zones_dir=path('BIND_ZONES_DIR', '/etc/bind/zones'),
            bind_named_local=path('BIND_NAMED_LOCAL', '/etc/bind/named.conf.local'),
            bind_service=(env.get('BIND_SERVICE') or 'named').strip(),
            dns_serial_policy=serial_policy,
            postfix_virtual_domains=path('POSTFIX_VIRTUAL_DOMAINS', '/etc/postfix/virtual_mailbox_domains'),
            postfix_virtual_maps=path('POSTFIX_VIRTUAL_MAPS', '/etc/postfix/virtual_mailbox_maps'),
            dovecot_passwd=path('DOVECOT_PASSWD', '/etc/dovecot/users'),
            mail_storage_base=path('MAIL_STORAGE_BASE', '/var/mail/vhosts'),
            vsftpd_userlist=path('VSFTPD_USERLIST', '/etc/vsftpd.userlist'),
            nginx_sites_available=path('NGINX_SITES_AVAILABLE', '/etc/nginx/sites-available'),
            nginx_sites_enabled=path('NGINX_SITES_ENABLED', '/etc/nginx/sites-enabled'),
            web_root=path('WEB_ROOT', '/var/www'),
            php_version=(env.get('PHP_VERSION') or '8.2').strip(),
            mysql_user=(env.get('MYSQL_USER') or 'root').strip(),
            mysql_password=env.get('MYSQL_PASSWORD') or '',
            max_read_bytes=_env_int(env, 'MAX_READ_BYTES', 2 * 1024 * 1024),
            max_upload_bytes=_env_int(env, 'MAX_UPLOAD_BYTES', 100 * 1024 * 1024),
        )
