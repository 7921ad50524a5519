"""
WordPress сайты через WP-CLI.
wp всегда запускается от www-data, секреты передаются через --prompt и stdin.
"""

import json
import logging
import os
import secrets
import string
from pathlib import Path
from typing import Dict, List, Optional

from command_runner import CommandRunner
from db_manager import DatabaseManager
from panel_config import PanelConfig
from panel_errors import NotFound, ValidationError
from path_guard import check_password, is_valid_email, require_name, resolve_under
from rollback import Rollback
from service_manager import reload_service
from vhost_manager import PHP_VERSIONS, VhostManager, validate_domain

logger = logging.getLogger(__name__)

WP_USER = 'www-data'
WEB_OWNER = 'www-data:www-data'
MAX_DB_USER_LENGTH = 16

PLUGIN_ACTIONS = ('activate', 'deactivate', 'delete', 'update')
THEME_ACTIONS = ('activate', 'delete', 'update')

_PASSWORD_ALPHABET = string.ascii_letters + string.digits


def random_password(length: int = 20) -> str:
    return ''.join(secrets.choice(_PASSWORD_ALPHABET) for _ in range(length))


def default_db_name(domain: str) -> str:
    return 'wp_' + domain.replace('.', '_').replace('-', '_')


def build_wp_nginx_config(domain: str, docroot: str, php_version: str) -> str:
    php_socket = f'/run/php/php{php_version}-fpm.sock'
    return f"""server {{
    listen 80;
    listen [::]:80;

    server_name {domain} www.{domain};
    root {docroot};
    index index.php index.html;

    access_log /var/log/nginx/{domain}.access.log;
    error_log  /var/log/nginx/{domain}.error.log;

    client_max_body_size 64M;

    location / {{
        try_files $uri $uri/ /index.php?$args;
    }}

    location ~ \\.php$ {{
        include snippets/fastcgi-php.conf;
        fastcgi_pass unix:{php_socket};
        fastcgi_param SCRIPT_FILENAME $document_root$fastcgi_script_name;
        fastcgi_read_timeout 300;
    }}

    # WordPress security rules
    location ~* /(?:uploads|files)/.*\\.php$ {{ deny all; }}
    location ~ /\\. {{ deny all; }}
    location = /xmlrpc.php {{ deny all; }}
    location ~* /wp-config.php {{ deny all; }}

    # Cache static assets
    location ~* \\.(js|css|png|jpg|jpeg|gif|ico|svg|woff|woff2|ttf|eot)$ {{
        expires 30d;
        add_header Cache-Control "public, no-transform";
    }}

    add_header X-Frame-Options "SAMEORIGIN" always;
    add_header X-Content-Type-Options "nosniff" always;
}}
"""


def _quoted_value(line: str) -> str:
    """define( 'DB_NAME', 'value' ); -> value"""
    parts = line.split("'")
    return parts[3] if len(parts) >= 4 else ''


def read_wp_config(path: Path) -> Dict[str, str]:
    values = {'db_name': '', 'db_user': ''}
    try:
        text = path.read_text(encoding='utf-8', errors='replace')
    except OSError:
        return values
    for line in text.split('\n'):
        if 'DB_NAME' in line:
            values['db_name'] = _quoted_value(line)
        elif 'DB_USER' in line:
            values['db_user'] = _quoted_value(line)
    return values


def read_wp_version(docroot: Path) -> str:
    try:
        text = (docroot / 'wp-includes' / 'version.php').read_text(encoding='utf-8', errors='replace')
    except OSError:
        return ''
    for line in text.split('\n'):
        if '$wp_version' in line and '=' in line:
            parts = line.split("'")
            return parts[1] if len(parts) >= 2 else ''
    return ''


class WordPressManager:

    def __init__(self, config: PanelConfig, runner: CommandRunner):
        self.config = config
        self.runner = runner
        self.databases = DatabaseManager(config, runner)
        self.vhosts = VhostManager(config, runner)

    def _domain(self, raw: Optional[str]) -> str:
        return validate_domain(raw)

    def site_dir(self, domain: str) -> str:
        return resolve_under(self.config.web_root, domain)

    def find_docroot(self, domain: str) -> Optional[Path]:
        site = Path(self.site_dir(domain))
        for candidate in (site / 'public_html', site):
            if (candidate / 'wp-config.php').is_file():
                return candidate
        return None

    def _require_docroot(self, domain: str) -> Path:
        docroot = self.find_docroot(self._domain(domain))
        if docroot is None:
            raise NotFound('WordPress site not found')
        return docroot

    def wp(self, docroot, args: List[str], input: Optional[str] = None, timeout: Optional[int] = None) -> str:
        return self.runner.run('wp', [f'--path={docroot}'] + list(args), input=input,
                               user=WP_USER, timeout=timeout or self.config.long_command_timeout)

    # ==================== Sites ====================

    def list_sites(self) -> List[Dict[str, object]]:
        web_root = Path(self.config.web_root)
        if not web_root.is_dir():
            return []
        sites = []
        for entry in sorted(web_root.iterdir()):
            if not entry.is_dir() or entry.name.startswith('.'):
                continue
            docroot = None
            for candidate in (entry / 'public_html', entry):
                if (candidate / 'wp-config.php').is_file():
                    docroot = candidate
                    break
            if docroot is None:
                continue
            wp_config = read_wp_config(docroot / 'wp-config.php')
            enabled_conf = self.vhosts.enabled_path(entry.name)
            try:
                ssl = 'ssl_certificate' in enabled_conf.read_text(encoding='utf-8')
            except OSError:
                ssl = False
            sites.append({
                'domain': entry.name,
                'path': str(docroot),
                'wp_version': read_wp_version(docroot),
                'db_name': wp_config['db_name'],
                'db_user': wp_config['db_user'],
                'active': True,
                'ssl': ssl,
            })
        return sites

    def create_site(self, data: Dict[str, object]) -> Dict[str, str]:
        """
        Database, document root, WordPress core, wp-config and the nginx vhost.
        Any failing step undoes the ones before it.
        """
        domain = self._domain(data.get('domain'))
        title = str(data.get('site_title') or domain).strip()
        admin_user = require_name(data.get('admin_user') or 'admin', 'admin user')
        admin_email = str(data.get('admin_email') or f'admin@{domain}').strip()
        if not is_valid_email(admin_email):
            raise ValidationError('Invalid admin email')
        admin_pass = str(data.get('admin_pass') or '') or random_password()
        check_password(admin_pass, 'admin password')
        db_name = require_name(data.get('db_name') or default_db_name(domain), 'database name')
        db_user = require_name(data.get('db_user') or default_db_name(domain)[:MAX_DB_USER_LENGTH], 'database user')
        db_pass = str(data.get('db_pass') or '') or random_password()
        php = str(data.get('php') or self.config.php_version)
        if php not in PHP_VERSIONS:
            raise ValidationError(f'Unsupported PHP version: {php}')

        site_dir = self.site_dir(domain)
        docroot = f'{site_dir}/public_html'
        if self.vhosts.available_path(domain).exists():
            raise ValidationError(f'Vhost {domain} already exists')
        if self.find_docroot(domain) is not None:
            raise ValidationError(f'WordPress is already installed for {domain}')
        if self.databases.user_exists(db_user):
            raise ValidationError(f'Database user {db_user} already exists')
        site_url = f'http://{domain}'

        with Rollback(f'create WordPress site {domain}') as rb:
            created = self.databases.create_database(db_name, db_user, db_pass)
            rb.add('database', lambda: self.databases.drop_database(db_name))
            if created['user_created']:
                rb.add('database user', lambda: self.databases.drop_user(db_user))

            existed = os.path.isdir(site_dir)
            self.runner.run('mkdir', ['-p', docroot])
            if not existed:
                rb.add('site directory', lambda: self.runner.run('rm', ['-rf', site_dir]))
            self.runner.run('chown', ['-R', WEB_OWNER, site_dir])

            self.wp(docroot, ['core', 'download', '--locale=en_US'])
            self.wp(docroot, [
                'config', 'create',
                f'--dbname={db_name}',
                f'--dbuser={db_user}',
                '--dbhost=localhost',
                '--dbcharset=utf8mb4',
                '--prompt=dbpass',
            ], input=f'{db_pass}\n')
            self.wp(docroot, [
                'core', 'install',
                f'--url={site_url}',
                f'--title={title}',
                f'--admin_user={admin_user}',
                f'--admin_email={admin_email}',
                '--skip-email',
                '--prompt=admin_password',
            ], input=f'{admin_pass}\n')
            self.runner.run('chown', ['-R', WEB_OWNER, site_dir])

            self.vhosts.install_config(rb, domain, build_wp_nginx_config(domain, docroot, php))

        logger.info(f"WordPress site {domain} created (db {db_name})")
        reload_service(self.runner, 'nginx')
        return {
            'status': 'created',
            'domain': domain,
            'db_name': db_name,
            'db_user': db_user,
            'db_pass': db_pass,
            'admin_user': admin_user,
            'admin_pass': admin_pass,
            'site_url': site_url,
            'wp_admin': f'{site_url}/wp-admin',
        }

    def delete_site(self, domain: str, delete_db: bool = False) -> Dict[str, str]:
        domain = self._domain(domain)
        docroot = self.find_docroot(domain)
        wp_config = read_wp_config(docroot / 'wp-config.php') if docroot else {'db_name': '', 'db_user': ''}
        site_dir = self.site_dir(domain)

        removed_conf = self.vhosts.remove_config(domain)
        if docroot is None and not removed_conf:
            raise NotFound('WordPress site not found')
        if os.path.isdir(site_dir):
            self.runner.run('rm', ['-rf', site_dir])
        if delete_db:
            self.databases.drop_database(wp_config['db_name'] or default_db_name(domain))
            if wp_config['db_user']:
                self.databases.drop_user(wp_config['db_user'])

        logger.info(f"WordPress site {domain} deleted (delete_db={delete_db})")
        reload_service(self.runner, 'nginx')
        return {'status': 'deleted'}

    # ==================== Plugins / themes ====================

    def _list_json(self, domain: str, kind: str) -> List[Dict[str, object]]:
        docroot = self._require_docroot(domain)
        out = self.wp(docroot, [kind, 'list', '--format=json'])
        try:
            items = json.loads(out or '[]')
        except json.JSONDecodeError:
            logger.warning(f"wp {kind} list returned non-JSON output for {domain}")
            return []
        return items if isinstance(items, list) else []

    def _install(self, domain: str, kind: str, name: str, activate: bool) -> Dict[str, str]:
        docroot = self._require_docroot(domain)
        name = require_name(name, f'{kind} name')
        args = [kind, 'install', name]
        if activate:
            args.append('--activate')
        self.wp(docroot, args)
        self.runner.run('chown', ['-R', WEB_OWNER, self.site_dir(self._domain(domain))])
        logger.info(f"WordPress {kind} {name} installed on {domain}")
        return {'status': 'installed', kind: name}

    def _action(self, domain: str, kind: str, name: str, action: str, allowed) -> Dict[str, str]:
        if action not in allowed:
            raise ValidationError(f"action must be one of: {', '.join(allowed)}")
        docroot = self._require_docroot(domain)
        name = require_name(name, f'{kind} name')
        self.wp(docroot, [kind, action, name])
        logger.info(f"WordPress {kind} {name} on {domain}: {action}")
        return {'status': action + 'd', kind: name}

    def list_plugins(self, domain: str) -> List[Dict[str, object]]:
        return self._list_json(domain, 'plugin')

    def install_plugin(self, domain: str, name: str, activate: bool = False) -> Dict[str, str]:
        return self._install(domain, 'plugin', name, activate)

    def plugin_action(self, domain: str, name: str, action: str) -> Dict[str, str]:
        return self._action(domain, 'plugin', name, action, PLUGIN_ACTIONS)

    def list_themes(self, domain: str) -> List[Dict[str, object]]:
        return self._list_json(domain, 'theme')

    def install_theme(self, domain: str, name: str, activate: bool = False) -> Dict[str, str]:
        return self._install(domain, 'theme', name, activate)

    def theme_action(self, domain: str, name: str, action: str) -> Dict[str, str]:
        return self._action(domain, 'theme', name, action, THEME_ACTIONS)

    # ==================== Maintenance ====================

    def update_core(self, domain: str) -> Dict[str, str]:
        out = self.wp(self._require_docroot(domain), ['core', 'update'])
        return {'status': 'updated', 'output': out}

    def flush_cache(self, domain: str) -> Dict[str, str]:
        docroot = self._require_docroot(domain)
        self.wp(docroot, ['cache', 'flush'])
        self.wp(docroot, ['rewrite', 'flush'])
        return {'status': 'flushed'}

    def set_maintenance(self, domain: str, enable: bool) -> Dict[str, str]:
        docroot = self._require_docroot(domain)
        self.wp(docroot, ['maintenance-mode', 'activate' if enable else 'deactivate'])
        return {'status': 'enabled' if enable else 'disabled'}
