"""
Nginx виртуальные хосты.
Конфиг лежит в sites-available/<domain>.conf, включённость определяется
наличием симлинка в sites-enabled.
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

import line_store
from command_runner import CommandRunner
from panel_config import PanelConfig
from panel_errors import NotFound, ValidationError
from path_guard import is_root, is_valid_email, is_valid_hostname, require_token, resolve_under
from rollback import Rollback
from service_manager import reload_service

logger = logging.getLogger(__name__)

CONF_SUFFIX = '.conf'
WEB_OWNER = 'www-data:www-data'
PHP_VERSIONS = ('8.3', '8.2', '8.1', '8.0', '7.4')


def validate_domain(raw: Optional[str]) -> str:
    domain = require_token(raw, 'domain')
    if not is_valid_hostname(domain):
        raise ValidationError('Invalid domain')
    return domain.lower()


def build_nginx_config(domain: str, docroot: str, php_version: str) -> str:
    php_socket = f'/run/php/php{php_version}-fpm.sock'
    return f"""server {{
    listen 80;
    listen [::]:80;

    server_name {domain} www.{domain};
    root {docroot};
    index index.php index.html index.htm;

    access_log /var/log/nginx/{domain}.access.log;
    error_log  /var/log/nginx/{domain}.error.log;

    location / {{
        try_files $uri $uri/ /index.php?$query_string;
    }}

    location ~ \\.php$ {{
        include snippets/fastcgi-php.conf;
        fastcgi_pass unix:{php_socket};
    }}

    location ~ /\\.ht {{
        deny all;
    }}

    # Security headers
    add_header X-Frame-Options "SAMEORIGIN" always;
    add_header X-Content-Type-Options "nosniff" always;
    add_header Referrer-Policy "no-referrer-when-downgrade" always;
}}
"""


def parse_vhost_conf(domain: str, text: str) -> Dict[str, object]:
    """Только то, что видно по подстрокам: root, ssl_certificate, сокет php-fpm."""
    vhost = {'domain': domain, 'docroot': '', 'ssl': False, 'php': '', 'enabled': False}
    for line in text.split('\n'):
        line = line.strip()
        if line.startswith('root '):
            vhost['docroot'] = line[len('root '):].rstrip(';').strip()
        if 'ssl_certificate' in line:
            vhost['ssl'] = True
        if 'php' in line and 'fpm' in line:
            for version in PHP_VERSIONS:
                if f'php{version}' in line:
                    vhost['php'] = version
                    break
    return vhost


class VhostManager:

    def __init__(self, config: PanelConfig, runner: CommandRunner):
        self.config = config
        self.runner = runner

    def _domain(self, raw: Optional[str]) -> str:
        return validate_domain(raw)

    def available_path(self, domain: str) -> Path:
        return Path(self.config.nginx_sites_available) / f'{domain}{CONF_SUFFIX}'

    def enabled_path(self, domain: str) -> Path:
        return Path(self.config.nginx_sites_enabled) / f'{domain}{CONF_SUFFIX}'

    def resolve_docroot(self, domain: str, docroot: Optional[str] = None) -> str:
        path = resolve_under(self.config.web_root, docroot or f'{domain}/public_html')
        if is_root(self.config.web_root, path):
            raise ValidationError('Document root cannot be the web root itself')
        return path

    def _reload(self) -> None:
        reload_service(self.runner, 'nginx')

    def _symlink(self, domain: str) -> bool:
        src, dst = self.available_path(domain), self.enabled_path(domain)
        if os.path.lexists(dst):
            return False
        dst.parent.mkdir(parents=True, exist_ok=True)
        os.symlink(src, dst)
        return True

    def _unlink(self, path: Path) -> bool:
        try:
            os.unlink(path)
            return True
        except FileNotFoundError:
            return False

    def install_config(self, rb: Rollback, domain: str, text: str) -> None:
        """Write the server block, enable it and run `nginx -t`. Undo steps go to rb."""
        conf = self.available_path(domain)
        line_store.write_text(conf, text)
        rb.add('nginx config', lambda: self._unlink(conf))
        if self._symlink(domain):
            rb.add('sites-enabled symlink', lambda: self._unlink(self.enabled_path(domain)))
        self.runner.run('nginx', ['-t'])

    def remove_config(self, domain: str) -> bool:
        removed_link = self._unlink(self.enabled_path(domain))
        removed_conf = self._unlink(self.available_path(domain))
        return removed_link or removed_conf

    def get_vhost(self, domain: str) -> Dict[str, object]:
        domain = self._domain(domain)
        conf = self.available_path(domain)
        if not conf.is_file():
            raise NotFound(f'Vhost not found: {domain}')
        vhost = parse_vhost_conf(domain, line_store.read_text(conf))
        vhost['enabled'] = os.path.lexists(self.enabled_path(domain))
        return vhost

    def list_vhosts(self) -> List[Dict[str, object]]:
        available = Path(self.config.nginx_sites_available)
        if not available.is_dir():
            return []
        vhosts = []
        for entry in sorted(available.iterdir()):
            if entry.is_dir() or not entry.name.endswith(CONF_SUFFIX):
                continue
            domain = entry.name[:-len(CONF_SUFFIX)]
            vhost = parse_vhost_conf(domain, line_store.read_text(entry))
            vhost['enabled'] = os.path.lexists(self.enabled_path(domain))
            vhosts.append(vhost)
        return vhosts

    def create_vhost(self, domain: str, docroot: Optional[str] = None, php: Optional[str] = None,
                     ssl: bool = False, email: Optional[str] = None) -> Dict[str, str]:
        """
        Writes the server block, creates the document root and enables the site.
        A failing `nginx -t` undoes the config and the symlink.
        """
        domain = self._domain(domain)
        php = php or self.config.php_version
        if php not in PHP_VERSIONS:
            raise ValidationError(f'Unsupported PHP version: {php}')
        conf = self.available_path(domain)
        if conf.exists():
            raise ValidationError(f'Vhost {domain} already exists')
        docroot = self.resolve_docroot(domain, docroot)

        with Rollback(f'create vhost {domain}') as rb:
            self.runner.run('mkdir', ['-p', docroot])
            self.runner.run('chown', [WEB_OWNER, docroot])
            self.install_config(rb, domain, build_nginx_config(domain, docroot, php))

        logger.info(f"Vhost {domain} created (docroot {docroot}, php {php})")
        self._reload()
        if ssl:
            self.enable_ssl(domain, email)
        return {'status': 'created', 'domain': domain, 'docroot': docroot}

    def delete_vhost(self, domain: str) -> Dict[str, str]:
        """The document root is kept."""
        domain = self._domain(domain)
        if not self.remove_config(domain):
            raise NotFound(f'Vhost not found: {domain}')
        logger.info(f"Vhost {domain} deleted")
        self._reload()
        return {'status': 'deleted'}

    def enable_vhost(self, domain: str) -> Dict[str, str]:
        domain = self._domain(domain)
        if not self.available_path(domain).is_file():
            raise NotFound(f'Vhost not found: {domain}')
        self._symlink(domain)
        logger.info(f"Vhost {domain} enabled")
        self._reload()
        return {'status': 'enabled'}

    def disable_vhost(self, domain: str) -> Dict[str, str]:
        domain = self._domain(domain)
        self._unlink(self.enabled_path(domain))
        logger.info(f"Vhost {domain} disabled")
        self._reload()
        return {'status': 'disabled'}

    def enable_ssl(self, domain: str, email: Optional[str] = None) -> Dict[str, str]:
        """certbot --nginx edits the server block and reloads nginx itself."""
        domain = self._domain(domain)
        args = ['--nginx', '-d', domain, '--non-interactive', '--agree-tos']
        if email:
            email = email.strip()
            if not is_valid_email(email):
                raise ValidationError('Invalid email address')
            args += ['--email', email]
        else:
            args.append('--register-unsafely-without-email')
        self.runner.run('certbot', args, timeout=self.config.long_command_timeout)
        logger.info(f"SSL enabled for {domain}")
        return {'status': 'ssl_enabled', 'domain': domain}
