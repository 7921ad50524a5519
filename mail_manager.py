"""
Почта: виртуальные домены и ящики Postfix + учётные данные Dovecot (passwd-file).
"""

import base64
import hashlib
import logging
import re
import secrets
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import line_store
from command_runner import CommandRunner
from panel_config import PanelConfig
from panel_errors import NotFound, ValidationError
from path_guard import check_password, confine, is_valid_email, is_valid_hostname, require_token
from rollback import Rollback
from service_manager import reload_service

logger = logging.getLogger(__name__)

DEFAULT_QUOTA = '1G'
MAIL_OWNER = 'vmail:vmail'
MAILDIR_SUBDIRS = ('cur', 'new', 'tmp')
PASSWORD_SCHEME = 'SSHA512'

_QUOTA_RE = re.compile(r'^\d+[KMGT]?$')


def hash_password(password: str, salt: Optional[bytes] = None) -> str:
    """Dovecot {SSHA512}: base64(sha512(password + salt) + salt)."""
    salt = salt if salt is not None else secrets.token_bytes(16)
    digest = hashlib.sha512(password.encode('utf-8') + salt).digest()
    return '{%s}%s' % (PASSWORD_SCHEME, base64.b64encode(digest + salt).decode('ascii'))


def verify_password(password: str, credential: str) -> bool:
    prefix = '{%s}' % PASSWORD_SCHEME
    if not credential.startswith(prefix):
        return False
    raw = base64.b64decode(credential[len(prefix):])
    digest, salt = raw[:64], raw[64:]
    return secrets.compare_digest(hashlib.sha512(password.encode('utf-8') + salt).digest(), digest)


def _is_data_line(line: str) -> bool:
    stripped = line.strip()
    return bool(stripped) and not stripped.startswith('#')


def _first_field(line: str) -> str:
    parts = line.split()
    return parts[0] if parts else ''


def _map_email(line: str) -> str:
    return _first_field(line) if _is_data_line(line) else ''


def _credential_email(line: str) -> str:
    return line.split(':', 1)[0].strip() if _is_data_line(line) else ''


def _domain_of(email: str) -> str:
    return email.rsplit('@', 1)[1] if '@' in email else ''


class MailManager:

    def __init__(self, config: PanelConfig, runner: CommandRunner):
        self.config = config
        self.runner = runner

    @property
    def domains_file(self) -> Path:
        return Path(self.config.postfix_virtual_domains)

    @property
    def maps_file(self) -> Path:
        return Path(self.config.postfix_virtual_maps)

    @property
    def credentials_file(self) -> Path:
        return Path(self.config.dovecot_passwd)

    def _domain(self, raw: Optional[str]) -> str:
        domain = require_token(raw, 'domain')
        if not is_valid_hostname(domain):
            raise ValidationError('Invalid domain')
        return domain.lower()

    def _split_email(self, raw: Optional[str]) -> Tuple[str, str]:
        raw = (raw or '').strip()
        if not is_valid_email(raw):
            raise ValidationError('Invalid email address')
        local, _, domain = raw.rpartition('@')
        local = require_token(local, 'mailbox name')
        return local, self._domain(domain)

    def _mailbox_dir(self, domain: str, user: Optional[str] = None) -> str:
        relative = f'{domain}/{user}' if user else domain
        return confine(self.config.mail_storage_base, relative)

    def _reload(self) -> None:
        reload_service(self.runner, 'postfix')

    def _postmap(self) -> None:
        self.runner.run('postmap', [str(self.maps_file)])

    # ==================== Domains ====================

    def _domain_names(self) -> List[str]:
        return [_first_field(line) for line in line_store.read_records(self.domains_file, _is_data_line)]

    def count_mailboxes(self, domain: str) -> int:
        return sum(1 for line in line_store.read_lines(self.maps_file) if _domain_of(_map_email(line)) == domain)

    def list_domains(self) -> List[Dict[str, object]]:
        return [
            {'domain': name, 'mailboxes': self.count_mailboxes(name), 'active': True}
            for name in self._domain_names()
        ]

    def add_domain(self, domain: str) -> Dict[str, str]:
        domain = self._domain(domain)
        if domain in self._domain_names():
            raise ValidationError(f'Domain {domain} already exists')
        mail_dir = self._mailbox_dir(domain)

        with Rollback(f'add mail domain {domain}') as rb:
            line_store.append_line(self.domains_file, domain)
            rb.add('virtual_mailbox_domains entry',
                   lambda: line_store.remove_matching(self.domains_file, lambda l: _first_field(l) == domain))
            existed = Path(mail_dir).is_dir()
            self.runner.run('mkdir', ['-p', mail_dir])
            if not existed:
                rb.add('mail directory', lambda: self.runner.run('rm', ['-rf', mail_dir]))
            self.runner.run('chown', ['-R', MAIL_OWNER, mail_dir])

        logger.info(f"Mail domain {domain} added")
        self._reload()
        return {'status': 'created', 'domain': domain}

    def delete_domain(self, domain: str, purge: bool = False) -> Dict[str, object]:
        """
        Drops the domain, its mailbox map lines and its credentials.
        Mail storage is removed only with purge=True.
        """
        domain = self._domain(domain)
        removed = line_store.remove_matching(
            self.domains_file, lambda l: _is_data_line(l) and _first_field(l) == domain)
        if not removed:
            raise NotFound(f'Mail domain not found: {domain}')

        mailboxes = line_store.remove_matching(self.maps_file, lambda l: _domain_of(_map_email(l)) == domain)
        line_store.remove_matching(self.credentials_file, lambda l: _domain_of(_credential_email(l)) == domain)
        if mailboxes:
            self._postmap()
        if purge:
            self.runner.run('rm', ['-rf', self._mailbox_dir(domain)])

        logger.info(f"Mail domain {domain} deleted ({mailboxes} mailbox(es), purge={purge})")
        self._reload()
        return {'status': 'deleted', 'mailboxes_removed': mailboxes}

    # ==================== Mailboxes ====================

    def list_mailboxes(self, domain: Optional[str] = None) -> List[Dict[str, object]]:
        domain_filter = self._domain(domain) if domain else None
        mailboxes = []
        for line in line_store.read_lines(self.maps_file):
            email = _map_email(line)
            if '@' not in email:
                continue
            user, _, mail_domain = email.rpartition('@')
            if domain_filter and mail_domain != domain_filter:
                continue
            mailboxes.append({'email': email, 'user': user, 'domain': mail_domain, 'active': True})
        return mailboxes

    def create_mailbox(self, email: str, password: str, quota: Optional[str] = None) -> Dict[str, str]:
        user, domain = self._split_email(email)
        email = f'{user}@{domain}'
        password = check_password(password)
        quota = (quota or DEFAULT_QUOTA).strip().upper()
        if not _QUOTA_RE.match(quota):
            raise ValidationError('Invalid quota (examples: 500M, 1G)')
        if any(_map_email(line) == email for line in line_store.read_lines(self.maps_file)):
            raise ValidationError(f'Mailbox {email} already exists')

        mail_dir = self._mailbox_dir(domain, user)
        domain_dir = self._mailbox_dir(domain)
        map_line = f'{email} {domain}/{user}/'
        credential_line = f'{email}:{hash_password(password)}:::::userdb_quota_rule=*:storage={quota}'

        with Rollback(f'create mailbox {email}') as rb:
            line_store.append_line(self.maps_file, map_line)
            rb.add('virtual_mailbox_maps entry',
                   lambda: line_store.remove_matching(self.maps_file, lambda l: _map_email(l) == email))

            self.runner.run('mkdir', ['-p'] + [f'{mail_dir}/{sub}' for sub in MAILDIR_SUBDIRS])
            rb.add('maildir', lambda: self.runner.run('rm', ['-rf', mail_dir]))
            self.runner.run('chown', ['-R', MAIL_OWNER, domain_dir])

            line_store.append_line(self.credentials_file, credential_line, mode=0o640)
            rb.add('dovecot credential',
                   lambda: line_store.remove_matching(self.credentials_file, lambda l: _credential_email(l) == email))

            self._postmap()

        logger.info(f"Mailbox {email} created (quota {quota})")
        self._reload()
        return {'status': 'created', 'email': email, 'quota': quota}

    def delete_mailbox(self, email: str) -> Dict[str, str]:
        """Mail storage is left on disk."""
        user, domain = self._split_email(email)
        email = f'{user}@{domain}'
        removed = line_store.remove_matching(self.maps_file, lambda l: _map_email(l) == email)
        removed += line_store.remove_matching(self.credentials_file, lambda l: _credential_email(l) == email)
        if not removed:
            raise NotFound(f'Mailbox not found: {email}')
        self._postmap()
        logger.info(f"Mailbox {email} deleted")
        self._reload()
        return {'status': 'deleted'}

    # ==================== Queue ====================

    def get_queue(self) -> Dict[str, str]:
        return {'queue': self.runner.run('postqueue', ['-p'])}

    def flush_queue(self) -> Dict[str, str]:
        self.runner.run('postqueue', ['-f'])
        logger.info("Mail queue flushed")
        return {'status': 'flushed'}
