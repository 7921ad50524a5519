"""Shared fixtures: a config rooted in tmp_path and a runner that records instead of executing."""

import os
import subprocess
import sys
import threading
from collections import namedtuple

import pytest
from werkzeug.security import generate_password_hash

sys.path.insert(0, os.path.abspath(os.path.dirname(os.path.dirname(__file__))))
from command_runner import CommandRunner
from panel_config import PanelConfig

ADMIN_PASSWORD = 's3cret-pass'

Call = namedtuple('Call', 'name args user input timeout argv')


class RecordingRunner(CommandRunner):
    """Goes through the real allowlist/argv checks, then records the call instead of spawning it."""

    def __init__(self, elevation=('sudo', '-n'), timeout=20):
        super().__init__(elevation, timeout)
        self.calls = []
        self._rules = []
        self._lock = threading.Lock()

    def respond(self, name, stdout='', stderr='', returncode=0, when=None):
        self._rules.append((name, when, stdout, stderr, returncode))

    def fail(self, name, stderr='failed', when=None, stdout=''):
        self.respond(name, stdout=stdout, stderr=stderr, returncode=1, when=when)

    def named(self, name):
        return [c for c in self.calls if c.name == name]

    def commands(self):
        return [[c.name] + list(c.args) for c in self.calls]

    def _execute(self, argv, input, timeout):
        rest = list(argv[len(self.elevation):])
        user = None
        if rest[:1] == ['-u']:
            user, rest = rest[1], rest[2:]
        call = Call(rest[0], rest[1:], user, input, timeout, list(argv))
        with self._lock:
            self.calls.append(call)
        for name, when, stdout, stderr, returncode in reversed(self._rules):
            if name == call.name and (when is None or when(call)):
                return subprocess.CompletedProcess(argv, returncode, stdout, stderr)
        return subprocess.CompletedProcess(argv, 0, '', '')


@pytest.fixture
def runner():
    return RecordingRunner()


@pytest.fixture
def config(tmp_path):
    etc = tmp_path / 'etc'
    web_root = tmp_path / 'www'
    web_root.mkdir()
    return PanelConfig(
        admin_username='admin',
        admin_password_hash=generate_password_hash(ADMIN_PASSWORD),
        secret_key='test-secret',
        session_dir=tmp_path / 'sessions',
        cron_dir=tmp_path / 'crontabs',
        system_crontab=etc / 'crontab',
        bind_zones_dir=etc / 'bind' / 'zones',
        bind_named_local=etc / 'bind' / 'named.conf.local',
        postfix_virtual_domains=etc / 'postfix' / 'virtual_mailbox_domains',
        postfix_virtual_maps=etc / 'postfix' / 'virtual_mailbox_maps',
        dovecot_passwd=etc / 'dovecot' / 'users',
        mail_storage_base=tmp_path / 'vmail',
        vsftpd_userlist=etc / 'vsftpd.userlist',
        nginx_sites_available=etc / 'nginx' / 'sites-available',
        nginx_sites_enabled=etc / 'nginx' / 'sites-enabled',
        web_root=web_root,
        passwd_file=etc / 'passwd',
        shadow_file=etc / 'shadow',
        os_release_file=etc / 'os-release',
        proc_dir=tmp_path / 'proc',
    )
