"""
Единственная точка запуска внешних процессов.
Проверяет команду по allowlist, аргументы по списку метасимволов,
запускает через обёртку повышения прав (sudo) без shell и с таймаутом.
"""

import logging
import subprocess
import threading
from typing import Iterable, List, Optional, Sequence

from panel_errors import CommandNotAllowed, CommandTimeout, ExecutionFailure, InvalidArgument

logger = logging.getLogger(__name__)

# Critical security boundary: nothing outside this set is ever spawned.
ALLOWED_COMMANDS = frozenset({
    # users
    'useradd', 'userdel', 'usermod', 'passwd', 'chpasswd',
    # web / certificates
    'nginx', 'certbot', 'wp',
    # services / logs
    'systemctl', 'journalctl',
    # database client
    'mysql', 'mysqladmin',
    # mail
    'postmap', 'postqueue',
    # filesystem
    'mkdir', 'rm', 'mv', 'ls', 'cat', 'find', 'df', 'free', 'uptime',
    'ln', 'chmod', 'chown',
    # ad hoc cron runs
    'sh',
})

SHELL_METACHARACTERS = (';', '&', '|', '`', '$', '(', ')', '<', '>', '\n', '\r')

MAX_LOGGED_ARG = 80


def find_metacharacter(value: str) -> Optional[str]:
    for ch in SHELL_METACHARACTERS:
        if ch in value:
            return ch
    return None


def check_value(value: str, what: str = 'argument') -> str:
    """Reject a value that is headed for an interpreted file (zone line, SQL literal)."""
    ch = find_metacharacter(value)
    if ch is not None:
        raise InvalidArgument(f'{what} contains disallowed character {ch!r}')
    return value


def check_user(user: str) -> str:
    """Account name for `sudo -u`: no metacharacters and no leading '-'."""
    check_value(user, 'user')
    if user.startswith('-'):
        raise InvalidArgument('user must not start with "-"')
    return user


def _short(args: Sequence[str]) -> List[str]:
    return [a if len(a) <= MAX_LOGGED_ARG else a[:MAX_LOGGED_ARG] + '...' for a in args]


class CommandRunner:
    """Gatekeeper: validates and executes allowlisted system commands."""

    def __init__(self, elevation: Optional[Sequence[str]] = None, timeout: int = 20):
        self.elevation = list(elevation) if elevation is not None else ['sudo', '-n']
        self.timeout = timeout

    def check(self, name: str, args: Iterable[str] = ()) -> List[str]:
        """Validate without side effects. Returns the argument list."""
        if name not in ALLOWED_COMMANDS:
            raise CommandNotAllowed(f'Command {name!r} is not allowed')
        checked = []
        for arg in args:
            arg = str(arg)
            ch = find_metacharacter(arg)
            if ch is not None:
                raise InvalidArgument(f'Argument contains disallowed character {ch!r}')
            checked.append(arg)
        return checked

    def build_argv(self, name: str, args: Sequence[str], user: Optional[str] = None) -> List[str]:
        argv = list(self.elevation)
        if user:
            if not argv:
                raise CommandNotAllowed('Running as another user requires an elevation wrapper')
            argv += ['-u', user]
        return argv + [name] + list(args)

    def run(self, name: str, args: Iterable[str] = (), input: Optional[str] = None,
            timeout: Optional[int] = None, user: Optional[str] = None) -> str:
        """
        Run an allowlisted command and return its trimmed stdout.

        Secrets go through `input` (stdin), never through argv. On a nonzero
        exit the error carries the trimmed stderr, not stdout.
        """
        checked = self.check(name, args)
        if user is not None:
            check_user(user)
        argv = self.build_argv(name, checked, user=user)
        timeout = timeout or self.timeout

        logger.info(f"Executing {name} {_short(checked)}" + (f" as {user}" if user else ''))
        try:
            completed = self._execute(argv, input, timeout)
        except subprocess.TimeoutExpired:
            logger.error(f"Command {name} timed out after {timeout}s")
            raise CommandTimeout(f'Command {name} timed out after {timeout} seconds')
        except OSError as e:
            logger.error(f"Could not start {name}: {e}")
            raise ExecutionFailure(f'Could not start {name}: {e.strerror or e}')

        if completed.returncode != 0:
            stderr = (completed.stderr or '').strip()
            logger.warning(f"Command {name} exited with {completed.returncode}: {stderr}")
            raise ExecutionFailure(f'Command {name} failed: {stderr or "exit code " + str(completed.returncode)}')
        return (completed.stdout or '').strip()

    def spawn_detached(self, name: str, args: Iterable[str] = (), user: Optional[str] = None,
                       timeout: Optional[int] = None) -> threading.Thread:
        """
        Validate now, run later on a daemon thread. Fire and forget:
        no completion signal and no cancellation, the outcome is only logged.
        """
        checked = self.check(name, args)
        if user is not None:
            check_user(user)

        def _target():
            try:
                self.run(name, checked, user=user, timeout=timeout)
                logger.info(f"Background {name} finished")
            except ExecutionFailure as e:
                logger.error(f"Background {name} failed: {e.message}")

        t = threading.Thread(target=_target, name=f'detached-{name}', daemon=True)
        t.start()
        return t

    def _execute(self, argv: List[str], input: Optional[str], timeout: int) -> subprocess.CompletedProcess:
        return subprocess.run(
            argv,
            input=input,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
