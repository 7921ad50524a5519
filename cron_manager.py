"""
Cron задачи: пользовательские crontab в cron_dir и системный /etc/crontab (только чтение).
Задачи адресуются позицией в файле, а не постоянным идентификатором.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import cron_codec
import line_store
from command_runner import CommandRunner
from panel_config import PanelConfig
from panel_errors import NotFound, ValidationError
from path_guard import require_name

logger = logging.getLogger(__name__)

CRONTAB_MODE = 0o600
DEFAULT_USER = 'root'


class CronManager:

    def __init__(self, config: PanelConfig, runner: CommandRunner):
        self.config = config
        self.runner = runner

    def crontab_path(self, user: str) -> Path:
        return Path(self.config.cron_dir) / user

    def _user(self, raw: Optional[str]) -> str:
        return require_name(raw or DEFAULT_USER, 'user')

    def _read_user(self, user: str) -> List[cron_codec.CronJob]:
        path = self.crontab_path(user)
        if not path.is_file():
            return []
        return cron_codec.parse_cron_lines(line_store.read_text(path), user)

    def list_jobs(self, user: Optional[str] = None) -> List[cron_codec.CronJob]:
        """One user's crontab, or every crontab in the spool plus the system crontab."""
        if user:
            return self._read_user(require_name(user, 'user'))

        jobs = []
        cron_dir = Path(self.config.cron_dir)
        if cron_dir.is_dir():
            for entry in sorted(cron_dir.iterdir()):
                if entry.is_file() and not entry.name.startswith('.'):
                    jobs.extend(self._read_user(entry.name))
        system_crontab = Path(self.config.system_crontab)
        if system_crontab.is_file():
            jobs.extend(cron_codec.parse_cron_lines(line_store.read_text(system_crontab), 'system', system=True))
        return jobs

    def _build_line(self, data: Dict[str, str]) -> str:
        fields = []
        for key in cron_codec.SCHEDULE_FIELDS:
            value = str(data.get(key) or '').strip()
            if not cron_codec.is_valid_cron_field(value):
                raise ValidationError(f'Invalid cron field {key}: {value!r}')
            fields.append(value)
        command = str(data.get('command') or '').strip()
        if not command:
            raise ValidationError('Command is required')
        if '\n' in command or '\r' in command:
            raise ValidationError('Command must be a single line')
        return cron_codec.format_cron_line(*fields, command)

    def create_job(self, data: Dict[str, str]) -> Dict[str, str]:
        user = self._user(data.get('user'))
        line = self._build_line(data)
        line_store.append_line(self.crontab_path(user), line, mode=CRONTAB_MODE)
        logger.info(f"Cron job added for {user}: {line!r}")
        return {'status': 'created', 'user': user, 'cron': line}

    def update_job(self, position: int, data: Dict[str, str]) -> Dict[str, str]:
        user = self._user(data.get('user'))
        line = self._build_line(data)
        if not line_store.replace_at(self.crontab_path(user), cron_codec.is_cron_record, position, line):
            raise NotFound('Cron job not found')
        logger.info(f"Cron job {position} of {user} updated")
        return {'status': 'updated', 'user': user, 'cron': line}

    def delete_job(self, position: int, user: Optional[str] = None) -> Dict[str, str]:
        user = self._user(user)
        if not line_store.remove_at(self.crontab_path(user), cron_codec.is_cron_record, position):
            raise NotFound('Cron job not found')
        logger.info(f"Cron job {position} of {user} deleted")
        return {'status': 'deleted'}

    def run_now(self, position: int, user: Optional[str] = None) -> Dict[str, str]:
        """
        Start the job's command in the background as the crontab owner.
        Returns as soon as the command is launched.
        """
        user = self._user(user)
        for job in self._read_user(user):
            if job.position == position:
                self.runner.spawn_detached('sh', ['-c', job.command], user=user,
                                           timeout=self.config.long_command_timeout)
                logger.info(f"Cron job {position} of {user} triggered")
                return {'status': 'triggered', 'command': job.command}
        raise NotFound('Cron job not found')
