"""
Разбор и форматирование строк crontab.
"""

from dataclasses import asdict, dataclass
from typing import List, Optional

CRON_DIRECTIVES = ('MAILTO', 'PATH', 'SHELL')
SCHEDULE_FIELDS = ('minute', 'hour', 'day', 'month', 'weekday')

_FIELD_CHARS = frozenset('0123456789*/,-')


@dataclass
class CronJob:
    """
    One crontab line. `position` is the 1-based index among record lines
    of its file, recomputed on every read. It shifts when an earlier line
    is removed, so it is not an identifier.
    """
    position: int
    minute: str
    hour: str
    day: str
    month: str
    weekday: str
    command: str
    user: str
    schedule: str
    enabled: bool = True
    system: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def is_cron_record(line: str) -> bool:
    """Same test for listing, deleting and updating, so positions agree."""
    stripped = line.strip()
    if not stripped or stripped.startswith('#'):
        return False
    if stripped.startswith(CRON_DIRECTIVES):
        return False
    return len(stripped.split()) >= 6


def is_valid_cron_field(value: Optional[str]) -> bool:
    """Character-set check only: `5-2` or `99` pass."""
    if not value:
        return False
    return all(c in _FIELD_CHARS for c in value)


def human_readable(minute: str, hour: str, day: str, month: str, weekday: str) -> str:
    if minute == '*' and hour == '*' and day == '*' and month == '*' and weekday == '*':
        return 'Every minute'
    if minute == '0' and hour == '*':
        return 'Every hour'
    if minute == '0' and hour == '0' and day == '*' and month == '*' and weekday == '*':
        return 'Daily at midnight'
    if minute == '0' and hour == '0' and day == '*' and month == '*' and weekday == '0':
        return 'Weekly on Sunday'
    if minute == '0' and hour == '0' and day == '1':
        return 'Monthly on the 1st'
    return f'{minute} {hour} {day} {month} {weekday}'


def parse_cron_lines(text: str, user: str, system: bool = False) -> List[CronJob]:
    """
    System crontab lines carry a user column after the schedule,
    the job is then attributed to that user.
    """
    jobs = []
    position = 0
    for line in text.split('\n'):
        if not is_cron_record(line):
            continue
        position += 1
        parts = line.split()
        owner = user
        command_start = 5
        if system and len(parts) >= 7:
            owner = parts[5]
            command_start = 6
        jobs.append(CronJob(
            position=position,
            minute=parts[0],
            hour=parts[1],
            day=parts[2],
            month=parts[3],
            weekday=parts[4],
            command=' '.join(parts[command_start:]),
            user=owner,
            schedule=human_readable(*parts[:5]),
            system=system,
        ))
    return jobs


def format_cron_line(minute: str, hour: str, day: str, month: str, weekday: str, command: str) -> str:
    return f'{minute} {hour} {day} {month} {weekday} {command}'
