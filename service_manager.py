"""
Управление systemd сервисами: перезагрузка после изменения конфигов,
статус отслеживаемых сервисов, метрики системы и журналы.
"""

import logging
import os
import time
from pathlib import Path
from typing import Dict, List, Optional

from command_runner import CommandRunner
from panel_config import PanelConfig
from panel_errors import ExecutionFailure, ForbiddenOperation, ReloadFailed, ValidationError
from path_guard import require_name

logger = logging.getLogger(__name__)

# Демоны с корректным graceful reload. Остальные перезапускаются.
RELOADABLE_SERVICES = frozenset({'nginx', 'postfix', 'dovecot', 'named', 'bind9'})

SERVICE_ACTIONS = ('start', 'stop', 'restart')

MIN_LOG_LINES = 1
MAX_LOG_LINES = 2000
DEFAULT_LOG_LINES = 100


def reload_verb(service: str) -> str:
    return 'reload' if service in RELOADABLE_SERVICES else 'restart'


def reload_service(runner: CommandRunner, service: str) -> None:
    """
    Reload a daemon after its config changed on disk.

    The config change is never undone here: on failure ReloadFailed tells the
    caller the change was saved but the daemon still runs the old config.
    """
    try:
        if service == 'nginx':
            runner.run('nginx', ['-t'])
        runner.run('systemctl', [reload_verb(service), service])
    except ExecutionFailure as e:
        logger.error(f"Reload of {service} failed: {e.message}")
        raise ReloadFailed(service, e.message)
    logger.info(f"{service} reloaded")


def parse_systemctl_show(raw: str) -> Dict[str, str]:
    """Парсинг вывода systemctl show."""
    result = {}
    for line in raw.splitlines():
        if '=' not in line:
            continue
        key, _, value = line.partition('=')
        result[key.strip()] = value.strip()
    return result


def parse_journal_lines(raw: str) -> List[Dict[str, str]]:
    """`2024-06-01T06:42:11+0000 host unit[pid]: message` -> time/level/message."""
    entries = []
    for line in raw.split('\n'):
        if not line:
            continue
        entry = {'time': '', 'level': '', 'message': line}
        parts = line.split(' ', 3)
        if len(parts) >= 4:
            entry['time'] = parts[0]
            entry['message'] = parts[3]
            lowered = parts[3].lower()
            if 'error' in lowered or 'fail' in lowered:
                entry['level'] = 'ERROR'
            elif 'warn' in lowered:
                entry['level'] = 'WARN'
            else:
                entry['level'] = 'INFO'
        entries.append(entry)
    return entries


def format_uptime(seconds: float) -> str:
    days = int(seconds // 86400)
    hours = int(seconds // 3600) % 24
    minutes = int(seconds // 60) % 60
    return f'{days}d {hours}h {minutes}m'


class ServiceManager:

    def __init__(self, config: PanelConfig, runner: CommandRunner, cpu_sample_interval: float = 0.2):
        self.config = config
        self.runner = runner
        self.cpu_sample_interval = cpu_sample_interval

    def reload_service(self, service: str) -> None:
        reload_service(self.runner, service)

    # ==================== Metrics ====================

    def _proc(self, name: str) -> Path:
        return Path(self.config.proc_dir) / name

    def _read_proc(self, name: str) -> Optional[str]:
        try:
            return self._proc(name).read_text(encoding='utf-8')
        except OSError:
            return None

    def _cpu_sample(self) -> List[int]:
        text = self._read_proc('stat') or ''
        for line in text.split('\n'):
            if line.startswith('cpu '):
                return [int(v) for v in line.split()[1:] if v.isdigit()]
        return [0] * 10

    def cpu_stat(self) -> Dict[str, object]:
        s1 = self._cpu_sample()
        if self.cpu_sample_interval:
            time.sleep(self.cpu_sample_interval)
        s2 = self._cpu_sample()

        total_diff = sum(s2) - sum(s1)
        idle_diff = (s2[3] if len(s2) > 3 else 0) - (s1[3] if len(s1) > 3 else 0)
        used = (1 - idle_diff / total_diff) * 100 if total_diff > 0 else 0.0

        cpuinfo = self._read_proc('cpuinfo') or ''
        cores = sum(1 for line in cpuinfo.split('\n') if line.startswith('processor')) or (os.cpu_count() or 1)
        return {'used_pct': round(used, 1), 'cores': cores}

    def ram_stat(self) -> Dict[str, object]:
        text = self._read_proc('meminfo')
        if text is None:
            return {'total_mb': 0, 'used_mb': 0, 'free_mb': 0, 'used_pct': 0}
        values = {}
        for line in text.split('\n'):
            parts = line.split()
            if len(parts) >= 2 and parts[1].isdigit():
                values[parts[0].rstrip(':')] = int(parts[1])
        total_kb = values.get('MemTotal', 0)
        free_kb = values.get('MemAvailable', 0)
        used_kb = total_kb - free_kb
        return {
            'total_mb': total_kb // 1024,
            'used_mb': used_kb // 1024,
            'free_mb': free_kb // 1024,
            'used_pct': round(used_kb / total_kb * 100, 1) if total_kb > 0 else 0,
        }

    def disk_stat(self) -> Dict[str, object]:
        empty = {'total_gb': 0, 'used_gb': 0, 'free_pct': 0, 'used_pct': 0}
        try:
            out = self.runner.run('df', ['-BG', '--output=size,used,avail,pcent', '/'])
        except ExecutionFailure as e:
            logger.warning(f"df failed: {e.message}")
            return empty
        lines = out.split('\n')
        if len(lines) < 2:
            return empty
        fields = lines[1].split()
        if len(fields) < 4:
            return empty

        def parse(value: str) -> float:
            try:
                return float(value.rstrip('G%'))
            except ValueError:
                return 0.0

        pct = parse(fields[3])
        return {
            'total_gb': parse(fields[0]),
            'used_gb': parse(fields[1]),
            'free_pct': 100 - pct,
            'used_pct': pct,
        }

    def uptime(self) -> str:
        parts = (self._read_proc('uptime') or '').split()
        if not parts:
            return 'unknown'
        try:
            return format_uptime(float(parts[0]))
        except ValueError:
            return 'unknown'

    def load_avg(self) -> str:
        parts = (self._read_proc('loadavg') or '').split()
        if len(parts) < 3:
            return 'unknown'
        return ' '.join(parts[:3])

    def os_name(self) -> str:
        try:
            text = Path(self.config.os_release_file).read_text(encoding='utf-8')
        except OSError:
            return 'Linux'
        for line in text.split('\n'):
            if line.startswith('PRETTY_NAME='):
                return line[len('PRETTY_NAME='):].strip('"')
        return 'Linux'

    def system_stats(self) -> Dict[str, object]:
        return {
            'cpu': self.cpu_stat(),
            'ram': self.ram_stat(),
            'disk': self.disk_stat(),
            'uptime': self.uptime(),
            'load_avg': self.load_avg(),
            'os': self.os_name(),
        }

    # ==================== Services ====================

    def service_state(self, name: str) -> Dict[str, object]:
        svc = {'name': name, 'status': 'unknown', 'active': False, 'pid': '', 'uptime': ''}
        try:
            out = self.runner.run('systemctl', ['show', name, '--property=ActiveState,MainPID,ActiveEnterTimestamp'])
        except ExecutionFailure as e:
            logger.warning(f"systemctl show {name} failed: {e.message}")
            return svc
        info = parse_systemctl_show(out)
        if 'ActiveState' in info:
            svc['status'] = info['ActiveState']
            svc['active'] = info['ActiveState'] == 'active'
        svc['pid'] = info.get('MainPID', '')
        svc['uptime'] = info.get('ActiveEnterTimestamp', '')
        return svc

    def list_services(self) -> List[Dict[str, object]]:
        return [self.service_state(name) for name in self.config.monitored_services]

    def service_action(self, name: str, action: str) -> Dict[str, str]:
        name = require_name(name, 'service name')
        if action not in SERVICE_ACTIONS:
            raise ValidationError(f'Unknown action: {action}')
        if name not in self.config.monitored_services:
            raise ForbiddenOperation('Service is not managed by this panel')
        self.runner.run('systemctl', [action, name])
        logger.info(f"Service {name}: {action}")
        return {'status': 'ok', 'service': name, 'action': action}

    # ==================== Logs ====================

    def get_logs(self, unit: Optional[str] = None, lines=DEFAULT_LOG_LINES) -> List[Dict[str, str]]:
        try:
            count = int(lines) if lines not in (None, '') else DEFAULT_LOG_LINES
        except (TypeError, ValueError):
            raise ValidationError('lines must be an integer')
        if count < MIN_LOG_LINES or count > MAX_LOG_LINES:
            raise ValidationError(f'lines must be between {MIN_LOG_LINES} and {MAX_LOG_LINES}')

        args = ['-n', str(count), '--no-pager', '--output=short-iso']
        if unit:
            args += ['-u', require_name(unit, 'unit')]
        out = self.runner.run('journalctl', args)
        return parse_journal_lines(out)
