"""
DNS зоны BIND9: файлы зон в bind_zones_dir и блоки zone в named.conf.local.
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

import line_store
import zone_codec
from command_runner import CommandRunner, check_value
from panel_config import PanelConfig
from panel_errors import NotFound, ValidationError
from path_guard import is_valid_hostname, parse_ip, require_token
from rollback import Rollback
from service_manager import reload_service

logger = logging.getLogger(__name__)

ZONE_SUFFIX = '.db'


class DnsManager:

    def __init__(self, config: PanelConfig, runner: CommandRunner,
                 clock: Optional[Callable[[], datetime]] = None):
        self.config = config
        self.runner = runner
        self.clock = clock or datetime.now

    @property
    def zones_dir(self) -> Path:
        return Path(self.config.bind_zones_dir)

    def _domain(self, raw: Optional[str]) -> str:
        domain = require_token(raw, 'domain')
        if not is_valid_hostname(domain):
            raise ValidationError('Invalid domain')
        return domain

    def zone_path(self, domain: str) -> Path:
        return self.zones_dir / f'{domain}{ZONE_SUFFIX}'

    def _reload(self) -> None:
        reload_service(self.runner, self.config.bind_service)

    def _bump(self, text: str) -> str:
        return zone_codec.bump_serial(text, now=self.clock(), policy=self.config.dns_serial_policy)

    # ==================== Zones ====================

    def list_zones(self) -> List[Dict[str, str]]:
        if not self.zones_dir.is_dir():
            return []
        zones = []
        for entry in sorted(self.zones_dir.iterdir()):
            if entry.name.endswith(ZONE_SUFFIX) and entry.is_file():
                zones.append({'domain': entry.name[:-len(ZONE_SUFFIX)]})
        return zones

    def get_zone(self, domain: str) -> zone_codec.DNSZone:
        domain = self._domain(domain)
        path = self.zone_path(domain)
        if not path.is_file():
            raise NotFound(f'Zone not found: {domain}')
        return zone_codec.parse_zone(domain, line_store.read_text(path))

    def create_zone(self, domain: str, ip: str) -> Dict[str, str]:
        """Writes a fresh zone. An existing zone with the same name is overwritten."""
        domain = self._domain(domain)
        # Шаблон зоны пишет A-записи и ip4: в SPF
        ip = parse_ip(ip, version=4)
        zone_file = self.zone_path(domain)
        named_conf = Path(self.config.bind_named_local)

        content = zone_codec.build_zone_file(domain, ip, zone_codec.make_serial(self.clock()))

        with Rollback(f'create zone {domain}') as rb:
            previous = line_store.read_text(zone_file) if zone_file.exists() else None
            line_store.write_text(zone_file, content)
            if previous is None:
                rb.add('zone file', lambda: _unlink(zone_file))
            else:
                rb.add('zone file', lambda: line_store.write_text(zone_file, previous))

            added = self._ensure_named_conf(named_conf, domain, str(zone_file))
            if added:
                rb.add('named.conf.local entry',
                       lambda: line_store.edit_text(named_conf, lambda t: zone_codec.strip_zone_block(t, domain)))

        logger.info(f"DNS zone {domain} created ({ip})")
        self._reload()
        return {'status': 'created', 'domain': domain}

    def _ensure_named_conf(self, named_conf: Path, domain: str, zone_file: str) -> bool:
        """Add the zone block once. Returns True when it was added."""
        added = []

        def transform(text: str) -> str:
            if zone_codec.has_zone_block(text, domain):
                return text
            added.append(domain)
            return text + zone_codec.zone_block(domain, zone_file)

        line_store.edit_text(named_conf, transform, create=True)
        return bool(added)

    def delete_zone(self, domain: str) -> Dict[str, str]:
        domain = self._domain(domain)
        zone_file = self.zone_path(domain)
        named_conf = Path(self.config.bind_named_local)
        if not zone_file.exists():
            raise NotFound(f'Zone not found: {domain}')

        with line_store.file_lock(zone_file):
            zone_file.unlink()
        if named_conf.exists():
            line_store.edit_text(named_conf, lambda t: zone_codec.strip_zone_block(t, domain))

        logger.info(f"DNS zone {domain} deleted")
        self._reload()
        return {'status': 'deleted'}

    # ==================== Records ====================

    def add_record(self, domain: str, name: str, rtype: str, value: str, ttl=None) -> Dict[str, object]:
        """Appends the record line and bumps the serial. Duplicates are not checked."""
        domain = self._domain(domain)
        record = zone_codec.normalize_record(name, rtype, value, ttl)
        check_value(record.value, 'record value')
        zone_file = self.zone_path(domain)
        line = zone_codec.format_record_line(record)

        def transform(text: str) -> str:
            if text and not text.endswith('\n'):
                text += '\n'
            return self._bump(text + line + '\n')

        self._edit_zone(zone_file, domain, transform)
        logger.info(f"DNS record added to {domain}: {line!r}")
        self._reload()
        return {'status': 'added', 'record': record.to_dict()}

    def delete_record(self, domain: str, name: str, rtype: str, value: Optional[str] = None) -> Dict[str, object]:
        domain = self._domain(domain)
        name = (name or '').strip()
        rtype = (rtype or '').strip().upper()
        if not name or rtype not in zone_codec.RECORD_TYPES:
            raise ValidationError('name and a supported type are required')
        if value is not None and not str(value).strip():
            value = None
        zone_file = self.zone_path(domain)
        removed = []

        def transform(text: str) -> str:
            kept = []
            for line in text.split('\n'):
                if zone_codec.record_matches(line, name, rtype, value):
                    removed.append(line)
                    continue
                kept.append(line)
            if not removed:
                return text
            return self._bump('\n'.join(kept))

        self._edit_zone(zone_file, domain, transform)
        if not removed:
            raise NotFound('Record not found')
        logger.info(f"DNS record(s) removed from {domain}: {len(removed)}")
        self._reload()
        return {'status': 'deleted', 'removed': len(removed)}

    def _edit_zone(self, zone_file: Path, domain: str, transform: Callable[[str], str]) -> str:
        try:
            return line_store.edit_text(zone_file, transform)
        except FileNotFoundError:
            raise NotFound(f'Zone not found: {domain}')


def _unlink(path: Path) -> None:
    with line_store.file_lock(path):
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
