"""
Кодек зон BIND: шаблон зоны, разбор записей, серийный номер SOA
и блоки zone в named.conf.local.
"""

import re
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import List, Optional

from panel_errors import ValidationError

RECORD_TYPES = ('A', 'AAAA', 'CNAME', 'MX', 'TXT', 'NS', 'PTR', 'SRV')
DEFAULT_TTL = 3600
SERIAL_FORMAT = '%Y%m%d%H'

SERIAL_POLICIES = ('clock', 'monotonic')

_RECORD_NAME_RE = re.compile(r'^(@|\*|[A-Za-z0-9_*](?:[A-Za-z0-9_.-]*[A-Za-z0-9_.])?)$')


@dataclass
class ZoneRecord:
    name: str
    type: str
    value: str
    ttl: Optional[int] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data['ttl'] = str(self.ttl) if self.ttl is not None else ''
        return data


@dataclass
class DNSZone:
    domain: str
    serial: int = 0
    records: List[ZoneRecord] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'domain': self.domain,
            'serial': self.serial,
            'records': [r.to_dict() for r in self.records],
        }


# ==================== Serial ====================

def make_serial(now: Optional[datetime] = None) -> str:
    """YYYYMMDDHH from wall-clock time. Two calls in the same hour collide."""
    return (now or datetime.now()).strftime(SERIAL_FORMAT)


def _is_serial_line(line: str) -> bool:
    return 'Serial' in line or 'serial' in line


def extract_serial(text: str) -> int:
    for line in text.split('\n'):
        if _is_serial_line(line):
            parts = line.split()
            if parts and parts[0].isdigit():
                return int(parts[0])
            return 0
    return 0


def bump_serial(text: str, now: Optional[datetime] = None, policy: str = 'clock') -> str:
    """
    Replace the first token on the first line mentioning the serial.

    policy 'clock' writes the time-derived serial as is, so a serial that was
    set by hand to a future value is lowered. 'monotonic' writes
    max(current + 1, time-derived).
    """
    if policy not in SERIAL_POLICIES:
        raise ValueError(f'Unknown serial policy: {policy}')
    new_serial = make_serial(now)
    lines = text.split('\n')
    for i, line in enumerate(lines):
        if not _is_serial_line(line):
            continue
        parts = line.split()
        if parts:
            if policy == 'monotonic' and parts[0].isdigit():
                new_serial = str(max(int(parts[0]) + 1, int(new_serial)))
            lines[i] = line.replace(parts[0], new_serial, 1)
        break
    return '\n'.join(lines)


# ==================== Template ====================

def build_zone_file(domain: str, ip: str, serial: str) -> str:
    return f"""$TTL {DEFAULT_TTL}
@   IN  SOA ns1.{domain}. admin.{domain}. (
            {serial}  ; Serial
            3600        ; Refresh
            1800        ; Retry
            604800      ; Expire
            300 )       ; Minimum TTL

; Name Servers
@       IN  NS  ns1.{domain}.
@       IN  NS  ns2.{domain}.

; A Records
@       IN  A   {ip}
www     IN  A   {ip}
ns1     IN  A   {ip}
ns2     IN  A   {ip}

; Mail
@       IN  MX  10 mail.{domain}.
mail    IN  A   {ip}

; SPF
@       IN  TXT "v=spf1 mx a ip4:{ip} -all"
"""


# ==================== Records ====================

def parse_record_line(line: str) -> Optional[ZoneRecord]:
    """
    `name [ttl] IN type value...`. TTL is detected by being an integer.
    SOA, directives, comments and SOA continuation lines give None.
    """
    stripped = line.strip()
    if not stripped or stripped.startswith(';') or stripped.startswith('$'):
        return None
    parts = stripped.split()
    ttl = None
    if len(parts) >= 5 and parts[1].isdigit() and parts[2] == 'IN':
        ttl = int(parts[1])
        rtype, value_parts = parts[3], parts[4:]
    elif len(parts) >= 4 and parts[1] == 'IN':
        rtype, value_parts = parts[2], parts[3:]
    else:
        return None
    rtype = rtype.upper()
    if rtype not in RECORD_TYPES:
        return None
    return ZoneRecord(name=parts[0], type=rtype, value=' '.join(value_parts), ttl=ttl)


def parse_zone(domain: str, text: str) -> DNSZone:
    zone = DNSZone(domain=domain, serial=extract_serial(text))
    for line in text.split('\n'):
        record = parse_record_line(line)
        if record is not None:
            zone.records.append(record)
    return zone


def normalize_record(name: str, rtype: str, value: str, ttl=None) -> ZoneRecord:
    """Validate user input for a new record. Raises ValidationError."""
    rtype = (rtype or '').strip().upper()
    if rtype not in RECORD_TYPES:
        raise ValidationError('Unsupported record type')
    name = (name or '').strip()
    if not _RECORD_NAME_RE.match(name):
        raise ValidationError('Invalid record name')
    value = (value or '').strip()
    if not value or '\n' in value or '\r' in value:
        raise ValidationError('Invalid record value')
    if ttl in (None, ''):
        ttl_value = DEFAULT_TTL
    else:
        try:
            ttl_value = int(ttl)
        except (TypeError, ValueError):
            raise ValidationError('TTL must be an integer')
        if ttl_value <= 0:
            raise ValidationError('TTL must be positive')
    return ZoneRecord(name=name, type=rtype, value=value, ttl=ttl_value)


def format_record_line(record: ZoneRecord) -> str:
    ttl = record.ttl if record.ttl is not None else DEFAULT_TTL
    return f'{record.name}\t{ttl}\tIN\t{record.type}\t{record.value}'


def record_matches(line: str, name: str, rtype: str, value: Optional[str] = None) -> bool:
    """Exact field match. Value is compared only when given."""
    record = parse_record_line(line)
    if record is None:
        return False
    if record.name != name or record.type != rtype.upper():
        return False
    if value is not None and record.value != ' '.join(value.split()):
        return False
    return True


# ==================== named.conf.local ====================

def _zone_marker(domain: str) -> str:
    return f'zone "{domain}"'


def zone_block(domain: str, zone_file: str) -> str:
    return f'\nzone "{domain}" {{\n    type master;\n    file "{zone_file}";\n}};\n'


def has_zone_block(text: str, domain: str) -> bool:
    marker = _zone_marker(domain)
    return any(marker in line for line in text.split('\n'))


def strip_zone_block(text: str, domain: str) -> str:
    """Remove the block for one domain, tracking brace depth."""
    marker = _zone_marker(domain)
    kept = []
    skip = False
    depth = 0
    for line in text.split('\n'):
        if marker in line:
            skip = True
        if skip:
            depth += line.count('{') - line.count('}')
            if depth <= 0 and '}' in line:
                skip = False
                depth = 0
            continue
        kept.append(line)
    return '\n'.join(kept)
