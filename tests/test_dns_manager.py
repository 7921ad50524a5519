from datetime import datetime

import pytest

from dns_manager import DnsManager
from panel_errors import InvalidArgument, NotFound, ReloadFailed, ValidationError


@pytest.fixture
def dns(config, runner):
    return DnsManager(config, runner, clock=lambda: datetime(2024, 6, 1, 10, 0))


def test_create_zone_writes_zone_and_named_conf(dns, config, runner):
    result = dns.create_zone('example.com', '1.2.3.4')
    assert result == {'status': 'created', 'domain': 'example.com'}
    zone_file = config.bind_zones_dir / 'example.com.db'
    assert '2024060110' in zone_file.read_text()
    named = config.bind_named_local.read_text()
    assert f'file "{zone_file}";' in named
    assert dns.list_zones() == [{'domain': 'example.com'}]


def test_create_zone_validates_before_touching_disk(dns, config, runner):
    with pytest.raises(ValidationError):
        dns.create_zone('example.com', 'not-an-ip')
    with pytest.raises(ValidationError):
        dns.create_zone('-example.com', '1.2.3.4')
    assert not config.bind_zones_dir.exists()
    assert runner.calls == []


def test_create_zone_requires_ipv4(dns, config, runner):
    with pytest.raises(ValidationError):
        dns.create_zone('example.com', '2001:db8::1')
    assert not config.bind_zones_dir.exists()
    assert not config.bind_named_local.exists()
    assert runner.calls == []


def test_create_zone_rolls_back_zone_file_when_named_conf_fails(dns, config):
    config.bind_named_local.mkdir(parents=True)
    with pytest.raises(IsADirectoryError):
        dns.create_zone('example.com', '1.2.3.4')
    assert not (config.bind_zones_dir / 'example.com.db').exists()


def test_reload_failure_keeps_the_change(dns, config, runner):
    runner.fail('systemctl', stderr='Job for named.service failed')
    with pytest.raises(ReloadFailed) as exc:
        dns.create_zone('example.com', '1.2.3.4')
    assert 'Changes were saved' in exc.value.message
    assert (config.bind_zones_dir / 'example.com.db').exists()


def test_get_and_delete_missing_zone(dns):
    with pytest.raises(NotFound):
        dns.get_zone('missing.com')
    with pytest.raises(NotFound):
        dns.delete_zone('missing.com')
    with pytest.raises(NotFound):
        dns.add_record('missing.com', 'www', 'A', '1.2.3.4')


def test_delete_zone_removes_file_and_block(dns, config):
    dns.create_zone('example.com', '1.2.3.4')
    dns.create_zone('other.org', '1.2.3.5')
    dns.delete_zone('example.com')
    assert not (config.bind_zones_dir / 'example.com.db').exists()
    named = config.bind_named_local.read_text()
    assert 'zone "example.com"' not in named
    assert 'zone "other.org"' in named


def test_add_record_rejects_interpreted_characters(dns):
    dns.create_zone('example.com', '1.2.3.4')
    with pytest.raises(InvalidArgument):
        dns.add_record('example.com', 'txt', 'TXT', '"v=spf1 $(id)"')
    with pytest.raises(ValidationError):
        dns.add_record('example.com', 'www2', 'HINFO', 'x')


def test_duplicate_records_are_allowed(dns):
    dns.create_zone('example.com', '1.2.3.4')
    dns.add_record('example.com', 'www2', 'A', '5.6.7.8')
    dns.add_record('example.com', 'www2', 'A', '5.6.7.8')
    records = [r for r in dns.get_zone('example.com').records if r.name == 'www2']
    assert len(records) == 2
    assert records[0].ttl == 3600


def test_delete_record_by_name_does_not_touch_similar_names(dns):
    dns.create_zone('example.com', '1.2.3.4')
    dns.add_record('example.com', 'www2', 'A', '5.6.7.8')
    dns.delete_record('example.com', 'www', 'A')
    names = [r.name for r in dns.get_zone('example.com').records if r.type == 'A']
    assert 'www' not in names
    assert 'www2' in names


def test_delete_record_with_value_removes_only_that_value(dns):
    dns.create_zone('example.com', '1.2.3.4')
    dns.add_record('example.com', 'www2', 'A', '5.6.7.8')
    dns.add_record('example.com', 'www2', 'A', '9.9.9.9')
    result = dns.delete_record('example.com', 'www2', 'A', '9.9.9.9')
    assert result == {'status': 'deleted', 'removed': 1}
    values = [r.value for r in dns.get_zone('example.com').records if r.name == 'www2']
    assert values == ['5.6.7.8']


def test_delete_record_not_found(dns):
    dns.create_zone('example.com', '1.2.3.4')
    with pytest.raises(NotFound):
        dns.delete_record('example.com', 'nope', 'A')


def test_monotonic_policy_increments_within_the_hour(config, runner):
    config.dns_serial_policy = 'monotonic'
    dns = DnsManager(config, runner, clock=lambda: datetime(2024, 6, 1, 10, 0))
    dns.create_zone('example.com', '1.2.3.4')
    dns.add_record('example.com', 'a', 'A', '5.6.7.8')
    dns.add_record('example.com', 'b', 'A', '5.6.7.9')
    assert dns.get_zone('example.com').serial == 2024060112
