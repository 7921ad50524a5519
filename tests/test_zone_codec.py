from datetime import datetime

import pytest

import zone_codec
from panel_errors import ValidationError

NOON = datetime(2024, 6, 1, 12, 30)


def built_zone():
    return zone_codec.build_zone_file('example.com', '1.2.3.4', '2024060112')


def test_template_parses_back():
    zone = zone_codec.parse_zone('example.com', built_zone())
    assert zone.serial == 2024060112
    a_records = {(r.name, r.value) for r in zone.records if r.type == 'A'}
    assert ('@', '1.2.3.4') in a_records
    assert ('www', '1.2.3.4') in a_records


def test_template_record_counts():
    zone = zone_codec.parse_zone('example.com', built_zone())
    by_type = {}
    for r in zone.records:
        by_type.setdefault(r.type, []).append(r)
    assert len(by_type['NS']) == 2
    assert {'@', 'www', 'ns1', 'ns2'} <= {r.name for r in by_type['A']}
    assert len(by_type['MX']) == 1
    assert len(by_type['TXT']) == 1
    assert by_type['MX'][0].value == '10 mail.example.com.'
    assert by_type['TXT'][0].value == '"v=spf1 mx a ip4:1.2.3.4 -all"'


def test_soa_lines_are_not_records():
    zone = zone_codec.parse_zone('example.com', built_zone())
    assert all(r.type != 'SOA' for r in zone.records)
    assert zone_codec.parse_record_line('@   IN  SOA ns1.example.com. admin.example.com. (') is None
    assert zone_codec.parse_record_line('; A Records') is None
    assert zone_codec.parse_record_line('$TTL 3600') is None


def test_optional_ttl_column():
    with_ttl = zone_codec.parse_record_line('www2\t300\tIN\tA\t5.6.7.8')
    assert (with_ttl.name, with_ttl.ttl, with_ttl.type, with_ttl.value) == ('www2', 300, 'A', '5.6.7.8')
    without = zone_codec.parse_record_line('www IN A 1.2.3.4')
    assert without.ttl is None
    assert without.to_dict()['ttl'] == ''


def test_make_serial_is_ten_digits():
    assert zone_codec.make_serial(NOON) == '2024060112'


def test_bump_twice_in_the_same_hour_collides():
    text = built_zone().replace('2024060112', '2024060100')
    once = zone_codec.bump_serial(text, now=NOON)
    twice = zone_codec.bump_serial(once, now=datetime(2024, 6, 1, 12, 59))
    assert zone_codec.extract_serial(once) == 2024060112
    assert zone_codec.extract_serial(twice) == 2024060112


def test_clock_policy_lowers_a_future_serial():
    text = built_zone().replace('2024060112', '2099010100')
    assert zone_codec.extract_serial(zone_codec.bump_serial(text, now=NOON)) == 2024060112


def test_monotonic_policy_never_goes_back():
    text = built_zone().replace('2024060112', '2099010100')
    bumped = zone_codec.bump_serial(text, now=NOON, policy='monotonic')
    assert zone_codec.extract_serial(bumped) == 2099010101
    same_hour = zone_codec.bump_serial(built_zone(), now=NOON, policy='monotonic')
    assert zone_codec.extract_serial(same_hour) == 2024060113


def test_unknown_serial_policy():
    with pytest.raises(ValueError):
        zone_codec.bump_serial(built_zone(), now=NOON, policy='random')


def test_bump_only_touches_the_serial_line():
    text = built_zone()
    bumped = zone_codec.bump_serial(text, now=datetime(2024, 6, 2, 0, 0))
    changed = [(a, b) for a, b in zip(text.split('\n'), bumped.split('\n')) if a != b]
    assert len(changed) == 1
    assert '2024060200' in changed[0][1]


def test_normalize_record():
    record = zone_codec.normalize_record(' www2 ', 'a', ' 5.6.7.8 ')
    assert (record.name, record.type, record.value, record.ttl) == ('www2', 'A', '5.6.7.8', 3600)
    assert zone_codec.normalize_record('@', 'MX', '10 mail.example.com.', '300').ttl == 300
    with pytest.raises(ValidationError):
        zone_codec.normalize_record('www', 'SOA', 'x')
    with pytest.raises(ValidationError):
        zone_codec.normalize_record('bad name', 'A', '1.2.3.4')
    with pytest.raises(ValidationError):
        zone_codec.normalize_record('www', 'A', '')
    with pytest.raises(ValidationError):
        zone_codec.normalize_record('www', 'A', '1.2.3.4', 'soon')
    with pytest.raises(ValidationError):
        zone_codec.normalize_record('www', 'A', '1.2.3.4', 0)


def test_format_record_line_round_trips_through_parser():
    record = zone_codec.normalize_record('api', 'CNAME', 'example.com.', 600)
    parsed = zone_codec.parse_record_line(zone_codec.format_record_line(record))
    assert parsed == record


def test_record_matches_is_exact():
    line = 'www2\t3600\tIN\tA\t5.6.7.8'
    assert zone_codec.record_matches(line, 'www2', 'A')
    assert zone_codec.record_matches(line, 'www2', 'a', '5.6.7.8')
    assert not zone_codec.record_matches(line, 'www', 'A')
    assert not zone_codec.record_matches(line, 'www2', 'AAAA')
    assert not zone_codec.record_matches(line, 'www2', 'A', '5.6.7.9')
    assert zone_codec.record_matches('@ IN MX 10   mail.example.com.', '@', 'MX', '10 mail.example.com.')


def test_named_conf_blocks():
    text = zone_codec.zone_block('a.com', '/z/a.com.db') + zone_codec.zone_block('b.com', '/z/b.com.db')
    assert zone_codec.has_zone_block(text, 'a.com')
    stripped = zone_codec.strip_zone_block(text, 'a.com')
    assert not zone_codec.has_zone_block(stripped, 'a.com')
    assert zone_codec.has_zone_block(stripped, 'b.com')
    assert 'file "/z/b.com.db";' in stripped
    assert '/z/a.com.db' not in stripped


def test_zone_to_dict():
    data = zone_codec.parse_zone('example.com', built_zone()).to_dict()
    assert data['domain'] == 'example.com'
    assert data['serial'] == 2024060112
    assert {'name': '@', 'type': 'A', 'value': '1.2.3.4', 'ttl': ''} in data['records']
