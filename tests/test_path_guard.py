import re

import pytest

from panel_errors import PathEscape, ValidationError
from path_guard import (
    check_password, confine, is_root, is_valid_email, is_valid_hostname, parse_ip,
    relative_to_root, require_name, require_token, resolve_under, sanitize, validate_entry_name,
)

SAMPLES = [
    '', 'plain', 'a;b|c', '../../etc/passwd', 'имя пользователя', 'x\x00y', '$(rm -rf /)',
    'ok.name-1_2', '  spaced  ', '`id`', 'a/b\\c', '\n\r\t',
]

SAFE = re.compile(r'^[A-Za-z0-9._-]*$')


@pytest.mark.parametrize('raw', SAMPLES)
def test_sanitize_output_is_whitelisted_and_idempotent(raw):
    once = sanitize(raw)
    assert SAFE.match(once)
    assert sanitize(once) == once


def test_sanitize_examples():
    assert sanitize('') == ''
    assert sanitize(None) == ''
    assert sanitize('a;b|c') == 'abc'


def test_require_token_rejects_empty_and_dot_names():
    assert require_token('ali;ce', 'username') == 'alice'
    for raw in ('', ';;;', '.', '..'):
        with pytest.raises(ValidationError):
            require_token(raw, 'username')


def test_require_name_rejects_option_like_names():
    assert require_name('www-data', 'user') == 'www-data'
    assert require_name(' ;alice', 'user') == 'alice'
    for raw in ('-f', '--help', ';-D', '-'):
        with pytest.raises(ValidationError):
            require_name(raw, 'user')


def test_confine_properties():
    assert confine('/var/www', '') == '/var/www'
    assert confine('/var/www', None) == '/var/www'
    assert confine('/var/www', '/a/b') == '/var/www/a/b'
    assert confine('/var/www', 'a/./b/../c') == '/var/www/a/c'
    with pytest.raises(PathEscape):
        confine('/var/www', '../../etc/passwd')
    with pytest.raises(PathEscape):
        confine('/var/www', 'a/../../b')


def test_confine_sibling_prefix_is_an_escape():
    with pytest.raises(PathEscape):
        confine('/var/www', '../www-evil/index.php')


def test_confine_error_does_not_leak_the_path():
    with pytest.raises(PathEscape) as exc:
        confine('/var/www', '../../etc/shadow')
    assert '/etc/shadow' not in exc.value.message
    assert exc.value.status_code == 403


def test_confine_rejects_nul_byte():
    with pytest.raises(ValidationError):
        confine('/var/www', 'a\x00b')


def test_resolve_under_accepts_absolute_paths_inside_root():
    assert resolve_under('/var/www', '/var/www/site/public_html') == '/var/www/site/public_html'
    assert resolve_under('/var/www', 'site') == '/var/www/site'
    assert resolve_under('/var/www', '/etc/passwd') == '/var/www/etc/passwd'
    with pytest.raises(PathEscape):
        resolve_under('/var/www', '/var/www/../../etc')


def test_root_helpers():
    assert is_root('/var/www', '/var/www/')
    assert not is_root('/var/www', '/var/www/a')
    assert relative_to_root('/var/www', '/var/www/a/b') == '/a/b'
    assert relative_to_root('/var/www', '/var/www') == '/'


def test_validate_entry_name():
    assert validate_entry_name(' index.html ') == 'index.html'
    for bad in ('', 'a/b', 'a\\b', '..', '.'):
        with pytest.raises(ValidationError):
            validate_entry_name(bad)


def test_email_and_hostname():
    assert is_valid_email('admin@example.com')
    assert not is_valid_email('admin@example')
    assert not is_valid_email('a b@example.com')
    assert is_valid_hostname('example.com')
    assert is_valid_hostname('sub-1.example.co.uk')
    assert not is_valid_hostname('bad host')
    assert not is_valid_hostname('-bad.com;')


def test_check_password():
    assert check_password('longenough') == 'longenough'
    with pytest.raises(ValidationError):
        check_password('short')
    with pytest.raises(ValidationError):
        check_password('has\nnewline!')


def test_parse_ip():
    assert parse_ip(' 1.2.3.4 ') == '1.2.3.4'
    assert parse_ip('2001:db8::1') == '2001:db8::1'
    with pytest.raises(ValidationError):
        parse_ip('999.1.1.1')
    with pytest.raises(ValidationError):
        parse_ip('')


def test_parse_ip_with_version():
    assert parse_ip('10.0.0.1', version=4) == '10.0.0.1'
    with pytest.raises(ValidationError):
        parse_ip('2001:db8::1', version=4)
