import pytest

from cron_codec import format_cron_line, human_readable, is_cron_record, is_valid_cron_field, parse_cron_lines


@pytest.mark.parametrize('value,expected', [
    ('*/5', True),
    ('5-10,15', True),
    ('*', True),
    ('99', True),
    ('5-2', True),
    ('5;rm -rf', False),
    ('', False),
    (None, False),
    ('$(id)', False),
    ('MON', False),
])
def test_is_valid_cron_field(value, expected):
    assert is_valid_cron_field(value) is expected


def test_is_cron_record():
    assert is_cron_record('*/5 * * * * /usr/bin/backup')
    assert not is_cron_record('# 0 * * * * disabled')
    assert not is_cron_record('MAILTO=root')
    assert not is_cron_record('PATH=/usr/bin:/bin')
    assert not is_cron_record('SHELL=/bin/sh')
    assert not is_cron_record('   ')
    assert not is_cron_record('* * * * *')


@pytest.mark.parametrize('fields,text', [
    (('*', '*', '*', '*', '*'), 'Every minute'),
    (('0', '*', '*', '*', '*'), 'Every hour'),
    (('0', '0', '*', '*', '*'), 'Daily at midnight'),
    (('0', '0', '*', '*', '0'), 'Weekly on Sunday'),
    (('0', '0', '1', '*', '*'), 'Monthly on the 1st'),
    (('30', '2', '*', '*', '1-5'), '30 2 * * 1-5'),
])
def test_human_readable(fields, text):
    assert human_readable(*fields) == text


def test_parse_assigns_positions_among_records_only():
    text = (
        'MAILTO=admin@example.com\n'
        '# nightly\n'
        '0 0 * * * /usr/local/bin/backup.sh\n'
        '\n'
        '*/5 * * * *   php   /var/www/site/cron.php\n'
    )
    jobs = parse_cron_lines(text, 'root')
    assert [j.position for j in jobs] == [1, 2]
    assert jobs[0].schedule == 'Daily at midnight'
    assert jobs[1].command == 'php /var/www/site/cron.php'
    assert all(j.user == 'root' and not j.system for j in jobs)


def test_system_crontab_user_column():
    text = 'SHELL=/bin/sh\n17 * * * * root cd / && run-parts --report /etc/cron.hourly\n'
    job = parse_cron_lines(text, 'system', system=True)[0]
    assert job.user == 'root'
    assert job.command == 'cd / && run-parts --report /etc/cron.hourly'
    assert job.system


def test_format_and_to_dict():
    line = format_cron_line('0', '3', '*', '*', '*', '/usr/bin/certbot renew')
    assert line == '0 3 * * * /usr/bin/certbot renew'
    data = parse_cron_lines(line, 'root')[0].to_dict()
    assert data['position'] == 1
    assert data['hour'] == '3'
    assert data['enabled'] is True
