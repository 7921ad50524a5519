import pytest

from panel_errors import ExecutionFailure, ForbiddenOperation, ValidationError
from user_manager import UserManager, read_passwd


@pytest.fixture
def users(config, runner):
    return UserManager(config, runner)


PASSWD = (
    'root:x:0:0:root:/root:/bin/bash\n'
    'www-data:x:33:33:www-data:/var/www:/usr/sbin/nologin\n'
    'alice:x:1000:1000:Alice:/home/alice:/bin/bash\n'
    'bob:x:1001:1001::/home/bob:/bin/sh\n'
    'broken line\n'
)


def test_read_passwd_skips_malformed_lines(config):
    config.passwd_file.parent.mkdir(parents=True)
    config.passwd_file.write_text(PASSWD)
    assert [e['username'] for e in read_passwd(config.passwd_file)] == ['root', 'www-data', 'alice', 'bob']
    assert read_passwd(config.passwd_file.parent / 'missing') == []


def test_list_users_only_regular_accounts_with_lock_state(users, config):
    config.passwd_file.parent.mkdir(parents=True)
    config.passwd_file.write_text(PASSWD)
    config.shadow_file.write_text('alice:$6$abc:19000::::::\nbob:!$6$def:19000::::::\n')
    listed = users.list_users()
    assert [(u['username'], u['locked']) for u in listed] == [('alice', False), ('bob', True)]
    assert listed[1]['shell'] == '/bin/sh'


def test_create_user(users, runner):
    users.create_user('carol', 'userpass123', groups='sudo, www-data')
    assert runner.commands() == [
        ['useradd', '-G', 'sudo,www-data', '-m', '-s', '/bin/bash', '--', 'carol'],
        ['chpasswd'],
    ]
    assert runner.named('chpasswd')[0].input == 'carol:userpass123\n'


def test_create_user_groups_are_sanitized_per_token(users, runner):
    users.create_user('carol', 'userpass123', groups='sudo;rm,adm')
    assert runner.calls[0].args[:2] == ['-G', 'sudorm,adm']


def test_password_failure_deletes_the_new_user(users, runner):
    runner.fail('chpasswd', stderr='chpasswd: (user carol) pam_chauthtok() failed')
    with pytest.raises(ExecutionFailure):
        users.create_user('carol', 'userpass123')
    assert ['userdel', '-r', '--', 'carol'] in runner.commands()


def test_root_is_protected(users, runner):
    for action in (users.delete_user, users.suspend_user):
        with pytest.raises(ForbiddenOperation):
            action('root')
    with pytest.raises(ForbiddenOperation):
        users.create_user('root', 'userpass123')
    assert runner.calls == []


def test_validation(users, runner):
    with pytest.raises(ValidationError):
        users.create_user('carol', 'userpass123', shell='/bin/zsh')
    with pytest.raises(ValidationError):
        users.create_user(';;', 'userpass123')
    with pytest.raises(ValidationError):
        users.create_user('carol', 'short')
    with pytest.raises(ValidationError):
        users.create_user('x' * 40, 'userpass123')
    assert runner.calls == []


def test_update_suspend_activate(users, runner):
    users.update_user('alice', password='newpass123', shell='/bin/sh')
    users.suspend_user('alice')
    users.activate_user('alice')
    assert runner.commands() == [
        ['chpasswd'],
        ['usermod', '-s', '/bin/sh', '--', 'alice'],
        ['usermod', '-L', '--', 'alice'],
        ['usermod', '-U', '--', 'alice'],
    ]


def test_delete_user(users, runner):
    assert users.delete_user('alice') == {'status': 'deleted', 'username': 'alice'}
    assert runner.commands() == [['userdel', '-r', '--', 'alice']]


@pytest.mark.parametrize('name', ['-f', '-D', '--help'])
def test_names_starting_with_dash_are_rejected(users, runner, name):
    with pytest.raises(ValidationError):
        users.delete_user(name)
    with pytest.raises(ValidationError):
        users.suspend_user(name)
    with pytest.raises(ValidationError):
        users.create_user(name, 'userpass123')
    with pytest.raises(ValidationError):
        users.create_user('carol', 'userpass123', groups=f'sudo,{name}')
    assert runner.calls == []
