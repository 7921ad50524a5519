import os

from run import _load_env_file


def test_load_env_file(tmp_path, monkeypatch):
    monkeypatch.delenv('HOSTPANEL_TEST_PORT', raising=False)
    monkeypatch.setenv('HOSTPANEL_TEST_USER', 'from-env')
    env_file = tmp_path / '.env'
    env_file.write_text(
        '# comment\n'
        'HOSTPANEL_TEST_PORT="9001"\n'
        'HOSTPANEL_TEST_USER=from-file\n'
        'not a pair\n'
    )
    _load_env_file(env_file)
    assert os.environ['HOSTPANEL_TEST_PORT'] == '9001'
    assert os.environ['HOSTPANEL_TEST_USER'] == 'from-env'
    monkeypatch.delenv('HOSTPANEL_TEST_PORT')


def test_missing_env_file_is_ignored(tmp_path):
    _load_env_file(tmp_path / 'missing.env')
