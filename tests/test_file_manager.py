import io
import os

import pytest
from werkzeug.datastructures import FileStorage

from file_manager import FileManager
from panel_errors import ForbiddenOperation, NotFound, PathEscape, PayloadTooLarge, ValidationError


@pytest.fixture
def files(config):
    root = config.web_root
    (root / 'site' / 'public_html').mkdir(parents=True)
    (root / 'site' / 'public_html' / 'index.php').write_text('<?php echo 1;')
    (root / 'notes.txt').write_text('hello')
    return FileManager(config)


def test_list_root_directories_first(files):
    listing = files.list_dir('/')
    assert listing['path'] == '/'
    assert [f['name'] for f in listing['files']] == ['site', 'notes.txt']
    assert listing['files'][0]['is_dir'] is True
    assert listing['files'][1]['path'] == '/notes.txt'
    assert listing['files'][1]['size'] == 5


def test_traversal_is_rejected(files):
    with pytest.raises(PathEscape):
        files.list_dir('../../etc')
    with pytest.raises(PathEscape):
        files.read_file('site/../../secret')


def test_symlink_pointing_outside_is_rejected(files, config, tmp_path):
    outside = tmp_path / 'outside'
    outside.mkdir()
    (outside / 'secret').write_text('s')
    os.symlink(outside, config.web_root / 'escape')
    with pytest.raises(PathEscape):
        files.list_dir('escape')
    with pytest.raises(PathEscape):
        files.read_file('escape/secret')


def test_root_cannot_be_deleted_or_renamed(files):
    with pytest.raises(ForbiddenOperation):
        files.delete('/')
    with pytest.raises(ForbiddenOperation):
        files.delete('')
    with pytest.raises(ForbiddenOperation):
        files.rename('/', 'other')


def test_delete(files, config):
    files.delete('notes.txt')
    files.delete('site')
    assert os.listdir(config.web_root) == []
    with pytest.raises(NotFound):
        files.delete('notes.txt')


def test_make_dir(files, config):
    assert files.make_dir('new/nested') == {'status': 'created', 'path': '/new/nested'}
    assert (config.web_root / 'new' / 'nested').is_dir()
    with pytest.raises(ValidationError):
        files.make_dir('notes.txt')


def test_rename(files, config):
    assert files.rename('notes.txt', 'readme.txt')['path'] == '/readme.txt'
    assert (config.web_root / 'readme.txt').read_text() == 'hello'
    files.rename('readme.txt', '/site/readme.txt')
    assert (config.web_root / 'site' / 'readme.txt').exists()
    with pytest.raises(ValidationError):
        files.rename('site/readme.txt', 'public_html')
    with pytest.raises(ValidationError):
        files.rename('site/readme.txt', '..')
    with pytest.raises(NotFound):
        files.rename('missing.txt', 'x.txt')


def test_read_and_write(files, config):
    files.write_file('site/public_html/index.html', '<h1>hi</h1>')
    assert files.read_file('/site/public_html/index.html') == {
        'path': '/site/public_html/index.html', 'content': '<h1>hi</h1>',
    }
    with pytest.raises(ValidationError):
        files.read_file('site')
    with pytest.raises(NotFound):
        files.write_file('missing/dir/file.txt', 'x')


def test_read_file_size_limit(files, config):
    config.max_read_bytes = 3
    with pytest.raises(PayloadTooLarge) as exc:
        files.read_file('notes.txt')
    assert exc.value.status_code == 413


def test_upload_uses_secure_filename(files, config):
    upload = FileStorage(stream=io.BytesIO(b'#!/bin/sh'), filename='../../evil.sh')
    result = files.save_upload('/site', upload)
    assert result['filename'] == 'evil.sh'
    assert (config.web_root / 'site' / 'evil.sh').read_bytes() == b'#!/bin/sh'
    with pytest.raises(ValidationError):
        files.save_upload('/', FileStorage(stream=io.BytesIO(b''), filename='../..'))
