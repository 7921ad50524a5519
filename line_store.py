"""
Редактор построчных конфигов (crontab, карты Postfix, зоны BIND, списки пользователей).

Каждая операция: прочитать файл целиком, изменить в памяти, атомарно переписать.
Всё это выполняется под блокировкой, привязанной к реальному пути файла.
"""

import logging
import os
import tempfile
import threading
import weakref
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, List, Tuple, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
Predicate = Callable[[str], bool]


class _PathLock:
    """threading.Lock не поддерживает weakref, поэтому держим его в обёртке."""
    __slots__ = ('_lock', '__weakref__')

    def __init__(self):
        self._lock = threading.Lock()

    def __enter__(self):
        self._lock.acquire()
        return self

    def __exit__(self, *exc):
        self._lock.release()


# Запись пропадает, когда блокировку больше никто не держит
_locks: 'weakref.WeakValueDictionary[str, _PathLock]' = weakref.WeakValueDictionary()
_locks_guard = threading.Lock()


def _lock_for(path: PathLike) -> _PathLock:
    key = os.path.realpath(str(path))
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = _PathLock()
            _locks[key] = lock
        return lock


@contextmanager
def file_lock(path: PathLike) -> Iterator[None]:
    """Exclusive section for one file. Not reentrant."""
    lock = _lock_for(path)
    with lock:
        yield


# ==================== Low level (caller holds the lock) ====================

def _read_text(path: PathLike) -> str:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return f.read()
    except FileNotFoundError:
        return ''


def _split(text: str) -> Tuple[List[str], bool]:
    """Строки без переводов + был ли завершающий перевод строки."""
    if not text:
        return [], False
    trailing = text.endswith('\n')
    lines = text.split('\n')
    if trailing:
        lines.pop()
    return lines, trailing


def _join(lines: List[str], trailing: bool) -> str:
    if not lines:
        return ''
    return '\n'.join(lines) + ('\n' if trailing else '')


def atomic_write(path: PathLike, text: str, mode: int = 0o644) -> None:
    """
    Replace the file contents in one step.

    A temp file is written in the same directory and moved over the target
    with os.replace. An existing file keeps its mode and owner.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    uid = gid = None
    try:
        st = path.stat()
        mode = st.st_mode & 0o7777
        uid, gid = st.st_uid, st.st_gid
    except FileNotFoundError:
        pass

    fd, tmp_name = tempfile.mkstemp(prefix=f'.{path.name}.', suffix='.tmp', dir=str(path.parent))
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, mode)
        if uid is not None:
            try:
                os.chown(tmp_name, uid, gid)
            except PermissionError:
                # Без root владельца не поменять, файл остаётся нашим
                logger.debug(f"Could not preserve owner of {path}")
        os.replace(tmp_name, str(path))
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def _record_indices(lines: List[str], is_record: Predicate) -> List[int]:
    return [i for i, line in enumerate(lines) if is_record(line)]


# ==================== Public operations ====================

def read_lines(path: PathLike) -> List[str]:
    """All lines of the file, without newlines. A missing file reads as empty."""
    with file_lock(path):
        return _split(_read_text(path))[0]


def read_records(path: PathLike, is_record: Predicate) -> List[str]:
    return [line for line in read_lines(path) if is_record(line)]


def read_text(path: PathLike) -> str:
    with file_lock(path):
        return _read_text(path)


def append_line(path: PathLike, line: str, mode: int = 0o644) -> None:
    """Append one record, creating the file if needed."""
    with file_lock(path):
        text = _read_text(path)
        if text and not text.endswith('\n'):
            text += '\n'
        atomic_write(path, text + line + '\n', mode)


def remove_matching(path: PathLike, predicate: Predicate) -> int:
    """Drop every line the predicate accepts. Returns how many were removed."""
    with file_lock(path):
        if not os.path.exists(path):
            return 0
        lines, trailing = _split(_read_text(path))
        kept = [line for line in lines if not predicate(line)]
        removed = len(lines) - len(kept)
        if removed:
            atomic_write(path, _join(kept, trailing))
        return removed


def remove_at(path: PathLike, is_record: Predicate, position: int) -> bool:
    """
    Remove the record at a 1-based position among lines accepted by is_record.
    Out-of-range positions leave the file untouched and return False.
    """
    with file_lock(path):
        if not os.path.exists(path):
            return False
        lines, trailing = _split(_read_text(path))
        indices = _record_indices(lines, is_record)
        if position < 1 or position > len(indices):
            return False
        del lines[indices[position - 1]]
        atomic_write(path, _join(lines, trailing))
        return True


def replace_at(path: PathLike, is_record: Predicate, position: int, new_line: str) -> bool:
    """Same addressing as remove_at, replaces the line in place."""
    with file_lock(path):
        if not os.path.exists(path):
            return False
        lines, trailing = _split(_read_text(path))
        indices = _record_indices(lines, is_record)
        if position < 1 or position > len(indices):
            return False
        lines[indices[position - 1]] = new_line
        atomic_write(path, _join(lines, trailing))
        return True


def edit_text(path: PathLike, transform: Callable[[str], str], create: bool = False) -> str:
    """
    Whole-file transform under the lock. Without `create` the file must exist
    (FileNotFoundError otherwise). Returns the new text.
    Nothing is written when the text is unchanged.
    """
    with file_lock(path):
        if create:
            text = _read_text(path)
        else:
            with open(path, 'r', encoding='utf-8') as f:
                text = f.read()
        updated = transform(text)
        if updated != text:
            atomic_write(path, updated)
        return updated


def write_text(path: PathLike, text: str, mode: int = 0o644) -> None:
    with file_lock(path):
        atomic_write(path, text, mode)
