"""
Файловый менеджер, ограниченный корнем web_root.
"""

import logging
import os
import shutil
import stat
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from werkzeug.utils import secure_filename

import line_store
from command_runner import CommandRunner
from panel_config import PanelConfig
from panel_errors import ForbiddenOperation, NotFound, PathEscape, PayloadTooLarge, ValidationError
from path_guard import confine, is_root, relative_to_root, validate_entry_name

logger = logging.getLogger(__name__)


class FileManager:

    def __init__(self, config: PanelConfig, runner: Optional[CommandRunner] = None):
        self.config = config
        self.runner = runner

    @property
    def root(self) -> str:
        return os.path.normpath(str(self.config.web_root))

    def resolve(self, requested: Optional[str]) -> Path:
        """
        Lexical confinement plus a symlink-aware check: a link inside the
        root that points outside of it is refused as well.
        """
        path = confine(self.root, requested)
        real_root = os.path.realpath(self.root)
        real = os.path.realpath(path)
        if real != real_root and not real.startswith(real_root.rstrip('/') + '/'):
            raise PathEscape()
        return Path(path)

    def _rel(self, path: Path) -> str:
        return relative_to_root(self.root, path)

    def _protect_root(self, path: Path, action: str) -> None:
        if is_root(self.root, path):
            raise ForbiddenOperation(f'Cannot {action} the root directory')

    def list_dir(self, path: Optional[str] = None) -> Dict[str, object]:
        abs_path = self.resolve(path)
        if not abs_path.exists():
            raise NotFound('Path does not exist')
        if not abs_path.is_dir():
            raise ValidationError('Not a directory')

        items: List[Dict[str, object]] = []
        for item in abs_path.iterdir():
            try:
                st = item.lstat()
            except PermissionError:
                continue  # Skip files we can't read
            items.append({
                'name': item.name,
                'path': self._rel(item),
                'is_dir': stat.S_ISDIR(st.st_mode) or (item.is_symlink() and item.is_dir()),
                'size': st.st_size,
                'permissions': stat.filemode(st.st_mode),
                'modified': datetime.fromtimestamp(st.st_mtime).isoformat(),
                'is_symlink': stat.S_ISLNK(st.st_mode),
            })

        # Sort: directories first, then files
        items.sort(key=lambda x: (not x['is_dir'], x['name'].lower()))
        return {'path': self._rel(abs_path), 'files': items}

    def make_dir(self, path: str) -> Dict[str, str]:
        abs_path = self.resolve(path)
        if abs_path.exists() and not abs_path.is_dir():
            raise ValidationError('A file with this name already exists')
        abs_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"Directory created: {abs_path}")
        return {'status': 'created', 'path': self._rel(abs_path)}

    def delete(self, path: str) -> Dict[str, str]:
        abs_path = self.resolve(path)
        self._protect_root(abs_path, 'delete')
        if not os.path.lexists(abs_path):
            raise NotFound('Path does not exist')
        if abs_path.is_dir() and not abs_path.is_symlink():
            shutil.rmtree(abs_path)
        else:
            abs_path.unlink()
        logger.info(f"Deleted: {abs_path}")
        return {'status': 'deleted'}

    def rename(self, src: str, dst: str) -> Dict[str, str]:
        """`dst` is either a bare new name (same directory) or a path under the root."""
        src_path = self.resolve(src)
        self._protect_root(src_path, 'rename')
        if not os.path.lexists(src_path):
            raise NotFound('Source does not exist')

        dst = (dst or '').strip()
        if not dst:
            raise ValidationError('Destination is required')
        if '/' in dst:
            dst_path = self.resolve(dst)
        else:
            dst_path = self.resolve(self._rel(src_path.parent / validate_entry_name(dst)))
        self._protect_root(dst_path, 'replace')
        if os.path.lexists(dst_path):
            raise ValidationError('Destination already exists')

        src_path.rename(dst_path)
        logger.info(f"Renamed {src_path} -> {dst_path}")
        return {'status': 'renamed', 'path': self._rel(dst_path)}

    def read_file(self, path: str) -> Dict[str, str]:
        abs_path = self.resolve(path)
        if not abs_path.exists():
            raise NotFound('File not found')
        if abs_path.is_dir():
            raise ValidationError('Path is a directory')
        size = abs_path.stat().st_size
        limit = self.config.max_read_bytes
        if size > limit:
            raise PayloadTooLarge(f'File too large to read via API (max {limit // (1024 * 1024)} MB)')
        content = abs_path.read_text(encoding='utf-8', errors='replace')
        return {'path': self._rel(abs_path), 'content': content}

    def write_file(self, path: str, content: Optional[str]) -> Dict[str, str]:
        abs_path = self.resolve(path)
        self._protect_root(abs_path, 'overwrite')
        if abs_path.is_dir():
            raise ValidationError('Path is a directory')
        if not abs_path.parent.is_dir():
            raise NotFound('Parent directory does not exist')
        line_store.write_text(abs_path, content or '')
        logger.info(f"File saved: {abs_path}")
        return {'status': 'saved'}

    def save_upload(self, dest_dir: Optional[str], upload) -> Dict[str, str]:
        """`upload` is a werkzeug FileStorage."""
        filename = secure_filename(upload.filename or '')
        if not filename:
            raise ValidationError('Invalid file name')
        base_dir = self.resolve(dest_dir)
        if not base_dir.is_dir():
            raise ValidationError('Destination is not a directory')
        save_path = self.resolve(self._rel(base_dir / filename))
        upload.save(str(save_path))
        logger.info(f"Uploaded {filename} to {base_dir}")
        return {'status': 'uploaded', 'filename': filename, 'path': self._rel(save_path)}
