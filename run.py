"""
Запуск веб-панели управления VPS
"""

import logging
import os
import sys
from pathlib import Path

# Добавляем текущую директорию в путь
sys.path.insert(0, str(Path(__file__).parent))

logger = logging.getLogger('hostpanel')


# --- load env files (optional) ---
def _load_env_file(path: Path) -> None:
    """
    Простая загрузка KEY=VALUE из файла.
    Не перезаписывает уже заданные переменные окружения.
    """
    try:
        if not path.exists() or not path.is_file():
            return
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.warning(f"Cannot read env file {path}: {e}")
        return
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip("'").strip('"')
        if not key:
            continue
        os.environ.setdefault(key, value)


def main():
    logging.basicConfig(
        level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    _load_env_file(Path("/etc/hostpanel.env"))
    _load_env_file(Path(__file__).parent / ".env")

    from app import create_app
    from panel_config import PanelConfig

    config = PanelConfig.from_env()
    app = create_app(config)
    logger.info(f"Запуск веб-панели на порту {config.port}...")
    app.run(host='0.0.0.0', port=config.port, debug=False, use_reloader=False)


if __name__ == '__main__':
    main()
