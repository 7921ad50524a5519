"""
Flask веб-панель управления VPS.
Фабрика приложения, авторизация по сессии и перевод ошибок панели в JSON.
"""

import logging
from functools import wraps
from pathlib import Path
from typing import Optional

from flask import Flask, current_app, jsonify, request, session
from flask_session import Session
from werkzeug.exceptions import RequestEntityTooLarge
from werkzeug.security import check_password_hash

from command_runner import CommandRunner
from cron_manager import CronManager
from db_manager import DatabaseManager
from dns_manager import DnsManager
from file_manager import FileManager
from ftp_manager import FtpManager
from mail_manager import MailManager
from panel_config import PanelConfig
from panel_errors import PanelError
from service_manager import ServiceManager
from user_manager import UserManager
from vhost_manager import VhostManager
from wordpress_manager import WordPressManager

logger = logging.getLogger(__name__)

SESSION_LIFETIME = 3600  # 1 час


class Panel:
    """Все менеджеры поверх одного gatekeeper и одного конфига."""

    def __init__(self, config: PanelConfig, runner: Optional[CommandRunner] = None):
        self.config = config
        self.runner = runner or CommandRunner(config.elevation, timeout=config.command_timeout)
        self.services = ServiceManager(config, self.runner)
        self.users = UserManager(config, self.runner)
        self.vhosts = VhostManager(config, self.runner)
        self.databases = DatabaseManager(config, self.runner)
        self.files = FileManager(config, self.runner)
        self.mail = MailManager(config, self.runner)
        self.dns = DnsManager(config, self.runner)
        self.cron = CronManager(config, self.runner)
        self.ftp = FtpManager(config, self.runner)
        self.wordpress = WordPressManager(config, self.runner)


def get_panel() -> Panel:
    return current_app.config['PANEL']


def login_required(f):
    """Декоратор для проверки авторизации."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not session.get('authenticated'):
            return jsonify({'success': False, 'error': 'Authentication required'}), 401
        return f(*args, **kwargs)
    return decorated_function


def create_app(config: PanelConfig, runner: Optional[CommandRunner] = None) -> Flask:
    app = Flask(__name__)
    app.config['SECRET_KEY'] = config.secret_key
    app.config['SESSION_TYPE'] = 'filesystem'
    app.config['SESSION_FILE_DIR'] = str(config.session_dir)
    app.config['SESSION_PERMANENT'] = False
    app.config['PERMANENT_SESSION_LIFETIME'] = SESSION_LIFETIME
    app.config['MAX_CONTENT_LENGTH'] = config.max_upload_bytes
    app.config['PANEL'] = Panel(config, runner)

    Path(config.session_dir).mkdir(parents=True, exist_ok=True)
    Session(app)

    # ==================== Errors ====================

    @app.errorhandler(PanelError)
    def handle_panel_error(e: PanelError):
        if e.status_code >= 500:
            logger.error(f"{request.method} {request.path}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(e):
        limit_mb = config.max_upload_bytes // (1024 * 1024)
        return jsonify({'success': False, 'error': f'Request too large (max {limit_mb} MB)'}), 413

    # ==================== Auth ====================

    @app.route('/api/health')
    def health():
        return jsonify({'status': 'ok'})

    @app.route('/api/auth/login', methods=['POST'])
    def login():
        """Вход по логину/паролю администратора."""
        data = request.get_json(silent=True) or request.form
        username = (data.get('username') or '').strip()
        password = data.get('password') or ''

        if username == config.admin_username and check_password_hash(config.admin_password_hash, password):
            session.clear()
            session['authenticated'] = True
            session['username'] = username
            logger.info(f"Admin {username} logged in from {request.remote_addr}")
            return jsonify({'success': True, 'username': username})

        logger.warning(f"Failed login for {username!r} from {request.remote_addr}")
        return jsonify({'success': False, 'error': 'Invalid credentials'}), 401

    @app.route('/api/auth/logout', methods=['POST'])
    def logout():
        session.clear()
        return jsonify({'success': True})

    from app_api import api_blueprint
    app.register_blueprint(api_blueprint)

    return app
