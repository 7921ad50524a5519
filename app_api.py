"""
JSON API панели.
Каждый маршрут только разбирает запрос и вызывает менеджер,
ошибки PanelError превращаются в JSON обработчиком в app.py.
"""

from flask import Blueprint, jsonify, request

from app import get_panel, login_required
from panel_errors import ValidationError

api_blueprint = Blueprint('api', __name__, url_prefix='/api')


def _json() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _flag(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or '').strip().lower() in ('1', 'true', 'yes', 'on')


# ==================== System ====================

@api_blueprint.route('/system/stats')
@login_required
def system_stats():
    return jsonify(get_panel().services.system_stats())


@api_blueprint.route('/system/services')
@login_required
def system_services():
    return jsonify(get_panel().services.list_services())


@api_blueprint.route('/system/services/<name>/<action>', methods=['POST'])
@login_required
def system_service_action(name, action):
    """start / stop / restart отслеживаемого сервиса."""
    return jsonify(get_panel().services.service_action(name, action))


@api_blueprint.route('/system/logs')
@login_required
def system_logs():
    unit = request.args.get('unit') or None
    return jsonify(get_panel().services.get_logs(unit, request.args.get('lines', 100)))


# ==================== Users ====================

@api_blueprint.route('/users', methods=['GET'])
@login_required
def users_list():
    return jsonify(get_panel().users.list_users())


@api_blueprint.route('/users', methods=['POST'])
@login_required
def users_create():
    data = _json()
    result = get_panel().users.create_user(
        data.get('username'), data.get('password'), data.get('shell'), data.get('groups'))
    return jsonify(result), 201


@api_blueprint.route('/users/<username>', methods=['PUT'])
@login_required
def users_update(username):
    data = _json()
    return jsonify(get_panel().users.update_user(username, data.get('password'), data.get('shell')))


@api_blueprint.route('/users/<username>', methods=['DELETE'])
@login_required
def users_delete(username):
    return jsonify(get_panel().users.delete_user(username))


@api_blueprint.route('/users/<username>/suspend', methods=['POST'])
@login_required
def users_suspend(username):
    return jsonify(get_panel().users.suspend_user(username))


@api_blueprint.route('/users/<username>/activate', methods=['POST'])
@login_required
def users_activate(username):
    return jsonify(get_panel().users.activate_user(username))


# ==================== Vhosts ====================

@api_blueprint.route('/vhosts', methods=['GET'])
@login_required
def vhosts_list():
    return jsonify(get_panel().vhosts.list_vhosts())


@api_blueprint.route('/vhosts', methods=['POST'])
@login_required
def vhosts_create():
    data = _json()
    result = get_panel().vhosts.create_vhost(
        data.get('domain'),
        docroot=data.get('docroot') or None,
        php=data.get('php') or None,
        ssl=_flag(data.get('ssl')),
        email=data.get('email') or None,
    )
    return jsonify(result), 201


@api_blueprint.route('/vhosts/<domain>', methods=['GET'])
@login_required
def vhosts_get(domain):
    return jsonify(get_panel().vhosts.get_vhost(domain))


@api_blueprint.route('/vhosts/<domain>', methods=['DELETE'])
@login_required
def vhosts_delete(domain):
    return jsonify(get_panel().vhosts.delete_vhost(domain))


@api_blueprint.route('/vhosts/<domain>/enable', methods=['POST'])
@login_required
def vhosts_enable(domain):
    return jsonify(get_panel().vhosts.enable_vhost(domain))


@api_blueprint.route('/vhosts/<domain>/disable', methods=['POST'])
@login_required
def vhosts_disable(domain):
    return jsonify(get_panel().vhosts.disable_vhost(domain))


@api_blueprint.route('/vhosts/<domain>/ssl', methods=['POST'])
@login_required
def vhosts_ssl(domain):
    return jsonify(get_panel().vhosts.enable_ssl(domain, _json().get('email') or None))


# ==================== Databases ====================

@api_blueprint.route('/databases', methods=['GET'])
@login_required
def databases_list():
    return jsonify(get_panel().databases.list_databases())


@api_blueprint.route('/databases', methods=['POST'])
@login_required
def databases_create():
    data = _json()
    result = get_panel().databases.create_database(
        data.get('name'), data.get('user') or None, data.get('password'), data.get('host') or None)
    return jsonify(result), 201


@api_blueprint.route('/databases/<name>', methods=['DELETE'])
@login_required
def databases_drop(name):
    return jsonify(get_panel().databases.drop_database(name))


@api_blueprint.route('/databases/<name>/tables')
@login_required
def databases_tables(name):
    return jsonify(get_panel().databases.list_tables(name))


# ==================== Files ====================

@api_blueprint.route('/files', methods=['GET'])
@login_required
def files_list():
    return jsonify(get_panel().files.list_dir(request.args.get('path', '/')))


@api_blueprint.route('/files', methods=['DELETE'])
@login_required
def files_delete():
    path = request.args.get('path') or _json().get('path')
    return jsonify(get_panel().files.delete(path))


@api_blueprint.route('/files/mkdir', methods=['POST'])
@login_required
def files_mkdir():
    return jsonify(get_panel().files.make_dir(_json().get('path'))), 201


@api_blueprint.route('/files/rename', methods=['POST'])
@login_required
def files_rename():
    data = _json()
    return jsonify(get_panel().files.rename(data.get('from'), data.get('to')))


@api_blueprint.route('/files/read')
@login_required
def files_read():
    return jsonify(get_panel().files.read_file(request.args.get('path')))


@api_blueprint.route('/files/write', methods=['POST'])
@login_required
def files_write():
    data = _json()
    return jsonify(get_panel().files.write_file(data.get('path'), data.get('content')))


@api_blueprint.route('/files/upload', methods=['POST'])
@login_required
def files_upload():
    upload = request.files.get('file')
    if upload is None:
        raise ValidationError('No file uploaded')
    return jsonify(get_panel().files.save_upload(request.form.get('path', '/'), upload)), 201


# ==================== Email ====================

@api_blueprint.route('/email/domains', methods=['GET'])
@login_required
def email_domains():
    return jsonify(get_panel().mail.list_domains())


@api_blueprint.route('/email/domains', methods=['POST'])
@login_required
def email_domains_add():
    return jsonify(get_panel().mail.add_domain(_json().get('domain'))), 201


@api_blueprint.route('/email/domains/<domain>', methods=['DELETE'])
@login_required
def email_domains_delete(domain):
    return jsonify(get_panel().mail.delete_domain(domain, purge=_flag(request.args.get('purge'))))


@api_blueprint.route('/email/mailboxes', methods=['GET'])
@login_required
def email_mailboxes():
    return jsonify(get_panel().mail.list_mailboxes(request.args.get('domain') or None))


@api_blueprint.route('/email/mailboxes', methods=['POST'])
@login_required
def email_mailboxes_create():
    data = _json()
    result = get_panel().mail.create_mailbox(data.get('email'), data.get('password'), data.get('quota') or None)
    return jsonify(result), 201


@api_blueprint.route('/email/mailboxes/<email>', methods=['DELETE'])
@login_required
def email_mailboxes_delete(email):
    return jsonify(get_panel().mail.delete_mailbox(email))


@api_blueprint.route('/email/queue')
@login_required
def email_queue():
    return jsonify(get_panel().mail.get_queue())


@api_blueprint.route('/email/queue/flush', methods=['POST'])
@login_required
def email_queue_flush():
    return jsonify(get_panel().mail.flush_queue())


# ==================== DNS ====================

@api_blueprint.route('/dns', methods=['GET'])
@login_required
def dns_list():
    return jsonify(get_panel().dns.list_zones())


@api_blueprint.route('/dns', methods=['POST'])
@login_required
def dns_create():
    data = _json()
    return jsonify(get_panel().dns.create_zone(data.get('domain'), data.get('ip'))), 201


@api_blueprint.route('/dns/<domain>', methods=['GET'])
@login_required
def dns_get(domain):
    return jsonify(get_panel().dns.get_zone(domain).to_dict())


@api_blueprint.route('/dns/<domain>', methods=['DELETE'])
@login_required
def dns_delete(domain):
    return jsonify(get_panel().dns.delete_zone(domain))


@api_blueprint.route('/dns/<domain>/records', methods=['POST'])
@login_required
def dns_record_add(domain):
    data = _json()
    result = get_panel().dns.add_record(
        domain, data.get('name'), data.get('type'), data.get('value'), data.get('ttl'))
    return jsonify(result), 201


@api_blueprint.route('/dns/<domain>/records', methods=['DELETE'])
@login_required
def dns_record_delete(domain):
    data = _json()
    return jsonify(get_panel().dns.delete_record(domain, data.get('name'), data.get('type'), data.get('value')))


# ==================== Cron ====================

@api_blueprint.route('/cron', methods=['GET'])
@login_required
def cron_list():
    jobs = get_panel().cron.list_jobs(request.args.get('user') or None)
    return jsonify([job.to_dict() for job in jobs])


@api_blueprint.route('/cron', methods=['POST'])
@login_required
def cron_create():
    return jsonify(get_panel().cron.create_job(_json())), 201


@api_blueprint.route('/cron/<int:position>', methods=['PUT'])
@login_required
def cron_update(position):
    return jsonify(get_panel().cron.update_job(position, _json()))


@api_blueprint.route('/cron/<int:position>', methods=['DELETE'])
@login_required
def cron_delete(position):
    return jsonify(get_panel().cron.delete_job(position, request.args.get('user') or None))


@api_blueprint.route('/cron/<int:position>/run', methods=['POST'])
@login_required
def cron_run(position):
    user = request.args.get('user') or _json().get('user') or None
    return jsonify(get_panel().cron.run_now(position, user))


# ==================== FTP ====================

@api_blueprint.route('/ftp', methods=['GET'])
@login_required
def ftp_list():
    return jsonify(get_panel().ftp.list_users())


@api_blueprint.route('/ftp', methods=['POST'])
@login_required
def ftp_create():
    data = _json()
    result = get_panel().ftp.create_user(data.get('username'), data.get('password'), data.get('home_dir') or None)
    return jsonify(result), 201


@api_blueprint.route('/ftp/<username>', methods=['PUT'])
@login_required
def ftp_update(username):
    return jsonify(get_panel().ftp.update_password(username, _json().get('password')))


@api_blueprint.route('/ftp/<username>', methods=['DELETE'])
@login_required
def ftp_delete(username):
    return jsonify(get_panel().ftp.delete_user(username))


# ==================== WordPress ====================

@api_blueprint.route('/wordpress', methods=['GET'])
@login_required
def wordpress_list():
    return jsonify(get_panel().wordpress.list_sites())


@api_blueprint.route('/wordpress', methods=['POST'])
@login_required
def wordpress_create():
    return jsonify(get_panel().wordpress.create_site(_json())), 201


@api_blueprint.route('/wordpress/<domain>', methods=['DELETE'])
@login_required
def wordpress_delete(domain):
    return jsonify(get_panel().wordpress.delete_site(domain, delete_db=_flag(request.args.get('delete_db'))))


@api_blueprint.route('/wordpress/<domain>/plugins', methods=['GET'])
@login_required
def wordpress_plugins(domain):
    return jsonify(get_panel().wordpress.list_plugins(domain))


@api_blueprint.route('/wordpress/<domain>/plugins', methods=['POST'])
@login_required
def wordpress_plugin_install(domain):
    data = _json()
    result = get_panel().wordpress.install_plugin(domain, data.get('name'), _flag(data.get('activate')))
    return jsonify(result), 201


@api_blueprint.route('/wordpress/<domain>/plugins/<name>/<action>', methods=['POST'])
@login_required
def wordpress_plugin_action(domain, name, action):
    return jsonify(get_panel().wordpress.plugin_action(domain, name, action))


@api_blueprint.route('/wordpress/<domain>/themes', methods=['GET'])
@login_required
def wordpress_themes(domain):
    return jsonify(get_panel().wordpress.list_themes(domain))


@api_blueprint.route('/wordpress/<domain>/themes', methods=['POST'])
@login_required
def wordpress_theme_install(domain):
    data = _json()
    result = get_panel().wordpress.install_theme(domain, data.get('name'), _flag(data.get('activate')))
    return jsonify(result), 201


@api_blueprint.route('/wordpress/<domain>/themes/<name>/<action>', methods=['POST'])
@login_required
def wordpress_theme_action(domain, name, action):
    return jsonify(get_panel().wordpress.theme_action(domain, name, action))


@api_blueprint.route('/wordpress/<domain>/update', methods=['POST'])
@login_required
def wordpress_update(domain):
    return jsonify(get_panel().wordpress.update_core(domain))


@api_blueprint.route('/wordpress/<domain>/cache/flush', methods=['POST'])
@login_required
def wordpress_flush_cache(domain):
    return jsonify(get_panel().wordpress.flush_cache(domain))


@api_blueprint.route('/wordpress/<domain>/maintenance', methods=['POST'])
@login_required
def wordpress_maintenance(domain):
    return jsonify(get_panel().wordpress.set_maintenance(domain, _flag(_json().get('enable'))))
