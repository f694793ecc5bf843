from functools import wraps

from flask import session, flash, redirect, url_for, request, jsonify

from utils.permissions import get_request_policy


def _wants_json():
    return request.path.startswith('/api/') or request.is_json


def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'user_id' not in session:
            if _wants_json():
                return jsonify({"error": "Sessão expirada. Faça login novamente."}), 401
            flash('Faça login para acessar esta página.', 'warning')
            return redirect(url_for('auth.login'))
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    @wraps(f)
    def decorated_admin_function(*args, **kwargs):
        if 'user_id' not in session:
            flash('Faça login para acessar esta página.', 'warning')
            return redirect(url_for('auth.login'))

        if session.get('user_role') != 'admin':
            flash('Acesso negado. Requer privilégios de administrador.', 'danger')
            return redirect(url_for('patient.dashboard'))

        return f(*args, **kwargs)
    return decorated_admin_function


def permission_required(action, resource):
    """Consulta a política de permissões da requisição antes de executar a rota."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not get_request_policy().can(session.get('user_role'), action, resource):
                if _wants_json():
                    return jsonify({"error": "Acesso negado."}), 403
                flash('Acesso negado.', 'danger')
                return redirect(url_for('patient.dashboard'))
            return f(*args, **kwargs)
        return decorated_function
    return decorator
