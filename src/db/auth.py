import logging
import uuid
from datetime import datetime

from mysql.connector import Error
from werkzeug.security import generate_password_hash, check_password_hash

logger = logging.getLogger(__name__)

APPROVAL_STATUSES = ('pending', 'approved', 'rejected')
ROLES = ('admin', 'user')

USER_COLUMNS = ("id, email, first_name, last_name, role, approval_status, is_active, created_at")


def _normalize_user(user):
    if user:
        user['is_active'] = bool(user.get('is_active', 0))
        user['is_admin_role'] = (user.get('role') == 'admin')
    return user


def display_name(user):
    full_name = f"{user.get('first_name') or ''} {user.get('last_name') or ''}".strip()
    return full_name or user.get('email', '')


def register_user(connection, email, password_plain, first_name, last_name):
    """
    Cria o perfil com aprovação pendente.
    Devolve o id, "exists" se o email já está cadastrado, ou None em caso de erro.
    """
    cursor = None
    try:
        cursor = connection.cursor(dictionary=True)
        cursor.execute("SELECT id FROM user_profiles WHERE email = %s", (email,))
        if cursor.fetchone():
            return "exists"

        user_id = str(uuid.uuid4())
        hashed_password = generate_password_hash(password_plain, method='pbkdf2:sha256')
        query_insert = """
            INSERT INTO user_profiles
            (id, email, password_hash, first_name, last_name, role, approval_status, is_active, created_at)
            VALUES (%s, %s, %s, %s, %s, 'user', 'pending', 1, %s)
        """
        cursor.execute(query_insert, (user_id, email, hashed_password, first_name, last_name, datetime.now()))
        return user_id
    except Error as e:
        logger.error("Erro em register_user: %s", e)
        return None
    finally:
        if cursor: cursor.close()


def verify_login(connection, email, password):
    """Devolve o perfil (sem o hash) se a senha confere, senão None."""
    cursor = None
    try:
        query = f"SELECT {USER_COLUMNS}, password_hash FROM user_profiles WHERE email = %s"
        cursor = connection.cursor(dictionary=True, buffered=True)
        cursor.execute(query, (email,))
        user = cursor.fetchone()

        if user and check_password_hash(user.get('password_hash', ''), password):
            del user['password_hash']
            return _normalize_user(user)
        return None
    except Error as e:
        logger.error("Erro em verify_login: %s", e)
        return None
    finally:
        if cursor: cursor.close()


def get_all_users(connection, approval_status=None):
    cursor = None
    try:
        query = f"SELECT {USER_COLUMNS} FROM user_profiles"
        params = ()
        if approval_status:
            query += " WHERE approval_status = %s"
            params = (approval_status,)
        query += " ORDER BY created_at DESC"
        cursor = connection.cursor(dictionary=True, buffered=True)
        cursor.execute(query, params)
        return [_normalize_user(u) for u in cursor.fetchall()]
    except Error as e:
        logger.error("Erro buscando usuários: %s", e)
        return []
    finally:
        if cursor: cursor.close()


def get_user_by_id(connection, user_id):
    cursor = None
    try:
        cursor = connection.cursor(dictionary=True, buffered=True)
        cursor.execute(f"SELECT {USER_COLUMNS} FROM user_profiles WHERE id = %s", (user_id,))
        return _normalize_user(cursor.fetchone())
    except Error as e:
        logger.error("Erro buscando usuário %s: %s", user_id, e)
        return None
    finally:
        if cursor: cursor.close()


def get_admin_ids(connection):
    cursor = None
    try:
        cursor = connection.cursor(dictionary=True, buffered=True)
        cursor.execute("SELECT id FROM user_profiles WHERE role = 'admin' AND is_active = 1")
        return [row['id'] for row in cursor.fetchall()]
    except Error:
        return []
    finally:
        if cursor: cursor.close()


def set_approval_status(connection, user_id, status):
    if status not in APPROVAL_STATUSES:
        raise ValueError(f"Status de aprovação inválido: {status}")
    cursor = None
    try:
        cursor = connection.cursor()
        cursor.execute("UPDATE user_profiles SET approval_status = %s WHERE id = %s", (status, user_id))
        return cursor.rowcount > 0
    except Error as e:
        logger.error("Erro alterando aprovação de %s: %s", user_id, e)
        return False
    finally:
        if cursor: cursor.close()


def set_user_active_status(connection, user_id, status):
    cursor = None
    try:
        cursor = connection.cursor()
        cursor.execute("UPDATE user_profiles SET is_active = %s WHERE id = %s", (1 if status else 0, user_id))
        return cursor.rowcount > 0
    except Error:
        return False
    finally:
        if cursor: cursor.close()


def set_user_role(connection, user_id, role):
    if role not in ROLES:
        raise ValueError(f"Papel inválido: {role}")
    cursor = None
    try:
        cursor = connection.cursor()
        cursor.execute("UPDATE user_profiles SET role = %s WHERE id = %s", (role, user_id))
        return cursor.rowcount > 0
    except Error:
        return False
    finally:
        if cursor: cursor.close()


def update_user_password(connection, user_id, new_password_plain):
    cursor = None
    try:
        cursor = connection.cursor()
        hashed = generate_password_hash(new_password_plain, method='pbkdf2:sha256')
        cursor.execute("UPDATE user_profiles SET password_hash = %s WHERE id = %s", (hashed, user_id))
        return cursor.rowcount > 0
    except Error as e:
        logger.error("Erro trocando senha de %s: %s", user_id, e)
        return False
    finally:
        if cursor: cursor.close()


# Notificações de novos cadastros
def notify_admins_new_user(connection, email, first_name, last_name):
    admin_ids = get_admin_ids(connection)
    if not admin_ids: return 0
    cursor = None
    try:
        message = f"Novo usuário {first_name} {last_name} ({email}) solicitou acesso ao sistema."
        now = datetime.now()
        cursor = connection.cursor()
        cursor.executemany(
            "INSERT INTO pending_user_notifications (id, user_id, message, is_read, created_at) "
            "VALUES (%s, %s, %s, 0, %s)",
            [(str(uuid.uuid4()), admin_id, message, now) for admin_id in admin_ids]
        )
        return len(admin_ids)
    except Error as e:
        logger.error("Erro notificando administradores: %s", e)
        return 0
    finally:
        if cursor: cursor.close()


def get_unread_notifications(connection, user_id):
    cursor = None
    try:
        cursor = connection.cursor(dictionary=True, buffered=True)
        cursor.execute("""
            SELECT id, message, created_at FROM pending_user_notifications
            WHERE user_id = %s AND is_read = 0 ORDER BY created_at DESC
        """, (user_id,))
        return cursor.fetchall() or []
    except Error:
        return []
    finally:
        if cursor: cursor.close()


def mark_notifications_read(connection, user_id):
    cursor = None
    try:
        cursor = connection.cursor()
        cursor.execute("UPDATE pending_user_notifications SET is_read = 1 WHERE user_id = %s", (user_id,))
        return cursor.rowcount
    except Error as e:
        logger.error("Erro marcando notificações: %s", e)
        return 0
    finally:
        if cursor: cursor.close()
