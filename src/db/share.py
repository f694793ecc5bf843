import logging
import secrets
from datetime import datetime

from dateutil.relativedelta import relativedelta
from mysql.connector import Error

logger = logging.getLogger(__name__)

TOKEN_OK = 'ok'
TOKEN_INVALID = 'invalid'
TOKEN_EXPIRED = 'expired'


def get_token_for_patient(connection, patient_id):
    cursor = None
    try:
        cursor = connection.cursor(dictionary=True, buffered=True)
        cursor.execute("""
            SELECT token, patient_id, expires_at FROM patient_public_tokens
            WHERE patient_id = %s ORDER BY created_at DESC LIMIT 1
        """, (patient_id,))
        return cursor.fetchone()
    except Error as e:
        logger.error("Erro buscando token público do paciente %s: %s", patient_id, e)
        return None
    finally:
        if cursor: cursor.close()


def create_token(connection, patient_id, valid_months=0):
    token = secrets.token_urlsafe(24)
    now = datetime.now()
    expires_at = now + relativedelta(months=valid_months) if valid_months else None
    cursor = None
    try:
        cursor = connection.cursor()
        cursor.execute("""
            INSERT INTO patient_public_tokens (token, patient_id, expires_at, created_at)
            VALUES (%s, %s, %s, %s)
        """, (token, patient_id, expires_at, now))
        return {'token': token, 'patient_id': patient_id, 'expires_at': expires_at}
    except Error as e:
        logger.error("Erro criando token público: %s", e)
        return None
    finally:
        if cursor: cursor.close()


def get_or_create_token(connection, patient_id, valid_months=0, now=None):
    """Reaproveita o token vigente do paciente ou cria um novo."""
    existing = get_token_for_patient(connection, patient_id)
    if existing and check_token(existing, patient_id, now) == TOKEN_OK:
        return existing
    return create_token(connection, patient_id, valid_months)


def find_token(connection, token, patient_id):
    cursor = None
    try:
        cursor = connection.cursor(dictionary=True, buffered=True)
        cursor.execute("""
            SELECT token, patient_id, expires_at FROM patient_public_tokens
            WHERE token = %s AND patient_id = %s
        """, (token, patient_id))
        return cursor.fetchone()
    except Error as e:
        logger.error("Erro validando token público: %s", e)
        return None
    finally:
        if cursor: cursor.close()


def check_token(token_row, patient_id, now=None):
    if not token_row or str(token_row.get('patient_id')) != str(patient_id):
        return TOKEN_INVALID
    expires_at = token_row.get('expires_at')
    if expires_at and not (now or datetime.now()) < expires_at:
        return TOKEN_EXPIRED
    return TOKEN_OK
