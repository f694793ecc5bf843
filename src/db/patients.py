import logging
import uuid
from datetime import datetime, timedelta

from mysql.connector import Error

logger = logging.getLogger(__name__)

PATIENT_STATUSES = ('analysis', 'treatment', 'discharged', 'inactive')
STATUS_LABELS = {
    'analysis': 'Em Análise',
    'treatment': 'Em Tratamento',
    'discharged': 'Alta',
    'inactive': 'Inativo',
}


def _normalize_patient(row):
    if row:
        row['club_member'] = bool(row.get('club_member', 0))
    return row


def add_patient(connection, name, status='analysis', club_member=False, club_join_date=None):
    if status not in PATIENT_STATUSES:
        raise ValueError(f"Status inválido: {status}")
    cursor = None
    patient_id = str(uuid.uuid4())
    now = datetime.now()
    try:
        cursor = connection.cursor()
        query = """
            INSERT INTO patients (id, name, status, club_member, club_join_date, last_updated, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
        """
        # A data de entrada no clube só vale para membros
        join_date = club_join_date if club_member else None
        cursor.execute(query, (patient_id, name, status, 1 if club_member else 0, join_date, now, now))
        return patient_id
    except Error as e:
        logger.error("Erro adicionando paciente: %s", e)
        return None
    finally:
        if cursor: cursor.close()


def get_patient_by_id(connection, patient_id):
    cursor = None
    try:
        cursor = connection.cursor(dictionary=True, buffered=True)
        cursor.execute("SELECT * FROM patients WHERE id = %s", (patient_id,))
        return _normalize_patient(cursor.fetchone())
    except Error as e:
        logger.error("Erro buscando paciente %s: %s", patient_id, e)
        return None
    finally:
        if cursor: cursor.close()


def get_all_patients(connection, search_term=None, status=None):
    """Lista ordenada pela última atualização (mais recente primeiro)."""
    cursor = None
    try:
        query = "SELECT * FROM patients"
        conditions, params = [], []
        if search_term:
            conditions.append("name LIKE %s")
            params.append(f"%{search_term}%")
        if status and status != 'all':
            conditions.append("status = %s")
            params.append(status)
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY last_updated DESC"

        cursor = connection.cursor(dictionary=True, buffered=True)
        cursor.execute(query, tuple(params))
        return [_normalize_patient(p) for p in cursor.fetchall()]
    except Error as e:
        logger.error("Erro listando pacientes: %s", e)
        return []
    finally:
        if cursor: cursor.close()


def search_patients_by_name(connection, search_term, limit=20):
    cursor = None
    try:
        query = """
            SELECT id, name, status, club_member, last_updated
            FROM patients WHERE name LIKE %s ORDER BY name LIMIT %s
        """
        cursor = connection.cursor(dictionary=True, buffered=True)
        cursor.execute(query, (f"%{search_term}%", limit))
        return [_normalize_patient(p) for p in cursor.fetchall()]
    except Error: return []
    finally:
        if cursor: cursor.close()


def update_patient_status(connection, patient_id, status):
    if status not in PATIENT_STATUSES:
        raise ValueError(f"Status inválido: {status}")
    cursor = None
    try:
        cursor = connection.cursor()
        cursor.execute("UPDATE patients SET status = %s, last_updated = %s WHERE id = %s",
                       (status, datetime.now(), patient_id))
        return cursor.rowcount > 0
    except Error as e:
        logger.error("Erro atualizando status do paciente %s: %s", patient_id, e)
        return False
    finally:
        if cursor: cursor.close()


def touch_patient(connection, patient_id):
    """Atualiza last_updated quando o PCS do paciente muda."""
    cursor = None
    try:
        cursor = connection.cursor()
        cursor.execute("UPDATE patients SET last_updated = %s WHERE id = %s", (datetime.now(), patient_id))
        return cursor.rowcount > 0
    except Error:
        return False
    finally:
        if cursor: cursor.close()


def get_patient_stats(connection):
    cursor = None
    stats = {'total': 0, 'club_members': 0, 'recent': 0}
    stats.update({s: 0 for s in PATIENT_STATUSES})
    try:
        cursor = connection.cursor(dictionary=True, buffered=True)
        cursor.execute("""
            SELECT status, COUNT(*) AS total, SUM(club_member) AS club,
                   SUM(created_at > %s) AS recent
            FROM patients GROUP BY status
        """, (datetime.now() - timedelta(days=7),))
        for row in cursor.fetchall():
            total = int(row['total'] or 0)
            stats[row['status']] = total
            stats['total'] += total
            stats['club_members'] += int(row['club'] or 0)
            stats['recent'] += int(row['recent'] or 0)
        stats['weekly_growth'] = round(stats['recent'] / stats['total'] * 100) if stats['total'] else 0
        return stats
    except Error as e:
        logger.error("Erro calculando estatísticas de pacientes: %s", e)
        stats['weekly_growth'] = 0
        return stats
    finally:
        if cursor: cursor.close()
