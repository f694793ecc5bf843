import logging
import uuid
from datetime import datetime

from mysql.connector import Error

logger = logging.getLogger(__name__)

ENTRY_COLUMNS = ("id, patient_id, title, description, category, order_index, is_completed, "
                 "completed_at, completed_by, created_at, updated_at")


def _normalize_entry(row):
    if row:
        row['is_completed'] = bool(row.get('is_completed', 0))
        row['order_index'] = int(row.get('order_index') or 0)
    return row


def get_entries_by_patient(connection, patient_id):
    """Devolve as entradas PCS do paciente, ou None se a consulta falhar."""
    cursor = None
    try:
        query = f"""
            SELECT {ENTRY_COLUMNS}
            FROM pcs_entries
            WHERE patient_id = %s
            ORDER BY category, order_index
        """
        cursor = connection.cursor(dictionary=True, buffered=True)
        cursor.execute(query, (patient_id,))
        return [_normalize_entry(r) for r in cursor.fetchall()]
    except Error as e:
        logger.error("Erro buscando entradas PCS do paciente %s: %s", patient_id, e)
        return None
    finally:
        if cursor: cursor.close()


def insert_entry(connection, patient_id, title, description, category, order_index):
    """Insere uma entrada e devolve a linha criada (None em caso de erro)."""
    cursor = None
    entry_id = str(uuid.uuid4())
    now = datetime.now()
    try:
        cursor = connection.cursor()
        query = """
            INSERT INTO pcs_entries
            (id, patient_id, title, description, category, order_index, is_completed, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, 0, %s, %s)
        """
        cursor.execute(query, (entry_id, patient_id, title, description, category, order_index, now, now))
        return {
            'id': entry_id, 'patient_id': patient_id, 'title': title, 'description': description,
            'category': category, 'order_index': order_index, 'is_completed': False,
            'completed_at': None, 'completed_by': None, 'created_at': now, 'updated_at': now
        }
    except Error as e:
        logger.error("Erro inserindo entrada PCS: %s", e)
        return None
    finally:
        if cursor: cursor.close()


def update_entry(connection, entry_id, data):
    if not data: return True
    updatable = ['title', 'description', 'category', 'order_index',
                 'is_completed', 'completed_at', 'completed_by']
    set_parts, values = [], []
    for col in updatable:
        if col in data:
            set_parts.append(f"`{col}`=%s")
            val = int(data[col]) if col == 'is_completed' else data[col]
            values.append(val)

    if not set_parts: return True
    set_parts.append("`updated_at`=%s")
    values.append(datetime.now())

    cursor = None
    try:
        cursor = connection.cursor()
        query = f"UPDATE pcs_entries SET {', '.join(set_parts)} WHERE id=%s"
        values.append(entry_id)
        cursor.execute(query, tuple(values))
        # rowcount é 0 quando nada mudou; isso não é falha
        return True
    except Error as e:
        logger.error("Erro atualizando entrada PCS %s: %s", entry_id, e)
        return False
    finally:
        if cursor: cursor.close()


def delete_entry(connection, entry_id):
    cursor = None
    try:
        cursor = connection.cursor()
        cursor.execute("DELETE FROM pcs_entries WHERE id = %s", (entry_id,))
        return cursor.rowcount > 0
    except Error as e:
        logger.error("Erro removendo entrada PCS %s: %s", entry_id, e)
        return False
    finally:
        if cursor: cursor.close()


def update_entry_positions(connection, positions):
    """
    Grava (id, category, order_index) de várias entradas numa única transação.
    Em caso de erro faz rollback de todas e devolve False.
    """
    if not positions: return True
    cursor = None
    now = datetime.now()
    try:
        cursor = connection.cursor()
        query = "UPDATE pcs_entries SET category=%s, order_index=%s, updated_at=%s WHERE id=%s"
        for entry_id, category, order_index in positions:
            cursor.execute(query, (category, order_index, now, entry_id))
        connection.commit()
        return True
    except Error as e:
        logger.error("Erro gravando nova ordem das entradas PCS: %s", e)
        connection.rollback()
        return False
    finally:
        if cursor: cursor.close()


# Log de alterações
def add_change_log(connection, patient_id, user_id, action, description):
    cursor = None
    try:
        cursor = connection.cursor()
        query = """
            INSERT INTO pcs_change_log (id, patient_id, user_id, action, description, created_at)
            VALUES (%s, %s, %s, %s, %s, %s)
        """
        log_id = str(uuid.uuid4())
        cursor.execute(query, (log_id, patient_id, user_id, action, description, datetime.now()))
        return log_id
    except Error as e:
        logger.error("Erro registrando log PCS (%s): %s", action, e)
        return None
    finally:
        if cursor: cursor.close()


def get_change_log(connection, patient_id, limit=50):
    cursor = None
    try:
        query = """
            SELECT l.id, l.action, l.description, l.created_at,
                   u.first_name, u.last_name, u.email
            FROM pcs_change_log l
            LEFT JOIN user_profiles u ON l.user_id = u.id
            WHERE l.patient_id = %s
            ORDER BY l.created_at DESC
            LIMIT %s
        """
        cursor = connection.cursor(dictionary=True, buffered=True)
        cursor.execute(query, (patient_id, limit))
        return cursor.fetchall() or []
    except Error as e:
        logger.error("Erro buscando log PCS do paciente %s: %s", patient_id, e)
        return []
    finally:
        if cursor: cursor.close()


def get_entry_totals(connection):
    """Totais globais usados no dashboard."""
    cursor = None
    totals = {'total': 0, 'completed': 0, 'fundamental': 0, 'important': 0, 'care': 0}
    try:
        cursor = connection.cursor(dictionary=True, buffered=True)
        cursor.execute("""
            SELECT category, COUNT(*) AS total, SUM(is_completed) AS completed
            FROM pcs_entries GROUP BY category
        """)
        for row in cursor.fetchall():
            total = int(row['total'] or 0)
            totals[row['category']] = total
            totals['total'] += total
            totals['completed'] += int(row['completed'] or 0)
        return totals
    except Error as e:
        logger.error("Erro calculando totais PCS: %s", e)
        return totals
    finally:
        if cursor: cursor.close()


class PcsStore:
    """Adaptador das funções acima para o OrderedBoard."""

    def __init__(self, connection):
        self.connection = connection

    def list_entries(self, patient_id):
        return get_entries_by_patient(self.connection, patient_id)

    def insert_entry(self, patient_id, title, description, category, order_index):
        return insert_entry(self.connection, patient_id, title, description, category, order_index)

    def update_entry(self, entry_id, data):
        return update_entry(self.connection, entry_id, data)

    def delete_entry(self, entry_id):
        return delete_entry(self.connection, entry_id)

    def update_positions(self, positions):
        return update_entry_positions(self.connection, positions)

    def add_change_log(self, patient_id, user_id, action, description):
        return add_change_log(self.connection, patient_id, user_id, action, description)

    def list_change_log(self, patient_id, limit=50):
        return get_change_log(self.connection, patient_id, limit)
