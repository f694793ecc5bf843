import logging
import uuid
from datetime import datetime

from mysql.connector import Error

logger = logging.getLogger(__name__)


def get_comments_for_patient(connection, patient_id):
    cursor = None
    try:
        query = """
            SELECT id, patient_id, content, author_name, created_at
            FROM patient_comments WHERE patient_id = %s ORDER BY created_at DESC
        """
        cursor = connection.cursor(dictionary=True, buffered=True)
        cursor.execute(query, (patient_id,))
        return cursor.fetchall() or []
    except Error as e:
        logger.error("Erro buscando comentários do paciente %s: %s", patient_id, e)
        return []
    finally:
        if cursor: cursor.close()


def add_comment(connection, patient_id, content, author_name=None):
    """Devolve o comentário criado; conteúdo vazio é rejeitado com ValueError."""
    content = (content or '').strip()
    if not content:
        raise ValueError("O comentário não pode estar vazio.")
    cursor = None
    comment = {
        'id': str(uuid.uuid4()),
        'patient_id': patient_id,
        'content': content,
        'author_name': author_name or 'Usuário',
        'created_at': datetime.now(),
    }
    try:
        cursor = connection.cursor()
        cursor.execute("""
            INSERT INTO patient_comments (id, patient_id, content, author_name, created_at)
            VALUES (%s, %s, %s, %s, %s)
        """, (comment['id'], patient_id, comment['content'], comment['author_name'], comment['created_at']))
        return comment
    except Error as e:
        logger.error("Erro adicionando comentário: %s", e)
        return None
    finally:
        if cursor: cursor.close()
