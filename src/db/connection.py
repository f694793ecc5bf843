import logging
import os
from contextlib import contextmanager

import mysql.connector
from mysql.connector import pooling, Error
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DB_CONFIG = {
    'host': os.environ.get('DB_HOST', 'localhost'),
    'user': os.environ.get('DB_USER'),
    'password': os.environ.get('DB_PASSWORD'),
    'database': os.environ.get('DB_NAME'),
    'port': int(os.environ.get('DB_PORT', 3306))
}
POOL_SIZE = int(os.environ.get('DB_POOL_SIZE', 10))

# Pool global, criado na primeira conexão pedida
connection_pool = None


def init_pool():
    """Cria o pool de conexões MySQL (uma vez por processo)."""
    global connection_pool
    if connection_pool:
        return connection_pool

    if not DB_CONFIG['user'] or not DB_CONFIG['database']:
        raise ValueError("Faltam variáveis de configuração do banco de dados no .env")

    try:
        connection_pool = mysql.connector.pooling.MySQLConnectionPool(
            pool_name="pcs_pool",
            pool_size=POOL_SIZE,
            pool_reset_session=True,
            **DB_CONFIG
        )
        logger.info("Pool de conexões MySQL inicializado (tamanho %s).", POOL_SIZE)
    except Error as e:
        logger.critical("Não foi possível criar o pool de conexões: %s", e)
        connection_pool = None
    return connection_pool


def connect_to_db():
    """
    Obtém uma conexão disponível do pool.
    Devolve None se o pool não existe ou está esgotado.
    """
    pool = init_pool()
    if not pool:
        logger.error("Tentativa de conexão sem pool inicializado.")
        return None

    try:
        connection = pool.get_connection()
        if connection.is_connected():
            return connection
    except Error as e:
        logger.error("Erro ao obter conexão do pool MySQL: %s", e)
        return None

    return None


@contextmanager
def get_db_cursor(commit=False):
    """
    Abre e devolve automaticamente conexões do pool.
    Uso:
    with get_db_cursor(commit=True) as (conn, cursor):
        cursor.execute("SELECT ...")
    """
    connection = connect_to_db()
    cursor = None
    try:
        if connection:
            cursor = connection.cursor(dictionary=True)
            yield connection, cursor
            if commit:
                connection.commit()
        else:
            # Sem conexão entregamos None para a rota tratar
            yield None, None
    except Exception:
        if connection and commit:
            connection.rollback()
        raise
    finally:
        if cursor:
            cursor.close()
        if connection and connection.is_connected():
            connection.close()  # devolve ao pool
