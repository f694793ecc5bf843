from flask import Blueprint, render_template, current_app

from db.connection import get_db_cursor
from db.patients import get_patient_by_id, STATUS_LABELS
from db.pcs import PcsStore
from db.share import find_token, check_token, TOKEN_OK, TOKEN_EXPIRED
from utils.pcs_board import OrderedBoard, build_mindmap_nodes, CATEGORIES, CATEGORY_NAMES

public_bp = Blueprint('public',
                      __name__,
                      template_folder='../../templates')


def _denied(message, status):
    return render_template('not_found.html', message=message), status


@public_bp.route('/publico/pacientes/<patient_id>/<token>')
def public_patient(patient_id, token):
    """Visão somente leitura do PCS, acessada pelo link compartilhado."""
    try:
        with get_db_cursor() as (connection, cursor):
            if not connection:
                return _denied('Serviço indisponível. Tente novamente mais tarde.', 503)

            result = check_token(find_token(connection, token, patient_id), patient_id)
            if result == TOKEN_EXPIRED:
                return _denied('Link expirado.', 403)
            if result != TOKEN_OK:
                return _denied('Link inválido ou expirado.', 403)

            patient = get_patient_by_id(connection, patient_id)
            if not patient:
                return _denied('Paciente não encontrado.', 404)

            board = OrderedBoard(PcsStore(connection), patient_id, read_only=True)
            board.load()
            return render_template('public_patient.html',
                                   patient=patient,
                                   status_labels=STATUS_LABELS,
                                   board=board.grouped(),
                                   categories=CATEGORIES,
                                   category_names=CATEGORY_NAMES,
                                   mindmap=build_mindmap_nodes(board.entries),
                                   read_only=True)
    except Exception as e:
        current_app.logger.error(f"Erro na visão pública do paciente {patient_id}: {e}")
        return _denied('Erro ao carregar os dados do paciente.', 500)
