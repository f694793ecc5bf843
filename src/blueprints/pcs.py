from datetime import datetime, date
from io import BytesIO

from flask import (
    Blueprint, render_template, request, jsonify, flash, redirect, url_for,
    current_app, Response
)
from xhtml2pdf import pisa

from db.connection import get_db_cursor
from db.patients import get_patient_by_id, touch_patient
from db.pcs import PcsStore
from db.comments import get_comments_for_patient
from forms import ReportForm
from utils.date_manager import to_frontend_str, to_datetime_str
from utils.pcs_board import (
    OrderedBoard, DragResult, BoardValidationError, EntryNotFound, build_mindmap_nodes,
    CATEGORIES, CATEGORY_NAMES
)
from utils.pcs_report import (
    ReportPaginator, ReportData, select_entries, build_report_filename, report_data_for_patient
)
from utils.permissions import current_user, get_request_policy
from decorators import login_required, permission_required

pcs_bp = Blueprint('pcs',
                   __name__,
                   template_folder='../../templates')

GENERIC_ERROR = "Erro ao salvar a alteração. Tente novamente."


def _jsonable(row):
    return {k: (v.isoformat() if isinstance(v, (datetime, date)) else v) for k, v in row.items()}


def _board_payload(board):
    return {
        'entries': {c: [_jsonable(e) for e in board.entries_by_category(c)] for c in CATEGORIES},
        'mindmap': build_mindmap_nodes(board.entries),
    }


def _open_board(connection, patient_id):
    board = OrderedBoard(PcsStore(connection), patient_id, user=current_user(),
                         policy=get_request_policy())
    return board if board.load() else None


def _mutate(patient_id, operation, success_status=200):
    """Abre o quadro, aplica `operation(board)` e traduz o resultado para JSON."""
    try:
        with get_db_cursor(commit=True) as (connection, cursor):
            if not connection:
                return jsonify({"error": "Erro de conexão com o banco de dados."}), 500
            if not get_patient_by_id(connection, patient_id):
                return jsonify({"error": "Paciente não encontrado."}), 404

            board = _open_board(connection, patient_id)
            if board is None:
                return jsonify({"error": "Não foi possível carregar o PCS."}), 500

            try:
                entry = operation(board)
            except BoardValidationError as e:
                return jsonify({"error": str(e)}), 400
            except EntryNotFound:
                return jsonify({"error": "Entrada não encontrada."}), 404

            if entry is None:
                payload = _board_payload(board)
                payload['error'] = GENERIC_ERROR
                return jsonify(payload), 500

            touch_patient(connection, patient_id)
            payload = _board_payload(board)
            payload['entry'] = _jsonable(entry)
            return jsonify(payload), success_status
    except Exception as e:
        current_app.logger.error(f"Erro no PCS do paciente {patient_id}: {e}", exc_info=True)
        return jsonify({"error": GENERIC_ERROR}), 500


@pcs_bp.route('/api/pacientes/<patient_id>/pcs')
@login_required
@permission_required('read', 'pcs')
def list_entries(patient_id):
    try:
        with get_db_cursor() as (connection, cursor):
            if not connection:
                return jsonify({"error": "Erro de conexão com o banco de dados."}), 500
            board = _open_board(connection, patient_id)
            if board is None:
                return jsonify({"error": "Não foi possível carregar o PCS."}), 500
            return jsonify(_board_payload(board))
    except Exception as e:
        current_app.logger.error(f"Erro listando PCS do paciente {patient_id}: {e}")
        return jsonify({"error": "Erro interno do servidor"}), 500


@pcs_bp.route('/api/pacientes/<patient_id>/pcs', methods=['POST'])
@login_required
@permission_required('create', 'pcs')
def add_entry(patient_id):
    data = request.get_json(silent=True) or {}
    return _mutate(patient_id,
                   lambda board: board.add(data.get('title'), data.get('description'),
                                           data.get('category', 'fundamental')),
                   success_status=201)


@pcs_bp.route('/api/pacientes/<patient_id>/pcs/<entry_id>', methods=['PUT'])
@login_required
@permission_required('update', 'pcs')
def update_entry(patient_id, entry_id):
    data = request.get_json(silent=True) or {}
    return _mutate(patient_id,
                   lambda board: board.update(entry_id, data.get('title'), data.get('description')))


@pcs_bp.route('/api/pacientes/<patient_id>/pcs/<entry_id>', methods=['DELETE'])
@login_required
@permission_required('delete', 'pcs')
def delete_entry(patient_id, entry_id):
    return _mutate(patient_id, lambda board: board.remove(entry_id))


@pcs_bp.route('/api/pacientes/<patient_id>/pcs/<entry_id>/conclusao', methods=['POST'])
@login_required
@permission_required('update', 'pcs')
def toggle_entry(patient_id, entry_id):
    return _mutate(patient_id, lambda board: board.toggle_completion(entry_id))


@pcs_bp.route('/api/pacientes/<patient_id>/pcs/mover', methods=['POST'])
@login_required
@permission_required('update', 'pcs')
def move_entry(patient_id):
    try:
        drag = DragResult.from_payload(request.get_json(silent=True))
    except BoardValidationError as e:
        return jsonify({"error": str(e)}), 400
    if not drag.dropped:
        return jsonify({"ignored": True})
    return _mutate(patient_id, lambda board: board.apply_drag(drag))


@pcs_bp.route('/api/pacientes/<patient_id>/pcs/log')
@login_required
@permission_required('read', 'pcs')
def change_log(patient_id):
    try:
        with get_db_cursor() as (connection, cursor):
            if not connection:
                return jsonify({"error": "Erro de conexão com o banco de dados."}), 500
            board = OrderedBoard(PcsStore(connection), patient_id)
            log = board.change_log(limit=request.args.get('limit', 50, type=int))
            return jsonify([dict(item, created_at=to_datetime_str(item['created_at'])) for item in log])
    except Exception as e:
        current_app.logger.error(f"Erro no log PCS do paciente {patient_id}: {e}")
        return jsonify({"error": "Erro interno do servidor"}), 500


# --- Relatórios ---

@pcs_bp.route('/relatorios/<patient_id>', methods=['GET', 'POST'])
@login_required
@permission_required('create', 'reports')
def report_editor(patient_id):
    try:
        with get_db_cursor() as (connection, cursor):
            if not connection:
                flash('Erro de conexão com o banco de dados.', 'danger')
                return redirect(url_for('patient.dashboard'))

            patient = get_patient_by_id(connection, patient_id)
            if not patient:
                return render_template('not_found.html', message='Paciente não encontrado.'), 404

            board = _open_board(connection, patient_id)
            entries = board.entries if board else []
    except Exception as e:
        current_app.logger.error(f"Erro carregando editor de relatório ({patient_id}): {e}")
        flash('Erro ao carregar o relatório.', 'danger')
        return redirect(url_for('patient.dashboard'))

    defaults = report_data_for_patient(patient)
    form = ReportForm()
    form.entries.choices = [(e['id'], e['title']) for e in entries]
    if request.method == 'GET':
        form.title.data = defaults.title
        form.description.data = defaults.description
        form.entries.data = [e['id'] for e in entries]

    if form.validate_on_submit():
        report = ReportData(title=form.title.data, description=form.description.data or '',
                            patient_name=defaults.patient_name, pcs_date=defaults.pcs_date,
                            board_version=form.board_version.data or '1.0',
                            mindmap_version=form.mindmap_version.data or '1.0')
        try:
            paginator = ReportPaginator(subtitle=current_app.config['CLINIC_NAME'],
                                        attribution=f"{current_app.config['CLINIC_NAME']} - Sistema PCS")
            pdf = paginator.render(report, select_entries(entries, form.entries.data))
        except Exception as e:
            current_app.logger.error(f"Erro gerando PDF do PCS ({patient_id}): {e}", exc_info=True)
            flash('Erro ao gerar o PDF.', 'danger')
        else:
            response = Response(pdf, mimetype='application/pdf')
            response.headers['Content-Disposition'] = \
                f'attachment; filename={build_report_filename(report.patient_name)}'
            return response

    return render_template('reports/editor.html', form=form, patient=patient, entries=entries,
                           categories=CATEGORIES, category_names=CATEGORY_NAMES)


@pcs_bp.route('/pacientes/<patient_id>/relatorio-tratamento.pdf')
@login_required
@permission_required('create', 'reports')
def treatment_report_pdf(patient_id):
    try:
        with get_db_cursor() as (connection, cursor):
            if not connection:
                flash('Erro de conexão com o banco de dados.', 'danger')
                return redirect(url_for('patient.patient_detail', patient_id=patient_id))

            patient = get_patient_by_id(connection, patient_id)
            if not patient:
                return render_template('not_found.html', message='Paciente não encontrado.'), 404

            board = _open_board(connection, patient_id)
            comments = get_comments_for_patient(connection, patient_id)

            html_content = render_template('reports/treatment_pdf.html',
                                           patient=patient,
                                           board=board.grouped() if board else {},
                                           categories=CATEGORIES,
                                           category_names=CATEGORY_NAMES,
                                           comments=comments,
                                           today=to_frontend_str(datetime.now()),
                                           to_datetime_str=to_datetime_str)
            pdf_buffer = BytesIO()
            pisa_status = pisa.CreatePDF(html_content.encode('utf-8'), dest=pdf_buffer, encoding='utf-8')

            if pisa_status.err:
                current_app.logger.error(f"Erro pisa no relatório de tratamento: {pisa_status.err}")
                flash('Erro ao gerar o PDF.', 'danger')
                return redirect(url_for('patient.patient_detail', patient_id=patient_id))

            pdf_buffer.seek(0)
            response = Response(pdf_buffer.getvalue(), mimetype='application/pdf')
            filename = build_report_filename(patient['name'], prefix='relatorio')
            response.headers['Content-Disposition'] = f'attachment; filename={filename}'
            return response
    except Exception as e:
        current_app.logger.error(f"Erro em treatment_report_pdf ({patient_id}): {e}")
        flash('Erro inesperado ao gerar o PDF.', 'danger')
        return redirect(url_for('patient.patient_detail', patient_id=patient_id))
