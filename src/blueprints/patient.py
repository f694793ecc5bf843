from flask import (
    Blueprint, render_template, request, redirect, jsonify, session, flash, url_for, current_app
)

from forms import PatientForm, CommentForm
from db.connection import get_db_cursor
from db.patients import (
    add_patient, get_patient_by_id, get_all_patients, search_patients_by_name,
    update_patient_status, get_patient_stats, PATIENT_STATUSES, STATUS_LABELS
)
from db.pcs import PcsStore, get_entry_totals
from db.comments import get_comments_for_patient, add_comment
from db.share import get_or_create_token
from utils.pcs_board import OrderedBoard, build_mindmap_nodes, CATEGORIES, CATEGORY_NAMES
from utils.permissions import current_user, get_request_policy
from decorators import login_required, permission_required

patient_bp = Blueprint('patient',
                       __name__,
                       template_folder='../../templates')


@patient_bp.route('/dashboard')
@login_required
def dashboard():
    search_term = request.args.get('q', '').strip()
    status_filter = request.args.get('status', 'all')
    try:
        with get_db_cursor() as (connection, cursor):
            if not connection:
                flash('Erro de conexão com o banco de dados.', 'danger')
                return render_template('dashboard.html', patients=[], stats={}, entry_totals={},
                                       status_labels=STATUS_LABELS, search_term=search_term,
                                       status_filter=status_filter)

            patients = get_all_patients(connection, search_term=search_term, status=status_filter)
            stats = get_patient_stats(connection)
            entry_totals = get_entry_totals(connection)
            return render_template('dashboard.html', patients=patients, stats=stats,
                                   entry_totals=entry_totals, status_labels=STATUS_LABELS,
                                   search_term=search_term, status_filter=status_filter)
    except Exception as e:
        current_app.logger.error(f"Erro no dashboard: {e}", exc_info=True)
        flash("Erro ao carregar o dashboard.", "danger")
        return render_template('dashboard.html', patients=[], stats={}, entry_totals={},
                               status_labels=STATUS_LABELS, search_term=search_term,
                               status_filter=status_filter)


@patient_bp.route('/pacientes/novo', methods=['GET', 'POST'])
@login_required
@permission_required('create', 'patients')
def new_patient():
    form = PatientForm()
    if form.validate_on_submit():
        try:
            with get_db_cursor(commit=True) as (connection, cursor):
                if not connection:
                    flash('Erro de conexão com o banco de dados.', 'danger')
                else:
                    new_id = add_patient(connection, form.name.data.strip(), form.status.data,
                                         form.club_member.data, form.club_join_date.data)
                    if new_id:
                        flash(f'Paciente {form.name.data} cadastrado com sucesso.', 'success')
                        return redirect(url_for('patient.dashboard'))
                    flash('Erro ao criar paciente.', 'danger')
        except Exception as e:
            current_app.logger.error(f"Erro inesperado em new_patient: {e}")
            flash("Ocorreu um erro inesperado.", 'danger')

    return render_template('new_patient.html', form=form)


@patient_bp.route('/pacientes/<patient_id>')
@login_required
@permission_required('read', 'patients')
def patient_detail(patient_id):
    try:
        with get_db_cursor() as (connection, cursor):
            if not connection:
                flash('Erro de conexão com o banco de dados.', 'danger')
                return redirect(url_for('patient.dashboard'))

            patient = get_patient_by_id(connection, patient_id)
            if not patient:
                return render_template('not_found.html', message='Paciente não encontrado.'), 404

            board = OrderedBoard(PcsStore(connection), patient_id, user=current_user(),
                                 policy=get_request_policy())
            if not board.load():
                flash('Não foi possível carregar o PCS do paciente.', 'warning')

            return render_template('patient_detail.html',
                                   patient=patient,
                                   status_labels=STATUS_LABELS,
                                   board=board.grouped(),
                                   categories=CATEGORIES,
                                   category_names=CATEGORY_NAMES,
                                   mindmap=build_mindmap_nodes(board.entries),
                                   change_log=board.change_log(),
                                   comments=get_comments_for_patient(connection, patient_id),
                                   comment_form=CommentForm(),
                                   read_only=False)
    except Exception as e:
        current_app.logger.error(f"Erro em patient_detail ({patient_id}): {e}")
        flash('Erro ao carregar os dados do paciente.', 'danger')
        return redirect(url_for('patient.dashboard'))


@patient_bp.route('/pacientes/<patient_id>/status', methods=['POST'])
@login_required
@permission_required('update', 'patients')
def change_status(patient_id):
    status = request.form.get('status')
    if status not in PATIENT_STATUSES:
        flash('Status inválido.', 'warning')
        return redirect(url_for('patient.dashboard'))
    try:
        with get_db_cursor(commit=True) as (connection, cursor):
            if connection and update_patient_status(connection, patient_id, status):
                flash('Status do paciente atualizado!', 'success')
            else:
                flash('Erro ao atualizar status do paciente.', 'danger')
    except Exception as e:
        current_app.logger.error(f"Erro em change_status ({patient_id}): {e}")
        flash('Erro ao atualizar status do paciente.', 'danger')
    return redirect(request.referrer or url_for('patient.dashboard'))


@patient_bp.route('/pacientes/<patient_id>/comentarios', methods=['POST'])
@login_required
@permission_required('create', 'comments')
def post_comment(patient_id):
    form = CommentForm()
    if not form.validate_on_submit():
        flash('O comentário não pode estar vazio.', 'warning')
        return redirect(url_for('patient.patient_detail', patient_id=patient_id))
    try:
        with get_db_cursor(commit=True) as (connection, cursor):
            if connection and add_comment(connection, patient_id, form.content.data,
                                          session.get('user_email')):
                flash('Comentário adicionado.', 'success')
            else:
                flash('Erro ao adicionar comentário.', 'danger')
    except ValueError as e:
        flash(str(e), 'warning')
    except Exception as e:
        current_app.logger.error(f"Erro em post_comment ({patient_id}): {e}")
        flash('Erro ao adicionar comentário.', 'danger')
    return redirect(url_for('patient.patient_detail', patient_id=patient_id))


@patient_bp.route('/pacientes/<patient_id>/compartilhar', methods=['POST'])
@login_required
@permission_required('create', 'share')
def share_link(patient_id):
    try:
        with get_db_cursor(commit=True) as (connection, cursor):
            if not connection:
                return jsonify({"error": "Erro de conexão com o banco de dados."}), 500
            if not get_patient_by_id(connection, patient_id):
                return jsonify({"error": "Paciente não encontrado."}), 404

            token = get_or_create_token(connection, patient_id,
                                        current_app.config.get('SHARE_TOKEN_VALID_MONTHS', 0))
            if not token:
                return jsonify({"error": "Erro ao gerar link público."}), 500

            url = url_for('public.public_patient', patient_id=patient_id,
                          token=token['token'], _external=True)
            return jsonify({"url": url, "expires_at": token.get('expires_at')})
    except Exception as e:
        current_app.logger.error(f"Erro em share_link ({patient_id}): {e}")
        return jsonify({"error": "Erro ao gerar link público."}), 500


@patient_bp.route('/api/pacientes/busca')
@login_required
def api_search_patients():
    term = request.args.get('term', '').strip()
    if not term:
        return jsonify([])
    try:
        with get_db_cursor() as (connection, cursor):
            if not connection:
                return jsonify({"error": "Erro de conexão com o banco de dados."}), 500
            return jsonify(search_patients_by_name(connection, term))
    except Exception as e:
        current_app.logger.error(f"Erro na busca de pacientes: {e}")
        return jsonify({"error": "Erro interno do servidor"}), 500
