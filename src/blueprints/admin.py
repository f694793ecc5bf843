from flask import (
    Blueprint, render_template, request, redirect, session, flash, url_for, current_app
)

from db.connection import get_db_cursor
from db.auth import (
    get_all_users, get_user_by_id, set_approval_status, set_user_active_status,
    set_user_role, update_user_password, get_unread_notifications, mark_notifications_read,
    APPROVAL_STATUSES, ROLES
)
from forms import ChangePasswordForm
from decorators import admin_required

admin_bp = Blueprint('admin',
                     __name__,
                     template_folder='../../templates',
                     url_prefix='/admin')


@admin_bp.route('/usuarios')
@admin_required
def manage_users():
    status_filter = request.args.get('status')
    if status_filter not in APPROVAL_STATUSES:
        status_filter = None
    try:
        with get_db_cursor() as (connection, cursor):
            if not connection:
                flash('Erro de conexão com o banco de dados.', 'danger')
                return redirect(url_for('patient.dashboard'))

            users = get_all_users(connection, approval_status=status_filter)
            notifications = get_unread_notifications(connection, session['user_id'])
            return render_template('admin/users.html', users=users, notifications=notifications,
                                   status_filter=status_filter, roles=ROLES)
    except Exception as e:
        current_app.logger.error(f"Erro em manage_users: {e}")
        flash('Erro ao carregar usuários.', 'danger')
        return redirect(url_for('patient.dashboard'))


@admin_bp.route('/usuarios/<user_id>/aprovacao', methods=['POST'])
@admin_required
def set_user_approval(user_id):
    status = request.form.get('status')
    if status not in ('approved', 'rejected'):
        flash('Status de aprovação inválido.', 'warning')
        return redirect(url_for('admin.manage_users'))
    try:
        with get_db_cursor(commit=True) as (connection, cursor):
            if connection and set_approval_status(connection, user_id, status):
                flash('Usuário aprovado.' if status == 'approved' else 'Usuário rejeitado.', 'success')
            else:
                flash('Não foi possível atualizar o usuário.', 'danger')
    except Exception as e:
        current_app.logger.error(f"Erro em set_user_approval ({user_id}): {e}")
        flash('Erro inesperado ao atualizar o usuário.', 'danger')
    return redirect(url_for('admin.manage_users'))


@admin_bp.route('/usuarios/<user_id>/ativo', methods=['POST'])
@admin_required
def toggle_user_active(user_id):
    if user_id == session.get('user_id'):
        flash('Você não pode desativar a própria conta.', 'warning')
        return redirect(url_for('admin.manage_users'))
    try:
        with get_db_cursor(commit=True) as (connection, cursor):
            user = get_user_by_id(connection, user_id) if connection else None
            if not user:
                flash('Usuário não encontrado.', 'warning')
            elif set_user_active_status(connection, user_id, not user['is_active']):
                flash('Usuário desativado.' if user['is_active'] else 'Usuário ativado.', 'success')
            else:
                flash('Não foi possível atualizar o usuário.', 'danger')
    except Exception as e:
        current_app.logger.error(f"Erro em toggle_user_active ({user_id}): {e}")
        flash('Erro inesperado ao atualizar o usuário.', 'danger')
    return redirect(url_for('admin.manage_users'))


@admin_bp.route('/usuarios/<user_id>/papel', methods=['POST'])
@admin_required
def change_user_role(user_id):
    role = request.form.get('role')
    if role not in ROLES:
        flash('Papel inválido.', 'warning')
        return redirect(url_for('admin.manage_users'))
    try:
        with get_db_cursor(commit=True) as (connection, cursor):
            if connection and set_user_role(connection, user_id, role):
                flash('Papel atualizado.', 'success')
            else:
                flash('Não foi possível atualizar o papel.', 'danger')
    except Exception as e:
        current_app.logger.error(f"Erro em change_user_role ({user_id}): {e}")
        flash('Erro inesperado ao atualizar o papel.', 'danger')
    return redirect(url_for('admin.manage_users'))


@admin_bp.route('/usuarios/<user_id>/senha', methods=['GET', 'POST'])
@admin_required
def change_user_password(user_id):
    form = ChangePasswordForm()
    try:
        with get_db_cursor(commit=True) as (connection, cursor):
            if not connection:
                flash('Erro de conexão com o banco de dados.', 'danger')
                return redirect(url_for('admin.manage_users'))

            user = get_user_by_id(connection, user_id)
            if not user:
                flash('Usuário não encontrado.', 'warning')
                return redirect(url_for('admin.manage_users'))

            if form.validate_on_submit():
                if update_user_password(connection, user_id, form.nova_senha.data):
                    flash(f"Senha de {user['email']} alterada.", 'success')
                    return redirect(url_for('admin.manage_users'))
                flash('Erro ao alterar a senha.', 'danger')

            return render_template('admin/change_password.html', form=form, user=user)
    except Exception as e:
        current_app.logger.error(f"Erro em change_user_password ({user_id}): {e}")
        flash('Erro inesperado ao alterar a senha.', 'danger')
        return redirect(url_for('admin.manage_users'))


@admin_bp.route('/notificacoes/lidas', methods=['POST'])
@admin_required
def read_notifications():
    try:
        with get_db_cursor(commit=True) as (connection, cursor):
            if connection:
                mark_notifications_read(connection, session['user_id'])
    except Exception as e:
        current_app.logger.error(f"Erro em read_notifications: {e}")
        flash('Erro ao marcar notificações.', 'danger')
    return redirect(url_for('admin.manage_users'))
