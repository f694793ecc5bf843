from flask import (
    Blueprint, render_template, redirect, session, flash, url_for, current_app
)

from db.auth import verify_login, register_user, notify_admins_new_user, display_name
from db.connection import get_db_cursor
from forms import LoginForm, RegisterForm

auth_bp = Blueprint('auth',
                    __name__,
                    template_folder='../../templates')


@auth_bp.route('/', methods=['GET', 'POST'])
@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    if 'user_id' in session:
        return redirect(url_for('patient.dashboard'))

    form = LoginForm()

    if form.validate_on_submit():
        email = form.email.data.strip().lower()
        try:
            with get_db_cursor() as (connection, cursor):
                if not connection:
                    flash('Erro de conexão com o banco de dados.', 'danger')
                    return render_template('auth/login.html', form=form)

                user = verify_login(connection, email, form.senha.data)

                if not user:
                    flash('Credenciais inválidas. Verifique seu email e senha.', 'danger')
                elif user['approval_status'] == 'pending':
                    flash('Sua conta ainda não foi aprovada. Aguarde a aprovação de um administrador.', 'warning')
                elif user['approval_status'] == 'rejected':
                    flash('Sua conta foi rejeitada. Entre em contato com o administrador.', 'danger')
                elif not user['is_active']:
                    flash('Esta conta foi desativada.', 'danger')
                else:
                    session['user_id'] = user['id']
                    session['user_email'] = user['email']
                    session['user_name'] = display_name(user)
                    session['user_role'] = user['role']
                    return redirect(url_for('patient.dashboard'))

        except Exception as e:
            current_app.logger.error(f"Erro no login: {e}")
            flash("Erro ao fazer login. Tente novamente.", "danger")

    return render_template('auth/login.html', form=form)


@auth_bp.route('/register', methods=['GET', 'POST'])
def register():
    form = RegisterForm()

    if form.validate_on_submit():
        email = form.email.data.strip().lower()
        first_name = form.first_name.data.strip()
        last_name = form.last_name.data.strip()
        try:
            with get_db_cursor(commit=True) as (connection, cursor):
                if not connection:
                    flash('Erro de conexão com o banco de dados.', 'danger')
                    return render_template('auth/register.html', form=form, success=False)

                result = register_user(connection, email, form.senha.data, first_name, last_name)
                if result == "exists":
                    flash('Este email já está cadastrado.', 'danger')
                elif result:
                    notify_admins_new_user(connection, email, first_name, last_name)
                    return render_template('auth/register.html', form=form, success=True)
                else:
                    flash('Erro ao criar conta. Tente novamente.', 'danger')

        except Exception as e:
            current_app.logger.error(f"Erro no cadastro: {e}")
            flash("Erro ao criar conta. Tente novamente.", "danger")

    return render_template('auth/register.html', form=form, success=False)


@auth_bp.route('/logout')
def logout():
    session.clear()
    flash('Você saiu do sistema.', 'info')
    return redirect(url_for('auth.login'))
