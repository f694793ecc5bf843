from flask_wtf import FlaskForm
from wtforms import (StringField, PasswordField, SubmitField, BooleanField, DateField, EmailField,
                     SelectField, TextAreaField, SelectMultipleField)
from wtforms.validators import DataRequired, Length, Email, EqualTo, Optional

from db.patients import PATIENT_STATUSES, STATUS_LABELS


class LoginForm(FlaskForm):
    email = EmailField('Email',
                       validators=[DataRequired(message="O email é obrigatório."),
                                   Email(message="Email inválido.")])
    senha = PasswordField('Senha',
                          validators=[DataRequired(message="A senha é obrigatória.")])
    submit = SubmitField('Entrar')


class RegisterForm(FlaskForm):
    first_name = StringField('Nome',
                             validators=[DataRequired(message="O nome é obrigatório."), Length(max=100)])
    last_name = StringField('Sobrenome',
                            validators=[DataRequired(message="O sobrenome é obrigatório."), Length(max=100)])
    email = EmailField('Email',
                       validators=[DataRequired(message="O email é obrigatório."),
                                   Email(message="Email inválido.")])
    senha = PasswordField('Senha',
                          validators=[DataRequired(message="A senha é obrigatória."),
                                      Length(min=6, message="A senha deve ter pelo menos 6 caracteres.")])
    confirmar_senha = PasswordField('Confirmar Senha',
                                    validators=[DataRequired(message="Confirme a senha."),
                                                EqualTo('senha', message='As senhas não coincidem.')])
    submit = SubmitField('Criar Conta')


class ChangePasswordForm(FlaskForm):
    nova_senha = PasswordField('Nova Senha',
                               validators=[DataRequired(message="A senha é obrigatória."),
                                           Length(min=6, message="A senha deve ter pelo menos 6 caracteres.")])
    confirmar_senha = PasswordField('Confirmar Senha',
                                    validators=[DataRequired(message="Confirme a senha."),
                                                EqualTo('nova_senha', message='As senhas não coincidem.')])
    submit = SubmitField('Alterar Senha')


class PatientForm(FlaskForm):
    name = StringField('Nome completo',
                       validators=[DataRequired(message="O nome é obrigatório."), Length(max=255)])
    status = SelectField('Status', choices=[(s, STATUS_LABELS[s]) for s in PATIENT_STATUSES],
                         default='analysis')
    club_member = BooleanField('Membro do Clube Viva Almare')
    # Só é considerada quando club_member está marcado
    club_join_date = DateField('Data de entrada no clube', validators=[Optional()])
    submit = SubmitField('Criar Paciente')


class CommentForm(FlaskForm):
    content = TextAreaField('Comentário',
                            validators=[DataRequired(message="O comentário não pode estar vazio.")])
    submit = SubmitField('Enviar Comentário')


class ReportForm(FlaskForm):
    """Editor do relatório PCS; as entradas são carregadas na rota."""
    title = StringField('Título', validators=[DataRequired(message="O título é obrigatório.")])
    description = TextAreaField('Descrição', validators=[Optional()])
    board_version = StringField('Versão Board', default='1.0', validators=[Length(max=20)])
    mindmap_version = StringField('Versão Mindmap', default='1.0', validators=[Length(max=20)])
    entries = SelectMultipleField('Procedimentos', choices=[], validate_choice=False)
    submit = SubmitField('Gerar Relatório PDF')
