import os
import logging
from datetime import datetime, date

from flask import Flask, redirect, session, url_for
from flask_wtf.csrf import CSRFProtect
from dotenv import load_dotenv

load_dotenv()  # Carrega as variáveis de ambiente do arquivo .env
from utils.date_manager import to_frontend_str, to_datetime_str
from utils.permissions import build_policy

from blueprints.auth import auth_bp
from blueprints.admin import admin_bp
from blueprints.patient import patient_bp
from blueprints.pcs import pcs_bp
from blueprints.public import public_bp

logging.basicConfig(level=os.environ.get('LOG_LEVEL', 'INFO'),
                    format='%(asctime)s %(levelname)s %(name)s: %(message)s')

csrf = CSRFProtect()


def create_app(test_config=None):
    app = Flask(__name__, static_folder='static', template_folder='../templates')
    app.secret_key = os.environ.get('FLASK_SECRET_KEY')
    app.config['PERMISSION_POLICY'] = os.environ.get('PERMISSION_POLICY', 'allow_all')
    app.config['SHARE_TOKEN_VALID_MONTHS'] = int(os.environ.get('SHARE_TOKEN_VALID_MONTHS', 0))
    app.config['CLINIC_NAME'] = os.environ.get('CLINIC_NAME', 'Almare Odontologia')
    if test_config:
        app.config.update(test_config)

    if not app.secret_key:
        raise ValueError("FLASK_SECRET_KEY não encontrada no arquivo .env")
    # Falha cedo se a política configurada não existir
    build_policy(app.config['PERMISSION_POLICY'])

    csrf.init_app(app)

    @app.template_filter('f_date')
    def format_date(value):
        """Formata date/datetime como DD/MM/AAAA."""
        if value and isinstance(value, (date, datetime)):
            return to_frontend_str(value)
        return value

    @app.template_filter('f_datetime')
    def format_datetime(value):
        if value and isinstance(value, datetime):
            return to_datetime_str(value)
        return value

    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(patient_bp)
    app.register_blueprint(pcs_bp)
    app.register_blueprint(public_bp)

    @app.route('/inicio')
    def home():
        if 'user_id' in session:
            return redirect(url_for('patient.dashboard'))
        return redirect(url_for('auth.login'))

    return app


app = create_app()
port = int(os.environ.get('PORT', 8080))


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=port, debug=True)
