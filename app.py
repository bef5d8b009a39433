import os
import logging
from logging.handlers import RotatingFileHandler

import click
import mysql.connector
from flask import Flask, request, jsonify
from werkzeug.security import generate_password_hash

from modules.auth import login_manager
from modules.config import Config
from modules.db import get_db_connection
from modules.extensions import compress, cors, csrf, limiter
from modules.subscriptions import check_expired_trials
from routes import register_blueprints


def _setup_logging(app):
    # Criar diretório de logs se não existir
    if not os.path.exists('logs'):
        os.mkdir('logs')

    # Configurar handler de arquivo
    file_handler = RotatingFileHandler(
        'logs/app.log',
        maxBytes=1024 * 1024,  # 1MB
        backupCount=10
    )
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s %(levelname)s: %(message)s '
        '[in %(pathname)s:%(lineno)d]'
    ))
    file_handler.setLevel(logging.INFO)

    # Configurar handler de console
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)

    # Os módulos usam logging.getLogger(__name__); a raiz recebe os mesmos handlers
    for logger in (app.logger, logging.getLogger('modules')):
        logger.addHandler(file_handler)
        logger.addHandler(console_handler)
        logger.setLevel(logging.INFO)

    app.logger.info('Aplicação iniciada')

def _register_error_handlers(app):
    @app.errorhandler(404)
    def not_found_error(error):
        """Handler para erros 404"""
        return jsonify({
            'error': 'Endpoint não encontrado' if request.path.startswith('/api/') else 'Página não encontrada',
            'code': 'NOT_FOUND'
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Método não permitido', 'code': 'METHOD_NOT_ALLOWED'}), 405

    @app.errorhandler(429)
    def rate_limited(error):
        return jsonify({
            'error': 'Muitas requisições. Tente novamente mais tarde.',
            'code': 'RATE_LIMITED'
        }), 429

    @app.errorhandler(500)
    def internal_error(error):
        """Handler para erros 500"""
        app.logger.error(f"Erro interno: {str(error)}")
        return jsonify({
            'error': 'Erro interno do servidor',
            'code': 'INTERNAL_ERROR'
        }), 500

def _register_commands(app):
    @app.cli.command('create-admin')
    @click.option('--email', prompt=True)
    @click.option('--name', prompt=True, default='Administrador')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
    def create_admin(email, name, password):
        """Cria (ou promove) um usuário administrador"""
        email = email.strip().lower()
        conn = get_db_connection()
        cursor = conn.cursor(dictionary=True)

        try:
            cursor.execute("SELECT id FROM users WHERE email = %s", (email,))
            user = cursor.fetchone()
            if user:
                cursor.execute(
                    "UPDATE users SET profile_type = 'admin', password = %s, is_active = TRUE WHERE id = %s",
                    (generate_password_hash(password), user['id'])
                )
                click.echo(f'Usuário {email} promovido a administrador')
            else:
                cursor.execute(
                    """
                    INSERT INTO users (email, password, name, profile_type, is_active,
                                       subscription_active, payment_required, trial_used)
                    VALUES (%s, %s, %s, 'admin', TRUE, TRUE, FALSE, TRUE)
                    """,
                    (email, generate_password_hash(password), name)
                )
                click.echo(f'Administrador {email} criado')
            conn.commit()

        except mysql.connector.Error as err:
            conn.rollback()
            raise click.ClickException(f'Erro no banco de dados: {err}')

        finally:
            cursor.close()
            conn.close()

    @app.cli.command('check-trials')
    def check_trials():
        """Desativa períodos de teste vencidos (agendar no cron a cada 6 horas)"""
        expired = check_expired_trials()
        click.echo(f'{expired} período(s) de teste desativado(s)')

# -------------------------------
# Configuração e Inicialização
# -------------------------------

def create_app(config=None):
    """
    Cria e configura a aplicação Flask

    Args:
        config: Configurações adicionais (opcional)

    Returns:
        Flask: Aplicação configurada
    """
    app = Flask(__name__)
    app.config.from_object(Config)
    app.config['WTF_CSRF_TIME_LIMIT'] = 3600  # 1 hora
    app.config['SESSION_COOKIE_HTTPONLY'] = True
    if config:
        app.config.update(config)

    # Configurar logging
    if not app.debug and not app.testing:
        _setup_logging(app)

    # Configuração do Login
    login_manager.init_app(app)

    # Configuração de proteção CSRF
    csrf.init_app(app)

    # Configurar CORS
    cors.init_app(app, resources={
        r"/api/*": {
            "origins": app.config.get('ALLOWED_ORIGINS', "*"),
            "supports_credentials": True
        }
    })

    # Configurar Compressão
    compress.init_app(app)

    # Configurar limites de requisição
    limiter.init_app(app)

    register_blueprints(app)
    _register_error_handlers(app)
    _register_commands(app)

    # Adicionar headers de segurança
    @app.after_request
    def add_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-XSS-Protection'] = '1; mode=block'
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        return response

    return app

def run_app():
    """Inicia a aplicação"""
    config = {
        'DEBUG': os.getenv('FLASK_DEBUG', '0') == '1',
    }

    app = create_app(config)

    ssl_context = None
    if os.getenv('SSL_CERT') and os.getenv('SSL_KEY'):
        ssl_context = (os.getenv('SSL_CERT'), os.getenv('SSL_KEY'))

    app.run(
        host=os.getenv('FLASK_HOST', '0.0.0.0'),
        port=int(os.getenv('FLASK_PORT', 5000)),
        debug=config['DEBUG'],
        ssl_context=ssl_context
    )

if __name__ == '__main__':
    run_app()
