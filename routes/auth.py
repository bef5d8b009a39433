# auth.py
import secrets
from datetime import datetime, timedelta

import mysql.connector
from flask import Blueprint, current_app, jsonify, request, session
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from werkzeug.security import check_password_hash, generate_password_hash

from modules.audit import log_action
from modules.auth import User
from modules.config import Config
from modules.db import get_db_connection, insert_row
from modules.email_service import send_password_reset_email
from modules.errors import format_error, missing_fields_error
from modules.extensions import csrf, limiter
from modules.permissions import PROFILE_TYPES, normalize_profile_type
from modules.session import delete_session, save_session, session_required
from modules.validators import validate_email, validate_required_fields

auth_bp = Blueprint('auth', __name__, url_prefix='/api')

MIN_PASSWORD_LENGTH = 6


def _start_session(user_row):
    user = User(user_row)
    login_user(user)

    session.permanent = True
    session_id = secrets.token_hex(32)
    session['sid'] = session_id

    # Salvar dados da sessão
    save_session(user.id, session_id, {
        'user_id': user.id,
        'email': user.email,
        'profile_type': user.profile_type,
        'logged_in_at': datetime.utcnow().isoformat(),
        'ip': request.remote_addr
    })
    return user

def _not_text(data, fields):
    """Erro 400 quando algum campo chega no JSON como número, lista ou objeto"""
    invalid = [field for field in fields if not isinstance(data.get(field), str)]
    if invalid:
        return format_error(f"Campos devem ser texto: {', '.join(invalid)}", 'INVALID_DATA')
    return None

# -------------------------------
# Rotas de Autenticação
# -------------------------------

@auth_bp.route('/register', methods=['POST'])
@csrf.exempt
@limiter.limit('20 per hour')
@log_action('CADASTRO', 'auth')
def register():
    data = request.get_json(silent=True) or {}
    missing = validate_required_fields(data, ['email', 'password', 'name'])
    if missing:
        return missing_fields_error(missing)
    invalid = _not_text(data, ['email', 'password', 'name'])
    if invalid:
        return invalid

    email = data['email'].strip().lower()
    if not validate_email(email):
        return format_error('Email inválido', 'INVALID_EMAIL')
    if len(data['password']) < MIN_PASSWORD_LENGTH:
        return format_error(
            f'A senha deve ter no mínimo {MIN_PASSWORD_LENGTH} caracteres',
            'INVALID_PASSWORD'
        )

    profile_type = normalize_profile_type(data.get('profile_type')) or 'shipper'
    # Perfil admin só é criado pelo comando create-admin
    if profile_type not in PROFILE_TYPES or profile_type == 'admin':
        return format_error('Tipo de perfil inválido', 'INVALID_PROFILE_TYPE')

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT id FROM users WHERE email = %s", (email,))
        if cursor.fetchone():
            return format_error('Email já cadastrado', 'DUPLICATE_EMAIL')

        user_id = insert_row(cursor, 'users', {
            'email': email,
            'password': generate_password_hash(data['password']),
            'name': data['name'].strip(),
            'phone': data.get('phone'),
            'profile_type': profile_type,
            'is_active': True,
            'subscription_active': False,
            'payment_required': False,
            'trial_used': False,
        })
        conn.commit()

        cursor.execute("SELECT * FROM users WHERE id = %s", (user_id,))
        user = _start_session(cursor.fetchone())
        current_app.logger.info('Novo usuário cadastrado: %s (%s)', user.id, profile_type)

        return jsonify({
            'success': True,
            'user': user.to_dict(),
            'csrf_token': generate_csrf()
        }), 201

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@auth_bp.route('/login', methods=['POST'])
@csrf.exempt
@limiter.limit('30 per minute')
@log_action('LOGIN', 'auth')
def login():
    data = request.get_json(silent=True) or {}
    missing = validate_required_fields(data, ['email', 'password'])
    if missing:
        return missing_fields_error(missing)
    invalid = _not_text(data, ['email', 'password'])
    if invalid:
        return invalid

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute(
            "SELECT * FROM users WHERE email = %s",
            (data['email'].strip().lower(),)
        )
        user = cursor.fetchone()

        if not user or not check_password_hash(user['password'], data['password']):
            return format_error('Credenciais inválidas', 'INVALID_CREDENTIALS', 401)

        if user.get('is_active') in (False, 0):
            return format_error(
                'Acesso desativado. Entre em contato com o suporte.',
                'ACCOUNT_DISABLED', 403
            )

        cursor.execute("UPDATE users SET last_login = %s WHERE id = %s", (datetime.now(), user['id']))
        conn.commit()

        user_obj = _start_session(user)
        return jsonify({
            'success': True,
            'user': user_obj.to_dict(),
            'csrf_token': generate_csrf()
        })

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@auth_bp.route('/logout', methods=['POST'])
@login_required
@log_action('LOGOUT', 'auth')
def logout():
    # Remover sessão do banco
    if 'sid' in session:
        delete_session(session.pop('sid'))
    logout_user()
    return jsonify({'success': True})

@auth_bp.route('/user', methods=['GET'])
@login_required
@session_required
def get_current_user():
    return jsonify({
        'user': current_user.to_dict(),
        'csrf_token': generate_csrf()
    })

@auth_bp.route('/forgot-password', methods=['POST'])
@csrf.exempt
@limiter.limit('5 per hour')
def forgot_password():
    data = request.get_json(silent=True) or {}
    if not data.get('email'):
        return missing_fields_error(['email'])
    invalid = _not_text(data, ['email'])
    if invalid:
        return invalid

    email = data['email'].strip().lower()
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT id, name, email FROM users WHERE email = %s", (email,))
        user = cursor.fetchone()

        if user:
            token = secrets.token_urlsafe(32)
            expires = datetime.now() + timedelta(hours=Config.PASSWORD_RESET_TOKEN_HOURS)
            cursor.execute(
                "UPDATE users SET reset_token = %s, reset_token_expires = %s WHERE id = %s",
                (token, expires, user['id'])
            )
            conn.commit()
            send_password_reset_email(user['email'], token, user.get('name'))
        else:
            current_app.logger.info('Recuperação de senha solicitada para email inexistente')

        # Mesma resposta para emails cadastrados ou não
        return jsonify({
            'success': True,
            'message': 'Se o email estiver cadastrado, você receberá as instruções de recuperação.'
        })

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@auth_bp.route('/reset-password', methods=['POST'])
@csrf.exempt
@limiter.limit('10 per hour')
def reset_password():
    data = request.get_json(silent=True) or {}
    missing = validate_required_fields(data, ['email', 'token', 'password'])
    if missing:
        return missing_fields_error(missing)
    invalid = _not_text(data, ['email', 'token', 'password'])
    if invalid:
        return invalid
    if len(data['password']) < MIN_PASSWORD_LENGTH:
        return format_error(
            f'A senha deve ter no mínimo {MIN_PASSWORD_LENGTH} caracteres',
            'INVALID_PASSWORD'
        )

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute(
            "SELECT id, reset_token_expires FROM users WHERE email = %s AND reset_token = %s",
            (data['email'].strip().lower(), data['token'])
        )
        user = cursor.fetchone()

        if not user or not user['reset_token_expires'] or user['reset_token_expires'] < datetime.now():
            return format_error('Token inválido ou expirado', 'INVALID_TOKEN')

        cursor.execute(
            "UPDATE users SET password = %s, reset_token = NULL, reset_token_expires = NULL WHERE id = %s",
            (generate_password_hash(data['password']), user['id'])
        )
        conn.commit()

        return jsonify({'success': True, 'message': 'Senha redefinida com sucesso'})

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()
