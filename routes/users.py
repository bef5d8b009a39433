# users.py
import mysql.connector
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required
from werkzeug.security import check_password_hash, generate_password_hash

from modules.audit import log_action
from modules.auth import public_user
from modules.db import get_db_connection, pick, update_row
from modules.errors import format_error, missing_fields_error
from modules.permissions import active_required, is_admin, normalize_profile_type
from modules.validators import validate_email, validate_phone, validate_profile_type

users_bp = Blueprint('users', __name__, url_prefix='/api/users')

PROFILE_FIELDS = ('name', 'email', 'phone')


def _reload(cursor, user_id):
    cursor.execute("SELECT * FROM users WHERE id = %s", (user_id,))
    return public_user(cursor.fetchone())

# -------------------------------
# APIs do Usuário logado
# -------------------------------

@users_bp.route('/update-profile-type', methods=['POST'])
@login_required
@active_required
@log_action('ATUALIZAR', 'users')
def update_profile_type():
    data = request.get_json(silent=True) or {}
    if not data.get('profile_type'):
        return missing_fields_error(['profile_type'])

    profile_type = normalize_profile_type(data['profile_type'])
    if not validate_profile_type(profile_type):
        return format_error('Tipo de perfil inválido', 'INVALID_PROFILE_TYPE')
    if profile_type == 'admin' and not is_admin(current_user):
        return format_error('Sem permissão para definir perfil de administrador', 'PERMISSION_DENIED', 403)

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute(
            "UPDATE users SET profile_type = %s WHERE id = %s",
            (profile_type, current_user.id)
        )
        conn.commit()
        current_app.logger.info('Usuário %s alterou o perfil para %s', current_user.id, profile_type)

        return jsonify({'success': True, 'user': _reload(cursor, current_user.id)})

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@users_bp.route('/associate-client', methods=['POST'])
@login_required
@active_required
@log_action('ATUALIZAR', 'users')
def associate_client():
    data = request.get_json(silent=True) or {}
    if not data.get('client_id'):
        return missing_fields_error(['client_id'])

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT id FROM clients WHERE id = %s", (data['client_id'],))
        client = cursor.fetchone()
        if not client:
            return format_error('Cliente não encontrado', 'NOT_FOUND', 404)

        cursor.execute(
            "UPDATE users SET client_id = %s WHERE id = %s",
            (client['id'], current_user.id)
        )
        conn.commit()

        return jsonify({'success': True, 'user': _reload(cursor, current_user.id)})

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@users_bp.route('/me', methods=['GET'])
@login_required
def get_me():
    return jsonify({'user': current_user.to_dict()})

@users_bp.route('/me', methods=['PUT'])
@login_required
@active_required
@log_action('ATUALIZAR', 'users')
def update_me():
    data = request.get_json(silent=True) or {}
    values = pick(data, PROFILE_FIELDS)

    if values.get('email'):
        values['email'] = values['email'].strip().lower()
        if not validate_email(values['email']):
            return format_error('Email inválido', 'INVALID_EMAIL')
    if values.get('phone') and not validate_phone(values['phone']):
        return format_error('Telefone inválido', 'INVALID_PHONE')
    if 'name' in values and not (values['name'] or '').strip():
        return format_error('Nome é obrigatório', 'INVALID_NAME')

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        if values.get('email'):
            cursor.execute(
                "SELECT id FROM users WHERE email = %s AND id <> %s",
                (values['email'], current_user.id)
            )
            if cursor.fetchone():
                return format_error('Email já cadastrado', 'DUPLICATE_EMAIL')

        # Troca de senha exige a senha atual
        if data.get('new_password'):
            cursor.execute("SELECT password FROM users WHERE id = %s", (current_user.id,))
            row = cursor.fetchone()
            if not row or not check_password_hash(row['password'], data.get('current_password') or ''):
                return format_error('Senha atual incorreta', 'INVALID_PASSWORD', 401)
            if len(data['new_password']) < 6:
                return format_error('A senha deve ter no mínimo 6 caracteres', 'INVALID_PASSWORD')
            values['password'] = generate_password_hash(data['new_password'])

        update_row(cursor, 'users', current_user.id, values)
        conn.commit()

        return jsonify({'success': True, 'user': _reload(cursor, current_user.id)})

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()
