# clients.py
import mysql.connector
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from modules.audit import log_action
from modules.db import get_db_connection, insert_row, pick, serialize_row, serialize_rows, update_row
from modules.errors import format_error, validation_error
from modules.formatters import clean_name_from_document, only_digits
from modules.listing import get_pagination_params
from modules.permissions import active_required, has_client_access
from modules.validators import validate_client

clients_bp = Blueprint('clients', __name__, url_prefix='/api/clients')

CLIENT_FIELDS = (
    'name', 'cnpj', 'email', 'phone', 'whatsapp', 'street', 'number', 'complement',
    'neighborhood', 'city', 'state', 'zipcode', 'contact_name', 'contact_phone',
    'client_type', 'notes',
)


def _normalize(values):
    if values.get('cnpj'):
        values['cnpj'] = only_digits(values['cnpj'])
    if values.get('name'):
        values['name'] = clean_name_from_document(values['name'])
    if values.get('state'):
        values['state'] = values['state'].strip().upper()
    return values

def _cnpj_taken(cursor, cnpj, exclude_id=None):
    cursor.execute(
        "SELECT id FROM clients WHERE cnpj = %s AND id <> %s",
        (cnpj, exclude_id or 0)
    )
    return cursor.fetchone() is not None

def _name_taken(cursor, name, exclude_id=None):
    cursor.execute(
        "SELECT id FROM clients WHERE LOWER(name) = LOWER(%s) AND id <> %s",
        (name, exclude_id or 0)
    )
    return cursor.fetchone() is not None

# -------------------------------
# APIs de Clientes
# -------------------------------

@clients_bp.route('', methods=['GET'])
@login_required
@active_required
def get_clients():
    page, per_page, offset = get_pagination_params()
    search = request.args.get('search', '').strip()

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        query = """
            SELECT c.*, COUNT(*) OVER() as total_count
            FROM clients c
            WHERE 1=1
        """
        params = []

        if search:
            query += """
                AND (
                    c.name LIKE %s
                    OR c.cnpj LIKE %s
                    OR c.email LIKE %s
                    OR c.city LIKE %s
                )
            """
            search_param = f'%{search}%'
            params.extend([search_param, f'%{only_digits(search) or search}%', search_param, search_param])

        query += " ORDER BY c.name LIMIT %s OFFSET %s"
        params.extend([per_page, offset])

        cursor.execute(query, params)
        clients = cursor.fetchall()

        total_count = clients[0]['total_count'] if clients else 0
        clients = serialize_rows(clients)
        for client in clients:
            client.pop('total_count', None)

        return jsonify({
            'clients': clients,
            'pagination': {
                'page': page,
                'per_page': per_page,
                'total_items': total_count,
                'total_pages': (total_count + per_page - 1) // per_page
            }
        })

    except mysql.connector.Error as err:
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@clients_bp.route('/<int:id>', methods=['GET'])
@login_required
@active_required
def get_client(id):
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT * FROM clients WHERE id = %s", (id,))
        client = cursor.fetchone()

        if not client:
            return format_error('Cliente não encontrado', 'NOT_FOUND', 404)
        client = serialize_row(client)
        client['can_edit'] = has_client_access(current_user, id)
        return jsonify({'client': client})

    finally:
        cursor.close()
        conn.close()

@clients_bp.route('', methods=['POST'])
@login_required
@active_required
@log_action('INSERIR', 'clients')
def create_client():
    data = request.get_json(silent=True) or {}
    errors = validate_client(data)
    if errors:
        return validation_error(errors)

    values = _normalize(pick(data, CLIENT_FIELDS))

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        if _cnpj_taken(cursor, values['cnpj']):
            return format_error(
                'CNPJ já cadastrado no sistema. Não é possível cadastrar clientes com o mesmo CNPJ.',
                'DUPLICATE_CNPJ'
            )

        # O usuário pode cadastrar um cliente com o próprio nome
        own_name = (current_user.name or '').strip().lower()
        if _name_taken(cursor, values['name']) and values['name'].lower() != own_name:
            return format_error(
                'Nome já cadastrado no sistema. Por favor, use um nome diferente.',
                'DUPLICATE_NAME'
            )

        client_id = insert_row(cursor, 'clients', values)

        # Associar o cliente ao usuário atual
        cursor.execute("UPDATE users SET client_id = %s WHERE id = %s", (client_id, current_user.id))
        conn.commit()
        current_app.logger.info('Cliente %s associado ao usuário %s', client_id, current_user.id)

        return jsonify({'success': True, 'id': client_id}), 201

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@clients_bp.route('/<int:id>', methods=['PUT'])
@login_required
@active_required
@log_action('ATUALIZAR', 'clients')
def update_client(id):
    if not has_client_access(current_user, id):
        return format_error('Sem permissão para editar este cliente', 'PERMISSION_DENIED', 403)

    data = request.get_json(silent=True) or {}
    errors = validate_client(data, partial=True)
    if errors:
        return validation_error(errors)

    values = _normalize(pick(data, CLIENT_FIELDS))

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT id FROM clients WHERE id = %s", (id,))
        if not cursor.fetchone():
            return format_error('Cliente não encontrado', 'NOT_FOUND', 404)

        if values.get('cnpj') and _cnpj_taken(cursor, values['cnpj'], exclude_id=id):
            return format_error(
                'CNPJ já cadastrado no sistema. Não é possível ter dois clientes com o mesmo CNPJ.',
                'DUPLICATE_CNPJ'
            )
        if values.get('name') and _name_taken(cursor, values['name'], exclude_id=id):
            return format_error(
                'Nome já cadastrado no sistema. Por favor, use um nome diferente.',
                'DUPLICATE_NAME'
            )

        update_row(cursor, 'clients', id, values)
        conn.commit()

        return jsonify({'success': True})

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@clients_bp.route('/<int:id>', methods=['DELETE'])
@login_required
@active_required
@log_action('EXCLUIR', 'clients')
def delete_client(id):
    if not has_client_access(current_user, id):
        return format_error('Sem permissão para excluir este cliente', 'PERMISSION_DENIED', 403)

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT id FROM clients WHERE id = %s", (id,))
        if not cursor.fetchone():
            return format_error('Cliente não encontrado', 'NOT_FOUND', 404)

        cursor.execute("UPDATE users SET client_id = NULL WHERE client_id = %s", (id,))
        cursor.execute("DELETE FROM clients WHERE id = %s", (id,))
        conn.commit()

        return jsonify({'success': True})

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()
