# complements.py
import mysql.connector
from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from modules.audit import log_action
from modules.config import Config
from modules.db import get_db_connection, insert_row, pick, serialize_row, serialize_rows, update_row
from modules.errors import format_error, validation_error
from modules.formatters import parse_money, parse_weight
from modules.listing import cubic_meters, filter_complements, get_pagination_params, paginate
from modules.permissions import active_required, is_complement_authorized, is_driver
from modules.validators import validate_complement
from modules.whatsapp import complement_message, share_link, whatsapp_link

complements_bp = Blueprint('complements', __name__, url_prefix='/api/complements')

COMPLEMENT_FIELDS = (
    'client_id', 'origin', 'destination', 'weight', 'volume_quantity',
    'volume_length', 'volume_width', 'volume_height', 'invoice_value',
    'freight_value', 'contact_name', 'contact_phone', 'observations', 'status',
)

COMPLEMENT_STATUS = ('active', 'inactive', 'completed')


def _normalize(values):
    for field in ('weight', 'volume_length', 'volume_width', 'volume_height'):
        if field in values:
            values[field] = parse_weight(values[field])
    for field in ('invoice_value', 'freight_value'):
        if field in values:
            values[field] = parse_money(values[field])
    if 'volume_quantity' in values:
        values['volume_quantity'] = int(values['volume_quantity'])
    return values

def _recalculate_cubic_meters(current, values):
    """Dimensões em centímetros; recalcula quando alguma delas muda"""
    fields = ('volume_length', 'volume_width', 'volume_height', 'volume_quantity')
    if not any(field in values for field in fields):
        return values
    merged = {field: values.get(field, (current or {}).get(field)) for field in fields}
    values['cubic_meters'] = cubic_meters(
        merged['volume_length'], merged['volume_width'],
        merged['volume_height'], merged['volume_quantity']
    )
    return values

def _fetch_all(cursor):
    cursor.execute("""
        SELECT cp.*, c.name as client_name
        FROM complements cp
        LEFT JOIN clients c ON cp.client_id = c.id
        ORDER BY cp.created_at DESC
    """)
    return serialize_rows(cursor.fetchall())

# -------------------------------
# APIs de Complementos
# -------------------------------

@complements_bp.route('', methods=['GET'])
@login_required
@active_required
def get_complements():
    page, per_page, _ = get_pagination_params()

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        complements = _fetch_all(cursor)

    except mysql.connector.Error as err:
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

    complements = filter_complements(
        complements,
        search=request.args.get('search'),
        min_weight=request.args.get('minWeight'),
        max_weight=request.args.get('maxWeight'),
        status=request.args.get('status'),
        client_id=request.args.get('clientId')
    )
    items, pagination = paginate(complements, page, per_page)
    return jsonify({'complements': items, 'pagination': pagination})

@complements_bp.route('/search/<string:query>', methods=['GET'])
@login_required
@active_required
def search_complements(query):
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        complements = _fetch_all(cursor)

    finally:
        cursor.close()
        conn.close()

    return jsonify({'complements': filter_complements(complements, search=query)})

@complements_bp.route('/<int:id>', methods=['GET'])
@login_required
@active_required
def get_complement(id):
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT * FROM complements WHERE id = %s", (id,))
        complement = cursor.fetchone()

        if not complement:
            return format_error('Complemento não encontrado', 'NOT_FOUND', 404)

        complement = serialize_row(complement)
        complement['can_edit'] = is_complement_authorized(
            current_user, complement.get('client_id'), complement.get('user_id')
        )
        return jsonify({'complement': complement})

    finally:
        cursor.close()
        conn.close()

@complements_bp.route('', methods=['POST'])
@login_required
@active_required
@log_action('INSERIR', 'complements')
def create_complement():
    # Motoristas apenas visualizam complementos
    if is_driver(current_user):
        return format_error('Motoristas não podem cadastrar complementos', 'PERMISSION_DENIED', 403)

    data = request.get_json(silent=True) or {}
    errors = validate_complement(data)
    if errors:
        return validation_error(errors)

    values = _normalize(pick(data, COMPLEMENT_FIELDS))
    values['user_id'] = current_user.id
    values['status'] = 'active'
    _recalculate_cubic_meters(None, values)

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT id FROM clients WHERE id = %s", (values['client_id'],))
        if not cursor.fetchone():
            return format_error('Cliente não encontrado', 'NOT_FOUND', 404)

        complement_id = insert_row(cursor, 'complements', values)
        conn.commit()

        return jsonify({
            'success': True,
            'id': complement_id,
            'cubic_meters': float(values['cubic_meters'])
        }), 201

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@complements_bp.route('/<int:id>', methods=['PUT'])
@login_required
@active_required
@log_action('ATUALIZAR', 'complements')
def update_complement(id):
    data = request.get_json(silent=True) or {}

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT * FROM complements WHERE id = %s", (id,))
        complement = cursor.fetchone()

        if not complement:
            return format_error('Complemento não encontrado', 'NOT_FOUND', 404)
        if not is_complement_authorized(current_user, complement['client_id'], complement['user_id']):
            return format_error('Sem permissão para editar este complemento', 'PERMISSION_DENIED', 403)

        errors = validate_complement(data, partial=True)
        if errors:
            return validation_error(errors)
        if data.get('status') and data['status'] not in COMPLEMENT_STATUS:
            return format_error('Status inválido', 'INVALID_STATUS')

        values = _recalculate_cubic_meters(complement, _normalize(pick(data, COMPLEMENT_FIELDS)))
        update_row(cursor, 'complements', id, values)
        conn.commit()

        return jsonify({'success': True})

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@complements_bp.route('/<int:id>', methods=['DELETE'])
@login_required
@active_required
@log_action('EXCLUIR', 'complements')
def delete_complement(id):
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT id, client_id, user_id FROM complements WHERE id = %s", (id,))
        complement = cursor.fetchone()

        if not complement:
            return format_error('Complemento não encontrado', 'NOT_FOUND', 404)
        if not is_complement_authorized(current_user, complement['client_id'], complement['user_id']):
            return format_error('Sem permissão para excluir este complemento', 'PERMISSION_DENIED', 403)

        cursor.execute("DELETE FROM complements WHERE id = %s", (id,))
        conn.commit()

        return jsonify({'success': True})

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@complements_bp.route('/<int:id>/whatsapp', methods=['GET'])
@login_required
@active_required
def get_complement_share_links(id):
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT * FROM complements WHERE id = %s", (id,))
        complement = cursor.fetchone()

        if not complement:
            return format_error('Complemento não encontrado', 'NOT_FOUND', 404)

        message = complement_message(serialize_row(complement), Config.APP_BASE_URL)
        return jsonify({
            'message': message,
            'share_url': share_link(message),
            'contact_url': whatsapp_link(complement.get('contact_phone'))
        })

    finally:
        cursor.close()
        conn.close()
