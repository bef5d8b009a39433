# freights.py
from datetime import datetime, timedelta

import mysql.connector
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from modules.audit import log_action
from modules.config import Config
from modules.db import get_db_connection, insert_row, pick, serialize_row, serialize_rows, update_row
from modules.errors import format_error, validation_error
from modules.formatters import parse_datetime, parse_money, parse_weight
from modules.listing import filter_freights, get_pagination_params, paginate
from modules.permissions import active_required, has_freight_access, user_can_edit_freight
from modules.tasks import run_in_background
from modules import taxonomy
from modules.validators import validate_destination, validate_freight
from modules.webhook import load_webhook_config, send_freight_webhook
from modules.whatsapp import freight_message, share_link, whatsapp_link

freights_bp = Blueprint('freights', __name__, url_prefix='/api')

FREIGHT_FIELDS = (
    'client_id', 'origin', 'origin_state', 'destination', 'destination_state',
    'vehicle_type', 'vehicle_types_selected', 'body_type', 'body_types_selected',
    'cargo_type', 'product_type', 'cargo_weight', 'needs_tarp', 'toll_option',
    'payment_method', 'freight_value', 'observations', 'contact_name',
    'contact_phone', 'status', 'expiration_date',
)

DESTINATION_FIELDS = (
    'destination', 'destination_state', 'arrival_date', 'destination_contact',
    'destination_phone', 'destination_address', 'destination_notes',
)


def _normalize(values):
    """Valor, peso, seleções e datas no formato do banco"""
    if values.get('freight_value') not in (None, ''):
        values['freight_value'] = parse_money(values['freight_value'])
    if 'cargo_weight' in values:
        values['cargo_weight'] = parse_weight(values['cargo_weight'])
    for field in ('vehicle_types_selected', 'body_types_selected'):
        if field in values:
            values[field] = taxonomy.join_selection(values[field]) or None
    for field in ('origin_state', 'destination_state'):
        if values.get(field):
            values[field] = values[field].strip().upper()
    if 'expiration_date' in values:
        parsed = parse_datetime(values['expiration_date'])
        if parsed is None:
            values.pop('expiration_date')
        else:
            values['expiration_date'] = parsed.replace(tzinfo=None)
    # Sem tipo único informado, usa o primeiro da seleção
    if not values.get('vehicle_type') and values.get('vehicle_types_selected'):
        values['vehicle_type'] = taxonomy.split_selection(values['vehicle_types_selected'])[0]
    if not values.get('body_type') and values.get('body_types_selected'):
        values['body_type'] = taxonomy.split_selection(values['body_types_selected'])[0]
    if values.get('vehicle_type'):
        values['vehicle_category'] = taxonomy.vehicle_category(values['vehicle_type'])
    return values

def _with_labels(freight):
    freight['vehicle_types_label'] = taxonomy.freight_vehicle_labels(freight)
    freight['body_types_label'] = taxonomy.freight_body_labels(freight)
    freight['cargo_type_label'] = taxonomy.cargo_type_label(freight.get('cargo_type'))
    freight['status_label'] = taxonomy.freight_status_label(freight.get('status'))
    return freight

def _fetch_destinations(cursor, freight_id):
    cursor.execute(
        "SELECT * FROM freight_destinations WHERE freight_id = %s ORDER BY id",
        (freight_id,)
    )
    return serialize_rows(cursor.fetchall())

def _fetch_freight(cursor, freight_id):
    cursor.execute("""
        SELECT f.*, c.name as client_name
        FROM freights f
        LEFT JOIN clients c ON f.client_id = c.id
        WHERE f.id = %s
    """, (freight_id,))
    return cursor.fetchone()

def _upsert_destinations(cursor, freight_id, destinations):
    cursor.execute("SELECT id FROM freight_destinations WHERE freight_id = %s", (freight_id,))
    existing = {row['id'] for row in cursor.fetchall()}

    for item in destinations:
        values = pick(item, DESTINATION_FIELDS)
        if item.get('id') in existing:
            update_row(cursor, 'freight_destinations', item['id'], values)
        else:
            values['freight_id'] = freight_id
            insert_row(cursor, 'freight_destinations', values)

    cursor.execute(
        "UPDATE freights SET has_multiple_destinations = TRUE WHERE id = %s",
        (freight_id,)
    )

def _webhook_job(cursor, freight_id):
    """Carrega frete, cliente e configuração para o envio fora da requisição"""
    freight = serialize_row(_fetch_freight(cursor, freight_id))
    if not freight:
        return None
    freight['destinations'] = _fetch_destinations(cursor, freight_id)
    client = None
    if freight.get('client_id'):
        cursor.execute("SELECT * FROM clients WHERE id = %s", (freight['client_id'],))
        client = cursor.fetchone()
    return freight, client, load_webhook_config(cursor)

# -------------------------------
# APIs de Fretes
# -------------------------------

@freights_bp.route('/freights', methods=['GET'])
@login_required
@active_required
def get_freights():
    page, per_page, _ = get_pagination_params()

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("""
            SELECT f.*, c.name as client_name
            FROM freights f
            LEFT JOIN clients c ON f.client_id = c.id
            ORDER BY f.created_at DESC
        """)
        freights = serialize_rows(cursor.fetchall())

    except mysql.connector.Error as err:
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

    freights = filter_freights(
        freights,
        client_id=request.args.get('clientId'),
        status=request.args.get('status'),
        origin_state=request.args.get('originState'),
        destination_state=request.args.get('destinationState'),
        vehicle_type=request.args.get('vehicleType'),
        body_type=request.args.get('bodyType'),
        cargo_type=request.args.get('cargoType'),
        active_only=request.args.get('active') == 'true',
        search=request.args.get('search')
    )
    items, pagination = paginate(freights, page, per_page)

    return jsonify({
        'freights': [_with_labels(freight) for freight in items],
        'pagination': pagination
    })

@freights_bp.route('/freights/<int:id>', methods=['GET'])
@login_required
@active_required
def get_freight(id):
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        freight = _fetch_freight(cursor, id)
        if not freight:
            return format_error('Frete não encontrado', 'NOT_FOUND', 404)

        freight = _with_labels(serialize_row(freight))
        freight['destinations'] = _fetch_destinations(cursor, id) if freight.get('has_multiple_destinations') else []
        freight['can_edit'] = user_can_edit_freight(current_user, freight.get('user_id'))
        return jsonify({'freight': freight})

    finally:
        cursor.close()
        conn.close()

@freights_bp.route('/freights', methods=['POST'])
@login_required
@active_required
@log_action('INSERIR', 'freights')
def create_freight():
    data = request.get_json(silent=True) or {}
    errors = validate_freight(data)
    if errors:
        return validation_error(errors)

    values = _normalize(pick(data, FREIGHT_FIELDS))
    values['user_id'] = current_user.id
    values['status'] = 'active'
    if not values.get('expiration_date'):
        values['expiration_date'] = datetime.now() + timedelta(hours=Config.FREIGHT_EXPIRATION_HOURS)

    destinations = data.get('destinations') or []
    for item in destinations:
        errors = validate_destination(item)
        if errors:
            return validation_error(errors)

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)
    job = None

    try:
        cursor.execute("SELECT id FROM clients WHERE id = %s", (values['client_id'],))
        if not cursor.fetchone():
            return format_error('Cliente não encontrado', 'NOT_FOUND', 404)

        values['has_multiple_destinations'] = bool(destinations)
        freight_id = insert_row(cursor, 'freights', values)
        for item in destinations:
            destination = pick(item, DESTINATION_FIELDS)
            destination['freight_id'] = freight_id
            insert_row(cursor, 'freight_destinations', destination)
        conn.commit()
        current_app.logger.info('Frete %s cadastrado pelo usuário %s', freight_id, current_user.id)

        # Frete já gravado: erro ao montar o webhook não desfaz o cadastro
        try:
            job = _webhook_job(cursor, freight_id)
        except mysql.connector.Error as err:
            current_app.logger.error('Erro ao preparar webhook do frete %s: %s', freight_id, err)

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

    if job:
        run_in_background(send_freight_webhook, *job)

    return jsonify({'success': True, 'id': freight_id}), 201

@freights_bp.route('/freights/<int:id>', methods=['PUT'])
@login_required
@active_required
@log_action('ATUALIZAR', 'freights')
def update_freight(id):
    data = request.get_json(silent=True) or {}

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT id, user_id FROM freights WHERE id = %s", (id,))
        freight = cursor.fetchone()

        if not freight:
            return format_error('Frete não encontrado', 'NOT_FOUND', 404)
        if not user_can_edit_freight(current_user, freight['user_id']):
            return format_error('Sem permissão para editar este frete', 'PERMISSION_DENIED', 403)

        errors = validate_freight(data, partial=True)
        if errors:
            return validation_error(errors)
        if data.get('status') and data['status'] not in taxonomy.FREIGHT_STATUS:
            return format_error('Status inválido', 'INVALID_STATUS')

        update_row(cursor, 'freights', id, _normalize(pick(data, FREIGHT_FIELDS)))

        destinations = data.get('destinations') or []
        for item in destinations:
            errors = validate_destination(item)
            if errors:
                conn.rollback()
                return validation_error(errors)
        if destinations:
            _upsert_destinations(cursor, id, destinations)

        conn.commit()

        freight = _with_labels(serialize_row(_fetch_freight(cursor, id)))
        freight['destinations'] = _fetch_destinations(cursor, id) if freight.get('has_multiple_destinations') else []
        return jsonify({'success': True, 'freight': freight})

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@freights_bp.route('/freights/<int:id>/update-value', methods=['POST'])
@login_required
@active_required
@log_action('ATUALIZAR', 'freights')
def update_freight_value(id):
    data = request.get_json(silent=True) or {}
    if not data.get('freight_value'):
        return format_error('Valor do frete é obrigatório', 'MISSING_FIELDS')

    value = parse_money(data['freight_value'])
    if value <= 0:
        return format_error('Valor do frete deve ser maior que zero', 'INVALID_VALUE')

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT id, user_id FROM freights WHERE id = %s", (id,))
        freight = cursor.fetchone()

        if not freight:
            return format_error('Frete não encontrado', 'NOT_FOUND', 404)
        if not user_can_edit_freight(current_user, freight['user_id']):
            return format_error('Sem permissão para editar este frete', 'PERMISSION_DENIED', 403)

        cursor.execute("UPDATE freights SET freight_value = %s WHERE id = %s", (value, id))
        conn.commit()
        current_app.logger.info('Valor do frete %s atualizado para %s', id, value)

        return jsonify({'success': True, 'freight_value': float(value)})

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@freights_bp.route('/freights/<int:id>', methods=['DELETE'])
@login_required
@active_required
@log_action('EXCLUIR', 'freights')
def delete_freight(id):
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT id, client_id, user_id FROM freights WHERE id = %s", (id,))
        freight = cursor.fetchone()

        if not freight:
            return format_error('Frete não encontrado', 'NOT_FOUND', 404)
        if not has_freight_access(current_user, freight):
            return format_error('Sem permissão para excluir este frete', 'PERMISSION_DENIED', 403)

        # Destinos primeiro
        cursor.execute("DELETE FROM freight_destinations WHERE freight_id = %s", (id,))
        cursor.execute("DELETE FROM freights WHERE id = %s", (id,))
        conn.commit()

        return jsonify({'success': True})

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@freights_bp.route('/freights/<int:id>/whatsapp', methods=['GET'])
@login_required
@active_required
def get_freight_share_links(id):
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        freight = _fetch_freight(cursor, id)
        if not freight:
            return format_error('Frete não encontrado', 'NOT_FOUND', 404)

        freight = serialize_row(freight)
        freight['destinations'] = _fetch_destinations(cursor, id)
        message = freight_message(freight, {'name': freight.get('client_name')}, Config.APP_BASE_URL)
        return jsonify({
            'message': message,
            'share_url': share_link(message),
            'contact_url': whatsapp_link(freight.get('contact_phone'))
        })

    finally:
        cursor.close()
        conn.close()

# -------------------------------
# APIs de Destinos do Frete
# -------------------------------

@freights_bp.route('/freight-destinations', methods=['GET'])
@login_required
@active_required
def get_freight_destinations():
    freight_id = request.args.get('freightId', type=int)
    if not freight_id:
        return format_error('freightId é obrigatório', 'MISSING_FIELDS')

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        return jsonify({'destinations': _fetch_destinations(cursor, freight_id)})

    finally:
        cursor.close()
        conn.close()

@freights_bp.route('/freight-destinations', methods=['POST'])
@login_required
@active_required
@log_action('INSERIR', 'freight_destinations')
def create_freight_destination():
    data = request.get_json(silent=True) or {}
    if not data.get('freight_id'):
        return format_error('freight_id é obrigatório', 'MISSING_FIELDS')
    errors = validate_destination(data)
    if errors:
        return validation_error(errors)

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT id, user_id FROM freights WHERE id = %s", (data['freight_id'],))
        freight = cursor.fetchone()
        if not freight:
            return format_error('Frete não encontrado', 'NOT_FOUND', 404)
        if not user_can_edit_freight(current_user, freight['user_id']):
            return format_error('Sem permissão para editar este frete', 'PERMISSION_DENIED', 403)

        values = pick(data, DESTINATION_FIELDS)
        values['freight_id'] = freight['id']
        destination_id = insert_row(cursor, 'freight_destinations', values)
        cursor.execute(
            "UPDATE freights SET has_multiple_destinations = TRUE WHERE id = %s",
            (freight['id'],)
        )
        conn.commit()

        return jsonify({'success': True, 'id': destination_id}), 201

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@freights_bp.route('/freight-destinations/<int:id>', methods=['DELETE'])
@login_required
@active_required
@log_action('EXCLUIR', 'freight_destinations')
def delete_freight_destination(id):
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("""
            SELECT d.id, d.freight_id, f.user_id
            FROM freight_destinations d
            JOIN freights f ON d.freight_id = f.id
            WHERE d.id = %s
        """, (id,))
        destination = cursor.fetchone()

        if not destination:
            return format_error('Destino não encontrado', 'NOT_FOUND', 404)
        if not user_can_edit_freight(current_user, destination['user_id']):
            return format_error('Sem permissão para editar este frete', 'PERMISSION_DENIED', 403)

        cursor.execute("DELETE FROM freight_destinations WHERE id = %s", (id,))
        cursor.execute(
            "SELECT COUNT(*) as total FROM freight_destinations WHERE freight_id = %s",
            (destination['freight_id'],)
        )
        # Sem destinos restantes o frete volta a ter destino único
        if cursor.fetchone()['total'] == 0:
            cursor.execute(
                "UPDATE freights SET has_multiple_destinations = FALSE WHERE id = %s",
                (destination['freight_id'],)
            )
        conn.commit()

        return jsonify({'success': True})

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()
