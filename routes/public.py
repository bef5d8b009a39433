# public.py
"""Rotas abertas usadas nos links compartilhados e na página inicial"""
import mysql.connector
from flask import Blueprint, current_app, jsonify, request

from modules.db import get_db_connection, insert_row, pick, serialize_row, serialize_rows
from modules.email_service import send_quote_notification
from modules.errors import format_error, missing_fields_error
from modules.extensions import csrf, limiter
from modules.formatters import parse_weight
from modules.listing import is_freight_open
from modules.tasks import run_in_background
from modules import taxonomy
from modules.validators import validate_email, validate_required_fields

public_bp = Blueprint('public', __name__, url_prefix='/api')

QUOTE_FIELDS = (
    'client_name', 'client_email', 'client_phone', 'origin', 'origin_state',
    'destination', 'destination_state', 'cargo_type', 'weight', 'volume',
    'urgency', 'delivery_date', 'price', 'observations',
)
QUOTE_REQUIRED = ['client_name', 'client_email', 'client_phone', 'origin', 'destination', 'cargo_type']

RECENT_FREIGHTS = 3
RECENT_FREIGHT_FIELDS = (
    'id', 'origin', 'origin_state', 'destination', 'destination_state', 'freight_value', 'created_at',
)


# -------------------------------
# APIs Públicas
# -------------------------------

@public_bp.route('/public/freights/<int:id>', methods=['GET'])
def get_public_freight(id):
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("""
            SELECT f.*, c.name as client_name
            FROM freights f
            LEFT JOIN clients c ON f.client_id = c.id
            WHERE f.id = %s
        """, (id,))
        freight = cursor.fetchone()

        if not freight:
            return format_error('Frete não encontrado', 'NOT_FOUND', 404)
        if freight.get('status') not in taxonomy.OPEN_FREIGHT_STATUS:
            return format_error('Este frete não está mais disponível', 'NOT_AVAILABLE', 403)

        freight = serialize_row(freight)
        freight.pop('user_id', None)
        freight['vehicle_types_label'] = taxonomy.freight_vehicle_labels(freight)
        freight['body_types_label'] = taxonomy.freight_body_labels(freight)

        cursor.execute(
            "SELECT * FROM freight_destinations WHERE freight_id = %s ORDER BY id",
            (id,)
        )
        freight['destinations'] = serialize_rows(cursor.fetchall())
        return jsonify({'freight': freight})

    finally:
        cursor.close()
        conn.close()

@public_bp.route('/public/complements/<int:id>', methods=['GET'])
def get_public_complement(id):
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT * FROM complements WHERE id = %s", (id,))
        complement = cursor.fetchone()

        if not complement:
            return format_error('Complemento não encontrado', 'NOT_FOUND', 404)
        if complement.get('status') != 'active':
            return format_error('Este complemento não está mais disponível', 'NOT_AVAILABLE', 403)

        complement = serialize_row(complement)
        complement.pop('user_id', None)

        client = None
        if complement.get('client_id'):
            cursor.execute(
                "SELECT id, name, city, state, phone, whatsapp FROM clients WHERE id = %s",
                (complement['client_id'],)
            )
            row = cursor.fetchone()
            client = serialize_row(row) if row else None
        complement['client'] = client

        return jsonify({'complement': complement})

    finally:
        cursor.close()
        conn.close()

@public_bp.route('/public/stats', methods=['GET'])
def get_public_stats():
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("""
            SELECT f.id, f.origin, f.origin_state, f.destination, f.destination_state,
                   f.status, f.expiration_date, f.freight_value, f.created_at
            FROM freights f
            ORDER BY f.created_at DESC
        """)
        freights = serialize_rows(cursor.fetchall())
        cursor.execute("SELECT destination, destination_state FROM freight_destinations")
        destinations = cursor.fetchall()

        cursor.execute("SELECT COUNT(*) as total FROM drivers")
        total_drivers = cursor.fetchone()['total']
        cursor.execute("SELECT COUNT(*) as total FROM users")
        total_users = cursor.fetchone()['total']
        cursor.execute("SELECT COUNT(*) as total FROM clients")
        total_clients = cursor.fetchone()['total']

    except mysql.connector.Error as err:
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

    active = [freight for freight in freights if is_freight_open(freight)]
    cities = {
        (row['destination'].strip().lower(), (row.get('destination_state') or '').upper())
        for row in freights + destinations if row.get('destination')
    }

    return jsonify({
        'total_freights': len(freights),
        'active_freights': len(active),
        'total_drivers': total_drivers,
        'total_cities': len(cities),
        'total_users': total_users,
        'total_clients': total_clients,
        'recent_freights': [
            {field: freight.get(field) for field in RECENT_FREIGHT_FIELDS}
            for freight in freights[:RECENT_FREIGHTS]
        ]
    })

@public_bp.route('/public/quotes', methods=['POST'])
@csrf.exempt
@limiter.limit('10 per hour')
def create_public_quote():
    data = request.get_json(silent=True) or {}
    missing = validate_required_fields(data, QUOTE_REQUIRED)
    if missing:
        return missing_fields_error(missing)
    if not validate_email(data['client_email']):
        return format_error('Email inválido', 'INVALID_EMAIL')

    values = pick(data, QUOTE_FIELDS)
    for field in ('weight', 'volume'):
        if values.get(field) not in (None, ''):
            values[field] = parse_weight(values[field])
    values['status'] = 'pendente'

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        quote_id = insert_row(cursor, 'quotes', values)
        conn.commit()

        # Clientes com email recebem o aviso da nova cotação
        cursor.execute("SELECT name, email FROM clients WHERE email IS NOT NULL AND email <> ''")
        recipients = cursor.fetchall()

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

    current_app.logger.info('Cotação pública %s criada por %s', quote_id, values['client_email'])
    if recipients:
        run_in_background(send_quote_notification, recipients, values)

    return jsonify({'success': True, 'id': quote_id, 'notified_clients': len(recipients)}), 201
