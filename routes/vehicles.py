# vehicles.py
import mysql.connector
from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from modules.audit import log_action
from modules.db import get_db_connection, insert_row, pick, serialize_row, update_row
from modules.errors import format_error, validation_error
from modules.formatters import format_license_plate
from modules.permissions import active_required, can_edit_driver, has_vehicle_access
from modules import taxonomy
from modules.validators import validate_vehicle

vehicles_bp = Blueprint('vehicles', __name__, url_prefix='/api/vehicles')

VEHICLE_FIELDS = (
    'driver_id', 'plate', 'brand', 'model', 'year', 'color', 'renavam',
    'vehicle_type', 'body_type',
)


def _normalize(values):
    if values.get('plate'):
        values['plate'] = format_license_plate(values['plate'])
    if values.get('year') not in (None, ''):
        values['year'] = int(values['year'])
    return values

def _with_labels(vehicle):
    vehicle = serialize_row(vehicle)
    vehicle['vehicle_type_label'] = taxonomy.vehicle_type_label(vehicle.get('vehicle_type'))
    vehicle['body_type_label'] = taxonomy.body_type_label(vehicle.get('body_type'))
    return vehicle

def _can_manage(cursor, vehicle):
    """Admin, motorista dono do veículo ou quem cadastrou o motorista"""
    if has_vehicle_access(current_user, vehicle):
        return True
    cursor.execute("SELECT * FROM drivers WHERE id = %s", (vehicle['driver_id'],))
    return can_edit_driver(current_user, cursor.fetchone())

def _plate_taken(cursor, plate, exclude_id=None):
    cursor.execute(
        "SELECT id FROM vehicles WHERE plate = %s AND id <> %s",
        (plate, exclude_id or 0)
    )
    return cursor.fetchone() is not None

# -------------------------------
# APIs de Veículos
# -------------------------------

@vehicles_bp.route('', methods=['GET'])
@login_required
@active_required
def get_vehicles():
    driver_id = request.args.get('driverId', type=int)

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        if driver_id:
            cursor.execute("SELECT * FROM vehicles WHERE driver_id = %s ORDER BY id", (driver_id,))
        else:
            cursor.execute("SELECT * FROM vehicles ORDER BY id")
        vehicles = [_with_labels(vehicle) for vehicle in cursor.fetchall()]
        return jsonify({'vehicles': vehicles})

    finally:
        cursor.close()
        conn.close()

@vehicles_bp.route('/<int:id>', methods=['GET'])
@login_required
@active_required
def get_vehicle(id):
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT * FROM vehicles WHERE id = %s", (id,))
        vehicle = cursor.fetchone()

        if not vehicle:
            return format_error('Veículo não encontrado', 'NOT_FOUND', 404)
        return jsonify({'vehicle': _with_labels(vehicle)})

    finally:
        cursor.close()
        conn.close()

@vehicles_bp.route('', methods=['POST'])
@login_required
@active_required
@log_action('INSERIR', 'vehicles')
def create_vehicle():
    data = request.get_json(silent=True) or {}
    errors = validate_vehicle(data)
    if errors:
        return validation_error(errors)

    values = _normalize(pick(data, VEHICLE_FIELDS))

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT * FROM drivers WHERE id = %s", (values['driver_id'],))
        driver = cursor.fetchone()
        if not driver:
            return format_error('Motorista não encontrado', 'NOT_FOUND', 404)
        if not can_edit_driver(current_user, driver):
            return format_error('Sem permissão para cadastrar veículos deste motorista', 'PERMISSION_DENIED', 403)

        if _plate_taken(cursor, values['plate']):
            return format_error('Placa já cadastrada', 'DUPLICATE_PLATE')

        vehicle_id = insert_row(cursor, 'vehicles', values)
        conn.commit()

        return jsonify({'success': True, 'id': vehicle_id}), 201

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@vehicles_bp.route('/<int:id>', methods=['PUT'])
@login_required
@active_required
@log_action('ATUALIZAR', 'vehicles')
def update_vehicle(id):
    data = request.get_json(silent=True) or {}

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT * FROM vehicles WHERE id = %s", (id,))
        vehicle = cursor.fetchone()

        if not vehicle:
            return format_error('Veículo não encontrado', 'NOT_FOUND', 404)
        if not _can_manage(cursor, vehicle):
            return format_error('Sem permissão para editar este veículo', 'PERMISSION_DENIED', 403)

        errors = validate_vehicle(data, partial=True)
        if errors:
            return validation_error(errors)

        values = _normalize(pick(data, VEHICLE_FIELDS))
        # O veículo não muda de motorista pela edição
        values.pop('driver_id', None)
        if values.get('plate') and _plate_taken(cursor, values['plate'], exclude_id=id):
            return format_error('Placa já cadastrada', 'DUPLICATE_PLATE')

        update_row(cursor, 'vehicles', id, values)
        conn.commit()

        return jsonify({'success': True})

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@vehicles_bp.route('/<int:id>', methods=['DELETE'])
@login_required
@active_required
@log_action('EXCLUIR', 'vehicles')
def delete_vehicle(id):
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT * FROM vehicles WHERE id = %s", (id,))
        vehicle = cursor.fetchone()

        if not vehicle:
            return format_error('Veículo não encontrado', 'NOT_FOUND', 404)
        if not _can_manage(cursor, vehicle):
            return format_error('Sem permissão para excluir este veículo', 'PERMISSION_DENIED', 403)

        cursor.execute("DELETE FROM vehicles WHERE id = %s", (id,))
        conn.commit()

        return jsonify({'success': True})

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()
