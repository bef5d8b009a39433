# drivers.py
import mysql.connector
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from modules.audit import log_action
from modules.db import get_db_connection, insert_row, pick, serialize_row, serialize_rows, update_row
from modules.errors import format_error, validation_error
from modules.formatters import only_digits
from modules.listing import get_pagination_params
from modules.permissions import active_required, can_edit_driver, is_driver, subscription_required
from modules.validators import validate_driver

drivers_bp = Blueprint('drivers', __name__, url_prefix='/api/drivers')

DRIVER_FIELDS = (
    'name', 'email', 'cpf', 'phone', 'whatsapp', 'birthdate', 'cnh', 'cnh_category',
    'cnh_expiration', 'cnh_issue_date', 'street', 'number', 'complement',
    'neighborhood', 'city', 'state', 'zipcode',
)


def _normalize(values):
    for field in ('cpf', 'cnh'):
        if values.get(field):
            values[field] = only_digits(values[field])
    if values.get('state'):
        values['state'] = values['state'].strip().upper()
    if values.get('cnh_category'):
        values['cnh_category'] = values['cnh_category'].strip().upper()
    return values

def _find_duplicate(cursor, values, exclude_id=None):
    """Retorna o erro de duplicidade (CPF ou CNH) ou None"""
    checks = (('cpf', 'CPF já cadastrado', 'DUPLICATE_CPF'),
              ('cnh', 'CNH já cadastrada', 'DUPLICATE_CNH'))
    for field, message, code in checks:
        if not values.get(field):
            continue
        cursor.execute(
            f"SELECT id FROM drivers WHERE {field} = %s AND id <> %s",
            (values[field], exclude_id or 0)
        )
        if cursor.fetchone():
            return format_error(message, code)
    return None

def _attach_vehicles(cursor, drivers):
    if not drivers:
        return drivers
    ids = [driver['id'] for driver in drivers]
    placeholders = ', '.join(['%s'] * len(ids))
    cursor.execute(
        f"SELECT * FROM vehicles WHERE driver_id IN ({placeholders}) ORDER BY id",
        tuple(ids)
    )
    by_driver = {}
    for vehicle in cursor.fetchall():
        by_driver.setdefault(vehicle['driver_id'], []).append(serialize_row(vehicle))
    for driver in drivers:
        driver['vehicles'] = by_driver.get(driver['id'], [])
    return drivers

# -------------------------------
# APIs de Motoristas
# -------------------------------

@drivers_bp.route('', methods=['GET'])
@login_required
@active_required
@subscription_required
def get_drivers():
    page, per_page, offset = get_pagination_params()
    search = request.args.get('search', '').strip()
    state = request.args.get('state')

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        query = """
            SELECT d.*, COUNT(*) OVER() as total_count
            FROM drivers d
            WHERE 1=1
        """
        params = []

        if search:
            query += """
                AND (
                    d.name LIKE %s
                    OR d.cpf LIKE %s
                    OR d.phone LIKE %s
                    OR d.email LIKE %s
                    OR d.city LIKE %s
                )
            """
            search_param = f'%{search}%'
            params.extend([search_param] * 5)

        if state:
            query += " AND d.state = %s"
            params.append(state.upper())

        query += " ORDER BY d.name LIMIT %s OFFSET %s"
        params.extend([per_page, offset])

        cursor.execute(query, params)
        drivers = cursor.fetchall()

        total_count = drivers[0]['total_count'] if drivers else 0
        drivers = serialize_rows(drivers)
        for driver in drivers:
            driver.pop('total_count', None)
        _attach_vehicles(cursor, drivers)

        return jsonify({
            'drivers': drivers,
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

@drivers_bp.route('/<int:id>', methods=['GET'])
@login_required
@active_required
def get_driver(id):
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT * FROM drivers WHERE id = %s", (id,))
        driver = cursor.fetchone()

        if not driver:
            return format_error('Motorista não encontrado', 'NOT_FOUND', 404)

        driver = serialize_row(driver)
        _attach_vehicles(cursor, [driver])
        driver['can_edit'] = can_edit_driver(current_user, driver)
        return jsonify({'driver': driver})

    finally:
        cursor.close()
        conn.close()

@drivers_bp.route('', methods=['POST'])
@login_required
@active_required
@log_action('INSERIR', 'drivers')
def create_driver():
    data = request.get_json(silent=True) or {}
    errors = validate_driver(data)
    if errors:
        return validation_error(errors)

    values = _normalize(pick(data, DRIVER_FIELDS))
    values['user_id'] = current_user.id

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        duplicate = _find_duplicate(cursor, values)
        if duplicate:
            return duplicate

        driver_id = insert_row(cursor, 'drivers', values)

        # Motorista cadastrando o próprio perfil
        if is_driver(current_user) and not current_user.driver_id:
            cursor.execute("UPDATE users SET driver_id = %s WHERE id = %s", (driver_id, current_user.id))

        conn.commit()
        current_app.logger.info('Motorista %s cadastrado pelo usuário %s', driver_id, current_user.id)

        return jsonify({'success': True, 'id': driver_id}), 201

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@drivers_bp.route('/<int:id>', methods=['PUT'])
@login_required
@active_required
@log_action('ATUALIZAR', 'drivers')
def update_driver(id):
    data = request.get_json(silent=True) or {}

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT * FROM drivers WHERE id = %s", (id,))
        driver = cursor.fetchone()

        if not driver:
            return format_error('Motorista não encontrado', 'NOT_FOUND', 404)
        if not can_edit_driver(current_user, driver):
            return format_error('Sem permissão para editar este motorista', 'PERMISSION_DENIED', 403)

        errors = validate_driver(data, partial=True)
        if errors:
            return validation_error(errors)

        values = _normalize(pick(data, DRIVER_FIELDS))
        duplicate = _find_duplicate(cursor, values, exclude_id=id)
        if duplicate:
            return duplicate

        update_row(cursor, 'drivers', id, values)
        conn.commit()

        return jsonify({'success': True})

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@drivers_bp.route('/<int:id>', methods=['DELETE'])
@login_required
@active_required
@log_action('EXCLUIR', 'drivers')
def delete_driver(id):
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT * FROM drivers WHERE id = %s", (id,))
        driver = cursor.fetchone()

        if not driver:
            return format_error('Motorista não encontrado', 'NOT_FOUND', 404)
        if not can_edit_driver(current_user, driver):
            return format_error('Sem permissão para excluir este motorista', 'PERMISSION_DENIED', 403)

        # Veículos dependem do motorista
        cursor.execute("DELETE FROM vehicles WHERE driver_id = %s", (id,))
        cursor.execute("UPDATE users SET driver_id = NULL WHERE driver_id = %s", (id,))
        cursor.execute("DELETE FROM drivers WHERE id = %s", (id,))
        conn.commit()

        return jsonify({'success': True})

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()
