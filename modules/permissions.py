# permissions.py
"""
Regras de acesso por perfil de usuário.

Os predicados aceitam tanto dicionários (linhas do banco) quanto objetos
(o usuário do Flask-Login), lendo atributos ou chaves.
"""
import logging
from datetime import datetime
from functools import wraps

import mysql.connector
from flask import jsonify
from flask_login import current_user

from modules.db import get_db_connection
from modules.formatters import parse_datetime

logger = logging.getLogger(__name__)

PROFILE_TYPES = ('admin', 'shipper', 'carrier', 'agent', 'driver')

PROFILE_ALIASES = {
    'administrador': 'admin',
    'motorista': 'driver',
    'client': 'shipper',
    'embarcador': 'shipper',
    'transportador': 'carrier',
    'transportadora': 'carrier',
    'agenciador': 'agent',
}

PROFILE_LABELS = {
    'admin': 'Administrador',
    'shipper': 'Embarcador',
    'carrier': 'Transportadora',
    'agent': 'Agenciador',
    'driver': 'Motorista',
}

# Resultados de has_freight_access
ACCESS_ADMIN = 'admin'
ACCESS_NO_CLIENT = 'no_client'
ACCESS_SAME_CLIENT = 'same_client'
ACCESS_CREATOR = 'creator'
ACCESS_DENIED = None

SUBSCRIPTION_REQUIRED = 'subscription_required'
SUBSCRIPTION_EXPIRED = 'subscription_expired'


def _get(obj, key, default=None):
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)

def _same_id(a, b):
    if a is None or b is None:
        return False
    try:
        return int(a) == int(b)
    except (TypeError, ValueError):
        return str(a) == str(b)

def normalize_profile_type(profile_type):
    if not profile_type:
        return None
    value = str(profile_type).strip().lower()
    return PROFILE_ALIASES.get(value, value)

def profile_of(user):
    return normalize_profile_type(_get(user, 'profile_type'))

def profile_label(profile_type):
    normalized = normalize_profile_type(profile_type)
    return PROFILE_LABELS.get(normalized, profile_type or '')

def is_admin(user):
    return user is not None and profile_of(user) == 'admin'

def is_driver(user):
    return user is not None and profile_of(user) == 'driver'

def can_edit_driver(user, driver):
    """Admin edita qualquer motorista; motorista só o próprio cadastro; quem cadastrou também"""
    if user is None or driver is None:
        return False
    if is_admin(user):
        return True
    if is_driver(user) and _same_id(_get(user, 'driver_id'), _get(driver, 'id')):
        return True
    return _same_id(_get(driver, 'user_id'), _get(user, 'id'))

def is_complement_authorized(user, client_id, complement_user_id=None):
    if user is None:
        return False
    # Motoristas apenas visualizam complementos
    if is_driver(user):
        return False
    if is_admin(user):
        return True
    if _same_id(complement_user_id, _get(user, 'id')):
        return True
    if complement_user_id is None and _same_id(_get(user, 'client_id'), client_id):
        return True
    return False

def user_can_edit_freight(user, freight_user_id):
    if user is None:
        return False
    return is_admin(user) or _same_id(freight_user_id, _get(user, 'id'))

def has_freight_access(user, freight):
    """Retorna o motivo do acesso (admin, no_client, same_client, creator) ou None"""
    if user is None or freight is None:
        return ACCESS_DENIED
    if is_admin(user):
        return ACCESS_ADMIN

    client_id = _get(freight, 'client_id')
    if client_id in (None, 0, '0'):
        return ACCESS_NO_CLIENT
    if _same_id(_get(user, 'client_id'), client_id):
        return ACCESS_SAME_CLIENT
    if _same_id(_get(freight, 'user_id'), _get(user, 'id')):
        return ACCESS_CREATOR
    return ACCESS_DENIED

def has_vehicle_access(user, vehicle):
    if user is None or vehicle is None:
        return False
    if is_admin(user):
        return True
    return is_driver(user) and _same_id(_get(user, 'driver_id'), _get(vehicle, 'driver_id'))

def has_client_access(user, client_id):
    if user is None:
        return False
    return is_admin(user) or _same_id(_get(user, 'client_id'), client_id)

def is_admin_or_self(user, user_id):
    if user is None:
        return False
    return is_admin(user) or _same_id(_get(user, 'id'), user_id)

def subscription_access(user, now=None):
    """
    Verifica se o usuário pode acessar áreas pagas.

    Retorna None quando o acesso é liberado, ou o motivo do bloqueio:
    'subscription_required' (sem assinatura ativa) ou 'subscription_expired'.
    """
    if user is None:
        return SUBSCRIPTION_REQUIRED
    if is_admin(user):
        return None
    if is_driver(user) and _get(user, 'subscription_type') == 'driver_free':
        return None
    if not _get(user, 'subscription_active'):
        return SUBSCRIPTION_REQUIRED

    expires_at = parse_datetime(_get(user, 'subscription_expires_at'))
    if expires_at is not None:
        now = now or datetime.now()
        if expires_at.tzinfo is not None:
            expires_at = expires_at.replace(tzinfo=None)
        if expires_at < now:
            return SUBSCRIPTION_EXPIRED
    return None

# -------------------------------
# Decorators para rotas
# -------------------------------

def _error(message, code, status):
    return jsonify({'error': message, 'code': code}), status

def admin_required(f):
    """Decorator para verificar permissões de admin"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated or not is_admin(current_user):
            return _error(
                'Acesso negado. Permissão de administrador necessária.',
                'PERMISSION_DENIED', 403
            )
        return f(*args, **kwargs)
    return decorated_function

def active_required(f):
    """Bloqueia contas desativadas pelo administrador"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if current_user.is_authenticated and not current_user.is_active:
            return _error('Acesso desativado. Entre em contato com o suporte.', 'ACCOUNT_DISABLED', 403)
        return f(*args, **kwargs)
    return decorated_function

def _flag_expired_subscription(user_id):
    conn = get_db_connection()
    cursor = conn.cursor()
    try:
        cursor.execute(
            "UPDATE users SET subscription_active = FALSE, payment_required = TRUE WHERE id = %s",
            (user_id,)
        )
        conn.commit()
    except mysql.connector.Error as err:
        conn.rollback()
        logger.error('Erro ao marcar assinatura expirada do usuário %s: %s', user_id, err)
    finally:
        cursor.close()
        conn.close()

def subscription_required(f):
    """Exige assinatura ativa (402 quando ausente ou expirada)"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return _error('Não autenticado', 'UNAUTHENTICATED', 401)

        reason = subscription_access(current_user)
        if reason == SUBSCRIPTION_EXPIRED:
            _flag_expired_subscription(current_user.id)
            current_user.subscription_active = False
            current_user.payment_required = True
            return _error('Sua assinatura expirou. Renove para continuar.', 'SUBSCRIPTION_EXPIRED', 402)
        if reason == SUBSCRIPTION_REQUIRED:
            return _error('Assinatura necessária para acessar este recurso', 'SUBSCRIPTION_REQUIRED', 402)
        return f(*args, **kwargs)
    return decorated_function
