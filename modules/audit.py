# audit.py
"""Registro de ações dos usuários na tabela audit_logs"""
import json
import logging
from functools import wraps

import mysql.connector
from flask import request
from flask_login import current_user

from modules.db import get_db_connection

logger = logging.getLogger(__name__)


def _write_log(user_id, action, entity, entity_id, description):
    conn = get_db_connection()
    cursor = conn.cursor()
    try:
        cursor.execute("""
            INSERT INTO audit_logs
            (user_id, action, entity, entity_id, description, ip, user_agent)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
        """, (
            user_id,
            action,
            entity,
            entity_id,
            description,
            request.remote_addr,
            request.user_agent.string
        ))
        conn.commit()
    except mysql.connector.Error as err:
        conn.rollback()
        logger.error('Erro ao registrar log de auditoria (%s %s): %s', action, entity, err)
    finally:
        cursor.close()
        conn.close()

def _current_user_id():
    return current_user.id if current_user.is_authenticated else None

def _request_payload():
    data = request.get_json(silent=True) if request.is_json else None
    if isinstance(data, dict):
        # Senhas nunca vão para o log
        data = {key: ('***' if 'password' in key else value) for key, value in data.items()}
    return json.dumps(data, default=str)

def log_action(action_type: str, entity: str):
    """Decorator para logging de ações"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                result = f(*args, **kwargs)
            except Exception as e:
                _write_log(_current_user_id(), 'ERRO', entity, kwargs.get('id'), str(e))
                raise

            if isinstance(result, tuple):
                status_code = result[1]
            else:
                status_code = getattr(result, 'status_code', 200)

            if 200 <= status_code < 300:  # Só loga ações bem-sucedidas
                _write_log(_current_user_id(), action_type, entity, kwargs.get('id'), _request_payload())
            return result
        return decorated_function
    return decorator
