# session.py

import json
import logging
from datetime import datetime, timedelta
from functools import wraps

import mysql.connector
from flask import current_app, jsonify, request, session
from flask_login import current_user, logout_user

from modules.db import get_db_connection

logger = logging.getLogger(__name__)


def _session_lifetime():
    lifetime = current_app.config['PERMANENT_SESSION_LIFETIME']
    if isinstance(lifetime, timedelta):
        return lifetime
    return timedelta(seconds=int(lifetime))

def save_session(user_id, session_id, data):
    """Salva sessão no banco de dados"""
    conn = get_db_connection()
    cursor = conn.cursor()

    try:
        expiry = datetime.now() + _session_lifetime()
        payload = json.dumps(data, default=str)
        cursor.execute(
            """
            INSERT INTO sessions (id, user_id, data, expiry, ip_address, user_agent)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON DUPLICATE KEY UPDATE
            data = %s, expiry = %s, ip_address = %s, user_agent = %s
            """,
            (
                session_id, user_id, payload, expiry,
                request.remote_addr, request.user_agent.string,
                payload, expiry, request.remote_addr, request.user_agent.string
            )
        )
        conn.commit()
    finally:
        cursor.close()
        conn.close()

def delete_session(session_id):
    conn = get_db_connection()
    cursor = conn.cursor()
    try:
        cursor.execute("DELETE FROM sessions WHERE id = %s", (session_id,))
        conn.commit()
    finally:
        cursor.close()
        conn.close()

def _expired():
    logout_user()
    session.pop('sid', None)
    return jsonify({'error': 'Sessão expirada. Faça login novamente.', 'code': 'UNAUTHENTICATED'}), 401

def session_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({'error': 'Não autenticado', 'code': 'UNAUTHENTICATED'}), 401

        session_id = session.get('sid')
        if not session_id:
            return _expired()

        conn = get_db_connection()
        cursor = conn.cursor(dictionary=True)
        try:
            cursor.execute("SELECT * FROM sessions WHERE id = %s", (session_id,))
            session_data = cursor.fetchone()
        except mysql.connector.Error as err:
            logger.error('Erro ao validar sessão: %s', err)
            return _expired()
        finally:
            cursor.close()
            conn.close()

        if not session_data or datetime.now() > session_data['expiry']:
            return _expired()

        return f(*args, **kwargs)
    return decorated_function
