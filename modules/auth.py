# auth.py
"""Usuário do Flask-Login e carregamento a partir do banco"""
import logging
from typing import Optional, Dict, Any

from flask import jsonify
from flask_login import LoginManager, UserMixin

from modules.db import get_db_connection
from modules.permissions import normalize_profile_type

logger = logging.getLogger(__name__)

login_manager = LoginManager()

# Campos da tabela users expostos na API
PUBLIC_FIELDS = (
    'id', 'email', 'name', 'phone', 'profile_type', 'client_id', 'driver_id',
    'subscription_active', 'subscription_type', 'subscription_expires_at',
    'payment_required', 'trial_used', 'is_verified', 'created_at', 'last_login',
)


class User(UserMixin):
    """Classe de usuário para Flask-Login"""
    def __init__(self, row: Dict[str, Any]):
        self.id = row['id']
        self.email = row.get('email')
        self.name = row.get('name')
        self.phone = row.get('phone')
        self.profile_type = normalize_profile_type(row.get('profile_type'))
        self.client_id = row.get('client_id')
        self.driver_id = row.get('driver_id')
        self.subscription_active = bool(row.get('subscription_active'))
        self.subscription_type = row.get('subscription_type')
        self.subscription_expires_at = row.get('subscription_expires_at')
        self.payment_required = bool(row.get('payment_required'))
        self.trial_used = bool(row.get('trial_used'))
        self.is_verified = bool(row.get('is_verified'))
        self.created_at = row.get('created_at')
        self.last_login = row.get('last_login')
        self._active = row.get('is_active', True) not in (False, 0)

    @property
    def is_active(self):
        return self._active

    def to_dict(self):
        data = {field: getattr(self, field, None) for field in PUBLIC_FIELDS}
        data['is_active'] = self.is_active
        for key in ('subscription_expires_at', 'created_at', 'last_login'):
            if hasattr(data[key], 'isoformat'):
                data[key] = data[key].isoformat()
        return data

def public_user(row: Dict[str, Any]) -> Dict[str, Any]:
    """Remove senha e token de recuperação da linha do banco"""
    return User(row).to_dict()

@login_manager.user_loader
def load_user(user_id: str) -> Optional[User]:
    """Carrega usuário para o Flask-Login"""
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT * FROM users WHERE id = %s", (user_id,))
        user = cursor.fetchone()

        if user:
            return User(user)
        return None

    finally:
        cursor.close()
        conn.close()

@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'error': 'Não autenticado', 'code': 'UNAUTHENTICATED'}), 401
