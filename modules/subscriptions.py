# subscriptions.py
"""
Planos, cálculo de vencimento e ativação de assinaturas.

Os planos pagos são mensal (99,90) e anual (960,00); novos usuários têm
direito a um período de teste de 7 dias e motoristas usam o acesso gratuito
(driver_free).
"""
import calendar
import json
import logging
from datetime import datetime, timedelta
from decimal import Decimal

import mysql.connector

from modules.config import Config
from modules.db import get_db_connection
from modules.formatters import parse_datetime

logger = logging.getLogger(__name__)

PLAN_ALIASES = {
    'monthly': 'monthly',
    'mensal': 'monthly',
    'annual': 'annual',
    'anual': 'annual',
    'yearly': 'annual',
    'trial': 'trial',
    'driver_free': 'driver_free',
}

PLAN_LABELS = {
    'monthly': 'Mensal',
    'annual': 'Anual',
    'trial': 'Período de teste',
    'driver_free': 'Motorista (gratuito)',
}

PLAN_MONTHS = {
    'monthly': 1,
    'annual': 12,
}

PAID_PLANS = ('monthly', 'annual')


def normalize_plan_type(plan_type):
    if not plan_type:
        return None
    return PLAN_ALIASES.get(str(plan_type).strip().lower())

def plan_amount(plan_type) -> Decimal:
    plan = normalize_plan_type(plan_type)
    if plan not in PAID_PLANS:
        return Decimal('0.00')
    return Decimal(str(Config.PLAN_PRICES[plan])).quantize(Decimal('0.01'))

def plan_label(plan_type):
    plan = normalize_plan_type(plan_type)
    return PLAN_LABELS.get(plan, plan_type or '')

def add_months(dt, months):
    """Soma meses mantendo o dia (31/01 + 1 mês -> 28 ou 29/02)"""
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)

def compute_expiration(plan_type, start=None):
    start = start or datetime.now()
    plan = normalize_plan_type(plan_type)
    if plan == 'trial':
        return start + timedelta(days=Config.TRIAL_DAYS)
    if plan in PLAN_MONTHS:
        return add_months(start, PLAN_MONTHS[plan])
    # driver_free não expira
    return None

def _get(user, key):
    if isinstance(user, dict):
        return user.get(key)
    return getattr(user, key, None)

def trial_available(user):
    """O teste só pode ser usado uma vez e por quem nunca teve assinatura"""
    return not _get(user, 'trial_used') and not _get(user, 'subscription_expires_at')

def subscription_info(user, now=None):
    now = now or datetime.now()
    expires_at = parse_datetime(_get(user, 'subscription_expires_at'))
    if expires_at is not None and expires_at.tzinfo is not None:
        expires_at = expires_at.replace(tzinfo=None)

    days_left = None
    if expires_at is not None:
        days_left = max((expires_at - now).days, 0)

    plan = _get(user, 'subscription_type')
    return {
        'active': bool(_get(user, 'subscription_active')) and (expires_at is None or expires_at > now),
        'type': plan,
        'label': plan_label(plan) if plan else None,
        'expires_at': expires_at.isoformat() if expires_at else None,
        'days_left': days_left,
        'payment_required': bool(_get(user, 'payment_required')),
        'trial_available': trial_available(user),
    }

# -------------------------------
# Operações no banco (recebem o cursor da rota)
# -------------------------------

def record_event(cursor, user_id, event_type, metadata=None):
    cursor.execute(
        "INSERT INTO subscription_events (user_id, event_type, metadata) VALUES (%s, %s, %s)",
        (user_id, event_type, json.dumps(metadata or {}, default=str))
    )
    return cursor.lastrowid

def activate_subscription(cursor, user_id, plan_type, now=None, metadata=None, subscription_id=None):
    """
    Ativa o plano para o usuário: atualiza a conta e registra a assinatura.
    Com subscription_id, a assinatura pendente do checkout é ativada no lugar
    de uma nova. Retorna (subscription_id, data de vencimento).
    """
    plan = normalize_plan_type(plan_type)
    if plan is None:
        raise ValueError(f'Tipo de plano inválido: {plan_type}')

    now = now or datetime.now()
    expires_at = compute_expiration(plan, now)

    cursor.execute(
        """
        UPDATE users
        SET subscription_active = TRUE, subscription_type = %s,
            subscription_expires_at = %s, payment_required = FALSE,
            trial_used = (trial_used OR %s)
        WHERE id = %s
        """,
        (plan, expires_at, plan == 'trial', user_id)
    )
    if subscription_id:
        cursor.execute(
            """
            UPDATE subscriptions
            SET plan_type = %s, status = 'active', current_period_start = %s,
                current_period_end = %s, metadata = %s
            WHERE id = %s
            """,
            (plan, now, expires_at, json.dumps(metadata or {}, default=str), subscription_id)
        )
        return subscription_id, expires_at

    cursor.execute(
        """
        INSERT INTO subscriptions
        (user_id, plan_type, status, current_period_start, current_period_end, metadata)
        VALUES (%s, %s, 'active', %s, %s, %s)
        """,
        (user_id, plan, now, expires_at, json.dumps(metadata or {}, default=str))
    )
    return cursor.lastrowid, expires_at

def create_invoice(cursor, user_id, amount, description, payment_method,
                   subscription_id=None, client_id=None, metadata=None, now=None):
    now = now or datetime.now()
    cursor.execute(
        """
        INSERT INTO invoices
        (user_id, client_id, subscription_id, status, amount, description,
         payment_method, due_date, paid_at, metadata)
        VALUES (%s, %s, %s, 'paid', %s, %s, %s, %s, %s, %s)
        """,
        (user_id, client_id, subscription_id, amount, description,
         payment_method, now, now, json.dumps(metadata or {}, default=str))
    )
    return cursor.lastrowid

def cancel_subscription(cursor, user_id):
    """Cancela a renovação; o acesso segue até o vencimento já pago"""
    cursor.execute(
        "UPDATE subscriptions SET status = 'cancelled', canceled_at = NOW() "
        "WHERE user_id = %s AND status = 'active'",
        (user_id,)
    )
    return cursor.rowcount

def _trial_expiration(user):
    expires_at = parse_datetime(user.get('subscription_expires_at'))
    if expires_at is not None:
        return expires_at.replace(tzinfo=None), False
    created_at = parse_datetime(user.get('created_at'))
    if created_at is None:
        return None, False
    return created_at.replace(tzinfo=None) + timedelta(days=Config.TRIAL_DAYS), True

def check_expired_trials(now=None):
    """
    Desativa períodos de teste vencidos. Usa subscription_expires_at ou,
    quando ausente, created_at + 7 dias. Retorna quantos foram desativados.
    """
    now = now or datetime.now()
    logger.info('Verificando períodos de teste expirados')

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)
    expired = 0
    try:
        cursor.execute(
            """
            SELECT id, email, subscription_expires_at, created_at
            FROM users
            WHERE subscription_type = 'trial' AND subscription_active = TRUE
            """
        )
        users = cursor.fetchall()

        for user in users:
            expires_at, calculated = _trial_expiration(user)
            if expires_at is None or now <= expires_at:
                continue
            try:
                if calculated:
                    cursor.execute(
                        "UPDATE users SET subscription_active = FALSE, payment_required = TRUE, "
                        "subscription_expires_at = %s WHERE id = %s",
                        (expires_at, user['id'])
                    )
                else:
                    cursor.execute(
                        "UPDATE users SET subscription_active = FALSE, payment_required = TRUE "
                        "WHERE id = %s",
                        (user['id'],)
                    )
                conn.commit()
                expired += 1
                logger.info('Período de teste expirado desativado: usuário %s (%s)', user['id'], user['email'])
            except mysql.connector.Error as err:
                conn.rollback()
                logger.error('Erro ao processar usuário %s: %s', user['id'], err)
    finally:
        cursor.close()
        conn.close()

    logger.info('%s períodos de teste foram desativados', expired)
    return expired
