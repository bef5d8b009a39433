# admin.py
"""Painel administrativo: usuários, assinaturas, financeiro, webhook, email e cotações"""
import json
from datetime import datetime

import mysql.connector
import requests
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required
from werkzeug.security import generate_password_hash

from modules.audit import log_action
from modules.auth import public_user
from modules.config import Config
from modules.db import get_db_connection, serialize_row, serialize_rows
from modules.email_service import (
    is_configured, send_payment_reminder_email, send_test_email, test_email_connection,
)
from modules.errors import format_error, missing_fields_error
from modules.listing import get_pagination_params
from modules.permissions import admin_required, is_admin, normalize_profile_type
from modules import subscriptions
from modules.validators import validate_email, validate_profile_type
from modules.webhook import load_webhook_config, save_webhook_config, send_test_webhook

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')

MONTH_NAMES = ['Jan', 'Fev', 'Mar', 'Abr', 'Mai', 'Jun', 'Jul', 'Ago', 'Set', 'Out', 'Nov', 'Dez']

QUOTE_STATUS = ('pendente', 'ativa', 'fechada', 'cancelada', 'expirada')


def _fetch_user(cursor, user_id):
    cursor.execute("SELECT * FROM users WHERE id = %s", (user_id,))
    return cursor.fetchone()

def _as_float(value):
    return float(value or 0)

def _created_at(row):
    value = row.get('created_at')
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return value

def _invoiced_payment_id(invoice):
    metadata = invoice.get('metadata')
    if isinstance(metadata, (str, bytes)):
        try:
            metadata = json.loads(metadata)
        except ValueError:
            return None
    if isinstance(metadata, dict) and metadata.get('payment_id'):
        return str(metadata['payment_id'])
    return None

def finance_summary(subscription_rows, invoices, payments, now=None):
    """
    Consolida a receita: faturas pagas mais pagamentos aprovados do Mercado Pago
    que ainda não viraram fatura (sem invoice_id e fora do metadata das faturas).
    """
    now = now or datetime.now()
    first_day = datetime(now.year, now.month, 1)

    total = len(subscription_rows)
    active = sum(1 for s in subscription_rows if s.get('status') == 'active')
    cancelled = sum(1 for s in subscription_rows if s.get('status') in ('cancelled', 'canceled'))

    monthly_data = [{'month': name, 'revenue': 0.0} for name in MONTH_NAMES]
    total_revenue = monthly_revenue = 0.0
    paid_invoices = failed_invoices = 0

    revenue_rows = []
    invoiced = set()
    for invoice in invoices:
        if invoice.get('status') == 'paid':
            paid_invoices += 1
            revenue_rows.append(invoice)
            invoiced.add(_invoiced_payment_id(invoice))
        elif invoice.get('status') == 'failed':
            failed_invoices += 1
    revenue_rows.extend(
        payment for payment in payments
        if payment.get('status') == 'approved' and not payment.get('invoice_id')
        and str(payment.get('mercadopago_id')) not in invoiced
    )

    for row in revenue_rows:
        amount = _as_float(row.get('amount'))
        total_revenue += amount
        created_at = _created_at(row)
        if created_at is None:
            continue
        if created_at >= first_day:
            monthly_revenue += amount
        if created_at.year == now.year:
            monthly_data[created_at.month - 1]['revenue'] += amount

    return {
        'total_subscriptions': total,
        'active_subscriptions': active,
        'annual_subscriptions': sum(1 for s in subscription_rows if s.get('plan_type') == 'annual'),
        'monthly_subscriptions': sum(1 for s in subscription_rows if s.get('plan_type') == 'monthly'),
        'total_revenue': round(total_revenue, 2),
        'paid_invoices': paid_invoices,
        'failed_invoices': failed_invoices,
        'monthly_revenue': round(monthly_revenue, 2),
        'currency': 'BRL',
        'churn_rate': round(cancelled / total * 100, 2) if total else 0,
        'monthly_data': monthly_data,
        'subscriptions_by_status': [
            {'status': 'active', 'count': active},
            {'status': 'cancelled', 'count': cancelled},
            {'status': 'pending', 'count': sum(1 for s in subscription_rows if s.get('status') == 'pending')},
        ],
    }

# -------------------------------
# Usuários
# -------------------------------

@admin_bp.route('/users', methods=['GET'])
@login_required
@admin_required
def get_users():
    page, per_page, offset = get_pagination_params()
    search = request.args.get('search', '').strip()
    profile_type = normalize_profile_type(request.args.get('profileType'))

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        query = """
            SELECT u.*, COUNT(*) OVER() as total_count
            FROM users u
            WHERE 1=1
        """
        params = []

        if search:
            query += " AND (u.name LIKE %s OR u.email LIKE %s OR u.phone LIKE %s)"
            search_param = f'%{search}%'
            params.extend([search_param] * 3)

        if profile_type:
            query += " AND u.profile_type = %s"
            params.append(profile_type)

        query += " ORDER BY u.created_at DESC LIMIT %s OFFSET %s"
        params.extend([per_page, offset])

        cursor.execute(query, params)
        rows = cursor.fetchall()

        total_count = rows[0]['total_count'] if rows else 0
        return jsonify({
            'users': [public_user(row) for row in rows],
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

@admin_bp.route('/users/<int:id>/toggle-access', methods=['PUT'])
@login_required
@admin_required
@log_action('ATUALIZAR', 'users')
def toggle_user_access(id):
    data = request.get_json(silent=True) or {}
    if 'is_active' not in data:
        return missing_fields_error(['is_active'])
    if id == current_user.id and not data['is_active']:
        return format_error('Não é permitido desativar o próprio acesso', 'PERMISSION_DENIED', 403)

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        if not _fetch_user(cursor, id):
            return format_error('Usuário não encontrado', 'NOT_FOUND', 404)

        cursor.execute("UPDATE users SET is_active = %s WHERE id = %s", (bool(data['is_active']), id))
        conn.commit()

        return jsonify({
            'success': True,
            'message': 'Acesso do usuário ativado' if data['is_active'] else 'Acesso do usuário desativado',
            'user': public_user(_fetch_user(cursor, id))
        })

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@admin_bp.route('/users/<int:id>/update-profile-type', methods=['PUT'])
@login_required
@admin_required
@log_action('ATUALIZAR', 'users')
def admin_update_profile_type(id):
    data = request.get_json(silent=True) or {}
    profile_type = normalize_profile_type(data.get('profile_type'))
    if not validate_profile_type(profile_type):
        return format_error('Tipo de perfil inválido', 'INVALID_PROFILE_TYPE')

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        if not _fetch_user(cursor, id):
            return format_error('Usuário não encontrado', 'NOT_FOUND', 404)

        cursor.execute("UPDATE users SET profile_type = %s WHERE id = %s", (profile_type, id))
        conn.commit()

        return jsonify({'success': True, 'user': public_user(_fetch_user(cursor, id))})

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@admin_bp.route('/users/<int:id>/reset-password', methods=['POST'])
@login_required
@admin_required
@log_action('ATUALIZAR', 'users')
def admin_reset_password(id):
    data = request.get_json(silent=True) or {}
    new_password = data.get('new_password') or ''
    if len(new_password) < 6:
        return format_error('Nova senha deve ter pelo menos 6 caracteres', 'INVALID_PASSWORD')

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        if not _fetch_user(cursor, id):
            return format_error('Usuário não encontrado', 'NOT_FOUND', 404)

        cursor.execute(
            "UPDATE users SET password = %s, reset_token = NULL, reset_token_expires = NULL WHERE id = %s",
            (generate_password_hash(new_password), id)
        )
        conn.commit()

        return jsonify({'success': True, 'message': 'Senha redefinida com sucesso'})

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@admin_bp.route('/users/<int:id>/send-payment-reminder', methods=['POST'])
@login_required
@admin_required
def send_payment_reminder(id):
    data = request.get_json(silent=True) or {}

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        user = _fetch_user(cursor, id)
        if not user:
            return format_error('Usuário não encontrado', 'NOT_FOUND', 404)

    finally:
        cursor.close()
        conn.close()

    if not send_payment_reminder_email(user, data.get('payment_url'), data.get('custom_message')):
        return format_error('Erro ao enviar lembrete de pagamento', 'EMAIL_ERROR', 500)
    return jsonify({'success': True, 'message': 'Lembrete de pagamento enviado com sucesso'})

@admin_bp.route('/users/<int:id>', methods=['DELETE'])
@login_required
@admin_required
@log_action('EXCLUIR', 'users')
def delete_user(id):
    if id == current_user.id:
        return format_error('Não é permitido excluir seu próprio usuário', 'PERMISSION_DENIED', 403)

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        user = _fetch_user(cursor, id)
        if not user:
            return format_error('Usuário não encontrado', 'NOT_FOUND', 404)
        if is_admin(user):
            return format_error('Não é permitido excluir usuários administradores', 'PERMISSION_DENIED', 403)

        for table in ('sessions', 'subscription_events', 'subscriptions'):
            cursor.execute(f"DELETE FROM {table} WHERE user_id = %s", (id,))
        cursor.execute("DELETE FROM users WHERE id = %s", (id,))
        conn.commit()

        return jsonify({'success': True, 'message': 'Usuário excluído com sucesso'})

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

# -------------------------------
# Assinaturas e Financeiro
# -------------------------------

@admin_bp.route('/subscriptions', methods=['GET'])
@login_required
@admin_required
def get_subscriptions():
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("""
            SELECT s.*, u.name as user_name, u.email as user_email
            FROM subscriptions s
            LEFT JOIN users u ON s.user_id = u.id
            ORDER BY s.created_at DESC
        """)
        return jsonify({'subscriptions': serialize_rows(cursor.fetchall())})

    finally:
        cursor.close()
        conn.close()

@admin_bp.route('/subscription-events/<int:user_id>', methods=['GET'])
@login_required
@admin_required
def get_subscription_events(user_id):
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute(
            "SELECT * FROM subscription_events WHERE user_id = %s ORDER BY created_at DESC",
            (user_id,)
        )
        return jsonify({'events': serialize_rows(cursor.fetchall())})

    finally:
        cursor.close()
        conn.close()

@admin_bp.route('/activate-subscription-manual', methods=['POST'])
@login_required
@admin_required
@log_action('ATIVAR_MANUAL', 'subscriptions')
def activate_subscription_manual():
    data = request.get_json(silent=True) or {}
    if not data.get('email'):
        return missing_fields_error(['email'])

    plan = subscriptions.normalize_plan_type(data.get('plan_type') or 'monthly')
    if plan is None:
        return format_error('Tipo de plano inválido', 'INVALID_PLAN')

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT * FROM users WHERE email = %s", (data['email'].strip().lower(),))
        user = cursor.fetchone()
        if not user:
            return format_error('Usuário não encontrado', 'NOT_FOUND', 404)

        now = datetime.now()
        subscription_id, expires_at = subscriptions.activate_subscription(
            cursor, user['id'], plan, now=now, metadata={'activated_by': current_user.id}
        )
        amount = data.get('amount')
        if amount in (None, ''):
            amount = subscriptions.plan_amount(plan) if plan in subscriptions.PAID_PLANS else 0
        subscriptions.create_invoice(
            cursor, user['id'], amount, 'Ativação Manual', 'manual',
            subscription_id=subscription_id, metadata={'activated_by': current_user.id}, now=now
        )
        subscriptions.record_event(cursor, user['id'], 'payment_success', {
            'manual': True,
            'activated_by': current_user.id
        })
        conn.commit()
        current_app.logger.info(
            'Assinatura %s ativada manualmente para %s pelo admin %s', plan, user['email'], current_user.id
        )

        return jsonify({
            'success': True,
            'user': public_user(_fetch_user(cursor, user['id'])),
            'expires_at': expires_at.isoformat() if expires_at else None
        })

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@admin_bp.route('/invoices', methods=['GET'])
@login_required
@admin_required
def get_invoices():
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("""
            SELECT i.*, u.name as user_name, u.email as user_email
            FROM invoices i
            LEFT JOIN users u ON i.user_id = u.id
            ORDER BY i.created_at DESC
        """)
        return jsonify({'invoices': serialize_rows(cursor.fetchall())})

    finally:
        cursor.close()
        conn.close()

@admin_bp.route('/finance/stats', methods=['GET'])
@login_required
@admin_required
def get_finance_stats():
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT id, plan_type, status, created_at FROM subscriptions")
        subscription_rows = cursor.fetchall()
        cursor.execute("SELECT id, status, amount, metadata, created_at FROM invoices")
        invoices = cursor.fetchall()
        cursor.execute(
            "SELECT id, mercadopago_id, status, amount, invoice_id, date_created as created_at "
            "FROM mercadopago_payments"
        )
        payments = cursor.fetchall()

    except mysql.connector.Error as err:
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

    return jsonify(finance_summary(subscription_rows, invoices, payments))

# -------------------------------
# Webhook de envio automático
# -------------------------------

@admin_bp.route('/webhook-config', methods=['GET'])
@login_required
@admin_required
def get_webhook_config():
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        return jsonify({'config': load_webhook_config(cursor)})

    finally:
        cursor.close()
        conn.close()

@admin_bp.route('/webhook-config', methods=['PUT'])
@login_required
@admin_required
@log_action('ATUALIZAR', 'webhook_configs')
def update_webhook_config():
    data = request.get_json(silent=True) or {}
    if data.get('url') and not str(data['url']).startswith(('http://', 'https://')):
        return format_error('URL do webhook inválida', 'INVALID_URL')

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        config = save_webhook_config(cursor, data)
        conn.commit()
        return jsonify({'success': True, 'config': config})

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@admin_bp.route('/webhook-config/test', methods=['POST'])
@login_required
@admin_required
def test_webhook_config():
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        config = load_webhook_config(cursor)

    finally:
        cursor.close()
        conn.close()

    if not config.get('url'):
        return format_error('URL do webhook não configurada', 'NOT_CONFIGURED')

    try:
        send_test_webhook(config)
    except requests.RequestException as err:
        current_app.logger.error('Falha no teste do webhook: %s', err)
        return format_error(f'Falha ao enviar teste: {err}', 'WEBHOOK_ERROR', 502)

    return jsonify({'success': True, 'message': 'Teste enviado com sucesso'})

# -------------------------------
# Email
# -------------------------------

@admin_bp.route('/email/status', methods=['GET'])
@login_required
@admin_required
def get_email_status():
    status = test_email_connection() if is_configured() else {
        'success': False, 'message': 'Serviço de email não configurado'
    }
    return jsonify({
        'configured': is_configured(),
        'host': Config.EMAIL_HOST,
        'port': Config.EMAIL_PORT,
        'security': Config.EMAIL_SECURITY,
        'from': Config.EMAIL_FROM,
        'connection': status
    })

@admin_bp.route('/email/test', methods=['POST'])
@login_required
@admin_required
def send_email_test():
    data = request.get_json(silent=True) or {}
    to = (data.get('email') or current_user.email or '').strip()
    if not validate_email(to):
        return format_error('Email inválido', 'INVALID_EMAIL')

    if not send_test_email(to):
        return format_error('Falha ao enviar email de teste', 'EMAIL_ERROR', 500)
    return jsonify({'success': True, 'message': f'Email de teste enviado para {to}'})

# -------------------------------
# Cotações
# -------------------------------

@admin_bp.route('/quotes', methods=['GET'])
@login_required
@admin_required
def get_quotes():
    status = request.args.get('status')

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        if status:
            cursor.execute("SELECT * FROM quotes WHERE status = %s ORDER BY created_at DESC", (status,))
        else:
            cursor.execute("SELECT * FROM quotes ORDER BY created_at DESC")
        return jsonify({'quotes': serialize_rows(cursor.fetchall())})

    finally:
        cursor.close()
        conn.close()

@admin_bp.route('/quotes/stats', methods=['GET'])
@login_required
@admin_required
def get_quote_stats():
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT status, user_id, created_at FROM quotes")
        quotes = cursor.fetchall()

    finally:
        cursor.close()
        conn.close()

    now = datetime.now()
    first_day = datetime(now.year, now.month, 1)
    by_status = {status: 0 for status in QUOTE_STATUS}
    for quote in quotes:
        by_status[quote.get('status')] = by_status.get(quote.get('status'), 0) + 1

    return jsonify({
        'total_quotes': len(quotes),
        'public_quotes': sum(1 for quote in quotes if not quote.get('user_id')),
        'registered_quotes': sum(1 for quote in quotes if quote.get('user_id')),
        'this_month_quotes': sum(
            1 for quote in quotes
            if _created_at(quote) is not None and _created_at(quote) >= first_day
        ),
        'by_status': by_status
    })

@admin_bp.route('/quotes/<int:id>', methods=['PUT'])
@login_required
@admin_required
@log_action('ATUALIZAR', 'quotes')
def update_quote(id):
    data = request.get_json(silent=True) or {}
    status = data.get('status')
    if status not in QUOTE_STATUS:
        return format_error('Status inválido', 'INVALID_STATUS')

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT * FROM quotes WHERE id = %s", (id,))
        if not cursor.fetchone():
            return format_error('Cotação não encontrada', 'NOT_FOUND', 404)

        cursor.execute("UPDATE quotes SET status = %s WHERE id = %s", (status, id))
        conn.commit()

        cursor.execute("SELECT * FROM quotes WHERE id = %s", (id,))
        return jsonify({'success': True, 'quote': serialize_row(cursor.fetchone())})

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()
