# billing.py
"""Assinaturas, Mercado Pago, OpenPix e faturas do usuário"""
import json
from datetime import datetime

import mysql.connector
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from modules.audit import log_action
from modules.db import get_db_connection, serialize_rows
from modules.email_service import send_subscription_email
from modules.errors import GatewayError, format_error, gateway_error
from modules.extensions import csrf
from modules.mercadopago import (
    MercadoPagoClient, build_subscription_preference, format_payment_history,
    notification_outcome, parse_external_reference,
)
from modules.openpix import (
    STATUS_COMPLETED, OpenPixClient, build_charge, charge_plan_type,
    parse_correlation_id, summarize_charge,
)
from modules.permissions import active_required, is_driver
from modules import subscriptions

billing_bp = Blueprint('billing', __name__, url_prefix='/api')


def _notify_activation(email, name, plan, start, expires_at, amount):
    if not email:
        return
    if not send_subscription_email(email, name, plan, start, expires_at, amount):
        current_app.logger.warning('Email de assinatura não enviado para %s', email)

# -------------------------------
# APIs de Assinatura
# -------------------------------

@billing_bp.route('/activate-trial', methods=['POST'])
@login_required
@active_required
@log_action('ATIVAR_TESTE', 'subscriptions')
def activate_trial():
    if not subscriptions.trial_available(current_user):
        return format_error('Período de teste já utilizado', 'TRIAL_ALREADY_USED')

    now = datetime.now()
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        subscription_id, expires_at = subscriptions.activate_subscription(
            cursor, current_user.id, 'trial', now=now
        )
        subscriptions.record_event(cursor, current_user.id, 'trial_started', {
            'subscription_id': subscription_id,
            'expires_at': expires_at
        })
        conn.commit()

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

    current_app.logger.info('Teste ativado para o usuário %s até %s', current_user.id, expires_at)
    _notify_activation(current_user.email, current_user.name, 'trial', now, expires_at, 0)

    return jsonify({
        'success': True,
        'subscription_type': 'trial',
        'expires_at': expires_at.isoformat()
    })

@billing_bp.route('/activate-driver-access', methods=['POST'])
@login_required
@active_required
@log_action('ATIVAR_MOTORISTA', 'subscriptions')
def activate_driver_access():
    # Motoristas usam a plataforma sem custo
    if not is_driver(current_user):
        return format_error('Disponível apenas para motoristas', 'PERMISSION_DENIED', 403)

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        subscriptions.activate_subscription(cursor, current_user.id, 'driver_free')
        subscriptions.record_event(cursor, current_user.id, 'driver_access')
        conn.commit()

        return jsonify({'success': True, 'subscription_type': 'driver_free'})

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

@billing_bp.route('/user/subscription-info', methods=['GET'])
@login_required
def get_subscription_info():
    return jsonify(subscriptions.subscription_info(current_user))

@billing_bp.route('/cancel-subscription', methods=['POST'])
@login_required
@active_required
@log_action('CANCELAR', 'subscriptions')
def cancel_subscription():
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cancelled = subscriptions.cancel_subscription(cursor, current_user.id)
        if not cancelled:
            return format_error('Nenhuma assinatura ativa encontrada', 'NOT_FOUND', 404)

        subscriptions.record_event(cursor, current_user.id, 'subscription_cancelled')
        conn.commit()

        info = subscriptions.subscription_info(current_user)
        return jsonify({
            'success': True,
            'message': 'Assinatura cancelada. O acesso continua até o fim do período pago.',
            'expires_at': info['expires_at']
        })

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

# -------------------------------
# Mercado Pago
# -------------------------------

@billing_bp.route('/mercadopago/create-preference', methods=['POST'])
@login_required
@active_required
@log_action('PAGAMENTO', 'mercadopago')
def create_mercadopago_preference():
    data = request.get_json(silent=True) or {}
    plan = subscriptions.normalize_plan_type(data.get('plan_type') or 'monthly')

    try:
        body = build_subscription_preference(current_user.to_dict(), plan)
    except ValueError:
        return format_error('Tipo de plano inválido', 'INVALID_PLAN')

    try:
        preference = MercadoPagoClient().create_preference(body)
    except GatewayError as err:
        return gateway_error(err)

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute(
            """
            INSERT INTO subscriptions (user_id, plan_type, status, metadata)
            VALUES (%s, %s, 'pending', %s)
            """,
            (current_user.id, plan, json.dumps({'preference_id': preference.get('id')}))
        )
        subscriptions.record_event(cursor, current_user.id, 'checkout_created', {
            'plan_type': plan,
            'preference_id': preference.get('id')
        })
        conn.commit()

    except mysql.connector.Error as err:
        conn.rollback()
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR')

    finally:
        cursor.close()
        conn.close()

    return jsonify({
        'success': True,
        'preference_id': preference.get('id'),
        'url': preference.get('init_point'),
        'sandbox_url': preference.get('sandbox_init_point')
    })

def _notification_payment_id():
    """O Mercado Pago envia o id na query string ou no corpo, conforme o tipo de notificação"""
    data = request.get_json(silent=True) or {}
    topic = request.args.get('topic') or request.args.get('type') or data.get('type') or data.get('topic')
    if topic and topic != 'payment':
        return None
    payment_id = request.args.get('id') or request.args.get('data.id')
    if not payment_id:
        payment_id = (data.get('data') or {}).get('id') or data.get('id')
    return payment_id

def _save_mercadopago_payment(cursor, user_id, payment, payment_id):
    cursor.execute(
        """
        INSERT INTO mercadopago_payments
        (user_id, mercadopago_id, status, status_detail, payment_method_id,
         payment_type_id, external_reference, amount, currency, date_created,
         date_approved, description)
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        ON DUPLICATE KEY UPDATE status = VALUES(status),
            status_detail = VALUES(status_detail),
            date_approved = VALUES(date_approved)
        """,
        (
            user_id, str(payment.get('id') or payment_id), payment.get('status'),
            payment.get('status_detail'), payment.get('payment_method_id'),
            payment.get('payment_type_id'), payment.get('external_reference'),
            payment.get('transaction_amount') or 0, payment.get('currency_id') or 'BRL',
            datetime.now(), datetime.now() if payment.get('status') == 'approved' else None,
            payment.get('description'),
        )
    )

@billing_bp.route('/webhooks/mercadopago', methods=['POST'])
@csrf.exempt
def mercadopago_webhook():
    payment_id = _notification_payment_id()
    if not payment_id:
        return jsonify({'received': True})

    try:
        payment = MercadoPagoClient().get_payment(payment_id)
    except GatewayError as err:
        current_app.logger.error('Webhook Mercado Pago: falha ao consultar pagamento %s: %s', payment_id, err)
        return jsonify({'received': True})

    reference = parse_external_reference(payment.get('external_reference'))
    if not reference or not reference.get('userId'):
        current_app.logger.warning('Webhook Mercado Pago: referência externa inválida no pagamento %s', payment_id)
        return jsonify({'received': True})

    user_id = int(reference['userId'])
    plan = subscriptions.normalize_plan_type(reference.get('planType')) or 'monthly'
    outcome = notification_outcome(payment)
    activation = None

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT id, name, email FROM users WHERE id = %s", (user_id,))
        user = cursor.fetchone()
        if not user:
            current_app.logger.warning('Webhook Mercado Pago: usuário %s não encontrado', user_id)
            return jsonify({'received': True})

        cursor.execute(
            "SELECT status FROM mercadopago_payments WHERE mercadopago_id = %s FOR UPDATE",
            (str(payment.get('id') or payment_id),)
        )
        previous = cursor.fetchone()
        if previous and previous['status'] == 'approved':
            # Notificação repetida de pagamento já processado
            conn.rollback()
            current_app.logger.info('Webhook Mercado Pago: pagamento %s já processado', payment_id)
            return jsonify({'received': True, 'status': 'already_processed'})

        _save_mercadopago_payment(cursor, user_id, payment, payment_id)

        if outcome == 'approved':
            now = datetime.now()
            amount = payment.get('transaction_amount') or subscriptions.plan_amount(plan)
            cursor.execute(
                """
                SELECT id FROM subscriptions
                WHERE user_id = %s AND status = 'pending'
                ORDER BY id DESC LIMIT 1
                """,
                (user_id,)
            )
            pending = cursor.fetchone()
            subscription_id, expires_at = subscriptions.activate_subscription(
                cursor, user_id, plan, now=now, metadata={'payment_id': payment_id},
                subscription_id=pending['id'] if pending else None
            )
            invoice_id = subscriptions.create_invoice(
                cursor, user_id, amount,
                f'Assinatura {subscriptions.plan_label(plan)} - QUERO FRETES',
                'mercadopago', subscription_id=subscription_id,
                metadata={'payment_id': payment_id}, now=now
            )
            cursor.execute(
                "UPDATE mercadopago_payments SET invoice_id = %s WHERE mercadopago_id = %s",
                (invoice_id, str(payment.get('id') or payment_id))
            )
            subscriptions.record_event(cursor, user_id, 'payment_success', {'payment_id': payment_id})
            activation = (user, now, expires_at, amount)
        elif outcome == 'pending':
            subscriptions.record_event(cursor, user_id, 'payment_pending', {'payment_id': payment_id})
        elif outcome == 'rejected':
            subscriptions.record_event(cursor, user_id, 'payment_rejected', {
                'payment_id': payment_id,
                'status_detail': payment.get('status_detail')
            })
        conn.commit()

    except mysql.connector.Error as err:
        conn.rollback()
        current_app.logger.error('Webhook Mercado Pago: erro no banco de dados: %s', err)
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR', 500)

    finally:
        cursor.close()
        conn.close()

    current_app.logger.info('Webhook Mercado Pago: pagamento %s do usuário %s (%s)', payment_id, user_id, outcome)
    if activation:
        user, start, expires_at, amount = activation
        _notify_activation(user['email'], user['name'], plan, start, expires_at, amount)

    return jsonify({'received': True, 'status': outcome})

# -------------------------------
# OpenPix (PIX)
# -------------------------------

@billing_bp.route('/openpix/charge', methods=['POST'])
@login_required
@active_required
@log_action('PAGAMENTO', 'openpix')
def create_openpix_charge():
    data = request.get_json(silent=True) or {}
    try:
        payload = build_charge(current_user.to_dict(), data.get('plan_type') or 'mensal')
    except ValueError:
        return format_error('Tipo de plano inválido', 'INVALID_PLAN')

    try:
        response = OpenPixClient().create_charge(payload)
    except GatewayError as err:
        return gateway_error(err)

    charge = response.get('charge') or response
    return jsonify({'success': True, 'charge': summarize_charge(charge)})

@billing_bp.route('/openpix/charge/<string:charge_id>', methods=['GET'])
@login_required
def get_openpix_charge(charge_id):
    try:
        response = OpenPixClient().get_charge(charge_id)
    except GatewayError as err:
        return gateway_error(err)

    return jsonify({'charge': summarize_charge(response.get('charge') or response)})

@billing_bp.route('/webhooks/openpix', methods=['POST'])
@csrf.exempt
def openpix_webhook():
    data = request.get_json(silent=True) or {}
    charge = data.get('charge')
    if not isinstance(charge, dict) or not charge:
        return format_error('Dados inválidos do webhook', 'INVALID_DATA')

    user_id = parse_correlation_id(charge.get('correlationID'))
    if user_id is None:
        current_app.logger.warning('Webhook OpenPix: correlationID inválido %s', charge.get('correlationID'))
        return jsonify({'received': True})

    if charge.get('status') != STATUS_COMPLETED or not data.get('pix'):
        return jsonify({'received': True})

    # O corpo não é assinado: status, valor e plano vêm da consulta à OpenPix
    try:
        response = OpenPixClient().get_charge(charge['correlationID'])
    except GatewayError as err:
        current_app.logger.error('Webhook OpenPix: falha ao consultar cobrança %s: %s', charge['correlationID'], err)
        return jsonify({'received': True})

    charge = response.get('charge') or response
    if charge.get('status') != STATUS_COMPLETED or parse_correlation_id(charge.get('correlationID')) != user_id:
        current_app.logger.warning('Webhook OpenPix: cobrança %s não confirmada', charge.get('correlationID'))
        return jsonify({'received': True})

    plan = subscriptions.normalize_plan_type(charge_plan_type(charge)) or 'monthly'
    # Valor chega em centavos
    amount = (charge.get('value') or 0) / 100
    now = datetime.now()

    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute("SELECT id, name, email FROM users WHERE id = %s", (user_id,))
        user = cursor.fetchone()
        if not user:
            current_app.logger.warning('Webhook OpenPix: usuário %s não encontrado', user_id)
            return jsonify({'received': True})

        subscription_id, expires_at = subscriptions.activate_subscription(
            cursor, user_id, plan, now=now, metadata={'correlation_id': charge.get('correlationID')}
        )
        subscriptions.create_invoice(
            cursor, user_id, amount,
            f'Assinatura {subscriptions.plan_label(plan)} - PIX',
            'pix', subscription_id=subscription_id,
            metadata={'correlation_id': charge.get('correlationID')}, now=now
        )
        subscriptions.record_event(cursor, user_id, 'payment_success', {
            'correlation_id': charge.get('correlationID'),
            'method': 'pix'
        })
        conn.commit()

    except mysql.connector.Error as err:
        conn.rollback()
        current_app.logger.error('Webhook OpenPix: erro no banco de dados: %s', err)
        return format_error(f'Erro no banco de dados: {str(err)}', 'DB_ERROR', 500)

    finally:
        cursor.close()
        conn.close()

    current_app.logger.info('Pagamento PIX aprovado para o usuário %s até %s', user_id, expires_at)
    _notify_activation(user['email'], user['name'], plan, now, expires_at, amount)

    return jsonify({'received': True, 'status': 'activated'})

# -------------------------------
# Faturas
# -------------------------------

@billing_bp.route('/user/invoices', methods=['GET'])
@login_required
def get_user_invoices():
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute(
            "SELECT * FROM invoices WHERE user_id = %s ORDER BY created_at DESC",
            (current_user.id,)
        )
        return jsonify({'invoices': serialize_rows(cursor.fetchall())})

    finally:
        cursor.close()
        conn.close()

@billing_bp.route('/user/payment-history', methods=['GET'])
@login_required
def get_payment_history():
    conn = get_db_connection()
    cursor = conn.cursor(dictionary=True)

    try:
        cursor.execute(
            """
            SELECT id, amount, status, description, date_created as created_at,
                   NULL as receipt_url
            FROM mercadopago_payments
            WHERE user_id = %s AND status = 'approved'
            ORDER BY date_created DESC
            """,
            (current_user.id,)
        )
        return jsonify({'payments': format_payment_history(cursor.fetchall())})

    finally:
        cursor.close()
        conn.close()
