# mercadopago.py
"""Cliente REST do Mercado Pago e regras de preferência/notificação de pagamento"""
import json
import logging
from datetime import datetime

import requests

from modules.config import Config
from modules.errors import GatewayError, NotConfiguredError
from modules.formatters import parse_datetime
from modules.subscriptions import normalize_plan_type, plan_amount

logger = logging.getLogger(__name__)

PAYMENT_STATUS = {
    'pending', 'approved', 'authorized', 'in_process', 'in_mediation',
    'rejected', 'cancelled', 'refunded', 'charged_back',
}

STATEMENT_DESCRIPTOR = 'QUERO FRETES'


class MercadoPagoClient:
    def __init__(self, access_token=None, base_url=None, timeout=None):
        self.access_token = access_token if access_token is not None else Config.MERCADOPAGO_ACCESS_TOKEN
        self.base_url = (base_url or Config.MERCADOPAGO_API_URL).rstrip('/')
        self.timeout = timeout or Config.HTTP_TIMEOUT

    def _headers(self):
        return {
            'Authorization': f'Bearer {self.access_token}',
            'Content-Type': 'application/json',
        }

    def _request(self, method, path, payload=None):
        if not self.access_token:
            raise NotConfiguredError('Mercado Pago não configurado')

        url = f'{self.base_url}{path}'
        try:
            response = requests.request(method, url, headers=self._headers(), json=payload, timeout=self.timeout)
        except requests.RequestException as err:
            logger.error('Erro de comunicação com o Mercado Pago: %s', err)
            raise GatewayError('Falha na comunicação com o Mercado Pago. Por favor, tente novamente.') from err

        if response.status_code >= 400:
            try:
                details = response.json()
            except ValueError:
                details = response.text
            logger.error('Mercado Pago respondeu %s em %s: %s', response.status_code, path, details)
            raise GatewayError(
                'Falha na comunicação com o Mercado Pago. Por favor, tente novamente.',
                status=response.status_code,
                details=details
            )
        return response.json()

    def create_preference(self, body):
        return self._request('POST', '/checkout/preferences', body)

    def get_payment(self, payment_id):
        return self._request('GET', f'/v1/payments/{payment_id}')


def build_subscription_preference(user, plan_type, base_url=None):
    plan = normalize_plan_type(plan_type)
    if plan not in ('monthly', 'annual'):
        raise ValueError(f'Tipo de plano inválido: {plan_type}')

    base_url = (base_url or Config.APP_BASE_URL).rstrip('/')
    label = 'Anual' if plan == 'annual' else 'Mensal'
    # Mercado Pago usa "yearly" na referência externa
    reference_plan = 'yearly' if plan == 'annual' else 'monthly'

    return {
        'items': [{
            'id': f'assinatura-{reference_plan}',
            'title': f'Assinatura QUERO FRETES - {label}',
            'description': f'Assinatura {label.lower()} da plataforma QUERO FRETES',
            'quantity': 1,
            'currency_id': 'BRL',
            'unit_price': float(plan_amount(plan)),
        }],
        'payer': {
            'name': user.get('name'),
            'email': user.get('email'),
        },
        'back_urls': {
            'success': f'{base_url}/payment-success',
            'failure': f'{base_url}/payment-failure',
            'pending': f'{base_url}/payment-pending',
        },
        'auto_return': 'all',
        'notification_url': f'{base_url}/api/webhooks/mercadopago',
        'external_reference': json.dumps({
            'userId': user.get('id'),
            'planType': reference_plan,
            'isSubscription': True,
        }),
        'statement_descriptor': STATEMENT_DESCRIPTOR,
    }

def parse_external_reference(text):
    if not text:
        return None
    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        return None
    return data if isinstance(data, dict) else None

def notification_outcome(payment):
    """Classifica o pagamento: approved, pending, rejected ou ignored"""
    status = (payment or {}).get('status')
    if status == 'approved':
        return 'approved'
    if status in ('pending', 'in_process'):
        return 'pending'
    if status == 'rejected':
        return 'rejected'
    return 'ignored'

def _epoch(value):
    parsed = parse_datetime(value) or datetime.now()
    return str(int(parsed.timestamp()))

def format_payment_history(rows):
    """Pagamentos do Mercado Pago no formato de fatura (valores em centavos)"""
    history = []
    for row in rows:
        cents = int(round(float(row.get('amount') or 0) * 100))
        timestamp = _epoch(row.get('created_at'))
        history.append({
            'id': f"mp_{row['id']}",
            'invoice_number': f"MP-{row['id']}",
            'amount_due': cents,
            'amount_paid': cents,
            'currency': 'brl',
            'status': row.get('status') or 'paid',
            'created_at': timestamp,
            'period_start': timestamp,
            'period_end': timestamp,
            'due_date': timestamp,
            'payment_method': 'mercadopago',
            'description': row.get('description') or 'Pagamento via Mercado Pago',
            'url': row.get('receipt_url'),
            'pdf': None,
        })
    return history
