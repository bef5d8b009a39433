# openpix.py
"""Cobranças PIX via OpenPix"""
import logging
import re
import time
from urllib.parse import quote

import requests

from modules.config import Config
from modules.errors import GatewayError, NotConfiguredError
from modules.subscriptions import normalize_plan_type, plan_amount

logger = logging.getLogger(__name__)

CORRELATION_PATTERN = re.compile(r'^querofretes-(\d+)-')

# OpenPix identifica os planos em português
PLAN_NAMES = {
    'monthly': 'mensal',
    'annual': 'anual',
}

STATUS_COMPLETED = 'COMPLETED'


class OpenPixClient:
    def __init__(self, app_id=None, api_url=None, timeout=None):
        self.app_id = app_id if app_id is not None else Config.OPENPIX_APP_ID
        self.api_url = (api_url or Config.OPENPIX_API_URL).rstrip('/')
        self.timeout = timeout or Config.HTTP_TIMEOUT

    def _request(self, method, path, payload=None):
        if not self.app_id:
            raise NotConfiguredError('OpenPix não configurado')

        headers = {'Authorization': self.app_id, 'Content-Type': 'application/json'}
        try:
            response = requests.request(
                method, f'{self.api_url}{path}', headers=headers, json=payload, timeout=self.timeout
            )
        except requests.RequestException as err:
            logger.error('Erro de comunicação com o OpenPix: %s', err)
            raise GatewayError('Erro ao comunicar com o OpenPix') from err

        if response.status_code >= 400:
            try:
                details = response.json()
            except ValueError:
                details = response.text
            logger.error('OpenPix respondeu %s em %s: %s', response.status_code, path, details)
            raise GatewayError('Erro ao comunicar com o OpenPix', status=response.status_code, details=details)
        return response.json()

    def create_charge(self, payload):
        return self._request('POST', '/charge', payload)

    def get_charge(self, charge_id):
        return self._request('GET', f"/charge/{quote(str(charge_id), safe='')}")


def build_charge(user, plan_type='mensal', now=None):
    """Monta a cobrança; o valor vai em centavos"""
    plan = normalize_plan_type(plan_type)
    if plan not in PLAN_NAMES:
        raise ValueError('Tipo de plano inválido')

    plan_name = PLAN_NAMES[plan]
    millis = int((now if now is not None else time.time()) * 1000)
    return {
        'correlationID': f"querofretes-{user['id']}-{millis}",
        'value': int(plan_amount(plan) * 100),
        'comment': f'Assinatura {plan_name} - QUERO FRETES',
        'customer': {
            'name': user.get('name'),
            'email': user.get('email'),
        },
        'additionalInfo': [
            {'key': 'userId', 'value': str(user['id'])},
            {'key': 'planType', 'value': plan_name},
            {'key': 'source', 'value': 'querofretes-web'},
        ],
    }

def parse_correlation_id(correlation_id):
    match = CORRELATION_PATTERN.match(correlation_id or '')
    return int(match.group(1)) if match else None

def charge_plan_type(charge):
    for info in (charge or {}).get('additionalInfo') or []:
        if info.get('key') == 'planType' and info.get('value'):
            return info['value']
    return 'mensal'

def summarize_charge(charge):
    return {
        'id': charge.get('identifier'),
        'correlation_id': charge.get('correlationID'),
        'value': charge.get('value'),
        'status': charge.get('status'),
        'payment_url': charge.get('paymentLinkUrl'),
        'qr_code': charge.get('qrCodeImage'),
        'pix_code': charge.get('brCode'),
        'comment': charge.get('comment'),
    }
