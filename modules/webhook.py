# webhook.py
"""Envio automático de fretes para Zapier/Make e grupos de WhatsApp"""
import json
import logging
from datetime import datetime, timedelta

import requests

from modules.config import Config
from modules.formatters import parse_money
from modules.whatsapp import freight_message

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    'enabled': False,
    'url': '',
    'group_ids': [],
    'min_freight_value': 0,
    'allowed_routes': [],
}


def _json_list(value):
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    try:
        data = json.loads(value)
    except (TypeError, ValueError):
        return [item.strip() for item in str(value).split(',') if item.strip()]
    return data if isinstance(data, list) else []

def config_from_row(row):
    if not row:
        return dict(DEFAULT_CONFIG)
    return {
        'enabled': bool(row.get('enabled')),
        'url': row.get('url') or '',
        'group_ids': _json_list(row.get('group_ids')),
        'min_freight_value': float(row.get('min_freight_value') or 0),
        'allowed_routes': _json_list(row.get('allowed_routes')),
    }

def load_webhook_config(cursor):
    cursor.execute("SELECT * FROM webhook_configs WHERE id = 1")
    return config_from_row(cursor.fetchone())

def save_webhook_config(cursor, data):
    config = load_webhook_config(cursor)
    for key in DEFAULT_CONFIG:
        if key in data:
            config[key] = data[key]
    config['group_ids'] = _json_list(config['group_ids'])
    config['allowed_routes'] = [route.upper() for route in _json_list(config['allowed_routes'])]

    cursor.execute(
        """
        INSERT INTO webhook_configs (id, enabled, url, group_ids, min_freight_value, allowed_routes)
        VALUES (1, %s, %s, %s, %s, %s)
        ON DUPLICATE KEY UPDATE
        enabled = VALUES(enabled), url = VALUES(url), group_ids = VALUES(group_ids),
        min_freight_value = VALUES(min_freight_value), allowed_routes = VALUES(allowed_routes)
        """,
        (
            bool(config['enabled']),
            config['url'],
            json.dumps(config['group_ids']),
            float(parse_money(config['min_freight_value'])),
            json.dumps(config['allowed_routes']),
        )
    )
    return config

def should_send(freight, config):
    if not config.get('enabled'):
        logger.info('Envio automático desabilitado')
        return False

    minimum = float(config.get('min_freight_value') or 0)
    if minimum and float(parse_money(freight.get('freight_value'))) < minimum:
        logger.info('Frete %s abaixo do valor mínimo configurado', freight.get('id'))
        return False

    routes = [route.upper() for route in config.get('allowed_routes') or []]
    if routes and (freight.get('origin_state') or '').upper() not in routes:
        logger.info('Frete %s fora das rotas permitidas', freight.get('id'))
        return False
    return True

def freight_webhook_payload(freight, client, config, base_url=None):
    base_url = (base_url or Config.APP_BASE_URL).rstrip('/')
    client_name = (client or {}).get('name') or 'Cliente não encontrado'
    return {
        'freightId': freight.get('id'),
        'message': freight_message(freight, client, base_url),
        'freight': {
            'id': freight.get('id'),
            'origin': f"{freight.get('origin')}, {freight.get('origin_state')}",
            'destination': f"{freight.get('destination')}, {freight.get('destination_state')}",
            'value': float(parse_money(freight.get('freight_value'))),
            'clientName': client_name,
            'contactName': freight.get('contact_name'),
            'contactPhone': freight.get('contact_phone'),
            'createdAt': str(freight.get('created_at') or ''),
            'expirationDate': str(freight.get('expiration_date') or ''),
        },
        'groupIds': config.get('group_ids') or [],
    }

def _post(url, payload):
    response = requests.post(url, json=payload, timeout=Config.HTTP_TIMEOUT)
    response.raise_for_status()
    return response

def send_freight_webhook(freight, client, config, base_url=None):
    """Nunca levanta exceção: o cadastro do frete não depende do webhook"""
    if not should_send(freight, config):
        return False
    if not config.get('url'):
        logger.info('URL do webhook não configurada')
        return False

    try:
        _post(config['url'], freight_webhook_payload(freight, client, config, base_url))
    except requests.RequestException as err:
        logger.error('Erro ao enviar webhook do frete %s: %s', freight.get('id'), err)
        return False

    logger.info('Webhook enviado com sucesso para frete %s', freight.get('id'))
    return True

def send_test_webhook(config):
    """Envia payload de teste; levanta requests.RequestException em caso de falha"""
    now = datetime.now()
    payload = {
        'freightId': 'TEST',
        'message': '🧪 *TESTE DE WEBHOOK* 🧪\n\nEste é um teste de configuração do webhook '
                   'para envio automático de fretes.',
        'freight': {
            'id': 'TEST',
            'origin': 'Cidade Teste, TS',
            'destination': 'Destino Teste, TD',
            'value': 1000,
            'clientName': 'Cliente Teste',
            'contactName': 'Contato Teste',
            'contactPhone': '(11) 99999-9999',
            'createdAt': now.isoformat(),
            'expirationDate': (now + timedelta(hours=24)).isoformat(),
        },
        'groupIds': config.get('group_ids') or [],
    }
    return _post(config['url'], payload)
