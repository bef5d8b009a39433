import pytest
import requests

from modules import webhook

FREIGHT = {
    'id': 12, 'origin': 'Contagem', 'origin_state': 'MG', 'destination': 'Campinas',
    'destination_state': 'SP', 'freight_value': 2500, 'contact_name': 'Carlos',
    'contact_phone': '(31) 97155-9484',
}
CONFIG = {
    'enabled': True, 'url': 'https://hooks.example.com/fretes', 'group_ids': ['grupo-1'],
    'min_freight_value': 1000, 'allowed_routes': ['mg', 'SP'],
}


def test_config_from_row():
    assert webhook.config_from_row(None) == webhook.DEFAULT_CONFIG
    config = webhook.config_from_row({
        'enabled': 1, 'url': None, 'group_ids': '["a", "b"]',
        'min_freight_value': '150.00', 'allowed_routes': 'MG, SP',
    })
    assert config == {'enabled': True, 'url': '', 'group_ids': ['a', 'b'],
                      'min_freight_value': 150.0, 'allowed_routes': ['MG', 'SP']}


def test_should_send_filters():
    assert webhook.should_send(FREIGHT, CONFIG)
    assert not webhook.should_send(FREIGHT, dict(CONFIG, enabled=False))
    assert not webhook.should_send(dict(FREIGHT, freight_value=900), CONFIG)
    assert not webhook.should_send(dict(FREIGHT, origin_state='RJ'), CONFIG)
    assert webhook.should_send(dict(FREIGHT, origin_state='RJ'), dict(CONFIG, allowed_routes=[]))


def test_payload():
    payload = webhook.freight_webhook_payload(FREIGHT, None, CONFIG, 'https://querofretes.com.br')
    assert payload['freightId'] == 12
    assert payload['freight']['origin'] == 'Contagem, MG'
    assert payload['freight']['value'] == 2500.0
    assert payload['freight']['clientName'] == 'Cliente não encontrado'
    assert payload['groupIds'] == ['grupo-1']
    assert payload['message'].endswith('https://querofretes.com.br/freight/12')


def test_send_freight_webhook(monkeypatch):
    sent = []

    class Response:
        def raise_for_status(self):
            pass

    def fake_post(url, json=None, timeout=None):
        sent.append((url, json))
        return Response()

    monkeypatch.setattr(webhook.requests, 'post', fake_post)
    assert webhook.send_freight_webhook(FREIGHT, {'name': 'Minas'}, CONFIG)
    assert sent[0][0] == CONFIG['url']
    assert sent[0][1]['freight']['clientName'] == 'Minas'

    assert not webhook.send_freight_webhook(FREIGHT, None, dict(CONFIG, url=''))
    assert len(sent) == 1


def test_send_freight_webhook_swallows_network_errors(monkeypatch):
    def fake_post(*args, **kwargs):
        raise requests.Timeout('timeout')

    monkeypatch.setattr(webhook.requests, 'post', fake_post)
    assert webhook.send_freight_webhook(FREIGHT, None, CONFIG) is False

    with pytest.raises(requests.RequestException):
        webhook.send_test_webhook(CONFIG)
