"""Tests for subscription activation and payment notifications."""
import json

import pytest

import routes.billing
from modules.errors import GatewayError
from modules.mercadopago import MercadoPagoClient
from modules.openpix import OpenPixClient

BUYER = {'id': 42, 'name': 'Maria Souza', 'email': 'maria@example.com'}


@pytest.fixture
def emails(monkeypatch):
    sent = []

    def fake_send(email, name, plan_type, start, end, amount):
        sent.append((email, plan_type, amount))
        return True

    monkeypatch.setattr(routes.billing, 'send_subscription_email', fake_send)
    return sent


def _invoice(db):
    return db.executed('INSERT INTO invoices')[0]


def test_trial_only_once(client, db, login):
    login(trial_used=True)

    response = client.post('/api/activate-trial')

    assert response.status_code == 400
    assert response.get_json()['code'] == 'TRIAL_ALREADY_USED'
    assert not db.executed('INSERT INTO subscriptions')


def test_activate_trial(client, db, login, emails):
    login(trial_used=False, subscription_active=False, subscription_expires_at=None)

    response = client.post('/api/activate-trial')

    assert response.status_code == 200
    assert response.get_json()['subscription_type'] == 'trial'
    assert db.executed('UPDATE users SET subscription_active = TRUE')[0][0] == 'trial'
    assert json.loads(db.executed('INSERT INTO subscription_events')[0][2])['subscription_id'] == 101
    assert emails == [('usuario@querofretes.com.br', 'trial', 0)]


def test_driver_access_only_for_drivers(client, db, login):
    login(profile_type='shipper')
    assert client.post('/api/activate-driver-access').status_code == 403

    login(profile_type='driver')
    response = client.post('/api/activate-driver-access')
    assert response.status_code == 200
    assert db.executed('UPDATE users SET subscription_active = TRUE')[0][:2] == ('driver_free', None)


def test_cancel_without_active_subscription(client, db, login):
    login()
    db.rowcount = 0
    response = client.post('/api/cancel-subscription')
    assert response.status_code == 404


PIX_NOTIFICATION = {
    'charge': {
        'correlationID': 'querofretes-42-1700000000000',
        'status': 'COMPLETED',
        'value': 1,
        'additionalInfo': [{'key': 'planType', 'value': 'anual'}],
    },
    'pix': {'endToEndId': 'E123'},
}


def _openpix_charge(monkeypatch, charge=None, error=None):
    """Substitui a consulta da cobrança na OpenPix"""
    looked_up = []

    def get_charge(self, charge_id):
        looked_up.append(charge_id)
        if error:
            raise error
        return {'charge': charge}

    monkeypatch.setattr(OpenPixClient, 'get_charge', get_charge)
    return looked_up


def test_openpix_webhook_activates_verified_charge(client, db, monkeypatch, emails):
    looked_up = _openpix_charge(monkeypatch, {
        'correlationID': 'querofretes-42-1700000000000',
        'status': 'COMPLETED',
        'value': 96000,
        'additionalInfo': [{'key': 'planType', 'value': 'anual'}],
    })
    db.on('SELECT id, name, email FROM users WHERE id = %s', [BUYER])

    response = client.post('/api/webhooks/openpix', json=PIX_NOTIFICATION)

    assert response.get_json() == {'received': True, 'status': 'activated'}
    assert looked_up == ['querofretes-42-1700000000000']
    assert db.executed('UPDATE users SET subscription_active = TRUE')[0][0] == 'annual'
    invoice = _invoice(db)
    assert invoice[0] == 42
    assert invoice[2] == 101
    assert invoice[3] == 960.0
    assert invoice[5] == 'pix'
    assert emails == [('maria@example.com', 'annual', 960.0)]


def test_openpix_webhook_rejects_unconfirmed_charge(client, db, monkeypatch, emails):
    _openpix_charge(monkeypatch, {
        'correlationID': 'querofretes-42-1700000000000',
        'status': 'ACTIVE',
        'value': 96000,
    })

    response = client.post('/api/webhooks/openpix', json=PIX_NOTIFICATION)

    assert response.get_json() == {'received': True}
    assert not db.executed('INSERT INTO subscriptions')
    assert not db.executed('INSERT INTO invoices')
    assert emails == []


def test_openpix_webhook_rejects_charge_of_another_user(client, db, monkeypatch):
    _openpix_charge(monkeypatch, {
        'correlationID': 'querofretes-7-1700000000000',
        'status': 'COMPLETED',
        'value': 9990,
    })

    response = client.post('/api/webhooks/openpix', json=PIX_NOTIFICATION)

    assert response.get_json() == {'received': True}
    assert db.queries == []


def test_openpix_webhook_when_lookup_fails(client, db, monkeypatch):
    _openpix_charge(monkeypatch, error=GatewayError('Erro ao comunicar com o OpenPix', status=404))

    response = client.post('/api/webhooks/openpix', json=PIX_NOTIFICATION)

    assert response.status_code == 200
    assert not db.executed('UPDATE users SET subscription_active = TRUE')


def test_openpix_webhook_ignores_pending_charge(client, db):
    response = client.post('/api/webhooks/openpix', json={
        'charge': {'correlationID': 'querofretes-42-1', 'status': 'ACTIVE'},
    })
    assert response.get_json() == {'received': True}
    assert db.queries == []


def test_openpix_webhook_without_charge(client):
    response = client.post('/api/webhooks/openpix', json={'evento': 'teste'})
    assert response.status_code == 400


def _mercadopago_payment(monkeypatch, payment):
    monkeypatch.setattr(MercadoPagoClient, 'get_payment', lambda self, payment_id: payment)


def test_mercadopago_webhook_approved(client, db, monkeypatch, emails):
    _mercadopago_payment(monkeypatch, {
        'id': 999, 'status': 'approved', 'transaction_amount': 99.9,
        'external_reference': json.dumps({'userId': 42, 'planType': 'monthly', 'isSubscription': True}),
    })
    db.on('SELECT id, name, email FROM users WHERE id = %s', [BUYER])

    response = client.post('/api/webhooks/mercadopago?type=payment&data.id=999')

    assert response.get_json() == {'received': True, 'status': 'approved'}
    assert db.executed('INSERT INTO mercadopago_payments')[0][:3] == (42, '999', 'approved')
    assert _invoice(db)[5] == 'mercadopago'
    assert db.commits == 1
    assert emails == [('maria@example.com', 'monthly', 99.9)]


APPROVED_PAYMENT = {
    'id': 999, 'status': 'approved', 'transaction_amount': 99.9,
    'external_reference': json.dumps({'userId': 42, 'planType': 'monthly', 'isSubscription': True}),
}


def test_mercadopago_webhook_activates_pending_checkout(client, db, monkeypatch, emails):
    _mercadopago_payment(monkeypatch, APPROVED_PAYMENT)
    db.on('SELECT id, name, email FROM users WHERE id = %s', [BUYER])
    db.on("WHERE user_id = %s AND status = 'pending'", [{'id': 55}])

    response = client.post('/api/webhooks/mercadopago?type=payment&data.id=999')

    assert response.get_json() == {'received': True, 'status': 'approved'}
    assert not db.executed('INSERT INTO subscriptions')
    assert db.executed("SET plan_type = %s, status = 'active'")[0][-1] == 55
    assert _invoice(db)[2] == 55
    assert db.executed('UPDATE mercadopago_payments SET invoice_id') == [(102, '999')]


def test_mercadopago_webhook_replay_is_ignored(client, db, monkeypatch, emails):
    _mercadopago_payment(monkeypatch, APPROVED_PAYMENT)
    db.on('SELECT id, name, email FROM users WHERE id = %s', [BUYER])
    db.on('SELECT status FROM mercadopago_payments', [{'status': 'approved'}])

    response = client.post('/api/webhooks/mercadopago?type=payment&data.id=999')

    assert response.get_json() == {'received': True, 'status': 'already_processed'}
    assert not db.executed('INSERT INTO subscriptions')
    assert not db.executed('INSERT INTO invoices')
    assert not db.executed('INSERT INTO subscription_events')
    assert db.commits == 0
    assert emails == []


def test_mercadopago_webhook_rejected(client, db, monkeypatch, emails):
    _mercadopago_payment(monkeypatch, {
        'id': 1000, 'status': 'rejected', 'status_detail': 'cc_rejected_insufficient_amount',
        'external_reference': json.dumps({'userId': 42, 'planType': 'yearly'}),
    })
    db.on('SELECT id, name, email FROM users WHERE id = %s', [BUYER])

    response = client.post('/api/webhooks/mercadopago', json={'type': 'payment', 'data': {'id': '1000'}})

    assert response.get_json()['status'] == 'rejected'
    assert not db.executed('INSERT INTO invoices')
    event = db.executed('INSERT INTO subscription_events')[0]
    assert event[1] == 'payment_rejected'
    assert emails == []


def test_mercadopago_webhook_ignores_other_topics(client, db):
    response = client.post('/api/webhooks/mercadopago?topic=merchant_order&id=5')
    assert response.get_json() == {'received': True}
    assert db.queries == []
