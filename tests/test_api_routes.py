"""Tests for the cadastro routes: drivers, complements, freights and public links."""
from datetime import datetime, timedelta

import requests

import modules.webhook
import routes.freights
import routes.public

FREIGHT = {
    'client_id': 3, 'origin': 'Contagem', 'origin_state': 'mg',
    'destination': 'Campinas', 'destination_state': 'SP', 'cargo_type': 'completa',
    'product_type': 'Bobinas', 'freight_value': '380000', 'contact_name': 'Carlos',
    'contact_phone': '(31) 97155-9484', 'vehicle_types_selected': ['pesado_carreta', 'pesado_bitrem'],
    'body_type': 'sider',
}


def test_expired_subscription_is_flagged(client, db, login):
    login(subscription_expires_at=datetime.now() - timedelta(days=1))

    response = client.get('/api/drivers')

    assert response.status_code == 402
    assert response.get_json()['code'] == 'SUBSCRIPTION_EXPIRED'
    assert db.executed('SET subscription_active = FALSE, payment_required = TRUE') == [(1,)]


def test_subscription_required(client, login):
    login(subscription_active=False, subscription_expires_at=None)

    response = client.get('/api/drivers')
    assert response.status_code == 402
    assert response.get_json()['code'] == 'SUBSCRIPTION_REQUIRED'


def test_admin_lists_drivers_without_subscription(client, db, login):
    login(profile_type='admin', subscription_active=False)
    db.on('FROM drivers d', [{'id': 7, 'name': 'José', 'total_count': 1}])
    db.on('FROM vehicles WHERE driver_id IN', [{'id': 2, 'driver_id': 7, 'plate': 'ABC1D23'}])

    response = client.get('/api/drivers?page=1&per_page=5')

    assert response.status_code == 200
    body = response.get_json()
    assert body['pagination'] == {'page': 1, 'per_page': 5, 'total_items': 1, 'total_pages': 1}
    assert body['drivers'][0]['vehicles'][0]['plate'] == 'ABC1D23'
    assert 'total_count' not in body['drivers'][0]


def test_disabled_account_is_blocked(client, login):
    login(is_active=False)
    response = client.get('/api/clients')
    assert response.status_code == 403
    assert response.get_json()['code'] == 'ACCOUNT_DISABLED'


def test_driver_edit_requires_ownership(client, db, login):
    login()
    db.on('SELECT * FROM drivers WHERE id = %s', [{'id': 7, 'user_id': 99, 'name': 'José'}])

    response = client.put('/api/drivers/7', json={'phone': '31971559484'})

    assert response.status_code == 403
    assert not db.executed('UPDATE drivers')


def test_driver_edit_by_creator(client, db, login):
    login()
    db.on('SELECT * FROM drivers WHERE id = %s', [{'id': 7, 'user_id': 1, 'name': 'José'}])

    response = client.put('/api/drivers/7', json={'phone': '31971559484', 'state': 'mg'})

    assert response.status_code == 200
    assert db.executed('UPDATE drivers SET') == [('31971559484', 'MG', 7)]


def test_drivers_cannot_create_complements(client, db, login):
    login(profile_type='motorista')

    response = client.post('/api/complements', json={'client_id': 1})

    assert response.status_code == 403
    assert not db.executed('INSERT INTO complements')


def test_complement_edit_with_blank_quantity(client, db, login):
    login()
    db.on('SELECT * FROM complements WHERE id = %s', [{'id': 4, 'client_id': 3, 'user_id': 1}])

    response = client.put('/api/complements/4', json={'volume_quantity': ''})

    assert response.status_code == 400
    body = response.get_json()
    assert body['code'] == 'INVALID_DATA'
    assert body['details'] == [{'field': 'volume_quantity', 'message': 'Campo obrigatório'}]
    assert not db.executed('UPDATE complements')


def test_create_freight_with_destinations(client, db, login):
    login()
    db.on('SELECT id FROM clients WHERE id = %s', [{'id': 3}])

    response = client.post('/api/freights', json=dict(
        FREIGHT, destinations=[{'destination': 'Jundiaí', 'destination_state': 'SP'}]
    ))

    assert response.status_code == 201
    assert response.get_json()['id'] == 101
    sql, params = next(q for q in db.queries if q[0].startswith('INSERT INTO freights'))
    values = dict(zip(sql.split('(')[1].split(')')[0].split(', '), params))
    assert values['freight_value'] == 3800
    assert values['vehicle_types_selected'] == 'pesado_carreta,pesado_bitrem'
    assert values['vehicle_type'] == 'pesado_carreta'
    assert values['origin_state'] == 'MG'
    assert values['status'] == 'active'
    assert values['has_multiple_destinations'] is True
    assert db.executed('INSERT INTO freight_destinations')[0][-1] == 101


def test_create_freight_when_webhook_fails(client, db, login, monkeypatch, background):
    login()
    db.on('FROM clients WHERE id = %s', [{'id': 3, 'name': 'Transportes Minas'}])
    db.on('LEFT JOIN clients c ON f.client_id = c.id', [dict(FREIGHT, id=101, client_id=3, freight_value=3800)])
    db.on('FROM webhook_configs WHERE id = 1', [{'enabled': 1, 'url': 'https://hooks.example.com/x'}])
    posted = []

    def offline(url, **kwargs):
        posted.append(url)
        raise requests.ConnectionError('offline')

    monkeypatch.setattr(modules.webhook.requests, 'post', offline)

    response = client.post('/api/freights', json=FREIGHT)

    assert response.status_code == 201
    assert response.get_json()['id'] == 101
    assert posted == ['https://hooks.example.com/x']
    assert background == ['send_freight_webhook']


def test_create_freight_when_webhook_crashes(client, db, login, monkeypatch):
    login()
    db.on('SELECT id FROM clients WHERE id = %s', [{'id': 3}])
    db.on('LEFT JOIN clients c ON f.client_id = c.id', [dict(FREIGHT, id=101, client_id=3)])

    def crash(freight, client, config):
        raise RuntimeError('falha inesperada')

    monkeypatch.setattr(routes.freights, 'send_freight_webhook', crash)

    response = client.post('/api/freights', json=FREIGHT)
    assert response.status_code == 201


def test_create_freight_unknown_client(client, db, login):
    login()
    response = client.post('/api/freights', json=FREIGHT)
    assert response.status_code == 404
    assert not db.executed('INSERT INTO freights')


def test_adding_destination_flags_freight(client, db, login):
    login()
    db.on('SELECT id, user_id FROM freights WHERE id = %s', [{'id': 5, 'user_id': 1}])

    response = client.post('/api/freight-destinations', json={
        'freight_id': 5, 'destination': 'Jundiaí', 'destination_state': 'SP',
    })

    assert response.status_code == 201
    assert db.executed('SET has_multiple_destinations = TRUE') == [(5,)]


def test_adding_destination_to_another_users_freight(client, db, login):
    login()
    db.on('SELECT id, user_id FROM freights WHERE id = %s', [{'id': 5, 'user_id': 8}])

    response = client.post('/api/freight-destinations', json={
        'freight_id': 5, 'destination': 'Jundiaí', 'destination_state': 'SP',
    })
    assert response.status_code == 403


def test_public_freight_hidden_when_closed(client, db):
    db.on('LEFT JOIN clients c ON f.client_id = c.id', [{'id': 5, 'status': 'concluido', 'user_id': 1}])

    response = client.get('/api/public/freights/5')
    assert response.status_code == 403
    assert response.get_json()['code'] == 'NOT_AVAILABLE'


def test_public_freight(client, db):
    db.on('LEFT JOIN clients c ON f.client_id = c.id', [{
        'id': 5, 'status': 'active', 'user_id': 1, 'vehicle_type': 'medio_truck',
        'body_type': 'bau', 'client_name': 'Transportes Minas',
    }])
    db.on('FROM freight_destinations WHERE freight_id', [{'id': 1, 'destination': 'Jundiaí'}])

    response = client.get('/api/public/freights/5')

    assert response.status_code == 200
    freight = response.get_json()['freight']
    assert 'user_id' not in freight
    assert freight['vehicle_types_label'] == 'Médio (Truck)'
    assert freight['destinations'][0]['destination'] == 'Jundiaí'


def test_public_stats(client, db):
    db.on('ORDER BY f.created_at DESC', [
        {'id': 1, 'status': 'active', 'destination': 'Campinas', 'destination_state': 'SP',
         'freight_value': 3800, 'contact_phone': '31971559484'},
        {'id': 2, 'status': 'concluido', 'destination': 'Campinas', 'destination_state': 'SP'},
        {'id': 3, 'status': 'aberto', 'destination': 'Betim', 'destination_state': 'MG'},
        {'id': 4, 'status': 'active', 'destination': 'Betim', 'destination_state': 'MG'},
    ])
    db.on('SELECT destination, destination_state FROM freight_destinations', [
        {'destination': 'Jundiaí', 'destination_state': 'SP'},
        {'destination': 'campinas', 'destination_state': 'sp'},
    ])
    db.on('SELECT COUNT(*) as total FROM', [{'total': 4}])

    body = client.get('/api/public/stats').get_json()

    assert body['total_freights'] == 4
    assert body['active_freights'] == 3
    assert body['total_cities'] == 3
    assert body['total_drivers'] == 4
    recent = body['recent_freights']
    assert [freight['id'] for freight in recent] == [1, 2, 3]
    assert set(recent[0]) == {
        'id', 'origin', 'origin_state', 'destination', 'destination_state', 'freight_value', 'created_at',
    }
    assert recent[0]['freight_value'] == 3800


def test_public_quote(client, db, monkeypatch):
    sent = []
    monkeypatch.setattr(routes.public, 'send_quote_notification',
                        lambda recipients, quote: sent.append((recipients, quote)) or {'sent': 1, 'failed': 0})
    db.on('FROM clients WHERE email IS NOT NULL', [{'name': 'Minas', 'email': 'minas@example.com'}])

    response = client.post('/api/public/quotes', json={
        'client_name': 'Ana', 'client_email': 'ana@example.com', 'client_phone': '31971559484',
        'origin': 'Contagem', 'destination': 'Campinas', 'cargo_type': 'completa', 'weight': '1.500',
    })

    assert response.status_code == 201
    assert response.get_json()['notified_clients'] == 1
    recipients, quote = sent[0]
    assert recipients == [{'name': 'Minas', 'email': 'minas@example.com'}]
    assert quote['status'] == 'pendente'
    assert float(quote['weight']) == 1500.0


def test_public_quote_requires_contact(client):
    response = client.post('/api/public/quotes', json={'client_name': 'Ana'})
    assert response.status_code == 400
    assert response.get_json()['code'] == 'MISSING_FIELDS'


CLIENT = {'name': 'Usuário Teste', 'cnpj': '11.222.333/0001-81',
          'email': 'contato@minas.com.br', 'phone': '3133334444'}


def test_client_with_duplicate_cnpj(client, db, login):
    login()
    db.on('FROM clients WHERE cnpj = %s', [{'id': 9}])

    response = client.post('/api/clients', json=CLIENT)

    assert response.status_code == 400
    assert response.get_json()['code'] == 'DUPLICATE_CNPJ'
    assert db.executed('FROM clients WHERE cnpj = %s') == [('11222333000181', 0)]


def test_client_may_reuse_own_name(client, db, login):
    login()
    db.on('FROM clients WHERE LOWER(name)', [{'id': 9}])

    response = client.post('/api/clients', json=CLIENT)

    assert response.status_code == 201
    assert db.executed('UPDATE users SET client_id = %s WHERE id = %s') == [(101, 1)]


def test_client_with_someone_elses_name(client, db, login):
    login()
    db.on('FROM clients WHERE LOWER(name)', [{'id': 9}])

    response = client.post('/api/clients', json=dict(CLIENT, name='Transportes Minas'))

    assert response.status_code == 400
    assert response.get_json()['code'] == 'DUPLICATE_NAME'


def test_client_edit_requires_same_client(client, login):
    login(client_id=4)
    assert client.put('/api/clients/5', json={'phone': '3133334444'}).status_code == 403


def test_vehicle_plate_must_be_unique(client, db, login):
    login()
    db.on('SELECT * FROM drivers WHERE id = %s', [{'id': 7, 'user_id': 1}])
    db.on('FROM vehicles WHERE plate = %s', [{'id': 3}])

    response = client.post('/api/vehicles', json={
        'driver_id': 7, 'plate': 'ABC1D23', 'brand': 'Volvo', 'model': 'FH 540', 'year': 2022,
        'color': 'Branco', 'vehicle_type': 'pesado_carreta', 'body_type': 'sider',
    })

    assert response.status_code == 400
    assert response.get_json()['code'] == 'DUPLICATE_PLATE'
