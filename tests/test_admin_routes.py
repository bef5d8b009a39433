"""Tests for the administrative panel."""
from datetime import datetime

import pytest
import requests

import routes.admin
from conftest import make_user
from routes.admin import finance_summary

NOW = datetime(2025, 6, 15, 12, 0)


@pytest.fixture
def admin(db, login):
    """Administrador logado (id 1); demais ids respondem com um embarcador"""
    user = login(profile_type='administrador')
    others = {}

    def find(params):
        user_id = int(params[0])
        if user_id == user['id']:
            return [user]
        return [others.get(user_id, make_user(id=user_id))]

    db.on('FROM users WHERE id = %s', find)
    return others


def test_admin_routes_reject_other_profiles(client, login):
    login(profile_type='shipper')
    response = client.get('/api/admin/users')
    assert response.status_code == 403
    assert response.get_json()['code'] == 'PERMISSION_DENIED'


def test_list_users_hides_password(client, db, admin):
    db.on('FROM users u', [dict(make_user(id=5), total_count=1)])

    response = client.get('/api/admin/users?profileType=embarcador')

    assert response.status_code == 200
    body = response.get_json()
    assert body['pagination']['total_items'] == 1
    assert 'password' not in body['users'][0]
    assert 'shipper' in db.executed('FROM users u')[0]


def test_admin_cannot_disable_self(client, db, admin):
    response = client.put('/api/admin/users/1/toggle-access', json={'is_active': False})
    assert response.status_code == 403
    assert not db.executed('SET is_active')


def test_toggle_access(client, db, admin):
    response = client.put('/api/admin/users/5/toggle-access', json={'is_active': False})
    assert response.status_code == 200
    assert response.get_json()['message'] == 'Acesso do usuário desativado'
    assert db.executed('UPDATE users SET is_active = %s') == [(False, 5)]


def test_delete_user(client, db, admin):
    response = client.delete('/api/admin/users/5')

    assert response.status_code == 200
    assert db.executed('DELETE FROM sessions WHERE user_id') == [(5,)]
    assert db.executed('DELETE FROM users WHERE id') == [(5,)]


def test_admins_are_not_deleted(client, db, admin):
    admin[6] = make_user(id=6, profile_type='admin')

    response = client.delete('/api/admin/users/6')

    assert response.status_code == 403
    assert not db.executed('DELETE FROM users')


def test_reset_password_min_length(client, admin):
    response = client.post('/api/admin/users/5/reset-password', json={'new_password': '123'})
    assert response.status_code == 400


def test_webhook_config_rejects_invalid_url(client, db, admin):
    response = client.put('/api/admin/webhook-config', json={'url': 'ftp://exemplo'})
    assert response.status_code == 400
    assert response.get_json()['code'] == 'INVALID_URL'


def test_webhook_config_saved(client, db, admin):
    response = client.put('/api/admin/webhook-config', json={
        'enabled': True, 'url': 'https://hooks.example.com/x', 'allowed_routes': ['mg', 'sp'],
    })

    assert response.status_code == 200
    assert response.get_json()['config']['allowed_routes'] == ['MG', 'SP']
    params = db.executed('INSERT INTO webhook_configs')[0]
    assert params[:2] == (True, 'https://hooks.example.com/x')


def test_webhook_test_reports_failure(client, db, admin, monkeypatch):
    db.on('FROM webhook_configs WHERE id = 1', [{'enabled': 1, 'url': 'https://hooks.example.com/x'}])

    def fail(*args, **kwargs):
        raise requests.ConnectionError('offline')

    monkeypatch.setattr(routes.admin, 'send_test_webhook', fail)
    response = client.post('/api/admin/webhook-config/test')
    assert response.status_code == 502


def test_finance_summary():
    subscriptions = [
        {'status': 'active', 'plan_type': 'monthly'},
        {'status': 'active', 'plan_type': 'annual'},
        {'status': 'cancelled', 'plan_type': 'monthly'},
        {'status': 'pending', 'plan_type': 'monthly'},
    ]
    invoices = [
        {'status': 'paid', 'amount': 99.9, 'created_at': datetime(2025, 6, 2)},
        {'status': 'paid', 'amount': 960, 'created_at': datetime(2025, 2, 10)},
        {'status': 'failed', 'amount': 99.9, 'created_at': datetime(2025, 6, 3)},
    ]
    payments = [
        {'status': 'approved', 'amount': 99.9, 'created_at': '2025-06-10T08:00:00', 'invoice_id': None},
        {'status': 'approved', 'amount': 99.9, 'created_at': datetime(2025, 6, 10), 'invoice_id': 3},
        {'status': 'rejected', 'amount': 99.9, 'created_at': datetime(2025, 6, 11)},
    ]

    summary = finance_summary(subscriptions, invoices, payments, NOW)

    assert summary['total_subscriptions'] == 4
    assert summary['active_subscriptions'] == 2
    assert summary['monthly_subscriptions'] == 3
    assert summary['annual_subscriptions'] == 1
    assert summary['paid_invoices'] == 2
    assert summary['failed_invoices'] == 1
    assert summary['total_revenue'] == 1159.8
    assert summary['monthly_revenue'] == 199.8
    assert summary['churn_rate'] == 25.0
    assert summary['monthly_data'][1] == {'month': 'Fev', 'revenue': 960.0}
    assert summary['monthly_data'][5]['revenue'] == pytest.approx(199.8)
    assert {'status': 'pending', 'count': 1} in summary['subscriptions_by_status']


def test_finance_summary_counts_mercadopago_payment_once():
    invoices = [
        {'status': 'paid', 'amount': 99.9, 'created_at': datetime(2025, 6, 2), 'metadata': '{"payment_id": "999"}'},
        {'status': 'paid', 'amount': 960, 'created_at': datetime(2025, 6, 5), 'metadata': None},
    ]
    payments = [
        {'mercadopago_id': '999', 'status': 'approved', 'amount': 99.9,
         'created_at': datetime(2025, 6, 2), 'invoice_id': None},
        {'mercadopago_id': '1000', 'status': 'approved', 'amount': 960,
         'created_at': datetime(2025, 6, 5), 'invoice_id': 2},
    ]

    summary = finance_summary([], invoices, payments, NOW)

    assert summary['paid_invoices'] == 2
    assert summary['total_revenue'] == 1059.9
    assert summary['monthly_revenue'] == 1059.9


def test_finance_summary_empty():
    summary = finance_summary([], [], [], NOW)
    assert summary['churn_rate'] == 0
    assert summary['total_revenue'] == 0
    assert len(summary['monthly_data']) == 12
