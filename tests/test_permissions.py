"""Tests for role-based access predicates."""
from datetime import datetime, timedelta

from modules.permissions import (
    ACCESS_ADMIN, ACCESS_CREATOR, ACCESS_NO_CLIENT, ACCESS_SAME_CLIENT, SUBSCRIPTION_EXPIRED,
    SUBSCRIPTION_REQUIRED, can_edit_driver, has_client_access, has_freight_access,
    has_vehicle_access, is_admin, is_admin_or_self, is_complement_authorized, normalize_profile_type,
    profile_label, subscription_access, user_can_edit_freight,
)

ADMIN = {'id': 1, 'profile_type': 'administrador'}
SHIPPER = {'id': 2, 'profile_type': 'shipper', 'client_id': 10}
DRIVER = {'id': 3, 'profile_type': 'motorista', 'driver_id': 7}


def test_profile_normalization():
    assert normalize_profile_type('Motorista') == 'driver'
    assert normalize_profile_type('client') == 'shipper'
    assert normalize_profile_type(None) is None
    assert profile_label('transportadora') == 'Transportadora'
    assert is_admin(ADMIN)
    assert not is_admin(None)


def test_can_edit_driver():
    driver_record = {'id': 7, 'user_id': 99}
    other_record = {'id': 8, 'user_id': 2}
    assert can_edit_driver(ADMIN, other_record)
    assert can_edit_driver(DRIVER, driver_record)
    assert not can_edit_driver(DRIVER, other_record)
    # Quem cadastrou o motorista também edita
    assert can_edit_driver(SHIPPER, other_record)
    assert not can_edit_driver(SHIPPER, driver_record)
    assert not can_edit_driver(None, driver_record)


def test_complement_authorization():
    assert is_complement_authorized(ADMIN, 5)
    assert not is_complement_authorized(DRIVER, 5, complement_user_id=3)
    assert is_complement_authorized(SHIPPER, 99, complement_user_id=2)
    assert not is_complement_authorized(SHIPPER, 10, complement_user_id=50)
    # Complementos antigos sem criador: vale o cliente do usuário
    assert is_complement_authorized(SHIPPER, 10)
    assert not is_complement_authorized(None, 10)


def test_freight_access_reasons():
    assert has_freight_access(ADMIN, {'client_id': 4}) == ACCESS_ADMIN
    assert has_freight_access(SHIPPER, {'client_id': None}) == ACCESS_NO_CLIENT
    assert has_freight_access(SHIPPER, {'client_id': '10'}) == ACCESS_SAME_CLIENT
    assert has_freight_access(SHIPPER, {'client_id': 4, 'user_id': 2}) == ACCESS_CREATOR
    assert has_freight_access(SHIPPER, {'client_id': 4, 'user_id': 9}) is None


def test_edit_and_ownership_checks():
    assert user_can_edit_freight(SHIPPER, 2)
    assert user_can_edit_freight(ADMIN, 50)
    assert not user_can_edit_freight(SHIPPER, 50)
    assert has_vehicle_access(DRIVER, {'driver_id': 7})
    assert not has_vehicle_access(SHIPPER, {'driver_id': 7})
    assert has_client_access(SHIPPER, 10)
    assert not has_client_access(SHIPPER, 11)
    assert is_admin_or_self(SHIPPER, '2')
    assert not is_admin_or_self(SHIPPER, 3)


def test_subscription_access():
    now = datetime(2025, 6, 1, 12, 0)
    active = {'profile_type': 'shipper', 'subscription_active': True,
              'subscription_expires_at': now + timedelta(days=3)}
    expired = dict(active, subscription_expires_at=now - timedelta(minutes=1))

    assert subscription_access(active, now) is None
    assert subscription_access(expired, now) == SUBSCRIPTION_EXPIRED
    assert subscription_access({'profile_type': 'shipper'}, now) == SUBSCRIPTION_REQUIRED
    assert subscription_access(ADMIN, now) is None
    assert subscription_access(dict(DRIVER, subscription_type='driver_free'), now) is None
