"""Tests for list filtering and pagination helpers."""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from modules.listing import (
    cubic_meters, filter_complements, filter_freights, get_pagination_params,
    is_freight_open, matches_search, paginate,
)

NOW = datetime(2025, 6, 1, 12, 0)

COMPLEMENTS = [
    {'id': 1, 'weight': '150,5', 'status': 'active', 'client_id': 1,
     'contact_name': 'Ana', 'contact_phone': '(31) 97155-9484', 'origin': 'Betim'},
    {'id': 2, 'weight': 900, 'status': 'inactive', 'client_id': 2,
     'contact_name': 'Bruno', 'contact_phone': '11988887777', 'origin': 'São Paulo'},
    {'id': 3, 'weight': None, 'status': 'active', 'client_id': 1,
     'contact_name': 'Carla', 'contact_phone': None, 'origin': 'Contagem'},
]


def _ids(items):
    return [item['id'] for item in items]


def test_filter_complements_by_weight_range():
    assert _ids(filter_complements(COMPLEMENTS, min_weight='150')) == [1, 2]
    assert _ids(filter_complements(COMPLEMENTS, max_weight=200)) == [1, 3]
    assert _ids(filter_complements(COMPLEMENTS, min_weight=100, max_weight=500)) == [1]


def test_filter_complements_status_client_and_search():
    assert _ids(filter_complements(COMPLEMENTS, status='active', client_id='1')) == [1, 3]
    assert _ids(filter_complements(COMPLEMENTS, search='são')) == [2]
    # Telefone encontrado pelos dígitos, independente da máscara
    assert _ids(filter_complements(COMPLEMENTS, search='971559484')) == [1]


def test_matches_search_without_term():
    assert matches_search({'name': 'x'}, '', ['name'])
    assert matches_search({'name': 'x'}, None, ['name'])


def test_is_freight_open():
    assert is_freight_open({'status': 'active'}, NOW)
    assert is_freight_open({'status': 'aberto', 'expiration_date': '2025-06-02T00:00:00'}, NOW)
    assert not is_freight_open({'status': 'active', 'expiration_date': NOW - timedelta(hours=1)}, NOW)
    assert not is_freight_open({'status': 'concluido'}, NOW)


def test_filter_freights():
    freights = [
        {'id': 1, 'client_id': 1, 'status': 'active', 'origin_state': 'MG', 'destination_state': 'SP',
         'vehicle_types_selected': 'pesado_carreta,pesado_bitrem', 'body_type': 'sider',
         'cargo_type': 'completa', 'origin': 'Contagem'},
        {'id': 2, 'client_id': 2, 'status': 'active', 'origin_state': 'SP', 'destination_state': 'RJ',
         'vehicle_type': 'leve_fiorino', 'body_type': 'bau', 'cargo_type': 'complemento',
         'expiration_date': NOW - timedelta(days=1), 'origin': 'Campinas'},
        {'id': 3, 'client_id': 1, 'status': 'concluido', 'origin_state': 'mg', 'destination_state': 'BA',
         'vehicle_type': 'pesado_carreta', 'body_type': 'bau', 'cargo_type': 'completa', 'origin': 'Betim'},
    ]

    assert _ids(filter_freights(freights, client_id=1)) == [1, 3]
    assert _ids(filter_freights(freights, origin_state='MG')) == [1, 3]
    assert _ids(filter_freights(freights, vehicle_type='pesado_bitrem')) == [1]
    assert _ids(filter_freights(freights, vehicle_type='pesado_carreta')) == [1, 3]
    assert _ids(filter_freights(freights, body_type='bau', cargo_type='completa')) == [3]
    assert _ids(filter_freights(freights, active_only=True, now=NOW)) == [1]
    assert _ids(filter_freights(freights, search='campinas')) == [2]


def test_paginate():
    items, meta = paginate(range(25), page=3, per_page=10)
    assert items == [20, 21, 22, 23, 24]
    assert meta == {'page': 3, 'per_page': 10, 'total_items': 25, 'total_pages': 3}

    items, meta = paginate([], page='x', per_page=500)
    assert items == []
    assert meta['page'] == 1
    assert meta['per_page'] == 100
    assert meta['total_pages'] == 0


@pytest.mark.parametrize('query, expected', [
    ('', (1, 10, 0)),
    ('?page=2&per_page=20', (2, 20, 20)),
    ('?page=0&per_page=1000', (1, 100, 0)),
])
def test_get_pagination_params(app, query, expected):
    with app.test_request_context(f'/api/clients{query}'):
        assert get_pagination_params() == expected


def test_cubic_meters():
    assert cubic_meters(100, 50, 40, 2) == Decimal('0.400')
    assert cubic_meters('120,5', '80', '60', '1') == Decimal('0.578')
    assert cubic_meters(100, 100, 100, 'x') == Decimal('0.000')
