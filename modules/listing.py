# listing.py
"""Paginação e filtros aplicados às listagens"""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from flask import request

from modules import taxonomy
from modules.formatters import only_digits, parse_datetime, parse_weight

MAX_PER_PAGE = 100
DEFAULT_PER_PAGE = 10

PHONE_FIELDS = ('phone', 'whatsapp', 'contact_phone')


def get_pagination_params() -> tuple:
    """Obtém parâmetros de paginação da request"""
    page = max(request.args.get('page', 1, type=int) or 1, 1)
    per_page = request.args.get('per_page', DEFAULT_PER_PAGE, type=int) or DEFAULT_PER_PAGE
    per_page = min(max(per_page, 1), MAX_PER_PAGE)
    offset = (page - 1) * per_page
    return page, per_page, offset

def paginate(items, page=1, per_page=DEFAULT_PER_PAGE):
    try:
        page = max(int(page), 1)
    except (TypeError, ValueError):
        page = 1
    try:
        per_page = min(max(int(per_page), 1), MAX_PER_PAGE)
    except (TypeError, ValueError):
        per_page = DEFAULT_PER_PAGE

    items = list(items)
    total = len(items)
    start = (page - 1) * per_page
    meta = {
        'page': page,
        'per_page': per_page,
        'total_items': total,
        'total_pages': (total + per_page - 1) // per_page,
    }
    return items[start:start + per_page], meta

def matches_search(record, term, fields):
    """Busca sem diferenciar maiúsculas; telefones comparados só pelos dígitos"""
    if not term:
        return True
    needle = str(term).strip().lower()
    if not needle:
        return True
    digits = only_digits(needle)

    for field in fields:
        value = record.get(field)
        if value is None:
            continue
        if field in PHONE_FIELDS and digits and digits in only_digits(value):
            return True
        if needle in str(value).lower():
            return True
    return False

def _weight_of(item):
    return parse_weight(item.get('weight'))

def filter_complements(items, search=None, min_weight=None, max_weight=None,
                       status=None, client_id=None):
    fields = ('contact_name', 'contact_phone', 'observations', 'origin', 'destination')
    minimum = parse_weight(min_weight) if min_weight not in (None, '') else None
    maximum = parse_weight(max_weight) if max_weight not in (None, '') else None

    result = []
    for item in items:
        weight = _weight_of(item)
        if minimum is not None and weight < minimum:
            continue
        if maximum is not None and weight > maximum:
            continue
        if status and item.get('status') != status:
            continue
        if client_id not in (None, '') and str(item.get('client_id')) != str(client_id):
            continue
        if not matches_search(item, search, fields):
            continue
        result.append(item)
    return result

def is_freight_open(freight, now=None):
    """Frete ativo/aberto e ainda dentro da validade"""
    if freight.get('status') not in taxonomy.OPEN_FREIGHT_STATUS:
        return False
    expiration = parse_datetime(freight.get('expiration_date'))
    if expiration is None:
        return True
    if expiration.tzinfo is not None:
        expiration = expiration.replace(tzinfo=None)
    return expiration > (now or datetime.now())

def _selection_contains(freight, single_field, multi_field, value):
    selected = taxonomy.split_selection(freight.get(multi_field)) or taxonomy.split_selection(freight.get(single_field))
    return value in selected

def filter_freights(items, client_id=None, status=None, origin_state=None,
                    destination_state=None, vehicle_type=None, body_type=None,
                    cargo_type=None, active_only=False, now=None, search=None):
    fields = ('origin', 'destination', 'product_type', 'contact_name', 'contact_phone', 'observations')
    now = now or datetime.now()

    result = []
    for freight in items:
        if client_id not in (None, '') and str(freight.get('client_id')) != str(client_id):
            continue
        if status and freight.get('status') != status:
            continue
        if origin_state and (freight.get('origin_state') or '').upper() != origin_state.upper():
            continue
        if destination_state and (freight.get('destination_state') or '').upper() != destination_state.upper():
            continue
        if vehicle_type and not _selection_contains(freight, 'vehicle_type', 'vehicle_types_selected', vehicle_type):
            continue
        if body_type and not _selection_contains(freight, 'body_type', 'body_types_selected', body_type):
            continue
        if cargo_type and freight.get('cargo_type') != cargo_type:
            continue
        if active_only and not is_freight_open(freight, now):
            continue
        if not matches_search(freight, search, fields):
            continue
        result.append(freight)
    return result

def cubic_meters(length, width, height, quantity=1):
    """Metragem cúbica a partir das dimensões em centímetros"""
    volume = parse_weight(length) * parse_weight(width) * parse_weight(height)
    try:
        volume *= Decimal(int(quantity or 0))
    except (TypeError, ValueError):
        return Decimal('0.000')
    return (volume / Decimal(1000000)).quantize(Decimal('0.001'), rounding=ROUND_HALF_UP)
