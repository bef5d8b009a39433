# validators.py
"""Validação de documentos brasileiros e dos formulários de cadastro"""
import re
from datetime import date
from decimal import Decimal

from modules.formatters import only_digits, parse_money, parse_weight, _to_datetime
from modules import taxonomy
from modules.permissions import PROFILE_TYPES, normalize_profile_type

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
OLD_PLATE = re.compile(r'^[A-Z]{3}-?\d{4}$')
MERCOSUL_PLATE = re.compile(r'^[A-Z]{3}\d[A-Z]\d{2}$')

BRAZILIAN_STATES = {
    'AC', 'AL', 'AP', 'AM', 'BA', 'CE', 'DF', 'ES', 'GO', 'MA', 'MT', 'MS',
    'MG', 'PA', 'PB', 'PR', 'PE', 'PI', 'RJ', 'RN', 'RS', 'RO', 'RR', 'SC',
    'SP', 'SE', 'TO',
}

CNH_CATEGORIES = {'A', 'B', 'C', 'D', 'E', 'AB', 'AC', 'AD', 'AE'}


def validate_cpf(cpf) -> bool:
    digits = only_digits(cpf)
    if len(digits) != 11 or digits == digits[0] * 11:
        return False

    for size in (9, 10):
        total = sum(int(digits[i]) * (size + 1 - i) for i in range(size))
        remainder = total % 11
        check = 0 if remainder < 2 else 11 - remainder
        if int(digits[size]) != check:
            return False
    return True

def validate_cnpj(cnpj) -> bool:
    digits = only_digits(cnpj)
    if len(digits) != 14 or digits == digits[0] * 14:
        return False

    weights_first = [5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2]
    weights_second = [6] + weights_first
    for weights, position in ((weights_first, 12), (weights_second, 13)):
        total = sum(int(digits[i]) * weights[i] for i in range(position))
        remainder = total % 11
        check = 0 if remainder < 2 else 11 - remainder
        if int(digits[position]) != check:
            return False
    return True

def validate_cep(cep) -> bool:
    return len(only_digits(cep)) == 8

def validate_license_plate(plate) -> bool:
    """Placa antiga (AAA-0000) ou Mercosul (AAA0A00)"""
    if not plate:
        return False
    value = str(plate).strip().upper()
    return bool(OLD_PLATE.match(value) or MERCOSUL_PLATE.match(value))

def validate_phone(phone) -> bool:
    return 10 <= len(only_digits(phone)) <= 11

def validate_email(email) -> bool:
    return bool(email) and bool(EMAIL_PATTERN.match(str(email).strip()))

def validate_state(state) -> bool:
    return bool(state) and str(state).strip().upper() in BRAZILIAN_STATES

def validate_required_fields(data, fields):
    """Retorna a lista de campos obrigatórios ausentes ou vazios"""
    data = data or {}
    missing = []
    for field in fields:
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(field)
    return missing

def _is_adult(birthdate, today=None):
    today = today or date.today()
    try:
        limit = today.replace(year=today.year - 18)
    except ValueError:
        # 29/02
        limit = today.replace(year=today.year - 18, day=28)
    return birthdate <= limit

def _as_date(value):
    parsed = _to_datetime(value)
    return parsed.date() if parsed else None

def _min_length(data, field, size):
    value = data.get(field)
    return isinstance(value, str) and len(value.strip()) >= size

def validate_driver(data, partial=False, today=None):
    """Valida cadastro de motorista; retorna lista de (campo, mensagem)"""
    data = data or {}
    errors = []
    required = [
        'name', 'email', 'cpf', 'phone', 'birthdate', 'cnh', 'cnh_category',
        'cnh_expiration', 'cnh_issue_date', 'street', 'number',
        'neighborhood', 'city', 'state', 'zipcode',
    ]
    if not partial:
        for field in validate_required_fields(data, required):
            errors.append((field, 'Campo obrigatório'))

    def present(field):
        return data.get(field) not in (None, '')

    if present('name') and not _min_length(data, 'name', 3):
        errors.append(('name', 'O nome deve ter pelo menos 3 caracteres'))
    if present('email') and not validate_email(data['email']):
        errors.append(('email', 'Email inválido'))
    if present('cpf') and not validate_cpf(data['cpf']):
        errors.append(('cpf', 'CPF inválido'))
    if present('phone') and not validate_phone(data['phone']):
        errors.append(('phone', 'Telefone inválido'))
    if present('whatsapp') and not validate_phone(data['whatsapp']):
        errors.append(('whatsapp', 'WhatsApp inválido'))
    if present('cnh') and len(only_digits(data['cnh'])) < 10:
        errors.append(('cnh', 'CNH inválida'))
    if present('cnh_category') and str(data['cnh_category']).upper() not in CNH_CATEGORIES:
        errors.append(('cnh_category', 'Categoria de CNH inválida'))
    if present('state') and not validate_state(data['state']):
        errors.append(('state', 'Estado inválido'))
    if present('zipcode') and not validate_cep(data['zipcode']):
        errors.append(('zipcode', 'CEP inválido'))

    if present('birthdate'):
        birthdate = _as_date(data['birthdate'])
        if birthdate is None:
            errors.append(('birthdate', 'Data de nascimento inválida'))
        elif not _is_adult(birthdate, today):
            errors.append(('birthdate', 'O motorista deve ter pelo menos 18 anos'))

    issue = _as_date(data.get('cnh_issue_date')) if present('cnh_issue_date') else None
    expiration = _as_date(data.get('cnh_expiration')) if present('cnh_expiration') else None
    if present('cnh_issue_date') and issue is None:
        errors.append(('cnh_issue_date', 'Data de emissão inválida'))
    if present('cnh_expiration') and expiration is None:
        errors.append(('cnh_expiration', 'Data de validade inválida'))
    if issue and expiration and expiration <= issue:
        errors.append(('cnh_expiration', 'A validade deve ser posterior à emissão'))

    return errors

def validate_vehicle(data, partial=False, today=None):
    data = data or {}
    errors = []
    if not partial:
        for field in validate_required_fields(data, ['driver_id', 'plate', 'brand', 'model', 'year', 'color']):
            errors.append((field, 'Campo obrigatório'))

    if data.get('plate') and not validate_license_plate(data['plate']):
        errors.append(('plate', 'Placa inválida'))
    if data.get('brand') and not _min_length(data, 'brand', 2):
        errors.append(('brand', 'Marca inválida'))
    if data.get('model') and not _min_length(data, 'model', 2):
        errors.append(('model', 'Modelo inválido'))

    if data.get('year') not in (None, ''):
        current_year = (today or date.today()).year
        try:
            year = int(data['year'])
        except (TypeError, ValueError):
            errors.append(('year', 'Ano inválido'))
        else:
            if year < 1900 or year > current_year + 1:
                errors.append(('year', 'Ano inválido'))

    if data.get('vehicle_type') and not taxonomy.is_vehicle_type(data['vehicle_type']):
        errors.append(('vehicle_type', 'Tipo de veículo inválido'))
    if data.get('body_type') and not taxonomy.is_body_type(data['body_type']):
        errors.append(('body_type', 'Tipo de carroceria inválido'))
    if data.get('renavam') and len(only_digits(data['renavam'])) not in (9, 11):
        errors.append(('renavam', 'RENAVAM inválido'))
    return errors

def validate_client(data, partial=False):
    data = data or {}
    errors = []
    if not partial:
        for field in validate_required_fields(data, ['name', 'cnpj', 'email', 'phone']):
            errors.append((field, 'Campo obrigatório'))

    if data.get('name') and not _min_length(data, 'name', 3):
        errors.append(('name', 'O nome deve ter pelo menos 3 caracteres'))
    if data.get('cnpj'):
        document = only_digits(data['cnpj'])
        # Pessoa física pode se cadastrar com CPF
        valid = validate_cnpj(document) if len(document) == 14 else validate_cpf(document)
        if not valid:
            errors.append(('cnpj', 'CNPJ/CPF inválido'))
    if data.get('email') and not validate_email(data['email']):
        errors.append(('email', 'Email inválido'))
    if data.get('phone') and not validate_phone(data['phone']):
        errors.append(('phone', 'Telefone inválido'))
    if data.get('state') and not validate_state(data['state']):
        errors.append(('state', 'Estado inválido'))
    if data.get('zipcode') and not validate_cep(data['zipcode']):
        errors.append(('zipcode', 'CEP inválido'))
    return errors

def _validate_selection(data, single_field, multi_field, predicate, message):
    values = taxonomy.split_selection(data.get(multi_field)) or taxonomy.split_selection(data.get(single_field))
    invalid = [value for value in values if not predicate(value)]
    if invalid:
        return [(multi_field if data.get(multi_field) else single_field, f'{message}: {", ".join(invalid)}')]
    return []

def validate_freight(data, partial=False):
    data = data or {}
    errors = []
    required = [
        'client_id', 'origin', 'origin_state', 'destination', 'destination_state',
        'cargo_type', 'product_type', 'freight_value', 'contact_name', 'contact_phone',
    ]
    if not partial:
        for field in validate_required_fields(data, required):
            errors.append((field, 'Campo obrigatório'))
        if not (data.get('vehicle_type') or data.get('vehicle_types_selected')):
            errors.append(('vehicle_type', 'Selecione ao menos um tipo de veículo'))
        if not (data.get('body_type') or data.get('body_types_selected')):
            errors.append(('body_type', 'Selecione ao menos um tipo de carroceria'))

    if data.get('origin') and not _min_length(data, 'origin', 2):
        errors.append(('origin', 'Origem inválida'))
    if data.get('destination') and not _min_length(data, 'destination', 2):
        errors.append(('destination', 'Destino inválido'))
    for field in ('origin_state', 'destination_state'):
        if data.get(field) and not validate_state(data[field]):
            errors.append((field, 'Estado inválido'))
    if data.get('product_type') and not _min_length(data, 'product_type', 2):
        errors.append(('product_type', 'Tipo de produto inválido'))
    if data.get('cargo_type') and not taxonomy.is_cargo_type(data['cargo_type']):
        errors.append(('cargo_type', 'Tipo de carga inválido'))
    if data.get('needs_tarp') and data['needs_tarp'] not in taxonomy.TARP_OPTIONS:
        errors.append(('needs_tarp', 'Opção de lona inválida'))
    if data.get('toll_option') and data['toll_option'] not in taxonomy.TOLL_OPTIONS:
        errors.append(('toll_option', 'Opção de pedágio inválida'))

    errors.extend(_validate_selection(
        data, 'vehicle_type', 'vehicle_types_selected',
        taxonomy.is_vehicle_type, 'Tipo de veículo inválido'))
    errors.extend(_validate_selection(
        data, 'body_type', 'body_types_selected',
        taxonomy.is_body_type, 'Tipo de carroceria inválido'))

    if data.get('contact_name') and not _min_length(data, 'contact_name', 3):
        errors.append(('contact_name', 'Nome do contato deve ter pelo menos 3 caracteres'))
    if data.get('contact_phone') and not validate_phone(data['contact_phone']):
        errors.append(('contact_phone', 'Telefone de contato inválido'))
    if data.get('freight_value') not in (None, '') and parse_money(data['freight_value']) <= 0:
        errors.append(('freight_value', 'Valor do frete deve ser maior que zero'))
    return errors

def validate_destination(data):
    data = data or {}
    errors = [(field, 'Campo obrigatório')
              for field in validate_required_fields(data, ['destination', 'destination_state'])]
    if data.get('destination_state') and not validate_state(data['destination_state']):
        errors.append(('destination_state', 'Estado inválido'))
    return errors

COMPLEMENT_REQUIRED = [
    'client_id', 'weight', 'volume_quantity', 'volume_length', 'volume_width',
    'volume_height', 'invoice_value', 'freight_value', 'contact_name', 'contact_phone',
]

def validate_complement(data, partial=False):
    data = data or {}
    errors = []
    # Na edição, só os campos enviados precisam vir preenchidos
    required = [f for f in COMPLEMENT_REQUIRED if f in data] if partial else COMPLEMENT_REQUIRED
    for field in validate_required_fields(data, required):
        errors.append((field, 'Campo obrigatório'))

    for field in ('weight', 'volume_length', 'volume_width', 'volume_height'):
        if data.get(field) not in (None, '') and parse_weight(data[field]) <= 0:
            errors.append((field, 'Deve ser maior que zero'))
    if data.get('volume_quantity') not in (None, ''):
        try:
            if int(data['volume_quantity']) < 1:
                errors.append(('volume_quantity', 'Deve ser maior que zero'))
        except (TypeError, ValueError):
            errors.append(('volume_quantity', 'Quantidade inválida'))
    for field in ('invoice_value', 'freight_value'):
        if data.get(field) not in (None, '') and parse_money(data[field]) <= Decimal('0'):
            errors.append((field, 'Deve ser maior que zero'))
    if data.get('contact_phone') and not validate_phone(data['contact_phone']):
        errors.append(('contact_phone', 'Telefone de contato inválido'))
    return errors

def validate_profile_type(profile_type):
    return normalize_profile_type(profile_type) in PROFILE_TYPES

def errors_to_dict(errors):
    result = {}
    for field, message in errors:
        result.setdefault(field, message)
    return result
