# formatters.py
"""
Formatação de valores para exibição (moeda, datas, documentos, telefones)
e normalização de valores digitados pelo usuário.
"""
import math
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

TWO_PLACES = Decimal('0.01')

LOWERCASE_WORDS = {'de', 'da', 'do', 'das', 'dos', 'e', 'em', 'na', 'no', 'por', 'para'}

CPF_PREFIX = re.compile(r'^(\d{3}\.?\d{3}\.?\d{3}-?\d{2})\s+(.+)$')
CNPJ_PREFIX = re.compile(r'^(\d{2}\.?\d{3}\.?\d{3}/?\d{4}-?\d{2})\s+(.+)$')
MERCOSUL_PLATE = re.compile(r'^[A-Z]{3}\d[A-Z]\d{2}$')


def only_digits(value: Any) -> str:
    if value is None:
        return ''
    return re.sub(r'\D', '', str(value))

def _to_decimal(value: Any) -> Optional[Decimal]:
    """Converte número ou texto (formato brasileiro ou não) para Decimal"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return None if value.is_nan() else value
    if isinstance(value, (int, float)):
        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None
        return Decimal(str(value))

    text = re.sub(r'[^\d,.\-]', '', str(value))
    if not text:
        return None
    if ',' in text:
        # 1.234,56 -> 1234.56
        text = text.replace('.', '').replace(',', '.')
    try:
        return Decimal(text)
    except InvalidOperation:
        return None

def format_currency(value: Any) -> str:
    """
    Formata valor como moeda brasileira (R$ 1.234,56).
    Valores nulos, vazios ou inválidos resultam em 'R$ 0,00'.
    """
    amount = _to_decimal(value)
    if amount is None:
        amount = Decimal('0')
    amount = amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    sign = '-' if amount < 0 else ''
    formatted = f'{abs(amount):,.2f}'
    formatted = formatted.replace(',', 'X').replace('.', ',').replace('X', '.')
    return f'{sign}R$ {formatted}'

def parse_money(value: Any) -> Decimal:
    """
    Normaliza valor monetário digitado no formulário.

    Texto só com dígitos e mais de dois caracteres é lido em centavos
    ("380000" -> 3800.00). Números vindos do JSON são usados como estão.
    """
    if value is None or value == '':
        return Decimal('0.00')
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        amount = _to_decimal(value)
        return (amount or Decimal('0')).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)

    text = re.sub(r'[^\d,.]', '', str(value))
    text = text.replace('.', '').replace(',', '.')
    if not text:
        return Decimal('0.00')

    if '.' not in text and len(text) > 2:
        text = f'{text[:-2] or "0"}.{text[-2:]}'
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return Decimal('0.00')
    return amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)

def parse_weight(value: Any) -> Decimal:
    """Normaliza peso ("1.500,5" -> 1500.50); valores inválidos viram 0.00"""
    if value is None or value == '':
        return Decimal('0.00')
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        amount = _to_decimal(value)
    else:
        text = str(value).replace('.', '').replace(',', '.')
        text = re.sub(r'[^\d.]', '', text)
        try:
            amount = Decimal(text) if text else None
        except InvalidOperation:
            amount = None
    return (amount or Decimal('0')).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)

def format_weight(value: Any) -> str:
    amount = _to_decimal(value)
    if amount is None:
        return '0 kg'
    if amount == amount.to_integral_value():
        return f'{int(amount)} kg'
    return f'{amount.normalize()} kg'.replace('.', ',')

def _to_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        return datetime.fromisoformat(str(value).strip().replace('Z', '+00:00'))
    except ValueError:
        return None

def parse_datetime(value: Any) -> Optional[datetime]:
    """Converte texto ISO para datetime (None quando inválido)"""
    return _to_datetime(value)

def format_date(value: Any, fallback: str = 'Data não disponível') -> str:
    if value is None or value == '':
        return fallback
    parsed = _to_datetime(value)
    if parsed is None:
        return 'Data inválida'
    return parsed.strftime('%d/%m/%Y')

def format_datetime(value: Any, fallback: str = 'Data não disponível') -> str:
    if value is None or value == '':
        return fallback
    parsed = _to_datetime(value)
    if parsed is None:
        return 'Data inválida'
    return parsed.strftime('%d/%m/%Y %H:%M')

def format_phone(phone: Any) -> str:
    """(XX) XXXXX-XXXX ou (XX) XXXX-XXXX"""
    if not phone:
        return ''
    digits = only_digits(phone)
    if len(digits) < 10:
        return str(phone)
    if len(digits) == 11:
        return f'({digits[:2]}) {digits[2:7]}-{digits[7:]}'
    return f'({digits[:2]}) {digits[2:6]}-{digits[6:10]}'

def format_cpf(value: Any) -> str:
    digits = only_digits(value)[:11]
    if len(digits) != 11:
        return digits
    return f'{digits[:3]}.{digits[3:6]}.{digits[6:9]}-{digits[9:]}'

def format_cnpj(value: Any) -> str:
    digits = only_digits(value)[:14]
    if len(digits) != 14:
        return digits
    return f'{digits[:2]}.{digits[2:5]}.{digits[5:8]}/{digits[8:12]}-{digits[12:]}'

def format_cep(value: Any) -> str:
    digits = only_digits(value)[:8]
    if len(digits) > 5:
        return f'{digits[:5]}-{digits[5:]}'
    return digits

def format_license_plate(value: Any) -> str:
    """AAA-0000 (modelo antigo) ou AAA0A00 (Mercosul)"""
    plate = re.sub(r'[^a-zA-Z0-9]', '', str(value or '')).upper()
    if MERCOSUL_PLATE.match(plate):
        return plate
    if len(plate) > 3:
        return f'{plate[:3]}-{plate[3:7]}'
    return plate

def proper_case(text: Optional[str]) -> Optional[str]:
    """
    "LUCIEN PEREIRA DA SILVA" -> "Lucien Pereira da Silva"
    Preposições e artigos ficam minúsculos, exceto na primeira palavra.
    """
    if not text or not isinstance(text, str):
        return text
    words = text.lower().split(' ')
    result = []
    for index, word in enumerate(words):
        if index > 0 and word in LOWERCASE_WORDS:
            result.append(word)
        else:
            result.append(word[:1].upper() + word[1:])
    return ' '.join(result)

def clean_name_from_document(name: Optional[str]) -> Optional[str]:
    """
    Remove CPF/CNPJ do início do nome:
    "609.156.110-23 LUCIEN PEREIRA BRITO" -> "Lucien Pereira Brito"
    "12.345.678/0001-90 EMPRESA LTDA" -> "Empresa Ltda"
    """
    if not name or not isinstance(name, str):
        return name
    clean = name.strip()

    match = CPF_PREFIX.match(clean)
    if match:
        clean = match.group(2)

    match = CNPJ_PREFIX.match(clean)
    if match:
        clean = match.group(2)

    return proper_case(clean)

def is_valid_name(name: Any) -> bool:
    if not name or not isinstance(name, str):
        return False
    clean = name.strip()
    if len(clean) < 2:
        return False
    return not re.match(r'^[\d\s.\-/]+$', clean)

def initials(name: Optional[str]) -> str:
    if not name:
        return ''
    return ''.join(part[0] for part in name.split() if part)[:2].upper()
