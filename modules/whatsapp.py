# whatsapp.py
"""Links wa.me e mensagens de divulgação de fretes e complementos"""
from urllib.parse import quote

from modules import taxonomy
from modules.formatters import format_currency, only_digits

WA_ME = 'https://wa.me'
SITE_URL = 'https://querofretes.com.br'


def whatsapp_link(phone, text=None, country_code='55'):
    """
    Monta o link de conversa: https://wa.me/55<ddd><numero>[?text=...]
    Retorna None quando não há telefone.
    """
    digits = only_digits(phone)
    if not digits:
        return None
    if not (digits.startswith(country_code) and len(digits) in (12, 13)):
        digits = f'{country_code}{digits}'

    link = f'{WA_ME}/{digits}'
    if text:
        link += f'?text={quote(text, safe="")}'
    return link

def share_link(text):
    return f'{WA_ME}/?text={quote(text or "", safe="")}'

def _destinations_text(freight):
    lines = [f"🏁 *Destino:* {freight.get('destination')}, {freight.get('destination_state')}"]
    for index, item in enumerate(freight.get('destinations') or [], start=2):
        lines.append(f"🏁 *Destino {index}:* {item.get('destination')}, {item.get('destination_state')}")
    return '\n'.join(lines)

def freight_message(freight, client=None, base_url=SITE_URL):
    client_name = (client or {}).get('name') or 'Cliente não encontrado'
    cargo = 'Completa' if freight.get('cargo_type') == 'completa' else 'Complemento'
    observations = freight.get('observations')

    lines = [
        '🚛 *FRETE DISPONÍVEL* 🚛',
        '',
        f'🏢 *{client_name}*',
        f"📍 *Origem:* {freight.get('origin')}, {freight.get('origin_state')}",
        _destinations_text(freight),
        f"🚚 *Categoria:* {taxonomy.vehicle_category(freight.get('vehicle_type'))}",
        f'🚚 *Veículo:* {taxonomy.freight_vehicle_labels(freight)}',
        f'🚐 *Carroceria:* {taxonomy.freight_body_labels(freight)}',
        f'📦 *Tipo de Carga:* {cargo}',
        f"⚖️ *Peso:* {freight.get('cargo_weight') or 0} Kg",
        f"💰 *Pagamento:* {freight.get('payment_method') or taxonomy.NOT_SPECIFIED}",
        f"💵 *Valor:* {format_currency(freight.get('freight_value'))}",
        '',
        f"👤 *Contato:* {freight.get('contact_name')}",
        f"📞 *Telefone:* {freight.get('contact_phone')}",
    ]
    if observations:
        lines.extend(['', f'📝 *Observações:* {observations}'])
    lines.extend([
        '',
        f'🌐 *Sistema QUERO FRETES:* {SITE_URL}',
        f"🔗 *Link do frete:* {base_url}/freight/{freight.get('id')}",
    ])
    return '\n'.join(lines)

def complement_message(complement, base_url=SITE_URL):
    lines = [
        '📦 *COMPLEMENTO DISPONÍVEL*',
        '',
        f"🏷️ *ID:* {complement.get('id')}",
    ]
    if complement.get('origin'):
        lines.append(f"📍 *Origem:* {complement['origin']}")
    if complement.get('destination'):
        lines.append(f"📍 *Destino:* {complement['destination']}")
    lines.extend([
        f"⚖️ *Peso:* {complement.get('weight')} Kg",
        f"📦 *Volumes:* {complement.get('volume_quantity')}",
        f"📏 *Dimensões:* {complement.get('volume_length')}x{complement.get('volume_width')}x"
        f"{complement.get('volume_height')} cm",
        f"📊 *Metros Cúbicos:* {complement.get('cubic_meters')} m³",
        f"💰 *Valor NF:* {format_currency(complement.get('invoice_value'))}",
        f"💵 *Valor Frete:* {format_currency(complement.get('freight_value'))}",
        '',
        f"👤 *Contato:* {complement.get('contact_name')}",
        f"📞 *Telefone:* {complement.get('contact_phone')}",
    ])
    if complement.get('observations'):
        lines.extend(['', f"📝 *Observações:* {complement['observations']}"])
    lines.extend([
        '',
        f'🌐 *Sistema QUERO FRETES:* {base_url}',
        f"🔗 *Link do complemento:* {base_url}/public/complements/{complement.get('id')}",
    ])
    return '\n'.join(lines)
