# taxonomy.py
"""Tipos de veículo, carroceria e carga com seus rótulos em português"""

NOT_SPECIFIED = 'Não especificado'

VEHICLE_TYPES = {
    # Leves
    'leve_todos': 'Leve (Todos)',
    'leve_fiorino': 'Leve (Fiorino)',
    'leve_toco': 'Leve (Toco)',
    'leve_vlc': 'Leve (VLC)',
    # Médios
    'medio_todos': 'Médio (Todos)',
    'medio_bitruck': 'Médio (Bitruck)',
    'medio_truck': 'Médio (Truck)',
    # Pesados
    'pesado_todos': 'Pesado (Todos)',
    'pesado_bitrem': 'Pesado (Bitrem)',
    'pesado_carreta': 'Pesado (Carreta)',
    'pesado_carreta_ls': 'Pesado (Carreta LS)',
    'pesado_rodotrem': 'Pesado (Rodotrem)',
    'pesado_vanderleia': 'Pesado (Vanderléia)',
}

BODY_TYPES = {
    'bau': 'Baú',
    'graneleira': 'Graneleira',
    'basculante': 'Basculante',
    'plataforma': 'Plataforma',
    'tanque': 'Tanque',
    'frigorifica': 'Frigorífica',
    'porta_conteiner': 'Porta-contêiner',
    'sider': 'Sider',
    'cacamba': 'Caçamba',
    'aberta': 'Aberta',
    'fechada': 'Fechada',
}

CARGO_TYPES = {
    'completa': 'Carga Completa',
    'complemento': 'Complemento',
}

TARP_OPTIONS = {
    'sim': 'Sim',
    'nao': 'Não',
}

TOLL_OPTIONS = {
    'incluso': 'Incluso',
    'a_parte': 'À Parte',
}

FREIGHT_STATUS = {
    'aberto': 'Aberto',
    'active': 'Ativo',
    'em_andamento': 'Em Andamento',
    'concluido': 'Concluído',
    'cancelado': 'Cancelado',
    'expired': 'Expirado',
}

# Status que tornam o frete visível publicamente
OPEN_FREIGHT_STATUS = ('active', 'aberto')

VEHICLE_CATEGORIES = {
    'leve': 'Leve',
    'medio': 'Médio',
    'pesado': 'Pesado',
}


def _label(table, value):
    if value is None or value == '':
        return NOT_SPECIFIED
    return table.get(value, value)

def vehicle_type_label(value):
    return _label(VEHICLE_TYPES, value)

def body_type_label(value):
    return _label(BODY_TYPES, value)

def cargo_type_label(value):
    return _label(CARGO_TYPES, value)

def tarp_label(value):
    return _label(TARP_OPTIONS, value)

def toll_label(value):
    return _label(TOLL_OPTIONS, value)

def freight_status_label(value):
    return _label(FREIGHT_STATUS, value)

def vehicle_category(value):
    """Categoria (Leve/Médio/Pesado) a partir do prefixo do tipo de veículo"""
    if not value:
        return NOT_SPECIFIED
    prefix = str(value).split('_', 1)[0].lower()
    return VEHICLE_CATEGORIES.get(prefix, NOT_SPECIFIED)

def split_selection(selection):
    """'leve_toco, medio_truck' -> ['leve_toco', 'medio_truck']"""
    if not selection:
        return []
    if isinstance(selection, (list, tuple)):
        return [str(item).strip() for item in selection if str(item).strip()]
    return [item.strip() for item in str(selection).split(',') if item.strip()]

def join_selection(values):
    return ','.join(split_selection(values))

def labels_for_selection(selection, table=VEHICLE_TYPES):
    values = split_selection(selection)
    if not values:
        return NOT_SPECIFIED
    return ', '.join(_label(table, value) for value in values)

def is_vehicle_type(value):
    return value in VEHICLE_TYPES

def is_body_type(value):
    return value in BODY_TYPES

def is_cargo_type(value):
    return value in CARGO_TYPES

def freight_vehicle_labels(freight):
    """Tipos de veículo do frete, preferindo a seleção múltipla"""
    selection = freight.get('vehicle_types_selected') or freight.get('vehicle_type')
    return labels_for_selection(selection, VEHICLE_TYPES)

def freight_body_labels(freight):
    selection = freight.get('body_types_selected') or freight.get('body_type')
    return labels_for_selection(selection, BODY_TYPES)
