from modules import taxonomy


def test_labels_with_fallback():
    assert taxonomy.vehicle_type_label('pesado_carreta') == 'Pesado (Carreta)'
    assert taxonomy.body_type_label('bau') == 'Baú'
    assert taxonomy.cargo_type_label('completa') == 'Carga Completa'
    assert taxonomy.vehicle_type_label(None) == 'Não especificado'
    # Valor desconhecido é exibido como veio
    assert taxonomy.body_type_label('prancha') == 'prancha'


def test_vehicle_category_from_prefix():
    assert taxonomy.vehicle_category('leve_fiorino') == 'Leve'
    assert taxonomy.vehicle_category('medio_truck') == 'Médio'
    assert taxonomy.vehicle_category('pesado_rodotrem') == 'Pesado'
    assert taxonomy.vehicle_category('') == 'Não especificado'
    assert taxonomy.vehicle_category('moto') == 'Não especificado'


def test_selection_helpers():
    assert taxonomy.split_selection('leve_toco, medio_truck,') == ['leve_toco', 'medio_truck']
    assert taxonomy.split_selection(['bau', ' sider ']) == ['bau', 'sider']
    assert taxonomy.split_selection(None) == []
    assert taxonomy.join_selection(['bau', 'sider']) == 'bau,sider'
    assert taxonomy.labels_for_selection('leve_toco,medio_truck') == 'Leve (Toco), Médio (Truck)'
    assert taxonomy.labels_for_selection('') == 'Não especificado'


def test_freight_labels_prefer_multiple_selection():
    freight = {
        'vehicle_type': 'leve_toco',
        'vehicle_types_selected': 'pesado_carreta,pesado_bitrem',
        'body_type': 'bau',
        'body_types_selected': None,
    }
    assert taxonomy.freight_vehicle_labels(freight) == 'Pesado (Carreta), Pesado (Bitrem)'
    assert taxonomy.freight_body_labels(freight) == 'Baú'


def test_membership():
    assert taxonomy.is_vehicle_type('medio_bitruck')
    assert not taxonomy.is_vehicle_type('bau')
    assert taxonomy.is_body_type('frigorifica')
    assert taxonomy.is_cargo_type('complemento')
    assert not taxonomy.is_cargo_type('granel')
