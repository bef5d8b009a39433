from modules.whatsapp import complement_message, freight_message, share_link, whatsapp_link


def test_whatsapp_link_adds_country_code():
    assert whatsapp_link('(31) 97155-9484') == 'https://wa.me/5531971559484'
    assert whatsapp_link('55 31 97155-9484') == 'https://wa.me/5531971559484'
    assert whatsapp_link('') is None


def test_whatsapp_link_encodes_text():
    link = whatsapp_link('31971559484', text='Olá, frete #12?')
    assert link == 'https://wa.me/5531971559484?text=Ol%C3%A1%2C%20frete%20%2312%3F'


def test_share_link():
    assert share_link('a b') == 'https://wa.me/?text=a%20b'


def test_freight_message_lists_every_destination():
    freight = {
        'id': 42, 'origin': 'Contagem', 'origin_state': 'MG',
        'destination': 'Campinas', 'destination_state': 'SP',
        'destinations': [{'destination': 'Jundiaí', 'destination_state': 'SP'}],
        'vehicle_type': 'pesado_carreta', 'body_type': 'sider', 'cargo_type': 'completa',
        'cargo_weight': 28000, 'freight_value': 3800, 'contact_name': 'Carlos',
        'contact_phone': '(31) 97155-9484',
    }
    message = freight_message(freight, {'name': 'Transportes Minas'}, 'https://exemplo.com')

    assert '🏢 *Transportes Minas*' in message
    assert '🏁 *Destino 2:* Jundiaí, SP' in message
    assert '🚚 *Categoria:* Pesado' in message
    assert '💵 *Valor:* R$ 3.800,00' in message
    assert '💰 *Pagamento:* Não especificado' in message
    assert message.endswith('https://exemplo.com/freight/42')


def test_freight_message_without_client():
    assert 'Cliente não encontrado' in freight_message({'id': 1})


def test_complement_message():
    message = complement_message({'id': 9, 'weight': 500, 'invoice_value': None,
                                  'observations': 'Frágil'}, 'https://exemplo.com')
    assert '💰 *Valor NF:* R$ 0,00' in message
    assert '📝 *Observações:* Frágil' in message
    assert message.endswith('https://exemplo.com/public/complements/9')
