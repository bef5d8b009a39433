# email_service.py
"""Envio de e-mails transacionais via SMTP"""
import logging
import smtplib
import ssl
from datetime import datetime
from email.message import EmailMessage
from urllib.parse import quote

from modules.config import Config
from modules.formatters import format_currency, format_date
from modules.subscriptions import plan_label

logger = logging.getLogger(__name__)

FOOTER = (
    '<p style="margin-top: 30px; font-size: 12px; color: #666; text-align: center;">'
    'Este é um email automático, por favor não responda.<br>'
    'QUERO FRETES © {year}</p>'
)


def is_configured():
    return bool(Config.EMAIL_HOST and Config.EMAIL_USER and Config.EMAIL_PASSWORD)

def _wrap(title, body):
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">'
        f'<h2 style="color: #4a6cf7;">{title}</h2>{body}'
        f'{FOOTER.format(year=datetime.now().year)}</div>'
    )

def _button(url, label):
    return (
        '<div style="text-align: center; margin: 30px 0;">'
        f'<a href="{url}" style="background-color: #4a6cf7; color: white; padding: 12px 24px; '
        f'text-decoration: none; border-radius: 4px; font-weight: bold;">{label}</a></div>'
    )

def _connect():
    security = Config.EMAIL_SECURITY
    if security == 'ssl':
        server = smtplib.SMTP_SSL(Config.EMAIL_HOST, Config.EMAIL_PORT, timeout=30,
                                  context=ssl.create_default_context())
    else:
        server = smtplib.SMTP(Config.EMAIL_HOST, Config.EMAIL_PORT, timeout=30)
        server.ehlo()
        if security == 'starttls':
            server.starttls(context=ssl.create_default_context())
            server.ehlo()
    if Config.EMAIL_USER and Config.EMAIL_PASSWORD:
        server.login(Config.EMAIL_USER, Config.EMAIL_PASSWORD)
    return server

def send_email(to, subject, html, text=None):
    """Envia um e-mail; retorna False (e registra no log) quando não for possível"""
    if not is_configured():
        logger.warning('Serviço de email não configurado. Email "%s" não enviado.', subject)
        return False
    if not to:
        logger.warning('Destinatário ausente. Email "%s" não enviado.', subject)
        return False

    message = EmailMessage()
    message['Subject'] = subject
    message['From'] = Config.EMAIL_FROM
    message['To'] = to
    message.set_content(text or 'Este email requer um cliente com suporte a HTML.')
    message.add_alternative(html, subtype='html')

    server = None
    try:
        server = _connect()
        server.send_message(message)
    except (smtplib.SMTPException, OSError) as err:
        logger.error('Erro ao enviar email "%s" para %s: %s', subject, to, err)
        return False
    finally:
        if server is not None:
            try:
                server.quit()
            except (smtplib.SMTPException, OSError) as err:
                logger.debug('Erro ao encerrar conexão SMTP: %s', err)

    logger.info('Email "%s" enviado para %s', subject, to)
    return True

def test_email_connection():
    if not is_configured():
        return {'success': False, 'message': 'Serviço de email não configurado'}
    try:
        server = _connect()
        server.quit()
    except (smtplib.SMTPException, OSError) as err:
        logger.error('Falha ao testar conexão SMTP: %s', err)
        return {'success': False, 'message': f'Falha na conexão: {err}'}
    return {'success': True, 'message': f'Conectado a {Config.EMAIL_HOST}:{Config.EMAIL_PORT}'}

def send_test_email(to):
    html = _wrap('Teste de Configuração de Email',
                 '<p>Se você recebeu esta mensagem, o envio de emails está funcionando.</p>')
    return send_email(to, 'Teste de Configuração de Email - QUERO FRETES', html)

def send_password_reset_email(email, token, name=None):
    reset_link = f'{Config.APP_BASE_URL}/reset-password?token={token}&email={quote(email)}'
    greeting = f', <strong>{name}</strong>' if name else ''
    body = (
        f'<p>Olá{greeting}!</p>'
        '<p>Recebemos uma solicitação para redefinição de senha da sua conta.</p>'
        f'<p>Clique no botão abaixo para criar uma nova senha. O link é válido por '
        f'{Config.PASSWORD_RESET_TOKEN_HOURS} hora(s).</p>'
        f'{_button(reset_link, "REDEFINIR MINHA SENHA")}'
        '<p>Se você não solicitou a redefinição de senha, ignore este email.</p>'
    )
    return send_email(email, 'Recuperação de Senha - QUERO FRETES',
                      _wrap('Recuperação de Senha', body),
                      text=f'Acesse {reset_link} para redefinir sua senha.')

def send_subscription_email(email, name, plan_type, start, end, amount):
    is_trial = plan_type == 'trial'
    title = 'Seu período de teste começou!' if is_trial else 'Confirmação de Assinatura'
    period = f'{format_date(start)} a {format_date(end)}' if end else f'A partir de {format_date(start)}'
    body = (
        f'<p>Olá, <strong>{name}</strong>!</p>'
        f'<p>{"Seu período de teste gratuito foi ativado com sucesso." if is_trial else "Sua assinatura foi confirmada com sucesso."}</p>'
        f'<p><strong>Plano:</strong> {plan_label(plan_type)}</p>'
        f'<p><strong>Período:</strong> {period}</p>'
    )
    if not is_trial:
        body += f'<p><strong>Valor:</strong> {format_currency(amount)}</p>'
    body += _button(Config.APP_BASE_URL, 'Acessar o Sistema')
    subject = title if is_trial else 'Confirmação de Assinatura - QUERO FRETES'
    return send_email(email, subject, _wrap(title, body))

def send_payment_reminder_email(user, payment_url=None, custom_message=None):
    name = user.get('name') or ''
    body = f'<p>Olá, <strong>{name}</strong>!</p>'
    body += f'<p>{custom_message}</p>' if custom_message else (
        '<p>Sua assinatura do QUERO FRETES está pendente. '
        'Regularize o pagamento para continuar acessando a plataforma.</p>'
    )
    body += (
        f"<p><strong>Mensal:</strong> {format_currency(Config.PLAN_PRICES['monthly'])}<br>"
        f"<strong>Anual:</strong> {format_currency(Config.PLAN_PRICES['annual'])}</p>"
    )
    body += _button(payment_url or f'{Config.APP_BASE_URL}/subscribe', 'PAGAR VIA PIX')
    return send_email(user.get('email'), '💳 Cobrança QUERO FRETES - Pague via PIX',
                      _wrap('Cobrança de Assinatura', body))

def send_quote_notification(recipients, quote):
    """Avisa os clientes sobre uma nova cotação; retorna contagem de enviados e falhas"""
    cargo = 'Carga Completa' if quote.get('cargo_type') == 'completa' else 'Complemento'
    sent = failed = 0
    for recipient in recipients:
        body = (
            f"<p>Olá, {recipient.get('name')}!</p>"
            '<p>Uma nova cotação de frete foi cadastrada em nossa plataforma e pode ser do seu interesse:</p>'
            f"<p><strong>Cliente:</strong> {quote.get('client_name')}<br>"
            f"<strong>Origem:</strong> {quote.get('origin')}<br>"
            f"<strong>Destino:</strong> {quote.get('destination')}<br>"
            f'<strong>Tipo de Carga:</strong> {cargo}<br>'
            f"<strong>Peso:</strong> {quote.get('weight')} Kg</p>"
            f"{_button(Config.APP_BASE_URL + '/quotes', 'Ver Cotação Completa')}"
        )
        if send_email(recipient.get('email'), '🚛 Nova Cotação Disponível - QUERO FRETES',
                      _wrap('Nova Cotação Disponível', body)):
            sent += 1
        else:
            failed += 1
    logger.info('Notificações de cotação: %s enviadas, %s falhas', sent, failed)
    return {'sent': sent, 'failed': failed}
