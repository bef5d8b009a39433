# config.py
import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    SECRET_KEY = os.getenv('SECRET_KEY', 'querofretes-secret-key')
    DB_CONFIG = {
        'host': os.getenv('DB_HOST', 'localhost'),
        'port': int(os.getenv('DB_PORT', 3306)),
        'user': os.getenv('DB_USER'),
        'password': os.getenv('DB_PASSWORD'),
        'database': os.getenv('DB_NAME', 'querofretes'),
    }
    if os.getenv('DB_AUTH_PLUGIN'):
        DB_CONFIG['auth_plugin'] = os.getenv('DB_AUTH_PLUGIN')

    SESSION_COOKIE_NAME = 'session'
    PERMANENT_SESSION_LIFETIME = int(os.getenv('SESSION_LIFETIME_SECONDS', 86400))

    APP_BASE_URL = os.getenv('APP_BASE_URL', 'https://querofretes.com.br').rstrip('/')
    ALLOWED_ORIGINS = os.getenv('ALLOWED_ORIGINS', '*').split(',')
    RATELIMIT_DEFAULT = os.getenv('RATELIMIT_DEFAULT', '2000 per day;200 per hour')

    # Mercado Pago
    MERCADOPAGO_ACCESS_TOKEN = os.getenv('MERCADOPAGO_ACCESS_TOKEN', '')
    MERCADOPAGO_API_URL = os.getenv('MERCADOPAGO_API_URL', 'https://api.mercadopago.com')

    # OpenPix
    OPENPIX_APP_ID = os.getenv('OPENPIX_APP_ID', '')
    OPENPIX_API_URL = os.getenv('OPENPIX_API_URL', 'https://api.openpix.com.br/api/v1')

    # E-mail (SMTP)
    EMAIL_HOST = os.getenv('EMAIL_HOST', '')
    EMAIL_PORT = int(os.getenv('EMAIL_PORT', 587))
    EMAIL_USER = os.getenv('EMAIL_USER', '')
    EMAIL_PASSWORD = os.getenv('EMAIL_PASSWORD', '')
    EMAIL_FROM = os.getenv('EMAIL_FROM', 'QUERO FRETES <contato@querofretes.com.br>')
    EMAIL_SECURITY = os.getenv('EMAIL_SECURITY', 'starttls').lower()  # starttls, ssl, none
    ADMIN_EMAIL = os.getenv('ADMIN_EMAIL', '')

    # Planos e prazos
    PLAN_PRICES = {
        'monthly': float(os.getenv('PLAN_MONTHLY_PRICE', '99.90')),
        'annual': float(os.getenv('PLAN_ANNUAL_PRICE', '960.00')),
    }
    TRIAL_DAYS = int(os.getenv('TRIAL_DAYS', 7))
    FREIGHT_EXPIRATION_HOURS = int(os.getenv('FREIGHT_EXPIRATION_HOURS', 24))
    SUBSCRIPTION_CHECK_INTERVAL_HOURS = int(os.getenv('SUBSCRIPTION_CHECK_INTERVAL_HOURS', 6))
    PASSWORD_RESET_TOKEN_HOURS = int(os.getenv('PASSWORD_RESET_TOKEN_HOURS', 1))

    HTTP_TIMEOUT = int(os.getenv('HTTP_TIMEOUT', 15))
