# errors.py
from flask import jsonify


class GatewayError(Exception):
    """Falha na comunicação com um serviço externo (Mercado Pago, OpenPix)"""

    def __init__(self, message, status=None, details=None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.details = details

class NotConfiguredError(GatewayError):
    """Credenciais do serviço externo ausentes"""


def format_error(message: str, code: str = None, status: int = 400) -> tuple:
    """Formata resposta de erro"""
    return jsonify({
        'error': message,
        'code': code
    }), status

def missing_fields_error(missing: list) -> tuple:
    return format_error(
        f"Campos obrigatórios faltando: {', '.join(missing)}",
        'MISSING_FIELDS'
    )

def validation_error(errors: list) -> tuple:
    """Resposta 400 com a lista de erros de validação por campo"""
    response = jsonify({
        'error': 'Dados inválidos',
        'code': 'INVALID_DATA',
        'details': [{'field': field, 'message': message} for field, message in errors]
    })
    return response, 400

def gateway_error(err: GatewayError) -> tuple:
    if isinstance(err, NotConfiguredError):
        return format_error(err.message, 'NOT_CONFIGURED', 503)
    response = jsonify({
        'error': err.message,
        'code': 'GATEWAY_ERROR',
        'details': err.details
    })
    return response, 502
