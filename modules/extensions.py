# extensions.py
from flask_compress import Compress
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_wtf import CSRFProtect

# Configuração de proteção CSRF
csrf = CSRFProtect()

cors = CORS()

compress = Compress()

# Limites lidos de RATELIMIT_DEFAULT na configuração da aplicação
limiter = Limiter(key_func=get_remote_address)
