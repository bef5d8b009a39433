"""Fixtures: aplicação de teste e banco MySQL simulado em memória"""
import sys
from datetime import datetime, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from modules import tasks

PASSWORD = 'segredo123'
PASSWORD_HASH = generate_password_hash(PASSWORD)


class FakeCursor:
    def __init__(self, db):
        self.db = db
        self._rows = []
        self.lastrowid = None
        self.rowcount = 0

    def execute(self, query, params=None):
        sql = ' '.join(query.split())
        self.db.queries.append((sql, params))

        rows = []
        for fragment, result in self.db.responses:
            if fragment in sql:
                rows = result(params) if callable(result) else result
                break
        self._rows = [dict(row) for row in rows]

        if sql.startswith('INSERT'):
            self.db.lastrowid += 1
            self.lastrowid = self.db.lastrowid
        self.rowcount = len(self._rows) if sql.startswith('SELECT') else self.db.rowcount

    def fetchone(self):
        return self._rows.pop(0) if self._rows else None

    def fetchall(self):
        rows, self._rows = self._rows, []
        return rows

    def close(self):
        pass

class FakeConnection:
    def __init__(self, db):
        self.db = db

    def cursor(self, dictionary=False):
        return FakeCursor(self.db)

    def commit(self):
        self.db.commits += 1

    def rollback(self):
        pass

    def close(self):
        pass

class FakeDB:
    """Responde consultas pelo trecho de SQL; o último registro tem prioridade"""

    def __init__(self):
        self.responses = []
        self.queries = []
        self.lastrowid = 100
        self.rowcount = 1
        self.commits = 0

    def on(self, fragment, rows):
        self.responses.insert(0, (fragment, rows))

    def connect(self):
        return FakeConnection(self)

    def executed(self, fragment):
        return [params for sql, params in self.queries if fragment in sql]


def make_user(**overrides):
    user = {
        'id': 1,
        'email': 'usuario@querofretes.com.br',
        'password': PASSWORD_HASH,
        'name': 'Usuário Teste',
        'phone': '31971559484',
        'profile_type': 'shipper',
        'client_id': None,
        'driver_id': None,
        'is_active': True,
        'is_verified': True,
        'subscription_active': True,
        'subscription_type': 'monthly',
        'subscription_expires_at': datetime.now() + timedelta(days=30),
        'payment_required': False,
        'trial_used': True,
        'created_at': datetime(2024, 1, 10, 8, 0),
        'last_login': None,
    }
    user.update(overrides)
    return user


@pytest.fixture
def db(monkeypatch):
    fake = FakeDB()
    for name, module in list(sys.modules.items()):
        if name == 'app' or name.startswith(('modules.', 'routes.')):
            if hasattr(module, 'get_db_connection'):
                monkeypatch.setattr(module, 'get_db_connection', fake.connect)
    return fake

@pytest.fixture
def app(db):
    return create_app({
        'TESTING': True,
        'SECRET_KEY': 'chave-de-teste',
        'WTF_CSRF_ENABLED': False,
        'RATELIMIT_ENABLED': False,
    })

@pytest.fixture
def client(app):
    return app.test_client()

@pytest.fixture(autouse=True)
def background(monkeypatch):
    """Tarefas em segundo plano terminam antes da resposta chegar ao teste"""
    started = []

    def run_and_wait(target, *args, **kwargs):
        thread = tasks.run_in_background(target, *args, **kwargs)
        thread.join(timeout=5)
        started.append(getattr(target, '__name__', target))
        return thread

    monkeypatch.setattr('routes.freights.run_in_background', run_and_wait)
    monkeypatch.setattr('routes.public.run_in_background', run_and_wait)
    return started

@pytest.fixture
def login(client, db):
    """Autentica um usuário pela sessão do Flask-Login"""
    def _login(session_id=None, **overrides):
        user = make_user(**overrides)
        db.on('FROM users WHERE id = %s', [user])
        with client.session_transaction() as sess:
            sess['_user_id'] = str(user['id'])
            sess['_fresh'] = True
            if session_id:
                sess['sid'] = session_id
        return user
    return _login
