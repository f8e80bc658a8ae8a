import os
from datetime import datetime
from decimal import Decimal

import pytest

# Antes de importar o app: banco em memória e sem admin automático
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ADMIN_EMAIL"] = ""
os.environ["ADMIN_PASSWORD"] = ""

from fastapi.testclient import TestClient

from lavajato.auth import create_access_token, hash_password
from lavajato.main import create_app
from lavajato.models import ROLE_ADMIN, ROLE_FUNCIONARIO, Servico, User

PASSWORD = "senha123"


@pytest.fixture(scope="session")
def password_hash():
    # bcrypt é lento: um hash só para todos os testes
    return hash_password(PASSWORD)


@pytest.fixture
def app():
    return create_app("sqlite://")


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(client):
    session = client.app.state.database.session()
    yield session
    session.close()


@pytest.fixture
def users(db, password_hash):
    admin = User(email="admin@lavajato.com", password_hash=password_hash, role=ROLE_ADMIN, nome="Ana Admin")
    func1 = User(email="joao@lavajato.com", password_hash=password_hash, role=ROLE_FUNCIONARIO, nome="João")
    func2 = User(email="maria@lavajato.com", password_hash=password_hash, role=ROLE_FUNCIONARIO, nome="Maria")
    db.add_all([admin, func1, func2])
    db.commit()
    return {"admin": admin, "func": func1, "func2": func2}


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def admin_headers(users):
    return auth_headers(users["admin"])


@pytest.fixture
def func_headers(users):
    return auth_headers(users["func"])


@pytest.fixture
def func2_headers(users):
    return auth_headers(users["func2"])


@pytest.fixture
def make_servico(db):
    def _make(owner: User | None, **kwargs) -> Servico:
        values = {
            "carro": "Gol",
            "placa": "ABC1D23",
            "nome_cliente": "Carlos",
            "telefone": "+5511988887777",
            "servico": "Lavagem completa",
            "valor": Decimal("50.00"),
            "status": "finalizado",
            "funcionario_id": owner.id if owner else None,
            "data": datetime.utcnow(),
        }
        values.update(kwargs)
        servico = Servico(**values)
        db.add(servico)
        db.commit()
        db.refresh(servico)
        return servico

    return _make
