from datetime import timedelta

import jwt

from lavajato.auth import create_access_token, decode_token
from lavajato.config import JWT_ALGORITHM
from lavajato.models import User

from conftest import PASSWORD


def test_login_returns_token_with_role(client, users):
    r = client.post("/api/auth/login", json={"email": "JOAO@lavajato.com", "password": PASSWORD})

    assert r.status_code == 200
    body = r.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["role"] == "funcionario"
    assert "password_hash" not in body["user"]
    payload = decode_token(body["access_token"])
    assert payload["sub"] == users["func"].id
    assert payload["email"] == "joao@lavajato.com"
    assert payload["role"] == "funcionario"


def test_login_with_wrong_password(client, users):
    r = client.post("/api/auth/login", json={"email": "joao@lavajato.com", "password": "errada"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Email ou senha incorretos"


def test_missing_token_is_401(client, users):
    r = client.get("/api/auth/verify")
    assert r.status_code == 401
    assert r.json()["detail"] == "Token de autenticação obrigatório"
    assert r.headers["www-authenticate"] == "Bearer"


def test_garbage_token_is_401(client, users):
    r = client.get("/api/auth/verify", headers={"Authorization": "Bearer abc.def.ghi"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Token inválido ou expirado"


def test_expired_token_is_401(client, users):
    token = create_access_token(users["func"], expires_delta=timedelta(seconds=-10))
    r = client.get("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401


def test_token_signed_with_other_secret_is_401(client, users):
    token = jwt.encode({"sub": users["func"].id}, "outro-segredo", algorithm=JWT_ALGORITHM)
    r = client.get("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401


def test_token_for_unknown_user_is_401(client, users):
    ghost = User(id="00000000-0000-0000-0000-000000000000", email="x@x.com", role="admin", nome="X")
    r = client.get("/api/auth/verify", headers={"Authorization": f"Bearer {create_access_token(ghost)}"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Usuário não encontrado"


def test_role_comes_from_database_not_token(client, db, users):
    # token diz admin, mas o usuário no banco é funcionário
    forged = User(id=users["func"].id, email="joao@lavajato.com", role="admin", nome="João")
    headers = {"Authorization": f"Bearer {create_access_token(forged)}"}
    assert client.get("/api/users", headers=headers).status_code == 403


def test_verify_returns_current_user(client, users, func_headers):
    r = client.get("/api/auth/verify", headers=func_headers)
    assert r.status_code == 200
    assert r.json()["valid"] is True
    assert r.json()["user"]["email"] == "joao@lavajato.com"


def test_change_password(client, users, func_headers):
    wrong = client.post(
        "/api/auth/change-password",
        json={"current_password": "errada", "new_password": "nova-senha"},
        headers=func_headers,
    )
    assert wrong.status_code == 401

    ok = client.post(
        "/api/auth/change-password",
        json={"current_password": PASSWORD, "new_password": "nova-senha"},
        headers=func_headers,
    )
    assert ok.status_code == 200
    assert client.post("/api/auth/login", json={"email": "joao@lavajato.com", "password": "nova-senha"}).status_code == 200


def test_short_new_password_is_400(client, users, func_headers):
    r = client.post(
        "/api/auth/change-password",
        json={"current_password": PASSWORD, "new_password": "123"},
        headers=func_headers,
    )
    assert r.status_code == 400


def test_register_is_admin_only(client, users, admin_headers, func_headers):
    body = {"email": "novo@lavajato.com", "password": "segredo1", "role": "funcionario", "nome": "Novo"}

    assert client.post("/api/auth/register", json=body, headers=func_headers).status_code == 403
    created = client.post("/api/auth/register", json=body, headers=admin_headers)
    assert created.status_code == 201
    assert created.json()["user"]["role"] == "funcionario"
    assert client.post("/api/auth/register", json=body, headers=admin_headers).status_code == 409


def test_register_rejects_unknown_role(client, users, admin_headers):
    body = {"email": "novo@lavajato.com", "password": "segredo1", "role": "gerente", "nome": "Novo"}
    assert client.post("/api/auth/register", json=body, headers=admin_headers).status_code == 400


def test_register_rejects_overlong_name(client, users, admin_headers):
    body = {"email": "novo@lavajato.com", "password": "segredo1", "role": "funcionario", "nome": "N" * 256}
    assert client.post("/api/auth/register", json=body, headers=admin_headers).status_code == 400
