# Autenticação: hash de senha, JWT, dependências get_current_user e require_role
from datetime import datetime, timedelta

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from lavajato.config import JWT_ALGORITHM, JWT_EXPIRES_HOURS, JWT_SECRET
from lavajato.db import get_db
from lavajato.errors import Forbidden, Unauthenticated
from lavajato.models import ROLE_ADMIN, ROLE_FUNCIONARIO, User

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
security = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Gera hash bcrypt da senha."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verifica se a senha em texto corresponde ao hash."""
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user: User, expires_delta: timedelta | None = None) -> str:
    """Gera JWT com id, email e papel do usuário no payload."""
    expire = datetime.utcnow() + (expires_delta or timedelta(hours=JWT_EXPIRES_HOURS))
    payload = {"sub": user.id, "email": user.email, "role": user.role, "exp": expire}
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> dict | None:
    """Decodifica JWT e retorna o payload ou None se inválido/expirado."""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None
    if not payload.get("sub"):
        return None
    return payload


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """
    Dependência: extrai token do header Authorization e retorna o usuário.
    Retorna 401 se não autenticado, token inválido ou usuário inexistente.
    """
    if not credentials or not credentials.credentials:
        raise Unauthenticated("Token de autenticação obrigatório")
    payload = decode_token(credentials.credentials)
    if not payload:
        raise Unauthenticated("Token inválido ou expirado")
    # O papel vem sempre do banco, nunca do token
    user = db.get(User, payload["sub"])
    if not user:
        raise Unauthenticated("Usuário não encontrado")
    return user


def require_role(*roles: str):
    """Cria uma dependência que só deixa passar usuários com um dos papéis informados."""

    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise Forbidden("Permissão insuficiente")
        return current_user

    return dependency


require_admin = require_role(ROLE_ADMIN)
require_employee = require_role(ROLE_ADMIN, ROLE_FUNCIONARIO)
