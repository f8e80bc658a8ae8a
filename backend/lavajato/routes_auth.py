# Endpoints de autenticação: login, verificação de token, troca de senha e cadastro
from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy.orm import Session

from lavajato.auth import (
    create_access_token,
    get_current_user,
    hash_password,
    require_admin,
    verify_password,
)
from lavajato.db import get_db
from lavajato.errors import Conflict, Unauthenticated
from lavajato.models import ROLES, User

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    role: str
    nome: str = Field(max_length=255)

    @field_validator("password")
    @classmethod
    def password_min_length(cls, v: str) -> str:
        if len(v) < 6:
            raise ValueError("Senha deve ter no mínimo 6 caracteres")
        return v

    @field_validator("role")
    @classmethod
    def role_valido(cls, v: str) -> str:
        if v not in ROLES:
            raise ValueError("Papel deve ser 'admin' ou 'funcionario'")
        return v

    @field_validator("nome")
    @classmethod
    def nome_obrigatorio(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Nome é obrigatório")
        return v.strip()


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def password_min_length(cls, v: str) -> str:
        if len(v) < 6:
            raise ValueError("Senha deve ter no mínimo 6 caracteres")
        return v


def create_user(db: Session, body: RegisterRequest) -> User:
    """Cria o usuário (email em minúsculas). 409 se o email já existir."""
    email = body.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise Conflict("Email já cadastrado")
    user = User(
        email=email,
        password_hash=hash_password(body.password),
        role=body.role,
        nome=body.nome,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@router.post("/login")
def login(
    body: LoginRequest,
    db: Session = Depends(get_db),
):
    """
    Faz login com email e senha.
    Retorna token JWT e os dados do usuário se as credenciais forem válidas.
    """
    user = db.query(User).filter(User.email == body.email.lower()).first()
    if not user or not verify_password(body.password, user.password_hash):
        raise Unauthenticated("Email ou senha incorretos")
    token = create_access_token(user)
    return {"access_token": token, "token_type": "bearer", "user": user.to_dict()}


@router.get("/verify")
def verify(current_user: User = Depends(get_current_user)):
    """Confirma que o token é válido e devolve o usuário atual."""
    return {"valid": True, "user": current_user.to_dict()}


@router.post("/change-password")
def change_password(
    body: ChangePasswordRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not verify_password(body.current_password, current_user.password_hash):
        raise Unauthenticated("Senha atual incorreta")
    current_user.password_hash = hash_password(body.new_password)
    db.commit()
    return {"message": "Senha alterada com sucesso"}


@router.post("/register", status_code=201)
def register(
    body: RegisterRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Cadastra um novo usuário (somente admin)."""
    user = create_user(db, body)
    return {"message": "Usuário criado com sucesso", "user": user.to_dict()}
