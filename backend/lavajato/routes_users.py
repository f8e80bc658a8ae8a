# Endpoints de usuários (somente admin): listar, ver, criar, editar, excluir e estatísticas
from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy import case, delete, func, update
from sqlalchemy.orm import Session

from lavajato.auth import hash_password, require_admin
from lavajato.db import get_db
from lavajato.errors import Conflict, NotFound, ValidationFailed
from lavajato.models import (
    ROLE_ADMIN,
    ROLES,
    SERVICO_EM_ANDAMENTO,
    SERVICO_FINALIZADO,
    SOLICITACAO_PENDENTE,
    Servico,
    SolicitacaoExclusao,
    User,
)
from lavajato.periods import normalize_period, period_start
from lavajato.routes_auth import RegisterRequest, create_user

router = APIRouter(prefix="/users", tags=["users"])


class UserUpdate(BaseModel):
    email: EmailStr | None = None
    nome: str | None = Field(default=None, max_length=255)
    role: str | None = None
    password: str | None = None

    @field_validator("role")
    @classmethod
    def role_valido(cls, v: str | None) -> str | None:
        if v is not None and v not in ROLES:
            raise ValueError("Papel deve ser 'admin' ou 'funcionario'")
        return v

    @field_validator("password")
    @classmethod
    def password_min_length(cls, v: str | None) -> str | None:
        if v is not None and len(v) < 6:
            raise ValueError("Senha deve ter no mínimo 6 caracteres")
        return v


def _get_user_or_404(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFound("Usuário não encontrado")
    return user


def _ensure_not_last_admin(db: Session, user: User) -> None:
    if user.role == ROLE_ADMIN and db.query(User).filter(User.role == ROLE_ADMIN).count() <= 1:
        raise ValidationFailed("Não é possível remover o último administrador")


@router.get("")
def list_users(
    role: str | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    return [u.to_dict() for u in query.order_by(User.created_at.desc(), User.id).all()]


@router.get("/{user_id}")
def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return _get_user_or_404(db, user_id).to_dict()


@router.post("", status_code=201)
def create_user_endpoint(
    body: RegisterRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    user = create_user(db, body)
    return {"message": "Usuário criado com sucesso", "user": user.to_dict()}


@router.put("/{user_id}")
def update_user(
    user_id: str,
    body: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Atualiza email, nome, papel e/ou senha. 409 se o email já pertencer a outro usuário."""
    user = _get_user_or_404(db, user_id)
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise ValidationFailed("Nenhum campo para atualizar")

    if "email" in changes:
        email = changes["email"].lower()
        if db.query(User).filter(User.email == email, User.id != user.id).first():
            raise Conflict("Email já cadastrado")
        user.email = email
    if "nome" in changes:
        if not changes["nome"].strip():
            raise ValidationFailed("Nome não pode ser vazio")
        user.nome = changes["nome"].strip()
    if "role" in changes and changes["role"] != user.role:
        _ensure_not_last_admin(db, user)
        user.role = changes["role"]
    if "password" in changes:
        user.password_hash = hash_password(changes["password"])

    db.commit()
    db.refresh(user)
    return {"message": "Usuário atualizado com sucesso", "user": user.to_dict()}


@router.delete("/{user_id}")
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """
    Exclui o usuário. Os serviços dele ficam sem dono e as solicitações
    pendentes que ele abriu são removidas.
    """
    user = _get_user_or_404(db, user_id)
    if user.id == current_user.id:
        raise ValidationFailed("Não é possível excluir o próprio usuário")
    _ensure_not_last_admin(db, user)

    db.execute(
        update(Servico).where(Servico.funcionario_id == user.id).values(funcionario_id=None)
        .execution_options(synchronize_session=False)
    )
    db.execute(
        delete(SolicitacaoExclusao)
        .where(
            SolicitacaoExclusao.funcionario_id == user.id,
            SolicitacaoExclusao.status == SOLICITACAO_PENDENTE,
        )
        .execution_options(synchronize_session=False)
    )
    db.delete(user)
    db.commit()
    return {"message": "Usuário excluído com sucesso"}


@router.get("/{user_id}/stats")
def get_user_stats(
    user_id: str,
    period: str = "month",
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Desempenho do usuário no período: serviços, receita gerada, ticket médio e os últimos 7 dias."""
    user = _get_user_or_404(db, user_id)
    period = normalize_period(period)
    since = period_start(period)
    finalizado = Servico.status == SERVICO_FINALIZADO
    receita_finalizada = func.coalesce(func.sum(case((finalizado, Servico.valor), else_=0)), 0)

    query = db.query(
        func.count(Servico.id),
        func.count(case((finalizado, 1))),
        func.count(case((Servico.status == SERVICO_EM_ANDAMENTO, 1))),
        receita_finalizada,
        func.avg(case((finalizado, Servico.valor))),
    ).filter(Servico.funcionario_id == user.id)
    if since:
        query = query.filter(Servico.data >= since)
    total, finalizados, andamento, receita, ticket = query.one()

    dia = func.date(Servico.data)
    diario = (
        db.query(dia, func.count(Servico.id), receita_finalizada)
        .filter(Servico.funcionario_id == user.id, Servico.data >= period_start("week"))
        .group_by(dia)
        .order_by(dia)
        .all()
    )

    return {
        "user": user.to_dict(),
        "stats": {
            "total_servicos": total,
            "servicos_finalizados": finalizados,
            "servicos_andamento": andamento,
            "receita_gerada": float(receita or 0),
            "ticket_medio": float(ticket or 0),
        },
        "daily_stats": [
            {"data": str(d), "servicos": servicos, "receita": float(valor or 0)}
            for d, servicos, valor in diario
        ],
        "period": period,
    }
