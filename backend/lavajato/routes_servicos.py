# Endpoints de serviços: CRUD, estatísticas e exclusão (direta ou por solicitação)
import math
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Literal

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import func
from sqlalchemy.orm import Session

from lavajato.auth import get_current_user, require_admin
from lavajato.db import get_db
from lavajato.errors import NotFound, ValidationFailed
from lavajato.models import SERVICO_EM_ANDAMENTO, Servico, User
from lavajato.pagination import MAX_LIMIT, page_offset
from lavajato.periods import normalize_period, period_start
from lavajato.permissions import can_manage_servico, is_admin
from lavajato.routes_clientes import normalize_telefone, upsert_cliente
from lavajato.workflow import DeletionWorkflow

router = APIRouter(prefix="/servicos", tags=["servicos"])

TEXT_FIELDS = ("carro", "placa", "nome_cliente", "servico")


def _strip_required(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Campo obrigatório")
    return v


class ServicoCreate(BaseModel):
    carro: str = Field(max_length=120)
    placa: str = Field(max_length=10)
    nome_cliente: str = Field(max_length=255)
    telefone: str | None = Field(default=None, max_length=40)
    servico: str = Field(max_length=120)
    valor: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    status: Literal["em_andamento", "finalizado"] = SERVICO_EM_ANDAMENTO
    data: datetime | None = None

    @field_validator(*TEXT_FIELDS)
    @classmethod
    def texto_obrigatorio(cls, v: str) -> str:
        return _strip_required(v)

    @field_validator("placa")
    @classmethod
    def placa_maiuscula(cls, v: str) -> str:
        return v.upper()


class ServicoUpdate(BaseModel):
    carro: str | None = Field(default=None, max_length=120)
    placa: str | None = Field(default=None, max_length=10)
    nome_cliente: str | None = Field(default=None, max_length=255)
    telefone: str | None = Field(default=None, max_length=40)
    servico: str | None = Field(default=None, max_length=120)
    valor: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    status: Literal["em_andamento", "finalizado"] | None = None

    @field_validator(*TEXT_FIELDS)
    @classmethod
    def texto_nao_vazio(cls, v: str | None) -> str | None:
        return _strip_required(v) if v is not None else v

    @field_validator("placa")
    @classmethod
    def placa_maiuscula(cls, v: str | None) -> str | None:
        return v.upper() if v else v


def _get_servico_or_404(db: Session, servico_id: str, current_user: User) -> Servico:
    servico = db.get(Servico, servico_id)
    # Funcionário só enxerga os próprios serviços
    if not servico or not can_manage_servico(current_user, servico):
        raise NotFound("Serviço não encontrado")
    return servico


def _funcionario_nome(db: Session, servico: Servico) -> str | None:
    if not servico.funcionario_id:
        return None
    user = db.get(User, servico.funcionario_id)
    return user.nome if user else None


@router.get("")
def list_servicos(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_LIMIT),
    data_inicio: date | None = None,
    data_fim: date | None = None,
    funcionario_id: str | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Lista serviços (mais recentes primeiro). Funcionário vê só os seus;
    admin pode filtrar por funcionario_id. data_fim é inclusiva.
    """
    query = db.query(Servico, User.nome).outerjoin(User, User.id == Servico.funcionario_id)
    if not is_admin(current_user):
        query = query.filter(Servico.funcionario_id == current_user.id)
    elif funcionario_id:
        query = query.filter(Servico.funcionario_id == funcionario_id)
    if data_inicio:
        query = query.filter(Servico.data >= datetime.combine(data_inicio, datetime.min.time()))
    if data_fim:
        query = query.filter(Servico.data < datetime.combine(data_fim + timedelta(days=1), datetime.min.time()))

    total = query.count()
    rows = (
        query.order_by(Servico.data.desc(), Servico.id)
        .offset(page_offset(page, limit))
        .limit(limit)
        .all()
    )
    return {
        "servicos": [servico.to_dict(funcionario_nome=nome) for servico, nome in rows],
        "pagination": {
            "current_page": page,
            "total_pages": math.ceil(total / limit),
            "total_items": total,
            "items_per_page": limit,
        },
    }


@router.get("/estatisticas")
def get_estatisticas(
    periodo: str = "mes",
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Receita e quantidade de serviços no período, por tipo e por dia (últimos 7 dias)."""
    periodo = normalize_period(periodo)
    since = period_start(periodo)

    def _periodo(query):
        return query.filter(Servico.data >= since) if since else query

    total_receita = _periodo(db.query(func.coalesce(func.sum(Servico.valor), 0))).scalar()
    total_servicos = _periodo(db.query(func.count(Servico.id))).scalar()
    por_tipo = (
        _periodo(db.query(Servico.servico, func.count(Servico.id), func.sum(Servico.valor)))
        .group_by(Servico.servico)
        .order_by(func.count(Servico.id).desc(), Servico.servico)
        .all()
    )

    dia = func.date(Servico.data)
    sete_dias = period_start("week")
    diario = (
        db.query(dia, func.count(Servico.id), func.sum(Servico.valor))
        .filter(Servico.data >= sete_dias)
        .group_by(dia)
        .order_by(dia)
        .all()
    )

    return {
        "periodo": periodo,
        "total_receita": float(total_receita or 0),
        "total_servicos": total_servicos,
        "servicos_por_tipo": [
            {"servico": servico, "quantidade": quantidade, "receita": float(receita or 0)}
            for servico, quantidade, receita in por_tipo
        ],
        "receita_diaria": [
            {"dia": str(d), "servicos": servicos, "receita": float(receita or 0)}
            for d, servicos, receita in diario
        ],
    }


@router.get("/{servico_id}")
def get_servico(
    servico_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    servico = _get_servico_or_404(db, servico_id, current_user)
    return servico.to_dict(funcionario_nome=_funcionario_nome(db, servico))


@router.post("", status_code=201)
def create_servico(
    body: ServicoCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Registra um serviço em nome do usuário atual e atualiza o cadastro do cliente."""
    telefone = normalize_telefone(body.telefone)
    servico = Servico(
        carro=body.carro,
        placa=body.placa,
        nome_cliente=body.nome_cliente,
        telefone=telefone,
        servico=body.servico,
        valor=body.valor,
        status=body.status,
        funcionario_id=current_user.id,
        data=body.data or datetime.utcnow(),
    )
    db.add(servico)
    upsert_cliente(db, body.nome_cliente, telefone)
    db.commit()
    db.refresh(servico)
    return {"message": "Serviço criado com sucesso", "servico": servico.to_dict(funcionario_nome=current_user.nome)}


@router.put("/{servico_id}")
def update_servico(
    servico_id: str,
    body: ServicoUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Atualização parcial (dono ou admin). 400 se nenhum campo for enviado."""
    servico = _get_servico_or_404(db, servico_id, current_user)
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationFailed("Nenhum campo para atualizar")
    for field in (*TEXT_FIELDS, "valor", "status"):
        if field in changes:
            if changes[field] is None:
                raise ValidationFailed(f"Campo {field} não pode ser nulo")
            setattr(servico, field, changes[field])
    if "telefone" in changes:
        servico.telefone = normalize_telefone(changes["telefone"])
    if "telefone" in changes or "nome_cliente" in changes:
        upsert_cliente(db, servico.nome_cliente, servico.telefone)
    db.commit()
    db.refresh(servico)
    return {"message": "Serviço atualizado com sucesso", "servico": servico.to_dict(funcionario_nome=_funcionario_nome(db, servico))}


@router.delete("/{servico_id}")
def delete_servico(
    servico_id: str,
    response: Response,
    motivo: str | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Admin exclui direto. Funcionário abre uma solicitação de exclusão
    (201) que precisa ser aprovada por um admin.
    """
    workflow = DeletionWorkflow(db)
    if is_admin(current_user):
        deleted = workflow.direct_delete(servico_id, current_user)
        return {"message": "Serviço excluído com sucesso", "deleted_service": deleted}
    solicitacao = workflow.request_deletion(servico_id, current_user, motivo)
    response.status_code = 201
    return {
        "message": "Solicitação de exclusão enviada para aprovação",
        "request": workflow.serialize(solicitacao),
    }
