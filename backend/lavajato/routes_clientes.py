# Endpoints de clientes: busca, histórico de serviços, edição e estatísticas
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from lavajato.auth import require_employee
from lavajato.db import get_db
from lavajato.errors import Conflict, NotFound, ValidationFailed
from lavajato.models import SERVICO_FINALIZADO, Cliente, Servico, User
from lavajato.pagination import MAX_LIMIT, page_meta, page_offset
from lavajato.phones import MAX_PHONE_LENGTH, normalize_phone

router = APIRouter(prefix="/clientes", tags=["clientes"])


class ClienteUpdate(BaseModel):
    nome: str | None = Field(default=None, max_length=255)
    telefone: str | None = Field(default=None, max_length=40)

    @field_validator("nome")
    @classmethod
    def nome_nao_vazio(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            raise ValueError("Nome não pode ser vazio")
        return v.strip() if v else v


def normalize_telefone(val: str | None) -> str | None:
    """Normaliza o telefone; 400 se o resultado não couber na coluna (texto que não é número)."""
    telefone = normalize_phone(val)
    if telefone and len(telefone) > MAX_PHONE_LENGTH:
        raise ValidationFailed("Telefone inválido")
    return telefone


def upsert_cliente(db: Session, nome: str, telefone: str | None) -> Cliente | None:
    """
    Garante um cliente para o telefone (já normalizado) do serviço.
    Se já existir, atualiza o nome para o mais recente. Não faz commit.
    """
    if not telefone:
        return None
    cliente = db.query(Cliente).filter(Cliente.telefone == telefone).first()
    if cliente:
        if cliente.nome != nome:
            cliente.nome = nome
        return cliente
    cliente = Cliente(nome=nome, telefone=telefone)
    db.add(cliente)
    return cliente


def _totais():
    total_servicos = func.count(Servico.id)
    valor_total_gasto = func.coalesce(
        func.sum(case((Servico.status == SERVICO_FINALIZADO, Servico.valor), else_=0)), 0
    )
    return total_servicos, valor_total_gasto


def _clientes_com_totais(db: Session):
    total_servicos, valor_total_gasto = _totais()
    return (
        db.query(Cliente, total_servicos, valor_total_gasto)
        .outerjoin(Servico, Servico.telefone == Cliente.telefone)
        .group_by(Cliente.id)
    )


def _cliente_dict(cliente: Cliente, total_servicos, valor_total_gasto) -> dict:
    data = cliente.to_dict()
    data["total_servicos"] = int(total_servicos or 0)
    data["valor_total_gasto"] = float(valor_total_gasto or 0)
    return data


def _get_cliente_or_404(db: Session, cliente_id: str) -> Cliente:
    cliente = db.get(Cliente, cliente_id)
    if not cliente:
        raise NotFound("Cliente não encontrado")
    return cliente


@router.get("")
def list_clientes(
    search: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_LIMIT),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_employee),
):
    """Lista clientes com total de serviços e valor gasto (serviços finalizados)."""
    query = db.query(Cliente)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Cliente.nome.ilike(pattern), Cliente.telefone.ilike(pattern)))
    total = query.count()

    rows_query = _clientes_com_totais(db)
    if search:
        rows_query = rows_query.filter(or_(Cliente.nome.ilike(pattern), Cliente.telefone.ilike(pattern)))
    rows = (
        rows_query.order_by(Cliente.updated_at.desc(), Cliente.id)
        .offset(page_offset(page, limit))
        .limit(limit)
        .all()
    )
    return {
        "clients": [_cliente_dict(*row) for row in rows],
        "pagination": page_meta(total, page, limit),
    }


@router.get("/search/{termo}")
def search_clientes(
    termo: str,
    limit: int = Query(5, ge=1, le=MAX_LIMIT),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_employee),
):
    """Busca rápida por nome ou telefone (autocomplete do cadastro de serviço)."""
    pattern = f"%{termo.strip()}%"
    rows = (
        _clientes_com_totais(db)
        .filter(or_(Cliente.nome.ilike(pattern), Cliente.telefone.ilike(pattern)))
        .order_by(Cliente.updated_at.desc(), Cliente.id)
        .limit(limit)
        .all()
    )
    return [_cliente_dict(*row) for row in rows]


@router.get("/{cliente_id}")
def get_cliente(
    cliente_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_employee),
):
    row = _clientes_com_totais(db).filter(Cliente.id == cliente_id).first()
    if not row:
        raise NotFound("Cliente não encontrado")
    return _cliente_dict(*row)


@router.get("/{cliente_id}/services")
def get_cliente_services(
    cliente_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_LIMIT),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_employee),
):
    """Histórico de serviços do cliente (pelo telefone), mais recentes primeiro."""
    cliente = _get_cliente_or_404(db, cliente_id)
    query = db.query(Servico, User.nome).outerjoin(User, User.id == Servico.funcionario_id).filter(
        Servico.telefone == cliente.telefone
    )
    total = query.count()
    rows = (
        query.order_by(Servico.data.desc(), Servico.id)
        .offset(page_offset(page, limit))
        .limit(limit)
        .all()
    )
    return {
        "services": [servico.to_dict(funcionario_nome=nome) for servico, nome in rows],
        "pagination": page_meta(total, page, limit),
    }


@router.put("/{cliente_id}")
def update_cliente(
    cliente_id: str,
    body: ClienteUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_employee),
):
    """
    Atualiza nome/telefone. Trocar o telefone leva junto os serviços do cliente;
    trocar o nome atualiza os serviços dos últimos 30 dias.
    """
    cliente = _get_cliente_or_404(db, cliente_id)
    if body.nome is None and body.telefone is None:
        raise ValidationFailed("Nenhum campo para atualizar")

    telefone_antigo = cliente.telefone
    if body.telefone is not None:
        telefone = normalize_telefone(body.telefone)
        if not telefone:
            raise ValidationFailed("Telefone inválido")
        em_uso = db.query(Cliente).filter(Cliente.telefone == telefone, Cliente.id != cliente.id).first()
        if em_uso:
            raise Conflict("Telefone já usado por outro cliente")
        if telefone != telefone_antigo:
            cliente.telefone = telefone
            db.query(Servico).filter(Servico.telefone == telefone_antigo).update(
                {Servico.telefone: telefone}, synchronize_session=False
            )

    if body.nome is not None and body.nome != cliente.nome:
        cliente.nome = body.nome
        desde = datetime.utcnow() - timedelta(days=30)
        db.query(Servico).filter(Servico.telefone == cliente.telefone, Servico.data >= desde).update(
            {Servico.nome_cliente: body.nome}, synchronize_session=False
        )

    db.commit()
    db.refresh(cliente)
    return cliente.to_dict()


@router.get("/{cliente_id}/stats")
def get_cliente_stats(
    cliente_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_employee),
):
    """Totais, ticket médio, primeira/última visita, serviços favoritos e gasto mensal."""
    cliente = _get_cliente_or_404(db, cliente_id)
    finalizado = Servico.status == SERVICO_FINALIZADO

    total, finalizados, gasto, ticket, ultima, primeira = (
        db.query(
            func.count(Servico.id),
            func.count(case((finalizado, 1))),
            func.coalesce(func.sum(case((finalizado, Servico.valor), else_=0)), 0),
            func.avg(case((finalizado, Servico.valor))),
            func.max(Servico.data),
            func.min(Servico.data),
        )
        .filter(Servico.telefone == cliente.telefone)
        .one()
    )

    favoritos = (
        db.query(Servico.servico, func.count(Servico.id), func.avg(Servico.valor))
        .filter(Servico.telefone == cliente.telefone, finalizado)
        .group_by(Servico.servico)
        .order_by(func.count(Servico.id).desc(), func.avg(Servico.valor).desc())
        .limit(5)
        .all()
    )

    # Agrupa por mês em Python (TO_CHAR não existe no SQLite)
    desde = datetime.utcnow() - timedelta(days=365)
    mensal: dict[str, dict] = {}
    for data, valor in (
        db.query(Servico.data, Servico.valor)
        .filter(Servico.telefone == cliente.telefone, finalizado, Servico.data >= desde)
        .all()
    ):
        mes = data.strftime("%Y-%m")
        item = mensal.setdefault(mes, {"mes": mes, "servicos": 0, "total_gasto": 0.0})
        item["servicos"] += 1
        item["total_gasto"] += float(valor)

    return {
        "stats": {
            "total_servicos": total,
            "servicos_finalizados": finalizados,
            "valor_total_gasto": float(gasto or 0),
            "ticket_medio": float(ticket or 0),
            "ultima_visita": ultima.isoformat() if ultima else None,
            "primeira_visita": primeira.isoformat() if primeira else None,
        },
        "favorite_services": [
            {"servico": servico, "quantidade": quantidade, "valor_medio": float(media or 0)}
            for servico, quantidade, media in favoritos
        ],
        "monthly_spending": sorted(mensal.values(), key=lambda item: item["mes"], reverse=True),
    }
