# Endpoints do dashboard: indicadores do período, gráficos e ranking de funcionários
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy import and_, case, func
from sqlalchemy.orm import Session

from lavajato.auth import require_employee
from lavajato.db import get_db
from lavajato.models import (
    ROLE_FUNCIONARIO,
    SERVICO_EM_ANDAMENTO,
    SERVICO_FINALIZADO,
    Servico,
    User,
)
from lavajato.periods import normalize_period, period_start
from lavajato.permissions import is_admin

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def _receita_finalizada():
    return func.coalesce(
        func.sum(case((Servico.status == SERVICO_FINALIZADO, Servico.valor), else_=0)), 0
    )


@router.get("/stats")
def dashboard_stats(
    period: str = "day",
    db: Session = Depends(get_db),
    current_user: User = Depends(require_employee),
):
    """Indicadores do período (day, week, month ou total). Ranking de funcionários só para admin."""
    period = normalize_period(period, default="day")
    since = period_start(period)

    def _periodo(query):
        return query.filter(Servico.data >= since) if since else query

    total, finalizados, andamento, receita = _periodo(
        db.query(
            func.count(Servico.id),
            func.count(case((Servico.status == SERVICO_FINALIZADO, 1))),
            func.count(case((Servico.status == SERVICO_EM_ANDAMENTO, 1))),
            _receita_finalizada(),
        )
    ).one()

    dia = func.date(Servico.data)
    chart = (
        db.query(dia, func.count(Servico.id), _receita_finalizada())
        .filter(Servico.data >= period_start("week"))
        .group_by(dia)
        .order_by(dia)
        .all()
    )

    tipos = (
        _periodo(db.query(Servico.servico, func.count(Servico.id), _receita_finalizada()))
        .group_by(Servico.servico)
        .order_by(func.count(Servico.id).desc(), Servico.servico)
        .all()
    )

    top_employees = []
    if is_admin(current_user):
        join_cond = Servico.funcionario_id == User.id
        if since:
            join_cond = and_(join_cond, Servico.data >= since)
        receita_gerada = _receita_finalizada()
        top_employees = [
            {"funcionario_id": user_id, "nome": nome, "total_servicos": qtd, "receita_gerada": float(valor or 0)}
            for user_id, nome, qtd, valor in (
                db.query(User.id, User.nome, func.count(Servico.id), receita_gerada)
                .outerjoin(Servico, join_cond)
                .filter(User.role == ROLE_FUNCIONARIO)
                .group_by(User.id, User.nome)
                .order_by(receita_gerada.desc(), User.nome)
                .all()
            )
        ]

    recentes = (
        _periodo(db.query(Servico, User.nome).outerjoin(User, User.id == Servico.funcionario_id))
        .order_by(Servico.data.desc(), Servico.id)
        .limit(10)
        .all()
    )

    return {
        "stats": {
            "total_servicos": total,
            "servicos_finalizados": finalizados,
            "servicos_andamento": andamento,
            "receita_total": float(receita or 0),
        },
        "charts": {
            "services_chart": [
                {"data": str(d), "total_servicos": qtd, "receita": float(valor or 0)}
                for d, qtd, valor in chart
            ],
            "service_types": [
                {"servico": servico, "quantidade": qtd, "receita": float(valor or 0)}
                for servico, qtd, valor in tipos
            ],
        },
        "top_employees": top_employees,
        "recent_services": [servico.to_dict(funcionario_nome=nome) for servico, nome in recentes],
        "period": period,
    }


def _months_back(now: datetime, months: int) -> datetime:
    """Primeiro dia do mês, 'months - 1' meses antes do mês atual."""
    index = now.year * 12 + (now.month - 1) - (months - 1)
    return datetime(index // 12, index % 12 + 1, 1)


@router.get("/revenue-chart")
def revenue_chart(
    months: int = Query(6, ge=1, le=36),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_employee),
):
    """Receita (serviços finalizados) e total de serviços por mês, no formato YYYY-MM."""
    since = _months_back(datetime.utcnow(), months)
    por_mes: dict[str, dict] = {}
    # Agrupa por mês em Python (TO_CHAR não existe no SQLite)
    for data, valor, status in (
        db.query(Servico.data, Servico.valor, Servico.status).filter(Servico.data >= since).all()
    ):
        mes = data.strftime("%Y-%m")
        item = por_mes.setdefault(mes, {"mes": mes, "total_servicos": 0, "receita": 0.0})
        item["total_servicos"] += 1
        if status == SERVICO_FINALIZADO:
            item["receita"] += float(valor)
    return sorted(por_mes.values(), key=lambda item: item["mes"])


@router.get("/status-distribution")
def status_distribution(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_employee),
):
    """Serviços de hoje por status, com percentual."""
    rows = (
        db.query(Servico.status, func.count(Servico.id))
        .filter(Servico.data >= period_start("day"))
        .group_by(Servico.status)
        .all()
    )
    total = sum(count for _, count in rows)
    return [
        {"status": status, "quantidade": count, "percentual": round(count * 100.0 / total, 2)}
        for status, count in rows
    ]
