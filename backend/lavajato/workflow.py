"""
Fluxo de exclusão de serviços.

Um funcionário pede a exclusão de um serviço que registrou; um admin aprova
(o serviço é apagado) ou rejeita (o serviço fica como está). Estados da
solicitação: pendente -> aprovada | rejeitada, sem volta.

A regra "no máximo uma solicitação pendente por serviço" é garantida pelo
índice único parcial em solicitacoes_exclusao (servico_id onde status =
'pendente'); aqui só traduzimos a violação em 409.
"""
import logging
from dataclasses import dataclass
from datetime import datetime

from fastapi import HTTPException
from sqlalchemy import and_, case, delete, func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from lavajato.errors import Conflict, Forbidden, NotFound, ValidationFailed
from lavajato.models import (
    ROLE_FUNCIONARIO,
    SOLICITACAO_APROVADA,
    SOLICITACAO_PENDENTE,
    SOLICITACAO_REJEITADA,
    SOLICITACAO_STATUS,
    Servico,
    SolicitacaoExclusao,
    User,
)
from lavajato.pagination import page_meta, page_offset
from lavajato.periods import normalize_period, period_start
from lavajato.permissions import (
    can_cancel,
    can_decide,
    can_delete_directly,
    can_request_deletion,
    can_view_deletion_stats,
    can_view_request,
    is_admin,
)

logger = logging.getLogger(__name__)

DECISION_APPROVE = "approve"
DECISION_REJECT = "reject"
DECISIONS = (DECISION_APPROVE, DECISION_REJECT)

DEFAULT_MOTIVO = "Solicitação de exclusão"


@dataclass
class DecisionResult:
    solicitacao: SolicitacaoExclusao
    decision: str
    deleted_service: dict | None = None


class DeletionWorkflow:
    """Operações sobre solicitações de exclusão. Recebe a sessão do banco pronta."""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Leitura
    # ------------------------------------------------------------------
    def _list_query(self):
        requester = aliased(User)
        resolver = aliased(User)
        return self.db.query(SolicitacaoExclusao, requester.nome, resolver.nome).outerjoin(
            requester, requester.id == SolicitacaoExclusao.funcionario_id
        ).outerjoin(
            resolver, resolver.id == SolicitacaoExclusao.aprovado_por
        )

    def serialize(self, solicitacao: SolicitacaoExclusao) -> dict:
        requester = self.db.get(User, solicitacao.funcionario_id) if solicitacao.funcionario_id else None
        resolver = self.db.get(User, solicitacao.aprovado_por) if solicitacao.aprovado_por else None
        return solicitacao.to_dict(
            funcionario_nome=requester.nome if requester else None,
            aprovado_por_nome=resolver.nome if resolver else None,
        )

    def get_request(self, request_id: str, user: User) -> SolicitacaoExclusao:
        solicitacao = self.db.get(SolicitacaoExclusao, request_id)
        # Funcionário não descobre solicitações de outros: 404 em vez de 403
        if not solicitacao or not can_view_request(user, solicitacao):
            raise NotFound("Solicitação não encontrada")
        return solicitacao

    def list_requests(
        self,
        user: User,
        status: str | None = None,
        page: int = 1,
        limit: int = 10,
        only_own: bool = False,
    ) -> dict:
        """
        Admin: todas as solicitações com o status pedido (padrão: pendente).
        Funcionário (ou only_own): só as próprias, status opcional.
        Ordenadas da mais recente para a mais antiga.
        """
        if status is not None and status not in SOLICITACAO_STATUS:
            raise ValidationFailed(f"Status inválido: {status!r}")
        own = only_own or not is_admin(user)
        if not own and status is None:
            status = SOLICITACAO_PENDENTE

        query = self._list_query()
        if own:
            query = query.filter(SolicitacaoExclusao.funcionario_id == user.id)
        if status:
            query = query.filter(SolicitacaoExclusao.status == status)
        total = query.count()
        rows = (
            query.order_by(SolicitacaoExclusao.data.desc(), SolicitacaoExclusao.id)
            .offset(page_offset(page, limit))
            .limit(limit)
            .all()
        )
        return {
            "requests": [
                sol.to_dict(funcionario_nome=requester_nome, aprovado_por_nome=resolver_nome)
                for sol, requester_nome, resolver_nome in rows
            ],
            "pagination": page_meta(total, page, limit),
        }

    # ------------------------------------------------------------------
    # Transições
    # ------------------------------------------------------------------
    def request_deletion(self, servico_id: str, user: User, motivo: str | None = None) -> SolicitacaoExclusao:
        servico = self.db.get(Servico, servico_id)
        if not servico:
            raise NotFound("Serviço não encontrado")
        if not can_request_deletion(user, servico):
            raise Forbidden("Você só pode solicitar exclusão dos seus próprios serviços")

        solicitacao = SolicitacaoExclusao(
            servico_id=servico.id,
            funcionario_id=user.id,
            motivo=(motivo or "").strip() or DEFAULT_MOTIVO,
            status=SOLICITACAO_PENDENTE,
            data=datetime.utcnow(),
            carro=servico.carro,
            placa=servico.placa,
            nome_cliente=servico.nome_cliente,
            servico=servico.servico,
            valor=servico.valor,
        )
        self.db.add(solicitacao)
        try:
            self.db.commit()
        except IntegrityError:
            # Índice único parcial: já existe uma pendente para este serviço
            self.db.rollback()
            raise Conflict("Já existe uma solicitação de exclusão pendente para este serviço")
        self.db.refresh(solicitacao)
        logger.info(
            "Solicitação de exclusão %s criada para o serviço %s por %s",
            solicitacao.id, servico.id, user.id,
        )
        return solicitacao

    def _mark_resolved(self, request_id: str, admin_id: str, new_status: str) -> bool:
        """UPDATE condicional: só sai de 'pendente' uma vez, mesmo com dois admins ao mesmo tempo."""
        result = self.db.execute(
            update(SolicitacaoExclusao)
            .where(
                SolicitacaoExclusao.id == request_id,
                SolicitacaoExclusao.status == SOLICITACAO_PENDENTE,
            )
            .values(status=new_status, aprovado_por=admin_id, data_aprovacao=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _delete_servico(self, servico_id: str) -> dict | None:
        servico = self.db.get(Servico, servico_id)
        if not servico:
            return None
        snapshot = servico.to_dict()
        self.db.delete(servico)
        self.db.flush()
        return snapshot

    def decide(self, request_id: str, user: User, decision: str) -> DecisionResult:
        """
        Aprova ou rejeita uma solicitação pendente (somente admin).
        Na aprovação, apagar o serviço e marcar a solicitação acontecem na mesma
        transação: ou as duas coisas ficam gravadas, ou nenhuma.
        """
        if not can_decide(user):
            raise Forbidden("Apenas administradores podem aprovar ou rejeitar solicitações")
        if decision not in DECISIONS:
            raise ValidationFailed("Decisão deve ser 'approve' ou 'reject'")

        solicitacao = self.db.get(SolicitacaoExclusao, request_id)
        if not solicitacao or solicitacao.status != SOLICITACAO_PENDENTE:
            raise NotFound("Solicitação não encontrada ou já processada")

        new_status = SOLICITACAO_APROVADA if decision == DECISION_APPROVE else SOLICITACAO_REJEITADA
        deleted_service = None
        try:
            if not self._mark_resolved(solicitacao.id, user.id, new_status):
                raise NotFound("Solicitação não encontrada ou já processada")
            if decision == DECISION_APPROVE:
                deleted_service = self._delete_servico(solicitacao.servico_id)
            self.db.commit()
        except HTTPException:
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            logger.exception("Falha ao processar a solicitação %s; transação desfeita", request_id)
            raise

        self.db.refresh(solicitacao)
        logger.info(
            "Solicitação %s %s por %s (serviço %s)",
            solicitacao.id, new_status, user.id, solicitacao.servico_id,
        )
        return DecisionResult(solicitacao=solicitacao, decision=decision, deleted_service=deleted_service)

    def cancel(self, request_id: str, user: User) -> None:
        """Remove uma solicitação ainda pendente (quem pediu ou admin). O serviço não muda."""
        solicitacao = self.db.get(SolicitacaoExclusao, request_id)
        if not solicitacao or solicitacao.status != SOLICITACAO_PENDENTE:
            raise NotFound("Solicitação não encontrada ou já processada")
        if not can_cancel(user, solicitacao):
            raise Forbidden("Você só pode cancelar suas próprias solicitações")

        result = self.db.execute(
            delete(SolicitacaoExclusao)
            .where(
                SolicitacaoExclusao.id == request_id,
                SolicitacaoExclusao.status == SOLICITACAO_PENDENTE,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise NotFound("Solicitação não encontrada ou já processada")
        self.db.commit()
        logger.info("Solicitação %s cancelada por %s", request_id, user.id)

    def direct_delete(self, servico_id: str, user: User) -> dict:
        """Admin apaga o serviço sem passar pelo fluxo; pendências do serviço somem junto."""
        if not can_delete_directly(user):
            raise Forbidden("Apenas administradores podem excluir serviços diretamente")
        servico = self.db.get(Servico, servico_id)
        if not servico:
            raise NotFound("Serviço não encontrado")
        try:
            self.db.execute(
                delete(SolicitacaoExclusao)
                .where(
                    SolicitacaoExclusao.servico_id == servico_id,
                    SolicitacaoExclusao.status == SOLICITACAO_PENDENTE,
                )
                .execution_options(synchronize_session=False)
            )
            snapshot = self._delete_servico(servico_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("Falha ao excluir o serviço %s; transação desfeita", servico_id)
            raise
        logger.info("Serviço %s excluído diretamente por %s", servico_id, user.id)
        return snapshot

    # ------------------------------------------------------------------
    # Estatísticas
    # ------------------------------------------------------------------
    def stats(self, user: User, period: str | None = "month") -> dict:
        if not can_view_deletion_stats(user):
            raise Forbidden("Permissão insuficiente")
        period = normalize_period(period)
        since = period_start(period)

        query = self.db.query(SolicitacaoExclusao.status, func.count(SolicitacaoExclusao.id))
        if since:
            query = query.filter(SolicitacaoExclusao.data >= since)
        counts = {status: 0 for status in SOLICITACAO_STATUS}
        for status, count in query.group_by(SolicitacaoExclusao.status).all():
            counts[status] = count

        join_cond = SolicitacaoExclusao.funcionario_id == User.id
        if since:
            join_cond = and_(join_cond, SolicitacaoExclusao.data >= since)
        total_col = func.count(SolicitacaoExclusao.id)
        employee_rows = (
            self.db.query(
                User.id,
                User.nome,
                total_col,
                func.count(case((SolicitacaoExclusao.status == SOLICITACAO_PENDENTE, 1))),
                func.count(case((SolicitacaoExclusao.status == SOLICITACAO_APROVADA, 1))),
                func.count(case((SolicitacaoExclusao.status == SOLICITACAO_REJEITADA, 1))),
            )
            .outerjoin(SolicitacaoExclusao, join_cond)
            # Funcionários sempre aparecem (mesmo zerados); admins só se pediram alguma
            .filter(or_(User.role == ROLE_FUNCIONARIO, SolicitacaoExclusao.id.isnot(None)))
            .group_by(User.id, User.nome)
            .order_by(total_col.desc(), User.nome)
            .all()
        )

        return {
            "stats": {
                "total_solicitacoes": sum(counts.values()),
                "pendentes": counts[SOLICITACAO_PENDENTE],
                "aprovadas": counts[SOLICITACAO_APROVADA],
                "rejeitadas": counts[SOLICITACAO_REJEITADA],
            },
            "employee_stats": [
                {
                    "funcionario_id": user_id,
                    "funcionario_nome": nome,
                    "total_solicitacoes": total,
                    "pendentes": pendentes,
                    "aprovadas": aprovadas,
                    "rejeitadas": rejeitadas,
                }
                for user_id, nome, total, pendentes, aprovadas, rejeitadas in employee_rows
            ],
            "period": period,
        }
