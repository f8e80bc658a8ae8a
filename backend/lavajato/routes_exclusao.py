# Endpoints do fluxo de exclusão: pedir, listar, decidir, cancelar, estatísticas
from typing import Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from lavajato.auth import require_admin, require_employee
from lavajato.db import get_db
from lavajato.models import User
from lavajato.pagination import MAX_LIMIT
from lavajato.workflow import DECISION_APPROVE, DeletionWorkflow

router = APIRouter(prefix="/deletion-requests", tags=["deletion-requests"])


class DeletionRequestCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    servico_id: str = Field(alias="serviceId", min_length=1)
    motivo: str | None = Field(default=None, alias="reason", max_length=1000)


class DecisionRequest(BaseModel):
    decision: Literal["approve", "reject"]


def get_workflow(db: Session = Depends(get_db)) -> DeletionWorkflow:
    return DeletionWorkflow(db)


@router.post("", status_code=201)
def create_deletion_request(
    body: DeletionRequestCreate,
    workflow: DeletionWorkflow = Depends(get_workflow),
    current_user: User = Depends(require_employee),
):
    """
    Pede a exclusão de um serviço. Funcionário só pode pedir para os próprios serviços.
    409 se já houver uma solicitação pendente para o mesmo serviço.
    """
    solicitacao = workflow.request_deletion(body.servico_id, current_user, body.motivo)
    return {
        "message": "Solicitação de exclusão enviada para aprovação",
        "request": workflow.serialize(solicitacao),
    }


@router.get("")
def list_deletion_requests(
    status: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_LIMIT),
    workflow: DeletionWorkflow = Depends(get_workflow),
    current_user: User = Depends(require_admin),
):
    """Lista as solicitações (somente admin). Sem status, lista as pendentes."""
    return workflow.list_requests(current_user, status=status, page=page, limit=limit)


@router.get("/mine")
def list_my_deletion_requests(
    status: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_LIMIT),
    workflow: DeletionWorkflow = Depends(get_workflow),
    current_user: User = Depends(require_employee),
):
    """Lista as solicitações feitas pelo usuário atual."""
    return workflow.list_requests(current_user, status=status, page=page, limit=limit, only_own=True)


@router.get("/stats")
def deletion_stats(
    period: str = "month",
    workflow: DeletionWorkflow = Depends(get_workflow),
    current_user: User = Depends(require_admin),
):
    """Contagem de solicitações por status e por funcionário (day, week, month ou total)."""
    return workflow.stats(current_user, period)


@router.get("/{request_id}")
def get_deletion_request(
    request_id: str,
    workflow: DeletionWorkflow = Depends(get_workflow),
    current_user: User = Depends(require_employee),
):
    solicitacao = workflow.get_request(request_id, current_user)
    return workflow.serialize(solicitacao)


@router.put("/{request_id}/decision")
def decide_deletion_request(
    request_id: str,
    body: DecisionRequest,
    workflow: DeletionWorkflow = Depends(get_workflow),
    current_user: User = Depends(require_admin),
):
    """
    Aprova (apaga o serviço) ou rejeita (serviço intacto) uma solicitação pendente.
    404 se a solicitação não existir ou já tiver sido processada.
    """
    result = workflow.decide(request_id, current_user, body.decision)
    if result.decision == DECISION_APPROVE:
        return {
            "message": "Solicitação aprovada e serviço excluído",
            "request": workflow.serialize(result.solicitacao),
            "deleted_service": result.deleted_service,
        }
    return {
        "message": "Solicitação rejeitada",
        "request": workflow.serialize(result.solicitacao),
    }


@router.delete("/{request_id}")
def cancel_deletion_request(
    request_id: str,
    workflow: DeletionWorkflow = Depends(get_workflow),
    current_user: User = Depends(require_employee),
):
    """Cancela uma solicitação pendente (quem pediu ou admin)."""
    workflow.cancel(request_id, current_user)
    return {"message": "Solicitação de exclusão cancelada"}
