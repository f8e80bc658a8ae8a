# Regras de permissão (papel e dono do registro) usadas por todas as rotas
from lavajato.models import ROLE_ADMIN, ROLE_FUNCIONARIO, Servico, SolicitacaoExclusao, User


def is_admin(user: User) -> bool:
    return user.role == ROLE_ADMIN


def is_funcionario(user: User) -> bool:
    return user.role == ROLE_FUNCIONARIO


def owns_servico(user: User, servico: Servico) -> bool:
    return servico.funcionario_id is not None and servico.funcionario_id == user.id


def can_manage_servico(user: User, servico: Servico) -> bool:
    """Ver/editar um serviço: admin ou o funcionário que o registrou."""
    return is_admin(user) or owns_servico(user, servico)


def can_request_deletion(user: User, servico: Servico) -> bool:
    return is_admin(user) or owns_servico(user, servico)


def can_decide(user: User) -> bool:
    """Aprovar/rejeitar solicitações é exclusivo do admin, independente de quem pediu."""
    return is_admin(user)


def can_view_request(user: User, solicitacao: SolicitacaoExclusao) -> bool:
    return is_admin(user) or solicitacao.funcionario_id == user.id


def can_cancel(user: User, solicitacao: SolicitacaoExclusao) -> bool:
    return is_admin(user) or solicitacao.funcionario_id == user.id


def can_delete_directly(user: User) -> bool:
    return is_admin(user)


def can_view_deletion_stats(user: User) -> bool:
    return is_admin(user)
