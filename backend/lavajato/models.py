# Modelos das tabelas do banco (cada classe = uma tabela)
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from lavajato.db import Base

ROLE_ADMIN = "admin"
ROLE_FUNCIONARIO = "funcionario"
ROLES = (ROLE_ADMIN, ROLE_FUNCIONARIO)

SERVICO_EM_ANDAMENTO = "em_andamento"
SERVICO_FINALIZADO = "finalizado"
SERVICO_STATUS = (SERVICO_EM_ANDAMENTO, SERVICO_FINALIZADO)

SOLICITACAO_PENDENTE = "pendente"
SOLICITACAO_APROVADA = "aprovada"
SOLICITACAO_REJEITADA = "rejeitada"
SOLICITACAO_STATUS = (SOLICITACAO_PENDENTE, SOLICITACAO_APROVADA, SOLICITACAO_REJEITADA)


def new_id() -> str:
    return str(uuid.uuid4())


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class User(Base):
    """Tabela users: usuários do sistema (admin ou funcionário)."""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=ROLE_FUNCIONARIO)
    nome: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "nome": self.nome,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Servico(Base):
    """Tabela servicos: um registro por lavagem (transação do lava-jato)."""
    __tablename__ = "servicos"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    carro: Mapped[str] = mapped_column(String(120), nullable=False)
    placa: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    nome_cliente: Mapped[str] = mapped_column(String(255), nullable=False)
    telefone: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    servico: Mapped[str] = mapped_column(String(120), nullable=False)
    valor: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SERVICO_EM_ANDAMENTO)
    funcionario_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    # Marcador legado; o fluxo de exclusão não escreve mais nele
    aprovacao_exclusao: Mapped[str | None] = mapped_column(String(20), nullable=True)
    data: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self, funcionario_nome: str | None = None) -> dict:
        data = {
            "id": self.id,
            "carro": self.carro,
            "placa": self.placa,
            "nome_cliente": self.nome_cliente,
            "telefone": self.telefone,
            "servico": self.servico,
            "valor": float(self.valor),
            "status": self.status,
            "funcionario_id": self.funcionario_id,
            "aprovacao_exclusao": self.aprovacao_exclusao,
            "data": _iso(self.data),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if funcionario_nome is not None:
            data["funcionario_nome"] = funcionario_nome
        return data


class Cliente(Base):
    """Tabela clientes: um registro por telefone (preenchido ao cadastrar serviços)."""
    __tablename__ = "clientes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    nome: Mapped[str] = mapped_column(String(255), nullable=False)
    telefone: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "nome": self.nome,
            "telefone": self.telefone,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class SolicitacaoExclusao(Base):
    """
    Tabela solicitacoes_exclusao: pedido de um funcionário para excluir um serviço.
    servico_id não é FK: a solicitação aprovada continua existindo depois que o
    serviço é apagado, e os campos do serviço ficam copiados aqui.
    """
    __tablename__ = "solicitacoes_exclusao"
    __table_args__ = (
        # No máximo uma solicitação pendente por serviço
        Index(
            "uq_solicitacao_pendente_por_servico",
            "servico_id",
            unique=True,
            postgresql_where=text("status = 'pendente'"),
            sqlite_where=text("status = 'pendente'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    servico_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    funcionario_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    motivo: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SOLICITACAO_PENDENTE, index=True)
    data: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    aprovado_por: Mapped[str | None] = mapped_column(String(36), nullable=True)
    data_aprovacao: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    # Cópia do serviço no momento do pedido
    carro: Mapped[str | None] = mapped_column(String(120), nullable=True)
    placa: Mapped[str | None] = mapped_column(String(10), nullable=True)
    nome_cliente: Mapped[str | None] = mapped_column(String(255), nullable=True)
    servico: Mapped[str | None] = mapped_column(String(120), nullable=True)
    valor: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    def to_dict(self, funcionario_nome: str | None = None, aprovado_por_nome: str | None = None) -> dict:
        return {
            "id": self.id,
            "servico_id": self.servico_id,
            "funcionario_id": self.funcionario_id,
            "funcionario_nome": funcionario_nome,
            "motivo": self.motivo,
            "status": self.status,
            "data": _iso(self.data),
            "aprovado_por": self.aprovado_por,
            "aprovado_por_nome": aprovado_por_nome,
            "data_aprovacao": _iso(self.data_aprovacao),
            "carro": self.carro,
            "placa": self.placa,
            "nome_cliente": self.nome_cliente,
            "servico": self.servico,
            "valor": float(self.valor) if self.valor is not None else None,
        }
