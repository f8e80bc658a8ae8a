# Conexão com o banco de dados
# Usa SQLAlchemy para falar com o banco e psycopg3 como driver do Postgres
from fastapi import Request
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from lavajato.config import get_masked_database_url

Base = declarative_base()


def _effective_url(url: str) -> str:
    # SQLAlchemy com psycopg3 precisa da URL no formato postgresql+psycopg://
    # Se o .env tiver postgresql://, trocamos para o driver correto
    if url.startswith("postgresql://") and "+" not in url.split("?")[0]:
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


class Database:
    """
    Engine + fábrica de sessões. Criado no startup da aplicação (lifespan)
    e descartado no shutdown; os endpoints recebem sessões via get_db.
    """

    def __init__(self, url: str):
        self.url = _effective_url(url)
        kwargs = {}
        if self.url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in self.url or self.url.rstrip("/").endswith("sqlite:"):
                # Banco em memória: todas as sessões precisam da mesma conexão
                kwargs["poolclass"] = StaticPool
        else:
            kwargs["pool_pre_ping"] = True
        self.engine = create_engine(self.url, **kwargs)
        if self.url.startswith("sqlite"):
            event.listen(self.engine, "connect", _sqlite_pragmas)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def session(self) -> Session:
        return self.SessionLocal()

    def create_all(self) -> None:
        # Importa os models para registrar as tabelas no Base antes do create_all
        from lavajato import models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def test_connection(self) -> dict:
        """Executa uma consulta trivial e retorna o dialeto em uso. Usado no startup."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return {"dialect": self.engine.dialect.name, "driver": self.engine.dialect.driver}

    def masked_url(self) -> str:
        return get_masked_database_url(self.url)

    def dispose(self) -> None:
        self.engine.dispose()


def _sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_db(request: Request):
    """Retorna uma sessão do banco. Usado nos endpoints que precisam ler/escrever."""
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()
