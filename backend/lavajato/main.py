# Servidor principal: FastAPI (expõe os endpoints HTTP)
import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lavajato.auth import hash_password
from lavajato.config import (
    ADMIN_EMAIL,
    ADMIN_NOME,
    ADMIN_PASSWORD,
    DATABASE_URL,
    ENV,
    get_cors_origins,
    get_env_loaded_path,
)
from lavajato.db import Database
from lavajato.models import ROLE_ADMIN, User
from lavajato.routes_auth import router as auth_router
from lavajato.routes_clientes import router as clientes_router
from lavajato.routes_dashboard import router as dashboard_router
from lavajato.routes_exclusao import router as exclusao_router
from lavajato.routes_servicos import router as servicos_router
from lavajato.routes_users import router as users_router

logger = logging.getLogger("uvicorn.error")


def _seed_admin(database: Database) -> None:
    """Cria o admin inicial (ADMIN_EMAIL/ADMIN_PASSWORD) se ainda não houver usuários."""
    if not ADMIN_EMAIL or not ADMIN_PASSWORD:
        return
    with database.session() as db:
        if db.query(User).first():
            return
        db.add(User(
            email=ADMIN_EMAIL.lower(),
            password_hash=hash_password(ADMIN_PASSWORD),
            role=ROLE_ADMIN,
            nome=ADMIN_NOME,
        ))
        db.commit()
    logger.info(f"[STARTUP] Admin inicial criado: {ADMIN_EMAIL.lower()}")


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    campo = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
    mensagem = first.get("msg", "Dados inválidos")
    return JSONResponse(
        status_code=400,
        content={
            "detail": f"{campo}: {mensagem}" if campo else mensagem,
            "errors": [
                {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
                for e in errors
            ],
        },
    )


async def _internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Erro não tratado em {request.method} {request.url.path}: {exc!r}")
    return JSONResponse(status_code=500, content={"detail": "Erro interno do servidor"})


def create_app(database_url: str | None = None) -> FastAPI:
    """Monta a aplicação. database_url sobrescreve DATABASE_URL (usado nos testes)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Ao subir o servidor: conecta no banco, cria as tabelas e o admin inicial."""
        database = Database(database_url or DATABASE_URL)
        env_path = get_env_loaded_path()
        logger.info(f"[STARTUP] .env carregado de: {env_path or '(nenhum .env encontrado)'}")
        logger.info(f"[STARTUP] DATABASE_URL (mascarada): {database.masked_url()}")

        try:
            conn_info = database.test_connection()
            logger.info(f"[STARTUP] Banco conectado: dialect={conn_info['dialect']} driver={conn_info['driver']}")
        except Exception as e:
            logger.error(f"[STARTUP] ERRO ao conectar no banco: {e}")
            raise

        database.create_all()
        logger.info("[STARTUP] Tabelas criadas/verificadas (create_all)")
        _seed_admin(database)
        app.state.database = database

        yield

        # Ao desligar: fecha o pool de conexões
        database.dispose()
        logger.info("[SHUTDOWN] Conexões com o banco encerradas")

    app = FastAPI(
        title="Lava-Jato API",
        description="Gestão de serviços de lava-jato: serviços, clientes, dashboard e aprovação de exclusões",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _internal_error_handler)

    for router in (auth_router, servicos_router, clientes_router, dashboard_router, users_router, exclusao_router):
        app.include_router(router, prefix="/api")

    @app.get("/")
    def index():
        """Mapa dos endpoints."""
        return {
            "message": "Lava-Jato API",
            "version": app.version,
            "endpoints": {
                "auth": "/api/auth",
                "services": "/api/servicos",
                "clients": "/api/clientes",
                "dashboard": "/api/dashboard",
                "users": "/api/users",
                "deletion_requests": "/api/deletion-requests",
                "health": "/api/health",
            },
        }

    @app.get("/api/health")
    def health():
        """Verifica se o servidor está no ar."""
        return {"status": "ok", "timestamp": datetime.utcnow().isoformat(), "env": ENV}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("lavajato.main:app", host="0.0.0.0", port=8000, reload=ENV != "production")
