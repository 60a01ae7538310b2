# backend/invoicedb/main.py
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List

from alembic.config import Config
from alembic.script import ScriptDirectory
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from .database import Base, WriteSessionLocal, write_engine

from .apps.accounts.router_public import router as accounts_public_router
from .apps.accounts.router_admin import router as accounts_admin_router
from .apps.audit.router import router as audit_router
from .apps.parties.router import router as parties_router
from .apps.inventory.router import router as inventory_router
from .apps.sales import router as sales_router
from .apps.sales import public_router as sales_public_router
from .apps.payables.router import router as payables_router
from .apps.reports.router import router as reports_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "info").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

ALEMBIC_INI = Path(__file__).resolve().parents[1] / "alembic.ini"

ROUTERS = (
    accounts_public_router,
    accounts_admin_router,
    audit_router,
    parties_router,
    inventory_router,
    sales_router,
    sales_public_router,
    payables_router,
    reports_router,
)

_DEV_ORIGINS = ["http://127.0.0.1:5173", "http://localhost:5173", "http://localhost:4173"]


def _env_flag(name: str) -> bool:
    return os.getenv(name, "false").strip().lower() in {"1", "true", "yes", "on"}


def _allowed_origins() -> List[str]:
    """CORS_ALLOWED_ORIGINS, comma separated; the Vite dev ports when unset."""
    raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
    origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
    return origins or list(_DEV_ORIGINS)


def _enforce_schema_head_sync_if_configured() -> None:
    """
    With SCHEMA_STRICT on, refuse to start unless the database is stamped
    at the current Alembic head(s). Posting and numbering rely on columns
    added by migrations, so a stale schema fails loudly here instead of
    inside a document transaction.
    """
    if not _env_flag("SCHEMA_STRICT"):
        return

    heads = set(ScriptDirectory.from_config(Config(str(ALEMBIC_INI))).get_heads())
    db = WriteSessionLocal()
    try:
        current = {row[0] for row in db.execute(text("SELECT version_num FROM alembic_version")).fetchall()}
    finally:
        db.close()

    if current != heads:
        raise RuntimeError(
            f"Database schema is at {sorted(current) or 'no revision'}, expected {sorted(heads)}. "
            "Run `alembic upgrade head` before starting the API."
        )
    logger.info("Schema at Alembic head", extra={"heads": sorted(heads)})


def _on_startup() -> None:
    if _env_flag("AUTO_CREATE_SCHEMA"):
        logger.info("AUTO_CREATE_SCHEMA enabled, creating tables")
        Base.metadata.create_all(bind=write_engine)
    _enforce_schema_head_sync_if_configured()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    _on_startup()
    yield


def create_app() -> FastAPI:
    application = FastAPI(title="invoicedb API", version="1.0.0", lifespan=lifespan)

    origins = _allowed_origins()
    application.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Browsers reject credentialed requests against a wildcard origin.
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.get("/", tags=["health"])
    def read_root():
        return {"status": "ok", "service": "invoicedb"}

    @application.get("/health", tags=["health"])
    def health():
        db = WriteSessionLocal()
        try:
            db.execute(text("SELECT 1"))
            database = "ok"
        except Exception:
            logger.exception("Health check could not reach the database")
            database = "unavailable"
        finally:
            db.close()
        return {"status": "ok" if database == "ok" else "degraded", "database": database}

    for router in ROUTERS:
        application.include_router(router)
    return application


app = create_app()
