"""
IDLHub Verifier - FastAPI application

Run:
    uvicorn main:app --port 8000
"""
from contextlib import asynccontextmanager
import logging

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI

from infrastructure.config import get_config
from infrastructure.errors import register_exception_handlers
from infrastructure.ledger import LedgerGateway
from data_sources.arweave import ArweaveClient
from services.idl_verifier import IdlVerifier
from services.verification_history import VerificationHistory
from api.status_router import router as status_router
from sentry_config import init_sentry

logger = logging.getLogger("Main")


def build_verifier() -> IdlVerifier:
    """Wire the verifier from the current configuration."""
    cfg = get_config()
    return IdlVerifier(
        gateway=LedgerGateway(cfg.ledger),
        history=VerificationHistory(cfg.verification, cfg.storage),
        artifact_store=ArweaveClient(cfg.storage),
        verification_config=cfg.verification,
    )


def create_app(verifier: IdlVerifier = None) -> FastAPI:
    cfg = get_config()
    logging.getLogger().setLevel(cfg.monitoring.log_level)
    init_sentry(cfg.monitoring)

    verifier = verifier or build_verifier()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.verifier.history.load()
        yield
        await app.state.verifier.close()

    app = FastAPI(title="IDLHub Verifier", version="1.0.0", lifespan=lifespan)
    app.state.verifier = verifier

    register_exception_handlers(app)
    app.include_router(status_router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "environment": cfg.environment.value}

    logger.info(f"IDLHub verifier ready ({cfg.environment.value})")
    return app


app = create_app()
