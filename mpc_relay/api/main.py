"""FastAPI application entry point."""

import logging
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

# Load environment variables before importing runtime config/services.
load_dotenv()

from mpc_relay import __version__
from mpc_relay.errors import DecodeError

from .config import Settings, settings as default_settings
from .routers import keygen, signing
from .services.message_relay import MessageRelay
from .services.session_store import SessionKind, SessionStore
from .services.transaction_stage import TransactionStage

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the coordinator app with its own, freshly constructed stores.

    Each app instance owns two independent session stores (keygen and
    signing) with separate ID spaces; nothing is shared between instances.
    """
    settings = settings or default_settings

    app = FastAPI(
        title="MPC Relay",
        description="Rendezvous and message relay for threshold key generation and signing",
        version=__version__,
    )

    keygen_store = SessionStore(SessionKind.KEYGEN, ttl_seconds=settings.session_ttl_seconds)
    signing_store = SessionStore(SessionKind.SIGNING, ttl_seconds=settings.session_ttl_seconds)

    app.state.settings = settings
    app.state.keygen_store = keygen_store
    app.state.signing_store = signing_store
    app.state.keygen_relay = MessageRelay(keygen_store, validate_sender=settings.validate_sender)
    app.state.signing_relay = MessageRelay(signing_store, validate_sender=settings.validate_sender)
    app.state.transaction_stage = TransactionStage(
        signing_store,
        idempotent_finalize=settings.idempotent_finalize,
        max_receipts=settings.max_finalize_receipts,
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Malformed JSON bodies and query values are decode errors."""
        logger.info(f"Rejected malformed request to {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=DecodeError.status_code,
            content={"detail": {"code": DecodeError.code, "message": "Invalid request"}},
        )

    # Register routers
    app.include_router(keygen.router)
    app.include_router(signing.router)

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "ok",
            "keygen_sessions": len(keygen_store),
            "signing_sessions": len(signing_store),
        }

    logger.info("=" * 80)
    logger.info("MPC Relay application created")
    logger.info(
        "Session TTL: %s, idempotent finalize: %s, validate sender: %s",
        settings.session_ttl_seconds, settings.idempotent_finalize, settings.validate_sender,
    )
    logger.info("=" * 80)

    return app


app = create_app()
