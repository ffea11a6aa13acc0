import logging
import threading
from collections import OrderedDict
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from privacy_pool import __version__
from privacy_pool.api.routes import router
from privacy_pool.config import WithdrawalConfig
from privacy_pool.errors import ValidationError, WithdrawalError
from privacy_pool.withdrawal.service import WithdrawalService

logger = logging.getLogger("privacy_pool.api")

# Prepared withdrawals held for execution; the oldest are dropped past this
DEFAULT_MAX_PENDING = 100


def _error_body(exc: WithdrawalError) -> dict:
    stage = getattr(exc.stage, "value", exc.stage)
    return {"detail": str(exc), "error": type(exc).__name__, "stage": stage}


def create_app(service: WithdrawalService | None = None, max_pending: int = DEFAULT_MAX_PENDING) -> FastAPI:
    """
    Build the REST app.

    With no `service`, one is wired from PRIVACY_POOL_* environment
    variables on startup and closed on shutdown. At most `max_pending`
    prepared withdrawals are kept for execution.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = None
        if getattr(app.state, "service", None) is None:
            config = WithdrawalConfig.from_env()
            owned = WithdrawalService.from_config(config)
            app.state.service = owned
            logger.info(f"Withdrawal service ready for pool {config.pool_address} on chain {config.chain_id}")
            if not config.account_address:
                logger.warning("PRIVACY_POOL_ACCOUNT_ADDRESS not set. Preparing withdrawals will fail.")

        yield

        if owned is not None:
            owned.close()
            app.state.service = None

    app = FastAPI(
        title="Privacy Pool Withdrawals API",
        description="REST API for preparing and submitting privacy pool withdrawals",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.prepared = OrderedDict()
    app.state.prepared_lock = threading.Lock()
    app.state.max_pending = max_pending

    # Allow CORS for easy frontend integration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content=_error_body(exc))

    @app.exception_handler(WithdrawalError)
    async def withdrawal_error_handler(request: Request, exc: WithdrawalError):
        return JSONResponse(status_code=502, content=_error_body(exc))

    @app.get("/health")
    async def health_check():
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app


app = create_app()
