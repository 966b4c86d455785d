from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from credits_api.core.settings import settings
from credits_api.db.session import async_session
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .services.errors import ServiceError
from .workers import LedgerReconciliationWorker


APP_VERSION = "0.1.0"


def _session_factory():
    return async_session()


@asynccontextmanager
async def lifespan(app: FastAPI):
    reconciliation_worker = LedgerReconciliationWorker(
        session_factory=_session_factory,
        interval_seconds=settings.ledger_reconciliation_interval_seconds,
        batch_size=settings.ledger_reconciliation_batch_size,
    )
    app.state.ledger_reconciliation_worker = reconciliation_worker

    reconciliation_enabled = settings.ledger_reconciliation_worker_enabled
    if reconciliation_enabled:
        reconciliation_worker.start()
        logger.info(
            "Ledger reconciliation worker enabled",
            interval_seconds=reconciliation_worker.interval_seconds,
            batch_size=settings.ledger_reconciliation_batch_size,
        )
    else:
        logger.info(
            "Ledger reconciliation worker disabled",
            reason="ledger_reconciliation_worker_enabled is false",
        )

    try:
        yield
    finally:
        if reconciliation_enabled and reconciliation_worker.is_running:
            await reconciliation_worker.stop()


async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("Request failed", path=request.url.path, kind=exc.kind, error=exc.message)
    else:
        logger.info("Request rejected", path=request.url.path, kind=exc.kind)
    return JSONResponse(status_code=exc.http_status, content={"success": False, "error": exc.as_dict()})


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}" for error in exc.errors()
    )
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": {"kind": "validation_failed", "message": problems or "Invalid request"}},
    )


def create_app() -> FastAPI:
    """Application factory for the credits FastAPI service."""
    configure_logging(
        service_name="credits-api",
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
    )

    app = FastAPI(
        title="Credits API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="credits-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
