"""FastAPI application for reading the ledger.

The app serves one tenant database, resolved through the container. Domain
errors become JSON bodies with the error's HTTP status; a contended payment
lock also gets a ``Retry-After`` hint.
"""

import time
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tax_event_ledger.api.routes import health_router, ledger_router
from tax_event_ledger.config import Settings, get_settings
from tax_event_ledger.container import get_container, reset_container
from tax_event_ledger.exceptions import (
    LockContentionError,
    PaymentLockError,
    TaxEventLedgerError,
)
from tax_event_ledger.logging_config import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
RETRY_AFTER_SECONDS = 1


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    configure_logging(settings)

    container = get_container()
    tenant = container.tenant  # opens and initializes the tenant database
    logger.info(
        "ledger_api_started",
        version=settings.app_version,
        environment=settings.environment.value,
        database_type=settings.database_type.value,
        tenant=tenant.db,
    )

    yield

    reset_container()
    logger.info("ledger_api_stopped", tenant=tenant.db)


async def request_context_middleware(request: Request, call_next):
    """Tag every log line of a request with its id, and echo the id back."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
    bind_context(request_id=request_id, path=request.url.path, method=request.method)
    started = time.perf_counter()
    try:
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        logger.debug(
            "request_completed",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return response
    finally:
        clear_context()


async def ledger_error_handler(
    request: Request, exc: TaxEventLedgerError
) -> JSONResponse:
    logger.warning(
        "ledger_request_failed",
        error_code=exc.error_code,
        message=exc.message,
        context=exc.context,
    )
    headers = None
    if isinstance(exc, (LockContentionError, PaymentLockError)):
        headers = {"Retry-After": str(RETRY_AFTER_SECONDS)}
    return JSONResponse(
        status_code=exc.status_code, content=exc.to_dict(), headers=headers
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the read-only ledger API."""
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Read-only access to invoice tax snapshots",
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.middleware("http")(request_context_middleware)
    app.add_exception_handler(TaxEventLedgerError, ledger_error_handler)
    app.include_router(health_router)
    app.include_router(ledger_router)
    return app


app = create_app()
