"""FastAPI application factory and dependency injection setup."""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from fund_ledger.api.routes import (
    account_router,
    custom_report_router,
    entity_router,
    fund_router,
    health_router,
    import_router,
    inter_entity_router,
    journal_line_router,
    journal_router,
    query_router,
    report_router,
)
from fund_ledger.config import get_settings
from fund_ledger.container import get_container, reset_container
from fund_ledger.exceptions import FundLedgerError, ValidationError
from fund_ledger.logging_config import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

ROUTERS = (
    health_router,
    entity_router,
    account_router,
    fund_router,
    journal_router,
    journal_line_router,
    inter_entity_router,
    report_router,
    custom_report_router,
    query_router,
    import_router,
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure logging and open the ledger database for the app's lifetime.

    Import jobs still running in background tasks at shutdown are left in
    ``processing``; their unit of work never commits.
    """
    settings = get_settings()
    configure_logging(settings)

    container = get_container()
    database = container.database
    logger.info(
        "application_started",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment.value,
        database=type(database).__name__,
        import_job_store=settings.import_job_store.value,
    )

    yield

    reset_container()
    logger.info("application_stopped")


async def log_request_middleware(request: Request, call_next):
    """Bind a request id to every log event emitted while serving a request.

    A caller-supplied ``X-Request-ID`` is reused so imports started over the
    API can be traced end to end; the id is echoed on the response.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
    bind_context(request_id=request_id, path=request.url.path, method=request.method)

    try:
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        logger.debug("request_completed", status_code=response.status_code)
        return response
    finally:
        clear_context()


async def ledger_error_handler(request: Request, exc: FundLedgerError) -> JSONResponse:
    """Render domain exceptions as JSON with their HTTP status."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "request_failed",
        error_code=exc.error_code,
        message=exc.message,
        context=exc.context,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render malformed request bodies in the same envelope as domain errors."""
    errors = jsonable_encoder(exc.errors())
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=ValidationError.status_code,
        content=ValidationError(
            f"{location}: {message}" if location else message,
            context={"errors": errors},
        ).to_dict(),
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Multi-entity fund accounting ledger for nonprofit organizations",
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.middleware("http")(log_request_middleware)
    app.add_exception_handler(FundLedgerError, ledger_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(
        RequestValidationError, request_validation_handler  # type: ignore[arg-type]
    )

    for router in ROUTERS:
        app.include_router(router)

    return app


# Create app instance for uvicorn
app = create_app()
