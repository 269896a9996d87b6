"""
HTTP surface for deployments driven by an external scheduler.

Routes: /health, /api/cron/triage, /api/cron/digest and /cleanup/{token}.
The ServiceBundle is built lazily on the first request that needs it (see
api.dependencies), so the app imports without any mailbox configuration.
"""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from inboxq.api.routes.cleanup import router as cleanup_router
from inboxq.api.routes.cron import router as cron_router
from inboxq.api.routes.health import router as health_router
from inboxq.config import APP_VERSION
from inboxq.infrastructure.env import ensure_env_loaded
from inboxq.infrastructure.errors import ConfigurationError, InboxQError
from inboxq.observability.logging import get_logger
from inboxq.observability.telemetry import counter, log_event

logger = get_logger(__name__)

app = FastAPI(title="InboxQ API", version=APP_VERSION)
app.include_router(health_router)
app.include_router(cron_router)
app.include_router(cleanup_router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """422 listing the offending fields without echoing their values."""
    errors = exc.errors()
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, errors)
    counter("api.validation_errors")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "Invalid request",
            "invalid_fields": [str(err["loc"][-1]) for err in errors],
        },
    )


@app.exception_handler(InboxQError)
async def inboxq_exception_handler(request: Request, exc: InboxQError) -> JSONResponse:
    """
    Errors that escape a route, typically while building the ServiceBundle.

    Missing configuration is a 503 (the process is up but cannot serve);
    anything else from the mailstore or classifier is a 502.
    """
    code = (
        status.HTTP_503_SERVICE_UNAVAILABLE
        if isinstance(exc, ConfigurationError)
        else status.HTTP_502_BAD_GATEWAY
    )
    counter(f"api.error.{type(exc).__name__}")
    logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=code, content={"error": str(exc)})


def main() -> None:
    """Console entry point: load .env and serve with uvicorn."""
    import uvicorn

    ensure_env_loaded()
    from inboxq.config import API_HOST, API_PORT

    log_event("api.startup", version=APP_VERSION, host=API_HOST, port=API_PORT)
    uvicorn.run("inboxq.api.app:app", host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    main()
