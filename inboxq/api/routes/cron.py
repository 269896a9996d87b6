"""
Cron trigger endpoints.

An external scheduler hits these on an interval instead of running the
daemon. Both require the cron secret when one is configured.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse

from inboxq.api.dependencies import get_services
from inboxq.infrastructure.auth import verify_cron_secret
from inboxq.observability.logging import get_logger
from inboxq.observability.telemetry import counter
from inboxq.runtime.services import ServiceBundle

logger = get_logger(__name__)

router = APIRouter(prefix="/api/cron", tags=["cron"])


def _unauthorized() -> JSONResponse:
    return JSONResponse(status_code=401, content={"error": "Unauthorized"})


def _failed(name: str, error: Exception) -> JSONResponse:
    counter(f"api.cron.{name}.error")
    logger.error("Cron %s failed: %s", name, error)
    return JSONResponse(status_code=500, content={"error": str(error)})


@router.get("/triage", response_model=None)
def cron_triage(
    authorization: str | None = Header(None),
    services: ServiceBundle = Depends(get_services),
) -> dict[str, Any] | JSONResponse:
    """Run one triage cycle (correction sweep included)."""
    if not verify_cron_secret(authorization, services.settings.cron_secret):
        return _unauthorized()

    try:
        results = services.triage.run_triage_cycle()
    except Exception as e:
        return _failed("triage", e)

    return {
        "success": True,
        "processed": len(results),
        "results": [result.to_dict() for result in results],
    }


@router.get("/digest", response_model=None)
def cron_digest(
    authorization: str | None = Header(None),
    services: ServiceBundle = Depends(get_services),
) -> dict[str, Any] | JSONResponse:
    """Generate and send the pending digest, if it has anything in it."""
    if not verify_cron_secret(authorization, services.settings.cron_secret):
        return _unauthorized()

    try:
        outcome = services.digests.generate_and_send_digest()
    except Exception as e:
        return _failed("digest", e)

    return outcome.model_dump()
