"""
Shared-secret authentication for the cron endpoints.

Schedulers call the cron routes with ``Authorization: Bearer <CRON_SECRET>``.
When no secret is configured every request is allowed, which keeps local
development and the single-user daemon setup simple.
"""

from __future__ import annotations

import hmac

from inboxq.observability.logging import get_logger
from inboxq.observability.telemetry import counter

logger = get_logger(__name__)


def extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization[len("Bearer "):].strip()


def verify_cron_secret(authorization: str | None, secret: str | None) -> bool:
    """
    Check a cron request's Authorization header against the configured secret.

    Args:
        authorization: Raw Authorization header value, if any
        secret: Configured CRON_SECRET; None or empty disables the check

    Returns:
        True if the request may proceed
    """
    if not secret:
        return True

    token = extract_bearer_token(authorization)
    if token is None or not hmac.compare_digest(token, secret):
        counter("api.cron.unauthorized")
        logger.warning("Rejected cron request with missing or invalid secret")
        return False
    return True
