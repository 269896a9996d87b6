"""
Cleanup link endpoint.

Digests embed ``<base>/cleanup/<token>``; opening it in a browser runs the
reconciliation and shows a short confirmation page. ``?format=json`` returns
the raw result instead.
"""

from __future__ import annotations

import html

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse, JSONResponse, Response

from inboxq.api.dependencies import get_services
from inboxq.cleanup.reconciler import INVALID_TOKEN_ERROR, CleanupResult
from inboxq.runtime.services import ServiceBundle

router = APIRouter(tags=["cleanup"])

PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>{title}</title>
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 480px; margin: 40px auto; padding: 20px; color: #333; text-align: center;">
  <h1 style="font-size: 22px;">{title}</h1>
  <p style="color: #555;">{body}</p>
</body>
</html>"""


def _status_code(result: CleanupResult) -> int:
    if result.success:
        return 200
    if result.error == INVALID_TOKEN_ERROR:
        return 404
    return 500


def render_cleanup_page(result: CleanupResult) -> str:
    if not result.success:
        title = "Cleanup failed"
        body = html.escape(result.error or "Unknown error")
    elif result.already_cleaned:
        title = "Already cleaned up"
        body = "This digest was cleaned up earlier. Nothing else to do."
    else:
        title = "All cleaned up"
        body = (
            f"Archived {result.archived}, kept {result.kept} you moved back to your inbox, "
            f"{result.deleted} no longer available."
        )
    return PAGE_TEMPLATE.format(title=title, body=body)


@router.get("/cleanup/{token}")
def cleanup(
    token: str,
    format: str | None = None,
    services: ServiceBundle = Depends(get_services),
) -> Response:
    result = services.cleanup.cleanup(token)
    status_code = _status_code(result)

    if format == "json":
        return JSONResponse(status_code=status_code, content=result.model_dump())
    return HTMLResponse(status_code=status_code, content=render_cleanup_page(result))
