"""Request-scoped access to the application's ServiceBundle."""

from __future__ import annotations

import threading

from fastapi import Request

from inboxq.runtime.services import ServiceBundle, build_services

_build_lock = threading.Lock()


def get_services(request: Request) -> ServiceBundle:
    """
    Return the bundle on app.state, building it on first use.

    Tests (or an embedding process) can set app.state.services up front.
    """
    state = request.app.state
    services = getattr(state, "services", None)
    if services is None:
        with _build_lock:
            services = getattr(state, "services", None)
            if services is None:
                services = build_services()
                state.services = services
    return services
