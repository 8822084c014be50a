import threading

from fastapi import Request

from docqa.services import Services, build_services

_build_lock = threading.Lock()


def get_services(request: Request) -> Services:
    """
    Services bundle for the running app, built on first use.
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
