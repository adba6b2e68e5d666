import logging
from typing import Any, Callable, Sequence

from fastapi import Request
from fastapi.responses import Response

from .container import Container, resolve_reference
from .http import ResponseFactory, to_response


logger = logging.getLogger(__name__)

ROUTER_ID = "router"


class RequestHandler:
    """Runs a request through the middleware chain, then dispatches it to its route.

    A middleware is any callable ``(request, call_next) -> Response``. It may
    return without calling ``call_next`` to short-circuit the rest of the
    chain.
    """

    def __init__(self, container: Container, middlewares: Sequence[Any]):
        self.container = container
        self.middlewares = list(middlewares)

    def handle(self, request: Request) -> Response:
        call_next: Callable[[Request], Response] = self.dispatch
        for reference in reversed(self.middlewares):
            call_next = _link(resolve_reference(self.container, reference), call_next)
        return call_next(request)

    def dispatch(self, request: Request) -> Response:
        router = self.container.get(ROUTER_ID)
        match = router.match(request.method, request.url.path)
        request.scope["path_params"] = match.params
        request.scope["route_name"] = match.route.name

        endpoint = resolve_reference(self.container, match.route.handler)
        logger.debug(f"{request.method} {request.url.path} -> {match.route.name or match.route.path}")
        return to_response(endpoint(request), self.container.get(ResponseFactory))


def _link(middleware: Callable[[Request, Callable], Response], call_next: Callable[[Request], Response]):
    def handle(request: Request) -> Response:
        return middleware(request, call_next)

    return handle
