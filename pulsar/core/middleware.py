import logging
import time
from typing import Callable, Iterable, List

from fastapi import Request
from fastapi.responses import Response


logger = logging.getLogger(__name__)

CallNext = Callable[[Request], Response]


def allowed_origins(raw: str | Iterable[str]) -> List[str]:
    """Parse a comma-separated origin list (or any iterable of origins)."""
    items = raw.split(",") if isinstance(raw, str) else list(raw)
    # Deduplicate while preserving order
    seen = set()
    result: List[str] = []
    for origin in (o.strip() for o in items):
        if origin and origin not in seen:
            seen.add(origin)
            result.append(origin)
    return result


class CorsHeaders:
    def __init__(self, origins: str | Iterable[str] = "http://localhost:3000"):
        self.origins = allowed_origins(origins)

    def __call__(self, request: Request, call_next: CallNext) -> Response:
        response = call_next(request)
        origin = request.headers.get("origin")
        if origin and origin in self.origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "*"
        return response


def log_requests(request: Request, call_next: CallNext) -> Response:
    """Log slow or failed requests, tagged with the caller's request id when it sends one.

    The duration in seconds is left on ``request.state.duration`` and the id
    on ``request.state.request_id``.
    """
    start_time = time.perf_counter()
    request_id = request.headers.get("x-request-id") or f"{int(time.time() * 1000)}-{id(request)}"
    request.state.request_id = request_id

    try:
        response = call_next(request)
        process_time = time.perf_counter() - start_time
        request.state.duration = process_time
        # Only log slow requests (>1s) or errors
        if process_time > 1.0 or response.status_code >= 400:
            logger.info(f"[{request_id}] {request.method} {request.url.path} - {response.status_code} - {process_time:.2f}s")
        return response
    except Exception as e:
        process_time = time.perf_counter() - start_time
        request.state.duration = process_time
        logger.error(f"[{request_id}] {request.method} {request.url.path} - ERROR: {str(e)} - {process_time:.2f}s")
        raise
