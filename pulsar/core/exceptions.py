import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException


logger = logging.getLogger(__name__)


class PulsarError(Exception):
    """Base class for every error raised by the framework itself."""


class ConfigurationError(PulsarError):
    """Raised at boot or init time when the project configuration is unusable."""


class InvalidEnvironmentError(ConfigurationError, ValueError):
    def __init__(self, environment: Optional[str], available: list[str]):
        joined = '", "'.join(available)
        super().__init__(
            f'The env "{environment}" does not exist. Defined environments are: "{joined}".'
        )
        self.environment = environment
        self.available = available


class ConfigFileNotFoundError(ConfigurationError, FileNotFoundError):
    pass


class InvalidConfigError(ConfigurationError):
    pass


class InvalidAppOptionError(ConfigurationError):
    pass


class AppNotInitializedError(PulsarError, RuntimeError):
    pass


class ServiceNotFoundError(PulsarError, KeyError):
    def __init__(self, service_id: str):
        super().__init__(service_id)
        self.service_id = service_id

    def __str__(self) -> str:
        return f'Service "{self.service_id}" is not defined'


class CircularDependencyError(PulsarError):
    def __init__(self, chain: list[str]):
        super().__init__(f"Circular dependency detected: {' -> '.join(chain)}")
        self.chain = chain


def is_http_exception(exc: BaseException) -> bool:
    """HTTP exceptions are expected, user-facing failures and are never logged as faults."""
    return isinstance(exc, HTTPException)


class ExceptionHandler:
    """Turns any exception escaping the middleware chain into a response.

    ``render`` must never raise: it is the last line between a failing
    request and the client.
    """

    def __init__(self, debug: bool = False):
        self.debug = debug

    def render(self, request: Request, exc: BaseException) -> Response:
        if isinstance(exc, HTTPException):
            return JSONResponse(
                status_code=exc.status_code,
                content={"detail": exc.detail},
                headers=getattr(exc, "headers", None),
            )

        content: Dict[str, Any] = {"detail": "Internal server error"}
        if self.debug:
            content["exception"] = {
                "type": type(exc).__name__,
                "message": str(exc),
                "trace": traceback.format_exception(type(exc), exc, exc.__traceback__),
            }
        return JSONResponse(status_code=500, content=content)
