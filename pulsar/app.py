"""Request and response factories shared by the framework.

An ``App`` is built from the project's ``framework`` config file, which maps
exactly two options to import strings::

    server_request: pulsar.core.http:request_from_environ
    response_factory: pulsar.core.http:ResponseFactory

Each option must name a callable. It is invoked once at init time to check
what it produces: ``server_request`` must return a ``Request`` and
``response_factory`` an object with a ``create_response`` method.

The kernel keeps its ``App`` explicitly and registers it in the container.
``init``/``current`` expose one process-wide instance for code that is
not handed one.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from fastapi import Request

from .core.config import load_config_file
from .core.container import import_reference
from .core.exceptions import (
    AppNotInitializedError,
    ConfigFileNotFoundError,
    InvalidAppOptionError,
    InvalidConfigError,
)
from .core.http import ResponseFactory


logger = logging.getLogger(__name__)


def _is_server_request(value: Any) -> bool:
    return isinstance(value, Request)


def _is_response_factory(value: Any) -> bool:
    return callable(getattr(value, "create_response", None))


OPTIONS: Dict[str, Callable[[Any], bool]] = {
    "server_request": _is_server_request,
    "response_factory": _is_response_factory,
}


class App:
    def __init__(self, options: Mapping[str, Any]):
        self._options = resolve_options(options)

    @classmethod
    def from_file(cls, path: str | Path) -> "App":
        path = Path(path)
        if not path.is_file():
            raise ConfigFileNotFoundError(f"{path} does not exist")
        try:
            options = load_config_file(path)
        except InvalidConfigError as e:
            raise InvalidAppOptionError(str(e)) from e
        return cls(options)

    def create_server_request(self) -> Request:
        return self._options["server_request"]()

    def get_response_factory(self) -> ResponseFactory:
        return self._options["response_factory"]()


def resolve_options(options: Mapping[str, Any]) -> Dict[str, Callable[[], Any]]:
    unknown = set(options) - set(OPTIONS)
    if unknown:
        raise InvalidAppOptionError(
            f"Unknown option(s) {', '.join(sorted(unknown))}. Valid options are: {', '.join(OPTIONS)}"
        )

    resolved: Dict[str, Callable[[], Any]] = {}
    for name, validator in OPTIONS.items():
        if name not in options:
            raise InvalidAppOptionError(f'The required option "{name}" is missing')

        value = options[name]
        if isinstance(value, str):
            try:
                value = import_reference(value)
            except InvalidConfigError as e:
                raise InvalidAppOptionError(f'Option "{name}": {e}') from e
        if not callable(value):
            raise InvalidAppOptionError(f'Option "{name}" must be callable')
        if not validator(value()):
            raise InvalidAppOptionError(f'Option "{name}" does not produce a valid value')
        resolved[name] = value
    return resolved


_instance: Optional[App] = None


def init(path: str | Path) -> App:
    """Load ``path`` and install the result as the process-wide ``App``."""
    global _instance
    app = App.from_file(path)
    if _instance is not None:
        logger.warning(f"App already initialized, replacing it with {path}")
    _instance = app
    return app


def current() -> App:
    if _instance is None:
        raise AppNotInitializedError("Please call init() before using the App")
    return _instance


def create_server_request() -> Request:
    return current().create_server_request()


def get_response_factory() -> ResponseFactory:
    return current().get_response_factory()
