import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional
from zoneinfo import ZoneInfo

from fastapi import Request
from fastapi.responses import Response

from . import app as app_context
from .app import App
from .core.config import (
    ConfigLoader,
    Contributions,
    EnvironmentSettings,
    RouteDefinition,
    apply_timezone,
    available_environments,
    load_environment_file,
)
from .core.container import Container, Factory, Value, definition_from_config
from .core.diagnostics import configure_error_reporting
from .core.events import EventDispatcher
from .core.exceptions import ExceptionHandler, is_http_exception
from .core.failure_log import FailureLog
from .core.handler import ROUTER_ID, RequestHandler
from .core.http import ResponseFactory
from .core.routing import Router
from .package import Package, PackageFactory, PackageRegistry, aggregate


logger = logging.getLogger(__name__)


class BaseKernel(ABC):
    """Boots a project from its config directory and handles requests.

    Booting happens once, from the constructor, and any failure propagates:
    there is no partially booted kernel.
    """

    VERSION = "1.0.0"
    NAME = "Pulsar"

    # Environments accepted in addition to dev and prod
    custom_environments: tuple = ()

    # Package name -> no-argument factory, referenced by the packages config
    packages: Mapping[str, PackageFactory] = {}

    container: Container
    settings: EnvironmentSettings
    timezone: ZoneInfo

    def __init__(self):
        self.middleware_collection: List[str] = []
        self.start_time: Optional[float] = None
        self.last_request_duration_ms: Optional[float] = None
        self.app = app_context.init(ConfigLoader(self.get_config_dir()).find("framework"))
        self._boot()

    @abstractmethod
    def get_project_dir(self) -> Path: ...

    @abstractmethod
    def get_cache_dir(self) -> Path: ...

    @abstractmethod
    def get_log_dir(self) -> Path: ...

    @abstractmethod
    def get_config_dir(self) -> Path: ...

    @property
    def environment(self) -> str:
        return self.settings.APP_ENV

    @property
    def debug(self) -> bool:
        return self.settings.is_development

    def get_container(self) -> Container:
        return self.container

    def handle(self, request: Request) -> Response:
        request_start = time.perf_counter()
        try:
            request_handler = RequestHandler(self.container, self.middleware_collection)
            response = request_handler.handle(request)
            if self.start_time is not None:
                self.last_request_duration_ms = (time.perf_counter() - request_start) * 1000
                logger.debug(f"{request.method} {request.url.path} handled in {self.last_request_duration_ms:.2f}ms")
            return response
        except Exception as exc:
            if not is_http_exception(exc):
                self.log(exc)

            exception_handler = self.container.get(ExceptionHandler)
            return exception_handler.render(request, exc)

    async def __call__(self, scope, receive, send):
        """ASGI entry point.

        The body is awaited up front, then the middleware chain runs
        synchronously and blocks the event loop until the response is ready.
        Concurrent requests are served by running several worker processes
        (``uvicorn --workers N``), not by interleaving requests in one loop.
        """
        if scope["type"] == "lifespan":
            while True:
                message = await receive()
                if message["type"] == "lifespan.startup":
                    await send({"type": "lifespan.startup.complete"})
                elif message["type"] == "lifespan.shutdown":
                    await send({"type": "lifespan.shutdown.complete"})
                    return

        if scope["type"] != "http":
            raise RuntimeError(f"Unsupported ASGI scope type: {scope['type']}")

        request = Request(scope, receive)
        request.state.body = await request.body()
        response = self.handle(request)
        await response(scope, receive, send)

    def log(self, exc: Exception) -> None:
        path = Path(self.get_log_dir()) / f"{self.container.get('pulsar.environment')}.log"
        logger.error(f"Unhandled exception: {str(exc)} ({type(exc).__name__})", exc_info=exc)
        FailureLog(path).write(exc)

    def load_parameters(self, parameters: Dict[str, Any]) -> Dict[str, Any]:
        parameters = dict(parameters)
        parameters["pulsar.environment"] = self.settings.APP_ENV
        parameters["pulsar.debug"] = self.debug
        parameters["pulsar.timezone"] = self.settings.APP_TIMEZONE
        parameters["pulsar.project_dir"] = str(self.get_project_dir())
        parameters["pulsar.cache_dir"] = str(self.get_cache_dir())
        parameters["pulsar.logs_dir"] = str(self.get_log_dir())
        parameters["pulsar.config_dir"] = str(self.get_config_dir())
        return {key: Value(value) for key, value in parameters.items()}

    def load_container(self, definitions: Mapping[Any, Any]) -> Container:
        return Container(definitions)

    def load_event_dispatcher(self, listeners: Mapping[str, List[Any]]) -> Factory:
        return Factory(lambda container: EventDispatcher(listeners, container))

    def load_router(self, routes: List[RouteDefinition]) -> Factory:
        return Factory(lambda container: Router(routes))

    def default_definitions(self) -> Dict[Any, Any]:
        """Services every kernel provides; the services config may override them."""
        return {
            App: Value(self.app),
            ResponseFactory: Factory(lambda container: container.get(App).get_response_factory()),
            ExceptionHandler: Factory(lambda container: ExceptionHandler(debug=container.get("pulsar.debug"))),
        }

    def _boot(self) -> None:
        load_environment_file(Path(self.get_project_dir()) / ".env")
        self.settings = EnvironmentSettings.from_environ()
        self.settings.validate(available_environments(self.custom_environments))

        self.timezone = apply_timezone(self.settings.APP_TIMEZONE)

        configure_error_reporting(self.debug)
        if self.debug:
            self.start_time = time.perf_counter()

        loader = ConfigLoader(self.get_config_dir())
        self.middleware_collection = loader.middlewares(self.environment)

        contributions = self._init_dependencies(loader)
        self.container = self.load_container({
            **self.default_definitions(),
            **self.load_parameters(contributions.parameters),
            **contributions.services,
            EventDispatcher: self.load_event_dispatcher(contributions.listeners),
            ROUTER_ID: self.load_router(contributions.routes),
        })
        logger.info(f"{self.NAME} {self.VERSION} booted in {self.environment} mode")

    def _init_dependencies(self, loader: ConfigLoader) -> Contributions:
        base = loader.contributions()
        base.services = {
            service_id: definition_from_config(service_id, raw) for service_id, raw in base.services.items()
        }
        return aggregate(base, self._get_packages(loader))

    def _get_packages(self, loader: ConfigLoader) -> List[Package]:
        registry = PackageRegistry(self.packages)
        return list(registry.enabled(loader.packages(), self.environment))


class Kernel(BaseKernel):
    """Kernel with the conventional project layout::

        <project_dir>/.env
        <project_dir>/config/
        <project_dir>/var/cache/
        <project_dir>/var/log/
    """

    def __init__(self, project_dir: str | Path):
        self.project_dir = Path(project_dir).resolve()
        super().__init__()

    def get_project_dir(self) -> Path:
        return self.project_dir

    def get_cache_dir(self) -> Path:
        return self.project_dir / "var" / "cache"

    def get_log_dir(self) -> Path:
        return self.project_dir / "var" / "log"

    def get_config_dir(self) -> Path:
        return self.project_dir / "config"
