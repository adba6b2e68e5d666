from typing import Any, Callable, Dict, Iterator, List, Mapping, Sequence

from .core.config import Contributions, RouteDefinition, check_listeners
from .core.container import as_definition, service_key
from .core.exceptions import ConfigurationError
from .core.merge import merge_first_wins, merge_recursive, merge_routes


class Package:
    """A pluggable unit contributing services, parameters, routes and listeners.

    Override the getters you need; each returns an empty collection by default.
    """

    def get_definitions(self) -> Dict[Any, Any]:
        return {}

    def get_parameters(self) -> Dict[str, Any]:
        return {}

    def get_routes(self) -> List[Any]:
        return []

    def get_listeners(self) -> Dict[str, List[Any]]:
        return {}


PackageFactory = Callable[[], Package]


class PackageRegistry:
    """Named package factories. The ``packages`` config refers to packages by these names."""

    def __init__(self, factories: Mapping[str, PackageFactory] | None = None):
        self._factories: Dict[str, PackageFactory] = dict(factories or {})

    def register(self, name: str, factory: PackageFactory) -> None:
        self._factories[name] = factory

    def __contains__(self, name: str) -> bool:
        return name in self._factories

    def create(self, name: str) -> Package:
        try:
            factory = self._factories[name]
        except KeyError:
            raise ConfigurationError(
                f'Unknown package "{name}". Registered packages are: {", ".join(self._factories) or "none"}'
            ) from None
        return factory()

    def enabled(self, declarations: Mapping[str, Sequence[str]], environment: str) -> Iterator[Package]:
        """Instantiate, in declaration order, the packages enabled for ``environment``.

        Disabled packages are never instantiated.
        """
        for name, environments in declarations.items():
            if environment not in environments:
                continue
            yield self.create(name)


def aggregate(base: Contributions, packages: Iterator[Package]) -> Contributions:
    """Merge package contributions into the base configuration.

    Services, parameters and routes from each package shadow what has been
    accumulated so far; listeners are merged recursively so nothing is lost.
    """
    result = Contributions(
        services=dict(base.services),
        parameters=dict(base.parameters),
        listeners=dict(base.listeners),
        routes=list(base.routes),
    )
    for package in packages:
        definitions = {service_key(key): as_definition(value) for key, value in package.get_definitions().items()}
        result.services = merge_first_wins(definitions, result.services)
        result.parameters = merge_first_wins(package.get_parameters(), result.parameters)
        listeners = check_listeners(type(package).__name__, package.get_listeners())
        result.listeners = merge_recursive(listeners, result.listeners)
        routes = [RouteDefinition.from_config(r) for r in package.get_routes()]
        result.routes = merge_routes(routes, result.routes)
    return result
