import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List

from fastapi import HTTPException
from starlette.routing import compile_path

from .config import RouteDefinition


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteMatch:
    route: RouteDefinition
    params: Dict[str, Any]


class _CompiledRoute:
    def __init__(self, definition: RouteDefinition):
        self.definition = definition
        self.regex, self.path_format, self.convertors = compile_path(definition.path)
        methods = set(definition.methods)
        if "GET" in methods:
            methods.add("HEAD")
        self.methods = methods

    def match_path(self, path: str) -> Dict[str, Any] | None:
        match = self.regex.match(path)
        if match is None:
            return None
        return {key: self.convertors[key].convert(value) for key, value in match.groupdict().items()}


class Router:
    """Ordered route table. The first route matching both path and method wins."""

    def __init__(self, routes: Iterable[RouteDefinition]):
        self._routes: List[_CompiledRoute] = [_CompiledRoute(r) for r in routes]

    @property
    def routes(self) -> List[RouteDefinition]:
        return [r.definition for r in self._routes]

    def match(self, method: str, path: str) -> RouteMatch:
        allowed: List[str] = []
        for route in self._routes:
            params = route.match_path(path)
            if params is None:
                continue
            if method.upper() in route.methods:
                return RouteMatch(route.definition, params)
            allowed.extend(m for m in sorted(route.methods) if m not in allowed)

        if allowed:
            raise HTTPException(status_code=405, detail="Method Not Allowed", headers={"Allow": ", ".join(allowed)})
        raise HTTPException(status_code=404, detail="Not Found")

    def url_for(self, name: str, **params: Any) -> str:
        for route in self._routes:
            if route.definition.name != name:
                continue
            missing = set(route.convertors) - set(params)
            if missing:
                raise ValueError(f"Missing parameters for route '{name}': {', '.join(sorted(missing))}")
            path = route.path_format
            for key, convertor in route.convertors.items():
                path = path.replace("{" + key + "}", convertor.to_string(params[key]))
            return path
        raise KeyError(f"No route named '{name}'")
