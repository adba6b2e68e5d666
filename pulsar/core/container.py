"""Service container.

Definitions are tagged: a ``Value`` is returned as is, a ``Factory`` is
called once with the container and its result shared, an ``Alias`` points
to another id. Services may be keyed by string or by class; classes are
keyed by their dotted path so ``container.get(ExceptionHandler)`` and
``container.get("pulsar.core.exceptions.ExceptionHandler")`` are the same
lookup.
"""

import inspect
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Union

from uvicorn.importer import ImportFromStringError, import_from_string

from .exceptions import CircularDependencyError, InvalidConfigError, ServiceNotFoundError


logger = logging.getLogger(__name__)

ServiceId = Union[str, type]

_PARAMETER_REFERENCE = re.compile(r"^%([^%]+)%$")


@dataclass(frozen=True)
class Value:
    value: Any


@dataclass(frozen=True)
class Factory:
    factory: Callable[["Container"], Any]


@dataclass(frozen=True)
class Alias:
    target: str


Definition = Union[Value, Factory, Alias]


def service_key(service_id: ServiceId) -> str:
    if isinstance(service_id, type):
        return f"{service_id.__module__}.{service_id.__qualname__}"
    return service_id


def as_definition(raw: Any) -> Definition:
    if isinstance(raw, (Value, Factory, Alias)):
        return raw
    if callable(raw):
        return Factory(raw)
    return Value(raw)


def definition_from_config(service_id: str, raw: Any) -> Definition:
    """Build a definition from a ``services`` config entry.

    Supported shapes::

        {"value": ...}
        {"alias": "other.service"}
        {"factory": "package.module:function"}   # called with the container
        {"class": "package.module:Class", "arguments": ["@service", "%parameter%", 3]}

    Anything else is stored as a plain value.
    """
    if not isinstance(raw, Mapping):
        return Value(raw)

    if "value" in raw:
        return Value(raw["value"])
    if "alias" in raw:
        return Alias(raw["alias"])
    if "factory" in raw:
        function = import_reference(raw["factory"])
        return Factory(function)
    if "class" in raw:
        cls = import_reference(raw["class"])
        arguments = raw.get("arguments", [])
        if not isinstance(arguments, list):
            raise InvalidConfigError(f"services: arguments of '{service_id}' must be a list")

        def build(container: "Container") -> Any:
            return cls(*[container.resolve_argument(argument) for argument in arguments])

        return Factory(build)
    return Value(dict(raw))


def import_reference(reference: str) -> Any:
    try:
        return import_from_string(reference)
    except ImportFromStringError as e:
        raise InvalidConfigError(str(e)) from e


class Container:
    def __init__(self, definitions: Mapping[ServiceId, Any] | None = None):
        self._definitions: Dict[str, Definition] = {}
        self._instances: Dict[str, Any] = {}
        self._resolving: List[str] = []
        for service_id, raw in (definitions or {}).items():
            self.set(service_id, raw)

    def set(self, service_id: ServiceId, raw: Any) -> None:
        key = service_key(service_id)
        self._definitions[key] = as_definition(raw)
        self._instances.pop(key, None)

    def has(self, service_id: ServiceId) -> bool:
        return service_key(service_id) in self._definitions

    __contains__ = has

    def get(self, service_id: ServiceId) -> Any:
        key = service_key(service_id)
        if key in self._instances:
            return self._instances[key]
        if key not in self._definitions:
            raise ServiceNotFoundError(key)
        if key in self._resolving:
            chain = self._resolving[self._resolving.index(key):] + [key]
            raise CircularDependencyError(chain)

        self._resolving.append(key)
        try:
            instance = self._build(self._definitions[key])
        finally:
            self._resolving.pop()

        self._instances[key] = instance
        return instance

    def resolve_argument(self, argument: Any) -> Any:
        """Resolve ``@service`` and ``%parameter%`` references; other values pass through."""
        if not isinstance(argument, str):
            return argument
        if argument.startswith("@@"):
            return argument[1:]
        if argument.startswith("@"):
            return self.get(argument[1:])
        match = _PARAMETER_REFERENCE.match(argument)
        if match:
            return self.get(match.group(1))
        return argument

    def _build(self, definition: Definition) -> Any:
        if isinstance(definition, Value):
            return definition.value
        if isinstance(definition, Alias):
            return self.get(definition.target)
        return definition.factory(self)


def resolve_reference(container: Container, reference: Any) -> Any:
    """Resolve a middleware, listener or route handler reference.

    Non-string references are returned unchanged. A string is looked up in
    the container first, then imported as ``module:attribute``. Imported
    classes are instantiated without arguments.
    """
    if not isinstance(reference, str):
        return reference
    if container.has(reference):
        return container.get(reference)
    if ":" not in reference:
        raise ServiceNotFoundError(reference)

    target = import_reference(reference)
    if inspect.isclass(target):
        return target()
    return target
