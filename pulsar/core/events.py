import logging
from typing import Any, Dict, List, Mapping, Sequence

from .container import Container, resolve_reference


logger = logging.getLogger(__name__)


class Event:
    """Base class for dispatchable events. Listeners may stop propagation."""

    _propagation_stopped = False

    def stop_propagation(self) -> None:
        self._propagation_stopped = True

    def is_propagation_stopped(self) -> bool:
        return self._propagation_stopped


def event_name(event: Any) -> str:
    name = getattr(event, "name", None)
    if isinstance(name, str):
        return name
    cls = type(event)
    return f"{cls.__module__}.{cls.__qualname__}"


class EventDispatcher:
    def __init__(self, listeners: Mapping[str, Sequence[Any]], container: Container):
        self._listeners: Dict[str, List[Any]] = {name: list(refs) for name, refs in listeners.items()}
        self._container = container

    def get_listeners(self, name: str) -> List[Any]:
        return [resolve_reference(self._container, ref) for ref in self._listeners.get(name, [])]

    def dispatch(self, event: Any) -> Any:
        name = event_name(event)
        for listener in self.get_listeners(name):
            if _is_stopped(event):
                logger.debug(f"Propagation of {name} stopped")
                break
            listener(event)
        return event


def _is_stopped(event: Any) -> bool:
    is_stopped = getattr(event, "is_propagation_stopped", None)
    return bool(is_stopped()) if callable(is_stopped) else False
