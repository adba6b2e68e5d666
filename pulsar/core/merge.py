"""Merge policies used to combine base configuration with package contributions.

Two policies exist and they are intentionally different:

- ``merge_first_wins`` for services, parameters and routes: entries of the
  first mapping shadow same-key entries of the second one, keys keep the
  position they were first seen at.
- ``merge_recursive`` for listeners: nothing is ever dropped. Mappings are
  merged key by key, sequences are concatenated, two colliding scalars end
  up side by side in a list.

Neither function mutates its inputs.
"""

from copy import copy
from typing import Any, Dict, Iterable, List, Mapping, TypeVar

from .config import RouteDefinition


T = TypeVar("T")


def merge_first_wins(first: Mapping[Any, T], second: Mapping[Any, T]) -> Dict[Any, T]:
    result: Dict[Any, T] = dict(first)
    for key, value in second.items():
        if key not in result:
            result[key] = value
    return result


def merge_recursive(first: Mapping[str, Any], second: Mapping[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = {key: copy(value) for key, value in first.items()}
    for key, value in second.items():
        if key not in result:
            result[key] = copy(value)
            continue

        current = result[key]
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            result[key] = merge_recursive(current, value)
        else:
            result[key] = _as_list(current) + _as_list(value)
    return result


def merge_routes(first: Iterable[RouteDefinition], second: Iterable[RouteDefinition]) -> List[RouteDefinition]:
    """Concatenate two route collections, dropping later routes whose name is already taken.

    Unnamed routes are always kept, so one path may carry several routes
    that differ only by method.
    """
    seen = set()
    result: List[RouteDefinition] = []
    for route in [*first, *second]:
        if route.name is not None:
            if route.name in seen:
                continue
            seen.add(route.name)
        result.append(route)
    return result


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]
