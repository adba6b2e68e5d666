import json
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigFileNotFoundError, InvalidConfigError, InvalidEnvironmentError


DEFAULT_ENVIRONMENTS: Tuple[str, ...] = ("dev", "prod")
DEVELOPMENT_ENVIRONMENT = "dev"
DEFAULT_TIMEZONE = "UTC"

# Looked up in this order, first existing file wins.
CONFIG_EXTENSIONS: Tuple[str, ...] = (".yaml", ".yml", ".json")


def load_environment_file(path: Path) -> None:
    """Load a ``.env`` file into ``os.environ``.

    Variables already present in the process environment are left untouched.
    """
    if not path.is_file():
        raise ConfigFileNotFoundError(f"{path} does not exist")
    load_dotenv(path)


@dataclass(frozen=True)
class EnvironmentSettings:
    """Runtime settings read from environment variables after ``.env`` is loaded."""

    APP_ENV: Optional[str] = None
    APP_TIMEZONE: str = DEFAULT_TIMEZONE

    @classmethod
    def from_environ(cls) -> "EnvironmentSettings":
        return cls(
            APP_ENV=os.getenv("APP_ENV"),
            APP_TIMEZONE=os.getenv("APP_TIMEZONE") or DEFAULT_TIMEZONE,
        )

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == DEVELOPMENT_ENVIRONMENT

    def validate(self, available: Sequence[str]) -> None:
        if self.APP_ENV not in available:
            raise InvalidEnvironmentError(self.APP_ENV, list(available))
        try:
            ZoneInfo(self.APP_TIMEZONE)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise InvalidConfigError(f'Unknown timezone "{self.APP_TIMEZONE}"') from e


def available_environments(custom: Iterable[str] = ()) -> List[str]:
    # Deduplicate while preserving order
    result: List[str] = []
    for name in [*DEFAULT_ENVIRONMENTS, *custom]:
        if name not in result:
            result.append(name)
    return result


def apply_timezone(name: str) -> ZoneInfo:
    os.environ["TZ"] = name
    if hasattr(time, "tzset"):
        time.tzset()
    return ZoneInfo(name)


@dataclass(frozen=True)
class RouteDefinition:
    # Unnamed routes cannot be reached through url_for and are never deduplicated
    name: Optional[str]
    path: str
    handler: Any
    methods: Tuple[str, ...] = ("GET",)

    @classmethod
    def from_config(cls, raw: Any) -> "RouteDefinition":
        if isinstance(raw, RouteDefinition):
            return raw
        if not isinstance(raw, Mapping):
            raise InvalidConfigError(f"A route must be a mapping, got {type(raw).__name__}")
        if "path" not in raw or "handler" not in raw:
            raise InvalidConfigError(f"A route requires 'path' and 'handler': {dict(raw)!r}")

        methods = raw.get("methods", ("GET",))
        if isinstance(methods, str):
            methods = (methods,)
        return cls(
            name=raw.get("name") or None,
            path=raw["path"],
            handler=raw["handler"],
            methods=tuple(m.upper() for m in methods),
        )


@dataclass
class Contributions:
    """Services, parameters, listeners and routes, either declared by the
    application config or accumulated across packages."""

    services: Dict[Any, Any] = field(default_factory=dict)
    parameters: Dict[str, Any] = field(default_factory=dict)
    listeners: Dict[str, Any] = field(default_factory=dict)
    routes: List[RouteDefinition] = field(default_factory=list)


class ConfigLoader:
    """Reads the structured configuration files of a project's config directory."""

    def __init__(self, config_dir: Path):
        self.config_dir = Path(config_dir)

    def find(self, name: str) -> Path:
        for extension in CONFIG_EXTENSIONS:
            candidate = self.config_dir / f"{name}{extension}"
            if candidate.is_file():
                return candidate
        raise ConfigFileNotFoundError(
            f"No {name} configuration found in {self.config_dir} "
            f"(tried {', '.join(name + ext for ext in CONFIG_EXTENSIONS)})"
        )

    def load(self, name: str, expected: type = dict) -> Any:
        return load_config_file(self.find(name), expected)

    def environments_map(self, name: str) -> Dict[str, List[str]]:
        """Load an ordered ``reference -> [environments]`` mapping."""
        data = self.load(name)
        for reference, environments in data.items():
            if not isinstance(environments, list) or not all(isinstance(e, str) for e in environments):
                raise InvalidConfigError(
                    f"{name}: environments of '{reference}' must be a list of names"
                )
        return data

    def middlewares(self, environment: str) -> List[str]:
        return filter_by_environment(self.environments_map("middlewares"), environment)

    def packages(self) -> Dict[str, List[str]]:
        return self.environments_map("packages")

    def contributions(self) -> Contributions:
        listeners = check_listeners("listeners", self.load("listeners"))
        return Contributions(
            services=self.load("services"),
            parameters=self.load("parameters"),
            listeners=listeners,
            routes=[RouteDefinition.from_config(r) for r in self.load("routes", list)],
        )


def load_config_file(path: Path, expected: type = dict) -> Any:
    if not path.is_file():
        raise ConfigFileNotFoundError(f"{path} does not exist")

    with open(path, "r", encoding="utf-8") as f:
        if path.suffix == ".json":
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise InvalidConfigError(f"{path}: {e}") from e
        else:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise InvalidConfigError(f"{path}: {e}") from e

    # Empty files are read as empty collections
    if data is None:
        data = expected()
    if not isinstance(data, expected):
        raise InvalidConfigError(
            f"{path} must contain a {expected.__name__}, got {type(data).__name__}"
        )
    return data


def filter_by_environment(declarations: Mapping[str, Sequence[str]], environment: str) -> List[str]:
    """Keep the references enabled for ``environment``, in declaration order."""
    return [reference for reference, environments in declarations.items() if environment in environments]


def check_listeners(source: str, listeners: Any) -> Dict[str, Any]:
    """Reject listener maps whose events do not map to a list of references."""
    if not isinstance(listeners, Mapping):
        raise InvalidConfigError(f"{source}: listeners must be a mapping, got {type(listeners).__name__}")
    for event_name, references in listeners.items():
        if not isinstance(references, list):
            raise InvalidConfigError(f"{source}: '{event_name}' must map to a list")
    return dict(listeners)
