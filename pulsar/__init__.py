"""Pulsar: bootstrap kernel for small web applications."""

from .app import App
from .core.container import Alias, Container, Factory, Value
from .core.events import Event, EventDispatcher
from .core.exceptions import ExceptionHandler
from .kernel import BaseKernel, Kernel
from .package import Package, PackageRegistry

__version__ = BaseKernel.VERSION

__all__ = [
    "Alias",
    "App",
    "BaseKernel",
    "Container",
    "Event",
    "EventDispatcher",
    "ExceptionHandler",
    "Factory",
    "Kernel",
    "Package",
    "PackageRegistry",
    "Value",
]
