from .config import ContextOptions, DriverConfig, TedConfig, TedTarget
from .context import OrderedContext, install, vm
from .driver import VagrantDriver
from .errors import (
    ContextClosed,
    DriverError,
    InvalidTag,
    NotFound,
    ScriptError,
    TedError,
    UnsupportedPlatform,
)
from .tags import MachineTag

__all__ = [
    "ContextClosed",
    "ContextOptions",
    "DriverConfig",
    "DriverError",
    "InvalidTag",
    "MachineTag",
    "NotFound",
    "OrderedContext",
    "ScriptError",
    "TedConfig",
    "TedError",
    "TedTarget",
    "UnsupportedPlatform",
    "VagrantDriver",
    "install",
    "vm",
]
