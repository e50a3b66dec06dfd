"""Procside: process-first documentation of agent work, narrated as structured updates."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("procside")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from procside.models import Process, ProcessUpdate
from procside.parser import format_update_block, parse_all_updates
from procside.reducer import apply_update
from procside.registry import ProcessRegistryStore

__all__ = [
    "Process",
    "ProcessRegistryStore",
    "ProcessUpdate",
    "__version__",
    "apply_update",
    "format_update_block",
    "parse_all_updates",
]
