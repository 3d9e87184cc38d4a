"""Module path resolution."""

from .resolver import CORE_MODULES, is_core_module, resolve_identifier

__all__ = [
    "CORE_MODULES",
    "is_core_module",
    "resolve_identifier",
]
