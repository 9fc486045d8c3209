"""Built-in component types."""
from __future__ import annotations

from functools import lru_cache

from ..registry import ComponentRegistry
from . import fa2, fileagent, gateway, host, licd, netprobe, san, webserver

# Registration order is the order of "all types" operations.
MODULES = (gateway, netprobe, licd, webserver, san, fa2, fileagent, host)


def build_registry() -> ComponentRegistry:
    """Return a registry holding every built-in component type."""
    registry = ComponentRegistry()
    for module in MODULES:
        module.register(registry)
    return registry


@lru_cache(maxsize=1)
def default_registry() -> ComponentRegistry:
    """Return the process-wide registry, built on first use."""
    return build_registry()


__all__ = ["MODULES", "build_registry", "default_registry"]
