"""Host: a remote machine record, stored like any other instance."""
from __future__ import annotations

from ..registry import ComponentRegistry, ComponentType

COMPONENT = ComponentType(
    tag="host",
    aliases=("host", "hosts", "remote", "remotes"),
    real=False,
    defaults=(
        ("home", '{{ join(root, "host", "hosts", name) }}'),
        ("hostname", "{{ name }}"),
        ("port", "22"),
        ("geneos", "{{ root }}"),
    ),
    directories=("host/hosts",),
)


def register(registry: ComponentRegistry) -> None:
    """Register the host type."""
    registry.register(COMPONENT)
