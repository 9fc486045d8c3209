"""Licd: the license daemon."""
from __future__ import annotations

from ..instance import Instance
from ..registry import ComponentRegistry, ComponentType
from .common import legacy_aliases, tls_args


def build_command(instance: Instance) -> tuple[list[str], list[str]]:
    """Return licd arguments."""
    args = [
        instance.name,
        "-port",
        str(instance.port),
        "-log",
        instance.log_file(),
        *tls_args(instance),
    ]
    return args, []


COMPONENT = ComponentType(
    tag="licd",
    aliases=("licd", "licds"),
    defaults=(
        ("binary", "licd.linux_64"),
        ("home", '{{ join(root, "licd", "licds", name) }}'),
        ("install", '{{ join(root, "packages", "licd") }}'),
        ("version", "active_prod"),
        ("program", "{{ join(install, version, binary) }}"),
        ("logfile", "licd.log"),
        ("libpaths", '{{ join(install, version, "lib64") }}'),
    ),
    directories=("packages/licd", "licd/licds"),
    settings={
        "port_range": "7041,7100-",
        "clean_list": "*.old",
        "purge_list": "licd.log:licd.txt",
    },
    legacy_prefix="Licd",
    legacy_aliases=legacy_aliases("Licd"),
    build_command=build_command,
)


def register(registry: ComponentRegistry) -> None:
    """Register the licd type."""
    registry.register(COMPONENT)
