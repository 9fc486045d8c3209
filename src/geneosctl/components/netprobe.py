"""Netprobe: the standard data probe."""
from __future__ import annotations

from ..instance import Instance
from ..registry import ComponentRegistry, ComponentType
from .common import legacy_aliases, tls_args


def build_command(instance: Instance) -> tuple[list[str], list[str]]:
    """Return netprobe arguments and the log file environment variable."""
    args = [instance.name, "-port", str(instance.port), *tls_args(instance)]
    return args, [f"LOG_FILENAME={instance.log_file()}"]


COMPONENT = ComponentType(
    tag="netprobe",
    aliases=("netprobe", "netprobes", "probe", "probes"),
    defaults=(
        ("binary", "netprobe.linux_64"),
        ("home", '{{ join(root, "netprobe", "netprobes", name) }}'),
        ("install", '{{ join(root, "packages", "netprobe") }}'),
        ("version", "active_prod"),
        ("program", "{{ join(install, version, binary) }}"),
        ("logfile", "netprobe.log"),
        ("libpaths", '{{ join(install, version, "lib64") }}:{{ join(install, version) }}'),
    ),
    directories=("packages/netprobe", "netprobe/netprobes"),
    settings={
        "port_range": "7036,7100-",
        "clean_list": "*.old",
        "purge_list": "netprobe.log:netprobe.txt:*.snooze:*.user_assignment",
    },
    legacy_prefix="Netp",
    legacy_aliases=legacy_aliases("Netp"),
    build_command=build_command,
)


def register(registry: ComponentRegistry) -> None:
    """Register the netprobe type."""
    registry.register(COMPONENT)
