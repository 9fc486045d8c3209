"""San: a self-announcing netprobe, backed by a netprobe or fa2 install."""
from __future__ import annotations

from ..instance import Instance
from ..registry import ComponentRegistry, ComponentType
from .common import legacy_aliases, tls_args

VARIANTS = ("netprobe", "fa2")


def build_command(instance: Instance) -> tuple[list[str], list[str]]:
    """Return san arguments and the log file environment variable."""
    args = [
        instance.name,
        "-listenip",
        "none",
        "-port",
        str(instance.port),
        "-setup",
        "netprobe.setup.xml",
        "-setup-interval",
        "300",
        *tls_args(instance),
    ]
    return args, [f"LOG_FILENAME={instance.log_file()}"]


COMPONENT = ComponentType(
    tag="san",
    aliases=("san", "sans"),
    related=VARIANTS,
    seeds={"santype": "netprobe"},
    defaults=(
        (
            "binary",
            '{% if santype == "fa2" %}fix-analyser2-{% endif %}netprobe.linux_64',
        ),
        ("home", '{{ join(root, "san", "sans", name) }}'),
        ("install", '{{ join(root, "packages", santype) }}'),
        ("version", "active_prod"),
        ("program", "{{ join(install, version, binary) }}"),
        ("logfile", "san.log"),
        ("libpaths", '{{ join(install, version, "lib64") }}:{{ join(install, version) }}'),
    ),
    directories=("san/sans",),
    settings={
        "port_range": "7036,7100-",
        "clean_list": "*.old",
        "purge_list": "san.log:san.txt:*.snooze:*.user_assignment",
    },
    legacy_prefix="San",
    legacy_aliases=legacy_aliases("San", {"SanType": "santype"}),
    build_command=build_command,
)


def register(registry: ComponentRegistry) -> None:
    """Register the san type."""
    registry.register(COMPONENT)
