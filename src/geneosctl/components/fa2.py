"""FA2: the FIX analyser netprobe."""
from __future__ import annotations

from ..instance import Instance
from ..registry import ComponentRegistry, ComponentType
from .common import legacy_aliases, tls_args


def build_command(instance: Instance) -> tuple[list[str], list[str]]:
    """Return fa2 arguments and the log file environment variable."""
    args = [instance.name, "-port", str(instance.port), *tls_args(instance)]
    return args, [f"LOG_FILENAME={instance.log_file()}"]


COMPONENT = ComponentType(
    tag="fa2",
    aliases=("fa2", "fixanalyser", "fixanalyzer", "fixanalyser2-netprobe"),
    defaults=(
        ("binary", "fix-analyser2-netprobe.linux_64"),
        ("home", '{{ join(root, "fa2", "fa2s", name) }}'),
        ("install", '{{ join(root, "packages", "fa2") }}'),
        ("version", "active_prod"),
        ("program", "{{ join(install, version, binary) }}"),
        ("logfile", "fa2.log"),
        ("libpaths", '{{ join(install, version, "lib64") }}:{{ join(install, version) }}'),
    ),
    directories=("packages/fa2", "fa2/fa2s"),
    settings={
        "port_range": "7030,7100-",
        "clean_list": "*.old",
        "purge_list": "fa2.log:fa2.txt:*.snooze:*.user_assignment",
    },
    legacy_prefix="FA2",
    legacy_aliases=legacy_aliases("FA2"),
    build_command=build_command,
)


def register(registry: ComponentRegistry) -> None:
    """Register the fa2 type."""
    registry.register(COMPONENT)
