"""File agent: the helper that ships files for the FIX analyser."""
from __future__ import annotations

from ..instance import Instance
from ..registry import ComponentRegistry, ComponentType
from .common import legacy_aliases


def build_command(instance: Instance) -> tuple[list[str], list[str]]:
    """Return file agent arguments and the log file environment variable."""
    return [instance.name, "-port", str(instance.port)], [f"LOG_FILENAME={instance.log_file()}"]


COMPONENT = ComponentType(
    tag="fileagent",
    aliases=("fileagent", "fileagents"),
    defaults=(
        ("binary", "agent.linux_64"),
        ("home", '{{ join(root, "fileagent", "fileagents", name) }}'),
        ("install", '{{ join(root, "packages", "fileagent") }}'),
        ("version", "active_prod"),
        ("program", "{{ join(install, version, binary) }}"),
        ("logfile", "fileagent.log"),
        ("libpaths", '{{ join(install, version, "lib64") }}:{{ join(install, version) }}'),
    ),
    directories=("packages/fileagent", "fileagent/fileagents"),
    settings={
        "port_range": "7030,7100-",
        "clean_list": "*.old",
        "purge_list": "fileagent.log:fileagent.txt",
    },
    legacy_prefix="FA",
    legacy_aliases=legacy_aliases("FA"),
    build_command=build_command,
)


def register(registry: ComponentRegistry) -> None:
    """Register the file agent type."""
    registry.register(COMPONENT)
