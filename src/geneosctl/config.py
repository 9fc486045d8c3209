"""Configuration loader for geneosctl.

Configuration values are layered from several sources:

1. Built-in defaults.
2. ``~/.config/geneosctl/config.yml`` (or an override path).
3. Environment variables prefixed with ``GENEOSCTL_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export GENEOSCTL_DEFAULT_USER=geneos
    export GENEOSCTL_COMPONENTS__GATEWAY__PORT_RANGE=7039,7100-

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. ``ITRS_HOME`` overrides the install root after all other
layers, ``VISUAL``/``EDITOR`` select the editor and ``SHELL`` the shell.
The resulting configuration is exposed as immutable ``dataclasses``.
"""
from __future__ import annotations

import getpass
import os
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import cast

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - import failure covered in tests
    raise RuntimeError(
        "PyYAML is required to load geneosctl configuration. Install with "
        "`pip install geneosctl` or ensure PyYAML>=6.0 is available."
    ) from exc


ENV_PREFIX = "GENEOSCTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
ROOT_ENV_VAR = "ITRS_HOME"
EDITOR_ENV_VARS = ("VISUAL", "EDITOR")
SHELL_ENV_VAR = "SHELL"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}

COMPONENT_SETTING_KEYS = {"port_range", "clean_list", "purge_list"}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class ComponentSettings:
    """Fleet-wide tunables overriding a component type's built-in values."""

    port_range: str | None = None
    clean_list: str | None = None
    purge_list: str | None = None

    def get(self, key: str) -> str | None:
        """Return the override for *key*, if configured."""
        if key not in COMPONENT_SETTING_KEYS:
            raise ConfigError(f"Unknown component setting '{key}'.")
        return cast(str | None, getattr(self, key))

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "port_range": self.port_range,
            "clean_list": self.clean_list,
            "purge_list": self.purge_list,
        }


@dataclass(frozen=True)
class SSHConfig:
    """Remote session parameters."""

    known_hosts: Path | None = None
    private_keys: tuple[str, ...] = (
        "id_rsa",
        "id_ecdsa",
        "id_ecdsa_sk",
        "id_ed25519",
        "id_ed25519_sk",
        "id_dsa",
    )
    timeout: float = 10.0

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "known_hosts": str(self.known_hosts) if self.known_hosts else None,
            "private_keys": list(self.private_keys),
            "timeout": self.timeout,
        }


@dataclass(frozen=True)
class LifecycleConfig:
    """Process control timings."""

    stop_attempts: int = 10
    stop_interval: float = 0.25
    start_settle: float = 0.25

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "stop_attempts": self.stop_attempts,
            "stop_interval": self.stop_interval,
            "start_settle": self.start_settle,
        }


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for geneosctl."""

    config_file: Path
    root: Path
    logs_dir: Path
    default_user: str
    reserved_names: tuple[str, ...]
    strict_ports: bool
    editor: str | None
    shell: str | None
    ssh: SSHConfig
    lifecycle: LifecycleConfig
    components: Mapping[str, ComponentSettings] = field(default_factory=dict)

    def component(self, tag: str) -> ComponentSettings:
        """Return overrides for component *tag* (empty when unset)."""
        return self.components.get(tag, ComponentSettings())

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "root": str(self.root),
            "logs_dir": str(self.logs_dir),
            "default_user": self.default_user,
            "reserved_names": list(self.reserved_names),
            "strict_ports": self.strict_ports,
            "editor": self.editor,
            "shell": self.shell,
            "ssh": self.ssh.to_dict(),
            "lifecycle": self.lifecycle.to_dict(),
            "components": {
                tag: settings.to_dict() for tag, settings in sorted(self.components.items())
            },
        }


DEFAULTS: dict[str, object] = {
    "config_file": "~/.config/geneosctl/config.yml",
    "root": None,  # required; ITRS_HOME or the config file supply it
    "logs_dir": "~/.local/state/geneosctl",
    "default_user": None,  # derived from the invoking user when absent
    "reserved_names": [],
    "strict_ports": False,
    "ssh": {
        "known_hosts": None,
        "private_keys": [
            "id_rsa",
            "id_ecdsa",
            "id_ecdsa_sk",
            "id_ed25519",
            "id_ed25519_sk",
            "id_dsa",
        ],
        "timeout": 10.0,
    },
    "lifecycle": {
        "stop_attempts": 10,
        "stop_interval": 0.25,
        "start_settle": 0.25,
    },
    "components": {},
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    if resolved_env.get(ROOT_ENV_VAR):
        merged["root"] = resolved_env[ROOT_ENV_VAR]

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged, resolved_env)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override).expanduser()
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR]).expanduser()
    return Path(default_path).expanduser()


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    ssh_map = _as_dict(raw.get("ssh"), "ssh")
    unknown = set(ssh_map.keys()) - {"known_hosts", "private_keys", "timeout"}
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown ssh configuration keys: {joined}.")

    lifecycle_map = _as_dict(raw.get("lifecycle"), "lifecycle")
    unknown = set(lifecycle_map.keys()) - {"stop_attempts", "stop_interval", "start_settle"}
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown lifecycle configuration keys: {joined}.")

    components_map = _as_dict(raw.get("components"), "components")
    for tag, settings in components_map.items():
        settings_map = _as_dict(settings, f"components.{tag}")
        unknown = set(settings_map.keys()) - COMPONENT_SETTING_KEYS
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown settings for component '{tag}': {joined}.")


def _build_app_config(raw: Mapping[str, object], env: Mapping[str, str]) -> AppConfig:
    config_file = _to_path(raw["config_file"])

    root_value = raw.get("root")
    if root_value in (None, ""):
        raise ConfigError(
            f"Cannot determine the install root. Set 'root' in {config_file} "
            f"or export {ROOT_ENV_VAR}."
        )
    root = _to_path(root_value)
    if not root.is_absolute():
        raise ConfigError(f"Install root must be an absolute path. Got {root}.")

    default_user_value = raw.get("default_user")
    if default_user_value in (None, ""):
        try:
            default_user = getpass.getuser()
        except (KeyError, OSError) as exc:
            raise ConfigError("Cannot determine the default user.") from exc
    else:
        default_user = str(default_user_value)

    reserved = tuple(
        str(item).strip()
        for item in _as_sequence(raw.get("reserved_names", []), "reserved_names")
        if str(item).strip()
    )

    ssh_map = _as_dict(raw.get("ssh"), "ssh")
    known_hosts_value = ssh_map.get("known_hosts")
    ssh = SSHConfig(
        known_hosts=_to_path(known_hosts_value) if known_hosts_value else None,
        private_keys=tuple(
            str(item) for item in _as_sequence(ssh_map.get("private_keys", []), "ssh.private_keys")
        ),
        timeout=_expect_positive_float(ssh_map.get("timeout"), "ssh.timeout", default=10.0),
    )

    lifecycle_map = _as_dict(raw.get("lifecycle"), "lifecycle")
    attempts = _expect_int(
        lifecycle_map.get("stop_attempts"), "lifecycle.stop_attempts", default=10
    )
    if attempts < 1:
        raise ConfigError("lifecycle.stop_attempts must be at least 1.")
    lifecycle = LifecycleConfig(
        stop_attempts=attempts,
        stop_interval=_expect_positive_float(
            lifecycle_map.get("stop_interval"), "lifecycle.stop_interval", default=0.25
        ),
        start_settle=_expect_positive_float(
            lifecycle_map.get("start_settle"), "lifecycle.start_settle", default=0.25
        ),
    )

    components: dict[str, ComponentSettings] = {}
    for tag, settings in _as_dict(raw.get("components"), "components").items():
        settings_map = _as_dict(settings, f"components.{tag}")
        components[tag] = ComponentSettings(
            port_range=_optional_str(settings_map.get("port_range")),
            clean_list=_optional_str(settings_map.get("clean_list")),
            purge_list=_optional_str(settings_map.get("purge_list")),
        )

    editor = next((env[name] for name in EDITOR_ENV_VARS if env.get(name)), None)

    return AppConfig(
        config_file=config_file,
        root=root,
        logs_dir=_to_path(raw.get("logs_dir", "~/.local/state/geneosctl")),
        default_user=default_user,
        reserved_names=reserved,
        strict_ports=_expect_bool(raw.get("strict_ports"), "strict_ports", default=False),
        editor=editor,
        shell=env.get(SHELL_ENV_VAR) or None,
        ssh=ssh,
        lifecycle=lifecycle,
        components=components,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _as_sequence(value: object, label: str) -> Sequence[object]:
    if isinstance(value, str):
        # Comma separated strings are accepted for env var convenience.
        return [item for item in value.split(",") if item.strip()]
    if isinstance(value, bytes) or not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    return value


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value)


def _expect_bool(value: object | None, label: str, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "false", "yes", "no"}:
        return value.strip().lower() in {"true", "yes"}
    raise ConfigError(f"Expected {label} to be a boolean. Got {value!r}.")


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(
            f"Expected {label} to be numeric. Got {type(value).__name__}."
        )
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "ComponentSettings",
    "ConfigError",
    "LifecycleConfig",
    "SSHConfig",
    "load_config",
]
