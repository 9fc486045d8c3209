"""Helpers shared by the component type modules."""
from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..instance import Instance

_LEGACY_SUFFIXES = {
    "home": "home",
    "bins": "install",
    "base": "version",
    "exec": "program",
    "logd": "logdir",
    "logf": "logfile",
    "port": "port",
    "libs": "libpaths",
    "user": "user",
    "opts": "options",
    "cert": "certificate",
    "key": "privatekey",
}


def legacy_aliases(prefix: str, extra: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return lower-cased legacy key to field mappings for *prefix*."""
    aliases = {
        f"{prefix}{suffix}".lower(): field_name
        for suffix, field_name in _LEGACY_SUFFIXES.items()
    }
    aliases["binsuffix"] = "binary"
    for key, field_name in (extra or {}).items():
        aliases[key.lower()] = field_name
    return aliases


def tls_args(instance: Instance) -> list[str]:
    """Return ``-secure`` certificate options for probe-style components."""
    args: list[str] = []
    certificate = instance.record.get_str("certificate")
    privatekey = instance.record.get_str("privatekey")
    if certificate:
        args.extend(["-secure", "-ssl-certificate", certificate])
    if privatekey:
        args.extend(["-ssl-certificate-key", privatekey])
    return args


__all__ = ["legacy_aliases", "tls_args"]
