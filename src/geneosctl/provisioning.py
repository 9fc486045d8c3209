"""Creating instances and remote hosts, and editing their persisted fields."""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from .errors import AlreadyExistsError, InvalidConfigError
from .fleet import Fleet
from .hosts import HOST_TYPE, HostRef
from .instance import Instance
from .names import split_name, validate_name
from .registry import ComponentType
from .resolver import DERIVED_FIELDS, owner_for, write_config

LOGGER = logging.getLogger(__name__)

# Fields that identify an instance and cannot be edited in place.
READ_ONLY_FIELDS = frozenset({"name", *DERIVED_FIELDS})


def add_instance(
    fleet: Fleet,
    ctype: ComponentType | str,
    name: str,
    *,
    user: str | None = None,
    port: int | None = None,
    seeds: Mapping[str, str] | None = None,
) -> Instance:
    """Create the home directory and structured configuration of a new instance.

    *name* may carry an ``@HOST`` suffix. The port is the first free port of
    the type's range unless *port* is given; ``user`` defaults to the
    configured default user.
    """
    if isinstance(ctype, str):
        ctype = fleet.registry.lookup(ctype)
    parsed = split_name(name)
    validate_name(parsed.name, fleet.reserved_names())

    instance = fleet.resolver.resolve(
        ctype, parsed.name, parsed.host, must_exist=False, seeds=seeds
    )
    if instance.exists():
        raise AlreadyExistsError(f"{instance}: already exists")

    host = instance.host
    if port is None:
        port = fleet.ports.next_free_port(host, fleet.setting(ctype, "port_range"))
        if port == 0:
            LOGGER.warning("%s: no free port in range, leaving port unset", instance)
    instance.record["port"] = port
    instance.record["user"] = user or fleet.config.default_user

    host.mkdir_all(instance.home)
    owner = owner_for(host, instance.user)
    if owner is not None:
        host.chown(instance.home, owner.uid, owner.gid)
    write_config(instance)
    LOGGER.info("%s: created in %s", instance, instance.home)
    return instance


def add_host(fleet: Fleet, name: str, url: str) -> HostRef:
    """Record a remote host reachable at ``ssh://[user@]host[:port][/root]``."""
    validate_name(name, fleet.reserved_names() | {"localhost", "local"})
    local = fleet.session.local
    ref = HostRef.from_url(
        name,
        url,
        default_user=fleet.config.default_user,
        default_root=local.root,
    )
    instance = fleet.resolver.resolve(HOST_TYPE, name, local, must_exist=False)
    if instance.exists():
        raise AlreadyExistsError(f"host {name!r} already exists")
    for key, value in ref.to_fields().items():
        instance.record[key] = value
    local.mkdir_all(instance.home)
    write_config(instance)
    LOGGER.info("added host %s (%s)", name, ref.url())
    return ref


def set_fields(instance: Instance, values: Mapping[str, str]) -> list[str]:
    """Assign *values* and persist; return the changed field names."""
    changed: list[str] = []
    for key, value in values.items():
        _check_editable(instance, key)
        previous = instance.record.get(key)
        instance.record[key] = value
        if instance.record[key] != previous:
            changed.append(key)
    if changed:
        write_config(instance)
    return changed


def add_values(instance: Instance, key: str, items: Iterable[str]) -> list[str]:
    """Append *items* to list field *key* and persist; return the items added."""
    _check_editable(instance, key)
    before = instance.record.get_list(key)
    for item in items:
        instance.record.add(key, item)
    added = [item for item in instance.record.get_list(key) if item not in before]
    if added:
        write_config(instance)
    return added


def unset_fields(instance: Instance, keys: Iterable[str]) -> list[str]:
    """Remove *keys* from the record and persist; return the keys removed."""
    removed: list[str] = []
    for key in keys:
        _check_editable(instance, key)
        if key in instance.record:
            del instance.record[key]
            removed.append(key)
    if removed:
        write_config(instance)
    return removed


def parse_assignments(pairs: Iterable[str]) -> dict[str, str]:
    """Turn ``KEY=VALUE`` arguments into a mapping."""
    values: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        key = key.strip().lower()
        if not sep or not key:
            raise InvalidConfigError(f"expected KEY=VALUE, got {pair!r}")
        values[key] = value
    return values


def _check_editable(instance: Instance, key: str) -> None:
    if key in READ_ONLY_FIELDS:
        raise InvalidConfigError(f"{instance}: field {key!r} cannot be changed")


__all__ = [
    "READ_ONLY_FIELDS",
    "add_host",
    "add_instance",
    "add_values",
    "parse_assignments",
    "set_fields",
    "unset_fields",
]
