"""Configuration resolution: from a component type and a name to an instance.

Resolution seeds a record with the host's install root and the instance
name, evaluates the type's default expressions in declaration order and then
overlays whatever is persisted in ``home/<type>.json``. When only a legacy
``home/<type>.rc`` file exists it is parsed, written out in the structured
form and renamed to ``<type>.rc.orig``; that migration happens once.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Mapping

from .errors import InvalidConfigError, NotFoundError
from .expressions import apply_defaults
from .hosts import FleetSession, Host, UserIds
from .instance import Instance
from .names import split_name
from .records import ConfigRecord
from .registry import ComponentRegistry, ComponentType

LOGGER = logging.getLogger(__name__)

STRUCTURED_MODE = 0o664
LEGACY_SUFFIX = ".orig"

# Derived from root, type and name; persisted values never replace them.
DERIVED_FIELDS = ("root", "home")


def parse_legacy(
    text: str,
    ctype: ComponentType,
    *,
    source: str = "",
) -> tuple[dict[str, str], list[str]]:
    """Parse a legacy ``KEY=VALUE`` file.

    Returns the recognised fields and the remaining ``KEY=VALUE`` entries
    destined for the process environment.
    """
    fields: dict[str, str] = {}
    env: list[str] = []
    prefix = ctype.legacy_prefix
    for number, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            raise InvalidConfigError(f"{source}:{number}: malformed line {raw_line!r}")
        value = value.strip().strip('"')
        alias = ctype.legacy_aliases.get(key.lower())
        if alias is not None:
            fields[alias] = value
        elif prefix and key.startswith(prefix):
            fields[key[len(prefix):].lower()] = value
        else:
            env.append(f"{key}={value}")
    return fields, env


def owner_for(host: Host, user: str) -> UserIds | None:
    """Return the account files should be chowned to, when running privileged."""
    if not user or not host.is_superuser():
        return None
    try:
        return host.lookup_user(user)
    except KeyError:
        LOGGER.warning("%s: unknown user %r, leaving ownership unchanged", host.name, user)
        return None


def write_config(instance: Instance) -> None:
    """Persist *instance*'s record atomically as ``home/<type>.json``."""
    payload = json.dumps(instance.record.to_dict(), indent=4) + "\n"
    instance.host.write_atomic(
        instance.structured_path,
        payload.encode("utf-8"),
        mode=STRUCTURED_MODE,
        owner=owner_for(instance.host, instance.user),
    )
    LOGGER.debug("%s: wrote %s", instance, instance.structured_path)


class ConfigResolver:
    """Turn ``(type, name)`` pairs into :class:`Instance` objects."""

    def __init__(self, session: FleetSession, registry: ComponentRegistry) -> None:
        """Bind the resolver to a fleet session and type registry."""
        self.session = session
        self.registry = registry

    def defaults(
        self,
        ctype: ComponentType,
        name: str,
        host: Host,
        *,
        seeds: Mapping[str, str] | None = None,
    ) -> ConfigRecord:
        """Return a record holding only seeds and evaluated defaults."""
        record = ConfigRecord(int_fields=ctype.int_fields, list_fields=ctype.list_fields)
        record["root"] = host.root
        record["name"] = name
        for key, value in {**ctype.seeds, **(seeds or {})}.items():
            record[key] = value
        apply_defaults(record, ctype.defaults, label=f"{ctype.tag}:{name}@{host.name}")
        return record

    def instance_names(self, ctype: ComponentType, host: Host) -> list[str]:
        """Return the names of every instance directory of *ctype* on *host*."""
        parent = ctype.instances_dir(host.root)
        try:
            entries = host.list_dir(parent)
        except FileNotFoundError:
            return []
        return [
            entry
            for entry in entries
            if not entry.startswith(".") and host.is_dir(f"{parent}/{entry}")
        ]

    def resolve(
        self,
        ctype: ComponentType | str,
        name: str,
        host: Host | str | None = None,
        *,
        must_exist: bool = True,
        migrate: bool = True,
        seeds: Mapping[str, str] | None = None,
    ) -> Instance:
        """Resolve *name* (``NAME[@HOST]``) of *ctype* into an instance.

        Raises :class:`NotFoundError` when *must_exist* is set and the
        instance directory is missing. With *migrate* unset a legacy file is
        applied in memory only and nothing is written.
        """
        if isinstance(ctype, str):
            ctype = self.registry.lookup(ctype)
        parsed = split_name(name)
        if parsed.host is not None:
            host = parsed.host
        if not isinstance(host, Host):
            host = self.session.host(host)

        record = self.defaults(ctype, parsed.name, host, seeds=seeds)
        instance = Instance(ctype=ctype, record=record, host=host)

        if not instance.exists():
            if must_exist:
                raise NotFoundError(f"{instance}: instance directory {instance.home} not found")
            return instance

        if host.exists(instance.structured_path):
            self._overlay(instance, self._load_structured(instance))
        elif host.exists(instance.legacy_path):
            if migrate:
                self._migrate_legacy(instance)
            else:
                self._apply_legacy(instance)
        return instance

    def migrate(self, instance: Instance) -> bool:
        """Convert a legacy file if no structured file exists; return whether it ran."""
        host = instance.host
        if host.exists(instance.structured_path) or not host.exists(instance.legacy_path):
            return False
        self._migrate_legacy(instance)
        return True

    def revert(self, instance: Instance) -> bool:
        """Restore ``<type>.rc`` from ``<type>.rc.orig`` and drop the structured file."""
        host = instance.host
        backup = instance.legacy_path + LEGACY_SUFFIX
        if not host.exists(backup):
            return False
        if host.exists(instance.legacy_path):
            host.remove(backup)
        else:
            host.rename(backup, instance.legacy_path)
        try:
            host.remove(instance.structured_path)
        except FileNotFoundError:
            pass
        LOGGER.info("%s: reverted to %s", instance, instance.legacy_path)
        return True

    # ------------------------------------------------------------------
    def _load_structured(self, instance: Instance) -> dict[str, object]:
        path = instance.structured_path
        try:
            raw = json.loads(instance.host.read_text(path))
        except ValueError as exc:
            raise InvalidConfigError(f"{instance}: cannot parse {path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise InvalidConfigError(f"{instance}: {path} must contain an object")
        persisted_name = raw.get("name")
        if persisted_name not in (None, "", instance.name):
            raise InvalidConfigError(
                f"{instance}: {path} belongs to instance {persisted_name!r}"
            )
        return raw

    def _overlay(self, instance: Instance, values: Mapping[str, object]) -> None:
        record = instance.record
        for key, value in values.items():
            if key in DERIVED_FIELDS:
                if value not in (None, "") and value != record.get(key):
                    LOGGER.warning(
                        "%s: ignoring persisted %s %r, using %r",
                        instance,
                        key,
                        value,
                        record.get(key),
                    )
                continue
            record[key] = value

    def _apply_legacy(self, instance: Instance) -> None:
        text = instance.host.read_text(instance.legacy_path)
        fields, env = parse_legacy(text, instance.ctype, source=instance.legacy_path)
        self._overlay(instance, fields)
        for entry in env:
            instance.record.add("env", entry)

    def _migrate_legacy(self, instance: Instance) -> None:
        host = instance.host
        self._apply_legacy(instance)
        write_config(instance)
        host.rename(instance.legacy_path, instance.legacy_path + LEGACY_SUFFIX)
        LOGGER.info(
            "%s: migrated %s to %s", instance, instance.legacy_path, instance.structured_path
        )


__all__ = [
    "ConfigResolver",
    "DERIVED_FIELDS",
    "owner_for",
    "parse_legacy",
    "write_config",
]
