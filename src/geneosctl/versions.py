"""Installed release management: version discovery and base-link updates."""
from __future__ import annotations

import logging
import posixpath
import re
import secrets
from dataclasses import dataclass, field

from packaging.version import InvalidVersion, Version

from .errors import AlreadyExistsError, NotFoundError
from .fleet import Fleet
from .hosts import Host
from .instance import Instance
from .registry import ComponentType

LOGGER = logging.getLogger(__name__)

DEFAULT_BASENAME = "active_prod"
LATEST = "latest"

_VERSION_DIGITS = re.compile(r"(\d+(?:\.\d+)*)")


@dataclass(slots=True)
class UpdateResult:
    """What an update did on one host for one type."""

    tag: str
    host: str
    version: str
    previous: str = ""
    changed: bool = False
    restarted: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)


def version_key(name: str) -> tuple[int, Version, str]:
    """Return a sort key ordering release directory names by version."""
    match = _VERSION_DIGITS.search(name)
    if match is not None:
        try:
            return (1, Version(match.group(1)), name)
        except InvalidVersion:
            pass
    return (0, Version("0"), name)


def packages_dir(host: Host, ctype: ComponentType) -> str:
    """Return ``root/packages/<tag>``, where releases of *ctype* are unpacked."""
    return host.path("packages", ctype.tag)


def installed_versions(host: Host, ctype: ComponentType) -> list[str]:
    """Return the release directories of *ctype* on *host*, oldest first."""
    basedir = packages_dir(host, ctype)
    try:
        entries = host.list_dir(basedir)
    except FileNotFoundError:
        return []
    versions = []
    for entry in entries:
        info = host.lstat(posixpath.join(basedir, entry))
        if info.is_dir and not info.is_link:
            versions.append(entry)
    return sorted(versions, key=version_key)


def select_version(host: Host, ctype: ComponentType, version: str = LATEST) -> str:
    """Return the newest installed release whose name starts with *version*."""
    prefix = "" if version in ("", LATEST) else version
    candidates = [name for name in installed_versions(host, ctype) if name.startswith(prefix)]
    if not candidates:
        raise NotFoundError(f"{version!r} version of {ctype.tag} on {host.name} not found")
    return candidates[-1]


def current_link(host: Host, ctype: ComponentType, basename: str) -> str:
    """Return the target of the base link, empty when it does not exist."""
    try:
        return host.readlink(posixpath.join(packages_dir(host, ctype), basename))
    except OSError:
        return ""


def update_to_version(
    fleet: Fleet,
    host: Host,
    ctype: ComponentType,
    *,
    version: str = LATEST,
    basename: str = DEFAULT_BASENAME,
    overwrite: bool = False,
) -> UpdateResult:
    """Point ``packages/<tag>/<basename>`` at *version*.

    Instances running from that base link are stopped before the link is
    swapped and started again afterwards.
    """
    target = select_version(host, ctype, version)
    link = posixpath.join(packages_dir(host, ctype), basename)
    existing = current_link(host, ctype, basename)
    result = UpdateResult(tag=ctype.tag, host=host.name, version=target, previous=existing)

    if existing == target:
        LOGGER.info("%s on %s: %s already at %s", ctype.tag, host.name, basename, target)
        return result
    if existing and not overwrite:
        raise AlreadyExistsError(
            f"{ctype.tag} on {host.name}: {basename} already points to {existing}"
        )

    affected = _instances_on_base(fleet, host, ctype, basename)
    stopped: list[Instance] = []
    try:
        for instance in affected:
            if fleet.controller.stop(instance):
                stopped.append(instance)
        _replace_link(host, target, link)
        result.changed = True
        LOGGER.info("%s on %s: %s updated to %s", ctype.tag, host.name, basename, target)
    finally:
        restarts = fleet.for_each(stopped, fleet.controller.start, label="restart")
        result.restarted.extend(restarts.succeeded)
        result.failed.extend(restarts.failed)
    return result


def update_types(
    fleet: Fleet,
    host: Host,
    ctype: ComponentType,
    *,
    version: str = LATEST,
    basename: str = DEFAULT_BASENAME,
    overwrite: bool = False,
) -> list[UpdateResult]:
    """Update *ctype*, or each of its related package types when it has them."""
    if not ctype.related:
        return [
            update_to_version(
                fleet, host, ctype, version=version, basename=basename, overwrite=overwrite
            )
        ]
    results = []
    for tag in ctype.related:
        try:
            results.append(
                update_to_version(
                    fleet,
                    host,
                    fleet.registry.get(tag),
                    version=version,
                    basename=basename,
                    overwrite=overwrite,
                )
            )
        except NotFoundError as exc:
            LOGGER.debug("skipping %s: %s", tag, exc)
    return results


def component_version(instance: Instance) -> str:
    """Return the release an instance runs, following its base link."""
    install = instance.record.get_str("install")
    base = instance.record.get_str("version")
    if not install or not base:
        return ""
    path = posixpath.join(install, base)
    host = instance.host
    try:
        info = host.lstat(path)
    except FileNotFoundError:
        return ""
    if not info.is_link:
        return base
    return posixpath.basename(host.readlink(path).rstrip("/"))


def _replace_link(host: Host, target: str, link: str) -> None:
    """Swap *link* to *target* by renaming a fresh symlink over it."""
    directory, base = posixpath.split(link)
    staging = posixpath.join(directory, f".{base}.{secrets.token_hex(4)}")
    host.symlink(target, staging)
    try:
        host.rename(staging, link)
    except BaseException:
        host.remove(staging)
        raise


def _instances_on_base(
    fleet: Fleet,
    host: Host,
    ctype: ComponentType,
    basename: str,
) -> list[Instance]:
    basedir = packages_dir(host, ctype)
    affected = []
    for candidate in fleet.registry.types_with_flag(real=True):
        for name in fleet.resolver.instance_names(candidate, host):
            instance = fleet.resolver.resolve(candidate, name, host)
            record = instance.record
            if record.get_str("install") == basedir and record.get_str("version") == basename:
                affected.append(instance)
    return affected


__all__ = [
    "DEFAULT_BASENAME",
    "LATEST",
    "UpdateResult",
    "component_version",
    "current_link",
    "installed_versions",
    "select_version",
    "update_to_version",
    "update_types",
    "version_key",
]
