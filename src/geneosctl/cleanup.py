"""Removal of an instance's disposable files."""
from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field

from .fleet import Fleet
from .instance import Instance

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class CleanResult:
    """Paths removed by a clean and whether the instance was restarted."""

    removed: list[str] = field(default_factory=list)
    restarted: bool = False


def split_patterns(value: str) -> list[str]:
    """Split a colon-separated glob list, dropping empty entries."""
    return [pattern.strip() for pattern in value.split(":") if pattern.strip()]


def remove_matching(instance: Instance, patterns: list[str]) -> list[str]:
    """Delete everything under the instance home matching *patterns*."""
    host = instance.host
    home = instance.home
    removed: list[str] = []
    for pattern in patterns:
        relative = pattern.rstrip("/")
        if not relative or relative.startswith("/") or ".." in relative.split("/"):
            LOGGER.warning("%s: skipping unsafe clean pattern %r", instance, pattern)
            continue
        for path in host.glob(posixpath.join(home, relative)):
            host.remove_all(path)
            removed.append(path)
            LOGGER.debug("%s: removed %s", instance, path)
    return removed


def clean(fleet: Fleet, instance: Instance, *, purge: bool = False) -> CleanResult:
    """Remove the type's clean list; with *purge* also its purge list.

    A purge stops the instance first and starts it again afterwards when it
    had been running, whether or not the removal succeeded.
    """
    ctype = instance.ctype
    patterns = split_patterns(fleet.setting(ctype, "clean_list"))
    if not purge:
        result = CleanResult(removed=remove_matching(instance, patterns))
        LOGGER.info("%s: cleaned %d paths", instance, len(result.removed))
        return result

    was_running = fleet.controller.stop(instance)
    patterns.extend(split_patterns(fleet.setting(ctype, "purge_list")))
    result = CleanResult()
    try:
        result.removed = remove_matching(instance, patterns)
    finally:
        if was_running:
            fleet.controller.start(instance)
            result.restarted = True
    LOGGER.info("%s: purged %d paths", instance, len(result.removed))
    return result


__all__ = ["CleanResult", "clean", "remove_matching", "split_patterns"]
