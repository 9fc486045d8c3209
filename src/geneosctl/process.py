"""Discovery of an instance's live OS process."""
from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from typing import Protocol

from .instance import Instance

LOGGER = logging.getLogger(__name__)


class ProcessFinder(Protocol):
    """Locate the live process of an instance."""

    def find(self, instance: Instance) -> int | None:
        """Return the PID of *instance*'s process, or ``None``."""


@dataclass(slots=True)
class ProcTableFinder:
    """Scan ``/proc`` on the instance's host.

    A process belongs to an instance when its executable name starts with the
    instance's ``binary`` field and the instance name is one of its arguments.
    Every call rescans the table; nothing is cached.
    """

    proc_root: str = "/proc"

    def find(self, instance: Instance) -> int | None:
        """Return the lowest matching PID, or ``None``."""
        host = instance.host
        try:
            entries = host.list_dir(self.proc_root)
        except FileNotFoundError:
            LOGGER.debug("%s: no process table at %s", host.name, self.proc_root)
            return None
        for pid in sorted(int(entry) for entry in entries if entry.isdigit()):
            argv = self._cmdline(instance, pid)
            if argv and instance.matches_process(argv):
                return pid
        return None

    def _cmdline(self, instance: Instance, pid: int) -> list[str]:
        path = posixpath.join(self.proc_root, str(pid), "cmdline")
        try:
            raw = instance.host.read_bytes(path)
        except (FileNotFoundError, ProcessLookupError, PermissionError):
            # Exited between listing and reading, or not ours to read.
            return []
        return [part.decode("utf-8", errors="replace") for part in raw.split(b"\0") if part]


__all__ = ["ProcTableFinder", "ProcessFinder"]
