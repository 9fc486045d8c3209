"""The instance façade: a component type, a resolved record and a host."""
from __future__ import annotations

import logging
import posixpath
import shlex
from collections.abc import Sequence
from dataclasses import dataclass

from .errors import NotSupportedError
from .hosts import Host
from .records import ConfigRecord
from .registry import ComponentType

LOGGER = logging.getLogger(__name__)

LIBRARY_PATH_VAR = "LD_LIBRARY_PATH"


@dataclass(eq=False)
class Instance:
    """Object every command operates on."""

    ctype: ComponentType
    record: ConfigRecord
    host: Host

    def __str__(self) -> str:
        return f"{self.ctype.tag}:{self.name}@{self.host.name}"

    # Identity ---------------------------------------------------------
    @property
    def name(self) -> str:
        """Return the local instance name."""
        return self.record.get_str("name")

    @property
    def home(self) -> str:
        """Return the instance working directory."""
        return self.record.get_str("home")

    @property
    def user(self) -> str:
        """Return the configured owning user (may be empty)."""
        return self.record.get_str("user")

    @property
    def port(self) -> int:
        """Return the configured port (0 when unassigned)."""
        return self.record.get_int("port")

    @property
    def program(self) -> str:
        """Return the executable path."""
        return self.record.get_str("program")

    # Paths ------------------------------------------------------------
    def config_path(self, extension: str) -> str:
        """Return ``home/<tag>.<extension>``."""
        return posixpath.join(self.home, f"{self.ctype.tag}.{extension}")

    @property
    def structured_path(self) -> str:
        """Return the path of the persisted JSON record."""
        return self.config_path("json")

    @property
    def legacy_path(self) -> str:
        """Return the path of the legacy ``KEY=VALUE`` file."""
        return self.config_path("rc")

    @property
    def marker_path(self) -> str:
        """Return the path of the disable marker."""
        return self.config_path("disabled")

    def log_dir(self) -> str:
        """Return the log directory, relative ``logdir`` values taken from home."""
        logdir = self.record.get_str("logdir")
        if not logdir:
            return self.home
        return posixpath.join(self.home, logdir)

    def log_file(self) -> str:
        """Return the path of the component's own log file."""
        logfile = self.record.get_str("logfile") or f"{self.ctype.tag}.log"
        return posixpath.join(self.log_dir(), logfile)

    def output_file(self) -> str:
        """Return the file receiving the process's stdout and stderr."""
        return posixpath.join(self.log_dir(), f"{self.ctype.tag}.txt")

    # State helpers ----------------------------------------------------
    def exists(self) -> bool:
        """Return whether the instance directory exists."""
        return self.host.is_dir(self.home)

    def is_disabled(self) -> bool:
        """Return whether the disable marker is present."""
        return self.host.exists(self.marker_path)

    # Process ----------------------------------------------------------
    def command(self) -> tuple[list[str], dict[str, str]]:
        """Return the argument list and environment overrides for a launch."""
        if self.ctype.build_command is None:
            raise NotSupportedError(f"{self}: component type does not run a process")
        args, type_env = self.ctype.build_command(self)
        args = [*args, *shlex.split(self.record.get_str("options"))]

        env: dict[str, str] = {}
        libpaths = self.record.get_str("libpaths")
        if libpaths:
            env[LIBRARY_PATH_VAR] = libpaths
        for entry in [*type_env, *self.record.get_list("env")]:
            key, sep, value = entry.partition("=")
            if not sep or not key:
                LOGGER.warning("%s: ignoring malformed environment entry %r", self, entry)
                continue
            env[key] = value
        return args, env

    def matches_process(self, argv: Sequence[str]) -> bool:
        """Return whether command line *argv* belongs to this instance."""
        if not argv:
            return False
        if self.ctype.match_process is not None:
            return self.ctype.match_process(self, argv)
        prefix = self.record.get_str("binary") or self.ctype.tag
        if not posixpath.basename(argv[0]).startswith(prefix):
            return False
        return self.name in argv[1:]


__all__ = ["Instance", "LIBRARY_PATH_VAR"]
