"""Host abstraction shared by the local and remote adapters.

Every path handled here is a POSIX path string on the target host. Callers
never branch on locality: they receive a :class:`Host` and use the same
filesystem and process primitives whether it is this machine or a machine
reached over SSH.
"""
from __future__ import annotations

import fnmatch
import logging
import posixpath
import secrets
import stat as stat_module
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import BinaryIO

LOGGER = logging.getLogger(__name__)

LOCALHOST = "localhost"


@dataclass(frozen=True, slots=True)
class FileInfo:
    """Subset of ``stat`` results used by the control core."""

    path: str
    size: int
    mode: int
    uid: int
    gid: int
    mtime: float

    @property
    def is_dir(self) -> bool:
        """Return whether the entry is a directory."""
        return stat_module.S_ISDIR(self.mode)

    @property
    def is_link(self) -> bool:
        """Return whether the entry is a symbolic link (``lstat`` only)."""
        return stat_module.S_ISLNK(self.mode)


@dataclass(frozen=True, slots=True)
class UserIds:
    """Numeric identity of an account on a host."""

    name: str
    uid: int
    gid: int
    groups: tuple[int, ...] = ()


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of a foreground command run on a host."""

    returncode: int
    stdout: str
    stderr: str


class Host(ABC):
    """Uniform filesystem and process operations on one machine."""

    name: str
    root: str

    # Identity ---------------------------------------------------------
    @property
    @abstractmethod
    def is_local(self) -> bool:
        """Return whether the host is this machine."""

    @property
    @abstractmethod
    def username(self) -> str:
        """Return the account operations run as."""

    @abstractmethod
    def is_superuser(self) -> bool:
        """Return whether operations run with elevated privilege."""

    @abstractmethod
    def lookup_user(self, name: str) -> UserIds:
        """Return the numeric identity of *name* (``KeyError`` when unknown)."""

    # Filesystem -------------------------------------------------------
    @abstractmethod
    def stat(self, path: str) -> FileInfo:
        """Return information about *path*, following symlinks."""

    @abstractmethod
    def lstat(self, path: str) -> FileInfo:
        """Return information about *path* itself."""

    @abstractmethod
    def open(self, path: str, mode: str = "rb") -> BinaryIO:
        """Open *path* in a binary mode."""

    @abstractmethod
    def create(self, path: str, mode: int = 0o664) -> None:
        """Create (or truncate) an empty file."""

    @abstractmethod
    def remove(self, path: str) -> None:
        """Remove a file or empty directory."""

    @abstractmethod
    def rename(self, source: str, destination: str) -> None:
        """Atomically rename *source* over *destination*."""

    @abstractmethod
    def symlink(self, target: str, link: str) -> None:
        """Create *link* pointing at *target*."""

    @abstractmethod
    def readlink(self, path: str) -> str:
        """Return the target of symlink *path*."""

    @abstractmethod
    def mkdir_all(self, path: str, mode: int = 0o775) -> None:
        """Create *path* and any missing parents."""

    @abstractmethod
    def list_dir(self, path: str) -> list[str]:
        """Return the entry names in *path*, sorted."""

    @abstractmethod
    def chmod(self, path: str, mode: int) -> None:
        """Change permission bits."""

    @abstractmethod
    def chown(self, path: str, uid: int, gid: int) -> None:
        """Change ownership."""

    # Processes --------------------------------------------------------
    @abstractmethod
    def run(self, args: Sequence[str]) -> CommandResult:
        """Run a foreground command and collect its output."""

    @abstractmethod
    def run_detached(
        self,
        workdir: str,
        program: str,
        args: Sequence[str],
        env: Mapping[str, str],
        output: str,
        *,
        owner: UserIds | None = None,
    ) -> int | None:
        """Launch a process that outlives the caller.

        Standard output and error are appended to *output*. Returns the PID
        when it is known immediately; remote launches return ``None`` and the
        caller polls the process table instead.
        """

    @abstractmethod
    def send_signal(self, pid: int, signum: int) -> None:
        """Deliver *signum* to *pid*.

        Raises ``ProcessLookupError`` when the process is gone and
        ``PermissionError`` when the OS refuses.
        """

    def close(self) -> None:
        """Release any session held by the host."""

    # Derived helpers --------------------------------------------------
    def path(self, *parts: str) -> str:
        """Return *parts* joined below the host's install root."""
        return posixpath.join(self.root, *parts)

    def exists(self, path: str) -> bool:
        """Return whether *path* exists."""
        try:
            self.stat(path)
        except FileNotFoundError:
            return False
        return True

    def is_dir(self, path: str) -> bool:
        """Return whether *path* is an existing directory."""
        try:
            return self.stat(path).is_dir
        except FileNotFoundError:
            return False

    def read_bytes(self, path: str) -> bytes:
        """Return the contents of *path*."""
        with self.open(path, "rb") as handle:
            return handle.read()

    def read_text(self, path: str) -> str:
        """Return the contents of *path* decoded as UTF-8."""
        return self.read_bytes(path).decode("utf-8")

    def write_atomic(
        self,
        path: str,
        data: bytes,
        *,
        mode: int = 0o664,
        owner: UserIds | None = None,
    ) -> None:
        """Write *data* to a sibling temp file, then rename it over *path*.

        Mode and ownership are applied to the temp file before the rename.
        """
        directory, base = posixpath.split(path)
        tmp_path = posixpath.join(directory, f".{base}.{secrets.token_hex(4)}")
        try:
            with self.open(tmp_path, "wb") as handle:
                handle.write(data)
            self.chmod(tmp_path, mode)
            if owner is not None:
                self.chown(tmp_path, owner.uid, owner.gid)
            self.rename(tmp_path, path)
        except BaseException:
            try:
                self.remove(tmp_path)
            except OSError:
                pass
            raise

    def remove_all(self, path: str) -> None:
        """Remove *path* recursively; missing paths are ignored."""
        try:
            info = self.lstat(path)
        except FileNotFoundError:
            return
        if info.is_dir:
            for entry in self.list_dir(path):
                self.remove_all(posixpath.join(path, entry))
        self.remove(path)

    def glob(self, pattern: str) -> list[str]:
        """Return existing paths matching an absolute shell *pattern*."""
        if not pattern.startswith("/"):
            raise ValueError(f"glob pattern must be absolute: {pattern}")
        matches = ["/"]
        for segment in [part for part in pattern.split("/") if part]:
            expanded: list[str] = []
            for base in matches:
                if not _has_magic(segment):
                    candidate = posixpath.join(base, segment)
                    if self._lexists(candidate):
                        expanded.append(candidate)
                    continue
                try:
                    entries = self.list_dir(base)
                except (FileNotFoundError, NotADirectoryError):
                    continue
                for entry in entries:
                    if entry.startswith(".") and not segment.startswith("."):
                        continue
                    if fnmatch.fnmatchcase(entry, segment):
                        expanded.append(posixpath.join(base, entry))
            matches = expanded
        return sorted(matches)

    def _lexists(self, path: str) -> bool:
        try:
            self.lstat(path)
        except FileNotFoundError:
            return False
        return True

    def __str__(self) -> str:
        return self.name


def _has_magic(segment: str) -> bool:
    return any(char in segment for char in "*?[")


__all__ = ["CommandResult", "FileInfo", "Host", "LOCALHOST", "UserIds"]
