"""Host adapter for the machine geneosctl runs on."""
from __future__ import annotations

import getpass
import grp
import logging
import os
import pwd
import shutil
import subprocess
from collections.abc import Mapping, Sequence
from typing import BinaryIO, cast

from .base import LOCALHOST, CommandResult, FileInfo, Host, UserIds

LOGGER = logging.getLogger(__name__)


def _info(path: str, result: os.stat_result) -> FileInfo:
    return FileInfo(
        path=path,
        size=result.st_size,
        mode=result.st_mode,
        uid=result.st_uid,
        gid=result.st_gid,
        mtime=result.st_mtime,
    )


class LocalHost(Host):
    """Filesystem and process primitives backed by ``os`` and ``subprocess``."""

    def __init__(self, root: str, *, name: str = LOCALHOST) -> None:
        """Bind the adapter to the install *root*."""
        self.name = name
        self.root = str(root)

    @property
    def is_local(self) -> bool:
        """Return ``True``."""
        return True

    @property
    def username(self) -> str:
        """Return the invoking user's login name."""
        return getpass.getuser()

    def is_superuser(self) -> bool:
        """Return whether the effective uid is root."""
        return os.geteuid() == 0

    def lookup_user(self, name: str) -> UserIds:
        """Resolve *name* through ``pwd`` and ``grp``."""
        entry = pwd.getpwnam(name)
        groups = tuple(
            group.gr_gid for group in grp.getgrall() if name in group.gr_mem
        )
        return UserIds(name=name, uid=entry.pw_uid, gid=entry.pw_gid, groups=groups)

    # ------------------------------------------------------------------
    def stat(self, path: str) -> FileInfo:
        """Return ``os.stat`` information."""
        return _info(path, os.stat(path))

    def lstat(self, path: str) -> FileInfo:
        """Return ``os.lstat`` information."""
        return _info(path, os.lstat(path))

    def open(self, path: str, mode: str = "rb") -> BinaryIO:
        """Open *path* in binary mode."""
        if "b" not in mode:
            raise ValueError("host files are opened in binary mode")
        return cast(BinaryIO, open(path, mode))  # noqa: SIM115

    def create(self, path: str, mode: int = 0o664) -> None:
        """Create or truncate *path*."""
        fd = os.open(path, os.O_CREAT | os.O_WRONLY | os.O_TRUNC, mode)
        os.close(fd)

    def remove(self, path: str) -> None:
        """Remove a file or empty directory."""
        if os.path.isdir(path) and not os.path.islink(path):
            os.rmdir(path)
        else:
            os.unlink(path)

    def rename(self, source: str, destination: str) -> None:
        """Rename with ``os.replace``."""
        os.replace(source, destination)

    def symlink(self, target: str, link: str) -> None:
        """Create a symbolic link."""
        os.symlink(target, link)

    def readlink(self, path: str) -> str:
        """Return a symlink target."""
        return os.readlink(path)

    def mkdir_all(self, path: str, mode: int = 0o775) -> None:
        """Create *path* and parents."""
        os.makedirs(path, mode=mode, exist_ok=True)

    def list_dir(self, path: str) -> list[str]:
        """Return sorted directory entries."""
        return sorted(os.listdir(path))

    def chmod(self, path: str, mode: int) -> None:
        """Change permission bits."""
        os.chmod(path, mode)

    def chown(self, path: str, uid: int, gid: int) -> None:
        """Change ownership."""
        os.chown(path, uid, gid)

    def remove_all(self, path: str) -> None:
        """Remove *path* recursively; missing paths are ignored."""
        if os.path.isdir(path) and not os.path.islink(path):
            shutil.rmtree(path)
        elif os.path.lexists(path):
            os.unlink(path)

    # ------------------------------------------------------------------
    def run(self, args: Sequence[str]) -> CommandResult:
        """Run a command to completion."""
        result = subprocess.run(  # noqa: S603
            list(args),
            capture_output=True,
            text=True,
            check=False,
        )
        return CommandResult(
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )

    def run_detached(
        self,
        workdir: str,
        program: str,
        args: Sequence[str],
        env: Mapping[str, str],
        output: str,
        *,
        owner: UserIds | None = None,
    ) -> int:
        """Start *program* in a new session with output appended to *output*."""
        fd = os.open(output, os.O_CREAT | os.O_WRONLY | os.O_APPEND, 0o644)
        credentials: dict[str, object] = {}
        if owner is not None and self.is_superuser() and owner.uid != os.geteuid():
            os.fchown(fd, owner.uid, owner.gid)
            credentials = {
                "user": owner.uid,
                "group": owner.gid,
                "extra_groups": list(owner.groups),
            }
        try:
            process = subprocess.Popen(  # noqa: S603
                [program, *args],
                cwd=workdir,
                env={**os.environ, **env},
                stdin=subprocess.DEVNULL,
                stdout=fd,
                stderr=subprocess.STDOUT,
                start_new_session=True,
                close_fds=True,
                **credentials,  # type: ignore[arg-type]
            )
        finally:
            os.close(fd)
        LOGGER.debug("launched %s as PID %d in %s", program, process.pid, workdir)
        return process.pid

    def send_signal(self, pid: int, signum: int) -> None:
        """Deliver a signal with ``os.kill``."""
        os.kill(pid, signum)


__all__ = ["LocalHost"]
