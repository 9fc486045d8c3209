"""Host adapter for machines reached over SSH and SFTP (paramiko)."""
from __future__ import annotations

import errno
import logging
import posixpath
import shlex
import signal
import socket
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, cast
from urllib.parse import urlsplit

import paramiko

from ..errors import InvalidConfigError, PermissionDeniedError, RemoteUnavailableError
from .base import CommandResult, FileInfo, Host, UserIds

LOGGER = logging.getLogger(__name__)

DEFAULT_SSH_PORT = 22

# Failures of the session itself, as opposed to filesystem errors reported
# through SFTP status codes.
_SESSION_ERRORS: tuple[type[BaseException], ...] = (
    paramiko.SSHException,
    EOFError,
    socket.timeout,
    ConnectionError,
)


@dataclass(frozen=True, slots=True)
class HostRef:
    """Connection details for a named remote host."""

    name: str
    hostname: str
    port: int = DEFAULT_SSH_PORT
    username: str = ""
    root: str = ""

    @classmethod
    def from_url(cls, name: str, url: str, *, default_user: str, default_root: str) -> HostRef:
        """Parse ``ssh://[user@]host[:port][/root]``."""
        parts = urlsplit(url if "://" in url else f"ssh://{url}")
        if parts.scheme != "ssh" or not parts.hostname:
            raise InvalidConfigError(f"unsupported host URL {url!r}")
        try:
            port = parts.port or DEFAULT_SSH_PORT
        except ValueError as exc:
            raise InvalidConfigError(f"invalid port in host URL {url!r}") from exc
        root = parts.path if parts.path not in ("", "/") else default_root
        return cls(
            name=name,
            hostname=parts.hostname,
            port=port,
            username=parts.username or default_user,
            root=root,
        )

    def to_fields(self) -> dict[str, object]:
        """Return the persisted field mapping."""
        return {
            "hostname": self.hostname,
            "port": self.port,
            "username": self.username,
            "geneos": self.root,
        }

    def url(self) -> str:
        """Return an ``ssh://`` URL describing the host."""
        return f"ssh://{self.username}@{self.hostname}:{self.port}{self.root}"


class RemoteHost(Host):
    """Filesystem and process primitives over a cached SSH session.

    The session and its SFTP channel are opened on first use and reused until
    :meth:`close`. Session, authentication and network failures surface as
    :class:`RemoteUnavailableError`; filesystem errors reported by the server
    keep their ``OSError`` subclasses.
    """

    def __init__(
        self,
        ref: HostRef,
        *,
        private_keys: Sequence[str] = (),
        known_hosts: Path | None = None,
        timeout: float = 10.0,
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
    ) -> None:
        """Prepare (but do not open) a session to *ref*."""
        self.ref = ref
        self.name = ref.name
        self.root = ref.root
        self._private_keys = tuple(private_keys)
        self._known_hosts = known_hosts
        self._timeout = timeout
        self._client_factory = client_factory
        self._client: paramiko.SSHClient | None = None
        self._sftp: paramiko.SFTPClient | None = None
        self._failed: RemoteUnavailableError | None = None

    @property
    def is_local(self) -> bool:
        """Return ``False``."""
        return False

    @property
    def username(self) -> str:
        """Return the login name used for the session."""
        return self.ref.username

    def is_superuser(self) -> bool:
        """Return whether the session logs in as root."""
        return self.ref.username == "root"

    def lookup_user(self, name: str) -> UserIds:
        """Resolve *name* with ``id`` on the remote host."""
        uid = self.run(["id", "-u", name])
        gid = self.run(["id", "-g", name])
        groups = self.run(["id", "-G", name])
        if uid.returncode != 0 or gid.returncode != 0:
            raise KeyError(name)
        return UserIds(
            name=name,
            uid=int(uid.stdout.strip()),
            gid=int(gid.stdout.strip()),
            groups=tuple(int(item) for item in groups.stdout.split()),
        )

    # Session management -----------------------------------------------
    def _connect(self) -> paramiko.SSHClient:
        if self._client is not None:
            return self._client
        if self._failed is not None:
            raise self._failed
        client = self._client_factory()
        try:
            client.load_system_host_keys()
            if self._known_hosts is not None and self._known_hosts.exists():
                client.load_host_keys(str(self._known_hosts))
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
            client.connect(
                self.ref.hostname,
                port=self.ref.port,
                username=self.ref.username,
                key_filename=self._key_files() or None,
                allow_agent=True,
                look_for_keys=False,
                timeout=self._timeout,
            )
        except (paramiko.SSHException, OSError) as exc:
            client.close()
            self._failed = RemoteUnavailableError(
                f"cannot connect to {self.ref.url()}: {exc}"
            )
            raise self._failed from exc
        LOGGER.debug("connected to %s", self.ref.url())
        self._client = client
        return client

    def _key_files(self) -> list[str]:
        ssh_dir = Path("~/.ssh").expanduser()
        return [
            str(ssh_dir / key)
            for key in self._private_keys
            if (ssh_dir / key).is_file()
        ]

    def _sftp_client(self) -> paramiko.SFTPClient:
        if self._sftp is None:
            client = self._connect()
            with self._session_errors("open sftp"):
                self._sftp = client.open_sftp()
        return self._sftp

    @contextmanager
    def _session_errors(self, operation: str, path: str = "") -> Iterator[None]:
        try:
            yield
        except _SESSION_ERRORS as exc:
            target = f" {path}" if path else ""
            raise RemoteUnavailableError(
                f"{self.name}: {operation}{target} failed: {exc}"
            ) from exc

    def close(self) -> None:
        """Close the SFTP channel and the SSH session; safe to call twice."""
        if self._sftp is not None:
            self._sftp.close()
            self._sftp = None
        if self._client is not None:
            self._client.close()
            self._client = None
            LOGGER.debug("closed session to %s", self.name)

    # Filesystem -------------------------------------------------------
    def _info(self, path: str, attrs: paramiko.SFTPAttributes) -> FileInfo:
        return FileInfo(
            path=path,
            size=attrs.st_size or 0,
            mode=attrs.st_mode or 0,
            uid=attrs.st_uid or 0,
            gid=attrs.st_gid or 0,
            mtime=float(attrs.st_mtime or 0),
        )

    def stat(self, path: str) -> FileInfo:
        """Return SFTP ``stat`` information."""
        sftp = self._sftp_client()
        with self._session_errors("stat", path):
            return self._info(path, sftp.stat(path))

    def lstat(self, path: str) -> FileInfo:
        """Return SFTP ``lstat`` information."""
        sftp = self._sftp_client()
        with self._session_errors("lstat", path):
            return self._info(path, sftp.lstat(path))

    def open(self, path: str, mode: str = "rb") -> BinaryIO:
        """Open a remote file."""
        if "b" not in mode:
            raise ValueError("host files are opened in binary mode")
        sftp = self._sftp_client()
        with self._session_errors("open", path):
            return cast(BinaryIO, sftp.open(path, mode))

    def read_bytes(self, path: str) -> bytes:
        """Return the contents of a remote file."""
        sftp = self._sftp_client()
        with self._session_errors("read", path):
            with sftp.open(path, "rb") as handle:
                return handle.read()

    def create(self, path: str, mode: int = 0o664) -> None:
        """Create or truncate a remote file."""
        sftp = self._sftp_client()
        with self._session_errors("create", path):
            with sftp.open(path, "wb"):
                pass
            sftp.chmod(path, mode)

    def remove(self, path: str) -> None:
        """Remove a remote file or empty directory."""
        sftp = self._sftp_client()
        with self._session_errors("remove", path):
            if self.lstat(path).is_dir:
                sftp.rmdir(path)
            else:
                sftp.remove(path)

    def rename(self, source: str, destination: str) -> None:
        """Rename with the POSIX rename extension (replaces *destination*)."""
        sftp = self._sftp_client()
        with self._session_errors("rename", source):
            sftp.posix_rename(source, destination)

    def symlink(self, target: str, link: str) -> None:
        """Create a remote symbolic link."""
        sftp = self._sftp_client()
        with self._session_errors("symlink", link):
            sftp.symlink(target, link)

    def readlink(self, path: str) -> str:
        """Return a remote symlink target."""
        sftp = self._sftp_client()
        with self._session_errors("readlink", path):
            target = sftp.readlink(path)
        if target is None:
            raise OSError(f"{path} is not a symlink")
        return target

    def mkdir_all(self, path: str, mode: int = 0o775) -> None:
        """Create a remote directory and its parents."""
        sftp = self._sftp_client()
        current = "/"
        for segment in [part for part in path.split("/") if part]:
            current = posixpath.join(current, segment)
            if self.is_dir(current):
                continue
            with self._session_errors("mkdir", current):
                sftp.mkdir(current, mode)

    def list_dir(self, path: str) -> list[str]:
        """Return sorted remote directory entries."""
        sftp = self._sftp_client()
        with self._session_errors("listdir", path):
            return sorted(sftp.listdir(path))

    def chmod(self, path: str, mode: int) -> None:
        """Change remote permission bits."""
        sftp = self._sftp_client()
        with self._session_errors("chmod", path):
            sftp.chmod(path, mode)

    def chown(self, path: str, uid: int, gid: int) -> None:
        """Change remote ownership."""
        sftp = self._sftp_client()
        with self._session_errors("chown", path):
            sftp.chown(path, uid, gid)

    # Processes --------------------------------------------------------
    def run(self, args: Sequence[str]) -> CommandResult:
        """Run a command over an exec channel."""
        client = self._connect()
        command = shlex.join(args)
        with self._session_errors("exec", command):
            _stdin, stdout, stderr = client.exec_command(command, timeout=self._timeout)
            out = stdout.read().decode(errors="replace")
            err = stderr.read().decode(errors="replace")
            returncode = stdout.channel.recv_exit_status()
        return CommandResult(returncode=returncode, stdout=out, stderr=err)

    def run_detached(
        self,
        workdir: str,
        program: str,
        args: Sequence[str],
        env: Mapping[str, str],
        output: str,
        *,
        owner: UserIds | None = None,
    ) -> None:
        """Background *program* from a shell session, then close the session.

        A root session launching for another *owner* runs the script through
        ``su`` so the process never keeps root. The launch is not confirmed;
        callers poll the process table.
        """
        lines = [f"cd {shlex.quote(workdir)}"]
        lines.extend(f"export {key}={shlex.quote(value)}" for key, value in env.items())
        command = shlex.join([program, *args])
        lines.append(f"{command} >>{shlex.quote(output)} 2>&1 &")
        if owner is not None and owner.name != self.ref.username:
            if not self.is_superuser():
                raise PermissionDeniedError(
                    f"{self.name}: cannot run a process as {owner.name} "
                    f"when logged in as {self.ref.username}"
                )
            inner = "\n".join(lines)
            lines = [f"su -s /bin/sh {shlex.quote(owner.name)} -c {shlex.quote(inner)}"]
        lines.append("exit")
        script = "\n".join(lines) + "\n"

        client = self._connect()
        with self._session_errors("shell", program):
            transport = client.get_transport()
            if transport is None:
                raise paramiko.SSHException("session is not active")
            channel = transport.open_session(timeout=self._timeout)
            try:
                channel.invoke_shell()
                channel.sendall(script.encode())
                channel.shutdown_write()
                channel.recv_exit_status()
            finally:
                channel.close()
        LOGGER.debug("launched %s on %s", program, self.name)
        return None

    def send_signal(self, pid: int, signum: int) -> None:
        """Deliver a signal with the remote ``kill`` command."""
        name = signal.Signals(signum).name.removeprefix("SIG")
        result = self.run(["kill", "-s", name, str(pid)])
        if result.returncode == 0:
            return
        message = result.stderr.strip() or f"kill exited with {result.returncode}"
        lowered = message.lower()
        if "no such process" in lowered:
            raise ProcessLookupError(errno.ESRCH, message)
        if "not permitted" in lowered:
            raise PermissionError(errno.EPERM, message)
        raise OSError(f"{self.name}: {message}")


__all__ = ["DEFAULT_SSH_PORT", "HostRef", "RemoteHost"]
