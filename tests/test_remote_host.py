"""SSH host adapter tests using a fake paramiko client."""
from __future__ import annotations

import io
import os
import shlex
import signal
from pathlib import Path
from typing import BinaryIO, cast

import paramiko
import pytest

from geneosctl.errors import InvalidConfigError, PermissionDeniedError, RemoteUnavailableError
from geneosctl.hosts import CommandResult, UserIds
from geneosctl.hosts.remote import HostRef, RemoteHost


class _Channel:
    def __init__(self, status: int) -> None:
        self.status = status

    def recv_exit_status(self) -> int:
        return self.status


class _Stream(io.BytesIO):
    def __init__(self, data: bytes, status: int = 0) -> None:
        super().__init__(data)
        self.channel = _Channel(status)


class FakeShell:
    """Interactive channel capturing the script sent to the remote shell."""

    def __init__(self) -> None:
        self.sent = b""
        self.shell = False
        self.eof = False
        self.closed = False

    def invoke_shell(self) -> None:
        self.shell = True

    def sendall(self, data: bytes) -> None:
        self.sent += data

    def shutdown_write(self) -> None:
        self.eof = True

    def recv_exit_status(self) -> int:
        return 0

    def close(self) -> None:
        self.closed = True


class FakeTransport:
    def __init__(self) -> None:
        self.channels: list[FakeShell] = []

    def open_session(self, timeout: float | None = None) -> FakeShell:
        channel = FakeShell()
        self.channels.append(channel)
        return channel


class FakeSFTP:
    """SFTP client served from the local filesystem, as a server would."""

    def __init__(self) -> None:
        self.closed = False

    def stat(self, path: str) -> os.stat_result:
        return os.stat(path)

    def lstat(self, path: str) -> os.stat_result:
        return os.lstat(path)

    def open(self, path: str, mode: str = "r") -> BinaryIO:
        return cast(BinaryIO, open(path, mode))  # noqa: SIM115

    def chmod(self, path: str, mode: int) -> None:
        os.chmod(path, mode)

    def chown(self, path: str, uid: int, gid: int) -> None:
        pass

    def remove(self, path: str) -> None:
        os.remove(path)

    def rmdir(self, path: str) -> None:
        os.rmdir(path)

    def posix_rename(self, source: str, destination: str) -> None:
        os.replace(source, destination)

    def symlink(self, target: str, link: str) -> None:
        os.symlink(target, link)

    def readlink(self, path: str) -> str:
        return os.readlink(path)

    def mkdir(self, path: str, mode: int = 0o777) -> None:
        os.mkdir(path, mode)

    def listdir(self, path: str) -> list[str]:
        return os.listdir(path)

    def close(self) -> None:
        self.closed = True


class FakeClient:
    """Stand-in for ``paramiko.SSHClient`` recording what it is asked."""

    def __init__(self, *, fail: Exception | None = None) -> None:
        self.fail = fail
        self.connected: dict[str, object] = {}
        self.commands: list[str] = []
        self.closed = False
        self.reply = (b"", b"", 0)
        self.transport: FakeTransport | None = FakeTransport()
        self.sftp: object = FakeSFTP()

    def load_system_host_keys(self) -> None:
        pass

    def load_host_keys(self, filename: str) -> None:
        pass

    def set_missing_host_key_policy(self, policy: object) -> None:
        assert isinstance(policy, paramiko.RejectPolicy)

    def connect(self, hostname: str, **kwargs: object) -> None:
        if self.fail is not None:
            raise self.fail
        self.connected = {"hostname": hostname, **kwargs}

    def exec_command(self, command: str, timeout: float | None = None) -> tuple[object, ...]:
        self.commands.append(command)
        out, err, status = self.reply
        return None, _Stream(out, status), _Stream(err, status)

    def get_transport(self) -> FakeTransport | None:
        return self.transport

    def open_sftp(self) -> object:
        return self.sftp

    def close(self) -> None:
        self.closed = True


def _ref() -> HostRef:
    return HostRef(
        name="rhel8",
        hostname="rhel8.example",
        port=2222,
        username="geneos",
        root="/opt/itrs",
    )


def test_host_ref_from_url_defaults() -> None:
    """Missing user, port and root fall back to the supplied defaults."""
    ref = HostRef.from_url("web1", "web1.example", default_user="geneos", default_root="/opt/itrs")

    assert ref == HostRef(
        name="web1",
        hostname="web1.example",
        port=22,
        username="geneos",
        root="/opt/itrs",
    )


def test_host_ref_from_full_url() -> None:
    """Every URL component is honoured and round-trips through ``url``."""
    ref = HostRef.from_url(
        "web1",
        "ssh://itrs@web1.example:2200/srv/geneos",
        default_user="geneos",
        default_root="/opt/itrs",
    )

    assert (ref.username, ref.port, ref.root) == ("itrs", 2200, "/srv/geneos")
    assert ref.url() == "ssh://itrs@web1.example:2200/srv/geneos"
    assert ref.to_fields() == {
        "hostname": "web1.example",
        "port": 2200,
        "username": "itrs",
        "geneos": "/srv/geneos",
    }


@pytest.mark.parametrize("url", ["http://web1.example", "ssh://", "ssh://web1:notaport"])
def test_host_ref_rejects_bad_urls(url: str) -> None:
    """Other schemes, missing hosts and bad ports are invalid."""
    with pytest.raises(InvalidConfigError):
        HostRef.from_url("web1", url, default_user="geneos", default_root="/opt/itrs")


def test_connection_failure_is_cached() -> None:
    """A failed connection is reported once and not retried."""
    clients: list[FakeClient] = []

    def factory() -> FakeClient:
        client = FakeClient(fail=paramiko.AuthenticationException("denied"))
        clients.append(client)
        return client

    host = RemoteHost(_ref(), client_factory=factory)  # type: ignore[arg-type]

    with pytest.raises(RemoteUnavailableError, match="ssh://geneos@rhel8.example:2222"):
        host.run(["true"])
    with pytest.raises(RemoteUnavailableError):
        host.exists("/opt/itrs")
    assert len(clients) == 1
    assert clients[0].closed is True


def test_run_reuses_session_and_quotes_arguments() -> None:
    """Commands share one session and are shell-quoted."""
    client = FakeClient()
    client.reply = (b"hello\n", b"", 0)
    host = RemoteHost(_ref(), client_factory=lambda: client)  # type: ignore[arg-type,return-value]

    first = host.run(["echo", "hello"])
    host.run(["ls", "a dir"])

    assert first == CommandResult(returncode=0, stdout="hello\n", stderr="")
    assert client.commands == ["echo hello", "ls 'a dir'"]
    assert client.connected["port"] == 2222
    assert client.connected["username"] == "geneos"

    host.close()
    host.close()
    assert client.closed is True


@pytest.mark.parametrize(
    ("stderr", "expected"),
    [
        ("kill: (100) - No such process", ProcessLookupError),
        ("kill: (100) - Operation not permitted", PermissionError),
        ("kill: something else", OSError),
    ],
)
def test_send_signal_maps_kill_errors(
    stderr: str,
    expected: type[OSError],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """The remote kill diagnostics map onto the local exception types."""
    host = RemoteHost(_ref(), client_factory=FakeClient)  # type: ignore[arg-type]
    calls: list[list[str]] = []

    def fake_run(args: list[str]) -> CommandResult:
        calls.append(list(args))
        return CommandResult(returncode=1, stdout="", stderr=stderr)

    monkeypatch.setattr(host, "run", fake_run)

    with pytest.raises(expected):
        host.send_signal(100, signal.SIGTERM)
    assert calls == [["kill", "-s", "TERM", "100"]]


def test_remote_identity() -> None:
    """Remote adapters are never local and root only when logged in as root."""
    host = RemoteHost(_ref(), client_factory=FakeClient)  # type: ignore[arg-type]
    assert host.is_local is False
    assert host.username == "geneos"
    assert host.is_superuser() is False
    assert host.name == "rhel8"
    assert host.root == "/opt/itrs"


def _remote(client: FakeClient, *, username: str = "geneos", root: str = "/opt/itrs") -> RemoteHost:
    ref = HostRef(name="rhel8", hostname="rhel8.example", username=username, root=root)
    return RemoteHost(ref, client_factory=lambda: client)  # type: ignore[arg-type,return-value]


def test_run_detached_sends_launch_script() -> None:
    """The shell changes directory, exports the environment and backgrounds the program."""
    client = FakeClient()
    host = _remote(client)

    pid = host.run_detached(
        "/opt/itrs/gateway/gateways/g1",
        "/opt/itrs/packages/gateway/active_prod/gateway2.linux_64",
        ["g1", "-port", "7039"],
        {"TZ": "Europe/London", "OPTS": "a b"},
        "/opt/itrs/gateway/gateways/g1/gateway.txt",
    )

    assert pid is None
    [channel] = client.transport.channels  # type: ignore[union-attr]
    assert channel.sent.decode() == (
        "cd /opt/itrs/gateway/gateways/g1\n"
        "export TZ=Europe/London\n"
        "export OPTS='a b'\n"
        "/opt/itrs/packages/gateway/active_prod/gateway2.linux_64 g1 -port 7039"
        " >>/opt/itrs/gateway/gateways/g1/gateway.txt 2>&1 &\n"
        "exit\n"
    )
    assert channel.shell is True
    assert channel.eof is True
    assert channel.closed is True


def test_run_detached_as_root_switches_user() -> None:
    """A root login launches another account's instance through su."""
    client = FakeClient()
    host = _remote(client, username="root")

    host.run_detached(
        "/opt/itrs/gateway/gateways/g1",
        "/bin/gw",
        ["g1"],
        {},
        "/tmp/o.txt",
        owner=UserIds(name="geneos", uid=1000, gid=1000),
    )

    [channel] = client.transport.channels  # type: ignore[union-attr]
    inner = "cd /opt/itrs/gateway/gateways/g1\n/bin/gw g1 >>/tmp/o.txt 2>&1 &"
    assert channel.sent.decode() == f"su -s /bin/sh geneos -c {shlex.quote(inner)}\nexit\n"


def test_run_detached_as_same_user_runs_directly() -> None:
    """No user switch is needed when the login already owns the instance."""
    client = FakeClient()
    host = _remote(client)

    host.run_detached("/srv", "/bin/gw", [], {}, "/tmp/o.txt", owner=UserIds("geneos", 1000, 1000))

    [channel] = client.transport.channels  # type: ignore[union-attr]
    assert not channel.sent.decode().startswith("su ")


def test_run_detached_refuses_other_user_without_root() -> None:
    """An unprivileged login may not start processes for another account."""
    client = FakeClient()
    host = _remote(client, username="monitor")

    with pytest.raises(PermissionDeniedError, match="geneos"):
        host.run_detached("/srv", "/bin/gw", [], {}, "/tmp/o.txt", owner=UserIds("geneos", 1, 1))
    assert client.transport.channels == []  # type: ignore[union-attr]


def test_run_detached_without_transport_is_unavailable() -> None:
    """A dropped session surfaces as an unavailable remote."""
    client = FakeClient()
    client.transport = None
    host = _remote(client)

    with pytest.raises(RemoteUnavailableError, match="rhel8"):
        host.run_detached("/srv", "/bin/gw", [], {}, "/tmp/o.txt")


def test_sftp_file_primitives(tmp_path: Path) -> None:
    """Directory, file and link operations go through the SFTP channel."""
    client = FakeClient()
    host = _remote(client, root=str(tmp_path))
    home = host.path("netprobe", "netprobes", "p1")

    host.mkdir_all(home)
    assert host.is_dir(home)
    host.create(f"{home}/netprobe.disabled", 0o640)
    assert host.stat(f"{home}/netprobe.disabled").mode & 0o777 == 0o640

    host.write_atomic(f"{home}/netprobe.json", b'{"name": "p1"}\n', mode=0o664)
    assert host.read_text(f"{home}/netprobe.json") == '{"name": "p1"}\n'
    assert host.stat(f"{home}/netprobe.json").size == 15
    assert host.list_dir(home) == ["netprobe.disabled", "netprobe.json"]

    host.rename(f"{home}/netprobe.json", f"{home}/netprobe.json.orig")
    host.symlink("netprobe.json.orig", f"{home}/current")
    assert host.readlink(f"{home}/current") == "netprobe.json.orig"
    assert host.lstat(f"{home}/current").is_link

    host.remove_all(home)
    assert not host.exists(home)
    with pytest.raises(FileNotFoundError):
        host.stat(home)

    host.close()
    assert client.sftp.closed is True  # type: ignore[attr-defined]


class _BrokenSFTP(FakeSFTP):
    def stat(self, path: str) -> os.stat_result:
        raise paramiko.SSHException("channel closed")


class _DroppingReader(io.BytesIO):
    def read(self, size: int | None = -1) -> bytes:
        raise EOFError("connection dropped")


def test_sftp_session_errors_are_classified(tmp_path: Path) -> None:
    """Session failures, including during a read, become RemoteUnavailableError."""
    client = FakeClient()
    client.sftp = _BrokenSFTP()
    host = _remote(client, root=str(tmp_path))

    with pytest.raises(RemoteUnavailableError, match="stat"):
        host.exists(str(tmp_path))

    dropping = FakeSFTP()
    dropping.open = lambda path, mode="r": _DroppingReader(b"")  # type: ignore[method-assign]
    client.sftp = dropping
    host.close()

    with pytest.raises(RemoteUnavailableError, match="read"):
        host.read_bytes(str(tmp_path / "gateway.json"))
