"""Per-invocation cache of host adapters."""
from __future__ import annotations

import json
import logging
import posixpath
from collections.abc import Callable, Iterator
from types import TracebackType

from ..config import AppConfig
from ..errors import InvalidConfigError, NotFoundError, RemoteUnavailableError
from .base import LOCALHOST, Host
from .local import LocalHost
from .remote import DEFAULT_SSH_PORT, HostRef, RemoteHost

LOGGER = logging.getLogger(__name__)

HOST_TYPE = "host"
LOCAL_ALIASES = frozenset({"", LOCALHOST, "local"})

RemoteFactory = Callable[[HostRef, AppConfig], Host]


def hosts_dir(local: Host) -> str:
    """Return the directory holding remote host records."""
    return local.path(HOST_TYPE, f"{HOST_TYPE}s")


def host_config_path(local: Host, name: str) -> str:
    """Return the persisted record path for remote host *name*."""
    return posixpath.join(hosts_dir(local), name, f"{HOST_TYPE}.json")


def _remote_host(ref: HostRef, config: AppConfig) -> Host:
    return RemoteHost(
        ref,
        private_keys=config.ssh.private_keys,
        known_hosts=config.ssh.known_hosts,
        timeout=config.ssh.timeout,
    )


class FleetSession:
    """Resolve host names to adapters and own their sessions.

    Remote adapters are created once per name and reused for the rest of the
    invocation. :meth:`close` tears all of them down and may be called more
    than once.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        local: Host | None = None,
        remote_factory: RemoteFactory = _remote_host,
    ) -> None:
        """Create a session rooted at ``config.root``."""
        self.config = config
        self.local = local or LocalHost(str(config.root))
        self._remote_factory = remote_factory
        self._remotes: dict[str, Host] = {}
        self._closed = False

    def __enter__(self) -> FleetSession:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    # ------------------------------------------------------------------
    def host(self, name: str | None = None) -> Host:
        """Return the adapter for host *name* (``None`` means local)."""
        if self._closed:
            raise RemoteUnavailableError("fleet session is closed")
        if name is None or name in LOCAL_ALIASES or name == self.local.name:
            return self.local
        cached = self._remotes.get(name)
        if cached is not None:
            return cached
        ref = self.load_ref(name)
        host = self._remote_factory(ref, self.config)
        self._remotes[name] = host
        return host

    def load_ref(self, name: str) -> HostRef:
        """Read the persisted record for remote host *name*."""
        path = host_config_path(self.local, name)
        try:
            raw = json.loads(self.local.read_text(path))
        except FileNotFoundError as exc:
            raise NotFoundError(f"host {name!r} is not configured") from exc
        except ValueError as exc:
            raise InvalidConfigError(f"{path}: {exc}") from exc
        if not isinstance(raw, dict) or not raw.get("hostname"):
            raise InvalidConfigError(f"{path}: missing hostname")
        try:
            port = int(raw.get("port") or DEFAULT_SSH_PORT)
        except (TypeError, ValueError) as exc:
            raise InvalidConfigError(f"{path}: invalid port {raw.get('port')!r}") from exc
        return HostRef(
            name=name,
            hostname=str(raw["hostname"]),
            port=port,
            username=str(raw.get("username") or self.config.default_user),
            root=str(raw.get("geneos") or self.local.root),
        )

    def remote_names(self) -> list[str]:
        """Return the configured remote host names."""
        try:
            entries = self.local.list_dir(hosts_dir(self.local))
        except FileNotFoundError:
            return []
        return [
            entry
            for entry in entries
            if self.local.exists(host_config_path(self.local, entry))
        ]

    def hosts(self, name: str | None = None) -> Iterator[Host]:
        """Yield host *name*, or the local host followed by every remote."""
        if name is not None:
            yield self.host(name)
            return
        yield self.local
        for remote in self.remote_names():
            yield self.host(remote)

    def close(self) -> None:
        """Close every cached remote session."""
        if self._closed:
            return
        self._closed = True
        for name, host in self._remotes.items():
            try:
                host.close()
            except (OSError, RemoteUnavailableError) as exc:
                LOGGER.warning("%s: error closing session: %s", name, exc)
        self._remotes.clear()


__all__ = [
    "FleetSession",
    "HOST_TYPE",
    "host_config_path",
    "hosts_dir",
]
