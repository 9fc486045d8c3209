"""Fleet-wide wiring: one session, registry, resolver and controller per command."""
from __future__ import annotations

import fnmatch
import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from types import TracebackType
from typing import TypeVar

from .components import default_registry
from .config import AppConfig
from .errors import GeneosError, NotFoundError, RemoteUnavailableError
from .hosts import FleetSession, Host
from .instance import Instance
from .lifecycle import LifecycleController
from .names import split_name
from .ports import PortAllocator
from .registry import ComponentRegistry, ComponentType
from .resolver import ConfigResolver

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class FleetResult:
    """Aggregated outcome of applying one action to many instances."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """Return whether every instance succeeded."""
        return not self.failed


class Fleet:
    """Everything a command needs to find and act on instances."""

    def __init__(
        self,
        config: AppConfig,
        *,
        session: FleetSession | None = None,
        registry: ComponentRegistry | None = None,
        controller: LifecycleController | None = None,
    ) -> None:
        """Assemble the collaborators for one invocation."""
        self.config = config
        self.session = session or FleetSession(config)
        self.registry = registry or default_registry()
        self.resolver = ConfigResolver(self.session, self.registry)
        self.ports = PortAllocator(self.resolver, self.registry, strict=config.strict_ports)
        self.controller = controller or LifecycleController(
            stop_attempts=config.lifecycle.stop_attempts,
            stop_interval=config.lifecycle.stop_interval,
            start_settle=config.lifecycle.start_settle,
        )

    def __enter__(self) -> Fleet:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Tear down remote sessions."""
        self.session.close()

    # ------------------------------------------------------------------
    def setting(self, ctype: ComponentType, key: str) -> str:
        """Return a fleet-wide tunable, configured value first."""
        override = self.config.component(ctype.tag).get(key)
        if override is not None:
            return override
        return ctype.setting(key)

    def reserved_names(self) -> set[str]:
        """Return names instances may not take."""
        return self.registry.reserved_names() | {
            name.lower() for name in self.config.reserved_names
        }

    def resolve(self, ctype: ComponentType | str, name: str, host: str | None = None) -> Instance:
        """Resolve one existing instance."""
        return self.resolver.resolve(ctype, name, host)

    def instances(
        self,
        type_name: str | None,
        names: Sequence[str] = (),
    ) -> list[Instance]:
        """Return the instances selected by a type and name patterns.

        With no *names* every instance of the selected types on every known
        host is returned; unreadable hosts and instances are logged and
        skipped. Named instances that match nothing raise
        :class:`NotFoundError`.
        """
        ctypes = self.registry.select(type_name)
        if not names:
            return list(self._all_instances(ctypes, None, "*"))

        selected: list[Instance] = []
        for text in names:
            parsed = split_name(text)
            scoped = self.registry.select(parsed.type_name) if parsed.type_name else ctypes
            found = list(self._all_instances(scoped, parsed.host, parsed.name))
            if not found:
                raise NotFoundError(f"no instance matches {text!r}")
            selected.extend(found)
        return selected

    def for_each(
        self,
        instances: Iterable[Instance],
        action: Callable[[Instance], T],
        *,
        label: str,
    ) -> FleetResult:
        """Apply *action* to each instance in order, logging and collecting failures."""
        result = FleetResult()
        for instance in instances:
            try:
                action(instance)
            except (GeneosError, OSError) as exc:
                LOGGER.error("%s: %s failed: %s", instance, label, exc)
                result.failed.append((str(instance), str(exc)))
                continue
            result.succeeded.append(str(instance))
        return result

    # ------------------------------------------------------------------
    def hosts(self, host_name: str | None = None) -> list[Host]:
        """Return host *host_name*, or every known host with broken records skipped."""
        if host_name is not None and host_name.lower() != "all":
            return [self.session.host(host_name)]
        hosts: list[Host] = [self.session.local]
        try:
            remotes = self.session.remote_names()
        except OSError as exc:
            LOGGER.error("cannot list remote hosts: %s", exc)
            return hosts
        for name in remotes:
            try:
                hosts.append(self.session.host(name))
            except GeneosError as exc:
                LOGGER.error("%s: skipping host: %s", name, exc)
        return hosts

    def _all_instances(
        self,
        ctypes: Sequence[ComponentType],
        host_name: str | None,
        pattern: str,
    ) -> Iterable[Instance]:
        for host in self.hosts(host_name):
            for ctype in ctypes:
                try:
                    names = self.resolver.instance_names(ctype, host)
                except RemoteUnavailableError as exc:
                    LOGGER.error("%s: skipping host: %s", host.name, exc)
                    break
                except (GeneosError, OSError) as exc:
                    LOGGER.error("%s: cannot list %s instances: %s", host.name, ctype.tag, exc)
                    continue
                for name in names:
                    if not fnmatch.fnmatchcase(name, pattern):
                        continue
                    try:
                        yield self.resolver.resolve(ctype, name, host)
                    except (GeneosError, OSError) as exc:
                        LOGGER.error("%s:%s@%s: %s", ctype.tag, name, host.name, exc)


__all__ = ["Fleet", "FleetResult"]
