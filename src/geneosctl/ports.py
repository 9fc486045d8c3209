"""Port allocation helpers for geneosctl.

Occupied ports are never stored: every query resolves the configuration of
every instance on the host and collects their ``port`` fields. Two
allocations running at the same time can therefore pick the same port.
"""
from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass

from .errors import GeneosError
from .hosts import Host
from .registry import ComponentRegistry
from .resolver import ConfigResolver

LOGGER = logging.getLogger(__name__)

MAX_PORT = 49151


class PortsRegistryError(RuntimeError):
    """Raised when the occupied-port view cannot be built in strict mode."""


def parse_range(expression: str) -> list[range]:
    """Return the candidate ranges of a range expression, in order.

    Tokens are separated by commas and are a single port (``7036``), an
    inclusive range (``7100-7199`` or ``7100..7199``) or an open range
    (``7100-``, ending at 49151). Malformed tokens are skipped.
    """
    ranges: list[range] = []
    for raw in expression.split(","):
        token = raw.strip()
        if not token:
            continue
        if ".." in token:
            low_text, _, high_text = token.partition("..")
        elif "-" in token:
            low_text, _, high_text = token.partition("-")
        else:
            low_text, high_text = token, None
        try:
            low = int(low_text)
            if high_text is None:
                high = low
            elif high_text.strip() == "":
                high = MAX_PORT
            else:
                high = int(high_text)
        except ValueError:
            LOGGER.debug("skipping malformed port token %r", token)
            continue
        if high_text is None:
            if not 1 <= low <= MAX_PORT:
                LOGGER.debug("skipping out of range port %r", token)
                continue
        elif low < 1 or low >= high:
            LOGGER.debug("skipping empty port range %r", token)
            continue
        ranges.append(range(low, high + 1))
    return ranges


def first_free(expression: str, occupied: set[int] | dict[int, str]) -> int:
    """Return the first port of *expression* not in *occupied*, or 0."""
    for candidates in parse_range(expression):
        for port in candidates:
            if port not in occupied:
                return port
    return 0


@dataclass(slots=True)
class PortAllocator:
    """Answer "first free port" queries against live instance configuration."""

    resolver: ConfigResolver
    registry: ComponentRegistry
    strict: bool = False

    def used_ports(self, host: Host) -> dict[int, str]:
        """Return ``{port: type tag}`` for every instance on *host*."""
        used: dict[int, str] = {}
        for tag, port in self._iter_ports(host):
            used.setdefault(port, tag)
        return used

    def next_free_port(self, host: Host, expression: str) -> int:
        """Return the first free port of *expression* on *host*, or 0."""
        return first_free(expression, self.used_ports(host))

    # Internal helpers -------------------------------------------------
    def _iter_ports(self, host: Host) -> Iterator[tuple[str, int]]:
        for ctype in self.registry.types_with_flag(real=True):
            for name in self.resolver.instance_names(ctype, host):
                try:
                    instance = self.resolver.resolve(ctype, name, host, migrate=False)
                    port = instance.port
                except (GeneosError, OSError) as exc:
                    if self.strict:
                        raise PortsRegistryError(
                            f"cannot read {ctype.tag}:{name}@{host.name}: {exc}"
                        ) from exc
                    LOGGER.warning(
                        "%s:%s@%s: skipped while collecting ports: %s",
                        ctype.tag,
                        name,
                        host.name,
                        exc,
                    )
                    continue
                if port > 0:
                    yield ctype.tag, port


__all__ = ["MAX_PORT", "PortAllocator", "PortsRegistryError", "first_free", "parse_range"]
