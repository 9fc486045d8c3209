"""Component type descriptors and the registry that looks them up."""
from __future__ import annotations

import logging
import posixpath
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .errors import NotSupportedError

if TYPE_CHECKING:
    from .instance import Instance

LOGGER = logging.getLogger(__name__)

CommandBuilder = Callable[["Instance"], tuple[list[str], list[str]]]
ProcessMatcher = Callable[["Instance", Sequence[str]], bool]

# Names that select every type rather than one of them.
WILDCARD_TYPES = frozenset({"all", "any"})


class RegistryError(RuntimeError):
    """Raised when a descriptor conflicts with one already registered."""


@dataclass(frozen=True, eq=False)
class ComponentType:
    """Immutable description of one kind of instance.

    ``defaults`` is an ordered sequence of ``(field, template)`` pairs; each
    template may reference fields set earlier in the sequence as well as the
    seed fields ``root`` and ``name`` and any ``seeds`` of the type.
    """

    tag: str
    aliases: tuple[str, ...]
    real: bool = True
    related: tuple[str, ...] = ()
    seeds: Mapping[str, str] = field(default_factory=dict)
    defaults: tuple[tuple[str, str], ...] = ()
    directories: tuple[str, ...] = ()
    settings: Mapping[str, str] = field(default_factory=dict)
    int_fields: frozenset[str] = frozenset({"port"})
    list_fields: frozenset[str] = frozenset({"env"})
    legacy_prefix: str = ""
    legacy_aliases: Mapping[str, str] = field(default_factory=dict)
    build_command: CommandBuilder | None = None
    match_process: ProcessMatcher | None = None
    reload_signal: int | None = None

    def matches(self, name: str) -> bool:
        """Return whether *name* selects this type."""
        lowered = name.lower()
        return lowered == self.tag or lowered in self.aliases

    def instances_dir(self, root: str) -> str:
        """Return ``root/tag/tags``, the parent of every instance home."""
        return posixpath.join(root, self.tag, f"{self.tag}s")

    def setting(self, key: str) -> str:
        """Return a built-in fleet-wide tunable (empty when undefined)."""
        return self.settings.get(key, "")

    def __str__(self) -> str:
        return self.tag


class ComponentRegistry:
    """Table of component types keyed by tag, in registration order."""

    def __init__(self) -> None:
        """Create an empty registry."""
        self._types: dict[str, ComponentType] = {}

    def register(self, ctype: ComponentType) -> None:
        """Insert or replace *ctype*.

        Aliases are unique across tags; a descriptor claiming an alias that
        another tag already owns is rejected.
        """
        claimed = {ctype.tag, *ctype.aliases}
        for other in self._types.values():
            if other.tag == ctype.tag:
                continue
            overlap = claimed & {other.tag, *other.aliases}
            if overlap:
                joined = ", ".join(sorted(overlap))
                raise RegistryError(
                    f"component '{ctype.tag}' reuses names of '{other.tag}': {joined}"
                )
        self._types[ctype.tag] = ctype
        LOGGER.debug("registered component type %s", ctype.tag)

    def find(self, name: str) -> ComponentType | None:
        """Return the type selected by *name*, or ``None``."""
        for ctype in self._types.values():
            if ctype.matches(name):
                return ctype
        return None

    def lookup(self, name: str) -> ComponentType:
        """Return the type selected by *name*."""
        ctype = self.find(name)
        if ctype is None:
            raise NotSupportedError(f"unknown component type {name!r}")
        return ctype

    def get(self, tag: str) -> ComponentType:
        """Return the type registered under *tag*."""
        try:
            return self._types[tag]
        except KeyError as exc:
            raise NotSupportedError(f"unknown component type {tag!r}") from exc

    def types_with_flag(self, *, real: bool = True) -> list[ComponentType]:
        """Return types whose ``real`` flag equals *real*, in registration order."""
        return [ctype for ctype in self._types.values() if ctype.real is real]

    def select(self, name: str | None) -> list[ComponentType]:
        """Return the real types selected by *name* (all of them for ``None``/``all``)."""
        if name is None or name.lower() in WILDCARD_TYPES:
            return self.types_with_flag(real=True)
        return [self.lookup(name)]

    def reserved_names(self) -> set[str]:
        """Return every tag and alias, lower-cased."""
        reserved = set(WILDCARD_TYPES)
        for ctype in self._types.values():
            reserved.add(ctype.tag)
            reserved.update(alias.lower() for alias in ctype.aliases)
        return reserved

    def __iter__(self) -> Iterator[ComponentType]:
        return iter(list(self._types.values()))

    def __contains__(self, tag: object) -> bool:
        return tag in self._types

    def __len__(self) -> int:
        return len(self._types)


__all__ = [
    "CommandBuilder",
    "ComponentRegistry",
    "ComponentType",
    "ProcessMatcher",
    "RegistryError",
    "WILDCARD_TYPES",
]
