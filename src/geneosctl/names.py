"""Parsing and validation of ``[TYPE:]NAME[@HOST]`` instance names."""
from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from .errors import InvalidNameError

NAME_PATTERN = re.compile(r"^\w[\w.\- ]*$")


@dataclass(frozen=True, slots=True)
class InstanceName:
    """A parsed instance reference."""

    name: str
    type_name: str | None = None
    host: str | None = None

    def __str__(self) -> str:
        text = self.name
        if self.type_name:
            text = f"{self.type_name}:{text}"
        if self.host:
            text = f"{text}@{self.host}"
        return text


def split_name(text: str) -> InstanceName:
    """Split ``[TYPE:]NAME[@HOST]`` into its parts."""
    text = text.strip()
    type_name: str | None = None
    host: str | None = None
    if ":" in text:
        type_name, text = text.split(":", 1)
    if "@" in text:
        text, host = text.rsplit("@", 1)
    return InstanceName(name=text, type_name=type_name or None, host=host or None)


def validate_name(name: str, reserved: Iterable[str] = ()) -> str:
    """Return *name* if it is a legal, non-reserved instance name."""
    if not NAME_PATTERN.match(name):
        raise InvalidNameError(f"invalid instance name {name!r}")
    lowered = name.lower()
    if lowered in {word.lower() for word in reserved}:
        raise InvalidNameError(f"instance name {name!r} is reserved")
    return name


__all__ = ["InstanceName", "NAME_PATTERN", "split_name", "validate_name"]
