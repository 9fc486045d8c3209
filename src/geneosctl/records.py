"""Ordered, typed field mapping describing one resolved instance."""
from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, MutableMapping

from .errors import InvalidConfigError

Value = str | int | list[str]


class ConfigRecord(MutableMapping[str, Value]):
    """Flat mapping from field name to a string, integer or string list.

    Fields named in *int_fields* or *list_fields* are coerced on assignment;
    any other field keeps integers and string lists as given and stores
    everything else as a string.
    """

    def __init__(
        self,
        values: Mapping[str, object] | None = None,
        *,
        int_fields: Iterable[str] = (),
        list_fields: Iterable[str] = (),
    ) -> None:
        """Create a record, coercing the initial *values*."""
        self._int_fields = frozenset(int_fields)
        self._list_fields = frozenset(list_fields)
        self._values: dict[str, Value] = {}
        for key, value in (values or {}).items():
            self[key] = value  # type: ignore[assignment]

    # MutableMapping ---------------------------------------------------
    def __getitem__(self, key: str) -> Value:
        return self._values[key]

    def __setitem__(self, key: str, value: object) -> None:
        self._values[key] = self._coerce(key, value)

    def __delitem__(self, key: str) -> None:
        del self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ConfigRecord({self._values!r})"

    # Typed accessors --------------------------------------------------
    def get_str(self, key: str, default: str = "") -> str:
        """Return *key* as a string."""
        value = self._values.get(key)
        if value is None:
            return default
        if isinstance(value, list):
            return " ".join(value)
        return str(value)

    def get_int(self, key: str, default: int = 0) -> int:
        """Return *key* as an integer."""
        value = self._values.get(key)
        if value is None or value == "":
            return default
        if isinstance(value, list):
            raise InvalidConfigError(f"field {key!r} is a list, not an integer")
        try:
            return int(value)
        except ValueError as exc:
            raise InvalidConfigError(f"field {key!r} is not an integer: {value!r}") from exc

    def get_list(self, key: str) -> list[str]:
        """Return *key* as a list of strings (copy)."""
        value = self._values.get(key)
        if value is None or value == "":
            return []
        if isinstance(value, list):
            return list(value)
        return [str(value)]

    def add(self, key: str, item: str) -> None:
        """Append *item* to list field *key* unless already present."""
        items = self.get_list(key)
        if item not in items:
            items.append(item)
        self._values[key] = items

    def remove_item(self, key: str, item: str) -> bool:
        """Remove *item* from list field *key*; return whether it was present."""
        items = self.get_list(key)
        if item not in items:
            return False
        items.remove(item)
        self._values[key] = items
        return True

    def zero(self, key: str) -> Value:
        """Return the empty value for *key*'s kind."""
        if key in self._int_fields:
            return 0
        if key in self._list_fields:
            return []
        return ""

    def to_dict(self) -> dict[str, Value]:
        """Return an ordered plain-dict copy."""
        return {
            key: list(value) if isinstance(value, list) else value
            for key, value in self._values.items()
        }

    # ------------------------------------------------------------------
    def _coerce(self, key: str, value: object) -> Value:
        if key in self._int_fields:
            if value is None or value == "":
                return 0
            if isinstance(value, bool) or isinstance(value, (list, dict)):
                raise InvalidConfigError(f"field {key!r} must be an integer, got {value!r}")
            try:
                return int(value)  # type: ignore[call-overload]
            except (TypeError, ValueError) as exc:
                raise InvalidConfigError(
                    f"field {key!r} must be an integer, got {value!r}"
                ) from exc
        if key in self._list_fields:
            if value is None or value == "":
                return []
            if isinstance(value, (list, tuple)):
                return [str(item) for item in value]
            if isinstance(value, str):
                return [value]
            raise InvalidConfigError(f"field {key!r} must be a list, got {value!r}")
        if value is None:
            return ""
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, int):
            return value
        if isinstance(value, (list, tuple)):
            return [str(item) for item in value]
        if isinstance(value, dict):
            raise InvalidConfigError(f"field {key!r} cannot hold a mapping")
        return str(value)


__all__ = ["ConfigRecord", "Value"]
