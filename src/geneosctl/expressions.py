"""Evaluation of default-value expressions.

Expressions are Jinja2 templates rendered with ``StrictUndefined`` against the
fields already present in a record, plus a ``join`` helper for POSIX path
joins::

    {{ join(root, "gateway", "gateways", name) }}
    {% if santype == "fa2" %}fix-analyser2-{% endif %}netprobe.linux_64
"""
from __future__ import annotations

import logging
import posixpath
from collections.abc import Sequence
from functools import lru_cache

from jinja2 import Environment, StrictUndefined, Template, TemplateError

from .records import ConfigRecord

LOGGER = logging.getLogger(__name__)


def _join(*parts: object) -> str:
    return posixpath.join(*(str(part) for part in parts))


_ENVIRONMENT = Environment(  # noqa: S701 - output is never HTML
    undefined=StrictUndefined,
    autoescape=False,
    keep_trailing_newline=False,
)
_ENVIRONMENT.globals["join"] = _join


class ExpressionError(RuntimeError):
    """Raised when an expression cannot be rendered."""


@lru_cache(maxsize=256)
def _compile(source: str) -> Template:
    return _ENVIRONMENT.from_string(source)


def evaluate(source: str, record: ConfigRecord) -> str:
    """Render *source* against the fields of *record*."""
    try:
        return _compile(source).render(**record.to_dict())
    except (TemplateError, TypeError, ValueError) as exc:
        raise ExpressionError(f"{source!r}: {exc}") from exc


def apply_defaults(
    record: ConfigRecord,
    defaults: Sequence[tuple[str, str]],
    *,
    label: str = "",
) -> list[str]:
    """Evaluate *defaults* in order, writing each result into *record*.

    A failing expression is logged and its field set to the zero value; the
    remaining expressions are still evaluated. Returns the failed field names.
    """
    failed: list[str] = []
    for field_name, source in defaults:
        try:
            record[field_name] = evaluate(source, record)
        except ExpressionError as exc:
            LOGGER.warning("%s: cannot evaluate default for %s: %s", label, field_name, exc)
            record[field_name] = record.zero(field_name)
            failed.append(field_name)
    return failed


__all__ = ["ExpressionError", "apply_defaults", "evaluate"]
