"""Default expression evaluation tests."""
from __future__ import annotations

import logging

import pytest

from geneosctl.expressions import ExpressionError, apply_defaults, evaluate
from geneosctl.records import ConfigRecord


def test_evaluate_uses_record_fields_and_join() -> None:
    """Templates see record fields and the join helper."""
    record = ConfigRecord({"root": "/opt/itrs", "name": "gw1"})

    assert evaluate('{{ join(root, "gateway", "gateways", name) }}', record) == (
        "/opt/itrs/gateway/gateways/gw1"
    )
    assert evaluate("plain", record) == "plain"


def test_evaluate_undefined_field_raises() -> None:
    """Referencing an unset field is an evaluation failure."""
    with pytest.raises(ExpressionError):
        evaluate("{{ install }}/bin", ConfigRecord({"root": "/opt/itrs"}))


def test_defaults_see_earlier_results() -> None:
    """Each default may reference fields produced before it."""
    record = ConfigRecord({"root": "/r", "name": "p1"}, int_fields={"port"})
    failed = apply_defaults(
        record,
        (
            ("install", '{{ join(root, "packages", "netprobe") }}'),
            ("version", "active_prod"),
            ("program", '{{ join(install, version, "netprobe.linux_64") }}'),
            ("port", "7036"),
        ),
    )

    assert failed == []
    assert record["program"] == "/r/packages/netprobe/active_prod/netprobe.linux_64"
    assert record["port"] == 7036


def test_failed_default_sets_zero_and_continues(caplog: pytest.LogCaptureFixture) -> None:
    """A failing expression logs a warning, yields the zero value, and the rest still run."""
    record = ConfigRecord({"root": "/r"}, int_fields={"port"})

    with caplog.at_level(logging.WARNING):
        failed = apply_defaults(
            record,
            (
                ("home", "{{ join(root, missing) }}"),
                ("port", "{{ nope }}"),
                ("logfile", "app.log"),
            ),
            label="netprobe:p1@localhost",
        )

    assert failed == ["home", "port"]
    assert record["home"] == ""
    assert record["port"] == 0
    assert record["logfile"] == "app.log"
    assert "netprobe:p1@localhost" in caplog.text


def test_conditional_expression() -> None:
    """Conditionals select between variants."""
    source = '{% if santype == "fa2" %}fix-analyser2-{% endif %}netprobe.linux_64'

    assert evaluate(source, ConfigRecord({"santype": "fa2"})) == "fix-analyser2-netprobe.linux_64"
    assert evaluate(source, ConfigRecord({"santype": "netprobe"})) == "netprobe.linux_64"
