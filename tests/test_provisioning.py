"""Instance and host provisioning tests."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import CURRENT_USER
from geneosctl.errors import (
    AlreadyExistsError,
    InvalidConfigError,
    InvalidNameError,
    NotFoundError,
)
from geneosctl.fleet import Fleet
from geneosctl.provisioning import (
    add_host,
    add_instance,
    add_values,
    parse_assignments,
    set_fields,
    unset_fields,
)


def _saved(path: str) -> dict[str, object]:
    return json.loads(Path(path).read_text())


def test_add_instance_assigns_free_ports(fleet: Fleet, geneos_root: Path) -> None:
    """Consecutive adds take the next free port of the type's range."""
    first = add_instance(fleet, "netprobe", "p1")
    second = add_instance(fleet, "netprobe", "p2")

    assert first.home == str(geneos_root / "netprobe" / "netprobes" / "p1")
    assert first.port == 7036
    assert second.port == 7100
    saved = _saved(first.structured_path)
    assert saved["name"] == "p1"
    assert saved["port"] == 7036
    assert saved["user"] == CURRENT_USER
    assert Path(first.structured_path).stat().st_mode & 0o777 == 0o664


def test_add_instance_options(fleet: Fleet) -> None:
    """Explicit port, user and seed values are kept."""
    instance = add_instance(
        fleet,
        "gateway",
        "g1",
        user="itrs",
        port=7500,
        seeds={"options": "-debug"},
    )

    saved = _saved(instance.structured_path)
    assert saved["port"] == 7500
    assert saved["user"] == "itrs"
    assert saved["options"] == "-debug"


def test_add_instance_refuses_existing(fleet: Fleet) -> None:
    """Adding the same instance twice fails."""
    add_instance(fleet, "licd", "l1")

    with pytest.raises(AlreadyExistsError):
        add_instance(fleet, "licd", "l1")


@pytest.mark.parametrize("name", ["all", "netprobe", "bad/name", "-x"])
def test_add_instance_rejects_names(fleet: Fleet, name: str) -> None:
    """Reserved words, type names and malformed names are refused."""
    with pytest.raises(InvalidNameError):
        add_instance(fleet, "netprobe", name)


def test_add_instance_unknown_host(fleet: Fleet) -> None:
    """Instances can only be added to configured hosts."""
    with pytest.raises(NotFoundError):
        add_instance(fleet, "netprobe", "p1@nowhere")


def test_add_host_records_connection(fleet: Fleet, geneos_root: Path) -> None:
    """Remote hosts are stored as host records below the local root."""
    ref = add_host(fleet, "rhel8", "ssh://itrs@rhel8.example:2222/srv/geneos")

    assert ref.port == 2222
    saved = _saved(str(geneos_root / "host" / "hosts" / "rhel8" / "host.json"))
    assert saved["hostname"] == "rhel8.example"
    assert saved["port"] == 2222
    assert saved["username"] == "itrs"
    assert saved["geneos"] == "/srv/geneos"
    assert fleet.session.remote_names() == ["rhel8"]

    with pytest.raises(AlreadyExistsError):
        add_host(fleet, "rhel8", "rhel8.example")


@pytest.mark.parametrize("name", ["localhost", "local", "all"])
def test_add_host_reserved_names(fleet: Fleet, name: str) -> None:
    """Names that mean the local host or every host are refused."""
    with pytest.raises(InvalidNameError):
        add_host(fleet, name, "elsewhere.example")


def test_set_add_and_unset_fields(fleet: Fleet) -> None:
    """Edits persist only when something changes."""
    instance = add_instance(fleet, "netprobe", "p1")
    path = Path(instance.structured_path)

    assert set_fields(instance, {"port": "7040", "options": "-debug"}) == ["port", "options"]
    assert _saved(str(path))["port"] == 7040

    mtime = path.stat().st_mtime_ns
    assert set_fields(instance, {"port": "7040"}) == []
    assert path.stat().st_mtime_ns == mtime

    assert add_values(instance, "env", ["TZ=UTC", "TZ=UTC", "LANG=C"]) == ["TZ=UTC", "LANG=C"]
    assert add_values(instance, "env", ["TZ=UTC"]) == []
    assert _saved(str(path))["env"] == ["TZ=UTC", "LANG=C"]

    assert unset_fields(instance, ["options", "missing"]) == ["options"]
    assert "options" not in _saved(str(path))


@pytest.mark.parametrize("field", ["name", "home", "root"])
def test_read_only_fields(fleet: Fleet, field: str) -> None:
    """Identity fields cannot be edited."""
    instance = add_instance(fleet, "netprobe", "p1")

    with pytest.raises(InvalidConfigError, match=field):
        set_fields(instance, {field: "x"})
    with pytest.raises(InvalidConfigError):
        unset_fields(instance, [field])


def test_parse_assignments() -> None:
    """Keys are lower-cased; values keep any further equals signs."""
    assert parse_assignments(["Port=7040", "env=TZ=UTC"]) == {"port": "7040", "env": "TZ=UTC"}

    with pytest.raises(InvalidConfigError):
        parse_assignments(["novalue"])
    with pytest.raises(InvalidConfigError):
        parse_assignments(["=x"])
