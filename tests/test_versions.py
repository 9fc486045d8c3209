"""Release discovery and base link update tests."""
from __future__ import annotations

import signal
from pathlib import Path

import pytest

from conftest import FakeFinder, RecordingHost
from geneosctl.errors import AlreadyExistsError, NotFoundError, PermissionDeniedError
from geneosctl.fleet import Fleet
from geneosctl.versions import (
    component_version,
    installed_versions,
    select_version,
    update_to_version,
    update_types,
    version_key,
)


@pytest.fixture()
def packages(geneos_root: Path) -> Path:
    """Unpack a few netprobe releases."""
    basedir = geneos_root / "packages" / "netprobe"
    for release in ("5.9.0", "5.14.2", "5.10.1", "notes"):
        program = basedir / release / "netprobe.linux_64"
        program.parent.mkdir(parents=True)
        program.write_text("#!/bin/sh\n")
        program.chmod(0o755)
    (basedir / "README").write_text("not a release")
    return basedir


def test_version_key_orders_numerically() -> None:
    """Release names sort by version, unversioned names first."""
    names = ["GA5.14.2", "5.9.0", "misc", "5.10.1"]
    assert sorted(names, key=version_key) == ["misc", "5.9.0", "5.10.1", "GA5.14.2"]


def test_installed_and_selected_versions(fleet: Fleet, packages: Path) -> None:
    """Only real directories count; prefixes pick the newest match."""
    host = fleet.session.local
    netprobe = fleet.registry.get("netprobe")
    (packages / "active_prod").symlink_to("5.9.0")

    assert installed_versions(host, netprobe) == ["notes", "5.9.0", "5.10.1", "5.14.2"]
    assert select_version(host, netprobe) == "5.14.2"
    assert select_version(host, netprobe, "5.1") == "5.14.2"
    assert select_version(host, netprobe, "5.9") == "5.9.0"
    with pytest.raises(NotFoundError):
        select_version(host, netprobe, "6")
    with pytest.raises(NotFoundError):
        select_version(host, fleet.registry.get("gateway"))


def test_update_creates_link_then_is_idempotent(fleet: Fleet, packages: Path) -> None:
    """A missing link is created; repeating the update changes nothing."""
    host = fleet.session.local
    netprobe = fleet.registry.get("netprobe")

    first = update_to_version(fleet, host, netprobe)
    again = update_to_version(fleet, host, netprobe)

    assert (first.version, first.previous, first.changed) == ("5.14.2", "", True)
    assert (packages / "active_prod").readlink() == Path("5.14.2")
    assert again.changed is False


def test_update_requires_overwrite_and_restarts_instances(
    fleet: Fleet,
    geneos_root: Path,
    packages: Path,
    local_host: RecordingHost,
    finder: FakeFinder,
) -> None:
    """Moving an existing link needs overwrite and bounces affected instances."""
    host = fleet.session.local
    netprobe = fleet.registry.get("netprobe")
    (packages / "active_prod").symlink_to("5.14.2")
    (geneos_root / "netprobe" / "netprobes" / "p1").mkdir(parents=True)
    (geneos_root / "netprobe" / "netprobes" / "p2").mkdir(parents=True)

    with pytest.raises(AlreadyExistsError, match="5.14.2"):
        update_to_version(fleet, host, netprobe, version="5.9")

    finder.script = [100, None, None]
    result = update_to_version(fleet, host, netprobe, version="5.9", overwrite=True)

    assert result.changed is True
    assert result.previous == "5.14.2"
    assert result.restarted == ["netprobe:p1@localhost"]
    assert local_host.signals == [(100, signal.SIGTERM)]
    assert len(local_host.launches) == 1
    assert component_version(fleet.resolve("netprobe", "p1")) == "5.9.0"


def test_update_related_types_skips_missing(fleet: Fleet, packages: Path) -> None:
    """Updating a san updates the netprobe and fa2 packages that exist."""
    host = fleet.session.local

    results = update_types(fleet, host, fleet.registry.get("san"))

    assert [(result.tag, result.version) for result in results] == [("netprobe", "5.14.2")]


def test_component_version_without_link(fleet: Fleet, geneos_root: Path, packages: Path) -> None:
    """A fixed release directory is reported as is; a missing one as empty."""
    (geneos_root / "netprobe" / "netprobes" / "p1").mkdir(parents=True)
    instance = fleet.resolve("netprobe", "p1")

    assert component_version(instance) == ""
    instance.record["version"] = "5.10.1"
    assert component_version(instance) == "5.10.1"


def test_update_restarts_stopped_instances_when_a_stop_fails(
    fleet: Fleet,
    geneos_root: Path,
    packages: Path,
    local_host: RecordingHost,
    finder: FakeFinder,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Instances already stopped are started again and the link is left alone."""
    monkeypatch.setattr(local_host, "is_superuser", lambda: False)
    host = fleet.session.local
    (packages / "active_prod").symlink_to("5.14.2")
    (geneos_root / "netprobe" / "netprobes" / "p1").mkdir(parents=True)
    foreign = geneos_root / "netprobe" / "netprobes" / "p2"
    foreign.mkdir(parents=True)
    (foreign / "netprobe.json").write_text('{"name": "p2", "user": "no-such-user-here"}')
    local_host.gone = {111}
    finder.script = [111, 222, None]

    with pytest.raises(PermissionDeniedError):
        update_to_version(
            fleet, host, fleet.registry.get("netprobe"), version="5.9", overwrite=True
        )

    assert local_host.signals == [(111, signal.SIGTERM)]
    assert len(local_host.launches) == 1
    assert (packages / "active_prod").readlink() == Path("5.14.2")


def test_update_collects_restart_failures(
    fleet: Fleet,
    geneos_root: Path,
    packages: Path,
    local_host: RecordingHost,
    finder: FakeFinder,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A failed restart is reported without undoing the new link."""
    host = fleet.session.local
    (packages / "active_prod").symlink_to("5.14.2")
    (geneos_root / "netprobe" / "netprobes" / "p1").mkdir(parents=True)
    finder.script = [100, None, None]

    def refuse(*args: object, **kwargs: object) -> None:
        raise OSError("no room")

    monkeypatch.setattr(local_host, "run_detached", refuse)

    result = update_to_version(
        fleet, host, fleet.registry.get("netprobe"), version="5.9", overwrite=True
    )

    assert result.changed is True
    assert result.restarted == []
    assert result.failed == [("netprobe:p1@localhost", "no room")]
    assert (packages / "active_prod").readlink() == Path("5.9.0")
    assert [entry.name for entry in packages.iterdir() if entry.name.startswith(".")] == []
