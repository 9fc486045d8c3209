"""Process lifecycle controller tests."""
from __future__ import annotations

import signal
from pathlib import Path

import pytest

from conftest import FakeFinder, RecordingHost
from geneosctl.errors import (
    DisabledError,
    NotDisabledError,
    NotFoundError,
    NotSupportedError,
    PermissionDeniedError,
)
from geneosctl.fleet import Fleet
from geneosctl.instance import Instance
from geneosctl.lifecycle import InstanceState


def _install(root: Path, tag: str, binary: str) -> None:
    program = root / "packages" / tag / "active_prod" / binary
    program.parent.mkdir(parents=True, exist_ok=True)
    program.write_text("#!/bin/sh\n")
    program.chmod(0o755)


def _netprobe(fleet: Fleet, root: Path, name: str = "p1", port: int = 7036) -> Instance:
    _install(root, "netprobe", "netprobe.linux_64")
    (root / "netprobe" / "netprobes" / name).mkdir(parents=True)
    instance = fleet.resolver.resolve("netprobe", name)
    instance.record["port"] = port
    return instance


def test_start_launches_with_command_and_environment(
    fleet: Fleet,
    geneos_root: Path,
    local_host: RecordingHost,
) -> None:
    """The launch uses the builder's arguments, options and environment."""
    instance = _netprobe(fleet, geneos_root)
    instance.record["options"] = "-nopassword -debug"
    instance.record.add("env", "TZ=UTC")
    instance.record.add("env", "broken-entry")

    assert fleet.controller.start(instance) == 4242

    [launch] = local_host.launches
    assert launch["program"] == instance.program
    assert launch["workdir"] == instance.home
    assert launch["args"] == ["p1", "-port", "7036", "-nopassword", "-debug"]
    env = launch["env"]
    assert env["LOG_FILENAME"] == f"{instance.home}/netprobe.log"  # type: ignore[index]
    assert env["TZ"] == "UTC"  # type: ignore[index]
    assert env["LD_LIBRARY_PATH"].startswith(str(geneos_root / "packages"))  # type: ignore[index]
    assert launch["output"] == f"{instance.home}/netprobe.txt"


def test_start_is_idempotent_when_running(
    fleet: Fleet,
    geneos_root: Path,
    local_host: RecordingHost,
    finder: FakeFinder,
) -> None:
    """A running instance is not launched again."""
    instance = _netprobe(fleet, geneos_root)
    finder.pids[str(instance)] = 900

    assert fleet.controller.start(instance) == 900
    assert local_host.launches == []


def test_start_refuses_disabled_instance(
    fleet: Fleet,
    geneos_root: Path,
    local_host: RecordingHost,
) -> None:
    """Disabled instances never start."""
    instance = _netprobe(fleet, geneos_root)
    Path(instance.marker_path).write_text("")

    with pytest.raises(DisabledError):
        fleet.controller.start(instance)
    assert local_host.launches == []


def test_start_requires_program(fleet: Fleet, geneos_root: Path) -> None:
    """A missing executable is reported as not found."""
    (geneos_root / "licd" / "licds" / "l1").mkdir(parents=True)
    instance = fleet.resolver.resolve("licd", "l1")

    with pytest.raises(NotFoundError, match="program"):
        fleet.controller.start(instance)


def test_start_polls_when_pid_unknown(
    fleet: Fleet,
    geneos_root: Path,
    local_host: RecordingHost,
    finder: FakeFinder,
    sleeps: list[float],
) -> None:
    """Launches without an immediate PID wait once and rescan."""
    instance = _netprobe(fleet, geneos_root)
    local_host.next_pid = None
    finder.script = [None, 555]

    assert fleet.controller.start(instance) == 555
    assert sleeps == [0.25]


def test_stop_not_running_sends_nothing(
    fleet: Fleet,
    geneos_root: Path,
    local_host: RecordingHost,
) -> None:
    """Stopping a stopped instance is a no-op."""
    instance = _netprobe(fleet, geneos_root)

    assert fleet.controller.stop(instance) is False
    assert local_host.signals == []


def test_stop_graceful_exit(
    fleet: Fleet,
    geneos_root: Path,
    local_host: RecordingHost,
    finder: FakeFinder,
    sleeps: list[float],
) -> None:
    """SIGTERM is enough when the process exits during polling."""
    instance = _netprobe(fleet, geneos_root)
    finder.script = [100, 100, None]

    assert fleet.controller.stop(instance) is True
    assert local_host.signals == [(100, signal.SIGTERM)]
    assert sleeps == [0.25, 0.25]


def test_stop_escalates_to_single_kill(
    fleet: Fleet,
    geneos_root: Path,
    local_host: RecordingHost,
    finder: FakeFinder,
    sleeps: list[float],
) -> None:
    """After the polling budget one SIGKILL is sent."""
    instance = _netprobe(fleet, geneos_root)
    finder.pids[str(instance)] = 100

    assert fleet.controller.stop(instance) is True
    assert local_host.signals == [(100, signal.SIGTERM), (100, signal.SIGKILL)]
    assert len(sleeps) == 10


def test_stop_force_kills_immediately(
    fleet: Fleet,
    geneos_root: Path,
    local_host: RecordingHost,
    finder: FakeFinder,
    sleeps: list[float],
) -> None:
    """Forced stops skip the graceful phase."""
    instance = _netprobe(fleet, geneos_root)
    finder.pids[str(instance)] = 100

    assert fleet.controller.stop(instance, force=True) is True
    assert local_host.signals == [(100, signal.SIGKILL)]
    assert sleeps == []


def test_stop_process_already_gone(
    fleet: Fleet,
    geneos_root: Path,
    local_host: RecordingHost,
    finder: FakeFinder,
    sleeps: list[float],
) -> None:
    """A process exiting before the signal arrives counts as stopped."""
    instance = _netprobe(fleet, geneos_root)
    finder.pids[str(instance)] = 100
    local_host.gone.add(100)

    assert fleet.controller.stop(instance) is True
    assert sleeps == []


def test_disable_and_enable(
    fleet: Fleet,
    geneos_root: Path,
    local_host: RecordingHost,
) -> None:
    """Disable writes the marker once; enable removes it and starts."""
    instance = _netprobe(fleet, geneos_root)

    assert fleet.controller.disable(instance) is True
    assert Path(instance.marker_path).exists()
    assert fleet.controller.disable(instance) is False
    assert fleet.controller.status(instance).state is InstanceState.DISABLED

    assert fleet.controller.enable(instance, start=False) is None
    assert not Path(instance.marker_path).exists()
    assert local_host.launches == []

    fleet.controller.disable(instance)
    assert fleet.controller.enable(instance) == 4242
    assert len(local_host.launches) == 1


def test_disable_stops_running_instance(
    fleet: Fleet,
    geneos_root: Path,
    local_host: RecordingHost,
    finder: FakeFinder,
) -> None:
    """A running instance is stopped before the marker is written."""
    instance = _netprobe(fleet, geneos_root)
    finder.script = [100, None]

    assert fleet.controller.disable(instance) is True
    assert local_host.signals == [(100, signal.SIGTERM)]


def test_restart_only_running_by_default(
    fleet: Fleet,
    geneos_root: Path,
    local_host: RecordingHost,
) -> None:
    """Stopped instances stay stopped unless every instance is requested."""
    instance = _netprobe(fleet, geneos_root)

    assert fleet.controller.restart(instance) is None
    assert local_host.launches == []

    assert fleet.controller.restart(instance, apply_all=True) == 4242
    assert len(local_host.launches) == 1


def test_restart_running_instance(
    fleet: Fleet,
    geneos_root: Path,
    local_host: RecordingHost,
    finder: FakeFinder,
) -> None:
    """Running instances are stopped and started again."""
    instance = _netprobe(fleet, geneos_root)
    finder.script = [100, None, None]

    assert fleet.controller.restart(instance) == 4242
    assert local_host.signals == [(100, signal.SIGTERM)]
    assert len(local_host.launches) == 1


def test_reload_gateway_sends_sigusr1(
    fleet: Fleet,
    geneos_root: Path,
    local_host: RecordingHost,
    finder: FakeFinder,
) -> None:
    """Gateways reload on SIGUSR1; other types cannot reload."""
    (geneos_root / "gateway" / "gateways" / "g1").mkdir(parents=True)
    gateway = fleet.resolver.resolve("gateway", "g1")
    finder.pids[str(gateway)] = 321

    fleet.controller.reload(gateway)
    assert local_host.signals == [(321, signal.SIGUSR1)]

    probe = _netprobe(fleet, geneos_root)
    with pytest.raises(NotSupportedError):
        fleet.controller.reload(probe)


def test_reload_requires_running_process(fleet: Fleet, geneos_root: Path) -> None:
    """Reloading a stopped gateway is reported as not found."""
    (geneos_root / "gateway" / "gateways" / "g1").mkdir(parents=True)
    gateway = fleet.resolver.resolve("gateway", "g1")

    with pytest.raises(NotFoundError):
        fleet.controller.reload(gateway)


def test_foreign_instance_is_unauthorized(
    fleet: Fleet,
    geneos_root: Path,
    local_host: RecordingHost,
    finder: FakeFinder,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Processes of other accounts are visible but not controllable."""
    monkeypatch.setattr(local_host, "is_superuser", lambda: False)
    instance = _netprobe(fleet, geneos_root)
    instance.record["user"] = "no-such-user-here"
    finder.pids[str(instance)] = 100

    status = fleet.controller.status(instance)
    assert status.state is InstanceState.UNAUTHORIZED
    assert status.pid == 100
    with pytest.raises(PermissionDeniedError):
        fleet.controller.stop(instance)
    assert local_host.signals == []


def test_status_states(fleet: Fleet, geneos_root: Path, finder: FakeFinder) -> None:
    """Absent, stopped and running states are inferred on demand."""
    ghost = fleet.resolver.resolve("netprobe", "ghost", must_exist=False)
    assert fleet.controller.status(ghost).state is InstanceState.ABSENT

    instance = _netprobe(fleet, geneos_root)
    assert fleet.controller.status(instance).state is InstanceState.STOPPED

    finder.pids[str(instance)] = 77
    status = fleet.controller.status(instance)
    assert status.state is InstanceState.RUNNING
    assert status.pid == 77


def test_delete_requires_disable_or_force(
    fleet: Fleet,
    geneos_root: Path,
    local_host: RecordingHost,
    finder: FakeFinder,
) -> None:
    """Enabled instances are kept; disabled or forced ones are removed."""
    kept = _netprobe(fleet, geneos_root, "p1")
    with pytest.raises(NotDisabledError):
        fleet.controller.delete(kept)
    assert Path(kept.home).is_dir()

    fleet.controller.disable(kept)
    fleet.controller.delete(kept)
    assert not Path(kept.home).exists()

    forced = _netprobe(fleet, geneos_root, "p2", port=7037)
    finder.script = [300, None]
    fleet.controller.delete(forced, force=True)
    assert not Path(forced.home).exists()
    assert local_host.signals == [(300, signal.SIGTERM)]

    with pytest.raises(NotFoundError):
        fleet.controller.delete(forced, force=True)


def test_delete_keeps_home_when_stop_is_refused(
    fleet: Fleet,
    geneos_root: Path,
    local_host: RecordingHost,
    finder: FakeFinder,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A process the caller may not stop blocks the delete."""
    monkeypatch.setattr(local_host, "is_superuser", lambda: False)
    instance = _netprobe(fleet, geneos_root)
    instance.record["user"] = "no-such-user-here"
    finder.pids[str(instance)] = 100

    with pytest.raises(PermissionDeniedError):
        fleet.controller.delete(instance, force=True)
    assert Path(instance.home).is_dir()
