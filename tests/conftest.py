"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import os
import pwd
from collections.abc import Mapping, Sequence
from pathlib import Path

import pytest

from geneosctl.config import AppConfig, load_config
from geneosctl.fleet import Fleet
from geneosctl.hosts import FleetSession, LocalHost, UserIds
from geneosctl.instance import Instance
from geneosctl.lifecycle import LifecycleController


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip expensive tests during mutation runs."""
    if not os.environ.get("MUTANT_UNDER_TEST"):
        return
    skip_marker = pytest.mark.skip(reason="Skipped during mutation run to avoid timeouts.")
    for item in items:
        if "mutation_timeout" in item.keywords:
            item.add_marker(skip_marker)


CURRENT_USER = pwd.getpwuid(os.getuid()).pw_name


class RecordingHost(LocalHost):
    """Local host that records launches and signals instead of performing them."""

    def __init__(self, root: str) -> None:
        super().__init__(root)
        self.launches: list[dict[str, object]] = []
        self.signals: list[tuple[int, int]] = []
        self.next_pid: int | None = 4242
        self.gone: set[int] = set()

    def run_detached(
        self,
        workdir: str,
        program: str,
        args: Sequence[str],
        env: Mapping[str, str],
        output: str,
        *,
        owner: UserIds | None = None,
    ) -> int | None:
        self.launches.append(
            {
                "workdir": workdir,
                "program": program,
                "args": list(args),
                "env": dict(env),
                "output": output,
            }
        )
        return self.next_pid

    def send_signal(self, pid: int, signum: int) -> None:
        self.signals.append((pid, signum))
        if pid in self.gone:
            raise ProcessLookupError(pid)


class FakeFinder:
    """Process finder answering from a dict, optionally scripted per call."""

    def __init__(self) -> None:
        self.pids: dict[str, int] = {}
        self.script: list[int | None] = []
        self.calls = 0

    def find(self, instance: Instance) -> int | None:
        self.calls += 1
        if self.script:
            return self.script.pop(0)
        return self.pids.get(str(instance))


@pytest.fixture()
def geneos_root(tmp_path: Path) -> Path:
    """Return an empty install root."""
    root = tmp_path / "geneos"
    root.mkdir()
    return root


@pytest.fixture()
def app_config(tmp_path: Path, geneos_root: Path) -> AppConfig:
    """Return a configuration rooted in the temporary install root."""
    return load_config(
        config_file=tmp_path / "absent.yml",
        env={
            "ITRS_HOME": str(geneos_root),
            "GENEOSCTL_LOGS_DIR": str(tmp_path / "logs"),
            "GENEOSCTL_DEFAULT_USER": CURRENT_USER,
        },
    )


@pytest.fixture()
def local_host(geneos_root: Path) -> RecordingHost:
    """Return the recording local host adapter."""
    return RecordingHost(str(geneos_root))


@pytest.fixture()
def finder() -> FakeFinder:
    """Return a scripted process finder."""
    return FakeFinder()


@pytest.fixture()
def sleeps() -> list[float]:
    """Collect the delays requested by the controller."""
    return []


@pytest.fixture()
def fleet(
    app_config: AppConfig,
    local_host: RecordingHost,
    finder: FakeFinder,
    sleeps: list[float],
) -> Fleet:
    """Return a fleet wired to the recording host and fake process table."""
    session = FleetSession(app_config, local=local_host)
    controller = LifecycleController(
        finder=finder,
        stop_attempts=app_config.lifecycle.stop_attempts,
        stop_interval=app_config.lifecycle.stop_interval,
        sleep=sleeps.append,
    )
    return Fleet(app_config, session=session, controller=controller)
