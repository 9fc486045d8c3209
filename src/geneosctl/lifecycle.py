"""Process lifecycle controller.

Instance state is never stored. It is inferred on every call from the
instance directory, the disable marker and the live process table:

* ``absent``: no instance directory.
* ``disabled``: the ``<type>.disabled`` marker exists and nothing runs.
* ``stopped``: no matching process.
* ``running``: a matching process the caller may signal.
* ``unauthorized``: a matching process the caller may not signal.
"""
from __future__ import annotations

import logging
import signal
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from .accounts import can_control
from .errors import (
    DisabledError,
    NotDisabledError,
    NotFoundError,
    NotSupportedError,
    PermissionDeniedError,
)
from .instance import Instance
from .process import ProcessFinder, ProcTableFinder
from .resolver import owner_for

LOGGER = logging.getLogger(__name__)

MARKER_MODE = 0o664


class InstanceState(str, Enum):
    """Inferred instance states."""

    ABSENT = "absent"
    DISABLED = "disabled"
    STOPPED = "stopped"
    RUNNING = "running"
    UNAUTHORIZED = "unauthorized"


@dataclass(slots=True)
class InstanceStatus:
    """Point-in-time view of one instance."""

    state: InstanceState
    pid: int | None = None
    disabled: bool = False


@dataclass(slots=True)
class LifecycleController:
    """Start, stop, restart, enable and disable instances."""

    finder: ProcessFinder = field(default_factory=ProcTableFinder)
    stop_attempts: int = 10
    stop_interval: float = 0.25
    start_settle: float = 0.25
    sleep: Callable[[float], None] = time.sleep

    # ------------------------------------------------------------------
    def status(self, instance: Instance) -> InstanceStatus:
        """Return the inferred state of *instance*."""
        if not instance.exists():
            return InstanceStatus(state=InstanceState.ABSENT)
        disabled = instance.is_disabled()
        pid = self.finder.find(instance)
        if pid is not None:
            state = (
                InstanceState.RUNNING
                if can_control(instance.host, instance.user)
                else InstanceState.UNAUTHORIZED
            )
            return InstanceStatus(state=state, pid=pid, disabled=disabled)
        if disabled:
            return InstanceStatus(state=InstanceState.DISABLED, disabled=True)
        return InstanceStatus(state=InstanceState.STOPPED)

    def start(self, instance: Instance) -> int | None:
        """Launch *instance* unless it already runs; return its PID when known."""
        pid = self.finder.find(instance)
        if pid is not None:
            LOGGER.info("%s: already running with PID %d", instance, pid)
            return pid
        if instance.is_disabled():
            raise DisabledError(f"{instance}: instance is disabled")
        self._require_control(instance)

        host = instance.host
        program = instance.program
        if not program or not host.exists(program):
            raise NotFoundError(f"{instance}: program {program!r} not found on {host.name}")

        args, env = instance.command()
        host.mkdir_all(instance.log_dir())
        pid = host.run_detached(
            instance.home,
            program,
            args,
            env,
            instance.output_file(),
            owner=owner_for(host, instance.user),
        )
        if pid is None:
            self.sleep(self.start_settle)
            pid = self.finder.find(instance)
            if pid is None:
                LOGGER.warning("%s: started but no process found yet", instance)
                return None
        LOGGER.info("%s: started with PID %d", instance, pid)
        return pid

    def stop(self, instance: Instance, *, force: bool = False) -> bool:
        """Stop *instance*; return ``False`` when it was not running.

        Sends ``SIGTERM`` and polls the process table ``stop_attempts`` times,
        ``stop_interval`` seconds apart, before sending a single ``SIGKILL``.
        With *force* ``SIGKILL`` is sent immediately.
        """
        pid = self.finder.find(instance)
        if pid is None:
            LOGGER.debug("%s: not running", instance)
            return False
        self._require_control(instance)

        if force:
            self._signal(instance, pid, signal.SIGKILL)
            LOGGER.info("%s: killed PID %d", instance, pid)
            return True

        if not self._signal(instance, pid, signal.SIGTERM):
            LOGGER.info("%s: stopped", instance)
            return True
        for _attempt in range(self.stop_attempts):
            self.sleep(self.stop_interval)
            if self.finder.find(instance) is None:
                LOGGER.info("%s: stopped", instance)
                return True

        self._signal(instance, pid, signal.SIGKILL)
        LOGGER.info("%s: killed PID %d after %d checks", instance, pid, self.stop_attempts)
        return True

    def restart(
        self,
        instance: Instance,
        *,
        running_only: bool = True,
        apply_all: bool = False,
    ) -> int | None:
        """Stop then start *instance*.

        With *running_only* an instance that was not running stays stopped
        unless *apply_all* is set.
        """
        was_running = self.stop(instance)
        if not was_running and running_only and not apply_all:
            LOGGER.debug("%s: not running, not restarting", instance)
            return None
        return self.start(instance)

    def disable(self, instance: Instance) -> bool:
        """Stop *instance* and create its disable marker; ``False`` if already disabled."""
        if instance.is_disabled():
            LOGGER.info("%s: already disabled", instance)
            return False
        self.stop(instance)

        host = instance.host
        marker = instance.marker_path
        host.create(marker, MARKER_MODE)
        owner = owner_for(host, instance.user)
        if owner is not None:
            try:
                host.chown(marker, owner.uid, owner.gid)
            except OSError:
                host.remove(marker)
                raise
        LOGGER.info("%s: disabled", instance)
        return True

    def enable(self, instance: Instance, *, start: bool = True) -> int | None:
        """Remove the disable marker and optionally start *instance*."""
        try:
            instance.host.remove(instance.marker_path)
            LOGGER.info("%s: enabled", instance)
        except FileNotFoundError:
            LOGGER.debug("%s: already enabled", instance)
        if not start:
            return None
        return self.start(instance)

    def delete(self, instance: Instance, *, force: bool = False) -> None:
        """Remove the instance directory without a backup.

        Only disabled instances are deleted unless *force* is set, in which
        case the instance is stopped first.
        """
        if not instance.exists():
            raise NotFoundError(f"{instance}: no instance directory")
        if not force and not instance.is_disabled():
            raise NotDisabledError(f"{instance}: disable the instance or force the delete")
        self.stop(instance)
        instance.host.remove_all(instance.home)
        LOGGER.info("%s: deleted %s", instance, instance.home)

    def reload(self, instance: Instance) -> None:
        """Ask a running instance to reload its configuration."""
        signum = instance.ctype.reload_signal
        if signum is None:
            raise NotSupportedError(f"{instance}: reload is not supported")
        pid = self.finder.find(instance)
        if pid is None:
            raise NotFoundError(f"{instance}: not running")
        self._require_control(instance)
        if not self._signal(instance, pid, signum):
            raise NotFoundError(f"{instance}: process {pid} exited")
        LOGGER.info("%s: sent %s to PID %d", instance, signal.Signals(signum).name, pid)

    # Internal helpers -------------------------------------------------
    def _require_control(self, instance: Instance) -> None:
        if not can_control(instance.host, instance.user):
            raise PermissionDeniedError(
                f"{instance}: {instance.host.username} may not control processes "
                f"of {instance.user}"
            )

    def _signal(self, instance: Instance, pid: int, signum: int) -> bool:
        """Send *signum*; return ``False`` when the process is already gone."""
        try:
            instance.host.send_signal(pid, signum)
        except ProcessLookupError:
            return False
        except PermissionError as exc:
            raise PermissionDeniedError(
                f"{instance}: cannot signal PID {pid}: {exc}"
            ) from exc
        return True


__all__ = [
    "InstanceState",
    "InstanceStatus",
    "LifecycleController",
]
