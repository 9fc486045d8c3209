"""Reading and following instance log files."""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from .hosts import Host
from .instance import Instance

LOGGER = logging.getLogger(__name__)

DEFAULT_LINES = 10
POLL_INTERVAL = 0.5
_CHUNK = 8192


def tail_lines(host: Host, path: str, lines: int = DEFAULT_LINES) -> tuple[list[str], int]:
    """Return the last *lines* lines of *path* and the file size read up to."""
    size = host.stat(path).size
    if lines <= 0:
        return [], size
    with host.open(path, "rb") as handle:
        data = b""
        position = size
        while position > 0 and data.count(b"\n") <= lines:
            step = min(_CHUNK, position)
            position -= step
            handle.seek(position)
            data = handle.read(step) + data
    text = data.decode("utf-8", errors="replace")
    return text.splitlines()[-lines:], size


class LogFollower(threading.Thread):
    """Background watcher emitting lines appended to a log file.

    The file is polled by size; when it shrinks it is assumed to have been
    truncated or rotated and is re-read from the start.
    """

    def __init__(
        self,
        instance: Instance,
        path: str,
        offset: int,
        emit: Callable[[str], None],
        stop_event: threading.Event,
        *,
        interval: float = POLL_INTERVAL,
    ) -> None:
        """Watch *path* on the instance host from byte *offset*."""
        super().__init__(name=f"follow-{instance}", daemon=True)
        self.instance = instance
        self.path = path
        self.offset = offset
        self.emit = emit
        self.stop_event = stop_event
        self.interval = interval
        self.error: BaseException | None = None
        self._partial = b""

    def run(self) -> None:
        host = self.instance.host
        try:
            while not self.stop_event.is_set():
                self.poll(host)
                self.stop_event.wait(self.interval)
        except (OSError, RuntimeError) as exc:
            self.error = exc
            LOGGER.error("%s: stopped following %s: %s", self.instance, self.path, exc)

    def poll(self, host: Host) -> None:
        """Emit any complete lines written since the last poll."""
        try:
            size = host.stat(self.path).size
        except FileNotFoundError:
            return
        if size < self.offset:
            LOGGER.info("%s: %s truncated, reading from start", self.instance, self.path)
            self.offset = 0
            self._partial = b""
        if size == self.offset:
            return
        with host.open(self.path, "rb") as handle:
            handle.seek(self.offset)
            data = handle.read(size - self.offset)
        self.offset += len(data)
        *complete, self._partial = (self._partial + data).split(b"\n")
        for line in complete:
            self.emit(line.decode("utf-8", errors="replace"))


def follow(
    instances: list[Instance],
    emit: Callable[[Instance, str], None],
    *,
    lines: int = DEFAULT_LINES,
    stop_event: threading.Event | None = None,
    interval: float = POLL_INTERVAL,
) -> list[LogFollower]:
    """Print the tail of each instance log, then follow them until stopped.

    Blocks until *stop_event* is set or the user interrupts; each follower
    runs in its own thread.
    """
    stop = stop_event or threading.Event()
    followers: list[LogFollower] = []
    for instance in instances:
        path = instance.log_file()
        try:
            tail, size = tail_lines(instance.host, path, lines)
        except FileNotFoundError:
            LOGGER.warning("%s: log file %s not found yet", instance, path)
            tail, size = [], 0
        for line in tail:
            emit(instance, line)
        follower = LogFollower(
            instance,
            path,
            size,
            lambda line, inst=instance: emit(inst, line),
            stop,
            interval=interval,
        )
        follower.start()
        followers.append(follower)

    try:
        while not stop.wait(interval):
            if not any(follower.is_alive() for follower in followers):
                break
    except KeyboardInterrupt:
        LOGGER.debug("interrupted, stopping log followers")
    finally:
        stop.set()
        for follower in followers:
            follower.join()
    return followers


__all__ = ["DEFAULT_LINES", "LogFollower", "follow", "tail_lines"]
