"""Account checks deciding whether the caller may control an instance."""
from __future__ import annotations

import os
import pwd

from .hosts import Host


def can_control(host: Host, user: str) -> bool:
    """Return whether the invoking account may start or signal *user*'s processes.

    Locally this is true for root, for instances without a configured user,
    and when *user* maps to the caller's real or effective uid. Remote
    sessions must log in as the configured user (or as root).
    """
    if not user:
        return True
    if host.is_superuser():
        return True
    if not host.is_local:
        return host.username == user
    try:
        entry = pwd.getpwnam(user)
    except KeyError:
        return host.username == user
    return entry.pw_uid in (os.getuid(), os.geteuid())


__all__ = ["can_control"]
