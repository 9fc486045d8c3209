"""Host adapters making local and remote operations interchangeable."""
from __future__ import annotations

from .base import LOCALHOST, CommandResult, FileInfo, Host, UserIds
from .local import LocalHost
from .remote import HostRef, RemoteHost
from .session import HOST_TYPE, FleetSession, host_config_path, hosts_dir

__all__ = [
    "CommandResult",
    "FileInfo",
    "FleetSession",
    "HOST_TYPE",
    "Host",
    "HostRef",
    "LOCALHOST",
    "LocalHost",
    "RemoteHost",
    "UserIds",
    "host_config_path",
    "hosts_dir",
]
