"""Gateway: the central collector."""
from __future__ import annotations

import posixpath
import signal

from ..instance import Instance
from ..registry import ComponentRegistry, ComponentType
from .common import legacy_aliases


def build_command(instance: Instance) -> tuple[list[str], list[str]]:
    """Return gateway arguments; the gateway takes no extra environment."""
    record = instance.record
    args = ["-port", str(instance.port)]
    gatewayname = record.get_str("gatewayname")
    if gatewayname and gatewayname != instance.name:
        args.append(gatewayname)
    args.extend(
        [
            instance.name,
            "-resources-dir",
            posixpath.join(record.get_str("install"), record.get_str("version"), "resources"),
            "-log",
            instance.log_file(),
            "-setup",
            posixpath.join(instance.home, "gateway.setup.xml"),
            "-stats",
        ]
    )

    if record.get_str("licdhost"):
        args.extend(["-licd-host", record.get_str("licdhost")])
    if record.get_int("licdport"):
        args.extend(["-licd-port", str(record.get_int("licdport"))])

    licdsecure = record.get_str("licdsecure").lower()
    certificate = record.get_str("certificate")
    if certificate:
        if licdsecure != "false":
            args.append("-licd-secure")
        args.extend(["-ssl-certificate", certificate])
        args.extend(
            ["-ssl-certificate-chain", instance.host.path("tls", "chain.pem")]
        )
    elif licdsecure == "true":
        args.append("-licd-secure")

    if record.get_str("privatekey"):
        args.extend(["-ssl-certificate-key", record.get_str("privatekey")])
    return args, []


COMPONENT = ComponentType(
    tag="gateway",
    aliases=("gateway", "gateways"),
    defaults=(
        ("binary", "gateway2.linux_64"),
        ("home", '{{ join(root, "gateway", "gateways", name) }}'),
        ("install", '{{ join(root, "packages", "gateway") }}'),
        ("version", "active_prod"),
        ("program", "{{ join(install, version, binary) }}"),
        ("logfile", "gateway.log"),
        ("libpaths", '{{ join(install, version, "lib64") }}:/usr/lib64'),
        ("gatewayname", "{{ name }}"),
    ),
    directories=("packages/gateway", "gateway/gateways"),
    settings={
        "port_range": "7039,7100-",
        "clean_list": "*.old:*.history",
        "purge_list": (
            "gateway.log:gateway.txt:gateway.snooze:gateway.user_assignment:"
            "licences.cache:cache/:database/"
        ),
    },
    int_fields=frozenset({"port", "licdport"}),
    legacy_prefix="Gate",
    legacy_aliases=legacy_aliases(
        "Gate",
        {
            "GateName": "gatewayname",
            "GateLicH": "licdhost",
            "GateLicP": "licdport",
            "GateLicS": "licdsecure",
        },
    ),
    build_command=build_command,
    reload_signal=signal.SIGUSR1,
)


def register(registry: ComponentRegistry) -> None:
    """Register the gateway type."""
    registry.register(COMPONENT)
