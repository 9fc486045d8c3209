"""Webserver: the web dashboard console, a Java application."""
from __future__ import annotations

import posixpath
from collections.abc import Sequence

from ..instance import Instance
from ..registry import ComponentRegistry, ComponentType
from .common import legacy_aliases

JAR_NAME = "geneos-web-server.jar"


def build_command(instance: Instance) -> tuple[list[str], list[str]]:
    """Return the JVM arguments for the dashboard server."""
    record = instance.record
    home = instance.home
    base = posixpath.join(record.get_str("install"), record.get_str("version"))
    args = [
        "-XX:+UseConcMarkSweepGC",
        f"-Xmx{record.get_str('maxmem') or '1024M'}",
        "-server",
        f"-Djava.io.tmpdir={home}/webapps",
        "-Djava.awt.headless=true",
        f"-DsecurityConfig={home}/config/security.xml",
        f"-Dcom.itrsgroup.configuration.file={home}/config/config.xml",
        f"-Dcom.itrsgroup.dashboard.resources.dir={base}/resources",
        f"-Djava.library.path={record.get_str('libpaths')}",
        f"-Dlog4j2.configurationFile=file:{home}/config/log4j2.properties",
        f"-Dworking.directory={home}",
        "-Dcom.itrsgroup.legacy.database.maxconnections=100",
        f"-Dcom.itrsgroup.sso.config.file={home}/config/sso.properties",
        f"-Djava.security.auth.login.config={home}/config/login.conf",
        "-Djava.security.krb5.conf=/etc/krb5.conf",
        "-XX:+HeapDumpOnOutOfMemoryError",
        "-XX:HeapDumpPath=/tmp",
        "-jar",
        f"{base}/{JAR_NAME}",
        "-dir",
        f"{base}/webapps",
        "-port",
        str(instance.port),
        "-maxThreads",
        "254",
    ]
    return args, []


def match_process(instance: Instance, argv: Sequence[str]) -> bool:
    """Match a JVM started in this instance's working directory."""
    if not posixpath.basename(argv[0]).startswith(instance.record.get_str("binary") or "java"):
        return False
    if f"-Dworking.directory={instance.home}" not in argv:
        return False
    return any(arg.endswith(JAR_NAME) for arg in argv[1:])


COMPONENT = ComponentType(
    tag="webserver",
    aliases=("webserver", "webservers", "web-server", "webdashboard", "dashboards"),
    defaults=(
        ("binary", "java"),
        ("home", '{{ join(root, "webserver", "webservers", name) }}'),
        ("install", '{{ join(root, "packages", "webserver") }}'),
        ("version", "active_prod"),
        ("program", '{{ join(install, version, "JRE/bin/java") }}'),
        ("logfile", "webserver.log"),
        (
            "libpaths",
            '{{ join(install, version, "JRE/lib") }}:{{ join(install, version, "lib64") }}',
        ),
        ("maxmem", "1024M"),
    ),
    directories=("packages/webserver", "webserver/webservers"),
    settings={
        "port_range": "8080,8100-",
        "clean_list": "*.old",
        "purge_list": "logs/*.log:webserver.txt",
    },
    legacy_prefix="Webs",
    legacy_aliases=legacy_aliases("Webs", {"WebsXmx": "maxmem"}),
    build_command=build_command,
    match_process=match_process,
)


def register(registry: ComponentRegistry) -> None:
    """Register the webserver type."""
    registry.register(COMPONENT)
