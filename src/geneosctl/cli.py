"""Typer-powered command line for ``geneosctl``.

Instance arguments follow ``[TYPE] [NAME...]``: a leading word naming a
component type (or ``all``) narrows the selection, and each name may be
written ``[TYPE:]NAME[@HOST]`` with shell-style wildcards in ``NAME``.
Omitting names selects every instance of the type on every known host.
"""
from __future__ import annotations

import json
import logging
import shlex
import textwrap
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn, cast

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .cleanup import clean
from .config import AppConfig, ConfigError, load_config
from .errors import (
    GeneosError,
    PermissionDeniedError,
    RemoteUnavailableError,
)
from .exit_codes import ExitCode
from .fleet import Fleet, FleetResult
from .instance import Instance
from .lifecycle import InstanceState
from .logging import OperationScope, StructuredLogger
from .logs import follow, tail_lines
from .ports import PortsRegistryError
from .provisioning import (
    add_host,
    add_instance,
    add_values,
    parse_assignments,
    set_fields,
    unset_fields,
)
from .registry import WILDCARD_TYPES
from .versions import DEFAULT_BASENAME, LATEST, component_version, update_types

console = Console()
err_console = Console(stderr=True)

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to geneosctl's YAML config file.",
)

TARGETS_ARGUMENT = typer.Argument(
    None,
    metavar="[TYPE] [NAME...]",
    help="Optional component type followed by instance names ([TYPE:]NAME[@HOST]).",
)

JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit JSON instead of a table.",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Geneos fleet control.

        Manage gateways, netprobes, license daemons, web dashboards and
        related monitoring components on the local host and on remote hosts
        reached over SSH.
        """
    ).strip(),
)
host_app = typer.Typer(help="Manage remote hosts.")
config_app = typer.Typer(help="Inspect the effective configuration.")
app.add_typer(host_app, name="host")
app.add_typer(config_app, name="config")


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    logger: StructuredLogger
    fleet: Fleet


def _configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False, rich_tracebacks=False)],
        force=True,
    )


def _ensure_runtime(ctx: typer.Context, config_file: Path | None) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        err_console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=int(ExitCode.ENVIRONMENT)) from exc

    logger = StructuredLogger(config.logs_dir)
    fleet = Fleet(config)
    runtime = RuntimeContext(config=config, logger=logger, fleet=fleet)
    ctx.obj = runtime
    ctx.call_on_close(fleet.close)
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    root = ctx.find_root()
    if isinstance(root.obj, RuntimeContext):
        return root.obj
    return _ensure_runtime(root, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the geneosctl version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug detail."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log warnings and errors."),
) -> None:
    """Entry point callback invoked for every CLI execution."""
    _configure_logging(verbose, quiet)
    if version:
        console.print(f"geneosctl {__version__}")
        raise typer.Exit(code=0)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=0)

    _ensure_runtime(ctx, config_file)


# ---------------------------------------------------------------------------
# Helpers


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = int(ExitCode.VALIDATION),
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    err_console.print(f"[red]{message}[/red]")
    op.error(message, errors=list(errors or [message]), rc=rc)
    raise typer.Exit(code=rc)


def _exit_code_for(exc: BaseException) -> int:
    if isinstance(exc, (PermissionDeniedError, RemoteUnavailableError)):
        return int(ExitCode.ENVIRONMENT)
    if isinstance(exc, GeneosError):
        return int(ExitCode.VALIDATION)
    return int(ExitCode.PROVIDER)


def _split_targets(
    runtime: RuntimeContext,
    targets: Sequence[str] | None,
) -> tuple[str | None, list[str]]:
    """Separate a leading component type from instance names."""
    words = list(targets or [])
    if words and (
        words[0].lower() in WILDCARD_TYPES or runtime.fleet.registry.find(words[0]) is not None
    ):
        return words[0], words[1:]
    return None, words


def _select(
    runtime: RuntimeContext,
    op: OperationScope,
    targets: Sequence[str] | None,
    *,
    typed: bool = True,
) -> list[Instance]:
    if typed:
        type_name, names = _split_targets(runtime, targets)
    else:
        type_name, names = None, list(targets or [])
    try:
        instances = runtime.fleet.instances(type_name, names)
    except (GeneosError, OSError) as exc:
        _command_error(op, str(exc), rc=_exit_code_for(exc))
    op.add_step("select", detail=f"{len(instances)} instance(s)")
    return instances


def _finish(op: OperationScope, result: FleetResult, verb: str) -> None:
    """Report a fleet-wide result, failing the command if any instance failed."""
    changed = len(result.succeeded)
    if result.ok:
        op.success(f"{verb} {changed} instance(s).", changed=changed)
        return
    errors = [f"{name}: {message}" for name, message in result.failed]
    _command_error(
        op,
        f"{verb} failed for {len(result.failed)} of "
        f"{len(result.failed) + changed} instance(s).",
        rc=int(ExitCode.PARTIAL),
        errors=errors,
    )


def _for_each(
    runtime: RuntimeContext,
    op: OperationScope,
    instances: Sequence[Instance],
    action: Callable[[Instance], object],
    *,
    label: str,
) -> FleetResult:
    result = runtime.fleet.for_each(instances, action, label=label)
    for name in result.succeeded:
        op.add_step(label, detail=name)
    for name, message in result.failed:
        op.add_step(label, status="error", detail=f"{name}: {message}")
    return result


def _port_text(instance: Instance) -> str:
    return str(instance.port) if instance.port else "-"


# ---------------------------------------------------------------------------
# Listing and inspection


@app.command("ls")
def list_instances(
    ctx: typer.Context,
    targets: list[str] | None = TARGETS_ARGUMENT,
    json_output: bool = JSON_OPTION,
) -> None:
    """List instances and their configured details."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "ls",
        args={"targets": list(targets or []), "json": json_output},
        target={"kind": "instances"},
    ) as op:
        instances = _select(runtime, op, targets)
        rows = [
            {
                "type": instance.ctype.tag,
                "name": instance.name,
                "host": instance.host.name,
                "port": instance.port,
                "user": instance.user,
                "home": instance.home,
                "disabled": instance.is_disabled(),
            }
            for instance in instances
        ]
        if json_output:
            console.print_json(data={"instances": rows})
            op.success("Reported instances as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        for column in ("Type", "Name", "Host", "Port", "User", "Home"):
            table.add_column(column, style="bold" if column == "Name" else None)
        if not rows:
            table.add_row("(none)", "", "", "", "", "")
        for row, instance in zip(rows, instances, strict=True):
            name = f"{row['name']} [dim](disabled)[/dim]" if row["disabled"] else row["name"]
            table.add_row(
                row["type"], name, row["host"], _port_text(instance), row["user"], row["home"]
            )
        console.print(table)
        op.success("Reported instances.", changed=0)


@app.command("ps")
def process_status(
    ctx: typer.Context,
    targets: list[str] | None = TARGETS_ARGUMENT,
    json_output: bool = JSON_OPTION,
) -> None:
    """Show the inferred state of instances, including live PIDs."""
    runtime = _get_runtime(ctx)
    controller = runtime.fleet.controller
    with runtime.logger.operation(
        "ps",
        args={"targets": list(targets or []), "json": json_output},
        target={"kind": "instances"},
    ) as op:
        instances = _select(runtime, op, targets)
        rows = []
        for instance in instances:
            try:
                status = controller.status(instance)
                version = component_version(instance)
            except (GeneosError, OSError) as exc:
                rows.append({"instance": str(instance), "state": "error", "error": str(exc)})
                continue
            rows.append(
                {
                    "instance": str(instance),
                    "state": status.state.value,
                    "pid": status.pid,
                    "port": instance.port,
                    "user": instance.user,
                    "version": version,
                }
            )
        if json_output:
            console.print_json(data={"instances": rows})
            op.success("Reported process state as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        for column in ("Instance", "State", "PID", "Port", "User", "Version"):
            table.add_column(column, style="bold" if column == "Instance" else None)
        styles = {
            InstanceState.RUNNING.value: "green",
            InstanceState.UNAUTHORIZED.value: "yellow",
            InstanceState.DISABLED.value: "dim",
            "error": "red",
        }
        for row in rows:
            state = str(row["state"])
            style = styles.get(state)
            table.add_row(
                str(row["instance"]),
                f"[{style}]{state}[/{style}]" if style else state,
                str(row.get("pid") or "-"),
                str(row.get("port") or "-"),
                str(row.get("user") or ""),
                str(row.get("version") or row.get("error") or ""),
            )
        console.print(table)
        op.success("Reported process state.", changed=0)


@app.command("show")
def show_instances(
    ctx: typer.Context,
    targets: list[str] | None = TARGETS_ARGUMENT,
) -> None:
    """Print the resolved configuration of instances as JSON."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "show",
        args={"targets": list(targets or [])},
        target={"kind": "instances"},
    ) as op:
        instances = _select(runtime, op, targets)
        payload = {str(instance): instance.record.to_dict() for instance in instances}
        console.print_json(data=payload)
        op.success("Rendered instance configuration.", changed=0)


# ---------------------------------------------------------------------------
# Lifecycle


@app.command("start")
def start_instances(
    ctx: typer.Context,
    targets: list[str] | None = TARGETS_ARGUMENT,
) -> None:
    """Start instances that are not already running."""
    runtime = _get_runtime(ctx)
    controller = runtime.fleet.controller
    with runtime.logger.operation(
        "start",
        args={"targets": list(targets or [])},
        target={"kind": "instances"},
    ) as op:
        instances = _select(runtime, op, targets)
        result = _for_each(runtime, op, instances, controller.start, label="start")
        _finish(op, result, "Started")


@app.command("stop")
def stop_instances(
    ctx: typer.Context,
    targets: list[str] | None = TARGETS_ARGUMENT,
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Send SIGKILL immediately instead of a graceful SIGTERM.",
    ),
) -> None:
    """Stop running instances."""
    runtime = _get_runtime(ctx)
    controller = runtime.fleet.controller
    with runtime.logger.operation(
        "stop",
        args={"targets": list(targets or []), "force": force},
        target={"kind": "instances"},
    ) as op:
        instances = _select(runtime, op, targets)
        result = _for_each(
            runtime,
            op,
            instances,
            lambda instance: controller.stop(instance, force=force),
            label="stop",
        )
        _finish(op, result, "Stopped")


@app.command("restart")
def restart_instances(
    ctx: typer.Context,
    targets: list[str] | None = TARGETS_ARGUMENT,
    apply_all: bool = typer.Option(
        False,
        "--all",
        "-a",
        help="Also start instances that were not running.",
    ),
) -> None:
    """Stop and start instances."""
    runtime = _get_runtime(ctx)
    controller = runtime.fleet.controller
    with runtime.logger.operation(
        "restart",
        args={"targets": list(targets or []), "all": apply_all},
        target={"kind": "instances"},
    ) as op:
        instances = _select(runtime, op, targets)
        result = _for_each(
            runtime,
            op,
            instances,
            lambda instance: controller.restart(instance, apply_all=apply_all),
            label="restart",
        )
        _finish(op, result, "Restarted")


@app.command("enable")
def enable_instances(
    ctx: typer.Context,
    targets: list[str] | None = TARGETS_ARGUMENT,
    no_start: bool = typer.Option(
        False,
        "--no-start",
        help="Remove the disable marker without starting the instance.",
    ),
) -> None:
    """Re-enable disabled instances and start them."""
    runtime = _get_runtime(ctx)
    controller = runtime.fleet.controller
    with runtime.logger.operation(
        "enable",
        args={"targets": list(targets or []), "no_start": no_start},
        target={"kind": "instances"},
    ) as op:
        instances = _select(runtime, op, targets)
        result = _for_each(
            runtime,
            op,
            instances,
            lambda instance: controller.enable(instance, start=not no_start),
            label="enable",
        )
        _finish(op, result, "Enabled")


@app.command("disable")
def disable_instances(
    ctx: typer.Context,
    targets: list[str] | None = TARGETS_ARGUMENT,
) -> None:
    """Stop instances and prevent them from being started."""
    runtime = _get_runtime(ctx)
    controller = runtime.fleet.controller
    with runtime.logger.operation(
        "disable",
        args={"targets": list(targets or [])},
        target={"kind": "instances"},
    ) as op:
        instances = _select(runtime, op, targets)
        result = _for_each(runtime, op, instances, controller.disable, label="disable")
        _finish(op, result, "Disabled")


@app.command("reload")
def reload_instances(
    ctx: typer.Context,
    targets: list[str] | None = TARGETS_ARGUMENT,
) -> None:
    """Signal running instances to reload their configuration."""
    runtime = _get_runtime(ctx)
    controller = runtime.fleet.controller
    with runtime.logger.operation(
        "reload",
        args={"targets": list(targets or [])},
        target={"kind": "instances"},
    ) as op:
        instances = _select(runtime, op, targets)
        result = _for_each(runtime, op, instances, controller.reload, label="reload")
        _finish(op, result, "Reloaded")


@app.command("delete")
def delete_instances(
    ctx: typer.Context,
    targets: list[str] | None = TARGETS_ARGUMENT,
    force: bool = typer.Option(
        False,
        "--force",
        "-F",
        help="Stop and delete instances that have not been disabled.",
    ),
) -> None:
    """Remove the directories of disabled instances."""
    runtime = _get_runtime(ctx)
    controller = runtime.fleet.controller
    with runtime.logger.operation(
        "delete",
        args={"targets": list(targets or []), "force": force},
        target={"kind": "instances"},
    ) as op:
        instances = _select(runtime, op, targets)
        result = _for_each(
            runtime,
            op,
            instances,
            lambda instance: controller.delete(instance, force=force),
            label="delete",
        )
        _finish(op, result, "Deleted")


@app.command("command")
def show_commands(
    ctx: typer.Context,
    targets: list[str] | None = TARGETS_ARGUMENT,
    json_output: bool = JSON_OPTION,
) -> None:
    """Show the command line and environment each instance would start with."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "command",
        args={"targets": list(targets or []), "json": json_output},
        target={"kind": "instances"},
    ) as op:
        instances = _select(runtime, op, targets)
        rows: list[dict[str, object]] = []

        def describe(instance: Instance) -> None:
            args, env = instance.command()
            rows.append(
                {
                    "instance": str(instance),
                    "program": instance.program,
                    "args": args,
                    "env": env,
                    "workdir": instance.home,
                }
            )

        result = _for_each(runtime, op, instances, describe, label="command")
        if json_output:
            console.print_json(data={"instances": rows})
        else:
            for row in rows:
                args = cast(list[str], row["args"])
                env = cast(dict[str, str], row["env"])
                console.print(f"[bold]=== {row['instance']} ===[/bold]")
                console.print("command line:", markup=False)
                console.print(f"\t{shlex.join([str(row['program']), *args])}", markup=False)
                console.print("environment:", markup=False)
                for key, value in env.items():
                    console.print(f"\t{key}={value}", markup=False)
        if not result.ok:
            _finish(op, result, "Described")
        op.success("Rendered launch commands.", changed=0)


@app.command("clean")
def clean_instances(
    ctx: typer.Context,
    targets: list[str] | None = TARGETS_ARGUMENT,
    purge: bool = typer.Option(
        False,
        "--purge",
        help="Also remove logs and state files, stopping and restarting as needed.",
    ),
) -> None:
    """Remove disposable files from instance directories."""
    runtime = _get_runtime(ctx)
    fleet = runtime.fleet
    with runtime.logger.operation(
        "clean",
        args={"targets": list(targets or []), "purge": purge},
        target={"kind": "instances"},
    ) as op:
        instances = _select(runtime, op, targets)
        result = _for_each(
            runtime,
            op,
            instances,
            lambda instance: clean(fleet, instance, purge=purge),
            label="purge" if purge else "clean",
        )
        _finish(op, result, "Purged" if purge else "Cleaned")


# ---------------------------------------------------------------------------
# Configuration files


@app.command("migrate")
def migrate_instances(
    ctx: typer.Context,
    targets: list[str] | None = TARGETS_ARGUMENT,
) -> None:
    """Convert legacy ``.rc`` configuration files to JSON."""
    runtime = _get_runtime(ctx)
    resolver = runtime.fleet.resolver
    with runtime.logger.operation(
        "migrate",
        args={"targets": list(targets or [])},
        target={"kind": "instances"},
    ) as op:
        instances = _select(runtime, op, targets)
        result = _for_each(runtime, op, instances, resolver.migrate, label="migrate")
        _finish(op, result, "Migrated")


@app.command("revert")
def revert_instances(
    ctx: typer.Context,
    targets: list[str] | None = TARGETS_ARGUMENT,
) -> None:
    """Restore legacy ``.rc`` files saved by a migration."""
    runtime = _get_runtime(ctx)
    resolver = runtime.fleet.resolver
    with runtime.logger.operation(
        "revert",
        args={"targets": list(targets or [])},
        target={"kind": "instances"},
    ) as op:
        instances = _select(runtime, op, targets)
        result = _for_each(runtime, op, instances, resolver.revert, label="revert")
        _finish(op, result, "Reverted")


@app.command("add")
def add_command(
    ctx: typer.Context,
    type_name: str = typer.Argument(..., metavar="TYPE", help="Component type to create."),
    name: str = typer.Argument(..., metavar="NAME[@HOST]", help="New instance name."),
    user: str | None = typer.Option(None, "--user", "-u", help="Owning user account."),
    port: int | None = typer.Option(
        None,
        "--port",
        "-p",
        min=1,
        max=65535,
        help="Listening port (defaults to the first free port in the type's range).",
    ),
    seeds: list[str] | None = typer.Option(
        None,
        "--with",
        metavar="KEY=VALUE",
        help="Seed field evaluated before defaults, e.g. santype=fa2.",
    ),
    start: bool = typer.Option(False, "--start", help="Start the instance once created."),
) -> None:
    """Create a new instance with default configuration."""
    runtime = _get_runtime(ctx)
    fleet = runtime.fleet
    with runtime.logger.operation(
        "add",
        args={"type": type_name, "name": name, "user": user, "port": port, "start": start},
        target={"kind": "instance", "name": name},
    ) as op:
        try:
            instance = add_instance(
                fleet,
                type_name,
                name,
                user=user,
                port=port,
                seeds=parse_assignments(seeds or []),
            )
        except PortsRegistryError as exc:
            _command_error(op, str(exc), rc=int(ExitCode.ENVIRONMENT))
        except (GeneosError, OSError) as exc:
            _command_error(op, str(exc), rc=_exit_code_for(exc))
        op.add_step("config.write", detail=instance.structured_path)
        console.print(
            f"[green]{instance} added[/green] (port {_port_text(instance)}, home {instance.home})"
        )
        if start:
            try:
                fleet.controller.start(instance)
            except (GeneosError, OSError) as exc:
                _command_error(op, f"{instance}: {exc}", rc=_exit_code_for(exc))
            op.add_step("start", detail=str(instance))
        op.success("Instance added.", changed=1)


@app.command("set")
def set_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., metavar="[TYPE:]NAME[@HOST]", help="Instance to edit."),
    assignments: list[str] | None = typer.Argument(
        None,
        metavar="KEY=VALUE...",
        help="Fields to assign.",
    ),
    add: list[str] | None = typer.Option(
        None,
        "--add",
        metavar="KEY=VALUE",
        help="Append VALUE to list field KEY (e.g. env=JAVA_HOME=/opt/java).",
    ),
    unset: list[str] | None = typer.Option(
        None,
        "--unset",
        metavar="KEY",
        help="Remove field KEY from the persisted configuration.",
    ),
) -> None:
    """Edit the persisted configuration of instances."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "set",
        args={
            "name": name,
            "set": list(assignments or []),
            "add": list(add or []),
            "unset": list(unset or []),
        },
        target={"kind": "instance", "name": name},
    ) as op:
        try:
            values = parse_assignments(assignments or [])
            appends: list[tuple[str, str]] = []
            for pair in add or []:
                key, sep, value = pair.partition("=")
                if not sep or not key.strip():
                    raise ValueError(f"expected KEY=VALUE, got {pair!r}")
                appends.append((key.strip().lower(), value))
        except (GeneosError, ValueError) as exc:
            _command_error(op, str(exc))

        instances = _select(runtime, op, [name], typed=False)

        def _apply(instance: Instance) -> None:
            changed = set_fields(instance, values)
            for key, value in appends:
                changed.extend(add_values(instance, key, [value]))
            changed.extend(unset_fields(instance, unset or []))
            console.print(f"{instance}: {len(changed)} change(s)")

        result = _for_each(runtime, op, instances, _apply, label="set")
        _finish(op, result, "Updated")


# ---------------------------------------------------------------------------
# Logs and versions


@app.command("logs")
def logs_command(
    ctx: typer.Context,
    targets: list[str] | None = TARGETS_ARGUMENT,
    lines: int = typer.Option(10, "--lines", "-n", min=0, help="Number of lines to show."),
    follow_output: bool = typer.Option(
        False,
        "--follow",
        "-f",
        help="Keep printing lines as they are written; Ctrl-C to stop.",
    ),
) -> None:
    """Show the tail of instance log files."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "logs",
        args={"targets": list(targets or []), "lines": lines, "follow": follow_output},
        target={"kind": "instances"},
    ) as op:
        instances = _select(runtime, op, targets)
        prefix = len(instances) > 1

        def _emit(instance: Instance, line: str) -> None:
            text = f"{instance} {line}" if prefix else line
            console.print(text, markup=False, highlight=False)

        if follow_output:
            followers = follow(instances, _emit, lines=lines)
            errors = [f"{f.instance}: {f.error}" for f in followers if f.error is not None]
            if errors:
                _command_error(op, "Log follow ended with errors.", errors=errors)
            op.success("Followed logs.", changed=0)
            return

        def _show(instance: Instance) -> None:
            tail, _size = tail_lines(instance.host, instance.log_file(), lines)
            for line in tail:
                _emit(instance, line)

        result = _for_each(runtime, op, instances, _show, label="logs")
        if not result.ok:
            _finish(op, result, "Read logs of")
        op.success("Reported logs.", changed=0)


@app.command("update")
def update_command(
    ctx: typer.Context,
    type_name: str = typer.Argument(..., metavar="TYPE", help="Component type to update."),
    version: str = typer.Argument(
        LATEST,
        help="Installed version (or version prefix) to switch to.",
    ),
    basename: str = typer.Option(
        DEFAULT_BASENAME,
        "--base",
        "-b",
        help="Name of the release link to update.",
    ),
    host_name: str = typer.Option("all", "--host", "-H", help="Host to update (default all)."),
    force: bool = typer.Option(
        False,
        "--force",
        "-F",
        help="Replace an existing link that points elsewhere.",
    ),
) -> None:
    """Point a release link at an installed version, restarting affected instances."""
    runtime = _get_runtime(ctx)
    fleet = runtime.fleet
    with runtime.logger.operation(
        "update",
        args={"type": type_name, "version": version, "base": basename, "force": force},
        target={"kind": "release", "host": host_name},
    ) as op:
        try:
            ctype = fleet.registry.lookup(type_name)
            hosts = fleet.hosts(host_name)
        except GeneosError as exc:
            _command_error(op, str(exc), rc=_exit_code_for(exc))

        failures: list[str] = []
        changed = 0
        for host in hosts:
            try:
                results = update_types(
                    fleet, host, ctype, version=version, basename=basename, overwrite=force
                )
            except (GeneosError, OSError) as exc:
                failures.append(f"{host.name}: {exc}")
                op.add_step("update", status="error", detail=f"{host.name}: {exc}")
                continue
            for item in results:
                op.add_step("update", detail=f"{item.tag}@{item.host} -> {item.version}")
                failures.extend(f"{name}: restart failed: {error}" for name, error in item.failed)
                if item.changed:
                    changed += 1
                    console.print(
                        f"[green]{item.tag} on {item.host}: {basename} -> {item.version}[/green]"
                    )
        if failures:
            _command_error(
                op,
                f"Update failed on {len(failures)} host(s).",
                rc=int(ExitCode.PARTIAL),
                errors=failures,
            )
        op.success("Release links updated.", changed=changed)


# ---------------------------------------------------------------------------
# Hosts


@host_app.command("add")
def host_add(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name for the remote host."),
    url: str | None = typer.Argument(
        None,
        metavar="[ssh://][USER@]HOST[:PORT][/ROOT]",
        help="SSH location (defaults to NAME).",
    ),
) -> None:
    """Record a remote host reachable over SSH."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "host add",
        args={"name": name, "url": url},
        target={"kind": "host", "name": name},
    ) as op:
        try:
            ref = add_host(runtime.fleet, name, url or name)
        except (GeneosError, OSError) as exc:
            _command_error(op, str(exc), rc=_exit_code_for(exc))
        console.print(f"[green]Host '{name}' added[/green] ({ref.url()})")
        op.success("Host added.", changed=1)


@host_app.command("ls")
def host_list(
    ctx: typer.Context,
    json_output: bool = JSON_OPTION,
) -> None:
    """List configured remote hosts."""
    runtime = _get_runtime(ctx)
    session = runtime.fleet.session
    with runtime.logger.operation(
        "host ls",
        args={"json": json_output},
        target={"kind": "hosts"},
    ) as op:
        rows: list[Mapping[str, object]] = []
        for name in session.remote_names():
            try:
                ref = session.load_ref(name)
            except GeneosError as exc:
                rows.append({"name": name, "error": str(exc)})
                continue
            rows.append(
                {
                    "name": name,
                    "hostname": ref.hostname,
                    "port": ref.port,
                    "username": ref.username,
                    "root": ref.root,
                }
            )
        if json_output:
            console.print_json(data={"hosts": rows})
            op.success("Reported hosts as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        for column in ("Name", "Hostname", "Port", "User", "Root"):
            table.add_column(column, style="bold" if column == "Name" else None)
        if not rows:
            table.add_row("(none)", "", "", "", "")
        for row in rows:
            table.add_row(
                str(row["name"]),
                str(row.get("hostname", row.get("error", ""))),
                str(row.get("port", "")),
                str(row.get("username", "")),
                str(row.get("root", "")),
            )
        console.print(table)
        op.success("Reported hosts.", changed=0)


# ---------------------------------------------------------------------------
# Configuration and meta


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit configuration as JSON instead of a table.",
    ),
) -> None:
    """Display the effective configuration after merges."""
    runtime = _get_runtime(ctx)
    data = runtime.config.to_dict()

    with runtime.logger.operation(
        "config show",
        args={"json": json_output},
        target={"kind": "config"},
    ) as op:
        if json_output:
            console.print_json(data=data)
            op.success("Rendered configuration as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="bold")
        table.add_column("Value")

        for key, value in data.items():
            if isinstance(value, dict):
                rendered = json.dumps(value, indent=2, sort_keys=True)
            else:
                rendered = str(value)
            table.add_row(key, rendered)

        console.print(table)
        op.success("Rendered configuration table.", changed=0)


@app.command("version")
def version_command(ctx: typer.Context) -> None:
    """Show the geneosctl version."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "version",
        args={},
        target={"kind": "meta", "scope": "version"},
    ) as op:
        console.print(f"geneosctl {__version__}")
        op.success("Reported CLI version.", changed=0)


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["app", "main"]
