"""
kindle CLI - container entrypoint and operator tooling.

Commands:
    kindle bootstrap <service>        - Initialize once, then exec the daemon
    kindle plan <service>             - Show what bootstrap would do
    kindle wait HOST:PORT [-- CMD]    - Wait for a TCP endpoint, then exec CMD
    kindle markers list|reset         - Inspect or reset completion markers
    kindle setup secrets|env|data     - Prepare the host before `compose up`
    kindle version                    - Show version
"""

import sys
from typing import Optional, Tuple

import click

from kindle.config import KindleConfig, parse_host_port
from kindle.errors import KindleError
from kindle.logging import get_kindle_logger, setup_logging
from kindle.probe import ReadinessProbe, TcpTarget
from kindle.services import SERVICES, build_sequencer, get_service, marker_store
from kindle.state import FileMarkerStore, MarkerStore, OnceGuard, SqliteMarkerStore
from kindle.transport import LocalTransport

logger = get_kindle_logger(__name__)

SERVICE_CHOICE = click.Choice(sorted(SERVICES))
POSITIVE_SECONDS = click.FloatRange(min=0, min_open=True)


def _fail(error: KindleError) -> None:
    logger.error("%s", error)
    sys.exit(error.exit_code)


def _load_config(log_level: Optional[str]) -> KindleConfig:
    try:
        config = KindleConfig.from_env()
    except KindleError as e:
        setup_logging("INFO")
        _fail(e)
    if log_level:
        config.log_level = log_level
    setup_logging(config.log_level)
    return config


@click.group(invoke_without_command=True)
@click.pass_context
def cli(ctx):
    """kindle - idempotent container bootstrap."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.argument("service", type=SERVICE_CHOICE)
@click.option("--no-exec", is_flag=True, help="Stop after initialization instead of starting the daemon")
@click.option("--state-db", envvar="KINDLE_STATE_DB", help="Keep markers in this SQLite file")
@click.option("--log-level", envvar="KINDLE_LOG_LEVEL", help="DEBUG, INFO, WARNING, ERROR")
def bootstrap(service: str, no_exec: bool, state_db: Optional[str], log_level: Optional[str]):
    """
    Bootstrap SERVICE and hand off to its daemon.

    Example:
        kindle bootstrap mariadb
        kindle bootstrap wordpress --no-exec
    """
    config = _load_config(log_level)

    try:
        sequencer = build_sequencer(service, config, state_db=state_db)
        result = sequencer.run(handoff=not no_exec)
    except KindleError as e:
        _fail(e)

    click.secho(f"{service} bootstrap complete ({result.duration:.2f}s)", fg="green", err=True)


@cli.command()
@click.argument("service", type=SERVICE_CHOICE)
@click.option("--state-db", envvar="KINDLE_STATE_DB", help="Markers are kept in this SQLite file")
def plan(service: str, state_db: Optional[str]):
    """
    Show what bootstrap would do, without waiting or changing anything.

    Example:
        kindle plan nginx
    """
    config = _load_config(None)

    try:
        sequencer = build_sequencer(service, config, state_db=state_db)
    except KindleError as e:
        _fail(e)

    bootstrap_plan = sequencer.plan
    click.echo(f"Service: {bootstrap_plan.service}")

    for target in bootstrap_plan.dependencies:
        click.echo(f"  wait   {target} (on timeout: {target.on_timeout})")

    _show_steps("prepare", bootstrap_plan.prepare)

    if bootstrap_plan.marker and sequencer.guard.is_done(bootstrap_plan.marker):
        click.secho(f"  marker {bootstrap_plan.marker} present, initialization skipped", fg="green")
    else:
        if bootstrap_plan.marker:
            click.echo(f"  marker {bootstrap_plan.marker} absent, initialization will run")
        _show_steps("init", bootstrap_plan.steps)

    click.echo(f"  exec   {' '.join(bootstrap_plan.handoff)}")


def _show_steps(phase: str, steps) -> None:
    for step in steps:
        try:
            step_plan = step.plan()
        except Exception as e:
            click.secho(f"  {phase:<6} {step.id}: cannot check ({e})", fg="red")
            continue
        if step_plan.has_changes():
            click.secho(f"  {phase:<6} + {step.id}", fg="yellow", nl=False)
            click.echo(f" ({step_plan.reason})" if step_plan.reason else "")
        else:
            click.echo(f"  {phase:<6}   {step.id} ({step_plan.reason})")


@cli.command(context_settings={"ignore_unknown_options": True})
@click.argument("endpoint")
@click.argument("command", nargs=-1, type=click.UNPROCESSED)
@click.option("--timeout", "-t", type=POSITIVE_SECONDS, default=60.0, show_default=True,
              help="Seconds before giving up")
@click.option("--interval", "-i", type=POSITIVE_SECONDS, default=1.0, show_default=True,
              help="Seconds between attempts")
@click.option("--proceed", is_flag=True, help="Run COMMAND even if ENDPOINT never answers")
def wait(endpoint: str, command: Tuple[str, ...], timeout: float, interval: float, proceed: bool):
    """
    Wait until ENDPOINT (host:port) accepts connections, then exec COMMAND.

    Example:
        kindle wait mariadb:3306 --timeout 90 -- php-fpm81 -F
    """
    setup_logging("INFO")

    try:
        host, port = parse_host_port(endpoint, default_port=0)
        if port == 0:
            raise click.BadParameter("expected HOST:PORT", param_hint="ENDPOINT")

        target = TcpTarget(host, port, on_timeout="proceed" if proceed else "abort")
        probe = ReadinessProbe(interval=interval, timeout=timeout)
        with probe.interrupt_on_signals():
            probe.require(target)
    except KindleError as e:
        _fail(e)

    if command:
        LocalTransport().exec_process(list(command))


@cli.group()
def markers():
    """Inspect and reset completion markers."""
    pass


def _open_store(service: Optional[str], directory: Optional[str], state_db: Optional[str]) -> MarkerStore:
    if state_db:
        return SqliteMarkerStore(state_db)
    if directory:
        return FileMarkerStore(directory)
    if service:
        store = marker_store(service, _load_config(None))
        if store is None:
            raise click.UsageError(f"{service} keeps no markers")
        return store
    raise click.UsageError("give --service, --dir or --state-db")


@markers.command("list")
@click.option("--service", type=SERVICE_CHOICE, help="Use the service's marker directory")
@click.option("--dir", "directory", help="Sentinel marker directory")
@click.option("--state-db", envvar="KINDLE_STATE_DB", help="SQLite marker database")
def markers_list(service: Optional[str], directory: Optional[str], state_db: Optional[str]):
    """List completion markers."""
    with _open_store(service, directory, state_db) as store:
        records = OnceGuard(store).records()

    if not records:
        click.echo("No markers found.")
        return

    click.echo(f"{'MARKER':<32} {'COMPLETED':<20} {'BY'}")
    click.echo("-" * 72)
    for record in records:
        click.echo(
            f"{record.marker_id:<32} {record.completed_at.strftime('%Y-%m-%d %H:%M:%S'):<20} "
            f"{record.user}@{record.hostname}"
        )


@markers.command("reset")
@click.argument("marker_id", required=False)
@click.option("--service", type=SERVICE_CHOICE, help="Reset this service's marker")
@click.option("--dir", "directory", help="Sentinel marker directory")
@click.option("--state-db", envvar="KINDLE_STATE_DB", help="SQLite marker database")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
def markers_reset(marker_id: Optional[str], service: Optional[str], directory: Optional[str],
                  state_db: Optional[str], yes: bool):
    """
    Remove a marker so the next start re-runs initialization.

    Example:
        kindle markers reset --service wordpress
        kindle markers reset mariadb-initialized --dir /var/lib/mysql
    """
    if marker_id is None:
        if service is None:
            raise click.UsageError("give MARKER_ID or --service")
        marker_id = get_service(service).MARKER
        if marker_id is None:
            raise click.UsageError(f"{service} keeps no markers")

    if not yes and not click.confirm(f"Reset marker {marker_id}?"):
        click.echo("Aborted.")
        return

    with _open_store(service, directory, state_db) as store:
        try:
            removed = OnceGuard(store).reset(marker_id)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="MARKER_ID")

    if removed:
        click.secho(f"Marker {marker_id} reset.", fg="green")
    else:
        click.echo(f"Marker {marker_id} was not set.")


@cli.group()
def setup():
    """Prepare secrets, .env and data directories on the host."""
    pass


@setup.command("secrets")
@click.option("--dir", "directory", default="secrets", show_default=True, help="Secrets directory")
def setup_secrets(directory: str):
    """Create or refresh the secret files (values are never printed)."""
    from kindle.provision import ensure_secrets

    setup_logging("INFO")
    report = ensure_secrets(directory)
    for name in report.created:
        click.echo(f"  + {name}")
    for name in report.replaced:
        click.echo(f"  ~ {name}")
    for name in report.kept:
        click.echo(f"    {name} (kept)")


@setup.command("env")
@click.option("--file", "env_file", default="srcs/.env", show_default=True, help=".env file to write")
def setup_env(env_file: str):
    """Create or update the Compose .env file."""
    from kindle.provision import ensure_env_file

    setup_logging("INFO")
    values = ensure_env_file(env_file)
    for key, value in values.items():
        click.echo(f"  {key}={value}")


@setup.command("data")
@click.option("--file", "env_file", default="srcs/.env", show_default=True, help=".env file with DATA_PATH")
@click.option("--path", "data_path", help="Override DATA_PATH")
def setup_data(env_file: str, data_path: Optional[str]):
    """Create the bind-mount data directories."""
    from kindle.config import load_env_file
    from kindle.provision import prepare_data_dirs
    from kindle.provision.environment import default_env

    setup_logging("INFO")
    path = data_path or load_env_file(env_file).get("DATA_PATH") or default_env()["DATA_PATH"]
    prepare_data_dirs(path)
    click.echo(f"Data directories ready under {path}")


@cli.command()
def version():
    """Show kindle version."""
    from kindle import __version__
    click.echo(f"kindle version {__version__}")


if __name__ == "__main__":
    cli()
