"""CLI entry point for artifact relay."""

import time
from pathlib import Path

import click
from loguru import logger

from .config import RelayConfig, load_config
from .controller import RelayController
from .errors import ConfigError, DeploymentError, RunInProgressError
from .events import Event
from .models import LogEvent, LogLevel, ProgressEvent, ScanResult
from .scheduler import Scheduler

log = logger.bind(stage="cli")

_LEVEL_COLORS = {
    LogLevel.INFO: None,
    LogLevel.WARN: "yellow",
    LogLevel.ERROR: "red",
    LogLevel.SUCCESS: "green",
}


def _find_config_file() -> Path | None:
    """Look for relay.json in cwd."""
    candidate = Path.cwd() / "relay.json"
    if candidate.is_file():
        return candidate
    return None


def _format_bytes(n: float) -> str:
    for unit in ("B", "KiB", "MiB", "GiB"):
        if n < 1024:
            return f"{n:.1f} {unit}"
        n /= 1024
    return f"{n:.1f} TiB"


def _print_event(event: Event) -> None:
    if isinstance(event, LogEvent):
        click.secho(event.message, fg=_LEVEL_COLORS[event.level], err=True)
    elif isinstance(event, ProgressEvent):
        click.echo(
            f"  {event.label}: {event.percentage:5.1f}% "
            f"{_format_bytes(event.copied_bytes)}/{_format_bytes(event.total_bytes)} "
            f"@ {_format_bytes(event.speed)}/s, ETA {event.eta_seconds:.0f}s",
            err=True,
        )


def _print_summary(result: ScanResult) -> None:
    if result.window_skipped:
        click.echo("Outside configured time ranges, nothing done")
        return
    status = "cancelled" if result.cancelled else "complete"
    click.echo(
        f"Scan {status}: scanned {result.scanned_paths}, found {len(result.found_folders)}, "
        f"copied {len(result.copied_folders)}, skipped {len(result.skipped_folders)}"
    )
    for name in result.copied_folders:
        click.echo(f"  Copied: {name}")
    for report in result.deployments:
        for outcome in report.outcomes:
            state = "ok" if outcome.success else ("cancelled" if outcome.cancelled else "FAILED")
            click.echo(f"  Deploy {report.artifact_name} -> {outcome.target_name}: {state}")
    for error in result.errors:
        click.echo(f"  ERROR: {error}")


@click.group()
@click.option(
    "-c",
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Path to JSON config file (default: ./relay.json).",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_file: str | None, verbose: bool) -> None:
    """Discover, copy, and deploy versioned build artifacts from network shares."""
    ctx.obj = {"path": Path(config_file) if config_file else None, "verbose": verbose}


def _load_config(ctx: click.Context) -> RelayConfig:
    """Load settings on first use so --help works with a broken config file."""
    state = ctx.find_root().obj
    if "config" not in state:
        path = state["path"] or _find_config_file()
        overrides: dict[str, bool] = {"verbose": True} if state["verbose"] else {}
        try:
            config = load_config(path, **overrides)
        except ConfigError as e:
            raise click.ClickException(str(e)) from e
        config.setup_logging()
        log.debug(f"Config: {path or 'environment only'}")
        state["config"] = config
    return state["config"]


@main.command()
@click.pass_context
def scan(ctx: click.Context) -> None:
    """Run one scan cycle now. Ctrl-C cancels it."""
    config = _load_config(ctx)
    controller = RelayController(config)
    controller.events.subscribe(_print_event)
    future = controller.start_cycle()
    try:
        result = future.result()
    except KeyboardInterrupt:
        controller.cancel()
        result = future.result()
    finally:
        controller.shutdown(cancel=False)
    _print_summary(result)
    if result.had_errors:
        raise SystemExit(2)


@main.command()
@click.option(
    "--interval",
    type=float,
    default=None,
    help="Minutes between cycles (default: interval_minutes from config).",
)
@click.pass_context
def watch(ctx: click.Context, interval: float | None) -> None:
    """Run a scan cycle every interval until interrupted."""
    config = _load_config(ctx)
    minutes = interval if interval is not None else config.interval_minutes
    controller = RelayController(config)
    controller.events.subscribe(_print_event)
    scheduler = Scheduler(controller, minutes * 60)
    scheduler.start()
    try:
        while scheduler.running:
            time.sleep(1)
    except KeyboardInterrupt:
        click.echo("Stopping...")
    finally:
        scheduler.stop()
        controller.shutdown()


@main.command("test-connection")
@click.argument("target_id")
@click.pass_context
def test_connection(ctx: click.Context, target_id: str) -> None:
    """Connect and authenticate to one configured target."""
    config = _load_config(ctx)
    target = config.find_server(target_id)
    if target is None:
        raise click.BadParameter(f"No server with id or name {target_id!r}", param_hint="TARGET_ID")
    controller = RelayController(config)
    try:
        click.echo(controller.test_connection(target))
    except DeploymentError as e:
        raise click.ClickException(str(e)) from e
    finally:
        controller.shutdown(cancel=False)


@main.command()
@click.argument("local_path", type=click.Path(exists=True))
@click.argument("remote_path")
@click.option("-t", "--target", "target_id", required=True, help="Server id or name.")
@click.option(
    "--no-commands", is_flag=True, help="Skip the configured post-transfer commands."
)
@click.pass_context
def deploy(
    ctx: click.Context, local_path: str, remote_path: str, target_id: str, no_commands: bool
) -> None:
    """Upload LOCAL_PATH to REMOTE_PATH on one target, bypassing task matching.

    A REMOTE_PATH ending in '/' receives LOCAL_PATH's name appended.
    """
    config = _load_config(ctx)
    target = config.find_server(target_id)
    if target is None:
        raise click.BadParameter(f"No server with id or name {target_id!r}", param_hint="--target")
    controller = RelayController(config)
    controller.events.subscribe(_print_event)
    try:
        future = controller.manual_deploy(
            target,
            Path(local_path).resolve(),
            remote_path,
            post_commands=[] if no_commands else None,
        )
        outcome = future.result()
    except (DeploymentError, RunInProgressError) as e:
        raise click.ClickException(str(e)) from e
    finally:
        controller.shutdown(cancel=False)

    if not outcome.success:
        raise click.ClickException(outcome.error or "Deployment failed")
    click.echo(
        f"Deployed {outcome.files_uploaded} files ({_format_bytes(outcome.bytes_uploaded)}) "
        f"to {target.name}:{outcome.remote_path}"
    )
