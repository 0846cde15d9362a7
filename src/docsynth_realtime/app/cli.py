"""Command-line interface for docsynth-realtime."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

import click

from docsynth_realtime.app.runner import ApplicationRunner, format_notification
from docsynth_realtime.core.config import ConfigurationError, MainConfig, load_main_config
from docsynth_realtime.utils.http_client import ApiError, AuthenticationRequiredError
from docsynth_realtime.utils.logging import configure_logging

# Configuration file discovery paths in order of precedence
CURRENT_DIR_CONFIG_FILES = [
    "docsynth.yaml",
    "docsynth.yml",
    "config/docsynth.yaml",
]

HOME_CONFIG_FILES = [
    ".docsynth/config.yaml",
    ".docsynth.yaml",
]

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR"}

try:
    __version__ = version("docsynth-realtime")
except PackageNotFoundError:
    __version__ = "unknown"


def discover_config_file() -> Path | None:
    """Discover a configuration file in standard locations.

    Searches the current directory first, then the user's home directory.

    Returns:
        Path to the first configuration file found, or None to use defaults
    """
    for config_file in CURRENT_DIR_CONFIG_FILES:
        config_path = Path(config_file)
        if config_path.is_file():
            return config_path

    try:
        home_dir = Path.home()
    except (OSError, RuntimeError):
        # Path.home() can fail in some environments
        return None

    for config_file in HOME_CONFIG_FILES:
        config_path = home_dir / config_file
        if config_path.is_file():
            return config_path
    return None


def validate_config_path(
    ctx: click.Context,  # pyright: ignore[reportUnusedParameter] # required by Click callback signature
    param: click.Parameter,  # pyright: ignore[reportUnusedParameter] # required by Click callback signature
    value: Path | None,
) -> Path | None:
    """Validate the configuration file path.

    Raises:
        click.BadParameter: If the path is a directory or not a YAML file
    """
    if value is None:
        return value
    if value.is_dir():
        raise click.BadParameter("Configuration path must be a file, not a directory")
    if value.suffix.lower() not in {".yaml", ".yml"}:
        raise click.BadParameter("Invalid configuration file extension. Supported extensions: .yaml, .yml")
    return value


def validate_log_level(
    ctx: click.Context,  # pyright: ignore[reportUnusedParameter] # required by Click callback signature
    param: click.Parameter,  # pyright: ignore[reportUnusedParameter] # required by Click callback signature
    value: str | None,
) -> str | None:
    """Validate and normalize a log level.

    Raises:
        click.BadParameter: If the level is unknown
    """
    if value is None:
        return value
    normalized_value = value.upper().strip()
    if normalized_value not in VALID_LOG_LEVELS:
        raise click.BadParameter(
            f'Invalid log level "{value}". Valid options: {", ".join(sorted(VALID_LOG_LEVELS))}'
        )
    return normalized_value


@dataclass(slots=True)
class CliState:
    """Global options, resolved into a runner on first use."""

    config_path: Path | None
    log_level: str | None
    runner: ApplicationRunner | None = None

    def get_runner(self) -> ApplicationRunner:
        """Load configuration, configure logging and build the runner.

        Raises:
            click.ClickException: If the configuration cannot be loaded
        """
        if self.runner is not None:
            return self.runner

        config_path = self.config_path or discover_config_file()
        try:
            config = load_main_config(config_path) if config_path is not None else MainConfig()
        except ConfigurationError as exc:
            raise click.ClickException(f"Configuration error:\n{exc}") from exc

        if self.log_level is not None:
            config.application.log_level = self.log_level
        configure_logging(
            log_level=config.application.log_level,
            log_file=config.application.log_file,
        )
        self.runner = ApplicationRunner(config, printer=click.echo)
        return self.runner


def _run[T](action: Coroutine[object, object, T]) -> T:
    """Run a runner coroutine, mapping expected failures to exit code 1."""
    try:
        return asyncio.run(action)
    except AuthenticationRequiredError as exc:
        raise click.ClickException(f"Authentication required: {exc}") from exc
    except ApiError as exc:
        raise click.ClickException(f"API error: {exc}") from exc
    except TimeoutError as exc:
        raise click.ClickException("Timed out waiting for the backend") from exc


def _runner(ctx: click.Context) -> ApplicationRunner:
    state = ctx.find_object(CliState)
    if state is None:
        raise click.ClickException("CLI state missing; invoke through the docsynth-realtime command")
    return state.get_runner()


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(path_type=Path),
    default=None,
    callback=validate_config_path,
    help="Configuration file path (.yaml/.yml). If not specified, searches standard locations.",
)
@click.option(
    "--log-level",
    "-l",
    type=str,
    default=None,
    callback=validate_log_level,
    help="Logging verbosity level (DEBUG, INFO, WARNING, ERROR)",
)
@click.version_option(version=__version__, prog_name="docsynth-realtime")
@click.pass_context
def cli(ctx: click.Context, config: Path | None, log_level: str | None) -> None:
    """DocSynth realtime client.

    Follows notifications, job progress and chat answers pushed by the
    DocSynth backend.

    Examples:

        # Stream notifications and activity
        docsynth-realtime watch

        # Follow a documentation job
        docsynth-realtime job 3f2a9c --timeout 600

        # Ask a question about a repository's docs
        docsynth-realtime chat repo-1 "How do I authenticate?"
    """
    ctx.obj = CliState(config_path=config, log_level=log_level)


@cli.command()
@click.option("--channel", "channels", multiple=True, help="Additional channel to subscribe to (repeatable)")
@click.pass_context
def watch(ctx: click.Context, channels: tuple[str, ...]) -> None:
    """Print notifications and activity until interrupted."""
    runner = _runner(ctx)
    try:
        _run(runner.watch(channels))
    except KeyboardInterrupt:
        click.echo("\nShutting down gracefully...")


@cli.command()
@click.argument("job_id")
@click.option("--timeout", "-t", type=float, default=None, help="Seconds to wait for the job to finish")
@click.pass_context
def job(ctx: click.Context, job_id: str, timeout: float | None) -> None:
    """Follow a job until it completes or fails."""
    progress = _run(_runner(ctx).follow_job(job_id, timeout=timeout))
    if progress.status == "failed":
        raise click.ClickException(f"Job {job_id} failed: {progress.error}")
    click.echo(f"Job {job_id} completed")


@cli.command()
@click.argument("repository_id")
@click.argument("message")
@click.option("--timeout", "-t", type=float, default=120.0, show_default=True, help="Seconds to wait for the answer")
@click.pass_context
def chat(ctx: click.Context, repository_id: str, message: str, timeout: float) -> None:
    """Ask one question about a repository's documentation."""
    answer = _run(_runner(ctx).ask(repository_id, message, timeout=timeout))
    if answer is None:
        raise click.ClickException("No answer received")
    click.echo(answer.content)
    for source in answer.sources:
        click.echo(f"  - {source.document_path}")


@cli.group()
def notifications() -> None:
    """Inspect and update stored notifications."""


@notifications.command("list")
@click.option("--unread", is_flag=True, help="Only show unread notifications")
@click.pass_context
def list_notifications(ctx: click.Context, unread: bool) -> None:
    """List stored notifications, newest first."""
    store = _runner(ctx).notification_store()
    shown = [item for item in store.notifications if not (unread and item.read)]
    for item in shown:
        click.echo(f"{item.id}  {format_notification(item)}")
    click.echo(f"{store.unread_count} unread of {len(store.notifications)}")


def _id_or_all(action: str) -> Callable[[Callable[..., None]], Callable[..., None]]:
    def decorate(func: Callable[..., None]) -> Callable[..., None]:
        func = click.option("--all", "all_", is_flag=True, help=f"{action} every notification")(func)
        return click.argument("notification_id", required=False)(func)

    return decorate


@notifications.command("read")
@_id_or_all("Mark")
@click.pass_context
def read_notifications(ctx: click.Context, notification_id: str | None, all_: bool) -> None:
    """Mark one notification (or all) as read."""
    if (notification_id is None) == (not all_):
        raise click.UsageError("Pass a notification ID or --all")
    store = _runner(ctx).notification_store()
    if all_:
        click.echo(f"Marked {store.mark_all_as_read()} notifications as read")
    elif notification_id is not None and store.mark_as_read(notification_id):
        click.echo(f"Marked {notification_id} as read")
    else:
        click.echo(f"No unread notification {notification_id}")


@notifications.command("clear")
@_id_or_all("Clear")
@click.pass_context
def clear_notifications(ctx: click.Context, notification_id: str | None, all_: bool) -> None:
    """Remove one notification (or all)."""
    if (notification_id is None) == (not all_):
        raise click.UsageError("Pass a notification ID or --all")
    store = _runner(ctx).notification_store()
    if all_:
        store.clear_all()
        click.echo("Cleared all notifications")
    elif notification_id is not None and store.clear_notification(notification_id):
        click.echo(f"Cleared {notification_id}")
    else:
        click.echo(f"No notification {notification_id}")
