"""dripfeed CLI entry point."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from dripfeed.catalog import validate_catalog
from dripfeed.config import DEFAULT_CONFIG_PATH, DripfeedConfig, load_config, write_default_config
from dripfeed.engine import ReleaseEngine, current_epoch_day, needs_update
from dripfeed.errors import DripfeedError, StoreIOError, StoreParseError
from dripfeed.logging_config import setup_logging
from dripfeed.monitor import start_file_monitoring
from dripfeed.subscriptions import validate_subscriptions
from dripfeed.web import run_server


__version__ = "0.1.0"

app = typer.Typer(add_completion=False, help="dripfeed chapter release feed CLI")
logger = logging.getLogger("dripfeed")


def _ensure_config(config_path: Optional[Path] = None) -> DripfeedConfig:
    try:
        config = load_config(config_path)
    except FileNotFoundError:
        typer.echo("[ERROR] config.ini not found. Run: dripfeed init --directory /path/to/data")
        raise typer.Exit(code=1)
    except ValueError as exc:
        typer.echo(f"[ERROR] Invalid config.ini: {exc}")
        raise typer.Exit(code=1)

    setup_logging(config.logging)
    return config


def _collect_problems(config: DripfeedConfig) -> list[str]:
    problems: list[str] = []
    for label, path, validator in (
        ("catalog", config.catalog_path, validate_catalog),
        ("subscriptions", config.subscriptions_path, validate_subscriptions),
    ):
        try:
            found: list[StoreParseError] = validator(path)
        except StoreIOError as exc:
            problems.append(f"{label}: {exc}")
            continue
        problems.extend(f"{label}: {problem}" for problem in found)
    return problems


@app.command()
def init(
    directory: Path = typer.Option(Path("data"), "--directory", help="Folder holding the store files"),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", help="Where to write config.ini"),
) -> None:
    """Initialize config.ini with default settings and empty store files."""
    write_default_config(config, directory)
    typer.echo(f"[OK] Config created at {config}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Server host"),
    port: Optional[int] = typer.Option(None, "--port", help="Server port"),
    no_watch: bool = typer.Option(False, "--no-watch", help="Disable data file monitoring"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to config.ini"),
) -> None:
    """Start the feed server with optional data file monitoring."""
    config = _ensure_config(config_path)

    problems = _collect_problems(config)
    for problem in problems:
        logger.warning(problem)
    if not problems:
        logger.info(f"Stores OK in {config.data_dir}")

    observer = None
    if not no_watch and config.monitoring.enabled:
        observer = start_file_monitoring(config)
    elif no_watch:
        logger.info("Data file monitoring disabled")

    try:
        run_server(config, host=host, port=port, monitoring_enabled=observer is not None)
    except KeyboardInterrupt:
        pass
    finally:
        if observer:
            observer.stop()
            observer.join()


@app.command()
def check(
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to config.ini"),
) -> None:
    """Validate every line of the catalog and subscription files."""
    config = _ensure_config(config_path)

    problems = _collect_problems(config)
    if problems:
        for problem in problems:
            typer.echo(f"[ERROR] {problem}")
        raise typer.Exit(code=1)

    typer.echo(f"[OK] {config.catalog_path.name} and {config.subscriptions_path.name} are valid")


@app.command()
def status(
    reading_id: str = typer.Argument(..., help="Subscription id"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to config.ini"),
) -> None:
    """Show a subscription's visible window without probing or advancing it."""
    config = _ensure_config(config_path)
    engine = ReleaseEngine(config)

    try:
        plan = engine.resolve(reading_id, advance=False)
    except DripfeedError as exc:
        typer.echo(f"[ERROR] {exc}")
        raise typer.Exit(code=1)

    sub = plan.subscription
    today = current_epoch_day()
    due = needs_update(sub, today)

    typer.echo(f"Subscription {sub.id}:")
    typer.echo(f"  Story: {plan.story.title} ({plan.story.id})")
    typer.echo(f"  Visible chapters: {sub.start_chapter}-{sub.current_chapter}")
    typer.echo(f"  Schedule: {sub.batch_size} chapter(s) every {sub.frequency_days} day(s)")
    if due:
        typer.echo(f"  Next release: due now (chapter {sub.current_chapter + 1} will be checked)")
    else:
        typer.echo(f"  Next release: in {sub.next_release_day - today} day(s)")


if __name__ == "__main__":
    app()
