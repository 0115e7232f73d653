"""suitewarden command line."""

import json
import logging
import unittest
from pathlib import Path
from typing import Optional

import typer

from suitewarden.config import SETTINGS_PATH, Settings, load_settings, mask_secret
from suitewarden.errors import SuiteWardenError
from suitewarden.harness.runner import ParallelSuiteRunner
from suitewarden.lifecycle.orchestrator import SuiteLifecycleOrchestrator

app = typer.Typer(help="Browser session lifecycle for parallel test suites.")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()],
    )


def _load_settings_or_exit(settings_path: Path) -> Settings:
    try:
        return load_settings(settings_path)
    except ValueError as exc:
        typer.echo(f"Invalid settings: {exc}")
        raise typer.Exit(code=2)


def _masked_settings(settings: Settings) -> dict:
    payload = settings.to_dict()
    payload["cloud_access_key"] = mask_secret(settings.cloud_access_key)
    payload["driver_kind"] = settings.driver_kind
    payload["capture_required"] = settings.capture_required
    return payload


@app.command()
def config(
    settings_path: Path = typer.Option(SETTINGS_PATH, "--settings", help="Settings JSON file"),
    json_output: bool = typer.Option(False, "--json", help="Print settings as JSON"),
):
    """Show the resolved settings (file + SUITEWARDEN_* environment)."""
    settings = _load_settings_or_exit(settings_path)
    payload = _masked_settings(settings)
    if json_output:
        typer.echo(json.dumps(payload, indent=2))
        return
    for key in sorted(payload):
        typer.echo(f"{key}: {payload[key]}")


@app.command()
def probe(
    settings_path: Path = typer.Option(SETTINGS_PATH, "--settings", help="Settings JSON file"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Open one browser session, report its user agent, then tear it down."""
    _configure_logging(verbose)
    settings = _load_settings_or_exit(settings_path)
    orchestrator = SuiteLifecycleOrchestrator(settings)
    orchestrator.start()
    try:
        context = orchestrator.prepare_test(probe)
        typer.echo(f"session_id: {context.handle.session_id}")
        typer.echo(f"driver_kind: {context.handle.driver_type.kind}")
        typer.echo(f"user_agent: {context.user_agent}")
    except SuiteWardenError as exc:
        typer.echo(f"Probe failed: {exc}")
        raise typer.Exit(code=1)
    finally:
        orchestrator.finish()


@app.command()
def run(
    start_dir: Path = typer.Argument(Path("."), help="Directory to discover tests in"),
    pattern: str = typer.Option("test*.py", "--pattern", help="Test file glob"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Worker threads"),
    settings_path: Path = typer.Option(SETTINGS_PATH, "--settings", help="Settings JSON file"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Discover unittest tests and run them in parallel with shared sessions."""
    _configure_logging(verbose)
    settings = _load_settings_or_exit(settings_path)
    if workers is not None and workers < 1:
        typer.echo("--workers must be at least 1")
        raise typer.Exit(code=2)
    suite = unittest.defaultTestLoader.discover(str(start_dir), pattern=pattern)
    orchestrator = SuiteLifecycleOrchestrator(settings)
    result = ParallelSuiteRunner(orchestrator, workers=workers).run(suite)
    typer.echo(
        f"Ran {result.testsRun} test(s): {len(result.failures)} failure(s), "
        f"{len(result.errors)} error(s), {len(result.skipped)} skipped"
    )
    if not result.wasSuccessful():
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
