"""
Command line entry points for running trendwatch cycles.
"""
from __future__ import annotations

import json
import logging
import time

import click
from dotenv import load_dotenv

from trendwatch.config_loader import load_config
from trendwatch.errors import TrendwatchError
from trendwatch.keywords import KeywordConfig
from trendwatch.scheduler import Scheduler
from trendwatch.settings import load_settings
from trendwatch.status import build_status

logger = logging.getLogger(__name__)


def _echo_json(payload) -> None:
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _build_scheduler(ctx: click.Context) -> Scheduler:
    settings = load_settings()
    config = load_config(ctx.obj.get("config_path") or settings.config_path)
    return Scheduler(settings=settings, config=config)


@click.group()
@click.option("--log-level", default="INFO", show_default=True, help="Python logging level.")
@click.option("--config", "config_path", default=None, help="Path to the YAML config file.")
@click.pass_context
def cli(ctx: click.Context, log_level: str, config_path: str | None) -> None:
    load_dotenv()
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command("run-once")
@click.pass_context
def run_once(ctx: click.Context) -> None:
    """Run a single cycle and print its summary."""
    scheduler = _build_scheduler(ctx)
    try:
        result = scheduler.force_run()
    except TrendwatchError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_json(
        {
            "success": result.success,
            "run_count": result.run_count,
            "duration_ms": result.duration_ms,
            "timestamp": result.timestamp.isoformat(),
            "providers": {status.name: status.state for status in result.providers},
            "analysis": result.analysis,
        }
    )


@cli.command()
@click.option("--interval", type=int, default=None, help="Minutes between cycles.")
@click.pass_context
def serve(ctx: click.Context, interval: int | None) -> None:
    """Run cycles on a fixed interval until interrupted."""
    scheduler = _build_scheduler(ctx)
    scheduler.start(interval)
    click.echo(f"trendwatch running every {scheduler.interval_minutes} minutes; Ctrl-C to stop")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()


@cli.command()
@click.argument("category", required=False)
@click.pass_context
def keywords(ctx: click.Context, category: str | None) -> None:
    """List keyword categories, or the terms of one category."""
    config = KeywordConfig.from_mapping(load_config(ctx.obj.get("config_path") or load_settings().config_path).get("keywords") or {})
    if category is None:
        _echo_json(config.snapshot()["categories"])
        return
    if category not in config.categories:
        raise click.ClickException(f"unknown keyword category '{category}'")
    for term in config.get_terms(category):
        click.echo(term)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Print configured providers and their availability.

    Builds a fresh scheduler, so run counts and content are always empty;
    query a running `serve` process for live cycle state.
    """
    settings = load_settings()
    scheduler = Scheduler(settings=settings, config=load_config(ctx.obj.get("config_path") or settings.config_path))
    _echo_json(build_status(scheduler, settings))


if __name__ == "__main__":  # pragma: no cover
    cli()
