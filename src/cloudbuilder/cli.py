# cli.py
from __future__ import annotations

import dataclasses
import sys

import click

from cloudbuilder.config import WorkerConfig, load_config, load_credentials, signing_expected
from cloudbuilder.errors import ConfigurationError
from cloudbuilder.ui.console import Console, set_console, get_console


def load_worker_config(poll_interval: int | None = None) -> WorkerConfig:
    """
    Load configuration from the environment, exiting on error.

    Raises:
        SystemExit: If a required setting is missing or invalid
    """
    console = get_console()
    try:
        cfg = load_config()
    except ConfigurationError as e:
        console.print_error(
            "Invalid configuration",
            str(e),
            suggestion="Set the missing environment variables and retry:\n  cloudbuilder check-config",
        )
        sys.exit(1)

    if poll_interval is not None:
        if poll_interval <= 0:
            console.print_error("Invalid option", f"--poll-interval must be positive, got {poll_interval}")
            sys.exit(1)
        cfg = dataclasses.replace(cfg, poll_interval=poll_interval)

    if signing_expected(cfg) and not cfg.code_signing.enabled:
        console.print_warning(
            "Win64 client/launcher releases are enabled but code signing is not configured; "
            "binaries will be uploaded unsigned"
        )
    return cfg


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and executed commands)",
)
@click.pass_context
def cli(ctx, debug):
    """Cloud builder: claims build jobs, runs them and uploads the artifacts."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--poll-interval", default=None, type=int, help="Seconds to wait between polls when no job is available")
@click.option("--once", is_flag=True, default=False, help="Poll a single time, process at most one job and exit")
@click.pass_context
def run(ctx, poll_interval, once):
    """Run the build worker loop."""
    from cloudbuilder.agent.agent import run_agent

    console = get_console()
    cfg = load_worker_config(poll_interval)
    try:
        credentials = load_credentials()
    except ConfigurationError as e:
        console.print_error("Missing credentials", str(e))
        sys.exit(1)

    try:
        run_agent(cfg, credentials, once=once)
    except KeyboardInterrupt:
        console.print_info("\nWorker stopped by user")
        sys.exit(0)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command("check-config")
def check_config():
    """Validate configuration and print what this worker would build."""
    console = get_console()
    cfg = load_worker_config()
    try:
        load_credentials()
    except ConfigurationError as e:
        console.print_error("Missing credentials", str(e))
        sys.exit(1)

    console.print_header("Configuration OK")
    console.print_info(f"API: {cfg.api_url}")
    console.print_info(f"Jobs: {', '.join(sorted(j.value for j in cfg.enabled_jobs))}")
    console.print_info(f"Targets: {', '.join(sorted(t.value for t in cfg.enabled_targets))}")
    console.print_info(f"Platforms: {', '.join(sorted(p.value for p in cfg.enabled_platforms))}")
    console.print_info(f"Code signing: {'enabled' if cfg.code_signing.enabled else 'disabled'}")
    console.print_info(f"Polling every: {cfg.poll_interval}s")


if __name__ == "__main__":
    cli()
