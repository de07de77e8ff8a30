"""Command-line interface for popgate.

This module defines the CLI commands using Click framework.
It provides commands for creating a popup configuration, inspecting it, and
running the preview server.

Commands:
- init: Create popgate.yaml interactively.
- serve: Run the preview server with popup gating.
- config: Print the resolved popup chain.
"""

from __future__ import annotations

import logging
import math
import sys
from pathlib import Path

import click
import questionary
import structlog
import yaml

from . import __version__
from .config import CONFIG_FILENAME, ConfigError, PopupConfig, load_config, to_cooldown_days


@click.group()
@click.version_option(version=__version__, prog_name="popgate")
def cli():
    """Cookie-gated popups for static sites."""
    configure_logging()


def configure_logging(level: int = logging.INFO) -> None:
    """Send gate diagnostics at level and above to stderr."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )


def _stderr_logger(*args) -> structlog.PrintLogger:
    # Resolved per logger so a swapped sys.stderr is honored.
    return structlog.PrintLogger(file=sys.stderr)


@cli.command()
@click.argument("directory", required=False, default=".")
def init(directory: str):
    """Create popgate.yaml interactively."""
    root = Path(directory).resolve()
    target = root / CONFIG_FILENAME
    if target.exists():
        raise click.ClickException(f"Refusing to overwrite existing {target}")

    defaults = PopupConfig()
    marker_key = questionary.text(
        "Marker cookie name:",
        default=defaults.marker_key,
        validate=lambda x: len(x.strip()) > 0 or "Marker name cannot be empty",
        style=_questionary_style(),
    ).ask()
    if marker_key is None:
        raise click.Abort()

    link = questionary.text("Popup link URL:", style=_questionary_style()).ask()
    if link is None:
        raise click.Abort()

    image = questionary.text("Popup image path:", style=_questionary_style()).ask()
    if image is None:
        raise click.Abort()

    delay = questionary.text(
        "Delay before showing (seconds):",
        default=str(defaults.delay_ms // 1000),
        validate=_is_delay,
        style=_questionary_style(),
    ).ask()
    if delay is None:
        raise click.Abort()

    cooldown = questionary.text(
        "Days before showing again:",
        default=_format_number(defaults.cooldown_days),
        validate=_is_cooldown,
        style=_questionary_style(),
    ).ask()
    if cooldown is None:
        raise click.Abort()

    popup = {
        "name": marker_key.strip(),
        "marker_key": marker_key.strip(),
        "delay_ms": int(float(delay) * 1000),
        "cooldown_days": float(cooldown),
    }
    if link.strip():
        popup["link"] = link.strip()
    if image.strip():
        popup["image"] = image.strip()

    root.mkdir(parents=True, exist_ok=True)
    payload = {"site_dir": "public", "port": 4000, "popups": [popup]}
    target.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
    click.echo(f"Created {target}")


@cli.command()
@click.option(
    "--port",
    type=int,
    required=False,
    help="Port to run the preview server (overrides popgate.yaml)",
)
@click.option(
    "--ws-port",
    type=int,
    required=False,
    help="Port for the gate websocket server (overrides popgate.yaml ws_port)",
)
def serve(port: int | None, ws_port: int | None):
    """Run the preview server with popup gating."""
    project_root = Path.cwd()
    from .server import PreviewServer

    try:
        server = PreviewServer(project_root, http_port=port, ws_port=ws_port)
    except ConfigError as exc:
        _report_config_error(exc, project_root)
        raise SystemExit(1) from None
    server.start()


@cli.command("config")
def show_config():
    """Print the resolved popup chain."""
    project_root = Path.cwd()
    try:
        config = load_config(project_root)
    except ConfigError as exc:
        _report_config_error(exc, project_root)
        raise SystemExit(1) from None
    resolved = dict(config)
    resolved["popups"] = [
        dict(popup.to_dict(), key=popup.key) for popup in config["popups"]
    ]
    click.echo(yaml.safe_dump(resolved, sort_keys=False), nl=False)


def _report_config_error(exc: ConfigError, project_root: Path) -> None:
    try:
        rel_path = exc.config_path.relative_to(project_root)
    except ValueError:
        rel_path = exc.config_path
    click.echo(click.style("Invalid configuration:", fg="red", bold=True), err=True)
    click.echo(click.style(f"  File: {rel_path}", fg="yellow"), err=True)
    click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)


def _is_delay(value: str) -> bool | str:
    try:
        seconds = float(value)
    except ValueError:
        return "Enter a number"
    if not math.isfinite(seconds) or seconds < 0:
        return "Enter a non-negative number"
    return True


def _is_cooldown(value: str) -> bool | str:
    try:
        to_cooldown_days(value)
    except ValueError as exc:
        return f"Cooldown {exc}"
    return True


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _questionary_style():
    """Return consistent questionary style."""
    return questionary.Style(
        [
            ("qmark", "fg:cyan bold"),
            ("question", "bold"),
            ("answer", "fg:cyan"),
            ("pointer", "fg:cyan bold"),
            ("highlighted", "fg:cyan bold"),
            ("selected", "fg:cyan"),
        ]
    )


def main():
    """Entry point for the CLI application."""
    cli()
