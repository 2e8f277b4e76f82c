"""
CLI interface for the prompt relay.

Provides command-line access for checking configuration and trying
questions against the live relay.
"""

import asyncio
import logging
import sys
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from prompt_relay.config.loader import RelayConfig, load_relay_config
from prompt_relay.core.enricher import enrich_prompt
from prompt_relay.core.errors import QuotaExceeded, RelayError, RelayFailed
from prompt_relay.core.relay import RelayService
from prompt_relay.core.sanitizer import sanitize_question

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s'


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log relay activity to stderr"
    )
):
    """Prompt Relay CLI."""
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format=LOG_FORMAT,
            handlers=[logging.StreamHandler(sys.stderr)]
        )
    if ctx.invoked_subcommand is None:
        console.print("Prompt Relay - Use --help to see available commands")


@app.command("check-config")
def check_config(
    path: str = typer.Argument(..., help="Path to the relay YAML configuration")
):
    """Validate a configuration file and show the effective settings."""
    try:
        config = load_relay_config(path)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Invalid configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    _display_config(config)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def enrich(
    question: str = typer.Argument(..., help="Customer question to enrich")
):
    """Print the prompt that would be sent upstream for a question."""
    try:
        cleaned = sanitize_question(question)
    except RelayError as e:
        console.print(f"[red]Error:[/] {e.message}")
        sys.exit(EXIT_CODE_FAIL)

    # Plain print keeps rich from interpreting markup in the prompt
    print(enrich_prompt(cleaned))
    sys.exit(EXIT_CODE_PASS)


@app.command()
def ask(
    question: str = typer.Argument(..., help="Customer question"),
    config_path: str = typer.Option(
        ...,
        "--config",
        "-c",
        help="Path to the relay YAML configuration"
    ),
    session: Optional[str] = typer.Option(
        None,
        "--session",
        "-s",
        help="Session id (a new one is generated if omitted)"
    ),
    ip: Optional[str] = typer.Option(
        None,
        "--ip",
        help="Client IP to account the request against"
    )
):
    """Send one question through the relay and print the HTML answer."""
    try:
        config = load_relay_config(config_path)
        cleaned = sanitize_question(question, config.max_question_length)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Invalid configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    except RelayError as e:
        console.print(f"[red]Error:[/] {e.message}")
        sys.exit(EXIT_CODE_FAIL)

    service = RelayService(config)
    session_id = session or service.generate_session_id("cli")
    metadata = {"ip": ip} if ip else None

    try:
        answer = asyncio.run(service.relay(cleaned, session_id, metadata))
    except QuotaExceeded as e:
        console.print(f"[yellow]{e.message}.[/] Retry in {e.wait_seconds}s")
        sys.exit(EXIT_CODE_FAIL)
    except RelayFailed as e:
        console.print(f"[red]{e.message}:[/] {type(e.cause).__name__}")
        sys.exit(EXIT_CODE_FAIL)
    except RelayError as e:
        console.print(f"[red]Error:[/] {e.message}")
        sys.exit(EXIT_CODE_FAIL)

    print(answer)
    sys.exit(EXIT_CODE_PASS)


def _format_seconds(seconds: float) -> str:
    """Format a duration as seconds, minutes or hours."""
    if seconds >= 3600 and seconds % 3600 == 0:
        return f"{int(seconds // 3600)}h"
    if seconds >= 60 and seconds % 60 == 0:
        return f"{int(seconds // 60)}m"
    return f"{seconds:g}s"


def _display_config(config: RelayConfig):
    """Display the effective configuration without the API key."""
    table = Table(title="Prompt Relay Configuration")
    table.add_column("Setting")
    table.add_column("Value", justify="right")

    table.add_row("Model", config.model)
    table.add_row("Max tokens", f"{config.max_tokens:,}")
    table.add_row("Temperature", f"{config.temperature:g}")
    table.add_row("Upstream timeout", _format_seconds(config.request_timeout_seconds))
    table.add_row("Cache duration", _format_seconds(config.cache_duration_seconds))
    table.add_row("Request delay", _format_seconds(config.request_delay_seconds))
    table.add_row("Quota window", _format_seconds(config.window_seconds))
    table.add_row(
        "Session limits",
        f"{config.session_limits.requests_per_hour:,} req / "
        f"{config.session_limits.tokens_per_hour:,} tokens"
    )
    table.add_row(
        "IP limits",
        f"{config.ip_limits.requests_per_hour:,} req / "
        f"{config.ip_limits.tokens_per_hour:,} tokens"
    )
    table.add_row("Session expiry", _format_seconds(config.session_expiry_seconds))
    table.add_row("Cleanup interval", _format_seconds(config.cleanup_interval_seconds))
    table.add_row("Max question length", str(config.max_question_length))

    console.print(table)


if __name__ == "__main__":
    app()
