"""RecallForge CLI - Main application entry point.

Commands:
- serve: Run the HTTP API with uvicorn
- schedule: Schedule one review and print the updated card
- retention: Estimate recall probability for a saved card snapshot
- config show: Print the effective configuration
- config save: Write the effective configuration to a YAML file
"""

from __future__ import annotations

import json
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import typer
from rich.table import Table

from recallforge import __version__
from recallforge.cli.console import get_console, render_error, tip
from recallforge.core.config import Config
from recallforge.core.config_loaders import load_config, save_config
from recallforge.core.exceptions import ConfigurationError, RecallForgeError, ValidationError
from recallforge.core.logging import configure_logging, get_logger
from recallforge.study.service import ReviewService

logger = get_logger(__name__)

app = typer.Typer(
    name="recallforge",
    help="Forgetting-curve spaced repetition scheduler",
    add_completion=False,
)
config_app = typer.Typer(help="Inspect and export configuration")
app.add_typer(config_app, name="config")


def safe_cli_command(func: Callable[..., Any]) -> Callable[..., Any]:
    """Render RecallForgeError as a panel and exit with code 1."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except RecallForgeError as e:
            render_error(e)
            raise typer.Exit(code=1)

    return wrapper


def _load(ctx: typer.Context) -> Config:
    return ctx.obj["config"]


def _read_json(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ValidationError(f"Could not read card snapshot {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValidationError(f"Card snapshot {path} must contain a JSON object")
    return data


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to config.yaml"
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override log level"),
    version: bool = typer.Option(False, "--version", "-v", help="Show version and exit"),
) -> None:
    """RecallForge - spaced repetition scheduling."""
    if version:
        typer.echo(f"recallforge {__version__}")
        raise typer.Exit()

    try:
        config = load_config(config_path)
    except RecallForgeError as e:
        render_error(e)
        raise typer.Exit(code=1)

    level = (log_level or config.logging.level).upper()
    log_file = Path(config.logging.file) if config.logging.file else None
    configure_logging(level=level, log_file=log_file, console=config.logging.console)
    ctx.obj = {"config": config}

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


@app.command()
@safe_cli_command
def serve(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port number", min=1, max=65535),
) -> None:
    """Start the API server."""
    from recallforge.api.main import run_server

    config = _load(ctx)
    if host:
        config.server.host = host
    if port:
        config.server.port = port

    console = get_console()
    console.print("\n[cyan]Starting RecallForge API Server[/cyan]")
    console.print(f"  Host: {config.server.host}")
    console.print(f"  Port: {config.server.port}")
    console.print("\n[dim]Press Ctrl+C to stop[/dim]\n")
    try:
        run_server(config)
    except KeyboardInterrupt:
        console.print("\n[yellow]Server stopped[/yellow]")


@app.command()
@safe_cli_command
def schedule(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="Learner identifier"),
    item_id: str = typer.Argument(..., help="Content identifier"),
    quality: int = typer.Argument(..., help="Grade 0-5"),
    response_time: Optional[float] = typer.Option(
        None, "--response-time", "-r", help="Seconds taken to answer"
    ),
    card_path: Optional[Path] = typer.Option(
        None, "--card", help="JSON card snapshot from a previous run"
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write the updated card snapshot here"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the raw JSON result"),
) -> None:
    """Schedule one review and show the next review time."""
    service = ReviewService(_load(ctx))
    payload: Dict[str, Any] = {
        "userId": user_id,
        "itemId": item_id,
        "quality": quality,
        "responseTime": response_time,
    }
    if card_path is not None:
        payload["card"] = _read_json(card_path)

    result = service.schedule_review(payload)
    snapshot = result.card.model_dump(by_alias=True, mode="json")

    if output is not None:
        output.write_text(json.dumps(snapshot, indent=2), encoding="utf-8")

    if as_json:
        typer.echo(json.dumps(result.model_dump(by_alias=True, mode="json"), indent=2))
        return

    table = Table(title=f"Review scheduled: {user_id} / {item_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Learning state", result.learning_state.value)
    table.add_row("Next review", result.next_review.isoformat())
    table.add_row("Interval (days)", f"{result.interval:.4f}")
    table.add_row("Ease factor", f"{result.ease_factor:.2f}")
    table.add_row("Memory strength", f"{result.memory_strength:.2f}")
    get_console().print(table)
    if output is None:
        tip("Use --output card.json to keep the card for the next review")


@app.command()
@safe_cli_command
def retention(
    ctx: typer.Context,
    card_path: Path = typer.Argument(..., help="JSON card snapshot"),
    target: Optional[datetime] = typer.Option(
        None, "--at", help="Instant to estimate at (ISO-8601, default now)"
    ),
) -> None:
    """Estimate the probability of recalling a card."""
    service = ReviewService(_load(ctx))
    estimate = service.estimate_retention({"card": _read_json(card_path), "target": target})

    table = Table(title="Retention estimate")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Retention probability", f"{estimate.retention_probability:.3f}")
    table.add_row("Current memory strength", f"{estimate.current_memory_strength:.3f}")
    table.add_row("Days since last review", str(estimate.days_since_last_review))
    table.add_row("Days until next review", str(estimate.days_until_next_review))
    table.add_row("Priority score", f"{estimate.priority_score:.2f}")
    table.add_row("Overdue", "yes" if estimate.is_overdue else "no")
    get_console().print(table)


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Print the effective configuration as JSON."""
    config = _load(ctx)
    typer.echo(json.dumps(config.to_dict(), indent=2))


@config_app.command("save")
@safe_cli_command
def config_save(
    ctx: typer.Context,
    path: Path = typer.Argument(Path("config.yaml"), help="Destination YAML file"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
) -> None:
    """Write the effective configuration (file, env overrides, defaults) as YAML."""
    if path.exists() and not force:
        raise ConfigurationError(
            f"{path} already exists",
            how_to_fix=["Pass --force to overwrite it", "Choose another path"],
        )
    save_config(_load(ctx), path)
    get_console().print(f"[green]Configuration written to {path}[/green]")


def cli_main() -> None:
    """Entry point for console_scripts."""
    app()


if __name__ == "__main__":
    cli_main()
