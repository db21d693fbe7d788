"""Typer CLI for swarmcode."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

console = Console()
app = typer.Typer(
    name="swarmcode",
    help="Autonomous coding workers that write, run and fix code until it works.",
    add_completion=False,
    no_args_is_help=True,
)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


@app.command()
def run(
    task: str = typer.Argument(..., help="What the worker should build or fix"),
    cwd: str = typer.Option(".", "--cwd", "-C", help="Project directory (default: current dir)"),
    model: str | None = typer.Option(
        None, "--model", "-m", help="LLM model name (LiteLLM format)"
    ),
    api_base: str | None = typer.Option(
        None, "--api-base", help="Custom API base URL (e.g. for Ollama, vLLM)"
    ),
    role: str = typer.Option("coder", "--role", "-r", help="Worker role (see 'swarmcode roles')"),
    max_iter: int | None = typer.Option(None, "--max-iter", "-n", help="Maximum iterations"),
    no_debug: bool = typer.Option(
        False, "--no-debug", help="Stop at the first error-free iteration instead of verifying"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Spawn one worker and let it iterate on a task.

    Settings come from .swarmcode.yml when present; flags override them.
    Commands that need approval are offered for confirmation at the end.
    """
    from dotenv import load_dotenv

    from swarmcode.config import load_swarm_config
    from swarmcode.swarm.roles import parse_role

    load_dotenv()
    _setup_logging(verbose)

    resolved_cwd = str(Path(cwd).resolve())
    config = load_swarm_config(resolved_cwd)
    if model:
        config.model_name = model
    if api_base:
        config.api_base = api_base
    if max_iter is not None:
        config.max_iterations = max_iter
    if no_debug:
        config.auto_debug = False

    try:
        worker_role = parse_role(role)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from e

    console.print(
        Panel(
            Text.from_markup(
                f"[bold cyan]swarmcode[/bold cyan]  "
                f"role=[bold]{worker_role}[/bold]  "
                f"model=[bold]{config.model_name}[/bold]  "
                f"max-iter=[bold]{config.max_iterations}[/bold]  "
                f"debug=[bold]{'on' if config.auto_debug else 'off'}[/bold]\n"
                f"[dim]cwd: {resolved_cwd}[/dim]"
            ),
            border_style="cyan",
        )
    )

    from swarmcode.cli.runners import run_cli as _run_cli

    exit_code = asyncio.run(
        _run_cli(task, resolved_cwd, config, worker_role, confirm=typer.confirm)
    )
    raise typer.Exit(code=exit_code)


@app.command()
def roles() -> None:
    """List the roles a worker can be spawned with."""
    from swarmcode.swarm.roles import get_all_roles_info

    table = Table(title="Worker roles", border_style="cyan")
    table.add_column("Role", style="bold cyan")
    table.add_column("Focus")
    for info in get_all_roles_info():
        table.add_row(info["name"], info["description"])
    console.print(table)


@app.command()
def classify(
    command: str = typer.Argument(..., help="The command that failed"),
    output: str = typer.Argument(..., help="Its combined output"),
) -> None:
    """Classify a failed command's output and print suggested fixes."""
    from swarmcode.agent.error_classifier import classify_error

    analysis = classify_error(command, output)
    lines = [f"[bold]{analysis.category}[/bold]  [dim]severity={analysis.severity}[/dim]", ""]
    lines.extend(f"• {g}" for g in analysis.guidance)
    lines.append("")
    lines.append("[bold]Suggested fixes:[/bold]")
    lines.extend(f"  {i}. {fix}" for i, fix in enumerate(analysis.suggested_fixes, 1))
    console.print(
        Panel("\n".join(lines), border_style="yellow", title="[bold]Error analysis[/bold]")
    )
