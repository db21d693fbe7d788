"""Async runner functions for CLI commands (no Typer coupling)."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel

if TYPE_CHECKING:
    from swarmcode.config import SwarmConfig
    from swarmcode.events.types import AgentEvent
    from swarmcode.swarm.roles import WorkerRole
    from swarmcode.swarm.service import SwarmService
    from swarmcode.swarm.types import TaskResult

console = Console()

_STATUS_STYLE = {
    "succeeded": ("green", "✓"),
    "failed": ("red", "✗"),
    "timed_out": ("red", "⏱"),
    "awaiting_approval": ("yellow", "⏸"),
}


def _render_event(event: AgentEvent) -> None:
    """Render an AgentEvent to the terminal."""
    kind = event.kind
    payload = event.payload
    iteration = event.iteration

    if kind == "step_start":
        node = payload.get("node", "?")
        console.print(f"\n[bold blue]▶ [{iteration}] {node.upper()}[/bold blue]")

    elif kind == "llm_response":
        preview = payload.get("content", "")[:160].replace("\n", " ")
        console.print(f"  [dim]{preview}[/dim]")

    elif kind == "operation":
        color, icon = _STATUS_STYLE.get(payload.get("status", ""), ("white", "·"))
        target = payload.get("command") or payload.get("path", "?")
        console.print(f"  [{color}]{icon} {payload.get('kind', '?')}[/{color}] {target}")
        output = (payload.get("output") or "").strip()
        if output and payload.get("kind") == "execute":
            console.print(f"    [dim]{output[:200]!r}[/dim]")

    elif kind == "permission_request":
        console.print(
            f"  [bold yellow]⏸  Needs approval ({payload.get('category', '?')}):[/bold yellow] "
            f"{payload.get('command', '')}"
        )

    elif kind == "iteration_complete":
        outcome = payload.get("outcome", "?")
        console.print(f"  [dim]--- iteration {iteration} complete: {outcome} ---[/dim]")

    elif kind == "task_end":
        console.print(f"\n[bold]Task ended: {payload.get('outcome', '?')}[/bold]")

    elif kind == "error":
        err = payload.get("error", "unknown error")
        console.print(f"\n[bold red]ERROR: {err}[/bold red]")


def _format_summary(result: TaskResult, elapsed: float) -> str:
    failed = sum(1 for op in result.operations if op.failed)
    info_parts = [
        f"Iterations: [bold]{result.iterations}[/bold]",
        f"Operations: [bold]{len(result.operations)}[/bold]",
    ]
    if failed:
        info_parts.append(f"Failed: [bold]{failed}[/bold]")
    info_parts.append(f"Time: [bold]{elapsed:.1f}s[/bold]")
    return "  ·  ".join(info_parts)


async def _review_permissions(
    service: SwarmService, permission_ids: list[str], confirm: Callable[[str], bool]
) -> None:
    for pid in permission_ids:
        request = service.gate.get(pid)
        question = f"Run '{request.command}' ({request.description})?"
        if confirm(question):
            result = await service.grant_permission(pid)
            color = "green" if result.success else "red"
            console.print(f"  [{color}]exit {result.exit_code}[/{color}]")
            if result.output:
                console.print(f"[dim]{result.output[:1000]}[/dim]")
        else:
            service.deny_permission(pid)
            console.print("  [dim]denied[/dim]")


async def run_cli(
    task: str,
    cwd: str,
    config: SwarmConfig,
    role: WorkerRole,
    confirm: Callable[[str], bool] | None = None,
) -> int:
    """Run one worker on *task* and stream its events to the terminal."""
    from swarmcode.events.bus import AsyncEventBus
    from swarmcode.swarm.service import SwarmService

    bus = AsyncEventBus()
    service = SwarmService(cwd, config, event_bus=bus)
    worker = service.spawn_worker("worker-1", role=role)

    q = await bus.subscribe()
    started_at = time.time()

    async def consume_events() -> None:
        async for event in bus.iter_events(q):
            _render_event(event)

    consumer_task = asyncio.create_task(consume_events())

    result: TaskResult | None = None
    try:
        result = await service.assign_task(worker.id, task)
    except Exception as e:
        console.print(f"\n[red]Task failed: {e}[/red]")
    finally:
        await bus.close()
        await consumer_task

    if result is None:
        return 1

    info_line = _format_summary(result, time.time() - started_at)
    if result.succeeded:
        console.print(
            Panel(
                f"[bold green]✅ {result.outcome.upper()}[/bold green]\n\n{info_line}",
                border_style="green",
                title="[bold]Task Complete[/bold]",
            )
        )
    else:
        console.print(
            Panel(
                f"[bold red]❌ {result.outcome.upper()}[/bold red]\n\n{info_line}",
                border_style="red",
                title="[bold]Task Incomplete[/bold]",
            )
        )

    if result.pending_permissions and confirm is not None:
        count = len(result.pending_permissions)
        console.print(f"\n[bold yellow]{count} command(s) await approval[/bold yellow]")
        await _review_permissions(service, result.pending_permissions, confirm)

    return 0 if result.succeeded else 1
