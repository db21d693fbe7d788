"""LangGraph iteration loop: plan → act → evaluate → (plan | END)."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from langgraph.graph import END, START, StateGraph
from langgraph.graph.state import CompiledStateGraph

from swarmcode.agent.nodes.act import act_node
from swarmcode.agent.nodes.evaluate import evaluate_node
from swarmcode.agent.nodes.plan import plan_node
from swarmcode.agent.parser import OperationParser, RegexOperationParser
from swarmcode.agent.state import TERMINAL_OUTCOMES, LoopOutcome, WorkerState
from swarmcode.errors import InvalidTaskError
from swarmcode.events.bus import AsyncEventBus
from swarmcode.events.types import AgentEvent
from swarmcode.safety.permissions import PermissionGate
from swarmcode.swarm.types import TaskOptions, TaskRecord, TaskResult, Worker, WorkerStatus
from swarmcode.tools.file_ops import Workspace
from swarmcode.tools.shell_exec import CommandRunner

logger = logging.getLogger(__name__)


@dataclass
class TaskRuntime:
    """Collaborators a worker acts through while running a task."""

    workspace: Workspace
    executor: CommandRunner
    gate: PermissionGate
    parser: OperationParser = field(default_factory=RegexOperationParser)
    event_bus: AsyncEventBus | None = None
    # Reports whether a worker id is still registered; None means always.
    active: Callable[[str], bool] | None = None

    def is_active(self, worker_id: str) -> bool:
        return self.active is None or self.active(worker_id)

    async def emit(self, event: AgentEvent) -> None:
        if self.event_bus is not None:
            await self.event_bus.publish(event)


def route_after_plan(state: WorkerState) -> str:
    if state["outcome"] == LoopOutcome.CANCELLED:
        return "end"
    return "act"


def route_after_evaluate(state: WorkerState) -> str:
    if LoopOutcome(state["outcome"]) in TERMINAL_OUTCOMES:
        return "end"
    return "plan"


def build_graph() -> CompiledStateGraph:
    """Build and compile the worker iteration graph.

    Graph topology:
        START → plan → act → evaluate → (continue) → plan
                  ↓                   → (stop)     → END
              (cancelled) → END
    """
    builder = StateGraph(WorkerState)

    builder.add_node("plan", plan_node)
    builder.add_node("act", act_node)
    builder.add_node("evaluate", evaluate_node)

    builder.add_edge(START, "plan")
    builder.add_conditional_edges("plan", route_after_plan, {"act": "act", "end": END})
    builder.add_edge("act", "evaluate")
    builder.add_conditional_edges(
        "evaluate",
        route_after_evaluate,
        {"plan": "plan", "end": END},
    )

    return builder.compile()


@lru_cache(maxsize=1)
def _compiled_graph() -> CompiledStateGraph:
    return build_graph()


def make_initial_state(
    *,
    worker_id: str,
    task: str,
    cwd: str,
    options: TaskOptions,
    shared_context: dict[str, Any] | None = None,
) -> WorkerState:
    return WorkerState(
        worker_id=worker_id,
        task=task,
        shared_context=dict(shared_context or {}),
        cwd=cwd,
        iteration=0,
        max_iterations=options.max_iterations,
        auto_debug=options.auto_debug,
        outcome="",
        last_response="",
        last_operations=[],
        operations=[],
        pending_permissions=[],
        has_errors=False,
        verified=False,
    )


async def run_task(
    worker: Worker,
    task: str,
    runtime: TaskRuntime,
    *,
    shared_context: dict[str, Any] | None = None,
    options: TaskOptions | None = None,
) -> TaskResult:
    """Drive *worker* through the iteration loop until the task stops.

    Operational failures are fed back to the worker; only LLM failures and
    malformed requests raise, leaving the worker in the ``error`` state.
    """
    options = options or TaskOptions()
    if not task or not task.strip():
        worker.status = WorkerStatus.ERROR
        raise InvalidTaskError("Task text must not be empty")
    if options.max_iterations < 1:
        worker.status = WorkerStatus.ERROR
        raise InvalidTaskError(f"max_iterations must be >= 1, got {options.max_iterations}")

    worker.status = WorkerStatus.WORKING
    worker.memory.start_task(task)
    snippet = task[:100] + ("..." if len(task) > 100 else "")
    worker.log_activity("task_started", f"Started task: {snippet}")
    await runtime.emit(
        AgentEvent(
            kind="task_start",
            run_id=worker.id,
            iteration=0,
            payload={"task": task, "max_iterations": options.max_iterations},
        )
    )

    initial_state = make_initial_state(
        worker_id=worker.id,
        task=task,
        cwd=runtime.workspace.root,
        options=options,
        shared_context=shared_context,
    )
    run_config = {
        "configurable": {"worker": worker, "runtime": runtime},
        # three nodes per iteration plus slack
        "recursion_limit": options.max_iterations * 3 + 5,
    }

    try:
        final = await _compiled_graph().ainvoke(initial_state, config=run_config)
    except Exception as exc:
        worker.status = WorkerStatus.ERROR
        worker.log_activity("task_error", f"Task failed: {exc}", {"error": str(exc)})
        logger.error("Worker %s task failed: %s", worker.id, exc)
        await runtime.emit(
            AgentEvent(
                kind="error",
                run_id=worker.id,
                iteration=0,
                payload={"error": str(exc), "type": type(exc).__name__},
            )
        )
        raise

    outcome = LoopOutcome(final["outcome"])
    iterations = final["iteration"]
    result_text = final["last_response"]

    if outcome in (LoopOutcome.SUCCESS, LoopOutcome.COMPLETED):
        worker.log_activity(
            "task_completed", f"Completed task successfully after {iterations} iteration(s)"
        )
    elif outcome == LoopOutcome.EXHAUSTED:
        worker.log_activity(
            "task_error",
            f"Task stopped after {iterations} iterations without a verified result",
            {"iterations": iterations, "had_errors": final["has_errors"]},
        )
    else:
        worker.log_activity("task_cancelled", "Task cancelled: worker was removed")

    worker.tasks.append(
        TaskRecord(task=task, result=result_text, iterations=iterations, outcome=outcome)
    )
    worker.status = WorkerStatus.IDLE

    still_pending = {p.id for p in runtime.gate.list_pending()}
    pending = [pid for pid in final["pending_permissions"] if pid in still_pending]

    await runtime.emit(
        AgentEvent(
            kind="task_end",
            run_id=worker.id,
            iteration=iterations,
            payload={
                "outcome": outcome.value,
                "iterations": iterations,
                "pending_permissions": pending,
            },
        )
    )
    logger.info("Worker %s finished task: %s after %d iteration(s)", worker.id, outcome, iterations)

    return TaskResult(
        worker_id=worker.id,
        result_text=result_text,
        iterations=iterations,
        outcome=outcome,
        operations=list(final["operations"]),
        memory_snapshot=worker.memory.snapshot(),
        pending_permissions=pending,
    )
