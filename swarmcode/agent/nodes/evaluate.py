"""Evaluate node: decides whether the task is verified, needs another pass, or is over."""

from __future__ import annotations

import re

from langchain_core.runnables import RunnableConfig

from swarmcode.agent.error_classifier import mentions_error
from swarmcode.agent.operations import Operation, OperationKind, OutcomeStatus
from swarmcode.agent.state import LoopOutcome, WorkerState
from swarmcode.events.types import AgentEvent

# Commands that actually exercise the code that was written.
_VERIFY_RE = re.compile(
    r"(?:^|[\s;&|(])(?:"
    r"node\s|python3?\s|npm\s+(?:start|test|run)\b|pytest\b|go\s+test\b"
    r"|cargo\s+(?:test|run)\b|make\s+test\b|deno\s|bun\s|npx\s|yarn\s+test\b"
    r")",
    re.IGNORECASE,
)


# `node --version` and friends run no project code.
_INFO_ONLY_RE = re.compile(r"^\s*[\w./-]+\s+(?:--version|-v|-V|--help|-h)\s*$")
_SEGMENT_SPLIT_RE = re.compile(r"&&|\|\||;")


def is_verification_command(command: str) -> bool:
    return any(
        _VERIFY_RE.search(segment) is not None and not _INFO_ONLY_RE.match(segment)
        for segment in _SEGMENT_SPLIT_RE.split(command)
    )


def has_errors(operations: list[Operation]) -> bool:
    """Any failed operation, or any executed command whose output mentions an error."""
    for op in operations:
        if op.failed:
            return True
        outcome = op.outcome
        if (
            op.kind == OperationKind.EXECUTE
            and outcome is not None
            and outcome.status == OutcomeStatus.SUCCEEDED
            and mentions_error(outcome.output)
        ):
            return True
    return False


def was_verified(operations: list[Operation]) -> bool:
    """A verification command ran (not merely queued for approval) this iteration."""
    return any(
        op.kind == OperationKind.EXECUTE
        and op.outcome is not None
        and op.outcome.status == OutcomeStatus.SUCCEEDED
        and is_verification_command(op.command or "")
        for op in operations
    )


def decide_outcome(
    *,
    errors: bool,
    verified: bool,
    iteration: int,
    max_iterations: int,
    auto_debug: bool,
) -> LoopOutcome:
    if auto_debug:
        if not errors and verified:
            return LoopOutcome.SUCCESS
        if iteration >= max_iterations:
            return LoopOutcome.EXHAUSTED
        if not errors:
            return LoopOutcome.NEEDS_VERIFICATION
        return LoopOutcome.CONTINUE
    if not errors:
        return LoopOutcome.COMPLETED
    if iteration >= max_iterations:
        return LoopOutcome.EXHAUSTED
    return LoopOutcome.CONTINUE


async def evaluate_node(state: WorkerState, config: RunnableConfig) -> dict:
    """Judge the iteration that just ran and pick the next step."""
    cfg = config.get("configurable", {})
    worker = cfg["worker"]
    runtime = cfg["runtime"]
    iteration = state["iteration"]
    ops = state["last_operations"]

    errors = has_errors(ops)
    verified = was_verified(ops)

    if not runtime.is_active(worker.id):
        outcome = LoopOutcome.CANCELLED
    else:
        outcome = decide_outcome(
            errors=errors,
            verified=verified,
            iteration=iteration,
            max_iterations=state["max_iterations"],
            auto_debug=state["auto_debug"],
        )

    if errors and outcome == LoopOutcome.CONTINUE:
        recent = worker.memory.errors[-5:]
        worker.log_activity(
            "task_error",
            f"Iteration {iteration}: Errors detected, continuing to fix...",
            {
                "iteration": iteration,
                "failed_operations": sum(1 for op in ops if op.failed),
                "error_types": sorted({e.analysis.category.value for e in recent}),
            },
        )

    await runtime.emit(
        AgentEvent(
            kind="iteration_complete",
            run_id=worker.id,
            iteration=iteration,
            payload={
                "iteration": iteration,
                "outcome": outcome.value,
                "has_errors": errors,
                "verified": verified,
                "operations": len(ops),
            },
        )
    )

    return {"outcome": outcome.value, "has_errors": errors, "verified": verified}
