"""LangGraph WorkerState TypedDict and loop outcomes."""

from __future__ import annotations

import operator
from enum import StrEnum
from typing import Annotated, Any, TypedDict

from swarmcode.agent.operations import Operation


class LoopOutcome(StrEnum):
    """How an iteration (and finally the task) ended."""

    SUCCESS = "success"
    NEEDS_VERIFICATION = "needs_verification"
    CONTINUE = "continue"
    EXHAUSTED = "exhausted"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Outcomes that end the task
TERMINAL_OUTCOMES: frozenset[LoopOutcome] = frozenset(
    {LoopOutcome.SUCCESS, LoopOutcome.EXHAUSTED, LoopOutcome.COMPLETED, LoopOutcome.CANCELLED}
)


class WorkerState(TypedDict):
    # Task
    worker_id: str
    task: str
    shared_context: dict[str, Any]
    cwd: str
    # Loop control
    iteration: int
    max_iterations: int
    auto_debug: bool
    outcome: str
    # Latest LLM turn
    last_response: str
    # Operations executed in the latest iteration
    last_operations: list[Operation]
    # Every operation of the task (reducer appends)
    operations: Annotated[list[Operation], operator.add]
    # Ids of gated commands raised during the task (reducer appends)
    pending_permissions: Annotated[list[str], operator.add]
    # Evaluation of the latest iteration
    has_errors: bool
    verified: bool
