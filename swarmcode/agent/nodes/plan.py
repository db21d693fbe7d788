"""Plan node: renders memory, asks the worker's LLM for its next move."""

from __future__ import annotations

import logging

from langchain_core.runnables import RunnableConfig

from swarmcode.agent.prompts import build_system_prompt, build_turns
from swarmcode.agent.state import LoopOutcome, WorkerState
from swarmcode.events.types import AgentEvent
from swarmcode.llm.factory import invoke_llm
from swarmcode.swarm.types import WorkerStatus

logger = logging.getLogger(__name__)

# Words that mark a response as visible self-reflection.
_REASONING_MARKERS = ("thinking", "reasoning", "reflection", "I think", "Let me")


async def plan_node(state: WorkerState, config: RunnableConfig) -> dict:
    """Call the LLM for the next iteration of the task."""
    cfg = config.get("configurable", {})
    worker = cfg["worker"]
    runtime = cfg["runtime"]
    iteration = state["iteration"] + 1

    if not runtime.is_active(worker.id):
        logger.info("Worker %s was removed; not starting iteration %d", worker.id, iteration)
        return {"outcome": LoopOutcome.CANCELLED.value}

    if iteration > 1:
        worker.status = WorkerStatus.COMMUNICATING
        worker.log_activity(
            "thinking",
            f"Iteration {iteration}: Analyzing previous attempt and planning next steps...",
            {"iteration": iteration, "previous_errors": state["has_errors"]},
        )
    else:
        worker.status = WorkerStatus.WORKING

    await runtime.emit(
        AgentEvent(
            kind="step_start",
            run_id=worker.id,
            iteration=iteration,
            payload={"node": "plan", "iteration": iteration, "status": worker.status.value},
        )
    )

    system_prompt = build_system_prompt(worker.role, state["auto_debug"])
    approved_shown = len(worker.memory.approved_unseen)
    turns = build_turns(
        task=state["task"],
        iteration=iteration,
        memory_summary=worker.memory.render(iteration),
        shared_context=state["shared_context"],
        shared_data=worker.shared_data,
        last_response=state["last_response"],
        last_operations=state["last_operations"],
        had_errors=state["has_errors"],
    )

    response = await invoke_llm(worker.llm, system_prompt, turns)
    worker.memory.mark_approved_seen(approved_shown)

    if not runtime.is_active(worker.id):
        logger.info("Worker %s was removed mid-turn; discarding response", worker.id)
        return {"outcome": LoopOutcome.CANCELLED.value, "iteration": iteration}

    worker.status = WorkerStatus.WORKING
    if any(marker in response for marker in _REASONING_MARKERS):
        snippet = response[:200] + ("..." if len(response) > 200 else "")
        worker.log_activity("reasoning", f"Self-reflection: {snippet}", {"iteration": iteration})

    await runtime.emit(
        AgentEvent(
            kind="llm_response",
            run_id=worker.id,
            iteration=iteration,
            payload={"content": response[:2000]},
        )
    )

    return {"iteration": iteration, "last_response": response}
