"""Act node: parses the latest response and carries out its operations in order."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from langchain_core.runnables import RunnableConfig

from swarmcode.agent.error_classifier import classify_error, mentions_error
from swarmcode.agent.operations import Operation, OperationKind, OperationOutcome, OutcomeStatus
from swarmcode.agent.state import LoopOutcome, WorkerState
from swarmcode.errors import PathEscapeError
from swarmcode.events.types import AgentEvent
from swarmcode.tools.file_ops import Workspace

if TYPE_CHECKING:
    from swarmcode.agent.graph import TaskRuntime
    from swarmcode.swarm.types import Worker

logger = logging.getLogger(__name__)

# Interpreter invocations whose script must exist before spawning.
_SCRIPT_REF_RE = re.compile(
    r"""\b(?:node|python|python3|ts-node|deno|bun)\s+"""
    r"""['"]?([^\s'"]+\.(?:js|ts|py|mjs|cjs))['"]?""",
    re.IGNORECASE,
)
_CHANGES_DIR_RE = re.compile(r"(?:^|[\s;&|])(?:cd|pushd)\s")


def _missing_script(command: str, workspace: Workspace) -> str | None:
    """Return the referenced script path if it does not exist in the workspace."""
    if _CHANGES_DIR_RE.search(command):
        return None
    m = _SCRIPT_REF_RE.search(command)
    if m is None:
        return None
    script = m.group(1)
    try:
        return None if workspace.exists(script) else script
    except PathEscapeError:
        return None


async def act_node(state: WorkerState, config: RunnableConfig) -> dict:
    """Execute every operation in the latest response, strictly in sequence."""
    cfg = config.get("configurable", {})
    worker = cfg["worker"]
    runtime = cfg["runtime"]
    iteration = state["iteration"]

    await runtime.emit(
        AgentEvent(
            kind="step_start",
            run_id=worker.id,
            iteration=iteration,
            payload={"node": "act", "iteration": iteration},
        )
    )

    planned = runtime.parser.parse(state["last_response"])
    executed: list[Operation] = []
    pending: list[str] = []

    for op in planned:
        done = await _execute(op, state, worker, runtime)
        worker.memory.record_operation(done, iteration)
        _record_errors(done, worker, iteration)
        _log_activity(done, worker)
        if done.outcome and done.outcome.permission_id:
            pending.append(done.outcome.permission_id)
        executed.append(done)

        payload = done.to_dict()
        payload["output"] = (payload.get("output") or "")[:500]
        await runtime.emit(
            AgentEvent(kind="operation", run_id=worker.id, iteration=iteration, payload=payload)
        )

    if not planned:
        logger.info("Worker %s produced no operations in iteration %d", worker.id, iteration)

    return {
        "last_operations": executed,
        "operations": executed,
        "pending_permissions": pending,
        "outcome": LoopOutcome.CONTINUE.value,
    }


async def _execute(
    op: Operation, state: WorkerState, worker: Worker, runtime: TaskRuntime
) -> Operation:
    """Run one operation; operational failures become outcomes, never exceptions."""
    workspace = runtime.workspace

    if op.kind == OperationKind.WRITE:
        try:
            await workspace.write_file(op.path, op.content)
        except OSError as exc:
            logger.warning("Write to %s failed: %s", op.path, exc)
            return op.with_outcome(
                OperationOutcome(OutcomeStatus.FAILED, output=str(exc), error=str(exc))
            )
        return op.with_outcome(
            OperationOutcome(OutcomeStatus.SUCCEEDED, output=f"Wrote {op.path}")
        )

    if op.kind == OperationKind.DELETE:
        try:
            removed = await workspace.delete_file(op.path)
        except OSError as exc:
            logger.warning("Delete of %s failed: %s", op.path, exc)
            return op.with_outcome(
                OperationOutcome(OutcomeStatus.FAILED, output=str(exc), error=str(exc))
            )
        note = "" if removed else " (did not exist)"
        return op.with_outcome(
            OperationOutcome(OutcomeStatus.SUCCEEDED, output=f"Deleted: {op.path}{note}")
        )

    command = op.command or ""
    missing = _missing_script(command, workspace)
    if missing is not None:
        logger.warning("Pre-flight: %s does not exist, skipping: %s", missing, command)
        output = (
            f"Error: Cannot find file '{missing}'. The file does not exist.\n\n"
            f"Command: {command}\n\n"
            "Please create the file first or check the file path."
        )
        return op.with_outcome(
            OperationOutcome(OutcomeStatus.FAILED, output=output, exit_code=-1)
        )

    check = runtime.gate.classify(command)
    if check.requires_approval:
        request = runtime.gate.request(worker.id, command, check, state["cwd"])
        await runtime.emit(
            AgentEvent(
                kind="permission_request",
                run_id=worker.id,
                iteration=state["iteration"],
                payload=request.to_dict(),
            )
        )
        return op.with_outcome(
            OperationOutcome(
                OutcomeStatus.AWAITING_APPROVAL,
                output=f"Awaiting approval ({check.description}): {command}",
                permission_id=request.id,
            )
        )

    result = await runtime.executor.run(
        command, state["cwd"], worker_id=worker.id, worker_name=worker.name
    )
    if result.timed_out:
        status = OutcomeStatus.TIMED_OUT
    elif result.success:
        status = OutcomeStatus.SUCCEEDED
    else:
        status = OutcomeStatus.FAILED
    return op.with_outcome(
        OperationOutcome(status, output=result.output, exit_code=result.exit_code)
    )


def _record_errors(op: Operation, worker: Worker, iteration: int) -> None:
    outcome = op.outcome
    if outcome is None or outcome.status == OutcomeStatus.AWAITING_APPROVAL:
        return
    if op.kind == OperationKind.EXECUTE:
        if outcome.failed or mentions_error(outcome.output):
            analysis = classify_error(
                op.command or "",
                outcome.output,
                timed_out=outcome.status == OutcomeStatus.TIMED_OUT,
            )
            worker.memory.record_error(analysis, op.command or "", outcome.output, iteration)
    elif outcome.failed:
        label = f"{op.kind.value} {op.path}"
        text = outcome.error or outcome.output
        worker.memory.record_error(classify_error(label, text), label, text, iteration)


def _log_activity(op: Operation, worker: Worker) -> None:
    outcome = op.outcome
    status = outcome.status if outcome else None
    if op.kind == OperationKind.WRITE and status == OutcomeStatus.SUCCEEDED:
        worker.log_activity(
            "file_created",
            f"Created/updated file: {op.path}",
            {"path": op.path, "size": len(op.content or "")},
        )
    elif op.kind == OperationKind.DELETE and status == OutcomeStatus.SUCCEEDED:
        worker.log_activity("file_deleted", f"Deleted file: {op.path}", {"path": op.path})
    elif status == OutcomeStatus.AWAITING_APPROVAL:
        worker.log_activity(
            "permission_requested",
            f"Waiting for approval: {op.command}",
            {"command": op.command, "permission_id": outcome.permission_id},
        )
    elif op.kind == OperationKind.EXECUTE and outcome is not None:
        worker.log_activity(
            "command_executed",
            f"Executed command: {op.command}",
            {"command": op.command, "output": outcome.output, "exit_code": outcome.exit_code},
        )
    else:
        worker.log_activity(
            "operation_failed",
            f"Failed to {op.kind.value} {op.path}",
            {"path": op.path, "error": outcome.error if outcome else None},
        )
