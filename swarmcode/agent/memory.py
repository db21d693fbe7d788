"""Per-worker context memory: what a worker has done, seen fail and learned."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from swarmcode.agent.error_classifier import ErrorAnalysis
from swarmcode.agent.operations import Operation, OperationKind, OutcomeStatus
from swarmcode.config import MemoryLimits


@dataclass
class TaskEntry:
    task: str
    index: int
    started_at: float = field(default_factory=time.time)


@dataclass
class OperationRecord:
    operation: Operation
    task_index: int
    iteration: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class CommandRun:
    command: str
    output: str
    exit_code: int | None
    success: bool
    task_index: int
    iteration: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class ErrorRecord:
    analysis: ErrorAnalysis
    command: str
    output: str
    task_index: int
    iteration: int
    timestamp: float = field(default_factory=time.time)


class ContextMemory:
    """Append-only record of a worker's history.

    Nothing is ever removed; `render` prunes to the most recent entries when
    building the prompt summary.

    Usage:
        memory = ContextMemory()
        memory.start_task("Create hello.js")
        memory.record_operation(op, iteration=1)
        prompt_block = memory.render(iteration=2)
    """

    def __init__(self, limits: MemoryLimits | None = None) -> None:
        self.limits = limits or MemoryLimits()
        self.task_history: list[TaskEntry] = []
        self.operations: list[OperationRecord] = []
        self.commands_run: list[CommandRun] = []
        self.errors: list[ErrorRecord] = []
        self.learnings: list[str] = []
        self.files_created: list[str] = []
        self.files_deleted: list[str] = []
        # approved commands that ran outside a turn, shown once in the next prompt
        self.approved_unseen: list[Operation] = []
        self.last_updated = time.time()

    @property
    def task_index(self) -> int:
        return len(self.task_history) - 1

    def _touch(self) -> None:
        self.last_updated = max(self.last_updated, time.time())

    def start_task(self, task: str) -> int:
        self.task_history.append(TaskEntry(task=task, index=len(self.task_history)))
        self._touch()
        return self.task_index

    def record_operation(self, op: Operation, iteration: int) -> None:
        """Append an executed operation and update the derived lists."""
        self.operations.append(OperationRecord(op, self.task_index, iteration))
        outcome = op.outcome
        succeeded = outcome is not None and outcome.status == OutcomeStatus.SUCCEEDED
        if op.kind == OperationKind.WRITE and succeeded:
            self.files_created.append(op.path or "")
        elif op.kind == OperationKind.DELETE and succeeded:
            self.files_deleted.append(op.path or "")
        elif (
            op.kind == OperationKind.EXECUTE
            and outcome is not None
            and outcome.status != OutcomeStatus.AWAITING_APPROVAL
        ):
            self.commands_run.append(
                CommandRun(
                    command=op.command or "",
                    output=outcome.output,
                    exit_code=outcome.exit_code,
                    success=succeeded,
                    task_index=self.task_index,
                    iteration=iteration,
                )
            )
        self._touch()

    def record_approved(self, op: Operation) -> None:
        """Record a command that ran after human approval, between turns."""
        self.record_operation(op, iteration=0)
        self.approved_unseen.append(op)

    def mark_approved_seen(self, count: int) -> None:
        del self.approved_unseen[:count]

    def record_error(
        self,
        analysis: ErrorAnalysis,
        command: str,
        output: str,
        iteration: int,
    ) -> bool:
        """Record a classified error once per (command, output) in an iteration.

        Also derives a learning from the first suggested fix. Returns False
        when the same error was already recorded.
        """
        for err in reversed(self.errors):
            if err.task_index != self.task_index or err.iteration != iteration:
                break
            if err.command == command and err.output == output:
                return False
        self.errors.append(ErrorRecord(analysis, command, output, self.task_index, iteration))
        if analysis.suggested_fixes:
            learning = f"{analysis.category.value}: {analysis.suggested_fixes[0]}"
            if learning not in self.learnings:
                self.learnings.append(learning)
        self._touch()
        return True

    def current_files(self) -> list[str]:
        """Files written and not deleted since, in first-write order."""
        present: dict[str, None] = {}
        for rec in self.operations:
            op = rec.operation
            if op.outcome is None or op.outcome.status != OutcomeStatus.SUCCEEDED:
                continue
            if op.kind == OperationKind.WRITE:
                present.setdefault(op.path or "", None)
            elif op.kind == OperationKind.DELETE:
                present.pop(op.path or "", None)
        return list(present)

    def task_operations(self, task_index: int | None = None) -> list[OperationRecord]:
        idx = self.task_index if task_index is None else task_index
        return [r for r in self.operations if r.task_index == idx]

    def render(self, iteration: int) -> str:
        """Build the context block shown to the LLM before each turn."""
        task_ops = self.task_operations()
        recent = task_ops[-self.limits.recent_operations :]
        recent_commands = [
            r.operation
            for r in recent
            if r.operation.kind == OperationKind.EXECUTE
            and not any(r.operation is op for op in self.approved_unseen)
        ]
        deleted = [r.operation.path for r in recent if r.operation.kind == OperationKind.DELETE]
        files = self.current_files()

        lines = ["", "=== CONTEXT MEMORY - What You Know ==="]
        lines.append(f"Current Iteration: {iteration}")
        lines.append(f"Total Operations: {len(task_ops)}")
        lines.append("")

        if files:
            lines.append("Files Created/Modified:")
            lines.extend(f"  - {f}" for f in files)
            lines.append("")
        if deleted:
            lines.append("Files Deleted:")
            lines.extend(f"  - {f}" for f in deleted)
            lines.append("")

        if self.approved_unseen:
            lines.append("=== APPROVED COMMANDS (ran after your last turn) ===")
            for op in self.approved_unseen:
                lines.append(f"--- Approved: {op.command} ---")
                lines.append(_exit_line(op))
                lines.append("Output:")
                lines.append(_output_of(op))
            lines.append("")

        if recent_commands:
            lines.append("=== TERMINAL OUTPUT (READ THIS CAREFULLY FOR DEBUGGING) ===")
            lines.append("The output below shows exactly what happened when you ran commands.")
            for idx, op in enumerate(recent_commands, 1):
                lines.append(f"--- Command {idx}: {op.command} ---")
                lines.append(_exit_line(op))
                lines.append("Output:")
                lines.append(_output_of(op))
                lines.append(f"--- End Command {idx} ---")
            lines.append("")

            failed = [op for op in recent_commands if op.failed]
            if failed:
                lines.append("FAILED COMMANDS (PRIORITY DEBUGGING):")
                for idx, op in enumerate(failed, 1):
                    exit_code = op.outcome.exit_code if op.outcome else None
                    lines.append(f"Failed Command {idx}: {op.command}")
                    lines.append(f"Exit Code: {exit_code}")
                    lines.append("FULL ERROR OUTPUT:")
                    lines.append(_output_of(op))
                lines.append("")

        recent_errors = self.errors[-self.limits.recent_errors :]
        if recent_errors:
            lines.append("=== ERROR ANALYSIS & GUIDANCE ===")
            for idx, err in enumerate(recent_errors, 1):
                category = err.analysis.category.value
                lines.append(f"Error {idx} ({category}):")
                lines.append(f"  Command: {err.command}")
                lines.append("  FULL TERMINAL OUTPUT:")
                lines.append(err.output or "(no output)")
                lines.append(f"  Guidance: {' '.join(err.analysis.guidance)}")
                lines.append("  Suggested Fixes:")
                lines.extend(f"    - {fix}" for fix in err.analysis.suggested_fixes)
            lines.append("")

        if iteration > 1:
            earlier = [r for r in task_ops if r.iteration < iteration]
            if earlier:
                lines.append("What You've Tried Before:")
                lines.append(f"You are on iteration {iteration}. Previous attempts:")
                lines.extend(_tried_line(r.operation) for r in earlier)
                lines.append("")

        learnings = self.learnings[-self.limits.recent_learnings :]
        if learnings:
            lines.append("Key Learnings:")
            lines.extend(f"  - {item}" for item in learnings)
            lines.append("")

        lines.append("=== END CONTEXT ===")
        return "\n".join(lines)

    def snapshot(self) -> dict[str, Any]:
        """Plain-dict copy for task results and persistence."""
        return {
            "task_history": [
                {"task": t.task, "index": t.index, "started_at": t.started_at}
                for t in self.task_history
            ],
            "operations": [
                {**r.operation.to_dict(), "task_index": r.task_index, "iteration": r.iteration}
                for r in self.operations
            ],
            "commands_run": [
                {
                    "command": c.command,
                    "output": c.output,
                    "exit_code": c.exit_code,
                    "success": c.success,
                    "task_index": c.task_index,
                    "iteration": c.iteration,
                }
                for c in self.commands_run
            ],
            "errors": [
                {
                    **e.analysis.to_dict(),
                    "output": e.output,
                    "task_index": e.task_index,
                    "iteration": e.iteration,
                }
                for e in self.errors
            ],
            "learnings": list(self.learnings),
            "files_created": list(self.files_created),
            "files_deleted": list(self.files_deleted),
            "last_updated": self.last_updated,
        }


def _output_of(op: Operation) -> str:
    if op.outcome is None:
        return "(no output)"
    return op.outcome.output or op.outcome.error or "(no output)"


def _exit_line(op: Operation) -> str:
    outcome = op.outcome
    if outcome is None:
        return "Exit Code: (not run)"
    if outcome.status == OutcomeStatus.AWAITING_APPROVAL:
        return "Exit Code: (AWAITING APPROVAL - not run yet)"
    label = "SUCCESS" if outcome.status == OutcomeStatus.SUCCEEDED else "FAILED"
    return f"Exit Code: {outcome.exit_code} ({label})"


def _tried_line(op: Operation) -> str:
    if op.kind == OperationKind.WRITE:
        return f"  - Created file: {op.path}"
    if op.kind == OperationKind.DELETE:
        return f"  - Deleted file: {op.path}"
    outcome = op.outcome
    if outcome is None:
        state = "not run"
    elif outcome.status == OutcomeStatus.SUCCEEDED:
        state = "success"
    elif outcome.status == OutcomeStatus.AWAITING_APPROVAL:
        state = "awaiting approval"
    else:
        state = f"failed: {outcome.exit_code}"
    return f"  - Ran: {op.command} ({state})"
