"""Prompt templates for the worker iteration loop."""

from __future__ import annotations

import json
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from swarmcode.agent.error_classifier import classify_error
from swarmcode.agent.operations import Operation, OperationKind, OutcomeStatus
from swarmcode.swarm.roles import WorkerRole, get_role_prompt

TOOL_INSTRUCTIONS = """\
You are part of a collaborative coding system with access to the project files
and a terminal.

FILE OPERATIONS (these are FUNCTIONS, not shell commands):
- writeFile('path', 'content'): write or create a file
- createFile('path', 'content'): create a new file
- deleteFile('path'): delete a file or directory
You can also put a complete file in a fenced code block right after a line
such as `File: path/to/file.js`.

TERMINAL ACCESS (these are COMMANDS):
- executeCommand('command'): run a shell command in the project directory
  * CORRECT: executeCommand('node app.js')
  * WRONG: executeCommand('listFiles()') - that is not a shell command

READING TERMINAL OUTPUT:
- After every command you will see its FULL output in the context memory.
- The output tells you exactly what went wrong: file paths, line numbers, messages.

Commands such as npm install, pip install or starting a server need human
approval. They are queued automatically; keep working on other steps meanwhile.
"""

DEBUG_MODE_BLOCK = """\
DEBUG MODE ENABLED - AUTONOMOUS ITERATION:
- You MUST run your code after writing it (node file.js, python file.py, npm test, ...)
- If errors occur, read the output, fix the root cause and run it again
- Do not stop until the task is verified to work

SELF-REFLECTION:
- After each attempt, ask: what did I try, what happened, what will I change?
- Consider a different approach if the current one keeps failing
"""

ERROR_REFLECTION = """\
Iteration {iteration} - Previous attempt had errors.

READ THE TERMINAL OUTPUT IN THE CONTEXT MEMORY ABOVE.
1. What did you try in the previous attempt?
2. What was the specific error in the output?
3. Why did it fail?
4. What will you do differently? Follow the suggested fixes.

Explain your reasoning, then fix the issues and run the code again."""

VERIFY_REFLECTION = """\
Iteration {iteration} - Testing phase.

Nothing has verified the work yet.
1. What have you created so far? (see CONTEXT MEMORY)
2. How will you verify it works?

Run the code now with executeCommand and check the output."""


def build_system_prompt(role: WorkerRole, auto_debug: bool) -> str:
    """Role prompt + tool instructions (+ the debug-mode block)."""
    parts = [get_role_prompt(role), TOOL_INSTRUCTIONS]
    if auto_debug:
        parts.append(DEBUG_MODE_BLOCK)
    return "\n\n".join(parts)


def _json_block(data: dict[str, Any]) -> str:
    return json.dumps(data, indent=2, default=str)


def _error_guidance(failed: list[Operation]) -> str:
    """Detailed breakdown of this iteration's failed commands."""
    lines = ["", "=== CRITICAL: ERROR ANALYSIS & FULL TERMINAL OUTPUT ==="]
    for idx, op in enumerate(failed, 1):
        outcome = op.outcome
        output = outcome.output if outcome else ""
        analysis = classify_error(
            op.command or "",
            output,
            timed_out=outcome is not None and outcome.status == OutcomeStatus.TIMED_OUT,
        )
        lines.append(f"--- ERROR {idx} ({analysis.category.value}) ---")
        lines.append(f"Command: {op.command}")
        lines.append(f"Exit Code: {outcome.exit_code if outcome else None}")
        lines.append("FULL TERMINAL OUTPUT:")
        lines.append(output or "(no output)")
        lines.append(f"What happened: {' '.join(analysis.guidance)}")
        lines.append("How to fix:")
        lines.extend(f"  - {fix}" for fix in analysis.suggested_fixes)
        lines.append(f"--- END ERROR {idx} ---")
    lines.append("=== END ERROR ANALYSIS ===")
    return "\n".join(lines)


def build_turns(
    *,
    task: str,
    iteration: int,
    memory_summary: str,
    shared_context: dict[str, Any] | None = None,
    shared_data: dict[str, Any] | None = None,
    last_response: str = "",
    last_operations: list[Operation] | None = None,
    had_errors: bool = False,
) -> list[BaseMessage]:
    """Messages following the system prompt for one iteration."""
    first = task
    if shared_context:
        first += "\n\nContext from other workers:\n" + _json_block(shared_context)
    if shared_data:
        first += "\n\nShared knowledge:\n" + _json_block(shared_data)

    context_block = f"CONTEXT MEMORY:{memory_summary}"
    if iteration <= 1:
        return [HumanMessage(content=f"{context_block}\n\n{first}")]

    failed = [
        op
        for op in last_operations or []
        if op.kind == OperationKind.EXECUTE and op.failed
    ]
    if had_errors and failed:
        context_block += "\n" + _error_guidance(failed)

    template = ERROR_REFLECTION if had_errors else VERIFY_REFLECTION
    return [
        HumanMessage(content=f"{context_block}\n\n{first}"),
        AIMessage(content=last_response),
        HumanMessage(content=template.format(iteration=iteration)),
    ]


def build_chat_prompt(role: WorkerRole, worker_name: str) -> str:
    return (
        f"{get_role_prompt(role)}\n\n"
        f"You are {worker_name}, answering in a team chat with the user and other "
        "workers. Reply conversationally and concisely. Do not emit file operations "
        "or commands here."
    )
