"""Tests for per-worker context memory and prompt construction."""

from __future__ import annotations

from langchain_core.messages import AIMessage, HumanMessage

from swarmcode.agent.error_classifier import ErrorCategory, classify_error
from swarmcode.agent.memory import ContextMemory
from swarmcode.agent.operations import Operation, OperationOutcome, OutcomeStatus
from swarmcode.agent.prompts import build_system_prompt, build_turns
from swarmcode.config import MemoryLimits
from swarmcode.swarm.roles import WorkerRole


def _ok(op: Operation, output: str = "") -> Operation:
    return op.with_outcome(OperationOutcome(OutcomeStatus.SUCCEEDED, output=output, exit_code=0))


def _fail(op: Operation, output: str, exit_code: int = 1) -> Operation:
    return op.with_outcome(OperationOutcome(OutcomeStatus.FAILED, output=output, exit_code=exit_code))


# ── Recording ────────────────────────────────────────────────────────────────


class TestContextMemory:
    def test_operations_update_derived_lists(self) -> None:
        memory = ContextMemory()
        memory.start_task("build it")
        memory.record_operation(_ok(Operation.write("a.js", "1")), 1)
        memory.record_operation(_ok(Operation.delete("old.js")), 1)
        memory.record_operation(_ok(Operation.execute("node a.js"), "1"), 1)

        assert memory.files_created == ["a.js"]
        assert memory.files_deleted == ["old.js"]
        assert [c.command for c in memory.commands_run] == ["node a.js"]
        assert memory.commands_run[0].success

    def test_awaiting_commands_are_not_command_runs(self) -> None:
        memory = ContextMemory()
        memory.start_task("t")
        op = Operation.execute("npm install").with_outcome(
            OperationOutcome(OutcomeStatus.AWAITING_APPROVAL, permission_id="perm-1")
        )
        memory.record_operation(op, 1)
        assert memory.commands_run == []
        assert len(memory.operations) == 1

    def test_approved_command_is_rendered_until_seen(self) -> None:
        memory = ContextMemory()
        memory.start_task("add a dependency")
        memory.record_approved(_fail(Operation.execute("npm install nope"), "npm ERR! 404"))
        memory.start_task("next task")

        rendered = memory.render(1)
        assert "Approved: npm install nope" in rendered
        assert "npm ERR! 404" in rendered

        memory.mark_approved_seen(1)
        assert "npm install nope" not in memory.render(1)
        assert memory.commands_run[-1].command == "npm install nope"

    def test_current_files_drop_deleted(self) -> None:
        memory = ContextMemory()
        memory.start_task("t")
        memory.record_operation(_ok(Operation.write("a.js", "1")), 1)
        memory.record_operation(_ok(Operation.write("b.js", "2")), 1)
        memory.record_operation(_ok(Operation.delete("a.js")), 2)
        assert memory.current_files() == ["b.js"]
        # append-only history keeps both writes
        assert memory.files_created == ["a.js", "b.js"]

    def test_error_dedup_within_iteration(self) -> None:
        memory = ContextMemory()
        memory.start_task("t")
        analysis = classify_error("node a.js", "SyntaxError: bad")
        assert memory.record_error(analysis, "node a.js", "SyntaxError: bad", 1)
        assert not memory.record_error(analysis, "node a.js", "SyntaxError: bad", 1)
        assert memory.record_error(analysis, "node a.js", "SyntaxError: bad", 2)
        assert len(memory.errors) == 2

    def test_learning_derived_once(self) -> None:
        memory = ContextMemory()
        memory.start_task("t")
        analysis = classify_error("node a.js", "SyntaxError: bad")
        memory.record_error(analysis, "node a.js", "SyntaxError: bad", 1)
        memory.record_error(analysis, "node a.js", "SyntaxError: worse", 1)
        assert memory.learnings == [f"syntax_error: {analysis.suggested_fixes[0]}"]

    def test_last_updated_never_goes_backwards(self) -> None:
        memory = ContextMemory()
        before = memory.last_updated
        memory.start_task("t")
        assert memory.last_updated >= before

    def test_snapshot_is_plain_data(self) -> None:
        memory = ContextMemory()
        memory.start_task("t")
        memory.record_operation(_ok(Operation.write("a.js", "1")), 1)
        snap = memory.snapshot()
        assert snap["task_history"][0]["task"] == "t"
        assert snap["operations"][0]["path"] == "a.js"
        assert snap["operations"][0]["iteration"] == 1


# ── Rendering ────────────────────────────────────────────────────────────────


class TestRender:
    def test_render_sections(self) -> None:
        memory = ContextMemory()
        memory.start_task("t")
        memory.record_operation(_ok(Operation.write("hello.js", "x")), 1)
        failed = _fail(Operation.execute("node hello.js"), "SyntaxError: Unexpected token")
        memory.record_operation(failed, 1)
        analysis = classify_error("node hello.js", "SyntaxError: Unexpected token")
        memory.record_error(analysis, "node hello.js", "SyntaxError: Unexpected token", 1)

        text = memory.render(2)
        assert "Current Iteration: 2" in text
        assert "Files Created/Modified:\n  - hello.js" in text
        assert "--- Command 1: node hello.js ---" in text
        assert "Exit Code: 1 (FAILED)" in text
        assert "FAILED COMMANDS (PRIORITY DEBUGGING):" in text
        assert "Error 1 (syntax_error):" in text
        assert "What You've Tried Before:" in text
        assert "  - Ran: node hello.js (failed: 1)" in text
        assert "Key Learnings:" in text
        assert text.endswith("=== END CONTEXT ===")

    def test_render_limits_recent_operations(self) -> None:
        memory = ContextMemory(MemoryLimits(recent_operations=2))
        memory.start_task("t")
        for i in range(5):
            memory.record_operation(_ok(Operation.execute(f"echo {i}"), str(i)), 1)
        text = memory.render(1)
        assert "echo 4" in text
        assert "echo 3" in text
        assert "--- Command 1: echo 0 ---" not in text
        assert "Total Operations: 5" in text

    def test_render_only_current_task(self) -> None:
        memory = ContextMemory()
        memory.start_task("first")
        memory.record_operation(_ok(Operation.execute("echo first"), "first"), 1)
        memory.start_task("second")
        assert "echo first" not in memory.render(1)

    def test_empty_memory(self) -> None:
        text = ContextMemory().render(1)
        assert "Total Operations: 0" in text
        assert "TERMINAL OUTPUT" not in text


# ── Prompts ──────────────────────────────────────────────────────────────────


def test_system_prompt_debug_block() -> None:
    assert "DEBUG MODE ENABLED" in build_system_prompt(WorkerRole.CODER, True)
    assert "DEBUG MODE ENABLED" not in build_system_prompt(WorkerRole.CODER, False)


def test_first_iteration_is_a_single_message() -> None:
    turns = build_turns(
        task="Create hello.js",
        iteration=1,
        memory_summary="\n=== END CONTEXT ===",
        shared_context={"total_workers": 2},
    )
    assert len(turns) == 1
    assert isinstance(turns[0], HumanMessage)
    assert "Create hello.js" in turns[0].content
    assert '"total_workers": 2' in turns[0].content


def test_error_iteration_includes_analysis_and_reflection() -> None:
    failed = _fail(Operation.execute("node hello.js"), "SyntaxError: Unexpected token")
    turns = build_turns(
        task="Create hello.js",
        iteration=2,
        memory_summary="",
        last_response="writeFile('hello.js', 'oops')",
        last_operations=[failed],
        had_errors=True,
    )
    assert [type(t) for t in turns] == [HumanMessage, AIMessage, HumanMessage]
    assert "--- ERROR 1 (syntax_error) ---" in turns[0].content
    assert turns[1].content == "writeFile('hello.js', 'oops')"
    assert "Previous attempt had errors" in turns[2].content


def test_clean_iteration_asks_for_verification() -> None:
    turns = build_turns(task="t", iteration=3, memory_summary="", had_errors=False)
    assert "Testing phase" in turns[-1].content
    assert ErrorCategory.SYNTAX_ERROR.value not in turns[0].content
