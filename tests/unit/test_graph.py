"""End-to-end tests of the worker iteration loop with stub LLMs and executors."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from swarmcode.agent.error_classifier import ErrorCategory
from swarmcode.agent.graph import TaskRuntime, build_graph, run_task
from swarmcode.agent.operations import OutcomeStatus
from swarmcode.agent.state import LoopOutcome
from swarmcode.errors import InvalidTaskError
from swarmcode.events.bus import AsyncEventBus
from swarmcode.safety.permissions import PermissionGate
from swarmcode.swarm.types import TaskOptions, Worker, WorkerStatus
from swarmcode.tools.file_ops import Workspace
from swarmcode.tools.shell_exec import CommandResult


class ScriptedExecutor:
    """Returns canned results in order; the last one repeats."""

    def __init__(self, *results: tuple[int, str, str]) -> None:
        self.results = list(results)
        self.calls: list[str] = []

    async def run(self, command, cwd, *, worker_id="", worker_name=""):
        self.calls.append(command)
        index = min(len(self.calls) - 1, len(self.results) - 1)
        exit_code, stdout, stderr = self.results[index]
        return CommandResult(command=command, stdout=stdout, stderr=stderr, exit_code=exit_code)


def _worker(llm) -> Worker:
    return Worker(name="alice", model_name="fake", api_base="", llm=llm)


def _runtime(tmp_path: Path, executor, **kwargs) -> TaskRuntime:
    return TaskRuntime(
        workspace=Workspace(str(tmp_path)),
        executor=executor,
        gate=PermissionGate(executor),
        **kwargs,
    )


def test_graph_compiles() -> None:
    graph = build_graph()
    assert {"plan", "act", "evaluate"} <= set(graph.nodes)


# ── The hello.js scenario ────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_two_iteration_hello_script(tmp_path: Path) -> None:
    llm = FakeListChatModel(
        responses=[
            "writeFile('hello.js', \"console.log('Hello, World!'\")\n"
            "executeCommand('node hello.js')",
            "I think the closing parenthesis is missing.\n"
            "writeFile('hello.js', \"console.log('Hello, World!');\")\n"
            "executeCommand('node hello.js')",
        ]
    )
    executor = ScriptedExecutor(
        (
            1,
            "",
            "hello.js:1\nconsole.log('Hello, World!'\n\nSyntaxError: missing ) after argument list",
        ),
        (0, "Hello, World!\n", ""),
    )
    worker = _worker(llm)

    task = "Create hello.js that prints Hello, World!"
    result = await run_task(worker, task, _runtime(tmp_path, executor))

    assert result.outcome == LoopOutcome.SUCCESS
    assert result.iterations == 2
    assert executor.calls == ["node hello.js", "node hello.js"]
    assert (tmp_path / "hello.js").read_text() == "console.log('Hello, World!');"

    categories = [e.analysis.category for e in worker.memory.errors]
    assert categories == [ErrorCategory.SYNTAX_ERROR]
    assert worker.status == WorkerStatus.IDLE
    assert worker.tasks[-1].outcome == LoopOutcome.SUCCESS
    assert len(result.operations) == 4
    kinds = [a.kind for a in worker.recent_activity()]
    assert "task_completed" in kinds
    assert "reasoning" in kinds


# ── Termination ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_stops_at_max_iterations(tmp_path: Path) -> None:
    llm = FakeListChatModel(responses=["executeCommand('npm test')"])
    executor = ScriptedExecutor((1, "", "Error: 3 tests failed"))
    worker = _worker(llm)

    result = await run_task(
        worker,
        "make the tests pass",
        _runtime(tmp_path, executor),
        options=TaskOptions(max_iterations=3),
    )

    assert result.outcome == LoopOutcome.EXHAUSTED
    assert result.iterations == 3
    assert len(executor.calls) == 3
    assert not result.succeeded


@pytest.mark.asyncio
async def test_writing_without_running_is_never_success(tmp_path: Path) -> None:
    llm = FakeListChatModel(responses=["writeFile('app.js', 'console.log(1)')"])
    executor = ScriptedExecutor((0, "", ""))
    worker = _worker(llm)

    result = await run_task(
        worker, "write app.js", _runtime(tmp_path, executor), options=TaskOptions(max_iterations=2)
    )

    assert result.outcome == LoopOutcome.EXHAUSTED
    assert result.iterations == 2
    assert executor.calls == []


@pytest.mark.asyncio
async def test_plain_mode_completes_on_first_clean_iteration(tmp_path: Path) -> None:
    llm = FakeListChatModel(responses=["writeFile('app.js', 'console.log(1)')"])
    worker = _worker(llm)

    result = await run_task(
        worker,
        "write app.js",
        _runtime(tmp_path, ScriptedExecutor((0, "", ""))),
        options=TaskOptions(auto_debug=False),
    )

    assert result.outcome == LoopOutcome.COMPLETED
    assert result.iterations == 1
    assert result.succeeded


@pytest.mark.asyncio
async def test_missing_script_fails_before_spawning(tmp_path: Path) -> None:
    llm = FakeListChatModel(responses=["executeCommand('node missing.js')"])
    executor = ScriptedExecutor((0, "", ""))
    worker = _worker(llm)

    result = await run_task(
        worker, "run it", _runtime(tmp_path, executor), options=TaskOptions(max_iterations=1)
    )

    assert executor.calls == []
    outcome = result.operations[0].outcome
    assert outcome is not None
    assert outcome.status == OutcomeStatus.FAILED
    assert "Cannot find file 'missing.js'" in outcome.output
    assert worker.memory.errors[0].analysis.category == ErrorCategory.FILE_NOT_FOUND


# ── Permissions ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_gated_command_is_queued_not_run(tmp_path: Path) -> None:
    llm = FakeListChatModel(responses=["executeCommand('npm install express')"])
    executor = ScriptedExecutor((0, "added 1 package", ""))
    runtime = _runtime(tmp_path, executor)
    worker = _worker(llm)

    result = await run_task(worker, "add express", runtime, options=TaskOptions(auto_debug=False))

    assert executor.calls == []
    assert result.outcome == LoopOutcome.COMPLETED
    assert len(result.pending_permissions) == 1
    pending = runtime.gate.list_pending()
    assert [p.id for p in pending] == result.pending_permissions
    assert pending[0].worker_id == worker.id

    await runtime.gate.grant(result.pending_permissions[0])
    assert executor.calls == ["npm install express"]


# ── Failures and cancellation ────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_llm_failure_propagates_and_marks_error(tmp_path: Path) -> None:
    llm = MagicMock()
    llm.ainvoke = AsyncMock(side_effect=RuntimeError("model unavailable"))
    worker = _worker(llm)

    with pytest.raises(RuntimeError, match="model unavailable"):
        await run_task(worker, "anything", _runtime(tmp_path, ScriptedExecutor((0, "", ""))))

    assert worker.status == WorkerStatus.ERROR
    assert worker.tasks == []


@pytest.mark.asyncio
async def test_invalid_task_requests(tmp_path: Path) -> None:
    worker = _worker(FakeListChatModel(responses=["ok"]))
    runtime = _runtime(tmp_path, ScriptedExecutor((0, "", "")))

    with pytest.raises(InvalidTaskError):
        await run_task(worker, "   ", runtime)
    assert worker.status == WorkerStatus.ERROR

    with pytest.raises(ValueError):
        await run_task(worker, "do it", runtime, options=TaskOptions(max_iterations=0))


@pytest.mark.asyncio
async def test_removed_worker_discards_response(tmp_path: Path) -> None:
    checks: list[bool] = [True, False]

    def active(worker_id: str) -> bool:
        return checks.pop(0) if checks else False

    llm = FakeListChatModel(responses=["writeFile('late.js', 'x')"])
    worker = _worker(llm)
    executor = ScriptedExecutor((0, "", ""))

    result = await run_task(worker, "write late.js", _runtime(tmp_path, executor, active=active))

    assert result.outcome == LoopOutcome.CANCELLED
    assert result.operations == []
    assert not (tmp_path / "late.js").exists()


# ── Events ───────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_events_are_published_in_order(tmp_path: Path) -> None:
    bus = AsyncEventBus()
    q = await bus.subscribe()
    llm = FakeListChatModel(responses=["executeCommand('node -v')"])
    executor = ScriptedExecutor((0, "v20.0.0", ""))
    worker = _worker(llm)

    await run_task(worker, "check node", _runtime(tmp_path, executor, event_bus=bus))
    await bus.close()

    kinds = [event.kind async for event in bus.iter_events(q)]
    assert kinds[0] == "task_start"
    assert kinds[-1] == "task_end"
    assert kinds.index("llm_response") < kinds.index("operation")
    assert kinds.index("operation") < kinds.index("iteration_complete")
