"""Swarm service: the one object callers use to run and coordinate workers."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage

from swarmcode.agent.error_classifier import classify_error
from swarmcode.agent.graph import TaskRuntime, run_task
from swarmcode.agent.operations import Operation, OperationOutcome, OutcomeStatus
from swarmcode.agent.parser import OperationParser, RegexOperationParser
from swarmcode.agent.prompts import build_chat_prompt
from swarmcode.config import SwarmConfig
from swarmcode.errors import CommandBlockedError, SwarmError
from swarmcode.events.bus import AsyncEventBus
from swarmcode.events.types import AgentEvent
from swarmcode.llm.factory import get_llm, invoke_llm
from swarmcode.safety.guardrails import SafetyConfig, SafetyGuard
from swarmcode.safety.permissions import PermissionConfig, PermissionGate, PermissionRequest
from swarmcode.swarm.registry import WorkerRegistry
from swarmcode.swarm.roles import WorkerRole, select_responder
from swarmcode.swarm.types import (
    ActivityEntry,
    AssignmentOutcome,
    ChatMessage,
    MessageReceipt,
    TaskOptions,
    TaskResult,
    Worker,
    WorkerStatus,
)
from swarmcode.tools.command_history import CommandHistory, CommandRecord
from swarmcode.tools.file_ops import Workspace
from swarmcode.tools.shell_exec import CommandExecutor, CommandResult, CommandRunner

logger = logging.getLogger(__name__)

LLMFactory = Callable[[str, str, float], BaseChatModel]

_CHAT_CONTEXT = 5


class SwarmService:
    """Spawns workers, assigns them tasks and relays human permission decisions.

    Usage:
        service = SwarmService("/path/to/project", SwarmConfig())
        worker = service.spawn_worker("alice", role="coder")
        result = await service.assign_task(worker.id, "Create hello.js and run it")
        for request in service.list_pending_permissions():
            await service.grant_permission(request.id)
    """

    def __init__(
        self,
        cwd: str,
        config: SwarmConfig | None = None,
        *,
        event_bus: AsyncEventBus | None = None,
        executor: CommandRunner | None = None,
        llm_factory: LLMFactory | None = None,
        parser: OperationParser | None = None,
        registry: WorkerRegistry | None = None,
    ) -> None:
        self.config = config or SwarmConfig()
        self.event_bus = event_bus
        self.workspace = Workspace(cwd)
        self.history = CommandHistory(self.config.history_size)
        self.executor = executor or CommandExecutor(
            self.history, timeout=self.config.command_timeout
        )
        permissions = PermissionConfig.from_dict(self.config.permissions)
        self.gate = PermissionGate(self.executor, permissions)
        self.guard = SafetyGuard(SafetyConfig.from_dict(self.config.safety))
        self.registry = registry or WorkerRegistry(
            activity_size=self.config.activity_size,
            memory_limits=self.config.memory,
        )
        self._llm_factory = llm_factory or get_llm
        self._runtime = TaskRuntime(
            workspace=self.workspace,
            executor=self.executor,
            gate=self.gate,
            parser=parser or RegexOperationParser(),
            event_bus=event_bus,
            active=self.registry.__contains__,
        )
        self._active_tasks = 0
        self._background: set[asyncio.Task[Any]] = set()
        self.chat_history: list[ChatMessage] = []

    # ── Telemetry ────────────────────────────────────────────

    def _publish_metrics(self, message: str | None = None) -> None:
        if self.event_bus is None:
            return
        payload: dict[str, Any] = {
            "activeWorkers": len(self.registry),
            "activeTasks": self._active_tasks,
        }
        if message:
            payload["message"] = message
        self.event_bus.publish_nowait(
            AgentEvent(kind="metrics", run_id="swarm", iteration=0, payload=payload)
        )

    # ── Workers ──────────────────────────────────────────────

    def spawn_worker(
        self,
        name: str,
        model_name: str | None = None,
        api_base: str | None = None,
        role: str | WorkerRole = WorkerRole.CODER,
    ) -> Worker:
        model = model_name or self.config.model_name
        base = api_base or self.config.api_base
        llm = self._llm_factory(model, base, self.config.temperature)
        worker = self.registry.create(name, model, base, llm, role)
        self._publish_metrics(f"Worker {name} spawned")
        return worker

    def get_worker(self, worker_id: str) -> Worker:
        return self.registry.get(worker_id)

    def list_workers(self) -> list[Worker]:
        return self.registry.list()

    def update_worker(self, worker_id: str, **changes: Any) -> Worker:
        """Rename a worker, change its role, or point it at another model."""
        worker = self.registry.get(worker_id)
        model = changes.get("model_name") or worker.model_name
        base = changes.get("api_base") or worker.api_base
        if model != worker.model_name or base != worker.api_base:
            changes["llm"] = self._llm_factory(model, base, self.config.temperature)
        return self.registry.update(worker_id, **changes)

    def remove_worker(self, worker_id: str) -> Worker:
        worker = self.registry.remove(worker_id)
        for other in self.registry:
            other.communicating_with.discard(worker_id)
        self._publish_metrics(f"Worker {worker.name} removed")
        return worker

    # ── Tasks ────────────────────────────────────────────────

    def _default_options(self) -> TaskOptions:
        return TaskOptions(
            auto_debug=self.config.auto_debug,
            max_iterations=self.config.max_iterations,
        )

    async def assign_task(
        self,
        worker_id: str,
        task: str,
        shared_context: dict[str, Any] | None = None,
        options: TaskOptions | None = None,
    ) -> TaskResult:
        """Run *task* on one worker; waits for any task already running on it."""
        worker = self.registry.get(worker_id)
        async with self.registry.lock(worker_id):
            self._active_tasks += 1
            self._publish_metrics()
            try:
                return await run_task(
                    worker,
                    task,
                    self._runtime,
                    shared_context=shared_context,
                    options=options or self._default_options(),
                )
            finally:
                self._active_tasks -= 1
                self._publish_metrics()

    async def assign_many(
        self,
        worker_ids: list[str],
        task: str,
        share_context: bool = True,
        options: TaskOptions | None = None,
    ) -> list[AssignmentOutcome]:
        """Give the same task to several workers at once.

        One worker failing does not affect the others; each gets its own
        `AssignmentOutcome`.
        """

        async def _one(index: int, worker_id: str) -> TaskResult:
            context = None
            if share_context:
                context = {
                    "collaborating_with": [w for w in worker_ids if w != worker_id],
                    "total_workers": len(worker_ids),
                    "worker_index": index,
                }
            return await self.assign_task(worker_id, task, context, options)

        results = await asyncio.gather(
            *(_one(i, wid) for i, wid in enumerate(worker_ids)),
            return_exceptions=True,
        )

        outcomes: list[AssignmentOutcome] = []
        for worker_id, result in zip(worker_ids, results):
            if isinstance(result, BaseException):
                logger.error("Worker %s raised exception: %s", worker_id, result)
                outcomes.append(AssignmentOutcome(worker_id=worker_id, error=str(result)))
            else:
                outcomes.append(AssignmentOutcome(worker_id=worker_id, result=result))
        return outcomes

    # ── Messaging ────────────────────────────────────────────

    def send_message(
        self,
        from_id: str,
        to_id: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> MessageReceipt:
        """Hand *message* to another worker, which acts on it in the background."""
        sender = self.registry.get(from_id)
        receiver = self.registry.get(to_id)
        data = data or {}

        sender.communicating_with.add(to_id)
        receiver.communicating_with.add(from_id)
        if data:
            receiver.shared_data.update(data)
            receiver.shared_data["from_worker"] = from_id
            receiver.shared_data["last_update"] = time.time()

        sender.log_activity("message_sent", f"Sent message to {receiver.name}", {"to": to_id})
        receiver.log_activity(
            "message_received", f"Message from {sender.name}: {message[:100]}", {"from": from_id}
        )

        task = _message_task(sender, message, data)
        bg = asyncio.create_task(self._handle_message(from_id, to_id, task))
        self._background.add(bg)
        bg.add_done_callback(self._background_done)

        self._publish_metrics(f"{sender.name} → {receiver.name}")
        return MessageReceipt(from_worker=from_id, to_worker=to_id, message=message)

    async def _handle_message(self, from_id: str, to_id: str, task: str) -> TaskResult:
        try:
            return await self.assign_task(to_id, task)
        finally:
            for a, b in ((from_id, to_id), (to_id, from_id)):
                if a in self.registry:
                    self.registry.get(a).communicating_with.discard(b)

    def _background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background message handling failed: %s", exc)

    async def drain(self) -> None:
        """Wait until every background message has been handled."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ── Chat ─────────────────────────────────────────────────

    def _responder(self, turn: int) -> Worker:
        present = {w.role for w in self.registry}
        roles = [r for r in WorkerRole if r in present]
        if not roles:
            raise SwarmError("No workers available to chat")
        role = select_responder(roles, turn)
        return self.registry.find(lambda w: w.role == role)[0]

    async def chat(self, message: str) -> ChatMessage:
        """One swarm-chat turn: a worker picked round-robin by role answers.

        No file operations or commands are carried out.
        """
        turn = sum(1 for m in self.chat_history if m.role == "user")
        worker = self._responder(turn)
        self.chat_history.append(ChatMessage(role="user", content=message))

        context = "\n".join(f"{m.role}: {m.content}" for m in self.chat_history[-_CHAT_CONTEXT:])
        system_prompt = (
            f"{build_chat_prompt(worker.role, worker.name)}\n\nPrevious conversation:\n{context}"
        )
        response = await invoke_llm(worker.llm, system_prompt, [HumanMessage(content=message)])

        reply = ChatMessage(role=worker.role.value, content=response, worker_id=worker.id)
        self.chat_history.append(reply)
        worker.log_activity("chat", f"Replied in swarm chat: {response[:100]}")
        return reply

    # ── Permissions ──────────────────────────────────────────

    def list_pending_permissions(self) -> list[PermissionRequest]:
        return self.gate.list_pending()

    async def grant_permission(self, permission_id: str) -> CommandResult:
        """Approve a queued command; it runs once and its result reaches the worker."""
        request = self.gate.get(permission_id)
        result = await self.gate.grant(permission_id)

        if request.worker_id in self.registry:
            worker = self.registry.get(request.worker_id)
            status = OutcomeStatus.SUCCEEDED if result.success else OutcomeStatus.FAILED
            if result.timed_out:
                status = OutcomeStatus.TIMED_OUT
            op = Operation.execute(request.command).with_outcome(
                OperationOutcome(status, output=result.output, exit_code=result.exit_code)
            )
            worker.memory.record_approved(op)
            if not result.success:
                analysis = classify_error(
                    request.command, result.output, timed_out=result.timed_out
                )
                worker.memory.record_error(analysis, request.command, result.output, iteration=0)
            worker.log_activity(
                "permission_granted",
                f"Approved command ran: {request.command}",
                {"command": request.command, "exit_code": result.exit_code},
            )
        self._publish_metrics(f"Permission granted: {request.command}")
        return result

    def deny_permission(self, permission_id: str) -> PermissionRequest:
        request = self.gate.deny(permission_id)
        if request.worker_id in self.registry:
            self.registry.get(request.worker_id).log_activity(
                "permission_denied",
                f"Command denied: {request.command}",
                {"command": request.command},
            )
        return request

    # ── Direct commands & inspection ─────────────────────────

    async def run_command(self, command: str, worker_id: str | None = None) -> CommandResult:
        """Run a command typed straight into the shared terminal."""
        violations = self.guard.check_bash(command)
        if self.guard.should_block(violations):
            logger.warning(
                "Blocked command: %s\n%s", command, self.guard.format_violations(violations)
            )
            raise CommandBlockedError(command, [v.description for v in violations])

        worker_name = ""
        if worker_id is not None:
            worker = self.registry.get(worker_id)
            worker_name = worker.name
            worker.status = WorkerStatus.WORKING
        try:
            return await self.executor.run(
                command,
                self.workspace.root,
                worker_id=worker_id or "",
                worker_name=worker_name,
            )
        finally:
            if worker_id is not None and worker_id in self.registry:
                self.registry.get(worker_id).status = WorkerStatus.IDLE

    def worker_activity(self, worker_id: str, limit: int = 100) -> list[ActivityEntry]:
        return self.registry.get(worker_id).recent_activity(limit)

    def command_history(
        self, limit: int = 100, since: float | None = None
    ) -> list[CommandRecord]:
        """Most recent commands, optionally only those run after *since*."""
        if since is None:
            return self.history.recent(limit)
        records = self.history.since(since)
        return records[-limit:] if limit > 0 else []

    def clear_command_history(self) -> None:
        self.history.clear()


def _message_task(sender: Worker, message: str, data: dict[str, Any]) -> str:
    parts = [f"Message from {sender.name} ({sender.role.value}): {message}"]
    if data.get("code"):
        parts.append(f"Code shared:\n```\n{data['code']}\n```")
    if data.get("error"):
        parts.append(f"Error reported:\n{data['error']}")
    files = data.get("files")
    if files:
        listed = ", ".join(files) if isinstance(files, list) else str(files)
        parts.append(f"Files mentioned: {listed}")
    parts.append("How do you respond? What actions do you take?")
    return "\n\n".join(parts)
