"""Shared types for the swarm module."""

from __future__ import annotations

import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from langchain_core.language_models import BaseChatModel

from swarmcode.agent.memory import ContextMemory
from swarmcode.agent.operations import Operation
from swarmcode.agent.state import LoopOutcome
from swarmcode.swarm.roles import WorkerRole

DEFAULT_ACTIVITY_SIZE = 500


class WorkerStatus(StrEnum):
    IDLE = "idle"
    WORKING = "working"
    COMMUNICATING = "communicating"
    ERROR = "error"


@dataclass
class ActivityEntry:
    """One line of a worker's activity log."""

    kind: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp,
        }


@dataclass
class TaskRecord:
    """A finished task in a worker's history."""

    task: str
    result: str
    iterations: int
    outcome: LoopOutcome
    timestamp: float = field(default_factory=time.time)


@dataclass
class TaskOptions:
    auto_debug: bool = True
    max_iterations: int = 15


@dataclass
class TaskResult:
    """What the caller gets back from an assigned task."""

    worker_id: str
    result_text: str
    iterations: int
    outcome: LoopOutcome
    operations: list[Operation]
    memory_snapshot: dict[str, Any]
    pending_permissions: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.outcome in (LoopOutcome.SUCCESS, LoopOutcome.COMPLETED)


@dataclass
class Worker:
    """An LLM-backed agent with its own role, memory and activity log."""

    name: str
    model_name: str
    api_base: str
    llm: BaseChatModel
    role: WorkerRole = WorkerRole.CODER
    status: WorkerStatus = WorkerStatus.IDLE
    tasks: list[TaskRecord] = field(default_factory=list)
    shared_data: dict[str, Any] = field(default_factory=dict)
    memory: ContextMemory = field(default_factory=ContextMemory)
    communicating_with: set[str] = field(default_factory=set)
    activity: deque[ActivityEntry] = field(
        default_factory=lambda: deque(maxlen=DEFAULT_ACTIVITY_SIZE)
    )
    id: str = field(default_factory=lambda: f"worker-{uuid.uuid4().hex[:12]}")
    created_at: float = field(default_factory=time.time)

    def log_activity(
        self, kind: str, message: str, details: dict[str, Any] | None = None
    ) -> ActivityEntry:
        entry = ActivityEntry(kind=kind, message=message, details=details or {})
        self.activity.append(entry)
        return entry

    def recent_activity(self, limit: int = 100) -> list[ActivityEntry]:
        """Newest entries first."""
        if limit <= 0:
            return []
        return list(reversed(self.activity))[:limit]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "model": self.model_name,
            "api_base": self.api_base,
            "role": self.role.value,
            "status": self.status.value,
            "tasks": len(self.tasks),
            "communicating_with": sorted(self.communicating_with),
            "created_at": self.created_at,
        }


@dataclass
class AssignmentOutcome:
    """Per-worker result of `SwarmService.assign_many`."""

    worker_id: str
    result: TaskResult | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class MessageReceipt:
    from_worker: str
    to_worker: str
    message: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class ChatMessage:
    role: str  # "user" or the responding worker's role
    content: str
    worker_id: str | None = None
    timestamp: float = field(default_factory=time.time)
