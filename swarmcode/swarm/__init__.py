"""Worker swarm: roles, registry and the worker data model."""

from __future__ import annotations

from swarmcode.swarm.registry import WorkerRegistry
from swarmcode.swarm.roles import CODING_ROLES, WorkerRole, select_responder
from swarmcode.swarm.types import TaskOptions, TaskResult, Worker, WorkerStatus

__all__ = [
    "CODING_ROLES",
    "TaskOptions",
    "TaskResult",
    "Worker",
    "WorkerRegistry",
    "WorkerRole",
    "WorkerStatus",
    "select_responder",
]
