"""In-memory registry of live workers."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable, Iterator
from typing import Any

from langchain_core.language_models import BaseChatModel

from swarmcode.agent.memory import ContextMemory
from swarmcode.config import MemoryLimits
from swarmcode.errors import WorkerNotFoundError
from swarmcode.swarm.roles import WorkerRole, parse_role
from swarmcode.swarm.types import DEFAULT_ACTIVITY_SIZE, Worker

logger = logging.getLogger(__name__)

_UPDATABLE = frozenset({"name", "model_name", "api_base", "role", "llm"})


class WorkerRegistry:
    """Owns every worker of a swarm, keyed by id.

    Each worker also gets an `asyncio.Lock` so that two tasks never run
    against the same worker at once.
    """

    def __init__(
        self,
        activity_size: int = DEFAULT_ACTIVITY_SIZE,
        memory_limits: MemoryLimits | None = None,
    ) -> None:
        self._workers: dict[str, Worker] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._activity_size = activity_size
        self._memory_limits = memory_limits

    def create(
        self,
        name: str,
        model_name: str,
        api_base: str,
        llm: BaseChatModel,
        role: str | WorkerRole = WorkerRole.CODER,
    ) -> Worker:
        worker = Worker(
            name=name,
            model_name=model_name,
            api_base=api_base,
            llm=llm,
            role=parse_role(role),
            memory=ContextMemory(self._memory_limits),
            activity=deque(maxlen=self._activity_size),
        )
        self._workers[worker.id] = worker
        logger.info("Spawned worker %s (%s, %s)", worker.id, worker.name, worker.role.value)
        return worker

    def get(self, worker_id: str) -> Worker:
        try:
            return self._workers[worker_id]
        except KeyError:
            raise WorkerNotFoundError(worker_id) from None

    def find(self, predicate: Callable[[Worker], bool]) -> list[Worker]:
        return [w for w in self._workers.values() if predicate(w)]

    def list(self) -> list[Worker]:
        return list(self._workers.values())

    def update(self, worker_id: str, **changes: Any) -> Worker:
        """Change a worker's name, model, endpoint, role or chat model."""
        worker = self.get(worker_id)
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update worker fields: {', '.join(sorted(unknown))}")
        for key, value in changes.items():
            if value is None:
                continue
            if key == "role":
                value = parse_role(value)
            setattr(worker, key, value)
        return worker

    def remove(self, worker_id: str) -> Worker:
        worker = self.get(worker_id)
        del self._workers[worker_id]
        self._locks.pop(worker_id, None)
        logger.info("Removed worker %s", worker_id)
        return worker

    def lock(self, worker_id: str) -> asyncio.Lock:
        self.get(worker_id)
        return self._locks.setdefault(worker_id, asyncio.Lock())

    def __contains__(self, worker_id: object) -> bool:
        return worker_id in self._workers

    def __len__(self) -> int:
        return len(self._workers)

    def __iter__(self) -> Iterator[Worker]:
        return iter(list(self._workers.values()))
