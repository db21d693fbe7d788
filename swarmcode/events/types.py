"""Event payloads published on the swarm event bus."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Literal

EventKind = Literal[
    "task_start",
    "step_start",
    "llm_response",
    "operation",
    "iteration_complete",
    "task_end",
    "permission_request",
    "metrics",
    "error",
]


@dataclass
class AgentEvent:
    """A single observable thing that happened in the swarm.

    ``run_id`` is the worker id for worker-scoped events and ``"swarm"`` for
    swarm-wide ones such as metrics.
    """

    kind: EventKind
    run_id: str
    iteration: int
    payload: dict[str, Any] = field(default_factory=dict)
    ts: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "run_id": self.run_id,
            "iteration": self.iteration,
            "payload": self.payload,
            "ts": self.ts,
        }
