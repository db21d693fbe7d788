"""Bounded, shared log of every command the swarm has executed."""

from __future__ import annotations

import time
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class CommandRecord:
    """One executed command, whoever ran it."""

    command: str
    cwd: str
    output: str
    exit_code: int
    success: bool
    worker_id: str = ""
    worker_name: str = ""
    timed_out: bool = False
    duration: float = 0.0
    id: str = field(default_factory=lambda: f"cmd-{uuid.uuid4().hex[:12]}")
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class CommandHistory:
    """Ring buffer of `CommandRecord`s; the oldest entries fall off first."""

    def __init__(self, maxlen: int = 1000) -> None:
        self._records: deque[CommandRecord] = deque(maxlen=maxlen)

    def add(self, record: CommandRecord) -> CommandRecord:
        self._records.append(record)
        return record

    def recent(self, limit: int = 100) -> list[CommandRecord]:
        """Return up to *limit* records, oldest first."""
        if limit <= 0:
            return []
        return list(self._records)[-limit:]

    def since(self, timestamp: float) -> list[CommandRecord]:
        return [r for r in self._records if r.timestamp > timestamp]

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)
