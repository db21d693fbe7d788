"""Operations a worker asks for in its responses, and their outcomes."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any


class OperationKind(StrEnum):
    WRITE = "write"
    DELETE = "delete"
    EXECUTE = "execute"


class OutcomeStatus(StrEnum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    AWAITING_APPROVAL = "awaiting_approval"


@dataclass(frozen=True)
class OperationOutcome:
    """What happened when an operation was carried out."""

    status: OutcomeStatus
    output: str = ""
    exit_code: int | None = None
    error: str | None = None
    permission_id: str | None = None

    @property
    def failed(self) -> bool:
        return self.status in (OutcomeStatus.FAILED, OutcomeStatus.TIMED_OUT)


@dataclass(frozen=True)
class Operation:
    """A single write, delete or execute request.

    Build them with `Operation.write`, `Operation.delete` or
    `Operation.execute`; only the fields of the chosen kind may be set.
    """

    kind: OperationKind
    path: str | None = None
    content: str | None = None
    command: str | None = None
    outcome: OperationOutcome | None = None

    def __post_init__(self) -> None:
        if self.kind == OperationKind.WRITE:
            ok = self.path is not None and self.content is not None and self.command is None
        elif self.kind == OperationKind.DELETE:
            ok = self.path is not None and self.content is None and self.command is None
        else:
            ok = self.command is not None and self.path is None and self.content is None
        if not ok:
            raise ValueError(f"Invalid fields for a {self.kind.value} operation")

    @classmethod
    def write(cls, path: str, content: str) -> Operation:
        return cls(OperationKind.WRITE, path=path, content=content)

    @classmethod
    def delete(cls, path: str) -> Operation:
        return cls(OperationKind.DELETE, path=path)

    @classmethod
    def execute(cls, command: str) -> Operation:
        return cls(OperationKind.EXECUTE, command=command)

    @property
    def target(self) -> str:
        return self.command if self.kind == OperationKind.EXECUTE else self.path  # type: ignore[return-value]

    @property
    def failed(self) -> bool:
        return self.outcome is not None and self.outcome.failed

    def with_outcome(self, outcome: OperationOutcome) -> Operation:
        """Return a copy of this operation carrying *outcome*."""
        if self.outcome is not None:
            raise ValueError("Operation already has an outcome")
        return replace(self, outcome=outcome)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind.value}
        if self.kind == OperationKind.EXECUTE:
            data["command"] = self.command
        else:
            data["path"] = self.path
        if self.kind == OperationKind.WRITE:
            data["size"] = len(self.content or "")
        if self.outcome is not None:
            data["status"] = self.outcome.status.value
            data["exit_code"] = self.outcome.exit_code
            data["output"] = self.outcome.output
            if self.outcome.error:
                data["error"] = self.outcome.error
            if self.outcome.permission_id:
                data["permission_id"] = self.outcome.permission_id
        return data
