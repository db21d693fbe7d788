"""Exceptions that escape the iteration loop to the caller."""

from __future__ import annotations


class SwarmError(Exception):
    """Base class for swarmcode errors."""


class WorkerNotFoundError(SwarmError, KeyError):
    """No worker is registered under the given id."""

    def __init__(self, worker_id: str) -> None:
        super().__init__(f"Worker not found: {worker_id}")
        self.worker_id = worker_id

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0])


class InvalidTaskError(SwarmError, ValueError):
    """A task request is malformed (empty text, bad iteration bound, ...)."""


class PermissionNotFoundError(SwarmError, KeyError):
    """No pending permission request has the given id."""

    def __init__(self, permission_id: str) -> None:
        super().__init__(f"Permission not found: {permission_id}")
        self.permission_id = permission_id

    def __str__(self) -> str:
        return str(self.args[0])


class PermissionStateError(SwarmError):
    """A permission request was resolved twice."""


class PathEscapeError(SwarmError, PermissionError):
    """A path resolves outside the project root."""


class CommandBlockedError(SwarmError):
    """A directly executed command was refused by the safety guard."""

    def __init__(self, command: str, reasons: list[str]) -> None:
        joined = "; ".join(reasons)
        super().__init__(f"Command blocked: '{command}' ({joined})")
        self.command = command
        self.reasons = reasons
