"""Permission gate: commands that need a human decision before they run."""

from __future__ import annotations

import logging
import re
import time
import uuid
from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any

from swarmcode.errors import PermissionNotFoundError, PermissionStateError
from swarmcode.tools.shell_exec import CommandResult, CommandRunner

logger = logging.getLogger(__name__)


class PermissionStatus(StrEnum):
    PENDING = "pending"
    GRANTED = "granted"
    DENIED = "denied"


@dataclass(frozen=True)
class PermissionRule:
    pattern: str
    category: str
    description: str

    def matches(self, segment: str) -> bool:
        return re.search(self.pattern, segment, re.IGNORECASE) is not None


# Checked in order against each segment of a command; first match wins.
_DEFAULT_RULES: tuple[PermissionRule, ...] = (
    PermissionRule(r"^npm\s+install", "npm_install", "Install npm packages"),
    PermissionRule(r"^npm\s+ci\b", "npm_install", "Install npm packages (ci)"),
    PermissionRule(r"^npm\s+start", "npm_start", "Start npm server"),
    PermissionRule(r"^npm\s+run\s+start", "npm_start", "Start npm server"),
    PermissionRule(r"^node\s+.*server", "run_server", "Run Node.js server"),
    PermissionRule(r"^node\s+.*app\.js", "run_server", "Run Node.js application"),
    PermissionRule(r"^python3?\s+-m\s+http\.server", "run_server", "Run Python HTTP server"),
    PermissionRule(r"^python3?\s+.*server", "run_server", "Run Python server"),
    PermissionRule(r"^pip3?\s+install", "pip_install", "Install Python packages"),
    PermissionRule(r"^git\s+clone", "git_clone", "Clone git repository"),
    PermissionRule(r"^git\s+push", "git_push", "Push to git repository"),
    PermissionRule(r"^rm\s+-rf", "delete_files", "Delete files recursively"),
    PermissionRule(r"^del\s+/s", "delete_files", "Delete files recursively (Windows)"),
)

_SEGMENT_SPLIT = re.compile(r"&&|\|\||;")


@dataclass
class PermissionConfig:
    """Gate settings, loaded from the `permissions` section of `.swarmcode.yml`."""

    extra_rules: list[PermissionRule] = field(default_factory=list)
    auto_approve: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PermissionConfig:
        config = cls()
        for raw in data.get("extra_rules", []) or []:
            config.extra_rules.append(
                PermissionRule(
                    pattern=str(raw["pattern"]),
                    category=str(raw.get("category", "custom")),
                    description=str(raw.get("description", "Requires approval")),
                )
            )
        config.auto_approve.extend(str(c) for c in data.get("auto_approve", []) or [])
        return config


@dataclass(frozen=True)
class PermissionCheck:
    requires_approval: bool
    category: str = ""
    description: str = ""


@dataclass
class PermissionRequest:
    """A gated command waiting for (or resolved by) a human decision."""

    worker_id: str
    command: str
    category: str
    description: str
    cwd: str
    status: PermissionStatus = PermissionStatus.PENDING
    id: str = field(default_factory=lambda: f"perm-{uuid.uuid4().hex[:12]}")
    created_at: float = field(default_factory=time.time)
    resolved_at: float | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


class PermissionGate:
    """Classifies commands and holds pending approval requests.

    Granted requests are executed exactly once through the injected runner
    and then discarded; denied requests are discarded without running.
    """

    def __init__(self, executor: CommandRunner, config: PermissionConfig | None = None) -> None:
        self._executor = executor
        self.config = config or PermissionConfig()
        self._rules: tuple[PermissionRule, ...] = _DEFAULT_RULES + tuple(self.config.extra_rules)
        self._requests: dict[str, PermissionRequest] = {}

    def classify(self, command: str) -> PermissionCheck:
        """Return whether *command* (or any segment of it) needs approval."""
        for segment in _SEGMENT_SPLIT.split(command):
            segment = segment.strip()
            if not segment:
                continue
            for rule in self._rules:
                if not rule.matches(segment):
                    continue
                if rule.category in self.config.auto_approve:
                    break
                return PermissionCheck(True, rule.category, rule.description)
        return PermissionCheck(False)

    def request(
        self,
        worker_id: str,
        command: str,
        check: PermissionCheck,
        cwd: str,
    ) -> PermissionRequest:
        req = PermissionRequest(
            worker_id=worker_id,
            command=command,
            category=check.category,
            description=check.description,
            cwd=cwd,
        )
        self._requests[req.id] = req
        logger.warning(
            "Command awaiting approval [%s] for %s: %s", req.category, worker_id, command
        )
        return req

    def list_pending(self) -> list[PermissionRequest]:
        return [r for r in self._requests.values() if r.status == PermissionStatus.PENDING]

    def get(self, permission_id: str) -> PermissionRequest:
        try:
            return self._requests[permission_id]
        except KeyError:
            raise PermissionNotFoundError(permission_id) from None

    async def grant(self, permission_id: str) -> CommandResult:
        """Approve a pending request and run its command once."""
        req = self._take_pending(permission_id, PermissionStatus.GRANTED)
        logger.info("Permission %s granted: %s", req.id, req.command)
        try:
            return await self._executor.run(req.command, req.cwd, worker_id=req.worker_id)
        finally:
            self._requests.pop(req.id, None)

    def deny(self, permission_id: str) -> PermissionRequest:
        req = self._take_pending(permission_id, PermissionStatus.DENIED)
        self._requests.pop(req.id, None)
        logger.info("Permission %s denied: %s", req.id, req.command)
        return req

    def _take_pending(self, permission_id: str, status: PermissionStatus) -> PermissionRequest:
        req = self.get(permission_id)
        if req.status != PermissionStatus.PENDING:
            raise PermissionStateError(f"Permission {permission_id} is already {req.status.value}")
        req.status = status
        req.resolved_at = time.time()
        return req
