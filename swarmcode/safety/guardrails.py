"""Safety guardrails for commands typed straight into the shared terminal."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class RiskLevel(StrEnum):
    """Risk levels for shell commands."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_LEVEL_ORDER = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL]


@dataclass
class SafetyConfig:
    """Configurable safety settings.

    Can be loaded from the `safety` section of `.swarmcode.yml`.
    """

    block_at: RiskLevel = RiskLevel.MEDIUM
    blocked_commands: list[str] = field(
        default_factory=lambda: [
            "rm -rf /",
            "rm -rf ~",
            ":(){:|:&};:",
            "curl | sh",
            "wget | sh",
        ]
    )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SafetyConfig:
        """Create config from a dictionary (e.g. from .swarmcode.yml)."""
        config = cls()
        if "block_at" in data:
            config.block_at = RiskLevel(data["block_at"])
        if "blocked_commands" in data:
            config.blocked_commands.extend(str(c) for c in data["blocked_commands"])
        return config


@dataclass
class SafetyViolation:
    """A detected safety violation."""

    rule: str
    description: str
    risk_level: RiskLevel

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule": self.rule,
            "description": self.description,
            "risk_level": self.risk_level.value,
        }


_DANGEROUS_PATTERNS: list[tuple[str, str, RiskLevel]] = [
    # (regex_pattern, description, risk_level)
    (r"\brm\s+-rf\b", "Recursive force deletion", RiskLevel.HIGH),
    (r"\bformat\s+[cd]:", "Drive format command", RiskLevel.CRITICAL),
    (r"\bdel\s+/f\b", "Forced file deletion (Windows)", RiskLevel.HIGH),
    (r"\bsudo\s+", "Privileged command execution", RiskLevel.MEDIUM),
    (r"\bchmod\s+777\b", "World-writable permission change", RiskLevel.MEDIUM),
    (r"\bchown\s+", "Ownership change", RiskLevel.MEDIUM),
    (r"\bmkfs\b", "Filesystem format command", RiskLevel.CRITICAL),
    (r"\bdd\s+if=", "Raw disk write", RiskLevel.CRITICAL),
    (r"\bshutdown\b", "System shutdown", RiskLevel.HIGH),
    (r"\breboot\b", "System reboot", RiskLevel.HIGH),
    (r"\bcurl\b.*\|\s*(sh|bash)\b", "Remote code execution via curl", RiskLevel.HIGH),
    (r"\bwget\b.*\|\s*(sh|bash)\b", "Remote code execution via wget", RiskLevel.HIGH),
    (r"\bkill\s+-9", "Force kill process", RiskLevel.LOW),
]


class SafetyGuard:
    """Checks direct terminal commands before they reach the shell.

    Usage:
        guard = SafetyGuard()
        violations = guard.check_bash("sudo rm -rf build")
        if guard.should_block(violations):
            raise CommandBlockedError(command, [v.description for v in violations])
    """

    def __init__(self, config: SafetyConfig | None = None) -> None:
        self.config = config or SafetyConfig()

    def check_bash(self, command: str) -> list[SafetyViolation]:
        """Check a shell command for safety violations."""
        violations: list[SafetyViolation] = []

        for blocked in self.config.blocked_commands:
            if blocked.lower() in command.lower():
                violations.append(
                    SafetyViolation(
                        rule="blocked_command",
                        description=f"Blocked command pattern detected: '{blocked}'",
                        risk_level=RiskLevel.CRITICAL,
                    )
                )

        for pattern, desc, risk in _DANGEROUS_PATTERNS:
            if re.search(pattern, command, re.IGNORECASE):
                violations.append(
                    SafetyViolation(rule="dangerous_pattern", description=desc, risk_level=risk)
                )

        return violations

    def should_block(self, violations: list[SafetyViolation]) -> bool:
        """Determine if violations should block execution."""
        if not violations:
            return False
        threshold_idx = _LEVEL_ORDER.index(self.config.block_at)
        return any(_LEVEL_ORDER.index(v.risk_level) >= threshold_idx for v in violations)

    def format_violations(self, violations: list[SafetyViolation]) -> str:
        """Format violations into a human-readable string."""
        if not violations:
            return ""
        lines = ["Safety check results:"]
        for v in violations:
            lines.append(f"- {v.description} (risk: {v.risk_level.value})")
        return "\n".join(lines)
