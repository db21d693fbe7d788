"""Worker roles and their system-prompt templates."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class WorkerRole(StrEnum):
    CODER = "coder"
    ARCHITECT = "architect"
    REVIEWER = "reviewer"
    TESTER = "tester"
    OPTIMIZER = "optimizer"
    RESEARCHER = "researcher"
    DEBUGGER = "debugger"
    AUTONOMOUS = "autonomous"


@dataclass
class CodingRole:
    """A specialization a worker can be spawned with."""

    name: WorkerRole
    description: str
    system_prompt: str


CODING_ROLES: dict[WorkerRole, CodingRole] = {
    WorkerRole.CODER: CodingRole(
        name=WorkerRole.CODER,
        description="Implementation, syntax and best practices",
        system_prompt=(
            "You are a coding specialist. Write clean, efficient code. Focus on "
            "implementation details, syntax, and best practices. You can read, write, "
            "create, and modify files to build working code."
        ),
    ),
    WorkerRole.ARCHITECT: CodingRole(
        name=WorkerRole.ARCHITECT,
        description="System structure and component breakdown",
        system_prompt=(
            "You are a software architect. Design system architecture, plan structure, "
            "and break down complex problems into components. Create file structures and "
            "organize code logically."
        ),
    ),
    WorkerRole.REVIEWER: CodingRole(
        name=WorkerRole.REVIEWER,
        description="Code quality, bugs and improvements",
        system_prompt=(
            "You are a code reviewer. Analyze code quality, find bugs, suggest "
            "improvements, and ensure best practices. Read files, identify issues, and "
            "propose fixes."
        ),
    ),
    WorkerRole.TESTER: CodingRole(
        name=WorkerRole.TESTER,
        description="Tests, edge cases and verification",
        system_prompt=(
            "You are a testing specialist. Write comprehensive tests, identify edge "
            "cases, and ensure code reliability. Create test files and verify code works "
            "correctly."
        ),
    ),
    WorkerRole.OPTIMIZER: CodingRole(
        name=WorkerRole.OPTIMIZER,
        description="Bottlenecks and performance",
        system_prompt=(
            "You are a performance optimizer. Analyze code for bottlenecks, optimize "
            "algorithms, and improve efficiency. Read code, identify issues, and rewrite "
            "for better performance."
        ),
    ),
    WorkerRole.RESEARCHER: CodingRole(
        name=WorkerRole.RESEARCHER,
        description="Comparing approaches and documenting findings",
        system_prompt=(
            "You are a research specialist. Investigate solutions, compare approaches, "
            "and provide technical insights. Research best practices and document findings."
        ),
    ),
    WorkerRole.DEBUGGER: CodingRole(
        name=WorkerRole.DEBUGGER,
        description="Root causes and fixes",
        system_prompt=(
            "You are a debugging specialist. Find and fix bugs in code. Read error "
            "messages, analyze code, identify root causes, and implement fixes. Test your "
            "fixes to ensure they work. Work autonomously until everything is fixed."
        ),
    ),
    WorkerRole.AUTONOMOUS: CodingRole(
        name=WorkerRole.AUTONOMOUS,
        description="End-to-end delivery without supervision",
        system_prompt=(
            "You are a fully autonomous coding agent. You work independently to complete "
            "tasks from start to finish. Create files, install dependencies, run servers, "
            "test applications, and fix any issues until everything works perfectly. You "
            "have full access to the file system and terminal."
        ),
    ),
}


def parse_role(name: str | WorkerRole) -> WorkerRole:
    """Return the role named *name*; unknown names raise ValueError."""
    try:
        return WorkerRole(str(name).lower())
    except ValueError:
        valid = ", ".join(list_roles())
        raise ValueError(f"Unknown role '{name}'. Valid roles: {valid}") from None


def get_role(name: str | WorkerRole) -> CodingRole | None:
    """Get a role by name."""
    try:
        return CODING_ROLES[WorkerRole(str(name).lower())]
    except ValueError:
        return None


def list_roles() -> list[str]:
    """List available role names in their enumerated order."""
    return [r.value for r in WorkerRole]


def get_role_prompt(name: str | WorkerRole) -> str:
    """System prompt for a role; unknown roles fall back to the coder prompt."""
    role = get_role(name)
    return (role or CODING_ROLES[WorkerRole.CODER]).system_prompt


def get_all_roles_info() -> list[dict[str, Any]]:
    """Get info about all roles for display purposes."""
    return [
        {"name": role.name.value, "description": role.description}
        for role in CODING_ROLES.values()
    ]


def select_responder(roles: Sequence[WorkerRole], turn: int) -> WorkerRole:
    """Pick which role answers swarm chat turn *turn* (round-robin)."""
    if not roles:
        raise ValueError("No roles to choose from")
    return roles[turn % len(roles)]
