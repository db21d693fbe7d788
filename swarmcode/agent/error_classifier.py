"""Heuristic classification of failed command output into actionable advice."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class ErrorCategory(StrEnum):
    TIMEOUT = "timeout"
    COMMAND_NOT_FOUND = "command_not_found"
    MODULE_NOT_FOUND = "module_not_found"
    FILE_NOT_FOUND = "file_not_found"
    SYNTAX_ERROR = "syntax_error"
    PORT_IN_USE = "port_in_use"
    PERMISSION_DENIED = "permission_denied"
    CONNECTION_REFUSED = "connection_refused"
    UNKNOWN = "unknown"


@dataclass
class ErrorAnalysis:
    """Advice derived from one failed command."""

    category: ErrorCategory
    severity: str
    guidance: list[str] = field(default_factory=list)
    suggested_fixes: list[str] = field(default_factory=list)
    command: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "severity": self.severity,
            "guidance": list(self.guidance),
            "suggested_fixes": list(self.suggested_fixes),
            "command": self.command,
        }


# Words that make command output count as an error even on exit code 0.
# Plain substring match, so "0 errors" counts too.
ERROR_MARKERS = ("error", "failed", "exception", "cannot find", "not found")

_TIMEOUT_MARKERS = ("timed out after",)
_COMMAND_NOT_FOUND_MARKERS = ("command not found", "is not recognized", "der befehl")
_MODULE_MARKERS = (
    "cannot find module",
    "module not found",
    "no module named",
    "modulenotfounderror",
    "cannot resolve",
)
_SYNTAX_MARKERS = (
    "syntaxerror",
    "syntax error",
    "unexpected token",
    "parse error",
    "indentationerror",
)
_FILE_MARKERS = ("no such file", "enoent", "cannot find", "not found", "filenotfounderror")
_PERMISSION_MARKERS = ("permission denied", "eacces", "access denied")
_CONNECTION_MARKERS = ("econnrefused", "connection", "network")

_MODULE_TARGET_RE = re.compile(
    r"""(?:cannot find module|no module named|cannot resolve)\s+['"]([^'"\n]+)['"]""",
    re.IGNORECASE,
)
_SOURCE_EXT_RE = re.compile(r"\.(?:js|ts|json|mjs|cjs|jsx|tsx|py)$", re.IGNORECASE)


def _has_any(text: str, markers: tuple[str, ...]) -> bool:
    return any(marker in text for marker in markers)


def mentions_error(output: str) -> bool:
    """True when *output* contains any of the error marker words."""
    return _has_any(output.lower(), ERROR_MARKERS)


def _missing_source_path(output: str) -> str | None:
    """Return the module that failed to load when it names a file path."""
    for m in _MODULE_TARGET_RE.finditer(output):
        target = m.group(1)
        if _SOURCE_EXT_RE.search(target) or target.startswith(("/", "./", "../")):
            return target
    return None


def classify_error(command: str, output: str, *, timed_out: bool = False) -> ErrorAnalysis:
    """Classify a failed command by its output.

    Heuristics are checked in order and the first match wins, so specific
    phrases ("command not found", "cannot find module") are tested before
    the generic "not found".
    """
    text = output.lower()

    if timed_out or _has_any(text, _TIMEOUT_MARKERS):
        return ErrorAnalysis(
            ErrorCategory.TIMEOUT,
            "medium",
            [
                "The command did not finish before the time limit and was killed.",
                "Long-running processes such as servers never exit on their own.",
            ],
            [
                "Avoid starting servers or watchers as a verification step",
                "Run a script that exits once it has printed its result",
                "Check for infinite loops or blocking input reads",
            ],
            command,
        )

    if _has_any(text, _COMMAND_NOT_FOUND_MARKERS):
        return ErrorAnalysis(
            ErrorCategory.COMMAND_NOT_FOUND,
            "high",
            [
                "The command you tried to run does not exist or is not in PATH.",
                "This often means the tool needs to be installed first.",
                "On Windows, some commands have different names (dir vs ls).",
            ],
            [
                "Install the required tool: npm install, pip install, etc.",
                "Check if the command name is correct for your OS",
                "Use full path to the executable if needed",
                "Verify the tool is installed: which <command> or where <command>",
            ],
            command,
        )

    if _has_any(text, _MODULE_MARKERS):
        missing = _missing_source_path(output)
        if missing is not None:
            return ErrorAnalysis(
                ErrorCategory.FILE_NOT_FOUND,
                "high",
                [
                    f"The system is trying to load a file that does not exist: {missing}",
                    "A 'Cannot find module' error for a path usually means the file is missing.",
                    "Check if the file was created before trying to run it.",
                ],
                [
                    "Run ls (or dir) to see what files are in the directory",
                    f"Verify the file path: {missing} (typos, wrong directory)",
                    "If the file should exist, create it first before running the command",
                    "Verify the file extension matches (.js, .ts, .json, .py)",
                ],
                command,
            )
        return ErrorAnalysis(
            ErrorCategory.MODULE_NOT_FOUND,
            "high",
            [
                "A required module or package is missing.",
                "You need to install dependencies first.",
                "Check if package.json or requirements.txt lists the dependency.",
            ],
            [
                "Run npm install or pip install to install dependencies",
                "Check if package.json or requirements.txt exists",
                "Add the missing dependency to the manifest if needed",
                "Verify the import/require statement is correct",
            ],
            command,
        )

    if _has_any(text, _SYNTAX_MARKERS):
        return ErrorAnalysis(
            ErrorCategory.SYNTAX_ERROR,
            "high",
            [
                "There is a syntax error in your code.",
                "Check the line number mentioned in the error.",
                "Look for missing brackets, quotes, or semicolons.",
            ],
            [
                "Rewrite the file and check the syntax around the error line",
                "Look for missing closing brackets, quotes, or parentheses",
                "Check for typos in keywords or variable names",
            ],
            command,
        )

    if _has_any(text, _FILE_MARKERS):
        return ErrorAnalysis(
            ErrorCategory.FILE_NOT_FOUND,
            "high",
            [
                "The system is trying to access a file that does not exist.",
                "Check if the file path is correct.",
                "Verify the file was created before trying to use it.",
            ],
            [
                "Run ls (or dir) to check what files exist in the directory",
                "Verify the file path is correct (check for typos, wrong directory)",
                "Create the file if it should exist but doesn't",
                "Check if you need to change directories first",
            ],
            command,
        )

    if "eaddrinuse" in text or ("port" in text and "already in use" in text):
        return ErrorAnalysis(
            ErrorCategory.PORT_IN_USE,
            "medium",
            [
                "The port you're trying to use is already occupied.",
                "Another process is running on that port.",
            ],
            [
                "Use a different port number in your server configuration",
                "Stop any existing processes using that port",
                "Check what process is using the port: netstat or lsof",
            ],
            command,
        )

    if _has_any(text, _PERMISSION_MARKERS):
        return ErrorAnalysis(
            ErrorCategory.PERMISSION_DENIED,
            "high",
            [
                "You don't have permission to perform this action.",
                "The system may need approval for this command.",
            ],
            [
                "Wait for permission approval if the system requests it",
                "Check file/directory permissions",
                "Write to a path inside the project instead",
            ],
            command,
        )

    if _has_any(text, _CONNECTION_MARKERS):
        return ErrorAnalysis(
            ErrorCategory.CONNECTION_REFUSED,
            "medium",
            [
                "A network connection failed.",
                "The server might not be running yet.",
            ],
            [
                "Start the server first before trying to connect",
                "Check if the URL/port is correct",
                "Verify the service is running: check process list",
            ],
            command,
        )

    return ErrorAnalysis(
        ErrorCategory.UNKNOWN,
        "medium",
        [
            "The command failed without a recognised error pattern.",
            "Read the full output above for the actual cause.",
        ],
        [
            "Read the complete error output carefully",
            "Simplify the command and run it again to isolate the problem",
        ],
        command,
    )
