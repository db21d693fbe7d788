"""Tools workers act through: shell execution, command history and files."""

from swarmcode.tools.command_history import CommandHistory, CommandRecord
from swarmcode.tools.file_ops import FileEntry, Workspace
from swarmcode.tools.shell_exec import CommandExecutor, CommandResult, CommandRunner

__all__ = [
    "CommandExecutor",
    "CommandHistory",
    "CommandRecord",
    "CommandResult",
    "CommandRunner",
    "FileEntry",
    "Workspace",
]
