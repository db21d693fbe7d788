"""Extract file and shell operations from free-form LLM responses."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Protocol

from swarmcode.agent.operations import Operation

logger = logging.getLogger(__name__)

# A quoted literal in ', " or ` quotes with backslash escapes.
_Q1 = r"""(['"`])((?:\\.|(?!\1)[^\\])*)\1"""
_Q2 = r"""(['"`])((?:\\.|(?!\3)[^\\])*)\3"""

_WRITE_RE = re.compile(
    r"(?<![\w.$])(?:writeFile|createFile|saveFile)\s*\(\s*" + _Q1 + r"\s*,\s*" + _Q2 + r"\s*\)",
    re.DOTALL,
)
_DELETE_RE = re.compile(
    r"(?<![\w.$])(?:deleteFile|removeFile)\s*\(\s*" + _Q1 + r"\s*\)",
    re.DOTALL,
)
_EXECUTE_RE = re.compile(
    r"(?<![\w.$])(?:executeCommand|runCommand|exec)\s*\(\s*" + _Q1 + r"\s*\)",
    re.DOTALL,
)

_CODE_BLOCK_RE = re.compile(r"```[\w+#.-]*[ \t]*\n(.*?)```", re.DOTALL)
_FILE_HINT_RE = re.compile(r"""(?:file|path|filename)[:\s]+['"`]?([^\s'"`]+\.\w+)""", re.IGNORECASE)
_HINT_WINDOW = 200

# Blocks that spell out operations are instructions, not file bodies.
_PSEUDO_CALL_RE = re.compile(
    r"\b(?:writeFile|createFile|saveFile|deleteFile|removeFile|executeCommand|runCommand)\s*\("
)
_PSEUDO_COMMAND_RE = re.compile(
    r"^(?:listFiles|readFile|loadFile|writeFile|createFile|saveFile|deleteFile|removeFile)\b",
    re.IGNORECASE,
)

_ESCAPE_RE = re.compile(r"\\(.)", re.DOTALL)
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}


def decode_escapes(literal: str) -> str:
    r"""Decode ``\n``, ``\t`` and ``\r``; any other escaped char stands for itself."""
    return _ESCAPE_RE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(1)), literal)


class OperationParser(Protocol):
    """Turns an LLM response into an ordered list of operations."""

    def parse(self, text: str) -> list[Operation]: ...


class RegexOperationParser:
    """Recognises pseudo-function calls and file-tagged code blocks.

    Supported forms::

        writeFile("app.js", "console.log('hi')")
        deleteFile('old.js')
        executeCommand(`node app.js`)

        File: app.js
        ```js
        console.log('hi')
        ```

    Operations come back in the order they appear in the text.
    """

    def parse(self, text: str) -> list[Operation]:
        found: list[tuple[int, Operation]] = []
        # text owned by a file body; calls inside it are content, not instructions
        claimed: list[tuple[int, int]] = []

        for m in _WRITE_RE.finditer(text):
            path, content = decode_escapes(m.group(2)), decode_escapes(m.group(4))
            found.append((m.start(), Operation.write(path, content)))
            claimed.append(m.span())

        for start, end, op in self._implicit_writes(text):
            found.append((start, op))
            claimed.append((start, end))

        def inside_body(pos: int) -> bool:
            return any(start < pos < end for start, end in claimed)

        for m in _DELETE_RE.finditer(text):
            if inside_body(m.start()):
                continue
            found.append((m.start(), Operation.delete(decode_escapes(m.group(2)))))

        for m in _EXECUTE_RE.finditer(text):
            if inside_body(m.start()):
                logger.debug("Skipping call inside file content at offset %d", m.start())
                continue
            command = decode_escapes(m.group(2)).strip()
            if not command or _PSEUDO_COMMAND_RE.match(command):
                logger.debug("Skipping pseudo-command: %r", command)
                continue
            found.append((m.start(), Operation.execute(command)))

        found.sort(key=lambda item: item[0])
        return [op for _, op in found]

    def _implicit_writes(self, text: str) -> list[tuple[int, int, Operation]]:
        writes: list[tuple[int, int, Operation]] = []
        prev_end = 0
        for m in _CODE_BLOCK_RE.finditer(text):
            body = m.group(1)
            window = text[max(prev_end, m.start() - _HINT_WINDOW) : m.start()]
            prev_end = m.end()
            if _PSEUDO_CALL_RE.search(body):
                continue
            hints = _FILE_HINT_RE.findall(window)
            if hints:
                # the hint closest to the block wins
                writes.append((m.start(), m.end(), Operation.write(hints[-1], body)))
        return writes


_JSON_BLOCK_RE = re.compile(r"```json[ \t]*\n(.*?)```", re.DOTALL | re.IGNORECASE)


class JsonOperationParser:
    """Parses a structured action list instead of pseudo-calls.

    Accepts a JSON array (or ``{"actions": [...]}``), either bare or inside a
    ```json fence. Items look like ``{"action": "write", "path": ..., "content": ...}``.
    Malformed input yields no operations.
    """

    def parse(self, text: str) -> list[Operation]:
        block = _JSON_BLOCK_RE.search(text)
        raw = block.group(1) if block else text.strip()
        try:
            data: Any = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("Response is not a JSON action list")
            return []
        if isinstance(data, dict):
            data = data.get("actions", [])
        if not isinstance(data, list):
            return []

        ops: list[Operation] = []
        for item in data:
            op = _operation_from_item(item)
            if op is not None:
                ops.append(op)
        return ops


def _operation_from_item(item: Any) -> Operation | None:
    if not isinstance(item, dict):
        return None
    action = str(item.get("action", "")).lower()
    if action == "write" and isinstance(item.get("path"), str):
        return Operation.write(item["path"], str(item.get("content", "")))
    if action == "delete" and isinstance(item.get("path"), str):
        return Operation.delete(item["path"])
    if action == "execute" and isinstance(item.get("command"), str) and item["command"].strip():
        return Operation.execute(item["command"].strip())
    return None
