"""Swarm configuration dataclass and `.swarmcode.yml` loading."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

CONFIG_FILENAME = ".swarmcode.yml"

DEFAULT_MODEL = "ollama/qwen2.5-coder"
DEFAULT_API_BASE = "http://localhost:11434"


@dataclass
class MemoryLimits:
    """How much of a worker's memory is rendered into each prompt."""

    recent_operations: int = 10
    recent_errors: int = 5
    recent_learnings: int = 3


@dataclass
class SwarmConfig:
    """Configuration shared by every worker in a swarm.

    Can be loaded from the top level of `.swarmcode.yml`; the `permissions`
    and `safety` sections are read by their own components.
    """

    model_name: str = DEFAULT_MODEL
    api_base: str = DEFAULT_API_BASE
    temperature: float = 0.7
    max_iterations: int = 15
    auto_debug: bool = True
    command_timeout: float = 30.0
    history_size: int = 1000
    activity_size: int = 500
    memory: MemoryLimits = field(default_factory=MemoryLimits)
    permissions: dict[str, Any] = field(default_factory=dict)
    safety: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SwarmConfig:
        """Create config from a dictionary (e.g. from .swarmcode.yml)."""
        config = cls()
        if "model" in data:
            config.model_name = str(data["model"])
        if "model_name" in data:
            config.model_name = str(data["model_name"])
        if "api_base" in data:
            config.api_base = str(data["api_base"])
        if "temperature" in data:
            config.temperature = float(data["temperature"])
        if "max_iterations" in data:
            config.max_iterations = int(data["max_iterations"])
        if "auto_debug" in data:
            config.auto_debug = bool(data["auto_debug"])
        if "command_timeout" in data:
            config.command_timeout = float(data["command_timeout"])
        if "history_size" in data:
            config.history_size = int(data["history_size"])
        if "activity_size" in data:
            config.activity_size = int(data["activity_size"])
        memory = data.get("memory")
        if isinstance(memory, dict):
            config.memory = MemoryLimits(
                recent_operations=int(memory.get("recent_operations", 10)),
                recent_errors=int(memory.get("recent_errors", 5)),
                recent_learnings=int(memory.get("recent_learnings", 3)),
            )
        if isinstance(data.get("permissions"), dict):
            config.permissions = dict(data["permissions"])
        if isinstance(data.get("safety"), dict):
            config.safety = dict(data["safety"])
        return config


def load_config(cwd: str) -> dict[str, Any] | None:
    """Load config from .swarmcode.yml if it exists, else return None."""
    import yaml

    config_path = Path(cwd) / CONFIG_FILENAME
    if not config_path.exists():
        return None
    with config_path.open() as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else None


def load_swarm_config(cwd: str) -> SwarmConfig:
    """Load the swarm config for *cwd*, falling back to defaults."""
    data = load_config(cwd)
    if data:
        return SwarmConfig.from_dict(data)
    return SwarmConfig()
