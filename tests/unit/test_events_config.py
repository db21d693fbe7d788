"""Tests for the event bus and configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from swarmcode.config import DEFAULT_MODEL, SwarmConfig, load_config, load_swarm_config
from swarmcode.events.bus import AsyncEventBus
from swarmcode.events.types import AgentEvent


def _event(kind: str = "metrics", n: int = 0) -> AgentEvent:
    return AgentEvent(kind=kind, run_id="swarm", iteration=n)  # type: ignore[arg-type]


# ── AsyncEventBus ────────────────────────────────────────────────────────────


class TestAsyncEventBus:
    @pytest.mark.asyncio
    async def test_fan_out(self) -> None:
        bus = AsyncEventBus()
        q1 = await bus.subscribe()
        q2 = await bus.subscribe()
        await bus.publish(_event())
        assert q1.qsize() == 1
        assert q2.qsize() == 1

    @pytest.mark.asyncio
    async def test_full_queue_drops_instead_of_blocking(self) -> None:
        bus = AsyncEventBus(maxsize=2)
        q = await bus.subscribe()
        for i in range(5):
            bus.publish_nowait(_event(n=i))
        assert q.qsize() == 2
        assert bus.dropped == 3

    @pytest.mark.asyncio
    async def test_iter_events_ends_on_close(self) -> None:
        bus = AsyncEventBus()
        q = await bus.subscribe()
        await bus.publish(_event(n=1))
        await bus.publish(_event(n=2))
        await bus.close()
        got = [e.iteration async for e in bus.iter_events(q)]
        assert got == [1, 2]
        assert bus.closed

    @pytest.mark.asyncio
    async def test_close_with_full_queue_still_terminates(self) -> None:
        bus = AsyncEventBus(maxsize=1)
        q = await bus.subscribe()
        bus.publish_nowait(_event())
        await bus.close()
        assert [e async for e in bus.iter_events(q)] == []

    @pytest.mark.asyncio
    async def test_publish_after_close_is_ignored(self) -> None:
        bus = AsyncEventBus()
        q = await bus.subscribe()
        await bus.close()
        await bus.publish(_event())
        assert q.qsize() == 1  # only the end-of-stream marker

    @pytest.mark.asyncio
    async def test_unsubscribe(self) -> None:
        bus = AsyncEventBus()
        q = await bus.subscribe()
        bus.unsubscribe(q)
        await bus.publish(_event())
        assert q.empty()


def test_event_to_dict() -> None:
    data = AgentEvent(kind="operation", run_id="worker-1", iteration=2, payload={"k": 1}).to_dict()
    assert data["kind"] == "operation"
    assert data["payload"] == {"k": 1}


# ── Config ───────────────────────────────────────────────────────────────────


class TestConfig:
    def test_defaults(self) -> None:
        config = SwarmConfig()
        assert config.model_name == DEFAULT_MODEL
        assert config.max_iterations == 15
        assert config.auto_debug is True
        assert config.command_timeout == 30.0
        assert config.memory.recent_operations == 10

    def test_from_dict(self) -> None:
        config = SwarmConfig.from_dict(
            {
                "model": "gpt-4o-mini",
                "max_iterations": 5,
                "auto_debug": False,
                "memory": {"recent_errors": 2},
                "permissions": {"auto_approve": ["npm_install"]},
            }
        )
        assert config.model_name == "gpt-4o-mini"
        assert config.max_iterations == 5
        assert config.auto_debug is False
        assert config.memory.recent_errors == 2
        assert config.memory.recent_operations == 10
        assert config.permissions == {"auto_approve": ["npm_install"]}

    def test_load_missing_file(self, tmp_path: Path) -> None:
        assert load_config(str(tmp_path)) is None
        assert load_swarm_config(str(tmp_path)).model_name == DEFAULT_MODEL

    def test_load_yaml(self, tmp_path: Path) -> None:
        (tmp_path / ".swarmcode.yml").write_text(
            "model: ollama/llama3\ncommand_timeout: 5\nsafety:\n  block_at: high\n"
        )
        config = load_swarm_config(str(tmp_path))
        assert config.model_name == "ollama/llama3"
        assert config.command_timeout == 5.0
        assert config.safety == {"block_at": "high"}

    def test_non_mapping_yaml_is_ignored(self, tmp_path: Path) -> None:
        (tmp_path / ".swarmcode.yml").write_text("- just\n- a list\n")
        assert load_config(str(tmp_path)) is None
