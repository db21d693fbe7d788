from swarmcode.events.bus import AsyncEventBus
from swarmcode.events.types import AgentEvent

__all__ = ["AgentEvent", "AsyncEventBus"]
