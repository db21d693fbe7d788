"""LLM factory: LangChain chat models backed by LiteLLM, plus a single-turn helper."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from functools import lru_cache

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, SystemMessage

logger = logging.getLogger(__name__)


@lru_cache(maxsize=32)
def get_llm(
    model_name: str = "ollama/qwen2.5-coder",
    api_base: str | None = None,
    temperature: float = 0.7,
) -> BaseChatModel:
    """Return a cached LangChain chat model via LiteLLM.

    Supports any model string that LiteLLM understands:
      - "ollama/qwen2.5-coder" (with api_base "http://localhost:11434")
      - "gpt-4o" / "gpt-4o-mini"
      - "claude-sonnet-4-6"
      - etc.
    """
    from langchain_litellm import ChatLiteLLM  # type: ignore[import-untyped]

    return ChatLiteLLM(  # type: ignore[return-value]
        model=model_name,
        api_base=api_base or None,
        temperature=temperature,
    )


def message_text(message: BaseMessage) -> str:
    """Flatten a chat message's content into plain text."""
    content = message.content
    if isinstance(content, str):
        return content
    parts: list[str] = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(str(block.get("text", "")))
    return "".join(parts)


async def invoke_llm(
    llm: BaseChatModel,
    system_prompt: str,
    turns: Sequence[BaseMessage],
) -> str:
    """Send one request and return the response text.

    Provider errors are not caught here; callers decide what a failed turn
    means for the worker.
    """
    messages: list[BaseMessage] = [SystemMessage(content=system_prompt), *turns]
    logger.debug("Invoking LLM with %d messages", len(messages))
    response = await llm.ainvoke(messages)
    return message_text(response)
