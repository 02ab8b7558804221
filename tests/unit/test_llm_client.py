from __future__ import annotations

import asyncio
from types import SimpleNamespace

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from core.config import LlmConfig
from core.types import ConversationMessage
from llm.client import (
    ChatCompletionProvider,
    ScriptedCompletionProvider,
    StreamChunk,
    _extract_reasoning_delta,
    supports_reasoning,
    to_langchain_messages,
)


def _drain(provider: ScriptedCompletionProvider, messages: list[ConversationMessage]) -> list[StreamChunk]:
    async def main() -> list[StreamChunk]:
        return [c async for c in provider.stream(messages)]

    return asyncio.run(main())


def test_scripted_provider_chunks_and_records() -> None:
    provider = ScriptedCompletionProvider(["abcdefg", ["x", StreamChunk(reasoning="r")]], chunk_size=3)
    msgs = [ConversationMessage.user("hi")]

    assert [c.content for c in _drain(provider, msgs)] == ["abc", "def", "g"]
    assert _drain(provider, msgs) == [StreamChunk(content="x"), StreamChunk(reasoning="r")]
    assert len(provider.requests) == 2
    assert provider.requests[0][0].content == "hi"


def test_message_conversion_keeps_roles() -> None:
    out = to_langchain_messages(
        [
            ConversationMessage.system("ctx"),
            ConversationMessage.user("q"),
            ConversationMessage.assistant("a"),
        ]
    )
    assert [type(m) for m in out] == [SystemMessage, HumanMessage, AIMessage]
    assert [m.content for m in out] == ["ctx", "q", "a"]


def test_reasoning_delta_extraction() -> None:
    assert _extract_reasoning_delta(SimpleNamespace(additional_kwargs={"reasoning_content": "hmm"})) == "hmm"
    assert _extract_reasoning_delta(SimpleNamespace(additional_kwargs={}, response_metadata={"reasoning": "ok"})) == "ok"
    assert _extract_reasoning_delta(SimpleNamespace(content="x")) == ""


def test_supports_reasoning() -> None:
    assert supports_reasoning("openai/gpt-5")
    assert supports_reasoning("openai/o3-mini")
    assert not supports_reasoning("meta-llama/llama-3-70b")


def test_provider_from_config_builds_offline() -> None:
    cfg = LlmConfig(api_key="k_fake", model="meta-llama/llama-3-70b", temperature=0.2)
    provider = ChatCompletionProvider.from_config(cfg)
    assert provider.model == "meta-llama/llama-3-70b"
