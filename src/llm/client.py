"""Streaming completion providers.

The orchestrator only needs `stream(messages)`: an async iterator of content
and reasoning deltas. `ChatCompletionProvider` talks to any OpenAI-compatible
endpoint (OpenRouter by default) through LangChain's `ChatOpenAI`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, AsyncIterator, Iterable, Protocol, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import SecretStr

from core.config import LlmConfig
from core.types import ConversationMessage, Role

# Model-name fragments that stream a separate reasoning channel.
REASONING_MODELS = ("openai/o1", "o1-preview", "o1-mini", "o3-mini", "gpt-5")


@dataclass(frozen=True, slots=True)
class StreamChunk:
    content: str = ""
    reasoning: str = ""


class CompletionProvider(Protocol):
    def stream(self, messages: Sequence[ConversationMessage]) -> AsyncIterator[StreamChunk]: ...


def supports_reasoning(model: str) -> bool:
    return any(fragment in model for fragment in REASONING_MODELS)


def to_langchain_messages(messages: Iterable[ConversationMessage]) -> list[BaseMessage]:
    out: list[BaseMessage] = []
    for m in messages:
        if m.role is Role.SYSTEM:
            out.append(SystemMessage(content=m.content))
        elif m.role is Role.ASSISTANT:
            out.append(AIMessage(content=m.content))
        else:
            out.append(HumanMessage(content=m.content))
    return out


class ChatCompletionProvider:
    """OpenAI-compatible streaming chat completions."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        model: str,
        timeout_s: float = 60,
        max_retries: int = 2,
        temperature: float | None = None,
        include_reasoning: bool | None = None,
    ) -> None:
        if include_reasoning is None:
            include_reasoning = supports_reasoning(model)

        kwargs: dict[str, Any] = {}
        if temperature is not None:
            kwargs["temperature"] = temperature
        if include_reasoning:
            kwargs["extra_body"] = {"include_reasoning": True}

        self._model_name = model
        self._model = ChatOpenAI(
            model=model,
            api_key=SecretStr(api_key),
            base_url=base_url,
            timeout=timeout_s,
            max_retries=max_retries,
            streaming=True,
            **kwargs,
        )

    @classmethod
    def from_config(cls, cfg: LlmConfig) -> "ChatCompletionProvider":
        return cls(
            api_key=cfg.api_key,
            base_url=cfg.base_url,
            model=cfg.model,
            timeout_s=cfg.timeout_s,
            max_retries=cfg.max_retries,
            temperature=cfg.temperature,
            include_reasoning=cfg.include_reasoning,
        )

    @property
    def model(self) -> str:
        return self._model_name

    async def stream(self, messages: Sequence[ConversationMessage]) -> AsyncIterator[StreamChunk]:
        async for chunk in self._model.astream(to_langchain_messages(messages)):
            # LangChain streams AIMessageChunk objects.
            content = getattr(chunk, "content", None)
            text = content if isinstance(content, str) else ""
            reasoning = _extract_reasoning_delta(chunk)
            if text or reasoning:
                yield StreamChunk(content=text, reasoning=reasoning)


def _extract_reasoning_delta(chunk: Any) -> str:
    """Best-effort extraction of reasoning text from a streamed chunk.

    Providers disagree on the key, so this stays tolerant and non-fatal.
    """

    additional = getattr(chunk, "additional_kwargs", None)
    meta = getattr(chunk, "response_metadata", None)

    for container in (additional, meta):
        if not isinstance(container, dict):
            continue
        for key in ("reasoning_content", "reasoning"):
            value = container.get(key)
            if isinstance(value, str) and value:
                return value
    return ""


class ScriptedCompletionProvider:
    """Replays canned responses, one per `stream` call.

    Each response is a string (split into `chunk_size` pieces) or an explicit
    sequence of chunks. Requests are recorded for assertions.
    """

    def __init__(
        self,
        responses: Iterable[str | Sequence[str | StreamChunk]],
        *,
        chunk_size: int = 4,
        repeat_last: bool = False,
    ) -> None:
        self._responses = list(responses)
        self._chunk_size = max(1, chunk_size)
        self._repeat_last = repeat_last
        self.requests: list[list[ConversationMessage]] = []

    def _next_response(self) -> str | Sequence[str | StreamChunk]:
        if not self._responses:
            raise RuntimeError("scripted provider has no responses left")
        if self._repeat_last and len(self._responses) == 1:
            return self._responses[0]
        return self._responses.pop(0)

    def _chunks(self, response: str | Sequence[str | StreamChunk]) -> list[StreamChunk]:
        if isinstance(response, str):
            size = self._chunk_size
            return [StreamChunk(content=response[i:i + size]) for i in range(0, len(response), size)]
        return [c if isinstance(c, StreamChunk) else StreamChunk(content=c) for c in response]

    async def stream(self, messages: Sequence[ConversationMessage]) -> AsyncIterator[StreamChunk]:
        self.requests.append(list(messages))
        for chunk in self._chunks(self._next_response()):
            yield chunk
