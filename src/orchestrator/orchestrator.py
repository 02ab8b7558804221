from __future__ import annotations

import asyncio
import time
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Callable, Iterable, Sequence, Union

from core.clock import Clock, SystemClock
from core.config import AppConfig
from core.errors import OrchestratorBusy, ProviderError
from core.types import ConversationMessage, ProcessedTurn, ToolCall, ToolCallResult, TurnStatus
from llm.client import CompletionProvider, StreamChunk
from observability import add_error, bind_context, get_logger, set_state, set_turn
from observability.ids import new_conversation_id, new_trace_id
from tools.detector import detect_calls, visible_text
from tools.params import DEFAULT_JSON_KEYS
from tools.router import CALL_LIMIT_REACHED, CallRouter
from tools.tool_messages import context_message_from_results

from .streaming import MarkerStreamFilter

DEFAULT_MAX_TURNS = 5
DEFAULT_EMPTY_RESPONSE = (
    "I've processed your request, but encountered an issue generating a response. Please try again."
)


class TurnState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    DETECTING = "detecting"
    EXECUTING = "executing"
    AWAITING_FOLLOW_UP = "awaiting_follow_up"


class ToolPhase(str, Enum):
    # Marker closed while the reply was still streaming.
    DETECTED = "detected"
    STARTED = "started"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class TextDelta:
    text: str


@dataclass(frozen=True, slots=True)
class ReasoningDelta:
    text: str


@dataclass(frozen=True, slots=True)
class ToolActivity:
    phase: ToolPhase
    tool_name: str
    description: str = ""
    result: ToolCallResult | None = None


@dataclass(frozen=True, slots=True)
class TurnCompleted:
    message: ConversationMessage


@dataclass(frozen=True, slots=True)
class ContextAppended:
    message: ConversationMessage


@dataclass(frozen=True, slots=True)
class RunFinished:
    status: TurnStatus
    turns: int
    # Messages appended by this run, user message first.
    messages: tuple[ConversationMessage, ...]


OrchestratorEvent = Union[TextDelta, ReasoningDelta, ToolActivity, TurnCompleted, ContextAppended, RunFinished]


def _default_description(name: str) -> str:
    return name.replace("_", " ")


class ResponseOrchestrator:
    """Streaming multi-turn loop: model speaks, tools run, model speaks again.

    One run at a time per instance. History passed to `run_turn` is never
    mutated; new messages come back through the events.
    """

    def __init__(
        self,
        *,
        provider: CompletionProvider,
        router: CallRouter,
        max_turns: int = DEFAULT_MAX_TURNS,
        stream_timeout_s: float | None = None,
        empty_response_fallback: str = DEFAULT_EMPTY_RESPONSE,
        json_keys: Iterable[str] = DEFAULT_JSON_KEYS,
        describe: Callable[[str], str] | None = None,
        clock: Clock | None = None,
        conversation_id: str | None = None,
    ) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be >= 1")
        self._provider = provider
        self._router = router
        self._max_turns = int(max_turns)
        self._stream_timeout_s = stream_timeout_s if stream_timeout_s and stream_timeout_s > 0 else None
        self._fallback = empty_response_fallback
        self._json_keys = tuple(json_keys)
        self._describe = describe or _default_description
        self._clock = clock or SystemClock()
        self._conversation_id = conversation_id or new_conversation_id()
        self._running = False
        self._cancel_requested = False
        self._state = TurnState.IDLE
        self._log = get_logger("trainer.orchestrator")

    @classmethod
    def from_config(
        cls,
        cfg: AppConfig,
        *,
        provider: CompletionProvider,
        router: CallRouter,
        describe: Callable[[str], str] | None = None,
        clock: Clock | None = None,
    ) -> "ResponseOrchestrator":
        return cls(
            provider=provider,
            router=router,
            max_turns=cfg.orchestrator.max_turns,
            stream_timeout_s=cfg.orchestrator.stream_timeout_s,
            empty_response_fallback=cfg.orchestrator.empty_response_fallback,
            json_keys=cfg.tools.json_payload_keys,
            describe=describe,
            clock=clock,
        )

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def running(self) -> bool:
        return self._running

    def cancel(self) -> None:
        """Stop the current run at the next chunk or before the next tool.

        Calls that were still streaming are never executed. Cancelling the
        task that consumes `run_turn` works too and stops immediately.
        """

        if self._running:
            self._cancel_requested = True

    async def process_response(self, text: str) -> ProcessedTurn:
        """Detect, execute and strip every call in one complete response."""

        calls = detect_calls(text, json_keys=self._json_keys)
        results = await self._router.route_all(calls)
        return ProcessedTurn(
            visible_text=visible_text(text, calls),
            results=results,
            has_pending_follow_up=bool(calls),
            calls=calls,
        )

    async def run_turn(
        self,
        history: Sequence[ConversationMessage],
        new_user_message: ConversationMessage,
    ) -> AsyncIterator[OrchestratorEvent]:
        if self._running:
            raise OrchestratorBusy("a run is already in progress for this conversation")
        self._running = True
        self._cancel_requested = False

        bind_context(trace_id=new_trace_id(), conversation_id=self._conversation_id)
        log_messages = [*history, new_user_message]
        appended: list[ConversationMessage] = [new_user_message]
        status = TurnStatus.COMPLETED
        turn = 0
        t_run = time.perf_counter()

        try:
            while True:
                turn += 1
                set_turn(turn)
                self._enter(TurnState.STREAMING)

                stream_filter = MarkerStreamFilter(json_keys=self._json_keys)
                reasoning_parts: list[str] = []
                t0 = time.perf_counter()
                try:
                    async with aclosing(self._chunks(log_messages)) as chunks:
                        async for chunk in chunks:
                            if self._cancel_requested:
                                break
                            if chunk.reasoning:
                                reasoning_parts.append(chunk.reasoning)
                                yield ReasoningDelta(chunk.reasoning)
                            if chunk.content:
                                out = stream_filter.feed(chunk.content)
                                for scan in out.closed:
                                    yield ToolActivity(ToolPhase.DETECTED, scan.name, self._describe(scan.name))
                                if out.text:
                                    yield TextDelta(out.text)
                except ProviderError as e:
                    add_error(str(e))
                    self._log.error("stream_failed", error=str(e))
                    flushed = stream_filter.emitted.strip()
                    if flushed:
                        msg = ConversationMessage.assistant(
                            flushed,
                            reasoning="".join(reasoning_parts) or None,
                            timestamp=self._clock.now(),
                        )
                        appended.append(msg)
                        yield TurnCompleted(msg)
                    raise

                if self._cancel_requested:
                    status = TurnStatus.CANCELLED
                    break

                self._enter(TurnState.DETECTING)
                tail = stream_filter.finish()
                if tail:
                    yield TextDelta(tail)

                text = stream_filter.text
                calls = detect_calls(text, json_keys=self._json_keys)
                visible = visible_text(text, calls).strip()
                reasoning = "".join(reasoning_parts) or None
                self._log.info(
                    "turn_streamed",
                    latency_ms=round((time.perf_counter() - t0) * 1000, 2),
                    chars=len(text),
                    calls=len(calls),
                )

                if not calls:
                    msg = ConversationMessage.assistant(
                        visible or self._fallback,
                        reasoning=reasoning,
                        timestamp=self._clock.now(),
                    )
                    if not visible:
                        self._log.warning("empty_response_fallback")
                    appended.append(msg)
                    yield TurnCompleted(msg)
                    break

                if visible:
                    msg = ConversationMessage.assistant(visible, reasoning=reasoning, timestamp=self._clock.now())
                    log_messages.append(msg)
                    appended.append(msg)
                    yield TurnCompleted(msg)

                self._enter(TurnState.EXECUTING)
                results: list[ToolCallResult] = []
                async for event in self._execute(calls, results):
                    yield event
                if self._cancel_requested:
                    status = TurnStatus.CANCELLED
                    break

                self._enter(TurnState.AWAITING_FOLLOW_UP)
                context = context_message_from_results(results, timestamp=self._clock.now())
                log_messages.append(context)
                appended.append(context)
                yield ContextAppended(context)

                if turn >= self._max_turns:
                    self._log.warning("max_turns_reached", max_turns=self._max_turns)
                    status = TurnStatus.MAX_TURNS_REACHED
                    break

            self._log.info(
                "run_finished",
                status=status.value,
                turns=turn,
                latency_ms=round((time.perf_counter() - t_run) * 1000, 2),
            )
            yield RunFinished(status=status, turns=turn, messages=tuple(appended))
        finally:
            self._running = False
            self._cancel_requested = False
            self._enter(TurnState.IDLE)

    async def _execute(self, calls: list[ToolCall], results: list[ToolCallResult]) -> AsyncIterator[ToolActivity]:
        """Run calls in source order, appending to `results` as they finish."""

        for index, call in enumerate(calls):
            if self._cancel_requested:
                self._log.info("tools_skipped_on_cancel", remaining=len(calls) - index)
                return

            description = self._describe(call.name)
            if not self._router.within_limit(index):
                result = ToolCallResult.failed(call.name, CALL_LIMIT_REACHED)
            else:
                yield ToolActivity(ToolPhase.STARTED, call.name, description)
                result = await self._router.route(call)
            results.append(result)
            yield ToolActivity(ToolPhase.COMPLETED, call.name, description, result)

    async def _chunks(self, messages: Sequence[ConversationMessage]) -> AsyncIterator[StreamChunk]:
        """Provider stream with an idle timeout; every failure becomes ProviderError."""

        iterator = self._provider.stream(list(messages)).__aiter__()
        try:
            while True:
                try:
                    if self._stream_timeout_s is not None:
                        chunk = await asyncio.wait_for(iterator.__anext__(), timeout=self._stream_timeout_s)
                    else:
                        chunk = await iterator.__anext__()
                except StopAsyncIteration:
                    return
                except asyncio.TimeoutError as e:
                    raise ProviderError(f"no stream data for {self._stream_timeout_s:g}s") from e
                except ProviderError:
                    raise
                except Exception as e:  # noqa: BLE001
                    raise ProviderError(str(e) or type(e).__name__) from e
                yield chunk
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

    def _enter(self, state: TurnState) -> None:
        self._state = state
        set_state(state.value)
