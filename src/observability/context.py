from __future__ import annotations

from contextvars import ContextVar


_trace_id: ContextVar[str | None] = ContextVar("trace_id", default=None)
_conversation_id: ContextVar[str | None] = ContextVar("conversation_id", default=None)
_turn: ContextVar[int | None] = ContextVar("turn", default=None)
_state: ContextVar[str | None] = ContextVar("state", default=None)
_errors: ContextVar[list[str] | None] = ContextVar("errors", default=None)


def bind_context(*, trace_id: str, conversation_id: str) -> None:
    """Start a fresh logging context for one orchestrator run."""

    _trace_id.set(trace_id)
    _conversation_id.set(conversation_id)
    _turn.set(0)
    _state.set(None)
    _errors.set([])


def set_turn(turn: int) -> None:
    _turn.set(turn)


def set_state(state: str) -> None:
    _state.set(state)


def add_error(message: str) -> None:
    errs = list(_errors.get() or [])
    errs.append(message)
    _errors.set(errs)


def snapshot() -> dict[str, object]:
    """Return a snapshot of current observability context for logging."""

    out: dict[str, object] = {}
    if (v := _trace_id.get()) is not None:
        out["trace_id"] = v
    if (v := _conversation_id.get()) is not None:
        out["conversation_id"] = v
    if (v := _turn.get()) is not None:
        out["turn"] = v
    if (v := _state.get()) is not None:
        out["state"] = v
    if errs := _errors.get():
        out["errors"] = list(errs)
    return out
