from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union

# JSON-native values produced by the parameter decoder.
JsonValue = Union[str, int, float, bool, None, list[Any], dict[str, Any]]


@dataclass(frozen=True, slots=True)
class ToolCall:
    """One `[TOOL_CALL: ...]` marker found in a model response."""

    name: str
    parameters: dict[str, JsonValue]
    raw_text: str
    span: tuple[int, int]
    raw_parameters: str | None = None
    parameter_errors: dict[str, str] = field(default_factory=dict)

    @property
    def start(self) -> int:
        return self.span[0]

    @property
    def end(self) -> int:
        return self.span[1]


@dataclass(frozen=True, slots=True)
class ToolCallResult:
    tool_name: str
    succeeded: bool
    payload: str = ""
    failure_reason: str | None = None

    @classmethod
    def ok(cls, tool_name: str, payload: str) -> "ToolCallResult":
        return cls(tool_name=tool_name, succeeded=True, payload=payload)

    @classmethod
    def failed(cls, tool_name: str, reason: str) -> "ToolCallResult":
        return cls(tool_name=tool_name, succeeded=False, failure_reason=reason)


@dataclass(frozen=True, slots=True)
class ProcessedTurn:
    visible_text: str
    results: list[ToolCallResult]
    has_pending_follow_up: bool
    calls: list[ToolCall] = field(default_factory=list)


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class ConversationMessage:
    """Immutable chat log entry.

    Messages are never edited in place. A streamed reply is recorded once,
    after its stream has finished.
    """

    role: Role
    content: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    reasoning: str | None = None
    timestamp: datetime = field(default_factory=_utcnow)
    attachments: tuple[str, ...] = ()

    @classmethod
    def user(cls, content: str, *, timestamp: datetime | None = None, attachments: tuple[str, ...] = ()) -> "ConversationMessage":
        return cls(role=Role.USER, content=content, timestamp=timestamp or _utcnow(), attachments=attachments)

    @classmethod
    def assistant(
        cls,
        content: str,
        *,
        reasoning: str | None = None,
        timestamp: datetime | None = None,
    ) -> "ConversationMessage":
        return cls(role=Role.ASSISTANT, content=content, reasoning=reasoning, timestamp=timestamp or _utcnow())

    @classmethod
    def system(cls, content: str, *, timestamp: datetime | None = None) -> "ConversationMessage":
        return cls(role=Role.SYSTEM, content=content, timestamp=timestamp or _utcnow())


class TurnStatus(str, Enum):
    COMPLETED = "completed"
    MAX_TURNS_REACHED = "max_turns_reached"
    CANCELLED = "cancelled"
