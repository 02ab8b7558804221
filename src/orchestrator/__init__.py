"""Multi-turn response orchestration."""

from __future__ import annotations

from .orchestrator import (
    ContextAppended,
    OrchestratorEvent,
    ReasoningDelta,
    ResponseOrchestrator,
    RunFinished,
    TextDelta,
    ToolActivity,
    ToolPhase,
    TurnCompleted,
    TurnState,
)
from .streaming import MarkerStreamFilter

__all__ = [
    "ContextAppended",
    "MarkerStreamFilter",
    "OrchestratorEvent",
    "ReasoningDelta",
    "ResponseOrchestrator",
    "RunFinished",
    "TextDelta",
    "ToolActivity",
    "ToolPhase",
    "TurnCompleted",
    "TurnState",
]
