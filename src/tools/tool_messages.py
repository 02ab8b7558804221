from __future__ import annotations

from datetime import datetime

from core.types import ConversationMessage, ToolCallResult

from .tool_result_codec import format_results


def context_message_from_results(results: list[ToolCallResult], *, timestamp: datetime | None = None) -> ConversationMessage:
    """Build the synthetic system message that carries tool results to the next turn.

    Result N in the message always belongs to the Nth call of the turn.
    """

    return ConversationMessage.system(format_results(results), timestamp=timestamp)
