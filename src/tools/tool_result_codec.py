from __future__ import annotations

import json
from typing import Any

from core.types import ToolCallResult

MAX_PAYLOAD_CHARS = 2000


def _is_json_primitive(obj: Any) -> bool:
    return obj is None or isinstance(obj, (str, int, float, bool))


def _is_json_friendly(obj: Any) -> bool:
    if _is_json_primitive(obj):
        return True
    if isinstance(obj, list):
        return all(_is_json_friendly(v) for v in obj)
    if isinstance(obj, dict):
        return all(isinstance(k, str) and _is_json_friendly(v) for k, v in obj.items())
    return False


def result_from_output(tool_name: str, output: Any) -> ToolCallResult:
    """Normalize whatever a handler returned into a ToolCallResult.

    - ToolCallResult: passed through, always under the routed tool name.
    - str: used verbatim as the payload.
    - JSON-friendly data: compact JSON, capped so the follow-up context does
      not flood the model.
    """

    if isinstance(output, ToolCallResult):
        if output.tool_name != tool_name:
            return ToolCallResult(
                tool_name=tool_name,
                succeeded=output.succeeded,
                payload=output.payload,
                failure_reason=output.failure_reason,
            )
        return output

    if isinstance(output, str):
        return ToolCallResult.ok(tool_name, output)

    if _is_json_friendly(output):
        text = json.dumps(output, ensure_ascii=False)
    else:
        text = repr(output)
    if len(text) > MAX_PAYLOAD_CHARS:
        text = text[:MAX_PAYLOAD_CHARS] + "..."
    return ToolCallResult.ok(tool_name, text)


def format_result(result: ToolCallResult) -> str:
    if result.succeeded:
        return f"Tool '{result.tool_name}' executed successfully:\n{result.payload}"
    return f"Tool '{result.tool_name}' failed: {result.failure_reason or 'Unknown error'}"


def format_results(results: list[ToolCallResult]) -> str:
    """Summary text fed back to the model, in execution order."""

    return "\n\n".join(format_result(r) for r in results)
