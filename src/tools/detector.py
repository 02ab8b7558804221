"""Find `[TOOL_CALL: ...]` markers in free-form model output.

The regex only matches the envelope head (opener + tool name). Where the
parameter group ends is decided by a quote/bracket-aware scan, because the
group may hold JSON with its own parentheses, brackets and quotes. If quotes
are unbalanced, the first ``)`` followed by ``]`` closes the group.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from core.types import ToolCall

from .params import DEFAULT_JSON_KEYS, decode_parameters

MARKER_OPEN = "[TOOL_CALL:"

_NAME_RE = re.compile(r"[A-Za-z0-9_]+")
_FALLBACK_CLOSE_RE = re.compile(r"\)\s*\]")


class MarkerStatus(str, Enum):
    COMPLETE = "complete"
    # Could still close once more text arrives (streaming only).
    INCOMPLETE = "incomplete"
    # The text ended before the marker closed.
    TRUNCATED = "truncated"
    INVALID = "invalid"


@dataclass(frozen=True, slots=True)
class MarkerScan:
    status: MarkerStatus
    start: int
    end: int = -1
    name: str = ""
    raw_parameters: str | None = None


def _skip_ws(text: str, i: int) -> int:
    while i < len(text) and text[i].isspace():
        i += 1
    return i


def _group_close(text: str, open_idx: int) -> tuple[str, int, int]:
    """Scan the parameter group opened at `open_idx`.

    Returns ``(outcome, paren_idx, marker_end)`` where outcome is ``"found"``,
    ``"more"`` (text ran out) or ``"failed"`` (a top-level ``)`` not followed
    by ``]``).
    """

    n = len(text)
    depth = 0
    in_str = False
    i = open_idx + 1
    while i < n:
        ch = text[i]
        if in_str:
            if ch == "\\":
                i += 2
                continue
            if ch == '"':
                in_str = False
        elif ch == '"':
            in_str = True
        elif ch in "([{":
            depth += 1
        elif ch in "]}":
            depth = max(0, depth - 1)
        elif ch == ")":
            if depth > 0:
                depth -= 1
            else:
                j = _skip_ws(text, i + 1)
                if j >= n:
                    return "more", i, -1
                if text[j] == "]":
                    return "found", i, j + 1
                return "failed", i, -1
        i += 1
    return "more", -1, -1


def scan_marker(text: str, start: int, *, final: bool = True) -> MarkerScan:
    """Classify the marker whose opener begins at `start`.

    With ``final=False`` the text is treated as a stream prefix: a marker
    that has not closed yet is INCOMPLETE instead of TRUNCATED.
    """

    if not text.startswith(MARKER_OPEN, start):
        return MarkerScan(MarkerStatus.INVALID, start)

    n = len(text)
    ran_out = MarkerScan(MarkerStatus.TRUNCATED if final else MarkerStatus.INCOMPLETE, start)

    i = _skip_ws(text, start + len(MARKER_OPEN))
    if i >= n:
        return ran_out
    m = _NAME_RE.match(text, i)
    if m is None:
        return MarkerScan(MarkerStatus.INVALID, start)
    name = m.group(0)

    j = _skip_ws(text, m.end())
    if j >= n:
        return ran_out
    if text[j] == "]":
        return MarkerScan(MarkerStatus.COMPLETE, start, j + 1, name, None)
    if text[j] != "(":
        return MarkerScan(MarkerStatus.INVALID, start)

    outcome, paren, end = _group_close(text, j)
    if outcome == "found":
        return MarkerScan(MarkerStatus.COMPLETE, start, end, name, text[j + 1:paren])
    if outcome == "more" and not final:
        return ran_out

    # Never let the fallback close swallow the next marker.
    limit = text.find(MARKER_OPEN, j + 1)
    fb = _FALLBACK_CLOSE_RE.search(text, j + 1, limit if limit >= 0 else n)
    if fb is not None:
        return MarkerScan(MarkerStatus.COMPLETE, start, fb.end(), name, text[j + 1:fb.start()])
    return ran_out


def detect_calls(response: str, *, json_keys: Iterable[str] = DEFAULT_JSON_KEYS) -> list[ToolCall]:
    """Return every well-formed marker in `response`, left to right."""

    keys = tuple(json_keys)
    calls: list[ToolCall] = []
    pos = 0
    while True:
        start = response.find(MARKER_OPEN, pos)
        if start < 0:
            return calls

        scan = scan_marker(response, start, final=True)
        if scan.status is not MarkerStatus.COMPLETE:
            pos = start + 1
            continue

        decoded = decode_parameters(scan.raw_parameters, json_keys=keys)
        calls.append(
            ToolCall(
                name=scan.name,
                parameters=decoded.values,
                raw_text=response[scan.start:scan.end],
                span=(scan.start, scan.end),
                raw_parameters=scan.raw_parameters,
                parameter_errors=decoded.errors,
            )
        )
        pos = scan.end


def strip_calls(response: str, calls: Iterable[ToolCall]) -> str:
    """Copy the text outside every call span into a fresh string."""

    parts: list[str] = []
    pos = 0
    for call in sorted(calls, key=lambda c: c.start):
        if call.start < pos:
            continue
        parts.append(response[pos:call.start])
        pos = call.end
    parts.append(response[pos:])
    return "".join(parts)


def visible_text(response: str, calls: list[ToolCall]) -> str:
    """User-facing prose with every call span removed.

    A marker that never closed is dropped together with the text after it,
    up to the next detected call or the end of the response. Openers that
    cannot start a marker at all (INVALID) stay as prose.
    """

    ordered = sorted(calls, key=lambda c: c.start)
    parts: list[str] = []
    pos = 0
    ci = 0
    while True:
        while ci < len(ordered) and ordered[ci].start < pos:
            ci += 1
        nxt = ordered[ci] if ci < len(ordered) else None
        limit = nxt.start if nxt is not None else len(response)

        start = response.find(MARKER_OPEN, pos, limit)
        if start >= 0:
            parts.append(response[pos:start])
            scan = scan_marker(response, start, final=True)
            if scan.status is MarkerStatus.INVALID:
                parts.append(response[start])
                pos = start + 1
            elif scan.status is MarkerStatus.COMPLETE and scan.end <= limit:
                pos = scan.end
            else:
                pos = limit
            continue

        parts.append(response[pos:limit])
        if nxt is None:
            return "".join(parts)
        pos = nxt.end
        ci += 1


def partial_open_suffix(text: str) -> int:
    """Length of the longest suffix of `text` that is a proper prefix of the opener."""

    for k in range(min(len(MARKER_OPEN) - 1, len(text)), 0, -1):
        if text.endswith(MARKER_OPEN[:k]):
            return k
    return 0
