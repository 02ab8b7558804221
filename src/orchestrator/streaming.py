"""Live filtering of marker syntax out of a token stream."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from observability.logging import get_logger
from tools.detector import (
    MARKER_OPEN,
    MarkerScan,
    MarkerStatus,
    detect_calls,
    partial_open_suffix,
    scan_marker,
    visible_text,
)
from tools.params import DEFAULT_JSON_KEYS


@dataclass(frozen=True, slots=True)
class FilterOutput:
    text: str = ""
    # Markers that closed with this delta.
    closed: list[MarkerScan] = field(default_factory=list)


class MarkerStreamFilter:
    """Release only text that can no longer turn out to be part of a marker.

    Text is held from a trailing prefix of ``[TOOL_CALL:`` or from an opener
    whose marker has not closed yet. Complete markers are dropped. An opener
    that cannot start a valid marker is released as prose.

    `finish` flushes the rest so that everything released equals
    ``visible_text(full, detect_calls(full))``.
    """

    def __init__(self, *, json_keys: Iterable[str] = DEFAULT_JSON_KEYS) -> None:
        self._json_keys = tuple(json_keys)
        self._buf = ""
        self._settled = 0
        self._emitted: list[str] = []
        self._finished = False
        self._log = get_logger("trainer.orchestrator.stream")

    @property
    def text(self) -> str:
        """Everything received so far, markers included."""

        return self._buf

    @property
    def emitted(self) -> str:
        return "".join(self._emitted)

    @property
    def holding(self) -> bool:
        return self._settled < len(self._buf)

    def feed(self, delta: str) -> FilterOutput:
        if self._finished:
            raise RuntimeError("filter already finished")
        if not delta:
            return FilterOutput()

        self._buf += delta
        buf = self._buf
        pos = self._settled
        out: list[str] = []
        closed: list[MarkerScan] = []

        while True:
            start = buf.find(MARKER_OPEN, pos)
            if start < 0:
                safe = len(buf) - partial_open_suffix(buf[pos:])
                out.append(buf[pos:safe])
                pos = safe
                break

            out.append(buf[pos:start])
            scan = scan_marker(buf, start, final=False)
            if scan.status is MarkerStatus.COMPLETE:
                closed.append(scan)
                pos = scan.end
            elif scan.status is MarkerStatus.INVALID:
                out.append(buf[start])
                pos = start + 1
            else:
                pos = start
                break

        self._settled = pos
        text = "".join(out)
        if text:
            self._emitted.append(text)
        return FilterOutput(text=text, closed=closed)

    def finish(self) -> str:
        """Release whatever held text turned out to be prose."""

        if self._finished:
            return ""
        self._finished = True

        final = visible_text(self._buf, detect_calls(self._buf, json_keys=self._json_keys))
        emitted = self.emitted
        if not final.startswith(emitted):
            self._log.warning("stream_filter_diverged", emitted_len=len(emitted), final_len=len(final))
            return ""

        tail = final[len(emitted):]
        self._settled = len(self._buf)
        if tail:
            self._emitted.append(tail)
        return tail
