"""Decode the parameter group of a `[TOOL_CALL: name(...)]` marker.

Model-authored parameters come in a few shapes:

    date: today, reps: 8
    exercise: "Bench Press, paused", load_lb: 185
    date: "today", workout_json: "{\"title\":\"Row\"}"
    workout_json: "{"title": "Row"}"
    {"date": "today"}

Values are scanned with an explicit quote/bracket-aware scanner so commas
inside quotes or nested JSON never split a pair. Designated payload keys
(``workout_json`` by default) are decoded as nested JSON; when that fails only
that key is reported, its siblings still decode.

Decoding never raises.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Iterable

from core.types import JsonValue

DEFAULT_JSON_KEYS: tuple[str, ...] = ("workout_json",)

_INT_RE = re.compile(r"[-+]?(?:0|[1-9]\d*)")
_FLOAT_RE = re.compile(r"[-+]?(?:0|[1-9]\d*)?\.\d+(?:[eE][-+]?\d+)?")

_QUOTED = "quoted"
_DOCUMENT = "document"
_BARE = "bare"


@dataclass(frozen=True, slots=True)
class DecodedParameters:
    values: dict[str, JsonValue] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass(frozen=True, slots=True)
class _RawPair:
    key: str
    kind: str
    text: str


class _PairScanner:
    """Single forward pass over ``key: value`` pairs."""

    def __init__(self, text: str) -> None:
        self._text = text
        self._n = len(text)
        self._pos = 0

    def pairs(self) -> list[_RawPair]:
        out: list[_RawPair] = []
        while True:
            self._skip(" \t\r\n,")
            if self._pos >= self._n:
                return out

            key = self._read_key()
            if key is not None:
                self._skip(" \t\r\n")
                pair = self._read_value(key)
                if key:
                    out.append(pair)
            # Anything left before the next top-level comma is noise.
            self._pos = self._segment_end(self._pos)

    def _skip(self, chars: str) -> None:
        while self._pos < self._n and self._text[self._pos] in chars:
            self._pos += 1

    def _read_key(self) -> str | None:
        t = self._text
        if t[self._pos] == '"':
            end = _quoted_end(t, self._pos)
            if end is None:
                return None
            key = _unquote(t[self._pos:end]).strip()
            j = _skip_ws(t, end)
            if j < self._n and t[j] == ":":
                self._pos = j + 1
                return key
            return None

        i = self._pos
        while i < self._n and t[i] not in ":,":
            i += 1
        if i >= self._n or t[i] == ",":
            return None
        key = t[self._pos:i].strip()
        self._pos = i + 1
        return key

    def _read_value(self, key: str) -> _RawPair:
        t = self._text
        start = self._pos
        if start >= self._n:
            return _RawPair(key, _BARE, "")

        c = t[start]
        if c == '"':
            end = _quoted_end(t, start)
            if end is not None and self._at_boundary(end):
                self._pos = end
                return _RawPair(key, _QUOTED, t[start:end])

            # A quoted document whose inner quotes were not escaped.
            inner = _skip_ws(t, start + 1)
            if inner < self._n and t[inner] in "{[":
                doc_end = _balanced_end(t, inner)
                if doc_end is not None:
                    close = _skip_ws(t, doc_end)
                    if close < self._n and t[close] == '"' and self._at_boundary(close + 1):
                        self._pos = close + 1
                        return _RawPair(key, _DOCUMENT, t[inner:doc_end])

            if end is not None:
                self._pos = end
                return _RawPair(key, _QUOTED, t[start:end])
            self._pos = self._n
            return _RawPair(key, _BARE, t[start:].strip())

        if c in "{[":
            doc_end = _balanced_end(t, start)
            if doc_end is None:
                self._pos = self._n
                return _RawPair(key, _DOCUMENT, t[start:])
            self._pos = doc_end
            return _RawPair(key, _DOCUMENT, t[start:doc_end])

        end = self._segment_end(start)
        self._pos = end
        return _RawPair(key, _BARE, t[start:end].strip())

    def _at_boundary(self, i: int) -> bool:
        j = _skip_ws(self._text, i)
        return j >= self._n or self._text[j] == ","

    def _segment_end(self, start: int) -> int:
        """Index of the next comma outside quotes and brackets (or the end)."""

        t = self._text
        depth = 0
        in_str = False
        i = start
        while i < self._n:
            ch = t[i]
            if in_str:
                if ch == "\\":
                    i += 2
                    continue
                if ch == '"':
                    in_str = False
            elif ch == '"':
                in_str = True
            elif ch in "{[(":
                depth += 1
            elif ch in "}])":
                depth = max(0, depth - 1)
            elif ch == "," and depth == 0:
                return i
            i += 1
        return self._n


def _skip_ws(text: str, i: int) -> int:
    while i < len(text) and text[i] in " \t\r\n":
        i += 1
    return i


def _quoted_end(text: str, start: int) -> int | None:
    """Index just past the closing quote of the string opening at `start`."""

    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == '"':
            return i + 1
        i += 1
    return None


def _balanced_end(text: str, start: int) -> int | None:
    """Index just past the bracket closing the one at `start`, JSON-string aware."""

    depth = 0
    in_str = False
    i = start
    while i < len(text):
        ch = text[i]
        if in_str:
            if ch == "\\":
                i += 2
                continue
            if ch == '"':
                in_str = False
        elif ch == '"':
            in_str = True
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return None


def _strip_escapes(text: str) -> str:
    return text.replace('\\"', '"').replace("\\'", "'").replace("\\\\", "\\")


def _unquote(literal: str) -> str:
    try:
        value = json.loads(literal)
    except ValueError:
        value = None
    if isinstance(value, str):
        return value

    inner = literal[1:]
    if len(literal) >= 2 and literal.endswith('"'):
        inner = literal[1:-1]
    return _strip_escapes(inner)


def _parse_json(text: str) -> JsonValue:
    """Parse a payload, tolerating one extra layer of escaping."""

    try:
        return json.loads(text)
    except ValueError as first:
        relaxed = _strip_escapes(text)
        if relaxed == text:
            raise first
        return json.loads(relaxed)


def _decode_payload(pair: _RawPair) -> tuple[JsonValue, str | None]:
    text = _unquote(pair.text) if pair.kind == _QUOTED else pair.text
    if not text.strip():
        return None, "empty JSON payload"
    try:
        return _parse_json(text), None
    except ValueError as e:
        return None, f"invalid JSON: {e}"


def _decode_scalar(pair: _RawPair) -> JsonValue:
    if pair.kind == _QUOTED:
        return _unquote(pair.text)

    if pair.kind == _DOCUMENT:
        try:
            return json.loads(pair.text)
        except ValueError:
            return pair.text

    text = pair.text
    if text.startswith('"'):
        # Unterminated quote; keep what the model wrote.
        return _strip_escapes(text[1:])
    lowered = text.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if _INT_RE.fullmatch(text):
        return int(text)
    if _FLOAT_RE.fullmatch(text):
        return float(text)
    return text


def _decode_object(obj: dict[str, JsonValue], json_keys: frozenset[str]) -> DecodedParameters:
    values: dict[str, JsonValue] = {}
    errors: dict[str, str] = {}
    for k, v in obj.items():
        key = str(k)
        if key in json_keys and isinstance(v, str):
            decoded, err = _decode_payload(_RawPair(key, _BARE, v))
            if err is not None:
                errors[key] = err
                continue
            v = decoded
        values[key] = v
    return DecodedParameters(values=values, errors=errors)


def decode_parameters(raw: str | None, *, json_keys: Iterable[str] = DEFAULT_JSON_KEYS) -> DecodedParameters:
    """Decode a raw parameter group into ordered values plus per-key errors."""

    keys = frozenset(json_keys)
    text = (raw or "").strip()
    if not text:
        return DecodedParameters()

    if text.startswith("{"):
        try:
            obj = json.loads(text)
        except ValueError:
            obj = None
        if isinstance(obj, dict):
            return _decode_object(obj, keys)
        # `{date: today}`: decode the inside as pairs.
        text = text[1:-1] if text.endswith("}") else text[1:]

    values: dict[str, JsonValue] = {}
    errors: dict[str, str] = {}
    for pair in _PairScanner(text).pairs():
        if pair.key in keys:
            value, err = _decode_payload(pair)
            if err is not None:
                errors[pair.key] = err
                values.pop(pair.key, None)
                continue
            errors.pop(pair.key, None)
            values[pair.key] = value
        else:
            values[pair.key] = _decode_scalar(pair)

    return DecodedParameters(values=values, errors=errors)
