from __future__ import annotations

import io
import json
import logging

from observability import add_error, bind_context, set_state, set_turn
from observability.context import snapshot
from observability.logging import JsonFormatter, KVLogger


def _logger(name: str) -> tuple[KVLogger, io.StringIO]:
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JsonFormatter())
    base = logging.getLogger(name)
    base.handlers[:] = [handler]
    base.setLevel(logging.DEBUG)
    base.propagate = False
    return KVLogger(base), stream


def test_records_carry_run_context_and_extras() -> None:
    log, stream = _logger("trainer.test.context")
    bind_context(trace_id="t-1", conversation_id="c-1")
    set_turn(2)
    set_state("executing")

    log.info("tool_ok", tool="get_workout", latency_ms=1.5, name="shadowed")

    payload = json.loads(stream.getvalue())
    assert payload["message"] == "tool_ok"
    assert payload["level"] == "INFO"
    assert payload["trace_id"] == "t-1"
    assert payload["conversation_id"] == "c-1"
    assert payload["turn"] == 2
    assert payload["state"] == "executing"
    assert payload["tool"] == "get_workout"
    assert payload["latency_ms"] == 1.5
    # Reserved LogRecord attribute names are suffixed instead of crashing.
    assert payload["name_"] == "shadowed"


def test_non_json_extras_are_repr() -> None:
    log, stream = _logger("trainer.test.repr")
    log.warning("odd", value={1, 2})
    payload = json.loads(stream.getvalue())
    assert payload["value"] in ("{1, 2}", "{2, 1}")


def test_errors_accumulate_per_run() -> None:
    bind_context(trace_id="t-2", conversation_id="c-2")
    add_error("first")
    add_error("second")
    assert snapshot()["errors"] == ["first", "second"]

    bind_context(trace_id="t-3", conversation_id="c-2")
    assert "errors" not in snapshot()


def test_disabled_level_is_skipped() -> None:
    log, stream = _logger("trainer.test.level")
    logging.getLogger("trainer.test.level").setLevel(logging.WARNING)
    log.debug("hidden")
    assert stream.getvalue() == ""
