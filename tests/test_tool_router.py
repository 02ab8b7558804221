from __future__ import annotations

import asyncio

import pytest

from core.config import ToolsConfig
from core.types import ToolCallResult
from tools.detector import detect_calls
from tools.registry import ExecutorRegistry
from tools.router import CallRouter, ToolRejected


def _route_all(router: CallRouter, text: str) -> list[ToolCallResult]:
    return asyncio.run(router.route_all(detect_calls(text)))


def test_unknown_tool_is_a_failed_result_and_siblings_run() -> None:
    seen: list[dict] = []

    async def ok(name, params):
        seen.append(params)
        return ToolCallResult.ok(name, "done")

    registry = ExecutorRegistry()
    registry.register(["get_workout"], ok)

    results = _route_all(CallRouter(registry), "[TOOL_CALL: get_workout(date: today)] [TOOL_CALL: made_up_tool]")

    assert [r.succeeded for r in results] == [True, False]
    assert results[1].tool_name == "made_up_tool"
    assert results[1].failure_reason == "unknown tool"
    assert seen == [{"date": "today"}]


def test_results_follow_source_order_not_latency() -> None:
    finished: list[str] = []

    async def slow(name, params):
        await asyncio.sleep(float(params["delay"]))
        finished.append(name)
        return name.upper()

    registry = ExecutorRegistry()
    registry.register(["a", "b", "c"], slow)

    results = _route_all(
        CallRouter(registry),
        "[TOOL_CALL: a(delay: 0.03)][TOOL_CALL: b(delay: 0.01)][TOOL_CALL: c(delay: 0)]",
    )

    assert [r.tool_name for r in results] == ["a", "b", "c"]
    assert [r.payload for r in results] == ["A", "B", "C"]
    # Sequential: nothing overlaps.
    assert finished == ["a", "b", "c"]


def test_handler_exception_becomes_failed_result() -> None:
    def boom(name, params):
        raise ValueError("schedule is locked")

    registry = ExecutorRegistry()
    registry.register(["plan_workout"], boom)
    registry.register(["get_workout"], lambda name, params: "rest day")

    results = _route_all(CallRouter(registry), "[TOOL_CALL: plan_workout][TOOL_CALL: get_workout]")

    assert results[0].succeeded is False
    assert results[0].failure_reason == "schedule is locked"
    assert results[1] == ToolCallResult.ok("get_workout", "rest day")


def test_tool_rejected_uses_its_message() -> None:
    async def reject(name, params):
        raise ToolRejected("missing_parameter", "Missing required parameter 'exercise'.")

    registry = ExecutorRegistry()
    registry.register(["log_set_result"], reject)

    [result] = _route_all(CallRouter(registry), "[TOOL_CALL: log_set_result(reps: 5)]")
    assert result.failure_reason == "Missing required parameter 'exercise'."


def test_structured_output_is_serialized() -> None:
    registry = ExecutorRegistry()
    registry.register(["get_health_data"], lambda name, params: {"weight": 180, "unit": "lb"})

    [result] = _route_all(CallRouter(registry), "[TOOL_CALL: get_health_data]")
    assert result.succeeded
    assert result.payload == '{"weight": 180, "unit": "lb"}'


def test_timeout_is_a_failed_result() -> None:
    async def hang(name, params):
        await asyncio.sleep(5)
        return "never"

    registry = ExecutorRegistry()
    registry.register(["get_health_data"], hang)
    registry.register(["get_workout"], lambda name, params: "ok")

    results = _route_all(
        CallRouter(registry, timeout_s=0.05),
        "[TOOL_CALL: get_health_data][TOOL_CALL: get_workout]",
    )
    assert results[0].failure_reason == "timed out after 0.05s"
    assert results[1].succeeded


def test_disabled_and_allowlist() -> None:
    registry = ExecutorRegistry()
    registry.register_capability(["get_workout", "plan_workout"], lambda name, params: "ok")

    [disabled] = _route_all(CallRouter(registry, enabled=False), "[TOOL_CALL: get_workout]")
    assert disabled.failure_reason == "tools disabled"

    results = _route_all(
        CallRouter(registry, allowlist=["get_workout"]),
        "[TOOL_CALL: get_workout][TOOL_CALL: plan_workout]",
    )
    assert results[0].succeeded
    assert results[1].failure_reason == "not allowed"


def test_call_limit_keeps_result_order() -> None:
    calls: list[str] = []

    def record(name, params):
        calls.append(name)
        return "ok"

    registry = ExecutorRegistry()
    registry.register(["a", "b"], record)
    router = CallRouter.from_config(registry, ToolsConfig(max_calls_per_turn=1))

    results = _route_all(router, "[TOOL_CALL: a][TOOL_CALL: b]")
    assert calls == ["a"]
    assert results[1].tool_name == "b"
    assert results[1].failure_reason == "call limit reached"


def test_cancellation_propagates() -> None:
    async def cancelled(name, params):
        raise asyncio.CancelledError()

    registry = ExecutorRegistry()
    registry.register(["get_workout"], cancelled)
    router = CallRouter(registry)

    async def main() -> None:
        with pytest.raises(asyncio.CancelledError):
            await router.route(detect_calls("[TOOL_CALL: get_workout]")[0])

    asyncio.run(main())


def test_registry_last_write_wins_and_ignores_empty_names() -> None:
    registry = ExecutorRegistry()
    registry.register(["get_workout"], lambda name, params: "first")
    registry.register(["get_workout", "plan_workout"], lambda name, params: "second")
    registry.register([], lambda name, params: "orphan")

    assert registry.supported_tools == ["get_workout", "plan_workout"]
    assert "get_workout" in registry
    assert "get_" not in registry
    assert registry.resolve("get_workout")("get_workout", {}) == "second"


def test_registry_add_capability_object() -> None:
    class Echo:
        names = ("echo", "echo_twice")

        async def __call__(self, name, params):
            return ToolCallResult.ok(name, str(params.get("text", "")) * (2 if name == "echo_twice" else 1))

    registry = ExecutorRegistry()
    registry.add(Echo())

    results = _route_all(CallRouter(registry), '[TOOL_CALL: echo(text: "hi")][TOOL_CALL: echo_twice(text: yo)]')
    assert [r.payload for r in results] == ["hi", "yoyo"]


def test_result_names_line_up_with_calls() -> None:
    registry = ExecutorRegistry()
    registry.register(["plan_workout", "update_workout"], lambda name, params: ToolCallResult.ok("plan_workout", "saved"))

    results = _route_all(CallRouter(registry), "[TOOL_CALL: update_workout] [TOOL_CALL: plan_workout]")

    assert [r.tool_name for r in results] == ["update_workout", "plan_workout"]
