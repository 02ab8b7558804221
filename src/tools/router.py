from __future__ import annotations

import asyncio
import inspect
import time
from typing import Iterable

from core.config import ToolsConfig
from core.types import ToolCall, ToolCallResult
from observability.context import add_error
from observability.logging import get_logger

from .registry import ExecutorRegistry
from .tool_result_codec import result_from_output

UNKNOWN_TOOL = "unknown tool"
TOOLS_DISABLED = "tools disabled"
NOT_ALLOWED = "not allowed"
CALL_LIMIT_REACHED = "call limit reached"


class ToolRejected(RuntimeError):
    """Structured tool rejection.

    Raise this from a handler to fail with a clean, model-readable reason
    instead of an arbitrary exception.
    """

    def __init__(
        self,
        error_type: str,
        message: str,
        *,
        details: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.message = message
        self.details = details or {}


class CallRouter:
    """Resolve and invoke handlers; every failure comes back as a ToolCallResult.

    Only cancellation propagates: a cancelled turn must not keep executing.
    """

    def __init__(
        self,
        registry: ExecutorRegistry,
        *,
        enabled: bool = True,
        allowlist: Iterable[str] = (),
        timeout_s: float | None = None,
        max_calls_per_turn: int = 0,
    ) -> None:
        self._registry = registry
        self._enabled = enabled
        self._allowlist = frozenset(allowlist)
        self._timeout_s = timeout_s if timeout_s and timeout_s > 0 else None
        self._max_calls = max(0, int(max_calls_per_turn))
        self._log = get_logger("trainer.tools.router")

    @classmethod
    def from_config(cls, registry: ExecutorRegistry, cfg: ToolsConfig) -> "CallRouter":
        return cls(
            registry,
            enabled=cfg.enabled,
            allowlist=cfg.allowlist,
            timeout_s=cfg.timeout_s,
            max_calls_per_turn=cfg.max_calls_per_turn,
        )

    @property
    def registry(self) -> ExecutorRegistry:
        return self._registry

    def within_limit(self, index: int) -> bool:
        """Whether the call at 0-based `index` of a turn may run."""

        return self._max_calls == 0 or index < self._max_calls

    async def route(self, call: ToolCall) -> ToolCallResult:
        name = call.name

        if not self._enabled:
            return ToolCallResult.failed(name, TOOLS_DISABLED)

        if self._allowlist and name not in self._allowlist:
            self._log.info("tool_not_allowed", tool=name)
            return ToolCallResult.failed(name, NOT_ALLOWED)

        handler = self._registry.resolve(name)
        if handler is None:
            self._log.warning("tool_unknown", tool=name)
            return ToolCallResult.failed(name, UNKNOWN_TOOL)

        if call.parameter_errors:
            # The handler decides whether a missing key is fatal.
            self._log.warning("tool_parameter_errors", tool=name, errors=dict(call.parameter_errors))

        t0 = time.perf_counter()
        try:
            out = handler(name, dict(call.parameters))
            if inspect.isawaitable(out):
                if self._timeout_s is not None:
                    out = await asyncio.wait_for(out, timeout=self._timeout_s)
                else:
                    out = await out
            result = result_from_output(name, out)
        except ToolRejected as e:
            self._log.info("tool_rejected", tool=name, error_type=e.error_type)
            result = ToolCallResult.failed(name, e.message)
        except asyncio.TimeoutError:
            self._log.warning("tool_timeout", tool=name, timeout_s=self._timeout_s)
            result = ToolCallResult.failed(name, f"timed out after {self._timeout_s:g}s")
        except Exception as e:  # noqa: BLE001
            add_error(f"{name}: {e!r}")
            self._log.exception("tool_error", tool=name)
            result = ToolCallResult.failed(name, str(e) or type(e).__name__)

        self._log.info(
            "tool_ok" if result.succeeded else "tool_failed",
            tool=name,
            latency_ms=round((time.perf_counter() - t0) * 1000, 2),
        )
        return result

    async def route_all(self, calls: Iterable[ToolCall]) -> list[ToolCallResult]:
        """Run calls one at a time, in the order they were detected."""

        results: list[ToolCallResult] = []
        for index, call in enumerate(calls):
            if not self.within_limit(index):
                results.append(ToolCallResult.failed(call.name, CALL_LIMIT_REACHED))
                continue
            results.append(await self.route(call))
        return results
