from __future__ import annotations

from typing import Any, Awaitable, Callable, Iterable, Protocol, Union

from core.types import JsonValue, ToolCallResult
from observability.logging import get_logger

HandlerOutput = Union[ToolCallResult, str, dict[str, Any], list[Any]]

# Async (preferred) or plain callable taking (tool name, decoded parameters).
ToolHandler = Callable[[str, dict[str, JsonValue]], Union[Awaitable[HandlerOutput], HandlerOutput]]


class Capability(Protocol):
    """A module that serves one or more tool names through one handler."""

    names: tuple[str, ...]

    async def __call__(self, name: str, params: dict[str, JsonValue]) -> ToolCallResult: ...


class ExecutorRegistry:
    """Exact name -> handler lookup.

    Registration is additive and last-write-wins per name.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, ToolHandler] = {}
        self._log = get_logger("trainer.tools.registry")

    def register(self, names: Iterable[str], handler: ToolHandler) -> None:
        names = [n for n in names if n]
        if not names:
            self._log.warning("register_without_names", handler=repr(handler))
            return

        for name in names:
            if name in self._handlers:
                self._log.debug("handler_replaced", tool=name)
            self._handlers[name] = handler
        self._log.debug("tools_registered", tools=names)

    # Name used by capability modules.
    register_capability = register

    def add(self, capability: Capability) -> None:
        self.register(capability.names, capability)

    def resolve(self, name: str) -> ToolHandler | None:
        return self._handlers.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    @property
    def supported_tools(self) -> list[str]:
        return sorted(self._handlers)
