from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from core.types import JsonValue, ToolCallResult
from tools.router import ToolRejected


@dataclass(frozen=True, slots=True)
class HealthData:
    weight_lb: float | None = None
    sleep_hours: float | None = None
    body_fat_pct: float | None = None
    lean_mass_lb: float | None = None
    # Feet as a decimal, e.g. 5.11 for 5'11".
    height_ft: float | None = None
    age: int | None = None


class HealthDataSource(Protocol):
    async def fetch(self) -> HealthData: ...


class StaticHealthDataSource:
    def __init__(self, data: HealthData | None = None) -> None:
        self.data = data or HealthData()

    async def fetch(self) -> HealthData:
        return self.data


def format_health_data(data: HealthData) -> str:
    parts: list[str] = []
    if data.weight_lb is not None:
        parts.append(f"Weight: {data.weight_lb:.1f} lb")
    if data.sleep_hours is not None:
        parts.append(f"Sleep: {data.sleep_hours:.1f} hours")
    if data.body_fat_pct is not None:
        parts.append(f"Body Fat: {data.body_fat_pct:.1f}%")
    if data.lean_mass_lb is not None:
        parts.append(f"Lean Body Mass: {data.lean_mass_lb:.1f} lb")
    if data.height_ft is not None:
        feet = int(data.height_ft)
        inches = round((data.height_ft - feet) * 100)
        parts.append(f"Height: {feet}'{inches}\"")
    if data.age is not None:
        parts.append(f"Age: {data.age} years")

    if not parts:
        return "[No health data available]"
    return f"[Health Data Retrieved: {', '.join(parts)}]"


class HealthDataCapability:
    names = ("get_health_data",)

    def __init__(self, source: HealthDataSource) -> None:
        self._source = source

    async def __call__(self, name: str, params: dict[str, JsonValue]) -> ToolCallResult:
        if name != "get_health_data":
            raise ToolRejected("unknown_tool", f"{name} is not served by the health capability")
        return ToolCallResult.ok(name, format_health_data(await self._source.fetch()))
