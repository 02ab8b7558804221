"""Training program lifecycle: `start_training_program`, `get_training_status`."""

from __future__ import annotations

from dataclasses import dataclass

from core.dates import CalendarDay, DateNormalizer
from core.types import JsonValue, ToolCallResult
from observability.logging import get_logger
from tools.router import ToolRejected

PROGRAM_WEEKS = 20

NO_PROGRAM = "No training program started. Use start_training_program first"


@dataclass(frozen=True, slots=True)
class BlockPosition:
    block: str
    week_in_block: int
    block_weeks: int
    program_week: int


def block_for_week(program_week: int) -> BlockPosition:
    """Map a 1-based program week (1-20) onto its training block."""

    if not 1 <= program_week <= PROGRAM_WEEKS:
        raise ValueError(f"program week out of range: {program_week}")
    if program_week <= 8:
        return BlockPosition("Aerobic Capacity", program_week, 8, program_week)
    if program_week == 9:
        return BlockPosition("Deload", 1, 1, program_week)
    if program_week <= 19:
        return BlockPosition("Hypertrophy-Strength", program_week - 9, 10, program_week)
    return BlockPosition("Deload", 1, 1, program_week)


class TrainingProgram:
    """In-memory program state. The start day is the only thing it owns."""

    def __init__(self) -> None:
        self.start_day: CalendarDay | None = None

    @property
    def started(self) -> bool:
        return self.start_day is not None

    def start(self, day: CalendarDay) -> None:
        self.start_day = day

    def position(self, day: CalendarDay) -> BlockPosition:
        if self.start_day is None:
            raise ToolRejected("no_program", NO_PROGRAM)
        days = (day.day - self.start_day.day).days
        # The program repeats after 20 weeks; days before the start count as week 1.
        week = (max(days, 0) // 7) % PROGRAM_WEEKS + 1
        return block_for_week(week)


class TrainingProgramCapability:
    names = ("start_training_program", "get_training_status")

    def __init__(self, program: TrainingProgram, *, dates: DateNormalizer) -> None:
        self._program = program
        self._dates = dates
        self._log = get_logger("trainer.capabilities.program")

    async def __call__(self, name: str, params: dict[str, JsonValue]) -> ToolCallResult:
        if name == "start_training_program":
            return self._start(params)
        if name == "get_training_status":
            return self._status()
        raise ToolRejected("unknown_tool", f"{name} is not served by the program capability")

    def _start(self, params: dict[str, JsonValue]) -> ToolCallResult:
        start = self._dates.normalize(_as_str(params.get("start_date")))
        restarted = self._program.started
        self._program.start(start)
        self._log.info("program_started", start=start.key, restarted=restarted)

        end = start.plus_days(PROGRAM_WEEKS * 7 - 1)
        return ToolCallResult.ok(
            "start_training_program",
            f"[Training Program Started]\n"
            f"• Start: {start.key}\n"
            f"• End: {end.key} ({PROGRAM_WEEKS} weeks)\n"
            f"• Current block: Aerobic Capacity - Week 1 of 8",
        )

    def _status(self) -> ToolCallResult:
        today = self._dates.today()
        pos = self._program.position(today)
        return ToolCallResult.ok(
            "get_training_status",
            f"[Training Status]\n"
            f"• Date: {today.key}\n"
            f"• Block: {pos.block} - Week {pos.week_in_block} of {pos.block_weeks}\n"
            f"• Program week: {pos.program_week} of {PROGRAM_WEEKS}",
        )


def _as_str(value: JsonValue) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)
