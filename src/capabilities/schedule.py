"""Workout schedule read/write, keyed by canonical calendar day."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any

from pydantic import ValidationError

from core.dates import CalendarDay, DateNormalizer
from core.types import JsonValue, ToolCallResult
from observability.logging import get_logger
from tools.router import ToolRejected

from .program import NO_PROGRAM, TrainingProgram
from .workout_models import SetResult, StructuredWorkout

WORKOUT_JSON_REQUIRED = "workout_json parameter is required. Provide structured workout data as JSON."


@dataclass(frozen=True, slots=True)
class PlannedWorkout:
    day: CalendarDay
    workout: StructuredWorkout
    notes: str | None = None
    icon: str | None = None
    results: tuple[SetResult, ...] = field(default_factory=tuple)


class TrainingSchedule:
    """In-memory schedule. Entries are replaced, never edited in place."""

    def __init__(self) -> None:
        self._days: dict[str, PlannedWorkout] = {}

    def get(self, day: CalendarDay) -> PlannedWorkout | None:
        return self._days.get(day.key)

    def put(self, entry: PlannedWorkout) -> None:
        self._days[entry.day.key] = entry

    def append_result(self, day: CalendarDay, result: SetResult) -> PlannedWorkout | None:
        entry = self._days.get(day.key)
        if entry is None:
            return None
        updated = replace(entry, results=(*entry.results, result))
        self._days[day.key] = updated
        return updated

    @property
    def days(self) -> list[str]:
        return sorted(self._days)


def _display_date(day: CalendarDay) -> str:
    d = day.day
    return f"{d:%A, %b} {d.day}"


def _optional_str(params: dict[str, JsonValue], key: str) -> str | None:
    value = params.get(key)
    if value is None or value == "":
        return None
    return value if isinstance(value, str) else json.dumps(value)


def _optional_int(params: dict[str, JsonValue], key: str) -> int | None:
    value = params.get(key)
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def parse_workout(params: dict[str, JsonValue]) -> StructuredWorkout:
    raw: Any = params.get("workout_json")
    if raw is None:
        raise ToolRejected("missing_parameter", WORKOUT_JSON_REQUIRED)
    try:
        if isinstance(raw, str):
            return StructuredWorkout.model_validate_json(raw)
        return StructuredWorkout.model_validate(raw)
    except ValidationError as e:
        raise ToolRejected(
            "invalid_workout",
            f"Failed to decode workout_json. {e.error_count()} validation error(s): {e.errors()[0]['msg']}",
        ) from e


def _summary_lines(header: str, entry: PlannedWorkout, *, label: str = "Workout") -> str:
    w = entry.workout
    dist = w.distribution()
    lines = [
        header,
        f"• Date: {_display_date(entry.day)}",
        f"• {label}: {w.display_summary}",
        f"• Exercises: {len(w.exercises)} (cardio: {dist['cardio']}, strength: {dist['strength']}, "
        f"mobility: {dist['mobility']}, yoga: {dist['yoga']})",
    ]
    if w.total_duration:
        lines.append(f"• Duration: {w.total_duration} minutes")
    if entry.notes:
        lines.append(f"• Notes: {entry.notes}")
    if entry.icon:
        lines.append(f"• Icon: {entry.icon}")
    lines.append(f"• Link: trainer://calendar/{entry.day.key}")
    return "\n".join(lines)


class WorkoutCapability:
    names = ("plan_workout", "update_workout", "get_workout", "log_set_result")

    def __init__(self, schedule: TrainingSchedule, program: TrainingProgram, *, dates: DateNormalizer) -> None:
        self._schedule = schedule
        self._program = program
        self._dates = dates
        self._log = get_logger("trainer.capabilities.workout")

    async def __call__(self, name: str, params: dict[str, JsonValue]) -> ToolCallResult:
        day = self._dates.normalize(_optional_str(params, "date"))
        if name == "plan_workout":
            return self._plan(day, params)
        if name == "update_workout":
            return self._update(day, params)
        if name == "get_workout":
            return self._get(day)
        if name == "log_set_result":
            return self._log_set(day, params)
        raise ToolRejected("unknown_tool", f"{name} is not served by the workout capability")

    def _plan(self, day: CalendarDay, params: dict[str, JsonValue]) -> ToolCallResult:
        if not self._program.started:
            raise ToolRejected("no_program", NO_PROGRAM)
        entry = PlannedWorkout(
            day=day,
            workout=parse_workout(params),
            notes=_optional_str(params, "notes"),
            icon=_optional_str(params, "icon"),
        )
        self._schedule.put(entry)
        self._log.info("workout_planned", day=day.key, exercises=len(entry.workout.exercises))
        return ToolCallResult.ok("plan_workout", _summary_lines("[Structured Workout Planned]", entry))

    def _update(self, day: CalendarDay, params: dict[str, JsonValue]) -> ToolCallResult:
        existing = self._schedule.get(day)
        if existing is None:
            raise ToolRejected("not_found", f"Could not update structured workout for {day.key}. No existing workout found")
        entry = replace(
            existing,
            workout=parse_workout(params),
            notes=_optional_str(params, "notes") or existing.notes,
            icon=_optional_str(params, "icon") or existing.icon,
        )
        self._schedule.put(entry)
        self._log.info("workout_updated", day=day.key)
        return ToolCallResult.ok(
            "update_workout",
            _summary_lines("[Structured Workout Updated]", entry, label="Updated to"),
        )

    def _get(self, day: CalendarDay) -> ToolCallResult:
        entry = self._schedule.get(day)
        if entry is None:
            return ToolCallResult.ok("get_workout", f"[No workout planned for {day.key}]")
        body = json.dumps(entry.workout.model_dump(by_alias=True, exclude_none=True), ensure_ascii=False)
        return ToolCallResult.ok(
            "get_workout",
            _summary_lines("[Workout]", entry) + f"\n• Logged sets: {len(entry.results)}\n{body}",
        )

    def _log_set(self, day: CalendarDay, params: dict[str, JsonValue]) -> ToolCallResult:
        exercise = _optional_str(params, "exercise")
        if exercise is None:
            hint = ""
            for wrong in ("exerciseName", "movement", "name"):
                if wrong in params:
                    hint = f" You used '{wrong}' but the correct parameter is 'exercise'."
                    break
            raise ToolRejected("missing_parameter", f"Missing required parameter 'exercise'.{hint}")

        result = SetResult(
            exercise=exercise,
            set=_optional_int(params, "set"),
            reps=_optional_int(params, "reps"),
            load_lb=_optional_str(params, "load_lb"),
            rir=_optional_int(params, "rir"),
            interval=_optional_int(params, "interval"),
            time=_optional_str(params, "time"),
            distance=_optional_str(params, "distance"),
            pace=_optional_str(params, "pace"),
            spm=_optional_int(params, "spm"),
            hr=_optional_int(params, "hr"),
            power=_optional_int(params, "power"),
            cadence=_optional_int(params, "cadence"),
            notes=_optional_str(params, "notes"),
        )
        if self._schedule.append_result(day, result) is None:
            raise ToolRejected("not_found", f"No workout planned for {day.key}")

        parts = ["[Set Logged]", f"date={day.key}"]
        for key, value in result.model_dump(exclude_none=True).items():
            suffix = {"power": "W", "cadence": "rpm"}.get(key, "")
            parts.append(f"{key}={value}{suffix}")
        return ToolCallResult.ok("log_set_result", ", ".join(parts))
