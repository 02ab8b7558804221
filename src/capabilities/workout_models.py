"""Pydantic models for the structured workout payload (`workout_json`)."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

EXERCISE_TYPES = ("cardio", "strength", "mobility", "yoga")


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class StrengthSet(_Model):
    set: int
    reps: Optional[Union[int, str]] = None
    weight: Optional[str] = None
    rir: Optional[int] = None
    tempo: Optional[str] = None
    rest_seconds: Optional[int] = Field(default=None, alias="restSeconds")


class Exercise(_Model):
    kind: str
    name: Optional[str] = None
    focus: Optional[str] = None
    equipment: Optional[str] = None
    tags: Optional[List[str]] = None
    # Discriminated by `type`: cardio, strength, mobility, yoga; anything else is generic.
    detail: Dict[str, Any]

    @property
    def detail_type(self) -> str:
        t = str(self.detail.get("type", "")).lower()
        return t if t in EXERCISE_TYPES else "generic"

    @property
    def estimated_duration_minutes(self) -> Optional[int]:
        t = self.detail_type
        if t == "cardio":
            total = self.detail.get("total") or {}
            value = total.get("durationMinutes") if isinstance(total, dict) else None
            return value if isinstance(value, int) else None
        if t == "strength":
            sets = [StrengthSet.model_validate(s) for s in self.detail.get("sets") or []]
            rest = sum(s.rest_seconds or 0 for s in sets)
            return rest // 60 + len(sets) * 2
        if t in ("mobility", "yoga"):
            key = "estimatedMinutes" if t == "mobility" else "durationMinutes"
            blocks = self.detail.get("blocks") or []
            minutes = [b.get(key) for b in blocks if isinstance(b, dict) and isinstance(b.get(key), int)]
            return sum(minutes) if minutes else None
        return None


class StructuredWorkout(_Model):
    title: Optional[str] = None
    summary: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, alias="durationMinutes")
    notes: Optional[str] = None
    exercises: List[Exercise]

    @property
    def total_duration(self) -> Optional[int]:
        if self.duration_minutes is not None:
            return self.duration_minutes
        return sum(e.estimated_duration_minutes or 0 for e in self.exercises)

    @property
    def display_summary(self) -> str:
        if self.summary:
            return self.summary
        if self.title:
            return self.title
        n = len(self.exercises)
        return f"{n} exercise{'' if n == 1 else 's'}"

    def distribution(self) -> dict[str, int]:
        counts = {t: 0 for t in (*EXERCISE_TYPES, "generic")}
        for e in self.exercises:
            counts[e.detail_type] += 1
        return counts


class SetResult(_Model):
    """One logged set or interval; strength and cardio fields are all optional."""

    exercise: str
    set: Optional[int] = None
    reps: Optional[int] = None
    load_lb: Optional[str] = None
    rir: Optional[int] = None
    interval: Optional[int] = None
    time: Optional[str] = None
    distance: Optional[str] = None
    pace: Optional[str] = None
    spm: Optional[int] = None
    hr: Optional[int] = None
    power: Optional[int] = None
    cadence: Optional[int] = None
    notes: Optional[str] = None
