"""Reference capabilities served to the model through the executor registry."""

from __future__ import annotations

from core.dates import DateNormalizer
from tools.registry import ExecutorRegistry

from .descriptions import describe_tool
from .health import HealthData, HealthDataCapability, HealthDataSource, StaticHealthDataSource
from .program import TrainingProgram, TrainingProgramCapability
from .schedule import TrainingSchedule, WorkoutCapability

__all__ = [
    "HealthData",
    "HealthDataCapability",
    "HealthDataSource",
    "StaticHealthDataSource",
    "TrainingProgram",
    "TrainingProgramCapability",
    "TrainingSchedule",
    "WorkoutCapability",
    "describe_tool",
    "register_default_capabilities",
]


def register_default_capabilities(
    registry: ExecutorRegistry,
    *,
    dates: DateNormalizer,
    program: TrainingProgram | None = None,
    schedule: TrainingSchedule | None = None,
    health: HealthDataSource | None = None,
) -> ExecutorRegistry:
    program = program or TrainingProgram()
    registry.add(HealthDataCapability(health or StaticHealthDataSource()))
    registry.add(TrainingProgramCapability(program, dates=dates))
    registry.add(WorkoutCapability(schedule or TrainingSchedule(), program, dates=dates))
    return registry
