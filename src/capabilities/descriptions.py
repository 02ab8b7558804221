from __future__ import annotations

_DESCRIPTIONS = {
    "get_health_data": "Reading health data",
    "start_training_program": "Starting training program",
    "get_training_status": "Checking training status",
    "plan_workout": "Planning workout",
    "update_workout": "Updating workout",
    "get_workout": "Loading workout",
    "log_set_result": "Logging set",
}


def describe_tool(name: str) -> str:
    """Short label for "using tool" UI states."""

    return _DESCRIPTIONS.get(name) or name.replace("_", " ").capitalize()
