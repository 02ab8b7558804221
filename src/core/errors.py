from __future__ import annotations


class TrainerError(Exception):
    """Base exception for this project."""


class ConfigError(TrainerError):
    """Raised when configuration is invalid or incomplete."""

    def __init__(self, message: str, *, path: str | None = None):
        super().__init__(f"{path}: {message}" if path else message)
        self.path = path


class ProviderError(TrainerError):
    """The completion stream failed or timed out.

    This is the only failure that escapes a running turn; everything that goes
    wrong inside a single tool call is reported as data instead.
    """


class OrchestratorBusy(TrainerError):
    """A second run was started while one is still in flight for the conversation."""
