from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .errors import ConfigError

# re-export for contract/tests
__all__ = [
    "AppConfig",
    "ConfigError",
    "DatesConfig",
    "LlmConfig",
    "LoggingConfig",
    "OrchestratorConfig",
    "ToolsConfig",
    "load_config",
]


_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

API_KEY_ENV = "OPENROUTER_API_KEY"


def _expand_env_in_str(value: str, *, path: str) -> str:
    def repl(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in os.environ or os.environ[key] == "":
            raise ConfigError(f"environment variable {key!r} is not set", path=path)
        return os.environ[key]

    return _ENV_PATTERN.sub(repl, value)


def _expand_env(obj: Any, *, path: str) -> Any:
    if isinstance(obj, str):
        return _expand_env_in_str(obj, path=path)
    if isinstance(obj, list):
        return [_expand_env(v, path=path) for v in obj]
    if isinstance(obj, dict):
        return {k: _expand_env(v, path=f"{path}.{k}" if path else str(k)) for k, v in obj.items()}
    return obj


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError("must be a mapping", path=name)
    return value


def _str_list(value: Any, *, path: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(x, str) for x in value):
        raise ConfigError("must be a list of strings", path=path)
    return list(value)


def _positive(value: float, *, path: str) -> float:
    if value <= 0:
        raise ConfigError("must be > 0", path=path)
    return value


@dataclass(frozen=True)
class LlmConfig:
    api_key: str
    base_url: str = "https://openrouter.ai/api/v1"
    model: str = "openai/gpt-5"
    timeout_s: float = 60.0
    max_retries: int = 2
    temperature: float | None = None
    # None: decide from the model name.
    include_reasoning: bool | None = None


@dataclass(frozen=True)
class ToolsConfig:
    enabled: bool = True
    allowlist: list[str] = field(default_factory=list)
    # 0 means unlimited.
    max_calls_per_turn: int = 0
    timeout_s: float | None = 30.0
    json_payload_keys: list[str] = field(default_factory=lambda: ["workout_json"])


@dataclass(frozen=True)
class OrchestratorConfig:
    max_turns: int = 5
    stream_timeout_s: float | None = 60.0
    empty_response_fallback: str = (
        "I've processed your request, but encountered an issue generating a response. Please try again."
    )


@dataclass(frozen=True)
class DatesConfig:
    # Empty means the host's local zone.
    local_timezone: str = ""
    canonical_timezone: str = "UTC"


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class AppConfig:
    llm: LlmConfig
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    dates: DatesConfig = field(default_factory=DatesConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _load_llm(raw: dict[str, Any], *, require_api_key: bool) -> LlmConfig:
    api_key = raw.get("api_key")
    if api_key is None or api_key == "":
        api_key = os.getenv(API_KEY_ENV, "")
    if not isinstance(api_key, str):
        raise ConfigError("must be a string", path="llm.api_key")
    if require_api_key and not api_key.strip():
        raise ConfigError(f"must be a non-empty string (or set {API_KEY_ENV})", path="llm.api_key")

    temperature = raw.get("temperature")
    include_reasoning = raw.get("include_reasoning")
    return LlmConfig(
        api_key=api_key,
        base_url=str(raw.get("base_url", LlmConfig.base_url)),
        model=str(raw.get("model", LlmConfig.model)),
        timeout_s=_positive(float(raw.get("timeout_s", LlmConfig.timeout_s)), path="llm.timeout_s"),
        max_retries=int(raw.get("max_retries", LlmConfig.max_retries)),
        temperature=float(temperature) if temperature is not None else None,
        include_reasoning=bool(include_reasoning) if include_reasoning is not None else None,
    )


def _load_tools(raw: dict[str, Any]) -> ToolsConfig:
    timeout = raw.get("timeout_s", ToolsConfig.timeout_s)
    tools = ToolsConfig(
        enabled=bool(raw.get("enabled", ToolsConfig.enabled)),
        allowlist=_str_list(raw.get("allowlist"), path="tools.allowlist"),
        max_calls_per_turn=int(raw.get("max_calls_per_turn", ToolsConfig.max_calls_per_turn)),
        timeout_s=_positive(float(timeout), path="tools.timeout_s") if timeout is not None else None,
        json_payload_keys=(
            _str_list(raw["json_payload_keys"], path="tools.json_payload_keys")
            if "json_payload_keys" in raw
            else ToolsConfig().json_payload_keys
        ),
    )
    if tools.max_calls_per_turn < 0:
        raise ConfigError("must be >= 0", path="tools.max_calls_per_turn")
    return tools


def _load_orchestrator(raw: dict[str, Any]) -> OrchestratorConfig:
    stream_timeout = raw.get("stream_timeout_s", OrchestratorConfig.stream_timeout_s)
    cfg = OrchestratorConfig(
        max_turns=int(raw.get("max_turns", OrchestratorConfig.max_turns)),
        stream_timeout_s=(
            _positive(float(stream_timeout), path="orchestrator.stream_timeout_s") if stream_timeout is not None else None
        ),
        empty_response_fallback=str(raw.get("empty_response_fallback", OrchestratorConfig.empty_response_fallback)),
    )
    if cfg.max_turns < 1:
        raise ConfigError("must be an integer >= 1", path="orchestrator.max_turns")
    return cfg


def _load_dates(raw: dict[str, Any]) -> DatesConfig:
    canonical = str(raw.get("canonical_timezone", DatesConfig.canonical_timezone))
    if canonical.upper() != "UTC":
        raise ConfigError("only UTC is supported as the canonical zone", path="dates.canonical_timezone")
    local = raw.get("local_timezone") or ""
    if not isinstance(local, str):
        raise ConfigError("must be a zoneinfo name", path="dates.local_timezone")
    return DatesConfig(local_timezone=local, canonical_timezone="UTC")


def load_config(path: str | Path, *, require_api_key: bool = True) -> AppConfig:
    """Load YAML config and expand ${ENV_VAR}.

    A `.env` in the working directory is loaded first so secrets can stay out
    of the YAML file.
    """

    load_dotenv(override=False)

    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError("config file does not exist", path=str(config_path))

    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except Exception as e:  # noqa: BLE001
        raise ConfigError(f"YAML parse failed: {e}", path=str(config_path)) from e

    if not isinstance(raw, dict):
        raise ConfigError("top level must be a YAML mapping", path=str(config_path))

    expanded = _expand_env(raw, path="")

    level = str(_section(expanded, "logging").get("level", LoggingConfig.level)).upper()
    if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise ConfigError(f"unknown level {level!r}", path="logging.level")

    return AppConfig(
        llm=_load_llm(_section(expanded, "llm"), require_api_key=require_api_key),
        tools=_load_tools(_section(expanded, "tools")),
        orchestrator=_load_orchestrator(_section(expanded, "orchestrator")),
        dates=_load_dates(_section(expanded, "dates")),
        logging=LoggingConfig(level=level),
    )
