from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, timezone

from capabilities import describe_tool, register_default_capabilities
from core.clock import Clock, FixedClock, SystemClock
from core.dates import DateNormalizer, resolve_timezone
from core.types import ConversationMessage
from llm.client import ChatCompletionProvider, CompletionProvider, ScriptedCompletionProvider
from observability.logging import configure_logging, get_logger
from orchestrator import ResponseOrchestrator, RunFinished, TextDelta, ToolActivity, ToolPhase
from tools.registry import ExecutorRegistry
from tools.router import CallRouter

from .config import load_config

# Offline script: one tool round trip, then a plain answer.
_FAKE_SCRIPT = (
    "Let me check where you are in the program. [TOOL_CALL: get_training_status]",
    "You're on track. Keep today's session easy and focus on form.",
)


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Trainer assistant tool-call harness")
    p.add_argument("--config", default="configs/app.yaml", help="YAML config path")
    p.add_argument("--log-level", default=None, help="Override logging.level")
    p.add_argument("--text", default="How is my training going?", help="User message for one run")
    p.add_argument("--fake", action="store_true", help="Use the scripted offline provider")
    p.add_argument(
        "--simulate-date",
        default=None,
        help="Pretend the current instant is this ISO datetime (UTC if no offset)",
    )
    return p


def _clock(simulate: str | None) -> Clock:
    if not simulate:
        return SystemClock()
    when = datetime.fromisoformat(simulate)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return FixedClock(when)


async def _run(orch: ResponseOrchestrator, text: str, clock: Clock) -> RunFinished | None:
    finished: RunFinished | None = None
    async for event in orch.run_turn([], ConversationMessage.user(text, timestamp=clock.now())):
        if isinstance(event, TextDelta):
            sys.stdout.write(event.text)
            sys.stdout.flush()
        elif isinstance(event, ToolActivity) and event.phase is ToolPhase.STARTED:
            sys.stdout.write(f"\n[{event.description}...]\n")
        elif isinstance(event, RunFinished):
            finished = event
    sys.stdout.write("\n")
    return finished


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    cfg = load_config(args.config, require_api_key=not args.fake)
    configure_logging(level=args.log_level or cfg.logging.level)
    log = get_logger("trainer.cli")

    clock = _clock(args.simulate_date)
    dates = DateNormalizer(clock=clock, local_tz=resolve_timezone(cfg.dates.local_timezone))

    registry = register_default_capabilities(ExecutorRegistry(), dates=dates)
    if args.fake:
        # get_training_status needs a started program.
        provider: CompletionProvider = ScriptedCompletionProvider(
            ["[TOOL_CALL: start_training_program]", *_FAKE_SCRIPT]
        )
    else:
        provider = ChatCompletionProvider.from_config(cfg.llm)

    orch = ResponseOrchestrator.from_config(
        cfg,
        provider=provider,
        router=CallRouter.from_config(registry, cfg.tools),
        describe=describe_tool,
        clock=clock,
    )

    finished = asyncio.run(_run(orch, args.text, clock))
    if finished is not None:
        log.info("cli_run_done", status=finished.status.value, turns=finished.turns, messages=len(finished.messages))
    return 0
