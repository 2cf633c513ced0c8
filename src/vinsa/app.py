"""Command-line entry point for the Vinsa agent."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO, get_type_hints

from .ai.agent import VinsaAgent, create_agent
from .ai.errors import AgentError
from .ai.orchestration.observers import AgentObserver
from .ai.tools.dispatcher import ToolResult
from .services.settings import Settings, SettingsStore, redact_secret
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOGGER = logging.getLogger(__name__)
_PROMPT = "vinsa> "
_REPL_HELP = """Commands:
  /compress        Summarize the conversation into two messages
  /models          Show model availability
  /stats           Show token usage and session info
  /clear           Clear the conversation
  /multi <task>    Run the planner/executor/reviewer pipeline
  /plan on|off     Toggle plan mode
  /exit            Quit"""


class ConsoleObserver(AgentObserver):
    """Plain-text progress output for interactive use."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stderr

    def on_tool_call(self, name: str, arguments: Mapping[str, Any]) -> None:
        rendered = json.dumps(dict(arguments), ensure_ascii=False, default=str)
        if len(rendered) > 200:
            rendered = rendered[:197] + "..."
        self._write(f"  > {name} {rendered}")

    def on_tool_result(self, result: ToolResult) -> None:
        if result.success:
            self._write(f"  < {result.tool_name} ok ({result.duration_ms:.0f}ms)")
        else:
            self._write(f"  < {result.tool_name} failed: {result.error}")

    def on_retry(self, attempt: int, max_attempts: int, reason: str) -> None:
        self._write(f"  ! retry {attempt}/{max_attempts}: {reason}")

    def on_model_switch(self, from_model: str, to_model: str, reason: str) -> None:
        self._write(f"  ~ {reason}")

    def on_phase(self, phase: str, message: str) -> None:
        self._write(f"[{phase}] {message}")

    def _write(self, line: str) -> None:
        print(line, file=self._stream, flush=True)


def configure_logging(debug: bool = False, *, force: bool = False) -> Path:
    """Configure logging for the CLI; returns the active log file."""

    log_path = logging_utils.setup_logging(debug, force=force)
    _LOGGER.debug("Logging to %s (debug=%s)", log_path, debug)
    return log_path


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except Exception as exc:  # pragma: no cover - defensive path
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the `vinsa` console script."""

    args = _parse_cli_args(argv)
    debug = bool(args.debug) or _env_flag("VINSA_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("VINSA_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)

    if args.save:
        path = settings_store.save(settings)
        print(f"Settings saved to {path}")
        if args.command is None:
            return 0

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return 0

    if settings.debug_logging and not debug:
        configure_logging(True, force=True)

    try:
        agent = create_agent(settings)
    except AgentError as exc:
        _report_error(exc)
        return 1

    try:
        return asyncio.run(_dispatch(args, agent))
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Shutdown requested by user.")
        return 130


async def _dispatch(args: argparse.Namespace, agent: VinsaAgent) -> int:
    observer = None if args.quiet else ConsoleObserver()
    async with agent:
        if args.command == "ask":
            return await _run_once(agent.run(" ".join(args.prompt), observer=observer))
        if args.command == "multi":
            return await _run_multi(agent, " ".join(args.task), observer)
        if args.command == "models":
            _print_models(agent)
            return 0
        return await _repl(agent, observer)


async def _run_once(awaitable: Any) -> int:
    try:
        answer = await awaitable
    except AgentError as exc:
        _report_error(exc)
        return 1
    print(answer)
    return 0


async def _run_multi(agent: VinsaAgent, task: str, observer: AgentObserver | None) -> int:
    try:
        result = await agent.run_multi_agent(task, observer=observer)
    except AgentError as exc:
        _report_error(exc)
        return 1
    except Exception as exc:
        _LOGGER.exception("Multi-agent run failed")
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(result.combined)
    return 0


async def _repl(agent: VinsaAgent, observer: AgentObserver | None) -> int:
    print("Vinsa interactive mode. Type /help for commands, /exit to quit.")
    while True:
        try:
            line = await asyncio.to_thread(input, _PROMPT)
        except EOFError:
            print()
            return 0
        text = line.strip()
        if not text:
            continue
        if text.startswith("/"):
            if not await _handle_slash_command(agent, text, observer):
                return 0
            continue
        try:
            answer = await agent.run(text, observer=observer)
        except AgentError as exc:
            _report_error(exc)
            continue
        except Exception as exc:
            _LOGGER.exception("Run failed")
            print(f"Error: {exc}", file=sys.stderr)
            continue
        print(answer)


async def _handle_slash_command(agent: VinsaAgent, text: str, observer: AgentObserver | None) -> bool:
    """Execute a REPL command; returns False when the session should end."""

    command, _, rest = text.partition(" ")
    command = command.lower()
    rest = rest.strip()
    if command in {"/exit", "/quit"}:
        return False
    if command == "/help":
        print(_REPL_HELP)
    elif command == "/compress":
        try:
            result = await agent.compact_history()
        except Exception as exc:
            _LOGGER.warning("Compaction failed: %s", exc)
            print(f"Compression failed: {exc}", file=sys.stderr)
        else:
            print(result.status)
    elif command == "/models":
        _print_models(agent)
    elif command == "/stats":
        for key, value in agent.stats().to_dict().items():
            print(f"{key}: {value}")
    elif command == "/clear":
        agent.clear_history()
        print("Conversation cleared.")
    elif command == "/multi":
        if not rest:
            print("Usage: /multi <task>")
        else:
            await _run_multi(agent, rest, observer)
    elif command == "/plan":
        if rest.lower() in {"on", "off"}:
            agent.plan_mode = rest.lower() == "on"
        print(f"Plan mode is {'on' if agent.plan_mode else 'off'}.")
    else:
        print(f"Unknown command {command}. Type /help for commands.")
    return True


def _print_models(agent: VinsaAgent) -> None:
    for status in agent.model_status():
        if status.available:
            state = "available"
        else:
            state = f"cooldown {status.remaining_seconds}s"
        print(f"{status.model.id:<48} {status.model.label:<22} {state}")


def _report_error(exc: AgentError) -> None:
    print(f"Error: {exc}", file=sys.stderr)
    if exc.hint:
        print(exc.hint, file=sys.stderr)


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="vinsa",
        add_help=True,
        description="Autonomous terminal agent with automatic model rotation.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.vinsa/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings (repeatable).",
    )
    parser.add_argument(
        "--save",
        action="store_true",
        help="Persist the effective settings (including --set overrides).",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging on the console.")
    parser.add_argument("-q", "--quiet", action="store_true", help="Do not print tool and retry progress.")

    subparsers = parser.add_subparsers(dest="command")
    ask = subparsers.add_parser("ask", help="Ask a single question and exit.")
    ask.add_argument("prompt", nargs="+")
    multi = subparsers.add_parser("multi", help="Run the planner/executor/reviewer pipeline on a task.")
    multi.add_argument("task", nargs="+")
    subparsers.add_parser("models", help="List the model pool and its availability.")
    subparsers.add_parser("chat", help="Start an interactive session (default).")
    return parser.parse_args(argv)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        overrides[key] = _coerce_value(type_hints.get(key, str), raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    if annotation is bool:
        return _parse_bool(raw_value)
    if annotation is int:
        return int(raw_value, 10)
    if annotation is float:
        return float(raw_value)
    return raw_value


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(settings)
    payload["api_key"] = redact_secret(settings.api_key)
    metadata = {
        "path": str(store.path),
        "key_path": str(store.vault.key_path),
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    output = {"settings": payload, "meta": metadata}
    json.dump(output, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    names = [name for name in os.environ if name.startswith("VINSA_")]
    if "GROQ_API_KEY" in os.environ:
        names.append("GROQ_API_KEY")
    return sorted(names)


if __name__ == "__main__":  # pragma: no cover - manual invocation
    raise SystemExit(main())
