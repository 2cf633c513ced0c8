"""Prompt templates for the Vinsa agent.

Provides the system prompt (with optional plan-mode addendum and project
context from ``VINSA.md`` files) and the fixed prompts used by compaction and
the planner/executor/reviewer pipeline.
"""

from __future__ import annotations

import logging
from pathlib import Path

__all__ = [
    "PROJECT_CONTEXT_FILENAME",
    "SUMMARIZER_PROMPT",
    "SUMMARIZE_REQUEST",
    "PLANNER_PROMPT",
    "REVIEWER_PROMPT",
    "PLAN_MODE_ADDENDUM",
    "system_prompt",
    "build_system_prompt",
    "load_project_context",
    "executor_prompt",
    "reviewer_request",
    "combined_result",
    "SUMMARIZER_TEMPERATURE",
    "PLANNER_TEMPERATURE",
    "REVIEWER_TEMPERATURE",
    "AUXILIARY_MAX_TOKENS",
]

LOGGER = logging.getLogger(__name__)

PROJECT_CONTEXT_FILENAME = "VINSA.md"

# Sampling parameters for the auxiliary completion calls
SUMMARIZER_TEMPERATURE = 0.3
PLANNER_TEMPERATURE = 0.4
REVIEWER_TEMPERATURE = 0.3
AUXILIARY_MAX_TOKENS = 2_048


def system_prompt() -> str:
    """Return the base system prompt for agent runs."""
    return f"""{_identity_section()}

## Core Principle: Minimal & Precise
{_principles_section()}

## Behavior Rules
{_rules_section()}

## Response Format
{_format_section()}"""


def _identity_section() -> str:
    return (
        "You are **Vinsa**, a free, open-source AI CLI agent running **locally** inside the "
        "user's terminal on their own machine. When the user says \"my laptop\", \"my files\" or "
        "\"my system\" they mean the machine you are running on: use your tools to look things "
        "up yourself instead of telling the user how to do it."
    )


def _principles_section() -> str:
    return """Think before acting. Only use tools when the request genuinely requires them.
- Answer general knowledge and coding questions directly, without tools.
- Anything about the user's own system, files, processes or network: use tools and show the real result.
- Never call several tools when one will do, and pick the dedicated tool over a shell command.
- When the user asks for the syntax of a command, show it in a fenced code block instead of running it."""


def _rules_section() -> str:
    return """1. **Be safe**: never run destructive commands without explicit confirmation.
2. **Be concise**: no preamble, no restating the question.
3. **Self-heal**: if a command fails, read the error and try a different approach.
4. **Be honest**: if you cannot do something, say so.
5. **Tool parameters**: never pass null; omit optional parameters you do not need.
6. **Avoid huge listings**: no recursive listings of root drives. If a tool result says it was truncated, summarize what you have and suggest narrowing the query."""


def _format_section() -> str:
    return """- Use markdown.
- Wrap terminal commands in fenced code blocks with a language tag (```bash, ```powershell).
- Use tables for structured data and keep responses focused and actionable."""


PLAN_MODE_ADDENDUM = """

## PLAN MODE (ACTIVE)
Before taking ANY action or using ANY tool, first output a numbered plan of exactly what you intend to do. Format:

**Plan:**
1. Step one
2. Step two
3. ...

Then ask the user: "Shall I proceed with this plan?" Only use tools AFTER outlining the plan."""


SUMMARIZER_PROMPT = (
    "You are a conversation summarizer. Produce a concise summary of the conversation below, "
    "preserving key information, decisions made, files modified, and important context. "
    "Output ONLY the summary, no preamble."
)
SUMMARIZE_REQUEST = "Summarize the above conversation concisely."

PLANNER_PROMPT = (
    "You are a task planner. Break down the following task into clear, numbered steps. "
    "Each step should be a single, concrete action. Output ONLY the numbered plan, nothing else."
)

REVIEWER_PROMPT = """You are a quality reviewer. Review the work done below and provide:
1. A brief summary of what was accomplished
2. Any issues or mistakes found
3. Suggestions for improvement
4. A quality score (1-10)
Be concise and constructive."""


def executor_prompt(task: str, plan: str) -> str:
    return (
        "Execute the following plan step by step. Use your tools to complete each step.\n\n"
        f"**Plan:**\n{plan}\n\n**Original Task:** {task}\n\n"
        "Execute ALL steps now. Report results for each step."
    )


def reviewer_request(task: str, plan: str, execution: str) -> str:
    return f"**Original Task:** {task}\n\n**Plan:**\n{plan}\n\n**Execution Result:**\n{execution}"


def combined_result(plan: str, execution: str, review: str) -> str:
    return (
        f"## Multi-Agent Result\n\n### Plan\n{plan}\n\n"
        f"### Execution\n{execution}\n\n### Review\n{review}"
    )


def load_project_context(start_dir: Path | str | None = None, *, home: Path | str | None = None) -> str:
    """Collect ``VINSA.md`` files from ``start_dir`` upwards plus ``~/.vinsa/VINSA.md``.

    Returns a ready-to-append prompt section, or ``""`` when nothing was found.
    """

    contexts: list[str] = []
    seen: set[Path] = set()
    directory = Path(start_dir) if start_dir is not None else Path.cwd()
    for candidate_dir in (directory, *directory.parents):
        candidate = candidate_dir / PROJECT_CONTEXT_FILENAME
        content = _read_context_file(candidate, seen)
        if content:
            contexts.append(f"[Context from {candidate}]\n{content}")

    home_dir = Path(home) if home is not None else Path.home()
    global_path = home_dir / ".vinsa" / PROJECT_CONTEXT_FILENAME
    content = _read_context_file(global_path, seen)
    if content:
        contexts.append(f"[Global context from {global_path}]\n{content}")

    if not contexts:
        return ""
    return "\n\n## Project Context (from VINSA.md)\n" + "\n\n".join(contexts)


def _read_context_file(path: Path, seen: set[Path]) -> str:
    if path in seen or not path.is_file():
        return ""
    seen.add(path)
    try:
        return path.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as exc:
        LOGGER.debug("Unable to read project context %s: %s", path, exc)
        return ""


def build_system_prompt(
    *,
    plan_mode: bool = False,
    project_context: str | None = None,
    base: str | None = None,
) -> str:
    """Assemble the run's system prompt: base, plan-mode addendum, project context."""
    prompt = base if base is not None else system_prompt()
    if plan_mode:
        prompt += PLAN_MODE_ADDENDUM
    if project_context:
        prompt += project_context
    return prompt
