"""Tests for prompt assembly and project context discovery."""

from __future__ import annotations

from pathlib import Path

from vinsa.ai import prompts


def test_base_prompt_identifies_the_agent() -> None:
    text = prompts.system_prompt()

    assert "Vinsa" in text
    assert "## Behavior Rules" in text
    assert prompts.PLAN_MODE_ADDENDUM.strip() not in text


def test_plan_mode_appends_addendum() -> None:
    text = prompts.build_system_prompt(plan_mode=True, base="BASE")

    assert text == "BASE" + prompts.PLAN_MODE_ADDENDUM
    assert "PLAN MODE (ACTIVE)" in text


def test_project_context_is_appended_last() -> None:
    text = prompts.build_system_prompt(plan_mode=True, project_context="\nCTX", base="BASE")

    assert text.endswith("\nCTX")
    assert text.startswith("BASE")


def test_load_project_context_walks_parents_and_home(tmp_path: Path) -> None:
    project = tmp_path / "project"
    nested = project / "src" / "pkg"
    nested.mkdir(parents=True)
    (project / "VINSA.md").write_text("Use tabs.\n", encoding="utf-8")
    home = tmp_path / "home"
    (home / ".vinsa").mkdir(parents=True)
    (home / ".vinsa" / "VINSA.md").write_text("Be brief.", encoding="utf-8")

    context = prompts.load_project_context(nested, home=home)

    assert context.startswith("\n\n## Project Context (from VINSA.md)\n")
    assert f"[Context from {project / 'VINSA.md'}]\nUse tabs." in context
    assert f"[Global context from {home / '.vinsa' / 'VINSA.md'}]\nBe brief." in context
    assert context.index("Use tabs.") < context.index("Be brief.")


def test_load_project_context_empty_when_nothing_found(tmp_path: Path) -> None:
    start = tmp_path / "empty"
    start.mkdir()

    assert prompts.load_project_context(start, home=tmp_path / "nohome") == ""


def test_pipeline_templates() -> None:
    executor = prompts.executor_prompt("Ship it", "1. Build")
    review = prompts.reviewer_request("Ship it", "1. Build", "Built")

    assert "**Plan:**\n1. Build" in executor
    assert "**Original Task:** Ship it" in executor
    assert review.endswith("**Execution Result:**\nBuilt")
    assert prompts.combined_result("P", "E", "R") == (
        "## Multi-Agent Result\n\n### Plan\nP\n\n### Execution\nE\n\n### Review\nR"
    )
