"""Tests for the VinsaAgent context object."""

from __future__ import annotations

from typing import Any, Mapping

import pytest

from tests.helpers import (
    SMALL_POOL,
    FakeClock,
    RecordingSleep,
    ScriptedTransport,
    completion,
    rate_limit_error,
    tool_call,
)
from vinsa.ai import prompts
from vinsa.ai.agent import VinsaAgent, create_agent, format_duration
from vinsa.ai.client import AIClient
from vinsa.ai.errors import AuthenticationFailure
from vinsa.ai.memory.conversation import SUMMARY_PREFIX
from vinsa.ai.orchestration.types import Message
from vinsa.ai.tools.registry import ToolSpec
from vinsa.services.settings import Settings


class _RemoteTools:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    async def call_tool(self, server: str, tool: str, arguments: Mapping[str, Any]) -> Any:
        self.calls.append((server, tool, dict(arguments)))
        return {"files": ["a.txt"]}


def _agent(
    transport: ScriptedTransport,
    clock: FakeClock,
    sleep: RecordingSleep,
    **settings: Any,
) -> VinsaAgent:
    return VinsaAgent(
        Settings(api_key="test-key", model="model-b", **settings),
        transport=transport,
        pool=SMALL_POOL,
        clock=clock,
        sleep=sleep,
        project_context="",
    )


@pytest.mark.asyncio
async def test_run_uses_preferred_model_and_tracks_usage(clock: FakeClock, sleep: RecordingSleep) -> None:
    transport = ScriptedTransport([completion("pong", usage=(7, 3))])
    agent = _agent(transport, clock, sleep)

    answer = await agent.run("ping")

    assert answer == "pong"
    assert transport.models == ["model-b"]
    assert agent.history_length == 2
    stats = agent.stats()
    assert (stats.prompt_tokens, stats.completion_tokens, stats.total_tokens, stats.requests) == (7, 3, 10, 1)
    assert stats.conversation_length == 2


@pytest.mark.asyncio
async def test_rate_limited_preferred_model_rotates(clock: FakeClock, sleep: RecordingSleep) -> None:
    transport = ScriptedTransport([rate_limit_error(), completion("ok")])
    agent = _agent(transport, clock, sleep)

    await agent.run("hi")

    assert agent.usage.requests == 1
    assert transport.models == ["model-b", "model-a"]


@pytest.mark.asyncio
async def test_stats_session_duration(clock: FakeClock, sleep: RecordingSleep) -> None:
    agent = _agent(ScriptedTransport(), clock, sleep)

    clock.advance(125)

    assert agent.stats().session_duration == "2m 5s"
    assert agent.stats().to_dict()["session_duration"] == "2m 5s"


@pytest.mark.asyncio
async def test_ask_starts_from_a_fresh_transcript(clock: FakeClock, sleep: RecordingSleep) -> None:
    transport = ScriptedTransport([completion("fresh")])
    agent = _agent(transport, clock, sleep)
    agent.history = [Message.user("old"), Message.assistant("older")]

    assert await agent.ask("new question") == "fresh"

    assert [message.content for message in agent.history] == ["new question", "fresh"]
    assert [m["role"] for m in transport.calls[0]["messages"]] == ["system", "user"]


@pytest.mark.asyncio
async def test_compact_history_uses_summarizer_prompt(clock: FakeClock, sleep: RecordingSleep) -> None:
    transport = ScriptedTransport([completion("short summary")])
    agent = _agent(transport, clock, sleep)
    agent.history = [
        Message.user("q1"),
        Message.assistant("a1"),
        Message.user("q2"),
        Message.assistant("a2"),
    ]

    result = await agent.compact_history()

    assert result.compacted
    assert agent.history_length == 2
    assert agent.history[0].content == SUMMARY_PREFIX + "short summary"
    sent = transport.calls[0]
    assert sent["messages"][0] == {"role": "system", "content": prompts.SUMMARIZER_PROMPT}
    assert [m["content"] for m in sent["messages"][1:5]] == ["q1", "a1", "q2", "a2"]
    assert sent["messages"][-1] == {"role": "user", "content": prompts.SUMMARIZE_REQUEST}
    assert sent["temperature"] == prompts.SUMMARIZER_TEMPERATURE
    assert sent["max_tokens"] == prompts.AUXILIARY_MAX_TOKENS


@pytest.mark.asyncio
async def test_compact_short_history_makes_no_call(clock: FakeClock, sleep: RecordingSleep) -> None:
    transport = ScriptedTransport()
    agent = _agent(transport, clock, sleep)
    agent.history = [Message.user("q1")]

    result = await agent.compact_history()

    assert not result.compacted
    assert transport.calls == []


@pytest.mark.asyncio
async def test_plan_mode_changes_system_prompt(clock: FakeClock, sleep: RecordingSleep) -> None:
    transport = ScriptedTransport([completion("plan first")])
    agent = _agent(transport, clock, sleep)

    assert "PLAN MODE (ACTIVE)" not in agent.system_prompt()
    agent.plan_mode = True
    await agent.run("delete temp files")

    assert agent.plan_mode
    assert agent.settings.plan_mode
    assert "PLAN MODE (ACTIVE)" in transport.calls[0]["messages"][0]["content"]


def test_project_context_is_included(clock: FakeClock, sleep: RecordingSleep) -> None:
    agent = VinsaAgent(
        Settings(api_key="test-key"),
        transport=ScriptedTransport(),
        clock=clock,
        project_context="\n\n## Project Context (from VINSA.md)\nUse tabs.",
    )

    assert agent.system_prompt().endswith("Use tabs.")


@pytest.mark.asyncio
async def test_registered_tools_reach_the_model(clock: FakeClock, sleep: RecordingSleep) -> None:
    remote = _RemoteTools()
    transport = ScriptedTransport(
        [completion(None, tool_calls=[tool_call("fs_list", {"path": "."})]), completion("found a.txt")]
    )
    agent = _agent(transport, clock, sleep)
    agent.register_tool(ToolSpec("clock", "Current time"), lambda arguments: "12:00")
    agent.register_tool(ToolSpec("git_status", "Git status"), lambda arguments: "clean", plugin="git")

    count = agent.register_external_tools("fs", [ToolSpec("fs_list", "List files")], client=remote)
    answer = await agent.run("what files are here?")

    assert count == 1
    assert answer == "found a.txt"
    assert remote.calls == [("fs", "fs_list", {"path": "."})]
    names = [tool["function"]["name"] for tool in transport.calls[0]["tools"]]
    assert names == ["clock", "git_status", "fs_list"]


def test_external_tools_replace_previous_set(clock: FakeClock, sleep: RecordingSleep) -> None:
    agent = _agent(ScriptedTransport(), clock, sleep)
    agent.register_external_tools("fs", [ToolSpec("fs_read", "Read"), ToolSpec("fs_write", "Write")])

    agent.register_external_tools("fs", [ToolSpec("fs_read", "Read")])

    assert agent.registry.names() == ["fs_read"]


def test_model_status_covers_pool(clock: FakeClock, sleep: RecordingSleep) -> None:
    agent = _agent(ScriptedTransport(), clock, sleep)
    agent.tracker.record_rate_limited("model-a")

    rows = agent.model_status()

    assert [row.model.id for row in rows] == ["model-b", "model-a", "model-c", "model-d"]
    assert [row.available for row in rows] == [True, False, True, True]


def test_missing_api_key_fails_fast() -> None:
    with pytest.raises(AuthenticationFailure) as excinfo:
        VinsaAgent(Settings(api_key=""), project_context="")

    assert "No Groq API key found." in str(excinfo.value)
    assert "GROQ_API_KEY" in excinfo.value.hint


@pytest.mark.asyncio
async def test_reinitialize_with_key_swaps_transport(clock: FakeClock, sleep: RecordingSleep) -> None:
    transport = ScriptedTransport()
    agent = _agent(transport, clock, sleep)
    agent.history = [Message.user("keep me")]
    agent.tracker.record_rate_limited("model-b")

    await agent.reinitialize_with_key("new-key")
    try:
        assert transport.closed
        assert agent.settings.api_key == "new-key"
        assert all(row.available for row in agent.model_status())
        assert [message.content for message in agent.history] == ["keep me"]
    finally:
        await agent.aclose()


@pytest.mark.asyncio
async def test_async_context_manager_closes_transport(clock: FakeClock, sleep: RecordingSleep) -> None:
    transport = ScriptedTransport()

    async with _agent(transport, clock, sleep) as agent:
        assert isinstance(agent, VinsaAgent)

    assert transport.closed


def test_create_agent_builds_real_client() -> None:
    agent = create_agent(Settings(api_key="test-key"), project_context="")

    assert isinstance(agent._session.transport, AIClient)
    assert agent.tracker.models[0].id == Settings().model


def test_clear_history(clock: FakeClock, sleep: RecordingSleep) -> None:
    agent = _agent(ScriptedTransport(), clock, sleep)
    agent.history = [Message.user("x")]

    agent.clear_history()

    assert agent.history_length == 0


@pytest.mark.parametrize(("seconds", "expected"), [(0, "0m 0s"), (59.9, "0m 59s"), (3725, "62m 5s"), (-3, "0m 0s")])
def test_format_duration(seconds: float, expected: str) -> None:
    assert format_duration(seconds) == expected
