"""Tests for tool argument parsing, failed-generation recovery and truncation."""

from __future__ import annotations

import json

import pytest

from tests.helpers import ProviderError
from vinsa.ai.orchestration.tool_call_parser import (
    MAX_TOOL_RESULT_CHARS,
    coerce_value,
    failed_generation_from_error,
    parse_tool_arguments,
    recover_tool_calls,
    truncate_result,
)


class TestParseToolArguments:
    @pytest.mark.parametrize("raw", ["{bad json", "[1, 2]", '"text"', "42", "", "   ", None])
    def test_malformed_or_non_object_becomes_empty(self, raw: str | None) -> None:
        assert parse_tool_arguments(raw) == {}

    def test_null_values_are_dropped(self) -> None:
        assert parse_tool_arguments('{"path": "/tmp", "recursive": null}') == {"path": "/tmp"}

    def test_quoted_scalars_are_coerced(self) -> None:
        parsed = parse_tool_arguments('{"a": "true", "b": "false", "c": "42", "d": "-3.5", "e": "v1.2"}')

        assert parsed == {"a": True, "b": False, "c": 42, "d": -3.5, "e": "v1.2"}

    def test_mapping_input_is_normalized(self) -> None:
        assert parse_tool_arguments({"limit": "10", "skip": None}) == {"limit": 10}

    def test_nested_values_untouched(self) -> None:
        parsed = parse_tool_arguments('{"filters": {"size": "10"}}')

        assert parsed == {"filters": {"size": "10"}}


class TestCoerceValue:
    def test_long_digit_strings_stay_text(self) -> None:
        assert coerce_value("1234567890123456") == "1234567890123456"
        assert coerce_value("123456789012345") == 123456789012345

    @pytest.mark.parametrize("value", ["True", "yes", "1e5", "0x10", "/tmp/1"])
    def test_other_strings_unchanged(self, value: str) -> None:
        assert coerce_value(value) == value

    def test_non_strings_unchanged(self) -> None:
        assert coerce_value(3) == 3
        assert coerce_value([1]) == [1]


class TestRecoverToolCalls:
    def test_pure_json_array(self) -> None:
        text = '[{"name": "read_file", "parameters": {"path": "a.txt", "limit": "5"}}]'

        calls = recover_tool_calls(text)

        assert [call.name for call in calls] == ["read_file"]
        assert json.loads(calls[0].arguments) == {"path": "a.txt", "limit": 5}
        assert calls[0].call_id.startswith("recovered_")

    def test_array_embedded_in_prose(self) -> None:
        text = 'Sure, calling it now: [{"name": "list_dir", "parameters": {"path": "."}}] done'

        calls = recover_tool_calls(text)

        assert [call.name for call in calls] == ["list_dir"]
        assert json.loads(calls[0].arguments) == {"path": "."}

    def test_function_markers(self) -> None:
        text = '<function=search{"query": "ports"}> and <function=read_file {"path": "x"}>'

        calls = recover_tool_calls(text, start_index=3)

        assert [call.name for call in calls] == ["search", "read_file"]
        assert [call.index for call in calls] == [3, 4]
        assert calls[0].call_id.endswith("_3")

    def test_ids_are_unique(self) -> None:
        text = '[{"name": "a"}, {"name": "b"}]'

        calls = recover_tool_calls(text)

        assert len({call.call_id for call in calls}) == 2
        assert [json.loads(call.arguments) for call in calls] == [{}, {}]

    @pytest.mark.parametrize("text", ["", "no tool calls here", "<function=broken{not json}>"])
    def test_unrecoverable_text(self, text: str) -> None:
        assert recover_tool_calls(text) == []


class TestFailedGeneration:
    def test_top_level_body(self) -> None:
        error = ProviderError("bad request", status_code=400, body={"failed_generation": "[]"})

        assert failed_generation_from_error(error) == "[]"

    def test_nested_error_body(self) -> None:
        body = {"error": {"message": "tool_use_failed", "failed_generation": "<function=a{}>"}}
        error = ProviderError("bad request", status_code=400, body=body)

        assert failed_generation_from_error(error) == "<function=a{}>"

    def test_requires_http_400(self) -> None:
        error = ProviderError("server error", status_code=500, body={"failed_generation": "[]"})

        assert failed_generation_from_error(error) is None

    def test_missing_body(self) -> None:
        assert failed_generation_from_error(ProviderError("bad", status_code=400)) is None
        assert failed_generation_from_error(RuntimeError("bad")) is None


class TestTruncateResult:
    def test_short_content_unchanged(self) -> None:
        assert truncate_result("short") == "short"

    def test_long_content_cut_with_note(self) -> None:
        content = "x" * (MAX_TOOL_RESULT_CHARS + 5000)

        truncated = truncate_result(content)

        assert truncated.startswith("x" * MAX_TOOL_RESULT_CHARS)
        assert "[TRUNCATED: result was 20KB, kept first 15KB." in truncated
        assert "narrow the query" in truncated

    def test_custom_limit(self) -> None:
        truncated = truncate_result("abcdef", 3)

        assert truncated.startswith("abc\n\n... [TRUNCATED")
