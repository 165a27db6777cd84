"""Tests for tool-call argument parsing and repair."""

import json

import pytest

from cody.agent import parse_tool_arguments, repair_arguments, truncate_output


class TestParseToolArguments:
    def test_valid_json_is_lossless(self):
        args = {"path": "src/app.py", "content": 'print("hi")\n', "n": 3}
        assert parse_tool_arguments(json.dumps(args)) == args

    def test_unquoted_key_and_value_recover(self):
        assert parse_tool_arguments("{path: hello.py}") == {"path": "hello.py"}

    def test_unquoted_value_recovers(self):
        assert parse_tool_arguments('{"path": hello.py}') == {"path": "hello.py"}

    def test_multiple_bare_pairs(self):
        result = parse_tool_arguments("{path: notes.txt, content: hi there}")
        assert result == {"path": "notes.txt", "content": "hi there"}

    def test_literals_keep_their_type(self):
        result = parse_tool_arguments("{count: 3, flag: true, missing: null}")
        assert result == {"count": 3, "flag": True, "missing": None}

    @pytest.mark.parametrize("text", ["", "   ", "\n\t", None])
    def test_blank_gives_empty_dict(self, text):
        assert parse_tool_arguments(text) == {}

    def test_unrecoverable_gives_empty_dict(self):
        assert parse_tool_arguments("not json at all") == {}

    def test_broken_beyond_repair_gives_empty_dict(self):
        assert parse_tool_arguments('{"path": "a.txt"') == {}

    @pytest.mark.parametrize("text", ["[1, 2]", '"just a string"', "42", "null"])
    def test_non_object_json_gives_empty_dict(self, text):
        assert parse_tool_arguments(text) == {}


class TestRepairArguments:
    def test_returns_none_when_nothing_to_fix(self):
        assert repair_arguments('{"path": "a.txt"}') is None

    def test_quotes_bare_key(self):
        assert json.loads(repair_arguments("{path: 1}")) == {"path": 1}

    def test_value_with_spaces(self):
        fixed = repair_arguments('{"command": ls -la}')
        assert json.loads(fixed) == {"command": "ls -la"}


class TestTruncateOutput:
    def test_short_output_unchanged(self):
        assert truncate_output("hello", 100) == "hello"

    def test_long_output_clipped(self):
        out = truncate_output("x" * 5000, 1000)
        assert out.startswith("x" * 1000)
        assert "x" * 1001 not in out
        assert "truncated" in out

    def test_multibyte_boundary(self):
        out = truncate_output("é" * 100, 51)
        # 51 bytes cuts a two-byte character in half; the partial byte is dropped
        assert out.startswith("é" * 25)
        assert "truncated" in out
