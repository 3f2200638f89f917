"""Tests for the layered response parser."""

from taskAgent.loop.parser import (
    Completion,
    ToolCall,
    Unparseable,
    iter_balanced_objects,
    parse_response,
    stable_stringify,
)


class TestStrategies:
    """Raw JSON, fenced blocks and free-text scanning."""

    def test_raw_tool_call(self):
        parsed = parse_response('{"tool": "local::file_read", "args": {"path": "a.txt"}}')
        assert parsed == ToolCall(tool="local::file_read", args={"path": "a.txt"})

    def test_fenced_block(self):
        text = 'Sure, here it is:\n```json\n{"tool": "local::directory_list", "args": {"path": "."}}\n```'
        assert parse_response(text) == ToolCall(tool="local::directory_list", args={"path": "."})

    def test_prose_wrapped_object(self):
        text = 'I will list the files now. {"tool": "local::directory_list", "args": {}} Then continue.'
        assert parse_response(text) == ToolCall(tool="local::directory_list", args={})

    def test_first_valid_object_wins(self):
        text = 'Notes {"thought": "x"} then {"tool": "a::b", "args": {"n": 1}} and {"tool": "c::d"}'
        assert parse_response(text) == ToolCall(tool="a::b", args={"n": 1})

    def test_braces_inside_strings(self):
        text = 'Run: {"tool": "local::shell_execute", "args": {"command": "echo \\"}{\\""}}'
        parsed = parse_response(text)
        assert isinstance(parsed, ToolCall)
        assert parsed.args == {"command": 'echo "}{"'}

    def test_tool_call_markers(self):
        text = '[TOOL_CALL]{"tool": "local::file_read", "args": {"path": "x"}}[TOOL_CALL]'
        assert parse_response(text) == ToolCall(tool="local::file_read", args={"path": "x"})

    def test_missing_args_default_to_empty(self):
        assert parse_response('{"tool": "local::directory_list"}') == ToolCall(tool="local::directory_list")


class TestCompletion:

    def test_done_signal(self):
        assert parse_response('{"done": true, "summary": "Found 3 files"}') == Completion("Found 3 files")

    def test_done_wrapping_tool_call_is_unparseable(self):
        text = '{"done": true, "summary": "{\\"tool\\": \\"local::file_read\\", \\"args\\": {}}"}'
        parsed = parse_response(text)
        assert isinstance(parsed, Unparseable)
        assert parsed.reason == "Completion summary wraps a tool call"
        assert parsed.raw == text

    def test_done_false_is_not_completion(self):
        assert isinstance(parse_response('{"done": false, "summary": "x"}'), Unparseable)


class TestRejects:

    def test_empty(self):
        parsed = parse_response("   ")
        assert isinstance(parsed, Unparseable)
        assert parsed.reason == "Empty response"

    def test_plain_prose(self):
        parsed = parse_response("I think the answer is 42.")
        assert isinstance(parsed, Unparseable)
        assert parsed.raw == "I think the answer is 42."

    def test_unbalanced_brace_skipped(self):
        text = '{ oops {"tool": "a::b", "args": {}}'
        assert parse_response(text) == ToolCall(tool="a::b", args={})


class TestHelpers:

    def test_stable_stringify_ignores_key_order(self):
        assert stable_stringify({"b": 1, "a": {"y": 2, "x": 1}}) == stable_stringify({"a": {"x": 1, "y": 2}, "b": 1})

    def test_iter_balanced_objects(self):
        assert list(iter_balanced_objects('a {"x": {"y": 1}} b {} c {')) == ['{"x": {"y": 1}}', "{}"]
