"""Tests for the built-in local tools and the tool registry routing."""

import httpx
import pytest

from taskAgent.safety.gate import NetworkRules, SafetyGate, SafetyRules
from taskAgent.tools.local import LocalToolProvider
from taskAgent.tools.registry import ToolRegistry


@pytest.fixture
def provider(tmp_path, safety_gate):
    return LocalToolProvider(safety_gate, root=tmp_path)


class TestFileTools:
    """File operations rooted at the working directory."""

    @pytest.mark.asyncio
    async def test_write_then_read(self, provider, tmp_path):
        written = await provider.call_tool("file_write", {"path": "notes/a.txt", "content": "one\ntwo\nthree"})
        assert written.success
        assert (tmp_path / "notes" / "a.txt").read_text() == "one\ntwo\nthree"

        read = await provider.call_tool("file_read", {"path": "notes/a.txt"})
        assert read.success
        assert read.tool_key == "local::file_read"
        assert read.content == "one\ntwo\nthree"

    @pytest.mark.asyncio
    async def test_read_line_range(self, provider, tmp_path):
        (tmp_path / "b.txt").write_text("1\n2\n3\n4")
        result = await provider.call_tool("file_read", {"path": "b.txt", "start_line": 2, "end_line": 3})
        assert result.content == "[Lines 2-3 of 4 total]\n2\n3"

    @pytest.mark.asyncio
    async def test_missing_file(self, provider):
        result = await provider.call_tool("file_read", {"path": "nope.txt"})
        assert not result.success
        assert result.is_error
        assert "File not found" in result.content

    @pytest.mark.asyncio
    async def test_create_refuses_existing(self, provider, tmp_path):
        (tmp_path / "c.txt").write_text("x")
        result = await provider.call_tool("file_create", {"path": "c.txt", "content": "y"})
        assert not result.success
        assert "already exists" in result.content

    @pytest.mark.asyncio
    async def test_move_and_delete(self, provider, tmp_path):
        (tmp_path / "d.txt").write_text("x")
        moved = await provider.call_tool("file_move", {"path": "d.txt", "destination": "sub/e.txt"})
        assert moved.success
        assert (tmp_path / "sub" / "e.txt").exists()
        deleted = await provider.call_tool("file_delete", {"path": "sub/e.txt"})
        assert deleted.success
        assert not (tmp_path / "sub" / "e.txt").exists()

    @pytest.mark.asyncio
    async def test_directory_list(self, provider, tmp_path):
        (tmp_path / "pkg").mkdir()
        (tmp_path / "z.txt").write_text("")
        result = await provider.call_tool("directory_list", {"path": "."})
        assert result.content.splitlines() == ["pkg/", "z.txt"]

    @pytest.mark.asyncio
    async def test_safety_block_becomes_failed_result(self, provider, tmp_path):
        result = await provider.call_tool("file_write", {"path": "run.exe", "content": "MZ"})
        assert not result.success
        assert result.content.startswith("SafetyBlocked:")
        assert not (tmp_path / "run.exe").exists()

    @pytest.mark.asyncio
    async def test_missing_argument(self, provider):
        result = await provider.call_tool("file_read", {})
        assert not result.success
        assert "Missing required argument: path" in result.content


class TestShellAndNetwork:
    """Shell denial and HTTP requests over a mock transport."""

    @pytest.mark.asyncio
    async def test_blocked_shell_command_never_runs(self, provider):
        result = await provider.call_tool("shell_execute", {"command": "shutdown -h now"})
        assert not result.success
        assert "SafetyBlocked" in result.content

    @pytest.mark.asyncio
    async def test_http_request(self, tmp_path, safety_gate):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="pong")

        provider = LocalToolProvider(safety_gate, root=tmp_path, http_transport=httpx.MockTransport(handler))
        result = await provider.call_tool("http_request", {"url": "https://example.com/ping"})
        assert result.success
        assert result.content == "HTTP 200\npong"
        assert seen[0].method == "GET"

    @pytest.mark.asyncio
    async def test_http_error_status(self, tmp_path, safety_gate):
        transport = httpx.MockTransport(lambda request: httpx.Response(404, text="missing"))
        provider = LocalToolProvider(safety_gate, root=tmp_path, http_transport=transport)
        result = await provider.call_tool("http_request", {"url": "https://example.com/x"})
        assert not result.success
        assert result.content.startswith("HTTP 404")

    @pytest.mark.asyncio
    async def test_blocked_domain(self, tmp_path):
        gate = SafetyGate(SafetyRules(network=NetworkRules(blocked_domains=["example.com"])))
        transport = httpx.MockTransport(lambda request: httpx.Response(200))
        provider = LocalToolProvider(gate, root=tmp_path, http_transport=transport)
        result = await provider.call_tool("http_request", {"url": "https://example.com/"})
        assert "SafetyBlocked" in result.content


class TestToolRegistry:
    """Routing by server id."""

    @pytest.mark.asyncio
    async def test_routes_local_and_unknown(self, provider, tmp_path):
        (tmp_path / "a.txt").write_text("hello")
        registry = ToolRegistry(local=provider)
        assert (await registry.call_tool("local::file_read", {"path": "a.txt"})).content == "hello"
        unknown = await registry.call_tool("local::teleport", {})
        assert not unknown.success
        assert "Unknown tool" in unknown.content

    @pytest.mark.asyncio
    async def test_external_without_servers(self, provider):
        registry = ToolRegistry(local=provider)
        result = await registry.call_tool("search::web_search", {"q": "x"})
        assert not result.success
        assert "not connected" in result.content

    def test_definitions(self, provider):
        registry = ToolRegistry(local=provider)
        keys = [tool.key for tool in registry.list_definitions()]
        assert "local::file_read" in keys
        assert "local::http_request" in keys
        assert registry.get_definition("local::shell_execute").input_schema["required"] == ["command"]
        assert not registry.is_auto_approved("local::file_read")
