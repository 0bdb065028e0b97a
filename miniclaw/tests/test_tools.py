"""
Tool registry and built-in tool tests.
"""

from __future__ import annotations

import asyncio
import sys

import pytest

from miniclaw.config.settings import Config
from miniclaw.core.errors import UnknownToolError
from miniclaw.core.models import ToolCall
from miniclaw.core.tool_registry import ToolRegistry
from miniclaw.tools import (
    BUILTIN_TOOLS, EditTool, ExecCommandTool, ListDirectoryTool, ReadFileTool, WriteFileTool,
    register_tools,
)
from miniclaw.tools.exec_command import truncate_output
from miniclaw.tools.list_directory import format_size
from miniclaw.tests.helpers import CrashingTool, FailingTool, RecordingTool


class TestToolRegistry:

    def test_register_and_resolve(self):
        registry = ToolRegistry()
        tool = RecordingTool("echo")
        registry.register(tool)
        assert registry.resolve("echo") is tool
        assert registry.has_tool("echo")
        assert registry.tool_names == ["echo"]
        assert len(registry) == 1

    def test_resolve_unknown_raises(self):
        registry = ToolRegistry()
        registry.register(RecordingTool("echo"))
        with pytest.raises(UnknownToolError) as exc:
            registry.resolve("nope")
        assert exc.value.kind == "UnknownTool"
        assert "echo" in str(exc.value)

    def test_definitions(self):
        registry = ToolRegistry()
        registry.register(ReadFileTool())
        schemas = registry.definitions()
        assert schemas[0].name == "read_file"
        assert schemas[0].input_schema["required"] == ["path"]

    @pytest.mark.asyncio
    async def test_execute_success_sets_id_and_duration(self):
        registry = ToolRegistry()
        tool = RecordingTool("echo")
        registry.register(tool)
        result = await registry.execute(ToolCall(id="c1", name="echo", arguments={"path": "."}))
        assert result.success
        assert result.tool_id == "c1"
        assert result.output == "ok:echo"
        assert "duration_ms" in result.metadata
        assert tool.calls == [{"path": "."}]

    @pytest.mark.asyncio
    async def test_unknown_tool_is_failed_result(self):
        registry = ToolRegistry()
        result = await registry.execute(ToolCall(id="c1", name="ghost", arguments={}))
        assert not result.success
        assert result.content.startswith("Error: Unknown tool: ghost")

    @pytest.mark.asyncio
    async def test_tool_error_is_failed_result(self):
        registry = ToolRegistry()
        registry.register(FailingTool())
        result = await registry.execute(ToolCall(id="c", name="failing_tool", arguments={}))
        assert not result.success
        assert result.content == "Error: disk on fire"

    @pytest.mark.asyncio
    async def test_crash_is_failed_result(self):
        registry = ToolRegistry()
        registry.register(CrashingTool())
        result = await registry.execute(ToolCall(id="c", name="crashing_tool", arguments={}))
        assert not result.success
        assert "unexpected crash" in result.error

    @pytest.mark.asyncio
    async def test_non_object_arguments(self):
        registry = ToolRegistry()
        registry.register(RecordingTool("echo"))
        result = await registry.execute(ToolCall(id="c", name="echo", arguments=[1, 2]))
        assert not result.success
        assert "JSON object" in result.error

    @pytest.mark.asyncio
    async def test_wrong_keyword_arguments(self):
        registry = ToolRegistry()
        registry.register(WriteFileTool())
        result = await registry.execute(ToolCall(id="c", name="write_file", arguments={"path": "x"}))
        assert not result.success
        assert "Invalid arguments" in result.error


class TestRegisterTools:

    def test_all_builtins_by_default(self):
        registry = ToolRegistry()
        register_tools(registry, Config({}))
        assert tuple(registry.tool_names) == BUILTIN_TOOLS

    def test_enabled_subset_and_unknown_skipped(self):
        registry = ToolRegistry()
        register_tools(registry, Config({"tools": {"enabled": ["read_file", "teleport"]}}))
        assert registry.tool_names == ["read_file"]

    def test_exec_timeout_from_config(self):
        registry = ToolRegistry()
        register_tools(registry, Config({"tools": {"enabled": ["exec_command"], "exec_timeout": 7}}))
        assert registry.resolve("exec_command")._default_timeout == 7


class TestFileTools:

    @pytest.mark.asyncio
    async def test_write_then_read(self, tmp_path):
        target = tmp_path / "nested" / "dir" / "note.txt"
        result = await WriteFileTool().execute(path=str(target), content="line1\nline2\nline3\n")
        assert result.success
        assert target.read_text() == "line1\nline2\nline3\n"

        result = await ReadFileTool().execute(path=str(target))
        assert result.output == "line1\nline2\nline3\n"
        assert result.metadata["total_lines"] == 3

    @pytest.mark.asyncio
    async def test_read_window(self, tmp_path):
        target = tmp_path / "f.txt"
        target.write_text("".join(f"{i}\n" for i in range(1, 11)))
        result = await ReadFileTool().execute(path=str(target), offset=3, limit=2)
        assert result.output == "3\n4\n"

    @pytest.mark.asyncio
    async def test_read_truncates(self, tmp_path):
        target = tmp_path / "big.txt"
        target.write_text("x" * 100)
        result = await ReadFileTool(max_chars=10).execute(path=str(target))
        assert result.output.startswith("x" * 10)
        assert "[Truncated" in result.output
        assert result.metadata["truncated"] is True

    @pytest.mark.asyncio
    async def test_read_missing_and_directory(self, tmp_path):
        missing = await ReadFileTool().execute(path=str(tmp_path / "nope.txt"))
        assert not missing.success and "not found" in missing.error
        directory = await ReadFileTool().execute(path=str(tmp_path))
        assert not directory.success and "directory" in directory.error

    @pytest.mark.asyncio
    async def test_write_to_directory_fails(self, tmp_path):
        result = await WriteFileTool().execute(path=str(tmp_path), content="x")
        assert not result.success


class TestEditTool:

    @pytest.mark.asyncio
    async def test_replaces_first_occurrence(self, tmp_path):
        target = tmp_path / "app.py"
        target.write_text("x = 1\nx = 1\n")
        result = await EditTool().execute(path=str(target), old_text="x = 1", new_text="x = 2")
        assert result.success
        assert result.metadata["replacements"] == 1
        assert target.read_text() == "x = 2\nx = 1\n"

    @pytest.mark.asyncio
    async def test_replace_all(self, tmp_path):
        target = tmp_path / "app.py"
        target.write_text("foo bar foo baz foo")
        result = await EditTool().execute(path=str(target), old_text="foo", new_text="qux",
                                          replace_all=True)
        assert result.output == f"Successfully replaced 3 occurrence(s) in {target}"
        assert target.read_text() == "qux bar qux baz qux"

    @pytest.mark.asyncio
    async def test_preserves_indentation(self, tmp_path):
        target = tmp_path / "app.py"
        target.write_text("def f():\n    return 1\n")
        await EditTool().execute(path=str(target), old_text="    return 1", new_text="    return 2")
        assert target.read_text() == "def f():\n    return 2\n"

    @pytest.mark.asyncio
    async def test_not_found_leaves_file_alone(self, tmp_path):
        target = tmp_path / "app.py"
        target.write_text("hello")
        result = await EditTool().execute(path=str(target), old_text="y" * 100, new_text="z")
        assert not result.success
        assert "not found" in result.error
        assert "y" * 80 + "..." in result.error
        assert target.read_text() == "hello"

    @pytest.mark.asyncio
    async def test_missing_file_and_empty_old_text(self, tmp_path):
        missing = await EditTool().execute(path=str(tmp_path / "nope"), old_text="a", new_text="b")
        assert not missing.success and "Failed to read file" in missing.error
        empty = await EditTool().execute(path=str(tmp_path), old_text="", new_text="b")
        assert not empty.success and "must not be empty" in empty.error

    @pytest.mark.asyncio
    async def test_through_registry(self, tmp_path):
        target = tmp_path / "notes.txt"
        target.write_text("draft")
        registry = ToolRegistry()
        register_tools(registry, Config({"tools": {"enabled": ["edit"]}}))
        result = await registry.execute(ToolCall(
            id="e1", name="edit", arguments={"path": str(target), "old_text": "draft", "new_text": "final"},
        ))
        assert result.success
        assert target.read_text() == "final"


class TestListDirectory:

    @pytest.mark.asyncio
    async def test_flat_listing_skips_hidden(self, tmp_path):
        (tmp_path / "b.txt").write_text("hello")
        (tmp_path / "a_dir").mkdir()
        (tmp_path / ".hidden").write_text("secret")
        result = await ListDirectoryTool().execute(path=str(tmp_path))
        assert result.success
        lines = result.output.splitlines()
        assert "(2 entries)" in lines[0]
        assert lines[1] == "a_dir/"
        assert lines[2] == "  b.txt (5 B)"
        assert ".hidden" not in result.output

    @pytest.mark.asyncio
    async def test_recursive_listing(self, tmp_path):
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "main.py").write_text("print()")
        flat = await ListDirectoryTool().execute(path=str(tmp_path))
        deep = await ListDirectoryTool().execute(path=str(tmp_path), recursive=True)
        assert "main.py" not in flat.output
        assert "main.py" in deep.output

    @pytest.mark.asyncio
    async def test_empty_and_missing(self, tmp_path):
        empty = await ListDirectoryTool().execute(path=str(tmp_path))
        assert "empty directory" in empty.output
        missing = await ListDirectoryTool().execute(path=str(tmp_path / "nope"))
        assert not missing.success

    def test_format_size(self):
        assert format_size(12) == "12 B"
        assert format_size(2048) == "2.0 KB"
        assert format_size(3 * 1_048_576) == "3.0 MB"


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell")
class TestExecCommand:

    @pytest.mark.asyncio
    async def test_stdout(self, tmp_path):
        result = await ExecCommandTool(workspace_dir=str(tmp_path)).execute(command="echo hello")
        assert result.success
        assert result.output.strip() == "hello"
        assert result.metadata["exit_code"] == 0

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_reported(self):
        result = await ExecCommandTool().execute(command="echo oops >&2; exit 3")
        assert result.success
        assert "[stderr]" in result.output
        assert result.output.endswith("[exit code: 3]")

    @pytest.mark.asyncio
    async def test_no_output(self):
        result = await ExecCommandTool().execute(command="true")
        assert result.output == "(no output, exit code: 0)"

    @pytest.mark.asyncio
    async def test_timeout(self):
        result = await ExecCommandTool().execute(command="sleep 5", timeout=0.2)
        assert not result.success
        assert "timed out" in result.error

    @pytest.mark.asyncio
    async def test_cancel_kills_and_reaps_child(self, monkeypatch):
        started = []
        spawn = asyncio.create_subprocess_shell

        async def recording_spawn(*args, **kwargs):
            process = await spawn(*args, **kwargs)
            started.append(process)
            return process

        monkeypatch.setattr(asyncio, "create_subprocess_shell", recording_spawn)

        task = asyncio.create_task(ExecCommandTool().execute(command="sleep 30"))
        while not started:
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert started[0].returncode is not None

    def test_truncate_output_keeps_head_and_tail(self):
        out = truncate_output("a" * 50 + "b" * 50, 20)
        assert out.startswith("a" * 10)
        assert out.endswith("b" * 10)
        assert "80 chars omitted" in out
