"""
Risk classification tests for tool calls and shell commands.
"""

from __future__ import annotations

import pytest

from miniclaw.core.risk import RiskLevel, assess_risk, classify_command, describe_tool_call


class TestClassifyCommand:

    @pytest.mark.parametrize("command", [
        "ls -la", "cat README.md", "git status", "grep -rn TODO src", "/usr/bin/ls",
        "echo hi > /dev/null", "make test 2>&1", "echo x > /tmp/scratch.txt",
        "ls | grep py", "cd src && ls",
    ])
    def test_safe(self, command):
        assert classify_command(command) is RiskLevel.SAFE

    @pytest.mark.parametrize("command", [
        "cp a b", "mv old new", "mkdir build", "touch notes.txt", "ls && cp a b",
    ])
    def test_moderate(self, command):
        assert classify_command(command) is RiskLevel.MODERATE

    @pytest.mark.parametrize("command", [
        "rm -rf build", "sudo apt install x", "kill -9 1234", "chmod 777 run.sh",
        "cat list | sudo tee out", "ls && rm a", "false || sudo reboot",
        "echo data > config.yaml", "cat a >> b.txt",
    ])
    def test_dangerous(self, command):
        assert classify_command(command) is RiskLevel.DANGEROUS

    def test_empty_command_is_safe(self):
        assert classify_command("") is RiskLevel.SAFE


class TestAssessRisk:

    def test_builtin_tools(self):
        assert assess_risk("read_file", {"path": "a"}) is RiskLevel.SAFE
        assert assess_risk("list_directory", {}) is RiskLevel.SAFE
        assert assess_risk("write_file", {"path": "a"}) is RiskLevel.MODERATE
        assert assess_risk("edit", {"path": "a"}) is RiskLevel.MODERATE

    def test_unknown_tool_is_moderate(self):
        assert assess_risk("web_search", {"q": "x"}) is RiskLevel.MODERATE

    def test_shell_uses_command(self):
        assert assess_risk("exec_command", {"command": "rm x"}) is RiskLevel.DANGEROUS
        assert assess_risk("exec_command", {"command": "ls"}) is RiskLevel.SAFE

    def test_malformed_shell_arguments(self):
        assert assess_risk("exec_command", [1, 2]) is RiskLevel.SAFE
        assert assess_risk("exec_command", {"command": 42}) is RiskLevel.SAFE

    def test_only_dangerous_needs_confirmation(self):
        assert [level.needs_confirmation for level in RiskLevel] == [False, False, True]


def test_describe_tool_call():
    assert describe_tool_call("exec_command", {"command": "rm -rf /"}) == "Run command: rm -rf /"
    assert describe_tool_call("write_file", {"path": "a.txt"}) == "Write file: a.txt"
    assert describe_tool_call("edit", {"path": "b.py"}) == "Edit file: b.py"
    assert describe_tool_call("read_file", {}) == "Read file: ?"
    assert describe_tool_call("web_search", {"q": "x"}) == "Call tool: web_search"
