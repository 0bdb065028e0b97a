"""
Tool Risk — classify a tool call before it runs.

- **SAFE**: read-only (``read_file``, ``list_directory``, ``ls``, ``git status``)
- **MODERATE**: modifies files in expected ways (``write_file``, ``edit``, ``cp``)
- **DANGEROUS**: destructive or privileged; the agent asks for approval first

Shell commands are split on ``&&``/``||`` and ``|``; the worst segment wins.
"""

from __future__ import annotations
import re
from enum import Enum


class RiskLevel(Enum):
    SAFE = "safe"
    MODERATE = "moderate"
    DANGEROUS = "dangerous"

    @property
    def needs_confirmation(self) -> bool:
        return self is RiskLevel.DANGEROUS


SHELL_TOOL = "exec_command"

TOOL_RISK = {
    "read_file": RiskLevel.SAFE,
    "list_directory": RiskLevel.SAFE,
    "write_file": RiskLevel.MODERATE,
    "edit": RiskLevel.MODERATE,
}

DANGEROUS_COMMANDS = frozenset({
    "rm", "rmdir", "sudo", "su", "kill", "pkill", "killall",
    "chmod", "chown", "chgrp", "dd", "mkfs", "fdisk", "parted",
    "mount", "umount", "shutdown", "reboot", "systemctl", "service",
    "iptables", "useradd", "userdel", "passwd",
})

SAFE_COMMANDS = frozenset({
    "ls", "cat", "head", "tail", "less", "more", "wc", "echo", "printf", "pwd",
    "whoami", "which", "where", "type", "file", "stat", "du", "df", "date",
    "uname", "env", "printenv", "grep", "rg", "find", "fd", "ag", "awk", "sed",
    "sort", "uniq", "diff", "tree", "git", "cargo", "rustc", "rustup", "npm",
    "node", "python", "python3", "pip", "pip3", "go", "make", "cmake", "docker",
    "kubectl", "cd", "sleep",
})

# Targets a redirect may write to without touching real files
_SAFE_REDIRECT = re.compile(r"^(/dev/null|&\d+|/tmp(/.*)?|/var/tmp(/.*)?)$")
_REDIRECT = re.compile(r">>?\s*(\S+)")


def assess_risk(tool_name: str, arguments) -> RiskLevel:
    """Risk of one call; unknown tools count as MODERATE."""
    if tool_name == SHELL_TOOL:
        command = arguments.get("command", "") if isinstance(arguments, dict) else ""
        return classify_command(command if isinstance(command, str) else "")
    return TOOL_RISK.get(tool_name, RiskLevel.MODERATE)


def classify_command(command: str) -> RiskLevel:
    worst = RiskLevel.SAFE
    for part in re.split(r"&&|\|\|", command):
        part = part.strip()
        if not part:
            continue
        level = _classify_simple(part)
        if level is RiskLevel.DANGEROUS:
            return level
        if level is RiskLevel.MODERATE:
            worst = level
    return worst


def _first_word(segment: str) -> str:
    words = segment.split()
    return words[0] if words else ""


def _classify_simple(command: str) -> RiskLevel:
    for segment in command.split("|"):
        if _first_word(segment) in DANGEROUS_COMMANDS:
            return RiskLevel.DANGEROUS

    if any(not _SAFE_REDIRECT.match(target) for target in _REDIRECT.findall(command)):
        return RiskLevel.DANGEROUS

    program = _first_word(command)
    # /usr/bin/ls counts as ls
    if program.rsplit("/", 1)[-1] in SAFE_COMMANDS:
        return RiskLevel.SAFE
    return RiskLevel.MODERATE


def describe_tool_call(tool_name: str, arguments) -> str:
    """One line for the confirmation prompt."""
    args = arguments if isinstance(arguments, dict) else {}
    if tool_name == SHELL_TOOL:
        return f"Run command: {args.get('command', '?')}"
    if tool_name == "write_file":
        return f"Write file: {args.get('path', '?')}"
    if tool_name == "edit":
        return f"Edit file: {args.get('path', '?')}"
    if tool_name == "read_file":
        return f"Read file: {args.get('path', '?')}"
    return f"Call tool: {tool_name}"
