"""
System Prompt Builder — the configured prompt plus project rule files.

Rule files are ``CLAUDE.md`` and ``.claude/CLAUDE.md``, collected from the
filesystem root down to the project root and injected inside
``<project_rules>`` tags.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. You can use tools to help the user with "
    "tasks like reading files, writing files, executing commands, and more. "
    "Be concise and helpful."
)

RULE_FILENAMES = ("CLAUDE.md", ".claude/CLAUDE.md")


@dataclass
class RuleFile:
    path: Path
    content: str


def _try_load(path: Path, out: list[RuleFile]) -> None:
    if not path.is_file():
        return
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Skipping unreadable rule file {path}: {e}")
        return
    if content.strip():
        out.append(RuleFile(path=path, content=content))


def load_rules(project_root: Path) -> list[RuleFile]:
    """
    Discover rule files, earliest ancestor first and the project root last.
    """
    try:
        project_root = project_root.resolve()
    except OSError:
        pass

    rules: list[RuleFile] = []
    for directory in reversed(project_root.parents):
        for name in RULE_FILENAMES:
            _try_load(directory / name, rules)
    for name in RULE_FILENAMES:
        _try_load(project_root / name, rules)
    return rules


def build_rules_context(project_root: Path) -> Optional[str]:
    """Combined rules text, or None when no rule file exists."""
    rules = load_rules(project_root)
    if not rules:
        return None
    logger.info(f"Loaded {len(rules)} project rule file(s)")
    parts = [f"# Rules from {r.path}\n\n{r.content.strip()}" for r in rules]
    return "\n\n---\n\n".join(parts)


class PromptBuilder:
    """Build the system message that opens every session's history."""

    def __init__(self, config, project_root: Optional[Path] = None):
        self.config = config
        self.project_root = Path(project_root) if project_root else Path.cwd()

    def build(self) -> str:
        base = self.config.get("agent.system_prompt") or DEFAULT_SYSTEM_PROMPT
        sections = [base.strip(), self._section_env()]

        rules = build_rules_context(self.project_root)
        if rules:
            sections.append(f"<project_rules>\n{rules}\n</project_rules>")

        return "\n\n".join(sections)

    def _section_env(self) -> str:
        now = datetime.now()
        return "\n".join([
            "<env>",
            f"Today's date: {now.strftime('%A, %B %d, %Y')}",
            f"Working directory: {self.project_root}",
            f"Model: {self.config.get('llm.model', 'unknown')}",
            "</env>",
        ])
