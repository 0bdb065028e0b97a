"""
Tests for configuration loading, the system prompt builder and structured logging.
"""

import asyncio
import json
import logging

import pytest

from miniclaw.config import settings
from miniclaw.config.settings import Config, load_config
from miniclaw.core.errors import ConfigError
from miniclaw.core.prompt_builder import DEFAULT_SYSTEM_PROMPT, PromptBuilder, load_rules
from miniclaw.core.structured_logger import (
    HumanFormatter, SessionContextFilter, StructuredFormatter,
    bind_context, current_context, reset_context,
)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """No user config file and no MINICLAW_* overrides unless a test sets them."""
    monkeypatch.setattr(settings, "DEFAULT_USER_CONFIG", tmp_path / "absent.yaml")
    for key in ("MINICLAW_PROVIDER", "MINICLAW_MODEL", "MINICLAW_API_BASE",
                "MINICLAW_MAX_ITERATIONS", "LLM_API_KEY", "MY_KEY"):
        monkeypatch.delenv(key, raising=False)


class TestLoadConfig:

    def test_defaults(self):
        config = load_config()
        assert config.get("llm.provider") == "openai_compatible"
        assert config.get("agent.max_iterations") == 20
        assert config.get("llm.stream") is True
        assert "exec_command" in config.get("tools.enabled")

    def test_user_file_is_deep_merged(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("llm:\n  model: my-model\nagent:\n  max_iterations: 5\n")
        config = load_config(str(path))
        assert config.get("llm.model") == "my-model"
        assert config.get("llm.provider") == "openai_compatible"
        assert config.get("agent.max_iterations") == 5

    def test_default_user_config_is_read(self, tmp_path, monkeypatch):
        path = tmp_path / "home.yaml"
        path.write_text("llm:\n  provider: anthropic\n")
        monkeypatch.setattr(settings, "DEFAULT_USER_CONFIG", path)
        assert load_config().get("llm.provider") == "anthropic"

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(str(tmp_path / "nope.yaml"))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("llm: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(str(path))

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(str(path))

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(str(path)).get("agent.max_iterations") == 20

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("MINICLAW_PROVIDER", "openai")
        monkeypatch.setenv("MINICLAW_MODEL", "gpt-4o-mini")
        monkeypatch.setenv("MINICLAW_MAX_ITERATIONS", "3")
        config = load_config()
        assert config.get("llm.provider") == "openai"
        assert config.get("llm.model") == "gpt-4o-mini"
        assert config.get("agent.max_iterations") == 3

    def test_env_bad_integer(self, monkeypatch):
        monkeypatch.setenv("MINICLAW_MAX_ITERATIONS", "many")
        with pytest.raises(ConfigError, match="integer"):
            load_config()

    def test_max_iterations_must_be_positive(self, tmp_path):
        path = tmp_path / "zero.yaml"
        path.write_text("agent:\n  max_iterations: 0\n")
        with pytest.raises(ConfigError):
            load_config(str(path))


class TestConfig:

    def test_dot_access(self):
        config = Config({"a": {"b": {"c": 1}}})
        assert config.get("a.b.c") == 1
        assert config.get("a.b.missing", "x") == "x"
        assert config.get("a.b.c.d", "deep") == "deep"

    def test_set_creates_intermediate(self):
        config = Config({})
        config.set("llm.model", "m")
        assert config.raw == {"llm": {"model": "m"}}

    def test_api_key_from_config(self):
        assert Config({"llm": {"api_key": "sk-direct"}}).api_key() == "sk-direct"

    def test_api_key_from_named_env(self, monkeypatch):
        monkeypatch.setenv("MY_KEY", "sk-env")
        assert Config({"llm": {"api_key_env": "MY_KEY"}}).api_key() == "sk-env"

    def test_api_key_default_env(self, monkeypatch):
        monkeypatch.setenv("LLM_API_KEY", "sk-default")
        assert Config({}).api_key() == "sk-default"

    def test_api_key_missing(self):
        with pytest.raises(ConfigError, match="LLM_API_KEY"):
            Config({}).api_key()


class TestPromptBuilder:

    def test_default_prompt_and_env(self, tmp_path):
        prompt = PromptBuilder(Config({"llm": {"model": "m1"}}), project_root=tmp_path).build()
        assert prompt.startswith(DEFAULT_SYSTEM_PROMPT)
        assert "<env>" in prompt
        assert f"Working directory: {tmp_path}" in prompt
        assert "Model: m1" in prompt

    def test_configured_prompt(self, tmp_path):
        config = Config({"agent": {"system_prompt": "Be terse."}})
        assert PromptBuilder(config, project_root=tmp_path).build().startswith("Be terse.")

    def test_rules_injected_parent_first(self, tmp_path):
        project = tmp_path / "repo"
        (project / ".claude").mkdir(parents=True)
        (tmp_path / "CLAUDE.md").write_text("parent rule")
        (project / "CLAUDE.md").write_text("project rule")
        (project / ".claude" / "CLAUDE.md").write_text("hidden rule")

        rules = [r for r in load_rules(project) if tmp_path.resolve() in r.path.parents]
        assert [r.content for r in rules] == ["parent rule", "project rule", "hidden rule"]

        prompt = PromptBuilder(Config({}), project_root=project).build()
        assert "<project_rules>" in prompt
        assert prompt.index("parent rule") < prompt.index("project rule") < prompt.index("hidden rule")

    def test_blank_rule_files_ignored(self, tmp_path):
        (tmp_path / "CLAUDE.md").write_text("   \n")
        assert [r for r in load_rules(tmp_path) if r.path.parent == tmp_path.resolve()] == []


def _record(msg="hello"):
    return logging.LogRecord("miniclaw.test", logging.INFO, __file__, 1, msg, None, None)


class TestStructuredLogging:

    def test_context_is_bound_and_reset(self):
        token = bind_context(session_id="abc123")
        try:
            assert current_context().session_id == "abc123"
        finally:
            reset_context(token)
        assert current_context().session_id == ""

    def test_json_formatter_includes_session(self):
        token = bind_context(session_id="abc123", extra={"turn": 2})
        try:
            record = _record()
            SessionContextFilter().filter(record)
        finally:
            reset_context(token)

        entry = json.loads(StructuredFormatter().format(record))
        assert entry["message"] == "hello"
        assert entry["level"] == "INFO"
        assert entry["session_id"] == "abc123"
        assert entry["extra"] == {"turn": 2}

    def test_human_formatter_prefix(self):
        token = bind_context(session_id="abc123")
        try:
            record = _record()
            SessionContextFilter().filter(record)
        finally:
            reset_context(token)
        assert "[abc123] hello" in HumanFormatter().format(record)

    def test_human_formatter_without_session(self):
        record = _record()
        SessionContextFilter().filter(record)
        line = HumanFormatter().format(record)
        assert line.endswith("miniclaw.test: hello")

    @pytest.mark.asyncio
    async def test_context_isolated_between_tasks(self):
        seen = {}

        async def run(sid):
            token = bind_context(session_id=sid)
            try:
                await asyncio.sleep(0.01)
                seen[sid] = current_context().session_id
            finally:
                reset_context(token)

        await asyncio.gather(run("one"), run("two"))
        assert seen == {"one": "one", "two": "two"}
