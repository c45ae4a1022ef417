"""Tests for the agentmem CLI."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from typer.testing import CliRunner

from agentmem import __version__
from agentmem.cli import app
from agentmem.errors import StoreError
from agentmem.memory.models import Role
from agentmem.memory.orchestrator import MemoryOrchestrator
from agentmem.memory.stm import STM
from agentmem.persistence.interface import KeyValueStore
from agentmem.persistence.memory_backend import InMemoryKeyValueStore, InMemorySemanticStore
from tests.mocks.fakes import AGENT_ID, SESSION_ID, ScriptedCompleter, make_entry

runner = CliRunner()


@pytest.fixture
def stores(monkeypatch):
    """Point the CLI at shared in-memory stores."""
    kv_store = InMemoryKeyValueStore()
    semantic_store = InMemorySemanticStore()
    completer = ScriptedCompleter()
    monkeypatch.setattr(
        "agentmem.cli._build_orchestrator",
        lambda config: MemoryOrchestrator(kv_store, semantic_store, completer, config=config.memory),
    )
    return kv_store, semantic_store, completer


def seed(kv_store, *contents):
    async def _seed():
        stm = STM(kv_store)
        roles = [Role.USER, Role.ASSISTANT]
        for i, content in enumerate(contents):
            await stm.add_message(make_entry(content, role=roles[i % 2]))

    asyncio.run(_seed())


class TestBasicCommands:
    """Tests for commands that need no stores."""

    def test_version(self):
        """Should print the package version."""
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert f"agentmem version {__version__}" in result.stdout

    def test_init_writes_loadable_config(self, tmp_path):
        """Should write a configuration directory the loader accepts."""
        config_dir = tmp_path / "config"

        result = runner.invoke(app, ["init", "--config", str(config_dir)])

        assert result.exit_code == 0
        assert (config_dir / "agentmem.yaml").exists()
        assert (config_dir / "environments" / "production.yaml").exists()

        shown = runner.invoke(app, ["config", "--config", str(config_dir)])
        assert shown.exit_code == 0
        assert "short_term_max_tokens" in shown.stdout

    def test_init_existing_directory(self, tmp_path):
        """Should leave an existing directory alone."""
        result = runner.invoke(app, ["init", "--config", str(tmp_path)])

        assert result.exit_code == 0
        assert "already exists" in result.stdout
        assert not (tmp_path / "agentmem.yaml").exists()

    def test_config_masks_api_key(self, monkeypatch):
        """Should not print secrets."""
        monkeypatch.setenv("AGENTMEM_ROUTER__API_KEY", "super-secret-key")

        result = runner.invoke(app, ["config"])

        assert result.exit_code == 0
        assert "super-secret-key" not in result.stdout
        assert "***" in result.stdout

    def test_config_invalid(self, monkeypatch):
        """Should exit 1 on invalid configuration."""
        monkeypatch.setenv("AGENTMEM_MEMORY__SHORT_TERM_MAX_TOKENS", "lots")

        result = runner.invoke(app, ["config"])

        assert result.exit_code == 1
        assert "CONFIGURATION_ERROR" in result.stdout


class TestSessionCommands:
    """Tests for commands that operate on a session."""

    def test_stats(self, stores):
        """Should show per-tier usage."""
        kv_store, _, _ = stores
        seed(kv_store, "Hello there", "Hi, how can I help?")

        result = runner.invoke(app, ["stats", SESSION_ID, AGENT_ID])

        assert result.exit_code == 0
        assert "short-term" in result.stdout
        assert "Consolidations: 0 (last: never)" in result.stdout

    def test_show(self, stores):
        """Should render the formatted context."""
        kv_store, _, _ = stores
        seed(kv_store, "Hello there", "Hi, how can I help?")

        result = runner.invoke(app, ["show", SESSION_ID, AGENT_ID, "--budget", "1000"])

        assert result.exit_code == 0
        assert "User: Hello there" in result.stdout
        assert "Assistant: Hi, how can I help?" in result.stdout

    def test_show_empty(self, stores):
        """Should say so when there is no memory."""
        result = runner.invoke(app, ["show", SESSION_ID, AGENT_ID])

        assert result.exit_code == 0
        assert "No memory" in result.stdout

    def test_clear_with_yes(self, stores):
        """Should clear without prompting."""
        kv_store, _, _ = stores
        seed(kv_store, "Hello there")

        result = runner.invoke(app, ["clear", SESSION_ID, AGENT_ID, "--yes"])

        assert result.exit_code == 0
        assert asyncio.run(kv_store.get(f"memory:short_term:{AGENT_ID}:{SESSION_ID}")) is None

    def test_clear_declined(self, stores):
        """Should keep the session when the prompt is declined."""
        kv_store, _, _ = stores
        seed(kv_store, "Hello there")

        result = runner.invoke(app, ["clear", SESSION_ID, AGENT_ID], input="n\n")

        assert result.exit_code == 1
        assert asyncio.run(kv_store.get(f"memory:short_term:{AGENT_ID}:{SESSION_ID}")) is not None

    def test_consolidate(self, stores):
        """Should summarize the session into long-term memory."""
        kv_store, semantic_store, completer = stores
        seed(kv_store, "Hello there", "Hi, how can I help?")

        result = runner.invoke(app, ["consolidate", SESSION_ID, AGENT_ID, "--force"])

        assert result.exit_code == 0
        assert "Consolidated 2 entries" in result.stdout
        assert len(completer.calls) == 1
        assert asyncio.run(semantic_store.count(f"memory_{AGENT_ID}")) == 1

    def test_consolidate_nothing(self, stores):
        """Should report when the thresholds are not met."""
        kv_store, _, completer = stores
        seed(kv_store, "Hello there")

        result = runner.invoke(app, ["consolidate", SESSION_ID, AGENT_ID])

        assert result.exit_code == 0
        assert "Nothing to consolidate" in result.stdout
        assert completer.calls == []

    def test_store_failure_exits_1(self, monkeypatch):
        """Should print the error code and exit 1 on store failures."""
        kv_store = AsyncMock(spec=KeyValueStore)
        kv_store.get.side_effect = StoreError("redis down")
        monkeypatch.setattr(
            "agentmem.cli._build_orchestrator",
            lambda config: MemoryOrchestrator(kv_store, InMemorySemanticStore(), ScriptedCompleter()),
        )

        result = runner.invoke(app, ["stats", SESSION_ID, AGENT_ID])

        assert result.exit_code == 1
        assert "STORE_ERROR" in result.stdout


class TestMetricsCommand:
    """Tests for the metrics server command."""

    @pytest.fixture
    def started(self, monkeypatch):
        calls = []
        monkeypatch.setattr("agentmem.cli.start_metrics_server", lambda port, addr: calls.append((port, addr)))
        monkeypatch.setattr("agentmem.cli._wait_for_shutdown", lambda: None)
        return calls

    def test_uses_configured_port(self, started, monkeypatch):
        """Should serve on system.metrics_port when no port is given."""
        monkeypatch.setenv("AGENTMEM_SYSTEM__METRICS_PORT", "9300")

        result = runner.invoke(app, ["metrics"])

        assert result.exit_code == 0
        assert started == [(9300, "0.0.0.0")]
        assert "http://0.0.0.0:9300/metrics" in result.stdout

    def test_port_option_wins(self, started, monkeypatch):
        """Should prefer --port over the configured port."""
        monkeypatch.setenv("AGENTMEM_SYSTEM__METRICS_PORT", "9300")

        result = runner.invoke(app, ["metrics", "--port", "9400", "--addr", "127.0.0.1"])

        assert result.exit_code == 0
        assert started == [(9400, "127.0.0.1")]

    def test_default_port(self, started):
        """Should fall back to 9090."""
        result = runner.invoke(app, ["metrics"])

        assert result.exit_code == 0
        assert started == [(9090, "0.0.0.0")]

    def test_port_in_use(self, monkeypatch):
        """Should exit 1 when the server cannot bind."""

        def refuse(port, addr):
            raise OSError("Address already in use")

        monkeypatch.setattr("agentmem.cli.start_metrics_server", refuse)

        result = runner.invoke(app, ["metrics", "--port", "9500"])

        assert result.exit_code == 1
        assert "9500" in result.stdout
