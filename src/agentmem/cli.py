"""agentmem Command Line Interface.

Operator commands for inspecting and maintaining session memory against the
configured Redis, semantic store and completion endpoints.
"""

import asyncio
import signal
import threading
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from agentmem.config import Config, load_config
from agentmem.errors import AgentMemError
from agentmem.logging import configure_logging, get_logger
from agentmem.memory.models import ConsolidationRequest, GetMemoryRequest
from agentmem.memory.orchestrator import MemoryOrchestrator
from agentmem.metrics import start_metrics_server

app = typer.Typer(
    name="agentmem",
    help="agentmem: tiered conversational memory for AI agents",
    no_args_is_help=True,
)
console = Console()
logger = get_logger(__name__, component="cli")

ConfigOption = typer.Option(None, "--config", "-c", help="Config file or directory")

DEFAULT_METRICS_PORT = 9090


def _load(config_path: Optional[Path]) -> Config:
    config = load_config(config_path)
    configure_logging(log_level=config.system.log_level, log_format=config.system.log_format)
    return config


def _build_orchestrator(config: Config) -> MemoryOrchestrator:
    return MemoryOrchestrator.from_config(config)


def _run(config_path: Optional[Path], action: Callable[[MemoryOrchestrator], Awaitable[Any]]) -> Any:
    """Run ``action`` against an initialized orchestrator, exiting 1 on memory errors."""

    async def _main() -> Any:
        orchestrator = _build_orchestrator(_load(config_path))
        async with orchestrator:
            return await action(orchestrator)

    try:
        return asyncio.run(_main())
    except AgentMemError as e:
        logger.error("cli_command_failed", code=e.code, error=e.message)
        console.print(f"[red]Error ({e.code}): {e.message}[/red]")
        raise typer.Exit(1)


@app.command()
def version():
    """Show version information."""
    from agentmem import __version__

    console.print(f"agentmem version {__version__}")


@app.command()
def init(
    config_dir: Path = typer.Option(Path("config"), "--config", "-c", help="Configuration directory"),
):
    """Write a default configuration directory."""
    if config_dir.exists():
        console.print(f"[yellow]Config directory already exists: {config_dir}[/yellow]")
        return

    config_dir.mkdir(parents=True)
    (config_dir / "environments").mkdir()

    default_config = """# agentmem Configuration
version: "1.0"
environment: development

system:
  log_level: INFO
  log_format: console

redis:
  url: redis://localhost:6379/0

semantic_store:
  base_url: http://localhost:8000
  timeout_ms: 30000

router:
  base_url: http://localhost:8081
  timeout_ms: 30000

memory:
  short_term_max_tokens: 4000
  short_term_ttl_seconds: 3600
  short_term_max_entries: 50
  working_memory_max_tokens: 8000
  working_memory_ttl_seconds: 1800
  max_loaded_documents: 10
  auto_refresh_threshold: 0.5
  long_term_enabled: true
  consolidation_interval_seconds: 300
  max_long_term_entries: 1000
  summary_min_tokens: 500
  summary_max_tokens: 500
"""
    (config_dir / "agentmem.yaml").write_text(default_config)
    (config_dir / "environments" / "production.yaml").write_text("system:\n  log_format: json\n")

    console.print(f"[green]Created configuration in {config_dir}[/green]")


@app.command("config")
def show_config(config_path: Optional[Path] = ConfigOption):
    """Print the effective configuration."""
    try:
        config = load_config(config_path)
    except AgentMemError as e:
        console.print(f"[red]Error ({e.code}): {e.message}[/red]")
        raise typer.Exit(1)

    table = Table(title="agentmem configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for section, values in config.model_dump(exclude={"version", "environment"}).items():
        for name, value in values.items():
            if name == "api_key" and value:
                value = "***"
            table.add_row(f"{section}.{name}", str(value))
    console.print(table)


@app.command()
def stats(
    session_id: str = typer.Argument(..., help="Session ID"),
    agent_id: str = typer.Argument(..., help="Agent ID"),
    config_path: Optional[Path] = ConfigOption,
):
    """Show memory usage for a session."""
    result = _run(config_path, lambda memory: memory.get_memory_stats(session_id, agent_id))

    table = Table(title=f"Memory for session {session_id}")
    table.add_column("Tier", style="cyan")
    table.add_column("Entries", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_row("short-term", str(result.short_term_entries), str(result.short_term_tokens))
    table.add_row(
        "working",
        f"{result.working_chunks} chunks / {result.working_documents} docs",
        str(result.working_tokens),
    )
    table.add_row("long-term", str(result.long_term_entries), "-")
    console.print(table)

    last = result.last_consolidation.isoformat() if result.last_consolidation else "never"
    console.print(f"Consolidations: {result.total_consolidations} (last: {last})")


@app.command()
def show(
    session_id: str = typer.Argument(..., help="Session ID"),
    agent_id: str = typer.Argument(..., help="Agent ID"),
    budget: int = typer.Option(4000, "--budget", "-b", min=1, help="Token budget"),
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Query for long-term search"),
    config_path: Optional[Path] = ConfigOption,
):
    """Render the formatted memory context for a session."""
    request = GetMemoryRequest(session_id=session_id, agent_id=agent_id, query=query)
    context = _run(config_path, lambda memory: memory.get_formatted_memory(request, budget))

    title = f"{context.total_tokens}/{budget} tokens"
    if context.truncated:
        title += " [yellow](truncated)[/yellow]"
    console.print(Panel(context.text or "[dim]No memory[/dim]", title=title))


@app.command()
def clear(
    session_id: str = typer.Argument(..., help="Session ID"),
    agent_id: str = typer.Argument(..., help="Agent ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    config_path: Optional[Path] = ConfigOption,
):
    """Clear short-term and working memory for a session."""
    if not yes:
        typer.confirm(f"Clear session {session_id} for agent {agent_id}?", abort=True)

    _run(config_path, lambda memory: memory.clear_session(session_id, agent_id))
    console.print(f"[green]Cleared session {session_id}[/green]")


@app.command()
def consolidate(
    session_id: str = typer.Argument(..., help="Session ID"),
    agent_id: str = typer.Argument(..., help="Agent ID"),
    force: bool = typer.Option(False, "--force", "-f", help="Consolidate below the usual thresholds"),
    max_entries: int = typer.Option(0, "--max-entries", min=0, help="Oldest entries to include (0 = all)"),
    extract_facts: bool = typer.Option(False, "--extract-facts", help="Also store extracted facts"),
    config_path: Optional[Path] = ConfigOption,
):
    """Summarize a session into long-term memory now."""
    request = ConsolidationRequest(
        session_id=session_id,
        agent_id=agent_id,
        force=force,
        max_entries=max_entries,
        extract_facts=extract_facts,
    )
    result = _run(config_path, lambda memory: memory.consolidate_memory(request))

    if result.entries_processed == 0:
        console.print("[yellow]Nothing to consolidate[/yellow]")
        return

    console.print(
        f"[green]Consolidated {result.entries_processed} entries[/green] "
        f"({result.tokens_consolidated} tokens, {result.tokens_saved} saved, "
        f"{result.facts_extracted} facts) in {result.duration_ms}ms"
    )


def _wait_for_shutdown() -> None:
    """Block until SIGINT or SIGTERM."""
    stopped = threading.Event()

    def _stop(signum: int, frame: Any) -> None:
        console.print("\n[yellow]Shutting down metrics server...[/yellow]")
        stopped.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)
    stopped.wait()


@app.command()
def metrics(
    port: Optional[int] = typer.Option(
        None, "--port", "-p", min=1, max=65535, help="Port to expose metrics (default: system.metrics_port, then 9090)"
    ),
    addr: str = typer.Option("0.0.0.0", "--addr", "-a", help="Address to bind to"),
    config_path: Optional[Path] = ConfigOption,
):
    """Serve Prometheus metrics at /metrics until stopped."""
    try:
        config = _load(config_path)
    except AgentMemError as e:
        console.print(f"[red]Error ({e.code}): {e.message}[/red]")
        raise typer.Exit(1)

    port = port or config.system.metrics_port or DEFAULT_METRICS_PORT
    try:
        start_metrics_server(port=port, addr=addr)
    except OSError as e:
        console.print(f"[red]Error starting metrics server on port {port}: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"Metrics endpoint: [cyan]http://{addr}:{port}/metrics[/cyan]")
    console.print("[dim]Press Ctrl+C to stop...[/dim]")
    _wait_for_shutdown()


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
