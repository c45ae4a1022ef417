"""Prometheus metrics collection for agentmem.

Tracks memory tier operations, consolidation runs, background task outcomes
and completion requests. Exports metrics via HTTP for Prometheus scraping.
"""

import time
from contextlib import contextmanager
from threading import Lock
from typing import Iterator, Optional

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    start_http_server,
)

from agentmem import __version__
from agentmem.logging import get_logger

logger = get_logger(__name__, component="metrics")


class MetricsCollector:
    """Centralized metrics collector for agentmem.

    This class provides a singleton interface for collecting metrics across
    the memory subsystem. All metrics are registered with Prometheus and can
    be scraped via the HTTP endpoint.

    Example:
        >>> metrics = MetricsCollector()
        >>> metrics.increment_memory_operation(tier="short_term", operation="add")
        >>> with metrics.track_consolidation():
        ...     # Consolidation work
        ...     pass
    """

    _instance: Optional["MetricsCollector"] = None
    _lock = Lock()

    def __new__(cls) -> "MetricsCollector":
        """Ensure singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        if self._initialized:
            return

        logger.info("initializing_metrics_collector")

        self.system_info = Info("agentmem_system", "agentmem system information")
        self.system_info.info({"version": __version__, "app": "agentmem"})

        # Memory tier metrics
        self.memory_operations_total = Counter(
            "agentmem_memory_operations_total",
            "Total memory tier operations",
            ["tier", "operation"],
        )

        self.memory_store_errors_total = Counter(
            "agentmem_memory_store_errors_total",
            "Total collaborator failures per memory tier",
            ["tier"],
        )

        self.memory_evictions_total = Counter(
            "agentmem_memory_evictions_total",
            "Entries or documents evicted to respect tier ceilings",
            ["tier"],
        )

        # Consolidation metrics
        self.consolidation_runs_total = Counter(
            "agentmem_consolidation_runs_total",
            "Consolidation runs by outcome",
            ["outcome"],
        )

        self.consolidation_duration = Histogram(
            "agentmem_consolidation_duration_seconds",
            "Consolidation run duration in seconds",
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
        )

        self.consolidation_tokens_saved = Counter(
            "agentmem_consolidation_tokens_saved_total",
            "Estimated tokens saved by summarization",
        )

        # Background task metrics
        self.background_tasks_total = Counter(
            "agentmem_background_tasks_total",
            "Background tasks by outcome",
            ["outcome"],
        )

        self.background_tasks_active = Gauge(
            "agentmem_background_tasks_active",
            "Background tasks currently pending or running",
        )

        # Completion metrics
        self.completion_requests_total = Counter(
            "agentmem_completion_requests_total",
            "Text completion requests",
            ["purpose", "status"],
        )

        # Formatting metrics
        self.formatted_memory_tokens = Histogram(
            "agentmem_formatted_memory_tokens",
            "Estimated tokens in formatted memory context",
            buckets=(64, 128, 256, 512, 1024, 2048, 4096, 8192, 16384),
        )

        self.formatted_memory_truncated_total = Counter(
            "agentmem_formatted_memory_truncated_total",
            "Formatted memory results that exceeded their budget",
        )

        self._initialized = True

    # Memory methods

    def increment_memory_operation(self, tier: str, operation: str) -> None:
        """Increment memory operation counter.

        Args:
            tier: Memory tier (short_term, working, long_term).
            operation: Type of operation (add, trim, search, store, clear, ...).
        """
        self.memory_operations_total.labels(tier=tier, operation=operation).inc()

    def increment_store_error(self, tier: str) -> None:
        self.memory_store_errors_total.labels(tier=tier).inc()

    def increment_eviction(self, tier: str, count: int = 1) -> None:
        if count > 0:
            self.memory_evictions_total.labels(tier=tier).inc(count)

    # Consolidation methods

    def increment_consolidation_run(self, outcome: str) -> None:
        """Increment consolidation counter.

        Args:
            outcome: completed, skipped or failed.
        """
        self.consolidation_runs_total.labels(outcome=outcome).inc()

    @contextmanager
    def track_consolidation(self) -> Iterator[None]:
        """Context manager to track consolidation duration.

        Yields:
            None
        """
        start_time = time.monotonic()
        try:
            yield
        finally:
            self.consolidation_duration.observe(time.monotonic() - start_time)

    def record_tokens_saved(self, tokens: int) -> None:
        if tokens > 0:
            self.consolidation_tokens_saved.inc(tokens)

    # Background task methods

    def increment_background_task(self, outcome: str) -> None:
        """Increment background task counter.

        Args:
            outcome: submitted, completed, failed, rejected or deduplicated.
        """
        self.background_tasks_total.labels(outcome=outcome).inc()

    def update_active_background_tasks(self, count: int) -> None:
        self.background_tasks_active.set(count)

    # Completion methods

    def increment_completion_request(self, purpose: str, status: str) -> None:
        """Increment completion request counter.

        Args:
            purpose: Why the completion was requested (summary, facts).
            status: success or error.
        """
        self.completion_requests_total.labels(purpose=purpose, status=status).inc()

    # Formatting methods

    def record_formatted_memory(self, total_tokens: int, truncated: bool) -> None:
        self.formatted_memory_tokens.observe(total_tokens)
        if truncated:
            self.formatted_memory_truncated_total.inc()


def start_metrics_server(port: int = 9090, addr: str = "0.0.0.0") -> None:
    """Start Prometheus metrics HTTP server.

    Args:
        port: Port to listen on (default: 9090).
        addr: Address to bind to (default: 0.0.0.0 for all interfaces).
    """
    logger.info("starting_metrics_server", port=port, addr=addr)
    try:
        start_http_server(port=port, addr=addr)
        logger.info("metrics_server_started", port=port, addr=addr)
    except OSError as e:
        if "Address already in use" in str(e):
            logger.warning("metrics_server_already_running", port=port, addr=addr)
        else:
            logger.error("metrics_server_start_failed", port=port, addr=addr, error=str(e))
            raise


_global_metrics: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance.

    Returns:
        Global MetricsCollector singleton.
    """
    global _global_metrics
    if _global_metrics is None:
        _global_metrics = MetricsCollector()
    return _global_metrics
