"""Tests for the background task runner."""

import asyncio

import pytest

from agentmem.tasks import BackgroundTaskRunner


class TestSubmit:
    """Tests for submitting work."""

    async def test_runs_submitted_work(self):
        """Should run the coroutine in the background."""
        runner = BackgroundTaskRunner()
        done = asyncio.Event()

        async def work():
            done.set()

        assert runner.submit("job", work) is True
        await runner.drain()

        assert done.is_set()
        assert runner.pending == 0
        assert runner.get_status().total_completed == 1

    async def test_deduplicates_outstanding_key(self):
        """Should drop a submission whose key is still outstanding."""
        runner = BackgroundTaskRunner()
        release = asyncio.Event()
        runs = []

        async def work():
            runs.append(1)
            await release.wait()

        assert runner.submit("job", work) is True
        assert runner.submit("job", work) is False
        assert runner.is_pending("job")

        release.set()
        await runner.drain()

        assert runs == [1]
        assert runner.get_status().total_deduplicated == 1

    async def test_key_reusable_after_completion(self):
        """Should accept the same key once the previous task finished."""
        runner = BackgroundTaskRunner()
        runs = []

        async def work():
            runs.append(1)

        runner.submit("job", work)
        await runner.drain()
        runner.submit("job", work)
        await runner.drain()

        assert runs == [1, 1]

    async def test_rejects_when_full(self):
        """Should refuse work beyond max_pending."""
        runner = BackgroundTaskRunner(max_pending=2)
        release = asyncio.Event()

        async def work():
            await release.wait()

        assert runner.submit("a", work) is True
        assert runner.submit("b", work) is True
        assert runner.submit("c", work) is False
        assert runner.get_status().total_rejected == 1

        release.set()
        await runner.drain()

    async def test_bounds_concurrency(self):
        """Should never run more than max_concurrency tasks at once."""
        runner = BackgroundTaskRunner(max_concurrency=2)
        active = 0
        peak = 0

        async def work():
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

        for i in range(6):
            runner.submit(i, work)
        await runner.drain()

        assert peak == 2
        assert runner.get_status().total_completed == 6


class TestErrors:
    """Tests for the error channel."""

    async def test_failure_calls_on_error(self):
        """Should pass the key and exception to the callback."""
        errors = []
        runner = BackgroundTaskRunner(on_error=lambda key, exc: errors.append((key, exc)))

        async def work():
            raise ValueError("broken")

        runner.submit(("session", "agent"), work)
        await runner.drain()

        [(key, exc)] = errors
        assert key == ("session", "agent")
        assert isinstance(exc, ValueError)
        assert runner.get_status().total_failed == 1

    async def test_failing_callback_is_contained(self):
        """Should survive a callback that raises."""

        def on_error(key, exc):
            raise RuntimeError("callback broken")

        runner = BackgroundTaskRunner(on_error=on_error)

        async def work():
            raise ValueError("broken")

        runner.submit("job", work)
        assert await runner.drain() is True
        assert runner.get_status().total_failed == 1

    async def test_failure_without_callback(self):
        """Should record the failure when no callback is set."""
        runner = BackgroundTaskRunner()

        async def work():
            raise ValueError("broken")

        runner.submit("job", work)
        await runner.drain()

        assert runner.get_status().total_failed == 1


class TestShutdown:
    """Tests for drain and shutdown."""

    async def test_drain_empty(self):
        """Should return immediately with nothing outstanding."""
        assert await BackgroundTaskRunner().drain() is True

    async def test_drain_timeout(self):
        """Should report tasks still running after the timeout."""
        runner = BackgroundTaskRunner()
        release = asyncio.Event()

        async def work():
            await release.wait()

        runner.submit("job", work)

        assert await runner.drain(timeout=0.01) is False

        release.set()
        await runner.drain()

    async def test_shutdown_drains(self):
        """Should let outstanding work finish."""
        runner = BackgroundTaskRunner()
        done = []

        async def work():
            await asyncio.sleep(0.01)
            done.append(1)

        runner.submit("job", work)
        await runner.shutdown()

        assert done == [1]

    async def test_shutdown_cancels_after_timeout(self):
        """Should cancel work still running after the drain timeout."""
        runner = BackgroundTaskRunner()
        cancelled = []

        async def work():
            try:
                await asyncio.sleep(60)
            except asyncio.CancelledError:
                cancelled.append(1)
                raise

        runner.submit("job", work)
        await asyncio.sleep(0)
        await runner.shutdown(timeout=0.01)

        assert cancelled == [1]
        assert runner.pending == 0

    async def test_rejects_after_shutdown(self):
        """Should refuse new work once shut down."""
        runner = BackgroundTaskRunner()
        await runner.shutdown()

        async def work():
            pass

        assert runner.submit("job", work) is False
        assert runner.get_status().total_rejected == 1


@pytest.mark.parametrize("key", ["job", 7, ("session", "agent")])
async def test_any_hashable_key(key):
    """Should accept any hashable key."""
    runner = BackgroundTaskRunner()

    async def work():
        pass

    assert runner.submit(key, work) is True
    await runner.drain()
