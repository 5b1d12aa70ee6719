"""
Tests for the event loop runner.
"""

import asyncio
import threading

import pytest

from biztrack.runtime import EventLoopRunner


@pytest.fixture
def background():
    runner = EventLoopRunner.start_background()
    yield runner
    runner.stop()


class TestEventLoopRunner:
    """Tests for handing work to the loop from another thread."""

    def test_run_blocks_until_done(self, background):
        """Test awaited operations from the UI thread."""
        async def answer():
            await asyncio.sleep(0)
            return 42

        assert background.run(answer(), timeout=5) == 42

    def test_call_soon_runs_on_loop_thread(self, background):
        """Test that callbacks execute on the loop's thread."""
        seen = threading.Event()
        names = []

        def callback():
            names.append(threading.current_thread().name)
            seen.set()

        background.call_soon(callback)
        assert seen.wait(5)
        assert names == ["biztrack-loop"]

    def test_spawn_from_other_thread_returns_future(self, background):
        """Test fire-and-forget from outside the loop."""
        async def work():
            return "done"

        future = background.spawn(work())
        assert future.result(timeout=5) == "done"

    async def test_run_refuses_loop_thread(self):
        """Test that blocking on the loop from the loop is refused."""
        runner = EventLoopRunner.current()
        coro = asyncio.sleep(0)
        with pytest.raises(RuntimeError):
            runner.run(coro)
        coro.close()

    def test_invoke_runs_on_loop_thread(self, background):
        """Test that a plain call from the UI thread executes on the loop and returns its result."""
        def where(suffix):
            return threading.current_thread().name + suffix

        assert background.invoke(where, "!", timeout=5) == "biztrack-loop!"

    def test_invoke_propagates_errors(self, background):
        """Test that an exception raised on the loop reaches the caller."""
        def fail():
            raise ValueError("bad form")

        with pytest.raises(ValueError, match="bad form"):
            background.invoke(fail, timeout=5)

    async def test_invoke_on_loop_thread_calls_directly(self):
        """Test that invoke() from the loop itself does not deadlock."""
        runner = EventLoopRunner.current()
        assert runner.invoke(lambda x: x * 2, 21) == 42
