"""
Event Loop Runner

BizTrack runs on one cooperative asyncio loop. Every listener callback,
every merge and every write executes on that loop; callers on other
threads (Firestore watch threads, the Streamlit script thread) hand
work over through the runner instead of touching state directly.
"""

import asyncio
import threading
from concurrent.futures import Future
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog


T = TypeVar("T")

logger = structlog.get_logger(__name__)


class EventLoopRunner:
    """
    Owns (or wraps) the loop the application runs on.

    Use `EventLoopRunner(loop)` to wrap a loop that is already running,
    or `EventLoopRunner.start_background()` to spin one up on a daemon
    thread.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def current(cls) -> "EventLoopRunner":
        """Wrap the loop running in the calling coroutine."""
        return cls(asyncio.get_running_loop())

    @classmethod
    def start_background(cls) -> "EventLoopRunner":
        """Start a private loop on a daemon thread."""
        loop = asyncio.new_event_loop()
        runner = cls(loop)
        thread = threading.Thread(
            target=loop.run_forever,
            name="biztrack-loop",
            daemon=True,
        )
        thread.start()
        runner._thread = thread
        return runner

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def in_loop_thread(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> None:
        """Schedule a plain callback on the loop from any thread."""
        self._loop.call_soon_threadsafe(callback, *args)

    def spawn(self, coro: Awaitable[T]) -> "asyncio.Future[T] | Future[T]":
        """
        Start a coroutine on the loop without waiting for it.

        Returns an asyncio Task when called on the loop thread and a
        concurrent Future otherwise.
        """
        if self.in_loop_thread():
            return self._loop.create_task(coro)
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def run(self, coro: Awaitable[T], timeout: Optional[float] = None) -> T:
        """
        Block the calling (non-loop) thread until the coroutine finishes.

        Only the UI uses this, for the few operations that are awaited
        by design (sign-up, profile and password updates).
        """
        if self.in_loop_thread():
            raise RuntimeError("EventLoopRunner.run() called from the loop thread")
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result(timeout)

    def invoke(self, fn: Callable[..., T], *args: Any, timeout: Optional[float] = None) -> T:
        """
        Call a plain function on the loop thread and return its result.

        The UI opens and closes view models, starts sign-ins and submits
        forms through this, so watcher state only ever changes on the loop.
        Called on the loop thread it just calls `fn`.
        """
        if self.in_loop_thread():
            return fn(*args)

        async def call() -> T:
            return fn(*args)

        return asyncio.run_coroutine_threadsafe(call(), self._loop).result(timeout)

    def stop(self) -> None:
        """Stop a background loop started by start_background()."""
        if self._thread is None:
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)
        self._thread = None
        logger.info("event_loop_stopped")
