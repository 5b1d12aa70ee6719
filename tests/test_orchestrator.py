"""
Integration tests for the wired application.
"""

import threading
from datetime import date

from biztrack.orchestrator import create_app_components, create_store
from biztrack.runtime import EventLoopRunner
from biztrack.services.auth import AuthSession
from biztrack.services.storage import InMemoryDocumentStore
from biztrack.session import ROUTE_DASHBOARD, ROUTE_EXPENSES

from tests.helpers import FakeAuthService, settle


class TestCreateAppComponents:
    """Tests for the component factory."""

    async def test_memory_backend_from_settings(self, runner):
        """Test that STORAGE_BACKEND=memory selects the in-memory store."""
        assert isinstance(create_store(runner), InMemoryDocumentStore)

    async def test_end_to_end_expense_flow(self, runner):
        """Test sign-in, an expense submit, and the admin's view of it."""
        auth = FakeAuthService(runner)
        app = create_app_components(runner, auth=auth)
        assert isinstance(app.store, InMemoryDocumentStore)
        app.store.seed("users/boss", {"email": "boss@example.com", "role": "admin"})

        app.start()
        auth.sign_in_as(AuthSession(uid="u1", email="u1@example.com"))
        await settle()
        assert app.shell.guard(ROUTE_EXPENSES) == ROUTE_EXPENSES
        assert app.navigator.route == ROUTE_DASHBOARD

        book = app.expense_book()
        book.open()
        outcome = book.submit({"amount": "19.99", "entry_date": date(2024, 6, 1), "description": "Printer ink"})
        await outcome.ticket.wait()
        await settle()
        assert [r.description for r in book.records] == ["Printer ink"]
        book.close()

        # The admin sees their own records only; u1 is not elevated
        auth.sign_in_as(AuthSession(uid="boss", email="boss@example.com"))
        await settle()
        boss_book = app.expense_book()
        boss_book.open()
        await settle()
        assert boss_book.records == []
        boss_book.close()
        app.stop()
        assert app.store.listener_count() == 0


class TestUiThreadHandOff:
    """Tests for driving the app from the UI's own thread."""

    def test_listeners_fire_only_on_loop_thread(self):
        """Test that opening, submitting and closing from another thread keeps every callback on the loop."""
        runner = EventLoopRunner.start_background()
        try:
            auth = FakeAuthService(runner)
            app = create_app_components(runner, auth=auth)
            app.store.seed("users/boss", {"email": "boss@example.com", "role": "admin"})
            threads = []

            def record(*_):
                threads.append(threading.current_thread().name)

            runner.invoke(app.context.add_listener, record)
            runner.invoke(app.start)
            runner.invoke(auth.sign_in_as, AuthSession(uid="u1", email="u1@example.com"))
            runner.run(settle(), timeout=5)

            book = runner.invoke(app.expense_book)
            runner.invoke(book.add_listener, record)
            runner.invoke(book.open)
            runner.run(settle(), timeout=5)

            outcome = runner.invoke(
                book.submit,
                {"amount": "19.99", "entry_date": date(2024, 6, 1), "description": "Printer ink"},
            )
            assert runner.run(outcome.ticket.wait(), timeout=5)
            runner.run(settle(), timeout=5)
            assert [r.description for r in book.records] == ["Printer ink"]

            runner.invoke(book.close)
            runner.invoke(app.stop)
            assert app.store.listener_count() == 0
        finally:
            runner.stop()

        assert threads
        assert set(threads) == {"biztrack-loop"}
