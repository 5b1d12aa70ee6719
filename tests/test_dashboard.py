"""
Tests for the dashboard view model.
"""

from datetime import datetime, timezone
from decimal import Decimal

from biztrack.dashboard import Dashboard, format_appointment_time, format_currency

from tests.helpers import settle


class TestFormatting:
    """Tests for display helpers."""

    def test_format_currency(self):
        """Test grouping, decimals and sign."""
        assert format_currency(Decimal("1234.5"), "$") == "$1,234.50"
        assert format_currency(Decimal("-80"), "$") == "-$80.00"
        assert format_currency(Decimal("0")) == "$0.00"

    def test_format_appointment_time(self):
        """Test the upcoming appointment label."""
        moment = datetime(2024, 3, 1, 9, 5, tzinfo=timezone.utc)
        assert format_appointment_time(moment) == "Fri, Mar 1, 2024 at 9:05 AM"


class TestDashboard:
    """Tests for totals and upcoming appointments."""

    async def test_totals_include_elevated_peers(self, store, context):
        """Test revenue, expenses and net profit over the aggregate view."""
        store.seed("users/boss", {"email": "boss@example.com", "role": "admin"})
        store.seed("users/u1/incomes/i1", {"userId": "u1", "amount": 1000, "date": "2024-01-02", "description": "Sale"})
        store.seed("users/boss/incomes/i2", {"userId": "boss", "amount": 500.25, "date": "2024-01-03", "description": "Sale"})
        store.seed("users/u1/expenses/e1", {"userId": "u1", "amount": 300, "date": "2024-01-04", "description": "Rent"})

        dashboard = Dashboard(store, context)
        dashboard.open()
        assert dashboard.is_loading
        await settle()

        assert not dashboard.is_loading
        assert dashboard.error is None
        assert dashboard.total_income == Decimal("1500.25")
        assert dashboard.total_expenses == Decimal("300")
        assert dashboard.net_profit == Decimal("1200.25")
        assert dashboard.chart_data() == [
            {"name": "Income", "value": 1500.25},
            {"name": "Expenses", "value": 300.0},
        ]
        assert [card["value"] for card in dashboard.stat_cards()] == ["$1,500.25", "$300.00", "$1,200.25"]

    async def test_upcoming_appointments(self, store, context):
        """Test that past appointments are skipped and at most three are shown."""
        for day in range(1, 6):
            store.seed(f"users/u1/appointments/a{day}", {
                "userId": "u1",
                "title": f"Day {day}",
                "startTime": f"2024-03-0{day}T09:00:00+00:00",
                "endTime": f"2024-03-0{day}T10:00:00+00:00",
            })
        dashboard = Dashboard(store, context)
        dashboard.open()
        await settle()

        now = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert [a.title for a in dashboard.upcoming_appointments(now)] == ["Day 2", "Day 3", "Day 4"]

    async def test_close_releases_listeners(self, store, context):
        """Test that leaving the dashboard cancels every subscription."""
        dashboard = Dashboard(store, context)
        dashboard.open()
        await settle()
        dashboard.close()
        assert store.listener_count() == 0
