"""
Dashboard

Totals, the income-vs-expenses chart and the next few appointments,
all computed over the viewer's aggregate view (own records plus those
of elevated accounts).
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional

from biztrack.aggregation import AggregationMerger
from biztrack.audit import AuditLogger
from biztrack.config import get_settings
from biztrack.data import SubscriptionState
from biztrack.models import Appointment, RecordKind
from biztrack.services.storage import DocumentStoreInterface
from biztrack.session.context import SessionContext


def format_currency(amount: Decimal, symbol: Optional[str] = None) -> str:
    """Format like $1,234.56 (negative amounts as -$1,234.56)."""
    if symbol is None:
        symbol = get_settings().app.currency_symbol
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"


def format_appointment_time(moment: datetime) -> str:
    """e.g. 'Fri, Mar 1, 2024 at 9:30 AM'."""
    hour = moment.hour % 12 or 12
    return f"{moment:%a, %b} {moment.day}, {moment:%Y} at {hour}:{moment:%M %p}"


def total_amount(records: Optional[Iterable[Any]]) -> Decimal:
    return sum((record.amount for record in records or []), Decimal("0"))


class Dashboard:
    """
    Read-only view model for the dashboard page.

    Usage:
        dashboard = Dashboard(store, context)
        dashboard.open()
        dashboard.total_income
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        context: SessionContext,
        audit: Optional[AuditLogger] = None,
    ):
        settings = get_settings().app
        self._context = context
        self._window = settings.dashboard_appointment_window
        self._upcoming_count = settings.upcoming_appointment_count
        self._symbol = settings.currency_symbol
        self._remove_context_listener: Optional[Callable[[], None]] = None

        self.incomes = AggregationMerger(store, RecordKind.INCOME, audit=audit)
        self.expenses = AggregationMerger(store, RecordKind.EXPENSE, audit=audit)
        self.appointments = AggregationMerger(
            store, RecordKind.APPOINTMENT, audit=audit, limit=self._window,
        )

    @property
    def _sources(self) -> tuple[AggregationMerger, ...]:
        return (self.incomes, self.expenses, self.appointments)

    def open(self) -> None:
        if self._remove_context_listener is None:
            self._remove_context_listener = self._context.add_listener(self._on_context)
        self._on_context(self._context)

    def close(self) -> None:
        if self._remove_context_listener is not None:
            self._remove_context_listener()
            self._remove_context_listener = None
        for source in self._sources:
            source.close()

    def _on_context(self, context: SessionContext) -> None:
        for source in self._sources:
            source.retarget(context.viewer_uid)

    # =========================================================================
    # DERIVED VALUES
    # =========================================================================

    @property
    def is_loading(self) -> bool:
        return any(source.state.is_loading for source in self._sources)

    @property
    def error(self) -> Optional[Exception]:
        for source in self._sources:
            if source.state.error is not None:
                return source.state.error
        return None

    @property
    def total_income(self) -> Decimal:
        return total_amount(self.incomes.state.data)

    @property
    def total_expenses(self) -> Decimal:
        return total_amount(self.expenses.state.data)

    @property
    def net_profit(self) -> Decimal:
        return self.total_income - self.total_expenses

    def chart_data(self) -> list[dict[str, Any]]:
        """Income vs Expenses bars."""
        return [
            {"name": "Income", "value": float(self.total_income)},
            {"name": "Expenses", "value": float(self.total_expenses)},
        ]

    def upcoming_appointments(self, now: Optional[datetime] = None) -> list[Appointment]:
        """
        Appointments still ahead of `now`, among the first few by start time.
        """
        now = now or datetime.now(timezone.utc)
        state: SubscriptionState = self.appointments.state
        first = (state.data or [])[:self._window]
        return [a for a in first if a.start_time > now][:self._upcoming_count]

    def stat_cards(self) -> list[dict[str, str]]:
        return [
            {
                "title": "Total Revenue",
                "value": format_currency(self.total_income, self._symbol),
                "description": "Your recorded income",
            },
            {
                "title": "Total Expenses",
                "value": format_currency(self.total_expenses, self._symbol),
                "description": "Your paid expenses",
            },
            {
                "title": "Net Profit",
                "value": format_currency(self.net_profit, self._symbol),
                "description": "Revenue minus expenses",
            },
        ]
