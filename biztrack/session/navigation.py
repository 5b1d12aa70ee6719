"""
Navigation

Routes the application knows about, the sidebar items, and a small
navigator the session shell redirects through. The UI renders whatever
`Navigator.route` points at.
"""

from typing import Callable, Optional

import structlog


logger = structlog.get_logger(__name__)

ROUTE_ROOT = "/"
ROUTE_LOGIN = "/login"
ROUTE_SIGNUP = "/signup"
ROUTE_DASHBOARD = "/dashboard"
ROUTE_INCOME = "/income"
ROUTE_EXPENSES = "/expenses"
ROUTE_APPOINTMENTS = "/appointments"
ROUTE_PROFILE = "/profile"

# Marker returned by the route guard while the session is being resolved
ROUTE_LOADING = "loading"

PUBLIC_ROUTES = frozenset({ROUTE_LOGIN, ROUTE_SIGNUP})

NAV_ITEMS: list[tuple[str, str]] = [
    (ROUTE_DASHBOARD, "Dashboard"),
    (ROUTE_INCOME, "Income"),
    (ROUTE_EXPENSES, "Expenses"),
    (ROUTE_APPOINTMENTS, "Appointments"),
]

KNOWN_ROUTES = frozenset(
    {ROUTE_ROOT, ROUTE_PROFILE} | PUBLIC_ROUTES | {route for route, _ in NAV_ITEMS}
)


def page_title(route: str) -> str:
    """Header title for a route."""
    if route.startswith(ROUTE_PROFILE):
        return "User Profile"
    for href, label in NAV_ITEMS:
        if route.startswith(href):
            return label
    return "BizTrack"


class Navigator:
    """Current route plus the history of how we got there."""

    def __init__(self, initial_route: str = ROUTE_ROOT):
        self.route = initial_route
        self.history: list[str] = [initial_route]
        self._listeners: list[Callable[[str], None]] = []

    def add_listener(self, listener: Callable[[str], None]) -> None:
        self._listeners.append(listener)

    def push(self, route: str) -> None:
        if route == self.route:
            return
        self._go(route)
        self.history.append(route)

    def replace(self, route: str) -> None:
        self._go(route)
        self.history[-1] = route

    def back(self) -> Optional[str]:
        if len(self.history) < 2:
            return None
        self.history.pop()
        self._go(self.history[-1])
        return self.route

    def _go(self, route: str) -> None:
        if route == self.route:
            return
        logger.debug("navigate", source=self.route, target=route)
        self.route = route
        for listener in list(self._listeners):
            listener(route)
