"""
Session Package

Session context, navigation and the session shell that drives them.
"""

from biztrack.session.context import SessionContext, SessionStatus
from biztrack.session.navigation import (
    NAV_ITEMS,
    PUBLIC_ROUTES,
    ROUTE_APPOINTMENTS,
    ROUTE_DASHBOARD,
    ROUTE_EXPENSES,
    ROUTE_INCOME,
    ROUTE_LOADING,
    ROUTE_LOGIN,
    ROUTE_PROFILE,
    ROUTE_ROOT,
    ROUTE_SIGNUP,
    Navigator,
    page_title,
)
from biztrack.session.shell import SessionShell, synthesize_profile

__all__ = [
    "NAV_ITEMS",
    "PUBLIC_ROUTES",
    "ROUTE_APPOINTMENTS",
    "ROUTE_DASHBOARD",
    "ROUTE_EXPENSES",
    "ROUTE_INCOME",
    "ROUTE_LOADING",
    "ROUTE_LOGIN",
    "ROUTE_PROFILE",
    "ROUTE_ROOT",
    "ROUTE_SIGNUP",
    "Navigator",
    "SessionContext",
    "SessionShell",
    "SessionStatus",
    "page_title",
    "synthesize_profile",
]
