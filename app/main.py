"""
Streamlit Frontend for BizTrack

This is the user interface small-business owners use to keep their
income, expenses and appointments in one place.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Every write is confirmed with a notification
3. Clear error messages in simple language
4. Pages only show what the signed-in viewer is allowed to see

The UI never touches the document store directly:
- Session, routing and profile bootstrap live in the session shell
- Every page renders a view model built by the orchestrator
- Pages close their view model when the viewer navigates away
"""

import time
from urllib.parse import urlencode
from datetime import date, datetime, timezone
from decimal import Decimal

import streamlit as st

from biztrack.config import get_settings, validate_all_settings
from biztrack.dashboard import format_appointment_time, format_currency
from biztrack.models import ValidationResult
from biztrack.orchestrator import BizTrackApp, create_app_components
from biztrack.runtime import EventLoopRunner
from biztrack.services.auth import PendingRedirects
from biztrack.services.storage import StorageError
from biztrack.session import (
    NAV_ITEMS,
    ROUTE_APPOINTMENTS,
    ROUTE_DASHBOARD,
    ROUTE_EXPENSES,
    ROUTE_INCOME,
    ROUTE_LOADING,
    ROUTE_LOGIN,
    ROUTE_PROFILE,
    ROUTE_SIGNUP,
    page_title,
)


# Page configuration
st.set_page_config(
    page_title="BizTrack",
    page_icon="📈",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .big-number {
        font-size: 2.2em;
        font-weight: bold;
        color: #2c3e50;
    }
</style>
""", unsafe_allow_html=True)

# How long a loading page waits before checking again
REFRESH_SECONDS = 0.5


@st.cache_resource
def get_runner() -> EventLoopRunner:
    """One background event loop shared by every browser session."""
    return EventLoopRunner.start_background()


@st.cache_resource
def get_redirects() -> PendingRedirects:
    """Federated sign-ins in flight. The viewer returns in a new browser session."""
    return PendingRedirects()


def get_app() -> BizTrackApp:
    """Get or create this browser session's components."""
    if "app" not in st.session_state:
        runner = get_runner()
        app = create_app_components(runner, redirects=get_redirects())
        runner.invoke(app.start)
        st.session_state.app = app
        st.session_state.view = None
        st.session_state.view_route = None
    return st.session_state.app


def mount_view(route: str, factory):
    """
    The view model for `route`, opened once per visit.

    Navigating to another route closes the previous view model.
    Opening and closing happen on the event loop, like every listener.
    """
    runner = get_runner()
    if st.session_state.view_route != route:
        if st.session_state.view is not None:
            runner.invoke(st.session_state.view.close)
        view = runner.invoke(factory)
        runner.invoke(view.open)
        st.session_state.view = view
        st.session_state.view_route = route
    return st.session_state.view


def unmount_view() -> None:
    if st.session_state.get("view") is not None:
        get_runner().invoke(st.session_state.view.close)
    st.session_state.view = None
    st.session_state.view_route = None


def show_notifications(app: BizTrackApp) -> None:
    for notification in app.notifier.drain():
        icon = "⚠️" if notification.is_error else "✅"
        text = notification.title
        if notification.description:
            text = f"{notification.title}: {notification.description}"
        st.toast(text, icon=icon)


def show_issues(result: ValidationResult) -> None:
    for field, messages in result.errors_by_field().items():
        for message in messages:
            if field == "__form__":
                st.error(message)
            else:
                st.error(f"{field.replace('_', ' ').title()}: {message}")


def wait_and_rerun() -> None:
    time.sleep(REFRESH_SECONDS)
    st.rerun()


def main():
    """Main application entry point."""
    status = validate_all_settings()
    if not status.get("firebase", False) and get_settings().app.storage_backend == "firestore":
        st.error(f"❌ Firebase is not configured: {status.get('firebase_error', 'unknown error')}")
        st.stop()

    try:
        app = get_app()
    except StorageError as e:
        st.error(f"❌ Could not reach the database: {e}")
        st.stop()

    # The provider sent the viewer back from a federated sign-in
    params = st.query_params.to_dict()
    if params and app.shell.redirect_uri is None and "redirect_done" not in st.session_state:
        request_uri = f"{get_settings().app.public_url}/?{urlencode(params)}"
        app.runner.invoke(app.shell.complete_redirect, request_uri)
        st.session_state.redirect_done = True
        st.query_params.clear()

    route = app.shell.guard(app.navigator.route)
    if route not in (ROUTE_LOADING, app.navigator.route):
        app.runner.invoke(app.navigator.replace, route)

    show_notifications(app)

    if route == ROUTE_LOADING:
        unmount_view()
        with st.spinner("Loading..."):
            wait_and_rerun()
        return

    if route == ROUTE_LOGIN:
        unmount_view()
        render_login_page(app)
    elif route == ROUTE_SIGNUP:
        unmount_view()
        render_signup_page(app)
    else:
        render_sidebar(app)
        st.title(page_title(route))
        if route == ROUTE_DASHBOARD:
            render_dashboard_page(app)
        elif route == ROUTE_INCOME:
            render_ledger_page(app, mount_view(route, app.income_book))
        elif route == ROUTE_EXPENSES:
            render_ledger_page(app, mount_view(route, app.expense_book))
        elif route == ROUTE_APPOINTMENTS:
            render_appointments_page(app)
        elif route == ROUTE_PROFILE:
            unmount_view()
            render_profile_page(app)


def render_sidebar(app: BizTrackApp) -> None:
    context = app.context
    st.sidebar.title("📈 BizTrack")
    st.sidebar.markdown(f"**{context.display_name}**")
    if context.viewer and context.viewer.email:
        st.sidebar.caption(context.viewer.email)
    st.sidebar.markdown("---")

    for href, label in NAV_ITEMS:
        if st.sidebar.button(label, key=f"nav-{href}", disabled=app.navigator.route == href):
            app.runner.invoke(app.navigator.push, href)
            st.rerun()

    st.sidebar.markdown("---")
    if st.sidebar.button("Profile", key="nav-profile"):
        app.runner.invoke(app.navigator.push, ROUTE_PROFILE)
        st.rerun()
    if st.sidebar.button("Log out", key="nav-logout"):
        unmount_view()
        app.runner.run(app.shell.sign_out())
        st.rerun()


# =============================================================================
# AUTH PAGES
# =============================================================================

def render_login_page(app: BizTrackApp) -> None:
    st.title("Welcome to BizTrack")
    st.markdown("Sign in to manage your business records.")

    with st.form("login"):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Login", type="primary")
    if submitted:
        result = app.runner.invoke(
            app.shell.sign_in_with_credentials,
            {"email": email, "password": password},
        )
        if result.is_valid:
            st.rerun()
        show_issues(result)

    col1, col2 = st.columns(2)
    with col1:
        if st.button("Sign in with Google"):
            app.runner.invoke(app.shell.sign_in_with_google, get_settings().app.public_url)
            st.rerun()
    with col2:
        if st.button("Continue anonymously"):
            app.runner.invoke(app.shell.sign_in_anonymously)
            st.rerun()

    if app.shell.redirect_uri:
        st.session_state.pop("redirect_done", None)
        st.link_button("Continue to Google", app.shell.redirect_uri)

    st.markdown("---")
    if st.button("Don't have an account? Sign up"):
        app.runner.invoke(app.navigator.push, ROUTE_SIGNUP)
        st.rerun()


def render_signup_page(app: BizTrackApp) -> None:
    st.title("Create your BizTrack account")

    with st.form("signup"):
        col1, col2 = st.columns(2)
        with col1:
            first_name = st.text_input("First name")
        with col2:
            last_name = st.text_input("Last name")
        company_name = st.text_input("Company name")
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Sign up", type="primary")

    if submitted:
        with st.spinner("Creating your account..."):
            result = app.runner.run(app.shell.sign_up({
                "email": email,
                "password": password,
                "first_name": first_name or None,
                "last_name": last_name or None,
                "company_name": company_name or None,
            }))
        if result.is_valid:
            st.rerun()
        show_issues(result)

    if st.button("Already have an account? Log in"):
        app.runner.invoke(app.navigator.push, ROUTE_LOGIN)
        st.rerun()


# =============================================================================
# DASHBOARD
# =============================================================================

def render_dashboard_page(app: BizTrackApp) -> None:
    dashboard = mount_view(ROUTE_DASHBOARD, app.dashboard)
    st.markdown(f"Welcome back, **{app.context.display_name}**.")

    if dashboard.error is not None:
        st.error(f"Could not load your data: {dashboard.error}")
        return
    if dashboard.is_loading:
        with st.spinner("Loading your figures..."):
            wait_and_rerun()
        return

    columns = st.columns(3)
    for column, card in zip(columns, dashboard.stat_cards()):
        with column:
            st.markdown(f"**{card['title']}**")
            st.markdown(f"<div class='big-number'>{card['value']}</div>", unsafe_allow_html=True)
            st.caption(card["description"])

    st.markdown("### Income vs Expenses")
    chart = {row["name"]: row["value"] for row in dashboard.chart_data()}
    st.bar_chart(chart)

    st.markdown("### Upcoming Appointments")
    upcoming = dashboard.upcoming_appointments()
    if not upcoming:
        st.info("No upcoming appointments.")
    for appointment in upcoming:
        st.markdown(f"**{appointment.title}**  \n{format_appointment_time(appointment.start_time)}")


# =============================================================================
# RECORD PAGES
# =============================================================================

def render_ledger_form(book, key: str, values: dict, editing=None) -> None:
    with st.form(key):
        amount = st.number_input("Amount", value=float(values["amount"]), min_value=0.0, step=0.01)
        entry_date = st.date_input("Date", value=values["entry_date"])
        description = st.text_input("Description", value=values["description"])
        category = st.text_input("Category", value=values.get("category") or "")
        payment_method = st.text_input("Payment method", value=values.get("payment_method") or "")
        reference_number = st.text_input("Reference number", value=values.get("reference_number") or "")
        vendor = None
        if "vendor" in values:
            vendor = st.text_input("Vendor", value=values.get("vendor") or "")
        submitted = st.form_submit_button("Save", type="primary")

    if not submitted:
        return
    form_data = {
        "amount": Decimal(str(amount)),
        "entry_date": entry_date,
        "description": description,
        "category": category or None,
        "payment_method": payment_method or None,
        "reference_number": reference_number or None,
    }
    if "vendor" in values:
        form_data["vendor"] = vendor or None
    outcome = get_runner().invoke(book.submit, form_data, editing)
    if outcome.validation is not None and not outcome.validation.is_valid:
        show_issues(outcome.validation)
        return
    st.session_state.pop("editing", None)
    st.rerun()


def render_ledger_page(app: BizTrackApp, book) -> None:
    state = book.state
    if state.error is not None:
        st.error(f"Could not load {book.labels.record}: {state.error}")
        return

    editing = st.session_state.get("editing")
    with st.expander(f"Add {book.labels.title}", expanded=False):
        render_ledger_form(book, f"add-{book.kind.value}", book.default_form_values())
    if editing is not None and editing.get("route") == app.navigator.route:
        st.markdown(f"### Edit {book.labels.title}")
        render_ledger_form(book, f"edit-{book.kind.value}", editing["values"], editing["record"])

    if state.is_loading:
        with st.spinner(f"Loading {book.labels.record}..."):
            wait_and_rerun()
        return

    st.markdown(f"**Total:** {format_currency(sum((r.amount for r in book.records), Decimal('0')))}")
    if not book.records:
        st.info(f"No {book.labels.record} yet.")
    for record in book.records:
        col1, col2, col3, col4, col5 = st.columns([2, 4, 2, 1, 1])
        col1.write(record.entry_date.isoformat())
        col2.write(record.description)
        col3.write(format_currency(record.amount))
        if col4.button("Edit", key=f"edit-{record.id}", disabled=not book.can_modify(record)):
            values = app.runner.invoke(book.edit, record)
            if values is not None:
                st.session_state.editing = {
                    "route": app.navigator.route,
                    "record": record,
                    "values": values,
                }
            st.rerun()
        if col5.button("Delete", key=f"delete-{record.id}", disabled=not book.can_modify(record)):
            app.runner.invoke(book.delete, record)
            st.rerun()


def render_appointment_form(book, key: str, values: dict, editing=None) -> None:
    with st.form(key):
        title = st.text_input("Title", value=values["title"])
        day = st.date_input("Day", value=values["start_time"].date())
        col1, col2 = st.columns(2)
        with col1:
            start = st.time_input("Start", value=values["start_time"].time())
        with col2:
            end = st.time_input("End", value=values["end_time"].time())
        location = st.text_input("Location", value=values.get("location") or "")
        description = st.text_area("Description", value=values.get("description") or "")
        attendees = st.text_input("Attendees (comma separated)", value=", ".join(values.get("attendees") or []))
        submitted = st.form_submit_button("Save", type="primary")

    if not submitted:
        return
    outcome = get_runner().invoke(book.submit, {
        "title": title,
        "start_time": datetime.combine(day, start, tzinfo=timezone.utc),
        "end_time": datetime.combine(day, end, tzinfo=timezone.utc),
        "location": location or None,
        "description": description or None,
        "attendees": [name.strip() for name in attendees.split(",") if name.strip()],
    }, editing)
    if outcome.validation is not None and not outcome.validation.is_valid:
        show_issues(outcome.validation)
        return
    st.session_state.pop("editing", None)
    st.rerun()


def render_appointments_page(app: BizTrackApp) -> None:
    book = mount_view(ROUTE_APPOINTMENTS, app.appointment_book)
    state = book.state
    if state.error is not None:
        st.error(f"Could not load appointments: {state.error}")
        return

    selected: date = st.date_input("Day", value=date.today())
    with st.expander("Schedule Appointment", expanded=False):
        render_appointment_form(book, "add-appointment", book.default_form_values(selected))

    editing = st.session_state.get("editing")
    if editing is not None and editing.get("route") == ROUTE_APPOINTMENTS:
        st.markdown("### Edit Appointment")
        render_appointment_form(book, "edit-appointment", editing["values"], editing["record"])

    if state.is_loading:
        with st.spinner("Loading appointments..."):
            wait_and_rerun()
        return

    busy_days = sorted(book.days_with_appointments())
    if busy_days:
        st.caption("Days with appointments: " + ", ".join(day.isoformat() for day in busy_days))

    appointments = book.appointments_on(selected)
    if not appointments:
        st.info("No appointments scheduled for this day.")
    for appointment in appointments:
        col1, col2, col3, col4 = st.columns([5, 3, 1, 1])
        col1.markdown(f"**{appointment.title}**  \n{appointment.location or ''}")
        col2.write(
            f"{appointment.start_time.time():%H:%M} - {appointment.end_time.time():%H:%M}"
        )
        if col3.button("Edit", key=f"edit-{appointment.id}", disabled=not book.can_modify(appointment)):
            values = app.runner.invoke(book.edit, appointment)
            if values is not None:
                st.session_state.editing = {
                    "route": ROUTE_APPOINTMENTS,
                    "record": appointment,
                    "values": values,
                }
            st.rerun()
        if col4.button("Delete", key=f"delete-{appointment.id}", disabled=not book.can_modify(appointment)):
            app.runner.invoke(book.delete, appointment)
            st.rerun()


# =============================================================================
# PROFILE
# =============================================================================

def render_profile_page(app: BizTrackApp) -> None:
    editor = app.profile_editor
    context = app.context

    if context.photo_url:
        st.image(context.photo_url, width=96)
    else:
        st.markdown(f"<div class='big-number'>{context.initials}</div>", unsafe_allow_html=True)

    values = editor.form_values()
    with st.form("profile-info"):
        first_name = st.text_input("First name", value=values["first_name"])
        last_name = st.text_input("Last name", value=values["last_name"])
        company_name = st.text_input("Company name", value=values["company_name"])
        photo_file = st.file_uploader("Profile photo", type=["png", "jpg", "jpeg", "gif", "webp"])
        submitted = st.form_submit_button("Save Profile", type="primary")

    if submitted:
        form_data = {
            "first_name": first_name or None,
            "last_name": last_name or None,
            "company_name": company_name or None,
        }
        if photo_file is not None:
            form_data["photo"] = {
                "filename": photo_file.name,
                "content_type": photo_file.type or "",
                "data": photo_file.getvalue(),
            }
        result = app.runner.run(editor.update_info(form_data))
        if result.is_valid:
            st.rerun()
        show_issues(result)

    if context.viewer is not None and context.viewer.is_anonymous:
        return

    st.markdown("### Change Password")
    with st.form("change-password", clear_on_submit=True):
        new_password = st.text_input("New password", type="password")
        confirm_password = st.text_input("Confirm password", type="password")
        changed = st.form_submit_button("Change Password")
    if changed:
        result = app.runner.run(editor.change_password({
            "new_password": new_password,
            "confirm_password": confirm_password,
        }))
        show_issues(result)


if __name__ == "__main__":
    main()
