"""
Session Shell

Owns the session state machine and everything that hangs off it:

    unknown -> authenticating -> authenticated
                              -> unauthenticated

- On authenticated: watch users/{uid}; if the profile is confirmed
  absent, synthesize one from the identity attributes and create it once
- On unauthenticated: finish a pending federated redirect if there is
  one, otherwise send the viewer to the sign-in page
- On sign-out: drop the profile watcher, clear the context, redirect

DESIGN DECISION: Sign-ins are fire-and-forget. The shell only moves to
`authenticating`; the session-change event decides what happens next.
Sign-up is the one awaited operation because the profile it writes
needs the new account's uid.
"""

from typing import Any, Awaitable, Optional

import structlog

from biztrack.audit import AuditLogger
from biztrack.config import get_settings
from biztrack.data import DocumentWatcher, MutationDispatcher, parser_for
from biztrack.models import (
    CreateUserForm,
    LoginForm,
    UserProfile,
    ValidationIssue,
    ValidationResult,
)
from biztrack.models.audit import AuditEventBuilder
from biztrack.notifications import Notifier
from biztrack.runtime import EventLoopRunner
from biztrack.services.auth import (
    POPUP_FALLBACK_CODES,
    AuthAction,
    AuthError,
    AuthServiceInterface,
    AuthSession,
    failure_title,
    user_facing_message,
)
from biztrack.services.storage import (
    SERVER_TIMESTAMP,
    AlreadyExistsError,
    DocumentStoreInterface,
)
from biztrack.services.storage.paths import user_doc_path
from biztrack.session.context import SessionContext, SessionStatus
from biztrack.session.navigation import (
    KNOWN_ROUTES,
    PUBLIC_ROUTES,
    ROUTE_LOADING,
    ROUTE_ROOT,
    Navigator,
)
from biztrack.validation import FormValidator


logger = structlog.get_logger(__name__)

GOOGLE_PROVIDER_ID = "google.com"


def synthesize_profile(session: AuthSession) -> dict[str, Any]:
    """Default profile document built from identity provider attributes."""
    names = (session.display_name or "").split(" ")
    return {
        "id": session.uid,
        "email": session.email or "",
        "firstName": names[0],
        "lastName": " ".join(names[1:]),
        "photoURL": session.photo_url or "",
        "createdAt": SERVER_TIMESTAMP,
        "updatedAt": SERVER_TIMESTAMP,
    }


class SessionShell:
    """
    Session state machine, profile bootstrap and route guard.

    Usage:
        shell = SessionShell(auth, store, runner, dispatcher, notifier, context, navigator)
        shell.start()
        page = shell.guard(requested_route)
    """

    def __init__(
        self,
        auth: AuthServiceInterface,
        store: DocumentStoreInterface,
        runner: EventLoopRunner,
        dispatcher: MutationDispatcher,
        notifier: Notifier,
        context: Optional[SessionContext] = None,
        navigator: Optional[Navigator] = None,
        validator: Optional[FormValidator] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self._auth = auth
        self._runner = runner
        self._dispatcher = dispatcher
        self._notifier = notifier
        self._audit = audit
        self._validator = validator or FormValidator(audit)
        self.context = context or SessionContext()
        self.navigator = navigator or Navigator()

        settings = get_settings().app
        self.sign_in_route = settings.sign_in_route
        self.home_route = settings.home_route

        self._profile: DocumentWatcher[UserProfile] = DocumentWatcher(
            store, parser_for(UserProfile), audit
        )
        self._profile.add_listener(self._on_profile)
        self._unsubscribe_auth = None
        self._synthesized: set[str] = set()
        self._redirect_check_pending = False

        # Set by federated sign-in when the viewer must leave for the provider
        self.redirect_uri: Optional[str] = None
        # Last fire-and-forget task, for callers that want to wait on it
        self.pending: Optional[Any] = None

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        if self._unsubscribe_auth is None:
            self._unsubscribe_auth = self._auth.subscribe_session_changes(self._on_session)

    def stop(self) -> None:
        if self._unsubscribe_auth is not None:
            self._unsubscribe_auth()
            self._unsubscribe_auth = None
        self._profile.close()

    @property
    def status(self) -> SessionStatus:
        return self.context.status

    def _emit(self, event) -> None:
        if self._audit is not None:
            self._audit.emit(event)

    def _spawn(self, coro: Awaitable[Any]) -> Any:
        self.pending = self._runner.spawn(coro)
        return self.pending

    # =========================================================================
    # SESSION EVENTS
    # =========================================================================

    def _on_session(self, session: Optional[AuthSession]) -> None:
        if session is not None:
            self._redirect_check_pending = False
            previous_uid = self.context.viewer_uid
            self._profile.retarget(user_doc_path(session.uid))
            self.context.update(status=SessionStatus.AUTHENTICATED, viewer=session)
            if previous_uid != session.uid:
                logger.info("session_authenticated", uid=session.uid)
                self._emit(AuditEventBuilder.sign_in_succeeded(session.uid, session.is_anonymous))
            if self.navigator.route in PUBLIC_ROUTES or self.navigator.route == ROUTE_ROOT:
                self.navigator.replace(self.home_route)
            return

        self._profile.close()
        self._redirect_check_pending = True
        self.context.clear(SessionStatus.UNAUTHENTICATED)
        self._spawn(self._check_redirect())

    async def _check_redirect(self) -> None:
        try:
            result = await self._auth.get_redirect_result()
        except AuthError as e:
            logger.warning("redirect_result_failed", code=e.code)
            self._emit(AuditEventBuilder.sign_in_failed("redirect", e.code))
            self._notifier.error(
                failure_title(AuthAction.FEDERATED),
                user_facing_message(e.code, AuthAction.FEDERATED),
            )
            result = None

        # A completed redirect publishes its session; nothing more to do here.
        if result is not None:
            return

        self._redirect_check_pending = False
        if self.context.status == SessionStatus.UNAUTHENTICATED:
            self.context.update()
            if self.navigator.route not in PUBLIC_ROUTES:
                self.navigator.replace(self.sign_in_route)

    def _on_profile(self, state) -> None:
        self.context.update(profile_state=state)
        viewer = self.context.viewer
        if viewer is None or not self._profile.confirmed_absent:
            return
        if viewer.uid in self._synthesized:
            return
        self._synthesized.add(viewer.uid)
        self._create_default_profile(viewer)

    def _create_default_profile(self, viewer: AuthSession) -> None:
        logger.info("synthesizing_profile", uid=viewer.uid)

        def created() -> None:
            self._emit(AuditEventBuilder.profile_created(viewer.uid, synthesized=True))
            self._notifier.success(
                "Profile Created",
                "Your user profile has been automatically set up.",
            )

        def failed(error: Exception) -> None:
            if isinstance(error, AlreadyExistsError):
                # Someone else (e.g. sign-up) created it first
                logger.info("profile_already_exists", uid=viewer.uid)
                return
            self._notifier.error(
                "Profile Creation Failed",
                "Could not set up your user profile.",
            )

        self._dispatcher.create_exclusive(
            user_doc_path(viewer.uid),
            synthesize_profile(viewer),
            uid=viewer.uid,
            on_success=created,
            on_failure=failed,
        )

    # =========================================================================
    # SIGN-IN (fire-and-forget)
    # =========================================================================

    async def _attempt(self, action: AuthAction, method: str, operation: Awaitable[Any]) -> None:
        try:
            await operation
        except AuthError as e:
            logger.info("sign_in_failed", method=method, code=e.code)
            self._emit(AuditEventBuilder.sign_in_failed(method, e.code))
            self._notifier.error(failure_title(action), user_facing_message(e.code, action))
            if self.context.viewer is None:
                self.context.update(status=SessionStatus.UNAUTHENTICATED)

    def _begin(self, method: str) -> None:
        self._emit(AuditEventBuilder.sign_in_started(method))
        self.context.update(status=SessionStatus.AUTHENTICATING)

    def sign_in_with_credentials(self, form_data: Any) -> ValidationResult:
        """
        Start an email/password sign-in.

        Returns the form's validation result; the sign-in itself
        continues in the background.
        """
        result = self._validator.validate(LoginForm, form_data)
        if not result.is_valid:
            return result
        form: LoginForm = result.value

        self._begin("password")
        self._notifier.success("Login Initiated", "Checking your credentials...")
        self._spawn(self._attempt(
            AuthAction.LOGIN,
            "password",
            self._auth.sign_in_with_credentials(form.email, form.password),
        ))
        return result

    def sign_in_anonymously(self) -> None:
        self._begin("anonymous")
        self._notifier.success("Anonymous Login Initiated", "Signing you in anonymously...")
        self._spawn(self._attempt(
            AuthAction.ANONYMOUS,
            "anonymous",
            self._auth.sign_in_anonymously(),
        ))

    def sign_in_with_google(self, continue_uri: str, id_token: Optional[str] = None) -> None:
        """
        Federated sign-in: popup first, redirect if the popup is unavailable.

        After a fallback, `redirect_uri` holds the provider URL to send
        the viewer to.
        """
        self._begin("google")
        self._notifier.success(
            "Google Sign-In Initiated",
            "Please follow the prompts to sign in with Google...",
        )
        self._spawn(self._attempt(
            AuthAction.FEDERATED,
            "google",
            self._federated(continue_uri, id_token),
        ))

    async def _federated(self, continue_uri: str, id_token: Optional[str]) -> None:
        try:
            await self._auth.sign_in_with_popup(GOOGLE_PROVIDER_ID, id_token)
        except AuthError as e:
            if e.code not in POPUP_FALLBACK_CODES:
                raise
            logger.info("popup_unavailable_falling_back", code=e.code)
            self.redirect_uri = await self._auth.sign_in_with_redirect(
                GOOGLE_PROVIDER_ID,
                continue_uri,
            )
            # The viewer has to leave for the provider; show the sign-in page again
            if self.context.viewer is None:
                self.context.update(status=SessionStatus.UNAUTHENTICATED)

    def complete_redirect(self, request_uri: str) -> None:
        """The provider sent the viewer back to `request_uri`; finish sign-in."""
        self.redirect_uri = None
        self._auth.set_redirect_callback(request_uri)
        self._redirect_check_pending = True
        self.context.update(status=SessionStatus.AUTHENTICATING)
        self._spawn(self._check_redirect())

    # =========================================================================
    # SIGN-UP (awaited)
    # =========================================================================

    async def sign_up(self, form_data: Any) -> ValidationResult:
        """
        Create an account and its profile.

        Returns the validation result; an identity provider failure comes
        back as a form-level issue (and a notification).
        """
        result = self._validator.validate(CreateUserForm, form_data)
        if not result.is_valid:
            return result
        form: CreateUserForm = result.value

        self.context.update(status=SessionStatus.AUTHENTICATING)
        try:
            session = await self._auth.sign_up_with_credentials(form.email, form.password)
        except AuthError as e:
            message = user_facing_message(e.code, AuthAction.SIGNUP)
            self._emit(AuditEventBuilder.sign_up_failed(e.code))
            self._notifier.error(failure_title(AuthAction.SIGNUP), message)
            if self.context.viewer is None:
                self.context.update(status=SessionStatus.UNAUTHENTICATED)
            return ValidationResult(
                form_name=result.form_name,
                issues=[ValidationIssue(field="__form__", issue_type=e.code, message=message)],
            )

        if form.display_name:
            self._runner.spawn(self._update_display_name(form.display_name))

        self._dispatcher.set(
            user_doc_path(session.uid),
            {
                "id": session.uid,
                "email": session.email or form.email,
                "firstName": form.first_name or "",
                "lastName": form.last_name or "",
                "companyName": form.company_name or "",
                "createdAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
            },
            merge=True,
            uid=session.uid,
        )
        self._emit(AuditEventBuilder.sign_up_completed(session.uid))
        self._notifier.success("Account Created", "Welcome to BizTrack! Redirecting...")
        return result

    async def _update_display_name(self, display_name: str) -> None:
        try:
            await self._auth.update_profile(display_name=display_name)
        except AuthError as e:
            logger.warning("display_name_update_failed", code=e.code)

    # =========================================================================
    # SIGN-OUT
    # =========================================================================

    async def sign_out(self) -> bool:
        uid = self.context.viewer_uid
        try:
            await self._auth.sign_out()
        except AuthError as e:
            logger.error("sign_out_failed", code=e.code)
            self._notifier.error("Logout Error", "Failed to log out. Please try again.")
            return False

        self._profile.close()
        self.context.clear(SessionStatus.UNAUTHENTICATED)
        self._emit(AuditEventBuilder.signed_out(uid))
        self._notifier.success("Logged out", "You have been successfully logged out.")
        self.navigator.push(self.sign_in_route)
        return True

    # =========================================================================
    # ROUTE GUARD
    # =========================================================================

    def guard(self, route: str) -> str:
        """
        The route to actually render for a requested one.

        Loading while the session is unresolved, sign-in for protected
        routes when signed out, home for the auth pages when signed in.
        """
        if route not in KNOWN_ROUTES:
            route = ROUTE_ROOT

        status = self.context.status
        if status in (SessionStatus.UNKNOWN, SessionStatus.AUTHENTICATING) or self._redirect_check_pending:
            return ROUTE_LOADING

        if status == SessionStatus.AUTHENTICATED:
            if route in PUBLIC_ROUTES or route == ROUTE_ROOT:
                return self.home_route
            return route

        if route in PUBLIC_ROUTES:
            return route
        return self.sign_in_route
