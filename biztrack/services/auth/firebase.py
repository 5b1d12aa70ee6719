"""
Firebase Auth Service

Talks to the identity toolkit REST API with `requests`. Calls are
blocking, so each one runs in a worker thread and the event loop stays
free.

DESIGN DECISION: A server-rendered app has no popup. `sign_in_with_popup`
therefore only succeeds when the caller already holds a provider ID token
(e.g. from a sign-in button on the page); without one it reports
`auth/popup-blocked` and the session shell falls back to the redirect flow.
The redirect comes back to a different browser session, so in-flight
redirects live in a process-wide `PendingRedirects` registry rather than
on the service.
"""

import asyncio
import threading
import time
from typing import Any, Iterable, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit
from uuid import uuid4

import requests
import structlog
from pydantic import BaseModel

from biztrack.config import get_settings
from biztrack.runtime import EventLoopRunner
from biztrack.services.auth.errors import (
    ACCOUNT_EXISTS,
    NETWORK_ERROR,
    NO_CURRENT_USER,
    POPUP_BLOCKED,
    AuthError,
    code_from_rest_message,
)
from biztrack.services.auth.interface import AuthServiceInterface, AuthSession


logger = structlog.get_logger(__name__)

DEFAULT_REQUEST_URI = "http://localhost"

# Query parameter that carries our token through the provider round trip
REDIRECT_STATE_PARAM = "redirect_state"
# OAuth state parameter the provider echoes back
PROVIDER_STATE_PARAM = "state"
REDIRECT_TTL_SECONDS = 600.0


def query_values(uri: str, *names: str) -> list[str]:
    """Values of the named query parameters of `uri`, in the order given."""
    params = dict(parse_qsl(urlsplit(uri).query))
    return [params[name] for name in names if params.get(name)]


def with_query(uri: str, **extra: str) -> str:
    parts = urlsplit(uri)
    query = parse_qsl(parts.query) + list(extra.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


class PendingRedirect(BaseModel):
    provider_id: str
    session_id: str
    started_at: float


class PendingRedirects:
    """
    Federated sign-ins waiting for the provider to send the viewer back.

    The viewer returns in a new browser session, served by a new auth
    service, so one registry is shared by the whole process. Each entry
    is filed under our own token (carried in the continue URI) and under
    the provider's OAuth state when there is one. Entries expire after
    `ttl_seconds`.
    """

    def __init__(self, ttl_seconds: float = REDIRECT_TTL_SECONDS):
        self._ttl = ttl_seconds
        self._lock = threading.Lock()
        self._pending: dict[str, PendingRedirect] = {}

    def __len__(self) -> int:
        with self._lock:
            self._prune()
            return len({id(redirect) for redirect in self._pending.values()})

    def register(self, keys: Iterable[str], redirect: PendingRedirect) -> None:
        with self._lock:
            self._prune()
            for key in keys:
                self._pending[key] = redirect

    def claim(self, keys: Iterable[str]) -> Optional[PendingRedirect]:
        """Remove and return the redirect filed under any of `keys`."""
        with self._lock:
            self._prune()
            for key in keys:
                redirect = self._pending.get(key)
                if redirect is not None:
                    self._drop(redirect)
                    return redirect
            return None

    def _drop(self, redirect: PendingRedirect) -> None:
        for key in [k for k, r in self._pending.items() if r is redirect]:
            del self._pending[key]

    def _prune(self) -> None:
        cutoff = time.monotonic() - self._ttl
        for redirect in {id(r): r for r in self._pending.values() if r.started_at < cutoff}.values():
            self._drop(redirect)


# Shared by every FirebaseAuthService in the process unless one is injected
_shared_redirects = PendingRedirects()


class FirebaseAuthService(AuthServiceInterface):
    """
    Firebase Auth over REST.

    Usage:
        auth = FirebaseAuthService(runner)
        session = await auth.sign_in_with_credentials(email, password)
    """

    def __init__(
        self,
        runner: EventLoopRunner,
        http: Optional[requests.Session] = None,
        redirects: Optional[PendingRedirects] = None,
    ):
        super().__init__(runner)
        self._settings = get_settings().firebase
        self._http = http or requests.Session()
        self._redirects = redirects if redirects is not None else _shared_redirects
        self._redirect_callback: Optional[str] = None

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    def _post_sync(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._settings.auth_base_url}/accounts:{endpoint}"
        try:
            response = self._http.post(
                url,
                params={"key": self._settings.web_api_key},
                json=payload,
                timeout=self._settings.request_timeout_seconds,
            )
        except requests.exceptions.RequestException as e:
            logger.warning("auth_request_failed", endpoint=endpoint, error=str(e))
            raise AuthError(NETWORK_ERROR, str(e)) from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code != 200:
            message = data.get("error", {}).get("message", f"HTTP {response.status_code}")
            code = code_from_rest_message(message)
            logger.info("auth_request_rejected", endpoint=endpoint, code=code)
            raise AuthError(code, message)
        return data

    async def _post(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        return await asyncio.to_thread(self._post_sync, endpoint, payload)

    @staticmethod
    def _session_from(data: dict[str, Any], is_anonymous: bool = False) -> AuthSession:
        return AuthSession(
            uid=data["localId"],
            email=data.get("email") or None,
            display_name=data.get("displayName") or None,
            photo_url=data.get("photoUrl") or None,
            is_anonymous=is_anonymous,
            provider_id=data.get("providerId") or ("anonymous" if is_anonymous else "password"),
            id_token=data.get("idToken"),
            refresh_token=data.get("refreshToken"),
        )

    def _require_session(self) -> AuthSession:
        if self._session is None or not self._session.id_token:
            raise AuthError(NO_CURRENT_USER, "No account is signed in")
        return self._session

    # =========================================================================
    # SIGN-IN / SIGN-UP
    # =========================================================================

    async def sign_in_with_credentials(self, email: str, password: str) -> AuthSession:
        data = await self._post("signInWithPassword", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })
        session = self._session_from(data)
        self._publish(session)
        return session

    async def sign_in_anonymously(self) -> AuthSession:
        data = await self._post("signUp", {"returnSecureToken": True})
        session = self._session_from(data, is_anonymous=True)
        self._publish(session)
        return session

    async def sign_up_with_credentials(self, email: str, password: str) -> AuthSession:
        data = await self._post("signUp", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })
        session = self._session_from(data)
        self._publish(session)
        return session

    async def _sign_in_with_idp(self, payload: dict[str, Any]) -> AuthSession:
        data = await self._post("signInWithIdp", {
            **payload,
            "returnSecureToken": True,
            "returnIdpCredential": True,
        })
        if data.get("needConfirmation"):
            raise AuthError(ACCOUNT_EXISTS, data.get("email"))
        session = self._session_from(data)
        self._publish(session)
        return session

    async def sign_in_with_popup(
        self,
        provider_id: str,
        id_token: Optional[str] = None,
    ) -> AuthSession:
        if not id_token:
            raise AuthError(POPUP_BLOCKED, "No interactive credential available")
        return await self._sign_in_with_idp({
            "postBody": f"id_token={id_token}&providerId={provider_id}",
            "requestUri": DEFAULT_REQUEST_URI,
        })

    async def sign_in_with_redirect(self, provider_id: str, continue_uri: str) -> str:
        token = uuid4().hex
        data = await self._post("createAuthUri", {
            "providerId": provider_id,
            "continueUri": with_query(continue_uri, **{REDIRECT_STATE_PARAM: token}),
        })
        auth_uri = data["authUri"]
        self._redirects.register(
            [token, *query_values(auth_uri, PROVIDER_STATE_PARAM)],
            PendingRedirect(
                provider_id=provider_id,
                session_id=data.get("sessionId", ""),
                started_at=time.monotonic(),
            ),
        )
        self._redirect_callback = None
        logger.info("auth_redirect_started", provider_id=provider_id)
        return auth_uri

    def set_redirect_callback(self, request_uri: str) -> None:
        self._redirect_callback = request_uri

    async def get_redirect_result(self) -> Optional[AuthSession]:
        if self._redirect_callback is None:
            return None
        request_uri, self._redirect_callback = self._redirect_callback, None

        pending = self._redirects.claim(
            query_values(request_uri, REDIRECT_STATE_PARAM, PROVIDER_STATE_PARAM)
        )
        if pending is None:
            logger.info("auth_redirect_not_pending")
            return None
        return await self._sign_in_with_idp({
            "requestUri": request_uri,
            "sessionId": pending.session_id,
        })

    async def sign_out(self) -> None:
        self._redirect_callback = None
        self._publish(None)

    # =========================================================================
    # ACCOUNT UPDATES
    # =========================================================================

    async def update_profile(
        self,
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> None:
        session = self._require_session()
        payload: dict[str, Any] = {"idToken": session.id_token, "returnSecureToken": False}
        if display_name is not None:
            payload["displayName"] = display_name
        if photo_url is not None:
            payload["photoUrl"] = photo_url
        await self._post("update", payload)

        # Profile edits don't count as a session change.
        self._session = session.model_copy(update={
            "display_name": display_name if display_name is not None else session.display_name,
            "photo_url": photo_url if photo_url is not None else session.photo_url,
        })

    async def update_password(self, new_password: str) -> None:
        session = self._require_session()
        data = await self._post("update", {
            "idToken": session.id_token,
            "password": new_password,
            "returnSecureToken": True,
        })
        self._session = session.model_copy(update={
            "id_token": data.get("idToken", session.id_token),
            "refresh_token": data.get("refreshToken", session.refresh_token),
        })
