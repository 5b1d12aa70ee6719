"""
Abstract Auth Service Interface

DESIGN DECISION: Authentication is delegated to an identity provider.
The application only needs to:
1. Start a sign-in or sign-up and learn about the resulting session
2. Hear about every session change (sign-in, sign-out)
3. Update the display name, photo and password of the current account

Session changes are published to subscribers on the event loop, the
same way store listeners are.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

import structlog
from pydantic import BaseModel, ConfigDict

from biztrack.runtime import EventLoopRunner


logger = structlog.get_logger(__name__)


class AuthSession(BaseModel):
    """
    The authenticated viewer.

    `uid` is the only attribute the rest of the application relies on;
    anonymous sessions have no email.
    """
    model_config = ConfigDict(frozen=True)

    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    is_anonymous: bool = False
    provider_id: str = "password"
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None


SessionCallback = Callable[[Optional[AuthSession]], None]


class AuthServiceInterface(ABC):
    """
    Abstract interface for the identity provider.

    Subclasses call `_publish()` whenever the current session changes.
    """

    def __init__(self, runner: EventLoopRunner):
        self._runner = runner
        self._session: Optional[AuthSession] = None
        self._subscribers: dict[int, SessionCallback] = {}
        self._next_key = 0

    @property
    def current_session(self) -> Optional[AuthSession]:
        return self._session

    def subscribe_session_changes(self, callback: SessionCallback) -> Callable[[], None]:
        """
        Listen for session changes.

        The callback first receives the current session (possibly None),
        then every change. Returns a function that unsubscribes.
        """
        key = self._next_key
        self._next_key += 1
        self._subscribers[key] = callback
        session = self._session
        self._runner.call_soon(self._deliver, key, session)

        def unsubscribe() -> None:
            if self._subscribers.pop(key, None) is None:
                logger.warning("session_subscription_already_closed")

        return unsubscribe

    def _deliver(self, key: int, session: Optional[AuthSession]) -> None:
        callback = self._subscribers.get(key)
        if callback is not None:
            callback(session)

    def _publish(self, session: Optional[AuthSession]) -> None:
        self._session = session
        for key in list(self._subscribers):
            self._runner.call_soon(self._deliver, key, session)

    @abstractmethod
    async def sign_in_with_credentials(self, email: str, password: str) -> AuthSession:
        pass

    @abstractmethod
    async def sign_in_anonymously(self) -> AuthSession:
        pass

    @abstractmethod
    async def sign_in_with_popup(
        self,
        provider_id: str,
        id_token: Optional[str] = None,
    ) -> AuthSession:
        """
        Interactive federated sign-in.

        Raises:
            AuthError: `auth/popup-blocked` when no interactive credential
                is available; callers fall back to the redirect flow.
        """
        pass

    @abstractmethod
    async def sign_in_with_redirect(self, provider_id: str, continue_uri: str) -> str:
        """
        Start a redirect-based federated sign-in.

        Returns:
            The provider URL the user must be sent to
        """
        pass

    @abstractmethod
    def set_redirect_callback(self, request_uri: str) -> None:
        """Record the URI the provider redirected back to."""
        pass

    @abstractmethod
    async def get_redirect_result(self) -> Optional[AuthSession]:
        """
        Complete a pending redirect sign-in.

        Returns None when there is nothing pending.
        """
        pass

    @abstractmethod
    async def sign_up_with_credentials(self, email: str, password: str) -> AuthSession:
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        pass

    @abstractmethod
    async def update_profile(
        self,
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> None:
        """Update the current account's display name and/or photo."""
        pass

    @abstractmethod
    async def update_password(self, new_password: str) -> None:
        pass
