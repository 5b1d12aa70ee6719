"""
Session Context

The root value every page reads the current viewer and profile from.
It is set on session-change events and cleared on sign-out; pages get
it injected rather than reaching for a global.
"""

from enum import Enum
from typing import Callable, Optional

from biztrack.data import SubscriptionState
from biztrack.models import UserProfile
from biztrack.services.auth import AuthSession


class SessionStatus(str, Enum):
    UNKNOWN = "unknown"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


ContextListener = Callable[["SessionContext"], None]


class SessionContext:
    """
    Current viewer, their profile, and where the session stands.

    Only the session shell writes to it.
    """

    def __init__(self):
        self.status = SessionStatus.UNKNOWN
        self.viewer: Optional[AuthSession] = None
        self.profile_state = SubscriptionState.idle()
        self._listeners: dict[int, ContextListener] = {}
        self._next_key = 0

    @property
    def profile(self) -> Optional[UserProfile]:
        return self.profile_state.data

    @property
    def viewer_uid(self) -> Optional[str]:
        return self.viewer.uid if self.viewer else None

    @property
    def is_authenticated(self) -> bool:
        return self.status == SessionStatus.AUTHENTICATED and self.viewer is not None

    @property
    def display_name(self) -> str:
        """
        Name shown in the header.

        Profile name, then the identity provider's display name, then the
        local part of the email, then "User".
        """
        profile = self.profile
        if profile is not None and profile.display_name:
            return profile.display_name
        if self.viewer is not None:
            if self.viewer.display_name:
                return self.viewer.display_name
            if self.viewer.email:
                return self.viewer.email.split("@", 1)[0]
        return "User"

    @property
    def photo_url(self) -> Optional[str]:
        profile = self.profile
        if profile is not None and profile.photo_url:
            return profile.photo_url
        return self.viewer.photo_url if self.viewer else None

    @property
    def initials(self) -> str:
        """Avatar fallback letter."""
        return self.display_name[:1].upper()

    def add_listener(self, listener: ContextListener) -> Callable[[], None]:
        key = self._next_key
        self._next_key += 1
        self._listeners[key] = listener
        return lambda: self._listeners.pop(key, None)

    def update(
        self,
        status: Optional[SessionStatus] = None,
        viewer: Optional[AuthSession] = None,
        profile_state: Optional[SubscriptionState] = None,
    ) -> None:
        if status is not None:
            self.status = status
        if viewer is not None:
            self.viewer = viewer
        if profile_state is not None:
            self.profile_state = profile_state
        self._notify()

    def clear(self, status: SessionStatus = SessionStatus.UNAUTHENTICATED) -> None:
        """Forget the viewer and profile."""
        self.status = status
        self.viewer = None
        self.profile_state = SubscriptionState.idle()
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners.values()):
            listener(self)
