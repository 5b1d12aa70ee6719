"""
Test helpers shared across the BizTrack test suite.

A scripted identity provider and a signed-in context. `settle()` lets
queued loop callbacks run.
"""

import asyncio
from typing import Optional

from biztrack.runtime import EventLoopRunner
from biztrack.services.auth import AuthError, AuthServiceInterface, AuthSession
from biztrack.session import SessionContext, SessionStatus


async def settle(rounds: int = 20) -> None:
    """Let queued callbacks and dispatched writes run to completion."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeAuthService(AuthServiceInterface):
    """
    Identity provider that succeeds unless told otherwise.

    `failures` maps a method name to the AuthError it should raise.
    """

    def __init__(self, runner: EventLoopRunner):
        super().__init__(runner)
        self.failures: dict[str, AuthError] = {}
        self.calls: list[tuple] = []
        self.redirect_session: Optional[AuthSession] = None
        self.redirect_callback: Optional[str] = None

    def _check(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.failures:
            raise self.failures[name]

    def sign_in_as(self, session: Optional[AuthSession]) -> None:
        self._publish(session)

    async def sign_in_with_credentials(self, email: str, password: str) -> AuthSession:
        self._check("sign_in_with_credentials", email)
        session = AuthSession(uid=f"uid-{email.split('@')[0]}", email=email)
        self._publish(session)
        return session

    async def sign_in_anonymously(self) -> AuthSession:
        self._check("sign_in_anonymously")
        session = AuthSession(uid="anon-1", is_anonymous=True, provider_id="anonymous")
        self._publish(session)
        return session

    async def sign_in_with_popup(self, provider_id: str, id_token: Optional[str] = None) -> AuthSession:
        self._check("sign_in_with_popup", provider_id)
        session = AuthSession(uid="google-1", email="g@example.com", provider_id=provider_id)
        self._publish(session)
        return session

    async def sign_in_with_redirect(self, provider_id: str, continue_uri: str) -> str:
        self._check("sign_in_with_redirect", provider_id, continue_uri)
        return "https://accounts.example.com/o/oauth2/auth?state=abc"

    def set_redirect_callback(self, request_uri: str) -> None:
        self.redirect_callback = request_uri

    async def get_redirect_result(self) -> Optional[AuthSession]:
        self._check("get_redirect_result")
        if self.redirect_session is None or self.redirect_callback is None:
            return None
        session, self.redirect_session = self.redirect_session, None
        self._publish(session)
        return session

    async def sign_up_with_credentials(self, email: str, password: str) -> AuthSession:
        self._check("sign_up_with_credentials", email)
        session = AuthSession(uid="new-user", email=email)
        self._publish(session)
        return session

    async def sign_out(self) -> None:
        self._check("sign_out")
        self._publish(None)

    async def update_profile(self, display_name: Optional[str] = None, photo_url: Optional[str] = None) -> None:
        self._check("update_profile", display_name, photo_url)

    async def update_password(self, new_password: str) -> None:
        self._check("update_password")


def signed_in_context(uid: str = "u1", **kwargs) -> SessionContext:
    context = SessionContext()
    context.update(
        status=SessionStatus.AUTHENTICATED,
        viewer=AuthSession(uid=uid, **kwargs),
    )
    return context

