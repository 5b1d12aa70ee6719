"""
Tests for the Firebase Auth REST service and error mapping.

The HTTP session is a mock; no network calls are made.
"""

from unittest.mock import MagicMock

import pytest
import requests

from biztrack.services.auth import (
    AuthAction,
    AuthError,
    FirebaseAuthService,
    PendingRedirects,
    user_facing_message,
)
from biztrack.services.auth.errors import code_from_rest_message, failure_title
from biztrack.services.auth.firebase import query_values

from tests.helpers import settle


def response(status: int, body: dict) -> MagicMock:
    mock = MagicMock()
    mock.status_code = status
    mock.json.return_value = body
    return mock


@pytest.fixture
def http():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def redirects():
    return PendingRedirects()


@pytest.fixture
def service(runner, http, redirects):
    return FirebaseAuthService(runner, http=http, redirects=redirects)


def sent_redirect_state(http) -> str:
    """The token we put in the continue URI of the last createAuthUri call."""
    [token] = query_values(http.post.call_args.kwargs["json"]["continueUri"], "redirect_state")
    return token


class TestErrorMapping:
    """Tests for REST reason -> code -> message."""

    def test_rest_messages_map_to_codes(self):
        """Test that only the reason before the colon matters."""
        assert code_from_rest_message("WEAK_PASSWORD : Password should be at least 6 characters") == "auth/weak-password"
        assert code_from_rest_message("EMAIL_EXISTS") == "auth/email-already-in-use"
        assert code_from_rest_message("SOMETHING_NEW") == "auth/internal-error"

    def test_messages_per_action(self):
        """Test user-facing messages and titles."""
        assert user_facing_message("auth/wrong-password", AuthAction.LOGIN) == "Invalid email or password."
        assert user_facing_message("auth/weak-password", AuthAction.SIGNUP) == "Password is too weak."
        assert user_facing_message("auth/unknown", AuthAction.SIGNUP) == "Failed to create account. Please try again."
        assert user_facing_message(
            "auth/requires-recent-login", AuthAction.CHANGE_PASSWORD,
        ).startswith("This operation is sensitive")
        assert failure_title(AuthAction.FEDERATED) == "Google Sign-In Failed"


class TestFirebaseAuthService:
    """Tests for the REST calls and session publishing."""

    async def test_sign_in_publishes_session(self, service, http):
        """Test password sign-in and the session-change callback."""
        http.post.return_value = response(200, {
            "localId": "u1",
            "email": "a@example.com",
            "displayName": "Ann",
            "idToken": "tok",
            "refreshToken": "ref",
        })
        seen = []
        service.subscribe_session_changes(seen.append)

        session = await service.sign_in_with_credentials("a@example.com", "pw")
        await settle()

        assert session.uid == "u1"
        assert seen == [None, session]
        url = http.post.call_args.args[0]
        assert url.endswith("/accounts:signInWithPassword")
        assert http.post.call_args.kwargs["params"] == {"key": "test-api-key"}

    async def test_rejection_raises_mapped_code(self, service, http):
        """Test that HTTP errors become AuthError codes."""
        http.post.return_value = response(400, {"error": {"message": "INVALID_LOGIN_CREDENTIALS"}})
        with pytest.raises(AuthError) as excinfo:
            await service.sign_in_with_credentials("a@example.com", "bad")
        assert excinfo.value.code == "auth/invalid-credential"
        assert service.current_session is None

    async def test_network_failure(self, service, http):
        """Test that transport errors map to the network code."""
        http.post.side_effect = requests.exceptions.ConnectionError("down")
        with pytest.raises(AuthError) as excinfo:
            await service.sign_in_anonymously()
        assert excinfo.value.code == "auth/network-request-failed"

    async def test_anonymous_session(self, service, http):
        """Test that anonymous sign-in marks the session."""
        http.post.return_value = response(200, {"localId": "anon", "idToken": "t"})
        session = await service.sign_in_anonymously()
        assert session.is_anonymous
        assert session.email is None

    async def test_popup_without_token_is_blocked(self, service, http):
        """Test that a server-side popup reports popup-blocked."""
        with pytest.raises(AuthError) as excinfo:
            await service.sign_in_with_popup("google.com")
        assert excinfo.value.code == "auth/popup-blocked"
        http.post.assert_not_called()

    async def test_redirect_round_trip(self, service, http, redirects):
        """Test createAuthUri followed by signInWithIdp on return."""
        http.post.return_value = response(200, {"authUri": "https://accounts.google.com/x", "sessionId": "s1"})
        uri = await service.sign_in_with_redirect("google.com", "http://localhost:8501")
        assert uri == "https://accounts.google.com/x"
        token = sent_redirect_state(http)
        assert len(redirects) == 1

        # Nothing to complete until the provider calls back
        assert await service.get_redirect_result() is None

        callback = f"http://localhost:8501/?redirect_state={token}&code=1"
        service.set_redirect_callback(callback)
        http.post.return_value = response(200, {"localId": "g1", "email": "g@example.com", "idToken": "t"})
        session = await service.get_redirect_result()
        assert session.uid == "g1"
        payload = http.post.call_args.kwargs["json"]
        assert payload["sessionId"] == "s1"
        assert payload["requestUri"] == callback
        assert len(redirects) == 0

    async def test_redirect_completes_in_new_browser_session(self, runner, http, redirects):
        """Test that a fresh service finds the sign-in by the provider's OAuth state."""
        first = FirebaseAuthService(runner, http=http, redirects=redirects)
        http.post.return_value = response(200, {
            "authUri": "https://accounts.google.com/x?state=xyz",
            "sessionId": "s1",
        })
        await first.sign_in_with_redirect("google.com", "http://localhost:8501")

        # The viewer comes back in another browser session
        second = FirebaseAuthService(runner, http=http, redirects=redirects)
        second.set_redirect_callback("http://localhost:8501/?state=xyz&code=1")
        http.post.return_value = response(200, {"localId": "g1", "idToken": "t"})
        session = await second.get_redirect_result()

        assert session.uid == "g1"
        assert second.current_session == session
        assert http.post.call_args.kwargs["json"]["sessionId"] == "s1"
        assert len(redirects) == 0

    async def test_unknown_redirect_is_ignored(self, service, http, redirects):
        """Test that a callback matching no started sign-in completes nothing."""
        http.post.return_value = response(200, {"authUri": "https://accounts.google.com/x", "sessionId": "s1"})
        await service.sign_in_with_redirect("google.com", "http://localhost:8501")
        http.post.reset_mock()

        service.set_redirect_callback("http://localhost:8501/?redirect_state=forged&code=1")
        assert await service.get_redirect_result() is None
        http.post.assert_not_called()
        assert len(redirects) == 1

    async def test_expired_redirect_is_dropped(self, runner, http):
        """Test that a sign-in older than the time limit cannot be completed."""
        redirects = PendingRedirects(ttl_seconds=-1.0)
        service = FirebaseAuthService(runner, http=http, redirects=redirects)
        http.post.return_value = response(200, {"authUri": "https://accounts.google.com/x", "sessionId": "s1"})
        await service.sign_in_with_redirect("google.com", "http://localhost:8501")
        token = sent_redirect_state(http)
        http.post.reset_mock()

        service.set_redirect_callback(f"http://localhost:8501/?redirect_state={token}")
        assert await service.get_redirect_result() is None
        http.post.assert_not_called()

    async def test_account_exists_with_other_credential(self, service, http):
        """Test the needConfirmation response."""
        http.post.return_value = response(200, {"authUri": "https://accounts.google.com/x", "sessionId": "s1"})
        await service.sign_in_with_redirect("google.com", "http://localhost:8501")
        service.set_redirect_callback(f"http://localhost:8501/?redirect_state={sent_redirect_state(http)}&code=1")
        http.post.return_value = response(200, {"needConfirmation": True, "email": "g@example.com"})
        with pytest.raises(AuthError) as excinfo:
            await service.get_redirect_result()
        assert excinfo.value.code == "auth/account-exists-with-different-credential"

    async def test_update_password_requires_session(self, service):
        """Test account updates without a signed-in user."""
        with pytest.raises(AuthError) as excinfo:
            await service.update_password("newpass")
        assert excinfo.value.code == "auth/no-current-user"

    async def test_update_profile_does_not_publish(self, service, http):
        """Test that a display name change updates the session quietly."""
        http.post.return_value = response(200, {"localId": "u1", "idToken": "tok"})
        await service.sign_in_with_credentials("a@example.com", "pw")
        await settle()
        seen = []
        service.subscribe_session_changes(seen.append)
        await settle()

        http.post.return_value = response(200, {})
        await service.update_profile(display_name="New Name")
        await settle()
        assert service.current_session.display_name == "New Name"
        assert len(seen) == 1

    async def test_sign_out_publishes_none(self, service, http):
        """Test that sign-out notifies subscribers."""
        http.post.return_value = response(200, {"localId": "u1", "idToken": "tok"})
        await service.sign_in_with_credentials("a@example.com", "pw")
        seen = []
        service.subscribe_session_changes(seen.append)
        await service.sign_out()
        await settle()
        assert seen[-1] is None
        assert service.current_session is None
