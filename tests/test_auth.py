"""
Tests for the OAuth token lifecycle.

Covers the three paths of get_access_token(): stored token, refresh-token
exchange, and interactive sign-in with PKCE and state checks.
"""

import base64
import hashlib
from unittest import mock
from urllib.parse import urlparse, parse_qs

import pytest
import requests

from drivelogger.drive.auth import TokenManager, make_code_verifier, make_state
from drivelogger.drive.prompt import ConsentFlow, LocalServerPrompt, make_consent_flow
from drivelogger.errors import AuthError, ConfigError

REDIRECT_URI = "http://127.0.0.1:8766/"
CLIENT_ID = "123-abc.apps.googleusercontent.com"


def s256(verifier: str) -> str:
    """Unpadded base64url(SHA-256(verifier))."""
    return base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest()).decode().rstrip("=")


class FakePrompt:
    """Answers the consent URL with a redirect, like a user clicking Allow."""

    def __init__(self, code="auth-code", state_override=None, cancel=False):
        self.code = code
        self.state_override = state_override
        self.cancel = cancel
        self.urls = []
        self.flows = []

    def __call__(self, flow: ConsentFlow, auth_params: dict) -> str:
        auth_url, _ = flow.authorization_url(**auth_params)
        self.urls.append(auth_url)
        self.flows.append(flow)
        if self.cancel:
            raise AuthError("canceled")
        params = parse_qs(urlparse(auth_url).query)
        state = self.state_override or params["state"][0]
        query = f"state={state}"
        if self.code:
            query += f"&code={self.code}"
        return f"{REDIRECT_URI}?{query}"

    @property
    def last_params(self) -> dict:
        return {k: v[0] for k, v in parse_qs(urlparse(self.urls[-1]).query).items()}


def make_manager(store, session, clock, prompt=None):
    return TokenManager(
        store,
        prompt=prompt or FakePrompt(),
        redirect_uri=REDIRECT_URI,
        session=session,
        clock=clock,
    )


class TestPkce:
    """Tests for verifier/state generation."""

    def test_verifier_encodes_32_bytes(self):
        verifier = make_code_verifier()
        assert len(verifier) == 43
        assert "=" not in verifier

    def test_state_encodes_16_bytes(self):
        assert len(make_state()) == 22
        assert make_state() != make_state()


class TestConsentFlow:
    """Tests for the google-auth-oauthlib consent flow."""

    def test_authorization_url_uses_our_verifier(self):
        """Challenge in the consent URL is S256 of the verifier we passed."""
        verifier = make_code_verifier()
        flow = make_consent_flow(CLIENT_ID, None, ["scope-a", "scope-b"], REDIRECT_URI, verifier)

        auth_url, state = flow.authorization_url(state="s-1", prompt="consent")

        params = {k: v[0] for k, v in parse_qs(urlparse(auth_url).query).items()}
        assert auth_url.startswith("https://accounts.google.com/o/oauth2/v2/auth?")
        assert state == "s-1"
        assert params["client_id"] == CLIENT_ID
        assert params["redirect_uri"] == REDIRECT_URI
        assert params["scope"] == "scope-a scope-b"
        assert params["code_challenge"] == s256(verifier)
        assert params["code_challenge_method"] == "S256"
        assert params["access_type"] == "offline"
        assert params["prompt"] == "consent"

    def test_fetch_token_only_records_redirect(self):
        flow = make_consent_flow(CLIENT_ID, "shh", ["s"], REDIRECT_URI, make_code_verifier())

        assert flow.fetch_token(authorization_response="https://x/?code=c") == {}
        assert flow.redirect_response == "https://x/?code=c"
        assert flow.credentials is None


class TestLocalServerPrompt:
    """Tests for the run_local_server() redirect capture."""

    def make_flow(self):
        return make_consent_flow(CLIENT_ID, None, ["s"], REDIRECT_URI, make_code_verifier())

    def test_returns_redirect_on_fixed_port(self):
        flow = self.make_flow()

        def fake_run(**kwargs):
            flow.fetch_token(authorization_response=f"https://127.0.0.1:8766/?state={kwargs['state']}&code=c")

        with mock.patch.object(flow, "run_local_server", side_effect=fake_run) as run:
            redirect = LocalServerPrompt(timeout=5, open_browser=False)(flow, {"state": "abc"})

        assert redirect == "https://127.0.0.1:8766/?state=abc&code=c"
        kwargs = run.call_args.kwargs
        assert kwargs["host"] == "127.0.0.1"
        assert kwargs["port"] == 8766
        assert kwargs["open_browser"] is False
        assert kwargs["timeout_seconds"] == 5

    def test_timeout_is_canceled(self):
        """run_local_server fails on the missing request; that means canceled."""
        flow = self.make_flow()

        with mock.patch.object(flow, "run_local_server", side_effect=AttributeError("'NoneType' object")):
            with pytest.raises(AuthError) as exc_info:
                LocalServerPrompt(open_browser=False)(flow, {"state": "abc"})

        assert exc_info.value.code == "canceled"

    def test_port_in_use_is_canceled(self):
        flow = self.make_flow()

        with mock.patch.object(flow, "run_local_server", side_effect=OSError("Address already in use")):
            with pytest.raises(AuthError) as exc_info:
                LocalServerPrompt(open_browser=False)(flow, {"state": "abc"})

        assert exc_info.value.code == "canceled"


class TestStoredToken:
    """Tests for the no-I/O path."""

    def test_unexpired_token_returned_without_io(self, store, session, clock):
        """A stored, unexpired token is returned as-is."""
        store.set({
            "clientId": CLIENT_ID,
            "accessToken": "stored-token",
            "tokenExpiry": int(clock()) + 100,
        })
        prompt = FakePrompt()
        manager = make_manager(store, session, clock, prompt)

        assert manager.get_access_token() == "stored-token"
        assert session.calls == []
        assert prompt.urls == []

    def test_token_at_expiry_is_not_used(self, store, session, clock):
        """now == expiry counts as expired."""
        store.set({
            "clientId": CLIENT_ID,
            "accessToken": "old",
            "refreshToken": "refresh-1",
            "tokenExpiry": int(clock()),
        })
        session.add(200, {"access_token": "new", "expires_in": 3600})
        manager = make_manager(store, session, clock)

        assert manager.get_access_token() == "new"


class TestRefresh:
    """Tests for the refresh-token exchange."""

    def test_expired_token_with_refresh_token_refreshes(self, store, session, clock):
        """Expired token + refresh token -> refresh exchange, no prompt."""
        store.set({
            "clientId": CLIENT_ID,
            "accessToken": "old",
            "refreshToken": "refresh-1",
            "tokenExpiry": int(clock()) - 1,
        })
        session.add(200, {"access_token": "fresh", "expires_in": 3600})
        prompt = FakePrompt()
        manager = make_manager(store, session, clock, prompt)

        assert manager.get_access_token() == "fresh"
        assert prompt.urls == []
        assert len(session.calls) == 1
        call = session.calls[0]
        assert call.method == "POST"
        assert call.url == "https://oauth2.googleapis.com/token"
        assert call.kwargs["data"] == {
            "client_id": CLIENT_ID,
            "grant_type": "refresh_token",
            "refresh_token": "refresh-1",
        }
        assert store.get_one("accessToken") == "fresh"
        assert store.get_one("tokenExpiry") == int(clock()) + 3600 - 60
        assert store.get_one("refreshToken") == "refresh-1"

    def test_refresh_includes_client_secret_when_set(self, store, session, clock):
        store.set({
            "clientId": CLIENT_ID,
            "clientSecret": "shh",
            "refreshToken": "refresh-1",
        })
        session.add(200, {"access_token": "fresh"})
        manager = make_manager(store, session, clock)

        manager.get_access_token()

        assert session.calls[0].kwargs["data"]["client_secret"] == "shh"

    def test_missing_expires_in_defaults_to_one_hour(self, store, session, clock):
        store.set({"clientId": CLIENT_ID, "refreshToken": "refresh-1"})
        session.add(200, {"access_token": "fresh"})
        manager = make_manager(store, session, clock)

        manager.get_access_token()

        assert store.get_one("tokenExpiry") == int(clock()) + 3600 - 60

    def test_refresh_failure_falls_back_to_sign_in(self, store, session, clock):
        """A rejected refresh token triggers the interactive flow."""
        store.set({
            "clientId": CLIENT_ID,
            "refreshToken": "revoked",
            "tokenExpiry": int(clock()) - 1,
        })
        session.add(400, {"error": "invalid_grant", "error_description": "Token has been revoked."})
        session.add(200, {"access_token": "interactive", "refresh_token": "refresh-2", "expires_in": 1800})
        prompt = FakePrompt()
        manager = make_manager(store, session, clock, prompt)

        assert manager.get_access_token() == "interactive"
        assert len(prompt.urls) == 1
        assert session.calls[1].kwargs["data"]["grant_type"] == "authorization_code"
        assert store.get_one("refreshToken") == "refresh-2"

    def test_network_error_during_refresh_falls_back_to_sign_in(self, store, session, clock):
        store.set({"clientId": CLIENT_ID, "refreshToken": "refresh-1"})
        session.add_error(requests.ConnectionError("offline"))
        session.add(200, {"access_token": "interactive"})
        prompt = FakePrompt()
        manager = make_manager(store, session, clock, prompt)

        assert manager.get_access_token() == "interactive"
        assert len(prompt.urls) == 1


class TestInteractiveSignIn:
    """Tests for the interactive authorization-code flow."""

    def test_no_refresh_token_runs_interactive_flow(self, store, session, clock):
        """Without a refresh token the consent prompt is used."""
        store.set({"clientId": CLIENT_ID})
        session.add(200, {"access_token": "at-1", "refresh_token": "rt-1", "expires_in": 3600})
        prompt = FakePrompt(code="the-code")
        manager = make_manager(store, session, clock, prompt)

        assert manager.get_access_token() == "at-1"

        params = prompt.last_params
        assert params["client_id"] == CLIENT_ID
        assert params["redirect_uri"] == REDIRECT_URI
        assert params["response_type"] == "code"
        assert params["code_challenge_method"] == "S256"
        assert params["access_type"] == "offline"
        assert "drive.file" in params["scope"]

        sent = session.calls[0].kwargs["data"]
        assert sent["code"] == "the-code"
        assert sent["grant_type"] == "authorization_code"
        assert sent["redirect_uri"] == REDIRECT_URI
        assert "client_secret" not in sent
        # The verifier sent at exchange time matches the challenge in the URL
        challenge = s256(sent["code_verifier"])
        assert challenge == params["code_challenge"]

        assert store.get_one("accessToken") == "at-1"
        assert store.get_one("refreshToken") == "rt-1"
        assert store.get_one("tokenExpiry") == int(clock()) + 3600 - 60

    def test_missing_refresh_token_keeps_previous(self, store, session, clock):
        """Google may not reissue a refresh token; the old one is kept."""
        store.set({"clientId": CLIENT_ID, "refreshToken": "keep-me"})
        session.add(400, {"error": {"message": "bad refresh"}})
        session.add(200, {"access_token": "at-2", "expires_in": 3600})
        manager = make_manager(store, session, clock)

        manager.get_access_token()

        assert store.get_one("refreshToken") == "keep-me"

    def test_state_mismatch_rejected(self, store, session, clock):
        store.set({"clientId": CLIENT_ID})
        manager = make_manager(store, session, clock, FakePrompt(state_override="forged"))

        with pytest.raises(AuthError) as exc_info:
            manager.get_access_token()

        assert exc_info.value.code == "state_mismatch"
        assert session.calls == []
        assert store.get_one("accessToken") is None

    def test_missing_code_rejected(self, store, session, clock):
        store.set({"clientId": CLIENT_ID})
        manager = make_manager(store, session, clock, FakePrompt(code=None))

        with pytest.raises(AuthError) as exc_info:
            manager.get_access_token()

        assert exc_info.value.code == "no_code"
        assert store.get_one("accessToken") is None

    def test_canceled_prompt_persists_nothing(self, store, session, clock):
        store.set({"clientId": CLIENT_ID})
        before = dict(store.items())
        manager = make_manager(store, session, clock, FakePrompt(cancel=True))

        with pytest.raises(AuthError) as exc_info:
            manager.get_access_token()

        assert exc_info.value.code == "canceled"
        assert dict(store.items()) == before

    def test_missing_client_id_is_config_error(self, store, session, clock):
        """No client registration -> ConfigError before any prompt."""
        prompt = FakePrompt()
        manager = make_manager(store, session, clock, prompt)

        with pytest.raises(ConfigError):
            manager.get_access_token()

        assert prompt.urls == []
        assert session.calls == []

    def test_client_secret_sent_on_code_exchange(self, store, session, clock):
        store.set({"clientId": CLIENT_ID, "clientSecret": "shh"})
        session.add(200, {"access_token": "at"})
        manager = make_manager(store, session, clock)

        manager.get_access_token()

        assert session.calls[0].kwargs["data"]["client_secret"] == "shh"


class TestSetClient:
    def test_set_client_stores_identity(self, store, session, clock):
        manager = make_manager(store, session, clock)
        manager.set_client(CLIENT_ID, "")

        assert store.get_one("clientId") == CLIENT_ID
        assert store.get_one("clientSecret") is None
