"""
OAuth token lifecycle for Drive Logger.

Handles the Google OAuth 2.0 authorization-code flow with PKCE for a
user-registered client, silent refresh, and persistence of the credential
record in the host's KeyValueStore.

The consent URL and redirect capture go through google-auth-oauthlib (see
prompt.py). Token requests are plain form POSTs: the registered client may
have no secret, and google.oauth2.credentials.Credentials.refresh() needs one.
"""

import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import urlparse, parse_qs

import requests

from ..constants import (
    OAUTH_TOKEN_URL,
    OAUTH_SCOPES,
    TOKEN_EXPIRY_SKEW,
    DEFAULT_EXPIRES_IN,
    KEY_CLIENT_ID,
    KEY_CLIENT_SECRET,
    KEY_ACCESS_TOKEN,
    KEY_REFRESH_TOKEN,
    KEY_TOKEN_EXPIRY,
)
from ..errors import AuthError, ConfigError, RemoteError
from ..store import KeyValueStore
from .http import api_request
from .prompt import ConsentFlow, make_consent_flow

logger = logging.getLogger(__name__)

CREDENTIAL_KEYS = [
    KEY_CLIENT_ID,
    KEY_CLIENT_SECRET,
    KEY_ACCESS_TOKEN,
    KEY_REFRESH_TOKEN,
    KEY_TOKEN_EXPIRY,
]

# Prompt: (flow, authorization_url kwargs) -> redirect URL the browser landed on
Prompt = Callable[[ConsentFlow, dict], str]


def make_code_verifier() -> str:
    """PKCE code verifier: 32 random bytes, unpadded base64url."""
    return secrets.token_urlsafe(32)


def make_state() -> str:
    """Random anti-CSRF state token."""
    return secrets.token_urlsafe(16)


@dataclass
class CredentialRecord:
    """Snapshot of the persisted credential fields."""
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_expiry: Optional[int] = None

    @classmethod
    def from_store(cls, store: KeyValueStore) -> "CredentialRecord":
        data = store.get(CREDENTIAL_KEYS)
        return cls(
            client_id=data.get(KEY_CLIENT_ID),
            client_secret=data.get(KEY_CLIENT_SECRET),
            access_token=data.get(KEY_ACCESS_TOKEN),
            refresh_token=data.get(KEY_REFRESH_TOKEN),
            token_expiry=data.get(KEY_TOKEN_EXPIRY),
        )

    def is_valid(self, now: float) -> bool:
        """True while the stored access token can be used without I/O."""
        return bool(self.access_token and self.token_expiry and now < self.token_expiry)


class TokenManager:
    """
    Obtains and refreshes access tokens for the Drive API.

    get_access_token() tries, in order: the stored token, a refresh-token
    exchange, then the interactive browser flow. Only successful paths write
    to the store.
    """

    def __init__(
        self,
        store: KeyValueStore,
        prompt: Prompt,
        redirect_uri: str,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
        scopes: Optional[list[str]] = None,
    ):
        """
        Initialize token manager.

        Args:
            store: Credential Store
            prompt: Takes the consent flow and its authorization_url()
                parameters, returns the redirect URL the browser landed on;
                raises AuthError("canceled") otherwise
            redirect_uri: Fixed redirect URI registered on the OAuth client
            session: requests session (injected in tests)
            clock: Epoch-seconds clock
            scopes: OAuth scopes to request
        """
        self.store = store
        self.prompt = prompt
        self.redirect_uri = redirect_uri
        self.session = session or requests.Session()
        self.clock = clock
        self.scopes = scopes or OAUTH_SCOPES

    def _skewed_expiry(self, token: dict) -> int:
        expires_in = token.get("expires_in") or DEFAULT_EXPIRES_IN
        return int(self.clock()) + int(expires_in) - TOKEN_EXPIRY_SKEW

    def _token_request(self, fields: dict) -> dict:
        token = api_request(
            self.session, "POST", OAUTH_TOKEN_URL,
            data=fields,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        if not isinstance(token, dict) or not token.get("access_token"):
            raise RemoteError(200, "Token response missing access_token", details=token)
        return token

    def get_access_token(self) -> str:
        """
        Get a usable access token.

        Raises:
            ConfigError: no client id registered
            AuthError: interactive flow canceled or rejected
            RemoteError: code exchange failed
        """
        record = CredentialRecord.from_store(self.store)

        if record.is_valid(self.clock()):
            return record.access_token

        if record.refresh_token and record.client_id:
            try:
                return self.refresh(record)
            except (RemoteError, requests.RequestException) as e:
                logger.warning("[Auth] Refresh failed, falling back to sign-in: %s", e)

        return self.sign_in(record)

    def refresh(self, record: CredentialRecord) -> str:
        """Exchange the stored refresh token for a new access token."""
        fields = {
            "client_id": record.client_id,
            "grant_type": "refresh_token",
            "refresh_token": record.refresh_token,
        }
        if record.client_secret:
            fields["client_secret"] = record.client_secret

        token = self._token_request(fields)
        self.store.set({
            KEY_ACCESS_TOKEN: token["access_token"],
            KEY_TOKEN_EXPIRY: self._skewed_expiry(token),
        })
        logger.info("[Auth] Access token refreshed")
        return token["access_token"]

    def auth_params(self, state: str) -> dict:
        """Extra authorization_url() parameters for the consent page."""
        return {
            "state": state,
            "access_type": "offline",
            "include_granted_scopes": "true",
            "prompt": "consent",
        }

    def sign_in(self, record: Optional[CredentialRecord] = None) -> str:
        """
        Interactive sign-in. Opens the consent page and exchanges the code.

        Returns:
            New access token
        """
        if record is None:
            record = CredentialRecord.from_store(self.store)
        if not record.client_id:
            raise ConfigError(
                "Missing Client ID. Run `drive_logger.py set-client` with your "
                "Google OAuth Client ID."
            )

        verifier = make_code_verifier()
        state = make_state()
        flow = make_consent_flow(
            record.client_id, record.client_secret, self.scopes, self.redirect_uri, verifier,
        )
        redirect = self.prompt(flow, self.auth_params(state))
        if not redirect:
            raise AuthError("canceled")

        query = parse_qs(urlparse(redirect).query)
        if query.get("state", [None])[0] != state:
            raise AuthError("state_mismatch")
        code = query.get("code", [None])[0]
        if not code:
            raise AuthError("no_code")

        fields = {
            "client_id": record.client_id,
            "code": code,
            "code_verifier": verifier,
            "redirect_uri": self.redirect_uri,
            "grant_type": "authorization_code",
        }
        if record.client_secret:
            fields["client_secret"] = record.client_secret

        token = self._token_request(fields)
        self.store.set({
            KEY_ACCESS_TOKEN: token["access_token"],
            # Google does not always reissue refresh tokens
            KEY_REFRESH_TOKEN: token.get("refresh_token") or record.refresh_token,
            KEY_TOKEN_EXPIRY: self._skewed_expiry(token),
        })
        logger.info("[Auth] Signed in")
        return token["access_token"]

    def set_client(self, client_id: str, client_secret: Optional[str] = None):
        """Register the OAuth client (SET_CLIENT_ID)."""
        self.store.set({KEY_CLIENT_ID: client_id})
        if client_secret:
            self.store.set({KEY_CLIENT_SECRET: client_secret})
        else:
            self.store.remove([KEY_CLIENT_SECRET])
        logger.info("[Auth] Client registration updated")
