"""
Browser-mediated consent prompt.

The consent URL (PKCE challenge, state) is built by google-auth-oauthlib's
InstalledAppFlow, and run_local_server() captures the redirect on the fixed
loopback port registered with the OAuth client. The code exchange itself
stays with TokenManager, since the client secret is optional here.
"""

import logging
from typing import Optional
from urllib.parse import urlparse

from google_auth_oauthlib.flow import InstalledAppFlow

from ..constants import OAUTH_AUTH_URL, OAUTH_TOKEN_URL
from ..errors import AuthError

logger = logging.getLogger(__name__)

AUTH_PROMPT_MESSAGE = "Please visit this URL to authorize Drive Logger:\n  {url}"
SUCCESS_MESSAGE = "Drive Logger is signed in. You can close this window."


class ConsentFlow(InstalledAppFlow):
    """
    InstalledAppFlow that stops once the browser has been redirected.

    fetch_token() only records the redirect URL; no token request is made.
    """

    redirect_response: Optional[str] = None

    def fetch_token(self, **kwargs):
        self.redirect_response = kwargs.get("authorization_response")
        return {}

    @property
    def credentials(self):
        return None


def make_consent_flow(
    client_id: str,
    client_secret: Optional[str],
    scopes: list[str],
    redirect_uri: str,
    code_verifier: str,
) -> ConsentFlow:
    """Build the consent flow for a registered (installed-app) client."""
    client_config = {
        "installed": {
            "client_id": client_id,
            "auth_uri": OAUTH_AUTH_URL,
            "token_uri": OAUTH_TOKEN_URL,
            "redirect_uris": [redirect_uri],
        }
    }
    if client_secret:
        client_config["installed"]["client_secret"] = client_secret
    return ConsentFlow.from_client_config(
        client_config,
        scopes=scopes,
        redirect_uri=redirect_uri,
        code_verifier=code_verifier,
        autogenerate_code_verifier=False,
    )


class LocalServerPrompt:
    """
    Consent prompt backed by InstalledAppFlow.run_local_server().

    Calling the instance with a flow and its authorization parameters
    returns the redirect URL, or raises AuthError("canceled") if nothing
    arrives before the timeout.
    """

    def __init__(self, timeout: float = 300.0, open_browser: bool = True):
        self.timeout = timeout
        self.open_browser = open_browser

    def __call__(self, flow: ConsentFlow, auth_params: dict) -> str:
        redirect = urlparse(flow.redirect_uri)
        try:
            flow.run_local_server(
                host=redirect.hostname or "127.0.0.1",
                port=redirect.port or 80,
                open_browser=self.open_browser,
                timeout_seconds=self.timeout,
                authorization_prompt_message=AUTH_PROMPT_MESSAGE,
                success_message=SUCCESS_MESSAGE,
                **auth_params,
            )
        except AttributeError:
            # run_local_server has no redirect to read after a timeout
            logger.info("[Auth] No redirect received within %.0fs", self.timeout)
            raise AuthError("canceled")
        except OSError as e:
            raise AuthError("canceled", f"Could not listen on {flow.redirect_uri}: {e}") from e

        if not flow.redirect_response:
            raise AuthError("canceled")
        return flow.redirect_response
