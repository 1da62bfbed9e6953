"""Interactive OAuth consent for Google, LinkedIn and Facebook.

Runs a one-shot local HTTP listener on ``OAUTH_PORT`` that receives the
authorization-code redirect, exchanges the code for tokens and writes the
resulting record with ``CredentialStore.write``. The MCP server never starts
this flow itself; it is only reached through ``pa-mcp auth <provider>``.

Redirect URIs that must be registered with each provider:
    Google:   http://localhost:<port>/oauth2callback
    LinkedIn: http://localhost:<port>/linkedin/callback
    Facebook: http://localhost:<port>/callback
"""

import asyncio
import logging
import secrets
import webbrowser
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse

import httpx
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from pa_mcp.auth.models import PersistedCredentials
from pa_mcp.auth.providers import (
    FACEBOOK_GRAPH_VERSION,
    FACEBOOK_TOKEN_URI,
    GOOGLE_TOKEN_URI,
    LINKEDIN_TOKEN_URI,
    Provider,
    get_spec,
)
from pa_mcp.auth.resolver import CredentialResolver
from pa_mcp.auth.token_storage import CredentialStore
from pa_mcp.config import GeneralConfig

logger = logging.getLogger(__name__)

DEFAULT_OAUTH_HOST = "localhost"
CALLBACK_TIMEOUT_SECONDS = 300

CALLBACK_PATHS = {
    Provider.GOOGLE: "/oauth2callback",
    Provider.LINKEDIN: "/linkedin/callback",
    Provider.FACEBOOK: "/callback",
}

LINKEDIN_AUTH_URL = "https://www.linkedin.com/oauth/v2/authorization"
FACEBOOK_AUTH_URL = f"https://www.facebook.com/{FACEBOOK_GRAPH_VERSION}/dialog/oauth"
FACEBOOK_ACCOUNTS_URL = f"https://graph.facebook.com/{FACEBOOK_GRAPH_VERSION}/me/accounts"


class OAuthFlowError(Exception):
    """Raised when interactive consent does not produce tokens."""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class OAuthManager:
    """Interactive consent manager for all providers.

    Attributes:
        config: Process configuration (port, config dir, credentials).
        store: Credential store receiving the resulting records.

    Example:
        ```python
        manager = OAuthManager(GeneralConfig.load())
        path = await manager.authenticate(Provider.LINKEDIN)
        print(f"Credentials saved to {path}")
        ```
    """

    def __init__(self, config: GeneralConfig, store: CredentialStore | None = None) -> None:
        self.config = config
        self.store = store or CredentialStore(config.mcp_config_dir)
        self.resolver = CredentialResolver(config, self.store)

    def redirect_uri(self, provider: Provider) -> str:
        return f"http://{DEFAULT_OAUTH_HOST}:{self.config.oauth_port}{CALLBACK_PATHS[provider]}"

    def client_keys(self, provider: Provider) -> tuple[str, str]:
        """Find the application's client id/secret: explicit sources first, then keys file.

        Raises:
            ValueError: If no client id/secret is configured.
        """
        spec = get_spec(provider)
        explicit = self.resolver.explicit_tuple(provider)
        if explicit.client_id and explicit.client_secret:
            return explicit.client_id, explicit.client_secret

        keys = self.store.read_app_keys(provider)
        if keys and keys.client_id and keys.client_secret:
            return keys.client_id, keys.client_secret

        raise ValueError(
            f"Client ID and secret required for {spec.name}. "
            f"Set {spec.env_name('client_id')} and {spec.env_name('client_secret')} "
            f"or create {self.store.keys_path_for(provider)}."
        )

    async def authenticate(self, provider: Provider | str) -> str:
        """Run interactive consent for one provider and persist the result.

        Args:
            provider: Provider to authenticate.

        Returns:
            Path of the written credentials file, as a string.

        Raises:
            ValueError: If client credentials are missing.
            OAuthFlowError: If consent or the token exchange fails.
        """
        provider = Provider(provider)
        if provider == Provider.GOOGLE:
            record = await self._authenticate_google()
        elif provider == Provider.LINKEDIN:
            record = await self._authenticate_linkedin()
        else:
            record = await self._authenticate_facebook()

        path = self.store.write(provider, record)
        logger.info(f"{provider.value} credentials saved to {path}")
        return str(path)

    # ------------------------------------------------------------------
    # Callback listener
    # ------------------------------------------------------------------

    def _wait_for_code(self, auth_url: str, callback_path: str, state: str | None) -> str:
        """Open the browser and block until one callback arrives (blocking).

        Returns:
            The authorization code.

        Raises:
            OAuthFlowError: On provider error, state mismatch, timeout or missing code.
        """
        auth_code: list[str | None] = [None]
        error_message: list[str | None] = [None]

        class OAuthCallbackHandler(BaseHTTPRequestHandler):
            """HTTP handler for OAuth callback."""

            def log_message(self, format: str, *args: Any) -> None:
                """Suppress HTTP server logs."""

            def _respond(self, status: int, body: bytes) -> None:
                self.send_response(status)
                self.send_header("Content-type", "text/html")
                self.end_headers()
                self.wfile.write(body)

            def do_GET(self) -> None:
                request_parsed = urlparse(self.path)
                if request_parsed.path != callback_path:
                    self._respond(404, b"Not Found")
                    return

                query_params = parse_qs(request_parsed.query)
                if "error" in query_params:
                    error_message[0] = query_params["error"][0]
                    self._respond(
                        400,
                        b"<html><body><h1>Authentication Failed</h1>"
                        b"<p>Please close this window and try again.</p></body></html>",
                    )
                    return

                if state is not None and query_params.get("state", [None])[0] != state:
                    error_message[0] = "state mismatch"
                    self._respond(400, b"<html><body><h1>Invalid state</h1></body></html>")
                    return

                if "code" in query_params:
                    auth_code[0] = query_params["code"][0]
                    self._respond(
                        200,
                        b"<html><body><h1>Authentication Successful!</h1>"
                        b"<p>You can close this window and return to the terminal.</p>"
                        b"</body></html>",
                    )
                else:
                    self._respond(
                        400,
                        b"<html><body><h1>Authentication Failed</h1>"
                        b"<p>No authorization code received.</p></body></html>",
                    )

        server = HTTPServer((DEFAULT_OAUTH_HOST, self.config.oauth_port), OAuthCallbackHandler)
        server.timeout = CALLBACK_TIMEOUT_SECONDS

        print(f"Auth server running on port: {self.config.oauth_port}")
        print(f"If browser doesn't open, visit: {auth_url}")
        webbrowser.open(auth_url)

        try:
            server.handle_request()
        finally:
            server.server_close()

        if error_message[0]:
            raise OAuthFlowError(f"OAuth authentication failed: {error_message[0]}")
        if not auth_code[0]:
            raise OAuthFlowError("No authorization code received (timed out or bad request)")
        return auth_code[0]

    async def _receive_code(self, auth_url: str, provider: Provider, state: str | None) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self._wait_for_code, auth_url, CALLBACK_PATHS[provider], state
        )

    # ------------------------------------------------------------------
    # Google
    # ------------------------------------------------------------------

    def _credentials_to_record(self, credentials: Credentials) -> PersistedCredentials:
        expiry = credentials.expiry
        if expiry is not None and expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)
        data: dict[str, Any] = {
            "access_token": credentials.token,
            "refresh_token": credentials.refresh_token,
            "token_type": "Bearer",
            "scope": " ".join(credentials.scopes or []),
        }
        if expiry is not None:
            data["expiry_date"] = int(expiry.timestamp() * 1000)
        return PersistedCredentials.model_validate({k: v for k, v in data.items() if v})

    def _run_google_flow(self, client_id: str, client_secret: str) -> Credentials:
        """Run the Google flow (blocking)."""
        redirect_uri = self.redirect_uri(Provider.GOOGLE)
        client_config = {
            "web": {
                "client_id": client_id,
                "client_secret": client_secret,
                "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                "token_uri": GOOGLE_TOKEN_URI,
                "redirect_uris": [redirect_uri],
            }
        }
        flow = Flow.from_client_config(
            client_config,
            scopes=get_spec(Provider.GOOGLE).scopes,
            redirect_uri=redirect_uri,
        )
        state = secrets.token_urlsafe(32)
        auth_url, _ = flow.authorization_url(access_type="offline", prompt="consent", state=state)

        code = self._wait_for_code(auth_url, CALLBACK_PATHS[Provider.GOOGLE], state)
        flow.fetch_token(code=code)
        return flow.credentials

    async def _authenticate_google(self) -> PersistedCredentials:
        client_id, client_secret = self.client_keys(Provider.GOOGLE)
        loop = asyncio.get_running_loop()
        credentials = await loop.run_in_executor(
            None, self._run_google_flow, client_id, client_secret
        )
        return self._credentials_to_record(credentials)

    # ------------------------------------------------------------------
    # LinkedIn
    # ------------------------------------------------------------------

    async def _authenticate_linkedin(self) -> PersistedCredentials:
        client_id, client_secret = self.client_keys(Provider.LINKEDIN)
        redirect_uri = self.redirect_uri(Provider.LINKEDIN)
        state = secrets.token_urlsafe(16)
        auth_url = f"{LINKEDIN_AUTH_URL}?" + urlencode(
            {
                "response_type": "code",
                "client_id": client_id,
                "redirect_uri": redirect_uri,
                "scope": " ".join(get_spec(Provider.LINKEDIN).scopes),
                "state": state,
            }
        )
        code = await self._receive_code(auth_url, Provider.LINKEDIN, state)

        async with httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=10.0)) as client:
            response = await client.post(
                LINKEDIN_TOKEN_URI,
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": redirect_uri,
                    "client_id": client_id,
                    "client_secret": client_secret,
                },
            )
        if response.is_error:
            raise OAuthFlowError(
                f"Token exchange failed: {response.status_code}. Response: {response.text}"
            )

        tokens = response.json()
        tokens["created_at"] = _now_iso()
        return PersistedCredentials.model_validate(tokens)

    # ------------------------------------------------------------------
    # Facebook
    # ------------------------------------------------------------------

    async def _authenticate_facebook(self) -> PersistedCredentials:
        client_id, client_secret = self.client_keys(Provider.FACEBOOK)
        redirect_uri = self.redirect_uri(Provider.FACEBOOK)
        state = secrets.token_urlsafe(16)
        auth_url = f"{FACEBOOK_AUTH_URL}?" + urlencode(
            {
                "client_id": client_id,
                "redirect_uri": redirect_uri,
                "scope": ",".join(get_spec(Provider.FACEBOOK).scopes),
                "response_type": "code",
                "state": state,
            }
        )
        code = await self._receive_code(auth_url, Provider.FACEBOOK, state)

        async with httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=10.0)) as client:
            token_response = await client.post(
                FACEBOOK_TOKEN_URI,
                data={
                    "client_id": client_id,
                    "client_secret": client_secret,
                    "redirect_uri": redirect_uri,
                    "code": code,
                },
            )
            if token_response.is_error:
                raise OAuthFlowError(
                    f"Failed to exchange code for token: {token_response.text}"
                )
            tokens = token_response.json()

            pages_response = await client.get(
                FACEBOOK_ACCOUNTS_URL,
                params={"access_token": tokens["access_token"], "fields": "id,name,access_token"},
            )
            if pages_response.is_error:
                raise OAuthFlowError(f"Failed to get page access token: {pages_response.text}")

        pages = pages_response.json().get("data") or []
        if not pages:
            raise OAuthFlowError(
                "No pages found for this Facebook account. You need to manage at least "
                "one Facebook Page to use these tools."
            )

        # First managed page is used
        page = pages[0]
        logger.info(f"Using Facebook Page: {page.get('name')} (ID: {page['id']})")

        return PersistedCredentials.model_validate(
            {
                "access_token": tokens["access_token"],
                "token_type": tokens.get("token_type") or "Bearer",
                "expires_in": tokens.get("expires_in"),
                "page_access_token": page["access_token"],
                "page_id": page["id"],
                "created_at": _now_iso(),
            }
        )
