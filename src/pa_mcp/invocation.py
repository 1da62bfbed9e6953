"""Tool Invocation Wrapper.

Every tool handler runs its upstream call through ``ToolInvoker.invoke``,
which performs resolve -> validate/refresh -> construct client -> invoke ->
classify error, and never lets an exception escape to the MCP host.

Calls without an override config share one cached client per API family
(``ClientCache``). Calls with an override build a fresh client that is
discarded afterwards and never enters the cache.
"""

import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx

from pa_mcp.apis import ApiClient, CalendarClient, FacebookClient, GmailClient, LinkedInClient
from pa_mcp.auth.credential_provider import CredentialProvider, RefreshLocks, build_credential_providers
from pa_mcp.auth.providers import Provider, ProviderSpec, get_spec
from pa_mcp.auth.resolver import CredentialResolver
from pa_mcp.auth.token_storage import CredentialStore
from pa_mcp.config import GeneralConfig
from pa_mcp.errors import (
    AuthenticationError,
    ConfigurationError,
    OperationError,
    ScopePermissionError,
    ToolError,
)

logger = logging.getLogger(__name__)

ClientT = TypeVar("ClientT", bound=ApiClient)

AUTH_ERROR_MARKERS = (
    "invalid_grant",
    "invalid_client",
    "unauthorized_client",
    "refresh_token",
)

# Matched only for errors that are not HTTP responses.
TOKEN_ERROR_MARKERS = (
    "invalid_token",
    "expired",
)

SCOPE_ERROR_MARKERS = (
    "insufficient_scope",
    "insufficientpermissions",
    "access_token_scope_insufficient",
    "permission",
)

# Graph API error codes: 190 = OAuthException (expired/invalid token),
# 10 and 200-299 = permission errors.
FACEBOOK_AUTH_CODES = {190}


@dataclass(frozen=True)
class ApiFamily:
    """An API family and the provider/client it is served by."""

    name: str
    display_name: str
    provider: Provider
    client_class: type[ApiClient]


API_FAMILIES: dict[str, ApiFamily] = {
    "gmail": ApiFamily("gmail", "Gmail", Provider.GOOGLE, GmailClient),
    "calendar": ApiFamily("calendar", "Calendar", Provider.GOOGLE, CalendarClient),
    "linkedin": ApiFamily("linkedin", "LinkedIn", Provider.LINKEDIN, LinkedInClient),
    "facebook": ApiFamily("facebook", "Facebook", Provider.FACEBOOK, FacebookClient),
}


class ClientCache:
    """Default (no-override) API clients, one per API family."""

    def __init__(self) -> None:
        self._clients: dict[str, ApiClient] = {}

    def get(self, family: str) -> ApiClient | None:
        return self._clients.get(family)

    def put(self, family: str, client: ApiClient) -> None:
        self._clients[family] = client

    def evict(self, family: str) -> None:
        self._clients.pop(family, None)

    def clear(self) -> None:
        self._clients.clear()

    def __contains__(self, family: object) -> bool:
        return family in self._clients

    def __len__(self) -> int:
        return len(self._clients)


def _error_body(response: httpx.Response) -> str:
    try:
        return response.text
    except (httpx.ResponseNotRead, UnicodeDecodeError):
        return ""


def _facebook_error_code(body: str) -> int | None:
    try:
        payload = json.loads(body)
    except ValueError:
        return None
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and isinstance(error.get("code"), int):
        return error["code"]
    return None


def classify_error(error: BaseException, spec: ProviderSpec) -> ToolError:
    """Map an exception raised by a tool operation onto the error taxonomy.

    Args:
        error: The raised exception.
        spec: Descriptor of the provider the call went to.

    Returns:
        AuthenticationError, ScopePermissionError or OperationError.
        ToolError instances are returned unchanged.
    """
    if isinstance(error, ToolError):
        return error

    status: int | None = None
    body = ""
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        body = _error_body(error.response)
        message = f"HTTP {status}: {body or error.response.reason_phrase}"
    else:
        message = str(error) or error.__class__.__name__

    haystack = f"{message} {body}".lower()

    if spec.provider == Provider.FACEBOOK and body:
        code = _facebook_error_code(body)
        if code in FACEBOOK_AUTH_CODES:
            return AuthenticationError(f"Authentication failed: {message}", spec.auth_command)
        if code == 10 or (code is not None and 200 <= code <= 299):
            return ScopePermissionError(f"{spec.name} permission denied: {message}", spec.scopes)

    if status == 403 and any(marker in haystack for marker in SCOPE_ERROR_MARKERS):
        return ScopePermissionError(f"{spec.name} scope permission denied: {message}", spec.scopes)

    if status in (401, 403) or any(marker in haystack for marker in AUTH_ERROR_MARKERS):
        return AuthenticationError(f"Authentication failed: {message}", spec.auth_command)

    if status is None and any(marker in haystack for marker in TOKEN_ERROR_MARKERS):
        return AuthenticationError(f"Authentication failed: {message}", spec.auth_command)

    return OperationError(message)


class ToolInvoker:
    """Composition root for credential resolution and client construction.

    Attributes:
        config: Process configuration.
        store: Credential store shared by resolution and refresh.
        resolver: Credential source resolver.
        credential_providers: Validation/refresh strategy per provider.
        cache: Default-client cache.

    Example:
        ```python
        invoker = ToolInvoker(GeneralConfig.load())

        async def op(gmail: GmailClient) -> dict:
            return await gmail.list_labels()

        result = await invoker.invoke("gmail", op)
        ```
    """

    def __init__(
        self,
        config: GeneralConfig,
        store: CredentialStore | None = None,
        credential_providers: Mapping[Provider, CredentialProvider] | None = None,
        cache: ClientCache | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self.store = store or CredentialStore(config.mcp_config_dir)
        self.resolver = CredentialResolver(config, self.store)
        self.credential_providers = dict(
            credential_providers or build_credential_providers(self.store, RefreshLocks())
        )
        self.cache = cache or ClientCache()
        self._http_client = http_client

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create shared HTTP client with connection pooling."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                http2=True,
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
                timeout=httpx.Timeout(30.0, connect=10.0),
            )
        return self._http_client

    async def close(self) -> None:
        """Close the shared HTTP client and drop cached clients."""
        self.cache.clear()
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def get_client(
        self, family_name: str, override: Mapping[str, Any] | None = None
    ) -> ApiClient:
        """Resolve, validate and construct (or reuse) an API client.

        Raises:
            ConfigurationError: If no usable credentials can be resolved.
            AuthenticationError: If credentials cannot be validated/refreshed.
        """
        family = API_FAMILIES[family_name]
        spec = get_spec(family.provider)
        credential_provider = self.credential_providers[family.provider]

        if override is None:
            cached = self.cache.get(family.name)
            if cached is not None:
                if await credential_provider.ensure_valid(cached.session):
                    return cached
                self.cache.evict(family.name)
                raise AuthenticationError(
                    f"{family.display_name} OAuth2 credentials are invalid, please re-authenticate",
                    spec.auth_command,
                )

        credentials = self.resolver.resolve(family.provider, override)
        if credentials is None:
            raise ConfigurationError(
                f"{family.display_name} OAuth2 client could not be created, please check your "
                f"credentials (set {spec.env_prefix}_* environment variables or add files to "
                f"{self.store.config_dir})"
            )

        session = credential_provider.open_session(credentials)
        if not await credential_provider.ensure_valid(session):
            raise AuthenticationError(
                f"{family.display_name} OAuth2 credentials are invalid, please re-authenticate",
                spec.auth_command,
            )

        client = family.client_class(self._get_http_client(), session)
        if override is None:
            self.cache.put(family.name, client)
        return client

    async def invoke(
        self,
        family_name: str,
        operation: Callable[[ClientT], Awaitable[Any]],
        override: Mapping[str, Any] | None = None,
    ) -> Any:
        """Run a tool operation with full error classification.

        Args:
            family_name: API family (``gmail``, ``calendar``, ``linkedin``, ``facebook``).
            operation: Coroutine function receiving the live API client.
            override: Optional call-scoped credential override. Copied, never mutated.

        Returns:
            The operation's result unchanged, or an ``{"error": ...}`` envelope.
        """
        family = API_FAMILIES[family_name]
        spec = get_spec(family.provider)
        call_override = dict(override) if override else None

        try:
            client = await self.get_client(family_name, call_override)
            return await operation(client)  # type: ignore[arg-type]
        except Exception as e:
            classified = classify_error(e, spec)
            if isinstance(classified, (AuthenticationError, ScopePermissionError)) and call_override is None:
                self.cache.evict(family.name)
            if isinstance(classified, OperationError) and not isinstance(e, httpx.HTTPError):
                logger.exception(f"{family.display_name} tool call failed")
            else:
                logger.warning(f"{family.display_name} tool call failed ({classified.kind}): {classified.message}")
            return classified.to_envelope()
