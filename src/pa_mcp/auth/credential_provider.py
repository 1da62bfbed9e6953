"""Credential providers: per-provider validation and refresh strategies.

Two variants plug into the Tool Invocation Wrapper:

- ``RefreshTokenProvider`` (Google): tracks ``expiry_date`` and exchanges
  the refresh token at the token endpoint when the access token is missing
  or expired. Refreshed tokens are persisted before they are used, except
  for call-scoped override sessions, which stay in memory.
- ``StaticTokenProvider`` (LinkedIn, Facebook): validity is presence of
  the access token (or page access token); there is no refresh.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from pa_mcp.auth.models import CredentialSource, CredentialTuple, PersistedCredentials, TokenStatus
from pa_mcp.auth.providers import GOOGLE_TOKEN_URI, Provider, ProviderSpec, get_spec
from pa_mcp.auth.token_storage import CredentialStore
from pa_mcp.errors import CorruptCredentialsError

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def mask(token: str | None) -> str:
    """Mask a secret for logging."""
    if not token:
        return "<none>"
    return f"{token[:4]}***"


@dataclass
class CredentialSession:
    """Live credentials bound to one API client.

    Attributes:
        provider: Provider the session authenticates to.
        credentials: The resolved credential tuple.
        access_token: Current bearer token, if any.
        expiry_date: Access token expiry as epoch milliseconds, if known.
        status: Last validation outcome.
        extras: Provider-specific values (e.g. Facebook ``page_id``).
    """

    provider: Provider
    credentials: CredentialTuple
    access_token: str | None = None
    expiry_date: int | None = None
    status: TokenStatus = TokenStatus.UNKNOWN
    extras: dict[str, Any] = field(default_factory=dict)

    def is_fresh(self, now_ms: int | None = None) -> bool:
        """True if the session holds an access token that has not expired."""
        if not self.access_token or self.expiry_date is None:
            return False
        return self.expiry_date > (now_ms if now_ms is not None else _now_ms())


class RefreshLocks:
    """One asyncio.Lock per provider, guarding refresh-and-persist."""

    def __init__(self) -> None:
        self._locks: dict[Provider, asyncio.Lock] = {}
        self._locks_lock = asyncio.Lock()

    async def get(self, provider: Provider) -> asyncio.Lock:
        async with self._locks_lock:
            if provider not in self._locks:
                self._locks[provider] = asyncio.Lock()
            return self._locks[provider]


class CredentialProvider(ABC):
    """Resolution/validation strategy for one provider."""

    def __init__(self, spec: ProviderSpec, store: CredentialStore) -> None:
        self.spec = spec
        self.store = store

    @property
    def provider(self) -> Provider:
        return self.spec.provider

    def _read_record(self) -> PersistedCredentials | None:
        """Read the persisted record, treating a corrupt file as absent."""
        try:
            return self.store.read(self.provider)
        except CorruptCredentialsError as e:
            logger.warning(str(e))
            return None

    @abstractmethod
    def open_session(self, credentials: CredentialTuple) -> CredentialSession:
        """Create a session from a resolved tuple."""

    @abstractmethod
    async def ensure_valid(self, session: CredentialSession) -> bool:
        """Return whether the session is usable, refreshing if needed."""


class RefreshTokenProvider(CredentialProvider):
    """Google-style refresh-token flow with persisted expiry tracking.

    Example:
        ```python
        provider = RefreshTokenProvider(get_spec(Provider.GOOGLE), store, RefreshLocks())
        session = provider.open_session(resolved_tuple)
        if await provider.ensure_valid(session):
            headers = {"Authorization": f"Bearer {session.access_token}"}
        ```
    """

    def __init__(
        self,
        spec: ProviderSpec,
        store: CredentialStore,
        locks: RefreshLocks,
        token_uri: str = GOOGLE_TOKEN_URI,
    ) -> None:
        super().__init__(spec, store)
        self.locks = locks
        self.token_uri = token_uri

    def _record_matches(self, credentials: CredentialTuple, record: PersistedCredentials) -> bool:
        """Whether a persisted record belongs to the same account as the tuple."""
        return bool(record.refresh_token) and record.refresh_token == credentials.refresh_token

    def _adopt_record(self, session: CredentialSession) -> None:
        # Call-scoped sessions never share state with the credentials file.
        if session.credentials.source.is_call_scoped:
            return
        record = self._read_record()
        if record is not None and self._record_matches(session.credentials, record):
            session.access_token = record.access_token
            session.expiry_date = record.expiry_date

    def open_session(self, credentials: CredentialTuple) -> CredentialSession:
        session = CredentialSession(provider=self.provider, credentials=credentials)
        self._adopt_record(session)
        return session

    def _build_credentials(self, credentials: CredentialTuple) -> Credentials:
        return Credentials(  # nosec B106 - token_uri is public Google OAuth endpoint
            token=None,
            refresh_token=credentials.refresh_token,
            token_uri=self.token_uri,
            client_id=credentials.client_id,
            client_secret=credentials.client_secret,
        )

    def _refresh_blocking(self, google_credentials: Credentials) -> None:
        google_credentials.refresh(Request())

    def _to_record(
        self, google_credentials: Credentials, previous: PersistedCredentials | None
    ) -> PersistedCredentials:
        """Convert refreshed google-auth credentials into a full record."""
        expiry = google_credentials.expiry
        if expiry is not None and expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)
        expiry_date = int(expiry.timestamp() * 1000) if expiry else None
        expires_in = (
            max(int((expiry - datetime.now(timezone.utc)).total_seconds()), 0) if expiry else None
        )

        base = previous.to_json_dict() if previous is not None else {}
        base.update(
            {
                "access_token": google_credentials.token,
                "refresh_token": google_credentials.refresh_token,
                "token_type": "Bearer",
                "expiry_date": expiry_date,
                "expires_in": expires_in,
            }
        )
        return PersistedCredentials.model_validate({k: v for k, v in base.items() if v is not None})

    async def refresh(self, session: CredentialSession) -> bool:
        """Exchange the refresh token and persist the result.

        Override sessions keep the new token in memory only, so the shared
        credentials file always belongs to the default account.

        Returns:
            True on success, False if no refresh token exists or the exchange failed.
        """
        refresh_token = session.credentials.refresh_token
        if not refresh_token:
            logger.warning(f"No {self.spec.name} refresh token available, cannot refresh")
            return False

        google_credentials = self._build_credentials(session.credentials)
        logger.info(f"Refreshing {self.spec.name} access token (refresh token {mask(refresh_token)})")

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._refresh_blocking, google_credentials)
        except (GoogleAuthError, OSError) as e:
            logger.warning(f"{self.spec.name} token refresh failed: {e}")
            return False

        if session.credentials.source.is_call_scoped:
            record = self._to_record(google_credentials, None)
            session.access_token = record.access_token
            session.expiry_date = record.expiry_date
            return True

        previous = self._read_record()
        if previous is not None and not self._record_matches(session.credentials, previous):
            previous = None
        record = self._to_record(google_credentials, previous)

        try:
            self.store.write(self.provider, record)
        except OSError as e:
            # The in-memory session still carries the new token for this process.
            logger.error(f"Failed to persist refreshed {self.spec.name} token: {e}")

        session.access_token = record.access_token
        session.expiry_date = record.expiry_date
        return True

    async def ensure_valid(self, session: CredentialSession) -> bool:
        if session.is_fresh():
            session.status = TokenStatus.VALID
            return True

        session.status = TokenStatus.NEEDS_REFRESH
        lock = await self.locks.get(self.provider)
        async with lock:
            # Another call may have refreshed while this one waited.
            self._adopt_record(session)
            if session.is_fresh():
                session.status = TokenStatus.VALID
                return True

            if await self.refresh(session):
                session.status = TokenStatus.VALID
                return True

        session.status = TokenStatus.REFRESH_FAILED
        return False


class StaticTokenProvider(CredentialProvider):
    """Access-token flow without refresh (LinkedIn, Facebook).

    Args:
        spec: Provider descriptor.
        store: Credential store, consulted when the tuple carries no token.
        token_field: Tuple/record field holding the bearer token.
        extra_fields: Additional required fields copied into ``session.extras``.
    """

    def __init__(
        self,
        spec: ProviderSpec,
        store: CredentialStore,
        token_field: str = "access_token",
        extra_fields: tuple[str, ...] = (),
    ) -> None:
        super().__init__(spec, store)
        self.token_field = token_field
        self.extra_fields = extra_fields

    def _record_value(self, record: PersistedCredentials, name: str) -> Any:
        return getattr(record, name, None) if name in type(record).model_fields else record.extra(name)

    def open_session(self, credentials: CredentialTuple) -> CredentialSession:
        session = CredentialSession(provider=self.provider, credentials=credentials)
        session.access_token = getattr(credentials, self.token_field)
        for name in self.extra_fields:
            session.extras[name] = getattr(credentials, name)

        # Expiry is only known for tokens that came from the persisted record.
        if session.access_token and credentials.source != CredentialSource.FILES:
            return session

        record = self._read_record()
        if record is not None:
            if not session.access_token:
                session.access_token = self._record_value(record, self.token_field)
                for name in self.extra_fields:
                    session.extras[name] = session.extras[name] or self._record_value(record, name)
            session.expiry_date = self._record_expiry(record)
        return session

    def _record_expiry(self, record: PersistedCredentials) -> int | None:
        """Derive an expiry from ``created_at`` + ``expires_in`` when both are recorded."""
        created_at = record.extra("created_at")
        if not created_at or not record.expires_in:
            return None
        try:
            created = datetime.fromisoformat(str(created_at).replace("Z", "+00:00"))
        except ValueError:
            return None
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return int(created.timestamp() * 1000) + record.expires_in * 1000

    async def ensure_valid(self, session: CredentialSession) -> bool:
        if not session.access_token or not all(session.extras.values()):
            logger.warning(f"{self.spec.name} credentials have no {self.token_field}")
            session.status = TokenStatus.REFRESH_FAILED
            return False

        if session.expiry_date is not None and session.expiry_date <= _now_ms():
            logger.warning(f"{self.spec.name} access token expired, re-authentication required")
            session.status = TokenStatus.REFRESH_FAILED
            return False

        session.status = TokenStatus.VALID
        return True


def build_credential_providers(
    store: CredentialStore, locks: RefreshLocks | None = None
) -> dict[Provider, CredentialProvider]:
    """Create the default credential provider for every supported provider."""
    locks = locks or RefreshLocks()
    return {
        Provider.GOOGLE: RefreshTokenProvider(get_spec(Provider.GOOGLE), store, locks),
        Provider.LINKEDIN: StaticTokenProvider(get_spec(Provider.LINKEDIN), store),
        Provider.FACEBOOK: StaticTokenProvider(
            get_spec(Provider.FACEBOOK),
            store,
            token_field="page_access_token",
            extra_fields=("page_id",),
        ),
    }
