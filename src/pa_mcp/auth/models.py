"""Data models for credentials and tokens.

Defines the in-memory credential tuple, the persisted per-provider
credentials record, the OAuth application keys record and the token
lifecycle status used by the validators.
"""

import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class TokenStatus(str, Enum):
    """Token lifecycle states used by the validator/refresher."""

    UNKNOWN = "unknown"
    VALID = "valid"
    NEEDS_REFRESH = "needs_refresh"
    REFRESH_FAILED = "refresh_failed"


class CredentialSource(str, Enum):
    """Where a credential tuple was resolved from."""

    OVERRIDE = "override"
    ENVIRONMENT = "environment"
    FILES = "files"

    @property
    def is_call_scoped(self) -> bool:
        return self is CredentialSource.OVERRIDE


CREDENTIAL_FIELDS = (
    "client_id",
    "client_secret",
    "refresh_token",
    "access_token",
    "page_access_token",
    "page_id",
)


class CredentialTuple(BaseModel):
    """The identifiers and secrets needed to authenticate to one provider.

    Not every provider uses every field. Whether a tuple is usable depends
    on the provider's minimum field set, see ``is_usable``.
    """

    model_config = ConfigDict(frozen=True)

    client_id: str | None = None
    client_secret: str | None = None
    refresh_token: str | None = None
    access_token: str | None = None
    page_access_token: str | None = None
    page_id: str | None = None
    source: CredentialSource = CredentialSource.ENVIRONMENT

    def has(self, field: str) -> bool:
        """Return True if the field is set and non-empty."""
        return bool(getattr(self, field, None))

    def is_usable(self, required_field_sets: tuple[tuple[str, ...], ...]) -> bool:
        """Check the tuple against a provider's alternative minimum field sets.

        Args:
            required_field_sets: Alternatives; the tuple is usable if it
                satisfies any one of them completely.

        Returns:
            True if at least one field set is fully present.
        """
        return any(all(self.has(f) for f in fields) for fields in required_field_sets)


class PersistedCredentials(BaseModel):
    """A provider's on-disk credentials record.

    ``expiry_date`` is epoch milliseconds, matching the format Google token
    responses are persisted in. Provider-specific extras (Facebook's
    ``page_access_token``/``page_id``, ``created_at``) are preserved.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str | None = Field(default=None, description="Current access token")
    refresh_token: str | None = Field(default=None, description="Long-lived refresh token")
    expires_in: int | None = Field(default=None, description="Token lifetime in seconds")
    expiry_date: int | None = Field(default=None, description="Expiry as epoch milliseconds")
    scope: str | None = Field(default=None, description="Space-separated granted scopes")
    token_type: str | None = Field(default=None, description="Token type, usually Bearer")

    @model_validator(mode="before")
    @classmethod
    def _coerce_expiry(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("expiry_date"), float):
            data = {**data, "expiry_date": int(data["expiry_date"])}
        return data

    def extra(self, key: str) -> Any:
        """Return a provider-specific extra field, or None."""
        return (self.model_extra or {}).get(key)

    def expiry_datetime(self) -> datetime | None:
        """Return ``expiry_date`` as an aware UTC datetime."""
        if self.expiry_date is None:
            return None
        return datetime.fromtimestamp(self.expiry_date / 1000, tz=timezone.utc)

    def needs_refresh(self, now_ms: int | None = None) -> bool:
        """Check whether the access token must be refreshed before use.

        A missing access token or a missing expiry is never treated as valid.

        Args:
            now_ms: Current time as epoch milliseconds. Defaults to now.

        Returns:
            True if the token is absent, has no expiry, or has expired.
        """
        if not self.access_token or self.expiry_date is None:
            return True
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        return self.expiry_date <= now_ms

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize for storage, dropping unset optional fields."""
        return self.model_dump(mode="json", exclude_none=True)


class OAuthAppKeys(BaseModel):
    """A registered application's client id and secret.

    Google console downloads nest the keys under ``installed`` or ``web``;
    both layouts and the flat layout are accepted.
    """

    client_id: str | None = None
    client_secret: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _unwrap_google_layout(cls, data: Any) -> Any:
        if isinstance(data, dict):
            for section in ("installed", "web"):
                nested = data.get(section)
                if isinstance(nested, dict):
                    return {
                        "client_id": data.get("client_id") or nested.get("client_id"),
                        "client_secret": data.get("client_secret")
                        or nested.get("client_secret"),
                    }
        return data
