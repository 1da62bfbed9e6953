"""Shared pytest fixtures for personal-assistant-mcp tests.

This module provides reusable fixtures for credential records, the
credential store, configuration isolated from the real environment, and
Google token refresh mocks.
"""

import json
import time
from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest
from google.oauth2.credentials import Credentials

from pa_mcp.auth.credential_provider import RefreshLocks, build_credential_providers
from pa_mcp.auth.models import PersistedCredentials
from pa_mcp.auth.providers import Provider
from pa_mcp.auth.token_storage import CredentialStore
from pa_mcp.config import GeneralConfig
from pa_mcp.invocation import ClientCache, ToolInvoker


def now_ms() -> int:
    return int(time.time() * 1000)


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    """Create a temporary MCP config directory."""
    directory = tmp_path / ".pa-mcp"
    directory.mkdir(parents=True, mode=0o700)
    return directory


@pytest.fixture
def environ() -> dict[str, str]:
    """Isolated environment mapping; tests add credential variables to it."""
    return {}


@pytest.fixture
def make_config(config_dir: Path, environ: dict[str, str]) -> Callable[..., GeneralConfig]:
    """Factory for configs bound to the temporary directory and isolated env."""

    def _make(cli_overrides: dict[str, str] | None = None) -> GeneralConfig:
        return GeneralConfig.load(
            cli_overrides=cli_overrides,
            environ=environ,
            mcp_config_dir=config_dir,
        )

    return _make


@pytest.fixture
def config(make_config: Callable[..., GeneralConfig]) -> GeneralConfig:
    """Config with no CLI overrides. Reads ``environ`` at creation time."""
    return make_config()


# =============================================================================
# Credential Store Fixtures
# =============================================================================


@pytest.fixture
def store(config_dir: Path) -> CredentialStore:
    """Create a CredentialStore rooted at the temporary config directory."""
    return CredentialStore(config_dir)


@pytest.fixture
def write_json(config_dir: Path) -> Callable[[str, Any], Path]:
    """Write raw JSON (or raw text) into the config directory."""

    def _write(name: str, content: Any) -> Path:
        path = config_dir / name
        text = content if isinstance(content, str) else json.dumps(content)
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def google_record() -> Callable[..., PersistedCredentials]:
    """Factory for Google credential records with an expiry offset in ms."""

    def _make(
        expires_in_ms: int | None = 3_600_000,
        access_token: str | None = "ya29.file_access_token",
        refresh_token: str | None = "1//file_refresh_token",
    ) -> PersistedCredentials:
        data: dict[str, Any] = {"token_type": "Bearer"}
        if access_token is not None:
            data["access_token"] = access_token
        if refresh_token is not None:
            data["refresh_token"] = refresh_token
        if expires_in_ms is not None:
            data["expiry_date"] = now_ms() + expires_in_ms
        return PersistedCredentials.model_validate(data)

    return _make


@pytest.fixture
def google_files(store: CredentialStore, write_json, google_record) -> Callable[..., PersistedCredentials]:
    """Write a Google keys file and credentials record; returns the record."""

    def _write(**kwargs: Any) -> PersistedCredentials:
        write_json(
            "gcp-oauth.keys.json",
            {"installed": {"client_id": "file-client-id", "client_secret": "file-client-secret"}},
        )
        record = google_record(**kwargs)
        store.write(Provider.GOOGLE, record)
        return record

    return _write


@pytest.fixture
def facebook_files(store: CredentialStore) -> PersistedCredentials:
    """Persist a complete Facebook page credentials record."""
    record = PersistedCredentials.model_validate(
        {
            "access_token": "user_access_token",
            "page_access_token": "EAAB_page_token",
            "page_id": "1234567890",
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
    )
    store.write(Provider.FACEBOOK, record)
    return record


@pytest.fixture
def google_env(environ: dict[str, str]) -> dict[str, str]:
    """Populate the isolated environment with a Google client and refresh token."""
    environ.update(
        {
            "GOOGLE_CLIENT_ID": "env-client-id",
            "GOOGLE_CLIENT_SECRET": "env-client-secret",
            "GOOGLE_REFRESH_TOKEN": "1//env_refresh_token",
        }
    )
    return environ


# =============================================================================
# Invocation Fixtures
# =============================================================================


@pytest.fixture
def make_invoker(make_config, store: CredentialStore) -> Callable[..., ToolInvoker]:
    """Factory for ToolInvokers over the temporary store.

    The config is built when the factory is called, so environment
    variables added to ``environ`` beforehand are visible.
    """

    def _make(cli_overrides: dict[str, str] | None = None) -> ToolInvoker:
        return ToolInvoker(
            make_config(cli_overrides),
            store=store,
            credential_providers=build_credential_providers(store, RefreshLocks()),
            cache=ClientCache(),
        )

    return _make


@pytest.fixture
def invoker(make_invoker) -> ToolInvoker:
    """Create a ToolInvoker over the temporary store with an empty cache."""
    return make_invoker()


# =============================================================================
# Google Token Refresh Mock
# =============================================================================


@pytest.fixture
def mock_google_refresh() -> Generator[Any, None, None]:
    """Patch google-auth's Credentials.refresh to issue a fresh token.

    Each call sets ``token`` to ``ya29.refreshed_<n>`` and the expiry to one
    hour from now. The mock records every call.
    """
    calls: list[Credentials] = []

    def _refresh(self: Credentials, request: Any) -> None:
        calls.append(self)
        self.token = f"ya29.refreshed_{len(calls)}"
        # google-auth stores expiry as naive UTC
        self.expiry = (datetime.now(timezone.utc) + timedelta(hours=1)).replace(tzinfo=None)

    with patch.object(Credentials, "refresh", autospec=True, side_effect=_refresh) as mock:
        yield mock


# =============================================================================
# CLI Test Fixtures
# =============================================================================


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()
