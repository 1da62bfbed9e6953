"""OAuth credential and token lifecycle management.

Quick Start:
    ```python
    from pa_mcp.auth import CredentialResolver, CredentialStore, Provider, build_credential_providers
    from pa_mcp.config import GeneralConfig

    config = GeneralConfig.load()
    store = CredentialStore(config.mcp_config_dir)
    resolver = CredentialResolver(config, store)
    providers = build_credential_providers(store)

    credentials = resolver.resolve(Provider.GOOGLE)
    session = providers[Provider.GOOGLE].open_session(credentials)
    valid = await providers[Provider.GOOGLE].ensure_valid(session)
    ```
"""

from pa_mcp.auth.credential_provider import (
    CredentialProvider,
    CredentialSession,
    RefreshLocks,
    RefreshTokenProvider,
    StaticTokenProvider,
    build_credential_providers,
)
from pa_mcp.auth.models import (
    CredentialSource,
    CredentialTuple,
    OAuthAppKeys,
    PersistedCredentials,
    TokenStatus,
)
from pa_mcp.auth.oauth_manager import OAuthFlowError, OAuthManager
from pa_mcp.auth.providers import PROVIDER_ALIASES, Provider, ProviderSpec, get_spec
from pa_mcp.auth.resolver import CredentialResolver
from pa_mcp.auth.token_storage import CredentialStore

__all__ = [
    "CredentialProvider",
    "CredentialResolver",
    "CredentialSession",
    "CredentialSource",
    "CredentialStore",
    "CredentialTuple",
    "OAuthAppKeys",
    "OAuthFlowError",
    "OAuthManager",
    "PersistedCredentials",
    "Provider",
    "ProviderSpec",
    "PROVIDER_ALIASES",
    "RefreshLocks",
    "RefreshTokenProvider",
    "StaticTokenProvider",
    "TokenStatus",
    "build_credential_providers",
    "get_spec",
]
