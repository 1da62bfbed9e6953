"""Provider descriptors.

Each supported OAuth provider is described once here: its environment
variable prefix, on-disk file names, minimum credential field sets, scopes
and the CLI command that re-runs interactive consent.
"""

from dataclasses import dataclass, field
from enum import Enum


class Provider(str, Enum):
    """Supported OAuth providers."""

    GOOGLE = "google"
    LINKEDIN = "linkedin"
    FACEBOOK = "facebook"


GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"  # nosec B105 - public endpoint
LINKEDIN_TOKEN_URI = "https://www.linkedin.com/oauth/v2/accessToken"  # nosec B105
FACEBOOK_GRAPH_VERSION = "v18.0"
FACEBOOK_TOKEN_URI = f"https://graph.facebook.com/{FACEBOOK_GRAPH_VERSION}/oauth/access_token"

GOOGLE_SCOPES = [
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/gmail.compose",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.settings.basic",
    "https://www.googleapis.com/auth/gmail.settings.sharing",
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/calendar.readonly",
]

LINKEDIN_SCOPES = ["openid", "profile", "w_member_social"]

FACEBOOK_SCOPES = [
    "pages_manage_posts",
    "pages_read_engagement",
    "pages_manage_metadata",
    "pages_read_user_content",
    "pages_manage_engagement",
]


@dataclass(frozen=True)
class ProviderSpec:
    """Static description of one provider.

    Attributes:
        provider: Provider identifier.
        env_prefix: Prefix of its environment variables (``GOOGLE`` etc).
        keys_file: OAuth application keys file name.
        credentials_file: Persisted credentials file name.
        fields: Credential fields this provider reads.
        required_field_sets: Alternative minimum field sets for a usable tuple.
        scopes: OAuth scopes requested during consent.
        auth_command: CLI command that re-runs interactive consent.
    """

    provider: Provider
    env_prefix: str
    keys_file: str
    credentials_file: str
    fields: tuple[str, ...]
    required_field_sets: tuple[tuple[str, ...], ...]
    scopes: list[str] = field(default_factory=list)
    auth_command: str = ""

    @property
    def name(self) -> str:
        return self.provider.value

    def env_name(self, field_name: str) -> str:
        """Environment variable name for a credential field."""
        return f"{self.env_prefix}_{field_name.upper()}"


PROVIDER_SPECS: dict[Provider, ProviderSpec] = {
    Provider.GOOGLE: ProviderSpec(
        provider=Provider.GOOGLE,
        env_prefix="GOOGLE",
        keys_file="gcp-oauth.keys.json",
        credentials_file="google-credentials.json",
        fields=("client_id", "client_secret", "refresh_token"),
        required_field_sets=(("client_id", "client_secret", "refresh_token"),),
        scopes=GOOGLE_SCOPES,
        auth_command="pa-mcp auth google",
    ),
    Provider.LINKEDIN: ProviderSpec(
        provider=Provider.LINKEDIN,
        env_prefix="LINKEDIN",
        keys_file="linkedin-oauth.keys.json",
        credentials_file="linkedin-credentials.json",
        fields=("client_id", "client_secret", "refresh_token", "access_token"),
        required_field_sets=(("client_id", "client_secret"), ("access_token",)),
        scopes=LINKEDIN_SCOPES,
        auth_command="pa-mcp auth linkedin",
    ),
    Provider.FACEBOOK: ProviderSpec(
        provider=Provider.FACEBOOK,
        env_prefix="FACEBOOK",
        keys_file="facebook-oauth.keys.json",
        credentials_file="facebook-credentials.json",
        fields=("client_id", "client_secret", "page_access_token", "page_id"),
        required_field_sets=(("page_access_token", "page_id"),),
        scopes=FACEBOOK_SCOPES,
        auth_command="pa-mcp auth facebook",
    ),
}

# CLI aliases accepted by ``pa-mcp auth``
PROVIDER_ALIASES: dict[str, Provider] = {
    "google": Provider.GOOGLE,
    "gmail": Provider.GOOGLE,
    "calendar": Provider.GOOGLE,
    "linkedin": Provider.LINKEDIN,
    "facebook": Provider.FACEBOOK,
    "fb": Provider.FACEBOOK,
}


def get_spec(provider: Provider | str) -> ProviderSpec:
    """Look up a provider descriptor by enum or name."""
    return PROVIDER_SPECS[Provider(provider)]
