"""Credential source resolution.

Resolution order for one provider:

1. Explicit sources, merged field by field: the call-scoped override map,
   then process CLI options, then ``<PREFIX>_<FIELD>`` environment variables.
2. If the explicit tuple is incomplete, the on-disk keys file plus the
   persisted credentials file, read together as one unit. Explicit and
   file-based fields are never mixed.
3. Otherwise nothing.
"""

import logging
from collections.abc import Mapping
from typing import Any

from pa_mcp.auth.models import CredentialSource, CredentialTuple
from pa_mcp.auth.providers import Provider, ProviderSpec, get_spec
from pa_mcp.auth.token_storage import CredentialStore
from pa_mcp.config import GeneralConfig
from pa_mcp.errors import CorruptCredentialsError

logger = logging.getLogger(__name__)


def _camel(field_name: str) -> str:
    head, *rest = field_name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def override_value(override: Mapping[str, Any] | None, spec: ProviderSpec, field_name: str) -> str | None:
    """Read one credential field from a call-scoped override map.

    Accepts environment-style keys (``GOOGLE_CLIENT_ID``), provider-prefixed
    camelCase keys (``googleClientId``), camelCase keys (``clientId``) and
    snake_case keys (``client_id``).
    """
    if not override:
        return None
    prefixed = _camel(spec.env_name(field_name).lower())
    for key in (spec.env_name(field_name), prefixed, _camel(field_name), field_name):
        value = override.get(key)
        if value:
            return str(value)
    return None


class CredentialResolver:
    """Resolve a provider's credential tuple from all configured sources.

    Attributes:
        config: Process configuration (CLI overrides and environment).
        store: Credential store for the file-based fallback.
    """

    def __init__(self, config: GeneralConfig, store: CredentialStore) -> None:
        self.config = config
        self.store = store

    def explicit_tuple(
        self, provider: Provider | str, override: Mapping[str, Any] | None = None
    ) -> CredentialTuple:
        """Merge override, CLI and environment values field by field.

        The tuple's source is ``OVERRIDE`` when any field came from the
        override map, otherwise ``ENVIRONMENT`` (CLI options included).
        """
        spec = get_spec(provider)
        values: dict[str, str | None] = {}
        from_override = False
        for field_name in spec.fields:
            value = override_value(override, spec, field_name)
            if value:
                from_override = True
            else:
                value = self.config.lookup(spec.env_name(field_name))
            values[field_name] = value
        source = CredentialSource.OVERRIDE if from_override else CredentialSource.ENVIRONMENT
        return CredentialTuple(source=source, **values)

    def file_tuple(self, provider: Provider | str) -> CredentialTuple | None:
        """Build a tuple from the keys file and persisted credentials file.

        Raises:
            CorruptCredentialsError: If either file cannot be parsed.
        """
        spec = get_spec(provider)
        keys = self.store.read_app_keys(provider)
        record = self.store.read(provider)
        if keys is None and record is None:
            return None

        values: dict[str, str | None] = {
            "client_id": keys.client_id if keys else None,
            "client_secret": keys.client_secret if keys else None,
        }
        if record is not None:
            values["refresh_token"] = record.refresh_token
            values["access_token"] = record.access_token
            values["page_access_token"] = record.extra("page_access_token")
            page_id = record.extra("page_id")
            values["page_id"] = str(page_id) if page_id is not None else None

        values = {k: v for k, v in values.items() if k in spec.fields}
        return CredentialTuple(source=CredentialSource.FILES, **values)

    def resolve(
        self, provider: Provider | str, override: Mapping[str, Any] | None = None
    ) -> CredentialTuple | None:
        """Resolve a usable credential tuple.

        Args:
            provider: Provider to resolve for.
            override: Optional call-scoped override map. Never mutated.

        Returns:
            A usable CredentialTuple, or None if no source yields one.
        """
        spec = get_spec(provider)

        explicit = self.explicit_tuple(provider, override)
        if explicit.is_usable(spec.required_field_sets):
            logger.debug(f"Resolved {spec.name} credentials from {explicit.source.value}")
            return explicit

        try:
            from_files = self.file_tuple(provider)
        except CorruptCredentialsError as e:
            logger.warning(f"Could not read {spec.name} credential files: {e}")
            return None

        if from_files is not None and from_files.is_usable(spec.required_field_sets):
            logger.debug(f"Resolved {spec.name} credentials from {self.store.config_dir}")
            return from_files

        logger.info(f"No usable {spec.name} credentials found")
        return None
