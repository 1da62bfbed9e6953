"""File-backed credential storage.

Each provider owns two JSON files under the config directory
(``MCP_CONFIG_DIR``, default ``~/.pa-mcp``):

- ``<provider>-credentials.json``: the user's current tokens, rewritten in
  full on every successful refresh or consent.
- ``<provider>-oauth.keys.json``: the registered application's client
  id/secret, read-only for the server.

Writes go to a temporary file in the same directory and are renamed over
the target, so a reader never observes a half-written record.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from pa_mcp.auth.models import OAuthAppKeys, PersistedCredentials
from pa_mcp.auth.providers import Provider, get_spec
from pa_mcp.errors import CorruptCredentialsError

logger = logging.getLogger(__name__)


class CredentialStore:
    """Per-provider JSON credential files under one root directory.

    Attributes:
        config_dir: Root directory holding all credential and key files.

    Example:
        ```python
        store = CredentialStore(Path("~/.pa-mcp").expanduser())

        record = store.read(Provider.GOOGLE)
        if record and record.needs_refresh():
            ...
        store.write(Provider.GOOGLE, new_record)
        ```
    """

    def __init__(self, config_dir: Path) -> None:
        self.config_dir = Path(config_dir)

    def path_for(self, provider: Provider | str) -> Path:
        """Path of a provider's persisted credentials file."""
        return self.config_dir / get_spec(provider).credentials_file

    def keys_path_for(self, provider: Provider | str) -> Path:
        """Path of a provider's OAuth application keys file."""
        return self.config_dir / get_spec(provider).keys_file

    def _ensure_config_dir(self) -> None:
        """Create the config directory with owner-only permissions if needed."""
        if not self.config_dir.exists():
            self.config_dir.mkdir(parents=True, mode=0o700)

    def _load_json(self, path: Path) -> dict[str, Any] | None:
        """Load a JSON object from disk.

        Returns:
            Parsed object, or None if the file does not exist.

        Raises:
            CorruptCredentialsError: If the file is unreadable or not a JSON object.
        """
        if not path.exists():
            return None

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise CorruptCredentialsError(path, f"invalid JSON ({e.msg})") from e
        except OSError as e:
            raise CorruptCredentialsError(path, str(e)) from e

        if not isinstance(data, dict):
            raise CorruptCredentialsError(path, "expected a JSON object")
        return data

    def read(self, provider: Provider | str) -> PersistedCredentials | None:
        """Read a provider's persisted credentials record.

        Args:
            provider: Provider to read.

        Returns:
            The record, or None if no file exists.

        Raises:
            CorruptCredentialsError: If the file cannot be parsed.
        """
        path = self.path_for(provider)
        data = self._load_json(path)
        if data is None:
            return None

        try:
            return PersistedCredentials.model_validate(data)
        except ValidationError as e:
            raise CorruptCredentialsError(path, f"unexpected field types ({e.error_count()} errors)") from e

    def read_app_keys(self, provider: Provider | str) -> OAuthAppKeys | None:
        """Read a provider's OAuth application keys record.

        Raises:
            CorruptCredentialsError: If the file cannot be parsed.
        """
        path = self.keys_path_for(provider)
        data = self._load_json(path)
        if data is None:
            return None

        try:
            return OAuthAppKeys.model_validate(data)
        except ValidationError as e:
            raise CorruptCredentialsError(path, f"unexpected field types ({e.error_count()} errors)") from e

    def write(self, provider: Provider | str, record: PersistedCredentials) -> Path:
        """Overwrite a provider's credentials file with a complete record.

        Args:
            provider: Provider to write.
            record: Full record to persist.

        Returns:
            Path that was written.

        Raises:
            OSError: If the file cannot be written.
        """
        path = self.path_for(provider)
        self._ensure_config_dir()
        content = json.dumps(record.to_json_dict(), indent=2)

        tmp_fd, tmp_name = tempfile.mkstemp(
            dir=self.config_dir, prefix=".tmp_", suffix=".json", text=True
        )
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

        logger.debug(f"Saved {Provider(provider).value} credentials to {path}")
        return path
