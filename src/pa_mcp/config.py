"""General configuration for the Personal Assistant MCP server.

Values are resolved with priority: CLI option > environment variable > default.

Environment Variables:
    MCP_CONFIG_DIR: Root directory for credential and key files (default: ~/.pa-mcp)
    OAUTH_PORT: Port used by the one-shot interactive auth server (default: 3000)
    PA_MCP_LOG_LEVEL: Logging level name (default: INFO)
"""

import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, Field

DEFAULT_CONFIG_DIR_NAME = ".pa-mcp"
DEFAULT_OAUTH_PORT = 3000
DEFAULT_LOG_LEVEL = "INFO"
LOG_FILE_NAME = "pa-mcp-server.log"


def default_config_dir() -> Path:
    """Return the default dotted home-directory config folder."""
    return Path.home() / DEFAULT_CONFIG_DIR_NAME


class GeneralConfig(BaseModel):
    """Process-wide configuration.

    Attributes:
        mcp_config_dir: Root directory for all credential/key files.
        oauth_port: Port the interactive auth server binds to.
        log_level: Logging level name.
        cli_overrides: Provider credential fields supplied on the command line,
            keyed by environment-style name (e.g. ``GOOGLE_CLIENT_ID``).
        environ: Snapshot of the environment used for credential resolution.
    """

    mcp_config_dir: Path = Field(default_factory=default_config_dir)
    oauth_port: int = Field(default=DEFAULT_OAUTH_PORT, ge=1, le=65535)
    log_level: str = DEFAULT_LOG_LEVEL
    cli_overrides: dict[str, str] = Field(default_factory=dict)
    environ: dict[str, str] = Field(default_factory=dict, repr=False)

    @classmethod
    def load(
        cls,
        cli_overrides: Mapping[str, str | None] | None = None,
        environ: Mapping[str, str] | None = None,
        mcp_config_dir: str | Path | None = None,
        oauth_port: int | str | None = None,
    ) -> "GeneralConfig":
        """Build configuration from CLI values and the environment.

        Args:
            cli_overrides: Credential fields from CLI options. Empty values are dropped.
            environ: Environment mapping. Defaults to ``os.environ``.
            mcp_config_dir: Config directory from the CLI, if given.
            oauth_port: OAuth port from the CLI, if given.

        Returns:
            Resolved GeneralConfig.
        """
        env = dict(os.environ if environ is None else environ)

        config_dir = mcp_config_dir or env.get("MCP_CONFIG_DIR") or default_config_dir()
        port = oauth_port or env.get("OAUTH_PORT") or DEFAULT_OAUTH_PORT

        overrides = {k: v for k, v in (cli_overrides or {}).items() if v}

        return cls(
            mcp_config_dir=Path(config_dir).expanduser(),
            oauth_port=int(port),
            log_level=env.get("PA_MCP_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
            cli_overrides=overrides,
            environ=env,
        )

    @property
    def log_file(self) -> Path:
        """Path of the server log file."""
        return self.mcp_config_dir / "logs" / LOG_FILE_NAME

    def lookup(self, name: str) -> str | None:
        """Look up a credential setting: CLI override first, then environment.

        Args:
            name: Environment-style setting name (e.g. ``LINKEDIN_ACCESS_TOKEN``).

        Returns:
            The first non-empty value found, or None.
        """
        return self.cli_overrides.get(name) or self.environ.get(name) or None
