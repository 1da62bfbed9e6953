"""Command-line interface for personal-assistant-mcp."""

import asyncio
import sys
from collections.abc import Callable
from typing import Any

import click

from pa_mcp.__version__ import __version__
from pa_mcp.auth.providers import PROVIDER_ALIASES, PROVIDER_SPECS

# (option name, environment-style override key) for every provider credential field
CREDENTIAL_OPTIONS: list[tuple[str, str]] = [
    (f"--{spec.env_name(field).lower().replace('_', '-')}", spec.env_name(field))
    for spec in PROVIDER_SPECS.values()
    for field in spec.fields
]


def credential_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Attach one ``--<provider>-<field>`` option per credential field."""
    for option, env_name in reversed(CREDENTIAL_OPTIONS):
        func = click.option(
            option,
            env_name.lower(),
            default=None,
            help=f"Overrides the {env_name} environment variable",
        )(func)
    return func


def config_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the shared ``--mcp-config-dir`` and ``--oauth-port`` options."""
    func = click.option(
        "--oauth-port",
        type=click.IntRange(1, 65535),
        default=None,
        help="Port for the OAuth callback server (default: $OAUTH_PORT or 3000)",
    )(func)
    func = click.option(
        "--mcp-config-dir",
        type=click.Path(file_okay=False),
        default=None,
        help="Credential directory (default: $MCP_CONFIG_DIR or ~/.pa-mcp)",
    )(func)
    return func


def _load_config(mcp_config_dir: str | None, oauth_port: int | None, **credentials: str | None):
    from pa_mcp.config import GeneralConfig

    overrides = {env_name: credentials.get(env_name.lower()) for _, env_name in CREDENTIAL_OPTIONS}
    return GeneralConfig.load(
        cli_overrides=overrides,
        mcp_config_dir=mcp_config_dir,
        oauth_port=oauth_port,
    )


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """Personal Assistant MCP Server - Connect Claude to your accounts.

    This tool provides 15 tools across:
    - Gmail (search, read, send, labels)
    - Calendar (calendars, events)
    - LinkedIn (profile, posts)
    - Facebook Pages (posts, comments)
    """
    pass


@main.command()
@config_options
@credential_options
def mcp(mcp_config_dir: str | None, oauth_port: int | None, **credentials: str | None) -> None:
    """Start the MCP server over stdio.

    Credentials given as options take priority over environment variables,
    which take priority over files in the config directory. Each tool call
    may also pass a ``queryConfig`` object with credentials for that call.

    This command is typically invoked by an MCP host (e.g. Claude Desktop).
    """
    from pa_mcp.logging_setup import configure_logging
    from pa_mcp.server import main as server_main

    config = _load_config(mcp_config_dir, oauth_port, **credentials)
    configure_logging(config)

    try:
        click.echo("Starting Personal Assistant MCP server...", err=True)
        click.echo(f"Config directory: {config.mcp_config_dir}", err=True)
        server_main(config)
    except KeyboardInterrupt:
        click.echo("\nServer stopped.", err=True)
    except Exception as e:
        click.echo(f"❌ Server error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("provider", type=click.Choice(sorted(PROVIDER_ALIASES), case_sensitive=False))
@config_options
@credential_options
def auth(
    provider: str,
    mcp_config_dir: str | None,
    oauth_port: int | None,
    **credentials: str | None,
) -> None:
    """Run the interactive OAuth consent flow for PROVIDER.

    Opens the browser, waits for the provider's callback on
    ``localhost:<oauth-port>`` and saves the credentials to the config
    directory. ``gmail`` and ``calendar`` are aliases for ``google``,
    ``fb`` is an alias for ``facebook``.
    """
    from pa_mcp.auth import OAuthManager

    target = PROVIDER_ALIASES[provider.lower()]
    config = _load_config(mcp_config_dir, oauth_port, **credentials)
    manager = OAuthManager(config)

    click.echo(f"Starting {target.value} OAuth authentication flow...")
    click.echo("Browser will open for consent...")
    click.echo("")

    try:
        path = asyncio.run(manager.authenticate(target))
    except Exception as e:
        click.echo(f"❌ Authentication failed: {e}")
        sys.exit(1)

    click.echo("✓ Authentication successful!")
    click.echo(f"Credentials stored at: {path}")
    click.echo("")
    click.echo("Run 'pa-mcp doctor' to verify setup.")


@main.command()
@config_options
@credential_options
def doctor(mcp_config_dir: str | None, oauth_port: int | None, **credentials: str | None) -> None:
    """Check where each provider's credentials resolve from.

    Reports the credential source and token state per provider. Never
    contacts a token endpoint and never writes credential files.
    """
    from pa_mcp.auth import CredentialResolver, CredentialSource, CredentialStore, build_credential_providers
    from pa_mcp.auth.credential_provider import StaticTokenProvider

    config = _load_config(mcp_config_dir, oauth_port, **credentials)
    store = CredentialStore(config.mcp_config_dir)
    resolver = CredentialResolver(config, store)
    providers = build_credential_providers(store)

    click.echo(f"Config directory: {config.mcp_config_dir}")
    click.echo("")

    problems = 0
    for provider, spec in PROVIDER_SPECS.items():
        click.echo(f"{spec.name}:")
        keys_path = store.keys_path_for(provider)
        creds_path = store.path_for(provider)
        click.echo(f"  keys file:        {keys_path} ({'present' if keys_path.exists() else 'missing'})")
        click.echo(f"  credentials file: {creds_path} ({'present' if creds_path.exists() else 'missing'})")

        credentials_tuple = resolver.resolve(provider)
        if credentials_tuple is None:
            problems += 1
            click.echo("  ❌ No usable credentials")
            click.echo(f"     Run '{spec.auth_command}' or set {spec.env_prefix}_* variables")
            click.echo("")
            continue

        source = "options/environment" if credentials_tuple.source == CredentialSource.ENVIRONMENT else "files"
        click.echo(f"  source:           {source}")

        credential_provider = providers[provider]
        session = credential_provider.open_session(credentials_tuple)
        if isinstance(credential_provider, StaticTokenProvider):
            valid = asyncio.run(credential_provider.ensure_valid(session))
            if valid:
                click.echo("  ✓ Access token present")
            else:
                problems += 1
                click.echo(f"  ❌ Access token missing or expired. Run '{spec.auth_command}'")
        elif session.is_fresh():
            click.echo("  ✓ Access token valid")
        elif session.credentials.refresh_token:
            click.echo("  ✓ Refresh token present (access token will be refreshed on first use)")
        else:
            problems += 1
            click.echo(f"  ❌ No refresh token. Run '{spec.auth_command}'")
        click.echo("")

    if problems:
        click.echo(f"{problems} provider(s) need attention.")
    else:
        click.echo("All providers configured.")


if __name__ == "__main__":
    main()
