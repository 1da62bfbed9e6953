"""Personal Assistant MCP server.

Exposes Gmail, Google Calendar, LinkedIn and Facebook Page operations as
MCP tools, backed by a unified OAuth2 credential and token lifecycle manager.
"""

from pa_mcp.__version__ import __version__

__all__ = ["__version__"]
