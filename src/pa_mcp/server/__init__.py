"""MCP server exposing Gmail, Calendar, LinkedIn and Facebook tools over stdio."""

from pa_mcp.server.personal_assistant_server import PersonalAssistantServer, main

__all__ = ["PersonalAssistantServer", "main"]
