"""Thin REST clients for the upstream provider APIs."""

from pa_mcp.apis.base import ApiClient
from pa_mcp.apis.calendar import CalendarClient
from pa_mcp.apis.facebook import FacebookClient
from pa_mcp.apis.gmail import GmailClient
from pa_mcp.apis.linkedin import LinkedInClient

__all__ = ["ApiClient", "CalendarClient", "FacebookClient", "GmailClient", "LinkedInClient"]
