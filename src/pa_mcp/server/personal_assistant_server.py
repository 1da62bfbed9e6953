"""Personal Assistant MCP server.

This MCP server provides tools for Gmail, Google Calendar, LinkedIn and
Facebook Pages. Credentials come from CLI options, environment variables or
files under ``MCP_CONFIG_DIR``, and every tool accepts an optional
``queryConfig`` object that supplies credentials for that call only.

Google access tokens are refreshed automatically when they expire; the
refreshed token is persisted before the API call is made.
"""

import asyncio
import json
import logging
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from pa_mcp.auth.token_storage import CredentialStore
from pa_mcp.config import GeneralConfig
from pa_mcp.errors import OperationError
from pa_mcp.invocation import ClientCache, ToolInvoker

logger = logging.getLogger(__name__)

SERVER_NAME = "personal-assistant-mcp"

QUERY_CONFIG_SCHEMA: dict[str, Any] = {
    "type": "object",
    "description": (
        "Optional per-call credentials (e.g. GOOGLE_CLIENT_ID, linkedinAccessToken, "
        "facebook_page_id). Overrides CLI options and environment variables for this call only."
    ),
    "additionalProperties": {"type": "string"},
}


def _schema(properties: dict[str, Any] | None = None, required: list[str] | None = None) -> dict[str, Any]:
    """Build a tool input schema with the shared ``queryConfig`` property."""
    return {
        "type": "object",
        "properties": {**(properties or {}), "queryConfig": QUERY_CONFIG_SCHEMA},
        "required": required or [],
    }


def _require(arguments: dict[str, Any], name: str) -> Any:
    value = arguments.get(name)
    if value is None or value == "":
        raise ValueError(f"Missing required argument: {name}")
    return value


def _as_list(value: Any) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v) for v in value]


def _query_config(arguments: dict[str, Any]) -> dict[str, Any] | None:
    query_config = arguments.get("queryConfig")
    if query_config is None:
        return None
    if isinstance(query_config, str):
        query_config = json.loads(query_config)
    if not isinstance(query_config, dict):
        raise ValueError("queryConfig must be an object")
    return query_config


class PersonalAssistantServer:
    """MCP server for personal productivity APIs.

    Provides 15 tools:
    - Gmail: search, read, send, list labels
    - Calendar: list calendars, list/create/delete events
    - LinkedIn: profile, text posts
    - Facebook: page info, posts, comments, replies

    Attributes:
        server: MCP Server instance.
        config: Process configuration.
        store: Credential store under ``config.mcp_config_dir``.
        cache: Default API clients, one per API family.
        invoker: Tool invocation wrapper shared by all handlers.
    """

    def __init__(self, config: GeneralConfig | None = None, invoker: ToolInvoker | None = None) -> None:
        """Initialize the Personal Assistant MCP server."""
        self.config = config or GeneralConfig.load()
        self.server = Server(SERVER_NAME)
        if invoker is None:
            invoker = ToolInvoker(
                self.config,
                store=CredentialStore(self.config.mcp_config_dir),
                cache=ClientCache(),
            )
        self.invoker = invoker
        self.store = invoker.store
        self.cache = invoker.cache
        self._setup_handlers()

    def _setup_handlers(self) -> None:
        """Register MCP tool handlers."""

        @self.server.list_tools()
        async def list_tools() -> list[Tool]:
            """Return list of available tools."""
            return self.tool_definitions()

        @self.server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            """Handle tool calls."""
            try:
                result = await self._dispatch_tool(name, arguments or {})
                return [TextContent(type="text", text=json.dumps(result, indent=2))]
            except Exception as e:
                logger.exception(f"Error calling tool {name}")
                return [
                    TextContent(
                        type="text",
                        text=json.dumps(OperationError(str(e)).to_envelope(), indent=2),
                    )
                ]

    def tool_definitions(self) -> list[Tool]:
        """Return the MCP tool catalogue."""
        return [
            # Gmail
            Tool(
                name="gmail_search_messages",
                description="Search Gmail messages using Gmail query syntax",
                inputSchema=_schema(
                    {
                        "query": {
                            "type": "string",
                            "description": "Gmail search query (e.g., 'from:alice is:unread')",
                        },
                        "max_results": {
                            "type": "integer",
                            "description": "Maximum number of messages to return (default: 10)",
                            "default": 10,
                        },
                    }
                ),
            ),
            Tool(
                name="gmail_get_message",
                description="Get the headers and plain-text body of a Gmail message",
                inputSchema=_schema(
                    {"message_id": {"type": "string", "description": "Gmail message ID"}},
                    ["message_id"],
                ),
            ),
            Tool(
                name="gmail_send_email",
                description="Send a plain-text email from the authenticated Gmail account",
                inputSchema=_schema(
                    {
                        "to": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Recipient email addresses",
                        },
                        "subject": {"type": "string", "description": "Email subject"},
                        "body": {"type": "string", "description": "Plain-text email body"},
                        "cc": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "CC recipients (optional)",
                        },
                        "bcc": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "BCC recipients (optional)",
                        },
                    },
                    ["to", "subject", "body"],
                ),
            ),
            Tool(
                name="gmail_list_labels",
                description="List Gmail labels for the authenticated account",
                inputSchema=_schema(),
            ),
            # Calendar
            Tool(
                name="calendar_list_calendars",
                description="List all calendars accessible by the authenticated user",
                inputSchema=_schema(),
            ),
            Tool(
                name="calendar_list_events",
                description="List upcoming events from a calendar",
                inputSchema=_schema(
                    {
                        "calendar_id": {
                            "type": "string",
                            "description": "Calendar ID (default: 'primary')",
                            "default": "primary",
                        },
                        "time_min": {
                            "type": "string",
                            "description": "Lower bound (RFC3339, e.g., '2025-01-01T00:00:00Z', optional)",
                        },
                        "time_max": {
                            "type": "string",
                            "description": "Upper bound (RFC3339, optional)",
                        },
                        "max_results": {
                            "type": "integer",
                            "description": "Maximum number of events (default: 10)",
                            "default": 10,
                        },
                    }
                ),
            ),
            Tool(
                name="calendar_create_event",
                description="Create a calendar event",
                inputSchema=_schema(
                    {
                        "summary": {"type": "string", "description": "Event title"},
                        "start": {"type": "string", "description": "Start time (RFC3339)"},
                        "end": {"type": "string", "description": "End time (RFC3339)"},
                        "calendar_id": {
                            "type": "string",
                            "description": "Calendar ID (default: 'primary')",
                            "default": "primary",
                        },
                        "description": {"type": "string", "description": "Event description (optional)"},
                        "attendees": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Attendee email addresses (optional)",
                        },
                        "timezone": {
                            "type": "string",
                            "description": "IANA timezone (e.g., 'America/New_York', optional)",
                        },
                    },
                    ["summary", "start", "end"],
                ),
            ),
            Tool(
                name="calendar_delete_event",
                description="Delete a calendar event",
                inputSchema=_schema(
                    {
                        "event_id": {"type": "string", "description": "Event ID to delete"},
                        "calendar_id": {
                            "type": "string",
                            "description": "Calendar ID (default: 'primary')",
                            "default": "primary",
                        },
                    },
                    ["event_id"],
                ),
            ),
            # LinkedIn
            Tool(
                name="linkedin_get_user_info",
                description="Get the authenticated LinkedIn member's profile",
                inputSchema=_schema(),
            ),
            Tool(
                name="linkedin_create_post",
                description="Publish a text post on LinkedIn as the authenticated member",
                inputSchema=_schema(
                    {
                        "content": {"type": "string", "description": "Post text"},
                        "visibility": {
                            "type": "string",
                            "enum": ["PUBLIC", "CONNECTIONS"],
                            "description": "Post visibility (default: PUBLIC)",
                            "default": "PUBLIC",
                        },
                    },
                    ["content"],
                ),
            ),
            # Facebook
            Tool(
                name="facebook_get_page_info",
                description="Get basic information about the configured Facebook page",
                inputSchema=_schema(),
            ),
            Tool(
                name="facebook_get_page_posts",
                description="List recent posts on the configured Facebook page",
                inputSchema=_schema(
                    {
                        "limit": {
                            "type": "integer",
                            "description": "Maximum number of posts (default: 25)",
                            "default": 25,
                        }
                    }
                ),
            ),
            Tool(
                name="facebook_post_to_page",
                description="Publish a message on the configured Facebook page",
                inputSchema=_schema(
                    {"message": {"type": "string", "description": "Post message"}},
                    ["message"],
                ),
            ),
            Tool(
                name="facebook_get_post_comments",
                description="List comments on a Facebook page post",
                inputSchema=_schema(
                    {
                        "post_id": {"type": "string", "description": "Post ID"},
                        "limit": {
                            "type": "integer",
                            "description": "Maximum number of comments (default: 25)",
                            "default": 25,
                        },
                    },
                    ["post_id"],
                ),
            ),
            Tool(
                name="facebook_reply_to_comment",
                description="Reply to a comment on a Facebook page post",
                inputSchema=_schema(
                    {
                        "comment_id": {"type": "string", "description": "Comment ID"},
                        "message": {"type": "string", "description": "Reply text"},
                    },
                    ["comment_id", "message"],
                ),
            ),
        ]

    async def _dispatch_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        """Dispatch tool call to appropriate handler.

        Args:
            name: Tool name.
            arguments: Tool arguments, including the optional ``queryConfig``.

        Returns:
            Tool result, or an error envelope produced by the invoker.

        Raises:
            ValueError: If tool name is not recognized or arguments are invalid.
        """
        handlers = {
            # Gmail
            "gmail_search_messages": self._gmail_search_messages,
            "gmail_get_message": self._gmail_get_message,
            "gmail_send_email": self._gmail_send_email,
            "gmail_list_labels": self._gmail_list_labels,
            # Calendar
            "calendar_list_calendars": self._calendar_list_calendars,
            "calendar_list_events": self._calendar_list_events,
            "calendar_create_event": self._calendar_create_event,
            "calendar_delete_event": self._calendar_delete_event,
            # LinkedIn
            "linkedin_get_user_info": self._linkedin_get_user_info,
            "linkedin_create_post": self._linkedin_create_post,
            # Facebook
            "facebook_get_page_info": self._facebook_get_page_info,
            "facebook_get_page_posts": self._facebook_get_page_posts,
            "facebook_post_to_page": self._facebook_post_to_page,
            "facebook_get_post_comments": self._facebook_get_post_comments,
            "facebook_reply_to_comment": self._facebook_reply_to_comment,
        }

        handler = handlers.get(name)
        if handler is None:
            raise ValueError(f"Unknown tool: {name}")

        return await handler(arguments)

    # Gmail

    async def _gmail_search_messages(self, arguments: dict[str, Any]) -> Any:
        query = arguments.get("query", "")
        max_results = int(arguments.get("max_results", 10))
        return await self.invoker.invoke(
            "gmail",
            lambda gmail: gmail.search_messages(query=query, max_results=max_results),
            _query_config(arguments),
        )

    async def _gmail_get_message(self, arguments: dict[str, Any]) -> Any:
        message_id = _require(arguments, "message_id")
        return await self.invoker.invoke(
            "gmail", lambda gmail: gmail.get_message(message_id), _query_config(arguments)
        )

    async def _gmail_send_email(self, arguments: dict[str, Any]) -> Any:
        """Send an email.

        ``to``, ``cc`` and ``bcc`` accept either a list or a comma-separated string.
        """
        to = _as_list(_require(arguments, "to"))
        subject = _require(arguments, "subject")
        body = _require(arguments, "body")
        cc = _as_list(arguments.get("cc"))
        bcc = _as_list(arguments.get("bcc"))
        return await self.invoker.invoke(
            "gmail",
            lambda gmail: gmail.send_email(to=to, subject=subject, body=body, cc=cc, bcc=bcc),
            _query_config(arguments),
        )

    async def _gmail_list_labels(self, arguments: dict[str, Any]) -> Any:
        return await self.invoker.invoke(
            "gmail", lambda gmail: gmail.list_labels(), _query_config(arguments)
        )

    # Calendar

    async def _calendar_list_calendars(self, arguments: dict[str, Any]) -> Any:
        return await self.invoker.invoke(
            "calendar", lambda calendar: calendar.list_calendars(), _query_config(arguments)
        )

    async def _calendar_list_events(self, arguments: dict[str, Any]) -> Any:
        calendar_id = arguments.get("calendar_id", "primary")
        time_min = arguments.get("time_min")
        time_max = arguments.get("time_max")
        max_results = int(arguments.get("max_results", 10))
        return await self.invoker.invoke(
            "calendar",
            lambda calendar: calendar.list_events(
                calendar_id=calendar_id,
                time_min=time_min,
                time_max=time_max,
                max_results=max_results,
            ),
            _query_config(arguments),
        )

    async def _calendar_create_event(self, arguments: dict[str, Any]) -> Any:
        summary = _require(arguments, "summary")
        start = _require(arguments, "start")
        end = _require(arguments, "end")
        return await self.invoker.invoke(
            "calendar",
            lambda calendar: calendar.create_event(
                summary=summary,
                start=start,
                end=end,
                calendar_id=arguments.get("calendar_id", "primary"),
                description=arguments.get("description"),
                attendees=_as_list(arguments.get("attendees")),
                timezone=arguments.get("timezone"),
            ),
            _query_config(arguments),
        )

    async def _calendar_delete_event(self, arguments: dict[str, Any]) -> Any:
        event_id = _require(arguments, "event_id")
        calendar_id = arguments.get("calendar_id", "primary")
        return await self.invoker.invoke(
            "calendar",
            lambda calendar: calendar.delete_event(event_id=event_id, calendar_id=calendar_id),
            _query_config(arguments),
        )

    # LinkedIn

    async def _linkedin_get_user_info(self, arguments: dict[str, Any]) -> Any:
        return await self.invoker.invoke(
            "linkedin", lambda linkedin: linkedin.get_user_info(), _query_config(arguments)
        )

    async def _linkedin_create_post(self, arguments: dict[str, Any]) -> Any:
        content = _require(arguments, "content")
        visibility = arguments.get("visibility", "PUBLIC")
        return await self.invoker.invoke(
            "linkedin",
            lambda linkedin: linkedin.create_text_post(content=content, visibility=visibility),
            _query_config(arguments),
        )

    # Facebook

    async def _facebook_get_page_info(self, arguments: dict[str, Any]) -> Any:
        return await self.invoker.invoke(
            "facebook", lambda facebook: facebook.get_page_info(), _query_config(arguments)
        )

    async def _facebook_get_page_posts(self, arguments: dict[str, Any]) -> Any:
        limit = int(arguments.get("limit", 25))
        return await self.invoker.invoke(
            "facebook", lambda facebook: facebook.get_page_posts(limit=limit), _query_config(arguments)
        )

    async def _facebook_post_to_page(self, arguments: dict[str, Any]) -> Any:
        message = _require(arguments, "message")
        return await self.invoker.invoke(
            "facebook", lambda facebook: facebook.post_to_page(message), _query_config(arguments)
        )

    async def _facebook_get_post_comments(self, arguments: dict[str, Any]) -> Any:
        post_id = _require(arguments, "post_id")
        limit = int(arguments.get("limit", 25))
        return await self.invoker.invoke(
            "facebook",
            lambda facebook: facebook.get_post_comments(post_id=post_id, limit=limit),
            _query_config(arguments),
        )

    async def _facebook_reply_to_comment(self, arguments: dict[str, Any]) -> Any:
        comment_id = _require(arguments, "comment_id")
        message = _require(arguments, "message")
        return await self.invoker.invoke(
            "facebook",
            lambda facebook: facebook.reply_to_comment(comment_id=comment_id, message=message),
            _query_config(arguments),
        )

    async def run(self) -> None:
        """Run the MCP server using stdio transport."""
        try:
            async with stdio_server() as (read_stream, write_stream):
                await self.server.run(
                    read_stream,
                    write_stream,
                    self.server.create_initialization_options(),
                )
        finally:
            await self.invoker.close()


def main(config: GeneralConfig | None = None) -> None:
    """Entry point for the Personal Assistant MCP server."""
    server = PersonalAssistantServer(config)
    logger.info(f"Starting {SERVER_NAME} (config dir: {server.config.mcp_config_dir})")
    asyncio.run(server.run())
