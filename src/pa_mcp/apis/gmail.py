"""Gmail REST client."""

import asyncio
import base64
from email.mime.text import MIMEText
from typing import Any

from pa_mcp.apis.base import ApiClient

GMAIL_API_BASE = "https://gmail.googleapis.com/gmail/v1"

RESPONSE_HEADERS_LIST = [
    "Date",
    "From",
    "To",
    "Subject",
    "Message-ID",
    "In-Reply-To",
    "References",
]


def find_header(headers: list[dict[str, Any]] | None, name: str) -> str | None:
    """Case-insensitive header lookup."""
    for header in headers or []:
        if (header.get("name") or "").lower() == name.lower():
            return header.get("value")
    return None


def decode_body(data: str | None) -> str:
    """Decode a base64url Gmail body part."""
    if not data:
        return ""
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def extract_text(payload: dict[str, Any]) -> str:
    """Return the first text/plain body found in a message payload."""
    if payload.get("mimeType") == "text/plain":
        return decode_body(payload.get("body", {}).get("data"))
    for part in payload.get("parts") or []:
        text = extract_text(part)
        if text:
            return text
    return ""


class GmailClient(ApiClient):
    """Gmail operations used by the tool layer."""

    base_url = GMAIL_API_BASE

    async def search_messages(self, query: str = "", max_results: int = 10) -> dict[str, Any]:
        listing = await self._request(
            "GET",
            f"{self.base_url}/users/me/messages",
            params={"q": query, "maxResults": max_results},
        )

        async def fetch(msg_id: str) -> dict[str, Any]:
            detail = await self._request(
                "GET",
                f"{self.base_url}/users/me/messages/{msg_id}",
                params={"format": "metadata", "metadataHeaders": ["Subject", "From", "Date"]},
            )
            headers = detail.get("payload", {}).get("headers", [])
            return {
                "id": detail.get("id"),
                "threadId": detail.get("threadId"),
                "snippet": detail.get("snippet", ""),
                "subject": find_header(headers, "Subject"),
                "from": find_header(headers, "From"),
                "date": find_header(headers, "Date"),
            }

        ids = [m["id"] for m in listing.get("messages", [])]
        messages = await asyncio.gather(*(fetch(i) for i in ids))
        return {"messages": list(messages), "count": len(messages)}

    async def get_message(self, message_id: str) -> dict[str, Any]:
        message = await self._request(
            "GET",
            f"{self.base_url}/users/me/messages/{message_id}",
            params={"format": "full"},
        )
        payload = message.get("payload", {})
        headers = [h for h in payload.get("headers", []) if h.get("name") in RESPONSE_HEADERS_LIST]
        return {
            "id": message.get("id"),
            "threadId": message.get("threadId"),
            "labelIds": message.get("labelIds", []),
            "headers": {h["name"]: h.get("value") for h in headers},
            "body": extract_text(payload),
        }

    async def send_email(
        self,
        to: list[str],
        subject: str,
        body: str,
        cc: list[str] | None = None,
        bcc: list[str] | None = None,
    ) -> dict[str, Any]:
        message = MIMEText(body)
        message["To"] = ", ".join(to)
        message["Subject"] = subject
        if cc:
            message["Cc"] = ", ".join(cc)
        if bcc:
            message["Bcc"] = ", ".join(bcc)
        raw = base64.urlsafe_b64encode(message.as_bytes()).decode("ascii")

        return await self._request(
            "POST", f"{self.base_url}/users/me/messages/send", json_data={"raw": raw}
        )

    async def list_labels(self) -> dict[str, Any]:
        return await self._request("GET", f"{self.base_url}/users/me/labels")
