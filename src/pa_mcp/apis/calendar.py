"""Google Calendar REST client."""

from typing import Any
from urllib.parse import quote

from pa_mcp.apis.base import ApiClient

CALENDAR_API_BASE = "https://www.googleapis.com/calendar/v3"


class CalendarClient(ApiClient):
    """Calendar operations used by the tool layer."""

    base_url = CALENDAR_API_BASE

    def _calendar_url(self, calendar_id: str) -> str:
        return f"{self.base_url}/calendars/{quote(calendar_id, safe='')}"

    async def list_calendars(self) -> dict[str, Any]:
        response = await self._request("GET", f"{self.base_url}/users/me/calendarList")
        calendars = [
            {
                "id": item.get("id"),
                "summary": item.get("summary"),
                "primary": item.get("primary", False),
                "accessRole": item.get("accessRole"),
            }
            for item in response.get("items", [])
        ]
        return {"calendars": calendars, "count": len(calendars)}

    async def list_events(
        self,
        calendar_id: str = "primary",
        time_min: str | None = None,
        time_max: str | None = None,
        max_results: int = 10,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "maxResults": max_results,
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        if time_min:
            params["timeMin"] = time_min
        if time_max:
            params["timeMax"] = time_max

        response = await self._request("GET", f"{self._calendar_url(calendar_id)}/events", params=params)
        return {"events": response.get("items", []), "count": len(response.get("items", []))}

    async def create_event(
        self,
        summary: str,
        start: str,
        end: str,
        calendar_id: str = "primary",
        description: str | None = None,
        attendees: list[str] | None = None,
        timezone: str | None = None,
    ) -> dict[str, Any]:
        start_obj: dict[str, Any] = {"dateTime": start}
        end_obj: dict[str, Any] = {"dateTime": end}
        if timezone:
            start_obj["timeZone"] = timezone
            end_obj["timeZone"] = timezone

        event: dict[str, Any] = {"summary": summary, "start": start_obj, "end": end_obj}
        if description:
            event["description"] = description
        if attendees:
            event["attendees"] = [{"email": email} for email in attendees]

        return await self._request("POST", f"{self._calendar_url(calendar_id)}/events", json_data=event)

    async def delete_event(self, event_id: str, calendar_id: str = "primary") -> dict[str, Any]:
        await self._request(
            "DELETE", f"{self._calendar_url(calendar_id)}/events/{quote(event_id, safe='')}"
        )
        return {"status": "deleted", "event_id": event_id}
