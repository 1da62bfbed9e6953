"""Shared base for provider API clients."""

from typing import Any

import httpx

from pa_mcp.auth.credential_provider import CredentialSession


class ApiClient:
    """Authenticated HTTP client bound to one credential session.

    Non-2xx responses raise ``httpx.HTTPStatusError``; classification into
    the tool error taxonomy happens in the invocation wrapper.

    Attributes:
        http: Shared httpx.AsyncClient (connection pooling across clients).
        session: Live credentials; read on every request so a refreshed
            token is picked up without rebuilding the client.
    """

    def __init__(self, http: httpx.AsyncClient, session: CredentialSession) -> None:
        self.http = http
        self.session = session

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.session.access_token}"}

    def _auth_params(self) -> dict[str, Any]:
        return {}

    async def _request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated request and return the JSON body.

        Raises:
            httpx.HTTPStatusError: If the request fails.
        """
        request_headers = {"Accept": "application/json", **self._auth_headers()}
        if headers:
            request_headers.update(headers)

        response = await self.http.request(
            method=method,
            url=url,
            params={**self._auth_params(), **(params or {})},
            json=json_data,
            headers=request_headers,
        )
        response.raise_for_status()
        if response.status_code == 204 or not response.content:
            return {}
        result: dict[str, Any] = response.json()
        return result
