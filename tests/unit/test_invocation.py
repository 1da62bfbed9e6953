"""Unit tests for the tool invocation wrapper.

Tests cover error classification, the resolve/validate/invoke sequence,
the default-client cache and call-scoped overrides. Upstream HTTP is
mocked with respx; Google token refresh is mocked at google-auth.
"""

import json
from typing import Any

import httpx
import pytest
import respx

from pa_mcp.apis import FacebookClient, GmailClient, LinkedInClient
from pa_mcp.auth.providers import Provider, get_spec
from pa_mcp.errors import AuthenticationError, OperationError, ScopePermissionError
from pa_mcp.invocation import ClientCache, classify_error

GMAIL_LABELS_URL = "https://gmail.googleapis.com/gmail/v1/users/me/labels"
FACEBOOK_POSTS_URL = "https://graph.facebook.com/v18.0/1234567890/posts"
LINKEDIN_USERINFO_URL = "https://api.linkedin.com/v2/userinfo"
LINKEDIN_POSTS_URL = "https://api.linkedin.com/v2/ugcPosts"


def _status_error(status: int, body: Any = None, url: str = "https://api.example.com/x") -> httpx.HTTPStatusError:
    request = httpx.Request("GET", url)
    content = body if isinstance(body, str) else json.dumps(body or {})
    response = httpx.Response(status, content=content.encode(), request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


async def _list_labels(gmail: GmailClient) -> dict[str, Any]:
    return await gmail.list_labels()


@pytest.mark.unit
class TestClassifyError:
    """Tests for classify_error()."""

    def test_should_map_401_to_authentication(self) -> None:
        """Verify HTTP 401 is an authentication failure with remediation."""
        error = classify_error(_status_error(401, {"error": "unauthorized"}), get_spec(Provider.GOOGLE))

        assert isinstance(error, AuthenticationError)
        assert "pa-mcp auth google" in error.message

    @pytest.mark.parametrize(
        "body",
        [
            {"error": {"errors": [{"reason": "insufficientPermissions"}]}},
            {"error": {"status": "PERMISSION_DENIED", "details": "ACCESS_TOKEN_SCOPE_INSUFFICIENT"}},
            {"message": "Not enough permissions to access: ugcPosts.CREATE"},
            "insufficient_scope",
        ],
    )
    def test_should_map_scope_403_to_permission(self, body: Any) -> None:
        """Verify 403 responses mentioning scopes name the required scopes."""
        spec = get_spec(Provider.LINKEDIN)

        error = classify_error(_status_error(403, body), spec)

        assert isinstance(error, ScopePermissionError)
        assert error.required_scopes == spec.scopes
        assert "w_member_social" in error.message

    def test_should_map_other_403_to_authentication(self) -> None:
        """Verify a 403 without a scope hint is an authentication failure."""
        error = classify_error(_status_error(403, {"error": "forbidden"}), get_spec(Provider.GOOGLE))

        assert isinstance(error, AuthenticationError)

    @pytest.mark.parametrize(
        "message",
        ["invalid_grant", "invalid_client", "unauthorized_client", "invalid_token", "Token has expired"],
    )
    def test_should_map_auth_messages_to_authentication(self, message: str) -> None:
        """Verify token-related error messages are authentication failures."""
        error = classify_error(ValueError(message), get_spec(Provider.GOOGLE))

        assert isinstance(error, AuthenticationError)

    @pytest.mark.parametrize("status", [400, 404, 409])
    def test_should_not_treat_expired_in_other_http_errors_as_authentication(self, status: int) -> None:
        """Verify "expired" or "invalid_token" in a non-auth HTTP error stays an operation error."""
        body = {"error": {"message": "Event start time has expired; invalid_token format for syncToken"}}

        error = classify_error(_status_error(status, body), get_spec(Provider.GOOGLE))

        assert isinstance(error, OperationError)
        assert str(status) in error.message

    def test_should_map_facebook_code_190_to_authentication(self) -> None:
        """Verify Graph OAuthException (code 190) is an authentication failure."""
        body = {"error": {"message": "Error validating access token", "type": "OAuthException", "code": 190}}

        error = classify_error(_status_error(400, body), get_spec(Provider.FACEBOOK))

        assert isinstance(error, AuthenticationError)
        assert "pa-mcp auth facebook" in error.message

    @pytest.mark.parametrize("code", [10, 200, 299])
    def test_should_map_facebook_permission_codes(self, code: int) -> None:
        """Verify Graph permission error codes are permission failures."""
        body = {"error": {"message": "(#200) Requires pages_manage_posts", "code": code}}

        error = classify_error(_status_error(400, body), get_spec(Provider.FACEBOOK))

        assert isinstance(error, ScopePermissionError)

    def test_should_map_everything_else_to_operation(self) -> None:
        """Verify unknown failures keep the upstream message."""
        error = classify_error(_status_error(404, {"error": "Requested entity was not found."}), get_spec(Provider.GOOGLE))

        assert isinstance(error, OperationError)
        assert "404" in error.message
        assert "Requested entity was not found." in error.message

    def test_should_pass_through_tool_errors(self) -> None:
        """Verify already-classified errors are returned unchanged."""
        original = AuthenticationError("nope")

        assert classify_error(original, get_spec(Provider.GOOGLE)) is original


@pytest.mark.unit
class TestClientCache:
    """Tests for ClientCache."""

    def test_should_store_and_clear_clients(self) -> None:
        """Verify entries can be stored, evicted and cleared."""
        cache = ClientCache()
        client = object()

        cache.put("gmail", client)  # type: ignore[arg-type]
        cache.put("calendar", client)  # type: ignore[arg-type]
        cache.evict("gmail")

        assert "gmail" not in cache
        assert cache.get("calendar") is client
        cache.clear()
        assert len(cache) == 0


@pytest.mark.unit
class TestToolInvokerConfiguration:
    """Tests for missing and invalid credentials."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("family", ["gmail", "calendar", "linkedin", "facebook"])
    async def test_should_return_configuration_error_when_nothing_configured(
        self, invoker, family: str
    ) -> None:
        """Verify no env and no files yields a configuration error and no HTTP call."""

        async def operation(client: Any) -> dict[str, Any]:
            raise AssertionError("operation must not run")

        with respx.mock(assert_all_called=False) as respx_mock:
            result = await invoker.invoke(family, operation)

        assert result["error_type"] == "configuration"
        assert "could not be created" in result["error"]
        assert respx_mock.calls.call_count == 0

    @pytest.mark.asyncio
    async def test_should_return_authentication_error_when_refresh_fails(
        self, google_env, make_invoker
    ) -> None:
        """Verify an unrefreshable Google token yields an authentication error."""
        from unittest.mock import patch

        from google.auth.exceptions import RefreshError

        invoker = make_invoker()
        with patch(
            "google.oauth2.credentials.Credentials.refresh",
            side_effect=RefreshError("invalid_grant"),
        ):
            result = await invoker.invoke("gmail", _list_labels)

        assert result["error_type"] == "authentication"
        assert "pa-mcp auth google" in result["error"]
        assert "gmail" not in invoker.cache

    @pytest.mark.asyncio
    async def test_should_wrap_unexpected_exceptions(self, environ, make_invoker) -> None:
        """Verify no exception escapes invoke."""
        environ["LINKEDIN_ACCESS_TOKEN"] = "AQV_env_token"
        invoker = make_invoker()

        async def operation(linkedin: LinkedInClient) -> dict[str, Any]:
            raise RuntimeError("boom")

        result = await invoker.invoke("linkedin", operation)

        assert result == {"error": "Tool execution failed: boom", "error_type": "operation"}


@pytest.mark.unit
class TestToolInvokerScenarios:
    """End-to-end wrapper sequences per provider."""

    @pytest.mark.asyncio
    async def test_should_refresh_env_google_token_before_call(
        self, google_env, make_invoker, mock_google_refresh, store
    ) -> None:
        """Verify env-only Google credentials are refreshed, persisted and then used."""
        invoker = make_invoker()

        with respx.mock:
            route = respx.get(GMAIL_LABELS_URL).mock(
                return_value=httpx.Response(200, json={"labels": [{"id": "INBOX", "name": "INBOX"}]})
            )
            result = await invoker.invoke("gmail", _list_labels)

        assert result == {"labels": [{"id": "INBOX", "name": "INBOX"}]}
        assert mock_google_refresh.call_count == 1
        assert route.calls.last.request.headers["Authorization"] == "Bearer ya29.refreshed_1"
        record = store.read(Provider.GOOGLE)
        assert record is not None
        assert record.access_token == "ya29.refreshed_1"

    @pytest.mark.asyncio
    async def test_should_use_facebook_files_without_refresh(
        self, facebook_files, invoker, mock_google_refresh
    ) -> None:
        """Verify file-based Facebook page credentials are used as-is."""

        async def operation(facebook: FacebookClient) -> dict[str, Any]:
            return await facebook.get_page_posts(limit=5)

        with respx.mock:
            route = respx.get(FACEBOOK_POSTS_URL).mock(
                return_value=httpx.Response(200, json={"data": [{"id": "1_2", "message": "hi"}]})
            )
            result = await invoker.invoke("facebook", operation)

        assert result == {"posts": [{"id": "1_2", "message": "hi"}], "count": 1}
        assert mock_google_refresh.call_count == 0
        assert route.calls.last.request.url.params["access_token"] == "EAAB_page_token"

    @pytest.mark.asyncio
    async def test_should_report_linkedin_scope_error(self, environ, make_invoker) -> None:
        """Verify a 403 insufficient_scope from LinkedIn is a permission error."""
        environ["LINKEDIN_ACCESS_TOKEN"] = "AQV_env_token"
        invoker = make_invoker()

        async def operation(linkedin: LinkedInClient) -> dict[str, Any]:
            return await linkedin.create_text_post("Hello LinkedIn")

        with respx.mock:
            respx.get(LINKEDIN_USERINFO_URL).mock(
                return_value=httpx.Response(200, json={"sub": "abc123", "name": "Ada Lovelace"})
            )
            respx.post(LINKEDIN_POSTS_URL).mock(
                return_value=httpx.Response(
                    403, json={"status": 403, "code": "ACCESS_DENIED", "message": "insufficient_scope"}
                )
            )
            result = await invoker.invoke("linkedin", operation)

        assert result["error_type"] == "permission"
        assert "w_member_social" in result["error"]


@pytest.mark.unit
class TestToolInvokerCaching:
    """Tests for default-client caching and call-scoped overrides."""

    @pytest.mark.asyncio
    async def test_should_reuse_default_client(self, environ, make_invoker) -> None:
        """Verify calls without override share one cached client per family."""
        environ["LINKEDIN_ACCESS_TOKEN"] = "AQV_env_token"
        invoker = make_invoker()
        seen: list[LinkedInClient] = []

        async def operation(linkedin: LinkedInClient) -> dict[str, Any]:
            seen.append(linkedin)
            return {"ok": True}

        await invoker.invoke("linkedin", operation)
        await invoker.invoke("linkedin", operation)

        assert seen[0] is seen[1]
        assert invoker.cache.get("linkedin") is seen[0]

    @pytest.mark.asyncio
    async def test_should_be_idempotent_with_override(self, facebook_files, invoker) -> None:
        """Verify override calls return equal results and never touch the cache."""
        override = {"FACEBOOK_PAGE_ACCESS_TOKEN": "EAAB_override", "facebookPageId": "999"}
        snapshot = dict(override)

        async def operation(facebook: FacebookClient) -> dict[str, Any]:
            return {"token": facebook.session.access_token, "page": facebook.page_id}

        first = await invoker.invoke("facebook", operation, override)
        second = await invoker.invoke("facebook", operation, override)

        assert first == second == {"token": "EAAB_override", "page": "999"}
        assert override == snapshot
        assert len(invoker.cache) == 0

    @pytest.mark.asyncio
    async def test_should_not_let_override_leak_into_default_calls(self, facebook_files, invoker) -> None:
        """Verify a later call without override uses the configured credentials."""

        async def operation(facebook: FacebookClient) -> dict[str, Any]:
            return {"token": facebook.session.access_token}

        await invoker.invoke(
            "facebook", operation, {"FACEBOOK_PAGE_ACCESS_TOKEN": "EAAB_override", "FACEBOOK_PAGE_ID": "9"}
        )
        result = await invoker.invoke("facebook", operation)

        assert result == {"token": "EAAB_page_token"}

    @pytest.mark.asyncio
    async def test_should_keep_default_google_account_after_override_refresh(
        self, google_files, invoker, mock_google_refresh, store
    ) -> None:
        """Verify an override account's refresh never reaches the cached default client."""
        google_files(expires_in_ms=-1)
        override = {
            "GOOGLE_CLIENT_ID": "other-client-id",
            "GOOGLE_CLIENT_SECRET": "other-client-secret",
            "GOOGLE_REFRESH_TOKEN": "1//other_account",
        }

        with respx.mock:
            route = respx.get(GMAIL_LABELS_URL).mock(return_value=httpx.Response(200, json={"labels": []}))
            await invoker.invoke("gmail", _list_labels)
            await invoker.invoke("gmail", _list_labels, override)

            cached = invoker.cache.get("gmail")
            assert cached is not None
            cached.session.expiry_date = 0
            await invoker.invoke("gmail", _list_labels)

        headers = [call.request.headers["Authorization"] for call in route.calls]
        assert headers == [
            "Bearer ya29.refreshed_1",
            "Bearer ya29.refreshed_2",
            "Bearer ya29.refreshed_1",
        ]
        assert mock_google_refresh.call_count == 2
        assert cached.session.credentials.refresh_token == "1//file_refresh_token"
        record = store.read(Provider.GOOGLE)
        assert record is not None
        assert record.refresh_token == "1//file_refresh_token"
        assert record.access_token == "ya29.refreshed_1"

    @pytest.mark.asyncio
    async def test_should_evict_client_when_session_invalid(self, environ, make_invoker) -> None:
        """Verify a cached client whose credentials fail validation is evicted."""
        environ["LINKEDIN_ACCESS_TOKEN"] = "AQV_env_token"
        invoker = make_invoker()

        async def operation(linkedin: LinkedInClient) -> dict[str, Any]:
            return {"ok": True}

        await invoker.invoke("linkedin", operation)
        cached = invoker.cache.get("linkedin")
        assert cached is not None
        cached.session.access_token = None

        result = await invoker.invoke("linkedin", operation)

        assert result["error_type"] == "authentication"
        assert "linkedin" not in invoker.cache

    @pytest.mark.asyncio
    async def test_should_evict_client_on_upstream_401(self, environ, make_invoker) -> None:
        """Verify an upstream 401 drops the cached client."""
        environ["LINKEDIN_ACCESS_TOKEN"] = "AQV_env_token"
        invoker = make_invoker()

        async def operation(linkedin: LinkedInClient) -> dict[str, Any]:
            return await linkedin.get_user_info()

        with respx.mock:
            respx.get(LINKEDIN_USERINFO_URL).mock(return_value=httpx.Response(401, json={"message": "Unauthorized"}))
            result = await invoker.invoke("linkedin", operation)

        assert result["error_type"] == "authentication"
        assert "pa-mcp auth linkedin" in result["error"]
        assert "linkedin" not in invoker.cache
