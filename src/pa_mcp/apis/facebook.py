"""Facebook Graph API client for page management."""

from typing import Any

from pa_mcp.apis.base import ApiClient
from pa_mcp.auth.providers import FACEBOOK_GRAPH_VERSION

GRAPH_API_BASE = f"https://graph.facebook.com/{FACEBOOK_GRAPH_VERSION}"


class FacebookClient(ApiClient):
    """Page operations authenticated with a page access token."""

    base_url = GRAPH_API_BASE

    @property
    def page_id(self) -> str:
        return str(self.session.extras["page_id"])

    def _auth_headers(self) -> dict[str, str]:
        return {}

    def _auth_params(self) -> dict[str, Any]:
        return {"access_token": self.session.access_token}

    async def get_page_info(self) -> dict[str, Any]:
        return await self._request(
            "GET",
            f"{self.base_url}/{self.page_id}",
            params={"fields": "id,name,fan_count,followers_count,link"},
        )

    async def get_page_posts(self, limit: int = 25) -> dict[str, Any]:
        result = await self._request(
            "GET",
            f"{self.base_url}/{self.page_id}/posts",
            params={"fields": "id,message,created_time,permalink_url", "limit": limit},
        )
        posts = result.get("data", [])
        return {"posts": posts, "count": len(posts)}

    async def post_to_page(self, message: str) -> dict[str, Any]:
        result = await self._request(
            "POST", f"{self.base_url}/{self.page_id}/feed", params={"message": message}
        )
        return {"postId": result.get("id")}

    async def get_post_comments(self, post_id: str, limit: int = 25) -> dict[str, Any]:
        result = await self._request(
            "GET",
            f"{self.base_url}/{post_id}/comments",
            params={"fields": "id,message,from,created_time", "limit": limit},
        )
        comments = result.get("data", [])
        return {"comments": comments, "count": len(comments)}

    async def reply_to_comment(self, comment_id: str, message: str) -> dict[str, Any]:
        result = await self._request(
            "POST", f"{self.base_url}/{comment_id}/comments", params={"message": message}
        )
        return {"replyId": result.get("id")}
