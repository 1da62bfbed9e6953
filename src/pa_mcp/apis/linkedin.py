"""LinkedIn REST client."""

from typing import Any

from pa_mcp.apis.base import ApiClient

LINKEDIN_API_BASE = "https://api.linkedin.com/v2"
RESTLI_HEADERS = {"X-Restli-Protocol-Version": "2.0.0"}


class LinkedInClient(ApiClient):
    """LinkedIn operations used by the tool layer.

    Uses the OpenID Connect ``userinfo`` endpoint, which works with the basic
    ``openid profile`` scopes, to identify the member.
    """

    base_url = LINKEDIN_API_BASE

    async def get_user_info(self) -> dict[str, Any]:
        userinfo = await self._request("GET", f"{self.base_url}/userinfo")
        name = userinfo.get("name") or ""
        return {
            "id": userinfo.get("sub"),
            "name": name,
            "firstName": userinfo.get("given_name") or (name.split(" ")[0] if name else ""),
            "lastName": userinfo.get("family_name") or " ".join(name.split(" ")[1:]),
            "email": userinfo.get("email"),
            "picture": userinfo.get("picture"),
        }

    async def create_text_post(self, content: str, visibility: str = "PUBLIC") -> dict[str, Any]:
        profile = await self.get_user_info()
        post = {
            "author": f"urn:li:person:{profile['id']}",
            "lifecycleState": "PUBLISHED",
            "specificContent": {
                "com.linkedin.ugc.ShareContent": {
                    "shareCommentary": {"text": content},
                    "shareMediaCategory": "NONE",
                }
            },
            "visibility": {"com.linkedin.ugc.MemberNetworkVisibility": visibility},
        }
        result = await self._request(
            "POST", f"{self.base_url}/ugcPosts", json_data=post, headers=RESTLI_HEADERS
        )
        return {"postId": result.get("id"), "visibility": visibility}
