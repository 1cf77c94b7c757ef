from typing import Optional

import httpx

from app.config import settings
from app.logging_config import get_logger
from app.services.result import META_API_ERROR, MISSING_CREDENTIAL, NETWORK_ERROR, Result

logger = get_logger("meta_api_service")


def user_recipient(user_id: str) -> dict:
    return {"id": user_id}


def comment_recipient(comment_id: str) -> dict:
    """Address a private reply to the author of a comment."""
    return {"comment_id": comment_id}


class MetaAPIService:
    """Client for the Instagram Graph send API, authenticated with a channel credential."""

    def __init__(
        self,
        access_token: str,
        page_id: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        graph_version: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.access_token = access_token
        self.page_id = page_id
        self.base_url = f"{(base_url or settings.meta_base_url).rstrip('/')}/{graph_version or settings.meta_graph_version}"
        self.timeout = timeout if timeout is not None else settings.meta_timeout_seconds

    async def _make_request(
        self, method: str, path: str, payload: Optional[dict] = None, params: Optional[dict] = None
    ) -> Result[dict]:
        """Make request to the Graph API. Errors are returned, never raised."""
        if not self.access_token:
            return Result.failure("Channel has no access token", MISSING_CREDENTIAL)

        url = f"{self.base_url}{path}"
        headers = {"Authorization": f"Bearer {self.access_token}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(method, url, headers=headers, json=payload, params=params)
        except httpx.HTTPError as e:
            logger.error(f"Meta API transport error: {method} {path}: {e}")
            return Result.failure(str(e) or e.__class__.__name__, NETWORK_ERROR)

        if response.status_code >= 400:
            logger.warning(
                "Meta API error",
                extra={"context": {"path": path, "status_code": response.status_code, "body": response.text[:200]}},
            )
            return Result.failure(
                f"Meta API error {response.status_code}: {response.text[:200]}",
                META_API_ERROR,
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError:
            data = {}
        return Result.success(data)

    @property
    def _messages_path(self) -> str:
        return f"/{self.page_id or 'me'}/messages"

    async def send_text(self, recipient: dict, text: str) -> Result[dict]:
        """Send a text direct message."""
        return await self._make_request(
            "POST", self._messages_path, {"recipient": recipient, "message": {"text": text}}
        )

    async def send_attachment(self, recipient: dict, media_type: str, url: str) -> Result[dict]:
        """Send an image, video or audio direct message by URL."""
        payload = {
            "recipient": recipient,
            "message": {"attachment": {"type": media_type, "payload": {"url": url}}},
        }
        return await self._make_request("POST", self._messages_path, payload)

    async def reply_to_comment(self, comment_id: str, text: str) -> Result[dict]:
        """Publish a public reply under a comment."""
        return await self._make_request("POST", f"/{comment_id}/replies", {"message": text})


async def refresh_long_lived_token(access_token: str) -> Result[dict]:
    """Exchange a long-lived credential for a fresh one."""
    if not settings.meta_app_id or not settings.meta_app_secret:
        return Result.failure("META_APP_ID and META_APP_SECRET must be configured", MISSING_CREDENTIAL)

    url = f"{settings.meta_oauth_base_url.rstrip('/')}/{settings.meta_graph_version}/oauth/access_token"
    params = {
        "grant_type": "fb_exchange_token",
        "client_id": settings.meta_app_id,
        "client_secret": settings.meta_app_secret,
        "fb_exchange_token": access_token,
    }
    try:
        async with httpx.AsyncClient(timeout=settings.meta_timeout_seconds) as client:
            response = await client.get(url, params=params)
    except httpx.HTTPError as e:
        logger.error(f"Token refresh transport error: {e}")
        return Result.failure(str(e) or e.__class__.__name__, NETWORK_ERROR)

    if response.status_code >= 400:
        return Result.failure(
            f"Token refresh error {response.status_code}: {response.text[:200]}",
            META_API_ERROR,
            status_code=response.status_code,
        )
    try:
        data = response.json()
    except ValueError:
        data = {}
    if not data.get("access_token"):
        return Result.failure("Token refresh response has no access_token", META_API_ERROR)
    return Result.success(data)
