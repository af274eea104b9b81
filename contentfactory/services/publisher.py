"""Publishing finished posts to the Circlo social platform over HTTP."""

import logging
from typing import Optional

import httpx

from contentfactory.config import settings
from contentfactory.orchestrator.errors import StageError
from contentfactory.schemas.content import PublishResult

logger = logging.getLogger(__name__)

CREATE_POST_PATH = "/api/user-preferences/recommend/create-post"


class CircloPublisher:
    """Creates posts through the platform's recommend/create-post endpoint.

    Delivery is at-most-once: a failed request is not retried, since the
    platform may already have created the post.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        profile: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.publisher.base_url).rstrip("/")
        self.api_token = api_token if api_token is not None else settings.publisher.api_token
        self.profile = profile or settings.publisher.profile
        self.timeout = timeout or settings.publisher.timeout_seconds
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    async def publish(
        self,
        *,
        niche: str,
        caption: str,
        media_url: str,
        keywords: Optional[list[str]] = None,
    ) -> PublishResult:
        """Publish one image post.

        Raises:
            StageError: On transport errors, non-2xx responses or a response
                without a post id.
        """
        payload = {
            "profile": self.profile,
            "niche": niche,
            "media_type": "image",
            "media_source": media_url,
            "caption": caption,
            "keywords": keywords or [],
        }
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    CREATE_POST_PATH, json=payload, headers=self._headers()
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            detail = e.response.text[:200]
            logger.error(f"Publish failed with {e.response.status_code}: {detail}")
            raise StageError(
                f"Failed to publish post: HTTP {e.response.status_code} {detail}",
                retryable=e.response.status_code >= 500,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Publish failed: {e}")
            raise StageError(f"Failed to publish post: {e}", retryable=True) from e

        post = (data.get("post") if isinstance(data, dict) else None) or {}
        if not post.get("id"):
            raise StageError(f"Publish response has no post id: {data}")
        logger.info(f"Published post {post['id']} to {niche}")
        return PublishResult(external_post_id=str(post["id"]))
