"""SocialData.tools search API source client."""

import logging
from typing import List, Optional

import httpx
from pydantic import ValidationError

from mentionfeed.models.post import CanonicalPost, SourceFailure, SourceResult
from mentionfeed.services.normalizer import parse_absolute_time

logger = logging.getLogger(__name__)

SOURCE_NAME = "socialdata.tools"

API_URL = "https://api.socialdata.tools/twitter/search"
_API_TIMEOUT = 15


def _tweet_to_post(tweet: dict) -> CanonicalPost:
    """Map one SocialData tweet object onto :class:`CanonicalPost`.

    Quote posts count as reposts: ``repost_count`` is the sum of the source's
    ``retweet_count`` and ``quote_count``.

    Raises:
        ValidationError: if required fields are missing or invalid.
        KeyError: if the tweet has no id.
    """
    user = tweet.get("user") or {}
    # Absolute ISO timestamps only; a missing or bad value fails validation
    created_at = parse_absolute_time(tweet.get("tweet_created_at") or "")

    return CanonicalPost(
        external_id=str(tweet["id_str"]),
        content=tweet.get("full_text") or tweet.get("text") or "",
        author_handle=user.get("screen_name") or "",
        author_name=user.get("name") or user.get("screen_name") or "",
        author_avatar=user.get("profile_image_url_https") or None,
        author_followers=user.get("followers_count") or 0,
        like_count=tweet.get("favorite_count") or 0,
        repost_count=(tweet.get("retweet_count") or 0) + (tweet.get("quote_count") or 0),
        reply_count=tweet.get("reply_count") or 0,
        created_at=created_at,
    )


class SocialDataClient:
    """Single-endpoint client for the paid search API.

    The API key is passed in explicitly; resolving it from the environment is
    the configuration layer's job.
    """

    def __init__(
        self,
        api_key: str,
        api_url: str = API_URL,
        timeout: float = _API_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not api_key:
            raise ValueError("api_key must be non-empty")
        self.api_key = api_key
        self.api_url = api_url
        self.timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return SOURCE_NAME

    async def search(self, keyword: str, max_results: Optional[int] = 20) -> SourceResult:
        """Return the latest posts matching *keyword*.

        A non-success status is reported in ``SourceResult.error`` with the
        status code and response body; the request is not retried.
        """
        headers = {"Authorization": f"Bearer {self.api_key}", "Accept": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(
                    self.api_url,
                    params={"query": keyword, "type": "Latest"},
                    headers=headers,
                )
        except httpx.HTTPError as exc:
            logger.error("SocialData request failed: %s", exc)
            return SourceResult(
                source=SOURCE_NAME,
                error=SourceFailure(kind="api_error", message=f"API request failed: {exc}"),
            )

        if not resp.is_success:
            logger.error("SocialData API error: %d %s", resp.status_code, resp.text)
            return SourceResult(
                source=SOURCE_NAME,
                error=SourceFailure(
                    kind="api_error",
                    message=f"API error: {resp.status_code} - {resp.text}",
                    status=resp.status_code,
                    body=resp.text,
                ),
            )

        try:
            data = resp.json()
        except ValueError as exc:
            return SourceResult(
                source=SOURCE_NAME,
                error=SourceFailure(
                    kind="api_error",
                    message=f"API returned invalid JSON: {exc}",
                    status=resp.status_code,
                    body=resp.text,
                ),
            )

        tweets = data.get("tweets") if isinstance(data, dict) else None
        if not isinstance(tweets, list):
            tweets = []
        selected = tweets if max_results is None else tweets[:max_results]
        posts: List[CanonicalPost] = []
        for tweet in selected:
            if not isinstance(tweet, dict):
                logger.warning("SocialData: skipping non-object tweet entry %r", tweet)
                continue
            try:
                posts.append(_tweet_to_post(tweet))
            except (KeyError, TypeError, AttributeError, ValidationError) as exc:
                logger.warning("SocialData: skipping malformed tweet %s – %s", tweet.get("id_str"), exc)

        logger.info("Fetched %d posts from SocialData.tools", len(posts))
        return SourceResult(source=SOURCE_NAME, posts=posts, credits_used=len(tweets))
