"""HTML source client: searches Nitter mirrors with ordered fallback."""

import asyncio
import logging
from typing import List, Optional, Sequence

import httpx

from mentionfeed.models.post import SourceFailure, SourceResult
from mentionfeed.services.detector import MIN_BODY_BYTES, is_blocked_page
from mentionfeed.services.extractor import extract_follower_count, extract_posts
from mentionfeed.services.fetcher import USER_AGENT, FetchResult, fetch_page

logger = logging.getLogger(__name__)

SOURCE_NAME = "nitter"

DEFAULT_MIRRORS = (
    "https://nitter.net",
    "https://nitter.privacydev.net",
    "https://nitter.poast.org",
    "https://nitter.lucabased.xyz",
    "https://xcancel.com",
)

DEFAULT_TIMEOUT = 12.0  # seconds, per mirror attempt


class MirrorClient:
    """Search and profile lookups against an ordered list of mirror instances.

    Mirrors are always tried one at a time in list order.  The first mirror
    that returns a usable page wins; the rest are not contacted.
    """

    def __init__(
        self,
        mirrors: Sequence[str] = DEFAULT_MIRRORS,
        timeout: float = DEFAULT_TIMEOUT,
        min_body_bytes: int = MIN_BODY_BYTES,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.mirrors: List[str] = [m.rstrip("/") for m in mirrors if m.strip()]
        self.timeout = timeout
        self.min_body_bytes = min_body_bytes
        self._transport = transport

    @property
    def name(self) -> str:
        return SOURCE_NAME

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT, "Accept": "text/html"},
            transport=self._transport,
        )

    async def _attempt(
        self, client: httpx.AsyncClient, url: str, params: Optional[dict] = None
    ) -> Optional[FetchResult]:
        """Fetch *url*, returning *None* when the mirror is unusable."""
        try:
            result = await asyncio.wait_for(
                fetch_page(client, url, params=params, timeout=self.timeout),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Mirror: %s timed out after %.1fs", url, self.timeout)
            return None
        except (ValueError, httpx.HTTPError, RuntimeError) as exc:
            logger.warning("Mirror: skipping %s – %s", url, exc)
            return None

        if not 200 <= result.status_code < 300:
            logger.warning("Mirror: %s returned HTTP %d", url, result.status_code)
            return None
        if is_blocked_page(result.text, self.min_body_bytes):
            logger.warning("Mirror: %s served a blocked or placeholder page", url)
            return None
        return result

    async def search(self, keyword: str, max_results: Optional[int] = None) -> SourceResult:
        """Return posts matching *keyword* from the first mirror that has any."""
        async with self._client() as client:
            for mirror in self.mirrors:
                result = await self._attempt(
                    client, f"{mirror}/search", params={"f": "tweets", "q": keyword}
                )
                if result is None:
                    continue

                posts = extract_posts(result.text, mirror)
                if not posts:
                    logger.warning("Mirror: %s returned no extractable posts", mirror)
                    continue

                if max_results is not None:
                    posts = posts[:max_results]
                logger.info("Mirror: %s served %d posts", mirror, len(posts))
                return SourceResult(source=SOURCE_NAME, instance=mirror, posts=posts)

        return SourceResult(
            source=SOURCE_NAME,
            error=SourceFailure(
                kind="exhausted",
                message=f"All {len(self.mirrors)} mirror instances failed or were rate limited",
            ),
        )

    async def follower_count(self, handle: str) -> int:
        """Return *handle*'s follower count, or 0 when no mirror can tell."""
        async with self._client() as client:
            for mirror in self.mirrors:
                result = await self._attempt(client, f"{mirror}/{handle}")
                if result is None:
                    continue
                count = extract_follower_count(result.text)
                if count is not None:
                    return count
        logger.info("Mirror: follower count unavailable for %s", handle)
        return 0
