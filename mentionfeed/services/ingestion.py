"""Ingestion orchestration: one source, optional enrichment, sequential upserts."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol, Union

from mentionfeed.config import Settings
from mentionfeed.errors import IngestionError, StorageError
from mentionfeed.models.post import CanonicalPost, SourceResult
from mentionfeed.models.response import FailedWrite, IngestionSummary
from mentionfeed.services.mirrors import MirrorClient
from mentionfeed.services.socialdata import SocialDataClient
from mentionfeed.services.store import PostStore

logger = logging.getLogger(__name__)

# Bounds the number of profile lookups made per run
ENRICHMENT_LIMIT = 10
# Pause between profile lookups, in seconds
ENRICHMENT_DELAY = 0.5


class Source(Protocol):
    @property
    def name(self) -> str: ...

    async def search(self, keyword: str, max_results: Optional[int] = None) -> SourceResult: ...


def build_source(settings: Settings) -> Union[SocialDataClient, MirrorClient]:
    """Pick the API client when it is configured, the mirror client otherwise."""
    if settings.use_api:
        logger.info("Ingestion: using SocialData API source")
        return SocialDataClient(settings.socialdata_api_key or "")
    logger.info("Ingestion: using mirror source (%d instances)", len(settings.mirrors))
    return MirrorClient(settings.mirrors, timeout=settings.mirror_timeout)


async def enrich_followers(
    client: MirrorClient,
    posts: List[CanonicalPost],
    limit: int = ENRICHMENT_LIMIT,
    delay: float = ENRICHMENT_DELAY,
) -> List[CanonicalPost]:
    """Fill in ``author_followers`` for the first *limit* distinct handles.

    Lookups run one at a time with *delay* seconds between them.  Handles past
    the limit, and lookups that fail, keep a follower count of 0.
    """
    handles: List[str] = []
    for post in posts:
        if post.author_handle not in handles:
            handles.append(post.author_handle)
    handles = handles[:limit]

    followers: Dict[str, int] = {}
    for index, handle in enumerate(handles):
        if index:
            await asyncio.sleep(delay)
        try:
            followers[handle] = await client.follower_count(handle)
        except Exception as exc:
            logger.warning("Ingestion: follower lookup failed for %s – %s", handle, exc)
            followers[handle] = 0

    return [
        post.model_copy(update={"author_followers": followers[post.author_handle]})
        if followers.get(post.author_handle)
        else post
        for post in posts
    ]


async def run_ingestion(
    store: PostStore,
    source: Source,
    keyword: str,
    max_results: int = 20,
    enrich: bool = True,
    enrichment_limit: int = ENRICHMENT_LIMIT,
    enrichment_delay: float = ENRICHMENT_DELAY,
) -> IngestionSummary:
    """Run one ingestion pass and return its summary.

    Steps:
    1. Ensure the storage schema exists.
    2. Search the source; a source failure ends the run before any write.
    3. On the mirror path, enrich posts with follower counts.
    4. Upsert each post in source order.  A failed write is recorded and the
       remaining posts are still written.

    Raises:
        IngestionError: if the source reports exhaustion or an API error.
        StorageError: if the schema cannot be ensured.
    """
    await store.ensure_schema()

    result = await source.search(keyword, max_results=max_results)
    if result.error is not None:
        logger.error("Ingestion: %s failed – %s", result.source, result.error.message)
        raise IngestionError(result.error, source=result.source)

    posts = result.posts[:max_results]

    if enrich and isinstance(source, MirrorClient) and posts:
        posts = await enrich_followers(
            source, posts, limit=enrichment_limit, delay=enrichment_delay
        )

    saved = 0
    failed: List[FailedWrite] = []
    for post in posts:
        try:
            await store.upsert(post)
        except StorageError as exc:
            logger.error("Ingestion: failed to save %s – %s", post.external_id, exc)
            failed.append(FailedWrite(external_id=post.external_id, error=str(exc)))
            continue
        saved += 1

    summary = IngestionSummary(
        source=result.source,
        instance=result.instance,
        scraped=len(posts),
        saved=saved,
        failed=failed,
        credits_used=result.credits_used,
        timestamp=datetime.now(timezone.utc),
    )
    logger.info(
        "Ingestion: %s scraped=%d saved=%d failed=%d",
        summary.instance or summary.source,
        summary.scraped,
        summary.saved,
        len(failed),
    )
    return summary
