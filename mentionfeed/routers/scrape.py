import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from mentionfeed.config import Settings, get_settings
from mentionfeed.dependencies import get_source, get_store
from mentionfeed.errors import IngestionError, StorageError
from mentionfeed.models.response import IngestionSummary
from mentionfeed.services.ingestion import Source, run_ingestion
from mentionfeed.services.store import PostStore

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)
router = APIRouter(prefix="/api", tags=["Ingestion"])


def _authorized(authorization: Optional[str], secret: Optional[str]) -> bool:
    """Return True when no secret is configured or the bearer token matches it."""
    if not secret:
        return True
    expected = f"Bearer {secret}"
    return hmac.compare_digest((authorization or "").encode(), expected.encode())


@router.get(
    "/scrape",
    response_model=IngestionSummary,
    summary="Run one ingestion pass",
    description=(
        "Searches the configured source for the target keyword and upserts "
        "the results.  Uses the SocialData API when a key is configured and "
        "the Nitter mirror chain otherwise.\n\n"
        "When `CRON_SECRET` is set the request must carry "
        "`Authorization: Bearer <secret>`."
    ),
    responses={401: {}, 503: {}},
)
@limiter.limit("5/minute")
async def scrape(
    request: Request,
    settings: Settings = Depends(get_settings),
    store: PostStore = Depends(get_store),
    source: Source = Depends(get_source),
):
    if not _authorized(request.headers.get("authorization"), settings.cron_secret):
        logger.warning("Scrape trigger rejected: bad or missing bearer secret")
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    logger.info(
        "Scrape request received",
        extra={"source": source.name, "keyword": settings.target_keyword},
    )

    try:
        return await run_ingestion(
            store,
            source,
            keyword=settings.target_keyword,
            max_results=settings.max_results,
            enrich=settings.enrich_followers,
        )
    except IngestionError as exc:
        return JSONResponse(status_code=503, content={"error": str(exc), "posts": 0})
    except StorageError as exc:
        logger.error("Scrape failed on storage: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "message": str(exc)},
        )
