import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from mentionfeed.dependencies import get_store
from mentionfeed.errors import StorageError
from mentionfeed.models.response import PostsResponse
from mentionfeed.services.store import PostStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Posts"])


@router.get("/init", summary="Create the posts table and indexes if missing")
async def init_db(store: PostStore = Depends(get_store)):
    try:
        await store.ensure_schema()
    except StorageError as exc:
        logger.error("Init error: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to initialize database", "message": str(exc)},
        )
    return {"success": True, "message": "Database initialized"}


@router.get(
    "/posts",
    response_model=PostsResponse,
    summary="List stored posts, newest first",
)
async def list_posts(
    limit: int = Query(default=50, ge=1, le=100, description="Page size (1–100)."),
    offset: int = Query(default=0, ge=0, description="Number of posts to skip."),
    store: PostStore = Depends(get_store),
):
    try:
        posts = await store.list_posts(limit=limit, offset=offset)
        total = await store.count()
    except StorageError as exc:
        logger.error("Failed to read posts: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to read posts", "message": str(exc)},
        )
    return PostsResponse(posts=posts, total=total, limit=limit, offset=offset)
