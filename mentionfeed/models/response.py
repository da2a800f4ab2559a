from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from mentionfeed.models.post import CanonicalPost


class FailedWrite(BaseModel):
    external_id: str
    error: str


class IngestionSummary(BaseModel):
    """Result of one ingestion run, returned by the scrape trigger."""

    success: bool = True
    source: str
    instance: Optional[str] = None
    scraped: int
    saved: int
    failed: List[FailedWrite] = []
    credits_used: Optional[int] = None
    timestamp: datetime


class PostsResponse(BaseModel):
    posts: List[CanonicalPost]
    total: int
    limit: int
    offset: int
