from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from mentionfeed.services.normalizer import parse_count, parse_relative_time

SITE_URL = "https://x.com"


class CanonicalPost(BaseModel):
    """Normalized, platform-agnostic representation of one ingested post."""

    model_config = ConfigDict(frozen=True)

    external_id: str = Field(min_length=1)
    content: str = Field(min_length=1)
    author_handle: str = Field(min_length=1)
    author_name: str
    author_avatar: Optional[str] = None
    author_followers: int = Field(default=0, ge=0)
    like_count: int = Field(default=0, ge=0)
    repost_count: int = Field(default=0, ge=0)
    reply_count: int = Field(default=0, ge=0)
    created_at: datetime

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("content must not be blank")
        return value

    @field_validator("created_at")
    @classmethod
    def _aware_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def post_url(self) -> str:
        return f"{SITE_URL}/{self.author_handle}/status/{self.external_id}"


class RawExtraction(BaseModel):
    """One timeline entry as scraped, before counts and times are parsed."""

    external_id: str
    content: str
    author_handle: str
    author_name: str = ""
    author_avatar: Optional[str] = None
    author_followers: str = ""
    like_count: str = ""
    repost_count: str = ""
    quote_count: str = ""
    reply_count: str = ""
    created_at: str = ""

    def normalize(self, now: datetime) -> Optional[CanonicalPost]:
        """Return the canonical post, or *None* when required fields are empty."""
        if not self.external_id or not self.content.strip() or not self.author_handle:
            return None
        return CanonicalPost(
            external_id=self.external_id,
            content=self.content,
            author_handle=self.author_handle,
            author_name=self.author_name or self.author_handle,
            author_avatar=self.author_avatar,
            author_followers=parse_count(self.author_followers),
            like_count=parse_count(self.like_count),
            repost_count=parse_count(self.repost_count) + parse_count(self.quote_count),
            reply_count=parse_count(self.reply_count),
            created_at=parse_relative_time(self.created_at, now),
        )


class SourceFailure(BaseModel):
    """Why a source client could not serve a run."""

    kind: Literal["exhausted", "api_error"]
    message: str
    status: Optional[int] = None
    body: Optional[str] = None


class SourceResult(BaseModel):
    """Outcome of one source client search."""

    source: str
    posts: list[CanonicalPost] = Field(default_factory=list)
    instance: Optional[str] = None
    credits_used: Optional[int] = None
    error: Optional[SourceFailure] = None
