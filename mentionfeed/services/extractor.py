"""Timeline extraction from Nitter-style HTML.

Each timeline entry is scanned with a series of independent field lookups.
A lookup that finds nothing returns ``None`` instead of raising, so a change
in one part of the markup only loses that field.  An entry is kept only when
the external id and body text both resolve.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
from urllib.parse import unquote, urljoin

from bs4 import BeautifulSoup, Tag
from pydantic import ValidationError

from mentionfeed.models.post import CanonicalPost, RawExtraction
from mentionfeed.services.normalizer import parse_count

logger = logging.getLogger(__name__)

# "/zora/status/1843012345678901234#m" or an absolute URL with the same path
_STATUS_PATH_RE = re.compile(r"/([A-Za-z0-9_]{1,50})/status/(\d+)")

# Nitter proxies media under /pic/<url-encoded original path>
_PIC_PROXY_RE = re.compile(r"/pic/(?:orig/)?(.+)$")

_STAT_ICONS = {
    "icon-comment": "reply_count",
    "icon-retweet": "repost_count",
    "icon-quote": "quote_count",
    "icon-heart": "like_count",
}


def _status_link(entry: Tag) -> Optional[Tuple[str, str]]:
    """Return *(handle, external_id)* from the entry's status permalink."""
    candidates = entry.select("a.tweet-link[href]") or entry.select('a[href*="/status/"]')
    for link in candidates:
        match = _STATUS_PATH_RE.search(str(link["href"]))
        if match:
            return match.group(1), match.group(2)
    return None


def _display_name(entry: Tag) -> Optional[str]:
    node = entry.select_one("a.fullname")
    if node:
        name = node.get("title") or node.get_text(strip=True)
        return str(name).strip() or None
    return None


def _avatar_url(entry: Tag, instance: str) -> Optional[str]:
    img = entry.select_one("img.avatar[src]")
    if not img:
        return None
    src = urljoin(instance.rstrip("/") + "/", str(img["src"]))
    match = _PIC_PROXY_RE.search(src)
    if match:
        original = unquote(match.group(1))
        if original.startswith("pbs.twimg.com"):
            return f"https://{original}"
        if original.startswith("profile_images/"):
            return f"https://pbs.twimg.com/{original}"
    return src


def _body_text(entry: Tag) -> Optional[str]:
    nodes = entry.select("div.tweet-content")
    if not nodes:
        return None
    # Quoted posts nest their own tweet-content; the innermost block of the
    # outer post is the first one in document order.
    text = nodes[0].get_text(separator=" ", strip=True)
    text = re.sub(r"\s+", " ", text).strip()
    return text or None


def _stat_counts(entry: Tag) -> Dict[str, str]:
    """Map count field names to the raw text next to each stat icon."""
    counts: Dict[str, str] = {}
    for icon in entry.select(".tweet-stats span[class*='icon-']"):
        container = icon.parent
        if container is None:
            continue
        for cls in icon.get("class", []):
            field = _STAT_ICONS.get(cls)
            if field and field not in counts:
                counts[field] = container.get_text(strip=True)
    return counts


def _timestamp_text(entry: Tag) -> Optional[str]:
    link = entry.select_one("span.tweet-date a")
    if not link:
        return None
    # The title attribute carries the absolute date; the text is relative ("5m").
    title = link.get("title")
    if title:
        return str(title).strip()
    return link.get_text(strip=True) or None


def extract_raw(html: str, instance: str) -> List[RawExtraction]:
    """Return raw timeline entries from *html* in document order.

    Entries without a status permalink or without body text are skipped.
    """
    soup = BeautifulSoup(html, "lxml")
    results: List[RawExtraction] = []

    for index, entry in enumerate(soup.select("div.timeline-item")):
        ids = _status_link(entry)
        if ids is None:
            logger.debug("Extractor: entry %d on %s has no status link", index, instance)
            continue
        body = _body_text(entry)
        if body is None:
            logger.debug("Extractor: entry %d on %s has no content", index, instance)
            continue

        handle, external_id = ids
        results.append(
            RawExtraction(
                external_id=external_id,
                content=body,
                author_handle=handle,
                author_name=_display_name(entry) or handle,
                author_avatar=_avatar_url(entry, instance),
                created_at=_timestamp_text(entry) or "",
                **_stat_counts(entry),
            )
        )

    return results


def extract_posts(html: str, instance: str, now: Optional[datetime] = None) -> List[CanonicalPost]:
    """Extract canonical posts from one mirror search page."""
    now = now or datetime.now(timezone.utc)
    posts: List[CanonicalPost] = []
    for raw in extract_raw(html, instance):
        try:
            post = raw.normalize(now)
        except ValidationError as exc:
            logger.debug("Extractor: dropping entry %s on %s – %s", raw.external_id, instance, exc)
            continue
        if post is not None:
            posts.append(post)
    return posts


def extract_follower_count(html: str) -> Optional[int]:
    """Return the follower count shown on a profile page, if present."""
    soup = BeautifulSoup(html, "lxml")
    node = soup.select_one("li.followers span.profile-stat-num")
    if not node:
        return None
    text = node.get_text(strip=True)
    if not text:
        return None
    return parse_count(text)
