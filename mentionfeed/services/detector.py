"""Block / placeholder page detection for mirror responses.

Mirror instances rarely fail with a clean HTTP error.  More often they answer
``200 OK`` with a challenge page, a "rate limited" notice, or an almost empty
shell.  :func:`is_blocked_page` classifies such bodies so the mirror client
can move on to the next instance.
"""

import re

from bs4 import BeautifulSoup

# Bodies shorter than this are treated as placeholders rather than timelines.
MIN_BODY_BYTES = 1000

# ---------------------------------------------------------------------------
# Block and rate-limit fingerprints
# ---------------------------------------------------------------------------
_BLOCK_PATTERN = re.compile(
    # Nitter's own rate-limit and error notices
    r"instance has been rate limited"
    r"|rate limit exceeded"
    r"|too many requests"
    r"|<div class=\"error-panel\""
    # Cloudflare / anti-bot interstitials
    r"|just a moment\.\.\."
    r"|verifying you are human"
    r"|checking your browser"
    r"|cf-browser-verification"
    r"|<title>\s*access denied"
    # Generic upstream failures rendered as 200
    r"|bad gateway"
    r"|service unavailable",
    re.IGNORECASE,
)


def _page_chrome(html: str) -> str:
    """Return *html* with timeline entries removed.

    Post text can quote any of the block phrases, so markers are only matched
    against the page around the timeline.
    """
    if "timeline-item" not in html:
        return html
    soup = BeautifulSoup(html, "lxml")
    for item in soup.select("div.timeline-item"):
        item.decompose()
    return str(soup)


def is_blocked_page(html: str, min_body_bytes: int = MIN_BODY_BYTES) -> bool:
    """Return True when *html* looks like a block, challenge, or placeholder page.

    Args:
        html: Response body returned by the mirror.
        min_body_bytes: Bodies below this size (UTF-8 encoded) are treated as
            placeholders.
    """
    if len(html.encode("utf-8", errors="replace")) < min_body_bytes:
        return True
    return bool(_BLOCK_PATTERN.search(_page_chrome(html)))
