from typing import NamedTuple
from urllib.parse import urlparse

import httpx

MAX_CONTENT_SIZE = 10 * 1024 * 1024  # 10 MB
TIMEOUT = 12  # seconds
ALLOWED_SCHEMES = {"http", "https"}

USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64; rv:128.0) Gecko/20100101 Firefox/128.0"


class FetchResult(NamedTuple):
    url: str
    status_code: int
    text: str


def _validate_url(url: str) -> None:
    """Raise ValueError if *url* is not an absolute http(s) URL."""
    parsed = urlparse(url)

    if parsed.scheme not in ALLOWED_SCHEMES:
        raise ValueError(f"Scheme '{parsed.scheme}' is not allowed. Use http or https.")

    if not parsed.hostname:
        raise ValueError("URL must have a valid hostname.")


async def fetch_page(
    client: httpx.AsyncClient,
    url: str,
    params: dict | None = None,
    timeout: float = TIMEOUT,
) -> FetchResult:
    """GET *url* and return its status and body without raising on HTTP errors.

    The timeout applies to this request alone, so callers iterating over
    several hosts can move on as soon as one of them stalls.

    Raises:
        ValueError: if the URL is not an absolute http(s) URL.
        httpx.HTTPError: on network errors and timeouts.
        RuntimeError: if the response body exceeds MAX_CONTENT_SIZE.
    """
    _validate_url(url)

    async with client.stream("GET", url, params=params, timeout=timeout) as response:
        content_length = response.headers.get("content-length")
        if content_length and int(content_length) > MAX_CONTENT_SIZE:
            raise RuntimeError("Response body exceeds the maximum allowed size.")

        chunks = []
        total = 0
        async for chunk in response.aiter_bytes():
            total += len(chunk)
            if total > MAX_CONTENT_SIZE:
                raise RuntimeError("Response body exceeds the maximum allowed size.")
            chunks.append(chunk)

        return FetchResult(
            url=str(response.url),
            status_code=response.status_code,
            text=b"".join(chunks).decode(errors="replace"),
        )
