"""Process configuration.

Settings are resolved once from the environment (and an optional ``.env``
file) and passed explicitly into the clients and the store.

Environment variables
---------------------
``DATABASE_URL``         required; ``postgresql://…`` or ``sqlite:///path``
``SOCIALDATA_API_KEY``   enables the API source
``CRON_SECRET``          bearer secret for the scrape trigger (optional)
``SOURCE_MODE``          ``auto`` (default), ``api`` or ``html``
``TARGET_KEYWORD``       search keyword, default ``@zora``
``MAX_RESULTS``          posts per run, default 20
``NITTER_MIRRORS``       comma-separated mirror base URLs
``MIRROR_TIMEOUT``       seconds per mirror request, default 12
``ENRICH_FOLLOWERS``     look up follower counts on the HTML path, default true
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Literal, Mapping, Optional, Tuple

from dotenv import load_dotenv

from mentionfeed.errors import ConfigError
from mentionfeed.services.mirrors import DEFAULT_MIRRORS, DEFAULT_TIMEOUT

SourceMode = Literal["auto", "api", "html"]

_SOURCE_MODES = ("auto", "api", "html")


@dataclass(frozen=True)
class Settings:
    database_url: str
    socialdata_api_key: Optional[str] = None
    cron_secret: Optional[str] = None
    source_mode: SourceMode = "auto"
    target_keyword: str = "@zora"
    max_results: int = 20
    mirrors: Tuple[str, ...] = DEFAULT_MIRRORS
    mirror_timeout: float = DEFAULT_TIMEOUT
    enrich_followers: bool = True

    @property
    def use_api(self) -> bool:
        """Whether runs should use the API source rather than the mirrors."""
        if self.source_mode == "html":
            return False
        if self.source_mode == "api":
            return True
        return bool(self.socialdata_api_key)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _as_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = _clean(env.get(key))
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from exc
    if value < 1:
        raise ConfigError(f"{key} must be >= 1, got {value}")
    return value


def _as_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = _clean(env.get(key))
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {value}")
    return value


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build :class:`Settings` from *environ* (default: ``os.environ`` plus ``.env``).

    Raises:
        ConfigError: if ``DATABASE_URL`` is missing, a value is malformed, or
            ``SOURCE_MODE=api`` is set without ``SOCIALDATA_API_KEY``.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    database_url = _clean(environ.get("DATABASE_URL"))
    if not database_url:
        raise ConfigError("DATABASE_URL is not set.")

    source_mode = (_clean(environ.get("SOURCE_MODE")) or "auto").lower()
    if source_mode not in _SOURCE_MODES:
        raise ConfigError(f"SOURCE_MODE must be one of {', '.join(_SOURCE_MODES)}, got {source_mode!r}")

    api_key = _clean(environ.get("SOCIALDATA_API_KEY"))
    if source_mode == "api" and not api_key:
        raise ConfigError("SOCIALDATA_API_KEY is not set but SOURCE_MODE=api.")

    mirrors_raw = _clean(environ.get("NITTER_MIRRORS"))
    mirrors = (
        tuple(m.strip().rstrip("/") for m in mirrors_raw.split(",") if m.strip())
        if mirrors_raw
        else DEFAULT_MIRRORS
    )

    enrich_raw = (_clean(environ.get("ENRICH_FOLLOWERS")) or "true").lower()

    return Settings(
        database_url=database_url,
        socialdata_api_key=api_key,
        cron_secret=_clean(environ.get("CRON_SECRET")),
        source_mode=source_mode,  # type: ignore[arg-type]
        target_keyword=_clean(environ.get("TARGET_KEYWORD")) or "@zora",
        max_results=_as_int(environ, "MAX_RESULTS", 20),
        mirrors=mirrors,
        mirror_timeout=_as_float(environ, "MIRROR_TIMEOUT", DEFAULT_TIMEOUT),
        enrich_followers=enrich_raw in ("true", "1", "yes"),
    )


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, resolved on first use."""
    return load_settings()
