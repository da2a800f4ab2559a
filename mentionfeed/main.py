import logging
import logging.config
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from mentionfeed.config import get_settings
from mentionfeed.errors import ConfigError
from mentionfeed.routers.posts import router as posts_router
from mentionfeed.routers.scrape import limiter, router as scrape_router
from mentionfeed.services.store import open_store

logging.config.dictConfig(
    {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "format": '{"time": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}',
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json",
            },
        },
        "root": {"level": "INFO", "handlers": ["console"]},
    }
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Missing DATABASE_URL (or an API mode without a key) stops startup here.
    settings = get_settings()
    app.state.store = open_store(settings.database_url)
    logger.info("Store opened for %s", settings.database_url.split(":", 1)[0])
    try:
        yield
    finally:
        await app.state.store.close()
        app.state.store = None


app = FastAPI(
    title="mentionfeed",
    description="Collects posts mentioning a keyword from SocialData or Nitter mirrors and stores them.",
    version="1.0.0",
    lifespan=lifespan,
)

# Rate-limiting state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(ConfigError)
async def config_exception_handler(request: Request, exc: ConfigError) -> JSONResponse:
    logger.error("Configuration error for %s: %s", request.url, exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Server misconfigured", "message": str(exc)},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception for %s", request.url)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


app.include_router(scrape_router)
app.include_router(posts_router)


@app.get("/", summary="Health check")
async def root() -> dict:
    return {"message": "Hello from mentionfeed"}
