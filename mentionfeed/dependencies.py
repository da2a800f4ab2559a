"""FastAPI dependencies shared by the routers."""

from typing import Union

from fastapi import Depends, Request

from mentionfeed.config import Settings, get_settings
from mentionfeed.services.ingestion import build_source
from mentionfeed.services.mirrors import MirrorClient
from mentionfeed.services.socialdata import SocialDataClient
from mentionfeed.services.store import PostStore, open_store


def get_store(request: Request, settings: Settings = Depends(get_settings)) -> PostStore:
    """Return the application's store, opening it on first use."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        store = open_store(settings.database_url)
        request.app.state.store = store
    return store


def get_source(settings: Settings = Depends(get_settings)) -> Union[SocialDataClient, MirrorClient]:
    return build_source(settings)
