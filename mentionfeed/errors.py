from typing import Optional

from mentionfeed.models.post import SourceFailure


class ConfigError(RuntimeError):
    """Raised when required configuration is missing or invalid."""


class StorageError(RuntimeError):
    """Raised when reading or writing posts in the backing store fails."""


class IngestionError(RuntimeError):
    """Raised when the selected source cannot serve a run."""

    def __init__(self, failure: SourceFailure, source: Optional[str] = None) -> None:
        super().__init__(failure.message)
        self.failure = failure
        self.source = source
