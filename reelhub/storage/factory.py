"""Backend selection. The only place that branches on ``storage_type``."""

import logging

from reelhub.config import Settings
from reelhub.core.errors import ConfigurationError
from reelhub.storage.base import ProgressStore

logger = logging.getLogger(__name__)

STORAGE_TYPES = ("memory", "sql", "redis", "http")


def create_store(settings: Settings) -> ProgressStore:
    """Build the ProgressStore chosen by ``settings.storage_type``."""
    storage_type = settings.storage_type.lower()

    if storage_type == "memory":
        from reelhub.storage.memory import MemoryStore

        store: ProgressStore = MemoryStore()
    elif storage_type == "sql":
        from reelhub.storage.sql import SqlStore

        store = SqlStore()
    elif storage_type == "redis":
        from reelhub.storage.redis_store import RedisStore

        if not settings.redis_url:
            raise ConfigurationError("storage_type=redis requires REDIS_URL")
        store = RedisStore(url=settings.redis_url)
    elif storage_type == "http":
        from reelhub.storage.http_store import HttpStore

        store = HttpStore(base_url=settings.remote_store_url)
    else:
        raise ConfigurationError(
            f"Unknown storage_type {settings.storage_type!r}; expected one of {STORAGE_TYPES}"
        )

    logger.info(f"Using {type(store).__name__} (save interval {store.save_interval}s)")
    return store
