from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from resource_storage.core.config import Settings, settings
from resource_storage.core.logger import setup_logging
from resource_storage.db import elastic

from .elastic_storage import ElasticsearchStorage
from .memory_storage import MemoryStorage
from .storage import Database


def get_storage(
    storage_type: Optional[str] = None, config: Optional[Settings] = None
) -> Database:
    """Build the storage of the given type.

    Args:
        storage_type: "memory" or "elasticsearch", the configured one if None
        config: Settings to build the storage from, the global ones if None

    Raises:
        TypeError: If the storage type is unknown
    """
    config = config or settings
    storage_type = storage_type or config.storage_type

    if storage_type == "memory":
        return MemoryStorage(default_limit=config.default_limit)
    if storage_type == "elasticsearch":
        return ElasticsearchStorage(
            elastic.get_elastic(),
            default_limit=config.default_limit,
            search_fields=config.search_fields,
        )

    raise TypeError("Unknown Storage type")


@asynccontextmanager
async def open_storage(
    storage_type: Optional[str] = None, config: Optional[Settings] = None
) -> AsyncIterator[Database]:
    """Connect a storage for the duration of the block.

    An Elasticsearch client registered beforehand is reused and left open,
    otherwise one is created from the settings and closed on exit. Logging
    is configured only when the settings ask for it.
    """
    config = config or settings
    storage_type = storage_type or config.storage_type

    if config.configure_logging:
        setup_logging(config.log_level)

    owns_client = storage_type == "elasticsearch" and elastic.client is None
    if owns_client:
        elastic.init_elastic(config.es_url)

    storage = get_storage(storage_type, config)
    try:
        await storage.connect()
        yield storage
    finally:
        if owns_client:
            await elastic.close_elastic()
        elif storage_type != "elasticsearch":
            await storage.close()
