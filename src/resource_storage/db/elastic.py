"""Process wide Elasticsearch client shared by the storages."""
import logging
from typing import Optional, Union

from elasticsearch import AsyncElasticsearch

logger = logging.getLogger(__name__)

client: Optional[AsyncElasticsearch] = None


def init_elastic(source: Union[str, AsyncElasticsearch]) -> AsyncElasticsearch:
    """Register the shared client, built from an URL if needed.

    Args:
        source: A ready client or the URL of the cluster

    Returns:
        The registered client
    """
    global client
    if isinstance(source, str):
        logger.debug("Creating Elasticsearch client for %s", source)
        source = AsyncElasticsearch(hosts=[source])
    client = source
    return client


def get_elastic() -> AsyncElasticsearch:
    if client is None:
        raise ValueError("Elasticsearch client is not initialized.")
    return client


async def close_elastic() -> None:
    global client
    if client is not None:
        await client.close()
        client = None
