from unittest.mock import patch

import pytest

from resource_storage.core.config import Settings
from resource_storage.db import elastic
from resource_storage.services.elastic_storage import ElasticsearchStorage
from resource_storage.services.factory import get_storage, open_storage
from resource_storage.services.memory_storage import MemoryStorage


@pytest.fixture
def config():
    return Settings(default_limit=25, search_fields=["title", "tags"])


def test_get_memory_storage(config):
    storage = get_storage("memory", config)

    assert isinstance(storage, MemoryStorage)
    assert storage.default_limit == 25


def test_get_elasticsearch_storage(config, es_client):
    elastic.init_elastic(es_client)
    try:
        storage = get_storage("elasticsearch", config)
    finally:
        elastic.client = None

    assert isinstance(storage, ElasticsearchStorage)
    assert storage.elastic is es_client
    assert storage.default_limit == 25
    assert storage.search_fields == ["title", "tags"]


def test_get_elasticsearch_storage_requires_a_client(config):
    with pytest.raises(ValueError):
        get_storage("elasticsearch", config)


def test_get_unknown_storage(config):
    with pytest.raises(TypeError, match="Unknown Storage type"):
        get_storage("mongodb", config)


def test_configured_storage_type_is_the_default():
    storage = get_storage(config=Settings(storage_type="memory"))

    assert isinstance(storage, MemoryStorage)


@pytest.mark.asyncio
async def test_open_memory_storage(config):
    async with open_storage("memory", config) as storage:
        await storage.add("articles", [{"id": "1"}])
        assert await storage.get_one("articles") == {"id": "1"}

    assert await storage.get_one("articles") is None


@pytest.mark.asyncio
async def test_open_elasticsearch_storage(config, es_client):
    with patch(
        "resource_storage.db.elastic.AsyncElasticsearch", return_value=es_client
    ) as client_class:
        async with open_storage("elasticsearch", config) as storage:
            assert storage.elastic is es_client
            es_client.info.assert_awaited_once()

    client_class.assert_called_once_with(hosts=[config.es_url])
    es_client.close.assert_awaited_once()
    assert elastic.client is None


@pytest.mark.asyncio
async def test_close_elastic_without_client():
    elastic.client = None

    await elastic.close_elastic()

    assert elastic.client is None


@pytest.mark.asyncio
async def test_open_storage_reuses_a_registered_client(config, es_client):
    elastic.init_elastic(es_client)
    try:
        with patch("resource_storage.db.elastic.AsyncElasticsearch") as client_class:
            async with open_storage("elasticsearch", config) as storage:
                assert storage.elastic is es_client

        client_class.assert_not_called()
        es_client.close.assert_not_awaited()
        assert elastic.client is es_client
    finally:
        elastic.client = None


@pytest.mark.asyncio
@pytest.mark.parametrize("configure_logging", [False, True])
async def test_open_storage_configures_logging_on_demand(configure_logging):
    config = Settings(configure_logging=configure_logging, log_level="DEBUG")

    with patch("resource_storage.services.factory.setup_logging") as setup_logging:
        async with open_storage("memory", config):
            pass

    if configure_logging:
        setup_logging.assert_called_once_with("DEBUG")
    else:
        setup_logging.assert_not_called()
