import asyncio
from unittest.mock import patch

import pytest

from fixtures.entities import make_entities
from resource_storage.models.filter import ResourceFilter
from resource_storage.models.query import Fields, Pagination
from resource_storage.services import provider as provider_module
from resource_storage.services.memory_storage import MemoryStorage
from resource_storage.services.provider import EntityProvider


def paginated(size: int, limit: int = 10):
    """Answers get calls like a storage holding size entities."""

    async def get(location, resource_filter, fields, limit_, page, sort):
        start = page * limit
        entities = make_entities(max(0, min(limit, size - start)), start)
        return entities, Pagination.build(limit=limit, page=page, size=size)

    return get


@pytest.mark.parametrize("storage", [None, object(), "storage"])
def test_requires_a_storage(storage):
    with pytest.raises(TypeError):
        EntityProvider(storage, "location")


@pytest.mark.parametrize("location", [None, "", 42])
def test_requires_a_location(storage_stub, location):
    with pytest.raises(TypeError):
        EntityProvider(storage_stub, location)


def test_binding_is_read_only(stub_provider, storage_stub):
    assert stub_provider.storage is storage_stub
    assert stub_provider.location == "articles"

    with pytest.raises(AttributeError):
        stub_provider.location = "other"


@pytest.mark.asyncio
async def test_operations_use_the_bound_location(stub_provider, storage_stub):
    resource_filter = ResourceFilter().equal("id", "1")
    fields = Fields(include=["id"])
    storage_stub.get_one.return_value = {"id": "1"}
    storage_stub.get.return_value = ([], Pagination.build(10, 0, 0))
    storage_stub.add.return_value = (1, [{"id": "1"}])
    storage_stub.update_one.return_value = 1
    storage_stub.remove.return_value = 2
    storage_stub.remove_field.return_value = 3

    assert await stub_provider.get_one(resource_filter, fields) == {"id": "1"}
    await stub_provider.get(resource_filter, fields, 5, 1, {"id": "asc"})
    assert await stub_provider.add([{"id": "1"}]) == (1, [{"id": "1"}])
    assert await stub_provider.update_one(resource_filter, {"a": 1}) == 1
    assert await stub_provider.remove(resource_filter) == 2
    assert await stub_provider.remove_field("a", resource_filter) == 3

    storage_stub.get_one.assert_awaited_once_with("articles", resource_filter, fields)
    storage_stub.get.assert_awaited_once_with(
        "articles", resource_filter, fields, 5, 1, {"id": "asc"}
    )
    storage_stub.add.assert_awaited_once_with("articles", [{"id": "1"}])
    storage_stub.update_one.assert_awaited_once_with(
        "articles", resource_filter, {"a": 1}
    )
    storage_stub.remove.assert_awaited_once_with("articles", resource_filter)
    storage_stub.remove_field.assert_awaited_once_with("articles", "a", resource_filter)


@pytest.mark.asyncio
@pytest.mark.parametrize("entities", [[], None])
async def test_add_nothing_skips_the_storage(stub_provider, storage_stub, entities):
    assert await stub_provider.add(entities) == (0, [])

    storage_stub.add.assert_not_awaited()


@pytest.mark.asyncio
async def test_get_all_gathers_every_page(stub_provider, storage_stub):
    storage_stub.get.side_effect = paginated(size=25)
    resource_filter = ResourceFilter().equal("status", "published")

    entities = await stub_provider.get_all(resource_filter, None, {"id": "asc"})

    assert entities == make_entities(25)
    assert [call.args[4] for call in storage_stub.get.await_args_list] == [0, 1, 2]
    for call in storage_stub.get.await_args_list:
        assert call.args[:4] == ("articles", resource_filter, None, None)
        assert call.args[5] == {"id": "asc"}


@pytest.mark.asyncio
async def test_get_all_follows_the_number_of_pages(stub_provider, storage_stub):
    storage_stub.get.return_value = (
        [{"id": "x"}],
        Pagination(limit=10, page=2, pages=5, size=47),
    )

    entities = await stub_provider.get_all()

    assert len(entities) == 5
    pages = [call.args[4] for call in storage_stub.get.await_args_list]
    assert pages == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
async def test_get_all_with_nothing_to_fetch(stub_provider, storage_stub):
    storage_stub.get.side_effect = paginated(size=0)

    assert await stub_provider.get_all() == []
    assert storage_stub.get.await_count == 1


@pytest.mark.asyncio
async def test_get_all_stops_on_error(stub_provider, storage_stub):
    error = RuntimeError("page unavailable")
    fetch_page = paginated(size=35)

    async def get(*args):
        if args[4] == 2:
            raise error
        return await fetch_page(*args)

    storage_stub.get.side_effect = get

    with pytest.raises(RuntimeError) as raised:
        await stub_provider.get_all()

    assert raised.value is error
    assert storage_stub.get.await_count == 3


@pytest.mark.asyncio
async def test_get_all_against_memory_storage():
    storage = MemoryStorage()
    await storage.add("articles", make_entities(23))
    provider = EntityProvider(storage, "articles")

    entities = await provider.get_all(sort={"id": "desc"})

    assert len(entities) == 23
    assert entities == sorted(make_entities(23), key=lambda e: e["id"], reverse=True)


@pytest.mark.asyncio
async def test_fire_and_forget_reports_errors(storage_stub):
    errors = []
    provider = EntityProvider(storage_stub, "articles", error_sink=errors.append)
    error = RuntimeError("write failed")
    storage_stub.remove.side_effect = error

    task = provider.fire_and_forget(provider.remove(ResourceFilter()))
    await asyncio.wait([task])
    await asyncio.sleep(0)

    assert errors == [error]


@pytest.mark.asyncio
async def test_fire_and_forget_success(stub_provider, storage_stub):
    storage_stub.update_one.return_value = 1

    with patch.object(provider_module.logger, "error") as log_error:
        task = stub_provider.fire_and_forget(
            stub_provider.update_one(ResourceFilter(), {"a": 1})
        )
        assert await task == 1
        await asyncio.sleep(0)

    log_error.assert_not_called()


@pytest.mark.asyncio
async def test_fire_and_forget_logs_errors_by_default(stub_provider, storage_stub):
    storage_stub.add.side_effect = RuntimeError("write failed")

    with patch.object(provider_module.logger, "error") as log_error:
        task = stub_provider.fire_and_forget(stub_provider.add([{"id": "1"}]))
        await asyncio.wait([task])
        await asyncio.sleep(0)

    log_error.assert_called_once()
