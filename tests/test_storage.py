import pytest

from resource_storage.models.query import Fields, Pagination, SortOrder, normalize_sort
from resource_storage.services.storage import Database, Storage


class IncompleteStorage(Storage):
    async def add(self, location, resources):
        return len(resources), list(resources)


class DelegatingStorage(Storage):
    async def add(self, location, resources):
        return await super().add(location, resources)

    async def get(
        self,
        location,
        resource_filter=None,
        fields=None,
        limit=None,
        page=None,
        sort=None,
    ):
        return await super().get(location, resource_filter, fields, limit, page, sort)

    async def get_one(self, location, resource_filter=None, fields=None):
        return await super().get_one(location, resource_filter, fields)

    async def update_one(self, location, resource_filter, data):
        return await super().update_one(location, resource_filter, data)

    async def remove(self, location, resource_filter):
        return await super().remove(location, resource_filter)

    async def remove_field(self, location, field, resource_filter=None):
        return await super().remove_field(location, field, resource_filter)


def test_incomplete_storage_cannot_be_built():
    with pytest.raises(TypeError):
        IncompleteStorage()


def test_database_requires_administration_methods():
    class StorageOnly(Database, DelegatingStorage):
        pass

    with pytest.raises(TypeError):
        StorageOnly()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method,args",
    [
        ("add", ("location", [{}])),
        ("get", ("location",)),
        ("get_one", ("location",)),
        ("update_one", ("location", None, {})),
        ("remove", ("location", None)),
        ("remove_field", ("location", "field")),
    ],
)
async def test_base_methods_fail_loudly(method, args):
    storage = DelegatingStorage()

    with pytest.raises(NotImplementedError, match=f"{method} method not implemented"):
        await getattr(storage, method)(*args)


@pytest.mark.parametrize(
    "limit,page,size,pages",
    [(10, 0, 25, 3), (10, 2, 47, 5), (10, 0, 0, 0), (5, 1, 10, 2), (3, 0, 1, 1)],
)
def test_pagination_build(limit, page, size, pages):
    pagination = Pagination.build(limit=limit, page=page, size=size)

    assert pagination.model_dump() == {
        "limit": limit,
        "page": page,
        "pages": pages,
        "size": size,
    }


def test_fields_include_wins():
    assert Fields(include=["a"], exclude=["b"]).projection() == (["a"], True)
    assert Fields(exclude=["b"]).projection() == (["b"], False)
    assert Fields().projection() == ([], False)


def test_normalize_sort():
    assert normalize_sort({"a": "asc", "b": SortOrder.DESC, "c": "score"}) == {
        "a": SortOrder.ASC,
        "b": SortOrder.DESC,
        "c": SortOrder.SCORE,
    }
    assert normalize_sort(None) == {}

    with pytest.raises(ValueError):
        normalize_sort({"a": "up"})
