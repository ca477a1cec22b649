import copy
import logging
import re
from collections import defaultdict
from datetime import date, datetime
from typing import Any, Iterator, Optional, Sequence

from resource_storage.core.exceptions import DatabaseErrorCode, StorageError
from resource_storage.models.filter import (
    ComparisonOperation,
    LogicalOperation,
    Operation,
    Operator,
    ResourceFilter,
    SearchOperation,
)
from resource_storage.models.index import Index
from resource_storage.models.query import (
    Fields,
    Pagination,
    Sort,
    SortOrder,
    normalize_sort,
)

from .storage import Database

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10

_MISSING = object()
_WORD = re.compile(r"\w+")


def _resolve(resource: dict[str, Any], path: str) -> Any:
    value: Any = resource
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _assign(resource: dict[str, Any], path: str, value: Any) -> None:
    *parents, name = path.split(".")
    for part in parents:
        resource = resource.setdefault(part, {})
    resource[name] = value


def _unset(resource: dict[str, Any], path: str) -> bool:
    *parents, name = path.split(".")
    for part in parents:
        resource = resource.get(part)
        if not isinstance(resource, dict):
            return False
    return resource.pop(name, _MISSING) is not _MISSING


def _same_kind(candidate: Any, expected: Any) -> bool:
    # Booleans are not numbers
    return isinstance(candidate, bool) == isinstance(expected, bool)


def _equals(candidate: Any, expected: Any) -> bool:
    return _same_kind(candidate, expected) and candidate == expected


def _compare(operator: Operator, candidate: Any, expected: Any) -> bool:
    if not _same_kind(candidate, expected):
        return False
    try:
        if operator is Operator.GREATER_THAN:
            return candidate > expected
        if operator is Operator.GREATER_THAN_EQUAL:
            return candidate >= expected
        if operator is Operator.LESSER_THAN:
            return candidate < expected
        if operator is Operator.LESSER_THAN_EQUAL:
            return candidate <= expected
    except TypeError:
        # Values of different kinds never compare
        return False
    return False


def _is_in(candidate: Any, values: list[Any]) -> bool:
    return any(_equals(candidate, value) for value in values)


def _match_comparison(resource: dict[str, Any], operation: ComparisonOperation) -> bool:
    value = _resolve(resource, operation.field)

    if operation.type is Operator.EXISTS:
        return (value is not _MISSING) is operation.value

    if value is _MISSING:
        return operation.type in (Operator.NOT_EQUAL, Operator.NOT_IN)

    candidates = value if isinstance(value, list) else [value]

    if operation.type is Operator.EQUAL:
        return any(_equals(candidate, operation.value) for candidate in candidates)
    if operation.type is Operator.NOT_EQUAL:
        return not any(_equals(candidate, operation.value) for candidate in candidates)
    if operation.type is Operator.IN:
        return any(_is_in(candidate, operation.value) for candidate in candidates)
    if operation.type is Operator.NOT_IN:
        return not any(_is_in(candidate, operation.value) for candidate in candidates)
    if operation.type is Operator.REGEX:
        return any(
            isinstance(candidate, str) and operation.value.search(candidate) is not None
            for candidate in candidates
        )
    return any(
        _compare(operation.type, candidate, operation.value) for candidate in candidates
    )


def _string_values(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from _string_values(item)
    elif isinstance(value, list):
        for item in value:
            yield from _string_values(item)


def text_score(resource: dict[str, Any], query: str) -> int:
    """Counts the occurrences of the query terms in the resource strings."""
    terms = set(_WORD.findall(query.lower()))
    if not terms:
        return 0
    return sum(
        1
        for text in _string_values(resource)
        for word in _WORD.findall(text.lower())
        if word in terms
    )


def _match_operation(resource: dict[str, Any], operation: Operation) -> bool:
    if isinstance(operation, LogicalOperation):
        results = (matches(resource, sub_filter) for sub_filter in operation.filters)
        if operation.type is Operator.AND:
            return all(results)
        if operation.type is Operator.OR:
            return any(results)
        if operation.type is Operator.NOR:
            return not any(results)
    elif isinstance(operation, SearchOperation):
        return text_score(resource, operation.value) > 0
    elif isinstance(operation, ComparisonOperation):
        return _match_comparison(resource, operation)

    raise StorageError(
        f"Operation {operation.type} not supported",
        DatabaseErrorCode.BUILD_FILTERS_UNKNOWN_OPERATION,
    )


def matches(
    resource: dict[str, Any], resource_filter: Optional[ResourceFilter]
) -> bool:
    """Tests a resource against a filter, every operation must match."""
    if resource_filter is None:
        return True
    return all(
        _match_operation(resource, operation)
        for operation in resource_filter.operations
    )


def _sort_key(value: Any) -> tuple:
    # Missing values first, then booleans, numbers, strings and dates
    if value is _MISSING or value is None:
        return (0, 0, 0)
    if isinstance(value, bool):
        return (1, 0, value)
    if isinstance(value, (int, float)):
        return (1, 1, value)
    if isinstance(value, str):
        return (1, 2, value)
    if isinstance(value, datetime):
        return (1, 3, value)
    if isinstance(value, date):
        return (1, 4, value)
    return (1, 5, str(value))


def _project(resource: dict[str, Any], fields: Optional[Fields]) -> dict[str, Any]:
    if fields is None:
        return copy.deepcopy(resource)
    names, include = fields.projection()
    if not include:
        remaining = copy.deepcopy(resource)
        for name in names:
            _unset(remaining, name)
        return remaining

    projected: dict[str, Any] = {}
    for name in names:
        value = _resolve(resource, name)
        if value is not _MISSING:
            _assign(projected, name, copy.deepcopy(value))
    return projected


class MemoryStorage(Database):
    """A storage keeping resources in process memory.

    Resources are copied on the way in and on the way out. When several
    resources match, insertion order is used: get_one returns the first
    inserted and get without sort returns them in insertion order.
    """

    def __init__(self, default_limit: int = DEFAULT_LIMIT):
        self.default_limit = default_limit
        self._locations: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self._indexes: dict[str, dict[str, Index]] = defaultdict(dict)

    def _find(
        self, location: str, resource_filter: Optional[ResourceFilter]
    ) -> list[dict[str, Any]]:
        if location not in self._locations:
            return []
        return [
            resource
            for resource in self._locations[location]
            if matches(resource, resource_filter)
        ]

    async def add(
        self, location: str, resources: Sequence[dict[str, Any]]
    ) -> tuple[int, list[dict[str, Any]]]:
        stored = [copy.deepcopy(resource) for resource in resources]
        self._locations[location].extend(stored)
        return len(stored), copy.deepcopy(stored)

    async def get(
        self,
        location: str,
        resource_filter: Optional[ResourceFilter] = None,
        fields: Optional[Fields] = None,
        limit: Optional[int] = None,
        page: Optional[int] = None,
        sort: Optional[Sort] = None,
    ) -> tuple[list[dict[str, Any]], Pagination]:
        limit = limit or self.default_limit
        page = page or 0
        orders = normalize_sort(sort)

        search = (
            resource_filter.get_comparison_operation(Operator.SEARCH)
            if resource_filter is not None
            else None
        )
        scored = [
            (resource, text_score(resource, search.value) if search else 0)
            for resource in self._find(location, resource_filter)
        ]

        for field, order in reversed(list(orders.items())):
            if order is SortOrder.SCORE:
                scored.sort(key=lambda item: item[1], reverse=True)
            else:
                scored.sort(
                    key=lambda item: _sort_key(_resolve(item[0], field)),
                    reverse=order is SortOrder.DESC,
                )

        score_fields = [
            field for field, order in orders.items() if order is SortOrder.SCORE
        ]
        resources = []
        for resource, score in scored[page * limit : (page + 1) * limit]:
            projected = _project(resource, fields)
            for field in score_fields:
                projected[field] = score
            resources.append(projected)

        return resources, Pagination.build(limit=limit, page=page, size=len(scored))

    async def get_one(
        self,
        location: str,
        resource_filter: Optional[ResourceFilter] = None,
        fields: Optional[Fields] = None,
    ) -> Optional[dict[str, Any]]:
        found = self._find(location, resource_filter)
        if not found:
            return None
        return _project(found[0], fields)

    async def update_one(
        self, location: str, resource_filter: ResourceFilter, data: dict[str, Any]
    ) -> int:
        found = self._find(location, resource_filter)
        if not found:
            return 0
        for path, value in data.items():
            _assign(found[0], path, copy.deepcopy(value))
        return 1

    async def remove(self, location: str, resource_filter: ResourceFilter) -> int:
        found = self._find(location, resource_filter)
        if not found:
            return 0
        removed = {id(resource) for resource in found}
        self._locations[location] = [
            resource
            for resource in self._locations[location]
            if id(resource) not in removed
        ]
        return len(found)

    async def remove_field(
        self,
        location: str,
        field: str,
        resource_filter: Optional[ResourceFilter] = None,
    ) -> int:
        return sum(
            1
            for resource in self._find(location, resource_filter)
            if _unset(resource, field)
        )

    async def connect(self) -> None:
        logger.debug("Memory storage ready")

    async def close(self) -> None:
        self._locations.clear()
        self._indexes.clear()

    async def rename_location(self, location: str, target: str) -> None:
        if location not in self._locations:
            raise StorageError(
                f'Location "{location}" not found',
                DatabaseErrorCode.RENAME_LOCATION_NOT_FOUND,
            )
        self._locations[target] = self._locations.pop(location)
        self._indexes[target] = self._indexes.pop(location, {})

    async def remove_location(self, location: str) -> None:
        if location not in self._locations:
            raise StorageError(
                f'Location "{location}" not found',
                DatabaseErrorCode.REMOVE_LOCATION_NOT_FOUND,
            )
        del self._locations[location]
        self._indexes.pop(location, None)

    async def get_indexes(self, location: str) -> list[Index]:
        return list(self._indexes.get(location, {}).values())

    async def create_indexes(
        self, location: str, indexes: Sequence[Index]
    ) -> list[str]:
        self._locations.setdefault(location, [])
        for index in indexes:
            self._indexes[location][index.name] = index
        return [index.name for index in indexes]

    async def drop_index(self, location: str, name: str) -> None:
        if name not in self._indexes.get(location, {}):
            raise StorageError(
                f'Index "{name}" not found on location "{location}"',
                DatabaseErrorCode.DROP_INDEX_NOT_FOUND,
            )
        del self._indexes[location][name]
