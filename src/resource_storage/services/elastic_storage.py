import logging
import re
from typing import Any, Iterator, Optional, Sequence

import backoff
import elastic_transport
from elasticsearch import AsyncElasticsearch
from elasticsearch.helpers import async_bulk

from resource_storage.core.exceptions import DatabaseErrorCode, StorageError
from resource_storage.models.filter import (
    ComparisonOperation,
    LogicalOperation,
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
CONNECT_MAX_TIME = 60

RANGE_OPERATORS = {
    Operator.GREATER_THAN: "gt",
    Operator.GREATER_THAN_EQUAL: "gte",
    Operator.LESSER_THAN: "lt",
    Operator.LESSER_THAN_EQUAL: "lte",
}

REMOVE_FIELD_SCRIPT = (
    "Map target = ctx._source;"
    " for (int i = 0; i < params.path.size() - 1; i++) {"
    " target = target.get(params.path[i]); }"
    " target.remove(params.path[params.path.size() - 1]);"
)


def _scan(source: str) -> Iterator[tuple[int, str, int]]:
    """Yields the position, character and group depth of each unescaped
    character outside character classes."""
    depth, index, in_class = 0, 0, False
    while index < len(source):
        char = source[index]
        if char == "\\":
            index += 2
            continue
        if in_class:
            in_class = char != "]"
        elif char == "[":
            in_class = True
            index += 1
            # A leading "^" negates, a leading "]" is literal
            if source[index : index + 1] == "^":
                index += 1
            if source[index : index + 1] == "]":
                index += 1
            continue
        else:
            if char == ")":
                depth -= 1
            yield index, char, depth
            if char == "(":
                depth += 1
        index += 1


def _split_alternatives(source: str) -> list[str]:
    cuts = [index for index, char, depth in _scan(source) if char == "|" and not depth]
    bounds = zip([-1] + cuts, cuts + [len(source)])
    return [source[start + 1 : end] for start, end in bounds]


def _anchor(alternative: str, pattern: re.Pattern) -> str:
    starts = alternative.startswith("^")
    body = alternative[1:] if starts else alternative
    ends = any(
        char == "$" and index == len(body) - 1 for index, char, _ in _scan(body)
    )
    if ends:
        body = body[:-1]
    if any(char in "^$" for _, char, _ in _scan(body)):
        raise StorageError(
            f"Regular expression {pattern.pattern!r} has anchors Lucene can't express",
            DatabaseErrorCode.BUILD_FILTERS_UNSUPPORTED_PATTERN,
        )
    return ("" if starts else ".*") + body + ("" if ends else ".*")


def build_regexp(pattern: re.Pattern) -> dict[str, Any]:
    """Converts a Python pattern to a Lucene regexp clause value.

    Lucene expressions always match the whole value, so unanchored ends of
    each top level alternative are opened with ".*" to keep the "search
    anywhere" meaning of the pattern.

    Raises:
        StorageError: If "^" or "$" is used elsewhere than at the ends of a
            top level alternative
    """
    alternatives = [
        _anchor(alternative, pattern)
        for alternative in _split_alternatives(pattern.pattern)
    ]
    if len(alternatives) == 1:
        source = alternatives[0]
    else:
        source = "|".join(f"({alternative})" for alternative in alternatives)

    clause: dict[str, Any] = {"value": source}
    if pattern.flags & re.IGNORECASE:
        clause["case_insensitive"] = True
    return clause


def build_query(
    resource_filter: Optional[ResourceFilter],
    search_fields: Sequence[str] = ("*",),
) -> dict[str, Any]:
    """Translates a filter into an Elasticsearch query.

    Comparisons go to the filter context, search and logical operations to
    the scoring context so relevance can be sorted on.

    Raises:
        StorageError: If an operation is not supported
    """
    if resource_filter is None or resource_filter.is_empty():
        return {"match_all": {}}

    must: list[dict[str, Any]] = []
    filters: list[dict[str, Any]] = []
    must_not: list[dict[str, Any]] = []

    for operation in resource_filter.operations:
        operator = operation.type

        if isinstance(operation, ComparisonOperation):
            field, value = operation.field, operation.value
            if operator is Operator.EQUAL:
                filters.append({"term": {field: value}})
            elif operator is Operator.NOT_EQUAL:
                must_not.append({"term": {field: value}})
            elif operator in RANGE_OPERATORS:
                filters.append({"range": {field: {RANGE_OPERATORS[operator]: value}}})
            elif operator is Operator.IN:
                filters.append({"terms": {field: value}})
            elif operator is Operator.NOT_IN:
                must_not.append({"terms": {field: value}})
            elif operator is Operator.EXISTS:
                (filters if value else must_not).append({"exists": {"field": field}})
            elif operator is Operator.REGEX:
                filters.append({"regexp": {field: build_regexp(value)}})
            else:
                raise _unsupported(operator)

        elif isinstance(operation, SearchOperation):
            must.append(
                {
                    "multi_match": {
                        "query": operation.value,
                        "fields": list(search_fields),
                        "lenient": True,
                    },
                }
            )

        elif isinstance(operation, LogicalOperation):
            queries = [build_query(sub, search_fields) for sub in operation.filters]
            if operator is Operator.AND:
                must.append({"bool": {"must": queries}})
            elif operator is Operator.OR:
                must.append({"bool": {"should": queries, "minimum_should_match": 1}})
            elif operator is Operator.NOR:
                must_not.extend(queries)
            else:
                raise _unsupported(operator)

        else:
            raise _unsupported(operator)

    bool_query: dict[str, Any] = {}
    if must:
        bool_query["must"] = must
    if filters:
        bool_query["filter"] = filters
    if must_not:
        bool_query["must_not"] = must_not
    return {"bool": bool_query}


def _unsupported(operator: Any) -> StorageError:
    return StorageError(
        f"Operation {operator} not supported",
        DatabaseErrorCode.BUILD_FILTERS_UNKNOWN_OPERATION,
    )


def _mapping_type(properties: dict[str, Any], path: str) -> str:
    *parents, name = path.split(".")
    for part in parents:
        properties = properties.get(part, {}).get("properties", {})
    return properties.get(name, {}).get("type", "object")


def build_sort(sort: Optional[Sort]) -> list[dict[str, Any]]:
    return [
        {"_score": {"order": "desc"}}
        if order is SortOrder.SCORE
        else {field: {"order": order.value}}
        for field, order in normalize_sort(sort).items()
    ]


def build_source(fields: Optional[Fields]) -> dict[str, list[str]]:
    if fields is None:
        return {}
    names, include = fields.projection()
    if not names and not include:
        return {}
    return {"source_includes" if include else "source_excludes": names}


class ElasticsearchStorage(Database):
    """A storage backed by Elasticsearch, each location being an index."""

    def __init__(
        self,
        elastic: AsyncElasticsearch,
        default_limit: int = DEFAULT_LIMIT,
        search_fields: Sequence[str] = ("*",),
    ):
        self.elastic = elastic
        self.default_limit = default_limit
        self.search_fields = list(search_fields)

    def _query(self, resource_filter: Optional[ResourceFilter]) -> dict[str, Any]:
        query = build_query(resource_filter, self.search_fields)
        logger.debug("Elasticsearch query: %s", query)
        return query

    async def add(
        self, location: str, resources: Sequence[dict[str, Any]]
    ) -> tuple[int, list[dict[str, Any]]]:
        actions = []
        for resource in resources:
            action = {"_op_type": "index", "_index": location, "_source": resource}
            if "id" in resource:
                action["_id"] = resource["id"]
            actions.append(action)

        inserted, _ = await async_bulk(
            client=self.elastic, actions=actions, refresh="wait_for"
        )
        return inserted, list(resources)

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
        score_fields = [f for f, order in orders.items() if order is SortOrder.SCORE]

        response = await self.elastic.search(
            index=location,
            query=self._query(resource_filter),
            size=limit,
            from_=page * limit,
            sort=build_sort(orders) or None,
            track_total_hits=True,
            ignore_unavailable=True,
            **build_source(fields),
        )

        resources = []
        for hit in response["hits"]["hits"]:
            resource = dict(hit.get("_source", {}))
            for field in score_fields:
                resource[field] = hit.get("_score")
            resources.append(resource)

        size = response["hits"]["total"]["value"]
        return resources, Pagination.build(limit=limit, page=page, size=size)

    async def get_one(
        self,
        location: str,
        resource_filter: Optional[ResourceFilter] = None,
        fields: Optional[Fields] = None,
    ) -> Optional[dict[str, Any]]:
        response = await self.elastic.search(
            index=location,
            query=self._query(resource_filter),
            size=1,
            ignore_unavailable=True,
            **build_source(fields),
        )
        hits = response["hits"]["hits"]
        if not hits:
            return None
        return hits[0].get("_source", {})

    async def update_one(
        self, location: str, resource_filter: ResourceFilter, data: dict[str, Any]
    ) -> int:
        response = await self.elastic.search(
            index=location,
            query=self._query(resource_filter),
            size=1,
            source=False,
            ignore_unavailable=True,
        )
        hits = response["hits"]["hits"]
        if not hits:
            return 0

        await self.elastic.update(
            index=hits[0]["_index"], id=hits[0]["_id"], doc=data, refresh="wait_for"
        )
        return 1

    async def remove(self, location: str, resource_filter: ResourceFilter) -> int:
        response = await self.elastic.delete_by_query(
            index=location,
            query=self._query(resource_filter),
            refresh=True,
            ignore_unavailable=True,
        )
        return response["deleted"]

    async def remove_field(
        self,
        location: str,
        field: str,
        resource_filter: Optional[ResourceFilter] = None,
    ) -> int:
        resource_filter = (resource_filter or ResourceFilter()).exists(field, True)
        response = await self.elastic.update_by_query(
            index=location,
            query=self._query(resource_filter),
            script={
                "source": REMOVE_FIELD_SCRIPT,
                "lang": "painless",
                "params": {"path": field.split(".")},
            },
            refresh=True,
            ignore_unavailable=True,
        )
        return response["updated"]

    @backoff.on_exception(
        backoff.expo, elastic_transport.ConnectionError, max_time=CONNECT_MAX_TIME
    )
    async def connect(self) -> None:
        info = await self.elastic.info()
        logger.info("Connected to Elasticsearch %s", info["version"]["number"])

    async def close(self) -> None:
        await self.elastic.close()

    async def rename_location(self, location: str, target: str) -> None:
        if not await self.elastic.indices.exists(index=location):
            raise StorageError(
                f'Location "{location}" not found',
                DatabaseErrorCode.RENAME_LOCATION_NOT_FOUND,
            )

        await self.elastic.reindex(
            source={"index": location},
            dest={"index": target},
            wait_for_completion=True,
            refresh=True,
        )
        await self.elastic.indices.delete(index=location)
        logger.info("Location %s renamed to %s", location, target)

    async def remove_location(self, location: str) -> None:
        if not await self.elastic.indices.exists(index=location):
            raise StorageError(
                f'Location "{location}" not found',
                DatabaseErrorCode.REMOVE_LOCATION_NOT_FOUND,
            )

        await self.elastic.indices.delete(index=location)
        logger.info("Location %s removed", location)

    async def _declared_indexes(
        self, location: str
    ) -> tuple[dict[str, Any], dict[str, list[str]]]:
        response = await self.elastic.indices.get_mapping(index=location)
        mappings = response[location]["mappings"]
        return mappings, dict(mappings.get("_meta", {}).get("indexes", {}))

    async def get_indexes(self, location: str) -> list[Index]:
        mappings, declared = await self._declared_indexes(location)
        properties = mappings.get("properties", {})
        return [
            Index(
                name=name,
                fields={field: _mapping_type(properties, field) for field in fields},
            )
            for name, fields in declared.items()
        ]

    async def create_indexes(
        self, location: str, indexes: Sequence[Index]
    ) -> list[str]:
        """Map the fields of the indexes, creating the index if needed.

        Index names are kept in the mapping metadata. A field already mapped
        with another type is rejected by Elasticsearch.
        """
        properties = {
            field: {"type": kind}
            for index in indexes
            for field, kind in index.fields.items()
        }
        names = {index.name: list(index.fields) for index in indexes}

        if await self.elastic.indices.exists(index=location):
            _, declared = await self._declared_indexes(location)
            await self.elastic.indices.put_mapping(
                index=location,
                properties=properties,
                meta={"indexes": {**declared, **names}},
            )
        else:
            await self.elastic.indices.create(
                index=location,
                mappings={"properties": properties, "_meta": {"indexes": names}},
            )

        logger.info("Indexes %s created on %s", list(names), location)
        return list(names)

    async def drop_index(self, location: str, name: str) -> None:
        """Forget an index.

        Elasticsearch cannot unmap a field: the fields stay mapped and only
        the index definition is removed.
        """
        _, declared = await self._declared_indexes(location)
        if name not in declared:
            raise StorageError(
                f'Index "{name}" not found on location "{location}"',
                DatabaseErrorCode.DROP_INDEX_NOT_FOUND,
            )

        del declared[name]
        await self.elastic.indices.put_mapping(
            index=location, meta={"indexes": declared}
        )
        logger.info("Index %s dropped from %s", name, location)
