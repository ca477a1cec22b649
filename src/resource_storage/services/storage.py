from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from resource_storage.models.filter import ResourceFilter
from resource_storage.models.index import Index
from resource_storage.models.query import Fields, Pagination, Sort


def _not_implemented(name: str) -> NotImplementedError:
    return NotImplementedError(f"{name} method not implemented for this Storage")


class Storage(ABC):
    """CRUD operations every storage backend must provide.

    A location is the backend's notion of a collection (an index, a table...).
    Errors are raised from the awaited coroutine and are never wrapped.
    """

    @abstractmethod
    async def add(
        self, location: str, resources: Sequence[dict[str, Any]]
    ) -> tuple[int, list[dict[str, Any]]]:
        """Add resources to a location.

        Args:
            location: The location to add resources to
            resources: The resources to store

        Returns:
            The number of inserted resources and the inserted resources
        """
        raise _not_implemented("add")

    @abstractmethod
    async def get(
        self,
        location: str,
        resource_filter: Optional[ResourceFilter] = None,
        fields: Optional[Fields] = None,
        limit: Optional[int] = None,
        page: Optional[int] = None,
        sort: Optional[Sort] = None,
    ) -> tuple[list[dict[str, Any]], Pagination]:
        """Fetch a page of resources.

        Args:
            location: The location to search in
            resource_filter: Rules to filter resources
            fields: Fields to include or exclude, all fields by default
            limit: Maximum number of resources per page, backend default if None
            page: Zero-based page number, 0 by default
            sort: Field names mapped to "asc", "desc" or "score"

        Returns:
            The resources of the page and the pagination information
        """
        raise _not_implemented("get")

    @abstractmethod
    async def get_one(
        self,
        location: str,
        resource_filter: Optional[ResourceFilter] = None,
        fields: Optional[Fields] = None,
    ) -> Optional[dict[str, Any]]:
        """Fetch a single resource.

        Which resource is returned when several match is backend defined.

        Args:
            location: The location to search in
            resource_filter: Rules to filter resources
            fields: Fields to include or exclude, all fields by default

        Returns:
            The resource or None if nothing matches
        """
        raise _not_implemented("get_one")

    @abstractmethod
    async def update_one(
        self, location: str, resource_filter: ResourceFilter, data: dict[str, Any]
    ) -> int:
        """Merge data into at most one matching resource.

        Args:
            location: The location of the resource
            resource_filter: Rules to find the resource to update
            data: The fields to set

        Returns:
            1 if a resource matched, 0 otherwise
        """
        raise _not_implemented("update_one")

    @abstractmethod
    async def remove(self, location: str, resource_filter: ResourceFilter) -> int:
        """Remove every matching resource.

        Returns:
            The number of removed resources
        """
        raise _not_implemented("remove")

    @abstractmethod
    async def remove_field(
        self,
        location: str,
        field: str,
        resource_filter: Optional[ResourceFilter] = None,
    ) -> int:
        """Remove a field from every matching resource holding it.

        Returns:
            The number of updated resources
        """
        raise _not_implemented("remove_field")


class Database(Storage):
    """A storage which also manages its connection and its locations."""

    @abstractmethod
    async def connect(self) -> None:
        raise _not_implemented("connect")

    @abstractmethod
    async def close(self) -> None:
        raise _not_implemented("close")

    @abstractmethod
    async def rename_location(self, location: str, target: str) -> None:
        """Rename a location.

        Raises:
            StorageError: If the location does not exist
        """
        raise _not_implemented("rename_location")

    @abstractmethod
    async def remove_location(self, location: str) -> None:
        """Remove a location and all its resources.

        Raises:
            StorageError: If the location does not exist
        """
        raise _not_implemented("remove_location")

    @abstractmethod
    async def get_indexes(self, location: str) -> list[Index]:
        """List the indexes declared on a location."""
        raise _not_implemented("get_indexes")

    @abstractmethod
    async def create_indexes(
        self, location: str, indexes: Sequence[Index]
    ) -> list[str]:
        """Declare indexes on a location, replacing those with the same name.

        Args:
            location: The location to index
            indexes: The indexes to declare

        Returns:
            The names of the declared indexes
        """
        raise _not_implemented("create_indexes")

    @abstractmethod
    async def drop_index(self, location: str, name: str) -> None:
        """Drop an index from a location.

        Raises:
            StorageError: If the location has no index with this name
        """
        raise _not_implemented("drop_index")
