import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

from resource_storage.models.filter import ResourceFilter
from resource_storage.models.query import Fields, Pagination, Sort

from .storage import Storage

logger = logging.getLogger(__name__)

T = TypeVar("T")

ErrorSink = Callable[[BaseException], None]


def log_error(error: BaseException) -> None:
    logger.error(
        "Error while performing a storage operation: %s", error, exc_info=error
    )


class EntityProvider:
    """CRUD operations on the entities of a single storage location.

    The provider holds no entity, every call goes straight to the storage
    with the bound location.

    Args:
        storage: The storage holding the entities
        location: The location of the entities in the storage
        error_sink: Receives the errors of fire and forget operations,
            errors are logged by default
    """

    def __init__(
        self,
        storage: Storage,
        location: str,
        error_sink: Optional[ErrorSink] = None,
    ):
        if not isinstance(storage, Storage):
            raise TypeError("storage must be of type Storage")
        if not isinstance(location, str) or not location:
            raise TypeError("An EntityProvider needs a location")

        self._storage = storage
        self._location = location
        self._error_sink = error_sink or log_error
        self._background_tasks: set[asyncio.Task] = set()

    @property
    def storage(self) -> Storage:
        return self._storage

    @property
    def location(self) -> str:
        return self._location

    async def get_one(
        self,
        resource_filter: Optional[ResourceFilter] = None,
        fields: Optional[Fields] = None,
    ) -> Optional[dict[str, Any]]:
        return await self._storage.get_one(self._location, resource_filter, fields)

    async def get(
        self,
        resource_filter: Optional[ResourceFilter] = None,
        fields: Optional[Fields] = None,
        limit: Optional[int] = None,
        page: Optional[int] = None,
        sort: Optional[Sort] = None,
    ) -> tuple[list[dict[str, Any]], Pagination]:
        return await self._storage.get(
            self._location, resource_filter, fields, limit, page, sort
        )

    async def get_all(
        self,
        resource_filter: Optional[ResourceFilter] = None,
        fields: Optional[Fields] = None,
        sort: Optional[Sort] = None,
    ) -> list[dict[str, Any]]:
        """Fetch every matching entity, page after page.

        Pages are requested one at a time with the storage default limit.
        An error on any page is raised and the pages already fetched are
        dropped.

        Returns:
            The entities of all pages in page order
        """
        entities: list[dict[str, Any]] = []
        page = 0

        while True:
            resources, pagination = await self.get(
                resource_filter, fields, None, page, sort
            )
            entities.extend(resources)

            if page >= pagination.pages - 1:
                return entities
            page += 1

    async def add(
        self, entities: Optional[Sequence[dict[str, Any]]]
    ) -> tuple[int, list[dict[str, Any]]]:
        if not entities:
            return 0, []
        return await self._storage.add(self._location, entities)

    async def update_one(
        self, resource_filter: ResourceFilter, data: dict[str, Any]
    ) -> int:
        return await self._storage.update_one(self._location, resource_filter, data)

    async def remove(self, resource_filter: ResourceFilter) -> int:
        return await self._storage.remove(self._location, resource_filter)

    async def remove_field(
        self, field: str, resource_filter: Optional[ResourceFilter] = None
    ) -> int:
        return await self._storage.remove_field(self._location, field, resource_filter)

    def fire_and_forget(self, operation: Awaitable[T]) -> "asyncio.Task[T]":
        """Run an operation in the background.

        The task is kept alive until done and its error, if any, goes to the
        error sink instead of being lost with the task.

        Example:
            provider.fire_and_forget(provider.remove(resource_filter))
        """
        task = asyncio.ensure_future(operation)
        self._background_tasks.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._error_sink(error)
