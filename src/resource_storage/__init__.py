from resource_storage.core.exceptions import DatabaseErrorCode, StorageError
from resource_storage.models.filter import Operator, ResourceFilter
from resource_storage.models.index import Index
from resource_storage.models.query import Fields, Pagination, SortOrder
from resource_storage.services.elastic_storage import ElasticsearchStorage
from resource_storage.services.factory import get_storage, open_storage
from resource_storage.services.memory_storage import MemoryStorage
from resource_storage.services.provider import EntityProvider
from resource_storage.services.storage import Database, Storage

__all__ = [
    "Database",
    "DatabaseErrorCode",
    "ElasticsearchStorage",
    "EntityProvider",
    "Fields",
    "Index",
    "MemoryStorage",
    "Operator",
    "Pagination",
    "ResourceFilter",
    "SortOrder",
    "Storage",
    "StorageError",
    "get_storage",
    "open_storage",
]
