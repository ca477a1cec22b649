from enum import IntEnum
from typing import Optional


class DatabaseErrorCode(IntEnum):
    """Codes of the errors raised by the storage backends."""

    RENAME_LOCATION_NOT_FOUND = 0x000
    REMOVE_LOCATION_NOT_FOUND = 0x001
    BUILD_FILTERS_UNKNOWN_OPERATION = 0x002
    BUILD_FILTERS_UNSUPPORTED_PATTERN = 0x003
    DROP_INDEX_NOT_FOUND = 0x004


class StorageError(Exception):
    """An error raised by a storage backend.

    Args:
        message: Human readable description, a generic one is built from the
            code when omitted
        code: The code identifying the error
    """

    def __init__(
        self, message: Optional[str] = None, code: Optional[DatabaseErrorCode] = None
    ):
        self.code = code
        self.message = message or f'A storage error occurred with code "{code}"'
        super().__init__(self.message)
