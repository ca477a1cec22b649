import math
from enum import Enum
from typing import Mapping, Optional, Union

from pydantic import BaseModel


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"
    SCORE = "score"


Sort = Mapping[str, Union[SortOrder, str]]


def normalize_sort(sort: Optional[Sort]) -> dict[str, SortOrder]:
    """Converts a sort description to a dict of SortOrder, keeping key order.

    Raises:
        ValueError: If an order is not "asc", "desc" or "score"
    """
    if not sort:
        return {}
    return {field: SortOrder(order) for field, order in sort.items()}


class Fields(BaseModel):
    """Fields to include in or exclude from the returned resources.

    Only one of include and exclude is expected, include wins when both are
    given.
    """

    include: Optional[list[str]] = None
    exclude: Optional[list[str]] = None

    def projection(self) -> tuple[list[str], bool]:
        """Returns the list of fields and whether they are to be included."""
        if self.include is not None:
            return self.include, True
        return self.exclude or [], False


class Pagination(BaseModel):
    limit: int
    page: int
    pages: int
    size: int

    @classmethod
    def build(cls, limit: int, page: int, size: int) -> "Pagination":
        return cls(limit=limit, page=page, pages=math.ceil(size / limit), size=size)
