import re
from datetime import date
from enum import Enum
from typing import Any, Iterable, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict

PRIMITIVE_TYPES = (str, int, float, bool, date)


class Operator(str, Enum):
    OR = "or"
    NOR = "nor"
    AND = "and"
    EQUAL = "equal"
    EXISTS = "exists"
    NOT_EQUAL = "not_equal"
    IN = "in"
    NOT_IN = "not_in"
    GREATER_THAN = "greater_than"
    GREATER_THAN_EQUAL = "greater_than_equal"
    LESSER_THAN = "lesser_than"
    LESSER_THAN_EQUAL = "lesser_than_equal"
    REGEX = "regex"
    SEARCH = "search"


LOGICAL_OPERATORS = frozenset({Operator.OR, Operator.NOR, Operator.AND})
COMPARISON_OPERATORS = frozenset(
    set(Operator) - LOGICAL_OPERATORS - {Operator.SEARCH}
)


class ComparisonOperation(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Operator
    field: str
    value: Any


class LogicalOperation(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    type: Operator
    filters: tuple["ResourceFilter", ...]


class SearchOperation(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal[Operator.SEARCH] = Operator.SEARCH
    value: str


Operation = Union[ComparisonOperation, LogicalOperation, SearchOperation]


def _is_primitive(value: Any) -> bool:
    return isinstance(value, PRIMITIVE_TYPES)


def _check_field(field: Any) -> None:
    if not isinstance(field, str) or not field:
        raise TypeError(f"Invalid field: {field!r}")


class ResourceFilter:
    """A storage agnostic description of the resources to work on.

    Filters are persistent: every builder method returns a new filter holding
    one more operation and leaves the receiver untouched, so a filter handed
    to a storage can never change afterwards.

    A filter holds at most one operation of each logical type ("or", "nor",
    "and"); adding another one of the same type merges the sub filters into
    the existing operation.

    Example:
        ResourceFilter()
            .equal("status", "published")
            .in_("tag", ["a", "b"])
            .or_([
                ResourceFilter().equal("owner", "u1"),
                ResourceFilter().equal("owner", "u2"),
            ])
    """

    __slots__ = ("_operations",)

    def __init__(self, operations: Iterable[Operation] = ()):
        self._operations: tuple[Operation, ...] = tuple(operations)

    @property
    def operations(self) -> tuple[Operation, ...]:
        return self._operations

    def __repr__(self) -> str:
        return f"ResourceFilter({list(self._operations)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResourceFilter):
            return NotImplemented
        return self._operations == other._operations

    __hash__ = None  # type: ignore[assignment]

    def is_empty(self) -> bool:
        return not self._operations

    def _append(self, operation: Operation) -> "ResourceFilter":
        return ResourceFilter(self._operations + (operation,))

    def _add_comparison(
        self, field: str, value: Any, operator: Operator
    ) -> "ResourceFilter":
        _check_field(field)
        if not _is_primitive(value):
            raise TypeError(f"Invalid value for {operator.value}: {value!r}")
        return self._append(
            ComparisonOperation(type=operator, field=field, value=value)
        )

    def _add_membership(
        self, field: str, values: Sequence[Any], operator: Operator
    ) -> "ResourceFilter":
        _check_field(field)
        if not isinstance(values, (list, tuple)):
            raise TypeError(f"Invalid value for {operator.value}: {values!r}")
        for value in values:
            if not _is_primitive(value):
                raise TypeError(f"Invalid value for {operator.value}: {value!r}")
        return self._append(
            ComparisonOperation(type=operator, field=field, value=list(values))
        )

    def _add_logical(
        self, filters: Sequence["ResourceFilter"], operator: Operator
    ) -> "ResourceFilter":
        if not isinstance(filters, (list, tuple)):
            raise TypeError("Invalid filters")
        for resource_filter in filters:
            if not isinstance(resource_filter, ResourceFilter):
                raise TypeError("Invalid filters")

        operations = list(self._operations)
        for index, operation in enumerate(operations):
            if operation.type == operator:
                # Logical operation already present: extend its sub filters
                operations[index] = LogicalOperation(
                    type=operator, filters=operation.filters + tuple(filters)
                )
                return ResourceFilter(operations)

        return self._append(LogicalOperation(type=operator, filters=tuple(filters)))

    def equal(self, field: str, value: Any) -> "ResourceFilter":
        return self._add_comparison(field, value, Operator.EQUAL)

    def not_equal(self, field: str, value: Any) -> "ResourceFilter":
        return self._add_comparison(field, value, Operator.NOT_EQUAL)

    def greater_than(self, field: str, value: Any) -> "ResourceFilter":
        return self._add_comparison(field, value, Operator.GREATER_THAN)

    def greater_than_equal(self, field: str, value: Any) -> "ResourceFilter":
        return self._add_comparison(field, value, Operator.GREATER_THAN_EQUAL)

    def lesser_than(self, field: str, value: Any) -> "ResourceFilter":
        return self._add_comparison(field, value, Operator.LESSER_THAN)

    def lesser_than_equal(self, field: str, value: Any) -> "ResourceFilter":
        return self._add_comparison(field, value, Operator.LESSER_THAN_EQUAL)

    def in_(self, field: str, values: Sequence[Any]) -> "ResourceFilter":
        return self._add_membership(field, values, Operator.IN)

    def not_in(self, field: str, values: Sequence[Any]) -> "ResourceFilter":
        return self._add_membership(field, values, Operator.NOT_IN)

    def exists(self, field: str, value: bool) -> "ResourceFilter":
        """Requires the field to be present (True) or absent (False)."""
        _check_field(field)
        if not isinstance(value, bool):
            raise TypeError(f"Invalid value for exists: {value!r}")
        return self._append(
            ComparisonOperation(type=Operator.EXISTS, field=field, value=value)
        )

    def regex(self, field: str, value: re.Pattern) -> "ResourceFilter":
        """Requires the field to match a compiled regular expression."""
        _check_field(field)
        if not isinstance(value, re.Pattern):
            raise TypeError(f"Invalid value for regex: {value!r}")
        return self._append(
            ComparisonOperation(type=Operator.REGEX, field=field, value=value)
        )

    def search(self, value: str) -> "ResourceFilter":
        """Adds a full text search query."""
        if not isinstance(value, str):
            raise TypeError(f"Invalid value for search: {value!r}")
        return self._append(SearchOperation(value=value))

    def or_(self, filters: Sequence["ResourceFilter"]) -> "ResourceFilter":
        return self._add_logical(filters, Operator.OR)

    def nor(self, filters: Sequence["ResourceFilter"]) -> "ResourceFilter":
        return self._add_logical(filters, Operator.NOR)

    def and_(self, filters: Sequence["ResourceFilter"]) -> "ResourceFilter":
        return self._add_logical(filters, Operator.AND)

    def has_operation(self, operator: Operator) -> bool:
        """Tests if an operation of this type is present at the top level."""
        return any(operation.type == operator for operation in self._operations)

    def get_logical_operation(
        self, operator: Operator
    ) -> Optional[LogicalOperation]:
        """Finds a logical operation in this filter or its sub filters.

        Top level operations are looked at first, then sub filters are
        searched depth first.

        Args:
            operator: One of the logical operators

        Returns:
            The first matching operation, None if there is none
        """
        for operation in self._operations:
            if operation.type == operator:
                return operation

        for operation in self._operations:
            if operation.type in LOGICAL_OPERATORS:
                for resource_filter in operation.filters:
                    found = resource_filter.get_logical_operation(operator)
                    if found is not None:
                        return found

        return None

    def get_comparison_operation(
        self, operator: Operator, field: Optional[str] = None
    ) -> Optional[Union[ComparisonOperation, SearchOperation]]:
        """Finds an operation in this filter or its sub filters.

        Operations are walked in order and logical operations are searched
        depth first. A search operation can be found too, it has no field.

        Args:
            operator: The operator of the expected operation
            field: Restricts the lookup to this field when given

        Returns:
            The first matching operation, None if there is none
        """
        for operation in self._operations:
            if operation.type in LOGICAL_OPERATORS:
                for resource_filter in operation.filters:
                    found = resource_filter.get_comparison_operation(operator, field)
                    if found is not None:
                        return found
            elif operation.type == operator and (
                field is None or getattr(operation, "field", None) == field
            ):
                return operation

        return None


LogicalOperation.model_rebuild()
