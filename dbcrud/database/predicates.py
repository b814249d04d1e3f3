"""Composable WHERE-clause conditions with positional bind parameters."""

import logging
from typing import Any, Iterable, List, Mapping, Sequence, Tuple, Union

from .exceptions import CoercionError, CoercionErrors
from .models import DbTable

logger = logging.getLogger(__name__)

Pairs = Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]


def as_pairs(values: Pairs) -> List[Tuple[str, Any]]:
    """Normalize a mapping or a sequence of (column, value) pairs."""
    if isinstance(values, Mapping):
        return list(values.items())
    return [(column, value) for column, value in values]


class Predicate:
    """A condition rendered as SQL text plus its bind parameters.

    The number of ``?`` placeholders in ``condition_sql`` always equals
    ``len(constants)``, in the same order.
    """

    @property
    def condition_sql(self) -> str:
        """Condition text without the WHERE keyword."""
        raise NotImplementedError

    @property
    def constants(self) -> Tuple[Any, ...]:
        """Bind parameters, one per placeholder."""
        raise NotImplementedError

    @property
    def is_empty(self) -> bool:
        return not self.condition_sql

    @property
    def where_sql(self) -> str:
        """Full WHERE clause, or an empty string."""
        condition = self.condition_sql
        return f"WHERE {condition}" if condition else ""

    def __or__(self, other: "Predicate") -> "Predicate":
        return OrPredicate(self, other)

    def __and__(self, other: "Predicate") -> "Predicate":
        return AndPredicate(self, other)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.condition_sql!r}, {list(self.constants)!r})"


class EmptyPredicate(Predicate):
    """Matches every row; renders no WHERE clause."""

    @property
    def condition_sql(self) -> str:
        return ""

    @property
    def constants(self) -> Tuple[Any, ...]:
        return ()


EMPTY = EmptyPredicate()


class SimpleConditions(Predicate):
    """Conjunction of ``column = value`` tests, in the order supplied."""

    def __init__(self, conditions: Pairs):
        self.conditions: Tuple[Tuple[str, Any], ...] = tuple(as_pairs(conditions))

    @property
    def condition_sql(self) -> str:
        terms = [
            f"{column} IS NULL" if value is None else f"{column} = ?"
            for column, value in self.conditions
        ]
        return " AND ".join(terms)

    @property
    def constants(self) -> Tuple[Any, ...]:
        return tuple(value for _, value in self.conditions if value is not None)


class _BinaryPredicate(Predicate):
    operator = ""

    def __init__(self, left: Predicate, right: Predicate):
        self.left = left
        self.right = right

    @property
    def condition_sql(self) -> str:
        if self.left.is_empty:
            return self.right.condition_sql
        if self.right.is_empty:
            return self.left.condition_sql
        return f"({self.left.condition_sql}) {self.operator} ({self.right.condition_sql})"

    @property
    def constants(self) -> Tuple[Any, ...]:
        return self.left.constants + self.right.constants


class OrPredicate(_BinaryPredicate):
    operator = "OR"


class AndPredicate(_BinaryPredicate):
    operator = "AND"


def eq(column: str, value: Any) -> SimpleConditions:
    """Single equality test, e.g. ``eq("id", 99) | eq("name", "account 99")``."""
    return SimpleConditions([(column, value)])


def coerce_values(table: DbTable, params: Mapping[str, str]) -> List[Tuple[str, Any]]:
    """Coerce string values to their column types, in the order given.

    Every coercion failure is collected and raised together as
    CoercionErrors. Columns must exist in ``table``.
    """
    failures: List[CoercionError] = []
    values: List[Tuple[str, Any]] = []
    for column, text in params.items():
        try:
            values.append((column, table.coerce(column, text)))
        except CoercionError as e:
            failures.append(e)

    if failures:
        raise CoercionErrors(failures)
    return values


def parse_predicate(table: DbTable, params: Mapping[str, str]) -> Predicate:
    """Build an equality filter from string values, coerced per column type.

    Unknown columns are ignored. Every coercion failure is collected and
    raised together as CoercionErrors.
    """
    known = {}
    for column, text in params.items():
        if not table.has_column(column):
            logger.debug(f"Ignoring filter on unknown column {table.name}.{column}")
            continue
        known[column] = text

    conditions = coerce_values(table, known)
    if not conditions:
        return EMPTY
    return SimpleConditions(conditions)


def placeholders(count: int) -> str:
    """Comma-separated ``?`` markers for ``count`` values."""
    return ", ".join("?" * count)


def column_list(columns: Sequence[str]) -> str:
    """Comma-separated column names."""
    return ", ".join(columns)
