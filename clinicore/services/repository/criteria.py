"""Criteria Statement Builder.

Turns criteria mappings into parameterized SQL for one table:
- Literal values compare with ``=``
- Lists and tuples become ``IN``
- ``{"operator": op, "value": v}`` selects an explicit comparison
- ``None``, ``UNSET`` and ``""`` mean "no filter on this field"

Identifiers come only from the builder's table name and field allow-list;
values are always bound as ``?`` parameters.
"""

import re
from enum import Enum

import typing as t
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass, field

from ._base import (
    UNSET,
    Criteria,
    InvalidCriteriaError,
    InvalidFieldError,
    QueryOptions,
    SortDirection,
    is_defined,
)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class Operator(Enum):
    """Comparison operators accepted in the explicit criteria form."""

    EQUALS = "="
    GREATER_THAN = ">"
    LESS_THAN = "<"
    GREATER_THAN_OR_EQUAL = ">="
    LESS_THAN_OR_EQUAL = "<="
    LIKE = "LIKE"
    BETWEEN = "BETWEEN"
    IN = "IN"

    @classmethod
    def parse(cls, value: "Operator | str") -> "Operator | None":
        if isinstance(value, Operator):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


_EXPLICIT_OPERATORS = frozenset(
    {
        Operator.EQUALS,
        Operator.GREATER_THAN,
        Operator.LESS_THAN,
        Operator.GREATER_THAN_OR_EQUAL,
        Operator.LESS_THAN_OR_EQUAL,
        Operator.LIKE,
        Operator.BETWEEN,
    },
)


@dataclass(frozen=True)
class Statement:
    sql: str
    params: list[t.Any] = field(default_factory=list)


@dataclass(frozen=True)
class Condition:
    """One ``field <op> value`` term of a WHERE clause."""

    field: str
    operator: Operator
    value: t.Any

    def to_sql(self) -> tuple[str, list[t.Any]]:
        match self.operator:
            case Operator.IN:
                return self._sql_in()
            case Operator.BETWEEN:
                return self._sql_between()
            case _:
                return self._sql_compare()

    def _sql_compare(self) -> tuple[str, list[t.Any]]:
        return f"{self.field} {self.operator.value} ?", [self.value]

    def _sql_in(self) -> tuple[str, list[t.Any]]:
        values = list(self.value)
        if not values:
            return "1 = 0", []
        placeholders = ", ".join("?" for _ in values)
        return f"{self.field} IN ({placeholders})", values

    def _sql_between(self) -> tuple[str, list[t.Any]]:
        low, high = self.value
        return f"{self.field} BETWEEN ? AND ?", [low, high]


def _is_skipped(value: t.Any) -> bool:
    return value is None or value is UNSET or (isinstance(value, str) and not value)


class StatementBuilder:
    """Builds statements against one table and a fixed set of columns."""

    def __init__(
        self,
        table: str,
        primary_key: str,
        fields: Collection[str],
        entity_name: str | None = None,
    ) -> None:
        for identifier in (table, primary_key, *fields):
            if not _IDENTIFIER.match(identifier):
                msg = f"Invalid SQL identifier: {identifier!r}"
                raise ValueError(msg)
        self.table = table
        self.primary_key = primary_key
        self.fields = frozenset(fields) | {primary_key}
        self.entity_name = entity_name or table

    def _check_field(self, name: str, operation: str) -> str:
        if name not in self.fields:
            raise InvalidFieldError(self.entity_name, name, operation)
        return name

    def _explicit_condition(self, name: str, term: Mapping[str, t.Any]) -> Condition:
        if "operator" not in term:
            raise InvalidCriteriaError(self.entity_name, name, "mapping values need an 'operator'")
        operator = Operator.parse(term["operator"])
        if operator not in _EXPLICIT_OPERATORS:
            reason = f"unsupported operator {term['operator']!r}"
            raise InvalidCriteriaError(self.entity_name, name, reason)
        value = term.get("value", UNSET)

        if operator is Operator.BETWEEN:
            if not isinstance(value, list | tuple) or len(value) != 2:
                reason = "BETWEEN requires exactly two values"
                raise InvalidCriteriaError(self.entity_name, name, reason)
            return Condition(name, operator, tuple(value))

        if not is_defined(value):
            reason = f"operator {operator.value} requires a value"
            raise InvalidCriteriaError(self.entity_name, name, reason)
        if isinstance(value, list | tuple | Mapping):
            reason = f"operator {operator.value} requires a scalar value"
            raise InvalidCriteriaError(self.entity_name, name, reason)
        return Condition(name, operator, value)

    def conditions(self, criteria: Criteria | None) -> list[Condition]:
        """Translate criteria into conditions, dropping the no-filter entries."""
        result: list[Condition] = []
        for name, value in (criteria or {}).items():
            self._check_field(name, "query")
            if _is_skipped(value):
                continue
            if isinstance(value, Mapping):
                condition = self._explicit_condition(name, value)
            elif isinstance(value, list | tuple | set | frozenset):
                condition = Condition(name, Operator.IN, tuple(value))
            else:
                condition = Condition(name, Operator.EQUALS, value)
            result.append(condition)
        return result

    def where(self, criteria: Criteria | None) -> tuple[str, list[t.Any]]:
        clauses: list[str] = []
        params: list[t.Any] = []
        for condition in self.conditions(criteria):
            sql, values = condition.to_sql()
            clauses.append(sql)
            params.extend(values)
        if not clauses:
            return "", params
        return " WHERE " + " AND ".join(clauses), params

    def _order_and_page(self, options: QueryOptions | None) -> tuple[str, list[t.Any]]:
        if options is None:
            return "", []
        sql = ""
        params: list[t.Any] = []
        if options.order_by:
            column = self._check_field(options.order_by, "order")
            direction = SortDirection.parse(options.order_direction)
            sql += f" ORDER BY {column} {direction.value}"
        if options.limit is not None:
            sql += " LIMIT ?"
            params.append(options.limit)
        elif options.offset:
            # SQLite only accepts OFFSET after a LIMIT
            sql += " LIMIT -1"
        if options.offset:
            sql += " OFFSET ?"
            params.append(options.offset)
        return sql, params

    def select(self, criteria: Criteria | None, options: QueryOptions | None = None) -> Statement:
        where, params = self.where(criteria)
        tail, tail_params = self._order_and_page(options)
        return Statement(f"SELECT * FROM {self.table}{where}{tail}", params + tail_params)

    def select_by_id(self, entity_id: t.Any) -> Statement:
        return Statement(
            f"SELECT * FROM {self.table} WHERE {self.primary_key} = ?",
            [entity_id],
        )

    def count(self, criteria: Criteria | None) -> Statement:
        where, params = self.where(criteria)
        return Statement(f"SELECT COUNT(*) AS count FROM {self.table}{where}", params)

    def defined_fields(
        self,
        entity: Mapping[str, t.Any],
        operation: str,
        exclude: Sequence[str] = (),
    ) -> dict[str, t.Any]:
        values = {
            name: value
            for name, value in entity.items()
            if is_defined(value) and name not in exclude
        }
        for name in values:
            self._check_field(name, operation)
        return values

    def insert(self, values: Mapping[str, t.Any]) -> Statement:
        columns = list(values)
        placeholders = ", ".join("?" for _ in columns)
        return Statement(
            f"INSERT INTO {self.table} ({', '.join(columns)}) VALUES ({placeholders})",
            [values[column] for column in columns],
        )

    def _set_clause(self, values: Mapping[str, t.Any]) -> tuple[str, list[t.Any]]:
        return ", ".join(f"{column} = ?" for column in values), list(values.values())

    def update_by_id(self, entity_id: t.Any, values: Mapping[str, t.Any]) -> Statement:
        assignments, params = self._set_clause(values)
        return Statement(
            f"UPDATE {self.table} SET {assignments} WHERE {self.primary_key} = ?",
            [*params, entity_id],
        )

    def update(self, criteria: Criteria | None, values: Mapping[str, t.Any]) -> Statement:
        assignments, params = self._set_clause(values)
        where, where_params = self.where(criteria)
        return Statement(f"UPDATE {self.table} SET {assignments}{where}", params + where_params)

    def delete_by_id(self, entity_id: t.Any) -> Statement:
        return Statement(f"DELETE FROM {self.table} WHERE {self.primary_key} = ?", [entity_id])

    def delete(self, criteria: Criteria | None) -> Statement:
        where, params = self.where(criteria)
        return Statement(f"DELETE FROM {self.table}{where}", params)
