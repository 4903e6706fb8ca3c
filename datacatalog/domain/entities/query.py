"""
Filter expressions for entity queries.

Expressions are plain nested lists so they can be stored, logged and built up
incrementally::

    ["=", "id", 1]
    ["and", ["=", "variable", 4], ["in", "key", ["MA", "NY"]]]

``compile_filter`` turns an expression into a SQLAlchemy clause for a table.
"""
from typing import Any, List, Sequence, Tuple

from sqlalchemy import Table, and_ as sql_and, not_ as sql_not, or_ as sql_or, true

Expression = List[Any]
SortSpec = Tuple[str, str]

COMPARISON_OPERATORS = {"=", "!=", "<", "<=", ">", ">=", "like", "in", "notin"}
LOGICAL_OPERATORS = {"and", "or", "not", "nor"}


class InvalidFilterError(ValueError):
    """Raised for malformed filter expressions or filter arguments."""


def eq(field: str, value: Any) -> Expression:
    return ["=", field, value]


def neq(field: str, value: Any) -> Expression:
    return ["!=", field, value]


def gt(field: str, value: Any) -> Expression:
    return [">", field, value]


def gte(field: str, value: Any) -> Expression:
    return [">=", field, value]


def lt(field: str, value: Any) -> Expression:
    return ["<", field, value]


def lte(field: str, value: Any) -> Expression:
    return ["<=", field, value]


def like(field: str, value: str) -> Expression:
    return ["like", field, value]


def in_(field: str, values: Sequence[Any]) -> Expression:
    return ["in", field, list(values)]


def nin(field: str, values: Sequence[Any]) -> Expression:
    return ["notin", field, list(values)]


def and_(*expressions: Expression) -> Expression:
    return ["and", *expressions]


def or_(*expressions: Expression) -> Expression:
    return ["or", *expressions]


def not_(expression: Expression) -> Expression:
    return ["not", expression]


def nor(*expressions: Expression) -> Expression:
    return ["nor", *expressions]


def sort_asc(field: str) -> SortSpec:
    return (field, "asc")


def sort_desc(field: str) -> SortSpec:
    return (field, "desc")


# Model field names that are stored under a different column name.
FIELD_ALIASES = {"data_schema": "schema"}


def _column(table: Table, field: str):
    name = FIELD_ALIASES.get(field, field)
    try:
        return table.c[name]
    except KeyError:
        raise InvalidFilterError(f"Unknown field '{field}' for table '{table.name}'")


def compile_filter(table: Table, expression: Expression):
    """Build a SQLAlchemy boolean clause for ``expression`` against ``table``."""
    if not expression:
        return true()

    op, *args = expression

    if op in LOGICAL_OPERATORS:
        clauses = [compile_filter(table, arg) for arg in args]
        if op == "and":
            return sql_and(*clauses)
        if op == "or":
            return sql_or(*clauses)
        if op == "not":
            return sql_not(clauses[0])
        return sql_and(*[sql_not(c) for c in clauses])

    if op not in COMPARISON_OPERATORS:
        raise InvalidFilterError(f"Invalid operator: {op}")
    if len(args) != 2:
        raise InvalidFilterError(f"Operator '{op}' expects a field and a value, got {args!r}")

    field, value = args
    column = _column(table, field)

    if op == "=":
        return column.is_(None) if value is None else column == value
    if op == "!=":
        return column.is_not(None) if value is None else column != value
    if op == "<":
        return column < value
    if op == "<=":
        return column <= value
    if op == ">":
        return column > value
    if op == ">=":
        return column >= value
    if op == "like":
        return column.like(f"%{value}%")
    if op == "in":
        return column.in_(list(value))
    return column.not_in(list(value))
