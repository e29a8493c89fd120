"""Serialize query syntax trees back to query-language text.

Parsing the output of :func:`format_statement` yields a statement equal to
the one that was formatted.
"""

from __future__ import annotations

from typing import Any

from typed_ledger.parsing.query_parser import (
    Combinator,
    Comparison,
    Literal,
    ParameterRef,
    Predicate,
    QueryDefinition,
    SelectStatement,
)

_STRING_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\t": "\\t", "\r": "\\r", "\0": "\\0"}


def format_value(value: Any) -> str:
    """Format a Python literal as query text."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return '"' + "".join(_STRING_ESCAPES.get(ch, ch) for ch in value) + '"'
    if isinstance(value, (int, float)):
        return repr(value)
    raise TypeError(f"Cannot format {type(value).__name__} value {value!r} as a query literal")


def format_operand(operand: Literal | ParameterRef | int) -> str:
    if isinstance(operand, ParameterRef):
        return f"_${operand.name}"
    if isinstance(operand, Literal):
        return format_value(operand.value)
    return format_value(operand)


def format_predicate(predicate: Predicate) -> str:
    """Format a predicate, parenthesizing every combinator."""
    if isinstance(predicate, Combinator):
        return f"({format_predicate(predicate.left)} {predicate.kind} {format_predicate(predicate.right)})"
    assert isinstance(predicate, Comparison)
    return f"{predicate.field} {predicate.operator} {format_operand(predicate.operand)}"


def format_statement(statement: SelectStatement) -> str:
    """Format a SELECT statement on a single line."""
    parts = [f"SELECT {statement.target}"]
    if statement.where is not None:
        where = format_predicate(statement.where)
        if isinstance(statement.where, Comparison):
            where = f"({where})"
        parts.append(f"WHERE {where}")
    if statement.order_by:
        keys = ", ".join(f"{o.field} {o.direction}" for o in statement.order_by)
        parts.append(f"ORDER BY [{keys}]")
    if statement.limit is not None:
        parts.append(f"LIMIT {format_operand(statement.limit)}")
    if statement.skip is not None:
        parts.append(f"SKIP {format_operand(statement.skip)}")
    return " ".join(parts)


def format_query(query: QueryDefinition, indent: str = "  ") -> str:
    """Format a named query block."""
    lines = [
        f"query {query.name} {{",
        f"{indent}description: {format_value(query.description)}",
        f"{indent}statement:",
        f"{indent * 3}{format_statement(query.statement)}",
        "}",
    ]
    return "\n".join(lines)


def format_queries(queries: list[QueryDefinition]) -> str:
    """Format several query blocks as one query file."""
    return "\n\n".join(format_query(q) for q in queries) + "\n"
