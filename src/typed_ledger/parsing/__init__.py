"""Parsing module for the model and query DSLs."""

from typed_ledger.parsing.model_parser import ModelParser
from typed_ledger.parsing.query_format import format_queries, format_query, format_statement
from typed_ledger.parsing.query_parser import (
    Combinator,
    Comparison,
    Literal,
    OrderBy,
    ParameterRef,
    QueryDefinition,
    QueryParser,
    SelectStatement,
)

__all__ = [
    "Combinator",
    "Comparison",
    "Literal",
    "ModelParser",
    "OrderBy",
    "ParameterRef",
    "QueryDefinition",
    "QueryParser",
    "SelectStatement",
    "format_queries",
    "format_query",
    "format_statement",
]
