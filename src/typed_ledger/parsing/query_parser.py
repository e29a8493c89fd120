"""Parser for the query definition language."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator

import ply.yacc as yacc

from typed_ledger.errors import QuerySyntaxError
from typed_ledger.parsing.model_lexer import find_column
from typed_ledger.parsing.query_lexer import QueryLexer

COMPARISON_OPERATORS = ("==", "!=", "<", "<=", ">", ">=")
ORDERING_OPERATORS = ("<", "<=", ">", ">=")
CONTAINS = "CONTAINS"
AND = "AND"
OR = "OR"
ASC = "ASC"
DESC = "DESC"


@dataclass(frozen=True)
class Literal:
    """A literal operand: string, integer, decimal or boolean."""

    value: Any


@dataclass(frozen=True)
class ParameterRef:
    """A ``_$name`` placeholder, filled in when the query is run."""

    name: str


@dataclass(frozen=True)
class Comparison:
    """A comparison of a field path against an operand."""

    field: str  # field name or dotted path like "owner.lastName"
    operator: str  # ==, !=, <, <=, >, >=, CONTAINS
    operand: Literal | ParameterRef

    @property
    def path(self) -> tuple[str, ...]:
        """Return the field path as a tuple (e.g., ('owner', 'lastName'))."""
        return tuple(self.field.split("."))


@dataclass(frozen=True)
class Combinator:
    """AND/OR over two predicates."""

    kind: str  # AND, OR
    left: Comparison | Combinator
    right: Comparison | Combinator


Predicate = Comparison | Combinator


@dataclass(frozen=True)
class OrderBy:
    """One ORDER BY key."""

    field: str
    direction: str = ASC

    @property
    def path(self) -> tuple[str, ...]:
        return tuple(self.field.split("."))


@dataclass(frozen=True)
class SelectStatement:
    """A SELECT statement."""

    target: str
    where: Predicate | None = None
    order_by: tuple[OrderBy, ...] = ()
    limit: int | ParameterRef | None = None
    skip: int | ParameterRef | None = None
    parameters: tuple[str, ...] = ()  # first-seen order


@dataclass(frozen=True)
class QueryDefinition:
    """A named query block from a query file."""

    name: str
    description: str
    statement: SelectStatement
    lineno: int | None = None


def iter_comparisons(predicate: Predicate | None) -> Iterator[Comparison]:
    """Yield the comparisons of a predicate tree in textual order."""
    if predicate is None:
        return
    if isinstance(predicate, Combinator):
        yield from iter_comparisons(predicate.left)
        yield from iter_comparisons(predicate.right)
    else:
        yield predicate


def collect_parameters(
    where: Predicate | None,
    limit: int | ParameterRef | None = None,
    skip: int | ParameterRef | None = None,
) -> tuple[str, ...]:
    """Return distinct placeholder names in the order they appear."""
    seen: list[str] = []
    operands: list[Any] = [c.operand for c in iter_comparisons(where)] + [limit, skip]
    for operand in operands:
        if isinstance(operand, ParameterRef) and operand.name not in seen:
            seen.append(operand.name)
    return tuple(seen)


class QueryParser:
    """Parser for query files and bare SELECT statements.

    Parsing never consults a model registry; the result is a pure syntax
    tree.
    """

    tokens = QueryLexer.tokens

    # AND and OR share one level and associate left: a OR b AND c == (a OR b) AND c
    precedence = (
        ("left", "AND", "OR"),
    )

    def __init__(self) -> None:
        self.lexer = QueryLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore
        self._error: QuerySyntaxError | None = None

    def p_start_queries(self, p: yacc.YaccProduction) -> None:
        """start : query_list"""
        p[0] = p[1]

    def p_start_statement(self, p: yacc.YaccProduction) -> None:
        """start : select_statement"""
        p[0] = p[1]

    def p_start_empty(self, p: yacc.YaccProduction) -> None:
        """start : """
        p[0] = []

    def p_query_list_single(self, p: yacc.YaccProduction) -> None:
        """query_list : query_def"""
        p[0] = [p[1]]

    def p_query_list_multiple(self, p: yacc.YaccProduction) -> None:
        """query_list : query_list query_def"""
        p[0] = p[1] + [p[2]]

    def p_query_def(self, p: yacc.YaccProduction) -> None:
        """query_def : IDENTIFIER IDENTIFIER LBRACE IDENTIFIER COLON STRING IDENTIFIER COLON select_statement RBRACE"""
        for index, expected in ((1, "query"), (4, "description"), (7, "statement")):
            if p[index] != expected:
                self._reject(p, index, f"Expected '{expected}', got '{p[index]}'")
        p[0] = QueryDefinition(name=p[2], description=p[6], statement=p[9], lineno=p.lineno(2))

    def p_select_statement(self, p: yacc.YaccProduction) -> None:
        """select_statement : SELECT qualified_name where_clause order_clause limit_clause skip_clause"""
        p[0] = SelectStatement(
            target=p[2],
            where=p[3],
            order_by=tuple(p[4]),
            limit=p[5],
            skip=p[6],
            parameters=collect_parameters(p[3], p[5], p[6]),
        )

    def p_qualified_name_single(self, p: yacc.YaccProduction) -> None:
        """qualified_name : IDENTIFIER"""
        p[0] = p[1]

    def p_qualified_name_dotted(self, p: yacc.YaccProduction) -> None:
        """qualified_name : qualified_name DOT IDENTIFIER"""
        p[0] = f"{p[1]}.{p[3]}"

    def p_where_clause_empty(self, p: yacc.YaccProduction) -> None:
        """where_clause : """
        p[0] = None

    def p_where_clause(self, p: yacc.YaccProduction) -> None:
        """where_clause : WHERE condition"""
        p[0] = p[2]

    def p_condition_comparison(self, p: yacc.YaccProduction) -> None:
        """condition : qualified_name EQ operand
                     | qualified_name NEQ operand
                     | qualified_name LT operand
                     | qualified_name LTE operand
                     | qualified_name GT operand
                     | qualified_name GTE operand
                     | qualified_name CONTAINS operand"""
        p[0] = Comparison(field=p[1], operator=p[2], operand=p[3])

    def p_condition_and(self, p: yacc.YaccProduction) -> None:
        """condition : condition AND condition"""
        p[0] = Combinator(kind=AND, left=p[1], right=p[3])

    def p_condition_or(self, p: yacc.YaccProduction) -> None:
        """condition : condition OR condition"""
        p[0] = Combinator(kind=OR, left=p[1], right=p[3])

    def p_condition_paren(self, p: yacc.YaccProduction) -> None:
        """condition : LPAREN condition RPAREN"""
        p[0] = p[2]

    def p_operand_literal(self, p: yacc.YaccProduction) -> None:
        """operand : STRING
                   | INTEGER
                   | DECIMAL"""
        p[0] = Literal(p[1])

    def p_operand_boolean(self, p: yacc.YaccProduction) -> None:
        """operand : TRUE
                   | FALSE"""
        p[0] = Literal(p[1] == "true")

    def p_operand_parameter(self, p: yacc.YaccProduction) -> None:
        """operand : PARAMETER"""
        p[0] = ParameterRef(p[1])

    def p_order_clause_empty(self, p: yacc.YaccProduction) -> None:
        """order_clause : """
        p[0] = []

    def p_order_clause(self, p: yacc.YaccProduction) -> None:
        """order_clause : ORDER BY LBRACKET order_list RBRACKET
                        | ORDER BY order_list"""
        p[0] = p[4] if len(p) == 6 else p[3]

    def p_order_list_single(self, p: yacc.YaccProduction) -> None:
        """order_list : order_item"""
        p[0] = [p[1]]

    def p_order_list_multiple(self, p: yacc.YaccProduction) -> None:
        """order_list : order_list COMMA order_item"""
        p[0] = p[1] + [p[3]]

    def p_order_item(self, p: yacc.YaccProduction) -> None:
        """order_item : qualified_name
                      | qualified_name ASC
                      | qualified_name DESC"""
        p[0] = OrderBy(field=p[1], direction=p[2] if len(p) == 3 else ASC)

    def p_limit_clause(self, p: yacc.YaccProduction) -> None:
        """limit_clause : LIMIT count
                        | """
        p[0] = p[2] if len(p) == 3 else None

    def p_skip_clause(self, p: yacc.YaccProduction) -> None:
        """skip_clause : SKIP count
                       | """
        p[0] = p[2] if len(p) == 3 else None

    def p_count_integer(self, p: yacc.YaccProduction) -> None:
        """count : INTEGER"""
        if p[1] < 0:
            self._reject(p, 1, f"Expected a non-negative count, got {p[1]}")
        p[0] = p[1]

    def p_count_parameter(self, p: yacc.YaccProduction) -> None:
        """count : PARAMETER"""
        p[0] = ParameterRef(p[1])

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise QuerySyntaxError(
                f"Syntax error at '{p.value}'",
                token=str(p.value),
                line=p.lineno,
                column=find_column(self.lexer.data, p.lexpos),
                source=self.lexer.source_name,
            )
        else:
            raise QuerySyntaxError("Syntax error at end of input", source=self.lexer.source_name)

    def _reject(self, p: yacc.YaccProduction, index: int, message: str) -> None:
        """Record an error found by a grammar rule; the first one is raised once parsing returns.

        PLY turns a SyntaxError raised inside a rule into error recovery.
        """
        if self._error is None:
            self._error = QuerySyntaxError(
                message,
                token=str(p[index]),
                line=p.lineno(index),
                column=find_column(self.lexer.data, p.lexpos(index)),
                source=self.lexer.source_name,
            )

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, start="start", **kwargs)

    def _parse(self, data: str, source_name: str | None) -> Any:
        if self.parser is None:
            self.build(debug=False, write_tables=False)

        self.lexer.source_name = source_name
        self.lexer.input(data)
        self._error = None
        try:
            result = self.parser.parse(data, lexer=self.lexer.lexer)
        except QuerySyntaxError:
            if self._error is None:
                raise
            result = None
        if self._error is not None:
            raise self._error
        return result

    def parse(self, data: str, source_name: str | None = None) -> list[QueryDefinition]:
        """Parse a query file into its named query definitions."""
        result = self._parse(data, source_name)
        if isinstance(result, SelectStatement):
            raise QuerySyntaxError(
                "Expected 'query <name> { ... }' blocks, got a bare SELECT statement",
                token="SELECT",
                line=1,
                column=1,
                source=source_name,
            )
        return result

    def parse_statement(self, data: str) -> SelectStatement:
        """Parse a bare SELECT statement."""
        result = self._parse(data, None)
        if not isinstance(result, SelectStatement):
            raise QuerySyntaxError("Expected a SELECT statement", line=1, column=1)
        return result
