"""Parser for the model (schema) definition DSL."""

from __future__ import annotations

from typing import Any

import ply.yacc as yacc

from typed_ledger.declarations import (
    Annotation,
    Declaration,
    DeclarationKind,
    FieldSpec,
    Import,
    ModelFile,
)
from typed_ledger.errors import ModelSyntaxError
from typed_ledger.parsing.model_lexer import ModelLexer, find_column


class ModelParser:
    """Parser for the model definition DSL.

    Produces a :class:`ModelFile` per source unit. Type references are kept
    as written; resolving them is the registry's job.
    """

    tokens = ModelLexer.tokens

    def __init__(self) -> None:
        self.lexer = ModelLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore
        self._namespace = ""
        self._error: ModelSyntaxError | None = None

    def p_model(self, p: yacc.YaccProduction) -> None:
        """model : namespace_decl import_list declaration_list"""
        p[0] = ModelFile(
            namespace=p[1],
            imports=tuple(p[2]),
            declarations=tuple(p[3]),
            source_name=self.lexer.source_name,
        )

    def p_namespace_decl(self, p: yacc.YaccProduction) -> None:
        """namespace_decl : NAMESPACE qualified_name"""
        self._namespace = p[2]
        p[0] = p[2]

    def p_qualified_name_single(self, p: yacc.YaccProduction) -> None:
        """qualified_name : IDENTIFIER"""
        p[0] = p[1]

    def p_qualified_name_dotted(self, p: yacc.YaccProduction) -> None:
        """qualified_name : qualified_name DOT IDENTIFIER"""
        p[0] = f"{p[1]}.{p[3]}"

    def p_import_list_empty(self, p: yacc.YaccProduction) -> None:
        """import_list : """
        p[0] = []

    def p_import_list(self, p: yacc.YaccProduction) -> None:
        """import_list : import_list import_decl"""
        p[0] = p[1] + [p[2]]

    def p_import_decl_type(self, p: yacc.YaccProduction) -> None:
        """import_decl : IMPORT qualified_name"""
        namespace, _, name = p[2].rpartition(".")
        if not namespace:
            self._reject(p, 2, f"Import '{p[2]}' is not fully qualified")
        p[0] = Import(namespace=namespace, name=name)

    def p_import_decl_wildcard(self, p: yacc.YaccProduction) -> None:
        """import_decl : IMPORT qualified_name DOT STAR"""
        p[0] = Import(namespace=p[2], name=None)

    def p_declaration_list_empty(self, p: yacc.YaccProduction) -> None:
        """declaration_list : """
        p[0] = []

    def p_declaration_list(self, p: yacc.YaccProduction) -> None:
        """declaration_list : declaration_list declaration"""
        p[0] = p[1] + [p[2]]

    def p_declaration(self, p: yacc.YaccProduction) -> None:
        """declaration : annotation_list abstract_opt kind IDENTIFIER super_opt identified_opt LBRACE member_list RBRACE"""
        p[0] = Declaration(
            namespace=self._namespace,
            name=p[4],
            kind=p[3],
            is_abstract=p[2],
            super_type=p[5],
            identified_by=p[6],
            fields=tuple(p[8]),
            annotations=tuple(p[1]),
            lineno=p.lineno(4),
        )

    def p_declaration_enum(self, p: yacc.YaccProduction) -> None:
        """declaration : annotation_list ENUM IDENTIFIER LBRACE enum_value_list RBRACE"""
        p[0] = Declaration(
            namespace=self._namespace,
            name=p[3],
            kind=DeclarationKind.ENUM,
            values=tuple(p[5]),
            annotations=tuple(p[1]),
            lineno=p.lineno(3),
        )

    def p_abstract_opt(self, p: yacc.YaccProduction) -> None:
        """abstract_opt : ABSTRACT
                        | """
        p[0] = len(p) == 2

    def p_kind(self, p: yacc.YaccProduction) -> None:
        """kind : ASSET
                | PARTICIPANT
                | TRANSACTION
                | EVENT
                | CONCEPT"""
        p[0] = DeclarationKind(p[1])

    def p_super_opt_empty(self, p: yacc.YaccProduction) -> None:
        """super_opt : """
        p[0] = None

    def p_super_opt(self, p: yacc.YaccProduction) -> None:
        """super_opt : EXTENDS qualified_name"""
        p[0] = p[2]

    def p_identified_opt_empty(self, p: yacc.YaccProduction) -> None:
        """identified_opt : """
        p[0] = None

    def p_identified_opt(self, p: yacc.YaccProduction) -> None:
        """identified_opt : IDENTIFIED BY IDENTIFIER"""
        p[0] = p[3]

    def p_enum_value_list_empty(self, p: yacc.YaccProduction) -> None:
        """enum_value_list : """
        p[0] = []

    def p_enum_value_list(self, p: yacc.YaccProduction) -> None:
        """enum_value_list : enum_value_list FIELD IDENTIFIER"""
        p[0] = p[1] + [p[3]]

    def p_member_list_empty(self, p: yacc.YaccProduction) -> None:
        """member_list : """
        p[0] = []

    def p_member_list(self, p: yacc.YaccProduction) -> None:
        """member_list : member_list member"""
        p[0] = p[1] + [p[2]]

    def p_member_value(self, p: yacc.YaccProduction) -> None:
        """member : FIELD qualified_name array_opt field_name modifier_list"""
        p[0] = self._field_spec(p, is_relationship=False)

    def p_member_relationship(self, p: yacc.YaccProduction) -> None:
        """member : ARROW qualified_name array_opt field_name modifier_list"""
        modifiers = p[5]
        if "default" in modifiers or "range" in modifiers or "regex" in modifiers:
            self._reject(p, 4, f"Relationship field '{p[4]}' cannot declare a default or validator")
        p[0] = self._field_spec(p, is_relationship=True)

    def _field_spec(self, p: yacc.YaccProduction, is_relationship: bool) -> FieldSpec:
        modifiers = p[5]
        return FieldSpec(
            name=p[4],
            type_name=p[2],
            is_relationship=is_relationship,
            is_array=p[3],
            is_optional=modifiers.get("optional", False),
            default=modifiers.get("default"),
            range=modifiers.get("range"),
            regex=modifiers.get("regex"),
            lineno=p.lineno(1),
        )

    def p_array_opt(self, p: yacc.YaccProduction) -> None:
        """array_opt : LBRACKET RBRACKET
                     | """
        p[0] = len(p) == 3

    def p_field_name(self, p: yacc.YaccProduction) -> None:
        """field_name : IDENTIFIER
                      | NAMESPACE
                      | IMPORT
                      | ABSTRACT
                      | ASSET
                      | PARTICIPANT
                      | TRANSACTION
                      | EVENT
                      | CONCEPT
                      | ENUM
                      | EXTENDS
                      | IDENTIFIED
                      | BY
                      | OPTIONAL
                      | DEFAULT
                      | RANGE
                      | REGEX_KW
                      | FIELD"""
        p[0] = p[1]

    def p_modifier_list_empty(self, p: yacc.YaccProduction) -> None:
        """modifier_list : """
        p[0] = {}

    def p_modifier_list(self, p: yacc.YaccProduction) -> None:
        """modifier_list : modifier_list modifier"""
        key, value = p[2]
        if key in p[1]:
            self._reject(p, 2, f"Duplicate field modifier '{key}'")
        p[0] = {**p[1], key: value}

    def p_modifier_optional(self, p: yacc.YaccProduction) -> None:
        """modifier : OPTIONAL"""
        p[0] = ("optional", True)

    def p_modifier_default(self, p: yacc.YaccProduction) -> None:
        """modifier : DEFAULT EQUALS literal"""
        p[0] = ("default", p[3])

    def p_modifier_range(self, p: yacc.YaccProduction) -> None:
        """modifier : RANGE EQUALS LBRACKET range_bound COMMA range_bound RBRACKET"""
        p[0] = ("range", (p[4], p[6]))

    def p_modifier_regex(self, p: yacc.YaccProduction) -> None:
        """modifier : REGEX_KW EQUALS REGEX"""
        body, flags = p[3]
        p[0] = ("regex", f"(?{flags}){body}" if flags else body)

    def p_range_bound(self, p: yacc.YaccProduction) -> None:
        """range_bound : INTEGER
                       | DECIMAL
                       | """
        p[0] = p[1] if len(p) == 2 else None

    def p_literal_string(self, p: yacc.YaccProduction) -> None:
        """literal : STRING
                   | INTEGER
                   | DECIMAL"""
        p[0] = p[1]

    def p_literal_boolean(self, p: yacc.YaccProduction) -> None:
        """literal : TRUE
                   | FALSE"""
        p[0] = p[1] == "true"

    def p_annotation_list_empty(self, p: yacc.YaccProduction) -> None:
        """annotation_list : """
        p[0] = []

    def p_annotation_list(self, p: yacc.YaccProduction) -> None:
        """annotation_list : annotation_list annotation"""
        p[0] = p[1] + p[2]

    def p_annotation_decorator(self, p: yacc.YaccProduction) -> None:
        """annotation : AT IDENTIFIER
                      | AT IDENTIFIER LPAREN RPAREN"""
        p[0] = [Annotation(name=p[2])]

    def p_annotation_decorator_args(self, p: yacc.YaccProduction) -> None:
        """annotation : AT IDENTIFIER LPAREN annotation_value_list RPAREN"""
        p[0] = [Annotation(name=p[2], arguments=tuple(p[4]))]

    def p_annotation_bracketed(self, p: yacc.YaccProduction) -> None:
        """annotation : LBRACKET annotation_pair_list RBRACKET"""
        p[0] = p[2]

    def p_annotation_pair_list_single(self, p: yacc.YaccProduction) -> None:
        """annotation_pair_list : annotation_pair"""
        p[0] = [p[1]]

    def p_annotation_pair_list_multiple(self, p: yacc.YaccProduction) -> None:
        """annotation_pair_list : annotation_pair_list COMMA annotation_pair"""
        p[0] = p[1] + [p[3]]

    def p_annotation_pair(self, p: yacc.YaccProduction) -> None:
        """annotation_pair : IDENTIFIER COLON annotation_value
                           | IDENTIFIER EQUALS annotation_value"""
        p[0] = Annotation(name=p[1], arguments=(p[3],))

    def p_annotation_pair_flag(self, p: yacc.YaccProduction) -> None:
        """annotation_pair : IDENTIFIER"""
        p[0] = Annotation(name=p[1])

    def p_annotation_value_list_single(self, p: yacc.YaccProduction) -> None:
        """annotation_value_list : annotation_value"""
        p[0] = [p[1]]

    def p_annotation_value_list_multiple(self, p: yacc.YaccProduction) -> None:
        """annotation_value_list : annotation_value_list COMMA annotation_value"""
        p[0] = p[1] + [p[3]]

    def p_annotation_value(self, p: yacc.YaccProduction) -> None:
        """annotation_value : literal
                            | qualified_name"""
        p[0] = p[1]

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise ModelSyntaxError(
                f"Syntax error at '{p.value}'",
                token=str(p.value),
                line=p.lineno,
                column=find_column(self.lexer.data, p.lexpos),
                source=self.lexer.source_name,
            )
        else:
            raise ModelSyntaxError("Syntax error at end of input", source=self.lexer.source_name)

    def _reject(self, p: yacc.YaccProduction, index: int, message: str) -> None:
        """Record an error found by a grammar rule; the first one is raised once parsing returns.

        PLY turns a SyntaxError raised inside a rule into error recovery.
        """
        if self._error is None:
            self._error = ModelSyntaxError(
                message,
                token=str(p[index]) if not isinstance(p[index], tuple) else None,
                line=p.lineno(index) or None,
                column=find_column(self.lexer.data, p.lexpos(index)) if p.lexpos(index) else None,
                source=self.lexer.source_name,
            )

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, start="model", **kwargs)

    def parse(self, data: str, source_name: str | None = None) -> ModelFile:
        """Parse one model source unit."""
        if self.parser is None:
            self.build(debug=False, write_tables=False)

        self.lexer.source_name = source_name
        self._namespace = ""
        self._error = None
        self.lexer.input(data)
        try:
            result = self.parser.parse(data, lexer=self.lexer.lexer)
        except ModelSyntaxError:
            if self._error is None:
                raise
            result = None
        if self._error is not None:
            raise self._error
        return result
