"""Lexer for the query definition language."""

import ply.lex as lex

from typed_ledger.errors import QuerySyntaxError
from typed_ledger.parsing.model_lexer import find_column, unescape_string


class QueryLexer:
    """Lexer for tokenizing query files and SELECT statements."""

    # Reserved keywords. Upper-case keywords are case-sensitive so that
    # lower-case field names such as ``desc`` or ``limit`` stay identifiers.
    reserved = {
        "SELECT": "SELECT",
        "WHERE": "WHERE",
        "AND": "AND",
        "OR": "OR",
        "ORDER": "ORDER",
        "BY": "BY",
        "ASC": "ASC",
        "DESC": "DESC",
        "LIMIT": "LIMIT",
        "SKIP": "SKIP",
        "CONTAINS": "CONTAINS",
        "true": "TRUE",
        "false": "FALSE",
    }

    # Token list
    tokens = [
        "PARAMETER",
        "IDENTIFIER",
        "DECIMAL",
        "INTEGER",
        "STRING",
        "COMMA",
        "COLON",
        "DOT",
        "LPAREN",
        "RPAREN",
        "LBRACKET",
        "RBRACKET",
        "LBRACE",
        "RBRACE",
        "EQ",
        "NEQ",
        "LT",
        "LTE",
        "GT",
        "GTE",
    ] + list(reserved.values())

    # Simple tokens
    t_COMMA = r","
    t_COLON = r":"
    t_DOT = r"\."
    t_LPAREN = r"\("
    t_RPAREN = r"\)"
    t_LBRACKET = r"\["
    t_RBRACKET = r"\]"
    t_LBRACE = r"\{"
    t_RBRACE = r"\}"
    t_EQ = r"=="
    t_NEQ = r"!="
    t_LTE = r"<="
    t_LT = r"<"
    t_GTE = r">="
    t_GT = r">"

    # Ignored characters (newlines are counted separately)
    t_ignore = " \t\r"

    def __init__(self, source_name: str | None = None) -> None:
        self.lexer: lex.LexToken = None  # type: ignore
        self.source_name = source_name
        self.data = ""

    def t_BLOCK_COMMENT(self, t: lex.LexToken) -> None:
        r"/\*(.|\n)*?\*/"
        t.lexer.lineno += t.value.count("\n")

    def t_LINE_COMMENT(self, t: lex.LexToken) -> None:
        r"//[^\n]*"

    def t_PARAMETER(self, t: lex.LexToken) -> lex.LexToken:
        r"_\$[a-zA-Z_][a-zA-Z0-9_]*"
        t.value = t.value[2:]  # Strip the _$ prefix, store just the name
        return t

    def t_DECIMAL(self, t: lex.LexToken) -> lex.LexToken:
        r"-?\d+\.\d+([eE][-+]?\d+)?|-?\d+[eE][-+]?\d+"
        t.value = float(t.value)
        return t

    def t_INTEGER(self, t: lex.LexToken) -> lex.LexToken:
        r"-?\d+"
        t.value = int(t.value)
        return t

    def t_STRING(self, t: lex.LexToken) -> lex.LexToken:
        r'"([^"\\\n]|\\.)*"|\'([^\'\\\n]|\\.)*\''
        # Strip quotes and handle escapes
        t.value = unescape_string(t.value[1:-1])
        return t

    def t_IDENTIFIER(self, t: lex.LexToken) -> lex.LexToken:
        r"[a-zA-Z_$][a-zA-Z0-9_$]*"
        t.type = self.reserved.get(t.value, "IDENTIFIER")
        return t

    def t_NEWLINE(self, t: lex.LexToken) -> None:
        r"\n+"
        t.lexer.lineno += len(t.value)

    def t_error(self, t: lex.LexToken) -> None:
        raise QuerySyntaxError(
            f"Illegal character '{t.value[0]}'",
            token=t.value[0],
            line=t.lineno,
            column=find_column(self.data, t.lexpos),
            source=self.source_name,
        )

    # --- Lexer methods ---

    def build(self, **kwargs) -> None:  # type: ignore
        """Build the lexer."""
        self.lexer = lex.lex(module=self, **kwargs)

    def input(self, data: str) -> None:
        """Set the input string to tokenize."""
        self.data = data
        self.lexer.lineno = 1
        self.lexer.input(data)

    def token(self) -> lex.LexToken | None:
        """Return the next token."""
        return self.lexer.token()

    def tokenize(self, data: str) -> list[lex.LexToken]:
        """Tokenize the input and return all tokens."""
        self.input(data)
        tokens = []
        while True:
            tok = self.token()
            if tok is None:
                break
            tokens.append(tok)
        return tokens
