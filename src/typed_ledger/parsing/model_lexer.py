"""Lexer for the model (schema) definition DSL."""

import re

import ply.lex as lex

from typed_ledger.errors import ModelSyntaxError


_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0"}


def unescape_string(body: str) -> str:
    """Resolve backslash escapes in the body of a quoted string literal."""
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


def find_column(data: str, lexpos: int) -> int:
    """Return the 1-based column of a lexer position."""
    line_start = data.rfind("\n", 0, lexpos) + 1
    return lexpos - line_start + 1


class ModelLexer:
    """Lexer for tokenizing model definition DSL."""

    # Reserved keywords
    reserved = {
        "namespace": "NAMESPACE",
        "import": "IMPORT",
        "abstract": "ABSTRACT",
        "asset": "ASSET",
        "participant": "PARTICIPANT",
        "transaction": "TRANSACTION",
        "event": "EVENT",
        "concept": "CONCEPT",
        "enum": "ENUM",
        "extends": "EXTENDS",
        "identified": "IDENTIFIED",
        "by": "BY",
        "optional": "OPTIONAL",
        "default": "DEFAULT",
        "range": "RANGE",
        "regex": "REGEX_KW",
        "true": "TRUE",
        "false": "FALSE",
        "o": "FIELD",
    }

    # Token list
    tokens = [
        "IDENTIFIER",
        "INTEGER",
        "DECIMAL",
        "STRING",
        "REGEX",
        "ARROW",
        "LBRACE",
        "RBRACE",
        "LBRACKET",
        "RBRACKET",
        "LPAREN",
        "RPAREN",
        "COLON",
        "COMMA",
        "EQUALS",
        "DOT",
        "STAR",
        "AT",
    ] + list(reserved.values())

    # Simple tokens
    t_LBRACE = r"\{"
    t_RBRACE = r"\}"
    t_LBRACKET = r"\["
    t_RBRACKET = r"\]"
    t_LPAREN = r"\("
    t_RPAREN = r"\)"
    t_COLON = r":"
    t_COMMA = r","
    t_EQUALS = r"="
    t_DOT = r"\."
    t_STAR = r"\*"
    t_AT = r"@"

    # Ignored characters (spaces, tabs, carriage returns)
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

    def t_ARROW(self, t: lex.LexToken) -> lex.LexToken:
        r"-->"
        return t

    def t_REGEX(self, t: lex.LexToken) -> lex.LexToken:
        r"/([^/\\\n]|\\.)+/[a-z]*"
        body, _, flags = t.value[1:].rpartition("/")
        t.value = (body, flags)
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
        # Check if it's a reserved word
        t.type = self.reserved.get(t.value, "IDENTIFIER")
        return t

    def t_NEWLINE(self, t: lex.LexToken) -> None:
        r"\n+"
        t.lexer.lineno += len(t.value)
        # Newlines are whitespace; only the line count is kept

    def t_error(self, t: lex.LexToken) -> None:
        raise ModelSyntaxError(
            f"Illegal character '{t.value[0]}'",
            token=t.value[0],
            line=t.lineno,
            column=find_column(self.data, t.lexpos),
            source=self.source_name,
        )

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
