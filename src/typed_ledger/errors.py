"""Exception hierarchy for model loading, query binding and query execution."""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base class for all typed_ledger errors."""


class ParseError(LedgerError, SyntaxError):
    """Malformed schema or query text.

    Fatal to the source unit being parsed.
    """

    def __init__(
        self,
        message: str,
        token: str | None = None,
        line: int | None = None,
        column: int | None = None,
        source: str | None = None,
    ) -> None:
        super().__init__(message)
        self.msg = message
        self.token = token
        self.line = line
        self.column = column
        self.source = source

    def __str__(self) -> str:
        where = []
        if self.source:
            where.append(self.source)
        if self.line is not None:
            where.append(f"line {self.line}")
        if self.column is not None:
            where.append(f"column {self.column}")
        if where:
            return f"{self.msg} ({', '.join(where)})"
        return self.msg


class ModelSyntaxError(ParseError):
    """Syntax error in schema text."""


class QuerySyntaxError(ParseError):
    """Syntax error in query text."""


# --- Validation (registry construction) ---


class ValidationError(LedgerError, ValueError):
    """A model batch failed validation. Nothing from the batch is installed."""

    def __init__(self, message: str, declaration: str | None = None, reference: str | None = None) -> None:
        super().__init__(message)
        self.declaration = declaration
        self.reference = reference


class DuplicateNamespaceError(ValidationError):
    pass


class DuplicateDeclarationError(ValidationError):
    pass


class DuplicateFieldError(ValidationError):
    pass


class DuplicateEnumValueError(ValidationError):
    pass


class UnresolvedImportError(ValidationError):
    pass


class UnresolvedSuperTypeError(ValidationError):
    pass


class IncompatibleSuperTypeError(ValidationError):
    pass


class CyclicInheritanceError(ValidationError):
    """An ``extends`` chain loops back on itself."""

    def __init__(self, message: str, cycle: list[str]) -> None:
        super().__init__(message, declaration=cycle[0] if cycle else None)
        self.cycle = cycle


class UnresolvedRelationshipTargetError(ValidationError):
    pass


class InvalidRelationshipTargetError(ValidationError):
    pass


class UnresolvedEnumTargetError(ValidationError):
    pass


class InvalidFieldModifierError(ValidationError):
    """A default, range or regex does not fit the field's type."""


class FieldShadowTypeMismatchError(ValidationError):
    pass


class MissingIdentifyingFieldError(ValidationError):
    pass


class DuplicateIdentifyingFieldError(ValidationError):
    pass


class InvalidIdentifyingFieldError(ValidationError):
    pass


class IdentifyingFieldForbiddenError(ValidationError):
    pass


class UnknownDeclarationError(ValidationError):
    pass


class InstanceValidationError(ValidationError):
    """An instance does not conform to its declared type."""

    def __init__(self, message: str, declaration: str | None = None, field: str | None = None) -> None:
        super().__init__(message, declaration=declaration, reference=field)
        self.field = field


# --- Binding (per query) ---


class BindError(LedgerError, ValueError):
    """A parsed query does not fit the registry it was bound against."""

    def __init__(self, message: str, query: str | None = None, name: str | None = None) -> None:
        super().__init__(message)
        self.query = query
        self.name = name


class UnknownTypeError(BindError):
    pass


class UnknownFieldError(BindError):
    pass


class UnsupportedPathError(BindError):
    pass


class OperatorTypeError(BindError):
    pass


class OperandTypeError(BindError):
    pass


class ParameterTypeError(BindError):
    pass


class DuplicateQueryError(BindError):
    pass


# --- Invocation ---


class QueryRuntimeError(LedgerError, RuntimeError):
    """A single query invocation failed."""

    def __init__(self, message: str, query: str | None = None, parameter: str | None = None) -> None:
        super().__init__(message)
        self.query = query
        self.parameter = parameter


class MissingParameterError(QueryRuntimeError):
    pass


class InvalidParameterError(QueryRuntimeError):
    """A supplied parameter value cannot be used where the query compares it."""

    def __init__(self, message: str, query: str | None = None, parameter: str | None = None, value: Any = None) -> None:
        super().__init__(message, query=query, parameter=parameter)
        self.value = value
