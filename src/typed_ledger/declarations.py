"""Declaration model: what the schema parser produces before resolution."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class DeclarationKind(Enum):
    """Category of a declared type."""

    ASSET = "asset"
    PARTICIPANT = "participant"
    TRANSACTION = "transaction"
    EVENT = "event"
    CONCEPT = "concept"
    ENUM = "enum"

    @property
    def requires_identifier(self) -> bool:
        """Concrete declarations of this kind must be identified by a field."""
        return self in (DeclarationKind.ASSET, DeclarationKind.PARTICIPANT)

    @property
    def is_identifiable(self) -> bool:
        """Instances of this kind can be the target of a relationship."""
        return self in (
            DeclarationKind.ASSET,
            DeclarationKind.PARTICIPANT,
            DeclarationKind.TRANSACTION,
            DeclarationKind.EVENT,
        )


class ValueKind(Enum):
    """How a field holds its value."""

    SCALAR = "scalar"
    ENUM = "enum"
    RELATIONSHIP = "relationship"
    CONCEPT = "concept"  # embedded value owned by the instance


class ScalarType(Enum):
    """Built-in primitive types of the schema language."""

    STRING = "String"
    INTEGER = "Integer"
    LONG = "Long"
    DOUBLE = "Double"
    BOOLEAN = "Boolean"
    DATETIME = "DateTime"

    @property
    def is_numeric(self) -> bool:
        return self in (ScalarType.INTEGER, ScalarType.LONG, ScalarType.DOUBLE)

    @property
    def is_orderable(self) -> bool:
        """Whether <, <=, > and >= make sense for values of this type."""
        return self is not ScalarType.BOOLEAN


# Mapping from type names to ScalarType enum values
SCALAR_TYPE_NAMES: dict[str, ScalarType] = {st.value: st for st in ScalarType}


@dataclass(frozen=True)
class Annotation:
    """Opaque metadata attached to a declaration (decorator or bracketed pair)."""

    name: str
    arguments: tuple[Any, ...] = ()


@dataclass(frozen=True)
class FieldSpec:
    """A field as written in the schema, before its type is resolved."""

    name: str
    type_name: str
    is_relationship: bool = False
    is_array: bool = False
    is_optional: bool = False
    default: Any = None
    range: tuple[Any, Any] | None = None  # (lower, upper); either bound may be None
    regex: str | None = None
    lineno: int | None = None


@dataclass(frozen=True)
class Declaration:
    """A named type declaration within a namespace."""

    namespace: str
    name: str
    kind: DeclarationKind
    is_abstract: bool = False
    super_type: str | None = None  # as written; resolved by the registry
    identified_by: str | None = None
    fields: tuple[FieldSpec, ...] = ()
    values: tuple[str, ...] = ()  # enum literals
    annotations: tuple[Annotation, ...] = ()
    lineno: int | None = None

    @property
    def fqn(self) -> str:
        """Fully-qualified name: ``namespace.Name``."""
        return f"{self.namespace}.{self.name}"


@dataclass(frozen=True)
class Import:
    """An ``import`` statement. ``name`` is None for ``import ns.*``."""

    namespace: str
    name: str | None = None

    @property
    def is_wildcard(self) -> bool:
        return self.name is None


@dataclass(frozen=True)
class ModelFile:
    """One parsed schema source unit."""

    namespace: str
    imports: tuple[Import, ...] = ()
    declarations: tuple[Declaration, ...] = ()
    source_name: str | None = None

    def get(self, name: str) -> Declaration | None:
        """Find a declaration in this file by its short name."""
        for decl in self.declarations:
            if decl.name == name:
                return decl
        return None
