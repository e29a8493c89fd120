"""Runtime value helpers shared by instance validation and query evaluation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Mapping

from typed_ledger.declarations import ScalarType

# Key under which an instance may name its concrete type
CLASS_KEY = "$class"

RESOURCE_PREFIX = "resource:"

INTEGER_BOUNDS = (-(2**31), 2**31 - 1)
LONG_BOUNDS = (-(2**63), 2**63 - 1)


@dataclass(frozen=True)
class Relationship:
    """An identity reference to an instance owned elsewhere."""

    type_name: str
    identifier: str

    @property
    def uri(self) -> str:
        return f"{RESOURCE_PREFIX}{self.type_name}#{self.identifier}"

    @classmethod
    def parse(cls, uri: str) -> Relationship:
        """Parse ``resource:org.acme.Trader#alice``."""
        if not uri.startswith(RESOURCE_PREFIX) or "#" not in uri:
            raise ValueError(f"Not a resource URI: {uri!r}")
        type_name, _, identifier = uri[len(RESOURCE_PREFIX):].partition("#")
        if not type_name or not identifier:
            raise ValueError(f"Not a resource URI: {uri!r}")
        return cls(type_name=type_name, identifier=identifier)

    def __str__(self) -> str:
        return self.uri


def relationship_identity(value: Any, id_field: str | None = None) -> str | None:
    """Return the target identifier a relationship value refers to.

    Accepts a bare identifier, a ``resource:`` URI, a :class:`Relationship`,
    or an already-resolved instance mapping (read through ``id_field``).
    Returns None when the value carries no identity.
    """
    if isinstance(value, Relationship):
        return value.identifier
    if isinstance(value, str):
        if value.startswith(RESOURCE_PREFIX):
            try:
                return Relationship.parse(value).identifier
            except ValueError:
                return None
        return value
    if isinstance(value, Mapping) and id_field is not None:
        identity = value.get(id_field)
        return identity if isinstance(identity, str) else None
    return None


def relationship_type(value: Any) -> str | None:
    """Return the target type named by a ``resource:`` URI or :class:`Relationship`.

    Bare identifiers and resolved instances name no type and give None.
    """
    if isinstance(value, Relationship):
        return value.type_name
    if isinstance(value, str) and value.startswith(RESOURCE_PREFIX):
        try:
            return Relationship.parse(value).type_name
        except ValueError:
            return None
    return None


def to_datetime(value: Any) -> datetime:
    """Normalize a DateTime value; naive datetimes are taken as UTC.

    Raises:
        TypeError: If the value is not a date, datetime or string.
        ValueError: If a string is not ISO-8601.
    """
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        result = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        result = datetime.fromisoformat(text)
    else:
        raise TypeError(f"Expected a DateTime, got {type(value).__name__}")
    if result.tzinfo is None:
        result = result.replace(tzinfo=timezone.utc)
    return result


def enum_literal(value: Any) -> str | None:
    """Return the literal name of an enum value (string or Python Enum member)."""
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, str):
        return value
    return None


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def scalar_matches(scalar: ScalarType, value: Any) -> bool:
    """Check whether a Python value is acceptable for a scalar type."""
    if scalar is ScalarType.STRING:
        return isinstance(value, str)
    if scalar is ScalarType.BOOLEAN:
        return isinstance(value, bool)
    if scalar is ScalarType.DOUBLE:
        return is_number(value)
    if scalar in (ScalarType.INTEGER, ScalarType.LONG):
        if not isinstance(value, int) or isinstance(value, bool):
            return False
        low, high = INTEGER_BOUNDS if scalar is ScalarType.INTEGER else LONG_BOUNDS
        return low <= value <= high
    if scalar is ScalarType.DATETIME:
        try:
            to_datetime(value)
        except (TypeError, ValueError):
            return False
        return True
    return False
