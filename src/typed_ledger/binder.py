"""Query binder: validates parsed queries against a registry snapshot."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from typed_ledger.config import EngineConfig
from typed_ledger.declarations import ScalarType, ValueKind
from typed_ledger.errors import (
    BindError,
    OperandTypeError,
    OperatorTypeError,
    ParameterTypeError,
    UnknownFieldError,
    UnknownTypeError,
    UnsupportedPathError,
)
from typed_ledger.parsing.query_parser import (
    CONTAINS,
    ORDERING_OPERATORS,
    Combinator,
    Comparison,
    Literal,
    OrderBy,
    ParameterRef,
    Predicate,
    QueryDefinition,
    SelectStatement,
)
from typed_ledger.registry import RegistrySnapshot, ResolvedField, TypeView
from typed_ledger.values import (
    Relationship,
    enum_literal,
    is_number,
    relationship_identity,
    relationship_type,
    to_datetime,
)

logger = logging.getLogger(__name__)

ANONYMOUS_QUERY = "<statement>"


class ValueCategory(Enum):
    """How values of a field are compared."""

    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    ENUM = "enum"
    RELATIONSHIP = "relationship"
    COUNT = "count"  # LIMIT/SKIP

    @property
    def is_orderable(self) -> bool:
        return self in (ValueCategory.NUMBER, ValueCategory.STRING, ValueCategory.DATETIME)


_SCALAR_CATEGORIES = {
    ScalarType.STRING: ValueCategory.STRING,
    ScalarType.INTEGER: ValueCategory.NUMBER,
    ScalarType.LONG: ValueCategory.NUMBER,
    ScalarType.DOUBLE: ValueCategory.NUMBER,
    ScalarType.BOOLEAN: ValueCategory.BOOLEAN,
    ScalarType.DATETIME: ValueCategory.DATETIME,
}


def category_of(fdef: ResolvedField) -> ValueCategory | None:
    """Comparison category of a field; None for embedded concepts."""
    if fdef.value_kind is ValueKind.SCALAR:
        scalar = fdef.scalar_type
        assert scalar is not None
        return _SCALAR_CATEGORIES[scalar]
    if fdef.value_kind is ValueKind.ENUM:
        return ValueCategory.ENUM
    if fdef.value_kind is ValueKind.RELATIONSHIP:
        return ValueCategory.RELATIONSHIP
    return None


_TRUE_STRINGS = {"true", "1", "yes"}
_FALSE_STRINGS = {"false", "0", "no"}


@dataclass(frozen=True)
class BoundParameter:
    """A placeholder with the type it is compared against."""

    name: str
    category: ValueCategory
    type_name: str | None = None  # enum or relationship target
    enum_values: tuple[str, ...] = ()
    target_types: frozenset[str] = frozenset()  # relationship target and its subtypes

    def coerce(self, value: Any, coerce_strings: bool = True) -> Any:
        """Convert a supplied value for comparison.

        Raises:
            TypeError: If the value has the wrong type.
            ValueError: If the value has the right type but is unusable.
        """
        category = self.category
        if category is ValueCategory.NUMBER:
            if is_number(value):
                return value
            if coerce_strings and isinstance(value, str):
                try:
                    return int(value)
                except ValueError:
                    return float(value)
        elif category is ValueCategory.COUNT:
            if coerce_strings and isinstance(value, str):
                value = int(value)
            if isinstance(value, int) and not isinstance(value, bool):
                if value < 0:
                    raise ValueError(f"expected a non-negative count, got {value}")
                return value
        elif category is ValueCategory.STRING:
            if isinstance(value, str):
                return value
        elif category is ValueCategory.BOOLEAN:
            if isinstance(value, bool):
                return value
            if coerce_strings and isinstance(value, str):
                lowered = value.strip().lower()
                if lowered in _TRUE_STRINGS:
                    return True
                if lowered in _FALSE_STRINGS:
                    return False
                raise ValueError(f"expected a boolean, got {value!r}")
        elif category is ValueCategory.DATETIME:
            return to_datetime(value)
        elif category is ValueCategory.ENUM:
            literal = enum_literal(value)
            if literal is not None:
                if literal not in self.enum_values:
                    raise ValueError(f"{literal!r} is not a value of {self.type_name}")
                return literal
        elif category is ValueCategory.RELATIONSHIP:
            ref_type = relationship_type(value)
            if ref_type is not None and ref_type not in self.target_types:
                raise ValueError(f"'{ref_type}' is not a {self.type_name}")
            identity = relationship_identity(value)
            if identity is not None:
                return identity
        raise TypeError(f"expected a {category.value} value, got {type(value).__name__}")


@dataclass(frozen=True)
class BoundFieldPath:
    """A field path resolved against the flattened views it crosses."""

    text: str
    fields: tuple[ResolvedField, ...]  # one per segment

    @property
    def leaf(self) -> ResolvedField:
        return self.fields[-1]

    @property
    def hop(self) -> ResolvedField | None:
        """The relationship or concept field crossed, if any."""
        return self.fields[0] if len(self.fields) > 1 else None


@dataclass(frozen=True)
class BoundComparison:
    """A comparison whose field and operand types have been checked."""

    path: BoundFieldPath
    operator: str
    category: ValueCategory
    operand: Literal | ParameterRef
    value: Any = None  # coerced literal; None when operand is a parameter
    identity_field: str | None = None  # for relationships held as resolved instances
    target_types: frozenset[str] = frozenset()  # accepted types of stored references


@dataclass(frozen=True)
class BoundCombinator:
    kind: str
    left: BoundPredicate
    right: BoundPredicate


BoundPredicate = BoundComparison | BoundCombinator


@dataclass(frozen=True)
class BoundOrdering:
    path: BoundFieldPath
    direction: str
    category: ValueCategory


@dataclass(frozen=True)
class BoundQuery:
    """A query validated against one registry snapshot. Immutable."""

    name: str
    description: str
    statement: SelectStatement
    target: TypeView
    where: BoundPredicate | None
    order_by: tuple[BoundOrdering, ...]
    limit: int | ParameterRef | None
    skip: int | ParameterRef | None
    parameters: tuple[BoundParameter, ...]
    snapshot: RegistrySnapshot = field(repr=False, compare=False)
    source: QueryDefinition | SelectStatement | None = field(default=None, repr=False, compare=False)

    @property
    def parameter_names(self) -> tuple[str, ...]:
        return tuple(p.name for p in self.parameters)

    def parameter(self, name: str) -> BoundParameter | None:
        for param in self.parameters:
            if param.name == name:
                return param
        return None


class QueryBinder:
    """Binds parsed queries to a registry snapshot."""

    def __init__(self, snapshot: RegistrySnapshot, config: EngineConfig | None = None) -> None:
        self.snapshot = snapshot
        self.config = config or EngineConfig()

    def bind(self, query: QueryDefinition | SelectStatement) -> BoundQuery:
        """Validate a query and resolve all of its references.

        Raises:
            BindError: If the target type, a field path, an operator/type
                pairing or a parameter's usage is invalid.
        """
        if isinstance(query, QueryDefinition):
            name, description, statement = query.name, query.description, query.statement
        else:
            name, description, statement = ANONYMOUS_QUERY, "", query

        return _Binding(self, name).run(description, statement, query)


class _Binding:
    """State for binding a single query."""

    def __init__(self, binder: QueryBinder, name: str) -> None:
        self.snapshot = binder.snapshot
        self.config = binder.config
        self.name = name
        self.parameters: dict[str, BoundParameter] = {}

    def run(
        self, description: str, statement: SelectStatement, source: QueryDefinition | SelectStatement
    ) -> BoundQuery:
        target = self._bind_target(statement.target)
        where = self._bind_predicate(target, statement.where) if statement.where is not None else None
        order_by = tuple(self._bind_ordering(target, o) for o in statement.order_by)
        for count in (statement.limit, statement.skip):
            if isinstance(count, ParameterRef):
                self._add_parameter(BoundParameter(name=count.name, category=ValueCategory.COUNT))

        # Keep first-seen order from the statement
        parameters = tuple(self.parameters[p] for p in statement.parameters)
        return BoundQuery(
            name=self.name,
            description=description,
            statement=statement,
            target=target,
            where=where,
            order_by=order_by,
            limit=statement.limit,
            skip=statement.skip,
            parameters=parameters,
            snapshot=self.snapshot,
            source=source,
        )

    def _bind_target(self, name: str) -> TypeView:
        view = self.snapshot.get(name, allow_short_names=self.config.allow_short_names)
        if view is None:
            raise UnknownTypeError(f"Query '{self.name}': unknown type '{name}'", query=self.name, name=name)
        if not view.is_concrete:
            raise UnknownTypeError(
                f"Query '{self.name}': cannot select {'abstract' if view.is_abstract else view.kind.value} "
                f"type '{view.fqn}'",
                query=self.name,
                name=name,
            )
        return view

    def _bind_path(self, target: TypeView, text: str) -> BoundFieldPath:
        segments = text.split(".")
        if len(segments) > 2:
            raise UnsupportedPathError(
                f"Query '{self.name}': field path '{text}' crosses more than one relationship",
                query=self.name,
                name=text,
            )
        first = target.get_field(segments[0])
        if first is None:
            raise UnknownFieldError(
                f"Query '{self.name}': '{target.fqn}' has no field '{segments[0]}'",
                query=self.name,
                name=text,
            )
        if len(segments) == 1:
            return BoundFieldPath(text=text, fields=(first,))

        if first.value_kind not in (ValueKind.RELATIONSHIP, ValueKind.CONCEPT) or first.is_array:
            raise UnsupportedPathError(
                f"Query '{self.name}': cannot traverse '{segments[0]}' in '{text}'; only single "
                "relationship or concept fields can be traversed",
                query=self.name,
                name=text,
            )
        assert first.target is not None
        hop_view = self.snapshot.view(first.target)
        second = hop_view.get_field(segments[1])
        if second is None:
            raise UnknownFieldError(
                f"Query '{self.name}': '{hop_view.fqn}' has no field '{segments[1]}'",
                query=self.name,
                name=text,
            )
        return BoundFieldPath(text=text, fields=(first, second))

    def _bind_predicate(self, target: TypeView, predicate: Predicate) -> BoundPredicate:
        if isinstance(predicate, Combinator):
            return BoundCombinator(
                kind=predicate.kind,
                left=self._bind_predicate(target, predicate.left),
                right=self._bind_predicate(target, predicate.right),
            )
        return self._bind_comparison(target, predicate)

    def _bind_comparison(self, target: TypeView, comparison: Comparison) -> BoundComparison:
        path = self._bind_path(target, comparison.field)
        leaf = path.leaf
        category = category_of(leaf)
        operator = comparison.operator
        if category is None:
            raise OperatorTypeError(
                f"Query '{self.name}': concept field '{path.text}' cannot be compared",
                query=self.name,
                name=path.text,
            )
        if operator == CONTAINS:
            if not leaf.is_array:
                raise OperatorTypeError(
                    f"Query '{self.name}': CONTAINS needs an array field, '{path.text}' is not one",
                    query=self.name,
                    name=path.text,
                )
        elif leaf.is_array:
            raise OperatorTypeError(
                f"Query '{self.name}': array field '{path.text}' only supports CONTAINS",
                query=self.name,
                name=path.text,
            )
        elif operator in ORDERING_OPERATORS and not category.is_orderable:
            raise OperatorTypeError(
                f"Query '{self.name}': '{operator}' is not defined for {category.value} field '{path.text}'",
                query=self.name,
                name=path.text,
            )

        identity_field = None
        target_types: frozenset[str] = frozenset()
        if leaf.value_kind is ValueKind.RELATIONSHIP:
            assert leaf.target is not None
            identity_field = self.snapshot.view(leaf.target).identifying_field
            target_types = self._target_types(leaf)

        operand = comparison.operand
        value = None
        if isinstance(operand, ParameterRef):
            self._add_parameter(self._parameter_for(operand.name, leaf, category))
        else:
            value = self._coerce_literal(path, leaf, category, operand.value)
        return BoundComparison(
            path=path,
            operator=operator,
            category=category,
            operand=operand,
            value=value,
            identity_field=identity_field,
            target_types=target_types,
        )

    def _target_types(self, leaf: ResolvedField) -> frozenset[str]:
        assert leaf.target is not None
        return frozenset(v.fqn for v in self.snapshot.subtypes(self.snapshot.view(leaf.target).fqn))

    def _bind_ordering(self, target: TypeView, order: OrderBy) -> BoundOrdering:
        path = self._bind_path(target, order.field)
        category = category_of(path.leaf)
        if category is None or not category.is_orderable or path.leaf.is_array:
            raise OperatorTypeError(
                f"Query '{self.name}': cannot order by '{path.text}'",
                query=self.name,
                name=path.text,
            )
        return BoundOrdering(path=path, direction=order.direction, category=category)

    def _parameter_for(self, name: str, leaf: ResolvedField, category: ValueCategory) -> BoundParameter:
        if category is ValueCategory.ENUM:
            assert leaf.target is not None
            enum_view = self.snapshot.view(leaf.target)
            return BoundParameter(name=name, category=category, type_name=enum_view.fqn, enum_values=enum_view.values)
        if category is ValueCategory.RELATIONSHIP:
            return BoundParameter(
                name=name, category=category, type_name=leaf.type_name, target_types=self._target_types(leaf)
            )
        return BoundParameter(name=name, category=category)

    def _add_parameter(self, param: BoundParameter) -> None:
        existing = self.parameters.get(param.name)
        if existing is None:
            self.parameters[param.name] = param
            return
        if existing.category is not param.category or (
            param.category is ValueCategory.ENUM and existing.type_name != param.type_name
        ):
            raise ParameterTypeError(
                f"Query '{self.name}': parameter '{param.name}' is used as both "
                f"{existing.type_name or existing.category.value} and {param.type_name or param.category.value}",
                query=self.name,
                name=param.name,
            )
        if param.category is ValueCategory.RELATIONSHIP and existing.target_types != param.target_types:
            # A shared reference must suit every relationship it is compared with
            self.parameters[param.name] = replace(existing, target_types=existing.target_types & param.target_types)

    def _coerce_literal(self, path: BoundFieldPath, leaf: ResolvedField, category: ValueCategory, value: Any) -> Any:
        def fail(reason: str) -> OperandTypeError:
            return OperandTypeError(
                f"Query '{self.name}': {value!r} cannot be compared with '{path.text}': {reason}",
                query=self.name,
                name=path.text,
            )

        if category is ValueCategory.NUMBER:
            if not is_number(value):
                raise fail(f"expected a number for {leaf.type_name}")
            return value
        if category is ValueCategory.STRING:
            if not isinstance(value, str):
                raise fail("expected a string")
            return value
        if category is ValueCategory.BOOLEAN:
            if not isinstance(value, bool):
                raise fail("expected true or false")
            return value
        if category is ValueCategory.DATETIME:
            if not isinstance(value, str):
                raise fail("expected an ISO-8601 date/time string")
            try:
                return to_datetime(value)
            except ValueError as e:
                raise fail(str(e)) from e
        if category is ValueCategory.ENUM:
            assert leaf.target is not None
            values = self.snapshot.view(leaf.target).values
            if not isinstance(value, str) or value not in values:
                raise fail(f"expected one of {', '.join(values)}")
            return value
        # Relationship: a bare identifier or a resource URI of a compatible type
        if not isinstance(value, str):
            raise fail(f"expected an identifier of {leaf.type_name}")
        if value.startswith("resource:"):
            try:
                ref = Relationship.parse(value)
            except ValueError as e:
                raise fail(str(e)) from e
            ref_view = self.snapshot.get(ref.type_name)
            if ref_view is None or not self.snapshot.is_subtype(ref_view, leaf.type_name):
                raise fail(f"'{ref.type_name}' is not a {leaf.type_name}")
            return ref.identifier
        return value


def bind(
    query: QueryDefinition | SelectStatement,
    snapshot: RegistrySnapshot,
    config: EngineConfig | None = None,
) -> BoundQuery:
    """Bind one parsed query to a snapshot."""
    return QueryBinder(snapshot, config).bind(query)


def rebind(bound: BoundQuery, snapshot: RegistrySnapshot, config: EngineConfig | None = None) -> BoundQuery:
    """Re-validate a bound query against another snapshot."""
    if bound.snapshot is snapshot:
        return bound
    if bound.source is None:
        raise BindError(f"Query '{bound.name}' has no parsed source to re-bind", query=bound.name)
    logger.debug("Re-binding query '%s' against a new snapshot", bound.name)
    return bind(bound.source, snapshot, config)
