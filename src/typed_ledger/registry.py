"""Model registry: resolves parsed model files into immutable snapshots."""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Union

from typed_ledger.declarations import (
    SCALAR_TYPE_NAMES,
    Declaration,
    DeclarationKind,
    FieldSpec,
    ModelFile,
    ScalarType,
    ValueKind,
)
from typed_ledger.errors import (
    CyclicInheritanceError,
    DuplicateDeclarationError,
    DuplicateEnumValueError,
    DuplicateFieldError,
    DuplicateIdentifyingFieldError,
    DuplicateNamespaceError,
    FieldShadowTypeMismatchError,
    IdentifyingFieldForbiddenError,
    IncompatibleSuperTypeError,
    InstanceValidationError,
    InvalidFieldModifierError,
    InvalidIdentifyingFieldError,
    InvalidRelationshipTargetError,
    MissingIdentifyingFieldError,
    UnknownDeclarationError,
    UnresolvedEnumTargetError,
    UnresolvedImportError,
    UnresolvedRelationshipTargetError,
    UnresolvedSuperTypeError,
)
from typed_ledger.parsing.model_parser import ModelParser
from typed_ledger.values import CLASS_KEY, enum_literal, relationship_identity, scalar_matches

logger = logging.getLogger(__name__)

# A model source: raw text, (source_name, text), or an already parsed file
ModelSource = Union[str, tuple[str, str], ModelFile]


@dataclass(frozen=True)
class ResolvedField:
    """A field whose type has been resolved against the registry."""

    name: str
    value_kind: ValueKind
    type_name: str  # scalar name, or fully-qualified name of the target declaration
    target: int | None  # handle of the target declaration; None for scalars
    is_array: bool
    is_optional: bool
    declared_in: str  # fully-qualified name of the declaring type
    default: Any = None
    range: tuple[Any, Any] | None = None
    regex: str | None = None

    @property
    def scalar_type(self) -> ScalarType | None:
        if self.value_kind is ValueKind.SCALAR:
            return SCALAR_TYPE_NAMES[self.type_name]
        return None

    @property
    def is_orderable(self) -> bool:
        """Whether ordering comparisons are defined for this field."""
        scalar = self.scalar_type
        return scalar is not None and not self.is_array and scalar.is_orderable


@dataclass(frozen=True)
class TypeView:
    """A declaration with its references resolved and its fields flattened."""

    handle: int
    declaration: Declaration
    super_type: int | None
    ancestors: tuple[int, ...]  # nearest first
    own_fields: tuple[ResolvedField, ...]
    fields: tuple[ResolvedField, ...]  # inherited first, own last; shadowing keeps position
    identifying_field: str | None
    _by_name: dict[str, ResolvedField] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_by_name", {f.name: f for f in self.fields})

    @property
    def fqn(self) -> str:
        return self.declaration.fqn

    @property
    def name(self) -> str:
        return self.declaration.name

    @property
    def namespace(self) -> str:
        return self.declaration.namespace

    @property
    def kind(self) -> DeclarationKind:
        return self.declaration.kind

    @property
    def is_abstract(self) -> bool:
        return self.declaration.is_abstract

    @property
    def is_concrete(self) -> bool:
        return not self.declaration.is_abstract and self.kind is not DeclarationKind.ENUM

    @property
    def values(self) -> tuple[str, ...]:
        """Enum literals (empty for other kinds)."""
        return self.declaration.values

    def get_field(self, name: str) -> ResolvedField | None:
        return self._by_name.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._by_name


class RegistrySnapshot:
    """An immutable, fully validated set of declarations.

    Declarations live in an arena indexed by integer handles; every
    cross-reference (super type, relationship, enum and concept targets) is
    a handle resolved once at build time.
    """

    def __init__(self, files: Iterable[ModelFile] = (), views: Iterable[TypeView] = ()) -> None:
        self._files: dict[str, ModelFile] = {f.namespace: f for f in files}
        self._views: tuple[TypeView, ...] = tuple(views)
        self._by_fqn: dict[str, int] = {v.fqn: v.handle for v in self._views}
        by_short: dict[str, list[int]] = {}
        for view in self._views:
            by_short.setdefault(view.name, []).append(view.handle)
        self._by_short = {name: tuple(handles) for name, handles in by_short.items()}

    @classmethod
    def empty(cls) -> RegistrySnapshot:
        return cls()

    @property
    def namespaces(self) -> tuple[str, ...]:
        return tuple(self._files)

    @property
    def files(self) -> tuple[ModelFile, ...]:
        return tuple(self._files.values())

    def declarations(self) -> tuple[TypeView, ...]:
        return self._views

    def view(self, handle: int) -> TypeView:
        return self._views[handle]

    def get(self, name: str, allow_short_names: bool = True) -> TypeView | None:
        """Look up a declaration by fully-qualified name.

        A bare name matches when exactly one declaration carries it.
        """
        handle = self._by_fqn.get(name)
        if handle is not None:
            return self._views[handle]
        if allow_short_names and "." not in name:
            handles = self._by_short.get(name, ())
            if len(handles) == 1:
                return self._views[handles[0]]
        return None

    def resolve(self, name: str, allow_short_names: bool = True) -> TypeView | None:
        """Look up a concrete (non-abstract, non-enum) declaration."""
        view = self.get(name, allow_short_names=allow_short_names)
        if view is None or not view.is_concrete:
            return None
        return view

    def get_or_raise(self, name: str) -> TypeView:
        view = self.get(name)
        if view is None:
            raise UnknownDeclarationError(f"Unknown declaration: {name}", reference=name)
        return view

    def flattened_fields(self, name: str) -> tuple[ResolvedField, ...]:
        """Return own and inherited fields of a declaration, ancestors first."""
        return self.get_or_raise(name).fields

    def enum_values(self, name: str) -> tuple[str, ...]:
        view = self.get_or_raise(name)
        if view.kind is not DeclarationKind.ENUM:
            raise UnknownDeclarationError(f"'{view.fqn}' is not an enum", reference=name)
        return view.values

    def is_subtype(self, view: TypeView | str, ancestor: TypeView | str) -> bool:
        """True when ``view`` is ``ancestor`` or inherits from it."""
        if isinstance(view, str):
            view = self.get_or_raise(view)
        if isinstance(ancestor, str):
            ancestor = self.get_or_raise(ancestor)
        return view.handle == ancestor.handle or ancestor.handle in view.ancestors

    def subtypes(self, name: str) -> tuple[TypeView, ...]:
        """All declarations that are or inherit from ``name``."""
        base = self.get_or_raise(name)
        return tuple(v for v in self._views if self.is_subtype(v, base))

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __iter__(self) -> Iterator[TypeView]:
        return iter(self._views)

    def __len__(self) -> int:
        return len(self._views)

    def validate_instance(self, name: str, instance: Mapping[str, Any]) -> None:
        """Check an instance mapping against its declared type.

        Raises:
            InstanceValidationError: On the first violation found.
        """
        view = self.get_or_raise(name)
        _InstanceValidator(self).validate(view, instance, path=view.name)


class _InstanceValidator:
    """Structural checks of instance data against a snapshot."""

    def __init__(self, snapshot: RegistrySnapshot) -> None:
        self.snapshot = snapshot

    def validate(self, view: TypeView, instance: Any, path: str) -> None:
        if not isinstance(instance, Mapping):
            raise InstanceValidationError(
                f"{path}: expected an object, got {type(instance).__name__}", declaration=view.fqn
            )
        declared = instance.get(CLASS_KEY)
        if declared is not None:
            actual = self.snapshot.get(declared)
            if actual is None or not self.snapshot.is_subtype(actual, view):
                raise InstanceValidationError(
                    f"{path}: {CLASS_KEY} '{declared}' is not a {view.fqn}", declaration=view.fqn
                )
            view = actual
        if not view.is_concrete:
            raise InstanceValidationError(
                f"{path}: cannot instantiate abstract type {view.fqn}", declaration=view.fqn
            )

        for key in instance:
            if key != CLASS_KEY and key not in view:
                raise InstanceValidationError(
                    f"{path}: unexpected field '{key}' for {view.fqn}", declaration=view.fqn, field=key
                )

        for fdef in view.fields:
            value = instance.get(fdef.name)
            field_path = f"{path}.{fdef.name}"
            if value is None:
                if not fdef.is_optional and fdef.default is None:
                    raise InstanceValidationError(
                        f"{field_path}: required field is missing", declaration=view.fqn, field=fdef.name
                    )
                continue
            if fdef.is_array:
                if not isinstance(value, (list, tuple)):
                    raise InstanceValidationError(
                        f"{field_path}: expected an array", declaration=view.fqn, field=fdef.name
                    )
                for i, element in enumerate(value):
                    self._validate_value(view, fdef, element, f"{field_path}[{i}]")
            else:
                self._validate_value(view, fdef, value, field_path)

    def _validate_value(self, owner: TypeView, fdef: ResolvedField, value: Any, path: str) -> None:
        def fail(message: str) -> None:
            raise InstanceValidationError(f"{path}: {message}", declaration=owner.fqn, field=fdef.name)

        if fdef.value_kind is ValueKind.SCALAR:
            scalar = fdef.scalar_type
            assert scalar is not None
            if not scalar_matches(scalar, value):
                fail(f"expected {scalar.value}, got {value!r}")
            if fdef.range is not None:
                low, high = fdef.range
                if (low is not None and value < low) or (high is not None and value > high):
                    fail(f"value {value!r} outside range [{low}, {high}]")
            if fdef.regex is not None and not re.search(fdef.regex, value):
                fail(f"value {value!r} does not match /{fdef.regex}/")
        elif fdef.value_kind is ValueKind.ENUM:
            assert fdef.target is not None
            literal = enum_literal(value)
            if literal not in self.snapshot.view(fdef.target).values:
                fail(f"{value!r} is not a value of {fdef.type_name}")
        elif fdef.value_kind is ValueKind.RELATIONSHIP:
            assert fdef.target is not None
            target = self.snapshot.view(fdef.target)
            if relationship_identity(value, target.identifying_field) is None:
                fail(f"expected a reference to {fdef.type_name}, got {value!r}")
        else:
            assert fdef.target is not None
            self.validate(self.snapshot.view(fdef.target), value, path)


class _FileScope:
    """Resolves type names as written inside one model file."""

    def __init__(self, model_file: ModelFile, index: dict[str, int]) -> None:
        self.model_file = model_file
        self.index = index

    def lookup(self, name: str) -> int | None:
        if "." in name:
            return self.index.get(name)
        local = self.index.get(f"{self.model_file.namespace}.{name}")
        if local is not None:
            return local
        for imp in self.model_file.imports:
            if imp.name == name:
                return self.index.get(f"{imp.namespace}.{name}")
        for imp in self.model_file.imports:
            if imp.is_wildcard:
                handle = self.index.get(f"{imp.namespace}.{name}")
                if handle is not None:
                    return handle
        return None


class SnapshotBuilder:
    """Builds a :class:`RegistrySnapshot` from model files, all or nothing."""

    def __init__(self, files: Iterable[ModelFile]) -> None:
        self.files = list(files)
        self.decls: list[Declaration] = []
        self.scopes: list[_FileScope] = []
        self.index: dict[str, int] = {}
        self.super_handles: list[int | None] = []
        self.own_fields: list[tuple[ResolvedField, ...]] = []
        self.flattened: dict[int, tuple[ResolvedField, ...]] = {}

    def build(self) -> RegistrySnapshot:
        self._index_declarations()
        self._check_imports()
        self._resolve_super_types()
        self._check_acyclic()
        self._resolve_fields()
        views = self._build_views()
        return RegistrySnapshot(self.files, views)

    # --- Phase 1: arena ---

    def _index_declarations(self) -> None:
        namespaces: set[str] = set()
        for model_file in self.files:
            if model_file.namespace in namespaces:
                raise DuplicateNamespaceError(
                    f"Namespace '{model_file.namespace}' is declared more than once",
                    reference=model_file.namespace,
                )
            namespaces.add(model_file.namespace)

        for model_file in self.files:
            scope = _FileScope(model_file, self.index)
            for decl in model_file.declarations:
                if decl.fqn in self.index:
                    raise DuplicateDeclarationError(
                        f"Duplicate declaration '{decl.fqn}'", declaration=decl.fqn
                    )
                self.index[decl.fqn] = len(self.decls)
                self.decls.append(decl)
                self.scopes.append(scope)

    def _check_imports(self) -> None:
        namespaces = {f.namespace for f in self.files}
        for model_file in self.files:
            for imp in model_file.imports:
                if imp.namespace not in namespaces:
                    raise UnresolvedImportError(
                        f"Namespace '{model_file.namespace}' imports unknown namespace '{imp.namespace}'",
                        declaration=model_file.namespace,
                        reference=imp.namespace,
                    )
                if not imp.is_wildcard and f"{imp.namespace}.{imp.name}" not in self.index:
                    raise UnresolvedImportError(
                        f"Namespace '{model_file.namespace}' imports unknown type '{imp.namespace}.{imp.name}'",
                        declaration=model_file.namespace,
                        reference=f"{imp.namespace}.{imp.name}",
                    )

    # --- Phase 2: inheritance ---

    def _resolve_super_types(self) -> None:
        for handle, decl in enumerate(self.decls):
            if decl.super_type is None:
                self.super_handles.append(None)
                continue
            super_handle = self.scopes[handle].lookup(decl.super_type)
            if super_handle is None:
                raise UnresolvedSuperTypeError(
                    f"'{decl.fqn}' extends unknown type '{decl.super_type}'",
                    declaration=decl.fqn,
                    reference=decl.super_type,
                )
            parent = self.decls[super_handle]
            if parent.kind is not decl.kind:
                raise IncompatibleSuperTypeError(
                    f"{decl.kind.value} '{decl.fqn}' cannot extend {parent.kind.value} '{parent.fqn}'",
                    declaration=decl.fqn,
                    reference=parent.fqn,
                )
            self.super_handles.append(super_handle)

    def _check_acyclic(self) -> None:
        white, grey, black = 0, 1, 2
        colour = [white] * len(self.decls)
        for start in range(len(self.decls)):
            if colour[start] != white:
                continue
            chain: list[int] = []
            current: int | None = start
            while current is not None and colour[current] == white:
                colour[current] = grey
                chain.append(current)
                current = self.super_handles[current]
            if current is not None and colour[current] == grey:
                cycle = [self.decls[h].fqn for h in chain[chain.index(current):]]
                raise CyclicInheritanceError(
                    "Cyclic inheritance: " + " -> ".join(cycle + [cycle[0]]), cycle=cycle
                )
            for h in chain:
                colour[h] = black

    def _ancestors(self, handle: int) -> tuple[int, ...]:
        result = []
        current = self.super_handles[handle]
        while current is not None:
            result.append(current)
            current = self.super_handles[current]
        return tuple(result)

    # --- Phase 3: fields ---

    def _resolve_fields(self) -> None:
        for handle, decl in enumerate(self.decls):
            if decl.kind is DeclarationKind.ENUM:
                seen_values: set[str] = set()
                for value in decl.values:
                    if value in seen_values:
                        raise DuplicateEnumValueError(
                            f"Enum '{decl.fqn}' declares '{value}' more than once",
                            declaration=decl.fqn,
                            reference=value,
                        )
                    seen_values.add(value)
            seen: set[str] = set()
            resolved = []
            for spec in decl.fields:
                if spec.name in seen:
                    raise DuplicateFieldError(
                        f"'{decl.fqn}' declares field '{spec.name}' more than once",
                        declaration=decl.fqn,
                        reference=spec.name,
                    )
                seen.add(spec.name)
                resolved.append(self._resolve_field(handle, decl, spec))
            self.own_fields.append(tuple(resolved))

    def _resolve_field(self, handle: int, decl: Declaration, spec: FieldSpec) -> ResolvedField:
        scope = self.scopes[handle]
        scalar = SCALAR_TYPE_NAMES.get(spec.type_name)
        target = scope.lookup(spec.type_name) if scalar is None else None

        if spec.is_relationship:
            if scalar is not None:
                raise InvalidRelationshipTargetError(
                    f"Relationship '{decl.fqn}.{spec.name}' cannot target primitive type '{spec.type_name}'",
                    declaration=decl.fqn,
                    reference=spec.type_name,
                )
            if target is None:
                raise UnresolvedRelationshipTargetError(
                    f"Relationship '{decl.fqn}.{spec.name}' targets unknown type '{spec.type_name}'",
                    declaration=decl.fqn,
                    reference=spec.type_name,
                )
            target_decl = self.decls[target]
            if not target_decl.kind.is_identifiable:
                raise InvalidRelationshipTargetError(
                    f"Relationship '{decl.fqn}.{spec.name}' targets {target_decl.kind.value} "
                    f"'{target_decl.fqn}', which has no identity",
                    declaration=decl.fqn,
                    reference=target_decl.fqn,
                )
            value_kind = ValueKind.RELATIONSHIP
            type_name = target_decl.fqn
        elif scalar is not None:
            value_kind = ValueKind.SCALAR
            type_name = scalar.value
        else:
            if target is None:
                raise UnresolvedEnumTargetError(
                    f"Field '{decl.fqn}.{spec.name}' has unknown type '{spec.type_name}'",
                    declaration=decl.fqn,
                    reference=spec.type_name,
                )
            target_decl = self.decls[target]
            value_kind = ValueKind.ENUM if target_decl.kind is DeclarationKind.ENUM else ValueKind.CONCEPT
            type_name = target_decl.fqn

        resolved = ResolvedField(
            name=spec.name,
            value_kind=value_kind,
            type_name=type_name,
            target=target,
            is_array=spec.is_array,
            is_optional=spec.is_optional,
            declared_in=decl.fqn,
            default=spec.default,
            range=spec.range,
            regex=spec.regex,
        )
        self._check_modifiers(decl, resolved)
        return resolved

    def _check_modifiers(self, decl: Declaration, fdef: ResolvedField) -> None:
        def fail(message: str) -> None:
            raise InvalidFieldModifierError(
                f"Field '{decl.fqn}.{fdef.name}': {message}", declaration=decl.fqn, reference=fdef.name
            )

        scalar = fdef.scalar_type
        if fdef.default is not None:
            if fdef.is_array:
                fail("array fields cannot declare a default")
            if fdef.value_kind is ValueKind.ENUM:
                assert fdef.target is not None
                if fdef.default not in self.decls[fdef.target].values:
                    fail(f"default {fdef.default!r} is not a value of {fdef.type_name}")
            elif scalar is None:
                fail(f"{fdef.value_kind.value} fields cannot declare a default")
            elif not scalar_matches(scalar, fdef.default):
                fail(f"default {fdef.default!r} is not a {scalar.value}")
        if fdef.range is not None:
            if scalar is None or not scalar.is_numeric:
                fail("range is only allowed on numeric fields")
            low, high = fdef.range
            if low is not None and high is not None and low > high:
                fail(f"empty range [{low}, {high}]")
        if fdef.regex is not None:
            if scalar is not ScalarType.STRING:
                fail("regex is only allowed on String fields")
            try:
                re.compile(fdef.regex)
            except re.error as e:
                fail(f"invalid regex /{fdef.regex}/: {e}")

    def _flatten(self, handle: int) -> tuple[ResolvedField, ...]:
        cached = self.flattened.get(handle)
        if cached is not None:
            return cached
        super_handle = self.super_handles[handle]
        inherited = list(self._flatten(super_handle)) if super_handle is not None else []
        positions = {f.name: i for i, f in enumerate(inherited)}
        decl = self.decls[handle]
        for own in self.own_fields[handle]:
            pos = positions.get(own.name)
            if pos is None:
                positions[own.name] = len(inherited)
                inherited.append(own)
                continue
            shadowed = inherited[pos]
            if shadowed.value_kind is not own.value_kind:
                raise FieldShadowTypeMismatchError(
                    f"'{decl.fqn}.{own.name}' is a {own.value_kind.value} field but shadows "
                    f"{shadowed.value_kind.value} field '{shadowed.declared_in}.{own.name}'",
                    declaration=decl.fqn,
                    reference=own.name,
                )
            inherited[pos] = own
        result = tuple(inherited)
        self.flattened[handle] = result
        return result

    def _identifying_field(self, handle: int, fields: tuple[ResolvedField, ...]) -> str | None:
        decl = self.decls[handle]
        if decl.kind is DeclarationKind.CONCEPT and decl.identified_by is not None:
            raise IdentifyingFieldForbiddenError(
                f"Concept '{decl.fqn}' cannot be identified by a field",
                declaration=decl.fqn,
                reference=decl.identified_by,
            )

        declared = [
            (self.decls[h].fqn, self.decls[h].identified_by)
            for h in (handle,) + self._ancestors(handle)
            if self.decls[h].identified_by is not None
        ]
        if len(declared) > 1:
            names = ", ".join(f"{owner}: {name}" for owner, name in declared)
            raise DuplicateIdentifyingFieldError(
                f"'{decl.fqn}' has more than one identifying field in its inheritance chain ({names})",
                declaration=decl.fqn,
                reference=declared[0][1],
            )
        if not declared:
            if decl.kind.requires_identifier and not decl.is_abstract:
                raise MissingIdentifyingFieldError(
                    f"{decl.kind.value} '{decl.fqn}' must be identified by a field",
                    declaration=decl.fqn,
                )
            return None

        id_name = declared[0][1]
        id_field = next((f for f in fields if f.name == id_name), None)
        if id_field is None:
            raise InvalidIdentifyingFieldError(
                f"'{decl.fqn}' is identified by '{id_name}', which is not one of its fields",
                declaration=decl.fqn,
                reference=id_name,
            )
        if id_field.scalar_type is not ScalarType.STRING or id_field.is_array or id_field.is_optional:
            raise InvalidIdentifyingFieldError(
                f"Identifying field '{decl.fqn}.{id_name}' must be a required String",
                declaration=decl.fqn,
                reference=id_name,
            )
        return id_name

    def _build_views(self) -> list[TypeView]:
        views = []
        for handle, decl in enumerate(self.decls):
            fields = self._flatten(handle)
            views.append(TypeView(
                handle=handle,
                declaration=decl,
                super_type=self.super_handles[handle],
                ancestors=self._ancestors(handle),
                own_fields=self.own_fields[handle],
                fields=fields,
                identifying_field=self._identifying_field(handle, fields),
            ))
        return views


def build_snapshot(files: Iterable[ModelFile]) -> RegistrySnapshot:
    """Resolve and validate model files into a new snapshot.

    Raises:
        ValidationError: If any declaration fails; no partial snapshot exists.
    """
    return SnapshotBuilder(files).build()


def parse_models(sources: Iterable[ModelSource]) -> list[ModelFile]:
    """Parse model sources (text, ``(name, text)`` pairs, or parsed files)."""
    parser = ModelParser()
    files = []
    for i, source in enumerate(sources):
        if isinstance(source, ModelFile):
            files.append(source)
        elif isinstance(source, tuple):
            name, text = source
            files.append(parser.parse(text, source_name=name))
        else:
            files.append(parser.parse(source, source_name=f"<model {i}>"))
    return files


class ModelRegistry:
    """Holds the current snapshot and swaps in validated replacements.

    Writers are serialized; readers take :attr:`snapshot` and never see a
    partially built registry.
    """

    def __init__(self, snapshot: RegistrySnapshot | None = None) -> None:
        self._lock = threading.Lock()
        self._snapshot = snapshot if snapshot is not None else RegistrySnapshot.empty()

    @property
    def snapshot(self) -> RegistrySnapshot:
        return self._snapshot

    def register(self, sources: Iterable[ModelSource]) -> RegistrySnapshot:
        """Add new namespaces. Re-declaring an installed namespace is an error."""
        files = parse_models(sources)
        with self._lock:
            return self._install(self._snapshot.files + tuple(files))

    def update(self, sources: Iterable[ModelSource]) -> RegistrySnapshot:
        """Add namespaces, replacing installed ones with the same name."""
        files = parse_models(sources)
        replaced = {f.namespace for f in files}
        with self._lock:
            kept = tuple(f for f in self._snapshot.files if f.namespace not in replaced)
            return self._install(kept + tuple(files))

    def remove(self, *namespaces: str) -> RegistrySnapshot:
        """Remove namespaces; fails if remaining declarations still refer to them."""
        with self._lock:
            unknown = [ns for ns in namespaces if ns not in self._snapshot.namespaces]
            if unknown:
                raise UnknownDeclarationError(f"Unknown namespace(s): {', '.join(unknown)}", reference=unknown[0])
            kept = tuple(f for f in self._snapshot.files if f.namespace not in namespaces)
            return self._install(kept)

    def clear(self) -> None:
        with self._lock:
            self._snapshot = RegistrySnapshot.empty()

    def _install(self, files: tuple[ModelFile, ...]) -> RegistrySnapshot:
        try:
            snapshot = build_snapshot(files)
        except Exception:
            logger.debug("Model batch rejected; keeping %d declarations", len(self._snapshot))
            raise
        self._snapshot = snapshot
        logger.info(
            "Installed model snapshot: %d namespaces, %d declarations",
            len(snapshot.namespaces),
            len(snapshot),
        )
        return snapshot
