"""Loading models and queries, and running bound queries over instances."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from itertools import islice
from typing import Any, AsyncIterable, AsyncIterator, Iterable, Iterator, Mapping, Union

from typed_ledger.binder import BoundQuery, QueryBinder, rebind
from typed_ledger.config import EngineConfig
from typed_ledger.errors import (
    BindError,
    DuplicateQueryError,
    InvalidParameterError,
    LedgerError,
    MissingParameterError,
    QuerySyntaxError,
)
from typed_ledger.evaluator import Resolver, evaluate, sort_instances
from typed_ledger.parsing.query_parser import ParameterRef, QueryParser
from typed_ledger.registry import ModelRegistry, ModelSource, RegistrySnapshot, build_snapshot, parse_models
from typed_ledger.values import CLASS_KEY

logger = logging.getLogger(__name__)

# Query file text, or (source_name, text)
QuerySource = Union[str, tuple[str, str]]


def load_model(sources: Iterable[ModelSource], registry: ModelRegistry | None = None) -> RegistrySnapshot:
    """Parse and validate model sources.

    With a registry the sources are registered into it and the installed
    snapshot is returned; otherwise a standalone snapshot is built.
    """
    if registry is not None:
        return registry.register(sources)
    return build_snapshot(parse_models(sources))


@dataclass(frozen=True)
class QueryFailure:
    """A source unit or a single query that could not be loaded."""

    source: str
    query: str | None  # None when the whole source failed to parse
    error: LedgerError


@dataclass
class QueryBatch:
    """Result of loading query sources: bound queries plus per-query failures."""

    queries: dict[str, BoundQuery] = field(default_factory=dict)
    failures: list[QueryFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def get(self, name: str) -> BoundQuery | None:
        return self.queries.get(name)

    def raise_for_failures(self) -> None:
        """Raise the first recorded failure, if any."""
        if self.failures:
            raise self.failures[0].error

    def __iter__(self) -> Iterator[BoundQuery]:
        return iter(self.queries.values())

    def __len__(self) -> int:
        return len(self.queries)


def load_queries(
    sources: Iterable[QuerySource],
    snapshot: RegistrySnapshot,
    config: EngineConfig | None = None,
    reserved_names: Iterable[str] = (),
) -> QueryBatch:
    """Parse and bind query sources against a snapshot.

    A syntax error fails its whole source; a bind error fails only its
    query. A name seen earlier (or listed in ``reserved_names``) fails the
    later query with :class:`DuplicateQueryError`.
    """
    parser = QueryParser()
    binder = QueryBinder(snapshot, config)
    batch = QueryBatch()
    seen = set(reserved_names)

    for i, source in enumerate(sources):
        if isinstance(source, tuple):
            source_name, text = source
        else:
            source_name, text = f"<queries {i}>", source
        try:
            definitions = parser.parse(text, source_name=source_name)
        except QuerySyntaxError as e:
            logger.warning("Query source %s failed to parse: %s", source_name, e)
            batch.failures.append(QueryFailure(source=source_name, query=None, error=e))
            continue

        for definition in definitions:
            try:
                if definition.name in seen:
                    raise DuplicateQueryError(
                        f"Query '{definition.name}' is already defined",
                        query=definition.name,
                        name=definition.name,
                    )
                seen.add(definition.name)
                batch.queries[definition.name] = binder.bind(definition)
            except BindError as e:
                logger.warning("Query '%s' in %s failed to bind: %s", definition.name, source_name, e)
                batch.failures.append(QueryFailure(source=source_name, query=definition.name, error=e))

    logger.debug("Loaded %d queries with %d failures", len(batch.queries), len(batch.failures))
    return batch


def prepare_parameters(
    bound: BoundQuery,
    parameters: Mapping[str, Any] | None,
    config: EngineConfig | None = None,
) -> dict[str, Any]:
    """Check and coerce the parameter values for one invocation.

    Raises:
        MissingParameterError: If a placeholder has no value.
        InvalidParameterError: If a value does not fit where it is compared.
    """
    config = config or EngineConfig()
    parameters = parameters or {}
    prepared: dict[str, Any] = {}
    for param in bound.parameters:
        value = parameters.get(param.name)
        if value is None:
            raise MissingParameterError(
                f"Query '{bound.name}': missing value for parameter '{param.name}'",
                query=bound.name,
                parameter=param.name,
            )
        try:
            prepared[param.name] = param.coerce(value, coerce_strings=config.coerce_parameters)
        except (TypeError, ValueError) as e:
            raise InvalidParameterError(
                f"Query '{bound.name}': invalid value for parameter '{param.name}': {e}",
                query=bound.name,
                parameter=param.name,
                value=value,
            ) from e
        if prepared[param.name] is not value:
            logger.debug("Coerced parameter '%s' from %r to %r", param.name, value, prepared[param.name])

    extra = set(parameters) - set(prepared)
    if extra:
        logger.debug("Query '%s' ignores unused parameters: %s", bound.name, ", ".join(sorted(extra)))
    return prepared


def _count(value: int | ParameterRef | None, params: Mapping[str, Any]) -> int | None:
    if isinstance(value, ParameterRef):
        return params[value.name]
    return value


class _Plan:
    """Per-invocation state shared by the sync and async runners."""

    def __init__(
        self,
        bound: BoundQuery,
        parameters: Mapping[str, Any] | None,
        resolver: Resolver | None,
        config: EngineConfig | None,
    ) -> None:
        self.config = config or EngineConfig()
        self.bound = bound
        self.params = prepare_parameters(bound, parameters, self.config)
        self.resolver = resolver
        self.skip = _count(bound.skip, self.params) or 0
        limit = _count(bound.limit, self.params)
        self.limit = self.config.default_limit if limit is None else limit

    @property
    def stop(self) -> int | None:
        return None if self.limit is None else self.skip + self.limit

    def accepts(self, instance: Any) -> bool:
        if not isinstance(instance, Mapping):
            return False
        class_name = instance.get(CLASS_KEY)
        if class_name is not None:
            snapshot = self.bound.snapshot
            view = snapshot.get(class_name, allow_short_names=self.config.allow_short_names)
            if view is None or not snapshot.is_subtype(view, self.bound.target):
                return False
        if self.bound.where is None:
            return True
        return evaluate(self.bound.where, instance, self.params, self.resolver)

    def finish(self, matches: Iterable[Any]) -> Iterator[Any]:
        if self.bound.order_by:
            matches = sort_instances(matches, self.bound.order_by, self.resolver)
        return islice(matches, self.skip, self.stop)


def run_query(
    bound: BoundQuery,
    parameters: Mapping[str, Any] | None,
    instance_source: Iterable[Any],
    resolver: Resolver | None = None,
    config: EngineConfig | None = None,
) -> Iterator[Any]:
    """Run a bound query over instances.

    Parameters are checked before anything is read from ``instance_source``;
    the returned iterator is lazy unless the query has an ORDER BY.
    """
    plan = _Plan(bound, parameters, resolver, config)
    logger.debug("Running query '%s'", bound.name)
    return plan.finish(instance for instance in instance_source if plan.accepts(instance))


def run_query_async(
    bound: BoundQuery,
    parameters: Mapping[str, Any] | None,
    instance_source: AsyncIterable[Any],
    resolver: Resolver | None = None,
    config: EngineConfig | None = None,
) -> AsyncIterator[Any]:
    """Async counterpart of :func:`run_query` over an async instance source."""
    plan = _Plan(bound, parameters, resolver, config)
    logger.debug("Running query '%s' asynchronously", bound.name)

    async def results() -> AsyncIterator[Any]:
        if bound.order_by:
            matches = [instance async for instance in instance_source if plan.accepts(instance)]
            for instance in plan.finish(matches):
                yield instance
            return

        if plan.limit == 0:
            return
        skipped = 0
        emitted = 0
        async for instance in instance_source:
            if not plan.accepts(instance):
                continue
            if skipped < plan.skip:
                skipped += 1
                continue
            yield instance
            emitted += 1
            if plan.limit is not None and emitted >= plan.limit:
                return

    return results()


class QueryEngine:
    """A model registry plus named queries kept bound to its current snapshot."""

    def __init__(self, registry: ModelRegistry | None = None, config: EngineConfig | None = None) -> None:
        self.registry = registry or ModelRegistry()
        self.config = config or EngineConfig()
        self._lock = threading.Lock()
        self._queries: dict[str, BoundQuery] = {}

    @property
    def snapshot(self) -> RegistrySnapshot:
        return self.registry.snapshot

    @property
    def query_names(self) -> tuple[str, ...]:
        return tuple(self._queries)

    def load_model(self, sources: Iterable[ModelSource]) -> RegistrySnapshot:
        return self.registry.register(sources)

    def reload_model(self, sources: Iterable[ModelSource]) -> RegistrySnapshot:
        """Replace installed namespaces with new versions."""
        return self.registry.update(sources)

    def load_queries(self, sources: Iterable[QuerySource]) -> QueryBatch:
        """Bind queries against the current snapshot and keep the ones that bound."""
        with self._lock:
            batch = load_queries(sources, self.snapshot, self.config, reserved_names=self._queries)
            self._queries.update(batch.queries)
        return batch

    def query(self, name: str) -> BoundQuery:
        """Return a named query bound to the current snapshot.

        Raises:
            KeyError: If no query has that name.
            BindError: If the query no longer fits the current model.
        """
        snapshot = self.snapshot
        with self._lock:
            bound = self._queries[name]
            if bound.snapshot is not snapshot:
                bound = rebind(bound, snapshot, self.config)
                self._queries[name] = bound
        return bound

    def run(
        self,
        name: str,
        parameters: Mapping[str, Any] | None = None,
        instances: Iterable[Any] = (),
        resolver: Resolver | None = None,
    ) -> Iterator[Any]:
        return run_query(self.query(name), parameters, instances, resolver, self.config)

    def run_async(
        self,
        name: str,
        parameters: Mapping[str, Any] | None,
        instances: AsyncIterable[Any],
        resolver: Resolver | None = None,
    ) -> AsyncIterator[Any]:
        return run_query_async(self.query(name), parameters, instances, resolver, self.config)
