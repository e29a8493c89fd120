"""Typed Ledger - A typed model registry and query engine for business entities."""

from typed_ledger.binder import BoundQuery, QueryBinder, bind, rebind
from typed_ledger.config import EngineConfig
from typed_ledger.declarations import Declaration, DeclarationKind, FieldSpec, ModelFile, ScalarType
from typed_ledger.engine import (
    QueryBatch,
    QueryEngine,
    QueryFailure,
    load_model,
    load_queries,
    run_query,
    run_query_async,
)
from typed_ledger.errors import (
    BindError,
    LedgerError,
    ModelSyntaxError,
    QueryRuntimeError,
    QuerySyntaxError,
    ValidationError,
)
from typed_ledger.evaluator import compare, evaluate, sort_instances
from typed_ledger.parsing import ModelParser, QueryParser, format_query, format_statement
from typed_ledger.registry import ModelRegistry, RegistrySnapshot, TypeView, build_snapshot
from typed_ledger.values import Relationship

__all__ = [
    # Main API
    "QueryEngine",
    "load_model",
    "load_queries",
    "run_query",
    "run_query_async",
    "QueryBatch",
    "QueryFailure",
    "EngineConfig",
    # Models
    "ModelParser",
    "ModelRegistry",
    "RegistrySnapshot",
    "TypeView",
    "build_snapshot",
    "Declaration",
    "DeclarationKind",
    "FieldSpec",
    "ModelFile",
    "ScalarType",
    "Relationship",
    # Queries
    "QueryParser",
    "QueryBinder",
    "BoundQuery",
    "bind",
    "rebind",
    "evaluate",
    "compare",
    "sort_instances",
    "format_query",
    "format_statement",
    # Errors
    "LedgerError",
    "ModelSyntaxError",
    "QuerySyntaxError",
    "ValidationError",
    "BindError",
    "QueryRuntimeError",
]

__version__ = "0.1.0"
