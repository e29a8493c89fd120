"""Tests for loading and running queries."""

import asyncio
import logging

import pytest

from typed_ledger.config import EngineConfig
from typed_ledger.engine import QueryEngine, load_model, load_queries, run_query, run_query_async
from typed_ledger.errors import (
    DuplicateQueryError,
    InvalidParameterError,
    MissingParameterError,
    QueryRuntimeError,
    QuerySyntaxError,
    UnknownFieldError,
    UnknownTypeError,
)
from typed_ledger.registry import ModelRegistry

from conftest import TRADING_MODEL

REGISTRY_MODEL = """
namespace org.acme.registry
abstract asset Registry identified by id {
    o String id
    o String name
    o String type
    o Boolean system
}
asset AssetRegistry extends Registry {
}
"""

COMMODITY_QUERIES = """
query byOwnerInRange {
    description: "Commodities between 30 and 60 held by an owner"
    statement:
        SELECT org.acme.trading.Commodity
            WHERE (quantity >= 30 AND quantity < 60 AND owner == _$owner)
}

query byQuantity {
    description: "Commodities by quantity"
    statement:
        SELECT org.acme.trading.Commodity ORDER BY [quantity ASC]
}

query byQuantityDesc {
    description: "Commodities by quantity, largest first"
    statement:
        SELECT org.acme.trading.Commodity ORDER BY [quantity DESC]
}

query page {
    description: "A page of commodities"
    statement:
        SELECT org.acme.trading.Commodity ORDER BY [quantity ASC] LIMIT _$size SKIP _$offset
}
"""


@pytest.fixture
def batch(snapshot):
    """Bound commodity queries."""
    result = load_queries([("commodities.qry", COMMODITY_QUERIES)], snapshot)
    result.raise_for_failures()
    return result


async def async_items(items):
    for item in items:
        await asyncio.sleep(0)
        yield item


async def collect(aiterator):
    return [item async for item in aiterator]


class TestScenarios:
    """End-to-end scenarios over the trading and registry models."""

    def test_inherited_boolean_filter(self):
        """Test selecting a concrete subtype by an inherited field."""
        snapshot = load_model([REGISTRY_MODEL])
        batch = load_queries([
            'query systemRegistries { description: "System registries" '
            "statement: SELECT AssetRegistry WHERE (system == true) }"
        ], snapshot)
        assert batch.ok
        instances = [
            {"id": "a", "name": "Assets", "type": "Asset", "system": True},
            {"id": "b", "name": "Mine", "type": "Asset", "system": False},
            {"id": "c", "name": "Unknown", "type": "Asset"},
        ]
        results = list(run_query(batch.get("systemRegistries"), {}, instances))
        assert results == [instances[0]]

    def test_range_and_owner(self, batch):
        """Test the range-and-owner query with owner alice."""
        instances = [
            {"tradingSymbol": "A", "quantity": 45, "owner": "alice"},
            {"tradingSymbol": "B", "quantity": 45, "owner": "bob"},
            {"tradingSymbol": "C", "quantity": 10, "owner": "alice"},
        ]
        results = list(run_query(batch.get("byOwnerInRange"), {"owner": "alice"}, instances))
        assert results == [instances[0]]

    def test_ascending_and_descending(self, batch):
        """Test ORDER BY ASC and DESC over 10, 60, 30."""
        instances = [{"quantity": q} for q in (10, 60, 30)]
        asc = run_query(batch.get("byQuantity"), {}, instances)
        desc = run_query(batch.get("byQuantityDesc"), {}, instances)
        assert [i["quantity"] for i in asc] == [10, 30, 60]
        assert [i["quantity"] for i in desc] == [60, 30, 10]


class TestLoadQueries:
    """Tests for loading query sources."""

    def test_loaded_queries(self, batch):
        """Test the queries of a clean batch."""
        assert batch.ok
        assert len(batch) == 4
        assert [q.name for q in batch] == ["byOwnerInRange", "byQuantity", "byQuantityDesc", "page"]
        assert batch.get("missing") is None

    def test_bind_failure_is_per_query(self, snapshot, caplog):
        """Test that one bad query does not fail its neighbours."""
        text = """
        query good { description: "ok" statement: SELECT Commodity }
        query bad { description: "unknown field" statement: SELECT Commodity WHERE (colour == 'red') }
        query alsoGood { description: "ok" statement: SELECT Trader }
        """
        with caplog.at_level(logging.WARNING, logger="typed_ledger.engine"):
            batch = load_queries([("mixed.qry", text)], snapshot)
        assert sorted(batch.queries) == ["alsoGood", "good"]
        assert not batch.ok
        failure = batch.failures[0]
        assert failure.query == "bad"
        assert failure.source == "mixed.qry"
        assert isinstance(failure.error, UnknownFieldError)
        assert "bad" in caplog.text
        with pytest.raises(UnknownFieldError):
            batch.raise_for_failures()

    def test_syntax_error_fails_the_source(self, snapshot):
        """Test that a syntax error fails its whole source unit only."""
        batch = load_queries([
            ("broken.qry", 'query a { description: "x" statement: SELECT }'),
            ("fine.qry", 'query b { description: "x" statement: SELECT Commodity }'),
        ], snapshot)
        assert list(batch.queries) == ["b"]
        assert batch.failures[0].query is None
        assert isinstance(batch.failures[0].error, QuerySyntaxError)

    def test_duplicate_names(self, snapshot):
        """Test that a repeated name fails the later query."""
        batch = load_queries([
            'query q { description: "first" statement: SELECT Commodity }',
            'query q { description: "second" statement: SELECT Trader }',
        ], snapshot)
        assert batch.get("q").description == "first"
        assert isinstance(batch.failures[0].error, DuplicateQueryError)
        assert batch.failures[0].source == "<queries 1>"

    def test_unknown_target(self, snapshot):
        """Test that an unknown target fails the query."""
        batch = load_queries(['query q { description: "" statement: SELECT Spaceship }'], snapshot)
        assert isinstance(batch.failures[0].error, UnknownTypeError)

    def test_misspelled_block_key_fails_the_source(self, snapshot):
        """Test that a misspelled 'description' key is reported, not skipped."""
        batch = load_queries([
            ("typo.qry", 'query a { descriptoin: "x" statement: SELECT Commodity }'),
            ("fine.qry", 'query b { description: "x" statement: SELECT Commodity }'),
        ], snapshot)
        assert not batch.ok
        assert list(batch.queries) == ["b"]
        failure = batch.failures[0]
        assert failure.source == "typo.qry"
        assert isinstance(failure.error, QuerySyntaxError)
        assert failure.error.token == "descriptoin"

    def test_negative_limit_fails_the_source(self, snapshot):
        """Test that a negative LIMIT literal is reported as a syntax error."""
        batch = load_queries(['query a { description: "" statement: SELECT Commodity LIMIT -1 }'], snapshot)
        assert len(batch) == 0
        assert isinstance(batch.failures[0].error, QuerySyntaxError)


class TestRunQuery:
    """Tests for running bound queries."""

    def test_missing_parameter_is_eager(self, batch):
        """Test that missing parameters fail before any instance is read."""
        def instances():
            raise AssertionError("instance source should not be read")
            yield  # pragma: no cover

        with pytest.raises(MissingParameterError) as exc_info:
            run_query(batch.get("byOwnerInRange"), {}, instances())
        assert exc_info.value.parameter == "owner"
        assert exc_info.value.query == "byOwnerInRange"

    def test_invalid_parameter(self, batch):
        """Test that a wrong-typed parameter fails."""
        with pytest.raises(InvalidParameterError) as exc_info:
            run_query(batch.get("page"), {"size": "many", "offset": 0}, [])
        assert exc_info.value.value == "many"
        assert isinstance(exc_info.value, QueryRuntimeError)

    def test_coerced_parameters(self, batch):
        """Test that string parameters are coerced when enabled."""
        instances = [{"quantity": q} for q in (5, 1, 4, 2, 3)]
        results = run_query(batch.get("page"), {"size": "2", "offset": "1"}, instances)
        assert [i["quantity"] for i in results] == [2, 3]
        with pytest.raises(InvalidParameterError):
            run_query(batch.get("page"), {"size": "2", "offset": "1"}, instances,
                      config=EngineConfig(coerce_parameters=False))

    def test_lazy_without_order_by(self, snapshot):
        """Test that matches stream without reading the whole source."""
        bound = load_queries([
            'query q { description: "" statement: SELECT Commodity WHERE (quantity > 0) LIMIT 2 }'
        ], snapshot).get("q")
        seen = []

        def instances():
            for q in range(1, 100):
                seen.append(q)
                yield {"quantity": q}

        results = list(run_query(bound, None, instances()))
        assert [r["quantity"] for r in results] == [1, 2]
        assert seen == [1, 2]

    def test_skip_and_limit_after_ordering(self, batch):
        """Test that paging applies to the ordered results."""
        instances = [{"quantity": q} for q in (50, 10, 40, 20, 30)]
        results = run_query(batch.get("page"), {"size": 2, "offset": 2}, instances)
        assert [i["quantity"] for i in results] == [30, 40]

    def test_zero_limit(self, batch):
        """Test LIMIT 0."""
        results = run_query(batch.get("page"), {"size": 0, "offset": 0}, [{"quantity": 1}])
        assert list(results) == []

    def test_default_limit(self, batch):
        """Test the configured limit for queries without LIMIT."""
        instances = [{"quantity": q} for q in range(10)]
        results = run_query(batch.get("byQuantity"), {}, instances, config=EngineConfig(default_limit=3))
        assert [i["quantity"] for i in results] == [0, 1, 2]

    def test_class_filter(self, batch):
        """Test that $class restricts instances to the target and its subtypes."""
        instances = [
            {"$class": "org.acme.trading.Commodity", "quantity": 3},
            {"$class": "org.acme.trading.PerishableCommodity", "quantity": 2},
            {"$class": "org.acme.trading.Trader", "quantity": 1},
            {"$class": "org.acme.other.Unknown", "quantity": 0},
            {"quantity": 4},
            "not an instance",
        ]
        results = run_query(batch.get("byQuantity"), {}, instances)
        assert [i["quantity"] for i in results] == [2, 3, 4]

    def test_hop_with_resolver(self, snapshot, resolver):
        """Test a query that follows a relationship."""
        bound = load_queries([
            'query q { description: "" statement: SELECT Commodity WHERE (owner.grade == _$grade) }'
        ], snapshot).get("q")
        instances = [{"owner": "alice", "quantity": 1}, {"owner": "bob", "quantity": 2}, {"quantity": 3}]
        results = list(run_query(bound, {"grade": "BRONZE"}, instances, resolver))
        assert results == [instances[1]]

    def test_relationship_of_other_type(self, build_model):
        """Test that a reference to an unrelated type does not match by identifier alone."""
        snapshot = build_model("""
            namespace a
            asset U identified by id {
                o String id
            }
            asset V identified by id {
                o String id
            }
            asset T identified by id {
                o String id
                --> U u optional
            }
        """)
        bound = load_queries([
            'query q { description: "" statement: SELECT T WHERE (u == "resource:a.U#x") }'
        ], snapshot).get("q")
        assert list(run_query(bound, None, [{"id": "1", "u": "resource:a.V#x"}])) == []
        assert list(run_query(bound, None, [{"id": "2", "u": "resource:a.U#x"}])) == [{"id": "2", "u": "resource:a.U#x"}]


class TestRunQueryAsync:
    """Tests for running queries over async sources."""

    def test_async_filter(self, batch):
        """Test filtering an async source."""
        instances = [
            {"quantity": 45, "owner": "alice"},
            {"quantity": 45, "owner": "bob"},
        ]
        results = asyncio.run(collect(
            run_query_async(batch.get("byOwnerInRange"), {"owner": "alice"}, async_items(instances))
        ))
        assert results == [instances[0]]

    def test_async_ordering_and_paging(self, batch):
        """Test ORDER BY with SKIP and LIMIT over an async source."""
        instances = [{"quantity": q} for q in (50, 10, 40, 20, 30)]
        results = asyncio.run(collect(
            run_query_async(batch.get("page"), {"size": 2, "offset": 1}, async_items(instances))
        ))
        assert [i["quantity"] for i in results] == [20, 30]

    def test_async_skip_and_limit_streaming(self, snapshot):
        """Test paging without ORDER BY over an async source."""
        bound = load_queries([
            'query q { description: "" statement: SELECT Commodity LIMIT 2 SKIP 1 }'
        ], snapshot).get("q")
        instances = [{"quantity": q} for q in range(5)]
        results = asyncio.run(collect(run_query_async(bound, {}, async_items(instances))))
        assert [i["quantity"] for i in results] == [1, 2]

    def test_async_parameters_are_eager(self, batch):
        """Test that parameter errors are raised before iteration."""
        with pytest.raises(MissingParameterError):
            run_query_async(batch.get("byOwnerInRange"), {}, async_items([]))


class TestQueryEngine:
    """Tests for the engine facade."""

    def test_load_and_run(self):
        """Test loading a model and queries, then running by name."""
        engine = QueryEngine()
        engine.load_model([("trading.cto", TRADING_MODEL)])
        batch = engine.load_queries([COMMODITY_QUERIES])
        assert batch.ok
        assert engine.query_names == ("byOwnerInRange", "byQuantity", "byQuantityDesc", "page")

        instances = [{"quantity": 45, "owner": "alice"}, {"quantity": 45, "owner": "bob"}]
        assert list(engine.run("byOwnerInRange", {"owner": "alice"}, instances)) == [instances[0]]

    def test_names_are_unique_across_loads(self):
        """Test that later loads cannot redefine a query."""
        engine = QueryEngine()
        engine.load_model([TRADING_MODEL])
        engine.load_queries([COMMODITY_QUERIES])
        batch = engine.load_queries(['query page { description: "" statement: SELECT Trader }'])
        assert isinstance(batch.failures[0].error, DuplicateQueryError)
        assert engine.query("page").target.name == "Commodity"

    def test_rebinds_after_model_change(self):
        """Test that queries follow the current snapshot."""
        engine = QueryEngine()
        engine.load_model([TRADING_MODEL])
        engine.load_queries([COMMODITY_QUERIES])
        before = engine.query("byQuantity")

        engine.reload_model([TRADING_MODEL.replace("o Double quantity range=[0,]", "o Integer quantity")])
        after = engine.query("byQuantity")
        assert after is not before
        assert after.snapshot is engine.snapshot
        assert after.order_by[0].path.leaf.type_name == "Integer"
        assert engine.query("byQuantity") is after

    def test_rebind_failure_after_model_change(self):
        """Test that a query no longer valid raises when used."""
        engine = QueryEngine()
        engine.load_model([TRADING_MODEL])
        engine.load_queries([COMMODITY_QUERIES])
        engine.reload_model([TRADING_MODEL.replace("o Double quantity range=[0,]", "o Double amount")])
        with pytest.raises(UnknownFieldError):
            engine.query("byQuantity")

    def test_unknown_query(self):
        """Test running a query that was never loaded."""
        engine = QueryEngine()
        with pytest.raises(KeyError):
            engine.query("nothing")

    def test_async_run(self):
        """Test running by name over an async source."""
        engine = QueryEngine(ModelRegistry())
        engine.load_model([TRADING_MODEL])
        engine.load_queries([COMMODITY_QUERIES])
        instances = [{"quantity": q} for q in (3, 1, 2)]
        results = asyncio.run(collect(engine.run_async("byQuantityDesc", None, async_items(instances))))
        assert [i["quantity"] for i in results] == [3, 2, 1]

    def test_load_model_into_registry(self):
        """Test the module-level loader with a registry."""
        registry = ModelRegistry()
        snapshot = load_model([REGISTRY_MODEL], registry)
        assert registry.snapshot is snapshot
        assert "AssetRegistry" in snapshot

    def test_registry_swap_is_logged(self, caplog):
        """Test that installing a snapshot logs at INFO."""
        with caplog.at_level(logging.INFO, logger="typed_ledger.registry"):
            load_model([REGISTRY_MODEL], ModelRegistry())
        assert "Installed model snapshot" in caplog.text
