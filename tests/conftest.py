"""Shared fixtures for typed_ledger tests."""

from __future__ import annotations

import pytest

from typed_ledger.registry import RegistrySnapshot, build_snapshot, parse_models

TRADING_MODEL = """
namespace org.acme.trading

enum Grade {
    o GOLD
    o SILVER
    o BRONZE
}

concept Address {
    o String city
    o String country optional
}

abstract participant Person identified by personId {
    o String personId
    o String lastName
    o Address address optional
}

participant Trader extends Person {
    o String firstName
    o Grade grade default="SILVER"
}

asset Commodity identified by tradingSymbol {
    o String tradingSymbol
    o String description optional
    o Double quantity range=[0,]
    o Integer lots optional
    o DateTime listedAt optional
    o Boolean active default=true
    o Grade grade optional
    o String[] tags optional
    --> Trader owner optional
    --> Trader[] previousOwners optional
}

asset PerishableCommodity extends Commodity {
    o Integer shelfLifeDays
}

transaction Trade {
    --> Commodity commodity
    --> Trader newOwner
}
"""


def make_snapshot(*sources: str) -> RegistrySnapshot:
    return build_snapshot(parse_models(sources))


@pytest.fixture
def snapshot() -> RegistrySnapshot:
    """Snapshot of the trading model."""
    return make_snapshot(TRADING_MODEL)


@pytest.fixture
def traders() -> dict[str, dict]:
    """Trader instances keyed by identifier."""
    return {
        "alice": {"personId": "alice", "firstName": "Alice", "lastName": "Archer", "grade": "GOLD",
                  "address": {"city": "Leeds", "country": "UK"}},
        "bob": {"personId": "bob", "firstName": "Bob", "lastName": "Baker", "grade": "BRONZE"},
    }


@pytest.fixture
def resolver(traders):
    """Resolver looking traders up by identifier."""
    def resolve(type_name: str, identifier: str):
        if type_name == "org.acme.trading.Trader":
            return traders.get(identifier)
        return None
    return resolve


@pytest.fixture
def build_model():
    """Factory building a snapshot from model texts."""
    return make_snapshot
