"""Example usage of the typed_ledger library."""

from typed_ledger import QueryEngine

# Define the business model using the schema DSL
model = """
namespace org.acme.trading

participant Trader identified by tradeId {
    o String tradeId
    o String firstName
    o String lastName
}

asset Commodity identified by tradingSymbol {
    o String tradingSymbol
    o String description
    o Double quantity
    --> Trader owner
}
"""

queries = """
query selectCommoditiesByOwner {
    description: "Commodities with a minimum quantity held by one trader"
    statement:
        SELECT org.acme.trading.Commodity
            WHERE (quantity > _$minQuantity AND owner == _$owner)
            ORDER BY [quantity DESC]
}
"""

engine = QueryEngine()
engine.load_model([("trading.cto", model)])
engine.load_queries([("queries.qry", queries)]).raise_for_failures()

commodities = [
    {"tradingSymbol": "EMA", "description": "Corn", "quantity": 100.0, "owner": "alice"},
    {"tradingSymbol": "CC", "description": "Cocoa", "quantity": 40.0, "owner": "alice"},
    {"tradingSymbol": "ZW", "description": "Wheat", "quantity": 250.0, "owner": "bob"},
    {"tradingSymbol": "KC", "description": "Coffee", "quantity": 75.0, "owner": "resource:org.acme.trading.Trader#alice"},
]

print("Commodities held by alice with quantity > 50:")
for commodity in engine.run("selectCommoditiesByOwner", {"minQuantity": 50, "owner": "alice"}, commodities):
    print(f"  {commodity['tradingSymbol']}: {commodity['description']} x {commodity['quantity']}")

# Show the resolved model
print("\nDeclarations:")
for view in engine.snapshot:
    fields = ", ".join(f.name for f in view.fields)
    print(f"  {view.kind.value} {view.fqn} ({fields})")
