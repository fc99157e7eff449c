"""Inventory ledger: stock movements and weighted average cost."""

from commerce_core.inventory.ledger import (
    ConsistencyReport,
    InventoryLedger,
    VariantStockState,
    weighted_average_cost,
)

__all__ = [
    "ConsistencyReport",
    "InventoryLedger",
    "VariantStockState",
    "weighted_average_cost",
]
