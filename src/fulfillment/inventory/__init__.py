"""
Inventory reservation for the fulfillment library.

This module provides:
- InventoryReservationManager: reserve / commit / release on inventory rows
- WarehouseSelectionStrategy: protocol deciding where stock is reserved from
- FirstAvailableWarehouse, SplitAcrossWarehouses: built-in strategies
"""

from fulfillment.inventory.reservations import InventoryReservationManager
from fulfillment.inventory.strategies import (
    Allocation,
    FirstAvailableWarehouse,
    SplitAcrossWarehouses,
    WarehouseSelectionStrategy,
)

__all__ = [
    "Allocation",
    "FirstAvailableWarehouse",
    "InventoryReservationManager",
    "SplitAcrossWarehouses",
    "WarehouseSelectionStrategy",
]
