"""Shipment allocation for the fulfillment library."""

from fulfillment.shipments.splitter import (
    ShipmentInstruction,
    ShipmentLine,
    ShipmentPlan,
    ShipmentSplitter,
)

__all__ = [
    "ShipmentInstruction",
    "ShipmentLine",
    "ShipmentPlan",
    "ShipmentSplitter",
]
