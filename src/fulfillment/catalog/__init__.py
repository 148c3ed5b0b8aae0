"""Product catalog for the fulfillment library."""

from fulfillment.catalog.products import ProductCatalog

__all__ = ["ProductCatalog"]
