"""
Product catalog.

Only what order creation needs: products with a unique, immutable sku and
a price that can change without affecting orders already placed.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

import pydantic

from fulfillment.exceptions import DuplicateKeyError, ValidationError
from fulfillment.models import Product
from fulfillment.stores import LedgerStore, LedgerTransaction
from fulfillment.types import to_money

logger = logging.getLogger(__name__)


class ProductCatalog:
    """
    Registers and updates products in a LedgerStore.

    Example:
        >>> catalog = ProductCatalog(store)
        >>> chair = await catalog.register("CHAIR-1", "Chair", Decimal("49.00"))
        >>> await catalog.reprice(chair.id, Decimal("59.00"))
    """

    def __init__(self, store: LedgerStore) -> None:
        self._store = store

    async def register(
        self,
        sku: str,
        name: str,
        price: Decimal | int | str,
        *,
        weight_kg: Decimal | None = None,
        tx: LedgerTransaction | None = None,
    ) -> Product:
        """
        Add a product.

        Raises:
            DuplicateKeyError: If the sku is already registered
        """
        try:
            product = Product(sku=sku, name=name, price=to_money(price), weight_kg=weight_kg)
        except pydantic.ValidationError as e:
            raise ValidationError(str(e), field="product") from e

        async def work(tx: LedgerTransaction) -> Product:
            if await tx.find_unique(Product, "sku", sku) is not None:
                raise DuplicateKeyError(Product.entity_name(), "sku", sku)
            return tx.insert(product)

        created = await self._store.in_transaction(tx, work, name="catalog.register")
        logger.info("Registered product %s (%s) at %s", created.sku, created.id, created.price)
        return created

    async def get(self, product_id: UUID) -> Product | None:
        return await self._store.get(Product, product_id)

    async def get_by_sku(self, sku: str) -> Product | None:
        async with self._store.transaction() as tx:
            return await tx.find_unique(Product, "sku", sku)

    async def reprice(
        self,
        product_id: UUID,
        price: Decimal | int | str,
        *,
        tx: LedgerTransaction | None = None,
    ) -> Product:
        """
        Change a product's price.

        Existing order items keep the price they were sold at.

        Raises:
            NotFoundError: If the product does not exist
            ValidationError: If the price is negative
        """
        new_price = to_money(price)
        if new_price < 0:
            raise ValidationError(f"must not be negative, got {new_price}", field="price")

        async def work(tx: LedgerTransaction) -> Product:
            product = await tx.require(Product, product_id, for_update=True)
            return tx.update(product.evolve(price=new_price))

        updated = await self._store.in_transaction(tx, work, name="catalog.reprice")
        logger.info("Repriced product %s to %s", updated.sku, updated.price)
        return updated

    async def deactivate(
        self,
        product_id: UUID,
        *,
        tx: LedgerTransaction | None = None,
    ) -> Product:
        """Stop selling a product. New orders for it are rejected."""

        async def work(tx: LedgerTransaction) -> Product:
            product = await tx.require(Product, product_id, for_update=True)
            return tx.update(product.evolve(active=False))

        updated = await self._store.in_transaction(tx, work, name="catalog.deactivate")
        logger.info("Deactivated product %s", updated.sku)
        return updated
