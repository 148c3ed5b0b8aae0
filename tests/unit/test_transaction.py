"""
Tests for LedgerTransaction buffering rules.

Commit-time conflict detection is covered by the conformance suite; these
tests cover what a transaction decides on its own before commit.
"""

from decimal import Decimal

import pytest

from fulfillment import (
    DuplicateKeyError,
    InMemoryLedgerStore,
    NotFoundError,
    Product,
)
from fulfillment.stores import LedgerTransaction


def _product(sku: str = "SKU-1") -> Product:
    return Product(sku=sku, name="Widget", price=Decimal("1.00"))


@pytest.mark.asyncio
async def test_closed_transaction_rejects_use(memory_store: InMemoryLedgerStore) -> None:
    async with memory_store.transaction() as tx:
        pass

    assert tx.closed
    with pytest.raises(RuntimeError):
        tx.insert(_product())
    with pytest.raises(RuntimeError):
        await tx.get(Product, "anything")


@pytest.mark.asyncio
async def test_insert_same_key_twice(memory_store: InMemoryLedgerStore) -> None:
    product = _product()
    with pytest.raises(DuplicateKeyError):
        async with memory_store.transaction() as tx:
            tx.insert(product)
            tx.insert(product)


@pytest.mark.asyncio
async def test_find_unique_requires_unique_field(memory_store: InMemoryLedgerStore) -> None:
    async with memory_store.transaction() as tx:
        with pytest.raises(ValueError):
            await tx.find_unique(Product, "name", "Widget")


@pytest.mark.asyncio
async def test_update_of_uncommitted_record(memory_store: InMemoryLedgerStore) -> None:
    async with memory_store.transaction() as tx:
        with pytest.raises(ValueError):
            tx.update(_product())


@pytest.mark.asyncio
async def test_update_of_deleted_record(memory_store: InMemoryLedgerStore) -> None:
    async with memory_store.transaction() as tx:
        product = tx.insert(_product())

    with pytest.raises(NotFoundError):
        async with memory_store.transaction() as tx:
            tx.delete(product)
            tx.update(product.evolve(name="Gadget"))


@pytest.mark.asyncio
async def test_insert_then_delete_writes_nothing(memory_store: InMemoryLedgerStore) -> None:
    async with memory_store.transaction() as tx:
        product = tx.insert(_product())
        tx.delete(product)
        assert tx.changes.is_empty
        assert await tx.get(Product, product.id) is None


@pytest.mark.asyncio
async def test_own_writes_visible_to_unique_lookup(memory_store: InMemoryLedgerStore) -> None:
    async with memory_store.transaction() as tx:
        product = tx.insert(_product("SKU-9"))
        found = await tx.find_unique(Product, "sku", "SKU-9")

    assert found == product


@pytest.mark.asyncio
async def test_insert_stamps_version(memory_store: InMemoryLedgerStore) -> None:
    tx = LedgerTransaction(memory_store)
    product = tx.insert(_product())
    assert product.version == 1
    again = tx.update(product.evolve(name="Gadget"))
    # Repeated updates in one transaction keep the insert's version
    assert again.version == 1
