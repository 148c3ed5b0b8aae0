"""
Tests for ProductCatalog.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from fulfillment import DuplicateKeyError, NotFoundError, ProductCatalog, ValidationError


@pytest.mark.asyncio
async def test_register_and_lookup(catalog: ProductCatalog) -> None:
    chair = await catalog.register("CHAIR-1", "Chair", "49.9")

    assert chair.price == Decimal("49.90")
    assert chair.active
    assert (await catalog.get(chair.id)) == chair
    assert (await catalog.get_by_sku("CHAIR-1")) == chair
    assert await catalog.get_by_sku("NOPE") is None


@pytest.mark.asyncio
async def test_duplicate_sku(catalog: ProductCatalog) -> None:
    await catalog.register("CHAIR-1", "Chair", 10)
    with pytest.raises(DuplicateKeyError) as exc_info:
        await catalog.register("CHAIR-1", "Other chair", 12)
    assert exc_info.value.field == "sku"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("sku", "name", "price"),
    [("", "Chair", "1.00"), ("CHAIR-1", "", "1.00"), ("CHAIR-1", "Chair", "-1.00")],
)
async def test_invalid_products(catalog: ProductCatalog, sku: str, name: str, price: str) -> None:
    with pytest.raises(ValidationError):
        await catalog.register(sku, name, price)


@pytest.mark.asyncio
async def test_reprice(catalog: ProductCatalog) -> None:
    chair = await catalog.register("CHAIR-1", "Chair", "10.00")

    repriced = await catalog.reprice(chair.id, "12.50")

    assert repriced.price == Decimal("12.50")
    assert repriced.version == chair.version + 1
    with pytest.raises(ValidationError):
        await catalog.reprice(chair.id, "-0.01")
    with pytest.raises(NotFoundError):
        await catalog.reprice(uuid4(), "1.00")


@pytest.mark.asyncio
async def test_deactivate(catalog: ProductCatalog) -> None:
    chair = await catalog.register("CHAIR-1", "Chair", "10.00")

    await catalog.deactivate(chair.id)

    stored = await catalog.get(chair.id)
    assert stored is not None
    assert not stored.active
