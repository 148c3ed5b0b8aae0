"""
Tests for warehouse selection strategies.
"""

from uuid import UUID, uuid4

import pytest

from fulfillment import (
    FirstAvailableWarehouse,
    InsufficientStockError,
    SplitAcrossWarehouses,
    WarehouseSelectionStrategy,
)

A = UUID("00000000-0000-0000-0000-00000000000a")
B = UUID("00000000-0000-0000-0000-00000000000b")
C = UUID("00000000-0000-0000-0000-00000000000c")


class TestFirstAvailableWarehouse:
    def test_first_warehouse_with_enough_stock_in_id_order(self) -> None:
        strategy = FirstAvailableWarehouse()
        assert strategy.choose(uuid4(), 3, {C: 9, B: 3, A: 2}) == [(B, 3)]

    def test_preference_wins_when_it_can_cover(self) -> None:
        strategy = FirstAvailableWarehouse(preference=[C])
        assert strategy.choose(uuid4(), 3, {A: 9, C: 3}) == [(C, 3)]

    def test_preference_skipped_when_short(self) -> None:
        strategy = FirstAvailableWarehouse(preference=[C])
        assert strategy.choose(uuid4(), 3, {A: 9, C: 2}) == [(A, 3)]

    def test_never_splits(self) -> None:
        with pytest.raises(InsufficientStockError) as exc_info:
            FirstAvailableWarehouse().choose(uuid4(), 5, {A: 2, B: 3})
        assert exc_info.value.available == 3

    def test_no_stock_anywhere(self) -> None:
        with pytest.raises(InsufficientStockError) as exc_info:
            FirstAvailableWarehouse().choose(uuid4(), 1, {})
        assert exc_info.value.available == 0


class TestSplitAcrossWarehouses:
    def test_single_warehouse_when_possible(self) -> None:
        assert SplitAcrossWarehouses().choose(uuid4(), 3, {A: 2, B: 5}) == [(B, 3)]

    def test_fills_most_stocked_first(self) -> None:
        allocation = SplitAcrossWarehouses().choose(uuid4(), 6, {A: 2, B: 3, C: 4})
        assert allocation == [(C, 4), (B, 2)]
        assert sum(q for _, q in allocation) == 6

    def test_ignores_empty_and_negative_rows(self) -> None:
        assert SplitAcrossWarehouses().choose(uuid4(), 2, {A: 0, B: -1, C: 2}) == [(C, 2)]

    def test_total_short(self) -> None:
        with pytest.raises(InsufficientStockError) as exc_info:
            SplitAcrossWarehouses().choose(uuid4(), 10, {A: 2, B: 3})
        assert exc_info.value.available == 5


def test_builtin_strategies_satisfy_protocol() -> None:
    assert isinstance(FirstAvailableWarehouse(), WarehouseSelectionStrategy)
    assert isinstance(SplitAcrossWarehouses(), WarehouseSelectionStrategy)
