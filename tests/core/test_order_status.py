import pytest

from app.models.enums import OrderStatus, ORDER_PROGRESSION, compare_order_status

pytestmark = pytest.mark.core


def test_progression_order():
    assert [s.rank for s in ORDER_PROGRESSION] == [0, 1, 2, 3, 4]
    assert OrderStatus.CANCELLED.rank is None
    assert not OrderStatus.CANCELLED.in_progression

def test_compare_order_status():
    assert compare_order_status(OrderStatus.PENDING, OrderStatus.DELIVERED) < 0
    assert compare_order_status(OrderStatus.SHIPPED, OrderStatus.CONFIRMED) > 0
    assert compare_order_status(OrderStatus.PROCESSING, OrderStatus.PROCESSING) == 0
    assert OrderStatus.SHIPPED.is_ahead_of(OrderStatus.PROCESSING)
    assert not OrderStatus.PENDING.is_ahead_of(OrderStatus.CONFIRMED)

def test_compare_rejects_cancelled():
    with pytest.raises(ValueError):
        compare_order_status(OrderStatus.CANCELLED, OrderStatus.PENDING)

def test_statuses_after_and_next_status():
    assert OrderStatus.PROCESSING.statuses_after() == (OrderStatus.SHIPPED, OrderStatus.DELIVERED)
    assert OrderStatus.DELIVERED.statuses_after() == ()
    assert OrderStatus.CANCELLED.statuses_after() == ()
    assert OrderStatus.CONFIRMED.next_status() == OrderStatus.PROCESSING
    assert OrderStatus.DELIVERED.next_status() is None
