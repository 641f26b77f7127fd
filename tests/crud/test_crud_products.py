import pytest
from decimal import Decimal
from sqlalchemy.orm import Session

from app.crud import crud_product, crud_order
from app.core.exceptions import InsufficientStockError
from app.models.enums import StockTransactionType, PaymentMethod

pytestmark = pytest.mark.crud


def test_create_and_get_product(db_session: Session, make_product):
    product = make_product(price="35.00", package_size=12, stock_quantity=240)

    fetched = crud_product.get_product(db_session, product.id)
    assert fetched.price == Decimal("35.00")
    assert fetched.package_size == 12
    assert fetched.stock_quantity == 240

def test_inactive_product_hidden_by_default(db_session: Session, make_product):
    product = make_product(is_active=False)
    assert crud_product.get_product(db_session, product.id) is None
    assert crud_product.get_product(db_session, product.id, show_inactive=True) is not None

def test_decrement_stock_records_out_row(db_session: Session, make_product):
    product = make_product(stock_quantity=10)

    record = crud_product.decrement_stock(db_session, product=product, units=4, description="Manual adjustment")
    db_session.commit()

    assert product.stock_quantity == 6
    assert record.transaction_type == StockTransactionType.OUT
    assert record.quantity == 4

def test_decrement_stock_never_goes_negative(db_session: Session, make_product):
    product = make_product(stock_quantity=3)
    with pytest.raises(InsufficientStockError) as exc_info:
        crud_product.decrement_stock(db_session, product=product, units=4)
    assert exc_info.value.requested == 4
    assert exc_info.value.available == 3
    assert product.stock_quantity == 3


def _raw_order(db: Session, customer, lines):
    order = crud_order.create_order(
        db,
        customer_id=customer.id,
        payment_method=PaymentMethod.WALLET,
        items=[
            {"product_id": p.id, "quantity": q, "unit_price": p.price, "package_size": p.package_size}
            for p, q in lines
        ],
    )
    db.commit()
    return crud_order.get_order(db, order.id)

def test_release_stock_for_order_uses_package_size_once(db_session: Session, make_customer, two_item_order_lines):
    customer = make_customer()
    order = _raw_order(db_session, customer, two_item_order_lines)

    first = crud_product.release_stock_for_order(db_session, order=order)
    second = crud_product.release_stock_for_order(db_session, order=order)
    db_session.commit()

    assert [r.quantity for r in first] == [6, 5]
    assert second == []
    assert all(r.description == f"Stock reduced for Order #{order.id}" for r in first)
    eggs, rice = (p for p, _ in two_item_order_lines)
    assert crud_product.get_product(db_session, eggs.id).stock_quantity == 94
    assert crud_product.get_product(db_session, rice.id).stock_quantity == 95

def test_release_stock_is_all_or_nothing(db_session: Session, make_customer, make_product):
    customer = make_customer()
    plenty = make_product(stock_quantity=100)
    scarce = make_product(stock_quantity=1, package_size=2)
    order = _raw_order(db_session, customer, [(plenty, 1), (scarce, 1)])

    with pytest.raises(InsufficientStockError):
        crud_product.release_stock_for_order(db_session, order=order)
    db_session.rollback()

    assert crud_product.get_product(db_session, plenty.id).stock_quantity == 100
    assert not crud_product.has_stock_released(db_session, order_id=order.id)

def test_return_stock_for_order(db_session: Session, make_customer, two_item_order_lines):
    customer = make_customer()
    order = _raw_order(db_session, customer, two_item_order_lines)
    assert crud_product.return_stock_for_order(db_session, order=order) == []

    crud_product.release_stock_for_order(db_session, order=order)
    returned = crud_product.return_stock_for_order(db_session, order=order)
    assert crud_product.return_stock_for_order(db_session, order=order) == []
    db_session.commit()

    assert [r.quantity for r in returned] == [6, 5]
    assert all(r.transaction_type == StockTransactionType.IN for r in returned)
    eggs, _ = (p for p, _ in two_item_order_lines)
    assert crud_product.get_product(db_session, eggs.id).stock_quantity == 100
