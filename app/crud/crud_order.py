from decimal import Decimal
from sqlalchemy.orm import Session, joinedload, selectinload
from typing import Optional, List, Sequence

from app.models.order import Order, OrderItem
from app.models.user import Customer
from app.models.enums import OrderStatus, PaymentStatus, PaymentMethod

def get_order(db: Session, order_id: int) -> Optional[Order]:
    """
    Get a single order by ID, with items and the owning customer eagerly loaded.
    """
    return (
        db.query(Order)
        .options(
            selectinload(Order.items).joinedload(OrderItem.product),
            joinedload(Order.customer).joinedload(Customer.user),
        )
        .filter(Order.id == order_id)
        .first()
    )

def get_order_for_update(db: Session, order_id: int) -> Optional[Order]:
    """
    Get an order and lock its row until the surrounding transaction ends.
    Relations are loaded with separate SELECTs so the row lock does not hit an outer join.
    """
    return (
        db.query(Order)
        .options(
            selectinload(Order.items),
            selectinload(Order.customer).selectinload(Customer.user),
        )
        .filter(Order.id == order_id)
        .with_for_update(of=Order)
        .populate_existing()
        .first()
    )

def get_orders_by_customer(
    db: Session, *, customer_id: int, status: Optional[OrderStatus] = None, skip: int = 0, limit: int = 100
) -> List[Order]:
    """
    Get a customer's orders, newest first, optionally filtered by status.
    """
    query = (
        db.query(Order)
        .options(selectinload(Order.items))
        .filter(Order.customer_id == customer_id)
    )
    if status:
        query = query.filter(Order.status == status)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).offset(skip).limit(limit).all()

def get_order_count_for_customer(db: Session, *, customer_id: int) -> int:
    return db.query(Order).filter(Order.customer_id == customer_id).count()

def create_order(
    db: Session,
    *,
    customer_id: int,
    payment_method: PaymentMethod,
    items: Sequence[dict],
    shipping_address: Optional[str] = None,
    status: OrderStatus = OrderStatus.PENDING,
    payment_status: PaymentStatus = PaymentStatus.PENDING,
    is_subscription: bool = False,
    is_preorder: bool = False,
) -> Order:
    """
    Add an order and its items to the session and flush.
    Each item dict carries product_id, quantity, unit_price and package_size;
    subtotals and the order total are computed here.
    """
    order_items = []
    total_amount = Decimal("0.00")
    for item in items:
        unit_price = Decimal(item["unit_price"])
        subtotal = unit_price * item["quantity"]
        total_amount += subtotal
        order_items.append(OrderItem(
            product_id=item["product_id"],
            quantity=item["quantity"],
            unit_price=unit_price,
            package_size=item.get("package_size", 1),
            subtotal=subtotal,
        ))

    db_obj = Order(
        customer_id=customer_id,
        status=status,
        payment_status=payment_status,
        payment_method=payment_method,
        total_amount=total_amount,
        shipping_address=shipping_address,
        is_subscription=is_subscription,
        is_preorder=is_preorder,
        items=order_items,
    )
    db.add(db_obj)
    db.flush()
    return db_obj
