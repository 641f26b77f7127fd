import logging
from sqlalchemy.orm import Session

from app.crud import crud_order, crud_order_tracking, crud_product
from app.core.exceptions import NotFoundError, InsufficientStockError
from app.core.messages import order_status_message, tracking_description
from app.core.notifications import notify_customer
from app.db.session import atomic
from app.models.order import Order
from app.models.user import Customer
from app.models.enums import OrderStatus, PaymentStatus, NotificationType
from app.schemas.order import OrderCreate

logger = logging.getLogger(__name__)


def create_order(db: Session, customer: Customer, order_in: OrderCreate) -> Order:
    """
    Place a PENDING order for a customer.
    Prices and package sizes are snapshotted from the products. Stock is checked
    here but only taken out once the order is paid (or delivered, for COD).
    """
    with atomic(db):
        items = []
        is_preorder = False
        for line in order_in.items:
            product = crud_product.get_product(db, line.product_id)
            if product is None:
                raise NotFoundError(f"Product {line.product_id} not found or not active")
            units = line.quantity * product.package_size
            if product.is_preorder:
                is_preorder = True
            elif units > product.stock_quantity:
                raise InsufficientStockError(product.id, units, product.stock_quantity)
            items.append({
                "product_id": product.id,
                "quantity": line.quantity,
                "unit_price": product.price,
                "package_size": product.package_size,
            })

        order = crud_order.create_order(
            db,
            customer_id=customer.id,
            payment_method=order_in.payment_method,
            items=items,
            shipping_address=order_in.shipping_address or customer.address,
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            is_preorder=is_preorder,
        )
        crud_order_tracking.record_status(
            db, order_id=order.id, status=OrderStatus.PENDING, description=tracking_description(OrderStatus.PENDING)
        )
        order_id = order.id

    logger.info(f"Order {order_id} placed by customer {customer.id} for {order.total_amount} ({order_in.payment_method.value}).")
    notify_customer(
        db,
        user_id=customer.user_id,
        message=order_status_message(OrderStatus.PENDING, order_id, customer.user.locale),
        notification_type=NotificationType.ORDER,
    )
    return order
