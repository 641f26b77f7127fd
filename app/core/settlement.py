"""
Confirm-and-settle step shared by the wallet payment path and the gateway
success callback. Callers hold the order row lock and own the transaction.
"""
import logging
from sqlalchemy.orm import Session

from app.crud import crud_order_tracking, crud_product
from app.core.messages import tracking_description
from app.models.order import Order
from app.models.payment import Payment
from app.models.enums import OrderStatus, PaymentStatus

logger = logging.getLogger(__name__)


def settle_paid_order(db: Session, *, order: Order, payment: Payment) -> None:
    """
    Mark `payment` COMPLETED, move the order to COMPLETED / CONFIRMED, track the
    confirmation and take the order's stock out.
    """
    payment.payment_status = PaymentStatus.COMPLETED
    payment.failure_reason = None
    db.add(payment)

    order.payment_status = PaymentStatus.COMPLETED
    if order.status == OrderStatus.PENDING:
        order.status = OrderStatus.CONFIRMED
    db.add(order)
    db.flush()

    crud_order_tracking.record_status(
        db, order_id=order.id, status=OrderStatus.CONFIRMED, description=tracking_description(OrderStatus.CONFIRMED)
    )
    if order.is_preorder:
        # Preorder stock arrives later; it is taken out when the order is delivered.
        logger.info(f"Order {order.id} is a preorder, stock decrement deferred to delivery.")
    else:
        crud_product.release_stock_for_order(db, order=order)
    logger.info(f"Order {order.id} settled by payment {payment.id} ({payment.payment_method.value}).")
