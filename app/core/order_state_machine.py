"""
Order status transitions.

Orders move one step at a time along PENDING -> CONFIRMED -> PROCESSING ->
SHIPPED -> DELIVERED. Moving backwards is allowed and removes the tracking
rows of the statuses being undone. DELIVERED is final.

Delivery settles whatever the order still owes: cash-on-delivery payments are
completed and their stock taken out, and subscription orders paid from held
wallet funds consume the hold.
"""
import logging
from sqlalchemy.orm import Session

from app.crud import crud_order, crud_order_tracking, crud_payment, crud_product, crud_subscription, crud_wallet
from app.core.exceptions import (
    OrderNotFoundError,
    InvalidStatusTransitionError,
    InsufficientBalanceError,
    WalletNotFoundError,
)
from app.core.messages import order_status_message, tracking_description
from app.core.notifications import notify_customer
from app.core.transaction_ids import build_order_transaction_id
from app.db.session import atomic
from app.models.order import Order
from app.models.enums import (
    OrderStatus,
    PaymentStatus,
    PaymentMethod,
    WalletTransactionStatus,
    NotificationType,
)
from app.schemas.order import OrderUpdate

logger = logging.getLogger(__name__)


def check_transition(current: OrderStatus, new: OrderStatus) -> None:
    """Raise InvalidStatusTransitionError unless `current` may move to `new`."""
    if new == current:
        raise InvalidStatusTransitionError(f"Order is already {current.value}")
    if current == OrderStatus.DELIVERED:
        raise InvalidStatusTransitionError("Delivered orders cannot change status")
    if current == OrderStatus.CANCELLED:
        raise InvalidStatusTransitionError("Cancelled orders cannot change status")
    if not new.in_progression:
        raise InvalidStatusTransitionError(f"Orders cannot be moved to {new.value} by a status update")
    if new.rank > current.rank + 1:
        raise InvalidStatusTransitionError(
            f"Cannot move order from {current.value} to {new.value}; next status is {current.next_status().value}"
        )


def update_order(db: Session, order_id: int, patch: OrderUpdate) -> Order:
    """
    Apply a status change and all of its side effects in one transaction,
    then tell the customer. A failed notification does not undo the change.
    """
    with atomic(db):
        order = crud_order.get_order_for_update(db, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        current, new = order.status, patch.status
        check_transition(current, new)

        if new.rank < current.rank:
            purged = crud_order_tracking.purge_after(db, order_id=order.id, status=new)
            logger.info(f"Order {order.id} moved back from {current.value} to {new.value}, purged {purged} tracking row(s).")

        order.status = new
        db.add(order)
        db.flush()
        crud_order_tracking.record_status(db, order_id=order.id, status=new, description=tracking_description(new))

        if new == OrderStatus.DELIVERED:
            if order.payment_method == PaymentMethod.COD:
                _settle_cod_delivery(db, order)
            elif order.is_preorder:
                crud_product.release_stock_for_order(db, order=order)

        if order.is_subscription:
            _sync_subscription_delivery(db, order, new)

        user = order.customer.user
        user_id, locale = user.id, user.locale
        logger.info(f"Order {order.id} status {current.value} -> {new.value}")

    notify_customer(
        db,
        user_id=user_id,
        message=order_status_message(new, order_id, locale),
        notification_type=NotificationType.ORDER,
    )
    return order


def _settle_cod_delivery(db: Session, order: Order) -> None:
    crud_product.release_stock_for_order(db, order=order)

    payments = crud_payment.get_payments_for_order(db, order_id=order.id, method=PaymentMethod.COD, for_update=True)
    pending = next((p for p in payments if p.payment_status == PaymentStatus.PENDING), None)
    if pending is not None:
        crud_payment.set_status(db, db_obj=pending, status=PaymentStatus.COMPLETED)
    elif not any(p.payment_status == PaymentStatus.COMPLETED for p in payments):
        # Delivered without ever going through the payment dispatcher.
        crud_payment.create_payment(
            db,
            order_id=order.id,
            amount=order.total_amount,
            method=PaymentMethod.COD,
            status=PaymentStatus.COMPLETED,
            transaction_id=build_order_transaction_id(order.id),
        )
    order.payment_status = PaymentStatus.COMPLETED
    db.add(order)
    db.flush()
    logger.info(f"Cash on delivery collected for order {order.id}.")


def _sync_subscription_delivery(db: Session, order: Order, new: OrderStatus) -> None:
    delivery = crud_subscription.get_delivery_by_order(db, order_id=order.id)
    if delivery is None:
        logger.warning(f"Subscription order {order.id} has no delivery record.")
        return

    delivery.status = new
    db.add(delivery)
    db.flush()
    if new != OrderStatus.DELIVERED:
        return

    subscription = crud_subscription.get_subscription(db, delivery.subscription_id, for_update=True)
    if order.payment_method == PaymentMethod.WALLET:
        _settle_held_funds(db, order)

    upcoming = crud_subscription.get_next_unfulfilled_delivery(
        db, subscription_id=subscription.id, exclude_order_id=order.id
    )
    subscription.next_delivery_date = upcoming.delivery_date if upcoming else None
    db.add(subscription)
    db.flush()


def _settle_held_funds(db: Session, order: Order) -> None:
    """Consume the wallet hold backing a delivered subscription order."""
    wallet = crud_wallet.get_wallet_by_customer(db, customer_id=order.customer_id, for_update=True)
    if wallet is None:
        raise WalletNotFoundError("Wallet not found")
    if wallet.locked_balance < order.total_amount or wallet.balance < order.total_amount:
        raise InsufficientBalanceError("Insufficient wallet balance")

    crud_wallet.settle_locked(db, wallet=wallet, amount=order.total_amount)

    hold = crud_wallet.get_pending_order_purchase(db, wallet_id=wallet.id, order_id=order.id)
    if hold is not None:
        crud_wallet.set_transaction_status(db, db_obj=hold, status=WalletTransactionStatus.COMPLETED)
    else:
        logger.warning(f"No pending wallet hold found for subscription order {order.id}.")

    payments = crud_payment.get_payments_for_order(db, order_id=order.id, method=PaymentMethod.WALLET, for_update=True)
    pending = next((p for p in payments if p.payment_status == PaymentStatus.PENDING), None)
    if pending is not None:
        crud_payment.set_status(db, db_obj=pending, status=PaymentStatus.COMPLETED)
    else:
        crud_payment.create_payment(
            db,
            order_id=order.id,
            amount=order.total_amount,
            method=PaymentMethod.WALLET,
            status=PaymentStatus.COMPLETED,
            transaction_id=build_order_transaction_id(order.id),
            wallet_transaction_id=hold.id if hold else None,
        )
    order.payment_status = PaymentStatus.COMPLETED
    db.add(order)
    db.flush()
    logger.info(f"Held funds of {order.total_amount} settled for subscription order {order.id}.")
