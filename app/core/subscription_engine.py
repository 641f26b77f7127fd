"""
Subscriptions and their wallet fund holds.

A WALLET subscription reserves one cycle's price in the customer's wallet
when it is created and again at every renewal. The hold is consumed when the
delivery order reaches DELIVERED (see order_state_machine) and released when
the subscription is paused or cancelled ahead of a delivery.
"""
import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.crud import (
    crud_customer,
    crud_order,
    crud_order_tracking,
    crud_payment,
    crud_product,
    crud_subscription,
    crud_wallet,
)
from app.core.config import SUBSCRIPTION_BUFFER_DAYS
from app.core.exceptions import (
    NotFoundError,
    CustomerNotFoundError,
    SubscriptionNotFoundError,
    WalletNotFoundError,
    SubscriptionNotEligibleError,
    SubscriptionLockedError,
    InsufficientStockError,
    InsufficientBalanceError,
    InvalidPaymentMethodError,
    InvalidStatusTransitionError,
)
from app.core.messages import render
from app.core.notifications import notify_customer
from app.core.subscription_schedule import parse_frequency, next_renewal_date
from app.db.session import atomic
from app.models.subscription import Subscription, SubscriptionDelivery
from app.models.wallet import Wallet
from app.models.enums import (
    OrderStatus,
    PaymentStatus,
    PaymentMethod,
    SubscriptionStatus,
    WalletTransactionType,
    WalletTransactionStatus,
    NotificationType,
)
from app.schemas.subscription import SubscriptionCreate

logger = logging.getLogger(__name__)

SUBSCRIPTION_PAYMENT_METHODS = (PaymentMethod.WALLET, PaymentMethod.COD)


def hold_funds(db: Session, *, wallet: Wallet, subscription: Subscription, amount, description: str):
    """Lock `amount` of the wallet's available balance and record the hold as a PENDING purchase."""
    crud_wallet.lock_funds(db, wallet=wallet, amount=amount)
    return crud_wallet.create_transaction(
        db,
        wallet_id=wallet.id,
        amount=amount,
        transaction_type=WalletTransactionType.PURCHASE,
        status=WalletTransactionStatus.PENDING,
        subscription_id=subscription.id,
        description=description,
    )


def create_subscription(
    db: Session, customer_id: int, subscription_in: SubscriptionCreate, now: Optional[datetime] = None
) -> Subscription:
    now = now or datetime.now()
    with atomic(db):
        plan = crud_subscription.get_plan(db, subscription_in.plan_id)
        if plan is None or not plan.is_active:
            raise NotFoundError("Subscription plan not found")

        product = crud_product.get_product(db, plan.product_id, for_update=True)
        if product is None or not product.is_subscription:
            raise SubscriptionNotEligibleError("Product is not available for subscription")
        if product.package_size * 1 > product.stock_quantity:
            raise InsufficientStockError(product.id, product.package_size, product.stock_quantity)

        customer = crud_customer.get_customer(db, customer_id)
        if customer is None:
            raise CustomerNotFoundError("Customer not found")

        method = subscription_in.payment_method
        if method not in SUBSCRIPTION_PAYMENT_METHODS:
            raise InvalidPaymentMethodError(f"Payment method {method.value} is not supported for subscriptions")

        frequency = parse_frequency(plan.frequency)

        subscription = crud_subscription.create_subscription(
            db,
            customer_id=customer.id,
            plan=plan,
            payment_method=method,
            shipping_address=subscription_in.shipping_address or customer.address,
            start_date=now,
            renewal_date=next_renewal_date(now, frequency),
        )

        if method == PaymentMethod.WALLET:
            wallet = crud_wallet.get_wallet_by_customer(db, customer_id=customer.id, for_update=True)
            if wallet is None:
                raise WalletNotFoundError("Wallet not found")
            if wallet.available_balance < plan.price:
                raise InsufficientBalanceError("Insufficient wallet balance to lock funds")
            hold_funds(
                db,
                wallet=wallet,
                subscription=subscription,
                amount=plan.price,
                description=f"Funds locked for subscription #{subscription.id} ({plan.name})",
            )
            logger.info(f"Locked {plan.price} in wallet {wallet.id} for subscription {subscription.id}.")

        user_id, locale = customer.user_id, customer.user.locale

    logger.info(f"Subscription {subscription.id} created for customer {customer_id} ({method.value}, {frequency.value}).")
    notify_customer(
        db,
        user_id=user_id,
        message=render("subscription_created", locale),
        notification_type=NotificationType.SUBSCRIPTION,
    )
    return subscription


def pause_subscription(db: Session, subscription_id: int, **kwargs) -> Subscription:
    return change_subscription_status(db, subscription_id, SubscriptionStatus.PAUSED, **kwargs)


def cancel_subscription(db: Session, subscription_id: int, **kwargs) -> Subscription:
    return change_subscription_status(db, subscription_id, SubscriptionStatus.CANCELLED, **kwargs)


def change_subscription_status(
    db: Session,
    subscription_id: int,
    action: SubscriptionStatus,
    *,
    customer_id: Optional[int] = None,
    today: Optional[date] = None,
    buffer_days: int = SUBSCRIPTION_BUFFER_DAYS,
) -> Subscription:
    """
    Pause or cancel a subscription, undoing its next scheduled delivery.
    Refused when that delivery is `buffer_days` days away or closer.
    """
    if action not in (SubscriptionStatus.PAUSED, SubscriptionStatus.CANCELLED):
        raise InvalidStatusTransitionError(f"Subscriptions cannot be moved to {action.value} directly")
    today = today or date.today()
    verb = "pause" if action == SubscriptionStatus.PAUSED else "cancel"

    with atomic(db):
        subscription = crud_subscription.get_subscription(db, subscription_id, for_update=True)
        if subscription is None or (customer_id is not None and subscription.customer_id != customer_id):
            raise SubscriptionNotFoundError("Subscription not found")
        if subscription.status == action:
            raise InvalidStatusTransitionError(f"Subscription is already {action.value}")
        if subscription.status == SubscriptionStatus.CANCELLED:
            raise InvalidStatusTransitionError("Subscription is already CANCELLED")

        upcoming = _next_delivery_on_or_after(db, subscription.id, today)
        if upcoming is not None and (upcoming.delivery_date - today).days <= buffer_days:
            raise SubscriptionLockedError(f"Can't {verb} subscription within {buffer_days} days of next delivery")

        subscription.status = action
        subscription.is_processing = False
        if upcoming is not None:
            _cancel_delivery(db, subscription, upcoming, action)
            subscription.next_delivery_date = None
        if action == SubscriptionStatus.CANCELLED and subscription.payment_method == PaymentMethod.WALLET:
            _release_unattached_holds(db, subscription)
        db.add(subscription)
        db.flush()

        customer = crud_customer.get_customer(db, subscription.customer_id)
        user_id, locale = customer.user_id, customer.user.locale

    logger.info(f"Subscription {subscription_id} set to {action.value}.")
    notify_customer(
        db,
        user_id=user_id,
        message=render("subscription_paused" if action == SubscriptionStatus.PAUSED else "subscription_cancelled", locale),
        notification_type=NotificationType.SUBSCRIPTION,
    )
    return subscription


def _next_delivery_on_or_after(db: Session, subscription_id: int, today: date) -> Optional[SubscriptionDelivery]:
    return (
        db.query(SubscriptionDelivery)
        .filter(
            SubscriptionDelivery.subscription_id == subscription_id,
            SubscriptionDelivery.delivery_date >= today,
            SubscriptionDelivery.status.notin_([OrderStatus.DELIVERED, OrderStatus.CANCELLED]),
        )
        .order_by(SubscriptionDelivery.delivery_date.asc(), SubscriptionDelivery.id.asc())
        .first()
    )


def _cancel_delivery(db: Session, subscription: Subscription, delivery: SubscriptionDelivery, action: SubscriptionStatus) -> None:
    order = crud_order.get_order_for_update(db, delivery.order_id)
    delivery.status = OrderStatus.CANCELLED
    order.status = OrderStatus.CANCELLED
    db.add(delivery)
    crud_order_tracking.record_status(
        db, order_id=order.id, status=OrderStatus.CANCELLED, description=f"Cancelled due to subscription {action.value.lower()}"
    )

    undone = PaymentStatus.REFUNDED if subscription.payment_method == PaymentMethod.WALLET else PaymentStatus.FAILED
    for payment in crud_payment.get_payments_for_order(db, order_id=order.id, for_update=True):
        if payment.payment_status in (PaymentStatus.PENDING, PaymentStatus.COMPLETED):
            crud_payment.set_status(db, db_obj=payment, status=undone)
    order.payment_status = undone
    db.add(order)
    db.flush()

    if subscription.payment_method == PaymentMethod.WALLET:
        wallet = crud_wallet.get_wallet_by_customer(db, customer_id=subscription.customer_id, for_update=True)
        if wallet is None:
            raise WalletNotFoundError("Wallet not found")
        hold = crud_wallet.get_pending_order_purchase(db, wallet_id=wallet.id, order_id=order.id)
        if hold is not None:
            crud_wallet.release_lock(db, wallet=wallet, amount=order.total_amount)
            hold.transaction_type = WalletTransactionType.REFUND
            crud_wallet.set_transaction_status(
                db, db_obj=hold, status=WalletTransactionStatus.COMPLETED, description=f"Refund for Order #{order.id}"
            )
        else:
            logger.warning(f"No pending wallet hold to release for cancelled order {order.id}.")

    crud_product.return_stock_for_order(db, order=order)
    logger.info(f"Delivery {delivery.id} (order {order.id}) cancelled by subscription {action.value.lower()}.")


def _release_unattached_holds(db: Session, subscription: Subscription) -> None:
    holds = crud_wallet.get_unattached_locks(db, subscription_id=subscription.id)
    if not holds:
        return
    wallet = crud_wallet.get_wallet_by_customer(db, customer_id=subscription.customer_id, for_update=True)
    for hold in holds:
        crud_wallet.release_lock(db, wallet=wallet, amount=hold.amount)
        hold.transaction_type = WalletTransactionType.REFUND
        crud_wallet.set_transaction_status(
            db,
            db_obj=hold,
            status=WalletTransactionStatus.COMPLETED,
            description=f"Lock released for cancelled subscription #{subscription.id}",
        )
    logger.info(f"Released {len(holds)} unattached hold(s) for subscription {subscription.id}.")
