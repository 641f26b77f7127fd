"""
Recurring subscription renewal.

Runs once a day (see app.worker). Every ACTIVE subscription whose
renewal_date has passed gets one delivery order for the coming slot, and
WALLET subscriptions get next cycle's price put on hold. A subscription that
cannot be renewed (no stock, no held funds) is paused and its owner told why.
"""
import logging
from datetime import datetime
from typing import List, Optional, Tuple

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
from app.core.config import RENEWAL_BATCH_SIZE, RENEWAL_MAX_RETRIES
from app.core.exceptions import SubscriptionNotFoundError, WalletNotFoundError, InvalidPaymentMethodError
from app.core.messages import render
from app.core.notifications import notify_customer
from app.core.subscription_engine import hold_funds
from app.core.subscription_schedule import parse_frequency, next_renewal_date, next_delivery_date
from app.core.transaction_ids import build_order_transaction_id
from app.db.session import atomic
from app.models.order import Order
from app.models.product import Product
from app.models.subscription import Subscription
from app.models.enums import (
    OrderStatus,
    PaymentStatus,
    PaymentMethod,
    SubscriptionStatus,
    SubscriptionFrequency,
    WalletTransactionType,
    WalletTransactionStatus,
    NotificationType,
)
from app.schemas.subscription import RenewalReport

logger = logging.getLogger(__name__)

RENEWED = "renewed"
PAUSED = "paused"
SKIPPED = "skipped"


def renew_subscriptions(
    db: Session,
    now: Optional[datetime] = None,
    *,
    batch_size: int = RENEWAL_BATCH_SIZE,
    max_retries: int = RENEWAL_MAX_RETRIES,
) -> RenewalReport:
    """
    Renew every due subscription, batch by batch in id order.
    One subscription failing never stops the run; it is retried up to `max_retries`
    times and then left for the next run.
    """
    now = now or datetime.now()
    logger.info(f"Starting subscription renewal for {now.isoformat()}")
    report = RenewalReport()
    last_id = 0

    while True:
        ids = crud_subscription.get_due_subscription_ids(db, now=now, after_id=last_id, limit=batch_size)
        if not ids:
            break
        for subscription_id in ids:
            outcome = _renew_with_retry(db, subscription_id, now, max_retries)
            if outcome == SKIPPED:
                continue
            report.processed += 1
            if outcome == RENEWED:
                report.renewed += 1
            elif outcome == PAUSED:
                report.paused += 1
            else:
                report.failed += 1
        last_id = ids[-1]
        logger.info(f"Processed renewal batch ending at subscription {last_id}")

    logger.info(
        f"Subscription renewal completed: {report.processed} total, {report.renewed} renewed, "
        f"{report.paused} paused, {report.failed} failed"
    )
    return report


def _renew_with_retry(db: Session, subscription_id: int, now: datetime, max_retries: int) -> Optional[str]:
    if not _claim(db, subscription_id, now):
        return SKIPPED

    for attempt in range(1, max_retries + 1):
        try:
            return renew_subscription(db, subscription_id, now)
        except Exception as e:
            logger.warning(f"Renewal of subscription {subscription_id} failed (attempt {attempt}/{max_retries}): {e}")

    logger.error(f"Giving up on subscription {subscription_id} after {max_retries} attempt(s).")
    with atomic(db):
        subscription = crud_subscription.get_subscription(db, subscription_id, for_update=True)
        if subscription is not None:
            subscription.is_processing = False
    return None


def _claim(db: Session, subscription_id: int, now: datetime) -> bool:
    """Flag a due subscription as being processed so a concurrent run leaves it alone."""
    with atomic(db):
        subscription = crud_subscription.get_subscription(db, subscription_id, for_update=True)
        if (
            subscription is None
            or subscription.status != SubscriptionStatus.ACTIVE
            or subscription.is_processing
            or subscription.renewal_date > now
        ):
            return False
        subscription.is_processing = True
        db.add(subscription)
    return True


def renew_subscription(db: Session, subscription_id: int, now: datetime) -> str:
    """
    Renew one claimed subscription in a single transaction and notify its owner.
    Returns RENEWED or PAUSED.
    """
    with atomic(db):
        subscription = crud_subscription.get_subscription(db, subscription_id, for_update=True)
        if subscription is None:
            raise SubscriptionNotFoundError("Subscription not found")
        plan = subscription.plan
        frequency = parse_frequency(plan.frequency)
        product = crud_product.get_product(db, plan.product_id, show_inactive=True, for_update=True)

        if product is None or not product.is_active or product.stock_quantity < product.package_size:
            _pause(db, subscription)
            outcome, notices = PAUSED, ["subscription_paused_stock"]
            logger.warning(f"Subscription {subscription.id} paused due to insufficient stock.")
        elif subscription.payment_method == PaymentMethod.WALLET:
            outcome, notices = _renew_from_wallet(db, subscription, product, frequency, now)
        elif subscription.payment_method == PaymentMethod.COD:
            outcome, notices = _renew_on_delivery(db, subscription, product, frequency, now)
        else:
            raise InvalidPaymentMethodError(f"Unsupported payment method: {subscription.payment_method.value}")

        customer = crud_customer.get_customer(db, subscription.customer_id)
        user_id, locale = customer.user_id, customer.user.locale
        delivery_date = subscription.next_delivery_date

    for key in notices:
        notify_customer(
            db,
            user_id=user_id,
            message=render(key, locale, delivery_date=delivery_date),
            notification_type=NotificationType.SUBSCRIPTION,
        )
    return outcome


def _renew_from_wallet(
    db: Session, subscription: Subscription, product: Product, frequency: SubscriptionFrequency, now: datetime
) -> Tuple[str, List[str]]:
    wallet = crud_wallet.get_wallet_by_customer(db, customer_id=subscription.customer_id, for_update=True)
    if wallet is None:
        raise WalletNotFoundError(f"Wallet not found for customer {subscription.customer_id}")

    price = subscription.plan_price
    if wallet.locked_balance < price:
        _pause(db, subscription)
        logger.warning(f"Subscription {subscription.id} paused due to insufficient locked balance.")
        return PAUSED, ["subscription_paused_balance"]

    order = _create_delivery_order(db, subscription, product, now, "Order confirmed, paid from held wallet funds on delivery")

    holds = crud_wallet.get_unattached_locks(db, subscription_id=subscription.id)
    if holds:
        hold = holds[0]
        if hold.amount != price:
            logger.warning(f"Hold {hold.id} of {hold.amount} does not match cycle price {price} for subscription {subscription.id}.")
        hold.order_id = order.id
        db.add(hold)
    else:
        # Funds were locked without a ledger line (older data); record the hold now.
        hold = crud_wallet.create_transaction(
            db,
            wallet_id=wallet.id,
            amount=price,
            transaction_type=WalletTransactionType.PURCHASE,
            status=WalletTransactionStatus.PENDING,
            order_id=order.id,
            subscription_id=subscription.id,
            description=f"Held funds for subscription #{subscription.id}",
        )
    crud_payment.create_payment(
        db,
        order_id=order.id,
        amount=order.total_amount,
        method=PaymentMethod.WALLET,
        status=PaymentStatus.PENDING,
        transaction_id=build_order_transaction_id(order.id),
        wallet_transaction_id=hold.id,
    )
    crud_product.release_stock_for_order(db, order=order)
    _advance(db, subscription, frequency, now)

    next_price = subscription.plan_price
    if wallet.available_balance >= next_price:
        hold_funds(
            db,
            wallet=wallet,
            subscription=subscription,
            amount=next_price,
            description=f"Funds locked for next cycle of subscription #{subscription.id}",
        )
        logger.info(f"Renewed subscription {subscription.id} with WALLET.")
        return RENEWED, ["subscription_delivery_scheduled", "subscription_renewed"]

    _pause(db, subscription)
    logger.warning(f"Subscription {subscription.id} paused due to insufficient funds for next cycle.")
    return PAUSED, ["subscription_delivery_scheduled", "subscription_paused_next_cycle"]


def _renew_on_delivery(
    db: Session, subscription: Subscription, product: Product, frequency: SubscriptionFrequency, now: datetime
) -> Tuple[str, List[str]]:
    order = _create_delivery_order(
        db, subscription, product, now, "Order created and confirmed, payment pending for cash on delivery"
    )
    crud_payment.create_payment(
        db,
        order_id=order.id,
        amount=order.total_amount,
        method=PaymentMethod.COD,
        status=PaymentStatus.PENDING,
        transaction_id=build_order_transaction_id(order.id),
    )
    _advance(db, subscription, frequency, now)
    logger.info(f"Renewed subscription {subscription.id} with COD.")
    return RENEWED, ["subscription_delivery_scheduled_cod"]


def _create_delivery_order(
    db: Session, subscription: Subscription, product: Product, now: datetime, description: str
) -> Order:
    order = crud_order.create_order(
        db,
        customer_id=subscription.customer_id,
        payment_method=subscription.payment_method,
        items=[{
            "product_id": product.id,
            "quantity": 1,
            "unit_price": subscription.plan_price,
            "package_size": product.package_size,
        }],
        shipping_address=subscription.shipping_address,
        status=OrderStatus.CONFIRMED,
        payment_status=PaymentStatus.PENDING,
        is_subscription=True,
    )
    crud_order_tracking.record_status(db, order_id=order.id, status=OrderStatus.CONFIRMED, description=description)
    crud_subscription.create_delivery(
        db,
        subscription_id=subscription.id,
        order_id=order.id,
        delivery_date=next_delivery_date(now.date(), parse_frequency(subscription.plan.frequency)),
    )
    return order


def _advance(db: Session, subscription: Subscription, frequency: SubscriptionFrequency, now: datetime) -> None:
    subscription.renewal_date = next_renewal_date(now, frequency)
    crud_subscription.refresh_plan_price(subscription)
    subscription.is_processing = False
    upcoming = crud_subscription.get_next_unfulfilled_delivery(db, subscription_id=subscription.id)
    subscription.next_delivery_date = upcoming.delivery_date if upcoming else None
    db.add(subscription)
    db.flush()


def _pause(db: Session, subscription: Subscription) -> None:
    subscription.status = SubscriptionStatus.PAUSED
    subscription.is_processing = False
    db.add(subscription)
    db.flush()
