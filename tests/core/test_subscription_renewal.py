import pytest
from datetime import date, datetime
from decimal import Decimal
from sqlalchemy.orm import Session

from app.crud import crud_notification, crud_order, crud_payment, crud_product, crud_subscription, crud_wallet
from app.core import subscription_renewal
from app.core.order_state_machine import update_order
from app.core.subscription_engine import create_subscription
from app.core.subscription_renewal import renew_subscriptions
from app.models.enums import OrderStatus, PaymentStatus, PaymentMethod, SubscriptionStatus
from app.schemas.order import OrderUpdate
from app.schemas.subscription import SubscriptionCreate

pytestmark = pytest.mark.core

START = datetime(2026, 3, 2, 9, 0)
RUN = datetime(2026, 3, 9, 10, 0)


def _subscribe(db: Session, customer, plan, method=PaymentMethod.WALLET):
    return create_subscription(
        db, customer.id, SubscriptionCreate(plan_id=plan.id, payment_method=method), now=START
    )


def test_wallet_renewal_creates_confirmed_order(db_session: Session, make_customer, make_plan):
    customer = make_customer(balance="500.00")
    plan = make_plan(price="120.00", stock_quantity=10)
    subscription = _subscribe(db_session, customer, plan)

    report = renew_subscriptions(db_session, now=RUN)

    assert (report.processed, report.renewed, report.paused, report.failed) == (1, 1, 0, 0)
    renewed = crud_subscription.get_subscription(db_session, subscription.id)
    assert renewed.status == SubscriptionStatus.ACTIVE
    assert renewed.renewal_date == datetime(2026, 3, 16, 10, 0)
    assert renewed.next_delivery_date == date(2026, 3, 14)
    assert not renewed.is_processing

    delivery = renewed.deliveries[0]
    order = crud_order.get_order(db_session, delivery.order_id)
    assert order.is_subscription
    assert order.status == OrderStatus.CONFIRMED
    assert order.payment_status == PaymentStatus.PENDING
    assert order.total_amount == Decimal("120.00")
    assert [(i.quantity, i.unit_price) for i in order.items] == [(1, Decimal("120.00"))]
    payments = crud_payment.get_payments_for_order(db_session, order_id=order.id)
    assert [(p.payment_method, p.payment_status) for p in payments] == [(PaymentMethod.WALLET, PaymentStatus.PENDING)]
    assert crud_product.get_product(db_session, plan.product_id).stock_quantity == 9

    wallet = crud_wallet.get_wallet_by_customer(db_session, customer_id=customer.id)
    assert wallet.balance == Decimal("500.00")
    assert wallet.locked_balance == Decimal("240.00")
    # The creation-time hold now backs this order; a fresh one waits for the next cycle
    assert crud_wallet.get_pending_order_purchase(db_session, wallet_id=wallet.id, order_id=order.id) is not None
    assert len(crud_wallet.get_unattached_locks(db_session, subscription_id=subscription.id)) == 1

def test_cod_renewal(db_session: Session, make_customer, make_plan):
    customer = make_customer()
    plan = make_plan(price="80.00", stock_quantity=10)
    subscription = _subscribe(db_session, customer, plan, method=PaymentMethod.COD)

    report = renew_subscriptions(db_session, now=RUN)
    assert report.renewed == 1

    delivery = crud_subscription.get_subscription(db_session, subscription.id).deliveries[0]
    payments = crud_payment.get_payments_for_order(db_session, order_id=delivery.order_id)
    assert [(p.payment_method, p.payment_status) for p in payments] == [(PaymentMethod.COD, PaymentStatus.PENDING)]
    # Cash-on-delivery stock leaves at delivery
    assert crud_product.get_product(db_session, plan.product_id).stock_quantity == 10

    for status in (OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
        update_order(db_session, delivery.order_id, OrderUpdate(status=status))
    assert crud_product.get_product(db_session, plan.product_id).stock_quantity == 9
    assert crud_payment.get_payments_for_order(db_session, order_id=delivery.order_id)[0].payment_status == PaymentStatus.COMPLETED

def test_renewal_skips_subscriptions_not_due(db_session: Session, make_customer, make_plan):
    customer = make_customer(balance="500.00")
    _subscribe(db_session, customer, make_plan())

    report = renew_subscriptions(db_session, now=datetime(2026, 3, 8, 23, 59))
    assert report.processed == 0

def test_renewal_pauses_on_missing_stock(db_session: Session, make_customer, make_plan):
    customer = make_customer(balance="500.00")
    plan = make_plan(stock_quantity=1)
    subscription = _subscribe(db_session, customer, plan)
    product = crud_product.get_product(db_session, plan.product_id)
    product.stock_quantity = 0
    db_session.commit()

    report = renew_subscriptions(db_session, now=RUN)

    assert (report.processed, report.paused) == (1, 1)
    paused = crud_subscription.get_subscription(db_session, subscription.id)
    assert paused.status == SubscriptionStatus.PAUSED
    assert paused.deliveries == []
    latest = crud_notification.get_notifications_for_user(db_session, receiver_id=customer.user_id)[0]
    assert "out of stock" in latest.message

def test_renewal_pauses_without_held_funds(db_session: Session, make_customer, make_plan):
    customer = make_customer(balance="500.00")
    subscription = _subscribe(db_session, customer, make_plan(price="120.00"))
    wallet = crud_wallet.get_wallet_by_customer(db_session, customer_id=customer.id)
    wallet.locked_balance = Decimal("0.00")
    db_session.commit()

    report = renew_subscriptions(db_session, now=RUN)

    assert report.paused == 1
    paused = crud_subscription.get_subscription(db_session, subscription.id)
    assert paused.status == SubscriptionStatus.PAUSED
    assert paused.deliveries == []

def test_renewal_pauses_when_next_cycle_cannot_be_held(db_session: Session, make_customer, make_plan):
    customer = make_customer(balance="120.00")
    plan = make_plan(price="120.00", stock_quantity=10)
    subscription = _subscribe(db_session, customer, plan)

    report = renew_subscriptions(db_session, now=RUN)

    assert (report.renewed, report.paused) == (0, 1)
    paused = crud_subscription.get_subscription(db_session, subscription.id)
    assert paused.status == SubscriptionStatus.PAUSED
    # This cycle's delivery still goes out
    assert len(paused.deliveries) == 1
    wallet = crud_wallet.get_wallet_by_customer(db_session, customer_id=customer.id)
    assert wallet.locked_balance == Decimal("120.00")
    messages = [n.message for n in crud_notification.get_notifications_for_user(db_session, receiver_id=customer.user_id)]
    assert any("scheduled for 2026-03-14" in m for m in messages)
    assert any("not enough balance for your next subscription cycle" in m for m in messages)

def test_renewal_picks_up_new_plan_price(db_session: Session, make_customer, make_plan):
    customer = make_customer(balance="500.00")
    plan = make_plan(price="120.00", stock_quantity=10)
    subscription = _subscribe(db_session, customer, plan)
    plan = crud_subscription.get_plan(db_session, plan.id)
    plan.price = Decimal("150.00")
    db_session.commit()

    renew_subscriptions(db_session, now=RUN)

    renewed = crud_subscription.get_subscription(db_session, subscription.id)
    assert renewed.plan_price == Decimal("150.00")
    # This cycle was held at the old price, the next one at the new price
    assert crud_order.get_order(db_session, renewed.deliveries[0].order_id).total_amount == Decimal("120.00")
    wallet = crud_wallet.get_wallet_by_customer(db_session, customer_id=customer.id)
    assert wallet.locked_balance == Decimal("270.00")

def test_failing_renewal_is_retried_then_released(db_session: Session, make_customer, make_plan, monkeypatch):
    customer = make_customer(balance="500.00")
    subscription = _subscribe(db_session, customer, make_plan())
    attempts = []

    def boom(db, subscription_id, now):
        attempts.append(subscription_id)
        raise RuntimeError("database went away")

    monkeypatch.setattr(subscription_renewal, "renew_subscription", boom)
    report = renew_subscriptions(db_session, now=RUN, max_retries=3)

    assert attempts == [subscription.id] * 3
    assert (report.processed, report.failed) == (1, 1)
    released = crud_subscription.get_subscription(db_session, subscription.id)
    assert not released.is_processing
    assert released.status == SubscriptionStatus.ACTIVE

def test_claimed_subscription_is_left_alone(db_session: Session, make_customer, make_plan):
    customer = make_customer(balance="500.00")
    subscription = _subscribe(db_session, customer, make_plan())
    claimed = crud_subscription.get_subscription(db_session, subscription.id)
    claimed.is_processing = True
    db_session.commit()

    report = renew_subscriptions(db_session, now=RUN)
    assert report.processed == 0

def test_renewal_walks_every_batch(db_session: Session, make_customer, make_plan):
    plan = make_plan(stock_quantity=50)
    for _ in range(5):
        _subscribe(db_session, make_customer(balance="500.00"), plan)

    report = renew_subscriptions(db_session, now=RUN, batch_size=2)
    assert (report.processed, report.renewed) == (5, 5)
