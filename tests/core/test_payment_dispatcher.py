import pytest
from datetime import datetime
from decimal import Decimal
from sqlalchemy.orm import Session

from app.crud import (
    crud_order,
    crud_order_tracking,
    crud_payment,
    crud_product,
    crud_subscription,
    crud_wallet,
    crud_notification,
)
from app.core.exceptions import (
    InsufficientBalanceError,
    OrderNotFoundError,
    OrderNotPayableError,
    PaymentAlreadyExistsError,
    WalletNotFoundError,
    GatewaySessionError,
)
from app.core.messages import COD_CONFIRMED_DESCRIPTION
from app.core.order_state_machine import update_order
from app.core.payment_dispatcher import create_payment
from app.core.subscription_engine import create_subscription
from app.core.subscription_renewal import renew_subscriptions
from app.models.enums import (
    OrderStatus,
    PaymentStatus,
    PaymentMethod,
    StockTransactionType,
    WalletTransactionType,
    WalletTransactionStatus,
)
from app.schemas.order import OrderUpdate
from app.schemas.subscription import SubscriptionCreate

pytestmark = pytest.mark.core


def _stock_out(db: Session, order_id: int):
    return crud_product.get_stock_transactions_for_order(
        db, order_id=order_id, transaction_type=StockTransactionType.OUT
    )

# --- WALLET ---

def test_wallet_payment_settles_order(db_session: Session, make_customer, make_order, two_item_order_lines):
    customer = make_customer(balance="500.00")
    order = make_order(customer, two_item_order_lines)
    assert order.total_amount == Decimal("200.00")

    outcome = create_payment(db_session, order.id)

    assert outcome.message == "Payment completed successfully"
    assert outcome.redirect_url is None
    assert outcome.payment.payment_status == PaymentStatus.COMPLETED
    assert outcome.payment.payment_method == PaymentMethod.WALLET
    assert outcome.payment.transaction_id.startswith(f"ORDER_{order.id}_")

    wallet = crud_wallet.get_wallet_by_customer(db_session, customer_id=customer.id)
    assert wallet.balance == Decimal("300.00")
    assert wallet.locked_balance == Decimal("0.00")
    ledger = crud_wallet.get_transactions_for_wallet(db_session, wallet_id=wallet.id)
    assert len(ledger) == 1
    assert ledger[0].transaction_type == WalletTransactionType.PURCHASE
    assert ledger[0].transaction_status == WalletTransactionStatus.COMPLETED
    assert ledger[0].order_id == order.id
    assert outcome.payment.wallet_transaction_id == ledger[0].id

    settled = crud_order.get_order(db_session, order.id)
    assert settled.status == OrderStatus.CONFIRMED
    assert settled.payment_status == PaymentStatus.COMPLETED
    assert [t.quantity for t in _stock_out(db_session, order.id)] == [6, 5]
    eggs, rice = (product for product, _ in two_item_order_lines)
    assert crud_product.get_product(db_session, eggs.id).stock_quantity == 94
    assert crud_product.get_product(db_session, rice.id).stock_quantity == 95

    statuses = [t.status for t in crud_order_tracking.get_tracking_for_order(db_session, order_id=order.id)]
    assert statuses == [OrderStatus.PENDING, OrderStatus.CONFIRMED]

def test_wallet_payment_insufficient_balance(db_session: Session, make_customer, make_order, two_item_order_lines):
    customer = make_customer(balance="100.00")
    order = make_order(customer, two_item_order_lines)

    with pytest.raises(InsufficientBalanceError) as exc_info:
        create_payment(db_session, order.id)
    assert exc_info.value.message == "Insufficient wallet balance"

    wallet = crud_wallet.get_wallet_by_customer(db_session, customer_id=customer.id)
    assert wallet.balance == Decimal("100.00")
    assert crud_payment.get_payments_for_order(db_session, order_id=order.id) == []
    assert _stock_out(db_session, order.id) == []
    assert crud_order.get_order(db_session, order.id).payment_status == PaymentStatus.PENDING

def test_wallet_payment_ignores_locked_funds(db_session: Session, make_customer, make_order, two_item_order_lines):
    customer = make_customer(balance="250.00")
    wallet = crud_wallet.get_wallet_by_customer(db_session, customer_id=customer.id)
    crud_wallet.lock_funds(db_session, wallet=wallet, amount=Decimal("100.00"))
    db_session.commit()
    order = make_order(customer, two_item_order_lines)

    with pytest.raises(InsufficientBalanceError):
        create_payment(db_session, order.id)

    wallet = crud_wallet.get_wallet_by_customer(db_session, customer_id=customer.id)
    assert wallet.balance == Decimal("250.00")
    assert wallet.locked_balance == Decimal("100.00")

def test_wallet_payment_without_wallet(db_session: Session, make_customer, make_order, two_item_order_lines):
    customer = make_customer()
    order = make_order(customer, two_item_order_lines)
    with pytest.raises(WalletNotFoundError):
        create_payment(db_session, order.id)

def test_paid_order_is_not_payable_again(db_session: Session, make_customer, make_order, two_item_order_lines):
    customer = make_customer(balance="1000.00")
    order = make_order(customer, two_item_order_lines)
    create_payment(db_session, order.id)

    with pytest.raises(OrderNotPayableError) as exc_info:
        create_payment(db_session, order.id)
    assert exc_info.value.message == "Order is not payable"
    assert crud_wallet.get_wallet_by_customer(db_session, customer_id=customer.id).balance == Decimal("800.00")
    assert len(_stock_out(db_session, order.id)) == 2

def test_payment_for_missing_order(db_session: Session):
    with pytest.raises(OrderNotFoundError):
        create_payment(db_session, 9999)

def test_subscription_order_is_settled_only_from_held_funds(db_session: Session, make_customer, make_plan):
    customer = make_customer(balance="500.00")
    plan = make_plan(price="120.00")
    subscription = create_subscription(
        db_session, customer.id, SubscriptionCreate(plan_id=plan.id, payment_method=PaymentMethod.WALLET),
        now=datetime(2026, 3, 2, 9, 0),
    )
    renew_subscriptions(db_session, now=datetime(2026, 3, 9, 10, 0))
    order_id = crud_subscription.get_subscription(db_session, subscription.id).deliveries[0].order_id

    with pytest.raises(OrderNotPayableError) as exc_info:
        create_payment(db_session, order_id)
    assert exc_info.value.message == "Subscription orders are settled on delivery"

    wallet = crud_wallet.get_wallet_by_customer(db_session, customer_id=customer.id)
    assert wallet.balance == Decimal("500.00")
    assert wallet.locked_balance == Decimal("240.00")

    for status in (OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
        update_order(db_session, order_id, OrderUpdate(status=status))

    wallet = crud_wallet.get_wallet_by_customer(db_session, customer_id=customer.id)
    assert wallet.balance == Decimal("380.00")
    assert wallet.locked_balance == Decimal("120.00")
    payments = crud_payment.get_payments_for_order(db_session, order_id=order_id, method=PaymentMethod.WALLET)
    assert [p.payment_status for p in payments] == [PaymentStatus.COMPLETED]

def test_wallet_payment_notifies_customer(db_session: Session, make_customer, make_order, two_item_order_lines):
    customer = make_customer(balance="500.00")
    order = make_order(customer, two_item_order_lines)
    create_payment(db_session, order.id)

    notifications = crud_notification.get_notifications_for_user(db_session, receiver_id=customer.user_id)
    assert len(notifications) == 2 # order placed, payment completed
    assert "200.00 BDT was paid from your wallet" in notifications[0].message

# --- COD ---

def test_cod_payment_then_delivery(db_session: Session, make_customer, make_order, two_item_order_lines):
    customer = make_customer()
    order = make_order(customer, two_item_order_lines, payment_method=PaymentMethod.COD)

    outcome = create_payment(db_session, order.id)
    assert outcome.message == "Order confirmed. Please pay on delivery."
    assert outcome.payment.payment_status == PaymentStatus.PENDING
    pending = crud_order.get_order(db_session, order.id)
    assert pending.status == OrderStatus.PENDING
    assert _stock_out(db_session, order.id) == []
    tracking = crud_order_tracking.get_tracking_for_order(db_session, order_id=order.id)
    assert len(tracking) == 1
    assert tracking[0].description == COD_CONFIRMED_DESCRIPTION

    for status in (OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
        update_order(db_session, order.id, OrderUpdate(status=status))

    assert [t.quantity for t in _stock_out(db_session, order.id)] == [6, 5]
    payments = crud_payment.get_payments_for_order(db_session, order_id=order.id)
    assert len(payments) == 1
    assert payments[0].payment_status == PaymentStatus.COMPLETED
    assert crud_order.get_order(db_session, order.id).payment_status == PaymentStatus.COMPLETED

    with pytest.raises(PaymentAlreadyExistsError) as exc_info:
        create_payment(db_session, order.id)
    assert exc_info.value.message == "Payment record already exists"

def test_cod_payment_twice(db_session: Session, make_customer, make_order, two_item_order_lines):
    customer = make_customer()
    order = make_order(customer, two_item_order_lines, payment_method=PaymentMethod.COD)
    create_payment(db_session, order.id)

    with pytest.raises(PaymentAlreadyExistsError):
        create_payment(db_session, order.id)
    assert len(crud_payment.get_payments_for_order(db_session, order_id=order.id)) == 1

# --- SSLCOMMERZ ---

def test_gateway_payment_opens_session(db_session: Session, gateway, make_customer, make_order, two_item_order_lines):
    customer = make_customer()
    order = make_order(customer, two_item_order_lines, payment_method=PaymentMethod.SSLCOMMERZ)

    outcome = create_payment(db_session, order.id, gateway)

    assert outcome.message == "Redirect to SSLCommerz to complete the payment"
    assert outcome.redirect_url.startswith("https://sandbox.sslcommerz.com/")
    payment = crud_payment.get_payment(db_session, outcome.payment.id)
    assert payment.payment_status == PaymentStatus.PENDING
    assert payment.transaction_id.startswith(f"ORDER_{order.id}_")
    assert payment.gateway_session_key == f"SK_{payment.transaction_id}"

    assert len(gateway.sessions) == 1
    session = gateway.sessions[0]
    assert session["tran_id"] == payment.transaction_id
    assert session["amount"] == Decimal("200.00")
    assert session["callbacks"].success_url.endswith("/api/v1/payments/sslcommerz/success")
    assert session["callbacks"].ipn_url.endswith("/api/v1/payments/sslcommerz/ipn")
    # Nothing settles before the gateway confirms
    assert _stock_out(db_session, order.id) == []
    assert crud_order.get_order(db_session, order.id).status == OrderStatus.PENDING

def test_gateway_session_failure_marks_payment_failed(
    db_session: Session, gateway, make_customer, make_order, two_item_order_lines
):
    customer = make_customer()
    order = make_order(customer, two_item_order_lines, payment_method=PaymentMethod.SSLCOMMERZ)
    gateway.fail_sessions = True

    with pytest.raises(GatewaySessionError):
        create_payment(db_session, order.id, gateway)

    payments = crud_payment.get_payments_for_order(db_session, order_id=order.id)
    assert len(payments) == 1
    assert payments[0].payment_status == PaymentStatus.FAILED
    assert "Store is inactive" in payments[0].failure_reason
    assert crud_order.get_order(db_session, order.id).payment_status == PaymentStatus.FAILED

    # A failed attempt may be retried; the same payment row is reused
    gateway.fail_sessions = False
    outcome = create_payment(db_session, order.id, gateway)
    assert outcome.payment.id == payments[0].id
    retried = crud_payment.get_payment(db_session, outcome.payment.id)
    assert retried.payment_status == PaymentStatus.PENDING
    assert retried.failure_reason is None
    assert len(crud_payment.get_payments_for_order(db_session, order_id=order.id)) == 1
