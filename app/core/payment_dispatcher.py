"""
Order payment entry point.

The order's payment_method picks one of three strategies:

* WALLET settles immediately from the customer's available balance.
* COD records a pending payment; stock and settlement wait for delivery.
* SSLCOMMERZ opens a hosted gateway session; settlement arrives later through
  the gateway callbacks.
"""
import logging
from typing import NamedTuple, Optional

from sqlalchemy.orm import Session

from app.crud import crud_order, crud_order_tracking, crud_payment, crud_wallet
from app.core.config import SERVER_URL
from app.core.exceptions import (
    OrderNotFoundError,
    OrderNotPayableError,
    PaymentAlreadyExistsError,
    PaymentAlreadyCompletedError,
    PaymentNotFoundError,
    InsufficientBalanceError,
    InvalidPaymentMethodError,
    WalletNotFoundError,
    GatewayError,
)
from app.core.messages import render, COD_CONFIRMED_DESCRIPTION
from app.core.notifications import notify_customer
from app.core.settlement import settle_paid_order
from app.core.sslcommerz import SSLCommerzClient, CallbackUrls, CustomerInfo
from app.core.transaction_ids import build_order_transaction_id
from app.db.session import atomic
from app.models.order import Order
from app.models.payment import Payment
from app.models.enums import (
    OrderStatus,
    PaymentStatus,
    PaymentMethod,
    PAYABLE_STATUSES,
    WalletTransactionType,
    WalletTransactionStatus,
    NotificationType,
)

logger = logging.getLogger(__name__)

ORDER_CALLBACK_BASE = "/api/v1/payments/sslcommerz"


class PaymentOutcome(NamedTuple):
    payment: Payment
    message: str
    redirect_url: Optional[str] = None


def create_payment(db: Session, order_id: int, gateway: Optional[SSLCommerzClient] = None) -> PaymentOutcome:
    """
    Pay for an order with the method chosen at checkout.
    Raises a ServiceError subclass when the order cannot be paid; nothing is persisted in that case,
    except a gateway attempt that failed after it was recorded, which is kept as FAILED.
    """
    order = crud_order.get_order(db, order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    if order.is_subscription:
        # Backed by the subscription's wallet hold or collected on delivery; settled by the state machine.
        raise OrderNotPayableError("Subscription orders are settled on delivery")

    method = order.payment_method
    if method == PaymentMethod.WALLET:
        return _pay_with_wallet(db, order_id)
    if method == PaymentMethod.COD:
        return _pay_on_delivery(db, order_id)
    if method == PaymentMethod.SSLCOMMERZ:
        return _pay_with_gateway(db, order_id, gateway or SSLCommerzClient())
    raise InvalidPaymentMethodError(f"Unsupported payment method: {method}")


def _lock_order(db: Session, order_id: int) -> Order:
    order = crud_order.get_order_for_update(db, order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    return order


def _ensure_payable(order: Order) -> None:
    if order.payment_status not in PAYABLE_STATUSES or order.status == OrderStatus.CANCELLED:
        raise OrderNotPayableError("Order is not payable")


def _lock_payable_order(db: Session, order_id: int) -> Order:
    order = _lock_order(db, order_id)
    _ensure_payable(order)
    return order


def _pay_with_wallet(db: Session, order_id: int) -> PaymentOutcome:
    with atomic(db):
        order = _lock_payable_order(db, order_id)
        if crud_payment.has_payment_with_status(
            db, order_id=order.id, statuses=(PaymentStatus.COMPLETED, PaymentStatus.REFUNDED), method=PaymentMethod.WALLET
        ):
            raise PaymentAlreadyCompletedError("Payment already completed for this order")

        wallet = crud_wallet.get_wallet_by_customer(db, customer_id=order.customer_id, for_update=True)
        if wallet is None:
            raise WalletNotFoundError("Wallet not found")
        if wallet.available_balance < order.total_amount:
            raise InsufficientBalanceError("Insufficient wallet balance")

        crud_wallet.debit(db, wallet=wallet, amount=order.total_amount)
        ledger_line = crud_wallet.create_transaction(
            db,
            wallet_id=wallet.id,
            amount=order.total_amount,
            transaction_type=WalletTransactionType.PURCHASE,
            status=WalletTransactionStatus.COMPLETED,
            order_id=order.id,
            description=f"Payment for Order #{order.id}",
        )
        payment = crud_payment.create_payment(
            db,
            order_id=order.id,
            amount=order.total_amount,
            method=PaymentMethod.WALLET,
            transaction_id=build_order_transaction_id(order.id),
            wallet_transaction_id=ledger_line.id,
        )
        settle_paid_order(db, order=order, payment=payment)

        user = order.customer.user
        message = render("wallet_payment_completed", user.locale, amount=order.total_amount, order_id=order.id)
        user_id = user.id

    logger.info(f"Order {order_id} paid from wallet.")
    notify_customer(db, user_id=user_id, message=message, notification_type=NotificationType.PAYMENT)
    return PaymentOutcome(payment=payment, message="Payment completed successfully")


def _pay_on_delivery(db: Session, order_id: int) -> PaymentOutcome:
    with atomic(db):
        order = _lock_order(db, order_id)
        if crud_payment.get_payments_for_order(db, order_id=order.id, for_update=True):
            raise PaymentAlreadyExistsError("Payment record already exists")
        _ensure_payable(order)

        payment = crud_payment.create_payment(
            db,
            order_id=order.id,
            amount=order.total_amount,
            method=PaymentMethod.COD,
            status=PaymentStatus.PENDING,
            transaction_id=build_order_transaction_id(order.id),
        )
        order.payment_status = PaymentStatus.PENDING
        order.status = OrderStatus.PENDING
        db.add(order)
        crud_order_tracking.upsert_status(
            db, order_id=order.id, status=OrderStatus.PENDING, description=COD_CONFIRMED_DESCRIPTION
        )

        user = order.customer.user
        message = render("cod_payment_pending", user.locale, amount=order.total_amount, order_id=order.id)
        user_id = user.id

    logger.info(f"Order {order_id} set to cash on delivery.")
    notify_customer(db, user_id=user_id, message=message, notification_type=NotificationType.PAYMENT)
    return PaymentOutcome(payment=payment, message="Order confirmed. Please pay on delivery.")


def _pay_with_gateway(db: Session, order_id: int, gateway: SSLCommerzClient) -> PaymentOutcome:
    # Record the attempt first so the callback can always find it, then talk to
    # the gateway outside the transaction so no row lock is held during the call.
    with atomic(db):
        order = _lock_payable_order(db, order_id)
        attempts = crud_payment.get_payments_for_order(
            db, order_id=order.id, method=PaymentMethod.SSLCOMMERZ, for_update=True
        )
        if any(p.payment_status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED) for p in attempts):
            raise PaymentAlreadyCompletedError("Payment already completed for this order")

        tran_id = build_order_transaction_id(order.id)
        payment = next((p for p in reversed(attempts) if p.payment_status in PAYABLE_STATUSES), None)
        if payment is None:
            payment = crud_payment.create_payment(
                db,
                order_id=order.id,
                amount=order.total_amount,
                method=PaymentMethod.SSLCOMMERZ,
                transaction_id=tran_id,
            )
        else:
            logger.info(f"Reusing gateway payment {payment.id} for order {order.id} ({payment.payment_status.value}).")
            payment.transaction_id = tran_id
            payment.amount = order.total_amount
            payment.gateway_session_key = None
            payment.failure_reason = None
            crud_payment.set_status(db, db_obj=payment, status=PaymentStatus.PENDING)

        order.payment_status = PaymentStatus.PENDING
        db.add(order)

        user = order.customer.user
        customer = CustomerInfo(
            name=user.name or "Customer",
            email=user.email,
            phone=user.phone or "N/A",
            address=order.shipping_address or order.customer.address or "N/A",
        )
        amount = order.total_amount
        payment_id = payment.id

    try:
        session = gateway.init_session(
            tran_id=tran_id,
            amount=amount,
            customer=customer,
            callbacks=CallbackUrls.under(f"{SERVER_URL}{ORDER_CALLBACK_BASE}"),
            product_name=f"Order #{order_id}",
        )
    except GatewayError as e:
        logger.error(f"Gateway session for order {order_id} failed: {e.message}")
        _record_gateway_failure(db, payment_id, tran_id, e.message)
        raise

    with atomic(db):
        payment = crud_payment.get_payment(db, payment_id)
        if payment is None:
            raise PaymentNotFoundError("Payment not found")
        payment.gateway_session_key = session.session_key
        db.add(payment)

    logger.info(f"Order {order_id} redirected to SSLCommerz with {tran_id}.")
    return PaymentOutcome(
        payment=payment,
        message="Redirect to SSLCommerz to complete the payment",
        redirect_url=session.redirect_url,
    )


def _record_gateway_failure(db: Session, payment_id: int, tran_id: str, reason: str) -> None:
    with atomic(db):
        payment = crud_payment.get_payment(db, payment_id)
        if payment is None or payment.transaction_id != tran_id or payment.payment_status != PaymentStatus.PENDING:
            return
        crud_payment.set_status(db, db_obj=payment, status=PaymentStatus.FAILED, failure_reason=reason)
        order = crud_order.get_order_for_update(db, payment.order_id)
        if order is not None and order.payment_status == PaymentStatus.PENDING:
            order.payment_status = PaymentStatus.FAILED
            db.add(order)
