"""
SSLCommerz callback handling.

The gateway reports the outcome of a hosted payment twice: once through the
customer's browser (success/fail/cancel redirects) and once server to server
(IPN). Either may arrive first, more than once, or not at all, so every
handler checks the payment's current status before touching it.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import NamedTuple, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.crud import crud_order, crud_payment
from app.core.exceptions import (
    OrderNotFoundError,
    PaymentNotFoundError,
    InvalidPaymentStateError,
    PaymentValidationError,
    GatewayError,
    CallbackHandlingError,
)
from app.core.messages import render
from app.core.notifications import notify_customer
from app.core.settlement import settle_paid_order
from app.core.sslcommerz import SSLCommerzClient, is_valid, VALID_STATUSES
from app.core.transaction_ids import extract_order_id
from app.db.session import atomic
from app.models.enums import PaymentStatus, NotificationType
from app.schemas.payment import SSLCommerzCallback

logger = logging.getLogger(__name__)

FAILED_IPN_STATUSES = ("FAILED", "CANCELLED", "EXPIRED", "UNATTEMPTED")


class CallbackOutcome(NamedTuple):
    order_id: int
    transaction_id: str
    payment_status: PaymentStatus
    message: str
    replayed: bool = False


def handle_sslcommerz_success(db: Session, payload: SSLCommerzCallback, gateway: SSLCommerzClient) -> CallbackOutcome:
    """
    Validate a reported success with the gateway and settle the order exactly once.
    A replay for an already COMPLETED payment returns success without touching anything.
    """
    if not payload.val_id:
        raise PaymentValidationError("Missing val_id in SSLCommerz callback")

    try:
        validation = gateway.validate(payload.val_id)
    except GatewayError as e:
        logger.error(f"SSLCommerz validation of {payload.val_id} failed: {e.message}")
        raise CallbackHandlingError(f"SSLCommerz success handling failed: {e.message}") from e

    if not is_valid(validation):
        raise PaymentValidationError(f"Payment validation failed with status {validation.get('status')}")

    tran_id = payload.tran_id or validation.get("tran_id")
    if payload.tran_id and validation.get("tran_id") and validation["tran_id"] != payload.tran_id:
        raise PaymentValidationError("Validated transaction does not match the callback tran_id")
    order_id = extract_order_id(tran_id)

    try:
        with atomic(db):
            order = crud_order.get_order_for_update(db, order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            payment = crud_payment.get_payment_by_transaction(
                db, order_id=order_id, transaction_id=tran_id, for_update=True
            )
            if payment is None:
                raise PaymentNotFoundError("Payment not found")

            if payment.payment_status == PaymentStatus.COMPLETED:
                logger.info(f"Replayed success callback for {tran_id}, payment already completed.")
                return CallbackOutcome(order_id, tran_id, payment.payment_status, "Payment already completed", True)
            if payment.payment_status != PaymentStatus.PENDING:
                raise InvalidPaymentStateError(f"Cannot complete payment with status {payment.payment_status.value}")

            _check_amount(validation, payment.amount)
            settle_paid_order(db, order=order, payment=payment)

            user = order.customer.user
            message = render("gateway_payment_completed", user.locale, amount=payment.amount, order_id=order.id)
            user_id = user.id
    except SQLAlchemyError as e:
        logger.error(f"Database error while settling {tran_id}: {e}", exc_info=True)
        raise CallbackHandlingError(f"SSLCommerz success handling failed: {e}") from e

    logger.info(f"SSLCommerz payment {tran_id} completed for order {order_id}.")
    notify_customer(db, user_id=user_id, message=message, notification_type=NotificationType.PAYMENT)
    return CallbackOutcome(order_id, tran_id, PaymentStatus.COMPLETED, "SSLCommerz payment completed successfully")


def handle_sslcommerz_failure(db: Session, payload: SSLCommerzCallback, reason: Optional[str] = None) -> CallbackOutcome:
    """
    Record a failed or abandoned gateway payment. Replays on a FAILED payment are no-ops.
    """
    tran_id = payload.tran_id
    order_id = extract_order_id(tran_id)
    reason = reason or payload.error or payload.status or "Payment failed at gateway"

    try:
        with atomic(db):
            order = crud_order.get_order_for_update(db, order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            payment = crud_payment.get_payment_by_transaction(
                db, order_id=order_id, transaction_id=tran_id, for_update=True
            )
            if payment is None:
                raise PaymentNotFoundError("Payment not found")

            if payment.payment_status == PaymentStatus.FAILED:
                logger.info(f"Replayed failure callback for {tran_id}, payment already failed.")
                return CallbackOutcome(order_id, tran_id, payment.payment_status, "Payment already marked as failed", True)
            if payment.payment_status != PaymentStatus.PENDING:
                raise InvalidPaymentStateError(f"Cannot fail payment with status {payment.payment_status.value}")

            crud_payment.set_status(db, db_obj=payment, status=PaymentStatus.FAILED, failure_reason=reason)
            if order.payment_status == PaymentStatus.PENDING:
                order.payment_status = PaymentStatus.FAILED
                db.add(order)

            user = order.customer.user
            message = render("gateway_payment_failed", user.locale, order_id=order.id)
            user_id = user.id
    except SQLAlchemyError as e:
        logger.error(f"Database error while failing {tran_id}: {e}", exc_info=True)
        raise CallbackHandlingError(f"SSLCommerz failure handling failed: {e}") from e

    logger.info(f"SSLCommerz payment {tran_id} failed for order {order_id}: {reason}")
    notify_customer(db, user_id=user_id, message=message, notification_type=NotificationType.PAYMENT)
    return CallbackOutcome(order_id, tran_id, PaymentStatus.FAILED, "Payment failed")


def handle_sslcommerz_cancel(db: Session, payload: SSLCommerzCallback) -> CallbackOutcome:
    return handle_sslcommerz_failure(db, payload, reason="Payment cancelled by customer")


def handle_sslcommerz_ipn(db: Session, payload: SSLCommerzCallback, gateway: SSLCommerzClient) -> CallbackOutcome:
    """Route an instant payment notification to the success or failure handler by its status."""
    status = (payload.status or "").strip().upper()
    if status in VALID_STATUSES:
        return handle_sslcommerz_success(db, payload, gateway)
    if status in FAILED_IPN_STATUSES:
        return handle_sslcommerz_failure(db, payload, reason=f"IPN reported {status}")
    raise PaymentValidationError(f"Unsupported IPN status: {payload.status}")


def _check_amount(validation: dict, expected: Decimal) -> None:
    reported = validation.get("amount")
    if reported is None:
        return
    try:
        amount = Decimal(str(reported))
    except InvalidOperation:
        raise PaymentValidationError(f"Gateway reported an invalid amount: {reported}")
    if abs(amount - Decimal(expected)) > Decimal("0.01"):
        raise PaymentValidationError(f"Gateway amount {amount} does not match payment amount {expected}")
