# app/api/endpoints/payments.py
import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from app.crud import crud_order
from app.models.user import Customer
from app.schemas.payment import PaymentCreate, PaymentResult, Payment, SSLCommerzCallback, CallbackAck
from app.db.session import get_db
from app.core import gateway_callbacks
from app.core.config import FRONTEND_URL
from app.core.dependencies import get_current_customer, get_gateway
from app.core.exceptions import ServiceError
from app.core.payment_dispatcher import create_payment
from app.core.sslcommerz import SSLCommerzClient

logger = logging.getLogger(__name__)
router = APIRouter()


async def read_callback(request: Request) -> SSLCommerzCallback:
    """SSLCommerz posts form-encoded fields; fall back to the query string for GET redirects."""
    form = await request.form()
    data = dict(request.query_params)
    data.update({key: value for key, value in form.items() if isinstance(value, str)})
    return SSLCommerzCallback(**data)


def frontend_redirect(path: str, **params) -> RedirectResponse:
    query = urlencode({k: v for k, v in params.items() if v is not None})
    return RedirectResponse(url=f"{FRONTEND_URL}{path}?{query}", status_code=303)


@router.post("/", response_model=PaymentResult, status_code=201)
def create_order_payment(
    *,
    db: Session = Depends(get_db),
    payload: PaymentCreate,
    current_customer: Customer = Depends(get_current_customer),
    gateway: SSLCommerzClient = Depends(get_gateway)
):
    """
    Pay for an order with the payment method chosen at checkout.
    Gateway payments answer with the URL to send the customer to.
    """
    order = crud_order.get_order(db, order_id=payload.order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.customer_id != current_customer.id:
        raise HTTPException(status_code=403, detail="Not authorized to pay for this order")

    logger.info(f"Customer {current_customer.id} paying order {order.id} with {order.payment_method.value}")
    outcome = create_payment(db, order.id, gateway)
    return PaymentResult(
        payment=Payment.model_validate(outcome.payment),
        redirect_url=outcome.redirect_url,
        message=outcome.message,
    )


@router.post("/sslcommerz/success")
async def sslcommerz_success(
    request: Request,
    db: Session = Depends(get_db),
    gateway: SSLCommerzClient = Depends(get_gateway)
):
    payload = await read_callback(request)
    try:
        outcome = await run_in_threadpool(gateway_callbacks.handle_sslcommerz_success, db, payload, gateway)
    except ServiceError as e:
        logger.error(f"SSLCommerz success callback for {payload.tran_id} rejected: {e.message}")
        return frontend_redirect("/payment/fail", tran_id=payload.tran_id, error=e.message)
    return frontend_redirect("/payment/success", tran_id=outcome.transaction_id, order_id=outcome.order_id)


@router.post("/sslcommerz/fail")
async def sslcommerz_fail(request: Request, db: Session = Depends(get_db)):
    payload = await read_callback(request)
    try:
        outcome = await run_in_threadpool(gateway_callbacks.handle_sslcommerz_failure, db, payload)
    except ServiceError as e:
        logger.error(f"SSLCommerz fail callback for {payload.tran_id} rejected: {e.message}")
        return frontend_redirect("/payment/fail", tran_id=payload.tran_id, error=e.message)
    return frontend_redirect("/payment/fail", tran_id=outcome.transaction_id, order_id=outcome.order_id)


@router.post("/sslcommerz/cancel")
async def sslcommerz_cancel(request: Request, db: Session = Depends(get_db)):
    payload = await read_callback(request)
    try:
        outcome = await run_in_threadpool(gateway_callbacks.handle_sslcommerz_cancel, db, payload)
    except ServiceError as e:
        logger.error(f"SSLCommerz cancel callback for {payload.tran_id} rejected: {e.message}")
        return frontend_redirect("/payment/cancel", tran_id=payload.tran_id, error=e.message)
    return frontend_redirect("/payment/cancel", tran_id=outcome.transaction_id, order_id=outcome.order_id)


@router.post("/sslcommerz/ipn", response_model=CallbackAck)
async def sslcommerz_ipn(
    request: Request,
    db: Session = Depends(get_db),
    gateway: SSLCommerzClient = Depends(get_gateway)
):
    """
    Server-to-server notification. Errors are answered with their status code so the gateway retries.
    """
    payload = await read_callback(request)
    outcome = await run_in_threadpool(gateway_callbacks.handle_sslcommerz_ipn, db, payload, gateway)
    return CallbackAck(status=outcome.payment_status.value, message=outcome.message, transaction_id=outcome.transaction_id)
