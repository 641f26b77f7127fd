"""
Wallet top-ups through SSLCommerz.

A deposit is a PENDING DEPOSIT wallet transaction whose reference is the
gateway tran_id (WALLET_{walletId}_{unixMillis}). The balance is credited
only once the gateway validates the payment, and only once per reference.
"""
import logging
from decimal import Decimal
from typing import NamedTuple

from sqlalchemy.orm import Session

from app.crud import crud_customer, crud_wallet
from app.core.config import SERVER_URL
from app.core.exceptions import (
    CustomerNotFoundError,
    PaymentNotFoundError,
    InvalidPaymentStateError,
    PaymentValidationError,
    GatewayError,
    CallbackHandlingError,
)
from app.core.messages import render
from app.core.notifications import notify_customer
from app.core.sslcommerz import SSLCommerzClient, CallbackUrls, CustomerInfo, is_valid, VALID_STATUSES
from app.core.transaction_ids import build_wallet_transaction_id, extract_wallet_id
from app.db.session import atomic
from app.models.wallet import WalletTransaction
from app.models.enums import WalletTransactionType, WalletTransactionStatus, NotificationType
from app.schemas.payment import SSLCommerzCallback

logger = logging.getLogger(__name__)

DEPOSIT_CALLBACK_BASE = "/api/v1/wallets/deposit"


class DepositSession(NamedTuple):
    transaction: WalletTransaction
    redirect_url: str


def initiate_deposit(db: Session, customer_id: int, amount: Decimal, gateway: SSLCommerzClient) -> DepositSession:
    with atomic(db):
        customer = crud_customer.get_customer(db, customer_id)
        if customer is None:
            raise CustomerNotFoundError("Customer not found")
        wallet = crud_wallet.get_wallet_by_customer(db, customer_id=customer.id)
        if wallet is None:
            wallet = crud_wallet.create_wallet(db, customer_id=customer.id)
            logger.info(f"Created wallet {wallet.id} for customer {customer.id}.")

        tran_id = build_wallet_transaction_id(wallet.id)
        deposit = crud_wallet.create_transaction(
            db,
            wallet_id=wallet.id,
            amount=amount,
            transaction_type=WalletTransactionType.DEPOSIT,
            status=WalletTransactionStatus.PENDING,
            reference=tran_id,
            description=f"Wallet deposit of {amount} BDT. Transaction ID: {tran_id}",
        )
        user = customer.user
        info = CustomerInfo(
            name=user.name or "Customer",
            email=user.email,
            phone=user.phone or "N/A",
            address=customer.address or "N/A",
        )
        deposit_id = deposit.id

    try:
        session = gateway.init_session(
            tran_id=tran_id,
            amount=amount,
            customer=info,
            callbacks=CallbackUrls.under(f"{SERVER_URL}{DEPOSIT_CALLBACK_BASE}"),
            product_name="Wallet Deposit",
            product_category="Digital",
            product_profile="digital-goods",
            shipping_method="NO",
        )
    except GatewayError as e:
        logger.error(f"Gateway session for deposit {tran_id} failed: {e.message}")
        with atomic(db):
            deposit = crud_wallet.get_transaction_by_reference(db, reference=tran_id, for_update=True)
            if deposit is not None and deposit.transaction_status == WalletTransactionStatus.PENDING:
                crud_wallet.set_transaction_status(db, db_obj=deposit, status=WalletTransactionStatus.FAILED)
        raise

    logger.info(f"Deposit {deposit_id} of {amount} redirected to SSLCommerz with {tran_id}.")
    return DepositSession(transaction=deposit, redirect_url=session.redirect_url)


def handle_deposit_success(db: Session, payload: SSLCommerzCallback, gateway: SSLCommerzClient) -> WalletTransaction:
    """Validate a deposit with the gateway and credit the wallet. Replays return the completed deposit."""
    if not payload.val_id:
        raise PaymentValidationError("Missing val_id in SSLCommerz callback")
    try:
        validation = gateway.validate(payload.val_id)
    except GatewayError as e:
        raise CallbackHandlingError(f"SSLCommerz success handling failed: {e.message}") from e
    if not is_valid(validation):
        raise PaymentValidationError(f"Payment validation failed with status {validation.get('status')}")

    tran_id = payload.tran_id or validation.get("tran_id")
    wallet_id = extract_wallet_id(tran_id)

    with atomic(db):
        deposit = _locked_deposit(db, tran_id, wallet_id)
        if deposit.transaction_status == WalletTransactionStatus.COMPLETED:
            logger.info(f"Replayed deposit success for {tran_id}.")
            return deposit
        if deposit.transaction_status != WalletTransactionStatus.PENDING:
            raise InvalidPaymentStateError(f"Cannot complete deposit with status {deposit.transaction_status.value}")

        wallet = crud_wallet.get_wallet(db, wallet_id, for_update=True)
        crud_wallet.credit(db, wallet=wallet, amount=deposit.amount)
        crud_wallet.set_transaction_status(db, db_obj=deposit, status=WalletTransactionStatus.COMPLETED)

        customer = crud_customer.get_customer(db, wallet.customer_id)
        user_id, locale = customer.user_id, customer.user.locale
        amount = deposit.amount

    logger.info(f"Wallet {wallet_id} credited {amount} from deposit {tran_id}.")
    notify_customer(
        db,
        user_id=user_id,
        message=render("deposit_completed", locale, amount=amount, tran_id=tran_id),
        notification_type=NotificationType.WALLET,
    )
    return deposit


def handle_deposit_failure(db: Session, payload: SSLCommerzCallback) -> WalletTransaction:
    """Mark a deposit FAILED. Replays and already-credited deposits are left untouched."""
    tran_id = payload.tran_id
    wallet_id = extract_wallet_id(tran_id)

    with atomic(db):
        deposit = _locked_deposit(db, tran_id, wallet_id)
        if deposit.transaction_status != WalletTransactionStatus.PENDING:
            logger.info(f"Ignoring failure callback for {tran_id} in status {deposit.transaction_status.value}.")
            return deposit
        crud_wallet.set_transaction_status(db, db_obj=deposit, status=WalletTransactionStatus.FAILED)

        wallet = crud_wallet.get_wallet(db, wallet_id)
        customer = crud_customer.get_customer(db, wallet.customer_id)
        user_id, locale = customer.user_id, customer.user.locale

    logger.info(f"Deposit {tran_id} failed.")
    notify_customer(
        db,
        user_id=user_id,
        message=render("deposit_failed", locale),
        notification_type=NotificationType.WALLET,
    )
    return deposit


def handle_deposit_ipn(db: Session, payload: SSLCommerzCallback, gateway: SSLCommerzClient) -> WalletTransaction:
    status = (payload.status or "").strip().upper()
    if status in VALID_STATUSES:
        return handle_deposit_success(db, payload, gateway)
    return handle_deposit_failure(db, payload)


def _locked_deposit(db: Session, tran_id: str, wallet_id: int) -> WalletTransaction:
    deposit = crud_wallet.get_transaction_by_reference(db, reference=tran_id, for_update=True)
    if deposit is None or deposit.wallet_id != wallet_id or deposit.transaction_type != WalletTransactionType.DEPOSIT:
        raise PaymentNotFoundError("Deposit transaction not found")
    return deposit
