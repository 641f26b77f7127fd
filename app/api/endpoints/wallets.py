import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.crud import crud_wallet
from app.schemas.wallet import WalletWithTransactions, WalletTransaction, DepositCreate, DepositInitResponse
from app.schemas.payment import CallbackAck
from app.models.user import Customer
from app.db.session import get_db
from app.api.endpoints.payments import read_callback, frontend_redirect
from app.core import wallet_deposits
from app.core.dependencies import get_current_customer, get_gateway
from app.core.exceptions import ServiceError
from app.core.sslcommerz import SSLCommerzClient

logger = logging.getLogger(__name__)
router = APIRouter()

@router.get("/me", response_model=WalletWithTransactions)
async def read_my_wallet(
    db: Session = Depends(get_db),
    current_customer: Customer = Depends(get_current_customer)
):
    wallet = crud_wallet.get_wallet_by_customer(db, customer_id=current_customer.id)
    if not wallet:
        raise HTTPException(status_code=404, detail="Wallet not found")
    transactions = crud_wallet.get_transactions_for_wallet(db, wallet_id=wallet.id)
    return WalletWithTransactions(
        id=wallet.id,
        customer_id=wallet.customer_id,
        balance=wallet.balance,
        locked_balance=wallet.locked_balance,
        available_balance=wallet.available_balance,
        transactions=[WalletTransaction.model_validate(t) for t in transactions],
    )

@router.post("/deposit", response_model=DepositInitResponse, status_code=201)
def start_deposit(
    deposit_in: DepositCreate,
    db: Session = Depends(get_db),
    current_customer: Customer = Depends(get_current_customer),
    gateway: SSLCommerzClient = Depends(get_gateway)
):
    """
    Start a wallet top-up. The wallet is created on first deposit.
    """
    session = wallet_deposits.initiate_deposit(db, current_customer.id, deposit_in.amount, gateway)
    return DepositInitResponse(
        transaction=WalletTransaction.model_validate(session.transaction),
        redirect_url=session.redirect_url,
    )

@router.post("/deposit/success")
async def deposit_success(
    request: Request,
    db: Session = Depends(get_db),
    gateway: SSLCommerzClient = Depends(get_gateway)
):
    payload = await read_callback(request)
    try:
        await run_in_threadpool(wallet_deposits.handle_deposit_success, db, payload, gateway)
    except ServiceError as e:
        logger.error(f"Deposit success callback for {payload.tran_id} rejected: {e.message}")
        return frontend_redirect("/wallet/deposit/fail", tran_id=payload.tran_id, error=e.message)
    return frontend_redirect("/wallet/deposit/success", tran_id=payload.tran_id)

@router.post("/deposit/fail")
async def deposit_fail(request: Request, db: Session = Depends(get_db)):
    payload = await read_callback(request)
    try:
        await run_in_threadpool(wallet_deposits.handle_deposit_failure, db, payload)
    except ServiceError as e:
        logger.error(f"Deposit fail callback for {payload.tran_id} rejected: {e.message}")
    return frontend_redirect("/wallet/deposit/fail", tran_id=payload.tran_id)

@router.post("/deposit/cancel")
async def deposit_cancel(request: Request, db: Session = Depends(get_db)):
    payload = await read_callback(request)
    try:
        await run_in_threadpool(wallet_deposits.handle_deposit_failure, db, payload)
    except ServiceError as e:
        logger.error(f"Deposit cancel callback for {payload.tran_id} rejected: {e.message}")
    return frontend_redirect("/wallet/deposit/cancel", tran_id=payload.tran_id)

@router.post("/deposit/ipn", response_model=CallbackAck)
async def deposit_ipn(
    request: Request,
    db: Session = Depends(get_db),
    gateway: SSLCommerzClient = Depends(get_gateway)
):
    payload = await read_callback(request)
    deposit = await run_in_threadpool(wallet_deposits.handle_deposit_ipn, db, payload, gateway)
    return CallbackAck(status=deposit.transaction_status.value, message="Deposit processed", transaction_id=deposit.reference)
