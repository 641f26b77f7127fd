"""
Wallet ledger primitives.

Balances are only ever changed on a wallet row fetched with for_update=True,
inside the caller's transaction. Every mutation re-checks
0 <= locked_balance <= balance before it is flushed.
"""
import logging
from decimal import Decimal
from sqlalchemy.orm import Session
from typing import Optional, List

from app.core.exceptions import InsufficientBalanceError, WalletInvariantError
from app.models.wallet import Wallet, WalletTransaction
from app.models.enums import WalletTransactionType, WalletTransactionStatus

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

def get_wallet_by_customer(db: Session, *, customer_id: int, for_update: bool = False) -> Optional[Wallet]:
    query = db.query(Wallet).filter(Wallet.customer_id == customer_id)
    if for_update:
        query = query.with_for_update().populate_existing()
    return query.first()

def get_wallet(db: Session, wallet_id: int, *, for_update: bool = False) -> Optional[Wallet]:
    query = db.query(Wallet).filter(Wallet.id == wallet_id)
    if for_update:
        query = query.with_for_update().populate_existing()
    return query.first()

def create_wallet(db: Session, *, customer_id: int, balance: Decimal = ZERO) -> Wallet:
    """
    Add an empty wallet for a customer and flush.
    """
    db_obj = Wallet(customer_id=customer_id, balance=balance, locked_balance=ZERO)
    db.add(db_obj)
    db.flush()
    return db_obj

def _check_invariants(wallet: Wallet) -> None:
    if wallet.locked_balance < ZERO or wallet.balance < ZERO or wallet.locked_balance > wallet.balance:
        raise WalletInvariantError(
            f"Wallet {wallet.id} would end with balance {wallet.balance} and locked balance {wallet.locked_balance}"
        )

def _apply(db: Session, wallet: Wallet, *, balance_delta: Decimal = ZERO, locked_delta: Decimal = ZERO) -> Wallet:
    wallet.balance = Decimal(wallet.balance) + balance_delta
    wallet.locked_balance = Decimal(wallet.locked_balance) + locked_delta
    _check_invariants(wallet)
    db.add(wallet)
    db.flush()
    return wallet

def debit(db: Session, *, wallet: Wallet, amount: Decimal) -> Wallet:
    """Spend from the available (unlocked) part of the balance."""
    if wallet.available_balance < amount:
        raise InsufficientBalanceError("Insufficient wallet balance")
    return _apply(db, wallet, balance_delta=-amount)

def credit(db: Session, *, wallet: Wallet, amount: Decimal) -> Wallet:
    return _apply(db, wallet, balance_delta=amount)

def lock_funds(db: Session, *, wallet: Wallet, amount: Decimal) -> Wallet:
    """Reserve part of the available balance for a future charge."""
    if wallet.available_balance < amount:
        raise InsufficientBalanceError("Insufficient wallet balance to lock funds")
    return _apply(db, wallet, locked_delta=amount)

def release_lock(db: Session, *, wallet: Wallet, amount: Decimal) -> Wallet:
    """Give reserved funds back to the available balance without spending them."""
    if wallet.locked_balance < amount:
        raise InsufficientBalanceError("Insufficient locked balance")
    return _apply(db, wallet, locked_delta=-amount)

def settle_locked(db: Session, *, wallet: Wallet, amount: Decimal) -> Wallet:
    """Spend reserved funds: both the lock and the balance go down by amount."""
    if wallet.locked_balance < amount or wallet.balance < amount:
        raise InsufficientBalanceError("Insufficient wallet balance")
    return _apply(db, wallet, balance_delta=-amount, locked_delta=-amount)

def create_transaction(
    db: Session,
    *,
    wallet_id: int,
    amount: Decimal,
    transaction_type: WalletTransactionType,
    status: WalletTransactionStatus,
    description: Optional[str] = None,
    order_id: Optional[int] = None,
    subscription_id: Optional[int] = None,
    reference: Optional[str] = None,
) -> WalletTransaction:
    db_obj = WalletTransaction(
        wallet_id=wallet_id,
        amount=amount,
        transaction_type=transaction_type,
        transaction_status=status,
        description=description,
        order_id=order_id,
        subscription_id=subscription_id,
        reference=reference,
    )
    db.add(db_obj)
    db.flush()
    return db_obj

def get_transaction_by_reference(db: Session, *, reference: str, for_update: bool = False) -> Optional[WalletTransaction]:
    query = db.query(WalletTransaction).filter(WalletTransaction.reference == reference)
    if for_update:
        query = query.with_for_update().populate_existing()
    return query.first()

def get_pending_order_purchase(db: Session, *, wallet_id: int, order_id: int) -> Optional[WalletTransaction]:
    """
    The PENDING purchase line holding funds for an order, if any.
    """
    return (
        db.query(WalletTransaction)
        .filter(
            WalletTransaction.wallet_id == wallet_id,
            WalletTransaction.order_id == order_id,
            WalletTransaction.transaction_type == WalletTransactionType.PURCHASE,
            WalletTransaction.transaction_status == WalletTransactionStatus.PENDING,
        )
        .order_by(WalletTransaction.id.asc())
        .first()
    )

def get_unattached_locks(db: Session, *, subscription_id: int) -> List[WalletTransaction]:
    """
    PENDING lock lines of a subscription that no delivery order has claimed yet, oldest first.
    """
    return (
        db.query(WalletTransaction)
        .filter(
            WalletTransaction.subscription_id == subscription_id,
            WalletTransaction.order_id.is_(None),
            WalletTransaction.transaction_type == WalletTransactionType.PURCHASE,
            WalletTransaction.transaction_status == WalletTransactionStatus.PENDING,
        )
        .order_by(WalletTransaction.id.asc())
        .all()
    )

def set_transaction_status(
    db: Session, *, db_obj: WalletTransaction, status: WalletTransactionStatus, description: Optional[str] = None
) -> WalletTransaction:
    db_obj.transaction_status = status
    if description is not None:
        db_obj.description = description
    db.add(db_obj)
    db.flush()
    return db_obj

def get_transactions_for_wallet(db: Session, *, wallet_id: int, skip: int = 0, limit: int = 100) -> List[WalletTransaction]:
    return (
        db.query(WalletTransaction)
        .filter(WalletTransaction.wallet_id == wallet_id)
        .order_by(WalletTransaction.created_at.desc(), WalletTransaction.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
