from decimal import Decimal
from sqlalchemy.orm import Session
from typing import Optional, List, Iterable

from app.models.payment import Payment
from app.models.enums import PaymentMethod, PaymentStatus

def get_payment(db: Session, payment_id: int) -> Optional[Payment]:
    return db.query(Payment).filter(Payment.id == payment_id).first()

def get_payments_for_order(
    db: Session, *, order_id: int, method: Optional[PaymentMethod] = None, for_update: bool = False
) -> List[Payment]:
    """
    Get every payment attempt for an order, oldest first, optionally for one method.
    """
    query = db.query(Payment).filter(Payment.order_id == order_id)
    if method:
        query = query.filter(Payment.payment_method == method)
    if for_update:
        query = query.with_for_update()
    return query.order_by(Payment.id.asc()).all()

def get_payment_by_transaction(
    db: Session, *, order_id: int, transaction_id: str, for_update: bool = False
) -> Optional[Payment]:
    """
    Get the payment matching a gateway correlation id. Used by callbacks.
    """
    query = db.query(Payment).filter(
        Payment.order_id == order_id,
        Payment.transaction_id == transaction_id,
    )
    if for_update:
        query = query.with_for_update().populate_existing()
    return query.first()

def has_payment_with_status(
    db: Session, *, order_id: int, statuses: Iterable[PaymentStatus], method: Optional[PaymentMethod] = None
) -> bool:
    query = db.query(Payment.id).filter(
        Payment.order_id == order_id,
        Payment.payment_status.in_(list(statuses)),
    )
    if method:
        query = query.filter(Payment.payment_method == method)
    return query.first() is not None

def create_payment(
    db: Session,
    *,
    order_id: int,
    amount: Decimal,
    method: PaymentMethod,
    status: PaymentStatus = PaymentStatus.PENDING,
    transaction_id: Optional[str] = None,
    wallet_transaction_id: Optional[int] = None,
) -> Payment:
    """
    Add a payment record to the session and flush. The caller owns the commit.
    """
    db_obj = Payment(
        order_id=order_id,
        amount=amount,
        payment_method=method,
        payment_status=status,
        transaction_id=transaction_id,
        wallet_transaction_id=wallet_transaction_id,
    )
    db.add(db_obj)
    db.flush()
    return db_obj

def set_status(db: Session, *, db_obj: Payment, status: PaymentStatus, failure_reason: Optional[str] = None) -> Payment:
    db_obj.payment_status = status
    if failure_reason is not None:
        db_obj.failure_reason = failure_reason[:512]
    db.add(db_obj)
    db.flush()
    return db_obj
