from sqlalchemy.orm import Session
from typing import Optional, List

from app.models.order import OrderTracking
from app.models.enums import OrderStatus

def get_tracking_for_order(db: Session, *, order_id: int) -> List[OrderTracking]:
    """
    Get the tracking history of an order in the order it was written.
    """
    return (
        db.query(OrderTracking)
        .filter(OrderTracking.order_id == order_id)
        .order_by(OrderTracking.created_at.asc(), OrderTracking.id.asc())
        .all()
    )

def is_tracked(db: Session, *, order_id: int, status: OrderStatus) -> bool:
    return (
        db.query(OrderTracking.id)
        .filter(OrderTracking.order_id == order_id, OrderTracking.status == status)
        .first()
        is not None
    )

def record_status(db: Session, *, order_id: int, status: OrderStatus, description: str) -> Optional[OrderTracking]:
    """
    Append a tracking entry unless the order already has one for this status.
    Returns the new entry, or None when the status was already tracked.
    """
    if is_tracked(db, order_id=order_id, status=status):
        return None
    db_obj = OrderTracking(order_id=order_id, status=status, description=description)
    db.add(db_obj)
    db.flush()
    return db_obj

def purge_after(db: Session, *, order_id: int, status: OrderStatus) -> int:
    """
    Delete tracking entries for every status strictly ahead of `status`.
    Used when an order is moved backwards. Returns the number of rows removed.
    """
    ahead = status.statuses_after()
    if not ahead:
        return 0
    deleted = (
        db.query(OrderTracking)
        .filter(OrderTracking.order_id == order_id, OrderTracking.status.in_(ahead))
        .delete(synchronize_session="fetch")
    )
    db.flush()
    return deleted

def upsert_status(db: Session, *, order_id: int, status: OrderStatus, description: str) -> OrderTracking:
    """
    Record a status, or rewrite the description of the entry that already tracks it.
    """
    db_obj = (
        db.query(OrderTracking)
        .filter(OrderTracking.order_id == order_id, OrderTracking.status == status)
        .first()
    )
    if db_obj is None:
        db_obj = OrderTracking(order_id=order_id, status=status)
    db_obj.description = description
    db.add(db_obj)
    db.flush()
    return db_obj
