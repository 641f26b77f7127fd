from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from app.crud import crud_order, crud_order_tracking
from app.schemas.order import (
    Order,
    OrderCreate,
    OrderUpdate,
    OrderTracking,
)
from app.models.user import User, Customer
from app.models.enums import OrderStatus
from app.db.session import get_db
from app.core.checkout import create_order
from app.core.order_state_machine import update_order
from app.core.dependencies import get_current_user, get_current_customer, get_current_admin

router = APIRouter()

def _get_visible_order(db: Session, order_id: int, current_user: User):
    db_order = crud_order.get_order(db, order_id=order_id)
    if not db_order:
        raise HTTPException(status_code=404, detail="Order not found")
    if not current_user.is_admin and (current_user.customer is None or db_order.customer_id != current_user.customer.id):
        raise HTTPException(status_code=403, detail="Not authorized to view this order")
    return db_order

@router.post("/", response_model=Order, status_code=201)
async def create_new_order(
    order_in: OrderCreate,
    db: Session = Depends(get_db),
    current_customer: Customer = Depends(get_current_customer)
):
    """
    Place an order for the authenticated customer.
    Prices and package sizes are taken from the products at the time of ordering.
    """
    return create_order(db, current_customer, order_in)

@router.get("/my-orders/", response_model=List[Order])
async def read_my_orders(
    db: Session = Depends(get_db),
    current_customer: Customer = Depends(get_current_customer),
    status: Optional[OrderStatus] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=200)
):
    """
    Retrieve the authenticated customer's orders, newest first.
    """
    return crud_order.get_orders_by_customer(db, customer_id=current_customer.id, status=status, skip=skip, limit=limit)

@router.get("/{order_id}", response_model=Order)
async def read_order_details(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Retrieve details for a specific order.
    Customers can only view their own orders. Admins can view any order.
    """
    return _get_visible_order(db, order_id, current_user)

@router.get("/{order_id}/tracking", response_model=List[OrderTracking])
async def read_order_tracking(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Retrieve the status history of an order, oldest first.
    """
    _get_visible_order(db, order_id, current_user)
    return crud_order_tracking.get_tracking_for_order(db, order_id=order_id)

@router.patch("/{order_id}", response_model=Order, tags=["Admin Orders"])
async def update_existing_order_status(
    order_id: int,
    order_in: OrderUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    """
    Move an order to its next (or an earlier) status.
    Requires admin privileges.
    """
    return update_order(db, order_id, order_in)

@router.get("/admin/by-customer/{customer_id}", response_model=List[Order], tags=["Admin Orders"])
async def admin_read_orders_by_customer(
    customer_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=200)
):
    """
    Admin: Retrieve all orders of a customer.
    """
    return crud_order.get_orders_by_customer(db, customer_id=customer_id, skip=skip, limit=limit)
