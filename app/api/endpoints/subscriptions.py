from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from app.crud import crud_subscription
from app.schemas.subscription import (
    Subscription,
    SubscriptionCreate,
    SubscriptionPlan,
    SubscriptionPlanCreate,
    RenewalReport,
)
from app.models.user import User, Customer
from app.db.session import get_db
from app.core.dependencies import get_current_customer, get_current_admin
from app.core.subscription_engine import create_subscription, pause_subscription, cancel_subscription
from app.core.subscription_renewal import renew_subscriptions

router = APIRouter()

@router.post("/", response_model=Subscription, status_code=201)
async def create_new_subscription(
    subscription_in: SubscriptionCreate,
    db: Session = Depends(get_db),
    current_customer: Customer = Depends(get_current_customer)
):
    """
    Subscribe the authenticated customer to a plan.
    WALLET subscriptions lock one cycle's price in the wallet straight away.
    """
    return create_subscription(db, current_customer.id, subscription_in)

@router.get("/my-subscriptions/", response_model=List[Subscription])
async def read_my_subscriptions(
    db: Session = Depends(get_db),
    current_customer: Customer = Depends(get_current_customer)
):
    return crud_subscription.get_subscriptions_by_customer(db, customer_id=current_customer.id)

@router.post("/{subscription_id}/pause", response_model=Subscription)
async def pause_my_subscription(
    subscription_id: int,
    db: Session = Depends(get_db),
    current_customer: Customer = Depends(get_current_customer)
):
    return pause_subscription(db, subscription_id, customer_id=current_customer.id)

@router.post("/{subscription_id}/cancel", response_model=Subscription)
async def cancel_my_subscription(
    subscription_id: int,
    db: Session = Depends(get_db),
    current_customer: Customer = Depends(get_current_customer)
):
    return cancel_subscription(db, subscription_id, customer_id=current_customer.id)

# Admin specific endpoints
@router.post("/admin/plans", response_model=SubscriptionPlan, status_code=201, tags=["Admin Subscriptions"])
async def admin_create_plan(
    plan_in: SubscriptionPlanCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    return crud_subscription.create_plan(db, obj_in=plan_in)

@router.post("/admin/renew", response_model=RenewalReport, tags=["Admin Subscriptions"])
def admin_run_renewals(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    """
    Admin: run the renewal job now instead of waiting for the daily schedule.
    """
    return renew_subscriptions(db)
