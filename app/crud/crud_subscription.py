from datetime import date, datetime
from decimal import Decimal
from sqlalchemy.orm import Session, selectinload
from typing import Optional, List

from app.models.subscription import SubscriptionPlan, Subscription, SubscriptionDelivery
from app.models.enums import SubscriptionStatus, PaymentMethod, OrderStatus
from app.schemas.subscription import SubscriptionPlanCreate

def get_plan(db: Session, plan_id: int) -> Optional[SubscriptionPlan]:
    return (
        db.query(SubscriptionPlan)
        .options(selectinload(SubscriptionPlan.product))
        .filter(SubscriptionPlan.id == plan_id)
        .first()
    )

def create_plan(db: Session, *, obj_in: SubscriptionPlanCreate) -> SubscriptionPlan:
    db_obj = SubscriptionPlan(**obj_in.model_dump())
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj

def get_subscription(db: Session, subscription_id: int, *, for_update: bool = False) -> Optional[Subscription]:
    query = (
        db.query(Subscription)
        .options(selectinload(Subscription.plan).selectinload(SubscriptionPlan.product))
        .filter(Subscription.id == subscription_id)
    )
    if for_update:
        query = query.with_for_update(of=Subscription).populate_existing()
    return query.first()

def get_subscriptions_by_customer(db: Session, *, customer_id: int) -> List[Subscription]:
    return (
        db.query(Subscription)
        .filter(Subscription.customer_id == customer_id)
        .order_by(Subscription.id.desc())
        .all()
    )

def create_subscription(
    db: Session,
    *,
    customer_id: int,
    plan: SubscriptionPlan,
    payment_method: PaymentMethod,
    shipping_address: Optional[str],
    start_date: datetime,
    renewal_date: datetime,
) -> Subscription:
    """
    Add an ACTIVE subscription holding the plan's current price and flush.
    """
    db_obj = Subscription(
        customer_id=customer_id,
        plan_id=plan.id,
        status=SubscriptionStatus.ACTIVE,
        payment_method=payment_method,
        plan_price=plan.price,
        shipping_address=shipping_address,
        start_date=start_date,
        renewal_date=renewal_date,
        is_processing=False,
    )
    db.add(db_obj)
    db.flush()
    return db_obj

def get_due_subscription_ids(db: Session, *, now: datetime, after_id: int = 0, limit: int = 100) -> List[int]:
    """
    Ids of ACTIVE subscriptions due for renewal and not claimed by another run,
    in id order starting after `after_id`.
    """
    rows = (
        db.query(Subscription.id)
        .filter(
            Subscription.status == SubscriptionStatus.ACTIVE,
            Subscription.renewal_date <= now,
            Subscription.is_processing == False,
            Subscription.id > after_id,
        )
        .order_by(Subscription.id.asc())
        .limit(limit)
        .all()
    )
    return [row[0] for row in rows]

def create_delivery(
    db: Session, *, subscription_id: int, order_id: int, delivery_date: date, status: OrderStatus = OrderStatus.CONFIRMED
) -> SubscriptionDelivery:
    db_obj = SubscriptionDelivery(
        subscription_id=subscription_id,
        order_id=order_id,
        delivery_date=delivery_date,
        status=status,
    )
    db.add(db_obj)
    db.flush()
    return db_obj

def get_delivery_by_order(db: Session, *, order_id: int) -> Optional[SubscriptionDelivery]:
    return (
        db.query(SubscriptionDelivery)
        .options(selectinload(SubscriptionDelivery.subscription))
        .filter(SubscriptionDelivery.order_id == order_id)
        .first()
    )

def get_next_unfulfilled_delivery(
    db: Session, *, subscription_id: int, exclude_order_id: Optional[int] = None
) -> Optional[SubscriptionDelivery]:
    """
    Earliest delivery of a subscription that is neither delivered nor cancelled.
    """
    query = db.query(SubscriptionDelivery).filter(
        SubscriptionDelivery.subscription_id == subscription_id,
        SubscriptionDelivery.status.notin_([OrderStatus.DELIVERED, OrderStatus.CANCELLED]),
    )
    if exclude_order_id is not None:
        query = query.filter(SubscriptionDelivery.order_id != exclude_order_id)
    return query.order_by(SubscriptionDelivery.delivery_date.asc(), SubscriptionDelivery.id.asc()).first()

def refresh_plan_price(subscription: Subscription) -> Decimal:
    subscription.plan_price = subscription.plan.price
    return subscription.plan_price
