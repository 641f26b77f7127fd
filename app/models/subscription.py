from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, Numeric, ForeignKey, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.base_class import Base
from app.models.enums import SubscriptionStatus, PaymentMethod, OrderStatus

class SubscriptionPlan(Base):
    __tablename__ = "subscription_plan"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    product_id = Column(Integer, ForeignKey("product.id"), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    frequency = Column(String(20), nullable=False) # WEEKLY or MONTHLY, free text as entered by admins
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    product = relationship("Product")

    def __repr__(self):
        return f"<SubscriptionPlan(id={self.id}, name='{self.name}', frequency='{self.frequency}')>"

class Subscription(Base):
    __tablename__ = "subscription"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("customer.id"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("subscription_plan.id"), nullable=False)

    status = Column(Enum(SubscriptionStatus, native_enum=False, length=20), nullable=False, default=SubscriptionStatus.ACTIVE, index=True)
    payment_method = Column(Enum(PaymentMethod, native_enum=False, length=20), nullable=False)
    plan_price = Column(Numeric(10, 2), nullable=False) # Price held for the current cycle
    shipping_address = Column(String(512), nullable=True)

    start_date = Column(DateTime, nullable=False)
    renewal_date = Column(DateTime, nullable=False, index=True)
    next_delivery_date = Column(Date, nullable=True)
    is_processing = Column(Boolean, default=False, nullable=False) # Claimed by the renewal job

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    customer = relationship("Customer", back_populates="subscriptions")
    plan = relationship("SubscriptionPlan")
    deliveries = relationship("SubscriptionDelivery", back_populates="subscription", order_by="SubscriptionDelivery.delivery_date")

    def __repr__(self):
        return f"<Subscription(id={self.id}, customer_id={self.customer_id}, status='{self.status}')>"

class SubscriptionDelivery(Base):
    __tablename__ = "subscription_delivery"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    subscription_id = Column(Integer, ForeignKey("subscription.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("order.id"), nullable=False, unique=True)
    delivery_date = Column(Date, nullable=False)
    status = Column(Enum(OrderStatus, native_enum=False, length=20), nullable=False, default=OrderStatus.CONFIRMED) # Mirrors the order
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    subscription = relationship("Subscription", back_populates="deliveries")
    order = relationship("Order")

    def __repr__(self):
        return f"<SubscriptionDelivery(id={self.id}, subscription_id={self.subscription_id}, date={self.delivery_date}, status='{self.status}')>"
