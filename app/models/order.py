from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric, ForeignKey, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.base_class import Base
from app.models.enums import OrderStatus, PaymentStatus, PaymentMethod

class Order(Base):
    __tablename__ = "order"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("customer.id"), nullable=False, index=True)

    status = Column(Enum(OrderStatus, native_enum=False, length=20), nullable=False, default=OrderStatus.PENDING, index=True)
    payment_status = Column(Enum(PaymentStatus, native_enum=False, length=20), nullable=False, default=PaymentStatus.PENDING, index=True)
    payment_method = Column(Enum(PaymentMethod, native_enum=False, length=20), nullable=False)

    total_amount = Column(Numeric(12, 2), nullable=False)
    shipping_address = Column(String(512), nullable=True)
    is_subscription = Column(Boolean, default=False, nullable=False)
    is_preorder = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    customer = relationship("Customer", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", order_by="OrderItem.id")
    tracking = relationship("OrderTracking", back_populates="order", order_by="OrderTracking.id")
    payments = relationship("Payment", back_populates="order", order_by="Payment.id")

    def __repr__(self):
        return f"<Order(id={self.id}, customer_id={self.customer_id}, status='{self.status}', payment_status='{self.payment_status}')>"

class OrderItem(Base):
    __tablename__ = "order_item"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("order.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("product.id"), nullable=False)
    quantity = Column(Integer, nullable=False) # Number of packages
    unit_price = Column(Numeric(10, 2), nullable=False) # Package price at time of order
    package_size = Column(Integer, nullable=False, default=1) # Snapshot of Product.package_size
    subtotal = Column(Numeric(12, 2), nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")

    @property
    def stock_units(self) -> int:
        return self.quantity * self.package_size

    def __repr__(self):
        return f"<OrderItem(id={self.id}, order_id={self.order_id}, product_id={self.product_id}, quantity={self.quantity})>"

class OrderTracking(Base):
    __tablename__ = "order_tracking"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("order.id"), nullable=False, index=True)
    status = Column(Enum(OrderStatus, native_enum=False, length=20), nullable=False)
    description = Column(String(512), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    order = relationship("Order", back_populates="tracking")

    def __repr__(self):
        return f"<OrderTracking(id={self.id}, order_id={self.order_id}, status='{self.status}')>"
