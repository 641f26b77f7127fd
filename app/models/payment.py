from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.base_class import Base
from app.models.enums import PaymentStatus, PaymentMethod

class Payment(Base):
    __tablename__ = "payment"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("order.id"), nullable=False, index=True)
    wallet_transaction_id = Column(Integer, ForeignKey("wallet_transaction.id"), nullable=True)

    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(Enum(PaymentMethod, native_enum=False, length=20), nullable=False)
    payment_status = Column(Enum(PaymentStatus, native_enum=False, length=20), nullable=False, default=PaymentStatus.PENDING, index=True)
    transaction_id = Column(String(64), nullable=True, unique=True, index=True) # ORDER_{orderId}_{unixMillis}
    gateway_session_key = Column(String(255), nullable=True)
    failure_reason = Column(String(512), nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    order = relationship("Order", back_populates="payments")
    wallet_transaction = relationship("WalletTransaction")

    def __repr__(self):
        return f"<Payment(id={self.id}, order_id={self.order_id}, method='{self.payment_method}', status='{self.payment_status}')>"
