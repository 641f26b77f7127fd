from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey, Enum, func
from sqlalchemy.orm import relationship
from app.db.base_class import Base
from app.models.enums import WalletTransactionType, WalletTransactionStatus

class Wallet(Base):
    __tablename__ = "wallet"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("customer.id"), nullable=False, unique=True)
    balance = Column(Numeric(12, 2), nullable=False, default=0)
    locked_balance = Column(Numeric(12, 2), nullable=False, default=0) # Held for upcoming subscription deliveries
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    customer = relationship("Customer", back_populates="wallet")
    transactions = relationship("WalletTransaction", back_populates="wallet", order_by="WalletTransaction.id")

    @property
    def available_balance(self):
        return self.balance - self.locked_balance

    def __repr__(self):
        return f"<Wallet(id={self.id}, customer_id={self.customer_id}, balance={self.balance}, locked={self.locked_balance})>"

class WalletTransaction(Base):
    __tablename__ = "wallet_transaction"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    wallet_id = Column(Integer, ForeignKey("wallet.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("order.id"), nullable=True, index=True)
    subscription_id = Column(Integer, ForeignKey("subscription.id"), nullable=True, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    transaction_type = Column(Enum(WalletTransactionType, native_enum=False, length=20), nullable=False)
    transaction_status = Column(
        Enum(WalletTransactionStatus, native_enum=False, length=20),
        nullable=False,
        default=WalletTransactionStatus.PENDING,
        index=True,
    )
    reference = Column(String(64), nullable=True, unique=True, index=True) # Gateway tran_id for deposits
    description = Column(String(512), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    wallet = relationship("Wallet", back_populates="transactions")
    order = relationship("Order")

    def __repr__(self):
        return f"<WalletTransaction(id={self.id}, type='{self.transaction_type}', status='{self.transaction_status}', amount={self.amount})>"
