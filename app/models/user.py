from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Enum, func
from sqlalchemy.orm import relationship
from app.db.base_class import Base
from app.models.enums import UserRole

class User(Base):
    __tablename__ = "user_account"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=True)
    phone = Column(String(32), nullable=True, index=True)
    role = Column(Enum(UserRole, native_enum=False, length=20), nullable=False, default=UserRole.CUSTOMER)
    locale = Column(String(8), nullable=True) # e.g. "bn", "en"; falls back to DEFAULT_LOCALE
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    customer = relationship("Customer", back_populates="user", uselist=False)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"

class Customer(Base):
    __tablename__ = "customer"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user_account.id"), nullable=False, unique=True)
    address = Column(String(512), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="customer")
    wallet = relationship("Wallet", back_populates="customer", uselist=False)
    orders = relationship("Order", back_populates="customer")
    subscriptions = relationship("Subscription", back_populates="customer")

    def __repr__(self):
        return f"<Customer(id={self.id}, user_id={self.user_id})>"
