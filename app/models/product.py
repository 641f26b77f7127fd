from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, Numeric, ForeignKey, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.base_class import Base
from app.models.enums import StockTransactionType

class Product(Base):
    __tablename__ = "product"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False) # Price of one package
    package_size = Column(Integer, nullable=False, default=1) # Stock units per package
    stock_quantity = Column(Integer, nullable=False, default=0) # Counted in stock units, not packages
    is_subscription = Column(Boolean, default=False, nullable=False)
    is_preorder = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', stock={self.stock_quantity})>"

class StockTransaction(Base):
    __tablename__ = "stock_transaction"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("product.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("order.id"), nullable=True, index=True)
    quantity = Column(Integer, nullable=False)
    transaction_type = Column(Enum(StockTransactionType, native_enum=False, length=8), nullable=False)
    description = Column(String(512), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    product = relationship("Product")

    def __repr__(self):
        return f"<StockTransaction(id={self.id}, product_id={self.product_id}, type='{self.transaction_type}', quantity={self.quantity})>"
