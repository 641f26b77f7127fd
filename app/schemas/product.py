from pydantic import BaseModel, Field
from typing import Optional
from decimal import Decimal

class ProductBase(BaseModel):
    name: str = Field(..., max_length=255)
    description: Optional[str] = None
    price: Decimal = Field(..., gt=0) # Price of one package
    package_size: int = Field(default=1, gt=0) # Stock units per package
    stock_quantity: int = Field(default=0, ge=0)
    is_subscription: bool = False
    is_preorder: bool = False
    is_active: bool = True

class ProductCreate(ProductBase):
    pass
