from pydantic import BaseModel, EmailStr, Field
from typing import Optional

from app.models.enums import UserRole

class UserCreate(BaseModel):
    email: EmailStr
    name: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=32)
    role: UserRole = UserRole.CUSTOMER
    locale: Optional[str] = Field(default=None, max_length=8)
    address: Optional[str] = Field(default=None, max_length=512) # Customers only
