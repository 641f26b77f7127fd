from sqlalchemy.orm import Session, joinedload
from typing import Optional

from app.models.user import User, Customer
from app.models.enums import UserRole
from app.schemas.user import UserCreate

def get_user_by_email(db: Session, *, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email).first()

def get_customer(db: Session, customer_id: int) -> Optional[Customer]:
    return (
        db.query(Customer)
        .options(joinedload(Customer.user))
        .filter(Customer.id == customer_id)
        .first()
    )

def get_customer_by_user(db: Session, *, user_id: int) -> Optional[Customer]:
    return db.query(Customer).filter(Customer.user_id == user_id).first()

def create_user(db: Session, *, obj_in: UserCreate) -> User:
    """
    Create a user. Customers also get their customer profile in the same commit.
    """
    data = obj_in.model_dump(exclude={"address"})
    db_obj = User(**data)
    db.add(db_obj)
    db.flush()
    if db_obj.role == UserRole.CUSTOMER:
        db.add(Customer(user_id=db_obj.id, address=obj_in.address))
    db.commit()
    db.refresh(db_obj)
    return db_obj
