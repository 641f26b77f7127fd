import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from fastapi.testclient import TestClient
import os
import uuid
from decimal import Decimal

# Add project root to sys.path to allow imports from app
import sys
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))


from app.main import app
from app.db.base import Base # Registers every model on the metadata
from app.db.session import get_db
from app.crud import crud_customer, crud_product, crud_subscription, crud_wallet
from app.core.checkout import create_order
from app.core.dependencies import get_gateway
from app.core.exceptions import GatewaySessionError
from app.core.security import create_access_token
from app.core.sslcommerz import GatewaySession
from app.models.enums import PaymentMethod, UserRole
from app.schemas.order import OrderCreate, OrderItemCreate
from app.schemas.product import ProductCreate
from app.schemas.subscription import SubscriptionPlanCreate
from app.schemas.user import UserCreate

# Use a separate SQLite database for testing
TEST_SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.create_all(bind=engine)

def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


class FakeGateway:
    """
    Stands in for SSLCommerzClient. Records the sessions it opened and answers
    validation calls from `validations`, keyed by val_id.
    """

    def __init__(self):
        self.sessions = []
        self.validated = []
        self.validations = {}
        self.fail_sessions = False
        self.validate_error = None

    def init_session(self, *, tran_id, amount, customer, callbacks, product_name, **kwargs):
        if self.fail_sessions:
            raise GatewaySessionError("SSLCommerz session initialization failed: Store is inactive")
        self.sessions.append({
            "tran_id": tran_id,
            "amount": Decimal(amount),
            "customer": customer,
            "callbacks": callbacks,
            "product_name": product_name,
        })
        return GatewaySession(
            tran_id=tran_id,
            session_key=f"SK_{tran_id}",
            redirect_url=f"https://sandbox.sslcommerz.com/EasyCheckOut/{tran_id}",
        )

    def validate(self, val_id):
        self.validated.append(val_id)
        if self.validate_error is not None:
            raise self.validate_error
        return self.validations.get(val_id, {"status": "INVALID_TRANSACTION"})

    def approve(self, val_id, tran_id, amount, status="VALID"):
        self.validations[val_id] = {
            "status": status,
            "val_id": val_id,
            "tran_id": tran_id,
            "amount": f"{Decimal(amount):.2f}",
            "currency": "BDT",
        }


@pytest.fixture(scope="session")
def test_engine():
    Base.metadata.create_all(bind=engine)
    yield engine

@pytest.fixture(scope="function")
def db_session(test_engine):
    """
    Provides a database session for each test function.
    Tables are dropped and recreated first so every test starts empty.
    """
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client():
    # The TestClient uses the app with the overridden get_db dependency
    with TestClient(app) as c:
        yield c


@pytest.fixture(scope="function")
def gateway():
    fake = FakeGateway()
    app.dependency_overrides[get_gateway] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_gateway, None)


def _auth_headers(email: str) -> dict:
    token = create_access_token({"sub": email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
def make_customer(db_session: Session):
    """
    Factory: create a customer, optionally with a wallet holding `balance`.
    Returns the Customer row.
    """
    def _make(balance=None, locale="en", address="House 7, Road 3, Dhanmondi"):
        user = crud_customer.create_user(db_session, obj_in=UserCreate(
            email=f"customer_{uuid.uuid4().hex[:8]}@example.com",
            name="Test Customer",
            phone="01700000000",
            role=UserRole.CUSTOMER,
            locale=locale,
            address=address,
        ))
        customer = crud_customer.get_customer_by_user(db_session, user_id=user.id)
        if balance is not None:
            crud_wallet.create_wallet(db_session, customer_id=customer.id, balance=Decimal(balance))
            db_session.commit()
        return customer
    return _make

@pytest.fixture(scope="function")
def customer(make_customer):
    return make_customer(balance="500.00")

@pytest.fixture(scope="function")
def customer_headers(customer) -> dict:
    return _auth_headers(customer.user.email)

@pytest.fixture(scope="function")
def admin_user(db_session: Session):
    return crud_customer.create_user(db_session, obj_in=UserCreate(
        email=f"admin_{uuid.uuid4().hex[:8]}@example.com",
        name="Store Admin",
        role=UserRole.ADMIN,
        locale="en",
    ))

@pytest.fixture(scope="function")
def admin_headers(admin_user) -> dict:
    return _auth_headers(admin_user.email)


@pytest.fixture(scope="function")
def make_product(db_session: Session):
    def _make(price="50.00", package_size=1, stock_quantity=100, **kwargs):
        return crud_product.create_product(db_session, obj_in=ProductCreate(
            name=f"Product {uuid.uuid4().hex[:6]}",
            price=Decimal(price),
            package_size=package_size,
            stock_quantity=stock_quantity,
            **kwargs,
        ))
    return _make

@pytest.fixture(scope="function")
def make_order(db_session: Session):
    """
    Factory: place an order through checkout. `lines` is a list of (product, quantity).
    """
    def _make(customer, lines, payment_method=PaymentMethod.WALLET):
        order_in = OrderCreate(
            items=[OrderItemCreate(product_id=product.id, quantity=quantity) for product, quantity in lines],
            payment_method=payment_method,
        )
        return create_order(db_session, customer, order_in)
    return _make

@pytest.fixture(scope="function")
def two_item_order_lines(make_product):
    """Qty 3 of a 2-unit package and qty 1 of a 5-unit package, 200.00 in total."""
    eggs = make_product(price="50.00", package_size=2, stock_quantity=100)
    rice = make_product(price="50.00", package_size=5, stock_quantity=100)
    return [(eggs, 3), (rice, 1)]


@pytest.fixture(scope="function")
def make_plan(db_session: Session, make_product):
    def _make(price="120.00", frequency="WEEKLY", stock_quantity=50, package_size=1):
        product = make_product(
            price=price, package_size=package_size, stock_quantity=stock_quantity, is_subscription=True
        )
        return crud_subscription.create_plan(db_session, obj_in=SubscriptionPlanCreate(
            name=f"Weekly box {uuid.uuid4().hex[:4]}",
            product_id=product.id,
            price=Decimal(price),
            frequency=frequency,
        ))
    return _make
