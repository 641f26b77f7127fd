# Import every model so Base.metadata knows all tables before create_all().
from app.db.base_class import Base  # noqa: F401
from app.models.user import User, Customer  # noqa: F401
from app.models.wallet import Wallet, WalletTransaction  # noqa: F401
from app.models.product import Product, StockTransaction  # noqa: F401
from app.models.order import Order, OrderItem, OrderTracking  # noqa: F401
from app.models.payment import Payment  # noqa: F401
from app.models.subscription import SubscriptionPlan, Subscription, SubscriptionDelivery  # noqa: F401
from app.models.notification import Notification  # noqa: F401
