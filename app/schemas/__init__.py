from .token import TokenData
from .user import UserCreate
from .product import ProductBase, ProductCreate
from .order import (
    OrderItemCreate,
    OrderCreate,
    OrderUpdate,
    OrderItem,
    OrderTracking,
    Order
)
from .payment import (
    PaymentCreate,
    Payment,
    PaymentResult,
    SSLCommerzCallback,
    CallbackAck
)
from .subscription import (
    SubscriptionPlanCreate,
    SubscriptionPlan,
    SubscriptionCreate,
    Subscription,
    RenewalReport
)
from .wallet import (
    WalletTransaction,
    Wallet,
    WalletWithTransactions,
    DepositCreate,
    DepositInitResponse
)
from .notification import Notification
