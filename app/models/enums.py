import enum
from typing import Optional, Tuple


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"  # Terminal, outside the delivery progression

    @property
    def rank(self) -> Optional[int]:
        """Position in the delivery progression, or None for statuses outside it."""
        try:
            return ORDER_PROGRESSION.index(self)
        except ValueError:
            return None

    @property
    def in_progression(self) -> bool:
        return self.rank is not None

    def is_ahead_of(self, other: "OrderStatus") -> bool:
        return compare_order_status(self, other) > 0

    def statuses_after(self) -> Tuple["OrderStatus", ...]:
        """Progression statuses strictly ahead of this one."""
        if self.rank is None:
            return ()
        return ORDER_PROGRESSION[self.rank + 1:]

    def next_status(self) -> Optional["OrderStatus"]:
        following = self.statuses_after()
        return following[0] if following else None


ORDER_PROGRESSION: Tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)


def compare_order_status(left: OrderStatus, right: OrderStatus) -> int:
    """
    Total order over the delivery progression: negative, zero or positive like cmp().
    Raises ValueError when either status is outside the progression.
    """
    if left.rank is None or right.rank is None:
        raise ValueError(f"Cannot order {left.value} against {right.value}")
    return left.rank - right.rank


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


PAYABLE_STATUSES = (PaymentStatus.PENDING, PaymentStatus.FAILED)


class PaymentMethod(str, enum.Enum):
    WALLET = "WALLET"
    COD = "COD"
    SSLCOMMERZ = "SSLCOMMERZ"


class WalletTransactionType(str, enum.Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    PURCHASE = "PURCHASE"
    REFUND = "REFUND"


class WalletTransactionStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class StockTransactionType(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    CANCELLED = "CANCELLED"


class SubscriptionFrequency(str, enum.Enum):
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class NotificationType(str, enum.Enum):
    ORDER = "ORDER"
    PAYMENT = "PAYMENT"
    WALLET = "WALLET"
    SUBSCRIPTION = "SUBSCRIPTION"


class UserRole(str, enum.Enum):
    CUSTOMER = "CUSTOMER"
    ADMIN = "ADMIN"
