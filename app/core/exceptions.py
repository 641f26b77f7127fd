"""
Domain errors raised by the order, payment and subscription services.

Every error carries the HTTP status the API layer should answer with; the
services themselves never build transport responses.
"""
from fastapi import status


class ServiceError(Exception):
    """Base class for per-request failures. Nothing here is fatal to the process."""
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# --- Lookups ---

class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class PaymentNotFoundError(NotFoundError):
    pass


class CustomerNotFoundError(NotFoundError):
    pass


class SubscriptionNotFoundError(NotFoundError):
    pass


class WalletNotFoundError(NotFoundError):
    pass


# --- Preconditions ---

class PreconditionError(ServiceError):
    status_code = status.HTTP_409_CONFLICT


class InvalidStatusTransitionError(PreconditionError):
    pass


class OrderNotPayableError(PreconditionError):
    pass


class PaymentAlreadyExistsError(PreconditionError):
    pass


class PaymentAlreadyCompletedError(PreconditionError):
    pass


class InvalidPaymentStateError(PreconditionError):
    pass


class InsufficientBalanceError(PreconditionError):
    pass


class InsufficientStockError(PreconditionError):
    def __init__(self, product_id: int, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}"
        )


class InvalidPaymentMethodError(PreconditionError):
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidFrequencyError(PreconditionError):
    status_code = status.HTTP_400_BAD_REQUEST


class SubscriptionNotEligibleError(PreconditionError):
    pass


class SubscriptionLockedError(PreconditionError):
    """Raised when a subscription change falls inside the pre-delivery buffer."""


class WalletInvariantError(PreconditionError):
    """Raised when a wallet mutation would leave balance < locked_balance or either below zero."""


# --- Gateway payloads ---

class InvalidTransactionIdError(ServiceError):
    """The tran_id does not follow the expected correlation format. Distinct from a missing record."""


class PaymentValidationError(ServiceError):
    """The gateway answered, but refused to vouch for the transaction."""


# --- External dependency ---

class GatewayError(ServiceError):
    status_code = status.HTTP_502_BAD_GATEWAY


class GatewayConfigurationError(GatewayError):
    """Store credentials are missing. Retrying cannot help."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class GatewayBadRequestError(GatewayError):
    pass


class GatewayAuthenticationError(GatewayError):
    pass


class GatewayServerError(GatewayError):
    pass


class GatewayTimeoutError(GatewayError):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT


class GatewayConnectionError(GatewayError):
    pass


class GatewaySessionError(GatewayError):
    """The gateway answered the session request with a non-SUCCESS status."""


class CallbackHandlingError(GatewayError):
    """A gateway callback could not be processed because the validation call failed."""
