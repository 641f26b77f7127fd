"""
Correlation ids shared with the payment gateway.

Order payments use ORDER_{orderId}_{unixMillis}; wallet deposits use
WALLET_{walletId}_{unixMillis}. The gateway echoes the id back in tran_id on
every callback, which is how a callback finds its order or wallet.
"""
import re
import time
from typing import Optional

from app.core.exceptions import InvalidTransactionIdError

ORDER_PREFIX = "ORDER"
WALLET_PREFIX = "WALLET"

_ORDER_PATTERN = re.compile(r"^ORDER_(\d+)_(\d+)$")
_WALLET_PATTERN = re.compile(r"^WALLET_(\d+)_(\d+)$")


def _unix_millis(now: Optional[float] = None) -> int:
    return int((time.time() if now is None else now) * 1000)


def build_order_transaction_id(order_id: int, now: Optional[float] = None) -> str:
    return f"{ORDER_PREFIX}_{order_id}_{_unix_millis(now)}"


def build_wallet_transaction_id(wallet_id: int, now: Optional[float] = None) -> str:
    return f"{WALLET_PREFIX}_{wallet_id}_{_unix_millis(now)}"


def _extract(pattern: re.Pattern, tran_id: Optional[str]) -> int:
    match = pattern.match((tran_id or "").strip())
    if not match:
        raise InvalidTransactionIdError("Invalid transaction ID format")
    return int(match.group(1))


def extract_order_id(tran_id: Optional[str]) -> int:
    """Return the order id encoded in an ORDER_ transaction id."""
    return _extract(_ORDER_PATTERN, tran_id)


def extract_wallet_id(tran_id: Optional[str]) -> int:
    """Return the wallet id encoded in a WALLET_ transaction id."""
    return _extract(_WALLET_PATTERN, tran_id)
