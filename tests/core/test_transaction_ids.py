import pytest

from app.core.exceptions import InvalidTransactionIdError, NotFoundError
from app.core.transaction_ids import (
    build_order_transaction_id,
    build_wallet_transaction_id,
    extract_order_id,
    extract_wallet_id,
)

pytestmark = pytest.mark.core


def test_build_ids_use_unix_millis():
    assert build_order_transaction_id(42, now=1700000000.5) == "ORDER_42_1700000000500"
    assert build_wallet_transaction_id(7, now=1700000000) == "WALLET_7_1700000000000"

def test_extract_ids():
    assert extract_order_id("ORDER_42_1700000000123") == 42
    assert extract_order_id("  ORDER_5_1  ") == 5
    assert extract_wallet_id("WALLET_7_1700000000000") == 7

@pytest.mark.parametrize("tran_id", [None, "", "ORDER_abc_1", "ORDER_1", "WALLET_3_1700000000000", "ORDER_1_2_3"])
def test_extract_order_id_rejects_malformed(tran_id):
    with pytest.raises(InvalidTransactionIdError) as exc_info:
        extract_order_id(tran_id)
    assert exc_info.value.message == "Invalid transaction ID format"

def test_malformed_id_is_not_a_lookup_failure():
    with pytest.raises(InvalidTransactionIdError) as exc_info:
        extract_wallet_id("ORDER_1_1700000000000")
    assert not isinstance(exc_info.value, NotFoundError)
