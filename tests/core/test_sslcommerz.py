import pytest
import requests
from decimal import Decimal

from app.core.exceptions import (
    GatewayAuthenticationError,
    GatewayBadRequestError,
    GatewayConfigurationError,
    GatewayConnectionError,
    GatewayError,
    GatewayServerError,
    GatewaySessionError,
    GatewayTimeoutError,
)
from app.core.sslcommerz import (
    SSLCommerzClient,
    CallbackUrls,
    CustomerInfo,
    SANDBOX_BASE_URL,
    LIVE_BASE_URL,
    SESSION_PATH,
    VALIDATION_PATH,
    is_valid,
)

pytestmark = pytest.mark.core


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeHttp:
    """Records requests and answers with a canned response or raises a canned error."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


def _client(http, **kwargs):
    return SSLCommerzClient("teststore", "teststore@ssl", is_live=False, timeout=5, http=http, **kwargs)

def _open_session(client):
    return client.init_session(
        tran_id="ORDER_7_1700000000000",
        amount=Decimal("200"),
        customer=CustomerInfo(name="Rahim", email="rahim@example.com", phone="01711111111"),
        callbacks=CallbackUrls.under("http://api.test/api/v1/payments/sslcommerz"),
        product_name="Order #7",
    )


def test_init_session_posts_form_and_returns_redirect():
    http = FakeHttp(FakeResponse(payload={
        "status": "SUCCESS",
        "sessionkey": "ABC123",
        "GatewayPageURL": "https://sandbox.sslcommerz.com/EasyCheckOut/testcde",
    }))

    session = _open_session(_client(http))

    assert session.session_key == "ABC123"
    assert session.redirect_url == "https://sandbox.sslcommerz.com/EasyCheckOut/testcde"
    method, url, kwargs = http.calls[0]
    assert method == "POST"
    assert url == f"{SANDBOX_BASE_URL}{SESSION_PATH}"
    assert kwargs["timeout"] == 5
    form = kwargs["data"]
    assert form["store_id"] == "teststore"
    assert form["total_amount"] == "200.00"
    assert form["currency"] == "BDT"
    assert form["tran_id"] == "ORDER_7_1700000000000"
    assert form["success_url"] == "http://api.test/api/v1/payments/sslcommerz/success"
    assert form["fail_url"] == "http://api.test/api/v1/payments/sslcommerz/fail"
    assert form["cus_city"] == "Dhaka"

def test_init_session_refused():
    http = FakeHttp(FakeResponse(payload={"status": "FAILED", "failedreason": "Store Credential Error Or Store is De-active"}))
    with pytest.raises(GatewaySessionError) as exc_info:
        _open_session(_client(http))
    assert "Store Credential Error" in exc_info.value.message

def test_validate_uses_get_with_json_format():
    http = FakeHttp(FakeResponse(payload={"status": "VALID", "tran_id": "ORDER_7_1700000000000", "amount": "200.00"}))

    validation = _client(http).validate("VAL-42")

    assert is_valid(validation)
    method, url, kwargs = http.calls[0]
    assert method == "GET"
    assert url == f"{SANDBOX_BASE_URL}{VALIDATION_PATH}"
    assert kwargs["params"]["val_id"] == "VAL-42"
    assert kwargs["params"]["format"] == "json"

def test_live_mode_uses_live_host():
    http = FakeHttp(FakeResponse(payload={"status": "VALIDATED"}))
    client = SSLCommerzClient("store", "secret", is_live=True, http=http)
    client.validate("VAL-1")
    assert http.calls[0][1].startswith(LIVE_BASE_URL)

def test_missing_credentials():
    http = FakeHttp(FakeResponse(payload={}))
    client = SSLCommerzClient("", "", is_live=False, http=http)
    with pytest.raises(GatewayConfigurationError) as exc_info:
        client.validate("VAL-1")
    assert exc_info.value.message == "SSLCommerz credentials not configured"
    assert http.calls == []

@pytest.mark.parametrize("status_code,error", [
    (400, GatewayBadRequestError),
    (401, GatewayAuthenticationError),
    (500, GatewayServerError),
    (503, GatewayServerError),
    (404, GatewayError),
])
def test_http_errors_are_classified(status_code, error):
    http = FakeHttp(FakeResponse(status_code=status_code, payload={"failedreason": "bad"}))
    with pytest.raises(error):
        _client(http).validate("VAL-1")

@pytest.mark.parametrize("raised,error", [
    (requests.Timeout("slow"), GatewayTimeoutError),
    (requests.ConnectionError("down"), GatewayConnectionError),
    (requests.TooManyRedirects("loop"), GatewayError),
])
def test_transport_errors_are_classified(raised, error):
    with pytest.raises(error):
        _client(FakeHttp(error=raised)).validate("VAL-1")

def test_non_json_response():
    with pytest.raises(GatewayError):
        _client(FakeHttp(FakeResponse(payload=None))).validate("VAL-1")

def test_is_valid():
    assert is_valid({"status": "VALID"})
    assert is_valid({"status": "validated"})
    assert not is_valid({"status": "INVALID_TRANSACTION"})
    assert not is_valid({})
