"""
SSLCommerz client.

Two calls are used: session initialisation, which returns the hosted payment
page the customer is redirected to, and server-side validation of a val_id
received on a callback. Both use a fixed timeout and are never retried here;
a retry is the customer paying again.
"""
import logging
from decimal import Decimal
from typing import NamedTuple, Optional, Dict, Any

import requests

from app.core import config
from app.core.exceptions import (
    GatewayError,
    GatewayConfigurationError,
    GatewayBadRequestError,
    GatewayAuthenticationError,
    GatewayServerError,
    GatewayTimeoutError,
    GatewayConnectionError,
    GatewaySessionError,
)

logger = logging.getLogger(__name__)

LIVE_BASE_URL = "https://securepay.sslcommerz.com"
SANDBOX_BASE_URL = "https://sandbox.sslcommerz.com"

SESSION_PATH = "/gwprocess/v4/api.php"
VALIDATION_PATH = "/validator/api/validationserverAPI.php"

VALID_STATUSES = ("VALID", "VALIDATED")


class CallbackUrls(NamedTuple):
    success_url: str
    fail_url: str
    cancel_url: str
    ipn_url: str

    @classmethod
    def under(cls, base: str) -> "CallbackUrls":
        """Build the four callback URLs below one route prefix, e.g. .../payments/sslcommerz."""
        return cls(
            success_url=f"{base}/success",
            fail_url=f"{base}/fail",
            cancel_url=f"{base}/cancel",
            ipn_url=f"{base}/ipn",
        )


class CustomerInfo(NamedTuple):
    name: str
    email: str
    phone: str
    address: str = "N/A"
    city: str = "Dhaka"
    postcode: str = "1000"
    country: str = "Bangladesh"


class GatewaySession(NamedTuple):
    tran_id: str
    session_key: Optional[str]
    redirect_url: str


class SSLCommerzClient:
    def __init__(
        self,
        store_id: Optional[str] = None,
        store_passwd: Optional[str] = None,
        *,
        is_live: Optional[bool] = None,
        timeout: Optional[float] = None,
        http: Optional[requests.Session] = None,
    ):
        self.store_id = config.SSLCOMMERZ_STORE_ID if store_id is None else store_id
        self.store_passwd = config.SSLCOMMERZ_STORE_PASSWD if store_passwd is None else store_passwd
        live = config.SSLCOMMERZ_IS_LIVE if is_live is None else is_live
        self.base_url = LIVE_BASE_URL if live else SANDBOX_BASE_URL
        self.timeout = config.GATEWAY_TIMEOUT_SECONDS if timeout is None else timeout
        self.http = http or requests.Session()

    def _credentials(self) -> Dict[str, str]:
        if not (self.store_id and self.store_passwd):
            raise GatewayConfigurationError("SSLCommerz credentials not configured")
        return {"store_id": self.store_id, "store_passwd": self.store_passwd}

    def init_session(
        self,
        *,
        tran_id: str,
        amount: Decimal,
        customer: CustomerInfo,
        callbacks: CallbackUrls,
        product_name: str,
        product_category: str = "General",
        product_profile: str = "general",
        shipping_method: str = "Courier",
    ) -> GatewaySession:
        """
        Open a hosted payment session for `amount` BDT and return the page to redirect to.
        Raises a GatewayError subclass describing why the session could not be opened.
        """
        payload = dict(self._credentials())
        payload.update({
            "total_amount": f"{Decimal(amount):.2f}",
            "currency": config.GATEWAY_CURRENCY,
            "tran_id": tran_id,
            "success_url": callbacks.success_url,
            "fail_url": callbacks.fail_url,
            "cancel_url": callbacks.cancel_url,
            "ipn_url": callbacks.ipn_url,
            "shipping_method": shipping_method,
            "product_name": product_name,
            "product_category": product_category,
            "product_profile": product_profile,
            "cus_name": customer.name,
            "cus_email": customer.email,
            "cus_phone": customer.phone,
            "cus_add1": customer.address,
            "cus_city": customer.city,
            "cus_postcode": customer.postcode,
            "cus_country": customer.country,
            "ship_name": customer.name,
            "ship_add1": customer.address,
            "ship_city": customer.city,
            "ship_postcode": customer.postcode,
            "ship_country": customer.country,
        })

        data = self._request("POST", SESSION_PATH, data=payload)
        if data.get("status") != "SUCCESS" or not data.get("GatewayPageURL"):
            reason = data.get("failedreason") or "Unknown error from SSLCommerz"
            logger.warning(f"SSLCommerz refused session for {tran_id}: {reason}")
            raise GatewaySessionError(f"SSLCommerz session initialization failed: {reason}")

        logger.info(f"SSLCommerz session opened for {tran_id}")
        return GatewaySession(tran_id=tran_id, session_key=data.get("sessionkey"), redirect_url=data["GatewayPageURL"])

    def validate(self, val_id: str) -> Dict[str, Any]:
        """
        Ask SSLCommerz whether a val_id belongs to a genuine, settled transaction.
        Returns the validation document; callers check its `status` against VALID_STATUSES.
        """
        params = dict(self._credentials())
        params.update({"val_id": val_id, "format": "json"})
        return self._request("GET", VALIDATION_PATH, params=params)

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(
                method,
                url,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
                **kwargs,
            )
        except requests.Timeout as e:
            logger.error(f"SSLCommerz {path} timed out after {self.timeout}s")
            raise GatewayTimeoutError("SSLCommerz API timeout: Request took too long") from e
        except requests.ConnectionError as e:
            logger.error(f"SSLCommerz {path} connection failed: {e}")
            raise GatewayConnectionError("SSLCommerz API connection failed: Network error") from e
        except requests.RequestException as e:
            logger.error(f"SSLCommerz {path} request failed: {e}")
            raise GatewayError(f"SSLCommerz API request failed: {e}") from e

        if response.status_code >= 400:
            self._raise_for_status(response, path)

        try:
            return response.json()
        except ValueError as e:
            raise GatewayError("SSLCommerz API returned a non-JSON response") from e

    @staticmethod
    def _raise_for_status(response: requests.Response, path: str) -> None:
        code = response.status_code
        logger.error(f"SSLCommerz {path} answered HTTP {code}")
        if code == 400:
            try:
                reason = response.json().get("failedreason")
            except ValueError:
                reason = None
            raise GatewayBadRequestError(f"SSLCommerz API Bad Request: {reason or 'Invalid request parameters'}")
        if code == 401:
            raise GatewayAuthenticationError("SSLCommerz API Authentication failed: Invalid store credentials")
        if code >= 500:
            raise GatewayServerError("SSLCommerz API server error: Please try again later")
        raise GatewayError(f"SSLCommerz API request failed: HTTP {code}")


def is_valid(validation: Dict[str, Any]) -> bool:
    return str(validation.get("status", "")).upper() in VALID_STATUSES
