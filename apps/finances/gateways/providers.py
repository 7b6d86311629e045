"""
Mobile money providers (bKash, Nagad, Rocket).

All calls go through ``requests`` with the configured timeout. Provider
errors are raised as ``GatewayError`` with the provider message kept in
``detail``; timeouts as ``GatewayTimeoutError``.
"""

from __future__ import annotations

import logging
from decimal import Decimal

import requests

from apps.finances.gateways.base import (
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_REFUNDED,
    GatewayResult,
    PaymentGateway,
    WebhookNotice,
    normalize_status,
)
from shared.domain.exceptions import GatewayError, GatewayTimeoutError

logger = logging.getLogger(__name__)


class HttpPaymentGateway(PaymentGateway):
    """JSON over HTTPS provider with merchant id and API key headers."""

    required_credentials: tuple[str, ...] = ("MERCHANT_ID", "API_KEY")
    intent_path = "/payments"
    capture_path = "/payments/{ref}/capture"
    refund_path = "/payments/{ref}/refund"

    @classmethod
    def has_credentials(cls, config: dict) -> bool:
        return all(config.get(key) for key in cls.required_credentials)

    @property
    def base_url(self) -> str:
        return self.config.get("BASE_URL", "").rstrip("/")

    def _headers(self) -> dict:
        return {
            "X-Merchant-Id": self.config.get("MERCHANT_ID", ""),
            "X-Api-Key": self.config.get("API_KEY", ""),
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _post(self, path: str, payload: dict, headers: dict | None = None) -> dict:
        url = f"{self.base_url}{path}"
        try:
            response = requests.post(url, json=payload, headers=headers or self._headers(), timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.Timeout as e:
            logger.error(f"{self.name} gateway timed out after {self.timeout}s calling {path}")
            raise GatewayTimeoutError(f"{self.name} timed out after {self.timeout}s calling {path}") from e
        except requests.RequestException as e:
            logger.error(f"{self.name} gateway request to {path} failed: {e}")
            raise GatewayError(f"{self.name} request to {path} failed: {e}") from e
        except ValueError as e:
            logger.error(f"{self.name} gateway returned invalid JSON for {path}")
            raise GatewayError(f"{self.name} returned invalid JSON for {path}") from e

    def _result(self, data: dict, operation: str, default_ref: str = "") -> GatewayResult:
        status = normalize_status(data.get("status"))
        if status == STATUS_FAILED:
            message = data.get("message") or data.get("error") or "unknown error"
            raise GatewayError(f"{self.name} {operation} rejected: {message}")
        return GatewayResult(
            status=status,
            gateway_ref=str(data.get("reference") or default_ref),
            metadata={"provider": self.name, "response": data},
        )

    def create_intent(self, amount: Decimal, currency: str, booking_id: int, customer_id: int, metadata: dict) -> GatewayResult:
        data = self._post(
            self.intent_path,
            {
                "amount": str(amount),
                "currency": currency,
                "order_id": str(booking_id),
                "customer_id": str(customer_id),
                "callback_url": self.config.get("CALLBACK_URL", ""),
            },
        )
        return self._result(data, "intent")

    def capture(self, payment_id: int, amount: Decimal, metadata: dict, gateway_ref: str = "") -> GatewayResult:
        data = self._post(
            self.capture_path.format(ref=gateway_ref or payment_id),
            {"amount": str(amount), "payment_id": str(payment_id)},
        )
        return self._result(data, "capture", default_ref=gateway_ref)

    def refund(self, payment_id: int, amount: Decimal, reason: str, metadata: dict, gateway_ref: str = "") -> GatewayResult:
        data = self._post(
            self.refund_path.format(ref=gateway_ref or payment_id),
            {"amount": str(amount), "payment_id": str(payment_id), "reason": reason},
        )
        return self._result(data, "refund", default_ref=gateway_ref)


class NagadGateway(HttpPaymentGateway):
    pass


class RocketGateway(HttpPaymentGateway):
    intent_path = "/checkout/initiate"
    capture_path = "/checkout/{ref}/confirm"
    refund_path = "/checkout/{ref}/reverse"


class BkashGateway(HttpPaymentGateway):
    """Tokenized checkout: every call carries a grant token."""

    required_credentials = ("APP_KEY", "APP_SECRET", "USERNAME", "PASSWORD")

    def __init__(self, *args, **kwargs):  # type: ignore
        super().__init__(*args, **kwargs)
        self._token = ""

    def _grant_token(self) -> str:
        if self._token:
            return self._token
        data = self._post(
            "/tokenized/checkout/token/grant",
            {"app_key": self.config["APP_KEY"], "app_secret": self.config["APP_SECRET"]},
            headers={
                "username": self.config["USERNAME"],
                "password": self.config["PASSWORD"],
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )
        token = data.get("id_token")
        if not token:
            raise GatewayError(f"bkash token grant failed: {data.get('statusMessage', 'no token')}")
        self._token = token
        return token

    def _headers(self) -> dict:
        return {
            "Authorization": self._grant_token(),
            "X-APP-Key": self.config.get("APP_KEY", ""),
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _checked(self, data: dict, operation: str) -> dict:
        if data.get("statusCode") != "0000":
            raise GatewayError(f"bkash {operation} rejected: {data.get('statusMessage', 'unknown error')}")
        return data

    def create_intent(self, amount: Decimal, currency: str, booking_id: int, customer_id: int, metadata: dict) -> GatewayResult:
        data = self._checked(
            self._post(
                "/tokenized/checkout/create",
                {
                    "mode": "0011",
                    "payerReference": str(customer_id),
                    "callbackURL": self.config.get("CALLBACK_URL", ""),
                    "amount": str(amount),
                    "currency": currency,
                    "intent": "sale",
                    "merchantInvoiceNumber": f"booking-{booking_id}",
                },
            ),
            "intent",
        )
        return GatewayResult(
            status=STATUS_PENDING,
            gateway_ref=data.get("paymentID", ""),
            metadata={"provider": self.name, "checkout_url": data.get("bkashURL", "")},
        )

    def capture(self, payment_id: int, amount: Decimal, metadata: dict, gateway_ref: str = "") -> GatewayResult:
        data = self._checked(
            self._post("/tokenized/checkout/execute", {"paymentID": gateway_ref}),
            "capture",
        )
        status = normalize_status(data.get("transactionStatus"))
        if status == STATUS_FAILED:
            raise GatewayError(f"bkash capture of payment {payment_id} not completed: {data.get('transactionStatus')}")
        return GatewayResult(
            status=status,
            gateway_ref=gateway_ref,
            metadata={"provider": self.name, "trx_id": data.get("trxID", "")},
        )

    def refund(self, payment_id: int, amount: Decimal, reason: str, metadata: dict, gateway_ref: str = "") -> GatewayResult:
        data = self._checked(
            self._post(
                "/tokenized/checkout/payment/refund",
                {
                    "paymentID": gateway_ref,
                    "trxID": metadata.get("trx_id", ""),
                    "amount": str(amount),
                    "reason": reason[:255],
                    "sku": f"payment-{payment_id}",
                },
            ),
            "refund",
        )
        return GatewayResult(
            status=STATUS_REFUNDED,
            gateway_ref=data.get("refundTrxID", gateway_ref),
            metadata={"provider": self.name, "refund_trx_id": data.get("refundTrxID", "")},
        )

    def parse_webhook(self, data: dict) -> WebhookNotice:
        notice = super().parse_webhook(data)
        if not notice.gateway_ref:
            notice.gateway_ref = str(data.get("paymentID") or "")
        if data.get("transactionStatus"):
            notice.status = normalize_status(data["transactionStatus"])
        return notice
