import json
import logging
from typing import Any, Dict, List, Mapping, Optional

import requests

from app.config import settings
from app.schemas.cart_schemas import CartItem, CouponInfo
from app.services.payments.base import (
    ConfirmationReceipt,
    PaymentAdapter,
    PaymentCancelled,
    PaymentDeclined,
    PaymentProviderError,
    PaymentSession,
    ReceiptStatus,
)
from app.utils.retry import http_retry

logger = logging.getLogger(__name__)

# PayPal order status -> receipt status
ORDER_STATUS = {
    "COMPLETED": ReceiptStatus.succeeded,
    "CREATED": ReceiptStatus.requires_action,
    "SAVED": ReceiptStatus.requires_action,
    "APPROVED": ReceiptStatus.requires_action,
    "PAYER_ACTION_REQUIRED": ReceiptStatus.requires_action,
    "VOIDED": ReceiptStatus.cancelled,
}

DECLINE_ISSUES = {"INSTRUMENT_DECLINED", "PAYER_CANNOT_PAY", "TRANSACTION_REFUSED"}


class PayPalAdapter(PaymentAdapter):
    """PayPal Orders v2 over plain REST."""

    provider = "paypal"

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        webhook_id: Optional[str] = None,
        currency: Optional[str] = None,
        timeout: int = 15,
    ):
        self.client_id = client_id or settings.paypal_client_id
        self.client_secret = client_secret or settings.paypal_client_secret
        self.base_url = (base_url or settings.paypal_base_url).rstrip("/")
        self.webhook_id = webhook_id or settings.paypal_webhook_id
        self.currency = (currency or settings.currency).upper()
        self.timeout = timeout

    # -----------------------------------------------------------------
    # HTTP helpers
    # -----------------------------------------------------------------

    @http_retry()
    def _access_token(self) -> str:
        resp = requests.post(
            f"{self.base_url}/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=(self.client_id, self.client_secret),
            timeout=self.timeout,
        )
        if resp.status_code != 200:
            logger.error(f"PayPal token request failed: {resp.status_code} {resp.text}")
            raise PaymentProviderError("Failed to get PayPal access token")
        return resp.json()["access_token"]

    @http_retry()
    def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None,
                 headers: Optional[Dict[str, str]] = None) -> requests.Response:
        request_headers = {
            "Authorization": f"Bearer {self._access_token()}",
            "Content-Type": "application/json",
        }
        request_headers.update(headers or {})

        return requests.request(
            method,
            f"{self.base_url}{path}",
            json=body,
            headers=request_headers,
            timeout=self.timeout,
        )

    def _call(self, method: str, path: str, body=None, headers=None, session_id=None):
        try:
            return self._request(method, path, body, headers)
        except requests.RequestException as e:
            logger.exception(f"PayPal {method} {path} failed")
            raise PaymentProviderError(
                "Could not reach PayPal. Please try again.", session_id=session_id
            ) from e

    # -----------------------------------------------------------------
    # Contract
    # -----------------------------------------------------------------

    def create_payment_session(
        self,
        amount: float,
        items: List[CartItem],
        coupon: Optional[CouponInfo] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PaymentSession:
        metadata = metadata or {}
        body = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": metadata.get("checkout_ref", "default"),
                    "custom_id": metadata.get("customer_id", ""),
                    "description": f"{len(items)} plugin(s)",
                    "amount": {"currency_code": self.currency, "value": f"{amount:.2f}"},
                }
            ],
        }

        headers = {}
        if metadata.get("checkout_ref"):
            headers["PayPal-Request-Id"] = metadata["checkout_ref"]

        resp = self._call("POST", "/v2/checkout/orders", body, headers)

        if resp.status_code not in (200, 201):
            logger.error(f"PayPal order create failed: {resp.status_code} {resp.text}")
            raise PaymentProviderError(
                f"Failed to create PayPal order: {resp.status_code}"
            )

        paypal_order = resp.json()
        approval_url = next(
            (link["href"] for link in paypal_order.get("links", [])
             if link.get("rel") in ("approve", "payer-action")),
            None,
        )

        logger.info(f"PayPal order {paypal_order['id']} created for {amount} {self.currency}")

        return PaymentSession(
            provider=self.provider,
            session_id=paypal_order["id"],
            approval_url=approval_url,
            amount=amount,
            currency=self.currency,
        )

    def confirm(self, session_id: str) -> ConfirmationReceipt:
        resp = self._call(
            "POST",
            f"/v2/checkout/orders/{session_id}/capture",
            headers={"PayPal-Request-Id": f"capture-{session_id}"},
            session_id=session_id,
        )

        if resp.status_code in (200, 201):
            return self._receipt(resp.json())

        error = _safe_json(resp)
        issues = {d.get("issue") for d in error.get("details", [])}

        if "ORDER_ALREADY_CAPTURED" in issues:
            # a retried confirmation; read back the captured order
            resp = self._call("GET", f"/v2/checkout/orders/{session_id}", session_id=session_id)
            if resp.status_code == 200:
                return self._receipt(resp.json())

        if "ORDER_NOT_APPROVED" in issues:
            return ConfirmationReceipt(
                provider=self.provider,
                session_id=session_id,
                status=ReceiptStatus.requires_action,
                raw=error,
            )

        if issues & DECLINE_ISSUES:
            raise PaymentDeclined("PayPal declined the payment", session_id=session_id)

        if resp.status_code == 404:
            raise PaymentCancelled("PayPal order no longer exists", session_id=session_id)

        logger.error(f"PayPal capture failed for {session_id}: {resp.status_code} {resp.text}")
        raise PaymentProviderError(
            f"Failed to capture PayPal payment: {resp.status_code}", session_id=session_id
        )

    def parse_webhook(
        self,
        payload: bytes,
        headers: Mapping[str, str],
    ) -> Optional[ConfirmationReceipt]:
        event = json.loads(payload)

        verification = {
            "auth_algo": headers.get("paypal-auth-algo"),
            "cert_url": headers.get("paypal-cert-url"),
            "transmission_id": headers.get("paypal-transmission-id"),
            "transmission_sig": headers.get("paypal-transmission-sig"),
            "transmission_time": headers.get("paypal-transmission-time"),
            "webhook_id": self.webhook_id,
            "webhook_event": event,
        }
        resp = self._call("POST", "/v1/notifications/verify-webhook-signature", verification)

        if resp.status_code != 200 or resp.json().get("verification_status") != "SUCCESS":
            logger.warning("PayPal webhook signature invalid")
            raise ValueError("Invalid webhook signature")

        event_type = event.get("event_type")
        resource = event.get("resource", {})
        order_id = (
            resource.get("supplementary_data", {})
            .get("related_ids", {})
            .get("order_id")
        )

        if not order_id:
            logger.info(f"Ignoring PayPal event {event_type}")
            return None

        amount = resource.get("amount", {})
        status = {
            "PAYMENT.CAPTURE.COMPLETED": ReceiptStatus.succeeded,
            "PAYMENT.CAPTURE.DENIED": ReceiptStatus.declined,
            "PAYMENT.CAPTURE.DECLINED": ReceiptStatus.declined,
        }.get(event_type)

        if status is None:
            logger.info(f"Ignoring PayPal event {event_type}")
            return None

        return ConfirmationReceipt(
            provider=self.provider,
            session_id=order_id,
            status=status,
            transaction_id=resource.get("id"),
            amount=float(amount["value"]) if amount.get("value") else None,
            currency=amount.get("currency_code"),
            raw={"event_type": event_type},
        )

    def _receipt(self, paypal_order: Dict[str, Any]) -> ConfirmationReceipt:
        capture = _first_capture(paypal_order)
        status = ORDER_STATUS.get(paypal_order.get("status"), ReceiptStatus.requires_action)

        if capture and capture.get("status") == "DECLINED":
            status = ReceiptStatus.declined

        amount = (capture or {}).get("amount", {})

        return ConfirmationReceipt(
            provider=self.provider,
            session_id=paypal_order["id"],
            status=status,
            transaction_id=(capture or {}).get("id"),
            amount=float(amount["value"]) if amount.get("value") else None,
            currency=amount.get("currency_code"),
            payer_id=paypal_order.get("payer", {}).get("payer_id"),
            raw={"status": paypal_order.get("status")},
        )


def _first_capture(paypal_order: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    for unit in paypal_order.get("purchase_units", []):
        captures = unit.get("payments", {}).get("captures", [])
        if captures:
            return captures[0]
    return None


def _safe_json(resp: requests.Response) -> Dict[str, Any]:
    try:
        return resp.json()
    except ValueError:
        return {}
