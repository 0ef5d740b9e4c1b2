import logging
from typing import Dict, List, Mapping, Optional

import stripe

from app.config import settings
from app.schemas.cart_schemas import CartItem, CouponInfo
from app.services.payments.base import (
    ConfirmationReceipt,
    PaymentAdapter,
    PaymentDeclined,
    PaymentProviderError,
    PaymentSession,
    ReceiptStatus,
    from_minor_units,
    to_minor_units,
)

logger = logging.getLogger(__name__)

# PaymentIntent.status -> receipt status
INTENT_STATUS = {
    "succeeded": ReceiptStatus.succeeded,
    "processing": ReceiptStatus.requires_action,
    "requires_action": ReceiptStatus.requires_action,
    "requires_confirmation": ReceiptStatus.requires_action,
    "requires_capture": ReceiptStatus.requires_action,
    "requires_payment_method": ReceiptStatus.requires_action,
    "canceled": ReceiptStatus.cancelled,
}


def _get(obj, key, default=None):
    try:
        value = obj[key]
    except (KeyError, TypeError):
        return getattr(obj, key, default)
    return default if value is None else value


class StripeAdapter(PaymentAdapter):
    provider = "stripe"

    def __init__(self, api_key: Optional[str] = None, webhook_secret: Optional[str] = None,
                 currency: Optional[str] = None):
        self.api_key = api_key or settings.stripe_secret_key
        self.webhook_secret = webhook_secret or settings.stripe_webhook_secret
        self.currency = (currency or settings.currency).lower()

    def create_payment_session(
        self,
        amount: float,
        items: List[CartItem],
        coupon: Optional[CouponInfo] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PaymentSession:
        meta = {
            "plugin_ids": ",".join(str(item.id) for item in items),
            "coupon_code": coupon.code if coupon else "",
        }
        meta.update(metadata or {})

        try:
            intent = stripe.PaymentIntent.create(
                amount=to_minor_units(amount),
                currency=self.currency,
                automatic_payment_methods={"enabled": True},
                description=f"{len(items)} plugin(s)",
                metadata=meta,
                api_key=self.api_key,
                idempotency_key=meta.get("checkout_ref"),
            )
        except stripe.StripeError as e:
            logger.exception("Stripe PaymentIntent create failed")
            raise PaymentProviderError(
                "Failed to initialize payment. Please try again."
            ) from e

        logger.info(f"Stripe intent {intent.id} created for {amount} {self.currency}")

        return PaymentSession(
            provider=self.provider,
            session_id=intent.id,
            client_secret=intent.client_secret,
            amount=amount,
            currency=self.currency.upper(),
        )

    def confirm(self, session_id: str) -> ConfirmationReceipt:
        try:
            intent = stripe.PaymentIntent.retrieve(session_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.exception(f"Stripe intent {session_id} lookup failed")
            raise PaymentProviderError(
                "Could not reach the payment provider. Please try again.",
                session_id=session_id,
            ) from e

        last_error = _get(intent, "last_payment_error")
        if _get(intent, "status") == "requires_payment_method" and last_error:
            # a confirmation attempt happened and the card was refused
            intent = self._cancel_declined(session_id)
            if _get(intent, "status") == "canceled":
                raise PaymentDeclined(
                    _get(last_error, "message") or "Your card was declined",
                    session_id=session_id,
                )

        return self._receipt(intent)

    def parse_webhook(
        self,
        payload: bytes,
        headers: Mapping[str, str],
    ) -> Optional[ConfirmationReceipt]:
        signature = headers.get("stripe-signature", "")

        try:
            event = stripe.Webhook.construct_event(
                payload, signature, self.webhook_secret
            )
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Stripe webhook signature invalid: {e}")
            raise ValueError("Invalid webhook signature") from e

        event_type = _get(event, "type")
        intent = _get(_get(event, "data"), "object")

        if event_type == "payment_intent.succeeded":
            return self._receipt(intent)

        if event_type == "payment_intent.payment_failed":
            intent = self._cancel_declined(_get(intent, "id"))
            if _get(intent, "status") == "canceled":
                return self._receipt(intent, status=ReceiptStatus.declined)
            return self._receipt(intent)

        if event_type == "payment_intent.canceled":
            return self._receipt(intent, status=ReceiptStatus.cancelled)

        logger.info(f"Ignoring Stripe event {event_type}")
        return None

    def _cancel_declined(self, session_id: str):
        """
        Cancel an intent whose card was refused so the client secret can no
        longer be used to pay for an order we are about to fail.

        Returns the intent as Stripe now holds it. If it already moved on
        (a second card went through) the cancel is refused and the current
        intent is returned instead.
        """
        try:
            intent = stripe.PaymentIntent.cancel(
                session_id,
                cancellation_reason="abandoned",
                api_key=self.api_key,
            )
            logger.info(f"Stripe intent {session_id} cancelled after decline")
            return intent
        except stripe.InvalidRequestError as e:
            logger.warning(f"Stripe intent {session_id} could not be cancelled: {e}")
        except stripe.StripeError as e:
            logger.exception(f"Stripe intent {session_id} cancel failed")
            raise PaymentProviderError(
                "Could not reach the payment provider. Please try again.",
                session_id=session_id,
            ) from e

        try:
            return stripe.PaymentIntent.retrieve(session_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.exception(f"Stripe intent {session_id} lookup failed")
            raise PaymentProviderError(
                "Could not reach the payment provider. Please try again.",
                session_id=session_id,
            ) from e

    def _receipt(self, intent, status: Optional[ReceiptStatus] = None) -> ConfirmationReceipt:
        intent_status = _get(intent, "status")
        amount = _get(intent, "amount_received") or _get(intent, "amount", 0)
        return ConfirmationReceipt(
            provider=self.provider,
            session_id=_get(intent, "id"),
            status=status or INTENT_STATUS.get(intent_status, ReceiptStatus.requires_action),
            transaction_id=_get(intent, "latest_charge") or _get(intent, "id"),
            amount=from_minor_units(amount),
            currency=_get(intent, "currency", self.currency).upper(),
            raw={"status": intent_status},
        )
