import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.constants import order_status
from app.models.notifications import Notification, RecipientRole
from app.models.order import Order
from app.models.plugin_download import PluginDownload
from app.services import coupon_service, download_service
from app.services.cart_service import CartStore
from app.services.cart_storage import CartStorage
from app.services.notification_service import create_notification
from app.services.payments.base import ConfirmationReceipt, ReceiptStatus, to_minor_units

logger = logging.getLogger(__name__)


class ReconciliationError(Exception):
    """Money may have moved but the order record does not reflect it."""

    def __init__(self, message: str, *, order_id: Optional[int] = None,
                 transaction_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.order_id = order_id
        self.transaction_id = transaction_id


@dataclass
class ReconcileResult:
    order: Order
    newly_paid: bool = False
    credentials: List[PluginDownload] = field(default_factory=list)


class OrderReconciler:
    """
    Turns provider receipts into order state.

    ``pending -> paid`` is a conditional update, so of any number of
    concurrent or repeated confirmations exactly one records coupon usage.
    Credential issuance reuses live credentials and cart cleanup only drops
    the purchased lines, so both run again on every settled receipt and a
    retry finishes whatever an earlier attempt left undone.
    """

    def __init__(self, session: Session, cart_storage: Optional[CartStorage] = None):
        self.session = session
        self.cart_storage = cart_storage

    def find_order(self, provider: str, session_id: str) -> Optional[Order]:
        return self.session.exec(
            select(Order)
            .where(Order.payment_provider == provider)
            .where(Order.payment_session_id == session_id)
        ).first()

    def reconcile(self, receipt: ConfirmationReceipt, now: Optional[datetime] = None) -> ReconcileResult:
        now = now or datetime.utcnow()
        order = self.find_order(receipt.provider, receipt.session_id)

        if not order:
            if receipt.succeeded:
                self._escalate(None, receipt, "Payment captured for an unknown session")
            raise ReconciliationError(
                f"No order for {receipt.provider} session {receipt.session_id}",
                transaction_id=receipt.transaction_id,
            )

        if receipt.status == ReceiptStatus.requires_action:
            return ReconcileResult(order=order)

        if receipt.status == ReceiptStatus.declined:
            self.close(order, order_status.FAILED, now)
            return ReconcileResult(order=order)

        if receipt.status == ReceiptStatus.cancelled:
            self.close(order, order_status.CANCELLED, now)
            return ReconcileResult(order=order)

        return self._settle(order, receipt, now)

    # -----------------------------------------------------------------

    def _settle(self, order: Order, receipt: ConfirmationReceipt, now: datetime) -> ReconcileResult:
        if order.status != order_status.PAID and not order_status.can_transition(
            order.status, order_status.PAID
        ):
            self._escalate(order, receipt, f"Payment captured for a {order.status} order")
            raise ReconciliationError(
                f"Order {order.id} is {order.status}",
                order_id=order.id,
                transaction_id=receipt.transaction_id,
            )

        if receipt.amount is not None and (
            to_minor_units(receipt.amount) != to_minor_units(order.total_amount)
        ):
            self._escalate(
                order, receipt,
                f"Captured {receipt.amount} but order total is {order.total_amount}",
            )
            raise ReconciliationError(
                "Payment amount does not match the order total",
                order_id=order.id,
                transaction_id=receipt.transaction_id,
            )

        try:
            newly_paid = self._mark_paid(order, receipt, now)

            coupon = (order.customer_info or {}).get("applied_coupon")
            if newly_paid and coupon and coupon.get("discount_id"):
                coupon_service.record_coupon_usage(
                    self.session, coupon["discount_id"], order.id
                )

            credentials = download_service.issue_for_order(self.session, order, now=now)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            self._escalate(order, receipt, f"Order write failed: {e}")
            raise ReconciliationError(
                "Payment succeeded but the order could not be recorded",
                order_id=order.id,
                transaction_id=receipt.transaction_id,
            ) from e

        for credential in credentials:
            self.session.refresh(credential)

        if newly_paid:
            logger.info(
                f"Order {order.id} paid via {receipt.provider} "
                f"txn {receipt.transaction_id}"
            )

        self._clear_cart(order)

        return ReconcileResult(order=order, newly_paid=newly_paid, credentials=credentials)

    def _mark_paid(self, order: Order, receipt: ConfirmationReceipt, now: datetime) -> bool:
        info = dict(order.customer_info or {})
        if receipt.transaction_id:
            info[f"{receipt.provider}_transaction_id"] = receipt.transaction_id
        if receipt.payer_id:
            info[f"{receipt.provider}_payer_id"] = receipt.payer_id

        result = self.session.exec(
            update(Order)
            .where(Order.id == order.id)
            .where(Order.status == order_status.PENDING)
            .values(
                status=order_status.PAID,
                paid_at=now,
                updated_at=now,
                provider_transaction_id=receipt.transaction_id,
                customer_info=info,
            )
            .execution_options(synchronize_session=False)
        )
        self.session.refresh(order)
        return result.rowcount == 1

    def close(self, order: Order, status: str, now: Optional[datetime] = None) -> bool:
        """Move a pending order to a terminal non-paid status."""
        now = now or datetime.utcnow()
        result = self.session.exec(
            update(Order)
            .where(Order.id == order.id)
            .where(Order.status == order_status.PENDING)
            .values(status=status, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        self.session.refresh(order)

        if result.rowcount == 1:
            logger.info(f"Order {order.id} marked {status}")
        return result.rowcount == 1

    def _clear_cart(self, order: Order):
        if not self.cart_storage or not order.cart_owner_key:
            return
        try:
            CartStore(self.cart_storage, order.cart_owner_key).remove_purchased(order.plugin_ids)
        except SQLAlchemyError:
            # the order is paid, the next settled receipt retries this
            self.session.rollback()
            logger.warning(f"Could not clear cart {order.cart_owner_key} for order {order.id}")

    def _escalate(self, order: Optional[Order], receipt: ConfirmationReceipt, reason: str):
        order_id = order.id if order else None
        content = (
            f"{reason}. Provider {receipt.provider}, session "
            f"{receipt.session_id}, transaction {receipt.transaction_id}."
        )

        # providers redeliver until they get a 2xx, one alert per problem
        try:
            already_reported = self.session.exec(
                select(Notification.id)
                .where(Notification.trigger_source == "reconciliation")
                .where(Notification.related_id == order_id)
                .where(Notification.content == content)
            ).first()
        except SQLAlchemyError:
            self.session.rollback()
            already_reported = None

        if already_reported:
            logger.warning(
                f"Reconciliation still required for order={order_id} "
                f"txn={receipt.transaction_id}, alert {already_reported} is open"
            )
            return

        logger.critical(
            f"RECONCILIATION REQUIRED: {reason} | order={order_id} "
            f"provider={receipt.provider} session={receipt.session_id} "
            f"txn={receipt.transaction_id} amount={receipt.amount}"
        )
        try:
            create_notification(
                session=self.session,
                recipient_role=RecipientRole.admin,
                user_id=order.customer_id if order else None,
                trigger_source="reconciliation",
                related_id=order_id,
                title="Payment needs manual reconciliation",
                content=content,
            )
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception("Could not store reconciliation alert")
