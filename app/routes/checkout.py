import logging
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from app.database import get_session
from app.dependencies.services import get_cart_storage, get_payment_adapters
from app.models.user import User
from app.schemas.checkout_schemas import CheckoutConfirmRequest, CheckoutSessionRequest
from app.schemas.orders_schemas import DownloadLink, OrderRead
from app.services.cart_storage import CartStorage
from app.services.order_service import FREE_PROVIDER, CheckoutError, start_checkout
from app.services.payments.base import (
    ConfirmationReceipt,
    PaymentAdapter,
    PaymentCancelled,
    PaymentDeclined,
    PaymentProviderError,
    ReceiptStatus,
)
from app.services.reconciliation import OrderReconciler, ReconcileResult, ReconciliationError
from app.constants import order_status
from app.utils.token import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter()


def _settled_response(result: ReconcileResult):
    return {
        "status": result.order.status,
        "order": OrderRead.from_order(result.order),
        "downloads": [DownloadLink.from_credential(c) for c in result.credentials],
    }


def _reconcile_or_500(reconciler: OrderReconciler, receipt: ConfirmationReceipt) -> ReconcileResult:
    try:
        return reconciler.reconcile(receipt)
    except ReconciliationError as e:
        raise HTTPException(
            status_code=500,
            detail={
                "message": (
                    "Your payment was received but we could not complete your order. "
                    "Please contact support with the reference below."
                ),
                "reference": e.transaction_id or receipt.session_id,
            },
        )


# ---------------------------------------------------------
# START CHECKOUT
# ---------------------------------------------------------

@router.post("/sessions")
def create_checkout_session(
    data: CheckoutSessionRequest,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    cart_storage: CartStorage = Depends(get_cart_storage),
    adapters: Dict[str, PaymentAdapter] = Depends(get_payment_adapters),
):
    try:
        started = start_checkout(
            session=session,
            user=current_user,
            cart_storage=cart_storage,
            provider=data.provider,
            adapter=adapters.get(data.provider),
        )
    except CheckoutError as e:
        raise HTTPException(400, str(e))
    except PaymentProviderError as e:
        logger.error(f"{data.provider} session creation failed: {e.message}")
        raise HTTPException(502, "Payment provider unavailable, please try again")

    order = started.order

    # nothing to charge, settle on the spot
    if order.payment_provider == FREE_PROVIDER:
        receipt = ConfirmationReceipt(
            provider=FREE_PROVIDER,
            session_id=order.payment_session_id,
            status=ReceiptStatus.succeeded,
            transaction_id=order.payment_session_id,
            amount=0.0,
            currency=order.currency,
        )
        result = _reconcile_or_500(OrderReconciler(session, cart_storage), receipt)
        return _settled_response(result)

    return {
        "status": order.status,
        "order": OrderRead.from_order(order),
        "payment": started.payment,
    }


# ---------------------------------------------------------
# CONFIRM
# ---------------------------------------------------------

@router.post("/confirm")
def confirm_checkout(
    data: CheckoutConfirmRequest,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    cart_storage: CartStorage = Depends(get_cart_storage),
    adapters: Dict[str, PaymentAdapter] = Depends(get_payment_adapters),
):
    reconciler = OrderReconciler(session, cart_storage)

    order = reconciler.find_order(data.provider, data.session_id)
    if not order or order.customer_id != current_user.id:
        raise HTTPException(404, "Order not found")

    adapter = adapters.get(data.provider)
    if adapter is None:
        raise HTTPException(400, f"Unsupported payment provider: {data.provider}")

    # a closed order is never captured again
    if order.status != order_status.PAID and not order_status.can_transition(
        order.status, order_status.PAID
    ):
        raise HTTPException(409, f"Order is {order.status}, please start a new checkout")

    try:
        receipt = adapter.confirm(data.session_id)
    except PaymentCancelled:
        reconciler.close(order, order_status.CANCELLED)
        return {"status": "cancelled", "order": OrderRead.from_order(order)}
    except PaymentDeclined as e:
        reconciler.close(order, order_status.FAILED)
        raise HTTPException(402, e.message)
    except PaymentProviderError as e:
        logger.error(f"{data.provider} confirm failed for {data.session_id}: {e.message}")
        raise HTTPException(502, "Payment provider unavailable, please try again")

    result = _reconcile_or_500(reconciler, receipt)

    if receipt.status == ReceiptStatus.requires_action:
        return {"status": "requires_action", "order": OrderRead.from_order(result.order)}

    if receipt.status == ReceiptStatus.declined:
        raise HTTPException(402, "Payment was declined")

    if receipt.status == ReceiptStatus.cancelled:
        return {"status": "cancelled", "order": OrderRead.from_order(result.order)}

    return _settled_response(result)
