import logging
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlmodel import Session

from app.database import get_session
from app.dependencies.services import get_cart_storage, get_payment_adapters
from app.services.cart_storage import CartStorage
from app.services.payments.base import PaymentAdapter, PaymentProviderError
from app.services.reconciliation import OrderReconciler, ReconciliationError

logger = logging.getLogger(__name__)

router = APIRouter()


async def _handle(
    provider: str,
    request: Request,
    session: Session,
    cart_storage: CartStorage,
    adapters: Dict[str, PaymentAdapter],
):
    payload = await request.body()

    try:
        receipt = adapters[provider].parse_webhook(payload, request.headers)
    except ValueError:
        raise HTTPException(400, "Invalid webhook signature")
    except PaymentProviderError as e:
        # provider will redeliver
        logger.error(f"{provider} webhook verification failed: {e.message}")
        raise HTTPException(502, "Webhook verification unavailable")

    if receipt is None:
        return {"received": True}

    try:
        result = OrderReconciler(session, cart_storage).reconcile(receipt)
    except ReconciliationError as e:
        # non-2xx makes the provider retry; the alert is already recorded
        raise HTTPException(500, f"Reconciliation required: {e.message}")

    return {
        "received": True,
        "order_id": result.order.id,
        "status": result.order.status,
    }


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    session: Session = Depends(get_session),
    cart_storage: CartStorage = Depends(get_cart_storage),
    adapters: Dict[str, PaymentAdapter] = Depends(get_payment_adapters),
):
    return await _handle("stripe", request, session, cart_storage, adapters)


@router.post("/paypal")
async def paypal_webhook(
    request: Request,
    session: Session = Depends(get_session),
    cart_storage: CartStorage = Depends(get_cart_storage),
    adapters: Dict[str, PaymentAdapter] = Depends(get_payment_adapters),
):
    return await _handle("paypal", request, session, cart_storage, adapters)
