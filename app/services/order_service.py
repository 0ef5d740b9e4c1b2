import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from sqlmodel import Session, select

from app.config import settings
from app.constants import order_status
from app.models.order import Order
from app.models.plugin import Plugin
from app.models.user import User
from app.services import coupon_service
from app.services.cart_service import CartStore
from app.services.cart_storage import CartStorage, user_cart_key
from app.services.payments.base import PaymentAdapter, PaymentSession

logger = logging.getLogger(__name__)

FREE_PROVIDER = "free"


class CheckoutError(Exception):
    """The cart can't be turned into an order as it stands."""


@dataclass
class CheckoutStart:
    order: Order
    payment: Optional[PaymentSession]


def _priced_items(session: Session, cart: CartStore) -> List[dict]:
    ids = [item.id for item in cart.items]
    plugins = {
        p.id: p
        for p in session.exec(select(Plugin).where(Plugin.id.in_(ids))).all()
    }

    lines = []
    for item in cart.items:
        plugin = plugins.get(item.id)
        if not plugin or not plugin.is_active:
            raise CheckoutError(f"{item.title} is no longer available")

        # the snapshot price is what the customer agreed to
        lines.append({
            "plugin_id": item.id,
            "title": item.title,
            "price": item.price,
            "category": item.category,
        })
    return lines


def start_checkout(
    *,
    session: Session,
    user: User,
    cart_storage: CartStorage,
    provider: str,
    adapter: Optional[PaymentAdapter],
    now: Optional[datetime] = None,
) -> CheckoutStart:
    """
    Price the caller's cart server-side, open a provider session and record
    a ``pending`` order correlated to it.

    Zero-total carts skip the provider; the caller reconciles them at once.
    """
    cart = CartStore(cart_storage, user_cart_key(user.id))

    if not cart.items:
        raise CheckoutError("Your cart is empty.")

    lines = _priced_items(session, cart)
    subtotal = round(sum(line["price"] for line in lines), 2)

    discount = 0.0
    coupon_snapshot = None
    if cart.applied_coupon:
        live = coupon_service.find_coupon(session, cart.applied_coupon.code)
        rejection = (
            coupon_service.check_coupon(live, subtotal, now)
            if live
            else "Invalid coupon code"
        )
        if rejection:
            cart.remove_coupon()
            raise CheckoutError(rejection)

        discount = coupon_service.compute_discount(subtotal, live)
        coupon_snapshot = {
            "discount_id": live.id,
            "code": live.code,
            "name": live.name,
            "discount_amount": discount,
        }

    total = round(max(0.0, subtotal - discount), 2)
    checkout_ref = uuid4().hex

    if total == 0:
        provider = FREE_PROVIDER
        payment = None
        session_id = f"free_{checkout_ref}"
    else:
        if adapter is None:
            raise CheckoutError(f"Unsupported payment provider: {provider}")

        payment = adapter.create_payment_session(
            total,
            cart.items,
            cart.applied_coupon,
            metadata={"checkout_ref": checkout_ref, "customer_id": str(user.id)},
        )
        session_id = payment.session_id

    order = Order(
        customer_id=user.id,
        items=lines,
        subtotal_amount=subtotal,
        discount_amount=discount,
        total_amount=total,
        currency=settings.currency,
        status=order_status.PENDING,
        payment_provider=provider,
        payment_session_id=session_id,
        customer_info={
            "email": user.email,
            "payment_method": provider,
            f"{provider}_session_id": session_id,
            "applied_coupon": coupon_snapshot,
        },
        cart_owner_key=cart.owner_key,
    )
    session.add(order)
    session.commit()
    session.refresh(order)

    logger.info(
        f"Order {order.id} pending via {provider} session {session_id} "
        f"total {total} {order.currency}"
    )

    return CheckoutStart(order=order, payment=payment)


def get_customer_order(session: Session, order_id: int, customer_id: int) -> Optional[Order]:
    order = session.get(Order, order_id)
    if not order or order.customer_id != customer_id:
        return None
    return order


def customer_has_paid_for(session: Session, customer_id: int, plugin_id: int) -> Optional[Order]:
    orders = session.exec(
        select(Order)
        .where(Order.customer_id == customer_id)
        .where(Order.status == order_status.PAID)
        .order_by(Order.paid_at.desc())
    ).all()

    return next((o for o in orders if plugin_id in o.plugin_ids), None)
