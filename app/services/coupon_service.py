import logging
from datetime import datetime
from typing import Optional, Union

from sqlalchemy import update
from sqlmodel import Session, select

from app.models.discount import CouponRedemption, Discount, DiscountType
from app.schemas.cart_schemas import CouponInfo

logger = logging.getLogger(__name__)

Coupon = Union[Discount, CouponInfo]


def _money(value: float) -> float:
    return round(value, 2)


def check_coupon(
    coupon: Coupon,
    subtotal: float,
    now: Optional[datetime] = None,
) -> Optional[str]:
    """
    Return the rejection message for ``coupon`` or ``None`` when it applies.

    A live ``Discount`` row is checked against its validity window and usage
    cap. A ``CouponInfo`` snapshot only carries the minimum order amount, so
    only that check runs for it.
    """
    now = now or datetime.utcnow()

    if isinstance(coupon, Discount):
        if not coupon.is_active:
            return "Invalid coupon code"

        if coupon.valid_from and now < coupon.valid_from:
            return "This coupon is not yet valid"

        if coupon.valid_until and now > coupon.valid_until:
            return "This coupon has expired"

        if coupon.max_uses and coupon.used_count >= coupon.max_uses:
            return "This coupon has reached its usage limit"

    if coupon.min_amount and subtotal < coupon.min_amount:
        return (
            f"Minimum order amount of ${coupon.min_amount:g} "
            "required for this coupon"
        )

    return None


def compute_discount(subtotal: float, coupon: Coupon) -> float:
    if subtotal <= 0:
        return 0.0

    if DiscountType(coupon.discount_type) == DiscountType.percentage:
        discount = subtotal * (coupon.discount_value / 100)
    else:
        discount = min(coupon.discount_value, subtotal)

    # never below zero, never more than the subtotal
    discount = max(0.0, min(discount, subtotal))
    return _money(discount)


def evaluate(
    subtotal: float,
    coupon: Optional[Coupon],
    now: Optional[datetime] = None,
) -> float:
    if coupon is None:
        return 0.0

    if check_coupon(coupon, subtotal, now) is not None:
        return 0.0

    return compute_discount(subtotal, coupon)


def snapshot(coupon: Discount) -> CouponInfo:
    return CouponInfo(
        code=coupon.code,
        name=coupon.name,
        discount_type=DiscountType(coupon.discount_type).value,
        discount_value=coupon.discount_value,
        min_amount=coupon.min_amount,
    )


def find_coupon(session: Session, code: str) -> Optional[Discount]:
    if not code or not code.strip():
        return None

    return session.exec(
        select(Discount)
        .where(Discount.code == code.strip().upper())
        .where(Discount.is_active == True)  # noqa: E712
    ).first()


def record_coupon_usage(session: Session, discount_id: int, order_id: int) -> bool:
    """
    Count one use of the coupon for ``order_id``.

    The redemption row is unique per order, so a retried call for the same
    order is a no-op and the counter is left alone.
    """
    existing = session.exec(
        select(CouponRedemption).where(CouponRedemption.order_id == order_id)
    ).first()

    if existing:
        return False

    # unique on order_id, a racing duplicate fails the flush
    session.add(CouponRedemption(discount_id=discount_id, order_id=order_id))
    session.flush()

    session.exec(
        update(Discount)
        .where(Discount.id == discount_id)
        .values(used_count=Discount.used_count + 1, updated_at=datetime.utcnow())
    )

    logger.info(f"Coupon {discount_id} used by order {order_id}")
    return True
