from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum


class DiscountType(str, Enum):
    percentage = "percentage"
    fixed = "fixed"


class Discount(SQLModel, table=True):
    """Coupon record. ``code`` is stored upper-case."""

    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(index=True, unique=True)
    name: str
    description: Optional[str] = None

    discount_type: DiscountType = DiscountType.percentage
    discount_value: float
    min_amount: Optional[float] = None

    max_uses: Optional[int] = None
    used_count: int = Field(default=0)

    valid_from: datetime = Field(default_factory=datetime.utcnow)
    valid_until: Optional[datetime] = None
    is_active: bool = True
    applies_to: str = "all"

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class CouponRedemption(SQLModel, table=True):
    # one row per paid order that used a coupon
    id: Optional[int] = Field(default=None, primary_key=True)
    discount_id: int = Field(foreign_key="discount.id", index=True)
    order_id: int = Field(foreign_key="order.id", unique=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
