from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field
from sqlmodel import SQLModel


class CartItem(BaseModel):
    id: int                                  # plugin id, unique within a cart
    title: str
    price: float                             # snapshot taken when added
    original_price: Optional[float] = None   # live catalog price, display only
    category: str = "general"
    thumbnail: Optional[str] = None
    added_at: datetime = Field(default_factory=datetime.utcnow)


class CouponInfo(BaseModel):
    code: str
    name: str
    discount_type: Literal["percentage", "fixed"]
    discount_value: float
    min_amount: Optional[float] = None


class CartNotice(BaseModel):
    title: str
    description: str
    variant: Literal["default", "destructive"] = "default"


class CartSummary(BaseModel):
    items: List[CartItem]
    item_count: int
    subtotal: float
    discount: float
    total: float
    applied_coupon: Optional[CouponInfo] = None


class CartAddRequest(SQLModel):
    plugin_id: int


class CouponApplyRequest(SQLModel):
    code: str


class CartMergeRequest(SQLModel):
    guest_token: str
