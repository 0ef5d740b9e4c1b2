from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from app.models.order import Order
from app.models.plugin_download import PluginDownload


class OrderLine(BaseModel):
    plugin_id: int
    title: str
    price: float
    category: Optional[str] = None


class OrderRead(BaseModel):
    id: int
    status: str
    items: List[OrderLine]
    subtotal_amount: float
    discount_amount: float
    total_amount: float
    currency: str
    payment_provider: str
    coupon_code: Optional[str] = None
    created_at: datetime
    paid_at: Optional[datetime] = None

    @classmethod
    def from_order(cls, order: Order) -> "OrderRead":
        coupon = (order.customer_info or {}).get("applied_coupon") or {}
        return cls(
            id=order.id,
            status=order.status,
            items=[OrderLine(**line) for line in order.items],
            subtotal_amount=order.subtotal_amount,
            discount_amount=order.discount_amount,
            total_amount=order.total_amount,
            currency=order.currency,
            payment_provider=order.payment_provider,
            coupon_code=coupon.get("code"),
            created_at=order.created_at,
            paid_at=order.paid_at,
        )


class DownloadLink(BaseModel):
    download_id: int
    order_id: int
    plugin_id: int
    plugin_title: Optional[str] = None
    download_url: str
    expires_at: datetime
    downloaded_at: Optional[datetime] = None

    @classmethod
    def from_credential(cls, credential: PluginDownload,
                        plugin_title: Optional[str] = None) -> "DownloadLink":
        return cls(
            download_id=credential.id,
            order_id=credential.order_id,
            plugin_id=credential.plugin_id,
            plugin_title=plugin_title,
            download_url=f"/secure-download/{credential.secure_path}",
            expires_at=credential.expires_at,
            downloaded_at=credential.downloaded_at,
        )
