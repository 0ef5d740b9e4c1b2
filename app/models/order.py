from sqlmodel import SQLModel, Field, Column, JSON
from typing import Any, Dict, List, Optional
from datetime import datetime

from app.constants import order_status


class Order(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    customer_id: int = Field(foreign_key="user.id", index=True)

    # [{plugin_id, title, price, category}]
    items: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))

    subtotal_amount: float
    discount_amount: float = 0.0
    total_amount: float
    currency: str = "USD"

    status: str = Field(default=order_status.PENDING, index=True)

    payment_provider: str
    payment_session_id: str = Field(index=True, unique=True)
    provider_transaction_id: Optional[str] = Field(default=None, index=True)

    # email, payment_method, provider ids, applied_coupon snapshot
    customer_info: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    cart_owner_key: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    paid_at: Optional[datetime] = None

    @property
    def plugin_ids(self) -> List[int]:
        return [int(item["plugin_id"]) for item in self.items]
