from sqlmodel import SQLModel, Field, UniqueConstraint
from typing import Optional
from datetime import datetime


class Review(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("plugin_id", "customer_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    plugin_id: int = Field(foreign_key="plugin.id", index=True)
    customer_id: int = Field(foreign_key="user.id")
    order_id: Optional[int] = Field(default=None, foreign_key="order.id")

    rating: int
    review_text: Optional[str] = None
    is_verified_purchase: bool = False

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
