from typing import Optional
from datetime import datetime
from sqlmodel import Field, SQLModel


class ReviewCreate(SQLModel):
    rating: int = Field(ge=1, le=5)
    review_text: Optional[str] = None


class ReviewRead(SQLModel):
    id: int
    plugin_id: int
    customer_id: int
    rating: int
    review_text: Optional[str] = None
    is_verified_purchase: bool
    created_at: datetime
    updated_at: Optional[datetime] = None
