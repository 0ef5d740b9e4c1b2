from sqlmodel import SQLModel, Field, Column, JSON
from typing import Any, Dict, List, Optional
from datetime import datetime


class SavedCart(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    owner_key: str = Field(index=True, unique=True)  # user:<id> | guest:<token>

    items: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    applied_coupon: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))

    updated_at: datetime = Field(default_factory=datetime.utcnow)
