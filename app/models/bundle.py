from sqlmodel import SQLModel, Field, Column, JSON
from typing import List, Optional
from datetime import datetime


class Bundle(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    price: float

    plugin_ids: List[int] = Field(default_factory=list, sa_column=Column(JSON))
    features: List[str] = Field(default_factory=list, sa_column=Column(JSON))

    is_active: bool = True
    is_featured: bool = False

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
