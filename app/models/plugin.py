from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime


class Plugin(SQLModel, table=True):
    #main info
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    slug: str = Field(index=True)
    description: str = ""
    category: str = "general"
    thumbnail: Optional[str] = None

    #Shop Details
    price: float
    rating: Optional[float] = 0.0
    is_active: bool = True
    is_featured: bool = False

    #Archive in object storage
    file_path: Optional[str] = None
    file_version: Optional[int] = None
    download_count: int = Field(default=0)

    #timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
