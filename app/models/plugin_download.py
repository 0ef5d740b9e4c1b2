from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime


class PluginDownload(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    order_id: int = Field(foreign_key="order.id", index=True)
    plugin_id: int = Field(foreign_key="plugin.id", index=True)
    customer_id: int = Field(foreign_key="user.id", index=True)

    secure_token: str
    expires_at: datetime

    # set once, by the first successful redemption
    downloaded_at: Optional[datetime] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def secure_path(self) -> str:
        return f"{self.id}::{self.secure_token}"


class DownloadEvent(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    download_id: int = Field(foreign_key="plugindownload.id", index=True)
    ip_address: str = "unknown"
    user_agent: str = "unknown"
    first_redemption: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
