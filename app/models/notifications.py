from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


# ---------- ENUMS (SAFE FOR SQLMODEL) ----------

class RecipientRole(str, Enum):
    admin = "admin"
    customer = "customer"


class NotificationChannel(str, Enum):
    email = "email"
    system = "system"


class NotificationStatus(str, Enum):
    sent = "sent"
    failed = "failed"


# ---------- MODEL ----------

class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    recipient_role: RecipientRole
    user_id: Optional[int] = None

    trigger_source: str  # reconciliation / payment / download
    related_id: Optional[int] = None     # order_id usually

    title: str
    content: str

    channel: NotificationChannel = NotificationChannel.system
    status: NotificationStatus = NotificationStatus.sent

    created_at: datetime = Field(default_factory=datetime.utcnow)
