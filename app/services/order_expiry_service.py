import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update
from sqlmodel import Session

from app.config import settings
from app.constants import order_status
from app.models.order import Order

logger = logging.getLogger(__name__)


def expire_stale_orders(
    session: Session,
    ttl_minutes: Optional[int] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Move ``pending`` orders older than the TTL to ``expired``.

    Does nothing when no TTL is configured. Returns the number of orders
    expired.
    """
    ttl_minutes = ttl_minutes if ttl_minutes is not None else settings.pending_order_ttl_minutes
    if not ttl_minutes:
        return 0

    now = now or datetime.utcnow()
    cutoff = now - timedelta(minutes=ttl_minutes)

    result = session.exec(
        update(Order)
        .where(Order.status == order_status.PENDING)
        .where(Order.created_at < cutoff)
        .values(status=order_status.EXPIRED, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    session.commit()

    logger.info(f"Expired {result.rowcount} unpaid orders")
    return result.rowcount
