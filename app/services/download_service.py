import hmac
import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterator, List, Optional

from sqlalchemy import update
from sqlmodel import Session, select

from app.config import settings
from app.constants import order_status
from app.models.order import Order
from app.models.plugin import Plugin
from app.models.plugin_download import DownloadEvent, PluginDownload
from app.services.storage import ObjectStorage, StorageError

logger = logging.getLogger(__name__)


class DownloadError(Exception):
    """Any reason a download link can't be honoured."""


class InvalidCredential(DownloadError):
    pass


class Expired(DownloadError):
    pass


class PaymentNotVerified(DownloadError):
    pass


class FileUnavailable(DownloadError):
    pass


@dataclass
class DownloadResult:
    filename: str
    content: Iterator[bytes]
    first_redemption: bool


def new_secure_token() -> str:
    return secrets.token_urlsafe(32)


def parse_secure_path(value: str):
    """Split ``<download_id>::<secure_token>``. Raises InvalidCredential."""
    if not value or "::" not in value:
        raise InvalidCredential("Invalid download token")

    download_id, _, token = value.partition("::")
    if not download_id.isdigit() or not token:
        raise InvalidCredential("Invalid download token")

    return int(download_id), token


def _download_filename(plugin: Plugin) -> str:
    name = plugin.file_path.split("/")[-1] if plugin.file_path else ""
    return name or f"{re.sub(r'[^a-zA-Z0-9]', '_', plugin.title)}.zip"


# ---------------------------------------------------------
# ISSUE
# ---------------------------------------------------------

def live_credential(
    session: Session,
    order_id: int,
    plugin_id: int,
    now: Optional[datetime] = None,
) -> Optional[PluginDownload]:
    now = now or datetime.utcnow()
    return session.exec(
        select(PluginDownload)
        .where(PluginDownload.order_id == order_id)
        .where(PluginDownload.plugin_id == plugin_id)
        .where(PluginDownload.expires_at > now)
        .order_by(PluginDownload.expires_at.desc())
    ).first()


def issue(
    session: Session,
    order: Order,
    plugin_id: int,
    customer_id: int,
    ttl_hours: Optional[int] = None,
    now: Optional[datetime] = None,
) -> PluginDownload:
    """
    Return the live credential for ``(order, plugin)``, minting one if needed.

    Only paid orders get credentials. The new row is flushed, not committed.
    """
    if order.status != order_status.PAID:
        raise PaymentNotVerified(f"Order {order.id} is not paid")

    if plugin_id not in order.plugin_ids:
        raise InvalidCredential(f"Plugin {plugin_id} is not part of order {order.id}")

    now = now or datetime.utcnow()
    ttl_hours = ttl_hours if ttl_hours is not None else settings.download_ttl_hours

    existing = live_credential(session, order.id, plugin_id, now)
    if existing:
        return existing

    credential = PluginDownload(
        order_id=order.id,
        plugin_id=plugin_id,
        customer_id=customer_id,
        secure_token=new_secure_token(),
        expires_at=now + timedelta(hours=ttl_hours),
        created_at=now,
    )
    session.add(credential)
    session.flush()

    logger.info(f"Issued download {credential.id} for order {order.id} plugin {plugin_id}")
    return credential


def issue_for_order(
    session: Session,
    order: Order,
    ttl_hours: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[PluginDownload]:
    return [
        issue(session, order, plugin_id, order.customer_id, ttl_hours, now)
        for plugin_id in order.plugin_ids
    ]


# ---------------------------------------------------------
# REDEEM
# ---------------------------------------------------------

def _verify(session: Session, download_id: int, token: str, now: datetime) -> PluginDownload:
    credential = session.get(PluginDownload, download_id)

    if not credential or not hmac.compare_digest(
        credential.secure_token.encode(), token.encode()
    ):
        raise InvalidCredential("Invalid or expired download link")

    if now > credential.expires_at:
        raise Expired("Invalid or expired download link")

    order = session.get(Order, credential.order_id)
    if not order or order.status != order_status.PAID:
        raise PaymentNotVerified("Payment verification failed")

    return credential


def _stamp_first_redemption(
    session: Session,
    credential: PluginDownload,
    now: datetime,
    ip_address: str,
    user_agent: str,
) -> bool:
    # compare-and-set, only the request that sees NULL wins
    result = session.exec(
        update(PluginDownload)
        .where(PluginDownload.id == credential.id)
        .where(PluginDownload.downloaded_at.is_(None))
        .values(downloaded_at=now, ip_address=ip_address, user_agent=user_agent)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def redeem(
    session: Session,
    storage: ObjectStorage,
    download_id: int,
    token: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    now: Optional[datetime] = None,
) -> DownloadResult:
    now = now or datetime.utcnow()
    ip_address = ip_address or "unknown"
    user_agent = user_agent or "unknown"

    credential = _verify(session, download_id, token, now)

    plugin = session.get(Plugin, credential.plugin_id)
    if not plugin or not plugin.file_path:
        raise FileUnavailable("No file available for this plugin")

    try:
        content = storage.open(plugin.file_path)
    except StorageError as e:
        raise FileUnavailable("File not found or access denied") from e

    first = _stamp_first_redemption(session, credential, now, ip_address, user_agent)

    if first:
        session.exec(
            update(Plugin)
            .where(Plugin.id == plugin.id)
            .values(download_count=Plugin.download_count + 1)
            .execution_options(synchronize_session=False)
        )

    session.add(
        DownloadEvent(
            download_id=credential.id,
            ip_address=ip_address,
            user_agent=user_agent,
            first_redemption=first,
            created_at=now,
        )
    )
    session.commit()

    logger.info(
        f"Download {credential.id} redeemed (first={first}) from {ip_address}"
    )

    return DownloadResult(
        filename=_download_filename(plugin),
        content=content,
        first_redemption=first,
    )
