import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from sqlmodel import Session, select

from app.database import get_session
from app.dependencies.services import get_object_storage
from app.models.plugin import Plugin
from app.models.plugin_download import PluginDownload
from app.models.user import User
from app.schemas.orders_schemas import DownloadLink
from app.services import download_service
from app.services.download_service import DownloadError, InvalidCredential, PaymentNotVerified
from app.services.order_service import get_customer_order
from app.services.storage import ObjectStorage
from app.utils.token import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter()

# mounted at the application root
secure_router = APIRouter()

GENERIC_DOWNLOAD_ERROR = {"error": "Invalid or expired download link"}


# ---------------------------------------------------------
# MY DOWNLOAD LINKS
# ---------------------------------------------------------

@router.get("")
def list_my_downloads(
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    credentials = session.exec(
        select(PluginDownload)
        .where(PluginDownload.customer_id == current_user.id)
        .order_by(PluginDownload.created_at.desc())
    ).all()

    titles = {}
    if credentials:
        titles = dict(session.exec(
            select(Plugin.id, Plugin.title)
            .where(Plugin.id.in_(list({c.plugin_id for c in credentials})))
        ).all())

    return {
        "total": len(credentials),
        "results": [
            DownloadLink.from_credential(c, titles.get(c.plugin_id))
            for c in credentials
        ],
    }


@router.post("/orders/{order_id}/plugins/{plugin_id}/link")
def get_download_link(
    order_id: int,
    plugin_id: int,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    order = get_customer_order(session, order_id, current_user.id)
    if not order:
        raise HTTPException(404, "Order not found")

    try:
        credential = download_service.issue(session, order, plugin_id, current_user.id)
    except PaymentNotVerified:
        raise HTTPException(403, "Payment for this order has not been verified")
    except InvalidCredential:
        raise HTTPException(404, "Plugin is not part of this order")

    session.commit()
    session.refresh(credential)

    return DownloadLink.from_credential(credential)


# ---------------------------------------------------------
# REDEEM
# ---------------------------------------------------------

@secure_router.get("/secure-download/{download_path}")
def secure_download(
    download_path: str,
    request: Request,
    session: Session = Depends(get_session),
    storage: ObjectStorage = Depends(get_object_storage),
):
    try:
        download_id, token = download_service.parse_secure_path(download_path)
        result = download_service.redeem(
            session,
            storage,
            download_id,
            token,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
    except DownloadError as e:
        # one answer for every failure, the reason only goes to the log
        logger.warning(f"Download refused for {download_path.split('::')[0]}: {type(e).__name__}")
        return JSONResponse(status_code=403, content=GENERIC_DOWNLOAD_ERROR)

    return StreamingResponse(
        result.content,
        media_type="application/octet-stream",
        headers={
            "Content-Disposition": f'attachment; filename="{result.filename}"',
            "Cache-Control": "no-cache, no-store, must-revalidate",
            "Pragma": "no-cache",
            "Expires": "0",
        },
    )
