from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from app.database import get_session
from app.models.bundle import Bundle
from app.models.plugin import Plugin

router = APIRouter()


def _with_plugins(session: Session, bundle: Bundle) -> dict:
    plugins = []
    if bundle.plugin_ids:
        plugins = session.exec(
            select(Plugin)
            .where(Plugin.id.in_(bundle.plugin_ids))
            .where(Plugin.is_active == True)  # noqa: E712
        ).all()

    # what the plugins would cost one by one
    separate_price = round(sum(p.price for p in plugins), 2)

    return {
        **bundle.model_dump(),
        "plugins": plugins,
        "separate_price": separate_price,
        "savings": round(max(0.0, separate_price - bundle.price), 2),
    }


@router.get("")
def list_bundles(session: Session = Depends(get_session)):
    bundles = session.exec(
        select(Bundle)
        .where(Bundle.is_active == True)  # noqa: E712
        .order_by(Bundle.is_featured.desc(), Bundle.created_at.desc())
    ).all()

    return {
        "total": len(bundles),
        "results": [_with_plugins(session, b) for b in bundles],
    }


@router.get("/{bundle_id}")
def get_bundle(bundle_id: int, session: Session = Depends(get_session)):
    bundle = session.get(Bundle, bundle_id)

    if not bundle or not bundle.is_active:
        raise HTTPException(404, "Bundle not found")

    return _with_plugins(session, bundle)
