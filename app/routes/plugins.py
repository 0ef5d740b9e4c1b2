from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, select

from app.database import get_session
from app.models.plugin import Plugin
from app.utils.pagination import paginate

router = APIRouter()


# ---------- LIST PLUGINS ----------
@router.get("", summary="Browse active plugins")
def list_plugins(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    q: str | None = None,
    category: str | None = None,
    is_featured: bool | None = None,
    price_min: float | None = None,
    price_max: float | None = None,
    sort: str = Query("newest", pattern="^(newest|price_asc|price_desc|rating|popular)$"),
    session: Session = Depends(get_session)
):
    query = select(Plugin).where(Plugin.is_active == True)  # noqa: E712

    if q:
        like = f"%{q}%"
        query = query.where(
            Plugin.title.ilike(like) |
            Plugin.description.ilike(like)
        )

    if category:
        query = query.where(Plugin.category == category)

    if is_featured is not None:
        query = query.where(Plugin.is_featured == is_featured)

    if price_min is not None:
        query = query.where(Plugin.price >= price_min)

    if price_max is not None:
        query = query.where(Plugin.price <= price_max)

    ordering = {
        "newest": Plugin.created_at.desc(),
        "price_asc": Plugin.price.asc(),
        "price_desc": Plugin.price.desc(),
        "rating": Plugin.rating.desc(),
        "popular": Plugin.download_count.desc(),
    }
    query = query.order_by(ordering[sort], Plugin.id)

    return paginate(session=session, query=query, page=page, limit=limit)


# ---------- PLUGIN DETAIL ----------
@router.get("/{plugin_id}")
def get_plugin(
    plugin_id: int,
    session: Session = Depends(get_session)
):
    plugin = session.get(Plugin, plugin_id)

    if not plugin or not plugin.is_active:
        raise HTTPException(404, "Plugin not found")

    return plugin
