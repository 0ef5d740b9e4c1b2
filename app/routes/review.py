from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from app.database import get_session
from app.models.plugin import Plugin
from app.models.review import Review
from app.models.user import User
from app.schemas.review_schemas import ReviewCreate, ReviewRead
from app.services.order_service import customer_has_paid_for
from app.utils.token import get_current_user

router = APIRouter()


def _refresh_plugin_rating(session: Session, plugin: Plugin):
    ratings = session.exec(
        select(Review.rating).where(Review.plugin_id == plugin.id)
    ).all()

    plugin.rating = round(sum(ratings) / len(ratings), 1) if ratings else 0.0
    plugin.updated_at = datetime.utcnow()
    session.add(plugin)


# ---------------------------------------------------------
# LIST REVIEWS FOR A PLUGIN
# ---------------------------------------------------------

@router.get("/plugins/{plugin_id}")
def list_reviews(
    plugin_id: int,
    session: Session = Depends(get_session)
):
    plugin = session.get(Plugin, plugin_id)
    if not plugin:
        raise HTTPException(404, "Plugin not found")

    reviews = session.exec(
        select(Review)
        .where(Review.plugin_id == plugin_id)
        .order_by(Review.created_at.desc())
    ).all()

    avg_rating = (
        round(sum(r.rating for r in reviews) / len(reviews), 1)
        if reviews else 0.0
    )

    return {
        "plugin_id": plugin_id,
        "average_rating": avg_rating,
        "total_reviews": len(reviews),
        "reviews": [ReviewRead.model_validate(r) for r in reviews],
    }


# ---------------------------------------------------------
# CREATE OR UPDATE MY REVIEW
# ---------------------------------------------------------

@router.post("/plugins/{plugin_id}")
def upsert_review(
    plugin_id: int,
    data: ReviewCreate,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    plugin = session.get(Plugin, plugin_id)
    if not plugin or not plugin.is_active:
        raise HTTPException(404, "Plugin not found")

    paid_order = customer_has_paid_for(session, current_user.id, plugin_id)

    review = session.exec(
        select(Review)
        .where(Review.plugin_id == plugin_id)
        .where(Review.customer_id == current_user.id)
    ).first()

    if review:
        review.rating = data.rating
        review.review_text = data.review_text
        review.updated_at = datetime.utcnow()
        message = "Review updated successfully"
    else:
        review = Review(
            plugin_id=plugin_id,
            customer_id=current_user.id,
            rating=data.rating,
            review_text=data.review_text,
        )
        message = "Review added"

    review.order_id = paid_order.id if paid_order else None
    review.is_verified_purchase = paid_order is not None

    session.add(review)
    session.flush()
    _refresh_plugin_rating(session, plugin)
    session.commit()
    session.refresh(review)

    return {"message": message, "review": ReviewRead.model_validate(review)}
