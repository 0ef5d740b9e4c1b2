from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, select

from app.database import get_session
from app.models.order import Order
from app.models.user import User
from app.schemas.orders_schemas import OrderRead
from app.services.order_service import get_customer_order
from app.utils.pagination import paginate
from app.utils.token import get_current_user

router = APIRouter()


@router.get("")
def list_my_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: str | None = None,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    query = select(Order).where(Order.customer_id == current_user.id)

    if status:
        query = query.where(Order.status == status)

    query = query.order_by(Order.created_at.desc())

    data = paginate(session=session, query=query, page=page, limit=limit)
    data["results"] = [OrderRead.from_order(o) for o in data["results"]]
    return data


@router.get("/{order_id}")
def get_my_order(
    order_id: int,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    order = get_customer_order(session, order_id, current_user.id)

    if not order:
        raise HTTPException(404, "Order not found")

    return OrderRead.from_order(order)
