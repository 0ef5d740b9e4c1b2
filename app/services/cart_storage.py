from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlmodel import Session, select

from app.models.cart import SavedCart
from app.schemas.cart_schemas import CartItem, CouponInfo

CartState = Tuple[List[CartItem], Optional[CouponInfo]]


def user_cart_key(user_id: int) -> str:
    return f"user:{user_id}"


def guest_cart_key(token: str) -> str:
    return f"guest:{token}"


class CartStorage(ABC):
    """Where a cart lives between requests."""

    @abstractmethod
    def load(self, owner_key: str) -> CartState:
        ...

    @abstractmethod
    def save(
        self,
        owner_key: str,
        items: List[CartItem],
        coupon: Optional[CouponInfo],
    ) -> None:
        ...

    @abstractmethod
    def delete(self, owner_key: str) -> None:
        ...


class MemoryCartStorage(CartStorage):
    def __init__(self):
        self._carts: Dict[str, CartState] = {}

    def load(self, owner_key: str) -> CartState:
        items, coupon = self._carts.get(owner_key, ([], None))
        return [item.model_copy() for item in items], coupon

    def save(self, owner_key, items, coupon):
        self._carts[owner_key] = ([item.model_copy() for item in items], coupon)

    def delete(self, owner_key: str) -> None:
        self._carts.pop(owner_key, None)


class DatabaseCartStorage(CartStorage):
    def __init__(self, session: Session):
        self.session = session

    def _row(self, owner_key: str) -> Optional[SavedCart]:
        return self.session.exec(
            select(SavedCart).where(SavedCart.owner_key == owner_key)
        ).first()

    def load(self, owner_key: str) -> CartState:
        row = self._row(owner_key)
        if not row:
            return [], None

        items = [CartItem.model_validate(item) for item in row.items or []]
        coupon = (
            CouponInfo.model_validate(row.applied_coupon)
            if row.applied_coupon
            else None
        )
        return items, coupon

    def save(self, owner_key, items, coupon):
        row = self._row(owner_key) or SavedCart(owner_key=owner_key)

        row.items = [item.model_dump(mode="json") for item in items]
        row.applied_coupon = coupon.model_dump(mode="json") if coupon else None
        row.updated_at = datetime.utcnow()

        self.session.add(row)
        self.session.commit()

    def delete(self, owner_key: str) -> None:
        row = self._row(owner_key)
        if row:
            self.session.delete(row)
            self.session.commit()
