from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlmodel import Session, select

from app.database import get_session
from app.dependencies.services import get_cart_storage
from app.models.plugin import Plugin
from app.models.user import User
from app.schemas.cart_schemas import CartAddRequest, CartMergeRequest, CouponApplyRequest
from app.services import coupon_service
from app.services.cart_service import CartStore
from app.services.cart_storage import CartStorage, guest_cart_key, user_cart_key
from app.utils.token import get_current_user, get_optional_user

router = APIRouter()


class CartContext:
    def __init__(self, store: CartStore, guest_token: Optional[str]):
        self.store = store
        self.guest_token = guest_token

    def response(self, **extra):
        body = {"cart": self.store.summary()}
        if self.guest_token:
            body["cart_token"] = self.guest_token
        body.update(extra)
        return body


def get_cart(
    x_cart_token: Optional[str] = Header(default=None),
    current_user: Optional[User] = Depends(get_optional_user),
    storage: CartStorage = Depends(get_cart_storage),
) -> CartContext:
    if current_user:
        return CartContext(CartStore(storage, user_cart_key(current_user.id)), None)

    # anonymous visitors get a token on first contact and send it back
    token = x_cart_token or uuid4().hex
    return CartContext(CartStore(storage, guest_cart_key(token)), token)


# View Cart

@router.get("")
def view_cart(
    cart: CartContext = Depends(get_cart),
    session: Session = Depends(get_session),
):
    ids = [item.id for item in cart.store.items]
    if ids:
        plugins = session.exec(select(Plugin).where(Plugin.id.in_(ids))).all()
        cart.store.refresh_catalog_prices(plugins)

    return cart.response()


# Add to Cart

@router.post("/items")
def add_to_cart(
    data: CartAddRequest,
    cart: CartContext = Depends(get_cart),
    session: Session = Depends(get_session),
):
    plugin = session.get(Plugin, data.plugin_id)
    if not plugin or not plugin.is_active:
        raise HTTPException(status_code=404, detail="Plugin not found")

    notice = cart.store.add_item(plugin, catalog_price=plugin.price)

    return cart.response(
        added=notice.variant != "destructive",
        message=notice.description,
        notice=notice,
    )


# Remove Cart

@router.delete("/items/{plugin_id}")
def remove_from_cart(
    plugin_id: int,
    cart: CartContext = Depends(get_cart),
):
    notice = cart.store.remove_item(plugin_id)
    if not notice:
        raise HTTPException(404, "Item not found")

    return cart.response(message=notice.description, notice=notice)


# Clear Cart

@router.delete("")
def clear_cart(cart: CartContext = Depends(get_cart)):
    notice = cart.store.clear()
    return cart.response(message=notice.description, notice=notice)


# Coupons

@router.post("/coupon")
def apply_coupon(
    data: CouponApplyRequest,
    cart: CartContext = Depends(get_cart),
    session: Session = Depends(get_session),
):
    coupon = coupon_service.find_coupon(session, data.code)
    success, message = cart.store.apply_coupon(coupon)

    if not success:
        raise HTTPException(400, message)

    return cart.response(message=message)


@router.delete("/coupon")
def remove_coupon(cart: CartContext = Depends(get_cart)):
    notice = cart.store.remove_coupon()
    return cart.response(message=notice.description, notice=notice)


# Guest -> account merge, called once right after sign-in

@router.post("/merge")
def merge_guest_cart(
    data: CartMergeRequest,
    current_user: User = Depends(get_current_user),
    storage: CartStorage = Depends(get_cart_storage),
):
    guest_key = guest_cart_key(data.guest_token)
    guest_items, _ = storage.load(guest_key)

    store = CartStore(storage, user_cart_key(current_user.id))
    merged, notice = store.merge_guest_cart(guest_items)
    storage.delete(guest_key)

    return {
        "cart": store.summary(),
        "merged": merged,
        "message": notice.description if notice else "Nothing to merge",
    }
