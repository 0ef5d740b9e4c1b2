import logging
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from app.models.discount import Discount
from app.models.plugin import Plugin
from app.schemas.cart_schemas import CartItem, CartNotice, CartSummary
from app.services import coupon_service
from app.services.cart_storage import CartStorage

logger = logging.getLogger(__name__)


class CartStore:
    """
    A single owner's cart: at most one line per plugin, no quantities.

    State is loaded from ``storage`` once and written back after every
    mutation. Totals are derived on read and never stored.
    """

    def __init__(self, storage: CartStorage, owner_key: str):
        self.storage = storage
        self.owner_key = owner_key
        self.items, self.applied_coupon = storage.load(owner_key)

    def _save(self):
        self.storage.save(self.owner_key, self.items, self.applied_coupon)

    # -----------------------------------------------------------------
    # Derived values
    # -----------------------------------------------------------------

    @property
    def item_count(self) -> int:
        return len(self.items)

    @property
    def subtotal(self) -> float:
        return round(sum(item.price for item in self.items), 2)

    @property
    def discount(self) -> float:
        return coupon_service.evaluate(self.subtotal, self.applied_coupon)

    @property
    def total(self) -> float:
        return round(max(0.0, self.subtotal - self.discount), 2)

    def is_in_cart(self, plugin_id: int) -> bool:
        return any(item.id == plugin_id for item in self.items)

    def summary(self) -> CartSummary:
        return CartSummary(
            items=list(self.items),
            item_count=self.item_count,
            subtotal=self.subtotal,
            discount=self.discount,
            total=self.total,
            applied_coupon=self.applied_coupon,
        )

    # -----------------------------------------------------------------
    # Mutations
    # -----------------------------------------------------------------

    def add_item(self, product: Plugin, catalog_price: Optional[float] = None) -> CartNotice:
        if self.is_in_cart(product.id):
            return CartNotice(
                title="Already in Cart",
                description=f"{product.title} is already in your cart",
                variant="destructive",
            )

        self.items.append(
            CartItem(
                id=product.id,
                title=product.title,
                price=product.price,
                original_price=catalog_price if catalog_price is not None else product.price,
                category=product.category,
                thumbnail=product.thumbnail,
                added_at=datetime.utcnow(),
            )
        )
        self._save()

        return CartNotice(
            title="Added to Cart",
            description=f"{product.title} has been added to your cart",
        )

    def remove_item(self, plugin_id: int) -> Optional[CartNotice]:
        item = next((i for i in self.items if i.id == plugin_id), None)
        if not item:
            return None

        self.items = [i for i in self.items if i.id != plugin_id]
        self._save()

        return CartNotice(
            title="Removed from Cart",
            description=f"{item.title} has been removed from your cart",
        )

    def clear(self) -> CartNotice:
        self.items = []
        self.applied_coupon = None
        self._save()

        return CartNotice(
            title="Cart Cleared",
            description="All items have been removed from your cart",
        )

    def remove_purchased(self, plugin_ids: Iterable[int]) -> int:
        """Drop paid-for plugins. Safe to repeat, a second call removes nothing."""
        purchased = set(plugin_ids)
        kept = [i for i in self.items if i.id not in purchased]
        removed = len(self.items) - len(kept)

        if not removed and (kept or self.applied_coupon is None):
            return 0

        self.items = kept
        if not kept:
            self.applied_coupon = None
        self._save()

        return removed

    def merge_guest_cart(
        self, guest_items: Iterable[CartItem]
    ) -> Tuple[int, Optional[CartNotice]]:
        added = 0

        for guest_item in guest_items:
            # the signed-in cart wins on collisions
            if self.is_in_cart(guest_item.id):
                continue
            self.items.append(guest_item)
            added += 1

        if not added:
            return 0, None

        self._save()
        logger.info(f"Merged {added} guest item(s) into {self.owner_key}")

        return added, CartNotice(
            title="Cart Merged",
            description=f"{added} item(s) from your guest cart have been added",
        )

    def apply_coupon(
        self,
        coupon: Optional[Discount],
        now: Optional[datetime] = None,
    ) -> Tuple[bool, str]:
        if coupon is None:
            return False, "Invalid coupon code"

        rejection = coupon_service.check_coupon(coupon, self.subtotal, now)
        if rejection:
            return False, rejection

        self.applied_coupon = coupon_service.snapshot(coupon)
        self._save()

        return True, f'Coupon "{coupon.name}" applied successfully!'

    def remove_coupon(self) -> CartNotice:
        self.applied_coupon = None
        self._save()

        return CartNotice(
            title="Coupon Removed",
            description="Coupon has been removed from your order",
        )

    def refresh_catalog_prices(self, plugins: List[Plugin]) -> None:
        """Update ``original_price`` for display. Snapshot prices never move."""
        current = {p.id: p.price for p in plugins}
        for item in self.items:
            if item.id in current:
                item.original_price = current[item.id]
