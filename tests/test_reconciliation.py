from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from app.constants import order_status
from app.models.discount import CouponRedemption
from app.models.notifications import Notification
from app.models.plugin_download import PluginDownload
from app.schemas.cart_schemas import CartItem
from app.services import download_service
from app.services.cart_storage import MemoryCartStorage, user_cart_key
from app.services.payments.base import ConfirmationReceipt, ReceiptStatus
from app.services.reconciliation import OrderReconciler, ReconciliationError


def _receipt(order, status=ReceiptStatus.succeeded, amount=None):
    return ConfirmationReceipt(
        provider=order.payment_provider,
        session_id=order.payment_session_id,
        status=status,
        transaction_id="ch_test_1",
        amount=order.total_amount if amount is None else amount,
        currency="USD",
    )


def test_double_confirmation_settles_once(session, make_plugin, make_coupon, make_order):
    coupon = make_coupon()
    plugins = [make_plugin("Reverb Pro", 49.99), make_plugin("Delay Lab", 30.00)]
    order = make_order(plugins, coupon=coupon, discount=16.00)

    storage = MemoryCartStorage()
    storage.save(user_cart_key(order.customer_id), [CartItem(id=plugins[0].id, title="x", price=1.0)], None)
    order.cart_owner_key = user_cart_key(order.customer_id)
    session.add(order)
    session.commit()

    reconciler = OrderReconciler(session, storage)
    first = reconciler.reconcile(_receipt(order))
    second = reconciler.reconcile(_receipt(order))

    assert first.newly_paid is True
    assert second.newly_paid is False
    assert first.order.status == order_status.PAID
    assert first.order.provider_transaction_id == "ch_test_1"
    assert first.order.paid_at is not None

    assert len(first.credentials) == 2
    assert {c.id for c in first.credentials} == {c.id for c in second.credentials}
    assert len(session.exec(select(PluginDownload)).all()) == 2

    session.refresh(coupon)
    assert coupon.used_count == 1
    assert len(session.exec(select(CouponRedemption)).all()) == 1

    items, _ = storage.load(user_cart_key(order.customer_id))
    assert items == []


def test_declined_receipt_fails_order(session, make_plugin, make_order):
    order = make_order([make_plugin()])

    result = OrderReconciler(session).reconcile(_receipt(order, ReceiptStatus.declined))

    assert result.order.status == order_status.FAILED
    assert session.exec(select(PluginDownload)).all() == []


def test_cancelled_receipt_cancels_order(session, make_plugin, make_order):
    order = make_order([make_plugin()])

    result = OrderReconciler(session).reconcile(_receipt(order, ReceiptStatus.cancelled))

    assert result.order.status == order_status.CANCELLED


def test_requires_action_leaves_order_pending(session, make_plugin, make_order):
    order = make_order([make_plugin()])

    result = OrderReconciler(session).reconcile(_receipt(order, ReceiptStatus.requires_action))

    assert result.order.status == order_status.PENDING
    assert result.credentials == []


def test_amount_mismatch_escalates(session, make_plugin, make_order):
    order = make_order([make_plugin(price=49.99)])

    with pytest.raises(ReconciliationError) as exc:
        OrderReconciler(session).reconcile(_receipt(order, amount=1.00))

    assert exc.value.transaction_id == "ch_test_1"
    session.refresh(order)
    assert order.status == order_status.PENDING

    alerts = session.exec(select(Notification)).all()
    assert len(alerts) == 1
    assert alerts[0].trigger_source == "reconciliation"
    assert alerts[0].related_id == order.id


def test_capture_on_closed_order_escalates(session, make_plugin, make_order):
    order = make_order([make_plugin()], status=order_status.EXPIRED)

    with pytest.raises(ReconciliationError):
        OrderReconciler(session).reconcile(_receipt(order))

    session.refresh(order)
    assert order.status == order_status.EXPIRED
    assert len(session.exec(select(Notification)).all()) == 1


def test_unknown_session_escalates(session):
    receipt = ConfirmationReceipt(
        provider="stripe", session_id="pi_missing", status=ReceiptStatus.succeeded,
        transaction_id="ch_x", amount=10.0,
    )

    with pytest.raises(ReconciliationError):
        OrderReconciler(session).reconcile(receipt)

    assert len(session.exec(select(Notification)).all()) == 1


def test_close_does_not_touch_paid_orders(session, make_plugin, make_order):
    order = make_order([make_plugin()], status=order_status.PAID)

    assert OrderReconciler(session).close(order, order_status.CANCELLED) is False
    assert order.status == order_status.PAID


def test_only_pending_orders_move():
    assert order_status.can_transition(order_status.PENDING, order_status.PAID)
    assert not order_status.can_transition(order_status.PAID, order_status.CANCELLED)
    assert not order_status.can_transition(order_status.EXPIRED, order_status.PAID)


class FlakyCartStorage(MemoryCartStorage):
    def __init__(self):
        super().__init__()
        self.fail_next_save = False

    def save(self, owner_key, items, coupon):
        if self.fail_next_save:
            self.fail_next_save = False
            raise SQLAlchemyError("database is locked")
        super().save(owner_key, items, coupon)


def test_retry_after_failed_write_completes_once(session, make_plugin, make_coupon, make_order):
    coupon = make_coupon()
    plugins = [make_plugin("Reverb Pro", 49.99), make_plugin("Delay Lab", 30.00)]
    order = make_order(plugins, coupon=coupon, discount=16.00)
    real_issue = download_service.issue_for_order
    attempts = []

    def issue_fails_once(*args, **kwargs):
        attempts.append(1)
        if len(attempts) == 1:
            raise SQLAlchemyError("database is locked")
        return real_issue(*args, **kwargs)

    reconciler = OrderReconciler(session)
    with patch.object(download_service, "issue_for_order", side_effect=issue_fails_once):
        with pytest.raises(ReconciliationError):
            reconciler.reconcile(_receipt(order))

        # the whole write rolled back, nothing half-applied
        session.refresh(order)
        session.refresh(coupon)
        assert order.status == order_status.PENDING
        assert coupon.used_count == 0
        assert session.exec(select(PluginDownload)).all() == []

        result = reconciler.reconcile(_receipt(order))

    assert result.newly_paid is True
    assert result.order.status == order_status.PAID
    assert len(result.credentials) == len(plugins)
    assert len(session.exec(select(PluginDownload)).all()) == len(plugins)

    session.refresh(coupon)
    assert coupon.used_count == 1
    assert len(session.exec(select(CouponRedemption)).all()) == 1


def test_failed_cart_cleanup_finished_by_redelivery(session, make_plugin, make_order):
    plugin = make_plugin()
    order = make_order([plugin], cart_owner_key=user_cart_key(1))
    storage = FlakyCartStorage()
    storage.save(order.cart_owner_key, [CartItem(id=plugin.id, title=plugin.title, price=plugin.price)], None)
    reconciler = OrderReconciler(session, storage)

    storage.fail_next_save = True
    first = reconciler.reconcile(_receipt(order))

    assert first.order.status == order_status.PAID
    items, _ = storage.load(order.cart_owner_key)
    assert [item.id for item in items] == [plugin.id]

    second = reconciler.reconcile(_receipt(order))

    assert second.newly_paid is False
    items, _ = storage.load(order.cart_owner_key)
    assert items == []


def test_redelivery_keeps_items_added_after_payment(session, make_plugin, make_order):
    bought = make_plugin("Reverb Pro", 49.99)
    later = make_plugin("Delay Lab", 30.00)
    order = make_order([bought], cart_owner_key=user_cart_key(1))
    storage = MemoryCartStorage()
    storage.save(order.cart_owner_key, [CartItem(id=bought.id, title=bought.title, price=bought.price)], None)
    reconciler = OrderReconciler(session, storage)

    reconciler.reconcile(_receipt(order))
    storage.save(order.cart_owner_key, [CartItem(id=later.id, title=later.title, price=later.price)], None)
    reconciler.reconcile(_receipt(order))

    items, _ = storage.load(order.cart_owner_key)
    assert [item.id for item in items] == [later.id]


def test_repeated_mismatch_alerts_once(session, make_plugin, make_order):
    order = make_order([make_plugin(price=49.99)])
    reconciler = OrderReconciler(session)

    for _ in range(3):
        with pytest.raises(ReconciliationError):
            reconciler.reconcile(_receipt(order, amount=1.00))

    assert len(session.exec(select(Notification)).all()) == 1

    # a different capture on the same order is a separate problem
    other = _receipt(order, amount=2.00)
    with pytest.raises(ReconciliationError):
        reconciler.reconcile(other)

    assert len(session.exec(select(Notification)).all()) == 2
